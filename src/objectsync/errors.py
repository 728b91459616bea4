"""Reconciliation error definitions for objectsync."""


class ObjectSyncError(Exception):
    """A reconciliation error with code, message, and retry semantics.

    Attributes:
        code: Stable error code string (e.g. "ValidationError").
        message: Human-readable error description.
        retryable: Whether the caller may retry the cycle with backoff.
        extra_fields: Additional key-value pairs describing the failure.
    """

    retryable = False

    def __init__(
        self,
        code: str,
        message: str,
        extra_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            code: Error code.
            message: Error description.
            extra_fields: Optional extra context fields.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.extra_fields = extra_fields or {}


class ValidationError(ObjectSyncError):
    """The desired state is invalid; raised before any remote call."""

    def __init__(self, message: str, attribute: str = "") -> None:
        super().__init__(
            code="ValidationError",
            message=message,
            extra_fields={"Attribute": attribute} if attribute else {},
        )
        self.attribute = attribute


class ContentSourceError(ObjectSyncError):
    """The content source could not be read."""

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(
            code="ContentSourceError",
            message=message,
            extra_fields={"Source": source} if source else {},
        )


class ContentEncodingError(ContentSourceError):
    """Inline content could not be decoded."""

    def __init__(self, message: str = "content_base64 is not valid base64") -> None:
        super().__init__(message)
        self.code = "ContentEncodingError"


class TransportError(ObjectSyncError):
    """A remote storage call failed (network, permission, or service error)."""

    retryable = True

    def __init__(self, message: str, operation: str = "", remote_code: str = "") -> None:
        extra = {}
        if operation:
            extra["Operation"] = operation
        if remote_code:
            extra["RemoteCode"] = remote_code
        super().__init__(code="TransportError", message=message, extra_fields=extra)
        self.operation = operation
        self.remote_code = remote_code


class PartialApplyError(TransportError):
    """An apply failed after some remote side effects were confirmed.

    Attributes:
        observed: Observed state reflecting what the transport confirmed.
        divergent: Attribute names still differing from the desired state.
    """

    def __init__(self, cause: TransportError, observed, divergent: list[str]) -> None:
        detail = f"; still divergent: {', '.join(divergent)}" if divergent else ""
        super().__init__(
            f"apply partially succeeded{detail}: {cause.message}",
            operation=cause.operation,
            remote_code=cause.remote_code,
        )
        self.observed = observed
        self.divergent = divergent


class ReplaceBlockedError(ObjectSyncError):
    """The destroy guard vetoed a delete; terminal for the cycle."""

    def __init__(self, reason: str, bucket: str = "", key: str = "", version_id: str | None = None) -> None:
        extra = {"Reason": reason}
        if bucket:
            extra["Bucket"] = bucket
        if key:
            extra["Key"] = key
        if version_id:
            extra["VersionId"] = version_id
        target = f"s3://{bucket}/{key}" if bucket else key
        if version_id:
            target = f"{target} (version {version_id})"
        super().__init__(
            code="ReplaceBlockedError",
            message=f"cannot delete {target}: {reason}",
            extra_fields=extra,
        )
        self.reason = reason
