"""Data model types for objectsync.

These dataclasses represent the desired state of a managed object, the
observed state of the remote object, and the small value types passed
across the storage transport boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Union

DEFAULT_STORAGE_CLASS = "STANDARD"
LEGAL_HOLD_ON = "ON"
LEGAL_HOLD_OFF = "OFF"
LOCK_MODE_GOVERNANCE = "GOVERNANCE"
LOCK_MODE_COMPLIANCE = "COMPLIANCE"
SSE_KMS = "aws:kms"


@dataclass(frozen=True)
class ContainerRef:
    """Opaque reference to the container an object lives in.

    The value is either a plain bucket name or an S3 access point ARN.
    Only the storage transport interprets it.
    """

    value: str

    @property
    def is_access_point(self) -> bool:
        return self.value.startswith("arn:") and ":accesspoint/" in self.value

    def __str__(self) -> str:
        return self.value


# -- Content sources ----------------------------------------------------------


@dataclass(frozen=True)
class NoContent:
    """No content source configured: the object body is empty."""


@dataclass(frozen=True)
class RawContent:
    """Inline UTF-8 content."""

    data: bytes


@dataclass(frozen=True)
class Base64Content:
    """Inline base64-encoded binary content."""

    data: str


@dataclass(frozen=True)
class SourcePath:
    """Content read from a local file."""

    path: Path


Content = Union[NoContent, RawContent, Base64Content, SourcePath]


# -- Object attributes ---------------------------------------------------------


@dataclass
class ObjectAttributes:
    """The attributes sent to the transport with a write.

    Attributes:
        content_type: MIME type, or None for the remote default.
        content_language: Content-Language header value.
        content_encoding: Content-Encoding header value.
        content_disposition: Content-Disposition header value.
        cache_control: Cache-Control header value.
        website_redirect: Website redirect location.
        storage_class: Storage class, or None for the remote default.
        server_side_encryption: SSE mode ("AES256", "aws:kms", ...).
        kms_key_id: KMS key id or ARN, opaque.
        bucket_key_enabled: Whether an S3 Bucket Key is used for SSE-KMS.
        acl: Canned ACL name.
        metadata: User metadata, lowercase keys.
        tags: Full tag set to write.
        object_lock_mode: GOVERNANCE or COMPLIANCE.
        object_lock_retain_until_date: Retention expiry, timezone-aware.
        object_lock_legal_hold_status: ON or OFF.
    """

    content_type: str | None = None
    content_language: str | None = None
    content_encoding: str | None = None
    content_disposition: str | None = None
    cache_control: str | None = None
    website_redirect: str | None = None
    storage_class: str | None = None
    server_side_encryption: str | None = None
    kms_key_id: str | None = None
    bucket_key_enabled: bool | None = None
    acl: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    object_lock_mode: str | None = None
    object_lock_retain_until_date: datetime | None = None
    object_lock_legal_hold_status: str | None = None


@dataclass
class DesiredState:
    """Attributes supplied by configuration for one managed object.

    Built and validated by ``objectsync.schema.build_desired_state``; the
    key is already normalized and metadata keys are lowercase.
    """

    bucket: ContainerRef
    key: str
    content: Content = field(default_factory=NoContent)
    source_hash: str | None = None
    etag: str | None = None
    force_destroy: bool = False
    content_type: str | None = None
    content_language: str | None = None
    content_encoding: str | None = None
    content_disposition: str | None = None
    cache_control: str | None = None
    website_redirect: str | None = None
    storage_class: str | None = None
    server_side_encryption: str | None = None
    kms_key_id: str | None = None
    bucket_key_enabled: bool | None = None
    acl: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    object_lock_mode: str | None = None
    object_lock_retain_until_date: datetime | None = None
    object_lock_legal_hold_status: str | None = None

    def write_attributes(self, tags: dict[str, str] | None = None) -> ObjectAttributes:
        """Return the attributes to send with a write of this object.

        Args:
            tags: The full tag set to write. Defaults to the desired tags.
        """
        return ObjectAttributes(
            content_type=self.content_type,
            content_language=self.content_language,
            content_encoding=self.content_encoding,
            content_disposition=self.content_disposition,
            cache_control=self.cache_control,
            website_redirect=self.website_redirect,
            storage_class=self.storage_class,
            server_side_encryption=self.server_side_encryption,
            kms_key_id=self.kms_key_id,
            bucket_key_enabled=self.bucket_key_enabled,
            acl=self.acl,
            metadata=dict(self.metadata),
            tags=dict(self.tags if tags is None else tags),
            object_lock_mode=self.object_lock_mode,
            object_lock_retain_until_date=self.object_lock_retain_until_date,
            object_lock_legal_hold_status=self.object_lock_legal_hold_status,
        )


@dataclass
class ObservedState:
    """Remote state of a managed object, plus last-applied state-only fields.

    ``acl``, ``source_hash``, ``content_hash`` and ``force_destroy`` cannot
    be read back from the remote store; they are carried forward from the
    previous state record on every refresh.
    """

    bucket: str
    key: str
    etag: str = ""
    version_id: str | None = None
    content_length: int = 0
    content_type: str | None = None
    content_language: str | None = None
    content_encoding: str | None = None
    content_disposition: str | None = None
    cache_control: str | None = None
    website_redirect: str | None = None
    storage_class: str = DEFAULT_STORAGE_CLASS
    server_side_encryption: str | None = None
    kms_key_id: str | None = None
    bucket_key_enabled: bool = False
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    object_lock_mode: str | None = None
    object_lock_retain_until_date: datetime | None = None
    object_lock_legal_hold_status: str | None = None
    # State-only fields.
    content_hash: str | None = None
    source_hash: str | None = None
    acl: str | None = None
    force_destroy: bool = False

    def copy(self, **changes) -> "ObservedState":
        """Return a copy with the given fields replaced."""
        changes.setdefault("metadata", dict(self.metadata))
        changes.setdefault("tags", dict(self.tags))
        return replace(self, **changes)


@dataclass(frozen=True)
class WriteResult:
    """Identifiers returned by the transport for an acknowledged write."""

    etag: str
    version_id: str | None = None


@dataclass(frozen=True)
class ObjectVersion:
    """One entry of a key's version history.

    Attributes:
        version_id: The version id ("null" for writes made while unversioned).
        is_delete_marker: Whether the entry is a delete marker.
        is_latest: Whether the entry is the current version.
    """

    version_id: str
    is_delete_marker: bool = False
    is_latest: bool = False


@dataclass
class ResourceState:
    """Per-resource state record persisted between reconciliation cycles.

    Attributes:
        bucket: Container identity recorded at creation.
        key: Key identity recorded at creation.
        observed: The observed state after the last cycle, or None when the
            remote object is known to be absent.
    """

    bucket: str
    key: str
    observed: ObservedState | None = None
