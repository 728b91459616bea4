"""Input validation and normalization helpers for objectsync.

These functions enforce object naming and attribute rules independently of
the reconciliation engine so they can be unit-tested in isolation. Each
``validate_*`` function raises ``ValidationError`` on invalid input.
"""

import re
from datetime import datetime, timezone

from objectsync.errors import ValidationError
from objectsync.models import (
    LEGAL_HOLD_OFF,
    LEGAL_HOLD_ON,
    LOCK_MODE_COMPLIANCE,
    LOCK_MODE_GOVERNANCE,
    SSE_KMS,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_MAX_KEY_BYTES = 1024
_IMPORT_SCHEME = "s3://"

# An access point ARN contains a "/" of its own: arn:aws:s3:region:acct:accesspoint/name
_ACCESS_POINT_ARN_RE = re.compile(r"^(arn:[^:]+:s3:[^:]*:[^:]*:accesspoint/[^/]+)/(.+)$")

STORAGE_CLASSES = frozenset(
    {
        "STANDARD",
        "REDUCED_REDUNDANCY",
        "STANDARD_IA",
        "ONEZONE_IA",
        "INTELLIGENT_TIERING",
        "GLACIER",
        "GLACIER_IR",
        "DEEP_ARCHIVE",
        "EXPRESS_ONEZONE",
    }
)
SSE_MODES = frozenset({"AES256", SSE_KMS, "aws:kms:dsse"})
LOCK_MODES = frozenset({LOCK_MODE_GOVERNANCE, LOCK_MODE_COMPLIANCE})
LEGAL_HOLD_STATUSES = frozenset({LEGAL_HOLD_ON, LEGAL_HOLD_OFF})


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_key(key: str) -> str:
    """Normalize an object key by stripping leading ``/`` characters.

    Interior and trailing separators are kept literally, so
    ``"first//second///third//"`` is returned unchanged.

    Args:
        key: The configured key.

    Returns:
        The key as sent to the remote store.
    """
    return key.lstrip("/")


def validate_bucket(bucket: str) -> None:
    """Validate the bucket (or access point ARN) attribute.

    Raises:
        ValidationError: If the bucket is empty.
    """
    if not bucket:
        raise ValidationError("bucket must not be empty", attribute="bucket")


def validate_object_key(key: str) -> None:
    """Validate a normalized object key.

    Raises:
        ValidationError: If the key is empty or longer than 1024 UTF-8 bytes.
    """
    if not key:
        raise ValidationError("key must not be empty", attribute="key")
    if len(key.encode("utf-8")) > _MAX_KEY_BYTES:
        raise ValidationError(
            f"key must be at most {_MAX_KEY_BYTES} bytes when UTF-8 encoded", attribute="key"
        )


def validate_choice(attribute: str, value: str | None, allowed: frozenset[str]) -> None:
    """Validate that an optional attribute holds one of the allowed values."""
    if value is not None and value not in allowed:
        raise ValidationError(
            f"{attribute} must be one of {', '.join(sorted(allowed))}, got {value!r}",
            attribute=attribute,
        )


def validate_object_lock(mode: str | None, retain_until: datetime | None) -> None:
    """Validate that lock mode and retain-until date are set together.

    Raises:
        ValidationError: If exactly one of the two is set.
    """
    if (mode is None) != (retain_until is None):
        raise ValidationError(
            "object_lock_mode and object_lock_retain_until_date must be set together",
            attribute="object_lock_mode" if mode is None else "object_lock_retain_until_date",
        )
    validate_choice("object_lock_mode", mode, LOCK_MODES)


def validate_etag(etag: str, server_side_encryption: str | None) -> str:
    """Validate an expected ETag and return it without quotes, lowercased.

    Raises:
        ValidationError: If the ETag is empty or the object uses SSE-KMS,
            whose ETags are not the MD5 of the body.
    """
    value = etag.strip().strip('"').lower()
    if not value:
        raise ValidationError("etag must not be empty", attribute="etag")
    if server_side_encryption and server_side_encryption.startswith(SSE_KMS):
        raise ValidationError(
            "etag cannot be used with kms_key_id or SSE-KMS server_side_encryption",
            attribute="etag",
        )
    return value


def validate_metadata(metadata: dict[str, str]) -> dict[str, str]:
    """Return metadata with lowercase keys.

    Metadata keys are case-insensitive on the remote store, which always
    reports them in lowercase.

    Raises:
        ValidationError: If two keys differ only by case.
    """
    result: dict[str, str] = {}
    for name, value in metadata.items():
        lowered = name.lower()
        if lowered in result:
            raise ValidationError(
                f"metadata key {name!r} collides with another key when lowercased",
                attribute="metadata",
            )
        result[lowered] = str(value)
    return result


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an RFC 3339 timestamp into a timezone-aware UTC datetime.

    Args:
        value: A datetime or an RFC 3339 string (``Z`` or numeric offset).

    Returns:
        An aware datetime in UTC. Naive datetimes are assumed to be UTC.

    Raises:
        ValueError: If the string is not a valid timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as RFC 3339 in UTC with a ``Z`` suffix.

    Naive datetimes are assumed to be UTC. Fractional seconds are kept only
    when present.
    """
    parsed = parse_timestamp(value)
    if parsed.microsecond:
        return parsed.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return parsed.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_import_id(import_id: str) -> tuple[str, str]:
    """Split an import identifier into bucket and normalized key.

    Accepted forms are ``s3://<bucket>/<key>`` and ``<bucket>/<key>``. The
    bucket may be an access point ARN. The key may contain ``/``.

    Args:
        import_id: The import identifier.

    Returns:
        A ``(bucket, key)`` tuple.

    Raises:
        ValidationError: If the identifier has no bucket or no key.
    """
    rest = import_id[len(_IMPORT_SCHEME):] if import_id.startswith(_IMPORT_SCHEME) else import_id

    match = _ACCESS_POINT_ARN_RE.match(rest)
    if match:
        bucket, key = match.group(1), match.group(2)
    else:
        bucket, sep, key = rest.partition("/")
        if not sep:
            raise ValidationError(
                f"import id {import_id!r} must have the form s3://<bucket>/<key>",
                attribute="id",
            )

    validate_bucket(bucket)
    key = normalize_key(key)
    validate_object_key(key)
    return bucket, key
