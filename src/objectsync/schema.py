"""Desired-state construction from a configuration attribute bag.

The configuration evaluator hands objectsync a flat mapping of attribute
names to values. ``build_desired_state`` validates it and turns the three
optional content fields into a single tagged content variant, so no later
stage can see more than one content source.
"""

from pathlib import Path
from typing import Any, Mapping

from objectsync.acl import CANNED_ACLS
from objectsync.errors import ValidationError
from objectsync.models import (
    SSE_KMS,
    Base64Content,
    Content,
    ContainerRef,
    DesiredState,
    NoContent,
    RawContent,
    SourcePath,
)
from objectsync.validation import (
    LEGAL_HOLD_STATUSES,
    SSE_MODES,
    STORAGE_CLASSES,
    normalize_key,
    parse_timestamp,
    validate_bucket,
    validate_choice,
    validate_etag,
    validate_metadata,
    validate_object_key,
    validate_object_lock,
)

CONTENT_SOURCE_ATTRIBUTES = ("content", "content_base64", "source")

_STRING_ATTRIBUTES = (
    "source_hash",
    "etag",
    "content_type",
    "content_language",
    "content_encoding",
    "content_disposition",
    "cache_control",
    "website_redirect",
    "storage_class",
    "server_side_encryption",
    "kms_key_id",
    "acl",
    "object_lock_mode",
    "object_lock_legal_hold_status",
)

KNOWN_ATTRIBUTES = frozenset(
    {
        "bucket",
        "key",
        "metadata",
        "tags",
        "force_destroy",
        "bucket_key_enabled",
        "object_lock_retain_until_date",
        *CONTENT_SOURCE_ATTRIBUTES,
        *_STRING_ATTRIBUTES,
    }
)


def _optional_str(attributes: Mapping[str, Any], name: str) -> str | None:
    value = attributes.get(name)
    if value is None or value == "":
        return None
    return str(value)


def _string_map(attributes: Mapping[str, Any], name: str) -> dict[str, str]:
    value = attributes.get(name) or {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"{name} must be a map of strings", attribute=name)
    return {str(k): str(v) for k, v in value.items()}


def resolve_content_source(attributes: Mapping[str, Any]) -> Content:
    """Pick the single configured content source.

    Raises:
        ValidationError: If more than one content source is set.
    """
    present = [name for name in CONTENT_SOURCE_ATTRIBUTES if attributes.get(name) is not None]
    if len(present) > 1:
        raise ValidationError(
            f"only one of {', '.join(CONTENT_SOURCE_ATTRIBUTES)} may be set, got {', '.join(present)}",
            attribute=present[1],
        )
    if not present:
        return NoContent()

    name = present[0]
    value = attributes[name]
    if name == "content":
        return RawContent(value.encode("utf-8") if isinstance(value, str) else bytes(value))
    if name == "content_base64":
        return Base64Content(str(value))
    return SourcePath(Path(value))


def build_desired_state(attributes: Mapping[str, Any]) -> DesiredState:
    """Validate an attribute bag and build the desired state.

    Args:
        attributes: Attribute name to value mapping from configuration.

    Returns:
        A validated DesiredState with a normalized key.

    Raises:
        ValidationError: On unknown attributes, empty bucket or key,
            conflicting content sources, or invalid attribute values.
    """
    unknown = sorted(set(attributes) - KNOWN_ATTRIBUTES)
    if unknown:
        raise ValidationError(f"unsupported attribute(s): {', '.join(unknown)}", attribute=unknown[0])

    bucket = str(attributes.get("bucket") or "")
    validate_bucket(bucket)
    key = normalize_key(str(attributes.get("key") or ""))
    validate_object_key(key)

    strings = {name: _optional_str(attributes, name) for name in _STRING_ATTRIBUTES}

    validate_choice("storage_class", strings["storage_class"], STORAGE_CLASSES)
    validate_choice("server_side_encryption", strings["server_side_encryption"], SSE_MODES)
    validate_choice(
        "object_lock_legal_hold_status", strings["object_lock_legal_hold_status"], LEGAL_HOLD_STATUSES
    )
    validate_choice("acl", strings["acl"], CANNED_ACLS)

    if strings["kms_key_id"] is not None:
        if strings["server_side_encryption"] is None:
            strings["server_side_encryption"] = SSE_KMS
        elif not strings["server_side_encryption"].startswith(SSE_KMS):
            raise ValidationError(
                "kms_key_id requires server_side_encryption aws:kms", attribute="kms_key_id"
            )

    if strings["etag"] is not None:
        strings["etag"] = validate_etag(strings["etag"], strings["server_side_encryption"])

    retain_until = None
    raw_retain_until = attributes.get("object_lock_retain_until_date")
    if raw_retain_until not in (None, ""):
        try:
            retain_until = parse_timestamp(raw_retain_until)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"object_lock_retain_until_date is not an RFC 3339 timestamp: {raw_retain_until!r}",
                attribute="object_lock_retain_until_date",
            ) from e
    validate_object_lock(strings["object_lock_mode"], retain_until)

    bucket_key_enabled = attributes.get("bucket_key_enabled")

    return DesiredState(
        bucket=ContainerRef(bucket),
        key=key,
        content=resolve_content_source(attributes),
        force_destroy=bool(attributes.get("force_destroy", False)),
        bucket_key_enabled=None if bucket_key_enabled is None else bool(bucket_key_enabled),
        metadata=validate_metadata(_string_map(attributes, "metadata")),
        tags=_string_map(attributes, "tags"),
        object_lock_retain_until_date=retain_until,
        **strings,
    )
