"""Attribute differ: desired configuration vs. observed remote state.

The differ never fails. A comparison it cannot make with confidence is
reported as MODIFIED so the object is re-applied rather than left drifting.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from objectsync.models import (
    DEFAULT_STORAGE_CLASS,
    LEGAL_HOLD_OFF,
    SSE_KMS,
    DesiredState,
    ObservedState,
)
from objectsync.tags import IgnoreTags, reconcile_tags
from objectsync.validation import normalize_key, parse_timestamp

logger = logging.getLogger(__name__)

_MD5_HEX_RE = re.compile(r"^[0-9a-f]{32}$")

# Attributes the remote store fills in with its own default when the
# configuration leaves them unset. An unset desired value is never drift.
COMPUTED_ATTRIBUTES = (
    "content_type",
    "storage_class",
    "server_side_encryption",
    "kms_key_id",
    "bucket_key_enabled",
)

# Attributes for which an unset desired value asks for removal.
OPTIONAL_ATTRIBUTES = (
    "content_language",
    "content_encoding",
    "content_disposition",
    "cache_control",
    "website_redirect",
    "object_lock_mode",
)

SCALAR_ATTRIBUTES = COMPUTED_ATTRIBUTES + OPTIONAL_ATTRIBUTES


class ChangeKind(Enum):
    """How an attribute differs between desired and observed state."""

    UNCHANGED = "unchanged"
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class Change:
    """A single attribute comparison result."""

    kind: ChangeKind
    old: Any = None
    new: Any = None

    @property
    def changed(self) -> bool:
        return self.kind is not ChangeKind.UNCHANGED


UNCHANGED = Change(ChangeKind.UNCHANGED)


@dataclass
class ChangeSet:
    """Per-attribute changes for one object.

    Map attributes are reported per key as ``tags.<key>`` and
    ``metadata.<key>``; only changed map keys are listed.

    Attributes:
        changes: Attribute name to Change.
        exists: False when there is no observed object yet.
    """

    changes: dict[str, Change] = field(default_factory=dict)
    exists: bool = True

    def __getitem__(self, name: str) -> Change:
        return self.changes.get(name, UNCHANGED)

    def __iter__(self):
        return iter(self.changes)

    def changed(self) -> dict[str, Change]:
        """Return only the attributes that changed."""
        return {name: c for name, c in self.changes.items() if c.changed}

    def changed_groups(self) -> set[str]:
        """Return changed attribute names with map keys collapsed to their map."""
        return {name.split(".", 1)[0] for name in self.changed()}

    def __bool__(self) -> bool:
        return bool(self.changed()) or not self.exists


def _compare(old: Any, new: Any) -> Change:
    if old == new:
        return UNCHANGED
    if old is None:
        return Change(ChangeKind.ADDED, None, new)
    if new is None:
        return Change(ChangeKind.REMOVED, old, None)
    return Change(ChangeKind.MODIFIED, old, new)


def _diff_map(prefix: str, desired: dict[str, str], observed: dict[str, str]) -> dict[str, Change]:
    changes: dict[str, Change] = {}
    for name in sorted(set(desired) | set(observed)):
        change = _compare(observed.get(name), desired.get(name))
        if change.changed:
            changes[f"{prefix}.{name}"] = change
    return changes


def is_md5_etag(etag: str, server_side_encryption: str | None) -> bool:
    """Return whether an ETag is the MD5 of the object body.

    Multipart ETags carry a ``-<parts>`` suffix and SSE-KMS ETags are
    opaque; neither can be compared with a content hash.
    """
    if server_side_encryption and server_side_encryption.startswith(SSE_KMS):
        return False
    return bool(_MD5_HEX_RE.match(etag.strip('"')))


def _diff_content(content_hash: str, observed: ObservedState) -> Change:
    known: list[str] = []
    if observed.content_hash:
        known.append(observed.content_hash)
    if is_md5_etag(observed.etag, observed.server_side_encryption):
        known.append(observed.etag.strip('"'))
    if not known:
        return Change(ChangeKind.MODIFIED, observed.etag or None, content_hash)
    if all(value == content_hash for value in known):
        return UNCHANGED
    return Change(ChangeKind.MODIFIED, known[0], content_hash)


def _diff_etag(desired: DesiredState, observed: ObservedState) -> Change:
    if desired.etag is None:
        return UNCHANGED
    return _compare(observed.etag.strip('"').lower() or None, desired.etag)


def _diff_retain_until(desired: DesiredState, observed: ObservedState) -> Change:
    old, new = observed.object_lock_retain_until_date, desired.object_lock_retain_until_date
    if old is None or new is None:
        return _compare(old, new)
    try:
        if parse_timestamp(old) == parse_timestamp(new):
            return UNCHANGED
    except (TypeError, ValueError):
        logger.debug("Unparseable retain-until date: %r vs %r", old, new)
    return Change(ChangeKind.MODIFIED, old, new)


def _diff_legal_hold(desired: DesiredState, observed: ObservedState) -> Change:
    # An absent legal hold and an explicit OFF are the same remote state.
    old = observed.object_lock_legal_hold_status or LEGAL_HOLD_OFF
    new = desired.object_lock_legal_hold_status or LEGAL_HOLD_OFF
    if old == new:
        return UNCHANGED
    return Change(ChangeKind.MODIFIED, observed.object_lock_legal_hold_status, new)


def _diff_scalar(name: str, desired: DesiredState, observed: ObservedState) -> Change:
    new = getattr(desired, name)
    old = getattr(observed, name)
    if name in COMPUTED_ATTRIBUTES and new is None:
        return UNCHANGED
    if name == "storage_class":
        old = old or DEFAULT_STORAGE_CLASS
    elif name == "bucket_key_enabled":
        old = bool(old)
    return _compare(old, new)


def _all_added(desired: DesiredState, content_hash: str, ignore: IgnoreTags | None) -> ChangeSet:
    changes = {
        "bucket": Change(ChangeKind.ADDED, None, str(desired.bucket)),
        "key": Change(ChangeKind.ADDED, None, desired.key),
        "content": Change(ChangeKind.ADDED, None, content_hash),
    }
    for name in SCALAR_ATTRIBUTES + (
        "object_lock_retain_until_date",
        "object_lock_legal_hold_status",
        "source_hash",
        "etag",
        "acl",
    ):
        value = getattr(desired, name)
        if value is not None:
            changes[name] = Change(ChangeKind.ADDED, None, value)
    managed_tags = (ignore or IgnoreTags()).managed(desired.tags)
    changes.update(_diff_map("tags", managed_tags, {}))
    changes.update(_diff_map("metadata", desired.metadata, {}))
    return ChangeSet(changes=changes, exists=False)


def diff(
    desired: DesiredState,
    observed: ObservedState | None,
    *,
    content_hash: str,
    ignore_tags: IgnoreTags | None = None,
) -> ChangeSet:
    """Compare desired attributes against observed remote state.

    Args:
        desired: The desired state.
        observed: The observed state, or None when no object exists yet.
        content_hash: Content hash of the resolved desired content.
        ignore_tags: Tag keys and prefixes excluded from the comparison.

    Returns:
        The ChangeSet. Never raises.
    """
    if observed is None:
        return _all_added(desired, content_hash, ignore_tags)

    changes: dict[str, Change] = {
        "bucket": _compare(observed.bucket, str(desired.bucket)),
        "key": _compare(normalize_key(observed.key), desired.key),
        "content": _diff_content(content_hash, observed),
        "source_hash": _compare(observed.source_hash, desired.source_hash),
        "etag": _diff_etag(desired, observed),
        "object_lock_retain_until_date": _diff_retain_until(desired, observed),
        "object_lock_legal_hold_status": _diff_legal_hold(desired, observed),
    }
    for name in SCALAR_ATTRIBUTES:
        changes[name] = _diff_scalar(name, desired, observed)

    # ACLs are not read back from the remote store: compare with the last
    # applied value, and only when one is configured.
    if desired.acl is None:
        changes["acl"] = UNCHANGED
    else:
        changes["acl"] = _compare(observed.acl, desired.acl)

    tag_plan = reconcile_tags(desired.tags, observed.tags, ignore_tags)
    managed_observed = {
        k: v for k, v in observed.tags.items() if k not in tag_plan.preserved
    }
    changes.update(_diff_map("tags", tag_plan.desired, managed_observed))
    changes.update(
        _diff_map("metadata", desired.metadata, {k.lower(): v for k, v in observed.metadata.items()})
    )

    return ChangeSet(changes=changes)
