"""Plan decision engine: turns a ChangeSet into a single action.

Rules are evaluated in order and the first match wins. Tag-only and
metadata-only changes never produce a content write, so they never create
a new object version on a versioned bucket.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from objectsync.differ import ChangeSet

if TYPE_CHECKING:
    from objectsync.fingerprint import ResolvedContent
    from objectsync.models import ObservedState

IDENTITY_ATTRIBUTES = frozenset({"bucket", "key"})
CONTENT_ATTRIBUTES = frozenset({"content", "source_hash", "etag", "content_encoding"})
TAG_ATTRIBUTES = frozenset({"tags"})
LOCK_ATTRIBUTES = frozenset(
    {"object_lock_mode", "object_lock_retain_until_date", "object_lock_legal_hold_status"}
)
RETENTION_ATTRIBUTES = frozenset({"object_lock_mode", "object_lock_retain_until_date"})


class PlanAction(Enum):
    """The action the executor will take."""

    NO_OP = "no-op"
    CREATE = "create"
    REPLACE_TAGS = "replace-tags"
    UPDATE_METADATA_ONLY = "update-metadata"
    REPLACE_CONTENT = "replace-content"
    FULL_REPLACE = "full-replace"


@dataclass
class Plan:
    """A decided plan for one object.

    Attributes:
        action: The chosen action.
        changes: The ChangeSet the action was decided from.
        reason: Human-readable explanation naming the deciding attributes.
        observed: The observed state the plan was computed against.
        content: The resolved desired content, for actions that write.
    """

    action: PlanAction
    changes: ChangeSet
    reason: str = ""
    observed: ObservedState | None = None
    content: ResolvedContent | None = field(default=None, repr=False)

    @property
    def writes_content(self) -> bool:
        return self.action in (
            PlanAction.CREATE,
            PlanAction.REPLACE_CONTENT,
            PlanAction.FULL_REPLACE,
        )


def _names(changes: ChangeSet, groups: frozenset[str]) -> list[str]:
    return sorted(name for name in changes.changed() if name.split(".", 1)[0] in groups)


def decide(changes: ChangeSet) -> Plan:
    """Decide the plan action for a ChangeSet.

    Order:
      1. no observed object: CREATE
      2. bucket or key changed: FULL_REPLACE
      3. content-affecting attribute changed: REPLACE_CONTENT
      4. only tags changed: REPLACE_TAGS
      5. anything else changed: UPDATE_METADATA_ONLY
      6. nothing changed: NO_OP
    """
    if not changes.exists:
        return Plan(PlanAction.CREATE, changes, reason="object does not exist")

    identity = _names(changes, IDENTITY_ATTRIBUTES)
    if identity:
        return Plan(PlanAction.FULL_REPLACE, changes, reason=f"{', '.join(identity)} changed")

    content = _names(changes, CONTENT_ATTRIBUTES)
    if content:
        return Plan(PlanAction.REPLACE_CONTENT, changes, reason=f"{', '.join(content)} changed")

    groups = changes.changed_groups()
    if not groups:
        return Plan(PlanAction.NO_OP, changes, reason="no changes")

    if groups <= TAG_ATTRIBUTES:
        return Plan(
            PlanAction.REPLACE_TAGS,
            changes,
            reason=f"{', '.join(sorted(changes.changed()))} changed",
        )

    return Plan(
        PlanAction.UPDATE_METADATA_ONLY,
        changes,
        reason=f"{', '.join(sorted(changes.changed()))} changed",
    )
