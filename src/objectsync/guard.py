"""Destroy guard: object-lock checks before a delete.

The guard is a state check evaluated against one object version. It is
best-effort: lock state can change between the check and the delete call,
so it is re-read right before every delete and a rejection of the delete
itself still surfaces as a transport error.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from objectsync.models import LEGAL_HOLD_ON, LOCK_MODE_GOVERNANCE, ObservedState
from objectsync.validation import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of a destroy guard check.

    Attributes:
        allowed: Whether the delete may proceed.
        reason: The blocking lock condition when not allowed.
        bypass_governance: Whether the delete must bypass governance retention.
    """

    allowed: bool
    reason: str = ""
    bypass_governance: bool = False

    def __bool__(self) -> bool:
        return self.allowed


def can_destroy(
    observed: ObservedState,
    force_destroy: bool,
    bypass_governance: bool = False,
    now: datetime | None = None,
) -> GuardDecision:
    """Decide whether an object version may be deleted.

    Args:
        observed: Lock state of the version about to be deleted.
        force_destroy: The resource's force_destroy flag.
        bypass_governance: Whether the delete can use governance bypass.
        now: Current time, for tests. Defaults to the UTC wall clock.

    Returns:
        A GuardDecision.
    """
    if observed.object_lock_legal_hold_status == LEGAL_HOLD_ON:
        return GuardDecision(False, reason="object lock legal hold is ON")

    retain_until = observed.object_lock_retain_until_date
    if observed.object_lock_mode and retain_until is not None:
        now = now or datetime.now(timezone.utc)
        try:
            until = parse_timestamp(retain_until)
        except (TypeError, ValueError):
            return GuardDecision(
                False, reason=f"object lock retention has an unreadable retain-until date {retain_until!r}"
            )
        if until > now:
            condition = (
                f"object lock retention mode {observed.object_lock_mode} "
                f"until {format_timestamp(until)}"
            )
            if observed.object_lock_mode != LOCK_MODE_GOVERNANCE:
                return GuardDecision(False, reason=f"{condition} cannot be bypassed")
            if not force_destroy:
                return GuardDecision(False, reason=f"{condition} (set force_destroy to bypass)")
            if not bypass_governance:
                return GuardDecision(
                    False, reason=f"{condition} and governance bypass is not available"
                )
            return GuardDecision(True, bypass_governance=True)

    return GuardDecision(True)
