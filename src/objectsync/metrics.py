"""Prometheus metrics definitions for objectsync.

All objectsync metrics use the ``objectsync_`` prefix for namespace
isolation. They count reconciliation outcomes per cycle: the action each
plan decided on, how each apply ended, and why destroys were blocked.

Counters live in the process-wide default registry and reset to zero on
restart. When metrics are disabled the module-level references stay
``None`` and the ``record_*`` helpers do nothing.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Plan counter  (labels: action)
# ---------------------------------------------------------------------------
plans_total: Counter | None = None

# ---------------------------------------------------------------------------
# Apply counter  (labels: action, status)
# ---------------------------------------------------------------------------
applies_total: Counter | None = None

# ---------------------------------------------------------------------------
# Destroy guard counter  (labels: reason)
# ---------------------------------------------------------------------------
destroy_blocked_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    This must be called once when metrics are enabled. Calling it again is
    a no-op, so collectors are never registered twice.
    """
    global _initialized
    global plans_total, applies_total, destroy_blocked_total

    if _initialized:
        return

    plans_total = Counter(
        "objectsync_plans_total",
        "Total plans computed by decided action",
        ["action"],
    )

    applies_total = Counter(
        "objectsync_applies_total",
        "Total plan applications by action and outcome",
        ["action", "status"],
    )

    destroy_blocked_total = Counter(
        "objectsync_destroy_blocked_total",
        "Total deletes vetoed by the destroy guard by lock condition",
        ["reason"],
    )

    _initialized = True


def record_plan(action: str) -> None:
    if plans_total is not None:
        plans_total.labels(action=action).inc()


def record_apply(action: str, status: str) -> None:
    """Count one apply. status is "success", "partial", "blocked" or "error"."""
    if applies_total is not None:
        applies_total.labels(action=action, status=status).inc()


def record_destroy_blocked(reason: str) -> None:
    """Count one blocked delete, labelled by the kind of lock that blocked it."""
    if destroy_blocked_total is None:
        return
    if "legal hold" in reason:
        label = "legal_hold"
    elif "COMPLIANCE" in reason:
        label = "compliance"
    elif "GOVERNANCE" in reason:
        label = "governance"
    else:
        label = "other"
    destroy_blocked_total.labels(reason=label).inc()
