"""Reconciliation cycle facade.

A ``Reconciler`` runs one cycle per call: it re-reads the remote object,
diffs it against the desired state, decides a plan, and applies it. No
remote state is cached between calls. Cycles for the same resource must be
awaited one after another; distinct resources can be reconciled
concurrently on one event loop.
"""

import logging

from objectsync import metrics
from objectsync.differ import diff
from objectsync.errors import PartialApplyError, ValidationError
from objectsync.executor import ApplyExecutor, METADATA_UPDATE_IN_PLACE
from objectsync.fingerprint import resolve_content
from objectsync.models import ContainerRef, DesiredState, ObservedState, ResourceState
from objectsync.planner import Plan, decide
from objectsync.tags import IgnoreTags
from objectsync.transport.base import StorageTransport
from objectsync.validation import parse_import_id

logger = logging.getLogger(__name__)


class Reconciler:
    """Plans, applies, destroys, and imports managed objects.

    Args:
        transport: The storage transport.
        ignore_tags: Tag keys and prefixes left alone on remote objects.
        metadata_update: Metadata update policy, "in_place" or "rewrite".
        governance_bypass: Whether GOVERNANCE retention may be bypassed.
    """

    def __init__(
        self,
        transport: StorageTransport,
        ignore_tags: IgnoreTags | None = None,
        metadata_update: str = METADATA_UPDATE_IN_PLACE,
        governance_bypass: bool = True,
    ) -> None:
        self.transport = transport
        self.ignore_tags = ignore_tags or IgnoreTags()
        self.executor = ApplyExecutor(
            transport,
            ignore_tags=self.ignore_tags,
            metadata_update=metadata_update,
            governance_bypass=governance_bypass,
        )

    async def refresh(self, state: ResourceState | None) -> ObservedState | None:
        """Re-read a managed object and carry its state-only fields forward.

        Returns None when there is no state record, when the record says the
        object is absent, or when the object no longer exists remotely.
        """
        if state is None or state.observed is None:
            return None
        previous = state.observed
        bucket = ContainerRef(state.bucket)
        fresh = await self.transport.head(bucket, state.key)
        if fresh is None:
            logger.info("s3://%s/%s no longer exists", state.bucket, state.key)
            return None
        fresh.tags = await self.transport.get_tags(bucket, state.key)
        fresh.acl = previous.acl
        fresh.source_hash = previous.source_hash
        fresh.force_destroy = previous.force_destroy
        # A recorded content hash only describes the version it was taken from.
        if previous.etag == fresh.etag:
            fresh.content_hash = previous.content_hash
        return fresh

    async def plan(self, desired: DesiredState, state: ResourceState | None = None) -> Plan:
        """Compute the plan that would converge the object to ``desired``."""
        content = resolve_content(desired.content)
        observed = await self.refresh(state)
        changes = diff(
            desired, observed, content_hash=content.content_hash, ignore_tags=self.ignore_tags
        )
        plan = decide(changes)
        plan.observed = observed
        plan.content = content
        metrics.record_plan(plan.action.value)
        logger.info(
            "Planned %s for s3://%s/%s: %s",
            plan.action.value,
            desired.bucket,
            desired.key,
            plan.reason,
            extra={
                "bucket": str(desired.bucket),
                "key": desired.key,
                "action": plan.action.value,
            },
        )
        return plan

    async def apply(
        self, desired: DesiredState, state: ResourceState | None = None
    ) -> ResourceState:
        """Plan and apply one cycle.

        The given state record is updated in place and returned. When the
        apply fails after a confirmed write, the record is updated with what
        the transport confirmed before the error is re-raised.
        """
        if state is None:
            state = ResourceState(bucket=str(desired.bucket), key=desired.key)
        plan = await self.plan(desired, state)
        try:
            result = await self.executor.apply(plan, desired)
        except PartialApplyError as e:
            self._record(state, desired, e.observed)
            raise
        self._record(state, desired, result.observed)
        return state

    def _record(
        self, state: ResourceState, desired: DesiredState, observed: ObservedState | None
    ) -> None:
        state.bucket = str(desired.bucket)
        state.key = desired.key
        state.observed = observed

    async def destroy(self, state: ResourceState) -> ResourceState:
        """Delete the managed object recorded in ``state``.

        Raises:
            ReplaceBlockedError: The destroy guard vetoed a delete.
        """
        observed = await self.refresh(state)
        if observed is None:
            logger.info("Nothing to destroy for s3://%s/%s", state.bucket, state.key)
        else:
            await self.executor.destroy(observed)
        state.observed = None
        return state

    async def import_object(self, import_id: str) -> ResourceState:
        """Adopt an existing remote object as a managed resource.

        Args:
            import_id: ``s3://<bucket>/<key>`` or ``<bucket>/<key>``.

        Raises:
            ValidationError: If the id is malformed or the object does not exist.
        """
        bucket, key = parse_import_id(import_id)
        ref = ContainerRef(bucket)
        observed = await self.transport.head(ref, key)
        if observed is None:
            raise ValidationError(
                f"cannot import non-existent remote object s3://{bucket}/{key}", attribute="id"
            )
        observed.tags = await self.transport.get_tags(ref, key)
        logger.info(
            "Imported s3://%s/%s",
            bucket,
            key,
            extra={"bucket": bucket, "key": key, "version_id": observed.version_id},
        )
        return ResourceState(bucket=bucket, key=key, observed=observed)
