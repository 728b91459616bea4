"""Apply executor: carries out a Plan against a storage transport.

Every action issues the smallest set of transport calls that converges
the remote object, then re-reads the canonical identifiers (ETag, version
id) from the transport. Once a call has been acknowledged, any later
failure is reported as a PartialApplyError carrying the confirmed state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, fields

from objectsync import metrics
from objectsync.differ import diff
from objectsync.errors import (
    ObjectSyncError,
    PartialApplyError,
    ReplaceBlockedError,
    TransportError,
)
from objectsync.fingerprint import ResolvedContent, resolve_content
from objectsync.guard import GuardDecision, can_destroy
from objectsync.models import (
    LEGAL_HOLD_OFF,
    LOCK_MODE_GOVERNANCE,
    ContainerRef,
    DesiredState,
    ObjectAttributes,
    ObservedState,
    WriteResult,
)
from objectsync.planner import Plan, PlanAction
from objectsync.tags import IgnoreTags, reconcile_tags
from objectsync.transport.base import StorageTransport
from objectsync.validation import parse_timestamp

logger = logging.getLogger(__name__)

METADATA_UPDATE_IN_PLACE = "in_place"
METADATA_UPDATE_REWRITE = "rewrite"
METADATA_UPDATE_POLICIES = (METADATA_UPDATE_IN_PLACE, METADATA_UPDATE_REWRITE)

# Attributes that need a metadata write; everything else in an
# UPDATE_METADATA_ONLY plan has a targeted call.
HEADER_ATTRIBUTES = frozenset(
    {
        "content_type",
        "content_language",
        "content_disposition",
        "cache_control",
        "website_redirect",
        "storage_class",
        "server_side_encryption",
        "kms_key_id",
        "bucket_key_enabled",
        "metadata",
    }
)

_WRITTEN_FIELDS = tuple(f.name for f in fields(ObjectAttributes) if f.name != "acl")


@dataclass
class ApplyResult:
    """Outcome of applying one plan.

    Attributes:
        action: The action that was applied.
        observed: Observed state after the apply, with state-only fields set.
        operations: Transport calls issued, in order.
    """

    action: PlanAction
    observed: ObservedState | None
    operations: list[str] = field(default_factory=list)


@dataclass
class _Cycle:
    """Bookkeeping for a single apply."""

    plan: Plan
    desired: DesiredState
    content_hash: str | None
    observed: ObservedState | None
    confirmed: bool = False
    operations: list[str] = field(default_factory=list)

    def confirm(self, observed: ObservedState | None) -> None:
        self.observed = observed
        self.confirmed = True


def _retention_matches(desired: DesiredState, observed: ObservedState) -> bool:
    if desired.object_lock_mode != observed.object_lock_mode:
        return False
    want, have = desired.object_lock_retain_until_date, observed.object_lock_retain_until_date
    if want is None or have is None:
        return want is have
    try:
        return parse_timestamp(want) == parse_timestamp(have)
    except (TypeError, ValueError):
        return False


def _shortens_governance(desired: DesiredState, observed: ObservedState) -> bool:
    if observed.object_lock_mode != LOCK_MODE_GOVERNANCE:
        return False
    if desired.object_lock_mode is None or desired.object_lock_retain_until_date is None:
        return True
    have = observed.object_lock_retain_until_date
    return have is not None and parse_timestamp(desired.object_lock_retain_until_date) < parse_timestamp(have)


class ApplyExecutor:
    """Applies plans and destroys objects through a StorageTransport.

    Args:
        transport: The storage transport.
        ignore_tags: Tag keys and prefixes left alone on the remote object.
        metadata_update: "in_place" to update metadata on the current
            object, "rewrite" to re-write the full object instead.
        governance_bypass: Whether deletes and retention changes may bypass
            GOVERNANCE retention when the transport supports it.
    """

    def __init__(
        self,
        transport: StorageTransport,
        ignore_tags: IgnoreTags | None = None,
        metadata_update: str = METADATA_UPDATE_IN_PLACE,
        governance_bypass: bool = True,
    ) -> None:
        if metadata_update not in METADATA_UPDATE_POLICIES:
            raise ValueError(f"unknown metadata update policy: {metadata_update!r}")
        self.transport = transport
        self.ignore_tags = ignore_tags or IgnoreTags()
        self.metadata_update = metadata_update
        self.governance_bypass = governance_bypass
        self._handlers = {
            PlanAction.NO_OP: self._no_op,
            PlanAction.CREATE: self._create,
            PlanAction.REPLACE_TAGS: self._replace_tags,
            PlanAction.UPDATE_METADATA_ONLY: self._update_metadata,
            PlanAction.REPLACE_CONTENT: self._replace_content,
            PlanAction.FULL_REPLACE: self._full_replace,
        }

    @property
    def bypass_available(self) -> bool:
        return self.governance_bypass and self.transport.supports_governance_bypass

    # -- Apply -------------------------------------------------------------------

    async def apply(self, plan: Plan, desired: DesiredState) -> ApplyResult:
        """Apply a plan.

        Args:
            plan: The plan from ``decide``, with its observed state attached.
            desired: The desired state the plan was computed from.

        Returns:
            An ApplyResult with the re-read observed state.

        Raises:
            ReplaceBlockedError: A FULL_REPLACE was vetoed by the destroy guard.
            PartialApplyError: A transport call failed after a confirmed write.
            TransportError: A transport call failed before any side effect.
        """
        started = time.monotonic()
        content_hash = None
        if plan.content is not None:
            content_hash = plan.content.content_hash
        elif plan.observed is not None:
            content_hash = plan.observed.content_hash
        cycle = _Cycle(plan=plan, desired=desired, content_hash=content_hash, observed=plan.observed)
        action = plan.action.value

        try:
            observed = await self._handlers[plan.action](cycle)
        except ReplaceBlockedError:
            metrics.record_apply(action, "blocked")
            raise
        except TransportError as e:
            if not cycle.confirmed:
                metrics.record_apply(action, "error")
                raise
            divergent = self._divergent(cycle)
            metrics.record_apply(action, "partial")
            logger.error(
                "Partial apply of %s to s3://%s/%s: %s",
                action,
                desired.bucket,
                desired.key,
                e.message,
                extra={"bucket": str(desired.bucket), "key": desired.key, "action": action},
            )
            raise PartialApplyError(e, cycle.observed, divergent) from e
        except ObjectSyncError:
            metrics.record_apply(action, "error")
            raise

        metrics.record_apply(action, "success")
        logger.info(
            "Applied %s to s3://%s/%s",
            action,
            desired.bucket,
            desired.key,
            extra={
                "bucket": str(desired.bucket),
                "key": desired.key,
                "action": action,
                "version_id": observed.version_id if observed else None,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        return ApplyResult(action=plan.action, observed=observed, operations=cycle.operations)

    def _divergent(self, cycle: _Cycle) -> list[str]:
        changes = diff(
            cycle.desired,
            cycle.observed,
            content_hash=cycle.content_hash or "",
            ignore_tags=self.ignore_tags,
        )
        return sorted(changes.changed())

    def _finish(self, cycle: _Cycle, observed: ObservedState) -> ObservedState:
        observed.force_destroy = cycle.desired.force_destroy
        return observed

    async def _no_op(self, cycle: _Cycle) -> ObservedState:
        return self._finish(cycle, cycle.observed.copy())

    async def _create(self, cycle: _Cycle) -> ObservedState:
        body = self._body(cycle)
        return self._finish(cycle, await self._write(cycle, body, previous_tags={}))

    async def _replace_content(self, cycle: _Cycle) -> ObservedState:
        body = self._body(cycle)
        previous_tags = cycle.observed.tags
        return self._finish(cycle, await self._write(cycle, body, previous_tags=previous_tags))

    async def _full_replace(self, cycle: _Cycle) -> ObservedState:
        # Read the body before anything is deleted.
        body = self._body(cycle)
        old = cycle.observed
        await self._destroy_key(
            ContainerRef(old.bucket), old.key, old.force_destroy, cycle.operations
        )
        cycle.confirm(None)
        return self._finish(cycle, await self._write(cycle, body, previous_tags={}))

    async def _replace_tags(self, cycle: _Cycle) -> ObservedState:
        desired, observed = cycle.desired, cycle.observed
        tag_plan = reconcile_tags(desired.tags, observed.tags, self.ignore_tags)
        tags = tag_plan.full_tag_set()
        cycle.operations.append("put_tags")
        await self.transport.put_tags(desired.bucket, desired.key, tags)
        return self._finish(cycle, observed.copy(tags=tags))

    async def _update_metadata(self, cycle: _Cycle) -> ObservedState:
        desired = cycle.desired
        observed = cycle.observed
        groups = cycle.plan.changes.changed_groups()
        acl_sent = False

        if groups & HEADER_ATTRIBUTES:
            if self.metadata_update == METADATA_UPDATE_REWRITE:
                body = self._body(cycle)
                tag_plan = reconcile_tags(desired.tags, observed.tags, self.ignore_tags)
                attrs = desired.write_attributes(tags=tag_plan.full_tag_set())
                cycle.operations.append("put")
                result = await self.transport.put(desired.bucket, desired.key, body, attrs)
            else:
                attrs = desired.write_attributes(tags=observed.tags)
                cycle.operations.append("update_metadata")
                result = await self.transport.update_metadata(desired.bucket, desired.key, attrs)
            acl_sent = desired.acl is not None
            cycle.confirm(self._written(cycle, result, attrs))
            observed = await self._read(cycle)

        if (desired.object_lock_legal_hold_status or LEGAL_HOLD_OFF) != (
            observed.object_lock_legal_hold_status or LEGAL_HOLD_OFF
        ):
            status = desired.object_lock_legal_hold_status or LEGAL_HOLD_OFF
            cycle.operations.append("put_legal_hold")
            await self.transport.put_legal_hold(
                desired.bucket, desired.key, status, version_id=observed.version_id
            )
            observed = observed.copy(object_lock_legal_hold_status=status)
            cycle.confirm(observed)

        if not _retention_matches(desired, observed):
            bypass = _shortens_governance(desired, observed) and self.bypass_available
            cycle.operations.append("put_retention")
            await self.transport.put_retention(
                desired.bucket,
                desired.key,
                desired.object_lock_mode,
                desired.object_lock_retain_until_date,
                version_id=observed.version_id,
                bypass_governance=bypass,
            )
            observed = observed.copy(
                object_lock_mode=desired.object_lock_mode,
                object_lock_retain_until_date=desired.object_lock_retain_until_date,
            )
            cycle.confirm(observed)

        if desired.acl is not None and not acl_sent and desired.acl != observed.acl:
            cycle.operations.append("put_acl")
            await self.transport.put_acl(desired.bucket, desired.key, desired.acl)
            observed = observed.copy(acl=desired.acl)
            cycle.confirm(observed)
        elif acl_sent:
            observed.acl = desired.acl

        observed = await self._converge_tags(cycle, observed)
        return self._finish(cycle, observed)

    # -- Helpers -----------------------------------------------------------------

    def _body(self, cycle: _Cycle) -> bytes:
        content: ResolvedContent | None = cycle.plan.content
        if content is None:
            content = resolve_content(cycle.desired.content)
            cycle.content_hash = content.content_hash
        return content.read()

    def _written(self, cycle: _Cycle, result: WriteResult, attrs: ObjectAttributes) -> ObservedState:
        desired = cycle.desired
        values = {name: getattr(attrs, name) for name in _WRITTEN_FIELDS}
        values = {name: value for name, value in values.items() if value is not None}
        previous = cycle.observed
        return ObservedState(
            bucket=str(desired.bucket),
            key=desired.key,
            etag=result.etag,
            version_id=result.version_id,
            content_hash=cycle.content_hash,
            source_hash=desired.source_hash,
            acl=attrs.acl if attrs.acl is not None else (previous.acl if previous else None),
            force_destroy=desired.force_destroy,
            **values,
        )

    async def _read(self, cycle: _Cycle) -> ObservedState:
        """Re-read the object after a write, keeping state-only fields."""
        desired = cycle.desired
        cycle.operations.append("head")
        fresh = await self.transport.head(desired.bucket, desired.key)
        if fresh is None:
            raise TransportError(
                f"s3://{desired.bucket}/{desired.key} not found after write",
                operation="HeadObject",
                remote_code="NoSuchKey",
            )
        cycle.operations.append("get_tags")
        fresh.tags = await self.transport.get_tags(desired.bucket, desired.key)
        previous = cycle.observed
        fresh.content_hash = cycle.content_hash
        fresh.source_hash = desired.source_hash
        fresh.force_destroy = desired.force_destroy
        fresh.acl = previous.acl if previous else None
        cycle.confirm(fresh)
        return fresh

    async def _write(
        self, cycle: _Cycle, body: bytes, previous_tags: dict[str, str]
    ) -> ObservedState:
        desired = cycle.desired
        tag_plan = reconcile_tags(desired.tags, previous_tags, self.ignore_tags)
        attrs = desired.write_attributes(tags=tag_plan.full_tag_set())
        cycle.operations.append("put")
        result = await self.transport.put(desired.bucket, desired.key, body, attrs)
        logger.debug(
            "Wrote s3://%s/%s (%d bytes) etag=%s version=%s",
            desired.bucket,
            desired.key,
            len(body),
            result.etag,
            result.version_id,
        )
        cycle.confirm(self._written(cycle, result, attrs))
        observed = await self._read(cycle)
        observed.acl = attrs.acl
        return await self._converge_tags(cycle, observed)

    async def _converge_tags(self, cycle: _Cycle, observed: ObservedState) -> ObservedState:
        desired = cycle.desired
        tag_plan = reconcile_tags(desired.tags, observed.tags, self.ignore_tags)
        if not tag_plan.changed:
            return observed
        tags = tag_plan.full_tag_set()
        cycle.operations.append("put_tags")
        await self.transport.put_tags(desired.bucket, desired.key, tags)
        observed = observed.copy(tags=tags)
        cycle.confirm(observed)
        return observed

    # -- Destroy -------------------------------------------------------------------

    async def destroy(self, observed: ObservedState) -> list[str]:
        """Delete a managed object, honoring its lock state.

        With ``force_destroy`` every version and delete marker of the key is
        removed; otherwise a single delete is issued for the current version
        (a delete marker on a versioned bucket).

        Returns:
            The transport calls issued, in order.

        Raises:
            ReplaceBlockedError: The destroy guard vetoed a delete.
        """
        operations: list[str] = []
        started = time.monotonic()
        await self._destroy_key(
            ContainerRef(observed.bucket), observed.key, observed.force_destroy, operations
        )
        logger.info(
            "Destroyed s3://%s/%s",
            observed.bucket,
            observed.key,
            extra={
                "bucket": observed.bucket,
                "key": observed.key,
                "action": "destroy",
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        return operations

    def _guard(
        self, bucket: ContainerRef, key: str, observed: ObservedState, force_destroy: bool
    ) -> GuardDecision:
        decision = can_destroy(observed, force_destroy, bypass_governance=self.bypass_available)
        if not decision:
            metrics.record_destroy_blocked(decision.reason)
            logger.warning(
                "Delete of s3://%s/%s blocked: %s",
                bucket,
                key,
                decision.reason,
                extra={"bucket": str(bucket), "key": key, "version_id": observed.version_id},
            )
            raise ReplaceBlockedError(
                decision.reason, bucket=str(bucket), key=key, version_id=observed.version_id
            )
        return decision

    async def _destroy_key(
        self, bucket: ContainerRef, key: str, force_destroy: bool, operations: list[str]
    ) -> None:
        if not force_destroy:
            operations.append("head")
            current = await self.transport.head(bucket, key)
            if current is None:
                logger.debug("s3://%s/%s already absent", bucket, key)
                return
            self._guard(bucket, key, current, force_destroy)
            operations.append("delete")
            await self.transport.delete(bucket, key)
            return

        operations.append("list_versions")
        versions = await self.transport.list_versions(bucket, key)

        # Check every version first so a lock fails the destroy before
        # anything has been deleted.
        for version in versions:
            if version.is_delete_marker:
                continue
            operations.append("head")
            current = await self.transport.head(bucket, key, version_id=version.version_id)
            if current is not None:
                self._guard(bucket, key, current, force_destroy)

        for version in versions:
            if version.is_delete_marker:
                operations.append("delete")
                await self.transport.delete(bucket, key, version_id=version.version_id)
                continue
            # Lock state may have changed since the first pass.
            operations.append("head")
            current = await self.transport.head(bucket, key, version_id=version.version_id)
            if current is None:
                continue
            decision = self._guard(bucket, key, current, force_destroy)
            operations.append("delete")
            await self.transport.delete(
                bucket,
                key,
                version_id=version.version_id,
                bypass_governance=decision.bypass_governance,
            )
