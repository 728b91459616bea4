"""Shared pytest fixtures for objectsync tests.

Every test gets a fresh in-memory transport with three buckets: an
unversioned one, a versioned one, and one with object lock enabled (which
is always versioned). Reconcilers are built on top of that transport with
the default policy.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from objectsync.models import DesiredState
from objectsync.reconciler import Reconciler
from objectsync.schema import build_desired_state
from objectsync.tags import IgnoreTags
from objectsync.transport.memory import MemoryTransport

PLAIN_BUCKET = "plain-bucket"
VERSIONED_BUCKET = "versioned-bucket"
LOCKED_BUCKET = "locked-bucket"


def desired(bucket: str = PLAIN_BUCKET, key: str = "test-key", **attrs: Any) -> DesiredState:
    """Build a validated DesiredState from keyword attributes."""
    return build_desired_state({"bucket": bucket, "key": key, **attrs})


def in_days(days: float) -> datetime:
    """Return an aware UTC datetime ``days`` from now, truncated to seconds."""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return now + timedelta(days=days)


@pytest.fixture
async def transport() -> MemoryTransport:
    """Create an initialized memory transport with the standard test buckets."""
    t = MemoryTransport()
    await t.init()
    t.create_bucket(PLAIN_BUCKET)
    t.create_bucket(VERSIONED_BUCKET, versioning=True)
    t.create_bucket(LOCKED_BUCKET, object_lock=True)
    yield t
    await t.close()


@pytest.fixture
def reconciler(transport: MemoryTransport) -> Reconciler:
    """Create a reconciler with no ignored tags and the default policy."""
    return Reconciler(transport)


@pytest.fixture
def ignoring_reconciler(transport: MemoryTransport) -> Reconciler:
    """Create a reconciler that ignores tag ``ignorekey1`` and prefix ``ignorekey``."""
    return Reconciler(
        transport, ignore_tags=IgnoreTags.of(keys=["ignorekey1"], key_prefixes=["ignorekey"])
    )
