"""Tests for the in-memory storage transport."""

import hashlib
from datetime import timedelta

import pytest

from objectsync.errors import TransportError
from objectsync.models import ContainerRef, ObjectAttributes
from objectsync.transport.memory import DEFAULT_KMS_KEY_ID, MemoryTransport

from conftest import LOCKED_BUCKET, PLAIN_BUCKET, VERSIONED_BUCKET, in_days

PLAIN = ContainerRef(PLAIN_BUCKET)
VERSIONED = ContainerRef(VERSIONED_BUCKET)
LOCKED = ContainerRef(LOCKED_BUCKET)


class TestPutAndHead:
    """Tests for put() and head()."""

    async def test_put_returns_md5_etag(self, transport):
        result = await transport.put(PLAIN, "k", b"some_bucket_content", ObjectAttributes())
        assert result.etag == hashlib.md5(b"some_bucket_content").hexdigest()
        assert result.version_id is None

    async def test_head_reports_defaults(self, transport):
        await transport.put(PLAIN, "k", b"data", ObjectAttributes())
        observed = await transport.head(PLAIN, "k")
        assert observed.content_type == "binary/octet-stream"
        assert observed.storage_class == "STANDARD"
        assert observed.content_length == 4
        assert observed.version_id is None

    async def test_head_missing(self, transport):
        assert await transport.head(PLAIN, "missing") is None

    async def test_missing_bucket(self, transport):
        with pytest.raises(TransportError) as exc_info:
            await transport.head(ContainerRef("nope"), "k")
        assert exc_info.value.remote_code == "NoSuchBucket"

    async def test_auto_create_buckets(self):
        t = MemoryTransport(auto_create_buckets=True)
        await t.put(ContainerRef("fresh"), "k", b"x", ObjectAttributes())
        assert await t.get(ContainerRef("fresh"), "k") == b"x"

    async def test_versioned_writes_get_distinct_ids(self, transport):
        first = await transport.put(VERSIONED, "k", b"one", ObjectAttributes())
        second = await transport.put(VERSIONED, "k", b"two", ObjectAttributes())
        assert first.version_id and second.version_id
        assert first.version_id != second.version_id
        assert await transport.get(VERSIONED, "k", first.version_id) == b"one"

    async def test_metadata_keys_lowercased(self, transport):
        await transport.put(PLAIN, "k", b"", ObjectAttributes(metadata={"Key1": "Value1"}))
        assert (await transport.head(PLAIN, "k")).metadata == {"key1": "Value1"}

    async def test_kms_etag_is_not_md5(self, transport):
        result = await transport.put(
            PLAIN, "k", b"data", ObjectAttributes(server_side_encryption="aws:kms")
        )
        assert result.etag != hashlib.md5(b"data").hexdigest()
        observed = await transport.head(PLAIN, "k")
        assert observed.kms_key_id == DEFAULT_KMS_KEY_ID

    async def test_bucket_default_encryption(self):
        t = MemoryTransport()
        t.create_bucket("enc", default_sse="AES256")
        await t.put(ContainerRef("enc"), "k", b"x", ObjectAttributes())
        assert (await t.head(ContainerRef("enc"), "k")).server_side_encryption == "AES256"

    async def test_access_point(self, transport):
        arn = "arn:aws:s3:us-west-2:123456789012:accesspoint/my-ap"
        transport.create_access_point(arn, PLAIN_BUCKET)
        await transport.put(ContainerRef(arn), "k", b"via ap", ObjectAttributes())
        assert await transport.get(PLAIN, "k") == b"via ap"

    async def test_lock_requires_lock_bucket(self, transport):
        with pytest.raises(TransportError):
            await transport.put(
                VERSIONED, "k", b"", ObjectAttributes(object_lock_legal_hold_status="ON")
            )


class TestUpdateMetadata:
    """Tests for update_metadata()."""

    async def test_in_place_keeps_version(self, transport):
        first = await transport.put(VERSIONED, "k", b"x", ObjectAttributes(tags={"a": "1"}))
        result = await transport.update_metadata(
            VERSIONED, "k", ObjectAttributes(content_type="text/plain")
        )
        assert result.version_id == first.version_id
        observed = await transport.head(VERSIONED, "k")
        assert observed.content_type == "text/plain"
        assert await transport.get_tags(VERSIONED, "k") == {"a": "1"}
        assert len(await transport.list_versions(VERSIONED, "k")) == 1

    async def test_missing_object(self, transport):
        with pytest.raises(TransportError):
            await transport.update_metadata(PLAIN, "missing", ObjectAttributes())


class TestDelete:
    """Tests for delete() and list_versions()."""

    async def test_unversioned_delete(self, transport):
        await transport.put(PLAIN, "k", b"x", ObjectAttributes())
        await transport.delete(PLAIN, "k")
        assert await transport.head(PLAIN, "k") is None
        assert await transport.list_versions(PLAIN, "k") == []

    async def test_versioned_delete_creates_marker(self, transport):
        await transport.put(VERSIONED, "k", b"x", ObjectAttributes())
        await transport.delete(VERSIONED, "k")
        assert await transport.head(VERSIONED, "k") is None
        versions = await transport.list_versions(VERSIONED, "k")
        assert [v.is_delete_marker for v in versions] == [True, False]
        assert versions[0].is_latest

    async def test_delete_version(self, transport):
        first = await transport.put(VERSIONED, "k", b"one", ObjectAttributes())
        await transport.put(VERSIONED, "k", b"two", ObjectAttributes())
        await transport.delete(VERSIONED, "k", version_id=first.version_id)
        versions = await transport.list_versions(VERSIONED, "k")
        assert len(versions) == 1
        assert await transport.get(VERSIONED, "k") == b"two"

    async def test_legal_hold_denies_version_delete(self, transport):
        result = await transport.put(
            LOCKED, "k", b"x", ObjectAttributes(object_lock_legal_hold_status="ON")
        )
        with pytest.raises(TransportError, match="legal hold"):
            await transport.delete(LOCKED, "k", version_id=result.version_id)

    async def test_governance_needs_bypass(self, transport):
        result = await transport.put(
            LOCKED,
            "k",
            b"x",
            ObjectAttributes(object_lock_mode="GOVERNANCE", object_lock_retain_until_date=in_days(1)),
        )
        with pytest.raises(TransportError):
            await transport.delete(LOCKED, "k", version_id=result.version_id)
        await transport.delete(LOCKED, "k", version_id=result.version_id, bypass_governance=True)
        assert await transport.list_versions(LOCKED, "k") == []

    async def test_compliance_denies_bypass(self, transport):
        result = await transport.put(
            LOCKED,
            "k",
            b"x",
            ObjectAttributes(object_lock_mode="COMPLIANCE", object_lock_retain_until_date=in_days(1)),
        )
        with pytest.raises(TransportError):
            await transport.delete(
                LOCKED, "k", version_id=result.version_id, bypass_governance=True
            )

    async def test_marker_allowed_on_locked_object(self, transport):
        """A delete without version id only adds a marker, even under retention."""
        await transport.put(
            LOCKED,
            "k",
            b"x",
            ObjectAttributes(object_lock_mode="COMPLIANCE", object_lock_retain_until_date=in_days(1)),
        )
        await transport.delete(LOCKED, "k")
        assert await transport.head(LOCKED, "k") is None


class TestTagsAclAndLock:
    """Tests for tag, ACL, legal hold and retention calls."""

    async def test_put_tags_keeps_version(self, transport):
        result = await transport.put(VERSIONED, "k", b"x", ObjectAttributes(tags={"a": "1"}))
        await transport.put_tags(VERSIONED, "k", {"b": "2"})
        assert await transport.get_tags(VERSIONED, "k") == {"b": "2"}
        assert (await transport.head(VERSIONED, "k")).version_id == result.version_id

    async def test_acl(self, transport):
        await transport.put(PLAIN, "k", b"x", ObjectAttributes())
        assert await transport.get_acl(PLAIN, "k") == ["FULL_CONTROL"]
        await transport.put_acl(PLAIN, "k", "public-read")
        assert await transport.get_acl(PLAIN, "k") == ["FULL_CONTROL", "READ"]

    async def test_unknown_acl(self, transport):
        await transport.put(PLAIN, "k", b"x", ObjectAttributes())
        with pytest.raises(TransportError):
            await transport.put_acl(PLAIN, "k", "everyone")

    async def test_legal_hold(self, transport):
        await transport.put(LOCKED, "k", b"x", ObjectAttributes())
        await transport.put_legal_hold(LOCKED, "k", "ON")
        assert (await transport.head(LOCKED, "k")).object_lock_legal_hold_status == "ON"

    async def test_retention_extend_without_bypass(self, transport):
        until = in_days(1)
        await transport.put(
            LOCKED,
            "k",
            b"x",
            ObjectAttributes(object_lock_mode="GOVERNANCE", object_lock_retain_until_date=until),
        )
        await transport.put_retention(LOCKED, "k", "GOVERNANCE", until + timedelta(days=1))
        observed = await transport.head(LOCKED, "k")
        assert observed.object_lock_retain_until_date == until + timedelta(days=1)

    async def test_retention_shorten_needs_bypass(self, transport):
        until = in_days(2)
        await transport.put(
            LOCKED,
            "k",
            b"x",
            ObjectAttributes(object_lock_mode="GOVERNANCE", object_lock_retain_until_date=until),
        )
        with pytest.raises(TransportError):
            await transport.put_retention(LOCKED, "k", "GOVERNANCE", in_days(1))
        await transport.put_retention(
            LOCKED, "k", "GOVERNANCE", in_days(1), bypass_governance=True
        )

    async def test_compliance_cannot_be_removed(self, transport):
        await transport.put(
            LOCKED,
            "k",
            b"x",
            ObjectAttributes(object_lock_mode="COMPLIANCE", object_lock_retain_until_date=in_days(1)),
        )
        with pytest.raises(TransportError, match="COMPLIANCE"):
            await transport.put_retention(LOCKED, "k", None, None, bypass_governance=True)

    async def test_retention_requires_lock_bucket(self, transport):
        await transport.put(VERSIONED, "k", b"x", ObjectAttributes())
        with pytest.raises(TransportError):
            await transport.put_retention(VERSIONED, "k", "GOVERNANCE", in_days(1))
