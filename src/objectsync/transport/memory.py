"""In-memory storage transport for objectsync.

Implements the StorageTransport protocol with Python dictionaries and
emulates the remote store behaviors the reconciler depends on: per-bucket
versioning, delete markers, object lock (legal hold and retention with
governance bypass), tags, canned ACLs, default bucket encryption, and
access point aliases. Useful for tests and dry runs; nothing is persisted.

Metadata updates are applied in place on the current version, so they do
not create a new version even on a versioned bucket.
"""

import hashlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from objectsync.acl import grant_permissions, parse_canned_acl
from objectsync.errors import TransportError
from objectsync.models import (
    DEFAULT_STORAGE_CLASS,
    LEGAL_HOLD_ON,
    LOCK_MODE_COMPLIANCE,
    LOCK_MODE_GOVERNANCE,
    SSE_KMS,
    ContainerRef,
    ObjectAttributes,
    ObjectVersion,
    ObservedState,
    WriteResult,
)

logger = logging.getLogger(__name__)

NULL_VERSION = "null"
DEFAULT_OWNER_ID = "75aa57f09aa0c8caeab4f8c24e99d10f8e7faeebf76c078efc7c6caea54ba06a"
DEFAULT_KMS_KEY_ID = "arn:aws:kms:us-east-1:000000000000:alias/aws/s3"


@dataclass
class _StoredVersion:
    version_id: str
    data: bytes = b""
    etag: str = ""
    attrs: ObjectAttributes = field(default_factory=ObjectAttributes)
    grants: list = field(default_factory=list)
    last_modified: datetime | None = None
    is_delete_marker: bool = False


@dataclass
class _Bucket:
    name: str
    versioning: bool = False
    object_lock: bool = False
    default_sse: str | None = None
    bucket_key_enabled: bool = False
    owner_id: str = DEFAULT_OWNER_ID
    # key -> versions, newest first
    objects: dict[str, list[_StoredVersion]] = field(default_factory=dict)


def _denied(operation: str, message: str, code: str = "AccessDenied") -> TransportError:
    return TransportError(message, operation=operation, remote_code=code)


class MemoryTransport:
    """Storage transport that holds all buckets and objects in memory.

    Attributes:
        supports_governance_bypass: Always True.
    """

    supports_governance_bypass = True

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        auto_create_buckets: bool = False,
    ) -> None:
        """Initialize the memory transport.

        Args:
            clock: Returns the current time; used for retention checks.
            auto_create_buckets: Create an unversioned bucket on first use
                instead of failing with NoSuchBucket.
        """
        self.auto_create_buckets = auto_create_buckets
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._buckets: dict[str, _Bucket] = {}
        self._access_points: dict[str, str] = {}

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        self._buckets.clear()
        self._access_points.clear()

    # -- Bucket management (outside the protocol) -----------------------------

    def create_bucket(
        self,
        name: str,
        versioning: bool = False,
        object_lock: bool = False,
        default_sse: str | None = None,
        bucket_key_enabled: bool = False,
    ) -> None:
        """Create a bucket. Object lock implies versioning."""
        if name in self._buckets:
            raise KeyError(f"Bucket already exists: {name}")
        self._buckets[name] = _Bucket(
            name=name,
            versioning=versioning or object_lock,
            object_lock=object_lock,
            default_sse=default_sse,
            bucket_key_enabled=bucket_key_enabled,
        )

    def set_versioning(self, name: str, enabled: bool) -> None:
        self._buckets[name].versioning = enabled

    def create_access_point(self, arn: str, bucket: str) -> None:
        """Register an access point ARN that resolves to a bucket."""
        self._access_points[arn] = bucket

    # -- Internal helpers --------------------------------------------------------

    def _bucket(self, ref: ContainerRef, operation: str) -> _Bucket:
        name = self._access_points.get(ref.value, ref.value) if ref.is_access_point else ref.value
        bucket = self._buckets.get(name)
        if bucket is None and self.auto_create_buckets and not ref.is_access_point:
            self.create_bucket(name)
            bucket = self._buckets[name]
        if bucket is None:
            raise _denied(operation, f"The specified bucket does not exist: {name}", "NoSuchBucket")
        return bucket

    def _find(
        self, bucket: _Bucket, key: str, version_id: str | None
    ) -> _StoredVersion | None:
        versions = bucket.objects.get(key, [])
        if version_id is None:
            if not versions or versions[0].is_delete_marker:
                return None
            return versions[0]
        for version in versions:
            if version.version_id == version_id:
                return version
        return None

    def _require(
        self, bucket: _Bucket, key: str, version_id: str | None, operation: str
    ) -> _StoredVersion:
        version = self._find(bucket, key, version_id)
        if version is None or version.is_delete_marker:
            raise _denied(operation, f"The specified key does not exist: {key}", "NoSuchKey")
        return version

    def _retention_active(self, attrs: ObjectAttributes) -> bool:
        return (
            attrs.object_lock_mode is not None
            and attrs.object_lock_retain_until_date is not None
            and attrs.object_lock_retain_until_date > self._clock()
        )

    def _check_lock_supported(self, bucket: _Bucket, attrs: ObjectAttributes, operation: str) -> None:
        uses_lock = (
            attrs.object_lock_mode is not None
            or attrs.object_lock_legal_hold_status is not None
        )
        if uses_lock and not bucket.object_lock:
            raise _denied(
                operation,
                f"Bucket is missing Object Lock Configuration: {bucket.name}",
                "InvalidRequest",
            )

    def _check_retention_change(
        self,
        current: ObjectAttributes,
        mode: str | None,
        retain_until: datetime | None,
        bypass_governance: bool,
        operation: str,
    ) -> None:
        if not self._retention_active(current):
            return
        shortened = (
            mode is None
            or retain_until is None
            or retain_until < current.object_lock_retain_until_date
            or (current.object_lock_mode == LOCK_MODE_COMPLIANCE and mode != LOCK_MODE_COMPLIANCE)
        )
        if not shortened:
            return
        if current.object_lock_mode == LOCK_MODE_COMPLIANCE:
            raise _denied(operation, "COMPLIANCE mode retention cannot be shortened or removed")
        if not bypass_governance:
            raise _denied(operation, "GOVERNANCE mode retention requires bypass to shorten or remove")

    def _version_id(self, version: _StoredVersion) -> str | None:
        if version.version_id == NULL_VERSION:
            return None
        return version.version_id

    def _etag(self, data: bytes, sse: str | None) -> str:
        if sse and sse.startswith(SSE_KMS):
            # SSE-KMS ETags are not the MD5 of the body.
            return hashlib.sha256(data + uuid.uuid4().bytes).hexdigest()[:32]
        return hashlib.md5(data).hexdigest()

    def _effective_attrs(self, bucket: _Bucket, attrs: ObjectAttributes) -> ObjectAttributes:
        sse = attrs.server_side_encryption or bucket.default_sse
        kms_key_id = attrs.kms_key_id
        if sse and sse.startswith(SSE_KMS) and kms_key_id is None:
            kms_key_id = DEFAULT_KMS_KEY_ID
        bucket_key_enabled = attrs.bucket_key_enabled
        if bucket_key_enabled is None:
            bucket_key_enabled = bucket.bucket_key_enabled
        return replace(
            attrs,
            content_type=attrs.content_type or "binary/octet-stream",
            storage_class=attrs.storage_class or DEFAULT_STORAGE_CLASS,
            server_side_encryption=sse,
            kms_key_id=kms_key_id,
            bucket_key_enabled=bool(bucket_key_enabled),
            metadata={k.lower(): v for k, v in attrs.metadata.items()},
            tags=dict(attrs.tags),
        )

    def _insert(self, bucket: _Bucket, key: str, version: _StoredVersion) -> None:
        versions = bucket.objects.setdefault(key, [])
        if version.version_id == NULL_VERSION:
            versions[:] = [v for v in versions if v.version_id != NULL_VERSION]
        versions.insert(0, version)

    # -- Protocol ------------------------------------------------------------------

    async def head(
        self, bucket: ContainerRef, key: str, version_id: str | None = None
    ) -> ObservedState | None:
        stored = self._bucket(bucket, "HeadObject")
        version = self._find(stored, key, version_id)
        if version is None or version.is_delete_marker:
            return None
        attrs = version.attrs
        return ObservedState(
            bucket=bucket.value,
            key=key,
            etag=version.etag,
            version_id=self._version_id(version),
            content_length=len(version.data),
            content_type=attrs.content_type,
            content_language=attrs.content_language,
            content_encoding=attrs.content_encoding,
            content_disposition=attrs.content_disposition,
            cache_control=attrs.cache_control,
            website_redirect=attrs.website_redirect,
            storage_class=attrs.storage_class or DEFAULT_STORAGE_CLASS,
            server_side_encryption=attrs.server_side_encryption,
            kms_key_id=attrs.kms_key_id,
            bucket_key_enabled=bool(attrs.bucket_key_enabled),
            metadata=dict(attrs.metadata),
            object_lock_mode=attrs.object_lock_mode,
            object_lock_retain_until_date=attrs.object_lock_retain_until_date,
            object_lock_legal_hold_status=attrs.object_lock_legal_hold_status,
        )

    async def get(self, bucket: ContainerRef, key: str, version_id: str | None = None) -> bytes:
        """Return an object's body (outside the protocol; used to verify writes)."""
        stored = self._bucket(bucket, "GetObject")
        return self._require(stored, key, version_id, "GetObject").data

    async def put(
        self, bucket: ContainerRef, key: str, body: bytes, attrs: ObjectAttributes
    ) -> WriteResult:
        stored = self._bucket(bucket, "PutObject")
        self._check_lock_supported(stored, attrs, "PutObject")

        effective = self._effective_attrs(stored, attrs)
        version = _StoredVersion(
            version_id=uuid.uuid4().hex if stored.versioning else NULL_VERSION,
            data=bytes(body),
            etag=self._etag(body, effective.server_side_encryption),
            attrs=effective,
            grants=parse_canned_acl(attrs.acl or "private", stored.owner_id),
            last_modified=self._clock(),
        )
        self._insert(stored, key, version)
        logger.debug(
            "PutObject %s/%s version=%s etag=%s", stored.name, key, version.version_id, version.etag
        )
        return WriteResult(etag=version.etag, version_id=self._version_id(version))

    async def update_metadata(
        self, bucket: ContainerRef, key: str, attrs: ObjectAttributes
    ) -> WriteResult:
        stored = self._bucket(bucket, "CopyObject")
        version = self._require(stored, key, None, "CopyObject")

        current = version.attrs
        effective = self._effective_attrs(stored, attrs)
        # The version keeps its own tags and lock state.
        effective.tags = dict(current.tags)
        effective.object_lock_mode = current.object_lock_mode
        effective.object_lock_retain_until_date = current.object_lock_retain_until_date
        effective.object_lock_legal_hold_status = current.object_lock_legal_hold_status
        version.attrs = effective
        if attrs.acl is not None:
            version.grants = parse_canned_acl(attrs.acl, stored.owner_id)
        if effective.server_side_encryption != current.server_side_encryption:
            version.etag = self._etag(version.data, effective.server_side_encryption)
        version.last_modified = self._clock()
        return WriteResult(etag=version.etag, version_id=self._version_id(version))

    async def delete(
        self,
        bucket: ContainerRef,
        key: str,
        version_id: str | None = None,
        bypass_governance: bool = False,
    ) -> None:
        stored = self._bucket(bucket, "DeleteObject")
        versions = stored.objects.get(key, [])

        if version_id is None:
            if stored.versioning:
                marker = _StoredVersion(
                    version_id=uuid.uuid4().hex,
                    is_delete_marker=True,
                    last_modified=self._clock(),
                )
                self._insert(stored, key, marker)
            else:
                stored.objects[key] = [v for v in versions if v.version_id != NULL_VERSION]
            return

        version = self._find(stored, key, version_id)
        if version is None:
            return
        if not version.is_delete_marker:
            attrs = version.attrs
            if attrs.object_lock_legal_hold_status == LEGAL_HOLD_ON:
                raise _denied("DeleteObject", "Object is under legal hold")
            if self._retention_active(attrs):
                if attrs.object_lock_mode != LOCK_MODE_GOVERNANCE or not bypass_governance:
                    raise _denied("DeleteObject", "Object is WORM protected and cannot be overwritten")
        versions.remove(version)
        if not versions:
            del stored.objects[key]

    async def list_versions(self, bucket: ContainerRef, key: str) -> list[ObjectVersion]:
        stored = self._bucket(bucket, "ListObjectVersions")
        return [
            ObjectVersion(
                version_id=v.version_id,
                is_delete_marker=v.is_delete_marker,
                is_latest=index == 0,
            )
            for index, v in enumerate(stored.objects.get(key, []))
        ]

    async def get_tags(
        self, bucket: ContainerRef, key: str, version_id: str | None = None
    ) -> dict[str, str]:
        stored = self._bucket(bucket, "GetObjectTagging")
        return dict(self._require(stored, key, version_id, "GetObjectTagging").attrs.tags)

    async def put_tags(
        self,
        bucket: ContainerRef,
        key: str,
        tags: dict[str, str],
        version_id: str | None = None,
    ) -> None:
        stored = self._bucket(bucket, "PutObjectTagging")
        version = self._require(stored, key, version_id, "PutObjectTagging")
        version.attrs.tags = dict(tags)

    async def get_acl(self, bucket: ContainerRef, key: str) -> list[str]:
        stored = self._bucket(bucket, "GetObjectAcl")
        return grant_permissions(self._require(stored, key, None, "GetObjectAcl").grants)

    async def put_acl(self, bucket: ContainerRef, key: str, acl: str) -> None:
        stored = self._bucket(bucket, "PutObjectAcl")
        version = self._require(stored, key, None, "PutObjectAcl")
        try:
            version.grants = parse_canned_acl(acl, stored.owner_id)
        except ValueError as e:
            raise _denied("PutObjectAcl", str(e), "InvalidArgument") from e
        version.attrs.acl = acl

    async def put_legal_hold(
        self, bucket: ContainerRef, key: str, status: str, version_id: str | None = None
    ) -> None:
        stored = self._bucket(bucket, "PutObjectLegalHold")
        version = self._require(stored, key, version_id, "PutObjectLegalHold")
        requested = ObjectAttributes(object_lock_legal_hold_status=status)
        self._check_lock_supported(stored, requested, "PutObjectLegalHold")
        version.attrs.object_lock_legal_hold_status = status

    async def put_retention(
        self,
        bucket: ContainerRef,
        key: str,
        mode: str | None,
        retain_until: datetime | None,
        version_id: str | None = None,
        bypass_governance: bool = False,
    ) -> None:
        stored = self._bucket(bucket, "PutObjectRetention")
        version = self._require(stored, key, version_id, "PutObjectRetention")
        if not stored.object_lock:
            raise _denied(
                "PutObjectRetention",
                f"Bucket is missing Object Lock Configuration: {stored.name}",
                "InvalidRequest",
            )
        self._check_retention_change(
            version.attrs, mode, retain_until, bypass_governance, "PutObjectRetention"
        )
        version.attrs.object_lock_mode = mode
        version.attrs.object_lock_retain_until_date = retain_until if mode else None
