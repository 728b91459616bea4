"""AWS S3 storage transport for objectsync.

Maps every StorageTransport call onto the S3 API via aiobotocore. The
container reference is passed through as the ``Bucket`` parameter; botocore
resolves access point ARNs itself.

Credentials are resolved via the standard AWS credential chain
(env vars, ~/.aws/credentials, IAM role, etc.) unless given explicitly.
"""

import asyncio
import logging
import urllib.parse
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from aiobotocore.session import AioSession
from botocore.exceptions import BotoCoreError, ClientError

from objectsync.errors import TransportError
from objectsync.models import (
    DEFAULT_STORAGE_CLASS,
    ContainerRef,
    ObjectAttributes,
    ObjectVersion,
    ObservedState,
    WriteResult,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NoSuchVersion", "NotFound")

# ObjectAttributes field -> S3 request parameter
_HEADER_PARAMS = {
    "content_type": "ContentType",
    "content_language": "ContentLanguage",
    "content_encoding": "ContentEncoding",
    "content_disposition": "ContentDisposition",
    "cache_control": "CacheControl",
    "website_redirect": "WebsiteRedirectLocation",
    "storage_class": "StorageClass",
    "server_side_encryption": "ServerSideEncryption",
    "kms_key_id": "SSEKMSKeyId",
    "bucket_key_enabled": "BucketKeyEnabled",
    "acl": "ACL",
}


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise botocore failures and timeouts as a retryable TransportError."""
    try:
        yield
    except ClientError as e:
        code = _error_code(e)
        message = e.response.get("Error", {}).get("Message", "") or str(e)
        raise TransportError(
            f"{operation} failed: {code}: {message}", operation=operation, remote_code=code
        ) from e
    except BotoCoreError as e:
        raise TransportError(f"{operation} failed: {e}", operation=operation) from e
    except (TimeoutError, asyncio.TimeoutError) as e:
        raise TransportError(f"{operation} timed out", operation=operation) from e


def _strip_etag(etag: str | None) -> str:
    return (etag or "").strip('"')


def encode_tags(tags: dict[str, str]) -> str:
    """Encode a tag set as the URL query string used by the Tagging header."""
    return urllib.parse.urlencode(tags)


class AWSTransport:
    """Storage transport backed by a real S3 endpoint.

    Attributes:
        region: The AWS region.
        endpoint_url: Custom endpoint (S3-compatible stores), or "".
        supports_governance_bypass: True; S3 honors BypassGovernanceRetention.
    """

    supports_governance_bypass = True

    def __init__(
        self,
        region: str = "us-east-1",
        endpoint_url: str = "",
        use_path_style: bool = False,
        access_key_id: str = "",
        secret_access_key: str = "",
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        max_attempts: int = 5,
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url
        self.use_path_style = use_path_style
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_attempts = max_attempts
        self._session = AioSession()
        self._client = None
        self._client_ctx = None

    async def init(self) -> None:
        """Create the aiobotocore S3 client."""
        from botocore.config import Config as BotoConfig

        config_kwargs: dict[str, Any] = {
            "connect_timeout": self.connect_timeout,
            "read_timeout": self.read_timeout,
            "retries": {"max_attempts": self.max_attempts, "mode": "standard"},
        }
        if self.use_path_style:
            config_kwargs["s3"] = {"addressing_style": "path"}

        client_kwargs: dict[str, Any] = {
            "region_name": self.region,
            "config": BotoConfig(**config_kwargs),
        }
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url

        # Use explicit credentials if provided, otherwise fall back to chain
        if self.access_key_id and self.secret_access_key:
            session = AioSession()
            session.set_credentials(self.access_key_id, self.secret_access_key)
            self._session = session
        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()

        logger.info(
            "AWS transport initialized: region=%s endpoint='%s'",
            self.region,
            self.endpoint_url,
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        """Invoke an S3 operation, translating failures into TransportError."""
        method = getattr(self._client, operation)
        with _translate_errors(operation):
            return await method(**kwargs)

    def _write_params(self, attrs: ObjectAttributes) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for name, param in _HEADER_PARAMS.items():
            value = getattr(attrs, name)
            if value is not None:
                params[param] = value
        params["Metadata"] = dict(attrs.metadata)
        if attrs.object_lock_mode is not None:
            params["ObjectLockMode"] = attrs.object_lock_mode
            params["ObjectLockRetainUntilDate"] = attrs.object_lock_retain_until_date
        if attrs.object_lock_legal_hold_status is not None:
            params["ObjectLockLegalHoldStatus"] = attrs.object_lock_legal_hold_status
        return params

    async def head(
        self, bucket: ContainerRef, key: str, version_id: str | None = None
    ) -> ObservedState | None:
        kwargs: dict[str, Any] = {"Bucket": bucket.value, "Key": key}
        if version_id:
            kwargs["VersionId"] = version_id
        try:
            resp = await self._call("head_object", **kwargs)
        except TransportError as e:
            if e.remote_code in _NOT_FOUND_CODES:
                return None
            raise

        if resp.get("DeleteMarker"):
            return None

        return ObservedState(
            bucket=bucket.value,
            key=key,
            etag=_strip_etag(resp.get("ETag")),
            version_id=resp.get("VersionId") or None,
            content_length=resp.get("ContentLength", 0),
            content_type=resp.get("ContentType"),
            content_language=resp.get("ContentLanguage"),
            content_encoding=resp.get("ContentEncoding"),
            content_disposition=resp.get("ContentDisposition"),
            cache_control=resp.get("CacheControl"),
            website_redirect=resp.get("WebsiteRedirectLocation"),
            # The default storage class is omitted from responses.
            storage_class=resp.get("StorageClass") or DEFAULT_STORAGE_CLASS,
            server_side_encryption=resp.get("ServerSideEncryption"),
            kms_key_id=resp.get("SSEKMSKeyId"),
            bucket_key_enabled=bool(resp.get("BucketKeyEnabled", False)),
            metadata={k.lower(): v for k, v in resp.get("Metadata", {}).items()},
            object_lock_mode=resp.get("ObjectLockMode"),
            object_lock_retain_until_date=resp.get("ObjectLockRetainUntilDate"),
            object_lock_legal_hold_status=resp.get("ObjectLockLegalHoldStatus"),
        )

    async def put(
        self, bucket: ContainerRef, key: str, body: bytes, attrs: ObjectAttributes
    ) -> WriteResult:
        params = self._write_params(attrs)
        if attrs.tags:
            params["Tagging"] = encode_tags(attrs.tags)
        resp = await self._call("put_object", Bucket=bucket.value, Key=key, Body=body, **params)
        return WriteResult(etag=_strip_etag(resp.get("ETag")), version_id=resp.get("VersionId") or None)

    async def update_metadata(
        self, bucket: ContainerRef, key: str, attrs: ObjectAttributes
    ) -> WriteResult:
        """Replace metadata with a server-side copy onto the same key.

        On a versioned bucket the copy becomes a new version.
        """
        params = self._write_params(attrs)
        resp = await self._call(
            "copy_object",
            Bucket=bucket.value,
            Key=key,
            CopySource={"Bucket": bucket.value, "Key": key},
            MetadataDirective="REPLACE",
            TaggingDirective="COPY",
            **params,
        )
        result = resp.get("CopyObjectResult", {})
        return WriteResult(etag=_strip_etag(result.get("ETag")), version_id=resp.get("VersionId") or None)

    async def delete(
        self,
        bucket: ContainerRef,
        key: str,
        version_id: str | None = None,
        bypass_governance: bool = False,
    ) -> None:
        kwargs: dict[str, Any] = {"Bucket": bucket.value, "Key": key}
        if version_id:
            kwargs["VersionId"] = version_id
        if bypass_governance:
            kwargs["BypassGovernanceRetention"] = True
        await self._call("delete_object", **kwargs)

    async def list_versions(self, bucket: ContainerRef, key: str) -> list[ObjectVersion]:
        paginator = self._client.get_paginator("list_object_versions")
        entries: list[tuple[datetime | None, ObjectVersion]] = []
        with _translate_errors("list_object_versions"):
            async for page in paginator.paginate(Bucket=bucket.value, Prefix=key):
                for item in page.get("Versions", []):
                    if item.get("Key") != key:
                        continue
                    entries.append(
                        (
                            item.get("LastModified"),
                            ObjectVersion(
                                version_id=item["VersionId"],
                                is_latest=bool(item.get("IsLatest")),
                            ),
                        )
                    )
                for item in page.get("DeleteMarkers", []):
                    if item.get("Key") != key:
                        continue
                    entries.append(
                        (
                            item.get("LastModified"),
                            ObjectVersion(
                                version_id=item["VersionId"],
                                is_delete_marker=True,
                                is_latest=bool(item.get("IsLatest")),
                            ),
                        )
                    )

        # Newest first; the latest entry always leads.
        entries.sort(key=lambda e: (not e[1].is_latest, -(e[0].timestamp() if e[0] else 0)))
        return [version for _, version in entries]

    async def get_tags(
        self, bucket: ContainerRef, key: str, version_id: str | None = None
    ) -> dict[str, str]:
        kwargs: dict[str, Any] = {"Bucket": bucket.value, "Key": key}
        if version_id:
            kwargs["VersionId"] = version_id
        resp = await self._call("get_object_tagging", **kwargs)
        return {tag["Key"]: tag["Value"] for tag in resp.get("TagSet", [])}

    async def put_tags(
        self,
        bucket: ContainerRef,
        key: str,
        tags: dict[str, str],
        version_id: str | None = None,
    ) -> None:
        kwargs: dict[str, Any] = {"Bucket": bucket.value, "Key": key}
        if version_id:
            kwargs["VersionId"] = version_id
        if not tags:
            await self._call("delete_object_tagging", **kwargs)
            return
        await self._call(
            "put_object_tagging",
            Tagging={"TagSet": [{"Key": k, "Value": v} for k, v in tags.items()]},
            **kwargs,
        )

    async def get_acl(self, bucket: ContainerRef, key: str) -> list[str]:
        resp = await self._call("get_object_acl", Bucket=bucket.value, Key=key)
        return sorted(grant["Permission"] for grant in resp.get("Grants", []))

    async def put_acl(self, bucket: ContainerRef, key: str, acl: str) -> None:
        await self._call("put_object_acl", Bucket=bucket.value, Key=key, ACL=acl)

    async def put_legal_hold(
        self, bucket: ContainerRef, key: str, status: str, version_id: str | None = None
    ) -> None:
        kwargs: dict[str, Any] = {
            "Bucket": bucket.value,
            "Key": key,
            "LegalHold": {"Status": status},
        }
        if version_id:
            kwargs["VersionId"] = version_id
        await self._call("put_object_legal_hold", **kwargs)

    async def put_retention(
        self,
        bucket: ContainerRef,
        key: str,
        mode: str | None,
        retain_until: datetime | None,
        version_id: str | None = None,
        bypass_governance: bool = False,
    ) -> None:
        retention: dict[str, Any] = {}
        if mode is not None:
            retention = {"Mode": mode, "RetainUntilDate": retain_until}
        kwargs: dict[str, Any] = {"Bucket": bucket.value, "Key": key, "Retention": retention}
        if version_id:
            kwargs["VersionId"] = version_id
        if bypass_governance:
            kwargs["BypassGovernanceRetention"] = True
        await self._call("put_object_retention", **kwargs)
