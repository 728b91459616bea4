"""Storage transport protocol for objectsync."""

from datetime import datetime
from typing import Protocol

from objectsync.models import (
    ContainerRef,
    ObjectAttributes,
    ObjectVersion,
    ObservedState,
    WriteResult,
)


class StorageTransport(Protocol):
    """Protocol defining the remote object store interface.

    All transports (in-memory, AWS S3) implement this interface. The
    container reference is resolved here and nowhere else. Every remote
    failure is raised as ``TransportError``.

    Attributes:
        supports_governance_bypass: Whether deletes and retention updates
            can bypass GOVERNANCE-mode retention.
    """

    supports_governance_bypass: bool

    async def init(self) -> None:
        """Initialize the transport (connect, create clients, etc.)."""
        ...

    async def close(self) -> None:
        """Release resources held by the transport."""
        ...

    async def head(
        self, bucket: ContainerRef, key: str, version_id: str | None = None
    ) -> ObservedState | None:
        """Read an object's attributes without its body or tags.

        Args:
            bucket: The container reference.
            key: The object key.
            version_id: A specific version, or None for the current one.

        Returns:
            The observed state, or None if the object (version) does not exist.
        """
        ...

    async def put(
        self, bucket: ContainerRef, key: str, body: bytes, attrs: ObjectAttributes
    ) -> WriteResult:
        """Write a full object, setting every attribute in the same call.

        Returns:
            The acknowledged ETag and version id (None when unversioned).
        """
        ...

    async def update_metadata(
        self, bucket: ContainerRef, key: str, attrs: ObjectAttributes
    ) -> WriteResult:
        """Replace an object's metadata and headers without sending its body.

        The transport decides how: in place where the store allows it, or by
        a server-side copy onto the same key.

        Returns:
            The ETag and version id of the resulting current version.
        """
        ...

    async def delete(
        self,
        bucket: ContainerRef,
        key: str,
        version_id: str | None = None,
        bypass_governance: bool = False,
    ) -> None:
        """Delete an object version, or the key mapping when version_id is None.

        On a versioned bucket a delete without version id creates a delete
        marker and leaves every version intact.
        """
        ...

    async def list_versions(self, bucket: ContainerRef, key: str) -> list[ObjectVersion]:
        """List all versions and delete markers of exactly this key, newest first."""
        ...

    async def get_tags(
        self, bucket: ContainerRef, key: str, version_id: str | None = None
    ) -> dict[str, str]:
        """Return the object's tag set."""
        ...

    async def put_tags(
        self,
        bucket: ContainerRef,
        key: str,
        tags: dict[str, str],
        version_id: str | None = None,
    ) -> None:
        """Replace the object's tag set (an empty dict removes all tags)."""
        ...

    async def get_acl(self, bucket: ContainerRef, key: str) -> list[str]:
        """Return the sorted permission names granted on the object."""
        ...

    async def put_acl(self, bucket: ContainerRef, key: str, acl: str) -> None:
        """Apply a canned ACL to the current object version."""
        ...

    async def put_legal_hold(
        self, bucket: ContainerRef, key: str, status: str, version_id: str | None = None
    ) -> None:
        """Set the legal hold status (ON or OFF) of an object version."""
        ...

    async def put_retention(
        self,
        bucket: ContainerRef,
        key: str,
        mode: str | None,
        retain_until: datetime | None,
        version_id: str | None = None,
        bypass_governance: bool = False,
    ) -> None:
        """Set, extend, shorten, or clear (mode None) an object version's retention."""
        ...
