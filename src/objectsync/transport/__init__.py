"""Storage transports for objectsync."""

from typing import TYPE_CHECKING

from objectsync.transport.base import StorageTransport

if TYPE_CHECKING:
    from objectsync.config import TransportConfig

__all__ = [
    "create_transport",
    "StorageTransport",
]


def create_transport(config: "TransportConfig") -> StorageTransport:
    """Create a storage transport instance based on configuration.

    Args:
        config: The transport configuration.

    Returns:
        A transport instance implementing the StorageTransport protocol.

    Raises:
        ValueError: If the backend is unknown.
    """
    backend = config.backend

    if backend == "memory":
        from objectsync.transport.memory import MemoryTransport

        return MemoryTransport(auto_create_buckets=True)

    elif backend == "aws":
        from objectsync.transport.aws import AWSTransport

        aws = config.aws
        return AWSTransport(
            region=aws.region,
            endpoint_url=aws.endpoint_url,
            use_path_style=aws.use_path_style,
            access_key_id=aws.access_key_id,
            secret_access_key=aws.secret_access_key,
            connect_timeout=aws.connect_timeout,
            read_timeout=aws.read_timeout,
            max_attempts=aws.max_attempts,
        )

    else:
        raise ValueError(f"Unknown transport backend: {backend}")
