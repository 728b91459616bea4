"""Content fingerprint resolution for objectsync.

Turns the tagged content variant of a desired state into a body and its
canonical content hash (lowercase hex MD5, which is also what the remote
store reports as the ETag of a plain single-part write). Source files are
hashed in fixed-size chunks and re-opened lazily when the body is needed.
"""

import base64
import binascii
import hashlib
import io
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from objectsync.errors import ContentEncodingError, ContentSourceError
from objectsync.models import Base64Content, Content, NoContent, RawContent, SourcePath

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

EMPTY_CONTENT_HASH = hashlib.md5(b"").hexdigest()


@dataclass(frozen=True)
class ResolvedContent:
    """A resolved content source.

    Attributes:
        content_hash: Lowercase hex MD5 of the body.
        size: Body length in bytes.
        source: Description of where the body comes from, for messages.
    """

    content_hash: str
    size: int
    source: str
    _opener: Callable[[], BinaryIO]

    def open(self) -> BinaryIO:
        """Open the body for reading.

        Raises:
            ContentSourceError: If a source file can no longer be read.
        """
        try:
            return self._opener()
        except OSError as e:
            raise ContentSourceError(f"cannot read {self.source}: {e}", source=self.source) from e

    def chunks(self) -> Iterator[bytes]:
        """Yield the body in 64 KB chunks."""
        with self.open() as fh:
            while True:
                chunk = fh.read(_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    def read(self) -> bytes:
        """Return the whole body."""
        return b"".join(self.chunks())


def _in_memory(data: bytes, source: str) -> ResolvedContent:
    return ResolvedContent(
        content_hash=hashlib.md5(data).hexdigest(),
        size=len(data),
        source=source,
        _opener=lambda: io.BytesIO(data),
    )


def _hash_file(path: Path) -> tuple[str, int]:
    md5 = hashlib.md5()
    size = 0
    with open(path, "rb") as fh:
        while True:
            chunk = fh.read(_CHUNK_SIZE)
            if not chunk:
                break
            md5.update(chunk)
            size += len(chunk)
    return md5.hexdigest(), size


def hash_file(path: Path | str) -> str:
    """Return the lowercase hex MD5 of a file, e.g. to compute a source_hash.

    Raises:
        ContentSourceError: If the file cannot be read.
    """
    try:
        return _hash_file(Path(path))[0]
    except OSError as e:
        raise ContentSourceError(f"cannot read source file {path}: {e}", source=str(path)) from e


def resolve_content(content: Content) -> ResolvedContent:
    """Resolve a content variant into a body and content hash.

    Args:
        content: The desired content source.

    Returns:
        The resolved content.

    Raises:
        ContentSourceError: If a source file cannot be read.
        ContentEncodingError: If base64 content cannot be decoded.
    """
    if isinstance(content, NoContent):
        return _in_memory(b"", "empty content")

    if isinstance(content, RawContent):
        return _in_memory(content.data, "content")

    if isinstance(content, Base64Content):
        try:
            data = base64.b64decode(content.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ContentEncodingError(f"content_base64 is not valid base64: {e}") from e
        return _in_memory(data, "content_base64")

    if isinstance(content, SourcePath):
        path = content.path
        try:
            content_hash, size = _hash_file(path)
        except OSError as e:
            raise ContentSourceError(
                f"cannot read source file {path}: {e}", source=str(path)
            ) from e
        logger.debug("Hashed source file %s (%d bytes): %s", path, size, content_hash)
        return ResolvedContent(
            content_hash=content_hash,
            size=size,
            source=f"source file {path}",
            _opener=lambda: open(path, "rb"),
        )

    raise TypeError(f"unsupported content source: {content!r}")
