"""Tests for content fingerprint resolution."""

import base64
import hashlib

import pytest

from objectsync.errors import ContentEncodingError, ContentSourceError
from objectsync.fingerprint import EMPTY_CONTENT_HASH, hash_file, resolve_content
from objectsync.models import Base64Content, NoContent, RawContent, SourcePath


class TestResolveContent:
    """Tests for resolve_content()."""

    def test_no_content_is_empty(self):
        resolved = resolve_content(NoContent())
        assert resolved.content_hash == "d41d8cd98f00b204e9800998ecf8427e"
        assert resolved.content_hash == EMPTY_CONTENT_HASH
        assert resolved.size == 0
        assert resolved.read() == b""

    def test_raw_content_hash(self):
        """The content hash is the lowercase hex MD5 of the body."""
        resolved = resolve_content(RawContent(b"some_bucket_content"))
        assert resolved.content_hash == hashlib.md5(b"some_bucket_content").hexdigest()
        assert resolved.read() == b"some_bucket_content"

    def test_known_hashes(self):
        assert (
            resolve_content(RawContent(b"{anything will do }")).content_hash
            == "7b006ff4d70f68cc65061acf2f802e6f"
        )
        assert (
            resolve_content(RawContent(b"initial object state")).content_hash
            == "647d1d58e1011c743ec67d5e8af87b53"
        )

    def test_base64_decoded(self):
        encoded = base64.b64encode(b"binary\x00data").decode()
        resolved = resolve_content(Base64Content(encoded))
        assert resolved.read() == b"binary\x00data"
        assert resolved.content_hash == hashlib.md5(b"binary\x00data").hexdigest()

    def test_invalid_base64(self):
        with pytest.raises(ContentEncodingError):
            resolve_content(Base64Content("not base64!!"))

    def test_encoding_error_is_content_source_error(self):
        with pytest.raises(ContentSourceError):
            resolve_content(Base64Content("%%%"))

    def test_source_file(self, tmp_path):
        path = tmp_path / "body.txt"
        path.write_bytes(b"modified object")
        resolved = resolve_content(SourcePath(path))
        assert resolved.content_hash == "1c7fd13df1515c2a13ad9eb068931f09"
        assert resolved.size == len(b"modified object")
        assert resolved.read() == b"modified object"

    def test_source_file_streamed_in_chunks(self, tmp_path):
        """Files larger than one chunk are hashed and read in full."""
        data = bytes(range(256)) * 1024  # 256 KB
        path = tmp_path / "large.bin"
        path.write_bytes(data)
        resolved = resolve_content(SourcePath(path))
        assert resolved.content_hash == hashlib.md5(data).hexdigest()
        chunks = list(resolved.chunks())
        assert len(chunks) == 4
        assert b"".join(chunks) == data

    def test_source_file_reopened_lazily(self, tmp_path):
        """The body is read from disk each time it is opened."""
        path = tmp_path / "body.txt"
        path.write_bytes(b"lane 8")
        resolved = resolve_content(SourcePath(path))
        assert resolved.read() == b"lane 8"
        assert resolved.read() == b"lane 8"

    def test_missing_source_file(self, tmp_path):
        with pytest.raises(ContentSourceError) as exc_info:
            resolve_content(SourcePath(tmp_path / "missing.txt"))
        assert exc_info.value.code == "ContentSourceError"

    def test_source_removed_after_resolve(self, tmp_path):
        path = tmp_path / "body.txt"
        path.write_bytes(b"chicane")
        resolved = resolve_content(SourcePath(path))
        path.unlink()
        with pytest.raises(ContentSourceError):
            resolved.read()


class TestHashFile:
    """Tests for hash_file()."""

    def test_hash_file(self, tmp_path):
        path = tmp_path / "source"
        path.write_bytes(b"Ebben!")
        assert hash_file(path) == "7c7e02a79f28968882bb1426c8f8bfc6"

    def test_hash_missing_file(self, tmp_path):
        with pytest.raises(ContentSourceError):
            hash_file(tmp_path / "missing")
