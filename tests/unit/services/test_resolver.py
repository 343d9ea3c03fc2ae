"""Unit tests for the file resolver."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from app.services.resolver import (
    FileResolver,
    LocalDirectoryLookup,
    LookupStatus,
    RemoteLookup,
    ResolveOutcome,
    normalize_path,
)
from app.services.storage import LocalBackend, StorageService


def client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "GetObject")


class TestNormalizePath:
    """Tests for normalize_path."""

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("report.pdf", "report.pdf"),
            ("uploads/report.pdf", "report.pdf"),
            (["uploads", "report.pdf"], "report.pdf"),
            ("uploads", "uploads"),
        ],
    )
    def test_normalizes(self, path, expected):
        assert normalize_path(path) == expected

    @pytest.mark.parametrize("path", ["", "../secret", "uploads/../x", "a//b", "./x", "x/."])
    def test_rejects_dot_and_empty_segments(self, path):
        assert normalize_path(path) is None


class TestLookups:
    """Individual lookup strategies."""

    @pytest.mark.asyncio
    async def test_local_lookup_found_and_missing(self, tmp_path):
        (tmp_path / "a.pdf").write_bytes(b"a")
        lookup = LocalDirectoryLookup(LocalBackend(tmp_path, name="primary"))

        assert (await lookup.lookup("a.pdf")).status == LookupStatus.FOUND
        assert (await lookup.lookup("b.pdf")).status == LookupStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_local_lookup_error(self, tmp_path):
        backend = LocalBackend(tmp_path)
        with patch.object(backend, "read", side_effect=PermissionError("denied")):
            result = await LocalDirectoryLookup(backend).lookup("a.pdf")

        assert result.status == LookupStatus.ERROR
        assert "denied" in result.error

    @pytest.mark.asyncio
    async def test_remote_lookup_not_configured(self):
        result = await RemoteLookup(StorageService(), timeout=1).lookup("a.pdf")
        assert result.status == LookupStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_remote_lookup_missing_object(self, remote_settings):
        client = MagicMock()
        client.get_object.side_effect = client_error("NoSuchKey")
        storage = StorageService(remote_settings, s3_client=client)

        result = await RemoteLookup(storage, timeout=1).lookup("a.pdf")
        assert result.status == LookupStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_remote_lookup_timeout(self, remote_settings):
        storage = StorageService(remote_settings, s3_client=MagicMock())

        async def slow_read(key):
            await asyncio.sleep(5)

        with patch.object(storage.remote_backend(), "read", side_effect=slow_read):
            result = await RemoteLookup(storage, timeout=0.05).lookup("a.pdf")

        assert result.status == LookupStatus.ERROR
        assert "timed out" in result.error


class TestFileResolver:
    """End-to-end resolution through the lookup chain."""

    @pytest.mark.asyncio
    async def test_serves_from_primary(self, write_blob):
        write_blob("script.pdf", b"%PDF")
        result = await FileResolver(StorageService()).resolve("script.pdf")

        assert result.outcome == ResolveOutcome.FOUND
        assert result.data == b"%PDF"
        assert result.content_type == "application/pdf"
        assert result.source == "primary"

    @pytest.mark.asyncio
    async def test_legacy_prefix_resolves_same_blob(self, write_blob):
        write_blob("report.pdf", b"report")
        resolver = FileResolver(StorageService())

        prefixed = await resolver.resolve("uploads/report.pdf")
        plain = await resolver.resolve("report.pdf")

        assert prefixed.found and plain.found
        assert prefixed.data == plain.data == b"report"

    @pytest.mark.asyncio
    async def test_falls_back_to_legacy_directory(self, write_blob):
        write_blob("old.png", b"png", legacy=True)
        result = await FileResolver(StorageService()).resolve("old.png")

        assert result.found
        assert result.source == "legacy"
        assert result.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_unknown_extension_is_octet_stream(self, write_blob):
        write_blob("blob.zzz", b"?")
        result = await FileResolver(StorageService()).resolve("blob.zzz")
        assert result.content_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_not_found(self):
        result = await FileResolver(StorageService()).resolve("missing.pdf")

        assert result.outcome == ResolveOutcome.NOT_FOUND
        assert result.detail
        assert result.data is None

    @pytest.mark.asyncio
    async def test_traversal_is_not_found(self, upload_dirs):
        (upload_dirs[0].parent / "secret.txt").write_text("secret")
        result = await FileResolver(StorageService()).resolve("../secret.txt")
        assert result.outcome == ResolveOutcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_prefers_remote_with_reported_type(self, remote_settings, write_blob):
        write_blob("cover.png", b"local")
        client = MagicMock()
        body = MagicMock()
        body.read.return_value = b"remote"
        client.get_object.return_value = {"Body": body, "ContentType": "image/webp"}

        result = await FileResolver(StorageService(remote_settings, s3_client=client)).resolve("cover.png")

        assert result.data == b"remote"
        assert result.content_type == "image/webp"
        assert result.source == "remote"

    @pytest.mark.asyncio
    async def test_remote_failure_falls_through_to_local(self, remote_settings, write_blob):
        write_blob("cover.png", b"local")
        client = MagicMock()
        client.get_object.side_effect = client_error("AccessDenied")

        result = await FileResolver(StorageService(remote_settings, s3_client=client)).resolve("cover.png")

        assert result.found
        assert result.data == b"local"

    @pytest.mark.asyncio
    async def test_remote_failure_and_no_local_is_not_found(self, remote_settings):
        client = MagicMock()
        client.get_object.side_effect = client_error("AccessDenied")

        result = await FileResolver(StorageService(remote_settings, s3_client=client)).resolve("gone.png")

        assert result.outcome == ResolveOutcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_local_read_error_is_error(self):
        storage = StorageService()
        with patch.object(LocalBackend, "read", side_effect=PermissionError("denied")):
            result = await FileResolver(storage).resolve("locked.pdf")

        assert result.outcome == ResolveOutcome.ERROR
        assert result.detail

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_error(self):
        storage = StorageService()
        with patch.object(StorageService, "local_backends", side_effect=RuntimeError("boom")):
            result = await FileResolver(storage).resolve("any.pdf")

        assert result.outcome == ResolveOutcome.ERROR
