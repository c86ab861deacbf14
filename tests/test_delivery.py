"""Tests for resolve_download — combined identifiers to bytes and headers."""

from __future__ import annotations

import pytest

from tablefs.fs.delivery import resolve_download


class TestResolveDownload:
    async def test_found(self, driver, session_factory, cache):
        await driver.create_folder("docs")
        await driver.add_file_contents(b"%PDF-1.4", "/docs/", "report.pdf")

        result = await resolve_download("1:/docs/report.pdf", session_factory, cache=cache)

        assert result.success is True
        assert result.status == 200
        assert result.content == b"%PDF-1.4"
        assert result.mime_type == "application/pdf"
        assert result.file_name == "report.pdf"
        assert result.headers == {
            "Content-Type": "application/pdf",
            "Content-Disposition": 'inline; filename="report.pdf"',
        }

    async def test_unknown_extension(self, driver, session_factory, cache):
        await driver.add_file_contents(b"\x00", "/", "blob.unknownext")
        result = await resolve_download("1:/blob.unknownext", session_factory, cache=cache)
        assert result.mime_type == "application/octet-stream"

    async def test_type_from_content(self, driver, session_factory, cache):
        await driver.add_file_contents(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16, "/", "scan")
        result = await resolve_download("1:/scan", session_factory, cache=cache)
        assert result.mime_type == "image/png"
        assert result.headers["Content-Type"] == "image/png"

    @pytest.mark.parametrize("combined", [None, "", "garbage", "x:/a.txt", "1:"])
    async def test_malformed(self, combined, session_factory, storages, cache):
        result = await resolve_download(combined, session_factory, cache=cache)
        assert result.success is False
        assert result.status == 404
        assert result.content is None

    async def test_missing_storage(self, session_factory, storages, cache):
        result = await resolve_download("42:/a.txt", session_factory, cache=cache)
        assert result.status == 404

    async def test_missing_file(self, driver, session_factory, cache):
        result = await resolve_download("1:/nope.txt", session_factory, cache=cache)
        assert result.status == 404

    async def test_folder_is_not_downloadable(self, driver, session_factory, cache):
        await driver.create_folder("docs")
        result = await resolve_download("1:/docs/", session_factory, cache=cache)
        assert result.status == 404

    async def test_url_round_trip(self, driver, session_factory, cache):
        from urllib.parse import parse_qs, urlsplit

        identifier = await driver.add_file_contents(b"x", "/", "a b.txt")
        url = driver.get_public_url(identifier)
        combined = parse_qs(urlsplit(url).query)["id"][0]

        result = await resolve_download(combined, session_factory, cache=cache)
        assert result.success is True
        assert result.file_name == "a b.txt"
