"""Tests for DatabaseDriver listing, filtering, pagination and counts."""

from __future__ import annotations

import pytest

from tablefs.fs.exceptions import FolderNotFoundError


@pytest.fixture
async def tree(driver):
    """
    /docs/
    /docs/a.txt
    /docs/b.pdf
    /docs/sub/
    /docs/sub/c.txt
    /docs/sub/deeper/
    /docs2/
    /docs2/x.txt
    """
    await driver.create_folder("docs/sub/deeper", recursive=True)
    await driver.create_folder("docs2")
    await driver.add_file_contents(b"a", "/docs/", "a.txt")
    await driver.add_file_contents(b"b", "/docs/", "b.pdf")
    await driver.add_file_contents(b"c", "/docs/sub/", "c.txt")
    await driver.add_file_contents(b"x", "/docs2/", "x.txt")
    return driver


class TestListing:
    async def test_direct_files(self, tree):
        assert sorted(await tree.get_files_in_folder("/docs/")) == ["/docs/a.txt", "/docs/b.pdf"]

    async def test_direct_folders(self, tree):
        assert await tree.get_folders_in_folder("/docs/") == ["/docs/sub/"]

    async def test_direct_entries(self, tree):
        assert sorted(await tree.get_entries_in_folder("/docs/")) == [
            "/docs/a.txt",
            "/docs/b.pdf",
            "/docs/sub/",
        ]

    async def test_recursive_files(self, tree):
        assert await tree.get_files_in_folder("/docs/", recursive=True, sort=True) == [
            "/docs/a.txt",
            "/docs/b.pdf",
            "/docs/sub/c.txt",
        ]

    async def test_recursive_folders(self, tree):
        assert await tree.get_folders_in_folder("/docs/", recursive=True, sort=True) == [
            "/docs/sub/",
            "/docs/sub/deeper/",
        ]

    async def test_sibling_prefix_excluded(self, tree):
        files = await tree.get_files_in_folder("/", recursive=True)
        assert "/docs2/x.txt" in files
        assert all(not f.startswith("/docs2/") for f in await tree.get_files_in_folder("/docs/", recursive=True))

    async def test_root(self, tree):
        assert await tree.get_folders_in_folder("/", sort=True) == ["/docs/", "/docs2/"]
        assert await tree.get_files_in_folder("/") == []

    async def test_folder_without_trailing_slash(self, tree):
        assert sorted(await tree.get_files_in_folder("/docs")) == ["/docs/a.txt", "/docs/b.pdf"]

    async def test_empty_folder(self, tree):
        assert await tree.get_entries_in_folder("/docs/sub/deeper/") == []

    async def test_missing_folder(self, tree):
        with pytest.raises(FolderNotFoundError):
            await tree.get_files_in_folder("/nope/")


class TestSorting:
    async def test_ascending(self, tree):
        assert await tree.get_entries_in_folder("/docs/", sort=True) == [
            "/docs/a.txt",
            "/docs/b.pdf",
            "/docs/sub/",
        ]

    async def test_descending(self, tree):
        assert await tree.get_entries_in_folder("/docs/", sort=True, sort_reverse=True) == [
            "/docs/sub/",
            "/docs/b.pdf",
            "/docs/a.txt",
        ]

    async def test_reverse_without_sort_is_ignored(self, tree):
        result = await tree.get_files_in_folder("/docs/", sort_reverse=True)
        assert sorted(result) == ["/docs/a.txt", "/docs/b.pdf"]

    async def test_window_follows_sort_order(self, tree):
        result = await tree.get_files_in_folder(
            "/", recursive=True, sort=True, sort_reverse=True, number_of_items=2
        )
        assert result == ["/docs2/x.txt", "/docs/sub/c.txt"]


class TestPagination:
    async def test_start(self, tree):
        assert await tree.get_entries_in_folder("/docs/", start=1, sort=True) == ["/docs/b.pdf", "/docs/sub/"]

    async def test_limit(self, tree):
        assert await tree.get_entries_in_folder("/docs/", number_of_items=2, sort=True) == [
            "/docs/a.txt",
            "/docs/b.pdf",
        ]

    async def test_window(self, tree):
        assert await tree.get_entries_in_folder("/docs/", start=1, number_of_items=1, sort=True) == [
            "/docs/b.pdf"
        ]

    async def test_start_past_end(self, tree):
        assert await tree.get_entries_in_folder("/docs/", start=10) == []

    async def test_window_applies_after_filtering(self, tree):
        only_txt = lambda name, identifier, parent: name.endswith(".txt")  # noqa: E731
        result = await tree.get_files_in_folder(
            "/docs/", recursive=True, name_filters=[only_txt], start=1, number_of_items=5, sort=True
        )
        assert result == ["/docs/sub/c.txt"]


class TestNameFilters:
    async def test_veto(self, tree):
        no_pdf = lambda name, identifier, parent: not name.endswith(".pdf")  # noqa: E731
        assert await tree.get_files_in_folder("/docs/", name_filters=[no_pdf]) == ["/docs/a.txt"]

    async def test_all_filters_must_pass(self, tree):
        txt = lambda name, identifier, parent: name.endswith(".txt")  # noqa: E731
        top = lambda name, identifier, parent: parent == "/docs/"  # noqa: E731
        result = await tree.get_files_in_folder("/docs/", recursive=True, name_filters=[txt, top])
        assert result == ["/docs/a.txt"]

    async def test_filter_arguments(self, tree):
        seen: list[tuple[str, str, str]] = []

        def record(name: str, identifier: str, parent: str) -> bool:
            seen.append((name, identifier, parent))
            return True

        await tree.get_folders_in_folder("/docs/", name_filters=[record])
        assert seen == [("sub", "/docs/sub/", "/docs/")]


class TestCounts:
    async def test_count_files(self, tree):
        assert await tree.count_files_in_folder("/docs/") == 2
        assert await tree.count_files_in_folder("/docs/", recursive=True) == 3

    async def test_count_folders(self, tree):
        assert await tree.count_folders_in_folder("/docs/") == 1
        assert await tree.count_folders_in_folder("/", recursive=True) == 4

    async def test_count_with_filter(self, tree):
        no_pdf = lambda name, identifier, parent: not name.endswith(".pdf")  # noqa: E731
        assert await tree.count_files_in_folder("/docs/", name_filters=[no_pdf]) == 1
