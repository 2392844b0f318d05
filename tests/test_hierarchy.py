"""Tests for sheet hierarchy resolution."""

from __future__ import annotations

import asyncio

import pytest

from kicad_viewer.document.binder import LoadResult
from kicad_viewer.models.errors import NotFoundError, UnresolvedSheetError
from kicad_viewer.providers.local import MemoryFileSystem
from kicad_viewer.viewer.hierarchy import (
    ROOT_PATH,
    HierarchyResolver,
    SheetCache,
    instance_path,
)


class CountingFetch:
    """Fetch callback that counts requests per file and yields to the loop."""

    def __init__(self, fs: MemoryFileSystem):
        self.fs = fs
        self.calls: dict[str, int] = {}

    async def __call__(self, name: str) -> bytes:
        self.calls[name] = self.calls.get(name, 0) + 1
        await asyncio.sleep(0)
        return await self.fs.get(name)


@pytest.fixture
def fetch(memory_fs: MemoryFileSystem) -> CountingFetch:
    return CountingFetch(memory_fs)


class TestInstancePath:
    def test_paths(self):
        assert instance_path(ROOT_PATH, "abc") == "/abc"
        assert instance_path("/abc", "def") == "/abc/def"
        assert instance_path("/abc/", "def") == "/abc/def"


class TestResolve:
    def test_shared_file_distinct_paths(self, schematic_result: LoadResult, fetch: CountingFetch):
        root = schematic_result.document
        resolver = HierarchyResolver(fetch)

        async def run():
            a = await resolver.resolve(root.resolve("sheet-a"))
            b = await resolver.resolve(root.resolve("sheet-b"))
            return a, b

        a, b = asyncio.run(run())
        assert a.instance_path == "/sheet-a"
        assert b.instance_path == "/sheet-b"
        assert a.parent_path == ROOT_PATH
        assert a.file == b.file == "child.kicad_sch"
        assert a.document == b.document
        assert a.document.title_block.title == "Child"
        assert fetch.calls == {"child.kicad_sch": 1}
        assert "child.kicad_sch" in resolver.cache

    def test_concurrent_requests_share_one_fetch(self, schematic_result: LoadResult, fetch: CountingFetch):
        root = schematic_result.document
        resolver = HierarchyResolver(fetch)

        async def run():
            return await asyncio.gather(
                resolver.resolve(root.resolve("sheet-a")),
                resolver.resolve(root.resolve("sheet-b")),
            )

        a, b = asyncio.run(run())
        assert fetch.calls == {"child.kicad_sch": 1}
        assert a.document is b.document
        assert (a.instance_path, b.instance_path) == ("/sheet-a", "/sheet-b")

    def test_nested_parent_path(self, schematic_result: LoadResult, fetch: CountingFetch):
        resolver = HierarchyResolver(fetch)
        sheet = schematic_result.document.resolve("sheet-a")
        resolved = asyncio.run(resolver.resolve(sheet, "/outer"))
        assert resolved.instance_path == "/outer/sheet-a"

    def test_missing_file(self, schematic_result: LoadResult, fetch: CountingFetch):
        resolver = HierarchyResolver(fetch)
        sheet = schematic_result.document.resolve("sheet-missing")
        with pytest.raises(UnresolvedSheetError) as exc_info:
            asyncio.run(resolver.resolve(sheet))
        assert exc_info.value.file == "missing.kicad_sch"
        assert exc_info.value.sheet_path == "/sheet-missing"
        assert isinstance(exc_info.value.__cause__, NotFoundError)

    def test_failures_are_not_cached(self, schematic_result: LoadResult, memory_fs: MemoryFileSystem):
        fetch = CountingFetch(memory_fs)
        resolver = HierarchyResolver(fetch)
        sheet = schematic_result.document.resolve("sheet-missing")
        with pytest.raises(UnresolvedSheetError):
            asyncio.run(resolver.resolve(sheet))
        memory_fs.add("missing.kicad_sch", "(kicad_sch (version 20231120))")
        resolved = asyncio.run(resolver.resolve(sheet))
        assert resolved.document.items == ()
        assert fetch.calls["missing.kicad_sch"] == 2

    def test_unparseable_file(self, schematic_result: LoadResult):
        fs = MemoryFileSystem({"child.kicad_sch": "(kicad_sch (wire"})
        resolver = HierarchyResolver(fs.get)
        with pytest.raises(UnresolvedSheetError) as exc_info:
            asyncio.run(resolver.resolve(schematic_result.document.resolve("sheet-a")))
        assert "cannot be parsed" in str(exc_info.value)

    def test_board_is_not_a_sheet(self, schematic_result: LoadResult, sample_board_path):
        fs = MemoryFileSystem({"child.kicad_sch": sample_board_path.read_bytes()})
        resolver = HierarchyResolver(fs.get)
        with pytest.raises(UnresolvedSheetError):
            asyncio.run(resolver.resolve(schematic_result.document.resolve("sheet-a")))

    def test_recursion_rejected(self, schematic_result: LoadResult, fetch: CountingFetch):
        resolver = HierarchyResolver(fetch)
        sheet = schematic_result.document.resolve("sheet-a")
        with pytest.raises(UnresolvedSheetError) as exc_info:
            asyncio.run(resolver.resolve(sheet, ancestors=("child.kicad_sch",)))
        assert "recursively" in str(exc_info.value)
        assert fetch.calls == {}

    def test_shared_cache(self, schematic_result: LoadResult, fetch: CountingFetch):
        cache = SheetCache()
        sheet = schematic_result.document.resolve("sheet-a")
        asyncio.run(HierarchyResolver(fetch, cache).resolve(sheet))
        asyncio.run(HierarchyResolver(fetch, cache).resolve(sheet))
        assert fetch.calls == {"child.kicad_sch": 1}
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestWalk:
    def test_walk(self, schematic_result: LoadResult, fetch: CountingFetch):
        resolver = HierarchyResolver(fetch)
        tree = asyncio.run(resolver.walk(schematic_result.document))

        assert tree.path == ROOT_PATH
        assert tree.name == "Sample Root"
        assert [child.path for child in tree.children] == [
            "/sheet-a", "/sheet-b", "/sheet-missing",
        ]
        a, b, missing = tree.children
        assert a.name == "Child A"
        assert a.document is b.document
        assert a.error is None
        assert missing.document is None
        assert "missing.kicad_sch" in missing.error
        assert tree.find("/sheet-b") is b
        assert len(list(tree.iter_nodes())) == 4
        assert fetch.calls["child.kicad_sch"] == 1

    def test_walk_self_including_sheet(self):
        fs = MemoryFileSystem({
            "loop.kicad_sch": (
                '(kicad_sch (version 20231120) '
                '(sheet (at 0 0) (size 10 10) (uuid "s1") '
                '(property "Sheetname" "Again") (property "Sheetfile" "loop.kicad_sch")))'
            ),
        })
        resolver = HierarchyResolver(fs.get)

        async def run():
            root = (await resolver.load_sheet("loop.kicad_sch", ROOT_PATH)).document
            return await resolver.walk(root)

        tree = asyncio.run(run())
        assert tree.file == "loop.kicad_sch"
        assert len(tree.children) == 1
        assert "recursively" in tree.children[0].error
