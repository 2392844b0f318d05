"""Schematic sheet hierarchy resolution.

A sheet file can be placed many times; each placement is told apart by its
instance path, the slash-joined uuids of the sheets leading to it (``/``
for the root). Sub-sheet files are fetched through a host supplied
callback and parsed once per root load, whatever the number of
placements.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from kicad_viewer.document.binder import load_document
from kicad_viewer.document.schematic import Schematic, SheetInstance
from kicad_viewer.geometry.bounds import DocumentGeometry
from kicad_viewer.logging_config import get_logger
from kicad_viewer.models.errors import (
    ProviderError,
    SchemaError,
    SExprError,
    UnresolvedSheetError,
)
from kicad_viewer.models.types import Diagnostic

logger = get_logger("viewer.hierarchy")

Fetch = Callable[[str], Awaitable[bytes]]

ROOT_PATH = "/"


def instance_path(parent_path: str, uuid: str) -> str:
    """Instance path of a sheet with ``uuid`` placed on the sheet at ``parent_path``."""
    return f"{parent_path.rstrip('/')}/{uuid}"


class LoadedSheet(BaseModel):
    """A parsed sub-sheet file, shared by all of its placements."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    file: str
    document: Schematic
    geometry: DocumentGeometry
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class ResolvedSheet(BaseModel):
    """One placement of a sheet file, with its document."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    file: str
    parent_path: str
    uuid: str
    instance_path: str
    document: Schematic
    geometry: DocumentGeometry
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class HierarchyNode(BaseModel):
    """A node of the resolved design tree."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    path: str
    file: str = ""
    name: str = ""
    sheet: Optional[SheetInstance] = None
    document: Optional[Schematic] = None
    error: Optional[str] = None
    children: list["HierarchyNode"] = Field(default_factory=list)

    def iter_nodes(self):
        """This node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def find(self, path: str) -> Optional["HierarchyNode"]:
        for node in self.iter_nodes():
            if node.path == path:
                return node
        return None


class SheetCache:
    """Parsed sub-sheets by file name, for the lifetime of one root load."""

    def __init__(self):
        self._sheets: dict[str, LoadedSheet] = {}

    def __contains__(self, file: str) -> bool:
        return file in self._sheets

    def __len__(self) -> int:
        return len(self._sheets)

    def get(self, file: str) -> Optional[LoadedSheet]:
        return self._sheets.get(file)

    def put(self, sheet: LoadedSheet) -> None:
        self._sheets[sheet.file] = sheet

    def clear(self) -> None:
        self._sheets.clear()


class HierarchyResolver:
    """Resolve sheet instances to sub-documents through ``fetch``.

    ``fetch(name)`` returns the file's bytes and raises
    :class:`~kicad_viewer.models.errors.NotFoundError` when it is missing.
    Concurrent requests for the same file share one fetch.
    """

    def __init__(self, fetch: Fetch, cache: Optional[SheetCache] = None):
        self.fetch = fetch
        self.cache = cache if cache is not None else SheetCache()
        self._pending: dict[str, asyncio.Task] = {}

    async def load_sheet(self, file: str, sheet_path: str) -> LoadedSheet:
        """Fetch and parse ``file`` once; ``sheet_path`` is used for error reports.

        Raises:
            UnresolvedSheetError: If the file cannot be fetched or is not a
                well-formed schematic.
        """
        cached = self.cache.get(file)
        if cached is not None:
            return cached

        task = self._pending.get(file)
        if task is None:
            task = asyncio.ensure_future(self._load(file))
            self._pending[file] = task
            task.add_done_callback(lambda _: self._pending.pop(file, None))

        try:
            return await asyncio.shield(task)
        except ProviderError as e:
            raise UnresolvedSheetError(file, sheet_path, f"cannot be fetched: {e}") from e
        except (SExprError, SchemaError) as e:
            raise UnresolvedSheetError(file, sheet_path, f"cannot be parsed: {e}") from e

    async def _load(self, file: str) -> LoadedSheet:
        logger.debug("Fetching sheet file %s", file)
        data = await self.fetch(file)
        result = load_document(data, file)
        if not isinstance(result.document, Schematic):
            raise SchemaError(None, f"{file} is a {result.document.kind}, not a schematic")
        sheet = LoadedSheet(
            file=file,
            document=result.document,
            geometry=DocumentGeometry(result.document),
            diagnostics=result.diagnostics,
        )
        self.cache.put(sheet)
        logger.info("Loaded sheet file %s (%d items)", file, len(result.document.items))
        return sheet

    async def resolve(
        self,
        sheet: SheetInstance,
        parent_path: str = ROOT_PATH,
        ancestors: tuple[str, ...] = (),
    ) -> ResolvedSheet:
        """Resolve one placement of a sheet.

        ``ancestors`` are the files on the path from the root; a sheet that
        includes one of them would recurse forever and is rejected.

        Raises:
            UnresolvedSheetError: On fetch or parse failure, or recursion.
        """
        path = instance_path(parent_path, sheet.uuid)
        if sheet.file in ancestors:
            raise UnresolvedSheetError(sheet.file, path, "includes itself recursively")
        loaded = await self.load_sheet(sheet.file, path)
        return ResolvedSheet(
            file=sheet.file,
            parent_path=parent_path,
            uuid=sheet.uuid,
            instance_path=path,
            document=loaded.document,
            geometry=loaded.geometry,
            diagnostics=loaded.diagnostics,
        )

    async def walk(self, root: Schematic, path: str = ROOT_PATH) -> HierarchyNode:
        """Resolve the whole design below ``root``.

        Unresolvable sheets become leaf nodes carrying the error instead of
        failing the walk.
        """
        ancestors = (root.filename,) if root.filename else ()
        children = await self._walk_children(root, path, ancestors)
        return HierarchyNode(
            path=path,
            file=root.filename or "",
            name=root.title_block.title,
            document=root,
            children=children,
        )

    async def _walk_children(
        self, document: Schematic, path: str, ancestors: tuple[str, ...],
    ) -> list[HierarchyNode]:
        async def visit(sheet: SheetInstance) -> HierarchyNode:
            try:
                resolved = await self.resolve(sheet, path, ancestors)
            except UnresolvedSheetError as e:
                logger.warning("%s", e)
                return HierarchyNode(
                    path=instance_path(path, sheet.uuid),
                    file=sheet.file,
                    name=sheet.name,
                    sheet=sheet,
                    error=str(e),
                )
            children = await self._walk_children(
                resolved.document, resolved.instance_path, ancestors + (sheet.file,),
            )
            return HierarchyNode(
                path=resolved.instance_path,
                file=sheet.file,
                name=sheet.name,
                sheet=sheet,
                document=resolved.document,
                children=children,
            )

        return list(await asyncio.gather(*(visit(s) for s in document.sheets)))
