"""Viewer tools - 15 tools."""

from __future__ import annotations

import json
from typing import Optional

from fastmcp import FastMCP

from kicad_viewer.config import KiCadViewerConfig
from kicad_viewer.document.board import Board
from kicad_viewer.document.common import Item
from kicad_viewer.document.schematic import SheetInstance
from kicad_viewer.geometry.primitives import Point
from kicad_viewer.logging_config import get_logger
from kicad_viewer.models.errors import ValidationError, ViewerError
from kicad_viewer.models.types import (
    HierarchyInfo,
    SelectionResult,
    ViewerStatus,
    ViewportInfo,
)
from kicad_viewer.providers.gitlab import GitLabFileSystem
from kicad_viewer.providers.local import LocalFileSystem
from kicad_viewer.utils.summaries import (
    hierarchy_info,
    position,
    summarize_document,
    summarize_entity,
)
from kicad_viewer.utils.validation import validate_positive, validate_viewable_path
from kicad_viewer.viewer.viewer import SelectionEvent, SheetSelectEvent, Viewer

logger = get_logger("tools.viewer")


class ViewerSession:
    """One viewer plus the bookkeeping the tools need around it."""

    def __init__(self, config: Optional[KiCadViewerConfig] = None):
        self.config = config or KiCadViewerConfig()
        self.viewer = Viewer(self.config)
        self._last_sheet_select: Optional[SheetSelectEvent] = None
        self.viewer.add_listener(SheetSelectEvent, self._on_sheet_select)

    def _on_sheet_select(self, event: SheetSelectEvent) -> None:
        self._last_sheet_select = event

    async def open_path(self, path: str):
        p = validate_viewable_path(path)
        provider = LocalFileSystem.for_file(p)
        return self._loaded(await self.viewer.load(p.name, provider))

    async def open_gitlab(self, urls: list[str], name: str = ""):
        if not urls:
            raise ValidationError("At least one GitLab URL is required")
        provider = await GitLabFileSystem.from_urls(
            *urls,
            base_url=self.config.gitlab_base_url,
            timeout=self.config.fetch_timeout,
        )
        if not name:
            documents = provider.find_documents()
            if not documents:
                raise ValidationError("No schematic or board found at the given URLs")
            name = documents[0]
        return self._loaded(await self.viewer.load(name, provider))

    @staticmethod
    def _loaded(document):
        if document is None:
            raise ViewerError("Load was superseded by a newer request")
        return document

    def find_entity(self, uuid: str) -> Item:
        document = self.viewer.document
        if document is None:
            raise ViewerError("No document loaded")
        item = document.resolve(uuid)
        if item is None:
            raise ValidationError(f"No entity with uuid {uuid} on sheet {self.viewer.path}")
        return item

    def summarize(self, item: Optional[Item]):
        if item is None:
            return None
        level = self.viewer.level
        return summarize_entity(item, level.geometry, level.document)

    def selection_result(self, event: Optional[SelectionEvent]) -> SelectionResult:
        if event is None:
            return SelectionResult(selected=self.summarize(self.viewer.selected))
        sheet_path = None
        if event.reselected and isinstance(event.item, SheetInstance) and self._last_sheet_select:
            sheet_path = self._last_sheet_select.sheet_path
        return SelectionResult(
            selected=self.summarize(event.item),
            previous=self.summarize(event.previous),
            reselected=event.reselected,
            sheet_path=sheet_path,
        )

    def select(self, action) -> SelectionResult:
        self._last_sheet_select = None
        return self.selection_result(action())

    def viewport(self) -> ViewportInfo:
        v = self.viewer
        return ViewportInfo(
            scale=v.transform.scale,
            origin=position(v.transform.origin),
            width=v.width,
            height=v.height,
        )

    def status(self) -> ViewerStatus:
        v = self.viewer
        document = None
        if v.document is not None:
            document = summarize_document(v.document, v.level.geometry)
        return ViewerStatus(
            state=v.state.value,
            loaded=v.loaded,
            path=v.path,
            document=document,
            viewport=self.viewport(),
            selected=self.summarize(v.selected) if v.document is not None else None,
            diagnostics=len(v.diagnostics),
            error=str(v.error) if v.error else None,
        )

    async def hierarchy(self) -> HierarchyInfo:
        root = self.viewer.root_document
        if root is None:
            raise ViewerError("No document loaded")
        if isinstance(root, Board) or self.viewer.resolver is None:
            return HierarchyInfo(path="/", file=root.filename or "", name=root.title_block.title)
        node = await self.viewer.resolver.walk(root, self.viewer.levels[0].path)
        return hierarchy_info(node)


def _ok(**data) -> str:
    return json.dumps({"status": "success", **data}, indent=2)


def register_tools(mcp: FastMCP, session: ViewerSession) -> None:
    """Register viewer tools on the MCP server."""
    viewer = session.viewer

    @mcp.tool()
    async def open_document(path: str) -> str:
        """Open a KiCad schematic or board in the viewer.

        Sub-sheets are looked up next to the file.

        Args:
            path: Path to a .kicad_sch or .kicad_pcb file.

        Returns:
            JSON with document info and the number of load diagnostics.
        """
        document = await session.open_path(path)
        logger.info("Opened %s", path)
        return _ok(
            document=summarize_document(document, viewer.level.geometry).model_dump(),
            diagnostics=len(viewer.diagnostics),
        )

    @mcp.tool()
    async def open_gitlab(urls: list[str], name: str = "") -> str:
        """Open a document hosted on GitLab.

        Args:
            urls: GitLab links to files (.../-/blob/...) or directories (.../-/tree/...).
            name: File to open; defaults to the first schematic or board found.

        Returns:
            JSON with document info.
        """
        document = await session.open_gitlab(urls, name)
        return _ok(
            document=summarize_document(document, viewer.level.geometry).model_dump(),
            files=viewer.provider.list() if viewer.provider else [],
            diagnostics=len(viewer.diagnostics),
        )

    @mcp.tool()
    def get_document_info() -> str:
        """Get the viewer state, current sheet, viewport and selection.

        Returns:
            JSON with the viewer status.
        """
        return _ok(viewer=session.status().model_dump())

    @mcp.tool()
    def list_entities(kind: str = "", limit: int = 200) -> str:
        """List entities of the sheet being shown, in draw order.

        Args:
            kind: Only list this kind (symbol, wire, label, sheet, footprint, track, ...).
            limit: Maximum number of entities to return.

        Returns:
            JSON with entity summaries.
        """
        validate_positive(limit, "limit")
        level = viewer.level
        items = [item for item, _ in level.geometry if not kind or item.kind == kind]
        entities = [session.summarize(item).model_dump() for item in items[:limit]]
        return _ok(total=len(items), entities=entities)

    @mcp.tool()
    def pick(x: float, y: float, world: bool = False) -> str:
        """Select the entity under a point, like a mouse click.

        Picking the selected entity again reselects it, which shows its
        details and, for a sheet, opens it. Picking empty space clears the
        selection.

        Args:
            x: X coordinate (screen pixels, or mm if world is true).
            y: Y coordinate (screen pixels, or mm if world is true).
            world: Interpret x/y as document coordinates.

        Returns:
            JSON with the selection result.
        """
        if world:
            screen = viewer.transform.world_to_screen(Point(x=x, y=y))
            x, y = screen.x, screen.y
        result = session.select(lambda: viewer.pointer_down(x, y))
        return _ok(selection=result.model_dump())

    @mcp.tool()
    def select_entity(uuid: str) -> str:
        """Select an entity of the current sheet by uuid.

        Args:
            uuid: Entity uuid.

        Returns:
            JSON with the selection result.
        """
        item = session.find_entity(uuid)
        result = session.select(lambda: viewer.select(item))
        return _ok(selection=result.model_dump())

    @mcp.tool()
    def clear_selection() -> str:
        """Clear the selection.

        Returns:
            JSON with the selection result.
        """
        result = session.select(viewer.clear_selection)
        return _ok(selection=result.model_dump())

    @mcp.tool()
    def highlight_all() -> str:
        """Highlight every interactive entity of the current sheet.

        Returns:
            JSON with the number of highlighted entities.
        """
        items = viewer.highlight_all()
        return _ok(highlighted=len(items))

    @mcp.tool()
    def fit_view(width: float = 0, height: float = 0) -> str:
        """Fit the current sheet into the viewport.

        Args:
            width: New viewport width in pixels (0 keeps the current one).
            height: New viewport height in pixels (0 keeps the current one).

        Returns:
            JSON with the viewport.
        """
        if width or height:
            viewer.set_viewport(width or viewer.width, height or viewer.height)
        viewer.fit_to_document()
        return _ok(viewport=session.viewport().model_dump())

    @mcp.tool()
    def zoom(factor: float, x: Optional[float] = None, y: Optional[float] = None) -> str:
        """Zoom the view about a screen point (default: viewport centre).

        Args:
            factor: Zoom factor, >1 zooms in.
            x: Screen X of the zoom anchor.
            y: Screen Y of the zoom anchor.

        Returns:
            JSON with the viewport.
        """
        validate_positive(factor, "factor")
        viewer.zoom(factor, x, y)
        return _ok(viewport=session.viewport().model_dump())

    @mcp.tool()
    def pan(dx: float, dy: float) -> str:
        """Move the view by a screen-space offset.

        Args:
            dx: Horizontal offset in pixels.
            dy: Vertical offset in pixels.

        Returns:
            JSON with the viewport.
        """
        viewer.pan(dx, dy)
        return _ok(viewport=session.viewport().model_dump())

    @mcp.tool()
    async def open_sheet(uuid: str = "") -> str:
        """Descend into a hierarchical sheet.

        Args:
            uuid: Sheet uuid; defaults to the selected sheet.

        Returns:
            JSON with the new instance path and document info.
        """
        sheet = session.find_entity(uuid) if uuid else viewer.selected
        if not isinstance(sheet, SheetInstance):
            raise ValidationError("Select a sheet or pass the uuid of a sheet")
        level = await viewer.descend(sheet)
        if level is None:
            raise ViewerError("The document was reloaded while opening the sheet")
        return _ok(
            path=level.path,
            document=summarize_document(level.document, level.geometry).model_dump(),
        )

    @mcp.tool()
    def close_sheet() -> str:
        """Return to the parent sheet.

        Returns:
            JSON with the instance path shown now.
        """
        level = viewer.ascend()
        return _ok(
            path=level.path,
            selected=session.summarize(viewer.selected).model_dump() if viewer.selected else None,
        )

    @mcp.tool()
    async def get_hierarchy() -> str:
        """Resolve the whole sheet hierarchy of the open schematic.

        Sheets whose file cannot be loaded are listed with an error.

        Returns:
            JSON with the hierarchy tree.
        """
        info = await session.hierarchy()
        return _ok(hierarchy=info.model_dump())

    @mcp.tool()
    def get_diagnostics() -> str:
        """List the non-fatal problems found while loading.

        Returns:
            JSON with diagnostics (schema errors, dangling references, unresolved sheets).
        """
        return _ok(
            document=viewer.filename,
            diagnostics=[d.model_dump(mode="json") for d in viewer.diagnostics],
        )
