"""Interactive viewer core.

The viewer owns the viewport transform, the selection and the stack of
hierarchy levels being shown. Documents are never mutated: selecting,
zooming or descending into a sheet only changes viewer state. Results are
published to listeners as events, and redraws are coalesced into frames.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from enum import Enum
from typing import Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from kicad_viewer.config import KiCadViewerConfig
from kicad_viewer.document.binder import LoadResult, load_document
from kicad_viewer.document.board import Board
from kicad_viewer.document.common import Item, Property, ordered_properties
from kicad_viewer.document.schematic import Schematic, SheetInstance
from kicad_viewer.geometry.bounds import DocumentGeometry
from kicad_viewer.geometry.primitives import BBox, Point
from kicad_viewer.geometry.transform import ViewportTransform
from kicad_viewer.logging_config import get_logger
from kicad_viewer.models.errors import (
    KiCadViewerError,
    UnresolvedSheetError,
    ViewerError,
    ViewerStateError,
)
from kicad_viewer.models.types import Diagnostic, DiagnosticKind, Severity
from kicad_viewer.providers.base import VirtualFileSystem
from kicad_viewer.viewer.hierarchy import ROOT_PATH, HierarchyResolver, instance_path
from kicad_viewer.viewer.hittest import HitTester

logger = get_logger("viewer")

Document = Union[Schematic, Board]


class ViewerState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


# --- Events ---

class ViewerEvent(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class SelectionEvent(ViewerEvent):
    """Selection changed, or the selected entity was selected again."""

    item: Optional[Item] = None
    previous: Optional[Item] = None
    reselected: bool = False
    path: str = ROOT_PATH


class LoadEvent(ViewerEvent):
    filename: str
    document: Union[Schematic, Board]
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class SheetSelectEvent(ViewerEvent):
    """A sheet instance was reselected; ``sheet_path`` is its instance path."""

    filename: str
    sheet_path: str


class DetailEvent(ViewerEvent):
    """Details of a reselected entity, properties in display order."""

    item: Item
    properties: list[Property] = Field(default_factory=list)


class Frame(ViewerEvent):
    """Everything a renderer needs for one redraw."""

    number: int
    path: str = ROOT_PATH
    transform: ViewportTransform
    visible: BBox
    items: list[Item] = Field(default_factory=list)
    selected: Optional[Item] = None
    highlighted: list[Item] = Field(default_factory=list)


class HierarchyLevel(BaseModel):
    """One document on the hierarchy stack."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    path: str
    document: Union[Schematic, Board]
    geometry: DocumentGeometry
    hit_tester: HitTester
    sheet: Optional[SheetInstance] = None
    # View state of the parent level, restored on ascend.
    saved_transform: Optional[ViewportTransform] = None
    saved_selection: Optional[Item] = None


Listener = Callable[[ViewerEvent], None]


class Viewer:
    """Viewer state machine: EMPTY -> LOADING -> READY, LOADING -> ERROR."""

    def __init__(
        self,
        config: Optional[KiCadViewerConfig] = None,
        provider: Optional[VirtualFileSystem] = None,
    ):
        self.config = config or KiCadViewerConfig()
        self.provider = provider
        self.state = ViewerState.EMPTY
        self.error: Optional[Exception] = None
        self.filename: Optional[str] = None
        self.diagnostics: list[Diagnostic] = []
        self.unresolved: dict[str, UnresolvedSheetError] = {}
        self.resolver: Optional[HierarchyResolver] = None

        self.width = float(self.config.viewport_width)
        self.height = float(self.config.viewport_height)
        self.transform = ViewportTransform()
        self.highlighted: tuple[Item, ...] = ()
        self.frames_drawn = 0

        self._levels: list[HierarchyLevel] = []
        self._selected: Optional[Item] = None
        self._listeners: dict[type, list[Listener]] = defaultdict(list)
        self._generation = 0
        self._load_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._redraw_pending = False
        self._sheet_files_seen: set[str] = set()

    # --- Listeners ---

    def add_listener(self, event_type: type, callback: Listener) -> Callable[[], None]:
        """Call ``callback`` for every event of ``event_type``; returns a remover."""
        self._listeners[event_type].append(callback)

        def remove() -> None:
            if callback in self._listeners[event_type]:
                self._listeners[event_type].remove(callback)

        return remove

    def _emit(self, event: ViewerEvent) -> None:
        for callback in list(self._listeners[type(event)]):
            callback(event)

    # --- State ---

    @property
    def loaded(self) -> bool:
        return self.state is ViewerState.READY

    @property
    def level(self) -> HierarchyLevel:
        if not self._levels:
            raise ViewerStateError("No document loaded")
        return self._levels[-1]

    @property
    def levels(self) -> list[HierarchyLevel]:
        return list(self._levels)

    @property
    def document(self) -> Optional[Document]:
        return self._levels[-1].document if self._levels else None

    @property
    def root_document(self) -> Optional[Document]:
        return self._levels[0].document if self._levels else None

    @property
    def path(self) -> str:
        return self._levels[-1].path if self._levels else ROOT_PATH

    @property
    def selected(self) -> Optional[Item]:
        return self._selected

    def _require_ready(self) -> None:
        if self.state is not ViewerState.READY:
            raise ViewerStateError(f"Viewer is {self.state.value}, not ready")

    # --- Loading ---

    async def load(
        self,
        name: str,
        provider: Optional[VirtualFileSystem] = None,
        sheet_path: str = ROOT_PATH,
    ) -> Optional[Document]:
        """Load ``name`` from the provider and show it.

        A newer call supersedes this one: the superseded call returns None
        and its result is discarded.

        Raises:
            ViewerStateError: If no provider is configured.
            KiCadViewerError: On a fatal fetch or parse failure; the viewer
                is then in the ERROR state. Other failures are wrapped in a
                ViewerError.
        """
        if provider is not None:
            self.provider = provider
        if self.provider is None:
            raise ViewerStateError("No file provider configured")
        source = self.provider

        self._generation += 1
        generation = self._generation
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()

        self.state = ViewerState.LOADING
        self.error = None
        self._set_selection(None)
        self.highlighted = ()
        logger.info("Loading %s (generation %d)", name, generation)

        task = asyncio.ensure_future(self._fetch_and_bind(source, name))
        self._load_task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                logger.debug("Load of %s superseded", name)
                return None
            self.state = ViewerState.READY if self._levels else ViewerState.EMPTY
            raise
        except Exception as e:
            if generation != self._generation:
                return None
            error = e if isinstance(e, KiCadViewerError) else ViewerError(
                f"Failed to load {name}: {e}", {"type": type(e).__name__},
            )
            self.state = ViewerState.ERROR
            self.error = error
            logger.error("Failed to load %s: %s", name, e)
            if error is e:
                raise
            raise error from e

        if generation != self._generation:
            logger.debug("Discarding stale load of %s", name)
            return None

        self._publish(name, result, HierarchyResolver(source.get), sheet_path)
        return result.document

    async def _fetch_and_bind(self, provider: VirtualFileSystem, name: str) -> LoadResult:
        data = await provider.get(name)
        return load_document(data, name)

    def _publish(
        self, name: str, result: LoadResult, resolver: HierarchyResolver, path: str,
    ) -> None:
        document = result.document
        geometry = DocumentGeometry(document)
        self._levels = [HierarchyLevel(
            path=path,
            document=document,
            geometry=geometry,
            hit_tester=self._hit_tester(document, geometry),
        )]
        self.resolver = resolver
        self.filename = name
        self.diagnostics = list(result.diagnostics)
        self.unresolved = {}
        self._sheet_files_seen = set()
        self.state = ViewerState.READY
        for diagnostic in result.diagnostics:
            logger.warning("%s: %s", name, diagnostic.message)
        self.fit_to_document()
        logger.info("Loaded %s %s", document.kind, name)
        self._emit(LoadEvent(filename=name, document=document, diagnostics=self.diagnostics))

    def _hit_tester(self, document: Document, geometry: DocumentGeometry) -> HitTester:
        if isinstance(document, Board):
            return HitTester(geometry, self.config.board_hit_tolerance)
        return HitTester(geometry, self.config.schematic_hit_tolerance)

    def dispose(self) -> None:
        """Drop the document, listeners and any in-flight work."""
        self._generation += 1
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._listeners.clear()
        self._levels = []
        self._selected = None
        self.highlighted = ()
        self._redraw_pending = False
        self.resolver = None
        self.state = ViewerState.EMPTY
        logger.debug("Viewer disposed")

    # --- Selection ---

    def _set_selection(self, item: Optional[Item]) -> None:
        self._selected = item

    def select(self, item: Optional[Item]) -> Optional[SelectionEvent]:
        """Select ``item`` (an entity of the current level) or clear with None.

        Selecting the entity that is already selected emits a reselect
        event, which may show its details or descend into a sheet depending
        on configuration.
        """
        self._require_ready()
        if item is None:
            return self.clear_selection()
        level = self.level
        if level.geometry.bbox_for(item) is None:
            raise ViewerError(f"{item.kind} {item.uuid or ''} is not part of the current sheet")

        previous = self._selected
        reselected = previous is item
        self._set_selection(item)
        event = SelectionEvent(item=item, previous=previous, reselected=reselected, path=level.path)
        logger.debug("Selected %s %s (reselected=%s)", item.kind, item.uuid, reselected)
        self._emit(event)
        if reselected:
            self._on_reselect(item)
        self.request_redraw()
        return event

    def clear_selection(self) -> Optional[SelectionEvent]:
        self._require_ready()
        previous = self._selected
        if previous is None:
            return None
        self._set_selection(None)
        event = SelectionEvent(item=None, previous=previous, path=self.path)
        self._emit(event)
        self.request_redraw()
        return event

    def pointer_down(self, x: float, y: float) -> Optional[SelectionEvent]:
        """Select whatever is under the screen point, or clear the selection."""
        self._require_ready()
        world = self.transform.screen_to_world(Point(x=x, y=y))
        item = self.level.hit_tester.hit(world)
        if item is None:
            return self.clear_selection()
        return self.select(item)

    def _on_reselect(self, item: Item) -> None:
        if self.config.details_on_reselect:
            self._emit(DetailEvent(item=item, properties=self.properties_of(item)))
        if isinstance(item, SheetInstance):
            self._emit(SheetSelectEvent(
                filename=item.file,
                sheet_path=instance_path(self.path, item.uuid),
            ))
            if self.config.descend_on_reselect:
                self._spawn(self._descend_reported(item))

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; sheet descent left to the host")
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _descend_reported(self, sheet: SheetInstance) -> None:
        try:
            await self.descend(sheet)
        except UnresolvedSheetError:
            # Already recorded as a diagnostic by descend().
            pass
        except ViewerError as e:
            # The document changed before the descent started.
            logger.debug("Dropped background descent into %s: %s", sheet.file, e)

    @staticmethod
    def properties_of(item: Item) -> list[Property]:
        """Display-ordered properties of ``item`` (empty if it has none)."""
        properties = getattr(item, "properties", None)
        return ordered_properties(properties) if properties else []

    # --- View ---

    def set_viewport(self, width: float, height: float) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Viewport size must be positive, got {width}x{height}")
        self.width, self.height = float(width), float(height)
        self.request_redraw()

    def fit_to_document(self) -> ViewportTransform:
        """Fit the current sheet's content, grown by the configured margin."""
        box = self.level.geometry.extent
        self.transform = ViewportTransform.fit(box, self.width, self.height, self.config.fit_margin)
        self.request_redraw()
        return self.transform

    def zoom(self, factor: float, x: Optional[float] = None, y: Optional[float] = None) -> ViewportTransform:
        """Zoom about a screen point (the viewport centre by default)."""
        anchor = Point(
            x=self.width / 2 if x is None else x,
            y=self.height / 2 if y is None else y,
        )
        self.transform = self.transform.zoomed_at(anchor, factor)
        self.request_redraw()
        return self.transform

    def pan(self, dx: float, dy: float) -> ViewportTransform:
        self.transform = self.transform.panned(dx, dy)
        self.request_redraw()
        return self.transform

    def highlight_all(self) -> tuple[Item, ...]:
        """Highlight every interactive entity of the current sheet."""
        self._require_ready()
        self.highlighted = tuple(item for item, _ in self.level.hit_tester.interactive_boxes())
        self.request_redraw()
        return self.highlighted

    def clear_highlight(self) -> None:
        self.highlighted = ()
        self.request_redraw()

    # --- Hierarchy ---

    def _ancestor_files(self) -> tuple[str, ...]:
        return tuple(level.document.filename for level in self._levels if level.document.filename)

    async def descend(self, sheet: SheetInstance) -> Optional[HierarchyLevel]:
        """Show the sub-sheet placed by ``sheet``.

        Returns None if the document was reloaded meanwhile.

        Raises:
            UnresolvedSheetError: If the sheet file cannot be loaded; the
                failure is also recorded in ``unresolved`` and the
                diagnostics, and the sheet stays an opaque placeholder.
        """
        self._require_ready()
        level = self.level
        if not isinstance(sheet, SheetInstance) or level.geometry.bbox_for(sheet) is None:
            raise ViewerError("Can only descend into a sheet of the current level")
        if self.resolver is None:
            raise ViewerStateError("No sheet resolver for the loaded document")
        generation = self._generation

        try:
            resolved = await self.resolver.resolve(sheet, level.path, self._ancestor_files())
        except UnresolvedSheetError as e:
            if generation == self._generation:
                logger.warning("%s", e)
                self.unresolved[e.sheet_path] = e
                self.diagnostics.append(Diagnostic(
                    severity=Severity.WARNING,
                    kind=DiagnosticKind.UNRESOLVED_SHEET,
                    message=str(e),
                    uuid=sheet.uuid,
                    file=level.document.filename or "",
                ))
            raise

        if generation != self._generation or self._levels[-1] is not level:
            logger.debug("Discarding stale descent into %s", sheet.file)
            return None

        if resolved.file not in self._sheet_files_seen:
            self._sheet_files_seen.add(resolved.file)
            self.diagnostics.extend(resolved.diagnostics)

        new_level = HierarchyLevel(
            path=resolved.instance_path,
            document=resolved.document,
            geometry=resolved.geometry,
            hit_tester=self._hit_tester(resolved.document, resolved.geometry),
            sheet=sheet,
            saved_transform=self.transform.copy(),
            saved_selection=self._selected,
        )
        self._levels.append(new_level)
        self._set_selection(None)
        self.highlighted = ()
        logger.info("Descended into %s at %s", resolved.file, resolved.instance_path)
        self.fit_to_document()
        return new_level

    def ascend(self) -> HierarchyLevel:
        """Return to the parent sheet, restoring its view and selection."""
        self._require_ready()
        if len(self._levels) < 2:
            raise ViewerStateError("Already at the root sheet")
        left = self._levels.pop()
        if left.saved_transform is not None:
            self.transform = left.saved_transform
        self._set_selection(left.saved_selection)
        self.highlighted = ()
        logger.info("Ascended to %s", self.path)
        self.request_redraw()
        return self.level

    # --- Redraw ---

    def request_redraw(self) -> None:
        """Schedule one frame; further requests before it is drawn are merged."""
        if self._redraw_pending:
            return
        self._redraw_pending = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the host calls flush() at its frame boundary.
            return
        loop.call_soon(self.flush)

    @property
    def redraw_pending(self) -> bool:
        return self._redraw_pending

    def flush(self) -> Optional[Frame]:
        """Draw the pending frame, if any, and hand it to Frame listeners."""
        if not self._redraw_pending:
            return None
        self._redraw_pending = False
        frame = self.frame()
        self.frames_drawn += 1
        self._emit(frame)
        return frame

    def frame(self) -> Frame:
        visible = self.transform.visible_world(self.width, self.height)
        items = []
        if self._levels:
            items = [item for item, box in self.level.geometry if box.intersects(visible)]
        return Frame(
            number=self.frames_drawn,
            path=self.path,
            transform=self.transform.copy(),
            visible=visible,
            items=items,
            selected=self._selected,
            highlighted=list(self.highlighted),
        )
