"""Tests for the viewer state machine, selection, hierarchy navigation and redraws."""

from __future__ import annotations

import asyncio

import pytest

from kicad_viewer.config import KiCadViewerConfig
from kicad_viewer.document.board import Board
from kicad_viewer.document.schematic import Schematic
from kicad_viewer.geometry.primitives import Point
from kicad_viewer.models.errors import (
    NotFoundError,
    ParseError,
    UnresolvedSheetError,
    ViewerError,
    ViewerStateError,
)
from kicad_viewer.models.types import DiagnosticKind
from kicad_viewer.providers.local import MemoryFileSystem
from kicad_viewer.viewer.viewer import (
    DetailEvent,
    Frame,
    LoadEvent,
    SelectionEvent,
    SheetSelectEvent,
    Viewer,
    ViewerState,
)

ROOT = "sample_schematic.kicad_sch"
BOARD = "sample_board.kicad_pcb"


class Recorder:
    """Collects the events a viewer emits."""

    def __init__(self, viewer: Viewer, *event_types: type):
        self.events: list = []
        for event_type in event_types:
            viewer.add_listener(event_type, self.events.append)

    def of(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def viewer(config: KiCadViewerConfig, memory_fs: MemoryFileSystem) -> Viewer:
    return Viewer(config, memory_fs)


@pytest.fixture
def loaded(viewer: Viewer) -> Viewer:
    asyncio.run(viewer.load(ROOT))
    viewer.flush()
    return viewer


def _screen(viewer: Viewer, x: float, y: float) -> Point:
    return viewer.transform.world_to_screen(Point(x=x, y=y))


class TestLoad:
    def test_initial_state(self, viewer: Viewer):
        assert viewer.state is ViewerState.EMPTY
        assert viewer.document is None
        assert viewer.path == "/"
        assert not viewer.loaded

    def test_states(self, viewer: Viewer):
        seen = []

        async def run():
            task = asyncio.ensure_future(viewer.load(ROOT))
            await asyncio.sleep(0)
            seen.append(viewer.state)
            return await task

        document = asyncio.run(run())
        seen.append(viewer.state)
        assert seen == [ViewerState.LOADING, ViewerState.READY]
        assert isinstance(document, Schematic)
        assert viewer.document is document
        assert viewer.root_document is document
        assert viewer.filename == ROOT

    def test_load_event(self, viewer: Viewer):
        recorder = Recorder(viewer, LoadEvent)
        asyncio.run(viewer.load(ROOT))
        [event] = recorder.events
        assert event.filename == ROOT
        assert isinstance(event.document, Schematic)
        assert [d.kind for d in event.diagnostics] == [DiagnosticKind.DANGLING_REFERENCE]
        assert viewer.diagnostics == event.diagnostics

    def test_parse_failure(self, viewer: Viewer, memory_fs: MemoryFileSystem):
        memory_fs.add("bad.kicad_sch", "(kicad_sch (wire")
        with pytest.raises(ParseError):
            asyncio.run(viewer.load("bad.kicad_sch"))
        assert viewer.state is ViewerState.ERROR
        assert isinstance(viewer.error, ParseError)
        assert viewer.document is None

    def test_missing_file(self, viewer: Viewer):
        with pytest.raises(NotFoundError):
            asyncio.run(viewer.load("nope.kicad_sch"))
        assert viewer.state is ViewerState.ERROR

    def test_recovers_after_error(self, viewer: Viewer):
        with pytest.raises(NotFoundError):
            asyncio.run(viewer.load("nope.kicad_sch"))
        asyncio.run(viewer.load(ROOT))
        assert viewer.state is ViewerState.READY
        assert viewer.error is None

    def test_no_provider(self, config: KiCadViewerConfig):
        with pytest.raises(ViewerStateError):
            asyncio.run(Viewer(config).load(ROOT))

    def test_newer_load_supersedes(self, viewer: Viewer):
        recorder = Recorder(viewer, LoadEvent)

        async def run():
            first = asyncio.ensure_future(viewer.load(ROOT))
            await asyncio.sleep(0)
            second = await viewer.load(BOARD)
            return await first, second

        first, second = asyncio.run(run())
        assert first is None
        assert isinstance(second, Board)
        assert viewer.document is second
        assert viewer.state is ViewerState.READY
        assert [e.filename for e in recorder.events] == [BOARD]

    def test_out_of_range_number_drops_entity(self, viewer: Viewer, memory_fs: MemoryFileSystem):
        memory_fs.add(
            "huge.kicad_sch",
            '(kicad_sch (version 1) (symbol (lib_id "D:R") (unit 1e999) (uuid "s1"))'
            ' (junction (at 1 1) (uuid "j1")))',
        )
        document = asyncio.run(viewer.load("huge.kicad_sch"))
        assert viewer.state is ViewerState.READY
        assert [item.uuid for item in document.items] == ["j1"]
        assert [d.kind for d in viewer.diagnostics] == [DiagnosticKind.SCHEMA]

    def test_unexpected_failure_moves_to_error(self, config: KiCadViewerConfig):
        class BrokenFileSystem(MemoryFileSystem):
            async def get(self, name: str) -> bytes:
                raise OSError("device not ready")

        viewer = Viewer(config, BrokenFileSystem())
        with pytest.raises(ViewerError) as exc_info:
            asyncio.run(viewer.load(ROOT))
        assert isinstance(exc_info.value.__cause__, OSError)
        assert viewer.state is ViewerState.ERROR
        assert viewer.error is exc_info.value
        assert exc_info.value.details == {"type": "OSError"}

    def test_load_replaces_document(self, loaded: Viewer):
        loaded.select(loaded.document.resolve("sym-r1"))
        asyncio.run(loaded.load(BOARD))
        assert isinstance(loaded.document, Board)
        assert loaded.selected is None
        assert len(loaded.levels) == 1

    def test_dispose(self, loaded: Viewer):
        recorder = Recorder(loaded, SelectionEvent)
        loaded.dispose()
        assert loaded.state is ViewerState.EMPTY
        assert loaded.document is None
        with pytest.raises(ViewerStateError):
            loaded.select(None)
        assert recorder.events == []


class TestSelection:
    def test_select(self, loaded: Viewer):
        recorder = Recorder(loaded, SelectionEvent)
        r1 = loaded.document.resolve("sym-r1")
        event = loaded.select(r1)
        assert event.item is r1
        assert event.previous is None
        assert event.reselected is False
        assert loaded.selected is r1
        assert recorder.events == [event]

    def test_select_other(self, loaded: Viewer):
        r1 = loaded.document.resolve("sym-r1")
        wire = loaded.document.resolve("wire-1")
        loaded.select(r1)
        event = loaded.select(wire)
        assert event.previous is r1
        assert event.reselected is False

    def test_reselect_shows_details(self, loaded: Viewer):
        recorder = Recorder(loaded, SelectionEvent, DetailEvent)
        r1 = loaded.document.resolve("sym-r1")
        loaded.select(r1)
        event = loaded.select(r1)
        assert event.reselected is True
        assert event.previous is r1
        [detail] = recorder.of(DetailEvent)
        assert detail.item is r1
        assert [p.name for p in detail.properties] == ["Value", "Reference", "Footprint"]
        assert len(recorder.of(SelectionEvent)) == 2

    def test_details_disabled(self, memory_fs: MemoryFileSystem):
        viewer = Viewer(KiCadViewerConfig(details_on_reselect=False), memory_fs)
        asyncio.run(viewer.load(ROOT))
        recorder = Recorder(viewer, DetailEvent)
        r1 = viewer.document.resolve("sym-r1")
        viewer.select(r1)
        viewer.select(r1)
        assert recorder.events == []

    def test_reselect_sheet(self, loaded: Viewer):
        recorder = Recorder(loaded, SheetSelectEvent)
        sheet = loaded.document.resolve("sheet-a")
        loaded.select(sheet)
        assert recorder.events == []
        loaded.select(sheet)
        [event] = recorder.events
        assert event.filename == "child.kicad_sch"
        assert event.sheet_path == "/sheet-a"

    def test_select_foreign_entity(self, loaded: Viewer, board_result):
        with pytest.raises(ViewerError):
            loaded.select(board_result.document.resolve("fp-r1"))

    def test_select_before_load(self, viewer: Viewer, schematic_result):
        with pytest.raises(ViewerStateError):
            viewer.select(schematic_result.document.resolve("sym-r1"))

    def test_clear(self, loaded: Viewer):
        r1 = loaded.document.resolve("sym-r1")
        loaded.select(r1)
        event = loaded.clear_selection()
        assert event.item is None
        assert event.previous is r1
        assert loaded.selected is None
        assert loaded.clear_selection() is None

    def test_pointer_down(self, loaded: Viewer):
        screen = _screen(loaded, 50, 50)
        event = loaded.pointer_down(screen.x, screen.y)
        assert event.item.uuid == "sym-r1"
        screen = _screen(loaded, 65, 30)
        assert loaded.pointer_down(screen.x, screen.y).item.uuid == "wire-1"

    def test_pointer_down_on_empty_space_clears(self, loaded: Viewer):
        screen = _screen(loaded, 50, 50)
        loaded.pointer_down(screen.x, screen.y)
        screen = _screen(loaded, 130, 30)
        event = loaded.pointer_down(screen.x, screen.y)
        assert event.item is None
        assert event.previous.uuid == "sym-r1"
        assert loaded.selected is None

    def test_pointer_down_twice_reselects(self, loaded: Viewer):
        screen = _screen(loaded, 50, 50)
        loaded.pointer_down(screen.x, screen.y)
        assert loaded.pointer_down(screen.x, screen.y).reselected is True

    def test_remove_listener(self, loaded: Viewer):
        events = []
        remove = loaded.add_listener(SelectionEvent, events.append)
        remove()
        loaded.select(loaded.document.resolve("sym-r1"))
        assert events == []


class TestView:
    def test_fit_shows_everything(self, loaded: Viewer):
        visible = loaded.transform.visible_world(loaded.width, loaded.height)
        for _, box in loaded.level.geometry:
            assert visible.contains(box.min) and visible.contains(box.max)

    def test_zoom_about_centre(self, loaded: Viewer):
        centre = Point(x=loaded.width / 2, y=loaded.height / 2)
        before = loaded.transform.screen_to_world(centre)
        scale = loaded.transform.scale
        loaded.zoom(2)
        after = loaded.transform.screen_to_world(centre)
        assert loaded.transform.scale == pytest.approx(scale * 2)
        assert after.x == pytest.approx(before.x)
        assert after.y == pytest.approx(before.y)

    def test_zoom_about_point(self, loaded: Viewer):
        world = loaded.transform.screen_to_world(Point(x=10, y=20))
        loaded.zoom(0.5, 10, 20)
        screen = loaded.transform.world_to_screen(world)
        assert screen.x == pytest.approx(10)
        assert screen.y == pytest.approx(20)

    def test_pan(self, loaded: Viewer):
        before = _screen(loaded, 50, 50)
        loaded.pan(15, -5)
        after = _screen(loaded, 50, 50)
        assert after.x == pytest.approx(before.x + 15)
        assert after.y == pytest.approx(before.y - 5)

    def test_set_viewport(self, loaded: Viewer):
        loaded.set_viewport(400, 300)
        loaded.fit_to_document()
        assert (loaded.width, loaded.height) == (400, 300)
        with pytest.raises(ValueError):
            loaded.set_viewport(0, 300)

    def test_highlight_all(self, loaded: Viewer):
        highlighted = loaded.highlight_all()
        assert len(highlighted) == len(loaded.document.items)
        loaded.clear_highlight()
        assert loaded.highlighted == ()


class TestHierarchy:
    def test_descend_and_ascend(self, viewer: Viewer):
        async def run():
            await viewer.load(ROOT)
            sheet = viewer.document.resolve("sheet-a")
            viewer.select(sheet)
            transform = viewer.transform.copy()
            level = await viewer.descend(sheet)
            return sheet, transform, level

        sheet, transform, level = asyncio.run(run())
        assert level.path == "/sheet-a"
        assert viewer.path == "/sheet-a"
        assert viewer.document.filename == "child.kicad_sch"
        assert viewer.root_document.filename == ROOT
        assert viewer.selected is None
        assert len(viewer.levels) == 2
        # The child sheet is picked in its own coordinates.
        screen = _screen(viewer, 25, 10)
        assert viewer.pointer_down(screen.x, screen.y).item.uuid == "child-wire"

        parent = viewer.ascend()
        assert parent.path == "/"
        assert viewer.selected is sheet
        assert viewer.transform == transform
        with pytest.raises(ViewerStateError):
            viewer.ascend()

    def test_same_file_two_paths(self, viewer: Viewer):
        async def run():
            await viewer.load(ROOT)
            a = await viewer.descend(viewer.document.resolve("sheet-a"))
            viewer.ascend()
            b = await viewer.descend(viewer.document.resolve("sheet-b"))
            return a, b

        a, b = asyncio.run(run())
        assert (a.path, b.path) == ("/sheet-a", "/sheet-b")
        assert a.document is b.document

    def test_unresolved_sheet(self, viewer: Viewer):
        async def run():
            await viewer.load(ROOT)
            await viewer.descend(viewer.document.resolve("sheet-missing"))

        with pytest.raises(UnresolvedSheetError):
            asyncio.run(run())
        assert viewer.state is ViewerState.READY
        assert viewer.path == "/"
        assert list(viewer.unresolved) == ["/sheet-missing"]
        unresolved = [d for d in viewer.diagnostics if d.kind is DiagnosticKind.UNRESOLVED_SHEET]
        assert len(unresolved) == 1
        assert unresolved[0].uuid == "sheet-missing"

    def test_descend_requires_sheet(self, loaded: Viewer):
        with pytest.raises(ViewerError):
            asyncio.run(loaded.descend(loaded.document.resolve("sym-r1")))

    def test_reselect_descends(self, viewer: Viewer):
        async def run():
            await viewer.load(ROOT)
            sheet = viewer.document.resolve("sheet-b")
            viewer.select(sheet)
            viewer.select(sheet)
            for _ in range(100):
                if viewer.path != "/":
                    break
                await asyncio.sleep(0)

        asyncio.run(run())
        assert viewer.path == "/sheet-b"

    def test_reselect_missing_sheet_records_diagnostic(self, viewer: Viewer):
        async def run():
            await viewer.load(ROOT)
            sheet = viewer.document.resolve("sheet-missing")
            viewer.select(sheet)
            viewer.select(sheet)
            for _ in range(100):
                if viewer.unresolved:
                    break
                await asyncio.sleep(0)

        asyncio.run(run())
        assert viewer.path == "/"
        assert "/sheet-missing" in viewer.unresolved

    def test_reload_discards_pending_descent(self, viewer: Viewer):
        async def run():
            await viewer.load(ROOT)
            task = asyncio.ensure_future(viewer.descend(viewer.document.resolve("sheet-a")))
            await asyncio.sleep(0)
            await viewer.load(BOARD)
            return await task

        assert asyncio.run(run()) is None
        assert isinstance(viewer.document, Board)
        assert len(viewer.levels) == 1

    def test_reload_before_background_descent_starts(self, viewer: Viewer):
        async def run():
            await viewer.load(ROOT)
            sheet = viewer.document.resolve("sheet-b")
            viewer.select(sheet)
            viewer.select(sheet)
            pending = set(viewer._tasks)
            await viewer.load(BOARD)
            return pending, await asyncio.gather(*pending)

        pending, results = asyncio.run(run())
        assert len(pending) == 1
        assert results == [None]
        assert isinstance(viewer.document, Board)
        assert viewer.path == "/"

    def test_descend_without_resolver(self, loaded: Viewer):
        loaded.resolver = None
        with pytest.raises(ViewerStateError):
            asyncio.run(loaded.descend(loaded.document.resolve("sheet-a")))
        assert loaded.path == "/"


class TestRedraw:
    def test_requests_are_coalesced(self, viewer: Viewer):
        frames = []
        viewer.add_listener(Frame, frames.append)

        async def run():
            await viewer.load(ROOT)
            await asyncio.sleep(0)
            drawn_after_load = len(frames)
            viewer.zoom(2)
            viewer.pan(10, 0)
            viewer.zoom(0.5)
            assert viewer.redraw_pending
            await asyncio.sleep(0)
            return drawn_after_load

        assert asyncio.run(run()) == 1
        assert len(frames) == 2
        assert not viewer.redraw_pending
        assert frames[-1].transform == viewer.transform

    def test_manual_flush(self, loaded: Viewer):
        frames = []
        loaded.add_listener(Frame, frames.append)
        assert loaded.flush() is None
        loaded.select(loaded.document.resolve("sym-r1"))
        loaded.zoom(1.5)
        frame = loaded.flush()
        assert frames == [frame]
        assert frame.selected.uuid == "sym-r1"
        assert frame.path == "/"
        assert loaded.flush() is None

    def test_frame_culls_invisible_items(self, loaded: Viewer):
        assert len(loaded.frame().items) == len(loaded.document.items)
        # Zoom far into the junction; the sheets far below drop out.
        screen = _screen(loaded, 80, 30)
        loaded.zoom(50, screen.x, screen.y)
        uuids = {item.uuid for item in loaded.frame().items}
        assert "junction-1" in uuids
        assert "sheet-missing" not in uuids
