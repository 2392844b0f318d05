"""World bounding boxes of document entities.

Boxes are computed in document units without any interaction padding; the
hit-tester adds its tolerance on top. Every box also contains the entity's
declared position, so an entity can always be picked at its anchor.
"""

from __future__ import annotations

from typing import Callable, Iterator, Optional, Union

from kicad_viewer.document.board import Board, Footprint, Pad, TrackSegment, Via, Zone
from kicad_viewer.document.common import Effects, Item, Shape, paper_dimensions
from kicad_viewer.document.schematic import (
    BusEntry,
    Junction,
    Label,
    LibSymbol,
    NoConnect,
    Pin,
    Schematic,
    SheetInstance,
    SymbolInstance,
    Text,
    Wire,
)
from kicad_viewer.geometry.primitives import BBox, Point
from kicad_viewer.geometry.transform import Placement
from kicad_viewer.logging_config import get_logger

logger = get_logger("geometry.bounds")

Document = Union[Schematic, Board]

DEFAULT_JUNCTION_DIAMETER = 0.9144
NO_CONNECT_SIZE = 0.635
MISSING_SYMBOL_SIZE = 1.27
# Average glyph advance relative to the font width.
GLYPH_ADVANCE = 0.6


def text_box(
    text: str, position: Point, rotation: float, effects: Effects,
) -> BBox:
    """Approximate extent of a single- or multi-line text."""
    lines = text.split("\n")
    width = max(len(line) for line in lines) * effects.size.x * GLYPH_ADVANCE
    height = len(lines) * effects.size.y
    justify = effects.justify
    if "left" in justify:
        x0, x1 = 0.0, width
    elif "right" in justify:
        x0, x1 = -width, 0.0
    else:
        x0, x1 = -width / 2, width / 2
    if "top" in justify:
        y0, y1 = 0.0, height
    elif "bottom" in justify:
        y0, y1 = -height, 0.0
    else:
        y0, y1 = -height / 2, height / 2
    local = BBox(min=Point(x=x0, y=y0), max=Point(x=x1, y=y1))
    return Placement(position, rotation).apply_bbox(local)


def shape_box(shape: Shape) -> BBox:
    """Box of a graphic primitive in its own coordinate space."""
    if shape.shape == "text":
        return text_box(shape.text, shape.position, shape.rotation, shape.effects)
    if shape.shape == "circle":
        box = BBox.around(shape.points[0], shape.radius)
    else:
        box = BBox.from_points(shape.points or (shape.position,))
    if shape.stroke.width > 0:
        box = box.grow(shape.stroke.width / 2)
    return box


def pin_points(pin: Pin) -> tuple[Point, Point]:
    """Connection point and body end of a pin, in library coordinates (Y up)."""
    # rotated() turns counter-clockwise on a Y-down screen; library Y points up.
    end = pin.position + Point(x=pin.length).rotated(-pin.rotation)
    return pin.position, end


def symbol_local_box(lib: LibSymbol, unit: int, style: int) -> Optional[BBox]:
    boxes = []
    for section in lib.units_for(unit, style):
        boxes.extend(shape_box(s) for s in section.shapes)
        boxes.extend(BBox.from_points(pin_points(p)) for p in section.pins)
    return BBox.combine(boxes)


def _symbol_box(symbol: SymbolInstance, document: Document) -> BBox:
    lib = document.lib_symbol_for(symbol) if isinstance(document, Schematic) else None
    local = symbol_local_box(lib, symbol.unit, symbol.convert) if lib else None
    if local is None:
        return BBox.around(symbol.position, MISSING_SYMBOL_SIZE)
    placement = Placement(symbol.position, symbol.rotation, symbol.mirror, flip_y=True)
    return placement.apply_bbox(local)


def _wire_box(wire: Wire, document: Document) -> BBox:
    return BBox.from_points(wire.points)


def _bus_entry_box(entry: BusEntry, document: Document) -> BBox:
    return BBox.from_points([entry.position, entry.position + entry.size])


def _junction_box(junction: Junction, document: Document) -> BBox:
    diameter = junction.diameter or DEFAULT_JUNCTION_DIAMETER
    return BBox.around(junction.position, diameter / 2)


def _no_connect_box(item: NoConnect, document: Document) -> BBox:
    return BBox.around(item.position, NO_CONNECT_SIZE)


def _label_box(label: Label, document: Document) -> BBox:
    effects = label.effects
    if not effects.justify:
        effects = effects.model_copy(update={"justify": ("left", "bottom")})
    return text_box(label.text, label.position, label.rotation, effects)


def _text_box(text: Text, document: Document) -> BBox:
    return text_box(text.text, text.position, text.rotation, text.effects)


def _sheet_box(sheet: SheetInstance, document: Document) -> BBox:
    corners = [sheet.position, sheet.position + sheet.size]
    corners.extend(pin.position for pin in sheet.pins)
    return BBox.from_points(corners)


def _shape_item_box(shape: Shape, document: Document) -> BBox:
    return shape_box(shape)


def pad_box(pad: Pad, footprint: Footprint) -> BBox:
    """World box of a pad; its position is footprint relative, its angle absolute."""
    center = Placement(footprint.position, footprint.rotation).apply(pad.position)
    half = Point(x=pad.size.x / 2, y=pad.size.y / 2)
    local = BBox(min=Point() - half, max=half)
    return Placement(center, pad.rotation).apply_bbox(local)


def _footprint_box(footprint: Footprint, document: Document) -> BBox:
    placement = Placement(footprint.position, footprint.rotation)
    boxes = [pad_box(pad, footprint) for pad in footprint.pads]
    boxes.extend(
        placement.apply_bbox(shape_box(s)) for s in footprint.shapes
        if s.shape != "text" and s.visible
    )
    return BBox.combine(boxes) or BBox.around(footprint.position, 0)


def _track_box(track: TrackSegment, document: Document) -> BBox:
    points = [track.start, track.end]
    if track.mid is not None:
        points.append(track.mid)
    return BBox.from_points(points).grow(track.width / 2)


def _via_box(via: Via, document: Document) -> BBox:
    return BBox.around(via.position, via.size / 2)


def _zone_box(zone: Zone, document: Document) -> BBox:
    return BBox.from_points(zone.outline)


_BOX_FUNCTIONS: dict[type, Callable[[Item, Document], BBox]] = {
    SymbolInstance: _symbol_box,
    Wire: _wire_box,
    BusEntry: _bus_entry_box,
    Junction: _junction_box,
    NoConnect: _no_connect_box,
    Label: _label_box,
    Text: _text_box,
    SheetInstance: _sheet_box,
    Footprint: _footprint_box,
    TrackSegment: _track_box,
    Via: _via_box,
    Zone: _zone_box,
}


def bbox_of(item: Item, document: Document) -> BBox:
    """Unpadded world bounding box of ``item``, always containing its position."""
    func = _BOX_FUNCTIONS.get(type(item))
    if func is None and isinstance(item, Shape):
        func = _shape_item_box
    box = func(item, document) if func else BBox.around(item.position, 0)
    return box.include(item.position)


# Lower ranks are drawn first (and so are picked last).
_SCHEMATIC_ORDER: list = [
    SheetInstance, Shape, Wire, BusEntry, SymbolInstance, (Label, Text), (Junction, NoConnect),
]
_BOARD_ORDER: list = [Zone, Shape, TrackSegment, Via, Footprint]


def draw_rank(item: Item, document: Document) -> int:
    order = _SCHEMATIC_ORDER if isinstance(document, Schematic) else _BOARD_ORDER
    for rank, kinds in enumerate(order):
        if isinstance(item, kinds):
            return rank
    return len(order)


class DocumentGeometry:
    """Bounding boxes of one document's entities, in draw order."""

    def __init__(self, document: Document):
        self.document = document
        items = sorted(
            enumerate(document.items),
            key=lambda pair: (draw_rank(pair[1], document), pair[0]),
        )
        self.entries: list[tuple[Item, BBox]] = [
            (item, bbox_of(item, document)) for _, item in items
        ]
        self._boxes = {id(item): box for item, box in self.entries}
        self.bbox: Optional[BBox] = BBox.combine(box for _, box in self.entries)
        logger.debug("Computed geometry for %d entities", len(self.entries))

    def __iter__(self) -> Iterator[tuple[Item, BBox]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def bbox_for(self, item: Item) -> Optional[BBox]:
        return self._boxes.get(id(item))

    @property
    def extent(self) -> BBox:
        """Content box, or the paper outline for an empty document."""
        if self.bbox is not None:
            return self.bbox
        width, height = paper_dimensions(self.document.paper)
        return BBox(min=Point(), max=Point(x=width, y=height))
