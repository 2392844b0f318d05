"""Bind generic S-expression trees to typed schematic and board documents.

Binding is table driven: each grammar maps a list head to a function that
turns such a list into a model entity. Unknown children are preserved as
pass-through nodes, malformed entities are dropped with a diagnostic, and
only structural problems with the root are fatal.
"""

from __future__ import annotations

import math
from typing import Callable, Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from kicad_viewer.document.board import (
    Board,
    Footprint,
    FootprintText,
    Layer,
    Net,
    NetRef,
    Pad,
    TrackSegment,
    Via,
    Zone,
)
from kicad_viewer.document.common import (
    Effects,
    InstanceRef,
    Item,
    Paper,
    Passthrough,
    Property,
    Shape,
    Stroke,
    TitleBlock,
)
from kicad_viewer.document.schematic import (
    DEFAULT_PIN_LENGTH,
    BusEntry,
    Junction,
    Label,
    LibSymbol,
    LibSymbolUnit,
    NoConnect,
    PageInfo,
    Pin,
    Schematic,
    SheetInstance,
    SheetPin,
    SymbolInstance,
    SymbolPin,
    Text,
    Wire,
)
from kicad_viewer.geometry.primitives import ORIGIN, Point, normalize_angle
from kicad_viewer.logging_config import get_logger
from kicad_viewer.models.errors import (
    LexError,
    ParseError,
    SchemaError,
    UnsupportedDocumentError,
)
from kicad_viewer.models.types import Diagnostic, DiagnosticKind, Severity
from kicad_viewer.sexpr.parser import (
    Atom,
    List,
    Number,
    SExpr,
    String,
    as_number,
    as_text,
    describe,
    parse,
)

logger = get_logger("document.binder")

Document = Union[Schematic, Board]

_REQUIRED = object()


class FieldReader:
    """Reads the fields of one list node and tracks which children were used.

    Positional fields are leaves at a fixed index after the head. Keyword
    fields are child lists looked up by head. Whatever is never read ends up
    in :meth:`remaining`, so unknown content survives binding.
    """

    def __init__(self, node: List):
        self.node = node
        self.args = node.args
        self._used: set[int] = set()

    # --- Positional fields ---

    def _leaf(self, index: int, what: str, default: object) -> Optional[SExpr]:
        if index < len(self.args) and not isinstance(self.args[index], List):
            self._used.add(index)
            return self.args[index]
        if default is _REQUIRED:
            raise SchemaError(self.node, f"missing {what}")
        return None

    def peek(self, index: int) -> Optional[SExpr]:
        return self.args[index] if index < len(self.args) else None

    def text(self, index: int, what: str = "text", default: object = _REQUIRED) -> str:
        leaf = self._leaf(index, what, default)
        if leaf is None:
            return default  # type: ignore[return-value]
        return as_text(leaf)

    def number(self, index: int, what: str = "number", default: object = _REQUIRED) -> float:
        leaf = self._leaf(index, what, default)
        if leaf is None:
            return default  # type: ignore[return-value]
        try:
            value = as_number(leaf)
        except ParseError:
            raise SchemaError(self.node, f"{what} must be a number, got {describe(leaf)}") from None
        if not math.isfinite(value):
            raise SchemaError(self.node, f"{what} must be finite, got {describe(leaf)}")
        return value

    def integer(self, index: int, what: str = "integer", default: object = _REQUIRED) -> int:
        value = self.number(index, what, default)
        return value if value is None else int(value)

    # --- Keyword fields ---

    def child(self, head: str) -> Optional[List]:
        """First child list named ``head``; all children with that head count as used."""
        found = None
        for index, arg in enumerate(self.args):
            if isinstance(arg, List) and arg.head == head:
                self._used.add(index)
                if found is None:
                    found = arg
        return found

    def children(self, head: str) -> list[List]:
        found = []
        for index, arg in enumerate(self.args):
            if isinstance(arg, List) and arg.head == head:
                self._used.add(index)
                found.append(arg)
        return found

    def each(self, grammar: dict[str, Callable]) -> Iterator[tuple[List, Callable]]:
        """Yield unread child lists that ``grammar`` knows how to bind."""
        for index, arg in enumerate(self.args):
            if index in self._used or not isinstance(arg, List):
                continue
            binder = grammar.get(arg.head or "")
            if binder is not None:
                self._used.add(index)
                yield arg, binder

    def child_text(self, head: str, default: object = _REQUIRED, index: int = 0) -> str:
        sub = self.child(head)
        if sub is None:
            if default is _REQUIRED:
                raise SchemaError(self.node, f"missing ({head} ...)")
            return default  # type: ignore[return-value]
        return FieldReader(sub).text(index, head)

    def child_number(self, head: str, default: object = _REQUIRED, index: int = 0) -> float:
        sub = self.child(head)
        if sub is None:
            if default is _REQUIRED:
                raise SchemaError(self.node, f"missing ({head} ...)")
            return default  # type: ignore[return-value]
        return FieldReader(sub).number(index, head)

    def child_integer(self, head: str, default: object = _REQUIRED, index: int = 0) -> int:
        value = self.child_number(head, default, index)
        return value if value is None else int(value)

    def child_point(self, head: str, default: object = _REQUIRED) -> Point:
        sub = self.child(head)
        if sub is None:
            if default is _REQUIRED:
                raise SchemaError(self.node, f"missing ({head} x y)")
            return default  # type: ignore[return-value]
        return _parse_xy(sub)

    def flag(self, name: str, default: bool = False) -> bool:
        """A boolean written as a bare atom ``name`` or as ``(name yes|no)``."""
        for index, arg in enumerate(self.args):
            if isinstance(arg, Atom) and arg.name == name:
                self._used.add(index)
                return True
        sub = self.child(name)
        if sub is None:
            return default
        if not sub.args:
            return True
        return _parse_bool(sub, sub.args[0])

    def at(self, default_rotation: float = 0.0) -> tuple[Point, float]:
        """Position and normalized rotation from ``(at x y [angle])``."""
        sub = self.child("at")
        if sub is None:
            return ORIGIN, default_rotation
        reader = FieldReader(sub)
        position = Point(x=reader.number(0, "x"), y=reader.number(1, "y"))
        return position, normalize_angle(reader.number(2, "angle", default_rotation))

    def uuid(self) -> str:
        return self.child_text("uuid", None) or self.child_text("tstamp", "")

    def remaining(self) -> Passthrough:
        return tuple(arg for index, arg in enumerate(self.args) if index not in self._used)


def _parse_bool(node: List, value: SExpr) -> bool:
    text = as_text(value) if not isinstance(value, List) else ""
    if text in ("yes", "true"):
        return True
    if text in ("no", "false"):
        return False
    raise SchemaError(node, f"expected yes or no, got {describe(value)}")


def _atoms(node: Optional[List]) -> tuple[str, ...]:
    if node is None:
        return ()
    return tuple(as_text(a) for a in node.args if not isinstance(a, List))


def _parse_xy(node: List) -> Point:
    reader = FieldReader(node)
    return Point(x=reader.number(0, "x"), y=reader.number(1, "y"))


def _parse_pts(node: List) -> tuple[Point, ...]:
    points = []
    for arg in node.args:
        if not isinstance(arg, List):
            continue
        if arg.head == "xy":
            points.append(_parse_xy(arg))
        elif arg.head == "arc":
            # Polygon outlines may contain arc segments.
            reader = FieldReader(arg)
            for head in ("start", "mid", "end"):
                point = reader.child_point(head, None)
                if point is not None:
                    points.append(point)
    return tuple(points)


def _parse_stroke(reader: FieldReader) -> Stroke:
    sub = reader.child("stroke")
    if sub is None:
        return Stroke(width=reader.child_number("width", 0.0))
    stroke = FieldReader(sub)
    return Stroke(
        width=stroke.child_number("width", 0.0),
        type=stroke.child_text("type", "default"),
    )


def _parse_fill(reader: FieldReader) -> str:
    sub = reader.child("fill")
    if sub is None:
        return "none"
    fill = FieldReader(sub)
    kind = fill.child_text("type", None)
    if kind is None:
        # Footprint graphics write (fill solid) or (fill yes).
        kind = fill.text(0, "fill", "none")
    return {"yes": "solid", "no": "none"}.get(kind, kind)


def _parse_effects(reader: FieldReader) -> Effects:
    sub = reader.child("effects")
    if sub is None:
        return Effects()
    effects = FieldReader(sub)
    size = Point(x=1.27, y=1.27)
    thickness, bold, italic = 0.0, False, False
    font = effects.child("font")
    if font is not None:
        font_reader = FieldReader(font)
        size_node = font_reader.child("size")
        if size_node is not None:
            size_reader = FieldReader(size_node)
            height = size_reader.number(0, "height")
            size = Point(x=size_reader.number(1, "width", height), y=height)
        thickness = font_reader.child_number("thickness", 0.0)
        bold = font_reader.flag("bold")
        italic = font_reader.flag("italic")
    justify = effects.child("justify")
    return Effects(
        size=size,
        thickness=thickness,
        bold=bold,
        italic=italic,
        justify=_atoms(justify),
        hidden=effects.flag("hide"),
    )


def _parse_property(node: List) -> Property:
    reader = FieldReader(node)
    name = reader.text(0, "property name")
    value = reader.text(1, "property value", "")
    prop_id = reader.child_integer("id", None)
    position, rotation = reader.at()
    effects = _parse_effects(reader)
    hidden = reader.flag("hide") or effects.hidden
    return Property(
        name=name,
        value=value,
        id=prop_id,
        position=position,
        rotation=rotation,
        visible=not hidden,
        effects=effects,
        extra=reader.remaining(),
    )


def _parse_properties(reader: FieldReader, ctx: "BindContext") -> dict[str, Property]:
    props: dict[str, Property] = {}
    for node in reader.children("property"):
        prop = ctx.attempt(lambda n, _ctx: _parse_property(n), node)
        if prop is not None:
            props[prop.name] = prop
    return props


def _parse_instance_path(node: List, project: str = "") -> InstanceRef:
    reader = FieldReader(node)
    return InstanceRef(
        project=project,
        path=reader.text(0, "instance path"),
        reference=reader.child_text("reference", ""),
        unit=reader.child_integer("unit", 1),
        page=reader.child_text("page", ""),
    )


def _parse_instances(reader: FieldReader) -> tuple[InstanceRef, ...]:
    sub = reader.child("instances")
    if sub is None:
        return ()
    refs = []
    for project in sub.find_all("project"):
        name = FieldReader(project).text(0, "project name", "")
        refs.extend(_parse_instance_path(path, name) for path in project.find_all("path"))
    refs.extend(_parse_instance_path(path) for path in sub.find_all("path"))
    return tuple(refs)


def _parse_layers(reader: FieldReader) -> tuple[str, ...]:
    sub = reader.child("layers")
    if sub is None:
        layer = reader.child_text("layer", None)
        return (layer,) if layer else ()
    return _atoms(sub)


def _parse_net(reader: FieldReader) -> Optional[NetRef]:
    sub = reader.child("net")
    if sub is None or not sub.args:
        return None
    net = FieldReader(sub)
    first = net.peek(0)
    if isinstance(first, Number):
        return NetRef(number=net.integer(0, "net number"), name=net.text(1, "net name", None))
    return NetRef(name=net.text(0, "net name"))


def _parse_paper(node: Optional[List]) -> Paper:
    if node is None:
        return Paper()
    reader = FieldReader(node)
    size = reader.text(0, "paper size")
    if size == "User":
        return Paper(
            size=size,
            width=reader.number(1, "width"),
            height=reader.number(2, "height"),
            portrait=reader.flag("portrait"),
        )
    return Paper(size=size, portrait=reader.flag("portrait"))


def _parse_comment(node: List) -> tuple[int, str]:
    reader = FieldReader(node)
    return reader.integer(0, "comment number"), reader.text(1, "comment", "")


def _parse_title_block(node: Optional[List], ctx: "BindContext") -> TitleBlock:
    if node is None:
        return TitleBlock()
    reader = FieldReader(node)
    comments = {}
    for comment in reader.children("comment"):
        entry = ctx.recover(lambda c=comment: _parse_comment(c), None)
        if entry is not None:
            comments[entry[0]] = entry[1]
    fields = {
        name: ctx.recover(lambda name=name: reader.child_text(name, ""), "")
        for name in ("title", "date", "rev", "company")
    }
    return TitleBlock(comments=comments, **fields)


# --- Context ---

class BindContext:
    """Collects diagnostics while a document is being bound."""

    def __init__(self, filename: Optional[str] = None):
        self.filename = filename or ""
        self.diagnostics: list[Diagnostic] = []

    def report(
        self,
        kind: DiagnosticKind,
        message: str,
        offset: int = -1,
        uuid: str = "",
        severity: Severity = Severity.WARNING,
    ) -> None:
        self.diagnostics.append(Diagnostic(
            severity=severity,
            kind=kind,
            message=message,
            offset=offset,
            uuid=uuid,
            file=self.filename,
        ))

    def attempt(self, binder: Callable, node: List):
        """Bind ``node``; on a schema error record it and return None."""
        try:
            return binder(node, self)
        except SchemaError as e:
            logger.warning("Skipping malformed entity in %s: %s", self.filename or "<input>", e)
            self.report(DiagnosticKind.SCHEMA, str(e), e.offset, severity=Severity.ERROR)
            return None

    def recover(self, read: Callable[[], object], default: object):
        """Read a document-level field, falling back to ``default`` if it is malformed."""
        try:
            return read()
        except SchemaError as e:
            logger.warning("Ignoring malformed field in %s: %s", self.filename or "<input>", e)
            self.report(DiagnosticKind.SCHEMA, str(e), e.offset, severity=Severity.ERROR)
            return default


def _bind_all(reader: FieldReader, grammar: dict[str, Callable], ctx: BindContext) -> list:
    items = []
    for node, binder in reader.each(grammar):
        item = ctx.attempt(binder, node)
        if item is not None:
            items.append(item)
    return items


# --- Graphic shapes (schematic, library symbols, footprints, boards) ---

_SHAPE_KINDS = {
    "rectangle": "rectangle", "fp_rect": "rectangle", "gr_rect": "rectangle",
    "polyline": "polyline", "fp_poly": "polyline", "gr_poly": "polyline",
    "fp_line": "polyline", "gr_line": "polyline",
    "bezier": "bezier", "fp_curve": "bezier", "gr_curve": "bezier",
    "circle": "circle", "fp_circle": "circle", "gr_circle": "circle",
    "arc": "arc", "fp_arc": "arc", "gr_arc": "arc",
    "text": "text", "gr_text": "text",
}


def _bind_shape(node: List, ctx: BindContext) -> Shape:
    shape = _SHAPE_KINDS[node.head or ""]
    reader = FieldReader(node)
    fields = _shape_fields(shape, reader)
    stroke = _parse_stroke(reader)
    fill = _parse_fill(reader)
    layer = reader.child_text("layer", None)
    return Shape(
        uuid=reader.uuid(),
        layer=layer,
        stroke=stroke,
        fill=fill,
        extra=reader.remaining(),
        **fields,
    )


def _shape_fields(shape: str, reader: FieldReader) -> dict:
    node = reader.node
    if shape == "rectangle" or (shape == "polyline" and reader.node.find("pts") is None):
        start = reader.child_point("start")
        end = reader.child_point("end")
        return {"shape": shape, "points": (start, end), "position": start}
    if shape in ("polyline", "bezier"):
        pts = reader.child("pts")
        points = _parse_pts(pts) if pts is not None else ()
        if len(points) < 2:
            raise SchemaError(node, f"{shape} needs at least 2 points")
        return {"shape": shape, "points": points, "position": points[0]}
    if shape == "circle":
        center = reader.child_point("center")
        radius = reader.child_number("radius", None)
        if radius is None:
            radius = center.distance_to(reader.child_point("end"))
        return {"shape": shape, "points": (center,), "radius": radius, "position": center}
    if shape == "arc":
        start = reader.child_point("start")
        end = reader.child_point("end")
        mid = reader.child_point("mid", None)
        points = (start, mid, end) if mid is not None else (start, end)
        return {"shape": shape, "points": points, "position": start}
    # text
    text = reader.text(0, "text")
    position, rotation = reader.at()
    effects = _parse_effects(reader)
    return {
        "shape": shape,
        "text": text,
        "position": position,
        "rotation": rotation,
        "effects": effects,
        "visible": not (effects.hidden or reader.flag("hide")),
    }


# --- Library symbols ---

def bind_pin(node: List, ctx: BindContext) -> Pin:
    """Bind a library pin.

    Both the full KiCad form ``(pin TYPE SHAPE (at ...) (length ...) (name ...)
    (number ...))`` and the short form ``(pin "NAME" (at ...) (length ...))``
    are accepted.
    """
    reader = FieldReader(node)
    if isinstance(reader.peek(0), String):
        name = reader.text(0, "pin name")
        electrical_type, shape = "unspecified", "line"
    else:
        name = ""
        electrical_type = reader.text(0, "electrical type", "unspecified")
        shape = reader.text(1, "graphic style", "line")
    name = reader.child_text("name", name)
    number = reader.child_text("number", "")
    position, rotation = reader.at()
    length = reader.child_number("length", DEFAULT_PIN_LENGTH)
    hidden = reader.flag("hide")
    return Pin(
        uuid=reader.uuid(),
        position=position,
        rotation=rotation,
        visible=not hidden,
        name=name,
        number=number,
        electrical_type=electrical_type,
        shape=shape,
        length=length,
        extra=reader.remaining(),
    )


LIB_SYMBOL_GRAMMAR: dict[str, Callable[[List, BindContext], Item]] = {
    "pin": bind_pin,
    "rectangle": _bind_shape,
    "polyline": _bind_shape,
    "circle": _bind_shape,
    "arc": _bind_shape,
    "bezier": _bind_shape,
    "text": _bind_shape,
}


def _unit_numbers(name: str) -> tuple[int, int]:
    parts = name.rsplit("_", 2)
    if len(parts) == 3 and parts[1].isdigit() and parts[2].isdigit():
        return int(parts[1]), int(parts[2])
    return 0, 0


def _bind_unit(reader: FieldReader, name: str, ctx: BindContext) -> LibSymbolUnit:
    unit, style = _unit_numbers(name)
    items = _bind_all(reader, LIB_SYMBOL_GRAMMAR, ctx)
    return LibSymbolUnit(
        name=name,
        unit=unit,
        style=style,
        shapes=tuple(i for i in items if isinstance(i, Shape)),
        pins=tuple(i for i in items if isinstance(i, Pin)),
        extra=reader.remaining(),
    )


def bind_lib_symbol(node: List, ctx: BindContext) -> LibSymbol:
    reader = FieldReader(node)
    name = reader.text(0, "symbol name")

    pin_numbers = reader.child("pin_numbers")
    pin_names = reader.child("pin_names")
    names_offset = 0.508
    names_hidden = False
    if pin_names is not None:
        names_reader = FieldReader(pin_names)
        names_offset = names_reader.child_number("offset", names_offset)
        names_hidden = names_reader.flag("hide")

    properties = _parse_properties(reader, ctx)
    fields = dict(
        name=name,
        extends=reader.child_text("extends", None),
        power=reader.flag("power"),
        pin_numbers_hidden=pin_numbers is not None and FieldReader(pin_numbers).flag("hide"),
        pin_names_hidden=names_hidden,
        pin_names_offset=names_offset,
        in_bom=reader.flag("in_bom", True),
        on_board=reader.flag("on_board", True),
        properties=properties,
    )

    units = []
    for sub in reader.children("symbol"):
        sub_reader = FieldReader(sub)
        try:
            unit_name = sub_reader.text(0, "unit name")
        except SchemaError as e:
            ctx.report(DiagnosticKind.SCHEMA, str(e), e.offset, severity=Severity.ERROR)
            continue
        units.append(_bind_unit(sub_reader, unit_name, ctx))
    # Older libraries may put graphics directly in the symbol.
    shared = _bind_unit(reader, name, ctx)
    if shared.shapes or shared.pins:
        units.insert(0, shared)
    return LibSymbol(units=tuple(units), extra=shared.extra, **fields)


# --- Schematic entities ---

def _bind_junction(node: List, ctx: BindContext) -> Junction:
    reader = FieldReader(node)
    position, _ = reader.at()
    return Junction(
        uuid=reader.uuid(),
        position=position,
        diameter=reader.child_number("diameter", 0.0),
        extra=reader.remaining(),
    )


def _bind_no_connect(node: List, ctx: BindContext) -> NoConnect:
    reader = FieldReader(node)
    position, _ = reader.at()
    return NoConnect(uuid=reader.uuid(), position=position, extra=reader.remaining())


def _bind_wire(node: List, ctx: BindContext) -> Wire:
    reader = FieldReader(node)
    pts = reader.child("pts")
    points = _parse_pts(pts) if pts is not None else ()
    if len(points) < 2:
        raise SchemaError(node, "wire needs at least 2 points")
    return Wire(
        uuid=reader.uuid(),
        position=points[0],
        wire_type=node.head or "wire",
        points=points,
        stroke=_parse_stroke(reader),
        extra=reader.remaining(),
    )


def _bind_bus_entry(node: List, ctx: BindContext) -> BusEntry:
    reader = FieldReader(node)
    position, _ = reader.at()
    return BusEntry(
        uuid=reader.uuid(),
        position=position,
        size=reader.child_point("size", Point(x=2.54, y=2.54)),
        stroke=_parse_stroke(reader),
        extra=reader.remaining(),
    )


def _bind_label(node: List, ctx: BindContext) -> Label:
    reader = FieldReader(node)
    text = reader.text(0, "label text")
    position, rotation = reader.at()
    effects = _parse_effects(reader)
    return Label(
        uuid=reader.uuid(),
        position=position,
        rotation=rotation,
        label_type=node.head or "label",
        text=text,
        shape=reader.child_text("shape", None),
        effects=effects,
        properties=_parse_properties(reader, ctx),
        extra=reader.remaining(),
    )


def _bind_text(node: List, ctx: BindContext) -> Text:
    reader = FieldReader(node)
    text = reader.text(0, "text")
    position, rotation = reader.at()
    effects = _parse_effects(reader)
    return Text(
        uuid=reader.uuid(),
        position=position,
        rotation=rotation,
        visible=not effects.hidden,
        text=text,
        effects=effects,
        extra=reader.remaining(),
    )


def bind_symbol(node: List, ctx: BindContext) -> SymbolInstance:
    reader = FieldReader(node)
    lib_id = reader.child_text("lib_id")
    position, rotation = reader.at()
    unit = reader.child_integer("unit", 1)
    convert = reader.child_integer("convert", None)
    if convert is None:
        convert = reader.child_integer("body_style", 1)
    mirror = reader.child_text("mirror", None)
    if mirror not in (None, "x", "y"):
        raise SchemaError(node, f"unknown mirror axis '{mirror}'")

    pins = []
    for pin in reader.children("pin"):
        pin_reader = FieldReader(pin)
        pins.append(SymbolPin(
            number=pin_reader.text(0, "pin number"),
            uuid=pin_reader.uuid(),
            alternate=pin_reader.child_text("alternate", None),
        ))

    return SymbolInstance(
        uuid=reader.uuid(),
        position=position,
        rotation=rotation,
        lib_id=lib_id,
        lib_name=reader.child_text("lib_name", None),
        unit=unit,
        convert=convert,
        mirror=mirror,
        in_bom=reader.flag("in_bom", True),
        on_board=reader.flag("on_board", True),
        dnp=reader.flag("dnp"),
        properties=_parse_properties(reader, ctx),
        pins=tuple(pins),
        instances=_parse_instances(reader),
        extra=reader.remaining(),
    )


_SHEET_NAME_KEYS = ("Sheetname", "Sheet name")
_SHEET_FILE_KEYS = ("Sheetfile", "Sheet file")


def bind_sheet(node: List, ctx: BindContext) -> SheetInstance:
    reader = FieldReader(node)
    position, _ = reader.at()
    size = reader.child_point("size")
    properties = _parse_properties(reader, ctx)

    name = next((properties[k].value for k in _SHEET_NAME_KEYS if k in properties), "")
    file = next((properties[k].value for k in _SHEET_FILE_KEYS if k in properties), "")
    if not file:
        raise SchemaError(node, "sheet has no Sheetfile property")

    pins = []
    for pin in reader.children("pin"):
        pin_reader = FieldReader(pin)
        pin_position, pin_rotation = pin_reader.at()
        pins.append(SheetPin(
            uuid=pin_reader.uuid(),
            position=pin_position,
            rotation=pin_rotation,
            name=pin_reader.text(0, "sheet pin name"),
            shape=pin_reader.text(1, "sheet pin shape", "passive"),
            effects=_parse_effects(pin_reader),
            extra=pin_reader.remaining(),
        ))

    return SheetInstance(
        uuid=reader.uuid(),
        position=position,
        size=size,
        name=name,
        file=file,
        stroke=_parse_stroke(reader),
        properties=properties,
        pins=tuple(pins),
        instances=_parse_instances(reader),
        extra=reader.remaining(),
    )


SCHEMATIC_GRAMMAR: dict[str, Callable[[List, BindContext], Item]] = {
    "junction": _bind_junction,
    "no_connect": _bind_no_connect,
    "wire": _bind_wire,
    "bus": _bind_wire,
    "bus_entry": _bind_bus_entry,
    "polyline": _bind_shape,
    "rectangle": _bind_shape,
    "circle": _bind_shape,
    "arc": _bind_shape,
    "bezier": _bind_shape,
    "text": _bind_text,
    "label": _bind_label,
    "global_label": _bind_label,
    "hierarchical_label": _bind_label,
    "symbol": bind_symbol,
    "sheet": bind_sheet,
}


# --- Board entities ---

def bind_pad(node: List, ctx: BindContext) -> Pad:
    reader = FieldReader(node)
    number = reader.text(0, "pad number")
    pad_type = reader.text(1, "pad type")
    shape = reader.text(2, "pad shape")
    position, rotation = reader.at()

    drill = 0.0
    drill_node = reader.child("drill")
    if drill_node is not None:
        # (drill 0.8) or (drill oval 1.0 2.0)
        drill_reader = FieldReader(drill_node)
        first = 1 if isinstance(drill_reader.peek(0), Atom) else 0
        drill = drill_reader.number(first, "drill", 0.0)

    return Pad(
        uuid=reader.uuid(),
        position=position,
        rotation=rotation,
        number=number,
        pad_type=pad_type,
        shape=shape,
        size=reader.child_point("size", Point()),
        drill=drill,
        layers=_parse_layers(reader),
        net=_parse_net(reader),
        extra=reader.remaining(),
    )


def _bind_fp_text(node: List, ctx: BindContext) -> FootprintText:
    reader = FieldReader(node)
    text_type = reader.text(0, "text type")
    text = reader.text(1, "text")
    position, rotation = reader.at()
    effects = _parse_effects(reader)
    hidden = reader.flag("hide") or effects.hidden
    return FootprintText(
        uuid=reader.uuid(),
        position=position,
        rotation=rotation,
        layer=reader.child_text("layer", None),
        visible=not hidden,
        shape="text",
        text=text,
        text_type=text_type,
        effects=effects,
        extra=reader.remaining(),
    )


FOOTPRINT_GRAMMAR: dict[str, Callable[[List, BindContext], Item]] = {
    "pad": bind_pad,
    "fp_text": _bind_fp_text,
    "fp_line": _bind_shape,
    "fp_rect": _bind_shape,
    "fp_circle": _bind_shape,
    "fp_arc": _bind_shape,
    "fp_poly": _bind_shape,
    "fp_curve": _bind_shape,
}


def bind_footprint(node: List, ctx: BindContext) -> Footprint:
    reader = FieldReader(node)
    lib_id = reader.text(0, "footprint library id")
    position, rotation = reader.at()
    attr = reader.child("attr")
    items = _bind_all(reader, FOOTPRINT_GRAMMAR, ctx)
    return Footprint(
        uuid=reader.uuid(),
        position=position,
        rotation=rotation,
        layer=reader.child_text("layer", None),
        lib_id=lib_id,
        locked=reader.flag("locked"),
        attributes=_atoms(attr),
        properties=_parse_properties(reader, ctx),
        pads=tuple(i for i in items if isinstance(i, Pad)),
        shapes=tuple(i for i in items if isinstance(i, Shape)),
        extra=reader.remaining(),
    )


def _bind_track(node: List, ctx: BindContext) -> TrackSegment:
    reader = FieldReader(node)
    start = reader.child_point("start")
    end = reader.child_point("end")
    mid = reader.child_point("mid") if node.head == "arc" else None
    return TrackSegment(
        uuid=reader.uuid(),
        position=start,
        layer=reader.child_text("layer", None),
        start=start,
        end=end,
        mid=mid,
        width=reader.child_number("width", 0.0),
        net=_parse_net(reader),
        locked=reader.flag("locked"),
        extra=reader.remaining(),
    )


def _bind_via(node: List, ctx: BindContext) -> Via:
    reader = FieldReader(node)
    via_type = reader.text(0, "via type", "through")
    position, _ = reader.at()
    return Via(
        uuid=reader.uuid(),
        position=position,
        via_type=via_type,
        size=reader.child_number("size", 0.0),
        drill=reader.child_number("drill", 0.0),
        layers=_parse_layers(reader),
        net=_parse_net(reader),
        extra=reader.remaining(),
    )


def _bind_zone(node: List, ctx: BindContext) -> Zone:
    reader = FieldReader(node)
    net = _parse_net(reader)
    net_name = reader.child_text("net_name", None)
    if net is not None and net_name is not None and net.name is None:
        net = NetRef(number=net.number, name=net_name)
    polygon = reader.child("polygon")
    pts = polygon.find("pts") if polygon is not None else None
    outline = _parse_pts(pts) if pts is not None else ()
    if len(outline) < 3:
        raise SchemaError(node, "zone has no outline polygon")
    return Zone(
        uuid=reader.uuid(),
        position=outline[0],
        layer=reader.child_text("layer", None),
        name=reader.child_text("name", ""),
        net=net,
        layers=_parse_layers(reader),
        priority=reader.child_integer("priority", 0),
        outline=outline,
        filled=tuple(reader.children("filled_polygon")),
        extra=reader.remaining(),
    )


BOARD_GRAMMAR: dict[str, Callable[[List, BindContext], Item]] = {
    "footprint": bind_footprint,
    "module": bind_footprint,
    "segment": _bind_track,
    "arc": _bind_track,
    "via": _bind_via,
    "zone": _bind_zone,
    "gr_line": _bind_shape,
    "gr_rect": _bind_shape,
    "gr_circle": _bind_shape,
    "gr_arc": _bind_shape,
    "gr_poly": _bind_shape,
    "gr_curve": _bind_shape,
    "gr_text": _bind_shape,
}


def bind_node(node: List, kind: Optional[str] = None) -> Item:
    """Bind a single entity list outside of any document.

    ``kind`` selects the grammar (``lib_symbol``, ``schematic``, ``footprint``
    or ``board``); by default the first grammar knowing the head is used, in
    that order. Schema errors propagate to the caller.
    """
    grammars = {
        "lib_symbol": LIB_SYMBOL_GRAMMAR,
        "schematic": SCHEMATIC_GRAMMAR,
        "footprint": FOOTPRINT_GRAMMAR,
        "board": BOARD_GRAMMAR,
    }
    candidates = [grammars[kind]] if kind else list(grammars.values())
    for grammar in candidates:
        binder = grammar.get(node.head or "")
        if binder is not None:
            return binder(node, BindContext())
    raise SchemaError(node, f"unknown entity '{node.head}'")


# --- Documents ---

class LoadResult(BaseModel):
    """A bound document plus the non-fatal problems found while loading it."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    document: Document
    diagnostics: list[Diagnostic] = Field(default_factory=list)


def _index(items: list[Item], ctx: BindContext) -> dict[str, Item]:
    by_id: dict[str, Item] = {}
    for item in items:
        if not item.uuid:
            continue
        if item.uuid in by_id:
            ctx.report(
                DiagnosticKind.DUPLICATE_ID,
                f"Duplicate uuid {item.uuid} ({by_id[item.uuid].kind} and {item.kind})",
                uuid=item.uuid,
            )
            continue
        by_id[item.uuid] = item
    return by_id


def _header(reader: FieldReader, ctx: BindContext) -> dict:
    paper = reader.child("paper")
    return dict(
        version=ctx.recover(lambda: reader.child_integer("version", 0), 0),
        generator=ctx.recover(lambda: reader.child_text("generator", ""), ""),
        generator_version=ctx.recover(lambda: reader.child_text("generator_version", ""), ""),
        paper=ctx.recover(lambda: _parse_paper(paper), Paper()),
        title_block=_parse_title_block(reader.child("title_block"), ctx),
    )


def _parse_instance_table(node: Optional[List], ctx: BindContext) -> list[InstanceRef]:
    if node is None:
        return []
    refs = [ctx.recover(lambda p=path: _parse_instance_path(p), None) for path in node.find_all("path")]
    return [ref for ref in refs if ref is not None]


def bind_schematic(root: List, ctx: BindContext) -> Schematic:
    reader = FieldReader(root)
    header = _header(reader, ctx)
    uuid = reader.uuid()

    lib_symbols: dict[str, LibSymbol] = {}
    lib_node = reader.child("lib_symbols")
    if lib_node is not None:
        for node in lib_node.find_all("symbol"):
            symbol = ctx.attempt(bind_lib_symbol, node)
            if symbol is not None:
                lib_symbols[symbol.name] = symbol

    sheet_instances = [
        PageInfo(path=ref.path, page=ref.page)
        for ref in _parse_instance_table(reader.child("sheet_instances"), ctx)
    ]
    symbol_instances = _parse_instance_table(reader.child("symbol_instances"), ctx)

    items = _bind_all(reader, SCHEMATIC_GRAMMAR, ctx)
    schematic = Schematic(
        filename=ctx.filename or None,
        uuid=uuid,
        lib_symbols=lib_symbols,
        items=tuple(items),
        by_id=_index(items, ctx),
        sheet_instances=tuple(sheet_instances),
        symbol_instances=tuple(symbol_instances),
        extra=reader.remaining(),
        **header,
    )

    for symbol in schematic.symbols:
        if schematic.lib_symbol_for(symbol) is None:
            ctx.report(
                DiagnosticKind.DANGLING_REFERENCE,
                f"Symbol {symbol.reference or symbol.uuid} references unknown library symbol "
                f"'{symbol.lib_name or symbol.lib_id}'",
                uuid=symbol.uuid,
            )
    return schematic


def _parse_board_layer(entry: List) -> Layer:
    # Layer entries have no head: (0 "F.Cu" signal) or (44 "Edge.Cuts" user "Edge").
    fields = entry.items
    if len(fields) < 2 or any(isinstance(f, List) for f in fields):
        raise SchemaError(entry, "layer entry must be (ordinal name [type [user_name]])")
    try:
        ordinal = as_number(fields[0])
    except ParseError:
        raise SchemaError(entry, f"layer ordinal must be a number, got {describe(fields[0])}") from None
    if not math.isfinite(ordinal):
        raise SchemaError(entry, f"layer ordinal must be finite, got {describe(fields[0])}")
    return Layer(
        ordinal=int(ordinal),
        name=as_text(fields[1]),
        type=as_text(fields[2]) if len(fields) > 2 else "user",
        user_name=as_text(fields[3]) if len(fields) > 3 else None,
    )


def _parse_board_layers(node: Optional[List], ctx: BindContext) -> tuple[Layer, ...]:
    if node is None:
        return ()
    layers = []
    for entry in node.items[1:]:
        if not isinstance(entry, List):
            continue
        layer = ctx.recover(lambda e=entry: _parse_board_layer(e), None)
        if layer is not None:
            layers.append(layer)
    return tuple(layers)


def _parse_net_entry(node: List) -> Net:
    reader = FieldReader(node)
    return Net(number=reader.integer(0, "net number"), name=reader.text(1, "net name", ""))


def _net_refs(item: Item) -> list[tuple[Item, Optional[NetRef]]]:
    if isinstance(item, Footprint):
        return [(pad, pad.net) for pad in item.pads]
    if isinstance(item, (TrackSegment, Via, Zone)):
        return [(item, item.net)]
    return []


def bind_board(root: List, ctx: BindContext) -> Board:
    reader = FieldReader(root)
    header = _header(reader, ctx)
    general = reader.child("general")
    thickness = 1.6
    if general is not None:
        thickness = ctx.recover(lambda: FieldReader(general).child_number("thickness", 1.6), 1.6)

    layers = _parse_board_layers(reader.child("layers"), ctx)

    nets: dict[int, Net] = {}
    for node in reader.children("net"):
        net = ctx.recover(lambda n=node: _parse_net_entry(n), None)
        if net is not None:
            nets[net.number] = net

    setup = reader.child("setup")
    items = _bind_all(reader, BOARD_GRAMMAR, ctx)
    everything: list[Item] = []
    for item in items:
        everything.append(item)
        if isinstance(item, Footprint):
            everything.extend(item.pads)

    board = Board(
        filename=ctx.filename or None,
        thickness=thickness,
        layers=layers,
        nets=nets,
        items=tuple(items),
        by_id=_index(everything, ctx),
        setup=setup.args if setup is not None else (),
        extra=reader.remaining(),
        **header,
    )

    for item in items:
        for owner, ref in _net_refs(item):
            if ref is None or board.net_for(ref) is not None:
                continue
            if ref.number == 0 and not ref.name:
                continue
            ctx.report(
                DiagnosticKind.DANGLING_REFERENCE,
                f"{owner.kind} references unknown net {ref.name or ref.number}",
                uuid=owner.uuid,
            )
    return board


_ROOTS = {
    "kicad_sch": bind_schematic,
    "kicad_pcb": bind_board,
}


def bind_document(root: List, filename: Optional[str] = None) -> LoadResult:
    """Bind a parsed root list to a schematic or board.

    Raises:
        UnsupportedDocumentError: If the root is neither ``kicad_sch`` nor
            ``kicad_pcb``.
    """
    binder = _ROOTS.get(root.head or "")
    if binder is None:
        raise UnsupportedDocumentError(root, f"unsupported document type '{root.head}'")
    ctx = BindContext(filename)
    document = binder(root, ctx)
    logger.info(
        "Loaded %s %s: %d items, %d diagnostics",
        document.kind, filename or "<input>", len(document.items), len(ctx.diagnostics),
    )
    return LoadResult(document=document, diagnostics=ctx.diagnostics)


def load_document(source: Union[str, bytes], filename: Optional[str] = None) -> LoadResult:
    """Parse and bind KiCad source text.

    Raises:
        LexError, ParseError: If the text is not a well-formed S-expression.
        UnsupportedDocumentError: If it is not a schematic or board.
    """
    if isinstance(source, bytes):
        try:
            source = source.decode("utf-8")
        except UnicodeDecodeError as e:
            raise LexError("Invalid UTF-8", e.start) from e
    return bind_document(parse(source), filename)
