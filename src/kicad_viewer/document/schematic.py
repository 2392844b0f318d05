"""Schematic document model."""

from __future__ import annotations

from typing import ClassVar, Optional

from pydantic import Field

from kicad_viewer.document.common import (
    DocModel,
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
from kicad_viewer.geometry.primitives import Point

DEFAULT_PIN_LENGTH = 2.54


class Pin(Item):
    """A pin of a library symbol.

    ``position`` is the connection point and ``rotation`` the direction the
    pin extends towards the body, in library coordinates (Y up).
    """

    kind: ClassVar[str] = "pin"

    name: str = ""
    number: str = ""
    electrical_type: str = "unspecified"
    shape: str = "line"
    length: float = DEFAULT_PIN_LENGTH


class LibSymbolUnit(DocModel):
    """One unit/body-style section (``NAME_unit_style``) of a library symbol."""

    name: str
    unit: int = 0
    style: int = 0
    shapes: tuple[Shape, ...] = ()
    pins: tuple[Pin, ...] = ()
    extra: Passthrough = ()


class LibSymbol(DocModel):
    """A library symbol definition embedded in the schematic's ``lib_symbols``."""

    name: str
    extends: Optional[str] = None
    power: bool = False
    pin_numbers_hidden: bool = False
    pin_names_hidden: bool = False
    pin_names_offset: float = 0.508
    in_bom: bool = True
    on_board: bool = True
    properties: dict[str, Property] = Field(default_factory=dict)
    units: tuple[LibSymbolUnit, ...] = ()
    extra: Passthrough = ()

    def units_for(self, unit: int = 1, style: int = 1) -> list[LibSymbolUnit]:
        """Sections drawn for a given unit and body style (0 means shared)."""
        return [
            u for u in self.units
            if u.unit in (0, unit) and u.style in (0, style)
        ]

    def pins_for(self, unit: int = 1, style: int = 1) -> list[Pin]:
        return [pin for u in self.units_for(unit, style) for pin in u.pins]

    @property
    def pins(self) -> list[Pin]:
        return [pin for u in self.units for pin in u.pins]


class SymbolPin(DocModel):
    """Per-instance pin record (uuid and selected alternate) of a placed symbol."""

    number: str
    uuid: str = ""
    alternate: Optional[str] = None


class SymbolInstance(Item):
    kind: ClassVar[str] = "symbol"

    lib_id: str
    lib_name: Optional[str] = None
    unit: int = 1
    convert: int = 1
    mirror: Optional[str] = None
    in_bom: bool = True
    on_board: bool = True
    dnp: bool = False
    properties: dict[str, Property] = Field(default_factory=dict)
    pins: tuple[SymbolPin, ...] = ()
    instances: tuple[InstanceRef, ...] = ()

    @property
    def reference(self) -> str:
        prop = self.properties.get("Reference")
        return prop.value if prop else ""

    @property
    def value(self) -> str:
        prop = self.properties.get("Value")
        return prop.value if prop else ""


class Wire(Item):
    """A wire or bus (``wire_type`` tells which)."""

    kind: ClassVar[str] = "wire"

    wire_type: str = "wire"
    points: tuple[Point, ...]
    stroke: Stroke = Field(default_factory=Stroke)


class BusEntry(Item):
    kind: ClassVar[str] = "bus_entry"

    size: Point = Field(default_factory=lambda: Point(x=2.54, y=2.54))
    stroke: Stroke = Field(default_factory=Stroke)


class Junction(Item):
    kind: ClassVar[str] = "junction"

    diameter: float = 0.0


class NoConnect(Item):
    kind: ClassVar[str] = "no_connect"


class Label(Item):
    """Net label. ``label_type`` is ``label``, ``global_label`` or ``hierarchical_label``."""

    kind: ClassVar[str] = "label"

    label_type: str = "label"
    text: str
    shape: Optional[str] = None
    effects: Effects = Field(default_factory=Effects)
    properties: dict[str, Property] = Field(default_factory=dict)


class Text(Item):
    kind: ClassVar[str] = "text"

    text: str
    effects: Effects = Field(default_factory=Effects)


class SheetPin(Item):
    kind: ClassVar[str] = "sheet_pin"

    name: str
    shape: str = "passive"
    effects: Effects = Field(default_factory=Effects)


class SheetInstance(Item):
    """A hierarchical sheet placed on a schematic.

    The sheet's instance path is not stored here: the same sheet entity is
    shared by every occurrence of its parent file, so the path is supplied
    by whoever is walking the hierarchy (see ``viewer.hierarchy``).
    """

    kind: ClassVar[str] = "sheet"

    size: Point
    name: str = ""
    file: str
    stroke: Stroke = Field(default_factory=Stroke)
    properties: dict[str, Property] = Field(default_factory=dict)
    pins: tuple[SheetPin, ...] = ()
    instances: tuple[InstanceRef, ...] = ()


class PageInfo(DocModel):
    path: str
    page: str = ""


class Schematic(DocModel):
    kind: ClassVar[str] = "schematic"

    filename: Optional[str] = None
    version: int = 0
    generator: str = ""
    generator_version: str = ""
    uuid: str = ""
    paper: Paper = Field(default_factory=Paper)
    title_block: TitleBlock = Field(default_factory=TitleBlock)
    lib_symbols: dict[str, LibSymbol] = Field(default_factory=dict)
    items: tuple[Item, ...] = ()
    by_id: dict[str, Item] = Field(default_factory=dict)
    sheet_instances: tuple[PageInfo, ...] = ()
    symbol_instances: tuple[InstanceRef, ...] = ()
    extra: Passthrough = ()

    def resolve(self, uuid: str) -> Optional[Item]:
        return self.by_id.get(uuid)

    def lib_symbol_for(self, symbol: SymbolInstance) -> Optional[LibSymbol]:
        """Resolve a placed symbol's library handle, or None if it dangles."""
        return self.lib_symbols.get(symbol.lib_name or symbol.lib_id)

    @property
    def symbols(self) -> list[SymbolInstance]:
        return [i for i in self.items if isinstance(i, SymbolInstance)]

    @property
    def wires(self) -> list[Wire]:
        return [i for i in self.items if isinstance(i, Wire)]

    @property
    def labels(self) -> list[Label]:
        return [i for i in self.items if isinstance(i, Label)]

    @property
    def sheets(self) -> list[SheetInstance]:
        return [i for i in self.items if isinstance(i, SheetInstance)]
