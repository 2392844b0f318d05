"""Board (PCB) document model."""

from __future__ import annotations

from typing import ClassVar, Optional

from pydantic import Field

from kicad_viewer.document.common import (
    DocModel,
    Item,
    Paper,
    Passthrough,
    Property,
    Shape,
    TitleBlock,
)
from kicad_viewer.geometry.primitives import Point


class Layer(DocModel):
    ordinal: int
    name: str
    type: str = "user"
    user_name: Optional[str] = None


class Net(DocModel):
    number: int
    name: str = ""


class NetRef(DocModel):
    """Handle to a net: by number (classic files) and/or by name."""

    number: Optional[int] = None
    name: Optional[str] = None


class Pad(Item):
    """A footprint pad.

    ``position`` is relative to the footprint; ``rotation`` is absolute (it
    already includes the footprint's own rotation), as KiCad stores it.
    """

    kind: ClassVar[str] = "pad"

    number: str = ""
    pad_type: str
    shape: str
    size: Point = Field(default_factory=Point)
    drill: float = 0.0
    layers: tuple[str, ...] = ()
    net: Optional[NetRef] = None


class Footprint(Item):
    kind: ClassVar[str] = "footprint"

    lib_id: str
    locked: bool = False
    attributes: tuple[str, ...] = ()
    properties: dict[str, Property] = Field(default_factory=dict)
    pads: tuple[Pad, ...] = ()
    shapes: tuple[Shape, ...] = ()

    @property
    def reference(self) -> str:
        return self._field("Reference", "reference")

    @property
    def value(self) -> str:
        return self._field("Value", "value")

    def _field(self, prop_name: str, text_type: str) -> str:
        prop = self.properties.get(prop_name)
        if prop:
            return prop.value
        # KiCad 6 and older store these as fp_text items.
        for shape in self.shapes:
            if isinstance(shape, FootprintText) and shape.text_type == text_type:
                return shape.text
        return ""


class FootprintText(Shape):
    """An ``fp_text`` item; ``text_type`` is reference, value or user."""

    text_type: str = "user"


class TrackSegment(Item):
    """A copper track; ``mid`` is set for arc tracks."""

    kind: ClassVar[str] = "track"

    start: Point
    end: Point
    mid: Optional[Point] = None
    width: float = 0.0
    net: Optional[NetRef] = None
    locked: bool = False


class Via(Item):
    kind: ClassVar[str] = "via"

    via_type: str = "through"
    size: float = 0.0
    drill: float = 0.0
    layers: tuple[str, ...] = ()
    net: Optional[NetRef] = None


class Zone(Item):
    kind: ClassVar[str] = "zone"

    name: str = ""
    net: Optional[NetRef] = None
    layers: tuple[str, ...] = ()
    priority: int = 0
    outline: tuple[Point, ...]
    filled: Passthrough = ()


class Board(DocModel):
    kind: ClassVar[str] = "board"

    filename: Optional[str] = None
    version: int = 0
    generator: str = ""
    generator_version: str = ""
    thickness: float = 1.6
    paper: Paper = Field(default_factory=Paper)
    title_block: TitleBlock = Field(default_factory=TitleBlock)
    layers: tuple[Layer, ...] = ()
    nets: dict[int, Net] = Field(default_factory=dict)
    items: tuple[Item, ...] = ()
    by_id: dict[str, Item] = Field(default_factory=dict)
    setup: Passthrough = ()
    extra: Passthrough = ()

    def resolve(self, uuid: str) -> Optional[Item]:
        return self.by_id.get(uuid)

    def net_for(self, ref: Optional[NetRef]) -> Optional[Net]:
        """Resolve a net handle, or None if it is missing or dangles."""
        if ref is None:
            return None
        if ref.number is not None and ref.number in self.nets:
            return self.nets[ref.number]
        if ref.name is not None:
            for net in self.nets.values():
                if net.name == ref.name:
                    return net
        return None

    @property
    def footprints(self) -> list[Footprint]:
        return [i for i in self.items if isinstance(i, Footprint)]

    @property
    def tracks(self) -> list[TrackSegment]:
        return [i for i in self.items if isinstance(i, TrackSegment)]

    @property
    def vias(self) -> list[Via]:
        return [i for i in self.items if isinstance(i, Via)]

    @property
    def zones(self) -> list[Zone]:
        return [i for i in self.items if isinstance(i, Zone)]

    @property
    def drawings(self) -> list[Shape]:
        return [i for i in self.items if isinstance(i, Shape)]
