"""Types shared by schematic and board documents."""

from __future__ import annotations

from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field

from kicad_viewer.geometry.primitives import ORIGIN, Point
from kicad_viewer.sexpr.parser import SExpr

# Unrecognized child nodes, kept verbatim.
Passthrough = tuple[SExpr, ...]


class DocModel(BaseModel):
    """Base for all document model types. Immutable once built."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class Stroke(DocModel):
    width: float = 0.0
    type: str = "default"


class Effects(DocModel):
    """Text effects: font size, justification and visibility."""

    size: Point = Field(default_factory=lambda: Point(x=1.27, y=1.27))
    thickness: float = 0.0
    bold: bool = False
    italic: bool = False
    justify: tuple[str, ...] = ()
    hidden: bool = False


class Property(DocModel):
    """A named field of a symbol, sheet or footprint."""

    name: str
    value: str = ""
    id: Optional[int] = None
    position: Point = ORIGIN
    rotation: float = 0.0
    visible: bool = True
    effects: Effects = Field(default_factory=Effects)
    extra: Passthrough = ()


def ordered_properties(properties: dict[str, Property]) -> list[Property]:
    """Properties in display order.

    Properties carrying an explicit ``id`` come first in id order; the rest
    keep their insertion order.
    """
    indexed = list(enumerate(properties.values()))
    indexed.sort(key=lambda pair: (pair[1].id is None, pair[1].id or 0, pair[0]))
    return [prop for _, prop in indexed]


class Paper(DocModel):
    size: str = "A4"
    width: Optional[float] = None
    height: Optional[float] = None
    portrait: bool = False


# Paper sizes in mm (landscape).
PAPER_SIZES: dict[str, tuple[float, float]] = {
    "A5": (210.0, 148.0),
    "A4": (297.0, 210.0),
    "A3": (420.0, 297.0),
    "A2": (594.0, 420.0),
    "A1": (841.0, 594.0),
    "A0": (1189.0, 841.0),
    "A": (279.4, 215.9),
    "B": (431.8, 279.4),
    "C": (558.8, 431.8),
    "D": (863.6, 558.8),
    "E": (1117.6, 863.6),
    "USLetter": (279.4, 215.9),
    "USLegal": (355.6, 215.9),
    "USLedger": (431.8, 279.4),
}


def paper_dimensions(paper: Paper) -> tuple[float, float]:
    """Width and height of the sheet in mm."""
    if paper.width and paper.height:
        w, h = paper.width, paper.height
    else:
        w, h = PAPER_SIZES.get(paper.size, PAPER_SIZES["A4"])
    if paper.portrait:
        w, h = h, w
    return w, h


class TitleBlock(DocModel):
    title: str = ""
    date: str = ""
    rev: str = ""
    company: str = ""
    comments: dict[int, str] = Field(default_factory=dict)


class Item(DocModel):
    """A positioned entity placed in a document.

    Entities never point back at their document; cross references are
    handles (uuids, lib ids, net numbers) resolved through the document.
    """

    kind: ClassVar[str] = "item"

    uuid: str = ""
    position: Point = ORIGIN
    rotation: float = 0.0
    layer: Optional[str] = None
    visible: bool = True
    extra: Passthrough = ()


class Shape(Item):
    """A graphic primitive: symbol body art, footprint art or board drawings.

    ``shape`` is one of ``rectangle``, ``polyline``, ``circle``, ``arc``,
    ``bezier`` or ``text``. ``points`` holds start/end for rectangles and
    lines, start/mid/end for arcs, the vertices for polylines, and the
    centre for circles.
    """

    kind: ClassVar[str] = "shape"

    shape: str
    points: tuple[Point, ...] = ()
    radius: float = 0.0
    stroke: Stroke = Field(default_factory=Stroke)
    fill: str = "none"
    text: str = ""
    effects: Effects = Field(default_factory=Effects)


class InstanceRef(DocModel):
    """One entry of an ``(instances ...)`` or ``(symbol_instances ...)`` table."""

    project: str = ""
    path: str = "/"
    reference: str = ""
    unit: int = 1
    page: str = ""
