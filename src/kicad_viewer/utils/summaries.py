"""Convert documents and entities to the pydantic result types."""

from __future__ import annotations

from collections import Counter
from typing import Optional, Union

from kicad_viewer.document.board import Board, Footprint, Pad, TrackSegment, Via, Zone
from kicad_viewer.document.common import Item, Shape, ordered_properties
from kicad_viewer.document.schematic import Label, Schematic, SheetInstance, SymbolInstance, Text, Wire
from kicad_viewer.geometry.bounds import DocumentGeometry
from kicad_viewer.geometry.primitives import BBox, Point
from kicad_viewer.models.types import BoundsInfo, DocumentInfo, EntitySummary, HierarchyInfo, Position
from kicad_viewer.viewer.hierarchy import HierarchyNode

Document = Union[Schematic, Board]


def position(point: Point) -> Position:
    return Position(x=round(point.x, 4), y=round(point.y, 4))


def bounds_info(box: Optional[BBox]) -> Optional[BoundsInfo]:
    if box is None:
        return None
    return BoundsInfo(min=position(box.min), max=position(box.max))


def entity_label(item: Item, document: Optional[Document] = None) -> str:
    """Short text identifying an entity to a human."""
    if isinstance(item, (SymbolInstance, Footprint)):
        return item.reference
    if isinstance(item, (Label, Text)):
        return item.text
    if isinstance(item, SheetInstance):
        return item.name or item.file
    if isinstance(item, Wire):
        return item.wire_type
    if isinstance(item, Pad):
        return item.number
    if isinstance(item, (TrackSegment, Via, Zone)):
        if isinstance(document, Board):
            net = document.net_for(item.net)
            if net is not None:
                return net.name
        return item.name if isinstance(item, Zone) else ""
    if isinstance(item, Shape):
        return item.text or item.shape
    return ""


def entity_properties(item: Item) -> dict[str, str]:
    properties = getattr(item, "properties", None)
    result = {p.name: p.value for p in ordered_properties(properties)} if properties else {}
    if isinstance(item, (SymbolInstance, Footprint)):
        result.setdefault("lib_id", item.lib_id)
    elif isinstance(item, SheetInstance):
        result.setdefault("Sheetfile", item.file)
    return result


def summarize_entity(
    item: Item,
    geometry: Optional[DocumentGeometry] = None,
    document: Optional[Document] = None,
) -> EntitySummary:
    return EntitySummary(
        kind=item.kind,
        uuid=item.uuid,
        label=entity_label(item, document),
        position=position(item.position),
        rotation=item.rotation,
        layer=item.layer,
        bounds=bounds_info(geometry.bbox_for(item)) if geometry else None,
        properties=entity_properties(item),
    )


def summarize_document(document: Document, geometry: Optional[DocumentGeometry] = None) -> DocumentInfo:
    counts = Counter(item.kind for item in document.items)
    return DocumentInfo(
        kind=document.kind,
        filename=document.filename or "",
        version=document.version,
        generator=document.generator,
        title=document.title_block.title,
        paper=document.paper.size,
        num_items=len(document.items),
        counts=dict(sorted(counts.items())),
        bounds=bounds_info(geometry.bbox) if geometry else None,
    )


def hierarchy_info(node: HierarchyNode) -> HierarchyInfo:
    return HierarchyInfo(
        path=node.path,
        name=node.name,
        file=node.file,
        error=node.error,
        sheets=[hierarchy_info(child) for child in node.children],
    )
