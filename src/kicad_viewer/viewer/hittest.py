"""Map a world point to the entity under it."""

from __future__ import annotations

from typing import Optional

from kicad_viewer.document.common import Item
from kicad_viewer.geometry.bounds import DocumentGeometry
from kicad_viewer.geometry.primitives import BBox, Point


class HitTester:
    """Linear scan over padded entity boxes, topmost (last drawn) first.

    ``tolerance`` grows every box so thin entities like wires stay
    clickable. Results are the document's own entity objects.
    """

    def __init__(self, geometry: DocumentGeometry, tolerance: float = 0.0):
        if tolerance < 0:
            raise ValueError(f"Hit tolerance must not be negative, got {tolerance}")
        self.geometry = geometry
        self.tolerance = tolerance
        self._padded: list[tuple[Item, BBox]] = [
            (item, box.grow(tolerance)) for item, box in geometry
        ]

    def hit(self, point: Point) -> Optional[Item]:
        """Topmost entity whose padded box contains ``point``, or None."""
        for item, box in reversed(self._padded):
            if box.contains(point):
                return item
        return None

    def hits(self, point: Point) -> list[Item]:
        """Every entity under ``point``, topmost first."""
        return [item for item, box in reversed(self._padded) if box.contains(point)]

    def interactive_boxes(self) -> list[tuple[Item, BBox]]:
        """Padded boxes in draw order, e.g. for highlighting everything."""
        return list(self._padded)
