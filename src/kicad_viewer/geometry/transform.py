"""Placement and viewport transforms."""

from __future__ import annotations

from typing import Iterable, Optional

from kicad_viewer.geometry.primitives import BBox, Point, normalize_angle


class Placement:
    """Local-to-world transform of a placed object.

    Points are mirrored first, then rotated, then translated, matching how
    KiCad orients symbols and footprints. ``flip_y`` converts symbol
    library coordinates (Y up) into schematic coordinates (Y down).
    """

    def __init__(
        self,
        position: Point,
        rotation: float = 0.0,
        mirror: Optional[str] = None,
        flip_y: bool = False,
    ):
        if mirror not in (None, "x", "y"):
            raise ValueError(f"Unknown mirror axis: {mirror!r}")
        self.position = position
        self.rotation = normalize_angle(rotation)
        self.mirror = mirror
        self.flip_y = flip_y

    def apply(self, point: Point) -> Point:
        x, y = point.x, point.y
        if self.flip_y:
            y = -y
        if self.mirror == "x":
            y = -y
        elif self.mirror == "y":
            x = -x
        local = Point(x=x, y=y)
        if self.rotation:
            local = local.rotated(self.rotation)
        return local + self.position

    def apply_all(self, points: Iterable[Point]) -> list[Point]:
        return [self.apply(p) for p in points]

    def apply_bbox(self, box: BBox) -> BBox:
        """Transform a local box; the result encloses all four corners."""
        return BBox.from_points(self.apply_all(box.corners()))


class ViewportTransform:
    """Affine mapping between world units and screen pixels.

    ``screen = scale * (world - origin)``; ``origin`` is the world point shown
    at the top-left corner of the viewport.
    """

    def __init__(self, scale: float = 1.0, origin: Point | None = None):
        if not scale > 0:
            raise ValueError(f"Viewport scale must be positive, got {scale}")
        self.scale = float(scale)
        self.origin = origin or Point()

    def __repr__(self) -> str:
        return f"ViewportTransform(scale={self.scale!r}, origin=({self.origin.x}, {self.origin.y}))"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ViewportTransform):
            return NotImplemented
        return self.scale == other.scale and self.origin == other.origin

    def copy(self) -> "ViewportTransform":
        return ViewportTransform(self.scale, self.origin)

    def world_to_screen(self, point: Point) -> Point:
        return Point(
            x=self.scale * (point.x - self.origin.x),
            y=self.scale * (point.y - self.origin.y),
        )

    def screen_to_world(self, point: Point) -> Point:
        return Point(
            x=point.x / self.scale + self.origin.x,
            y=point.y / self.scale + self.origin.y,
        )

    def visible_world(self, width: float, height: float) -> BBox:
        """World-space box covered by a ``width`` x ``height`` viewport."""
        return BBox(
            min=self.origin,
            max=self.screen_to_world(Point(x=width, y=height)),
        )

    @classmethod
    def fit(
        cls, box: BBox, width: float, height: float, margin: float = 0.0,
    ) -> "ViewportTransform":
        """Transform that shows ``box`` (grown by ``margin``) centred in the viewport."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Viewport size must be positive, got {width}x{height}")
        padded = box.grow(margin) if margin else box
        # A degenerate box still needs a finite scale.
        world_w = max(padded.width, 1e-6)
        world_h = max(padded.height, 1e-6)
        scale = min(width / world_w, height / world_h)
        center = padded.center
        origin = Point(x=center.x - width / 2 / scale, y=center.y - height / 2 / scale)
        return cls(scale, origin)

    def zoomed_at(self, screen_point: Point, factor: float) -> "ViewportTransform":
        """Zoom by ``factor`` keeping the world point under ``screen_point`` fixed."""
        if not factor > 0:
            raise ValueError(f"Zoom factor must be positive, got {factor}")
        anchor = self.screen_to_world(screen_point)
        scale = self.scale * factor
        origin = Point(
            x=anchor.x - screen_point.x / scale,
            y=anchor.y - screen_point.y / scale,
        )
        return ViewportTransform(scale, origin)

    def panned(self, dx: float, dy: float) -> "ViewportTransform":
        """Move the view by ``dx``/``dy`` screen pixels."""
        return ViewportTransform(
            self.scale,
            Point(x=self.origin.x - dx / self.scale, y=self.origin.y - dy / self.scale),
        )
