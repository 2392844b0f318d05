"""Geometry primitives shared by the document model and the viewer.

KiCad documents use millimetres with +X to the right and +Y down. Angles
are in degrees and, as in KiCad's editors, a positive angle turns an
object counter-clockwise on screen.
"""

from __future__ import annotations

import math
from typing import Iterable

from pydantic import BaseModel, ConfigDict


def normalize_angle(angle: float) -> float:
    """Normalize an angle in degrees to the range [0, 360)."""
    angle = math.fmod(angle, 360.0)
    if angle < 0:
        angle += 360.0
    if angle >= 360.0:
        angle = 0.0
    return angle + 0.0


def _cos_sin(angle: float) -> tuple[float, float]:
    angle = normalize_angle(angle)
    # Exact values for the right angles KiCad almost always uses.
    if angle == 0:
        return 1.0, 0.0
    if angle == 90:
        return 0.0, 1.0
    if angle == 180:
        return -1.0, 0.0
    if angle == 270:
        return 0.0, -1.0
    rad = math.radians(angle)
    return math.cos(rad), math.sin(rad)


class Point(BaseModel):
    """A point (or vector) in document units."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: "Point") -> "Point":
        return Point(x=self.x + other.x, y=self.y + other.y)

    def __sub__(self, other: "Point") -> "Point":
        return Point(x=self.x - other.x, y=self.y - other.y)

    def scaled(self, sx: float, sy: float | None = None) -> "Point":
        return Point(x=self.x * sx, y=self.y * (sx if sy is None else sy))

    def rotated(self, angle: float) -> "Point":
        """Rotate about the origin by ``angle`` degrees, counter-clockwise on screen."""
        c, s = _cos_sin(angle)
        return Point(x=self.x * c + self.y * s, y=-self.x * s + self.y * c)

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


ORIGIN = Point()


class BBox(BaseModel):
    """Axis-aligned bounding box. ``min`` is never greater than ``max``."""

    model_config = ConfigDict(frozen=True)

    min: Point
    max: Point

    def __init__(self, **data):
        super().__init__(**data)
        if self.min.x > self.max.x or self.min.y > self.max.y:
            raise ValueError(f"Inverted bounding box: min={self.min} max={self.max}")

    @classmethod
    def from_points(cls, points: Iterable[Point]) -> "BBox":
        pts = list(points)
        if not pts:
            raise ValueError("Cannot build a bounding box from no points")
        return cls(
            min=Point(x=min(p.x for p in pts), y=min(p.y for p in pts)),
            max=Point(x=max(p.x for p in pts), y=max(p.y for p in pts)),
        )

    @classmethod
    def around(cls, center: Point, radius: float) -> "BBox":
        """Square box of half-size ``radius`` centred on ``center``."""
        r = abs(radius)
        return cls(
            min=Point(x=center.x - r, y=center.y - r),
            max=Point(x=center.x + r, y=center.y + r),
        )

    @classmethod
    def combine(cls, boxes: Iterable["BBox"]) -> "BBox | None":
        """Union of all ``boxes``, or None when there are none."""
        result: BBox | None = None
        for box in boxes:
            result = box if result is None else result.union(box)
        return result

    @property
    def x(self) -> float:
        return self.min.x

    @property
    def y(self) -> float:
        return self.min.y

    @property
    def width(self) -> float:
        return self.max.x - self.min.x

    @property
    def height(self) -> float:
        return self.max.y - self.min.y

    @property
    def center(self) -> Point:
        return Point(x=(self.min.x + self.max.x) / 2, y=(self.min.y + self.max.y) / 2)

    def corners(self) -> list[Point]:
        return [
            self.min,
            Point(x=self.max.x, y=self.min.y),
            self.max,
            Point(x=self.min.x, y=self.max.y),
        ]

    def contains(self, point: Point) -> bool:
        return self.min.x <= point.x <= self.max.x and self.min.y <= point.y <= self.max.y

    def intersects(self, other: "BBox") -> bool:
        return not (
            other.min.x > self.max.x
            or other.max.x < self.min.x
            or other.min.y > self.max.y
            or other.max.y < self.min.y
        )

    def union(self, other: "BBox") -> "BBox":
        return BBox(
            min=Point(x=min(self.min.x, other.min.x), y=min(self.min.y, other.min.y)),
            max=Point(x=max(self.max.x, other.max.x), y=max(self.max.y, other.max.y)),
        )

    def include(self, point: Point) -> "BBox":
        return self.union(BBox(min=point, max=point))

    def grow(self, amount: float) -> "BBox":
        """Return a copy padded by ``amount`` on every side."""
        if amount < 0:
            raise ValueError(f"Cannot grow a bounding box by a negative amount: {amount}")
        return BBox(
            min=Point(x=self.min.x - amount, y=self.min.y - amount),
            max=Point(x=self.max.x + amount, y=self.max.y + amount),
        )
