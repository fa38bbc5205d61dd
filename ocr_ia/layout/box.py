"""
Rectangle Primitives

Pixel-space rectangles shared by every geometric stage (content regions,
text columns, tables, cells).

Conventions:
- Coordinates are raster pixels of the page image
- Origin is top-left, y grows downwards
- Immutable, safe to share between worker threads
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    Immutable axis-aligned rectangle.

    Example:
        box = BoundingBox(x0=15, y0=15, x1=1225, y1=1739)
        print(f"Width: {box.width}, Height: {box.height}")
    """
    x0: float
    y0: float
    x1: float
    y1: float

    def __post_init__(self):
        # Normalize coordinates if inverted
        if self.x0 > self.x1:
            x0, x1 = self.x1, self.x0
            object.__setattr__(self, 'x0', x0)
            object.__setattr__(self, 'x1', x1)
        if self.y0 > self.y1:
            y0, y1 = self.y1, self.y0
            object.__setattr__(self, 'y0', y0)
            object.__setattr__(self, 'y1', y1)

    @classmethod
    def from_xywh(cls, x: float, y: float, width: float, height: float) -> 'BoundingBox':
        return cls(x, y, x + width, y + height)

    @cached_property
    def width(self) -> float:
        return self.x1 - self.x0

    @cached_property
    def height(self) -> float:
        return self.y1 - self.y0

    @cached_property
    def area(self) -> float:
        return self.width * self.height

    @cached_property
    def center(self) -> Tuple[float, float]:
        return ((self.x0 + self.x1) / 2, (self.y0 + self.y1) / 2)

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x0, self.y0, self.x1, self.y1)

    def to_dict(self) -> Dict[str, float]:
        return {
            'x': self.x0,
            'y': self.y0,
            'width': self.width,
            'height': self.height,
        }

    def to_pixels(self) -> Tuple[int, int, int, int]:
        """Integer (x0, y0, x1, y1) suitable for array slicing."""
        return (
            int(round(self.x0)),
            int(round(self.y0)),
            int(round(self.x1)),
            int(round(self.y1)),
        )

    def expand(self, margin: float) -> 'BoundingBox':
        """Grow (or shrink, with a negative margin) on every side."""
        return BoundingBox(
            self.x0 - margin,
            self.y0 - margin,
            self.x1 + margin,
            self.y1 + margin,
        )

    def clip(self, other: 'BoundingBox') -> 'BoundingBox':
        """Clamp this box so that it lies within ``other``."""
        x0 = min(max(self.x0, other.x0), other.x1)
        y0 = min(max(self.y0, other.y0), other.y1)
        x1 = min(max(self.x1, other.x0), other.x1)
        y1 = min(max(self.y1, other.y0), other.y1)
        return BoundingBox(x0, y0, x1, y1)

    def intersects(self, other: 'BoundingBox') -> bool:
        return not (
            self.x1 <= other.x0 or
            other.x1 <= self.x0 or
            self.y1 <= other.y0 or
            other.y1 <= self.y0
        )

    def contains_point(self, x: float, y: float, tolerance: float = 0.0) -> bool:
        return (
            self.x0 - tolerance <= x <= self.x1 + tolerance and
            self.y0 - tolerance <= y <= self.y1 + tolerance
        )

    def contains_box(self, other: 'BoundingBox', tolerance: float = 0.0) -> bool:
        return (
            self.x0 - tolerance <= other.x0 and
            self.y0 - tolerance <= other.y0 and
            other.x1 <= self.x1 + tolerance and
            other.y1 <= self.y1 + tolerance
        )

    def intersection(self, other: 'BoundingBox') -> Optional['BoundingBox']:
        if not self.intersects(other):
            return None
        return BoundingBox(
            max(self.x0, other.x0),
            max(self.y0, other.y0),
            min(self.x1, other.x1),
            min(self.y1, other.y1),
        )

    def union(self, other: 'BoundingBox') -> 'BoundingBox':
        return BoundingBox(
            min(self.x0, other.x0),
            min(self.y0, other.y0),
            max(self.x1, other.x1),
            max(self.y1, other.y1),
        )

    @classmethod
    def from_points(cls, points: List[Tuple[float, float]]) -> 'BoundingBox':
        if not points:
            raise ValueError("Cannot create box from empty points")
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        return cls(min(xs), min(ys), max(xs), max(ys))


def merge_boxes(boxes: List[BoundingBox]) -> BoundingBox:
    """Smallest box containing every box in the list."""
    if not boxes:
        raise ValueError("Cannot merge empty list of boxes")
    return BoundingBox(
        min(b.x0 for b in boxes),
        min(b.y0 for b in boxes),
        max(b.x1 for b in boxes),
        max(b.y1 for b in boxes),
    )


def calculate_iou(box1: BoundingBox, box2: BoundingBox) -> float:
    """
    Intersection over Union of two boxes.

    Returns:
        Overlap area divided by union area, in [0, 1]
    """
    inter = box1.intersection(box2)
    if inter is None:
        return 0.0
    inter_area = inter.area
    union_area = box1.area + box2.area - inter_area
    if union_area <= 0:
        return 0.0
    return inter_area / union_area
