"""Rasterized page container."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np

from .box import BoundingBox


@dataclass(frozen=True)
class PageImage:
    """
    One rasterized page.

    ``pixels`` is a numpy array, either HxW (grayscale) or HxWx3 (RGB).
    The container is frozen; stages read from it and never write back.
    """
    page_number: int
    pixels: np.ndarray = field(repr=False, compare=False)
    original_width: float = 0.0
    original_height: float = 0.0
    scale: float = 1.0

    def __post_init__(self):
        if self.page_number < 1:
            raise ValueError(f"Page numbers start at 1, got {self.page_number}")
        if self.pixels.ndim not in (2, 3):
            raise ValueError(f"Unsupported pixel buffer shape {self.pixels.shape}")
        if not self.original_width:
            object.__setattr__(self, 'original_width', self.width / self.scale)
        if not self.original_height:
            object.__setattr__(self, 'original_height', self.height / self.scale)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def bounds(self) -> BoundingBox:
        return BoundingBox(0, 0, self.width, self.height)

    @property
    def is_color(self) -> bool:
        return self.pixels.ndim == 3

    def crop(self, box: BoundingBox) -> np.ndarray:
        """Pixel buffer of a region, clipped to the page."""
        x0, y0, x1, y1 = box.clip(self.bounds).to_pixels()
        return self.pixels[y0:y1, x0:x1]

    @classmethod
    def blank(cls, width: int, height: int, page_number: int = 1) -> 'PageImage':
        """White grayscale page, mostly useful for synthetic layouts."""
        return cls(page_number=page_number, pixels=np.full((height, width), 255, dtype=np.uint8))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page_number': self.page_number,
            'width': self.width,
            'height': self.height,
            'original_width': self.original_width,
            'original_height': self.original_height,
            'scale': self.scale,
        }
