"""
Border Removal

Official gazette pages are framed by a fixed set of decorative rules (three
at the top, two at the bottom, two on each side). This module picks those
rules among the detected lines and derives the content region inside them.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..confidence import DEGRADED_BORDER_CONFIDENCE, border_confidence
from .box import BoundingBox
from .lines import DetectedLine

logger = logging.getLogger(__name__)

SIDES = ('top', 'bottom', 'left', 'right')


@dataclass
class BorderConfig:
    """Expected border layout."""
    top_lines: int = 3
    bottom_lines: int = 2
    side_lines: int = 2
    tolerance: float = 15.0
    margin_percent: float = 20.0
    span_ratio: float = 0.7

    @property
    def expected_total(self) -> int:
        return self.top_lines + self.bottom_lines + 2 * self.side_lines


@dataclass
class ContentRegion:
    """
    Page area left once border rules are removed.

    Always lies within the page: 0 <= x, 0 <= y, x + width <= page width,
    y + height <= page height.
    """
    x: float
    y: float
    width: float
    height: float
    removed_borders: Dict[str, List[DetectedLine]] = field(
        default_factory=lambda: {side: [] for side in SIDES}
    )
    confidence: float = 0.0

    @property
    def box(self) -> BoundingBox:
        return BoundingBox.from_xywh(self.x, self.y, self.width, self.height)

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def border_count(self) -> int:
        return sum(len(lines) for lines in self.removed_borders.values())

    def is_border(self, line: DetectedLine) -> bool:
        return any(line in lines for lines in self.removed_borders.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'removed_borders': {
                side: [line.to_dict() for line in lines]
                for side, lines in self.removed_borders.items()
            },
            'confidence': round(self.confidence, 3),
        }


class BorderRemover:
    """
    Finds border rules near the page edges.

    Usage:
        remover = BorderRemover()
        region = remover.remove_borders(lines.horizontal, lines.vertical, 1240, 1754)
    """

    def __init__(self, config: Optional[BorderConfig] = None):
        self.config = config or BorderConfig()

    def remove_borders(
        self,
        horizontal: Sequence[DetectedLine],
        vertical: Sequence[DetectedLine],
        page_width: float,
        page_height: float,
    ) -> ContentRegion:
        borders = self.identify_borders(horizontal, vertical, page_width, page_height)
        detected = sum(len(lines) for lines in borders.values())

        if detected == 0:
            logger.info("No border lines detected, using default content region")
            return self.default_region(page_width, page_height)

        region = self._content_region(borders, page_width, page_height)
        logger.debug(
            f"Content region {region.x:.0f},{region.y:.0f} "
            f"{region.width:.0f}x{region.height:.0f} from {detected} border lines"
        )
        return region

    def identify_borders(
        self,
        horizontal: Sequence[DetectedLine],
        vertical: Sequence[DetectedLine],
        page_width: float,
        page_height: float,
    ) -> Dict[str, List[DetectedLine]]:
        """Border lines per side, nearest to the edge first."""
        cfg = self.config
        band_height = page_height * cfg.margin_percent / 100
        band_width = page_width * cfg.margin_percent / 100

        wide = [l for l in horizontal if abs(l.x2 - l.x1) >= page_width * cfg.span_ratio]
        tall = [l for l in vertical if abs(l.y2 - l.y1) >= page_height * cfg.span_ratio]

        top = sorted((l for l in wide if l.position <= band_height), key=lambda l: l.position)
        bottom = sorted(
            (l for l in wide if l.position >= page_height - band_height),
            key=lambda l: -l.position,
        )
        left = sorted((l for l in tall if l.position <= band_width), key=lambda l: l.position)
        right = sorted(
            (l for l in tall if l.position >= page_width - band_width),
            key=lambda l: -l.position,
        )

        return {
            'top': top[:cfg.top_lines],
            'bottom': bottom[:cfg.bottom_lines],
            'left': left[:cfg.side_lines],
            'right': right[:cfg.side_lines],
        }

    def default_region(self, page_width: float, page_height: float) -> ContentRegion:
        """Tolerance inset of the raw page, used when no border was found."""
        inset_x = self._inset(page_width)
        inset_y = self._inset(page_height)
        box = BoundingBox(inset_x, inset_y, page_width - inset_x, page_height - inset_y)
        return _snapped_region(box, page_width, page_height, confidence=DEGRADED_BORDER_CONFIDENCE)

    def _inset(self, extent: float) -> float:
        # Tiny pages keep at least half of their extent
        return min(self.config.tolerance, extent / 4)

    def _content_region(
        self,
        borders: Dict[str, List[DetectedLine]],
        page_width: float,
        page_height: float,
    ) -> ContentRegion:
        tol = self.config.tolerance
        inset_x = self._inset(page_width)
        inset_y = self._inset(page_height)

        x0 = inset_x
        y0 = inset_y
        x1 = page_width - inset_x
        y1 = page_height - inset_y

        if borders['left']:
            x0 = max(l.position for l in borders['left']) + tol
        if borders['top']:
            y0 = max(l.position for l in borders['top']) + tol
        if borders['right']:
            x1 = min(l.position for l in borders['right']) - tol
        if borders['bottom']:
            y1 = min(l.position for l in borders['bottom']) - tol

        # Opposite borders too close together: fall back to the raw inset on that axis
        if x1 <= x0:
            logger.warning("Left and right borders leave no room, ignoring them")
            x0, x1 = inset_x, page_width - inset_x
        if y1 <= y0:
            logger.warning("Top and bottom borders leave no room, ignoring them")
            y0, y1 = inset_y, page_height - inset_y

        detected = sum(len(lines) for lines in borders.values())
        return _snapped_region(
            BoundingBox(x0, y0, x1, y1),
            page_width,
            page_height,
            removed_borders=borders,
            confidence=border_confidence(detected, self.config.expected_total),
        )


def validate_content_region(region: ContentRegion, page_width: float, page_height: float) -> bool:
    """True when the region lies within the page and is not empty."""
    return (
        region.x >= 0 and
        region.y >= 0 and
        region.width > 0 and
        region.height > 0 and
        region.x + region.width <= page_width and
        region.y + region.height <= page_height
    )


def _snapped_region(box: BoundingBox, page_width: float, page_height: float, **kwargs) -> ContentRegion:
    """Clip to the page and snap inwards to whole pixels."""
    box = box.clip(BoundingBox(0, 0, page_width, page_height))
    x0 = min(math.ceil(box.x0), math.floor(page_width))
    y0 = min(math.ceil(box.y0), math.floor(page_height))
    x1 = max(x0, math.floor(box.x1))
    y1 = max(y0, math.floor(box.y1))
    return ContentRegion(x=x0, y=y0, width=x1 - x0, height=y1 - y0, **kwargs)
