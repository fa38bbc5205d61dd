"""
Text Column Separators

Two-column gazette layouts are divided by a single vertical rule near the
middle of the content region. A vertical line counts as a separator only if
it is close to that centerline, tall enough, and crosses no horizontal line
(table grids cross their verticals, separators do not).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..confidence import clamp, mean
from .borders import ContentRegion
from .box import BoundingBox
from .lines import DetectedLine

logger = logging.getLogger(__name__)


class RejectionReason(Enum):
    OUTSIDE_REGION = 'outside_region'
    OUTSIDE_CENTER = 'outside_center'
    TOO_SHORT = 'too_short'
    INTERSECTS_TABLE = 'intersects_table'
    LOW_CONFIDENCE = 'low_confidence'


@dataclass
class SeparatorConfig:
    """Separator selection parameters."""
    center_tolerance: float = 50.0
    minimum_height: float = 0.6
    intersection_tolerance: float = 10.0
    confidence_threshold: float = 0.7


@dataclass
class TextColumn:
    """A column of prose text, filled in later by the content extractor."""
    box: BoundingBox
    index: int
    text: str = ''
    language: Optional[str] = None
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'bbox': self.box.to_dict(),
            'text': self.text,
            'language': self.language,
            'confidence': round(self.confidence, 3),
        }


@dataclass
class SeparatorAnalysis:
    """Outcome of separator detection on one page."""
    separators: List[DetectedLine] = field(default_factory=list)
    rejected: List[Tuple[DetectedLine, RejectionReason]] = field(default_factory=list)
    columns: List[TextColumn] = field(default_factory=list)
    center_x: float = 0.0
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'separators': [line.to_dict() for line in self.separators],
            'rejected': [
                {'line': line.to_dict(), 'reason': reason.value}
                for line, reason in self.rejected
            ],
            'columns': [column.to_dict() for column in self.columns],
            'center_x': self.center_x,
            'confidence': round(self.confidence, 3),
        }


def lines_cross(vertical: DetectedLine, horizontal: DetectedLine, tolerance: float) -> bool:
    """True if a vertical and a horizontal line meet, within tolerance."""
    x = vertical.position
    y = horizontal.position
    return (
        vertical.y1 - tolerance <= y <= vertical.y2 + tolerance and
        horizontal.x1 - tolerance <= x <= horizontal.x2 + tolerance
    )


class SeparatorDetector:
    """
    Splits the content region into text columns.

    Usage:
        detector = SeparatorDetector()
        analysis = detector.detect(vertical, horizontal, region)
        for column in analysis.columns:
            ...
    """

    def __init__(self, config: Optional[SeparatorConfig] = None):
        self.config = config or SeparatorConfig()

    def detect(
        self,
        vertical: Sequence[DetectedLine],
        horizontal: Sequence[DetectedLine],
        region: ContentRegion,
    ) -> SeparatorAnalysis:
        analysis = SeparatorAnalysis(center_x=region.center_x)

        for line in vertical:
            reason = self.check_line(line, horizontal, region)
            if reason is None:
                analysis.separators.append(line)
            else:
                analysis.rejected.append((line, reason))

        analysis.separators.sort(key=lambda l: l.position)
        analysis.columns = self.build_columns(analysis.separators, region)
        analysis.confidence = self._confidence(analysis.separators, len(vertical))

        logger.debug(
            f"{len(analysis.separators)} separators, "
            f"{len(analysis.columns)} columns, {len(analysis.rejected)} lines rejected"
        )
        return analysis

    def check_line(
        self,
        line: DetectedLine,
        horizontal: Sequence[DetectedLine],
        region: ContentRegion,
    ) -> Optional[RejectionReason]:
        """None if the line is a separator, otherwise why it is not."""
        cfg = self.config
        box = region.box

        if not (box.x0 <= line.position <= box.x1 and
                line.y1 >= box.y0 - cfg.intersection_tolerance and
                line.y2 <= box.y1 + cfg.intersection_tolerance):
            return RejectionReason.OUTSIDE_REGION
        if abs(line.position - region.center_x) > cfg.center_tolerance:
            return RejectionReason.OUTSIDE_CENTER
        if abs(line.y2 - line.y1) < region.height * cfg.minimum_height:
            return RejectionReason.TOO_SHORT
        if any(lines_cross(line, h, cfg.intersection_tolerance) for h in horizontal):
            return RejectionReason.INTERSECTS_TABLE
        if line.confidence < cfg.confidence_threshold:
            return RejectionReason.LOW_CONFIDENCE
        return None

    @staticmethod
    def build_columns(separators: Sequence[DetectedLine], region: ContentRegion) -> List[TextColumn]:
        """N separators give N + 1 columns spanning the region height."""
        box = region.box
        edges = [box.x0] + [s.position for s in sorted(separators, key=lambda l: l.position)] + [box.x1]
        return [
            TextColumn(box=BoundingBox(left, box.y0, right, box.y1), index=i)
            for i, (left, right) in enumerate(zip(edges, edges[1:]))
        ]

    @staticmethod
    def _confidence(separators: Sequence[DetectedLine], candidates: int) -> float:
        if candidates == 0:
            return 0.0
        acceptance = len(separators) / candidates
        found_bonus = 0.2 if separators else 0.0
        return clamp(acceptance * 0.4 + mean(s.confidence for s in separators) * 0.4 + found_bonus)
