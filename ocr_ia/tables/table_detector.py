"""
Table Detection

Finds ruled tables from the horizontal and vertical lines of a page.

Steps:
1. Intersections between every horizontal and vertical line, inside the
   content region
2. Single-linkage clustering of intersections (distance <= 3x the larger
   minimum cell dimension, or a shared rule); clusters of 4+ points are
   candidates
3. Lines belonging to each candidate, rows/columns = distinct positions - 1
4. Confidence from intersection density, intersection confidence and grid
   regularity
5. Size/confidence filtering and greedy non-max suppression
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..confidence import (
    TABLE_DENSITY_BLOCK,
    clamp,
    mean,
    table_confidence,
    table_selection_score,
)
from ..layout.borders import ContentRegion
from ..layout.box import BoundingBox, calculate_iou
from ..layout.lines import DetectedLine

logger = logging.getLogger(__name__)


@dataclass
class TableDetectionConfig:
    """Table detection parameters."""
    min_table_width: float = 100.0
    min_table_height: float = 50.0
    min_cell_width: float = 30.0
    min_cell_height: float = 20.0
    intersection_tolerance: float = 5.0
    confidence_threshold: float = 0.6
    max_overlap: float = 0.5
    cluster_factor: float = 3.0

    @property
    def cluster_distance(self) -> float:
        return self.cluster_factor * max(self.min_cell_width, self.min_cell_height)


@dataclass(frozen=True)
class LineIntersection:
    """Crossing point of a horizontal and a vertical line."""
    x: float
    y: float
    horizontal: DetectedLine
    vertical: DetectedLine
    confidence: float


@dataclass
class TableCandidate:
    """
    A cluster of intersections that looks like a ruled table.
    """
    box: BoundingBox
    intersections: List[LineIntersection]
    horizontal: List[DetectedLine]
    vertical: List[DetectedLine]
    row_positions: List[float]
    column_positions: List[float]
    confidence: float
    score: float = 0.0

    @property
    def rows(self) -> int:
        return max(len(self.row_positions) - 1, 0)

    @property
    def columns(self) -> int:
        return max(len(self.column_positions) - 1, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bbox': self.box.to_dict(),
            'rows': self.rows,
            'columns': self.columns,
            'intersections': len(self.intersections),
            'confidence': round(self.confidence, 3),
            'score': round(self.score, 3),
        }


@dataclass
class TableDetectionResult:
    """All tables found on one page."""
    tables: List[TableCandidate] = field(default_factory=list)
    candidates: List[TableCandidate] = field(default_factory=list)
    intersections: List[LineIntersection] = field(default_factory=list)
    confidence: float = 0.0
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tables': [t.to_dict() for t in self.tables],
            'candidates': len(self.candidates),
            'intersections': len(self.intersections),
            'confidence': round(self.confidence, 3),
            'processing_time': round(self.processing_time, 4),
        }


def cluster_values(values: Sequence[float], tolerance: float) -> List[Tuple[float, List[float]]]:
    """
    Group sorted values whose consecutive gaps are within tolerance.

    Returns:
        (center, members) per cluster, in ascending order
    """
    if not values:
        return []

    sorted_values = sorted(values)
    clusters = []
    current_cluster = [sorted_values[0]]

    for value in sorted_values[1:]:
        if value - current_cluster[-1] <= tolerance:
            current_cluster.append(value)
        else:
            clusters.append((sum(current_cluster) / len(current_cluster), current_cluster))
            current_cluster = [value]

    clusters.append((sum(current_cluster) / len(current_cluster), current_cluster))
    return clusters


def spacing_regularity(positions: Sequence[float]) -> float:
    """
    1 for evenly spaced positions, decreasing with the coefficient of
    variation of the gaps.
    """
    if len(positions) < 3:
        return 1.0
    gaps = [b - a for a, b in zip(positions, positions[1:])]
    avg = sum(gaps) / len(gaps)
    if avg <= 0:
        return 0.0
    variance = sum((g - avg) ** 2 for g in gaps) / len(gaps)
    return clamp(1.0 - math.sqrt(variance) / avg)


class TableDetector:
    """
    Detects ruled tables from detected lines.

    Usage:
        detector = TableDetector()
        result = detector.detect(lines.horizontal, lines.vertical, region)
        for table in result.tables:
            print(table.box, table.rows, table.columns)
    """

    def __init__(self, config: Optional[TableDetectionConfig] = None):
        self.config = config or TableDetectionConfig()

    def detect(
        self,
        horizontal: Sequence[DetectedLine],
        vertical: Sequence[DetectedLine],
        region: ContentRegion,
    ) -> TableDetectionResult:
        start_time = time.time()

        intersections = self.find_intersections(horizontal, vertical, region)
        candidates = []
        for cluster in self.cluster_intersections(intersections):
            candidate = self._candidate_from_cluster(cluster, horizontal, vertical)
            if candidate is not None and self._is_valid(candidate):
                candidates.append(candidate)

        tables = self.select_tables(candidates)

        result = TableDetectionResult(
            tables=tables,
            candidates=candidates,
            intersections=intersections,
            confidence=self._detection_confidence(tables, candidates),
            processing_time=time.time() - start_time,
        )
        logger.debug(
            f"{len(intersections)} intersections, {len(candidates)} candidates, "
            f"{len(tables)} tables"
        )
        return result

    def find_intersections(
        self,
        horizontal: Sequence[DetectedLine],
        vertical: Sequence[DetectedLine],
        region: ContentRegion,
    ) -> List[LineIntersection]:
        tol = self.config.intersection_tolerance
        box = region.box
        intersections = []

        for h in horizontal:
            y = h.position
            for v in vertical:
                x = v.position
                if not (v.y1 - tol <= y <= v.y2 + tol and h.x1 - tol <= x <= h.x2 + tol):
                    continue
                if not box.contains_point(x, y):
                    continue
                intersections.append(LineIntersection(
                    x=x,
                    y=y,
                    horizontal=h,
                    vertical=v,
                    confidence=(h.confidence + v.confidence) / 2,
                ))

        intersections.sort(key=lambda i: (i.y, i.x))
        return intersections

    def cluster_intersections(self, intersections: Sequence[LineIntersection]) -> List[List[LineIntersection]]:
        """
        Connected components of intersections. Two intersections are linked
        when they are closer than the cluster distance or lie on the same rule.
        """
        limit = self.config.cluster_distance
        unvisited = set(range(len(intersections)))
        clusters = []

        for seed in range(len(intersections)):
            if seed not in unvisited:
                continue
            unvisited.discard(seed)
            members = [seed]
            stack = [seed]
            while stack:
                current = intersections[stack.pop()]
                near = [j for j in unvisited if self._linked(intersections[j], current, limit)]
                for j in near:
                    unvisited.discard(j)
                    members.append(j)
                    stack.append(j)
            if len(members) >= 4:
                clusters.append([intersections[i] for i in sorted(members)])

        return clusters

    @staticmethod
    def _linked(a: LineIntersection, b: LineIntersection, limit: float) -> bool:
        if a.horizontal is b.horizontal or a.vertical is b.vertical:
            return True
        return math.hypot(a.x - b.x, a.y - b.y) <= limit

    def _candidate_from_cluster(
        self,
        cluster: List[LineIntersection],
        horizontal: Sequence[DetectedLine],
        vertical: Sequence[DetectedLine],
    ) -> Optional[TableCandidate]:
        box = BoundingBox.from_points([(i.x, i.y) for i in cluster])
        tol = self.config.intersection_tolerance

        table_h = [
            l for l in horizontal
            if box.y0 - tol <= l.position <= box.y1 + tol and l.x1 <= box.x1 + tol and l.x2 >= box.x0 - tol
        ]
        table_v = [
            l for l in vertical
            if box.x0 - tol <= l.position <= box.x1 + tol and l.y1 <= box.y1 + tol and l.y2 >= box.y0 - tol
        ]

        rows = [c for c, _ in cluster_values([l.position for l in table_h], tol)]
        cols = [c for c, _ in cluster_values([l.position for l in table_v], tol)]
        if len(rows) < 2 or len(cols) < 2:
            return None

        blocks = (box.width / TABLE_DENSITY_BLOCK) * (box.height / TABLE_DENSITY_BLOCK)
        density = len(cluster) / blocks if blocks > 0 else 0.0
        regularity = (spacing_regularity(rows) + spacing_regularity(cols)) / 2
        confidence = table_confidence(density, mean(i.confidence for i in cluster), regularity)

        return TableCandidate(
            box=box,
            intersections=cluster,
            horizontal=sorted(table_h, key=lambda l: l.position),
            vertical=sorted(table_v, key=lambda l: l.position),
            row_positions=rows,
            column_positions=cols,
            confidence=confidence,
        )

    def _is_valid(self, candidate: TableCandidate) -> bool:
        return (
            candidate.box.width >= self.config.min_table_width and
            candidate.box.height >= self.config.min_table_height and
            candidate.rows >= 1 and
            candidate.columns >= 1
        )

    def select_tables(self, candidates: Sequence[TableCandidate]) -> List[TableCandidate]:
        """
        Keep confident candidates, best score first, dropping any that
        overlaps an already selected table by more than max_overlap of the
        union area.
        """
        eligible = [c for c in candidates if c.confidence >= self.config.confidence_threshold]
        if not eligible:
            return []

        largest = max(c.box.area for c in eligible)
        for candidate in eligible:
            normalized_area = candidate.box.area / largest if largest > 0 else 0.0
            candidate.score = table_selection_score(candidate.confidence, normalized_area)

        ranked = sorted(eligible, key=lambda c: (-c.score, c.box.to_tuple()))
        selected: List[TableCandidate] = []
        for candidate in ranked:
            if any(calculate_iou(candidate.box, kept.box) > self.config.max_overlap for kept in selected):
                continue
            selected.append(candidate)

        return sorted(selected, key=lambda c: (c.box.y0, c.box.x0))

    @staticmethod
    def _detection_confidence(tables, candidates) -> float:
        if not candidates:
            return 0.0
        selection = len(tables) / len(candidates)
        return clamp(mean(c.confidence for c in candidates) * 0.7 + selection * 0.3)
