"""
Line Detection

Finds straight horizontal and vertical rules on a page raster. Rules carry
most of the structure of Algerian official documents: decorative borders,
the column separator of two-column layouts, and table grids.

Detection is split in two:
- A backend turns a pixel buffer into raw segments (x1, y1, x2, y2)
- The detector classifies segments by angle and scores them

Backends:
- MorphologicalLineBackend: closing + binarization, then row/column run scan
- HoughLineBackend: OpenCV probabilistic Hough transform
- FixtureLineBackend: returns fixed segments (synthetic layouts, tests)
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..confidence import line_confidence, mean
from ..errors import GeometryDetectionFailure
from .page import PageImage

logger = logging.getLogger(__name__)

Segment = Tuple[float, float, float, float]


class Orientation(Enum):
    """Axis of a detected rule."""
    HORIZONTAL = 'horizontal'
    VERTICAL = 'vertical'


@dataclass(frozen=True)
class DetectedLine:
    """
    A classified line segment.

    Horizontal lines are stored with x1 <= x2, vertical lines with y1 <= y2.
    """
    x1: float
    y1: float
    x2: float
    y2: float
    orientation: Orientation
    confidence: float = 1.0
    thickness: Optional[float] = None

    @property
    def is_horizontal(self) -> bool:
        return self.orientation == Orientation.HORIZONTAL

    @property
    def is_vertical(self) -> bool:
        return self.orientation == Orientation.VERTICAL

    @property
    def length(self) -> float:
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)

    @property
    def angle(self) -> float:
        return segment_angle((self.x1, self.y1, self.x2, self.y2))

    @property
    def position(self) -> float:
        """y of a horizontal line, x of a vertical line."""
        if self.is_horizontal:
            return (self.y1 + self.y2) / 2
        return (self.x1 + self.x2) / 2

    @property
    def start(self) -> float:
        return self.x1 if self.is_horizontal else self.y1

    @property
    def end(self) -> float:
        return self.x2 if self.is_horizontal else self.y2

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'x1': self.x1,
            'y1': self.y1,
            'x2': self.x2,
            'y2': self.y2,
            'orientation': self.orientation.value,
            'confidence': round(self.confidence, 3),
        }
        if self.thickness is not None:
            data['thickness'] = self.thickness
        return data

    @classmethod
    def horizontal(cls, y: float, x1: float, x2: float, confidence: float = 1.0) -> 'DetectedLine':
        return cls(min(x1, x2), y, max(x1, x2), y, Orientation.HORIZONTAL, confidence)

    @classmethod
    def vertical(cls, x: float, y1: float, y2: float, confidence: float = 1.0) -> 'DetectedLine':
        return cls(x, min(y1, y2), x, max(y1, y2), Orientation.VERTICAL, confidence)


def segment_angle(segment: Segment) -> float:
    """Angle of a segment in degrees, in (-180, 180]."""
    x1, y1, x2, y2 = segment
    return math.degrees(math.atan2(y2 - y1, x2 - x1))


@dataclass
class LineDetectionConfig:
    """Line detection parameters."""
    hough_threshold: int = 100
    min_line_length: int = 50
    max_line_gap: int = 5
    dilation_kernel: int = 3
    erosion_kernel: int = 2
    min_angle: float = 10.0
    max_angle: float = 170.0
    confidence_threshold: float = 0.6
    backend: str = 'morphological'

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class LineDetectionResult:
    """Lines found on one page."""
    horizontal: List[DetectedLine] = field(default_factory=list)
    vertical: List[DetectedLine] = field(default_factory=list)
    confidence: float = 0.0
    candidates: int = 0
    processing_time: float = 0.0
    warnings: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.horizontal) + len(self.vertical)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'horizontal': [line.to_dict() for line in self.horizontal],
            'vertical': [line.to_dict() for line in self.vertical],
            'confidence': round(self.confidence, 3),
            'candidates': self.candidates,
            'processing_time': round(self.processing_time, 4),
            'warnings': self.warnings,
        }


# -- backends -------------------------------------------------------------------

class LineBackend:
    """Turns a pixel buffer into raw segments."""

    name = 'base'

    def find_segments(self, pixels: np.ndarray, config: LineDetectionConfig) -> List[Segment]:
        raise NotImplementedError


def prepare_line_mask(pixels: np.ndarray, config: LineDetectionConfig) -> np.ndarray:
    """
    Grayscale, closing (dilate then erode) and binarize.

    Returns:
        uint8 mask where ink is 255
    """
    try:
        if pixels.ndim == 3:
            gray = cv2.cvtColor(pixels, cv2.COLOR_RGB2GRAY)
        else:
            gray = pixels
        gray = gray.astype(np.uint8)

        # Rules are dark on a light background; work on the ink layer
        ink = cv2.bitwise_not(gray)

        dilate_kernel = np.ones((config.dilation_kernel, config.dilation_kernel), np.uint8)
        erode_kernel = np.ones((config.erosion_kernel, config.erosion_kernel), np.uint8)
        closed = cv2.erode(cv2.dilate(ink, dilate_kernel), erode_kernel)

        _, binary = cv2.threshold(closed, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    except cv2.error as e:
        raise GeometryDetectionFailure(f"Cannot build line mask: {e}") from e
    return binary


def find_runs(row: np.ndarray, min_length: int, max_gap: int) -> List[Tuple[int, int]]:
    """
    Runs of foreground pixels in one row.

    Runs separated by at most ``max_gap`` background pixels are merged.

    Returns:
        Inclusive (start, end) index pairs of runs at least ``min_length`` long
    """
    padded = np.concatenate(([False], row.astype(bool), [False]))
    diff = np.diff(padded.astype(np.int8))
    starts = np.flatnonzero(diff == 1)
    ends = np.flatnonzero(diff == -1)

    runs: List[List[int]] = []
    for start, end in zip(starts, ends):
        if runs and start - runs[-1][1] <= max_gap:
            runs[-1][1] = int(end)
        else:
            runs.append([int(start), int(end)])

    return [(start, end - 1) for start, end in runs if end - start >= min_length]


class MorphologicalLineBackend(LineBackend):
    """Run scan over rows and columns of the closed, binarized page."""

    name = 'morphological'

    def find_segments(self, pixels: np.ndarray, config: LineDetectionConfig) -> List[Segment]:
        mask = prepare_line_mask(pixels, config) > 0

        segments: List[Segment] = []
        for y, x0, x1, _ in self._scan(mask, config):
            segments.append((x0, y, x1, y))
        for x, y0, y1, _ in self._scan(mask.T, config):
            segments.append((x, y0, x, y1))
        return segments

    def _scan(self, mask: np.ndarray, config: LineDetectionConfig) -> List[Tuple[float, float, float, int]]:
        """
        Scan rows of ``mask`` and fuse runs of adjacent rows into strokes.

        Returns:
            (row position, start, end, thickness) per stroke
        """
        strokes: List[Dict[str, Any]] = []
        open_strokes: List[Dict[str, Any]] = []

        for index in range(mask.shape[0]):
            runs = find_runs(mask[index], config.min_line_length, config.max_line_gap)
            still_open = []
            for start, end in runs:
                stroke = self._matching_stroke(open_strokes, index, start, end)
                if stroke is None:
                    stroke = {'rows': [], 'start': start, 'end': end}
                    strokes.append(stroke)
                else:
                    stroke['start'] = min(stroke['start'], start)
                    stroke['end'] = max(stroke['end'], end)
                stroke['rows'].append(index)
                still_open.append(stroke)
            open_strokes = still_open

        return [
            (sum(s['rows']) / len(s['rows']), float(s['start']), float(s['end']), len(s['rows']))
            for s in strokes
        ]

    @staticmethod
    def _matching_stroke(open_strokes, index, start, end):
        for stroke in open_strokes:
            if stroke['rows'][-1] != index - 1:
                continue
            overlap = min(end, stroke['end']) - max(start, stroke['start'])
            shorter = min(end - start, stroke['end'] - stroke['start'])
            if shorter > 0 and overlap >= shorter * 0.5:
                return stroke
        return None


class HoughLineBackend(LineBackend):
    """OpenCV probabilistic Hough transform on the closed mask."""

    name = 'hough'

    def find_segments(self, pixels: np.ndarray, config: LineDetectionConfig) -> List[Segment]:
        mask = prepare_line_mask(pixels, config)
        try:
            found = cv2.HoughLinesP(
                mask,
                rho=1,
                theta=np.pi / 180,
                threshold=config.hough_threshold,
                minLineLength=config.min_line_length,
                maxLineGap=config.max_line_gap,
            )
        except cv2.error as e:
            raise GeometryDetectionFailure(f"Hough transform failed: {e}") from e
        if found is None:
            return []
        return [tuple(float(v) for v in segment[0]) for segment in found]


class FixtureLineBackend(LineBackend):
    """Returns a fixed set of segments whatever the page."""

    name = 'fixture'

    def __init__(self, segments: Sequence[Segment]):
        self.segments = [tuple(float(v) for v in s) for s in segments]

    def find_segments(self, pixels: np.ndarray, config: LineDetectionConfig) -> List[Segment]:
        return list(self.segments)


BACKENDS = {
    MorphologicalLineBackend.name: MorphologicalLineBackend,
    HoughLineBackend.name: HoughLineBackend,
}


def get_backend(name: str) -> LineBackend:
    """
    Raises:
        ValueError: For a backend name not in BACKENDS
    """
    try:
        return BACKENDS[name]()
    except KeyError:
        raise ValueError(f"Unknown line backend '{name}' (expected one of {sorted(BACKENDS)})") from None


# -- detector -------------------------------------------------------------------

class LineDetector:
    """
    Detects and classifies rules on a page.

    Usage:
        detector = LineDetector()
        result = detector.detect(page)
        for line in result.horizontal:
            print(line.position, line.confidence)
    """

    def __init__(
        self,
        config: Optional[LineDetectionConfig] = None,
        backend: Optional[LineBackend] = None,
    ):
        self.config = config or LineDetectionConfig()
        self.backend = backend or get_backend(self.config.backend)

    def detect(self, page: PageImage) -> LineDetectionResult:
        start_time = time.time()
        result = LineDetectionResult()

        try:
            segments = self.backend.find_segments(page.pixels, self.config)
        except GeometryDetectionFailure as e:
            logger.warning(f"Line backend '{self.backend.name}' failed on page {page.page_number}: {e}")
            result.warnings.append(f"line detection failed: {e}")
            segments = []

        horizontal, vertical = self.classify(segments)
        result.horizontal = horizontal
        result.vertical = vertical
        result.candidates = len(segments)
        result.confidence = self._detection_confidence(horizontal, vertical, len(segments))
        result.processing_time = time.time() - start_time

        if not result.total:
            result.warnings.append(f"no usable lines on page {page.page_number}")
            logger.warning(f"No usable lines on page {page.page_number}")
        else:
            logger.debug(
                f"Page {page.page_number}: {len(horizontal)} horizontal, "
                f"{len(vertical)} vertical lines from {len(segments)} segments"
            )
        return result

    def classify(self, segments: Sequence[Segment]) -> Tuple[List[DetectedLine], List[DetectedLine]]:
        """
        Split raw segments by angle and keep the confident ones.

        |angle| < min_angle or > max_angle is horizontal, 80-100 degrees is
        vertical, anything else is dropped.
        """
        horizontal: List[DetectedLine] = []
        vertical: List[DetectedLine] = []

        for segment in segments:
            line = self.classify_segment(segment)
            if line is None:
                continue
            if line.length < self.config.min_line_length:
                continue
            if line.confidence < self.config.confidence_threshold:
                continue
            if line.is_horizontal:
                horizontal.append(line)
            else:
                vertical.append(line)

        horizontal.sort(key=lambda l: (l.position, l.start))
        vertical.sort(key=lambda l: (l.position, l.start))
        return horizontal, vertical

    def classify_segment(self, segment: Segment) -> Optional[DetectedLine]:
        x1, y1, x2, y2 = segment
        abs_angle = abs(segment_angle(segment))
        length = math.hypot(x2 - x1, y2 - y1)

        if abs_angle < self.config.min_angle or abs_angle > self.config.max_angle:
            deviation = min(abs_angle, 180.0 - abs_angle)
            if x1 > x2:
                x1, y1, x2, y2 = x2, y2, x1, y1
            return DetectedLine(
                x1, y1, x2, y2,
                Orientation.HORIZONTAL,
                line_confidence(deviation, length),
            )

        if 80.0 < abs_angle < 100.0:
            deviation = abs(abs_angle - 90.0)
            if y1 > y2:
                x1, y1, x2, y2 = x2, y2, x1, y1
            return DetectedLine(
                x1, y1, x2, y2,
                Orientation.VERTICAL,
                line_confidence(deviation, length),
            )

        return None

    @staticmethod
    def _detection_confidence(horizontal, vertical, candidates: int) -> float:
        if candidates == 0:
            return 0.0
        kept = horizontal + vertical
        rate = len(kept) / candidates
        return (rate + mean(l.confidence for l in kept)) / 2
