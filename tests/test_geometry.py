"""
Tests for page geometry: lines, borders, separators and tables.

Run with: pytest tests/ -v
"""

import random

import numpy as np
import pytest

from ocr_ia.errors import GeometryDetectionFailure
from ocr_ia.layout import BorderRemover, BoundingBox, ContentRegion, DetectedLine, LineDetector, PageImage, SeparatorDetector
from ocr_ia.layout.borders import BorderConfig, validate_content_region
from ocr_ia.layout.box import calculate_iou, merge_boxes
from ocr_ia.layout.columns import RejectionReason
from ocr_ia.layout.lines import (
    FixtureLineBackend,
    HoughLineBackend,
    LineDetectionConfig,
    MorphologicalLineBackend,
    Orientation,
    get_backend,
)
from ocr_ia.tables import GridBuilder, TableDetector
from ocr_ia.tables.grid import infer_implicit_rows
from ocr_ia.tables.table_detector import TableCandidate


def grid_lines(positions, start, end):
    horizontal = [DetectedLine.horizontal(p, start, end) for p in positions]
    vertical = [DetectedLine.vertical(p, start, end) for p in positions]
    return horizontal, vertical


class TestBoundingBox:
    """Tests for the box helpers."""

    def test_dimensions(self):
        box = BoundingBox(10, 20, 110, 70)
        assert box.width == 100
        assert box.height == 50
        assert box.area == 5000
        assert box.center == (60, 45)

    def test_intersection(self):
        a = BoundingBox(0, 0, 100, 100)
        b = BoundingBox(50, 50, 150, 150)
        assert a.intersects(b)
        assert a.intersection(b) == BoundingBox(50, 50, 100, 100)

    def test_disjoint(self):
        a = BoundingBox(0, 0, 10, 10)
        b = BoundingBox(20, 20, 30, 30)
        assert a.intersection(b) is None
        assert calculate_iou(a, b) == 0.0

    def test_iou_identical(self):
        box = BoundingBox(0, 0, 40, 40)
        assert calculate_iou(box, box) == pytest.approx(1.0)

    def test_merge(self):
        merged = merge_boxes([BoundingBox(0, 0, 10, 10), BoundingBox(5, 5, 30, 20)])
        assert merged == BoundingBox(0, 0, 30, 20)


class TestLineClassification:
    """Tests for segment orientation and confidence."""

    def setup_method(self):
        self.detector = LineDetector(LineDetectionConfig())

    def test_exact_horizontal(self):
        line = self.detector.classify_segment((0, 100, 300, 100))
        assert line.orientation == Orientation.HORIZONTAL
        assert line.confidence == pytest.approx(1.0)

    def test_slightly_tilted_horizontal(self):
        # about 5.7 degrees off axis
        line = self.detector.classify_segment((0, 0, 300, 30))
        assert line.orientation == Orientation.HORIZONTAL
        assert line.confidence < 1.0

    def test_diagonal_dropped(self):
        assert self.detector.classify_segment((0, 0, 100, 100)) is None

    def test_vertical(self):
        line = self.detector.classify_segment((50, 300, 50, 0))
        assert line.orientation == Orientation.VERTICAL
        assert line.y1 < line.y2

    def test_reversed_horizontal_normalized(self):
        line = self.detector.classify_segment((0, 0, -300, 0))
        assert line.orientation == Orientation.HORIZONTAL
        assert line.x1 <= line.x2

    def test_classify_filters_short_and_diagonal(self):
        segments = [(0, 100, 300, 100), (0, 0, 100, 100), (50, 0, 50, 300), (0, 0, 30, 0)]
        horizontal, vertical = self.detector.classify(segments)
        assert len(horizontal) == 1
        assert len(vertical) == 1

    def test_every_line_meets_threshold(self):
        rng = random.Random(7)
        segments = [
            (rng.uniform(0, 500), rng.uniform(0, 500), rng.uniform(0, 500), rng.uniform(0, 500))
            for _ in range(200)
        ]
        horizontal, vertical = self.detector.classify(segments)
        for line in horizontal + vertical:
            assert line.confidence >= 0.6
            assert line.length >= 50


class TestLineDetector:
    """Tests for line detection on pages."""

    def test_fixture_backend(self):
        backend = FixtureLineBackend([(0, 100, 300, 100), (50, 0, 50, 300), (0, 0, 100, 30)])
        result = LineDetector(backend=backend).detect(PageImage.blank(400, 400))
        assert len(result.horizontal) == 1
        assert len(result.vertical) == 1
        assert result.candidates == 3
        assert 0 < result.confidence <= 1

    def test_blank_page_warns(self):
        result = LineDetector(backend=FixtureLineBackend([])).detect(PageImage.blank(200, 200))
        assert result.total == 0
        assert result.confidence == 0.0
        assert result.warnings

    def test_morphological_synthetic_page(self):
        pixels = np.full((600, 400), 255, dtype=np.uint8)
        pixels[100:103, 50:350] = 0
        pixels[150:550, 200:203] = 0
        page = PageImage(page_number=1, pixels=pixels)

        result = LineDetector(backend=MorphologicalLineBackend()).detect(page)

        assert len(result.horizontal) == 1
        assert len(result.vertical) == 1
        assert abs(result.horizontal[0].position - 101) <= 3
        assert abs(result.vertical[0].position - 201) <= 3

    def test_backend_failure_is_reported(self):
        class BrokenBackend(FixtureLineBackend):
            name = 'broken'

            def find_segments(self, pixels, config):
                raise GeometryDetectionFailure("mask failed")

        result = LineDetector(backend=BrokenBackend([])).detect(PageImage.blank(100, 100))
        assert result.total == 0
        assert any('mask failed' in w for w in result.warnings)

    def test_backend_by_name(self):
        assert isinstance(get_backend('hough'), HoughLineBackend)
        assert isinstance(get_backend('morphological'), MorphologicalLineBackend)
        with pytest.raises(ValueError):
            get_backend('canny')

    def test_configured_backend(self):
        detector = LineDetector(LineDetectionConfig(backend='hough'))
        assert isinstance(detector.backend, HoughLineBackend)
        assert isinstance(LineDetector().backend, MorphologicalLineBackend)


class TestBorderRemover:
    """Tests for border removal."""

    def setup_method(self):
        self.remover = BorderRemover(BorderConfig())

    def test_no_lines_default_region(self):
        region = self.remover.remove_borders([], [], 1000, 1400)
        assert region.confidence == 0.5
        assert validate_content_region(region, 1000, 1400)
        assert region.x == 15 and region.y == 15

    def test_framed_page(self):
        horizontal = [DetectedLine.horizontal(40, 20, 980), DetectedLine.horizontal(1360, 20, 980)]
        vertical = [DetectedLine.vertical(30, 20, 1380), DetectedLine.vertical(970, 20, 1380)]
        region = self.remover.remove_borders(horizontal, vertical, 1000, 1400)

        assert region.x == 45
        assert region.y == 55
        assert region.x + region.width == 955
        assert region.y + region.height == 1345
        assert region.is_border(horizontal[0])

    def test_short_lines_are_not_borders(self):
        horizontal = [DetectedLine.horizontal(40, 400, 600)]
        region = self.remover.remove_borders(horizontal, [], 1000, 1400)
        assert region.confidence == 0.5

    def test_region_always_inside_page(self):
        rng = random.Random(42)
        for _ in range(50):
            width = rng.randint(20, 2000)
            height = rng.randint(20, 2000)
            horizontal = [
                DetectedLine.horizontal(rng.uniform(-50, height + 50), rng.uniform(-50, 10), rng.uniform(width - 10, width + 50))
                for _ in range(rng.randint(0, 6))
            ]
            vertical = [
                DetectedLine.vertical(rng.uniform(-50, width + 50), rng.uniform(-50, 10), rng.uniform(height - 10, height + 50))
                for _ in range(rng.randint(0, 6))
            ]
            region = self.remover.remove_borders(horizontal, vertical, width, height)
            assert region.x >= 0 and region.y >= 0
            assert region.width >= 0 and region.height >= 0
            assert region.x + region.width <= width
            assert region.y + region.height <= height


class TestSeparatorDetector:
    """Tests for column separators."""

    def setup_method(self):
        self.detector = SeparatorDetector()
        self.region = ContentRegion(x=0, y=0, width=1000, height=1400)

    def test_central_separator_gives_two_columns(self):
        separator = DetectedLine.vertical(500, 100, 1300)
        analysis = self.detector.detect([separator], [], self.region)

        assert analysis.separators == [separator]
        assert len(analysis.columns) == 2
        assert analysis.columns[0].box.x1 == 500
        assert analysis.columns[1].box.x0 == 500

    def test_crossing_line_rejected(self):
        separator = DetectedLine.vertical(500, 100, 1300)
        rule = DetectedLine.horizontal(700, 400, 600)
        analysis = self.detector.detect([separator], [rule], self.region)

        assert analysis.separators == []
        assert analysis.rejected == [(separator, RejectionReason.INTERSECTS_TABLE)]
        assert len(analysis.columns) == 1

    def test_off_center_rejected(self):
        line = DetectedLine.vertical(200, 100, 1300)
        assert self.detector.check_line(line, [], self.region) == RejectionReason.OUTSIDE_CENTER

    def test_short_rejected(self):
        line = DetectedLine.vertical(500, 100, 400)
        assert self.detector.check_line(line, [], self.region) == RejectionReason.TOO_SHORT

    def test_separators_never_touch_horizontal_lines(self):
        rng = random.Random(3)
        vertical = [DetectedLine.vertical(rng.uniform(400, 600), rng.uniform(0, 300), rng.uniform(1100, 1400)) for _ in range(20)]
        horizontal = [DetectedLine.horizontal(rng.uniform(0, 1400), rng.uniform(0, 500), rng.uniform(500, 1000)) for _ in range(5)]
        analysis = self.detector.detect(vertical, horizontal, self.region)

        assert len(analysis.columns) == len(analysis.separators) + 1
        for separator in analysis.separators:
            for rule in horizontal:
                crosses = (separator.y1 - 10 <= rule.position <= separator.y2 + 10 and
                           rule.x1 - 10 <= separator.position <= rule.x2 + 10)
                assert not crosses


class TestTableDetector:
    """Tests for ruled table detection."""

    def setup_method(self):
        self.detector = TableDetector()
        self.region = ContentRegion(x=0, y=0, width=1000, height=1000)

    def test_two_by_two_grid(self):
        horizontal, vertical = grid_lines([100, 180, 260], 100, 260)
        result = self.detector.detect(horizontal, vertical, self.region)

        assert len(result.tables) == 1
        table = result.tables[0]
        assert table.rows == 2
        assert table.columns == 2
        assert table.confidence >= 0.6
        assert len(result.intersections) == 9

    def test_no_lines(self):
        result = self.detector.detect([], [], self.region)
        assert result.tables == []
        assert result.confidence == 0.0

    def test_deterministic(self):
        horizontal, vertical = grid_lines([100, 180, 260], 100, 260)
        first = self.detector.detect(horizontal, vertical, self.region)
        second = self.detector.detect(list(reversed(horizontal)), list(reversed(vertical)), self.region)
        assert [t.box for t in first.tables] == [t.box for t in second.tables]

    def test_selected_tables_do_not_overlap(self):
        h1, v1 = grid_lines([100, 180, 260], 100, 260)
        h2, v2 = grid_lines([600, 680, 760], 600, 760)
        result = self.detector.detect(h1 + h2, v1 + v2, self.region)

        assert len(result.tables) == 2
        a, b = result.tables
        assert calculate_iou(a.box, b.box) <= 0.5

    def test_single_row_of_wide_cells(self):
        horizontal = [DetectedLine.horizontal(y, 100, 500) for y in (100, 160)]
        vertical = [DetectedLine.vertical(x, 100, 160) for x in (100, 233, 366, 500)]

        result = self.detector.detect(horizontal, vertical, self.region)

        assert len(result.tables) == 1
        table = result.tables[0]
        assert (table.rows, table.columns) == (1, 3)
        assert GridBuilder().build(table).cell_count == 3


class TestGridBuilder:
    """Tests for cell grids."""

    def setup_method(self):
        self.builder = GridBuilder()
        horizontal, vertical = grid_lines([100, 180, 260], 100, 260)
        region = ContentRegion(x=0, y=0, width=1000, height=1000)
        self.candidate = TableDetector().detect(horizontal, vertical, region).tables[0]

    def test_cells(self):
        table = self.builder.build(self.candidate, page_number=1)
        assert table.rows == 2
        assert table.columns == 2
        assert table.cell_count == 4
        cell = table.cell(1, 1)
        assert cell.box == BoundingBox(180, 180, 260, 260)

    def test_degenerate_candidate_raises(self):
        candidate = TableCandidate(
            box=BoundingBox(0, 0, 200, 200),
            intersections=[],
            horizontal=[],
            vertical=[],
            row_positions=[0.0],
            column_positions=[0.0, 200.0],
            confidence=0.9,
        )
        with pytest.raises(GeometryDetectionFailure):
            self.builder.build(candidate)

    def test_implicit_rows(self):
        rows, inferred = infer_implicit_rows([0, 40, 80, 200], min_row_height=20)
        assert inferred == [120, 160]
        assert rows == [0, 40, 80, 120, 160, 200]

    def test_irregular_gap_not_split(self):
        rows, inferred = infer_implicit_rows([0, 40, 100], min_row_height=20)
        assert inferred == []
        assert rows == [0, 40, 100]
