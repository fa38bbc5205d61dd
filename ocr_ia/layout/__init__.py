"""
Page Geometry Package

Finds the ruled structure of a rasterized page.

Key Components:
- BoundingBox: pixel rectangle shared by all geometric stages
- PageImage: one rasterized page
- LineDetector: horizontal/vertical rules with confidence
- BorderRemover: decorative frame removal, content region
- SeparatorDetector: column separators and text columns

Usage:
    from ocr_ia.layout import LineDetector, BorderRemover, SeparatorDetector

    lines = LineDetector().detect(page)
    region = BorderRemover().remove_borders(lines.horizontal, lines.vertical, page.width, page.height)
    columns = SeparatorDetector().detect(lines.vertical, lines.horizontal, region).columns
"""

from .box import (
    BoundingBox,
    merge_boxes,
    calculate_iou,
)
from .page import PageImage
from .lines import (
    DetectedLine,
    Orientation,
    LineDetectionConfig,
    LineDetectionResult,
    LineDetector,
    LineBackend,
    MorphologicalLineBackend,
    HoughLineBackend,
    FixtureLineBackend,
    get_backend,
)
from .borders import (
    BorderConfig,
    BorderRemover,
    ContentRegion,
    validate_content_region,
)
from .columns import (
    SeparatorConfig,
    SeparatorDetector,
    SeparatorAnalysis,
    TextColumn,
    RejectionReason,
)

__all__ = [
    'BoundingBox',
    'merge_boxes',
    'calculate_iou',
    'PageImage',
    'DetectedLine',
    'Orientation',
    'LineDetectionConfig',
    'LineDetectionResult',
    'LineDetector',
    'LineBackend',
    'MorphologicalLineBackend',
    'HoughLineBackend',
    'FixtureLineBackend',
    'get_backend',
    'BorderConfig',
    'BorderRemover',
    'ContentRegion',
    'validate_content_region',
    'SeparatorConfig',
    'SeparatorDetector',
    'SeparatorAnalysis',
    'TextColumn',
    'RejectionReason',
]
