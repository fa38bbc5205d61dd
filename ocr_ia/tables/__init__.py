"""
Table Detection Package

Ruled-table detection and cell grid reconstruction.

Key Components:
- TableDetector: intersections, clustering, scoring, non-max suppression
- GridBuilder: implicit rows, spanning cells, TableRegion/TableCell
"""

from .table_detector import (
    TableDetector,
    TableDetectionConfig,
    TableDetectionResult,
    TableCandidate,
    LineIntersection,
    cluster_values,
    spacing_regularity,
)
from .grid import (
    GridBuilder,
    TableRegion,
    TableCell,
    infer_implicit_rows,
)

__all__ = [
    'TableDetector',
    'TableDetectionConfig',
    'TableDetectionResult',
    'TableCandidate',
    'LineIntersection',
    'cluster_values',
    'spacing_regularity',
    'GridBuilder',
    'TableRegion',
    'TableCell',
    'infer_implicit_rows',
]
