"""
Region Content Extractor

Runs OCR over the regions produced by the geometric stages: text columns,
table cells and optional header/footer/signature areas.

Per region:
1. Crop the page and preprocess the crop
2. Pick segmentation parameters from the region type
3. Recognize; on low confidence, boost contrast/brightness and try again
4. Clean the text and tag its script (fr / ar / mixed)

A failing region never aborts the page: it is kept with empty text,
zero confidence and the error message.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import OCRFailure
from ..layout.box import BoundingBox
from ..layout.columns import TextColumn
from ..layout.page import PageImage
from ..patterns.normalizers import detect_language
from ..performance.worker_pool import WorkerConfig, WorkerPool
from ..tables.grid import TableCell, TableRegion
from .ocr_engine import OCRText, OCRWorkerPool, SegmentationMode
from .preprocessor import OCRPreprocessor, PreprocessingConfig

logger = logging.getLogger(__name__)


class RegionType(Enum):
    TEXT = 'text'
    TABLE = 'table'
    HEADER = 'header'
    FOOTER = 'footer'
    SIGNATURE = 'signature'


REGION_SEGMENTATION = {
    RegionType.TEXT: SegmentationMode.SINGLE_BLOCK,
    RegionType.TABLE: SegmentationMode.SINGLE_BLOCK,
    RegionType.HEADER: SegmentationMode.SINGLE_LINE,
    RegionType.FOOTER: SegmentationMode.SINGLE_LINE,
    RegionType.SIGNATURE: SegmentationMode.SPARSE_TEXT,
}

TABLE_WHITELIST = (
    'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789'
    'àâäéèêëïîôöùûüÿçÀÂÄÉÈÊËÏÎÔÖÙÛÜŸÇ'
    '.,;:()-/%'
)

DISALLOWED = re.compile(r'[^\w\s\u00C0-\u00FF\u0600-\u06FF.,;:()\-\[\]{}/%°\'’"«»+@&]')


@dataclass
class ContentExtractionConfig:
    """Region OCR settings."""
    languages: str = 'fra+ara'
    quality_threshold: float = 0.7
    retry_low_quality: bool = True
    text_cleanup: bool = True
    detect_language: bool = True
    preprocess: bool = True
    pool_size: int = 4

    def to_dict(self) -> Dict[str, Any]:
        return {
            'languages': self.languages,
            'quality_threshold': self.quality_threshold,
            'retry_low_quality': self.retry_low_quality,
            'text_cleanup': self.text_cleanup,
            'detect_language': self.detect_language,
            'preprocess': self.preprocess,
            'pool_size': self.pool_size,
        }


@dataclass
class TextRegion:
    """Recognized content of one rectangle."""
    box: BoundingBox
    region_type: RegionType = RegionType.TEXT
    text: str = ''
    confidence: float = 0.0
    language: str = 'fr'
    index: int = 0
    retried: bool = False
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'type': self.region_type.value,
            'bbox': self.box.to_dict(),
            'text': self.text,
            'confidence': round(self.confidence, 3),
            'language': self.language,
            'retried': self.retried,
            'error': self.error,
        }


@dataclass
class PageContent:
    """Everything recognized on one page."""
    page_number: int
    regions: List[TextRegion] = field(default_factory=list)
    tables: List[TableRegion] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def full_text(self) -> str:
        parts = [r.text for r in self.regions if not r.is_empty]
        for table in self.tables:
            rows = [' '.join(t for t in row if t) for row in table.to_rows()]
            table_text = '\n'.join(r for r in rows if r)
            if table_text:
                parts.append(table_text)
        return '\n\n'.join(parts)

    @property
    def confidence(self) -> float:
        scored = [r.confidence for r in self.regions if not r.is_empty]
        scored.extend(c.confidence for t in self.tables for c in t.iter_cells() if c.text)
        return sum(scored) / len(scored) if scored else 0.0

    @property
    def languages(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for region in self.regions:
            if not region.is_empty:
                counts[region.language] = counts.get(region.language, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page_number': self.page_number,
            'regions': [r.to_dict() for r in self.regions],
            'tables': [t.to_dict() for t in self.tables],
            'confidence': round(self.confidence, 3),
            'languages': self.languages,
            'warnings': self.warnings,
        }


def clean_text(text: str, region_type: RegionType = RegionType.TEXT) -> str:
    """
    Collapse whitespace inside lines and drop characters outside the
    Latin/Arabic/punctuation ranges. Line breaks are kept.
    """
    if not text:
        return ''
    if region_type == RegionType.TABLE:
        text = text.replace('|', ' ')
    text = DISALLOWED.sub('', text)

    lines = [re.sub(r'[ \t\f\v]+', ' ', line).strip() for line in text.splitlines()]
    return '\n'.join(line for line in lines if line)


class ContentExtractor:
    """
    OCR for layout regions.

    Usage:
        with ContentExtractor(ocr_pool=OCRWorkerPool()) as extractor:
            content = extractor.extract_page(page, columns, tables)
            print(content.full_text)
    """

    def __init__(
        self,
        config: Optional[ContentExtractionConfig] = None,
        ocr_pool: Optional[OCRWorkerPool] = None,
        preprocessor: Optional[OCRPreprocessor] = None,
    ):
        self.config = config or ContentExtractionConfig()
        self.ocr_pool = ocr_pool or OCRWorkerPool(size=self.config.pool_size)
        self.preprocessor = preprocessor or OCRPreprocessor(PreprocessingConfig())

    def extract_region(
        self,
        page: PageImage,
        box: BoundingBox,
        region_type: RegionType = RegionType.TEXT,
        index: int = 0,
    ) -> TextRegion:
        region = TextRegion(box=box, region_type=region_type, index=index)
        crop = page.crop(box)
        if crop.size == 0:
            return region

        try:
            result, retried = self._recognize(crop, region_type)
        except OCRFailure as e:
            logger.warning(f"OCR failed for {region_type.value} region {index} on page {page.page_number}: {e}")
            region.error = str(e)
            return region

        text = result.text
        if self.config.text_cleanup:
            text = clean_text(text, region_type)
        region.text = text
        region.confidence = result.confidence if text else 0.0
        region.retried = retried
        if self.config.detect_language:
            region.language = detect_language(text)
        return region

    def _recognize(self, crop: np.ndarray, region_type: RegionType) -> Tuple[OCRText, bool]:
        segmentation = REGION_SEGMENTATION[region_type]
        whitelist = TABLE_WHITELIST if region_type == RegionType.TABLE else None

        result = self._run_ocr(crop, segmentation, whitelist)
        if not self.config.retry_low_quality or result.confidence >= self.config.quality_threshold:
            return result, False

        logger.debug(f"Low OCR confidence {result.confidence:.2f}, retrying with enhancement")
        boosted = self._run_ocr(self.preprocessor.enhance(crop), segmentation, whitelist)
        if boosted.confidence > result.confidence:
            return boosted, True
        return result, True

    def _run_ocr(self, crop: np.ndarray, segmentation: SegmentationMode, whitelist: Optional[str]) -> OCRText:
        image = self.preprocessor.process(crop).image if self.config.preprocess else crop
        return self.ocr_pool.recognize(image, self.config.languages, segmentation, whitelist)

    def extract_regions(
        self,
        page: PageImage,
        regions: Sequence[Tuple[BoundingBox, RegionType]],
    ) -> List[TextRegion]:
        """OCR several regions concurrently; output keeps input order."""
        if not regions:
            return []

        def work(item: Tuple[int, Tuple[BoundingBox, RegionType]]) -> TextRegion:
            index, (box, region_type) = item
            return self.extract_region(page, box, region_type, index)

        with WorkerPool(WorkerConfig(num_workers=self.config.pool_size)) as pool:
            results = pool.map_ordered(work, list(enumerate(regions)))

        extracted = []
        for task, (index, (box, region_type)) in zip(results, enumerate(regions)):
            if task.success:
                extracted.append(task.result)
            else:
                logger.warning(f"Region {index} could not be processed: {task.error}")
                extracted.append(TextRegion(box=box, region_type=region_type, index=index, error=str(task.error)))
        return extracted

    def extract_columns(self, page: PageImage, columns: Sequence[TextColumn]) -> List[TextRegion]:
        regions = self.extract_regions(page, [(c.box, RegionType.TEXT) for c in columns])
        for column, region in zip(columns, regions):
            column.text = region.text
            column.language = region.language
            column.confidence = region.confidence
            region.index = column.index
        return regions

    def extract_table(self, page: PageImage, table: TableRegion) -> TableRegion:
        """Fill every cell of ``table`` in place, addressed by (row, column)."""
        cells: List[TableCell] = list(table.iter_cells())
        regions = self.extract_regions(page, [(c.box, RegionType.TABLE) for c in cells])
        for cell, region in zip(cells, regions):
            table.cells[cell.row][cell.column].text = region.text
            table.cells[cell.row][cell.column].confidence = region.confidence
            table.cells[cell.row][cell.column].language = region.language if region.text else None
        table.detect_header()
        return table

    def extract_page(
        self,
        page: PageImage,
        columns: Sequence[TextColumn],
        tables: Sequence[TableRegion] = (),
    ) -> PageContent:
        content = PageContent(page_number=page.page_number)

        extracted = self.extract_columns(page, columns)
        content.regions = extracted

        for table in tables:
            content.tables.append(self.extract_table(page, table))

        failed = [r for r in extracted if r.error]
        failed_cells = sum(1 for t in tables for c in t.iter_cells() if not c.text)
        if failed:
            content.warnings.append(f"{len(failed)} region(s) failed OCR")
        logger.info(
            f"Page {page.page_number}: {len(extracted)} regions, {len(tables)} tables "
            f"({failed_cells} empty cells)"
        )
        return content

    def close(self) -> None:
        self.ocr_pool.terminate()

    def __enter__(self) -> 'ContentExtractor':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
