"""
OCR Package

Everything between a page raster and recognized text.

Components:
- PageRasterizer: PDF/image files to PageImage objects
- OCRPreprocessor: crop cleanup and low-quality enhancement
- OCRCapability / TesseractOCR: the recognition contract and its backend
- OCRWorkerPool: language-keyed workers, released on terminate()
- ContentExtractor: region-type aware OCR for columns and table cells

Usage:
    from ocr_ia.ocr import ContentExtractor, OCRWorkerPool

    with ContentExtractor(ocr_pool=OCRWorkerPool(size=4)) as extractor:
        content = extractor.extract_page(page, columns, tables)
"""

from .rasterizer import (
    PageRasterizer,
    ACCEPTED_TYPES,
)
from .preprocessor import (
    OCRPreprocessor,
    PreprocessingConfig,
    PreprocessingResult,
    BinarizationMethod,
    DenoiseMethod,
    deskew,
)
from .ocr_engine import (
    OCRCapability,
    OCRConfig,
    OCRText,
    OCRWorkerPool,
    SegmentationMode,
    TesseractOCR,
)
from .content_extractor import (
    ContentExtractor,
    ContentExtractionConfig,
    PageContent,
    RegionType,
    TextRegion,
    clean_text,
    detect_language,
)

__all__ = [
    # Rasterization
    'PageRasterizer',
    'ACCEPTED_TYPES',

    # Preprocessing
    'OCRPreprocessor',
    'PreprocessingConfig',
    'PreprocessingResult',
    'BinarizationMethod',
    'DenoiseMethod',
    'deskew',

    # Recognition
    'OCRCapability',
    'OCRConfig',
    'OCRText',
    'OCRWorkerPool',
    'SegmentationMode',
    'TesseractOCR',

    # Region content
    'ContentExtractor',
    'ContentExtractionConfig',
    'PageContent',
    'RegionType',
    'TextRegion',
    'clean_text',
    'detect_language',
]
