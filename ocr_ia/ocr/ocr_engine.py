"""
OCR Capability

The pipeline only needs one thing from OCR: given a region image, a
language hint and a segmentation mode, return text and a confidence in
[0, 1]. This module defines that contract, a Tesseract backend for it, and
the worker pool that owns backend instances.

Worker pool rules:
- One backend per language key, created lazily on first use
- At most ``size`` recognitions run at the same time
- ``terminate()`` releases every backend; the pool is a context manager
  so release also happens on error paths
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import pytesseract
from PIL import Image

from ..errors import OCRFailure, OCRUnavailable
from .preprocessor import to_array

logger = logging.getLogger(__name__)


class SegmentationMode(Enum):
    """Tesseract page segmentation modes used by the extractor."""
    AUTO = 3
    SINGLE_BLOCK = 6
    SINGLE_LINE = 7
    SPARSE_TEXT = 11


@dataclass
class OCRConfig:
    """
    Configuration for the Tesseract backend.
    """
    oem: int = 3
    min_word_confidence: float = 0.0
    extra_config: str = ''
    pool_size: int = 4

    def tesseract_config(self, segmentation: SegmentationMode, whitelist: Optional[str] = None) -> str:
        parts = [f'--oem {self.oem}', f'--psm {segmentation.value}']
        if whitelist:
            parts.append(f'-c tessedit_char_whitelist={whitelist}')
        if self.extra_config:
            parts.append(self.extra_config)
        return ' '.join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'oem': self.oem,
            'min_word_confidence': self.min_word_confidence,
            'pool_size': self.pool_size,
        }


@dataclass
class OCRText:
    """
    Text recognized in one region.
    """
    text: str
    confidence: float
    language: str = ''
    word_confidences: List[Tuple[str, float]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text or not self.text.strip()

    @property
    def word_count(self) -> int:
        return len(self.text.split()) if self.text else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'confidence': round(self.confidence, 3),
            'language': self.language,
            'word_count': self.word_count,
        }


class OCRCapability:
    """
    Contract every OCR backend implements.

    ``recognize`` must be safe to call from several threads.
    """

    def recognize(
        self,
        image: Any,
        language: str,
        segmentation: SegmentationMode = SegmentationMode.SINGLE_BLOCK,
        whitelist: Optional[str] = None,
    ) -> OCRText:
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources."""


class TesseractOCR(OCRCapability):
    """
    pytesseract backend.

    Usage:
        ocr = TesseractOCR()
        result = ocr.recognize(crop, 'fra+ara', SegmentationMode.SINGLE_BLOCK)
    """

    _version_checked = False
    _version_lock = threading.Lock()

    def __init__(self, config: Optional[OCRConfig] = None):
        self.config = config or OCRConfig()
        self._check_tesseract()

    @classmethod
    def _check_tesseract(cls) -> None:
        with cls._version_lock:
            if cls._version_checked:
                return
            try:
                version = pytesseract.get_tesseract_version()
            except (pytesseract.TesseractNotFoundError, OSError) as e:
                raise OCRUnavailable(f"Tesseract not available: {e}") from e
            logger.info(f"Using Tesseract {version}")
            cls._version_checked = True

    def recognize(
        self,
        image: Any,
        language: str,
        segmentation: SegmentationMode = SegmentationMode.SINGLE_BLOCK,
        whitelist: Optional[str] = None,
    ) -> OCRText:
        pil_image = image if isinstance(image, Image.Image) else Image.fromarray(to_array(image))

        try:
            ocr_data = pytesseract.image_to_data(
                pil_image,
                lang=language,
                config=self.config.tesseract_config(segmentation, whitelist),
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractError as e:
            raise OCRFailure(f"Tesseract failed: {e}") from e

        # Words grouped by (block, paragraph, line) so line breaks survive
        lines: Dict[Tuple[int, int, int], List[str]] = {}
        word_confidences = []
        for i, word in enumerate(ocr_data['text']):
            if not word.strip():
                continue
            conf = float(ocr_data['conf'][i])
            if conf < 0 or conf < self.config.min_word_confidence * 100:
                continue
            key = (ocr_data['block_num'][i], ocr_data['par_num'][i], ocr_data['line_num'][i])
            lines.setdefault(key, []).append(word)
            word_confidences.append((word, conf / 100.0))

        if not word_confidences:
            return OCRText(text='', confidence=0.0, language=language)

        avg_conf = sum(c for _, c in word_confidences) / len(word_confidences)
        return OCRText(
            text='\n'.join(' '.join(words) for words in lines.values()),
            confidence=avg_conf,
            language=language,
            word_confidences=word_confidences,
        )


class OCRWorkerPool:
    """
    Language-keyed OCR workers with bounded concurrency.

    Usage:
        with OCRWorkerPool(lambda lang: TesseractOCR(), size=4) as pool:
            result = pool.recognize(crop, 'fra+ara')
    """

    def __init__(
        self,
        factory: Optional[Callable[[str], OCRCapability]] = None,
        size: int = 4,
    ):
        self.factory = factory or (lambda language: TesseractOCR())
        self.size = max(1, size)
        self._workers: Dict[str, OCRCapability] = {}
        self._lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(self.size)
        self._terminated = False

    @property
    def languages(self) -> List[str]:
        with self._lock:
            return sorted(self._workers)

    def get_worker(self, language: str) -> OCRCapability:
        with self._lock:
            if self._terminated:
                raise OCRUnavailable("OCR worker pool has been terminated")
            worker = self._workers.get(language)
            if worker is None:
                logger.info(f"Initializing OCR worker for '{language}'")
                try:
                    worker = self.factory(language)
                except OCRUnavailable:
                    raise
                except Exception as e:
                    raise OCRUnavailable(f"Cannot initialize OCR worker for '{language}': {e}") from e
                self._workers[language] = worker
            return worker

    def recognize(
        self,
        image: Any,
        language: str,
        segmentation: SegmentationMode = SegmentationMode.SINGLE_BLOCK,
        whitelist: Optional[str] = None,
    ) -> OCRText:
        worker = self.get_worker(language)
        with self._slots:
            return worker.recognize(image, language, segmentation, whitelist)

    def terminate(self) -> None:
        """Release every worker. Safe to call more than once."""
        with self._lock:
            workers = list(self._workers.items())
            self._workers.clear()
            self._terminated = True

        for language, worker in workers:
            try:
                worker.close()
            except Exception as e:
                logger.warning(f"Error closing OCR worker '{language}': {e}")
        if workers:
            logger.info(f"Terminated {len(workers)} OCR workers")

    def __enter__(self) -> 'OCRWorkerPool':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.terminate()
