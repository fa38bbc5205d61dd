"""
Tests for rasterization and region OCR.

Recognition goes through a fake OCR capability so the tests never need
Tesseract.
"""

import threading

import fitz
import numpy as np
import pytest
from PIL import Image

from ocr_ia.errors import CorruptDocument, OCRFailure, OCRUnavailable, UnsupportedFormat
from ocr_ia.layout import BoundingBox, PageImage, TextColumn
from ocr_ia.ocr import (
    ContentExtractionConfig,
    ContentExtractor,
    OCRCapability,
    OCRText,
    OCRWorkerPool,
    PageRasterizer,
    RegionType,
    clean_text,
)


class FakeOCR(OCRCapability):
    """Returns canned results in order, repeating the last one."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def recognize(self, image, language, segmentation=None, whitelist=None):
        with self._lock:
            self.calls.append((language, segmentation, whitelist))
            if len(self.results) > 1:
                return self.results.pop(0)
            return self.results[0]

    def close(self):
        self.closed = True


class FailingOCR(OCRCapability):
    def recognize(self, image, language, segmentation=None, whitelist=None):
        raise OCRFailure("engine crashed")


class TestCleanText:
    """Tests for OCR text cleanup."""

    def test_collapses_spaces_and_keeps_lines(self):
        assert clean_text("Loi   n° 12-34 ☺\n\n  du 5 janvier  ") == "Loi n° 12-34\ndu 5 janvier"

    def test_table_pipes_removed(self):
        assert clean_text("100 | 200", RegionType.TABLE) == "100 200"

    def test_arabic_kept(self):
        assert clean_text("قانون رقم 12") == "قانون رقم 12"

    def test_empty(self):
        assert clean_text("") == ""


class TestOCRWorkerPool:
    """Tests for the OCR worker pool."""

    def test_one_worker_per_language(self):
        created = []

        def factory(language):
            worker = FakeOCR([OCRText("texte", 0.9)])
            created.append(worker)
            return worker

        pool = OCRWorkerPool(factory, size=2)
        pool.recognize(np.zeros((10, 10), dtype=np.uint8), 'fra')
        pool.recognize(np.zeros((10, 10), dtype=np.uint8), 'fra')
        pool.recognize(np.zeros((10, 10), dtype=np.uint8), 'ara')

        assert pool.languages == ['ara', 'fra']
        assert len(created) == 2

    def test_terminate_releases_workers(self):
        worker = FakeOCR([OCRText("texte", 0.9)])
        pool = OCRWorkerPool(lambda language: worker)
        pool.recognize(np.zeros((10, 10), dtype=np.uint8), 'fra')

        pool.terminate()
        pool.terminate()

        assert worker.closed
        assert pool.languages == []
        with pytest.raises(OCRUnavailable):
            pool.recognize(np.zeros((10, 10), dtype=np.uint8), 'fra')

    def test_factory_error_is_unavailable(self):
        def factory(language):
            raise RuntimeError("no traineddata")

        pool = OCRWorkerPool(factory)
        with pytest.raises(OCRUnavailable):
            pool.get_worker('ara')


class TestContentExtractor:
    """Tests for region OCR."""

    def setup_method(self):
        self.page = PageImage.blank(400, 300)

    def make_extractor(self, ocr, **config):
        config.setdefault('preprocess', False)
        return ContentExtractor(
            ContentExtractionConfig(**config),
            OCRWorkerPool(lambda language: ocr, size=2),
        )

    def test_extract_region(self):
        ocr = FakeOCR([OCRText("Article  1 : texte", 0.92)])
        extractor = self.make_extractor(ocr)
        region = extractor.extract_region(self.page, BoundingBox(0, 0, 200, 150))

        assert region.text == "Article 1 : texte"
        assert region.confidence == pytest.approx(0.92)
        assert region.language == 'fr'
        assert not region.retried

    def test_low_quality_is_retried(self):
        ocr = FakeOCR([OCRText("texte flou", 0.4), OCRText("texte net", 0.9)])
        extractor = self.make_extractor(ocr)
        region = extractor.extract_region(self.page, BoundingBox(0, 0, 200, 150))

        assert region.retried
        assert region.text == "texte net"
        assert len(ocr.calls) == 2

    def test_retry_disabled(self):
        ocr = FakeOCR([OCRText("texte flou", 0.4), OCRText("texte net", 0.9)])
        extractor = self.make_extractor(ocr, retry_low_quality=False)
        region = extractor.extract_region(self.page, BoundingBox(0, 0, 200, 150))

        assert region.text == "texte flou"
        assert len(ocr.calls) == 1

    def test_table_regions_use_whitelist(self):
        ocr = FakeOCR([OCRText("100", 0.95)])
        extractor = self.make_extractor(ocr)
        extractor.extract_region(self.page, BoundingBox(0, 0, 50, 50), RegionType.TABLE)

        _, _, whitelist = ocr.calls[0]
        assert whitelist is not None
        assert '0' in whitelist

    def test_ocr_failure_recorded_on_region(self):
        extractor = self.make_extractor(FailingOCR())
        region = extractor.extract_region(self.page, BoundingBox(0, 0, 200, 150))

        assert region.text == ''
        assert 'engine crashed' in region.error

    def test_extract_page_fills_columns(self):
        ocr = FakeOCR([OCRText("Vu la Constitution", 0.9)])
        columns = [
            TextColumn(box=BoundingBox(0, 0, 200, 300), index=0),
            TextColumn(box=BoundingBox(200, 0, 400, 300), index=1),
        ]
        with self.make_extractor(ocr) as extractor:
            content = extractor.extract_page(self.page, columns)

        assert [c.text for c in columns] == ["Vu la Constitution", "Vu la Constitution"]
        assert len(content.regions) == 2
        assert content.full_text == "Vu la Constitution\n\nVu la Constitution"
        assert content.confidence == pytest.approx(0.9)
        assert content.languages == {'fr': 2}
        assert ocr.closed

    def test_failed_regions_warn(self):
        columns = [TextColumn(box=BoundingBox(0, 0, 200, 300), index=0)]
        extractor = self.make_extractor(FailingOCR())
        content = extractor.extract_page(self.page, columns)

        assert content.warnings
        assert content.full_text == ''


class TestPageRasterizer:
    """Tests for document rasterization."""

    def setup_method(self):
        self.rasterizer = PageRasterizer(dpi=100)

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "document.docx"
        path.write_bytes(b"not a pdf")
        with pytest.raises(UnsupportedFormat):
            self.rasterizer.rasterize(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            self.rasterizer.rasterize(tmp_path / "absent.pdf")

    def test_image(self, tmp_path):
        path = tmp_path / "scan.png"
        Image.new('RGB', (120, 80), 'white').save(path)

        pages = self.rasterizer.rasterize(path)

        assert len(pages) == 1
        assert pages[0].page_number == 1
        assert (pages[0].width, pages[0].height) == (120, 80)

    def test_pdf(self, tmp_path):
        path = tmp_path / "journal.pdf"
        doc = fitz.open()
        doc.new_page(width=200, height=100)
        doc.save(str(path))
        doc.close()

        pages = self.rasterizer.rasterize(path)

        assert len(pages) == 1
        assert pages[0].original_width == pytest.approx(200)
        assert pages[0].width > 200

    def test_corrupt_image(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"\x89PNG garbage")
        with pytest.raises(CorruptDocument):
            self.rasterizer.rasterize(path)
