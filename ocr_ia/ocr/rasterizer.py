"""
Page Rasterizer

Turns an input file into PageImage objects: PDFs are rendered with PyMuPDF,
images (including multi-page TIFF) are decoded with Pillow.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Union

import fitz  # PyMuPDF
import numpy as np
from PIL import Image, ImageSequence, UnidentifiedImageError

from ..errors import CorruptDocument, UnsupportedFormat
from ..layout.page import PageImage

logger = logging.getLogger(__name__)

PDF_TYPES = ('.pdf',)
IMAGE_TYPES = ('.png', '.jpg', '.jpeg', '.tif', '.tiff', '.bmp', '.webp')
ACCEPTED_TYPES = PDF_TYPES + IMAGE_TYPES


class PageRasterizer:
    """
    Renders documents to page images.

    Usage:
        pages = PageRasterizer(dpi=200).rasterize('journal_officiel.pdf')
    """

    def __init__(self, dpi: int = 200):
        self.dpi = dpi

    def rasterize(self, path: Union[str, Path]) -> List[PageImage]:
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix not in ACCEPTED_TYPES:
            raise UnsupportedFormat(str(path), ACCEPTED_TYPES)
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {path}")

        if suffix in PDF_TYPES:
            pages = self._rasterize_pdf(path)
        else:
            pages = self._rasterize_image(path)

        logger.info(f"Rasterized {len(pages)} page(s) from {path.name}")
        return pages

    def _rasterize_pdf(self, path: Path) -> List[PageImage]:
        scale = self.dpi / 72
        pages = []

        try:
            doc = fitz.open(path)
        except RuntimeError as e:
            raise CorruptDocument(f"Cannot open PDF {path.name}: {e}") from e

        try:
            if doc.page_count == 0:
                raise CorruptDocument(f"PDF {path.name} has no pages")
            for index, page in enumerate(doc):
                pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
                pixels = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
                if pix.n == 1:
                    pixels = pixels[:, :, 0]
                pages.append(PageImage(
                    page_number=index + 1,
                    pixels=pixels.copy(),
                    original_width=page.rect.width,
                    original_height=page.rect.height,
                    scale=scale,
                ))
        except RuntimeError as e:
            raise CorruptDocument(f"Cannot render PDF {path.name}: {e}") from e
        finally:
            doc.close()

        return pages

    def _rasterize_image(self, path: Path) -> List[PageImage]:
        pages = []
        try:
            with Image.open(path) as img:
                for index, frame in enumerate(ImageSequence.Iterator(img)):
                    rgb = frame.convert('RGB')
                    pages.append(PageImage(
                        page_number=index + 1,
                        pixels=np.array(rgb),
                    ))
        except (UnidentifiedImageError, OSError) as e:
            raise CorruptDocument(f"Cannot decode image {path.name}: {e}") from e
        return pages
