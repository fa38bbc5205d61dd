"""
Region Image Preprocessor

Cleans a cropped region before it is handed to the OCR capability, and
provides the contrast/brightness boost used when a first OCR pass comes
back with low confidence.

Preprocessing Steps:
1. Grayscale
2. Inversion of dark backgrounds
3. Upscaling of small crops (Tesseract wants x-heights of ~20 px)
4. Denoising
5. Binarization

Page-level deskewing is offered separately since it changes page geometry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageEnhance

logger = logging.getLogger(__name__)


class BinarizationMethod(Enum):
    """Methods for converting to binary image."""
    OTSU = auto()
    ADAPTIVE_GAUSSIAN = auto()
    NONE = auto()


class DenoiseMethod(Enum):
    """Methods for noise removal."""
    MEDIAN = auto()
    GAUSSIAN = auto()
    NONE = auto()


@dataclass
class PreprocessingConfig:
    """Region preprocessing parameters."""
    min_height: int = 32
    max_scale: float = 4.0
    auto_invert: bool = True
    denoise: DenoiseMethod = DenoiseMethod.MEDIAN
    denoise_strength: int = 3
    binarization: BinarizationMethod = BinarizationMethod.OTSU
    adaptive_block_size: int = 11
    adaptive_c: int = 2

    # Low-quality retry boost
    contrast_factor: float = 1.5
    brightness_factor: float = 1.1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'min_height': self.min_height,
            'auto_invert': self.auto_invert,
            'denoise': self.denoise.name,
            'binarization': self.binarization.name,
            'contrast_factor': self.contrast_factor,
            'brightness_factor': self.brightness_factor,
        }


@dataclass
class PreprocessingResult:
    """Processed image and the operations applied to it."""
    image: np.ndarray
    original_size: Tuple[int, int]
    operations_applied: List[str] = field(default_factory=list)
    scale_factor: float = 1.0
    was_inverted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'original_size': self.original_size,
            'processed_size': (self.image.shape[1], self.image.shape[0]),
            'operations_applied': self.operations_applied,
            'scale_factor': self.scale_factor,
            'was_inverted': self.was_inverted,
        }


def to_array(image: Any) -> np.ndarray:
    """numpy view of a PIL image or array."""
    if isinstance(image, Image.Image):
        return np.array(image)
    if isinstance(image, np.ndarray):
        return image
    raise TypeError(f"Unsupported image type: {type(image).__name__}")


def to_grayscale(img: np.ndarray) -> np.ndarray:
    if img.ndim == 3:
        if img.shape[2] == 4:
            return cv2.cvtColor(img, cv2.COLOR_RGBA2GRAY)
        return cv2.cvtColor(img, cv2.COLOR_RGB2GRAY)
    return img


class OCRPreprocessor:
    """
    Prepares region crops for OCR.

    Usage:
        preprocessor = OCRPreprocessor()
        result = preprocessor.process(crop)
        boosted = preprocessor.enhance(crop)
    """

    def __init__(self, config: Optional[PreprocessingConfig] = None):
        self.config = config or PreprocessingConfig()

    def process(self, image: Any) -> PreprocessingResult:
        config = self.config
        img = to_array(image).copy()
        original_size = (img.shape[1], img.shape[0]) if img.size else (0, 0)
        operations = []

        if img.size == 0:
            return PreprocessingResult(image=img, original_size=original_size)

        if img.ndim == 3:
            img = to_grayscale(img)
            operations.append('grayscale')
        img = img.astype(np.uint8)

        was_inverted = False
        if config.auto_invert and np.mean(img) < 127:
            img = 255 - img
            was_inverted = True
            operations.append('invert')

        scale_factor = 1.0
        if 0 < img.shape[0] < config.min_height:
            scale_factor = min(config.min_height / img.shape[0], config.max_scale)
            img = cv2.resize(
                img,
                (int(img.shape[1] * scale_factor), int(img.shape[0] * scale_factor)),
                interpolation=cv2.INTER_CUBIC,
            )
            operations.append(f'scale_{scale_factor:.1f}x')

        if config.denoise != DenoiseMethod.NONE:
            img = self._denoise(img, config.denoise, config.denoise_strength)
            operations.append(f'denoise_{config.denoise.name}')

        if config.binarization != BinarizationMethod.NONE:
            img = self._binarize(img, config.binarization)
            operations.append(f'binarize_{config.binarization.name}')

        return PreprocessingResult(
            image=img,
            original_size=original_size,
            operations_applied=operations,
            scale_factor=scale_factor,
            was_inverted=was_inverted,
        )

    def enhance(self, image: Any) -> np.ndarray:
        """Contrast and brightness boost for a second OCR attempt."""
        img = Image.fromarray(to_array(image))
        img = ImageEnhance.Contrast(img).enhance(self.config.contrast_factor)
        img = ImageEnhance.Brightness(img).enhance(self.config.brightness_factor)
        return np.array(img)

    def _denoise(self, img: np.ndarray, method: DenoiseMethod, strength: int) -> np.ndarray:
        kernel_size = strength if strength % 2 == 1 else strength + 1
        if method == DenoiseMethod.MEDIAN:
            return cv2.medianBlur(img, kernel_size)
        if method == DenoiseMethod.GAUSSIAN:
            return cv2.GaussianBlur(img, (kernel_size, kernel_size), 0)
        return img

    def _binarize(self, img: np.ndarray, method: BinarizationMethod) -> np.ndarray:
        if method == BinarizationMethod.OTSU:
            _, binary = cv2.threshold(img, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
            return binary
        if method == BinarizationMethod.ADAPTIVE_GAUSSIAN:
            # Block size must be odd and larger than 1
            block = max(3, self.config.adaptive_block_size | 1)
            return cv2.adaptiveThreshold(
                img, 255,
                cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
                cv2.THRESH_BINARY,
                block, self.config.adaptive_c,
            )
        return img


def detect_skew(img: np.ndarray) -> float:
    """Dominant skew angle in degrees from Hough lines, 0 if none."""
    gray = to_grayscale(img).astype(np.uint8)
    edges = cv2.Canny(gray, 50, 150, apertureSize=3)
    lines = cv2.HoughLines(edges, 1, np.pi / 180, 200)
    if lines is None:
        return 0.0

    angles = []
    for line in lines[:50]:
        _, theta = line[0]
        angle = np.degrees(theta) - 90
        if abs(angle) < 45:
            angles.append(angle)

    if not angles:
        return 0.0
    return float(np.median(angles))


def deskew(img: np.ndarray, max_angle: float = 15.0) -> Tuple[np.ndarray, float]:
    """
    Rotate a page so that its rules are axis aligned.

    Returns:
        (image, corrected angle); the image is unchanged below 0.5 degrees
    """
    angle = detect_skew(img)
    if abs(angle) <= 0.5 or abs(angle) >= max_angle:
        return img, 0.0

    height, width = img.shape[:2]
    matrix = cv2.getRotationMatrix2D((width // 2, height // 2), angle, 1.0)
    rotated = cv2.warpAffine(
        img,
        matrix,
        (width, height),
        flags=cv2.INTER_CUBIC,
        borderMode=cv2.BORDER_REPLICATE,
    )
    logger.debug(f"Deskewed page by {angle:.2f} degrees")
    return rotated, angle
