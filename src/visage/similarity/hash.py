"""Perceptual signatures for near-duplicate detection."""

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from ..imaging.decode import DEFAULT_MAX_PIXELS, LUMA_WEIGHTS, PixelMatrix, decode_image
from ..logging import get_logger

logger = get_logger(__name__)

GRID_SIZE = 11
CHANNELS = 3
SIGNATURE_LENGTH = GRID_SIZE * GRID_SIZE * CHANNELS

# BT.601 chroma rows; the luma row matches the grayscale conversion
_YCBCR = np.array([
    LUMA_WEIGHTS,
    (-0.168736, -0.331264, 0.5),
    (0.5, -0.418688, -0.081312),
], dtype=np.float64)
_YCBCR_OFFSET = np.array([0.0, 0.5, 0.5], dtype=np.float64)


@dataclass(frozen=True)
class Anchor:
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class ImageSignature:
    """
    Fixed-length perceptual signature of an image.

    Coefficients are the Y, Cb and Cr averages of an 11x11 grid laid over the
    image, channel by channel in row-major order, scaled to [0, 1].
    Anchors are the image size in pixels and the relative position of its
    contrast centroid.
    """
    coefficients: Tuple[float, ...]
    anchors: Tuple[Anchor, ...]

    @property
    def size_anchor(self) -> Anchor:
        return self.anchors[0]

    @property
    def contrast_anchor(self) -> Anchor:
        return self.anchors[1]

    def grid(self) -> np.ndarray:
        """Coefficients as a (GRID_SIZE, GRID_SIZE, CHANNELS) float32 array."""
        planes = np.asarray(self.coefficients, dtype=np.float32).reshape(CHANNELS, GRID_SIZE, GRID_SIZE)
        return np.ascontiguousarray(planes.transpose(1, 2, 0))

    def to_dict(self) -> dict:
        return {
            "coefficients": list(self.coefficients),
            "anchors": [anchor.to_dict() for anchor in self.anchors],
        }


def compute_signature(matrix: PixelMatrix) -> ImageSignature:
    """
    Derive the perceptual signature of a decoded image.

    Pure function of the pixel content: identical pixels always give an
    identical signature.
    """
    rgb = matrix.color_planes().astype(np.float32) / np.float32(255.0)
    cells = cv2.resize(rgb, (GRID_SIZE, GRID_SIZE), interpolation=cv2.INTER_AREA)
    ycbcr = cells.astype(np.float64) @ _YCBCR.T + _YCBCR_OFFSET
    ycbcr = np.clip(ycbcr, 0.0, 1.0)

    coefficients = tuple(float(v) for v in ycbcr.transpose(2, 0, 1).ravel())
    anchors = (
        Anchor(x=float(matrix.cols), y=float(matrix.rows)),
        _contrast_centroid(matrix.gray),
    )

    logger.debug(f"Computed signature for {matrix.cols}x{matrix.rows} image, contrast anchor {anchors[1]}")
    return ImageSignature(coefficients=coefficients, anchors=anchors)


def hash_image(data: bytes, max_pixels: int = DEFAULT_MAX_PIXELS) -> ImageSignature:
    """Decode image bytes and compute their signature."""
    return compute_signature(decode_image(data, max_pixels=max_pixels))


def _contrast_centroid(gray: np.ndarray) -> Anchor:
    """Gradient-magnitude weighted centroid in relative (x, y) coordinates."""
    rows, cols = gray.shape
    if rows < 3 or cols < 3:
        return Anchor(x=0.5, y=0.5)

    src = gray.astype(np.float32)
    gx = cv2.Sobel(src, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(src, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = np.hypot(gx.astype(np.float64), gy.astype(np.float64))

    total = float(magnitude.sum())
    if total <= 1e-9:
        return Anchor(x=0.5, y=0.5)

    row_weights = magnitude.sum(axis=1)
    col_weights = magnitude.sum(axis=0)
    y = float(row_weights @ (np.arange(rows) + 0.5)) / total / rows
    x = float(col_weights @ (np.arange(cols) + 0.5)) / total / cols
    return Anchor(x=x, y=y)
