"""Decoding raw image bytes into pixel matrices."""

from __future__ import annotations

import io
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..logging import get_logger

logger = get_logger(__name__)

# ITU-R BT.601 luma weights. Cascade scores depend on these, so every
# grayscale conversion in the package goes through rgb_to_grayscale.
LUMA_WEIGHTS = (0.299, 0.587, 0.114)

DEFAULT_MAX_PIXELS = 64_000_000

# Single-channel modes wider than 8 bits; Pillow's convert() clips these
_WIDE_MODES = ('I', 'F')


class DecodeError(Exception):
    """Raised when image bytes cannot be decoded."""


class DimensionMismatch(Exception):
    """Raised when a matrix's arrays disagree with its declared size."""


@dataclass(frozen=True)
class PixelMatrix:
    """Grayscale intensities of a decoded image, with the RGB planes they came from."""
    rows: int
    cols: int
    gray: np.ndarray
    rgb: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        if self.rows <= 0 or self.cols <= 0:
            raise DimensionMismatch(f"Matrix must be non-empty, got {self.rows}x{self.cols}")
        if self.gray.shape != (self.rows, self.cols):
            raise DimensionMismatch(
                f"Grayscale buffer has shape {self.gray.shape}, expected {(self.rows, self.cols)}"
            )
        if self.gray.dtype != np.uint8:
            raise DimensionMismatch(f"Grayscale buffer must be uint8, got {self.gray.dtype}")
        if self.rgb is not None and self.rgb.shape != (self.rows, self.cols, 3):
            raise DimensionMismatch(
                f"RGB buffer has shape {self.rgb.shape}, expected {(self.rows, self.cols, 3)}"
            )
        self.gray.flags.writeable = False
        if self.rgb is not None:
            self.rgb.flags.writeable = False

    @classmethod
    def from_gray(cls, gray: np.ndarray) -> PixelMatrix:
        gray = np.array(gray, dtype=np.uint8, copy=True)
        if gray.ndim != 2:
            raise DimensionMismatch(f"Expected a 2D grayscale array, got {gray.ndim}D")
        return cls(rows=gray.shape[0], cols=gray.shape[1], gray=gray)

    @classmethod
    def from_rgb(cls, rgb: np.ndarray) -> PixelMatrix:
        rgb = np.array(rgb, dtype=np.uint8, copy=True)
        if rgb.ndim != 3 or rgb.shape[2] != 3:
            raise DimensionMismatch(f"Expected an HxWx3 array, got shape {rgb.shape}")
        return cls(rows=rgb.shape[0], cols=rgb.shape[1], gray=rgb_to_grayscale(rgb), rgb=rgb)

    @property
    def has_color(self) -> bool:
        return self.rgb is not None

    def color_planes(self) -> np.ndarray:
        """RGB planes, replicating the grayscale channel for gray-only matrices."""
        if self.rgb is not None:
            return self.rgb
        return np.repeat(self.gray[:, :, np.newaxis], 3, axis=2)


def _reduce_to_8bit(img: Image.Image) -> Image.Image:
    """
    Rescale a single-channel 16/32-bit image to 8-bit 'L'.

    16-bit modes, and 'I'/'F' data that exceeds 255, are treated as 16-bit
    samples and divided by 257 (65535 -> 255). 'I'/'F' data already in
    0..255 is kept as is.
    """
    values = np.nan_to_num(np.asarray(img).astype(np.float64), nan=0.0, posinf=65535.0, neginf=0.0)
    if img.mode.startswith('I;16') or (values.size and values.max() > 255.0):
        values = values / 257.0
    return Image.fromarray(np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint8), 'L')


def rgb_to_grayscale(rgb: np.ndarray) -> np.ndarray:
    """
    Convert an HxWx3 RGB array to uint8 luma.

    Uses Y = 0.299 R + 0.587 G + 0.114 B, rounded half-up.
    """
    weights = np.asarray(LUMA_WEIGHTS, dtype=np.float64)
    luma = rgb[..., :3].astype(np.float64) @ weights
    return np.clip(np.floor(luma + 0.5), 0, 255).astype(np.uint8)


def decode_image(data: bytes, max_pixels: int = DEFAULT_MAX_PIXELS) -> PixelMatrix:
    """
    Decode image bytes into a PixelMatrix.

    Args:
        data: Encoded image in any format Pillow can read
        max_pixels: Upper bound on width * height

    Returns:
        PixelMatrix carrying both grayscale and RGB planes

    Raises:
        DecodeError: If the bytes are empty, unsupported, truncated or too large
    """
    if not data:
        raise DecodeError("Image data is empty")

    try:
        with warnings.catch_warnings():
            # Pillow warns before it raises on oversized images
            warnings.simplefilter("ignore", Image.DecompressionBombWarning)
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
                if width * height > max_pixels:
                    raise DecodeError(
                        f"Image of {width}x{height} exceeds the {max_pixels} pixel limit"
                    )
                # load() forces a full decode so truncated streams fail here
                img.load()
                if img.mode in _WIDE_MODES or img.mode.startswith('I;16'):
                    img = _reduce_to_8bit(img)
                if img.mode != 'RGB':
                    img = img.convert('RGB')
                rgb = np.asarray(img, dtype=np.uint8)
    except DecodeError:
        raise
    except UnidentifiedImageError as exc:
        raise DecodeError("Unsupported or unrecognized image format") from exc
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Failed to decode image: {exc}") from exc

    logger.debug(f"Decoded {rgb.shape[1]}x{rgb.shape[0]} image")
    return PixelMatrix.from_rgb(rgb)
