"""Pixel preprocessing: image bytes to grayscale and RGB matrices."""

from .decode import (
    DecodeError,
    DimensionMismatch,
    LUMA_WEIGHTS,
    PixelMatrix,
    decode_image,
    rgb_to_grayscale,
)

__all__ = [
    "DecodeError",
    "DimensionMismatch",
    "LUMA_WEIGHTS",
    "PixelMatrix",
    "decode_image",
    "rgb_to_grayscale",
]
