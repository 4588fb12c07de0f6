"""Synthetic image factories for detection and similarity tests."""

import io
from typing import Iterable, Tuple

import numpy as np
from PIL import Image, ImageDraw


def block_image(
    shape: Tuple[int, int] = (200, 200),
    blocks: Iterable[Tuple[Tuple[int, int], int]] = (((100, 100), 80),),
    foreground: int = 255,
    background: int = 0,
) -> np.ndarray:
    """
    Create a grayscale image with bright square blocks.

    Args:
        shape: (rows, cols) of the image
        blocks: ((center_row, center_col), side) for each block
        foreground: Block intensity
        background: Background intensity

    Returns:
        uint8 array of the given shape
    """
    img = np.full(shape, background, dtype=np.uint8)
    for (row, col), side in blocks:
        half = side // 2
        img[row - half:row - half + side, col - half:col - half + side] = foreground
    return img


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode a grayscale or RGB array as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format='PNG')
    return buffer.getvalue()


def encode_image(img: Image.Image, fmt: str = 'PNG') -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def scene_image(width: int = 240, height: int = 180, variant: int = 0) -> Image.Image:
    """
    Create a smooth RGB test scene.

    Each variant places differently colored shapes over a different gradient,
    so two variants are clearly distinct while one variant resized stays
    visually the same.
    """
    x = np.linspace(0.0, 1.0, width)[np.newaxis, :]
    y = np.linspace(0.0, 1.0, height)[:, np.newaxis]

    if variant == 0:
        r = 40 + 160 * x
        g = 60 + 120 * y
        b = 200 - 120 * x
    else:
        r = 220 - 160 * y
        g = 200 - 150 * x
        b = 40 + 180 * y

    rgb = np.stack([
        np.broadcast_to(r, (height, width)),
        np.broadcast_to(g, (height, width)),
        np.broadcast_to(b, (height, width)),
    ], axis=2)
    img = Image.fromarray(np.clip(rgb, 0, 255).astype(np.uint8), 'RGB')

    draw = ImageDraw.Draw(img)
    if variant == 0:
        draw.ellipse([int(width * 0.15), int(height * 0.2), int(width * 0.45), int(height * 0.6)], fill=(250, 230, 40))
        draw.rectangle([int(width * 0.55), int(height * 0.45), int(width * 0.85), int(height * 0.85)], fill=(30, 30, 120))
    else:
        draw.rectangle([int(width * 0.1), int(height * 0.55), int(width * 0.5), int(height * 0.9)], fill=(240, 240, 240))
        draw.ellipse([int(width * 0.6), int(height * 0.1), int(width * 0.9), int(height * 0.5)], fill=(120, 10, 10))
    return img


def truncated(data: bytes, keep: float = 0.5) -> bytes:
    return data[:max(1, int(len(data) * keep))]
