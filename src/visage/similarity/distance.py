"""Distance between perceptual signatures."""

import math
from typing import Tuple

import cv2
import numpy as np

from .hash import GRID_SIZE, ImageSignature

# Alignment never moves a grid by more than this many cells
MAX_SHIFT_CELLS = 1.0


def aspect_difference(a: ImageSignature, b: ImageSignature) -> float:
    """Absolute difference of the log aspect ratios of two images."""
    size_a = a.size_anchor
    size_b = b.size_anchor
    return abs(math.log(size_a.x / size_a.y) - math.log(size_b.x / size_b.y))


def aligned_grids(
    a: ImageSignature,
    b: ImageSignature,
    max_shift: float = MAX_SHIFT_CELLS,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Translate both coefficient grids so their contrast anchors meet halfway.

    Each grid moves by half the anchor offset in opposite directions, so
    swapping the arguments swaps the outputs.
    """
    half_dx = (b.contrast_anchor.x - a.contrast_anchor.x) / 2.0 * GRID_SIZE
    half_dy = (b.contrast_anchor.y - a.contrast_anchor.y) / 2.0 * GRID_SIZE
    half_dx = max(-max_shift, min(max_shift, half_dx))
    half_dy = max(-max_shift, min(max_shift, half_dy))

    return _translate(a.grid(), half_dx, half_dy), _translate(b.grid(), -half_dx, -half_dy)


def signature_distance(a: ImageSignature, b: ImageSignature) -> float:
    """Mean squared coefficient difference after anchor alignment."""
    if len(a.coefficients) != len(b.coefficients):
        raise ValueError(
            f"Signatures differ in length: {len(a.coefficients)} vs {len(b.coefficients)}"
        )

    grid_a, grid_b = aligned_grids(a, b)
    diff = grid_a.astype(np.float64) - grid_b.astype(np.float64)
    return float(np.mean(diff * diff))


def _translate(grid: np.ndarray, dx: float, dy: float) -> np.ndarray:
    if dx == 0.0 and dy == 0.0:
        return grid
    matrix = np.array([[1.0, 0.0, dx], [0.0, 1.0, dy]], dtype=np.float64)
    height, width = grid.shape[:2]
    return cv2.warpAffine(
        grid,
        matrix,
        (width, height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_REPLICATE,
    )
