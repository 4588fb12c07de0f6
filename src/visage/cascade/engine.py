"""
Multi-scale sliding-window scan driven by a CascadeModel.

Every window of one scale is pushed through the cascade together. After each
stage the windows whose accumulated score fell below the stage threshold are
dropped from the working set, so later stages only ever see survivors.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np

from .model import CascadeModel
from ..logging import get_logger

logger = get_logger(__name__)


class InvalidParamsError(ValueError):
    """Raised when scan parameters are out of range."""


class ScanCancelled(Exception):
    """Raised when a scan is cancelled through its cancel event."""


@dataclass(frozen=True)
class CascadeParams:
    """Scan parameters; angle is a fraction of a full turn (0.0 = upright)."""
    min_size: int
    max_size: int
    shift_factor: float
    scale_factor: float
    angle: float = 0.0

    def validate(self) -> None:
        if self.min_size < 1:
            raise InvalidParamsError(f"min_size must be at least 1, got {self.min_size}")
        if self.max_size < self.min_size:
            raise InvalidParamsError(
                f"max_size ({self.max_size}) must not be smaller than min_size ({self.min_size})"
            )
        if not self.scale_factor > 1.0:
            raise InvalidParamsError(f"scale_factor must be greater than 1.0, got {self.scale_factor}")
        if not 0.0 < self.shift_factor <= 1.0:
            raise InvalidParamsError(f"shift_factor must be in (0, 1], got {self.shift_factor}")
        if not 0.0 <= self.angle <= 1.0:
            raise InvalidParamsError(f"angle must be in [0, 1], got {self.angle}")


@dataclass(frozen=True)
class Detection:
    """Square region of side ``scale`` centered at (row, col)."""
    row: int
    col: int
    scale: float
    score: float

    def bbox(self) -> Tuple[float, float, float, float]:
        """Bounding box as (x, y, w, h)."""
        half = self.scale / 2.0
        return (self.col - half, self.row - half, self.scale, self.scale)

    def to_dict(self) -> dict:
        return {
            "row": self.row,
            "col": self.col,
            "scale": float(self.scale),
            "score": float(self.score),
        }


def iter_scales(params: CascadeParams) -> Iterator[int]:
    """Window sides from min_size to max_size, growing by scale_factor."""
    scale = int(params.min_size)
    while scale <= params.max_size:
        yield scale
        scale = max(scale + 1, int(scale * params.scale_factor))


def window_centers(length: int, scale: int, shift_factor: float) -> np.ndarray:
    """Centers along one axis for windows of the given side that fit in ``length``."""
    step = max(1, int(shift_factor * scale))
    offset = scale // 2 + 1
    return np.arange(offset, length - offset + 1, step, dtype=np.int64)


def run_cascade(
    model: CascadeModel,
    gray: np.ndarray,
    params: CascadeParams,
    cancel: Optional[threading.Event] = None,
) -> List[Detection]:
    """
    Scan a grayscale image with the cascade.

    Args:
        model: Loaded cascade
        gray: 2D uint8 intensities (rows x cols)
        params: Scan parameters
        cancel: Optional event; when set the scan stops between scales

    Returns:
        Raw detections in scan order (scale, then row, then col)

    Raises:
        InvalidParamsError: If params are out of range
        ScanCancelled: If ``cancel`` was set during the scan
    """
    params.validate()
    if gray.ndim != 2:
        raise ValueError(f"Expected a 2D grayscale array, got shape {gray.shape}")

    rows, cols = gray.shape
    pixels = np.ascontiguousarray(gray, dtype=np.uint8)
    rotation = _rotation(params.angle)

    detections: List[Detection] = []
    windows_scanned = 0

    for scale in iter_scales(params):
        if cancel is not None and cancel.is_set():
            raise ScanCancelled(f"Scan cancelled at scale {scale}")

        row_centers = window_centers(rows, scale, params.shift_factor)
        col_centers = window_centers(cols, scale, params.shift_factor)
        if row_centers.size == 0 or col_centers.size == 0:
            # Larger windows will not fit either
            break

        r, c = np.meshgrid(row_centers, col_centers, indexing="ij")
        r = r.ravel()
        c = c.ravel()
        windows_scanned += r.size

        survivors, scores = _classify_windows(model, pixels, r, c, scale, rotation)
        for row, col, score in zip(r[survivors], c[survivors], scores):
            detections.append(Detection(row=int(row), col=int(col), scale=float(scale), score=float(score)))

    logger.debug(f"Scanned {windows_scanned} windows, {len(detections)} raw detections")
    return detections


def classify_window(model: CascadeModel, gray: np.ndarray, row: int, col: int, scale: int, angle: float = 0.0) -> Optional[float]:
    """Score a single window; None when the cascade rejects it."""
    survivors, scores = _classify_windows(
        model,
        np.ascontiguousarray(gray, dtype=np.uint8),
        np.array([row], dtype=np.int64),
        np.array([col], dtype=np.int64),
        int(scale),
        _rotation(angle),
    )
    if survivors.size == 0:
        return None
    return float(scores[0])


def _rotation(angle: float) -> Optional[Tuple[float, float]]:
    if angle == 0.0 or angle == 1.0:
        return None
    theta = 2.0 * math.pi * angle
    return (math.cos(theta), math.sin(theta))


def _classify_windows(
    model: CascadeModel,
    pixels: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray,
    scale: int,
    rotation: Optional[Tuple[float, float]],
) -> Tuple[np.ndarray, np.ndarray]:
    """Return indices of windows that pass every stage and their final scores."""
    alive = np.arange(rows.size)
    r = rows
    c = cols
    score = np.zeros(rows.size, dtype=np.float32)

    for stage in model.stages:
        for tree in range(stage.start, stage.stop):
            score += _evaluate_tree(model, tree, pixels, r, c, scale, rotation)

        keep = score >= np.float32(stage.threshold)
        if not keep.all():
            alive = alive[keep]
            r = r[keep]
            c = c[keep]
            score = score[keep]
        if alive.size == 0:
            break

    return alive, score - np.float32(model.final_threshold)


def _evaluate_tree(
    model: CascadeModel,
    tree: int,
    pixels: np.ndarray,
    r: np.ndarray,
    c: np.ndarray,
    scale: int,
    rotation: Optional[Tuple[float, float]],
) -> np.ndarray:
    codes = model.nodes[tree].astype(np.int64)
    idx = np.zeros(r.size, dtype=np.int64)

    for _ in range(model.depth):
        code = codes[idx]
        y1, x1 = _node_coords(pixels.shape, r, c, code[:, 0], code[:, 1], scale, rotation)
        y2, x2 = _node_coords(pixels.shape, r, c, code[:, 2], code[:, 3], scale, rotation)
        bit = (pixels[y1, x1] <= pixels[y2, x2]).astype(np.int64)
        idx = 2 * idx + 1 + bit

    return model.leaves[tree][idx - model.node_count]


def _node_coords(
    shape: Tuple[int, int],
    r: np.ndarray,
    c: np.ndarray,
    off_r: np.ndarray,
    off_c: np.ndarray,
    scale: int,
    rotation: Optional[Tuple[float, float]],
) -> Tuple[np.ndarray, np.ndarray]:
    if rotation is None:
        y = (r * 256 + off_r * scale) >> 8
        x = (c * 256 + off_c * scale) >> 8
    else:
        cos_t, sin_t = rotation
        rot_r = off_r * cos_t - off_c * sin_t
        rot_c = off_r * sin_t + off_c * cos_t
        y = np.floor(r + rot_r * scale / 256.0).astype(np.int64)
        x = np.floor(c + rot_c * scale / 256.0).astype(np.int64)
    return np.clip(y, 0, shape[0] - 1), np.clip(x, 0, shape[1] - 1)
