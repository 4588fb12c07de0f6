"""
Cascade face-region detection.

Pixel-comparison decision-tree cascades, the multi-scale scanning engine and
IoU clustering of the raw detections.
"""

from .model import (
    CascadeModel,
    ModelLoadError,
    Stage,
    build_cascade,
    load_cascade,
    load_cascade_file,
    pack_cascade,
)
from .engine import (
    CascadeParams,
    Detection,
    InvalidParamsError,
    ScanCancelled,
    classify_window,
    run_cascade,
)
from .cluster import calculate_iou, cluster_detections
from .reference import build_block_cascade

__all__ = [
    "CascadeModel",
    "ModelLoadError",
    "Stage",
    "build_cascade",
    "load_cascade",
    "load_cascade_file",
    "pack_cascade",
    "CascadeParams",
    "Detection",
    "InvalidParamsError",
    "ScanCancelled",
    "classify_window",
    "run_cascade",
    "calculate_iou",
    "cluster_detections",
    "build_block_cascade",
]
