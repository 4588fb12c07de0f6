"""
Cascade model representation and its versioned binary format.

A cascade is an ordered list of stages. Each stage owns a contiguous run of
decision trees and a rejection threshold. Trees are stored as flat arrays
(heap-indexed node codes plus leaf predictions) rather than linked nodes, so
the engine can walk many windows through the same tree with numpy.

Binary layout, version 1, little-endian:

    magic      4s   b"VCSC"
    version    u16
    reserved   u16
    depth      u32
    stages     u32
    per stage:
        trees      u32
        threshold  f32
        per tree:
            nodes   (2**depth - 1) * 4 * i8   row1, col1, row2, col2
            leaves  (2**depth) * f32

Node offsets are in 1/256 units of the window side, relative to its center.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

import numpy as np

from ..logging import get_logger

logger = get_logger(__name__)

MAGIC = b"VCSC"
FORMAT_VERSION = 1
MAX_DEPTH = 12

_HEADER = struct.Struct("<4sHHII")
_STAGE_HEADER = struct.Struct("<If")

NODE_DTYPE = np.dtype(np.int8)
LEAF_DTYPE = np.dtype("<f4")


class ModelLoadError(Exception):
    """Raised when a cascade model cannot be read or fails validation."""


@dataclass(frozen=True)
class Stage:
    """A run of trees [start, stop) followed by a rejection threshold."""
    start: int
    stop: int
    threshold: float

    @property
    def tree_count(self) -> int:
        return self.stop - self.start


@dataclass(frozen=True, eq=False)
class CascadeModel:
    """Immutable cascade of pixel-comparison decision trees."""
    depth: int
    stages: Tuple[Stage, ...]
    nodes: np.ndarray   # (trees, 2**depth - 1, 4) int8
    leaves: np.ndarray  # (trees, 2**depth) float32

    def __post_init__(self) -> None:
        if not 1 <= self.depth <= MAX_DEPTH:
            raise ModelLoadError(f"Tree depth must be in 1..{MAX_DEPTH}, got {self.depth}")
        if not self.stages:
            raise ModelLoadError("Cascade has no stages")

        tree_count = self.nodes.shape[0]
        if self.nodes.shape != (tree_count, self.node_count, 4):
            raise ModelLoadError(f"Node array has shape {self.nodes.shape}")
        if self.leaves.shape != (tree_count, self.leaf_count):
            raise ModelLoadError(f"Leaf array has shape {self.leaves.shape}")

        expected_start = 0
        for index, stage in enumerate(self.stages):
            if stage.start != expected_start or stage.stop <= stage.start:
                raise ModelLoadError(f"Stage {index} covers an invalid tree range")
            if not math.isfinite(stage.threshold):
                raise ModelLoadError(f"Stage {index} has a non-finite threshold")
            expected_start = stage.stop
        if expected_start != tree_count:
            raise ModelLoadError(
                f"Stages cover {expected_start} trees but the model holds {tree_count}"
            )
        if not np.all(np.isfinite(self.leaves)):
            raise ModelLoadError("Leaf predictions must be finite")

        self.nodes.flags.writeable = False
        self.leaves.flags.writeable = False

    @property
    def node_count(self) -> int:
        """Internal nodes per tree."""
        return (1 << self.depth) - 1

    @property
    def leaf_count(self) -> int:
        return 1 << self.depth

    @property
    def tree_count(self) -> int:
        return int(self.nodes.shape[0])

    @property
    def final_threshold(self) -> float:
        return self.stages[-1].threshold

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CascadeModel):
            return NotImplemented
        return (
            self.depth == other.depth
            and self.stages == other.stages
            and np.array_equal(self.nodes, other.nodes)
            and np.array_equal(self.leaves, other.leaves)
        )

    def __hash__(self) -> int:
        return hash((self.depth, self.stages, self.nodes.tobytes(), self.leaves.tobytes()))

    def describe(self) -> dict:
        return {
            "version": FORMAT_VERSION,
            "depth": self.depth,
            "stages": len(self.stages),
            "trees": self.tree_count,
            "thresholds": [stage.threshold for stage in self.stages],
        }


def build_cascade(
    depth: int,
    stages: Sequence[Tuple[float, Sequence[Tuple[Sequence[Sequence[int]], Sequence[float]]]]],
) -> CascadeModel:
    """
    Assemble a CascadeModel from nested Python sequences.

    Args:
        depth: Depth of every tree
        stages: (threshold, trees) pairs; each tree is (node codes, leaf values)
            with 2**depth - 1 codes of (row1, col1, row2, col2) and 2**depth leaves

    Raises:
        ModelLoadError: If the shapes or values are inconsistent
    """
    node_rows: List[np.ndarray] = []
    leaf_rows: List[np.ndarray] = []
    stage_list: List[Stage] = []

    for threshold, trees in stages:
        start = len(node_rows)
        for codes, leaves in trees:
            codes_arr = np.asarray(codes, dtype=np.int64)
            if np.any(codes_arr < -128) or np.any(codes_arr > 127):
                raise ModelLoadError("Node offsets must fit in a signed byte")
            node_rows.append(codes_arr.astype(NODE_DTYPE))
            leaf_rows.append(np.asarray(leaves, dtype=np.float32))
        stage_list.append(Stage(start=start, stop=len(node_rows), threshold=float(np.float32(threshold))))

    try:
        nodes = np.stack(node_rows) if node_rows else np.zeros((0, (1 << depth) - 1, 4), NODE_DTYPE)
        leaves = np.stack(leaf_rows) if leaf_rows else np.zeros((0, 1 << depth), np.float32)
    except ValueError as exc:
        raise ModelLoadError(f"Trees have inconsistent shapes: {exc}") from exc

    return CascadeModel(depth=depth, stages=tuple(stage_list), nodes=nodes, leaves=leaves)


def load_cascade(data: bytes) -> CascadeModel:
    """
    Parse a serialized cascade.

    Raises:
        ModelLoadError: On any structural problem with the data
    """
    if len(data) < _HEADER.size:
        raise ModelLoadError("Cascade data is shorter than its header")

    magic, version, _reserved, depth, stage_count = _HEADER.unpack_from(data, 0)
    if magic != MAGIC:
        raise ModelLoadError(f"Not a cascade file (magic {magic!r})")
    if version != FORMAT_VERSION:
        raise ModelLoadError(f"Unsupported cascade format version {version}")
    if not 1 <= depth <= MAX_DEPTH:
        raise ModelLoadError(f"Tree depth must be in 1..{MAX_DEPTH}, got {depth}")
    if stage_count == 0:
        raise ModelLoadError("Cascade declares no stages")

    node_count = (1 << depth) - 1
    leaf_count = 1 << depth
    tree_size = node_count * 4 * NODE_DTYPE.itemsize + leaf_count * LEAF_DTYPE.itemsize

    offset = _HEADER.size
    node_blocks: List[np.ndarray] = []
    leaf_blocks: List[np.ndarray] = []
    stages: List[Stage] = []
    total_trees = 0

    for stage_index in range(stage_count):
        if offset + _STAGE_HEADER.size > len(data):
            raise ModelLoadError(f"Truncated header for stage {stage_index}")
        tree_count, threshold = _STAGE_HEADER.unpack_from(data, offset)
        offset += _STAGE_HEADER.size
        if tree_count == 0:
            raise ModelLoadError(f"Stage {stage_index} declares no trees")

        block_size = tree_count * tree_size
        if offset + block_size > len(data):
            raise ModelLoadError(f"Truncated tree data in stage {stage_index}")

        # Trees interleave node codes and leaves; a structured dtype reads them in one pass
        tree_dtype = np.dtype([
            ("nodes", NODE_DTYPE, (node_count, 4)),
            ("leaves", LEAF_DTYPE, (leaf_count,)),
        ])
        block = np.frombuffer(data, dtype=tree_dtype, count=tree_count, offset=offset)
        node_blocks.append(np.array(block["nodes"], dtype=NODE_DTYPE))
        leaf_blocks.append(np.array(block["leaves"], dtype=np.float32))
        offset += block_size

        stages.append(Stage(start=total_trees, stop=total_trees + tree_count, threshold=float(threshold)))
        total_trees += tree_count

    if offset != len(data):
        raise ModelLoadError(f"{len(data) - offset} unexpected trailing bytes after cascade data")

    model = CascadeModel(
        depth=depth,
        stages=tuple(stages),
        nodes=np.concatenate(node_blocks),
        leaves=np.concatenate(leaf_blocks),
    )
    logger.debug(f"Loaded cascade: {model.describe()}")
    return model


def load_cascade_file(path: Path) -> CascadeModel:
    """Read and parse a cascade file, wrapping I/O failures in ModelLoadError."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ModelLoadError(f"Cannot read cascade file {path}: {exc}") from exc

    model = load_cascade(data)
    logger.info(f"Loaded cascade {path}: {model.tree_count} trees in {len(model.stages)} stages")
    return model


def pack_cascade(model: CascadeModel) -> bytes:
    """Serialize a model in the version 1 format."""
    parts = [_HEADER.pack(MAGIC, FORMAT_VERSION, 0, model.depth, len(model.stages))]
    for stage in model.stages:
        parts.append(_STAGE_HEADER.pack(stage.tree_count, stage.threshold))
        for tree in range(stage.start, stage.stop):
            parts.append(model.nodes[tree].astype(NODE_DTYPE).tobytes())
            parts.append(model.leaves[tree].astype(LEAF_DTYPE).tobytes())
    return b"".join(parts)
