"""
Hand-authored reference cascade.

The block cascade fires on windows that tightly enclose a bright square on a
darker background: every probe on an inner ring must be strictly brighter
than the matching probe on the window border. It needs no training data and
serves as a deterministic stand-in for a trained face cascade in tests,
demos and ``visage export-cascade``.
"""

from typing import List, Sequence, Tuple

from .model import CascadeModel, build_cascade

# Probe radii in 1/256 of the window side
BORDER = 123
INNER = 77
NEAR_BORDER = 102

_AXES = ((-1, 0), (1, 0), (0, -1), (0, 1))
_DIAGONALS = ((-1, -1), (1, 1), (-1, 1), (1, -1))

Pair = Tuple[int, int, int, int]


def _probe(direction: Tuple[int, int], inner: int, outer: int) -> Pair:
    dr, dc = direction
    return (dr * inner, dc * inner, dr * outer, dc * outer)


def _pair_tree(first: Pair, second: Pair, reward: float) -> Tuple[Sequence[Pair], Sequence[float]]:
    # Leaf 0 is reached only when both comparisons find the inner probe brighter
    return ([first, second, second], [reward, 0.0, 0.0, 0.0])


def _pairs_to_trees(pairs: List[Pair], reward: float):
    return [_pair_tree(pairs[i], pairs[i + 1], reward) for i in range(0, len(pairs), 2)]


def build_block_cascade() -> CascadeModel:
    center = [(0, 0, dr * BORDER, dc * BORDER) for dr, dc in _AXES]
    ring = [_probe(d, INNER, BORDER) for d in _DIAGONALS + _AXES]
    near_border = [_probe(d, NEAR_BORDER, BORDER) for d in _AXES + _DIAGONALS]

    stage1 = _pairs_to_trees(center, 1.0)
    stage2 = _pairs_to_trees(ring, 1.0)
    stage3 = _pairs_to_trees(near_border, 0.25)

    required = len(stage1) + len(stage2) - 0.5
    return build_cascade(
        depth=2,
        stages=[
            (len(stage1) - 0.5, stage1),
            (required, stage2),
            # Optional probes only grade tighter windows higher
            (required, stage3),
        ],
    )
