"""Merging overlapping detections into non-redundant results."""

from typing import List, Literal, Sequence

from .engine import Detection
from ..logging import get_logger

logger = get_logger(__name__)

Representative = Literal["seed", "mean"]


def calculate_iou(a: Detection, b: Detection) -> float:
    """Intersection over Union of the two detections' squares."""
    half_a = a.scale / 2.0
    half_b = b.scale / 2.0

    overlap_rows = min(a.row + half_a, b.row + half_b) - max(a.row - half_a, b.row - half_b)
    overlap_cols = min(a.col + half_a, b.col + half_b) - max(a.col - half_a, b.col - half_b)
    if overlap_rows <= 0 or overlap_cols <= 0:
        return 0.0

    intersection = overlap_rows * overlap_cols
    union = a.scale * a.scale + b.scale * b.scale - intersection
    if union <= 0:
        return 0.0

    return intersection / union


def _ranking_key(detection: Detection):
    # Highest score first; ties prefer the larger window, then reading order
    return (-detection.score, -detection.scale, detection.row, detection.col)


def cluster_detections(
    detections: Sequence[Detection],
    overlap_threshold: float = 0.2,
    representative: Representative = "seed",
) -> List[Detection]:
    """
    Greedily group overlapping detections.

    The best remaining detection seeds a cluster and absorbs every remaining
    detection whose IoU with the seed is at least ``overlap_threshold``.

    Args:
        detections: Raw detections in any order
        overlap_threshold: Minimum IoU with the seed to join its cluster
        representative: "seed" keeps the seed detection; "mean" averages the
            group's position and size and sums its scores

    Returns:
        One detection per cluster, ordered by descending score
    """
    if not 0.0 <= overlap_threshold <= 1.0:
        raise ValueError(f"overlap_threshold must be in [0, 1], got {overlap_threshold}")
    if representative not in ("seed", "mean"):
        raise ValueError(f"Unknown representative mode: {representative}")
    if not detections:
        return []

    ranked = sorted(detections, key=_ranking_key)
    assigned = [False] * len(ranked)
    clusters: List[Detection] = []

    for i, seed in enumerate(ranked):
        if assigned[i]:
            continue

        members = []
        for j in range(i, len(ranked)):
            if assigned[j]:
                continue
            if j == i or calculate_iou(seed, ranked[j]) >= overlap_threshold:
                assigned[j] = True
                members.append(ranked[j])

        if representative == "seed":
            clusters.append(seed)
        else:
            clusters.append(_mean_detection(members))

        logger.debug(f"Cluster seeded at ({seed.row}, {seed.col}, {seed.scale}) absorbed {len(members)} detections")

    clusters.sort(key=_ranking_key)
    logger.debug(f"Clustered {len(detections)} detections into {len(clusters)}")
    return clusters


def _mean_detection(members: List[Detection]) -> Detection:
    count = len(members)
    return Detection(
        row=round(sum(d.row for d in members) / count),
        col=round(sum(d.col for d in members) / count),
        scale=sum(d.scale for d in members) / count,
        score=sum(d.score for d in members),
    )
