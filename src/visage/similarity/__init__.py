"""Perceptual signatures and near-duplicate comparison."""

from .hash import Anchor, ImageSignature, SIGNATURE_LENGTH, compute_signature, hash_image
from .distance import aligned_grids, aspect_difference, signature_distance
from .compare import SimilarityResult, compare_images, compare_signatures

__all__ = [
    "Anchor",
    "ImageSignature",
    "SIGNATURE_LENGTH",
    "compute_signature",
    "hash_image",
    "aligned_grids",
    "aspect_difference",
    "signature_distance",
    "SimilarityResult",
    "compare_images",
    "compare_signatures",
]
