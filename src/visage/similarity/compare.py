"""Near-duplicate decision between two signatures."""

from dataclasses import dataclass

from .distance import aspect_difference, signature_distance
from .hash import ImageSignature, hash_image
from ..imaging.decode import DEFAULT_MAX_PIXELS
from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 0.005
DEFAULT_MAX_ASPECT_DIFFERENCE = 0.1


@dataclass(frozen=True)
class SimilarityResult:
    distance: float
    similar: bool

    def to_dict(self) -> dict:
        return {"similar": self.similar, "distance": self.distance}


def compare_signatures(
    a: ImageSignature,
    b: ImageSignature,
    threshold: float = DEFAULT_THRESHOLD,
    max_aspect_difference: float = DEFAULT_MAX_ASPECT_DIFFERENCE,
) -> SimilarityResult:
    """
    Decide whether two signatures describe near-duplicate images.

    Args:
        a: First signature
        b: Second signature
        threshold: Largest mean squared coefficient difference still considered similar
        max_aspect_difference: Largest tolerated difference of log aspect ratios

    Returns:
        SimilarityResult; symmetric in its arguments
    """
    distance = signature_distance(a, b)

    aspect = aspect_difference(a, b)
    aspect_ok = aspect <= max_aspect_difference
    if not aspect_ok:
        # Differently proportioned images are never near-duplicates
        distance += aspect

    similar = aspect_ok and distance <= threshold
    logger.debug(f"Signature distance {distance:.6f} (aspect {aspect:.4f}), similar={similar}")
    return SimilarityResult(distance=distance, similar=similar)


def compare_images(
    data_a: bytes,
    data_b: bytes,
    threshold: float = DEFAULT_THRESHOLD,
    max_aspect_difference: float = DEFAULT_MAX_ASPECT_DIFFERENCE,
    max_pixels: int = DEFAULT_MAX_PIXELS,
) -> SimilarityResult:
    """Hash two encoded images and compare them."""
    return compare_signatures(
        hash_image(data_a, max_pixels=max_pixels),
        hash_image(data_b, max_pixels=max_pixels),
        threshold=threshold,
        max_aspect_difference=max_aspect_difference,
    )
