"""Tests for perceptual signatures and their comparison."""

import numpy as np
import pytest
from PIL import Image

from visage.imaging.decode import PixelMatrix, decode_image
from visage.similarity.compare import SimilarityResult, compare_images, compare_signatures
from visage.similarity.distance import aligned_grids, aspect_difference, signature_distance
from visage.similarity.hash import (
    GRID_SIZE,
    SIGNATURE_LENGTH,
    Anchor,
    ImageSignature,
    compute_signature,
    hash_image,
)
from tests.helpers.images import encode_image, scene_image


@pytest.fixture
def scene_bytes():
    return encode_image(scene_image(240, 180, variant=0))


@pytest.fixture
def other_scene_bytes():
    return encode_image(scene_image(240, 180, variant=1))


def resized_bytes(factor: float, variant: int = 0) -> bytes:
    img = scene_image(240, 180, variant=variant)
    size = (round(240 * factor), round(180 * factor))
    return encode_image(img.resize(size, Image.Resampling.LANCZOS))


class TestSignature:
    def test_structure(self, scene_bytes):
        signature = hash_image(scene_bytes)

        assert isinstance(signature, ImageSignature)
        assert len(signature.coefficients) == SIGNATURE_LENGTH == 363
        assert len(signature.anchors) == 2
        assert all(0.0 <= c <= 1.0 for c in signature.coefficients)
        assert signature.size_anchor == Anchor(x=240.0, y=180.0)
        assert 0.0 < signature.contrast_anchor.x < 1.0
        assert 0.0 < signature.contrast_anchor.y < 1.0

    def test_hash_is_pure(self, scene_bytes):
        first = hash_image(scene_bytes)
        second = hash_image(scene_bytes)

        assert first.coefficients == second.coefficients
        assert first.anchors == second.anchors
        assert first == second

    def test_immutable(self, scene_bytes):
        signature = hash_image(scene_bytes)
        with pytest.raises(AttributeError):
            signature.coefficients = ()  # type: ignore

    def test_uniform_gray_image(self):
        matrix = PixelMatrix.from_gray(np.full((30, 40), 128, dtype=np.uint8))
        signature = compute_signature(matrix)

        luma = signature.coefficients[:GRID_SIZE * GRID_SIZE]
        chroma = signature.coefficients[GRID_SIZE * GRID_SIZE:]
        assert all(v == pytest.approx(128 / 255) for v in luma)
        assert all(v == pytest.approx(0.5, abs=1e-6) for v in chroma)
        assert signature.contrast_anchor == Anchor(x=0.5, y=0.5)

    def test_tiny_image(self):
        matrix = PixelMatrix.from_gray(np.array([[10, 200]], dtype=np.uint8))
        signature = compute_signature(matrix)

        assert len(signature.coefficients) == SIGNATURE_LENGTH
        assert signature.contrast_anchor == Anchor(x=0.5, y=0.5)

    def test_contrast_anchor_follows_content(self):
        left = np.zeros((60, 60), dtype=np.uint8)
        left[20:40, 5:25] = 255
        right = np.zeros((60, 60), dtype=np.uint8)
        right[20:40, 35:55] = 255

        left_anchor = compute_signature(PixelMatrix.from_gray(left)).contrast_anchor
        right_anchor = compute_signature(PixelMatrix.from_gray(right)).contrast_anchor

        assert left_anchor.x < 0.5 < right_anchor.x
        assert left_anchor.y == pytest.approx(0.5, abs=0.02)

    def test_to_dict(self, scene_bytes):
        payload = hash_image(scene_bytes).to_dict()

        assert set(payload) == {"coefficients", "anchors"}
        assert len(payload["coefficients"]) == SIGNATURE_LENGTH
        assert payload["anchors"][0] == {"x": 240.0, "y": 180.0}


class TestDistance:
    def test_aspect_difference(self):
        a = ImageSignature(coefficients=(0.0,), anchors=(Anchor(200.0, 100.0), Anchor(0.5, 0.5)))
        b = ImageSignature(coefficients=(0.0,), anchors=(Anchor(100.0, 100.0), Anchor(0.5, 0.5)))
        assert aspect_difference(a, b) == pytest.approx(np.log(2.0))
        assert aspect_difference(a, a) == 0.0

    def test_alignment_is_symmetric(self, scene_bytes, other_scene_bytes):
        a = hash_image(scene_bytes)
        b = hash_image(other_scene_bytes)

        ga, gb = aligned_grids(a, b)
        gb2, ga2 = aligned_grids(b, a)
        np.testing.assert_array_equal(ga, ga2)
        np.testing.assert_array_equal(gb, gb2)

    def test_alignment_moves_grids_toward_each_other(self):
        flat = tuple([0.5] * SIGNATURE_LENGTH)
        a = ImageSignature(coefficients=flat, anchors=(Anchor(10.0, 10.0), Anchor(0.4, 0.5)))
        b = ImageSignature(coefficients=flat, anchors=(Anchor(10.0, 10.0), Anchor(0.6, 0.5)))

        ga, gb = aligned_grids(a, b)
        assert ga.shape == (GRID_SIZE, GRID_SIZE, 3)
        np.testing.assert_allclose(ga, 0.5)
        np.testing.assert_allclose(gb, 0.5)

    def test_length_mismatch(self):
        anchors = (Anchor(1.0, 1.0), Anchor(0.5, 0.5))
        with pytest.raises(ValueError):
            signature_distance(
                ImageSignature(coefficients=(0.0,) * SIGNATURE_LENGTH, anchors=anchors),
                ImageSignature(coefficients=(0.0,) * 3, anchors=anchors),
            )


class TestCompare:
    def test_identical_images(self, scene_bytes):
        signature = hash_image(scene_bytes)
        result = compare_signatures(signature, signature)

        assert result == SimilarityResult(distance=0.0, similar=True)

    def test_same_bytes_hashed_twice(self, scene_bytes):
        result = compare_signatures(hash_image(scene_bytes), hash_image(scene_bytes))
        assert result.distance == 0.0
        assert result.similar

    def test_uniform_image_against_itself(self):
        data = encode_image(Image.new('RGB', (20, 20), color=(90, 10, 200)))
        result = compare_images(data, data)
        assert result.distance == 0.0
        assert result.similar

    def test_symmetry(self, scene_bytes, other_scene_bytes):
        a = hash_image(scene_bytes)
        b = hash_image(other_scene_bytes)
        assert compare_signatures(a, b) == compare_signatures(b, a)

    @pytest.mark.parametrize("factor", [0.95, 0.97, 1.03, 1.05])
    def test_mild_resize_is_similar(self, scene_bytes, factor):
        result = compare_images(scene_bytes, resized_bytes(factor))
        assert result.similar, f"distance {result.distance} at scale {factor}"

    @pytest.mark.parametrize("factor", [0.95, 1.05])
    def test_resize_symmetry(self, scene_bytes, factor):
        a = hash_image(scene_bytes)
        b = hash_image(resized_bytes(factor))
        assert compare_signatures(a, b) == compare_signatures(b, a)

    def test_different_scenes_are_not_similar(self, scene_bytes, other_scene_bytes):
        result = compare_images(scene_bytes, other_scene_bytes)
        assert not result.similar
        assert result.distance > 0.005

    def test_inverted_image_is_not_similar(self, scene_bytes):
        rgb = decode_image(scene_bytes).rgb
        inverted = encode_image(Image.fromarray(255 - rgb))
        assert not compare_images(scene_bytes, inverted).similar

    def test_different_proportions_are_not_similar(self):
        wide = encode_image(scene_image(300, 100))
        tall = encode_image(scene_image(100, 300))
        result = compare_images(wide, tall)

        assert not result.similar
        assert result.distance >= np.log(9.0) - 1e-9

    def test_threshold_is_configurable(self, scene_bytes, other_scene_bytes):
        assert compare_images(scene_bytes, other_scene_bytes, threshold=10.0).similar

    def test_to_dict(self, scene_bytes):
        payload = compare_images(scene_bytes, scene_bytes).to_dict()
        assert payload == {"similar": True, "distance": 0.0}
