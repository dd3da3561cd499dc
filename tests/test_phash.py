"""Tests for the perceptual hash (appraiser.authenticity.phash)."""

from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from appraiser.authenticity.phash import compute_perceptual_hash, hamming_distance, similarity
from appraiser.errors import InvalidImageError
from helpers import make_png


def _smooth_image(seed: int, size: int, fmt: str = "PNG") -> bytes:
    """Low-frequency image: 8x8 noise upscaled with bicubic filtering."""
    rng = np.random.default_rng(seed)
    small = Image.fromarray(rng.integers(0, 256, size=(8, 8), dtype=np.uint8), mode="L")
    buffer = io.BytesIO()
    small.resize((size, size), Image.Resampling.BICUBIC).save(buffer, format=fmt)
    return buffer.getvalue()


class TestComputePerceptualHash:
    def test_hash_shape(self):
        """16 lowercase hex characters with the padding bit cleared."""
        h = compute_perceptual_hash(make_png(1))
        assert len(h) == 16
        assert h == h.lower()
        assert int(h, 16) & 1 == 0

    def test_deterministic(self):
        assert compute_perceptual_hash(make_png(3)) == compute_perceptual_hash(make_png(3))

    def test_independent_of_container_format(self):
        assert compute_perceptual_hash(_smooth_image(5, 64, "PNG")) == compute_perceptual_hash(
            _smooth_image(5, 64, "BMP")
        )

    def test_rescaled_image_is_similar(self):
        original = compute_perceptual_hash(_smooth_image(7, 64))
        rescaled = compute_perceptual_hash(_smooth_image(7, 256))
        assert similarity(original, rescaled) >= 0.75

    def test_different_images_differ(self):
        assert hamming_distance(
            compute_perceptual_hash(_smooth_image(1, 64)),
            compute_perceptual_hash(_smooth_image(2, 64)),
        ) > 0

    def test_garbage_bytes_raise(self):
        with pytest.raises(InvalidImageError):
            compute_perceptual_hash(b"definitely not an image")

    def test_empty_bytes_raise(self):
        with pytest.raises(InvalidImageError):
            compute_perceptual_hash(b"")


class TestSimilarity:
    def test_identical(self):
        assert similarity("a" * 16, "a" * 16) == 1.0

    def test_opposite(self):
        assert similarity("0" * 16, "f" * 16) == 0.0

    def test_one_bit(self):
        assert hamming_distance("0" * 16, "0" * 15 + "1") == 1
        assert similarity("0" * 16, "0" * 15 + "1") == pytest.approx(1 - 1 / 64)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            hamming_distance("0" * 16, "0" * 8)
