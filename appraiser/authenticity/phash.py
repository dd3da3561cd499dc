"""
TCG Appraiser — Perceptual hash (pHash)

    1. Decode, convert to 8-bit grayscale, resize to 32x32.
    2. 2-D DCT-II (orthonormal) of the 32x32 matrix.
    3. Keep the 8x8 low-frequency block, minus the DC term: 63 coefficients.
    4. Bit i = coefficient i > median of the 63.
    5. Pad with one trailing 0 bit and render as 16 hex characters.

Similar images give hashes with a small Hamming distance; similarity is
1 - distance / 64.
"""

from __future__ import annotations

import io
import math

import numpy as np
import structlog
from PIL import Image, UnidentifiedImageError

from appraiser.errors import InvalidImageError

logger = structlog.get_logger(__name__)

HASH_IMAGE_SIZE = 32
HASH_BLOCK_SIZE = 8
HASH_BITS = 64


def _dct_matrix(size: int) -> np.ndarray:
    """Orthonormal DCT-II basis: C[u, x] = a(u) * cos((2x + 1) u pi / 2N)."""
    x = np.arange(size)
    u = x.reshape(-1, 1)
    basis = np.cos((2 * x + 1) * u * math.pi / (2 * size)) * math.sqrt(2.0 / size)
    basis[0, :] /= math.sqrt(2.0)
    return basis


_DCT = _dct_matrix(HASH_IMAGE_SIZE)


def _load_grayscale(image_bytes: bytes) -> np.ndarray:
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            gray = img.convert("L").resize((HASH_IMAGE_SIZE, HASH_IMAGE_SIZE), Image.Resampling.LANCZOS)
            return np.asarray(gray, dtype=np.float64)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise InvalidImageError(f"Cannot decode image for hashing: {e}") from e


def compute_perceptual_hash(image_bytes: bytes) -> str:
    """
    64-bit pHash of an encoded image, as 16 lowercase hex characters.

    Raises:
        InvalidImageError: the bytes are not a decodable image.
    """
    pixels = _load_grayscale(image_bytes)
    coefficients = _DCT @ pixels @ _DCT.T

    block = coefficients[:HASH_BLOCK_SIZE, :HASH_BLOCK_SIZE].flatten()[1:]
    median = np.median(block)
    bits = [1 if c > median else 0 for c in block] + [0]

    value = 0
    for bit in bits:
        value = (value << 1) | bit
    hex_hash = f"{value:016x}"

    logger.debug("phash_computed", hash=hex_hash)
    return hex_hash


def hamming_distance(hash_a: str, hash_b: str) -> int:
    if len(hash_a) != len(hash_b):
        raise ValueError(f"Hash lengths differ: {len(hash_a)} != {len(hash_b)}")
    return bin(int(hash_a, 16) ^ int(hash_b, 16)).count("1")


def similarity(hash_a: str, hash_b: str, max_distance: int = HASH_BITS) -> float:
    """1.0 for identical hashes, falling linearly to 0.0 at max_distance."""
    return max(0.0, 1.0 - hamming_distance(hash_a, hash_b) / max_distance)
