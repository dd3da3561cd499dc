"""
TCG Appraiser — Authenticity Signal Engine

Scores a FeatureEnvelope on five independent signals, each in [0, 1]:

    visual_hash_confidence   similarity to authentic reference images (pHash)
    text_match_confidence    expected print text present + OCR confidence
    holo_pattern_confidence  holo variance vs. what the rarity implies
    border_consistency       border symmetry, uniformity, and width
    font_validation          alignment, kerning and font-size consistency

The weighted score is the deterministic authenticity estimate used when
the reasoning service is unavailable.
"""

from __future__ import annotations

import statistics
from typing import Optional, Sequence

import structlog

from appraiser.schemas import AuthenticitySignals, BorderMetrics, FeatureEnvelope, FontMetrics, OCRBlock

logger = structlog.get_logger(__name__)

# Print text every authentic card carries somewhere on the front or back.
AUTHENTIC_TEXT_PATTERNS: tuple[str, ...] = (
    "HP",
    "©",
    "Pokémon",
    "Nintendo",
    "Creatures",
    "GAME FREAK",
    "Illus.",
    "Weakness",
    "Resistance",
    "Retreat",
)

# Holo variance band for holographic printings; above it suggests an overlay.
HOLO_MIN_VARIANCE = 0.3
HOLO_MAX_VARIANCE = 0.9
HOLO_OPTIMAL_VARIANCE = 0.6

EXPECTED_BORDER_RATIO = 0.15
BORDER_RATIO_TOLERANCE = 0.1

MAX_KERNING_VARIANCE = 0.05
MAX_FONT_SIZE_VARIANCE = 50.0

SIGNAL_WEIGHTS: dict[str, float] = {
    "visual_hash_confidence": 0.30,
    "text_match_confidence": 0.25,
    "holo_pattern_confidence": 0.20,
    "border_consistency": 0.15,
    "font_validation": 0.10,
}

HOLOGRAPHIC_RARITIES: tuple[str, ...] = (
    "holo",
    "holographic",
    "reverse holo",
    "ultra rare",
    "secret rare",
    "rainbow rare",
    "full art",
    "vmax",
    "vstar",
    "ex",
    "gx",
)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


# ---------------------------------------------------------------------------
# Individual signals
# ---------------------------------------------------------------------------


def calculate_text_match_confidence(
    ocr_blocks: Sequence[OCRBlock],
    expected_card_name: Optional[str] = None,
) -> float:
    """
    0.7 * (fraction of expected patterns found) + 0.3 * (mean OCR confidence).

    The expected card name, when known, counts as one more pattern.
    No OCR text at all scores 0.
    """
    if not ocr_blocks:
        logger.warning("text_match_no_ocr_blocks")
        return 0.0

    all_text = " ".join(block.text for block in ocr_blocks).lower()
    patterns = list(AUTHENTIC_TEXT_PATTERNS)
    if expected_card_name:
        patterns.append(expected_card_name)

    matched = sum(1 for pattern in patterns if pattern.lower() in all_text)
    pattern_ratio = matched / len(patterns)
    avg_ocr_confidence = statistics.fmean(block.confidence for block in ocr_blocks)

    score = _clamp(pattern_ratio * 0.7 + avg_ocr_confidence * 0.3)
    logger.debug(
        "text_match_confidence",
        matched_patterns=matched,
        total_patterns=len(patterns),
        avg_ocr_confidence=round(avg_ocr_confidence, 4),
        score=round(score, 4),
    )
    return score


def calculate_holo_pattern_confidence(holo_variance: float, expected_holo: bool = False) -> float:
    """
    Non-holo printings should show little variance. Holo printings should
    sit inside [0.3, 0.9], ideally near 0.6.
    """
    if not expected_holo:
        if holo_variance < 0.2:
            return 1.0
        if holo_variance < 0.4:
            return 0.7
        return 0.3

    if HOLO_MIN_VARIANCE <= holo_variance <= HOLO_MAX_VARIANCE:
        deviation = abs(holo_variance - HOLO_OPTIMAL_VARIANCE)
        return max(0.5, min(1.0, 1 - deviation / 0.3))
    if holo_variance < HOLO_MIN_VARIANCE:
        return 0.3 + (holo_variance / HOLO_MIN_VARIANCE) * 0.2
    return max(0.2, 0.5 - (holo_variance - HOLO_MAX_VARIANCE))


def calculate_border_consistency(borders: BorderMetrics) -> float:
    """0.4 * symmetry + 0.3 * uniformity across the four sides + 0.3 * width fit."""
    ratios = [borders.top_ratio, borders.bottom_ratio, borders.left_ratio, borders.right_ratio]
    avg_ratio = statistics.fmean(ratios)
    variance = statistics.pvariance(ratios, mu=avg_ratio)
    variance_confidence = max(0.0, 1 - variance * 10)

    deviation = abs(avg_ratio - EXPECTED_BORDER_RATIO)
    ratio_confidence = 1.0
    if deviation > BORDER_RATIO_TOLERANCE:
        ratio_confidence = max(0.0, 1 - (deviation - BORDER_RATIO_TOLERANCE) / EXPECTED_BORDER_RATIO)

    return _clamp(
        borders.symmetry_score * 0.4 + variance_confidence * 0.3 + ratio_confidence * 0.3
    )


def calculate_font_validation(font_metrics: FontMetrics) -> float:
    """0.4 * alignment + 0.3 * kerning consistency + 0.3 * font-size consistency."""
    kerning_confidence = 1.0
    if len(font_metrics.kerning) > 1:
        kerning_variance = statistics.pvariance(font_metrics.kerning)
        kerning_confidence = max(0.0, 1 - kerning_variance / MAX_KERNING_VARIANCE)

    font_size_confidence = max(0.0, 1 - font_metrics.font_size_variance / MAX_FONT_SIZE_VARIANCE)

    return _clamp(
        font_metrics.alignment * 0.4 + kerning_confidence * 0.3 + font_size_confidence * 0.3
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def compute_authenticity_signals(
    features: FeatureEnvelope,
    visual_hash_confidence: float,
    card_name: Optional[str] = None,
    expected_holo: bool = False,
) -> AuthenticitySignals:
    signals = AuthenticitySignals(
        visual_hash_confidence=_clamp(visual_hash_confidence),
        text_match_confidence=calculate_text_match_confidence(features.ocr, card_name),
        holo_pattern_confidence=calculate_holo_pattern_confidence(features.holo_variance, expected_holo),
        border_consistency=calculate_border_consistency(features.borders),
        font_validation=calculate_font_validation(features.font_metrics),
    )
    logger.info("authenticity_signals_computed", card_name=card_name, **signals.model_dump())
    return signals


def calculate_weighted_authenticity_score(signals: AuthenticitySignals) -> float:
    """Weighted sum of the five signals. Weights sum to 1, so the result is in [0, 1]."""
    values = signals.model_dump()
    return _clamp(sum(values[name] * weight for name, weight in SIGNAL_WEIGHTS.items()))


def is_expected_holographic(rarity: Optional[str]) -> bool:
    """
    Whether a printing of this rarity should show holographic foil.

    Matches whole words so "Rare" does not count as "ex".
    """
    if not rarity:
        return False
    words = rarity.lower().replace("-", " ").split()
    normalized = " ".join(words)
    for label in HOLOGRAPHIC_RARITIES:
        if " " in label:
            if label in normalized:
                return True
        elif label in words:
            return True
    return False
