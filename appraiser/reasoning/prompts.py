"""
TCG Appraiser — Reasoning prompts

System and user prompts for the authenticity and valuation calls. The
model is asked for a single JSON object; anything else is treated as a
failed call and the caller falls back to the deterministic result.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from appraiser.schemas import AuthenticitySignals, CardMeta, FeatureEnvelope, PricingResult

AUTHENTICITY_SYSTEM_PROMPT = """\
You authenticate Pokémon trading cards. You know how genuine cards are \
printed and how counterfeits usually differ.

You are given five automated signals, each between 0 and 1:
- visual hash confidence: similarity to scans of known-authentic copies
- text match confidence: expected print text found by OCR
- holographic pattern confidence: foil behaviour versus the card's rarity
- border consistency: border symmetry and width
- font validation: kerning, alignment and font size consistency

Weigh them, give an overall authenticity score between 0.0 and 1.0, flag the \
card as fake when the score is below {threshold}, and explain the deciding \
factors in two or three sentences. Reply with JSON only."""

VALUATION_SYSTEM_PROMPT = """\
You value Pokémon trading cards from recent sales data.

You are given a fused price range built from several marketplaces, the \
number of comparable sales, the data window, and market confidence and \
volatility figures. Give a short market summary, a fair value in USD, the \
price trend (rising, falling or stable) and one practical recommendation for \
a collector or seller. Stay close to the data and reflect low confidence or \
high volatility in your answer. Reply with JSON only."""


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def _usd(value: Optional[Decimal]) -> str:
    return "n/a" if value is None else f"${value:.2f}"


def build_authenticity_prompt(
    features: FeatureEnvelope,
    signals: AuthenticitySignals,
    card_meta: CardMeta,
    expected_holo: bool,
) -> str:
    return f"""\
Card:
- Name: {card_meta.name or "Unknown"}
- Set: {card_meta.set_name or "Unknown"}
- Rarity: {card_meta.rarity or "Unknown"}
- Expected holographic: {"yes" if expected_holo else "no"}

Signals:
- Visual hash confidence: {_pct(signals.visual_hash_confidence)}
- Text match confidence: {_pct(signals.text_match_confidence)}
- Holographic pattern confidence: {_pct(signals.holo_pattern_confidence)}
- Border consistency: {_pct(signals.border_consistency)}
- Font validation: {_pct(signals.font_validation)}

Capture quality:
- OCR blocks: {len(features.ocr)}
- Blur score: {_pct(features.quality.blur_score)}
- Glare: {"yes" if features.quality.glare_detected else "no"}
- Border symmetry: {_pct(features.borders.symmetry_score)}

Answer with:
{{"authenticityScore": <0.0-1.0>, "fakeDetected": <true|false>, "rationale": "<2-3 sentences>"}}"""


def build_valuation_prompt(
    card_name: str,
    set_name: Optional[str],
    condition: str,
    pricing: PricingResult,
    historical_trend: Optional[str] = None,
) -> str:
    trend_line = f"\nHistorical trend: {historical_trend}\n" if historical_trend else ""
    return f"""\
Card:
- Name: {card_name}
- Set: {set_name or "Unknown"}
- Condition: {condition}

Pricing:
- Range: {_usd(pricing.value_low)} - {_usd(pricing.value_high)}
- Median: {_usd(pricing.value_median)}
- Comparable sales: {pricing.comps_count}
- Window: {pricing.window_days} days
- Sources: {", ".join(pricing.sources) or "none"}
- Confidence: {_pct(pricing.confidence)}
- Volatility: {_pct(pricing.volatility)}
{trend_line}
Answer with:
{{"summary": "<2-3 sentences>", "fairValue": <number>, "trend": "<rising|falling|stable>", \
"recommendation": "<one sentence>", "confidence": <0.0-1.0>}}"""
