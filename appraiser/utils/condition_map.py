"""
TCG Appraiser — Condition Mapping Layer

Every price source describes condition in its own vocabulary: TCGPlayer
codes ("NM", "LP"), Cardmarket codes ("EXC", "GD"), eBay free text
("Near Mint or Better", "Used"), PSA-style labels. Fusion needs a single
ordinal scale so comps can be compared:

    POOR < GOOD < EXCELLENT < NEAR_MINT < MINT

Unknown or missing conditions map to NEAR_MINT, the market's default
listing grade.
"""

from __future__ import annotations

from enum import IntEnum

import structlog

logger = structlog.get_logger(__name__)


class ConditionGrade(IntEnum):
    """Ordinal condition scale. Higher is better."""
    POOR = 1
    GOOD = 2
    EXCELLENT = 3
    NEAR_MINT = 4
    MINT = 5

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


DEFAULT_GRADE = ConditionGrade.NEAR_MINT


# ---------------------------------------------------------------------------
# Exact platform codes
# ---------------------------------------------------------------------------

_CODE_MAP: dict[str, ConditionGrade] = {
    # Cardmarket
    "MT": ConditionGrade.MINT,
    "NM": ConditionGrade.NEAR_MINT,
    "EXC": ConditionGrade.EXCELLENT,
    "EX": ConditionGrade.EXCELLENT,
    "GD": ConditionGrade.GOOD,
    "LP": ConditionGrade.EXCELLENT,
    "PL": ConditionGrade.GOOD,
    "PO": ConditionGrade.POOR,
    # TCGPlayer
    "MP": ConditionGrade.GOOD,
    "HP": ConditionGrade.POOR,
    "DMG": ConditionGrade.POOR,
}

# Free-text fragments, checked in order. Longer phrases come first:
# "near mint" before "mint", "heavily played" before "played".
_TEXT_RULES: tuple[tuple[str, ConditionGrade], ...] = (
    ("near mint", ConditionGrade.NEAR_MINT),
    ("near-mint", ConditionGrade.NEAR_MINT),
    ("gem mint", ConditionGrade.MINT),
    ("mint", ConditionGrade.MINT),
    ("excellent", ConditionGrade.EXCELLENT),
    ("lightly played", ConditionGrade.EXCELLENT),
    ("light played", ConditionGrade.EXCELLENT),
    ("heavily", ConditionGrade.POOR),
    ("damaged", ConditionGrade.POOR),
    ("poor", ConditionGrade.POOR),
    ("moderately played", ConditionGrade.GOOD),
    ("good", ConditionGrade.GOOD),
    ("played", ConditionGrade.GOOD),
)


def normalize_condition(raw: str | None) -> ConditionGrade:
    """
    Map a source-specific condition label onto the ordinal scale.

    Args:
        raw: Condition as reported by the source (code or free text).

    Returns:
        The matching ConditionGrade, or NEAR_MINT when nothing matches.
    """
    if not raw or not raw.strip():
        return DEFAULT_GRADE

    code = raw.strip().upper()
    if code in _CODE_MAP:
        return _CODE_MAP[code]

    lowered = raw.strip().lower()
    for fragment, grade in _TEXT_RULES:
        if fragment in lowered:
            return grade

    logger.debug("condition_unrecognized", raw=raw, fallback=DEFAULT_GRADE.name)
    return DEFAULT_GRADE
