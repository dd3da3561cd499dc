"""
TCG Appraiser — Reasoning Adapter

Wraps the reasoning service for the two questions the workflow asks:

    invoke_authenticity(context) -> AuthenticityResult
    invoke_valuation(context)    -> ValuationSummary

Neither call ever raises. Timeout, transport failure, throttling, a reply
without JSON, or JSON that does not match the expected shape all produce
the deterministic fallback built from the same context.
"""

from __future__ import annotations

import asyncio
import json
import re
from decimal import Decimal
from typing import Any, Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from appraiser.authenticity.signals import calculate_weighted_authenticity_score
from appraiser.config import settings
from appraiser.errors import ReasoningError
from appraiser.reasoning.prompts import (
    AUTHENTICITY_SYSTEM_PROMPT,
    VALUATION_SYSTEM_PROMPT,
    build_authenticity_prompt,
    build_valuation_prompt,
)
from appraiser.reasoning.service import ReasoningService
from appraiser.schemas import (
    AuthenticityResult,
    AuthenticitySignals,
    CardMeta,
    FeatureEnvelope,
    PricingResult,
    ValuationSummary,
)

logger = structlog.get_logger(__name__)

AUTHENTICITY_FALLBACK_RATIONALE = (
    "AI analysis unavailable. Score based on automated signals only. "
    "Manual review recommended."
)
VALUATION_FALLBACK_RECOMMENDATION = "Manual review recommended for accurate valuation."
VALUATION_FALLBACK_MIN_CONFIDENCE = 0.3
VALUATION_FALLBACK_CONFIDENCE_FACTOR = 0.7

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_BARE_JSON = re.compile(r"\{.*\}", re.DOTALL)


# ---------------------------------------------------------------------------
# Contexts + model replies
# ---------------------------------------------------------------------------


class AuthenticityContext(BaseModel):
    features: FeatureEnvelope
    signals: AuthenticitySignals
    card_meta: CardMeta = Field(default_factory=CardMeta)
    expected_holo: bool = False


class ValuationContext(BaseModel):
    card_name: str
    set_name: Optional[str] = None
    condition: str = "Near Mint"
    pricing_result: PricingResult
    historical_trend: Optional[str] = None


class _ModelReply(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthenticityReply(_ModelReply):
    authenticity_score: float = Field(..., ge=0.0, le=1.0)
    fake_detected: bool
    rationale: str = Field(..., min_length=1)


class ValuationReply(_ModelReply):
    summary: str = Field(..., min_length=1)
    fair_value: Decimal = Field(..., ge=0)
    trend: Literal["rising", "falling", "stable"]
    recommendation: str
    confidence: float = Field(..., ge=0.0, le=1.0)


def extract_json(text: str) -> dict[str, Any]:
    """
    Pull the first JSON object out of a model reply, fenced or bare.

    Raises:
        ReasoningError: no JSON object, or it does not parse.
    """
    match = _FENCED_JSON.search(text) or _BARE_JSON.search(text)
    if match is None:
        raise ReasoningError("No JSON object in reasoning response")
    candidate = match.group(1) if match.re is _FENCED_JSON else match.group(0)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ReasoningError(f"Invalid JSON in reasoning response: {e}") from e
    if not isinstance(parsed, dict):
        raise ReasoningError("Reasoning response JSON is not an object")
    return parsed


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------


def authenticity_fallback(
    signals: AuthenticitySignals,
    fake_threshold: Optional[float] = None,
) -> AuthenticityResult:
    threshold = settings.FAKE_SCORE_THRESHOLD if fake_threshold is None else fake_threshold
    score = calculate_weighted_authenticity_score(signals)
    return AuthenticityResult(
        authenticity_score=score,
        fake_detected=score < threshold,
        rationale=AUTHENTICITY_FALLBACK_RATIONALE,
        signals=signals,
        verified_by_ai=False,
    )


def valuation_fallback(pricing: PricingResult) -> ValuationSummary:
    if pricing.is_degenerate:
        return ValuationSummary(
            summary="No recent sales were found for this card. AI analysis unavailable.",
            fair_value=None,
            trend="stable",
            recommendation=VALUATION_FALLBACK_RECOMMENDATION,
            confidence=0.0,
        )
    return ValuationSummary(
        summary=(
            f"Based on {pricing.comps_count} recent sales, this card is valued between "
            f"${pricing.value_low:.2f} and ${pricing.value_high:.2f}. AI analysis unavailable."
        ),
        fair_value=pricing.value_median,
        trend="stable",
        recommendation=VALUATION_FALLBACK_RECOMMENDATION,
        confidence=max(
            VALUATION_FALLBACK_MIN_CONFIDENCE,
            pricing.confidence * VALUATION_FALLBACK_CONFIDENCE_FACTOR,
        ),
    )


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class ReasoningAdapter:
    def __init__(
        self,
        service: ReasoningService,
        timeout_seconds: Optional[float] = None,
        fake_threshold: Optional[float] = None,
    ) -> None:
        self._service = service
        self._timeout = timeout_seconds or settings.REASONING_TIMEOUT_SECONDS
        self._fake_threshold = (
            settings.FAKE_SCORE_THRESHOLD if fake_threshold is None else fake_threshold
        )

    async def _ask(self, system: str, prompt: str) -> dict[str, Any]:
        text = await asyncio.wait_for(self._service.invoke(system, prompt), timeout=self._timeout)
        return extract_json(text)

    async def invoke_authenticity(self, context: AuthenticityContext) -> AuthenticityResult:
        """AI authenticity verdict, or the weighted-signal fallback."""
        system = AUTHENTICITY_SYSTEM_PROMPT.format(threshold=self._fake_threshold)
        prompt = build_authenticity_prompt(
            context.features, context.signals, context.card_meta, context.expected_holo
        )
        try:
            reply = AuthenticityReply.model_validate(await self._ask(system, prompt))
        except Exception as e:
            logger.warning(
                "reasoning_authenticity_fallback",
                card_name=context.card_meta.name,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            return authenticity_fallback(context.signals, self._fake_threshold)

        result = AuthenticityResult(
            authenticity_score=reply.authenticity_score,
            fake_detected=reply.fake_detected or reply.authenticity_score < self._fake_threshold,
            rationale=reply.rationale,
            signals=context.signals,
            verified_by_ai=True,
        )
        logger.info(
            "reasoning_authenticity_complete",
            card_name=context.card_meta.name,
            authenticity_score=result.authenticity_score,
            fake_detected=result.fake_detected,
        )
        return result

    async def invoke_valuation(self, context: ValuationContext) -> ValuationSummary:
        """AI valuation summary, or the template fallback."""
        if context.pricing_result.is_degenerate:
            logger.info("reasoning_valuation_skipped", card_name=context.card_name, reason="no comps")
            return valuation_fallback(context.pricing_result)

        prompt = build_valuation_prompt(
            context.card_name,
            context.set_name,
            context.condition,
            context.pricing_result,
            context.historical_trend,
        )
        try:
            reply = ValuationReply.model_validate(await self._ask(VALUATION_SYSTEM_PROMPT, prompt))
        except Exception as e:
            logger.warning(
                "reasoning_valuation_fallback",
                card_name=context.card_name,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            return valuation_fallback(context.pricing_result)

        summary = ValuationSummary(
            summary=reply.summary,
            fair_value=reply.fair_value.quantize(Decimal("0.01")),
            trend=reply.trend,
            recommendation=reply.recommendation,
            confidence=reply.confidence,
        )
        logger.info(
            "reasoning_valuation_complete",
            card_name=context.card_name,
            fair_value=str(summary.fair_value),
            trend=summary.trend,
        )
        return summary
