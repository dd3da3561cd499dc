"""
TCG Appraiser — Workflow branch agents

PricingAgent and AuthenticityAgent are the two branches of the
PARALLEL_AGENTS state. They share nothing but the read-only card and
FeatureEnvelope, so they can run concurrently and in either order.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from appraiser.authenticity.phash import compute_perceptual_hash
from appraiser.authenticity.reference_hashes import ReferenceHashIndex
from appraiser.authenticity.signals import compute_authenticity_signals, is_expected_holographic
from appraiser.config import settings
from appraiser.errors import InvalidImageError
from appraiser.pricing.orchestrator import PricingOrchestrator
from appraiser.reasoning.adapter import AuthenticityContext, ReasoningAdapter, ValuationContext
from appraiser.schemas import Card, FeatureEnvelope, PriceQuery
from appraiser.storage import ObjectStore
from appraiser.workflow.states import AuthenticityBranchResult, PricingBranchResult

logger = structlog.get_logger(__name__)

DEFAULT_CARD_NAME = "Unknown Card"
DEFAULT_CONDITION = "Near Mint"


class PricingAgent:
    """Fuses market comps for the card, then asks for a valuation summary."""

    def __init__(
        self,
        orchestrator: PricingOrchestrator,
        reasoning: ReasoningAdapter,
        window_days: Optional[int] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._reasoning = reasoning
        self._window_days = window_days or settings.DEFAULT_WINDOW_DAYS

    async def run(self, card: Card, request_id: str, force_refresh: bool = False) -> PricingBranchResult:
        card_name = card.name or DEFAULT_CARD_NAME
        condition = card.condition_estimate or DEFAULT_CONDITION

        query = PriceQuery(
            card_name=card_name,
            set_name=card.set_name,
            number=card.number,
            condition=condition,
            window_days=self._window_days,
        )
        pricing_result = await self._orchestrator.fetch_all_comps(
            query,
            owner_id=card.owner_id,
            card_id=card.card_id,
            force_refresh=force_refresh,
        )
        valuation = await self._reasoning.invoke_valuation(
            ValuationContext(
                card_name=card_name,
                set_name=card.set_name,
                condition=condition,
                pricing_result=pricing_result,
            )
        )

        logger.info(
            "pricing_agent_complete",
            request_id=request_id,
            card_id=card.card_id,
            comps_count=pricing_result.comps_count,
            fair_value=str(valuation.fair_value),
        )
        return PricingBranchResult(pricing_result=pricing_result, valuation_summary=valuation)


class AuthenticityAgent:
    """pHash + reference comparison + the five signals + reasoning verdict."""

    def __init__(
        self,
        object_store: ObjectStore,
        reference_index: ReferenceHashIndex,
        reasoning: ReasoningAdapter,
    ) -> None:
        self._object_store = object_store
        self._reference_index = reference_index
        self._reasoning = reasoning

    async def _visual_hash_confidence(self, card: Card, image_key: str) -> float:
        image_bytes = await self._object_store.get_bytes(image_key)
        try:
            image_hash = await asyncio.to_thread(compute_perceptual_hash, image_bytes)
        except InvalidImageError as e:
            logger.warning(
                "authenticity_phash_unavailable",
                card_id=card.card_id,
                image_key=image_key,
                error=str(e),
            )
            return settings.NEUTRAL_VISUAL_HASH_CONFIDENCE
        return await self._reference_index.visual_hash_confidence(image_hash, card.name)

    async def run(
        self,
        card: Card,
        features: FeatureEnvelope,
        image_key: str,
        request_id: str,
    ) -> AuthenticityBranchResult:
        visual_hash_confidence = await self._visual_hash_confidence(card, image_key)
        expected_holo = is_expected_holographic(card.rarity)

        signals = compute_authenticity_signals(
            features,
            visual_hash_confidence,
            card_name=card.name,
            expected_holo=expected_holo,
        )
        result = await self._reasoning.invoke_authenticity(
            AuthenticityContext(
                features=features,
                signals=signals,
                card_meta=card.meta(),
                expected_holo=expected_holo,
            )
        )

        logger.info(
            "authenticity_agent_complete",
            request_id=request_id,
            card_id=card.card_id,
            authenticity_score=round(result.authenticity_score, 4),
            fake_detected=result.fake_detected,
            verified_by_ai=result.verified_by_ai,
        )
        return AuthenticityBranchResult(authenticity_result=result)
