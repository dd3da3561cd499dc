"""
TCG Appraiser — Aggregator

Joins the two branch results into one set of card fields and applies them
with a single conditional write. The pricing and authenticity field sets
are disjoint, so the merge does not depend on which branch finished first.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog

from appraiser.schemas import AuthenticityResult, PricingResult
from appraiser.store.cards import CardStore

logger = structlog.get_logger(__name__)


def pricing_fields(result: PricingResult) -> dict[str, Any]:
    return {
        "value_low": result.value_low,
        "value_median": result.value_median,
        "value_high": result.value_high,
        "comps_count": result.comps_count,
        "sources": list(result.sources),
    }


def authenticity_fields(result: AuthenticityResult) -> dict[str, Any]:
    return {
        "authenticity_score": result.authenticity_score,
        "authenticity_signals": result.signals.model_dump(mode="json", by_alias=True),
    }


def merge_card_fields(
    pricing: Optional[PricingResult],
    authenticity: Optional[AuthenticityResult],
) -> dict[str, Any]:
    """Card fields for whichever results are present."""
    fields: dict[str, Any] = {}
    if pricing is not None:
        fields.update(pricing_fields(pricing))
    if authenticity is not None:
        fields.update(authenticity_fields(authenticity))
    return fields


class Aggregator:
    def __init__(self, card_store: CardStore) -> None:
        self._card_store = card_store

    async def aggregate(
        self,
        owner_id: str,
        card_id: str,
        request_id: str,
        pricing: PricingResult,
        authenticity: AuthenticityResult,
    ) -> bool:
        """
        Write the merged results. Returns False if this request was already
        applied to the card.
        """
        fields = merge_card_fields(pricing, authenticity)
        applied = await self._card_store.apply_workflow_result(owner_id, card_id, fields, request_id)

        logger.info(
            "aggregate_complete",
            card_id=card_id,
            request_id=request_id,
            applied=applied,
            value_median=str(pricing.value_median),
            authenticity_score=round(authenticity.authenticity_score, 4),
        )
        return applied
