"""
TCG Appraiser — JustTCG price source (via RapidAPI)

JustTCG reports current market prices rather than individual sales: one
TCGPlayer price in USD and one Cardmarket price in EUR per card printing.
Each non-empty price becomes a RawComp stamped with the printing's
last-updated time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from urllib.parse import urlparse

import structlog
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from appraiser.config import settings
from appraiser.errors import PriceSourceError
from appraiser.pricing.sources.base import BasePriceSource
from appraiser.schemas import PriceQuery, RawComp

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class JustTCGPriceData(BaseModel):
    """Price data for a single card printing from JustTCG."""

    card_id: str = Field(..., description="Card identifier")
    name: str = Field(default="", description="Card name")
    set_name: str = Field(default="", description="Set name")
    price_usd: Decimal | None = Field(default=None, description="TCGPlayer price in USD")
    price_eur: Decimal | None = Field(default=None, description="Cardmarket price in EUR")
    condition: str | None = Field(default=None, description="Card condition if available")
    last_updated: datetime | None = Field(default=None, description="When the price was observed")
    url: str | None = Field(default=None, description="Product page")

    @field_validator("price_usd", "price_eur", mode="before")
    @classmethod
    def parse_decimal(cls, v: Any) -> Decimal | None:
        """Safely convert price values to Decimal. Never use float for money."""
        if v is None or v == "" or v == "N/A":
            return None
        try:
            value = Decimal(str(v))
        except (InvalidOperation, ValueError):
            return None
        return value if value.is_finite() else None


class JustTCGSearchResponse(BaseModel):
    """Top-level response from JustTCG search endpoint."""

    results: list[JustTCGPriceData] = Field(default_factory=list)
    total: int = Field(default=0)


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------


class JustTCGSource(BasePriceSource):
    name = "justtcg"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        clock: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._api_key = api_key if api_key is not None else settings.JUSTTCG_API_KEY
        self._base_url = (base_url or settings.JUSTTCG_BASE_URL).rstrip("/")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "X-RapidAPI-Key": self._api_key,
            "X-RapidAPI-Host": urlparse(self._base_url).netloc,
        }

    def _matches(self, item: JustTCGPriceData, query: PriceQuery) -> bool:
        if item.name and query.card_name.lower() not in item.name.lower():
            return False
        if query.set_name and item.set_name and query.set_name.lower() != item.set_name.lower():
            return False
        return True

    def _to_comps(self, item: JustTCGPriceData, query: PriceQuery) -> list[RawComp]:
        observed = item.last_updated or self._clock()
        condition = item.condition or query.condition or "Near Mint"
        comps = []
        for price, currency in ((item.price_usd, "USD"), (item.price_eur, "EUR")):
            if price is None:
                continue
            comps.append(
                RawComp(
                    source=self.name,
                    price=price,
                    currency=currency,
                    condition=condition,
                    sold_at=observed,
                    listing_url=item.url,
                )
            )
        return comps

    async def _search(self, query: PriceQuery) -> list[RawComp]:
        if not self.is_configured:
            raise PriceSourceError("JustTCG API key not configured", source=self.name)

        response = await self._send(
            "GET",
            f"{self._base_url}/search",
            headers=self._headers(),
            params={"q": query.card_name},
        )
        try:
            parsed = JustTCGSearchResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise PriceSourceError("JustTCG returned an unexpected payload", source=self.name) from e

        matching = [item for item in parsed.results if self._matches(item, query)]
        comps = [comp for item in matching for comp in self._to_comps(item, query)]

        logger.debug(
            "justtcg_search_parsed",
            card_name=query.card_name,
            results_count=len(parsed.results),
            matching=len(matching),
            source=self.name,
        )
        return comps
