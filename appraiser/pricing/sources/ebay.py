"""
TCG Appraiser — eBay Browse API price source

Pulls recent fixed-price listings for a card from the eBay Browse API and
reports each one as a RawComp with source="ebay".

Authentication: OAuth2 Client Credentials flow, token cached per instance
until 60 seconds before expiry.
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from appraiser.config import settings
from appraiser.errors import PriceSourceError
from appraiser.pricing.sources.base import BasePriceSource
from appraiser.schemas import PriceQuery, RawComp

logger = structlog.get_logger(__name__)

_OAUTH_SCOPE = "https://api.ebay.com/oauth/api_scope"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_search_terms(query: PriceQuery) -> str:
    """'Charizard ex Obsidian Flames 125' style free-text query."""
    parts = [query.card_name, query.set_name, query.number]
    return " ".join(p for p in parts if p)


class EbaySource(BasePriceSource):
    """
    eBay Browse API source.

    Credentials default to settings.EBAY_APP_ID / settings.EBAY_CERT_ID.
    """

    name = "ebay"

    def __init__(
        self,
        app_id: Optional[str] = None,
        cert_id: Optional[str] = None,
        search_limit: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._app_id = app_id if app_id is not None else settings.EBAY_APP_ID
        self._cert_id = cert_id if cert_id is not None else settings.EBAY_CERT_ID
        self._search_limit = search_limit or settings.EBAY_SEARCH_LIMIT
        self._token: Optional[str] = None
        self._token_expires_at = datetime.min.replace(tzinfo=timezone.utc)

    @property
    def is_configured(self) -> bool:
        return bool(self._app_id and self._cert_id)

    async def _get_access_token(self) -> str:
        """
        OAuth2 Client Credentials flow using the app and cert ids.

        Caches the token until expiry (with 60-second safety margin).
        """
        if not self.is_configured:
            raise PriceSourceError("eBay credentials not configured", source=self.name)

        now = datetime.now(timezone.utc)
        if self._token and now < self._token_expires_at:
            return self._token

        encoded = base64.b64encode(f"{self._app_id}:{self._cert_id}".encode()).decode()
        response = await self._send(
            "POST",
            settings.EBAY_OAUTH_URL,
            headers={
                "Authorization": f"Basic {encoded}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={"grant_type": "client_credentials", "scope": _OAUTH_SCOPE},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise PriceSourceError("eBay token response is not JSON", source=self.name) from e
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise PriceSourceError("eBay token response missing access_token", source=self.name)

        expires_in = int(data.get("expires_in", 7200))
        self._token = token
        self._token_expires_at = now + timedelta(seconds=expires_in - 60)

        logger.info("ebay_token_refreshed", expires_in=expires_in, source=self.name)
        return token

    def _item_to_comp(self, item: Any) -> Optional[RawComp]:
        """RawComp for one listing, or None if the listing is unusable."""
        if not isinstance(item, dict):
            return None
        price = item.get("price") or {}
        try:
            value = Decimal(str(price["value"]))
        except (KeyError, InvalidOperation, TypeError):
            return None
        if not value.is_finite():
            return None

        sold_at = _parse_timestamp(item.get("itemEndDate") or item.get("itemCreationDate"))
        if sold_at is None:
            return None

        try:
            return RawComp(
                source=self.name,
                price=value,
                currency=price.get("currency") or "USD",
                condition=item.get("condition") or "Unknown",
                sold_at=sold_at,
                listing_url=item.get("itemWebUrl"),
            )
        except PydanticValidationError:
            return None

    async def _search(self, query: PriceQuery) -> list[RawComp]:
        """
        GET /buy/browse/v1/item_summary/search
            ?q={terms}&filter=buyingOptions:{FIXED_PRICE}&limit={limit}
        """
        token = await self._get_access_token()
        response = await self._send(
            "GET",
            f"{settings.EBAY_BROWSE_URL}/item_summary/search",
            headers={"Authorization": f"Bearer {token}"},
            params={
                "q": build_search_terms(query),
                "filter": "buyingOptions:{FIXED_PRICE}",
                "limit": str(self._search_limit),
            },
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise PriceSourceError("eBay returned invalid JSON", source=self.name) from e
        if not isinstance(payload, dict):
            raise PriceSourceError("eBay returned an unexpected payload", source=self.name)
        items = payload.get("itemSummaries") or []
        if not isinstance(items, list):
            raise PriceSourceError("eBay itemSummaries is not a list", source=self.name)

        comps = [c for c in (self._item_to_comp(item) for item in items) if c is not None]
        skipped = len(items) - len(comps)
        if skipped:
            logger.debug("ebay_items_skipped", skipped=skipped, source=self.name)
        return comps
