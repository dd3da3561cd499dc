"""
TCG Appraiser — Price source base class

A price source knows how to turn a PriceQuery into RawComps through one
external API. BasePriceSource adds what every source needs around that
call: a per-source circuit breaker, retry with exponential backoff, and
ownership of the httpx client.

Subclasses implement `_search()` and raise PriceSourceError on any
failure; payload parsing errors that escape `_search()` are wrapped in
PriceSourceError so the breaker counts them. `fetch_comps()` is the only
entry point callers use.

Usage:
    async with EbaySource() as source:
        comps = await source.fetch_comps(PriceQuery(card_name="Charizard ex"))
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import structlog

from appraiser.config import settings
from appraiser.errors import PriceSourceError, PriceSourceRejectedError
from appraiser.pricing.circuit_breaker import CircuitBreaker
from appraiser.schemas import PriceQuery, RawComp
from appraiser.utils.retry import retry_async

logger = structlog.get_logger(__name__)


class BasePriceSource(ABC):
    name: str = "base"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
        max_retries: Optional[int] = None,
        base_backoff: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._breaker = breaker or CircuitBreaker(self.name)
        self._max_retries = settings.SOURCE_MAX_RETRIES if max_retries is None else max_retries
        self._base_backoff = (
            settings.SOURCE_BASE_BACKOFF_SECONDS if base_backoff is None else base_backoff
        )
        self._timeout = timeout or settings.SOURCE_TIMEOUT_SECONDS

    async def __aenter__(self) -> "BasePriceSource":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def is_configured(self) -> bool:
        """Whether credentials are present. Unconfigured sources are not queried."""
        return True

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        One HTTP call. Transport errors, 429 and 5xx become PriceSourceError;
        any other 4xx becomes PriceSourceRejectedError and is not retried.
        """
        try:
            response = await self._http().request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise PriceSourceError(f"{self.name} request timed out", source=self.name) from e
        except httpx.RequestError as e:
            raise PriceSourceError(f"{self.name} request failed: {e}", source=self.name) from e

        if response.status_code == 429:
            raise PriceSourceError(f"{self.name} rate limited", source=self.name, status_code=429)
        if 400 <= response.status_code < 500:
            raise PriceSourceRejectedError(
                f"{self.name} rejected the request with HTTP {response.status_code}",
                source=self.name,
                status_code=response.status_code,
            )
        if response.status_code >= 500:
            raise PriceSourceError(
                f"{self.name} returned HTTP {response.status_code}",
                source=self.name,
                status_code=response.status_code,
            )
        return response

    @abstractmethod
    async def _search(self, query: PriceQuery) -> list[RawComp]:
        """Query the remote API once. Raise PriceSourceError on failure."""

    async def _search_once(self, query: PriceQuery) -> list[RawComp]:
        try:
            return await self._search(query)
        except PriceSourceError:
            raise
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            # Malformed payloads (bad JSON, unexpected shapes) count as source failures.
            raise PriceSourceError(
                f"{self.name} returned an unreadable response: {e}",
                source=self.name,
                error_type=type(e).__name__,
            ) from e

    async def fetch_comps(self, query: PriceQuery) -> list[RawComp]:
        """
        Comps for `query`, with circuit breaking and retries.

        Raises:
            PriceSourceError: circuit open, or every attempt failed.
        """
        if not self._breaker.allow_request():
            logger.warning("price_source_circuit_open", source=self.name, card_name=query.card_name)
            raise PriceSourceError(f"{self.name} circuit open", source=self.name)

        try:
            comps = await retry_async(
                lambda: self._search_once(query),
                max_retries=self._max_retries,
                base_backoff=self._base_backoff,
                retry_on=(PriceSourceError,),
                give_up_on=(PriceSourceRejectedError,),
                operation_name="price_source",
                source=self.name,
            )
        except PriceSourceError:
            self._breaker.record_failure()
            raise
        except asyncio.CancelledError:
            self._breaker.release_probe()
            raise

        self._breaker.record_success()
        logger.info(
            "price_source_fetch_complete",
            source=self.name,
            card_name=query.card_name,
            comps_count=len(comps),
        )
        return comps
