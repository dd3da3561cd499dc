"""
TCG Appraiser — Pricing Orchestrator

Entry point of the pricing branch:

    1. Return a fresh cached snapshot for (owner, card) unless force_refresh.
    2. Query every configured price source concurrently. A failing source
       (error, exhausted retries, open circuit) is logged and excluded.
    3. Fuse the surviving comps.
    4. Cache the result (never the degenerate one).

Cache reads and writes are best-effort: a failing cache degrades to a
miss or a skipped write, never to a failed valuation.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

import structlog

from appraiser.pricing.fusion import fuse_comps
from appraiser.pricing.sources.base import BasePriceSource
from appraiser.schemas import PriceQuery, PricingResult, RawComp
from appraiser.store.pricing_cache import PricingCache

logger = structlog.get_logger(__name__)


class PricingOrchestrator:
    """
    Usage:
        orchestrator = PricingOrchestrator([EbaySource(), JustTCGSource()], cache)
        result = await orchestrator.fetch_all_comps(query, owner_id, card_id)
    """

    def __init__(
        self,
        sources: Sequence[BasePriceSource],
        cache: Optional[PricingCache] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._sources = list(sources)
        self._cache = cache
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def sources(self) -> list[BasePriceSource]:
        return list(self._sources)

    def sources_status(self) -> dict[str, str]:
        """Circuit state per source, e.g. {"ebay": "closed", "justtcg": "open"}."""
        return {source.name: source.breaker.state.value for source in self._sources}

    async def aclose(self) -> None:
        for source in self._sources:
            await source.aclose()

    async def _read_cache(self, owner_id: str, card_id: str) -> Optional[PricingResult]:
        try:
            return await self._cache.get_fresh(owner_id, card_id)
        except Exception as e:
            logger.warning(
                "pricing_cache_read_failed",
                card_id=card_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def _write_cache(self, owner_id: str, card_id: str, result: PricingResult) -> None:
        try:
            await self._cache.put(owner_id, card_id, result)
        except Exception as e:
            logger.warning(
                "pricing_cache_write_failed",
                card_id=card_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _gather_comps(self, query: PriceQuery) -> tuple[list[RawComp], list[str]]:
        active = [s for s in self._sources if s.is_configured]
        skipped = [s.name for s in self._sources if not s.is_configured]
        if skipped:
            logger.debug("price_sources_unconfigured", sources=skipped)

        outcomes = await asyncio.gather(
            *(source.fetch_comps(query) for source in active),
            return_exceptions=True,
        )

        comps: list[RawComp] = []
        failed: list[str] = []
        for source, outcome in zip(active, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failed.append(source.name)
                logger.warning(
                    "price_source_failed",
                    source=source.name,
                    card_name=query.card_name,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                continue
            comps.extend(outcome)
        return comps, failed

    async def fetch_all_comps(
        self,
        query: PriceQuery,
        owner_id: Optional[str] = None,
        card_id: Optional[str] = None,
        force_refresh: bool = False,
    ) -> PricingResult:
        """
        Fused PricingResult for `query`.

        Args:
            query: Card identity and recency window.
            owner_id, card_id: Cache key. Without both, the cache is bypassed.
            force_refresh: Skip the cache read (the result is still cached).

        Returns:
            PricingResult; the degenerate result when every source failed or
            no comps survived normalization. Never raises for source failures.
        """
        use_cache = self._cache is not None and owner_id is not None and card_id is not None

        if use_cache and not force_refresh:
            cached = await self._read_cache(owner_id, card_id)
            if cached is not None:
                return cached

        comps, failed = await self._gather_comps(query)
        if failed and len(failed) == len([s for s in self._sources if s.is_configured]):
            logger.error(
                "price_sources_all_failed",
                card_name=query.card_name,
                failed_sources=failed,
            )

        result = fuse_comps(comps, window_days=query.window_days, now=self._clock())

        if use_cache:
            await self._write_cache(owner_id, card_id, result)

        logger.info(
            "pricing_fetch_complete",
            card_id=card_id,
            card_name=query.card_name,
            comps_count=result.comps_count,
            failed_sources=failed,
            force_refresh=force_refresh,
        )
        return result
