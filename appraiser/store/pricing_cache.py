"""
TCG Appraiser — Pricing snapshot cache

Read-through cache of fused PricingResults keyed by (owner_id, card_id).
A snapshot is fresh while now < expires_at. Every successful fusion
appends a new snapshot; readers take the newest fresh one.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appraiser.config import settings
from appraiser.models.pricing_snapshot import PricingSnapshot
from appraiser.schemas import PricingResult

logger = structlog.get_logger(__name__)


class PricingCache:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else settings.PRICING_CACHE_TTL_SECONDS)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_fresh(self, owner_id: str, card_id: str) -> Optional[PricingResult]:
        """Return the newest non-expired snapshot, or None."""
        now = self._clock()
        stmt = (
            select(PricingSnapshot)
            .where(
                PricingSnapshot.owner_id == owner_id,
                PricingSnapshot.card_id == card_id,
                PricingSnapshot.expires_at > now,
            )
            .order_by(PricingSnapshot.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            snapshot = (await session.execute(stmt)).scalar_one_or_none()

        if snapshot is None:
            logger.debug("pricing_cache_miss", card_id=card_id)
            return None

        logger.info("pricing_cache_hit", card_id=card_id, created_at=str(snapshot.created_at))
        return PricingResult.model_validate(snapshot.result)

    async def put(self, owner_id: str, card_id: str, result: PricingResult) -> None:
        """Store a snapshot. Degenerate (no-comps) results are never cached."""
        if result.is_degenerate:
            logger.debug("pricing_cache_skip_degenerate", card_id=card_id)
            return

        now = self._clock()
        snapshot = PricingSnapshot(
            owner_id=owner_id,
            card_id=card_id,
            created_at=now,
            expires_at=now + self._ttl,
            result=result.model_dump(mode="json", by_alias=True),
        )
        async with self._session_factory() as session:
            session.add(snapshot)
            await session.commit()

        logger.info("pricing_cache_stored", card_id=card_id, ttl_seconds=int(self._ttl.total_seconds()))
