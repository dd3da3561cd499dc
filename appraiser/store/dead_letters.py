"""
TCG Appraiser — Dead-letter queue

The workflow error handler hands every unrecoverable run to a
DeadLetterQueue. SqlDeadLetterQueue persists the record as a row in
dead_letters; anything that can durably accept a DeadLetterRecord can
stand in for it.
"""

from __future__ import annotations

from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appraiser.models.dead_letter import DeadLetter
from appraiser.schemas import DeadLetterRecord

logger = structlog.get_logger(__name__)


class DeadLetterQueue(Protocol):
    async def enqueue(self, record: DeadLetterRecord) -> None:
        ...


class SqlDeadLetterQueue:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def enqueue(self, record: DeadLetterRecord) -> None:
        row = DeadLetter(
            request_id=record.request_id,
            owner_id=record.user_id,
            card_id=record.card_id,
            error_type=record.error.type,
            payload=record.model_dump(mode="json", by_alias=True, exclude_none=True),
            enqueued_at=record.timestamp,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        logger.info(
            "dead_letter_enqueued",
            request_id=record.request_id,
            card_id=record.card_id,
            error_type=record.error.type,
        )

    async def list_for_request(self, request_id: str) -> list[DeadLetterRecord]:
        """Records enqueued for one workflow request, oldest first."""
        stmt = (
            select(DeadLetter)
            .where(DeadLetter.request_id == request_id)
            .order_by(DeadLetter.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [DeadLetterRecord.model_validate(row.payload) for row in rows]
