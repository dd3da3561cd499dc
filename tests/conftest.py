"""
TCG Appraiser — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- File-backed aiosqlite database + session factory (fresh per test)
- Card store, pricing cache and dead-letter queue bound to that database
- A live card owned by user-1
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from appraiser.models.base import Base
from appraiser.schemas import CardCreate
from appraiser.store.cards import CardStore
from appraiser.store.dead_letters import SqlDeadLetterQueue
from appraiser.store.pricing_cache import PricingCache
from helpers import NOW, InMemoryObjectStore, StepClock


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    aiosqlite database in a temp file with the schema created from the models.

    A file rather than :memory: so concurrent sessions share one database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'appraiser.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await engine.dispose()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def card_store(session_factory, clock) -> CardStore:
    return CardStore(session_factory, clock=clock)


@pytest.fixture
def pricing_cache(session_factory) -> PricingCache:
    return PricingCache(session_factory, clock=lambda: NOW)


@pytest.fixture
def dead_letter_queue(session_factory) -> SqlDeadLetterQueue:
    return SqlDeadLetterQueue(session_factory)


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
async def card(card_store):
    """A live card owned by user-1."""
    return await card_store.create(
        "user-1",
        CardCreate(
            front_image_key="uploads/user-1/front.png",
            name="Charizard",
            set_name="Base Set",
            number="4/102",
            rarity="Rare Holo",
            condition_estimate="Near Mint",
        ),
        card_id="card-1",
    )
