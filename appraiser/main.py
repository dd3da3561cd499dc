"""
TCG Appraiser — Application Entrypoint

Initializes the async SQLAlchemy engine, configures structlog, wires the
workflow components, and runs one valuation/authenticity request.

Run via:
    python -m appraiser.main request.json
    echo '{"userId": ..., "cardId": ..., ...}' | python -m appraiser.main -
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from contextlib import AsyncExitStack
from typing import Any, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from appraiser.authenticity.reference_hashes import ReferenceHashIndex
from appraiser.config import settings
from appraiser.extraction.client import FeatureExtractionClient
from appraiser.pricing.orchestrator import PricingOrchestrator
from appraiser.pricing.sources.ebay import EbaySource
from appraiser.pricing.sources.justtcg import JustTCGSource
from appraiser.reasoning.adapter import ReasoningAdapter
from appraiser.reasoning.service import AnthropicReasoningService, ReasoningService
from appraiser.storage import FileObjectStore, ObjectStore
from appraiser.store.cards import CardStore
from appraiser.store.dead_letters import SqlDeadLetterQueue
from appraiser.store.pricing_cache import PricingCache
from appraiser.workflow.agents import AuthenticityAgent, PricingAgent
from appraiser.workflow.aggregator import Aggregator
from appraiser.workflow.error_handler import ErrorHandler
from appraiser.workflow.orchestrator import WorkflowOrchestrator


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    # Logs go to stderr so stdout carries only the acknowledgement JSON
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


async def create_db_engine(database_url: Optional[str] = None) -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory.

    The DATABASE_URL is read from settings (env variable DATABASE_URL).
    Uses asyncpg for async Postgres connections.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    url = database_url or settings.DATABASE_URL

    logger.info("database_engine_initializing")

    engine_kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        engine_kwargs.update(pool_size=5, max_overflow=10)
    engine = create_async_engine(url, **engine_kwargs)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("database_engine_ready")
    return engine, session_factory


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    stack: AsyncExitStack,
    object_store: Optional[ObjectStore] = None,
    reasoning_service: Optional[ReasoningService] = None,
) -> tuple[WorkflowOrchestrator, PricingOrchestrator]:
    """
    Assemble the workflow from settings. Clients that own HTTP connections
    are registered on `stack` so they are closed on exit.
    """
    card_store = CardStore(session_factory)
    store = object_store or FileObjectStore()
    reasoning = ReasoningAdapter(reasoning_service or AnthropicReasoningService())

    pricing = PricingOrchestrator(
        [EbaySource(), JustTCGSource()],
        cache=PricingCache(session_factory),
    )
    stack.push_async_callback(pricing.aclose)

    extraction = FeatureExtractionClient()
    stack.push_async_callback(extraction.aclose)

    orchestrator = WorkflowOrchestrator(
        card_store=card_store,
        extraction_client=extraction,
        pricing_agent=PricingAgent(pricing, reasoning),
        authenticity_agent=AuthenticityAgent(store, ReferenceHashIndex(store), reasoning),
        aggregator=Aggregator(card_store),
        error_handler=ErrorHandler(card_store, SqlDeadLetterQueue(session_factory)),
    )
    return orchestrator, pricing


def _read_input(path: str) -> dict[str, Any]:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one TCG Appraiser valuation/authenticity workflow.",
    )
    parser.add_argument(
        "input",
        help="Path to a workflow input JSON file, or '-' to read from stdin.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def main(argv: Optional[list[str]] = None) -> int:
    """
    Application entrypoint.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Create async database engine and session factory
    3. Verify database connection (health check)
    4. Run the workflow and print the acknowledgement JSON
    """
    args = parse_args(argv)
    _configure_logging(log_level=args.log_level)
    logger = structlog.get_logger(__name__)

    logger.info("tcg_appraiser_startup_begin", version="0.1.0")

    # Validate critical config
    if not settings.ANTHROPIC_API_KEY:
        logger.warning("config_anthropic_api_key_missing", note="reasoning will use fallbacks")
    if not settings.EBAY_APP_ID or not settings.EBAY_CERT_ID:
        logger.warning("config_ebay_credentials_missing", note="ebay source disabled")
    if not settings.JUSTTCG_API_KEY:
        logger.warning("config_justtcg_api_key_missing", note="justtcg source disabled")

    payload = _read_input(args.input)

    try:
        engine, session_factory = await create_db_engine()
    except Exception as e:
        logger.error(
            "database_engine_creation_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    try:
        # Health check: verify database connection
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
            logger.info("database_health_check_passed")
        except Exception as e:
            logger.error(
                "database_health_check_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        async with AsyncExitStack() as stack:
            orchestrator, pricing = build_orchestrator(session_factory, stack)
            outcome = await orchestrator.run(payload)
            logger.info("price_sources_status", **pricing.sources_status())

        print(json.dumps(outcome.acknowledgement(), indent=2))
        return 0 if outcome.status == "completed" else 1
    finally:
        # Cleanup
        await engine.dispose()
        logger.info("tcg_appraiser_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
