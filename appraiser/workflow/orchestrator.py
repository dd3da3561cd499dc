"""
TCG Appraiser — Workflow Orchestrator

Runs one valuation/authenticity request end to end:

    LOAD_CARD         owner-scoped read of the card (Forbidden / NotFound fail fast)
    EXTRACT_FEATURES  vision service, once per request, retried on transient errors
    PARALLEL_AGENTS   pricing branch || authenticity branch, each with its own retry
    AGGREGATE         single conditional write of the merged results
    DONE

Any unrecoverable failure moves the run to ERROR_HANDLER, which persists
partial results, dead-letters the request and returns HANDLED.

Every attempt of a task is bounded by TASK_TIMEOUT_SECONDS. Cancellation
is not a failure: asyncio.CancelledError propagates to the caller and
whatever was already committed stays committed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import ValidationError as PydanticValidationError

from appraiser.config import settings
from appraiser.errors import TransientAdapterError, ValidationError
from appraiser.extraction.client import FeatureExtractionClient
from appraiser.schemas import FeatureEnvelope, PartialResults, WorkflowInput
from appraiser.store.cards import CardStore
from appraiser.utils.retry import retry_async
from appraiser.workflow.agents import AuthenticityAgent, PricingAgent
from appraiser.workflow.aggregator import Aggregator
from appraiser.workflow.error_handler import ErrorHandler
from appraiser.workflow.states import WorkflowOutcome, WorkflowRun, WorkflowState

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (TransientAdapterError, TimeoutError)


class WorkflowOrchestrator:
    def __init__(
        self,
        card_store: CardStore,
        extraction_client: FeatureExtractionClient,
        pricing_agent: PricingAgent,
        authenticity_agent: AuthenticityAgent,
        aggregator: Aggregator,
        error_handler: ErrorHandler,
        extract_max_retries: Optional[int] = None,
        extract_base_backoff: Optional[float] = None,
        branch_max_retries: Optional[int] = None,
        branch_base_backoff: Optional[float] = None,
        task_timeout: Optional[float] = None,
    ) -> None:
        self._card_store = card_store
        self._extraction = extraction_client
        self._pricing_agent = pricing_agent
        self._authenticity_agent = authenticity_agent
        self._aggregator = aggregator
        self._error_handler = error_handler
        self._extract_max_retries = (
            settings.EXTRACT_MAX_RETRIES if extract_max_retries is None else extract_max_retries
        )
        self._extract_base_backoff = (
            settings.EXTRACT_BASE_BACKOFF_SECONDS if extract_base_backoff is None else extract_base_backoff
        )
        self._branch_max_retries = (
            settings.BRANCH_MAX_RETRIES if branch_max_retries is None else branch_max_retries
        )
        self._branch_base_backoff = (
            settings.BRANCH_BASE_BACKOFF_SECONDS if branch_base_backoff is None else branch_base_backoff
        )
        self._task_timeout = task_timeout or settings.TASK_TIMEOUT_SECONDS

    # -----------------------------------------------------------------------
    # Task helpers
    # -----------------------------------------------------------------------

    async def _run_task(
        self,
        name: str,
        task: Callable[[], Awaitable[T]],
        max_retries: int,
        base_backoff: float,
        request_id: str,
    ) -> T:
        """Run `task` with a per-attempt timeout and retry on transient failures."""
        return await retry_async(
            lambda: asyncio.wait_for(task(), timeout=self._task_timeout),
            max_retries=max_retries,
            base_backoff=base_backoff,
            retry_on=RETRYABLE_ERRORS,
            operation_name=name,
            request_id=request_id,
        )

    async def _fail(
        self,
        run: WorkflowRun,
        workflow_input: WorkflowInput,
        error: BaseException,
        partials: Optional[PartialResults] = None,
    ) -> WorkflowOutcome:
        failed_state = run.state
        run.advance(WorkflowState.ERROR_HANDLER)
        outcome = await self._error_handler.handle(workflow_input, error, partials, failed_state)
        run.advance(WorkflowState.HANDLED)
        return outcome

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------

    async def run(self, workflow_input: WorkflowInput | dict[str, Any]) -> WorkflowOutcome:
        """
        Execute the workflow for one request.

        Raises:
            ValidationError: the input itself is malformed (there is no
                request to dead-letter).
        """
        if not isinstance(workflow_input, WorkflowInput):
            try:
                workflow_input = WorkflowInput.model_validate(workflow_input)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid workflow input: {e}") from e

        request_id = workflow_input.request_id
        run = WorkflowRun(request_id=request_id)
        log = logger.bind(request_id=request_id, card_id=workflow_input.card_id)
        log.info("workflow_started", force_refresh=workflow_input.force_refresh)

        # LOAD_CARD
        try:
            card = await self._card_store.get(workflow_input.user_id, workflow_input.card_id)
        except Exception as e:
            return await self._fail(run, workflow_input, e)

        # EXTRACT_FEATURES
        run.advance(WorkflowState.EXTRACT_FEATURES)
        image_key = workflow_input.s3_keys.front
        try:
            features: FeatureEnvelope = await self._run_task(
                "extract_features",
                lambda: self._extraction.extract_features(image_key),
                self._extract_max_retries,
                self._extract_base_backoff,
                request_id,
            )
        except Exception as e:
            return await self._fail(run, workflow_input, e)

        # PARALLEL_AGENTS
        run.advance(WorkflowState.PARALLEL_AGENTS)
        pricing_outcome, authenticity_outcome = await asyncio.gather(
            self._run_task(
                "pricing_branch",
                lambda: self._pricing_agent.run(card, request_id, workflow_input.force_refresh),
                self._branch_max_retries,
                self._branch_base_backoff,
                request_id,
            ),
            self._run_task(
                "authenticity_branch",
                lambda: self._authenticity_agent.run(card, features, image_key, request_id),
                self._branch_max_retries,
                self._branch_base_backoff,
                request_id,
            ),
            return_exceptions=True,
        )
        for outcome in (pricing_outcome, authenticity_outcome):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        partials = PartialResults(
            features=features,
            pricing_result=None if isinstance(pricing_outcome, Exception) else pricing_outcome.pricing_result,
            authenticity_result=(
                None if isinstance(authenticity_outcome, Exception) else authenticity_outcome.authenticity_result
            ),
        )
        branch_error = next(
            (o for o in (pricing_outcome, authenticity_outcome) if isinstance(o, Exception)),
            None,
        )
        if branch_error is not None:
            return await self._fail(run, workflow_input, branch_error, partials)

        # AGGREGATE
        run.advance(WorkflowState.AGGREGATE)
        try:
            applied = await self._aggregator.aggregate(
                workflow_input.user_id,
                workflow_input.card_id,
                request_id,
                pricing_outcome.pricing_result,
                authenticity_outcome.authenticity_result,
            )
        except Exception as e:
            return await self._fail(run, workflow_input, e, partials)

        run.advance(WorkflowState.DONE)
        log.info("workflow_completed", applied=applied, path=[s.value for s in run.history])
        return WorkflowOutcome(
            request_id=request_id,
            card_id=workflow_input.card_id,
            status="completed",
            final_state=WorkflowState.DONE,
            applied=applied,
            pricing_result=pricing_outcome.pricing_result,
            valuation_summary=pricing_outcome.valuation_summary,
            authenticity_result=authenticity_outcome.authenticity_result,
        )
