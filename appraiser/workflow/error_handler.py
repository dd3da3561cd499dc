"""
TCG Appraiser — Workflow error handler

Terminal step for any run that cannot complete:

    1. Best-effort write of whatever valuation / authenticity results were
       produced before the failure, recorded as a partial write so the
       same request id can still complete on a redrive.
    2. Exactly one dead-letter record per invocation.
    3. A "handled" acknowledgement. The handler itself never raises.

Failures inside the handler (partial write, dead-letter enqueue) are
logged and reflected in the acknowledgement flags.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from appraiser.schemas import DeadLetterRecord, ErrorInfo, PartialResults, WorkflowInput
from appraiser.store.cards import CardStore
from appraiser.store.dead_letters import DeadLetterQueue
from appraiser.workflow.aggregator import merge_card_fields
from appraiser.workflow.states import WorkflowOutcome, WorkflowState

logger = structlog.get_logger(__name__)


def describe_error(error: BaseException) -> ErrorInfo:
    """ErrorInfo with the exception class name as type."""
    return ErrorInfo(type=type(error).__name__, cause=str(error) or type(error).__name__)


class ErrorHandler:
    def __init__(
        self,
        card_store: CardStore,
        dead_letter_queue: DeadLetterQueue,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._card_store = card_store
        self._dead_letter_queue = dead_letter_queue
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _persist_partial(self, workflow_input: WorkflowInput, partials: PartialResults) -> bool:
        fields = merge_card_fields(partials.pricing_result, partials.authenticity_result)
        if not fields:
            logger.info(
                "error_handler_no_partial_results",
                request_id=workflow_input.request_id,
                card_id=workflow_input.card_id,
            )
            return False
        try:
            return await self._card_store.apply_workflow_result(
                workflow_input.user_id,
                workflow_input.card_id,
                fields,
                workflow_input.request_id,
                complete=False,
            )
        except Exception as e:
            logger.error(
                "error_handler_partial_persist_failed",
                request_id=workflow_input.request_id,
                card_id=workflow_input.card_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def _dead_letter(self, record: DeadLetterRecord) -> bool:
        try:
            await self._dead_letter_queue.enqueue(record)
            return True
        except Exception as e:
            logger.error(
                "dead_letter_enqueue_failed",
                request_id=record.request_id,
                card_id=record.card_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def handle(
        self,
        workflow_input: WorkflowInput,
        error: BaseException,
        partials: Optional[PartialResults] = None,
        failed_state: Optional[WorkflowState] = None,
    ) -> WorkflowOutcome:
        partials = partials or PartialResults()
        error_info = describe_error(error)

        logger.error(
            "workflow_error_handler_invoked",
            request_id=workflow_input.request_id,
            card_id=workflow_input.card_id,
            failed_state=failed_state.value if failed_state else None,
            error_type=error_info.type,
            error=error_info.cause,
            available_partials=partials.available(),
        )

        persisted = await self._persist_partial(workflow_input, partials)

        record = DeadLetterRecord(
            user_id=workflow_input.user_id,
            card_id=workflow_input.card_id,
            request_id=workflow_input.request_id,
            error=error_info,
            partial_results=partials,
            timestamp=self._clock(),
        )
        dead_lettered = await self._dead_letter(record)

        return WorkflowOutcome(
            request_id=workflow_input.request_id,
            card_id=workflow_input.card_id,
            status="handled",
            final_state=WorkflowState.HANDLED,
            error=error_info,
            dead_lettered=dead_lettered,
            partial_results_persisted=persisted,
            pricing_result=partials.pricing_result,
            authenticity_result=partials.authenticity_result,
        )
