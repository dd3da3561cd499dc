"""
TCG Appraiser — Workflow states and transition payloads

    LOAD_CARD -> EXTRACT_FEATURES -> PARALLEL_AGENTS -> AGGREGATE -> DONE

Any task state may instead move to ERROR_HANDLER, which always ends in
HANDLED. DONE and HANDLED are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional

import structlog

from appraiser.schemas import (
    AuthenticityResult,
    CamelModel,
    ErrorInfo,
    PricingResult,
    ValuationSummary,
)

logger = structlog.get_logger(__name__)


class WorkflowState(str, Enum):
    LOAD_CARD = "LOAD_CARD"
    EXTRACT_FEATURES = "EXTRACT_FEATURES"
    PARALLEL_AGENTS = "PARALLEL_AGENTS"
    AGGREGATE = "AGGREGATE"
    DONE = "DONE"
    ERROR_HANDLER = "ERROR_HANDLER"
    HANDLED = "HANDLED"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowState.DONE, WorkflowState.HANDLED)


TRANSITIONS: dict[WorkflowState, frozenset[WorkflowState]] = {
    WorkflowState.LOAD_CARD: frozenset({WorkflowState.EXTRACT_FEATURES, WorkflowState.ERROR_HANDLER}),
    WorkflowState.EXTRACT_FEATURES: frozenset({WorkflowState.PARALLEL_AGENTS, WorkflowState.ERROR_HANDLER}),
    WorkflowState.PARALLEL_AGENTS: frozenset({WorkflowState.AGGREGATE, WorkflowState.ERROR_HANDLER}),
    WorkflowState.AGGREGATE: frozenset({WorkflowState.DONE, WorkflowState.ERROR_HANDLER}),
    WorkflowState.ERROR_HANDLER: frozenset({WorkflowState.HANDLED}),
    WorkflowState.DONE: frozenset(),
    WorkflowState.HANDLED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    pass


@dataclass
class WorkflowRun:
    """State of one workflow execution, with the path it took."""

    request_id: str
    state: WorkflowState = WorkflowState.LOAD_CARD
    history: list[WorkflowState] = field(default_factory=lambda: [WorkflowState.LOAD_CARD])

    def advance(self, target: WorkflowState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"{self.state.value} -> {target.value} is not a valid transition")
        logger.debug(
            "workflow_transition",
            request_id=self.request_id,
            from_state=self.state.value,
            to_state=target.value,
        )
        self.state = target
        self.history.append(target)


# ---------------------------------------------------------------------------
# Branch payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PricingBranchResult:
    pricing_result: PricingResult
    valuation_summary: ValuationSummary


@dataclass(frozen=True)
class AuthenticityBranchResult:
    authenticity_result: AuthenticityResult


# ---------------------------------------------------------------------------
# Acknowledgement
# ---------------------------------------------------------------------------


class WorkflowOutcome(CamelModel):
    """
    Returned to the caller once the run reaches DONE or HANDLED.

    applied is False when the aggregate write was skipped because this
    request had already been applied to the card.
    """

    request_id: str
    card_id: str
    status: Literal["completed", "handled"]
    final_state: WorkflowState
    applied: Optional[bool] = None
    error: Optional[ErrorInfo] = None
    dead_lettered: bool = False
    partial_results_persisted: bool = False
    pricing_result: Optional[PricingResult] = None
    valuation_summary: Optional[ValuationSummary] = None
    authenticity_result: Optional[AuthenticityResult] = None

    def acknowledgement(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
