"""
TCG Appraiser — Workflow Request Model

One row per (card, workflow request) whose results were written to the
card. The primary key makes a second write for the same request fail at
insert time, so a replay is rejected no matter how many other requests
wrote to the card in between.

status is "partial" when only the error handler persisted results and
"completed" once the aggregate step applied the full result. A partial
request may still complete under the same request id.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import TIMESTAMP, String, func
from sqlalchemy.orm import Mapped, mapped_column

from appraiser.models.base import Base

STATUS_PARTIAL = "partial"
STATUS_COMPLETED = "completed"


class WorkflowRequest(Base):
    __tablename__ = "workflow_requests"

    card_id: Mapped[str] = mapped_column(String, primary_key=True)
    request_id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, comment="'partial' or 'completed'"
    )
    applied_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowRequest card_id={self.card_id!r} request_id={self.request_id!r} "
            f"status={self.status!r}>"
        )
