"""
TCG Appraiser — Dead Letter Model

Durable failure queue. One row per workflow run that reached the error
handler. The payload is the camelCase dead-letter record, stored whole so
operators can replay or inspect it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import INTEGER, TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from appraiser.models.base import Base, JSONType


class DeadLetter(Base):
    __tablename__ = "dead_letters"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    card_id: Mapped[str] = mapped_column(String, nullable=False)
    error_type: Mapped[str] = mapped_column(
        String, nullable=False, comment="Exception class name, e.g. 'ExtractionError'"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    enqueued_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_dead_letters_request", "request_id"),
        Index("ix_dead_letters_card", "owner_id", "card_id"),
    )

    def __repr__(self) -> str:
        return f"<DeadLetter request_id={self.request_id!r} error_type={self.error_type!r}>"
