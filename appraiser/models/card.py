"""
TCG Appraiser — Card Model

One row per user-owned card. Identification fields come from the upload
confirmation step; valuation and authenticity fields are written by the
workflow aggregate step.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DECIMAL, FLOAT, INTEGER, TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from appraiser.models.base import Base, JSONType


class CardRecord(Base):
    """
    A card owned by a single user.

    Primary key is (owner_id, card_id) so every lookup is owner-scoped;
    card_id is additionally globally unique so a record owned by someone
    else can be told apart from a missing one.

    deleted_at marks a soft delete. Soft-deleted rows are invisible to
    reads and reject every conditional write.
    """

    __tablename__ = "cards"

    owner_id: Mapped[str] = mapped_column(
        String, primary_key=True, comment="Verified user identifier (partition key)"
    )
    card_id: Mapped[str] = mapped_column(
        String, primary_key=True, unique=True, comment="UUID string, immutable"
    )

    # Identification
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    set_name: Mapped[str | None] = mapped_column(String, nullable=True)
    number: Mapped[str | None] = mapped_column(String, nullable=True)
    rarity: Mapped[str | None] = mapped_column(String, nullable=True)
    condition_estimate: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Free-text condition, e.g. 'Near Mint'"
    )
    front_image_key: Mapped[str] = mapped_column(
        String, nullable=False, comment="Object-store key of the front image"
    )
    back_image_key: Mapped[str | None] = mapped_column(String, nullable=True)
    id_confidence: Mapped[float | None] = mapped_column(FLOAT, nullable=True)

    # Authenticity
    authenticity_score: Mapped[float | None] = mapped_column(
        FLOAT, nullable=True, comment="Weighted or AI authenticity score in [0, 1]"
    )
    authenticity_signals: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True, comment="The five authenticity signals (camelCase keys)"
    )

    # Valuation
    value_low: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    value_median: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    value_high: Mapped[Decimal | None] = mapped_column(DECIMAL(12, 2), nullable=True)
    comps_count: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    sources: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)

    last_request_id: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Workflow request that last wrote results (idempotency)"
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Soft-delete marker"
    )

    __table_args__ = (
        Index("ix_cards_owner_created", "owner_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CardRecord card_id={self.card_id!r} owner_id={self.owner_id!r} "
            f"name={self.name!r} deleted={self.deleted_at is not None}>"
        )
