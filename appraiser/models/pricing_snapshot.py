"""
TCG Appraiser — Pricing Snapshot Model

Read-through cache of fused pricing results, keyed by owner and card.
Only successful fusions are stored; the all-sources-failed result never is.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import TIMESTAMP, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from appraiser.models.base import Base, JSONType


class PricingSnapshot(Base):
    """
    A PricingResult captured at created_at, valid until expires_at.

    Primary key is (owner_id, card_id, created_at): every fusion appends a
    row and readers take the newest non-expired one.
    """

    __tablename__ = "pricing_snapshots"

    owner_id: Mapped[str] = mapped_column(String, primary_key=True)
    card_id: Mapped[str] = mapped_column(String, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), primary_key=True)
    expires_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, comment="created_at + cache TTL"
    )
    result: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, comment="PricingResult, camelCase JSON"
    )

    __table_args__ = (
        Index("ix_pricing_snapshots_expires", "owner_id", "card_id", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PricingSnapshot card_id={self.card_id!r} created_at={self.created_at} "
            f"expires_at={self.expires_at}>"
        )
