"""Initial schema — cards, pricing_snapshots, dead_letters

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- cards ---
    op.create_table(
        "cards",
        sa.Column("owner_id", sa.String(), nullable=False, comment="Verified user identifier (partition key)"),
        sa.Column("card_id", sa.String(), nullable=False, comment="UUID string, immutable"),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("set_name", sa.String(), nullable=True),
        sa.Column("number", sa.String(), nullable=True),
        sa.Column("rarity", sa.String(), nullable=True),
        sa.Column("condition_estimate", sa.String(), nullable=True),
        sa.Column("front_image_key", sa.String(), nullable=False),
        sa.Column("back_image_key", sa.String(), nullable=True),
        sa.Column("id_confidence", sa.FLOAT(), nullable=True),
        sa.Column("authenticity_score", sa.FLOAT(), nullable=True),
        sa.Column("authenticity_signals", JSONB(), nullable=True),
        sa.Column("value_low", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("value_median", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("value_high", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("comps_count", sa.INTEGER(), nullable=True),
        sa.Column("sources", JSONB(), nullable=True),
        sa.Column(
            "last_request_id",
            sa.String(),
            nullable=True,
            comment="Workflow request that last wrote results (idempotency)",
        ),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True, comment="Soft-delete marker"),
        sa.PrimaryKeyConstraint("owner_id", "card_id"),
        sa.UniqueConstraint("card_id", name="uq_cards_card_id"),
    )
    op.create_index("ix_cards_owner_created", "cards", ["owner_id", "created_at"])

    # --- pricing_snapshots ---
    op.create_table(
        "pricing_snapshots",
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("card_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False, comment="created_at + cache TTL"),
        sa.Column("result", JSONB(), nullable=False, comment="PricingResult, camelCase JSON"),
        sa.PrimaryKeyConstraint("owner_id", "card_id", "created_at"),
    )
    op.create_index(
        "ix_pricing_snapshots_expires",
        "pricing_snapshots",
        ["owner_id", "card_id", "expires_at"],
    )

    # --- dead_letters ---
    op.create_table(
        "dead_letters",
        sa.Column("id", sa.INTEGER(), autoincrement=True, nullable=False),
        sa.Column("request_id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("card_id", sa.String(), nullable=False),
        sa.Column("error_type", sa.String(), nullable=False),
        sa.Column("payload", JSONB(), nullable=False),
        sa.Column("enqueued_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dead_letters_request", "dead_letters", ["request_id"])
    op.create_index("ix_dead_letters_card", "dead_letters", ["owner_id", "card_id"])


def downgrade() -> None:
    op.drop_index("ix_dead_letters_card", table_name="dead_letters")
    op.drop_index("ix_dead_letters_request", table_name="dead_letters")
    op.drop_table("dead_letters")
    op.drop_index("ix_pricing_snapshots_expires", table_name="pricing_snapshots")
    op.drop_table("pricing_snapshots")
    op.drop_index("ix_cards_owner_created", table_name="cards")
    op.drop_table("cards")
