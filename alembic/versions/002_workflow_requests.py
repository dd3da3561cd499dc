"""Workflow request ledger for per-request idempotency

Revision ID: 002_workflow_requests
Revises: 001_initial_schema
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "002_workflow_requests"
down_revision: Union[str, None] = "001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "workflow_requests",
        sa.Column("card_id", sa.String(), nullable=False),
        sa.Column("request_id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, comment="'partial' or 'completed'"),
        sa.Column("applied_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("card_id", "request_id"),
    )


def downgrade() -> None:
    op.drop_table("workflow_requests")
