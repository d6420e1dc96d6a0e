"""Create payment audit log table.

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "payment_audit_log",
        sa.Column("payment_audit_id", sa.Uuid(), primary_key=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("jobs.job_id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "action",
            sa.Enum("order_created", "deposit_captured", "final_captured", name="paymentaction"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.Uuid(), sa.ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=True),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("payment_id", sa.String(64), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("metadata", JSONB, nullable=True),
        sa.UniqueConstraint("job_id", "action", "payment_id", name="uq_payment_audit_capture"),
    )
    op.create_index("ix_payment_audit_log_job_id", "payment_audit_log", ["job_id"])


def downgrade() -> None:
    op.drop_table("payment_audit_log")
    op.execute("DROP TYPE IF EXISTS paymentaction")
