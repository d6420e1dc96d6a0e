"""Create jobs and revisions tables.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "jobs",
        sa.Column("job_id", sa.Uuid(), primary_key=True),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False),
        sa.Column("freelancer_id", sa.Uuid(), sa.ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("max_revisions", sa.Integer(), nullable=False, server_default="3"),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "approved", "deposit_paid", "in_progress", "completed",
                "revision_requested", "revision_in_progress", "revision_completed",
                "approved_by_client", "final_paid",
                name="jobstatus",
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "payment_status",
            sa.Enum("pending", "deposit_paid", "final_paid", name="paymentstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("deposit_order_id", sa.String(64), nullable=True, unique=True),
        sa.Column("final_order_id", sa.String(64), nullable=True, unique=True),
        sa.Column("deposit_payment_id", sa.String(64), nullable=True),
        sa.Column("final_payment_id", sa.String(64), nullable=True),
        sa.Column("deposit_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deliverables", JSONB, nullable=False, server_default="[]"),
        sa.Column("freelancer_note", sa.Text(), nullable=True),
        sa.Column("client_feedback", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price > 0", name="ck_jobs_price_positive"),
    )
    op.create_index("ix_jobs_client_id", "jobs", ["client_id"])
    op.create_index("ix_jobs_freelancer_id", "jobs", ["freelancer_id"])
    op.create_index("ix_jobs_status", "jobs", ["status"])
    op.create_index("ix_jobs_category", "jobs", ["category"])

    op.create_table(
        "revisions",
        sa.Column("revision_id", sa.Uuid(), primary_key=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("requested", "in_progress", "completed", name="revisionstatus"),
            nullable=False,
            server_default="requested",
        ),
        sa.Column("freelancer_notes", sa.Text(), nullable=True),
        sa.Column("deliverables", JSONB, nullable=False, server_default="[]"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_revisions_job_id", "revisions", ["job_id"])


def downgrade() -> None:
    op.drop_table("revisions")
    op.drop_table("jobs")
    op.execute("DROP TYPE IF EXISTS revisionstatus")
    op.execute("DROP TYPE IF EXISTS paymentstatus")
    op.execute("DROP TYPE IF EXISTS jobstatus")
