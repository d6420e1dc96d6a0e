"""Job and Revision SQLAlchemy models."""

import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class JobStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DEPOSIT_PAID = "deposit_paid"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REVISION_REQUESTED = "revision_requested"
    REVISION_IN_PROGRESS = "revision_in_progress"
    REVISION_COMPLETED = "revision_completed"
    APPROVED_BY_CLIENT = "approved_by_client"
    FINAL_PAID = "final_paid"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    DEPOSIT_PAID = "deposit_paid"
    FINAL_PAID = "final_paid"


class RevisionStatus(enum.Enum):
    REQUESTED = "requested"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Job(Base):
    __tablename__ = "jobs"

    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False, index=True
    )
    freelancer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    max_revisions: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=JobStatus.PENDING,
        index=True,
    )

    # Payment correlation
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    deposit_order_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    final_order_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    deposit_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    final_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deposit_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    final_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Work product
    deliverables: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    freelancer_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    client_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    revisions: Mapped[list["Revision"]] = relationship(
        back_populates="job",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Revision.requested_at",
    )
    client = relationship("User", foreign_keys=[client_id], lazy="selectin")

    @property
    def deposit_amount(self) -> int:
        from app.services.payment import split_amount
        return split_amount(self.price)[0]

    @property
    def final_amount(self) -> int:
        from app.services.payment import split_amount
        return split_amount(self.price)[1]

    @property
    def revisions_remaining(self) -> int:
        return max(0, self.max_revisions - len(self.revisions))

    def find_revision(self, revision_id: uuid.UUID) -> "Revision | None":
        for revision in self.revisions:
            if revision.revision_id == revision_id:
                return revision
        return None


class Revision(Base):
    """Client-requested rework. Owned by its job; addressed by revision_id."""
    __tablename__ = "revisions"

    revision_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[RevisionStatus] = mapped_column(
        Enum(RevisionStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=RevisionStatus.REQUESTED,
    )
    freelancer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    deliverables: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    job: Mapped[Job] = relationship(back_populates="revisions")
