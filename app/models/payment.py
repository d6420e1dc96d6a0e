"""Payment audit log model."""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.job import JSONType


class PaymentAction(enum.Enum):
    ORDER_CREATED = "order_created"
    DEPOSIT_CAPTURED = "deposit_captured"
    FINAL_CAPTURED = "final_captured"


class PaymentAuditLog(Base):
    """Append-only audit log. Never update or delete rows.

    The same captured payment can be recorded at most once per job and leg.
    """
    __tablename__ = "payment_audit_log"
    __table_args__ = (
        UniqueConstraint("job_id", "action", "payment_id", name="uq_payment_audit_capture"),
    )

    payment_audit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.job_id", ondelete="RESTRICT"), nullable=False, index=True
    )
    action: Mapped[PaymentAction] = mapped_column(
        Enum(PaymentAction, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=True
    )
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
