"""Split-payment business logic: order creation and idempotent verification.

A job is paid in two legs, a deposit before work starts and a final payment
after delivery. Each leg is captured at most once; re-verifying the same
capture is a no-op that reports ``already_processed``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import ConflictError, NotFoundError
from app.models.job import Job, PaymentStatus
from app.models.payment import PaymentAction, PaymentAuditLog
from app.schemas.payment import PaymentOrderResponse, VerifyPaymentRequest
from app.services.lifecycle import (
    JobEvent,
    TransitionContext,
    assert_transition,
    required_statuses,
    transition_update,
)
from app.services.policy import Actor, Operation, authorize
from app.services.razorpay import PaymentProcessor

logger = logging.getLogger(__name__)

MINOR_UNITS = Decimal("100")
DEPOSIT_SHARE = Decimal("0.5")


def split_amount(price: Decimal | int | str) -> tuple[int, int]:
    """Deposit and final amounts in minor currency units.

    Both legs use the same rounding of half the price, so for odd minor-unit
    prices their sum is one unit above the price.
    """
    minor = Decimal(str(price)) * MINOR_UNITS
    leg = int((minor * DEPOSIT_SHARE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return leg, leg


@dataclass(frozen=True)
class PaymentLeg:
    name: str
    event: JobEvent
    order_field: str
    payment_field: str
    paid_at_field: str
    payment_status: PaymentStatus
    audit_action: PaymentAction

    def order_column(self):
        return getattr(Job, self.order_field)

    def payment_column(self):
        return getattr(Job, self.payment_field)

    def amount(self, job: Job) -> int:
        return job.deposit_amount if self.name == "deposit" else job.final_amount


DEPOSIT = PaymentLeg(
    name="deposit",
    event=JobEvent.DEPOSIT_VERIFIED,
    order_field="deposit_order_id",
    payment_field="deposit_payment_id",
    paid_at_field="deposit_paid_at",
    payment_status=PaymentStatus.DEPOSIT_PAID,
    audit_action=PaymentAction.DEPOSIT_CAPTURED,
)
FINAL = PaymentLeg(
    name="final",
    event=JobEvent.FINAL_VERIFIED,
    order_field="final_order_id",
    payment_field="final_payment_id",
    paid_at_field="final_paid_at",
    payment_status=PaymentStatus.FINAL_PAID,
    audit_action=PaymentAction.FINAL_CAPTURED,
)
LEGS = {leg.name: leg for leg in (DEPOSIT, FINAL)}


async def _load_job(db: AsyncSession, *criteria) -> Job | None:
    db.expunge_all()
    result = await db.execute(select(Job).where(*criteria))
    return result.scalar_one_or_none()


async def create_order(
    db: AsyncSession,
    processor: PaymentProcessor,
    actor: Actor,
    job_id: uuid.UUID,
    leg: PaymentLeg,
) -> PaymentOrderResponse:
    """Open a processor order for one leg and remember its id on the job."""
    job = await _load_job(db, Job.job_id == job_id)
    if job is None:
        raise NotFoundError("Job not found")
    authorize(actor, Operation.CREATE_PAYMENT_ORDER, job)
    assert_transition(job.status, leg.event)

    amount = leg.amount(job)
    order = await processor.create_order(
        amount=amount,
        currency=settings.payment_currency,
        receipt=f"{leg.name}_{job.job_id.hex}",
        notes={
            "jobId": str(job.job_id),
            "paymentType": leg.name,
            "clientId": str(actor.actor_id),
        },
    )

    # The job may have moved while the processor call was in flight.
    result = await db.execute(
        update(Job)
        .where(Job.job_id == job_id, Job.status.in_(tuple(required_statuses(leg.event))))
        .values(**{leg.order_field: order.order_id, "updated_at": datetime.now(UTC)})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError("Job changed while creating the payment order")

    db.add(PaymentAuditLog(
        job_id=job_id,
        action=PaymentAction.ORDER_CREATED,
        actor_id=actor.actor_id,
        order_id=order.order_id,
        amount=amount,
        metadata_={"paymentType": leg.name, "currency": order.currency},
    ))
    await db.commit()
    logger.info("Created %s order %s for job %s (%d)", leg.name, order.order_id, job_id, amount)
    return PaymentOrderResponse(
        order_id=order.order_id, amount=order.amount, currency=order.currency, job_id=job_id
    )


async def create_deposit_order(
    db: AsyncSession, processor: PaymentProcessor, actor: Actor, job_id: uuid.UUID
) -> PaymentOrderResponse:
    return await create_order(db, processor, actor, job_id, DEPOSIT)


async def create_final_order(
    db: AsyncSession, processor: PaymentProcessor, actor: Actor, job_id: uuid.UUID
) -> PaymentOrderResponse:
    return await create_order(db, processor, actor, job_id, FINAL)


async def verify_payment(
    db: AsyncSession,
    processor: PaymentProcessor,
    actor: Actor,
    data: VerifyPaymentRequest,
) -> tuple[Job, bool]:
    """Verify a checkout callback and capture the leg it pays for.

    Returns ``(job, already_processed)``. A repeat of a capture that already
    succeeded changes nothing; a different payment against a captured leg is
    a conflict.
    """
    if not processor.verify_signature(
        data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature
    ):
        logger.warning("Payment signature mismatch for order %s", data.razorpay_order_id)
        raise ConflictError("Payment verification failed")

    leg = LEGS[data.payment_type]
    order_id = data.razorpay_order_id
    payment_id = data.razorpay_payment_id

    job = await _load_job(db, leg.order_column() == order_id)
    if job is None:
        raise NotFoundError("Job not found for the given order")

    captured = getattr(job, leg.payment_field)
    if captured is not None:
        if captured == payment_id:
            logger.warning("Duplicate %s verification for job %s ignored", leg.name, job.job_id)
            return job, True
        raise ConflictError(f"The {leg.name} for this job has already been paid")

    assert_transition(
        job.status,
        leg.event,
        TransitionContext(order_id=order_id, expected_order_id=getattr(job, leg.order_field)),
    )

    job_id = job.job_id
    amount = leg.amount(job)
    result = await db.execute(
        transition_update(
            job_id,
            leg.event,
            leg.order_column() == order_id,
            leg.payment_column().is_(None),
            payment_status=leg.payment_status,
            **{leg.payment_field: payment_id, leg.paid_at_field: datetime.now(UTC)},
        )
    )
    if result.rowcount != 1:
        await db.rollback()
        job = await _load_job(db, Job.job_id == job_id)
        if job is not None and getattr(job, leg.payment_field) == payment_id:
            logger.warning("Concurrent duplicate %s verification for job %s ignored", leg.name, job_id)
            return job, True
        raise ConflictError(f"The {leg.name} for this job changed concurrently")

    db.add(PaymentAuditLog(
        job_id=job_id,
        action=leg.audit_action,
        actor_id=actor.actor_id,
        order_id=order_id,
        payment_id=payment_id,
        amount=amount,
    ))
    await db.commit()
    logger.info("Captured %s payment %s for job %s", leg.name, payment_id, job_id)
    return await _load_job(db, Job.job_id == job_id), False
