"""Split-payment endpoints: order creation and checkout verification."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.middleware import get_actor
from app.auth.rate_limit import check_rate_limit
from app.database import get_db
from app.schemas.common import envelope
from app.schemas.job import JobResponse
from app.schemas.payment import PaymentOrderRequest, VerifyPaymentRequest
from app.services import payment as payment_service
from app.services.policy import Actor
from app.services.razorpay import PaymentProcessor, get_payment_processor

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/deposit-order", dependencies=[Depends(check_rate_limit)])
async def create_deposit_order(
    data: PaymentOrderRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> dict:
    """Client opens the deposit order for an approved job."""
    order = await payment_service.create_deposit_order(db, processor, actor, data.job_id)
    return envelope(order)


@router.post("/final-order", dependencies=[Depends(check_rate_limit)])
async def create_final_order(
    data: PaymentOrderRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> dict:
    """Client opens the final order once work has been delivered."""
    order = await payment_service.create_final_order(db, processor, actor, data.job_id)
    return envelope(order)


@router.post("/verify", dependencies=[Depends(check_rate_limit)])
async def verify_payment(
    data: VerifyPaymentRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> dict:
    """Verify a checkout signature and capture the paid leg. Safe to repeat."""
    job, already_processed = await payment_service.verify_payment(db, processor, actor, data)
    message = "Payment already processed" if already_processed else "Payment verified successfully"
    return envelope(
        JobResponse.model_validate(job).wire(),
        message,
        alreadyProcessed=already_processed,
    )
