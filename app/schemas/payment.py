"""Pydantic v2 schemas for payment endpoints."""

import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import CamelModel


class PaymentOrderRequest(CamelModel):
    job_id: uuid.UUID


class PaymentOrderResponse(CamelModel):
    order_id: str
    amount: int
    currency: str
    job_id: uuid.UUID


class VerifyPaymentRequest(BaseModel):
    """Checkout callback payload, field names as the processor sends them."""
    model_config = ConfigDict(populate_by_name=True)

    razorpay_order_id: str = Field(..., min_length=1, max_length=64)
    razorpay_payment_id: str = Field(..., min_length=1, max_length=64)
    razorpay_signature: str = Field(..., min_length=1, max_length=256)
    payment_type: Literal["deposit", "final"] = Field(..., alias="paymentType")
