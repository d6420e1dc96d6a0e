"""Razorpay payment processor adapter.

Order creation goes through the Razorpay Orders REST API; checkout signatures
are HMAC-SHA256 over ``order_id|payment_id`` keyed with the API secret.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx
from fastapi import Request

from app.config import settings
from app.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class PaymentOrder:
    order_id: str
    amount: int
    currency: str


class PaymentProcessor(Protocol):
    async def create_order(
        self, amount: int, currency: str, receipt: str, notes: dict[str, str]
    ) -> PaymentOrder: ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool: ...


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    message = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


class RazorpayProcessor:
    def __init__(
        self, client: httpx.AsyncClient, key_id: str, key_secret: str, api_url: str
    ) -> None:
        self.client = client
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")

    async def create_order(
        self, amount: int, currency: str, receipt: str, notes: dict[str, str]
    ) -> PaymentOrder:
        if not self.key_id:
            raise UpstreamError("Payment processor is not configured on this server")
        try:
            resp = await self.client.post(
                f"{self.api_url}/orders",
                auth=(self.key_id, self.key_secret),
                json={"amount": amount, "currency": currency, "receipt": receipt, "notes": notes},
            )
        except httpx.TimeoutException:
            logger.error("Razorpay timed out creating order %s", receipt)
            raise UpstreamError("Payment processor timed out")
        except httpx.RequestError as e:
            logger.error("Razorpay request failed: %s", e)
            raise UpstreamError("Failed to reach payment processor")

        if resp.status_code != 200:
            logger.error("Razorpay order create returned %d: %s", resp.status_code, resp.text[:500])
            raise UpstreamError(f"Payment order creation failed (status {resp.status_code})")

        try:
            data = resp.json()
            return PaymentOrder(
                order_id=data["id"],
                amount=int(data["amount"]),
                currency=data.get("currency", currency),
            )
        except (ValueError, KeyError, TypeError):
            logger.error("Razorpay order response unreadable: %s", resp.text[:500])
            raise UpstreamError("Payment processor returned an invalid order")

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            raise UpstreamError("Payment processor is not configured on this server")
        expected = compute_signature(self.key_secret, order_id, payment_id)
        return hmac.compare_digest(expected.encode(), (signature or "").encode())


def build_payment_processor(client: httpx.AsyncClient) -> PaymentProcessor:
    return RazorpayProcessor(
        client, settings.razorpay_key_id, settings.razorpay_key_secret, settings.razorpay_api_url
    )


def get_payment_processor(request: Request) -> PaymentProcessor:
    """Dependency: the process-wide processor built in the app lifespan."""
    return request.app.state.payment_processor
