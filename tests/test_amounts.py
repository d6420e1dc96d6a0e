"""Tests for the deposit/final split (app/services/payment.py)."""

from decimal import Decimal

import pytest

from app.models.job import Job
from app.services.payment import split_amount


@pytest.mark.parametrize(("price", "expected"), [
    ("1000.00", 50000),
    ("999.99", 50000),  # 49999.5 rounds half up
    ("0.01", 1),
    ("0.03", 2),
    ("10", 500),
    ("12345.67", 617284),
])
def test_split_amount(price: str, expected: int) -> None:
    assert split_amount(Decimal(price)) == (expected, expected)


def test_odd_price_legs_exceed_price_by_one_unit() -> None:
    deposit, final = split_amount(Decimal("999.99"))
    assert deposit + final == 99999 + 1


def test_job_exposes_leg_amounts() -> None:
    job = Job(price=Decimal("250.50"))
    assert job.deposit_amount == 12525
    assert job.final_amount == 12525
