"""Pydantic v2 schemas for Job lifecycle endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator

from app.schemas.common import CamelModel, enum_value


class JobCreate(CamelModel):
    """Client posts a job. It starts pending until an admin approves it."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=10_000)
    category: str | None = Field(None, max_length=64)
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    max_revisions: int | None = Field(None, ge=0, le=10)

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        if v > Decimal("10000000"):
            raise ValueError("Maximum price is 10,000,000")
        return v


class RevisionRequestCreate(CamelModel):
    """Client asks for rework on submitted work."""
    description: str = Field(..., min_length=1, max_length=5000)
    feedback: str | None = Field(None, max_length=5000)


class ApproveWork(CamelModel):
    feedback: str | None = Field(None, max_length=5000)


class DeliverableResponse(CamelModel):
    name: str
    view_url: str
    download_url: str
    mime_type: str
    uploaded_at: datetime | None = None


class RevisionResponse(CamelModel):
    revision_id: uuid.UUID
    description: str
    status: str
    freelancer_notes: str | None = None
    deliverables: list[DeliverableResponse] = []
    requested_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return enum_value(v)


class JobResponse(CamelModel):
    job_id: uuid.UUID
    client_id: uuid.UUID
    freelancer_id: uuid.UUID | None
    title: str
    description: str
    category: str | None
    price: Decimal
    deposit_amount: int
    final_amount: int
    status: str
    payment_status: str
    deposit_order_id: str | None = None
    final_order_id: str | None = None
    deposit_payment_id: str | None = None
    final_payment_id: str | None = None
    deposit_paid_at: datetime | None = None
    final_paid_at: datetime | None = None
    deliverables: list[DeliverableResponse] = []
    freelancer_note: str | None = None
    client_feedback: str | None = None
    revisions: list[RevisionResponse] = []
    max_revisions: int
    revisions_remaining: int
    created_at: datetime
    assigned_at: datetime | None = None
    updated_at: datetime

    @field_validator("status", "payment_status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return enum_value(v)


class JobSummary(CamelModel):
    job_id: uuid.UUID
    title: str
    status: str
    client_id: uuid.UUID

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return enum_value(v)


class RevisionListResponse(CamelModel):
    job: JobSummary
    revisions: list[RevisionResponse]
    revisions_remaining: int


class ContributorStats(CamelModel):
    active_jobs: int
    completed_jobs: int
    revision_requests: int
    total_earnings: Decimal
    available_jobs: int
