"""Pydantic v2 schemas for admin user moderation."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import field_validator

from app.schemas.common import CamelModel, enum_value


class UserResponse(CamelModel):
    user_id: uuid.UUID
    name: str
    email: str
    role: str
    status: str
    profile_picture: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("role", "status", mode="before")
    @classmethod
    def serialize_enum(cls, v: object) -> str:
        return enum_value(v)


class RoleUpdate(CamelModel):
    role: Literal["client", "contributor", "admin"]


class DashboardCounts(CamelModel):
    users_by_role: dict[str, int]
    users_by_status: dict[str, int]
    jobs_by_status: dict[str, int]
    total_users: int
    total_jobs: int
