"""Admin moderation endpoints. Every route requires the admin role."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.middleware import require_admin
from app.auth.rate_limit import check_rate_limit
from app.database import get_db
from app.schemas.common import envelope
from app.schemas.user import RoleUpdate, UserResponse
from app.services import user as user_service
from app.services.pagination import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT
from app.services.policy import Actor

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", dependencies=[Depends(check_rate_limit)])
async def list_users(
    role: str | None = None,
    status: str | None = None,
    search: str | None = Query(None, max_length=200),
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await user_service.list_users(db, role, status, search, page, limit)
    return envelope(
        [UserResponse.model_validate(u).wire() for u in result.items], **result.meta()
    )


@router.get("/users/{user_id}", dependencies=[Depends(check_rate_limit)])
async def get_user(
    user_id: uuid.UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.get_user(db, user_id)
    return envelope(UserResponse.model_validate(user))


@router.put("/users/{user_id}/role", dependencies=[Depends(check_rate_limit)])
async def update_role(
    user_id: uuid.UUID,
    data: RoleUpdate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.update_role(db, actor, user_id, data.role)
    return envelope(UserResponse.model_validate(user), "User role updated")


@router.put("/users/{user_id}/deactivate", dependencies=[Depends(check_rate_limit)])
async def deactivate_user(
    user_id: uuid.UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.deactivate_user(db, actor, user_id)
    return envelope(UserResponse.model_validate(user), "User deactivated")


@router.put("/users/{user_id}/reactivate", dependencies=[Depends(check_rate_limit)])
async def reactivate_user(
    user_id: uuid.UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await user_service.reactivate_user(db, actor, user_id)
    return envelope(UserResponse.model_validate(user), "User reactivated")


@router.get("/dashboard", dependencies=[Depends(check_rate_limit)])
async def admin_dashboard(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    counts = await user_service.admin_dashboard(db)
    return envelope(counts)
