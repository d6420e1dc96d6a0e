"""Contributor dashboard endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.middleware import require_contributor
from app.auth.rate_limit import check_rate_limit
from app.database import get_db
from app.schemas.common import envelope
from app.schemas.job import JobResponse
from app.services import job as job_service
from app.services.pagination import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT
from app.services.policy import Actor

router = APIRouter(prefix="/contributor", tags=["contributor"])


@router.get("/jobs/available", dependencies=[Depends(check_rate_limit)])
async def list_available_jobs(
    category: str | None = None,
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    actor: Actor = Depends(require_contributor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Deposit-paid jobs nobody has claimed yet, newest first."""
    result = await job_service.list_available_jobs(db, category, page, limit)
    return envelope(
        [JobResponse.model_validate(j).wire() for j in result.items], **result.meta()
    )


@router.get("/jobs", dependencies=[Depends(check_rate_limit)])
async def list_my_jobs(
    status: str | None = None,
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    actor: Actor = Depends(require_contributor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await job_service.list_my_jobs(db, actor, status, page, limit)
    return envelope(
        [JobResponse.model_validate(j).wire() for j in result.items], **result.meta()
    )


@router.get("/stats", dependencies=[Depends(check_rate_limit)])
async def contributor_stats(
    actor: Actor = Depends(require_contributor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    stats = await job_service.contributor_stats(db, actor)
    return envelope(stats)
