"""Job lifecycle endpoints."""

import uuid

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.middleware import get_actor, require_admin, require_client, require_contributor
from app.auth.rate_limit import check_rate_limit
from app.config import settings
from app.database import get_db
from app.errors import ValidationError
from app.schemas.common import envelope
from app.schemas.job import (
    ApproveWork,
    JobCreate,
    JobResponse,
    JobSummary,
    RevisionListResponse,
    RevisionRequestCreate,
    RevisionResponse,
)
from app.services import job as job_service
from app.services.blob_store import BlobStore, get_blob_store
from app.services.pagination import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT
from app.services.policy import Actor
from app.services.uploads import discard_staged, stage_upload

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _job(job) -> dict:
    return JobResponse.model_validate(job).wire()


@router.post("", status_code=201, dependencies=[Depends(check_rate_limit)])
async def create_job(
    data: JobCreate,
    actor: Actor = Depends(require_client),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Client posts a job. It is listed once an admin approves it."""
    job = await job_service.create_job(db, actor, data)
    return envelope(_job(job), "Job posted and awaiting approval")


@router.get("", dependencies=[Depends(check_rate_limit)])
async def list_jobs(
    status: str | None = None,
    category: str | None = None,
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await job_service.list_jobs(db, status, category, page, limit)
    return envelope([_job(j) for j in result.items], **result.meta())


@router.get("/mine", dependencies=[Depends(check_rate_limit)])
async def list_client_jobs(
    status: str | None = None,
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    actor: Actor = Depends(require_client),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Jobs posted by the calling client."""
    result = await job_service.list_client_jobs(db, actor, status, page, limit)
    return envelope([_job(j) for j in result.items], **result.meta())


@router.get("/{job_id}", dependencies=[Depends(check_rate_limit)])
async def get_job(
    job_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Get job details. Parties to the job and admins can view it."""
    job = await job_service.get_job(db, actor, job_id)
    return envelope(_job(job))


@router.post("/{job_id}/approve", dependencies=[Depends(check_rate_limit)])
async def approve_listing(
    job_id: uuid.UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    job = await job_service.approve_listing(db, actor, job_id)
    return envelope(_job(job), "Job approved")


@router.post("/{job_id}/apply", dependencies=[Depends(check_rate_limit)])
async def apply_for_job(
    job_id: uuid.UUID,
    actor: Actor = Depends(require_contributor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Contributor claims a deposit-paid job. First caller wins."""
    job = await job_service.apply_for_job(db, actor, job_id)
    return envelope(_job(job), "Successfully applied for job")


@router.post("/{job_id}/submit-work", dependencies=[Depends(check_rate_limit)])
async def submit_work(
    job_id: uuid.UUID,
    files: list[UploadFile] = File(default=[]),
    message: str | None = Form(None, max_length=5000),
    revision_id: str | None = Form(None, alias="revisionId"),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    """Assigned freelancer uploads deliverables for the job or for one revision."""
    kind = job_service.resolve_submission_kind(revision_id)
    if len(files) > settings.max_upload_files:
        raise ValidationError(f"At most {settings.max_upload_files} files per submission")

    staged = []
    try:
        for upload in files:
            staged.append(await stage_upload(upload))
    except Exception:
        discard_staged(staged)
        raise

    job = await job_service.submit_work(db, blob_store, actor, job_id, kind, staged, message)
    if isinstance(kind, job_service.RevisionSubmission):
        return envelope(_job(job), "Revision submitted successfully")
    return envelope(_job(job), "Work submitted successfully")


@router.get("/{job_id}/revisions", dependencies=[Depends(check_rate_limit)])
async def get_revisions(
    job_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Revision requests on a job, for its assigned freelancer."""
    job = await job_service.get_revisions(db, actor, job_id)
    return envelope(RevisionListResponse(
        job=JobSummary.model_validate(job),
        revisions=[RevisionResponse.model_validate(r) for r in job.revisions],
        revisions_remaining=job.revisions_remaining,
    ))


@router.post("/{job_id}/revisions", status_code=201, dependencies=[Depends(check_rate_limit)])
async def request_revision(
    job_id: uuid.UUID,
    data: RevisionRequestCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    job = await job_service.request_revision(db, actor, job_id, data)
    return envelope(_job(job), "Revision requested")


@router.post("/{job_id}/revisions/{revision_id}/start", dependencies=[Depends(check_rate_limit)])
async def start_revision(
    job_id: uuid.UUID,
    revision_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    job = await job_service.start_revision(db, actor, job_id, revision_id)
    return envelope(_job(job), "Revision started")


@router.post("/{job_id}/approve-work", dependencies=[Depends(check_rate_limit)])
async def approve_work(
    job_id: uuid.UUID,
    data: ApproveWork | None = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Client accepts the delivered work. The final payment is due next."""
    feedback = data.feedback if data is not None else None
    job = await job_service.approve_work(db, actor, job_id, feedback)
    return envelope(_job(job), "Work approved")
