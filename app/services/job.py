"""Job lifecycle business logic: posting, claiming, submissions and revisions.

Status changes go through ``app.services.lifecycle``. Writes that race with
other requests (claim, submission, revision steps) are single conditional
UPDATEs whose WHERE clause re-checks the state they depend on; zero affected
rows is reported as a conflict.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.job import Job, JobStatus, Revision, RevisionStatus
from app.schemas.job import ContributorStats, JobCreate, RevisionRequestCreate
from app.services.blob_store import BlobStore, StagedFile, container_name_for
from app.services.lifecycle import (
    JobEvent,
    TransitionContext,
    apply_transition,
    assert_transition,
    transition_update,
)
from app.services.pagination import Page, paginate
from app.services.policy import Actor, Operation, authorize
from app.services.uploads import discard_staged, upload_deliverables

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (
    JobStatus.IN_PROGRESS,
    JobStatus.REVISION_REQUESTED,
    JobStatus.REVISION_IN_PROGRESS,
)
DELIVERED_STATUSES = (
    JobStatus.COMPLETED,
    JobStatus.REVISION_COMPLETED,
    JobStatus.APPROVED_BY_CLIENT,
    JobStatus.FINAL_PAID,
)


@dataclass(frozen=True)
class InitialSubmission:
    """First full delivery of a job in progress."""


@dataclass(frozen=True)
class RevisionSubmission:
    """Delivery against one revision request."""
    revision_id: uuid.UUID


SubmissionKind = InitialSubmission | RevisionSubmission

_MISSING_REVISION_IDS = {"", "undefined", "null"}


def resolve_submission_kind(revision_id: str | None) -> SubmissionKind:
    """Decide once, at the boundary, which submission handler applies.

    A present but unparseable revision id cannot match any revision, so it is
    reported as not found rather than treated as an initial submission.
    """
    if revision_id is None or revision_id.strip() in _MISSING_REVISION_IDS:
        return InitialSubmission()
    try:
        return RevisionSubmission(uuid.UUID(revision_id.strip()))
    except ValueError:
        raise NotFoundError("Revision request not found")


async def _get_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    result = await db.execute(select(Job).where(Job.job_id == job_id))
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFoundError("Job not found")
    return job


async def _reload(db: AsyncSession, job_id: uuid.UUID) -> Job:
    """Fresh copy after a Core UPDATE left identity-map objects stale."""
    db.expunge_all()
    return await _get_job(db, job_id)


async def create_job(db: AsyncSession, actor: Actor, data: JobCreate) -> Job:
    """Client posts a job. It waits in pending for admin approval."""
    authorize(actor, Operation.CREATE_JOB)
    job = Job(
        job_id=uuid.uuid4(),
        client_id=actor.actor_id,
        title=data.title,
        description=data.description,
        category=data.category,
        price=data.price,
        max_revisions=(
            data.max_revisions if data.max_revisions is not None
            else settings.default_max_revisions
        ),
        status=JobStatus.PENDING,
        deliverables=[],
    )
    db.add(job)
    await db.commit()
    logger.info("Job %s posted by client %s", job.job_id, actor.actor_id)
    return await _reload(db, job.job_id)


async def approve_listing(db: AsyncSession, actor: Actor, job_id: uuid.UUID) -> Job:
    """Admin moderation: pending → approved, opening the job for deposit."""
    authorize(actor, Operation.APPROVE_LISTING)
    job = await _get_job(db, job_id)
    assert_transition(job.status, JobEvent.APPROVE_LISTING)
    await apply_transition(db, job_id, JobEvent.APPROVE_LISTING)
    logger.info("Job %s approved by admin %s", job_id, actor.actor_id)
    return await _reload(db, job_id)


async def get_job(db: AsyncSession, actor: Actor, job_id: uuid.UUID) -> Job:
    job = await _get_job(db, job_id)
    authorize(actor, Operation.VIEW_JOB, job)
    return job


async def apply_for_job(db: AsyncSession, actor: Actor, job_id: uuid.UUID) -> Job:
    """Contributor claims a deposit-paid job.

    Check-and-set in one statement: exactly one concurrent caller sees a
    matched row, every other caller gets 409.
    """
    authorize(actor, Operation.CLAIM)
    stmt = transition_update(
        job_id,
        JobEvent.CLAIM,
        Job.freelancer_id.is_(None),
        freelancer_id=actor.actor_id,
        assigned_at=datetime.now(UTC),
    )
    result = await db.execute(stmt)
    if result.rowcount == 1:
        await db.commit()
        logger.info("Job %s claimed by contributor %s", job_id, actor.actor_id)
        return await _reload(db, job_id)

    await db.rollback()
    job = await _reload(db, job_id)
    if job.freelancer_id is not None:
        raise ConflictError("This job has already been assigned to another freelancer")
    assert_transition(job.status, JobEvent.CLAIM, TransitionContext(freelancer_id=job.freelancer_id))
    raise ConflictError("Job could not be claimed, please retry")


async def submit_work(
    db: AsyncSession,
    blob_store: BlobStore,
    actor: Actor,
    job_id: uuid.UUID,
    kind: SubmissionKind,
    files: list[StagedFile],
    message: str | None = None,
) -> Job:
    """Upload deliverables, then record them as an initial or revision submission.

    Every precondition is checked before the upload so a doomed submission
    never touches the blob store, and checked again by the final conditional
    write in case the job moved while files were uploading.
    """
    try:
        job = await _get_job(db, job_id)
        authorize(actor, Operation.SUBMIT_WORK, job)
        context = TransitionContext(
            actor_id=actor.actor_id,
            freelancer_id=job.freelancer_id,
            deliverable_count=len(files),
        )
        if isinstance(kind, RevisionSubmission):
            revision = job.find_revision(kind.revision_id)
            if revision is None:
                raise NotFoundError("Revision request not found")
            if not files:
                raise ValidationError("No files uploaded")
            context.revision_status = revision.status
            assert_transition(job.status, JobEvent.SUBMIT_REVISION, context)
        else:
            if not files:
                raise ValidationError("No files uploaded")
            assert_transition(job.status, JobEvent.SUBMIT_WORK, context)
        container = container_name_for(job.job_id, job.title)
    except Exception:
        discard_staged(files)
        raise

    deliverables = await upload_deliverables(blob_store, files, container)

    if isinstance(kind, RevisionSubmission):
        return await _record_revision_submission(db, actor, job_id, kind.revision_id, deliverables, message)
    return await _record_initial_submission(db, actor, job_id, deliverables, message)


async def _record_initial_submission(
    db: AsyncSession,
    actor: Actor,
    job_id: uuid.UUID,
    deliverables: list[dict],
    message: str | None,
) -> Job:
    stmt = transition_update(
        job_id,
        JobEvent.SUBMIT_WORK,
        Job.freelancer_id == actor.actor_id,
        deliverables=deliverables,
        freelancer_note=message or "",
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        await db.rollback()
        logger.warning("Submission for job %s lost a race; %d blob(s) orphaned", job_id, len(deliverables))
        raise ConflictError("Job changed while files were uploading; submission was not saved")

    await db.commit()
    logger.info("Work submitted for job %s (%d file(s))", job_id, len(deliverables))
    return await _reload(db, job_id)


async def _record_revision_submission(
    db: AsyncSession,
    actor: Actor,
    job_id: uuid.UUID,
    revision_id: uuid.UUID,
    deliverables: list[dict],
    message: str | None,
) -> Job:
    now = datetime.now(UTC)
    job_result = await db.execute(
        transition_update(job_id, JobEvent.SUBMIT_REVISION, Job.freelancer_id == actor.actor_id)
    )
    # A revision submitted straight from requested passes through in_progress.
    revision_result = await db.execute(
        update(Revision)
        .where(
            Revision.revision_id == revision_id,
            Revision.job_id == job_id,
            Revision.status != RevisionStatus.COMPLETED,
        )
        .values(
            status=RevisionStatus.COMPLETED,
            started_at=func.coalesce(Revision.started_at, now),
            completed_at=now,
            freelancer_notes=message or "",
            deliverables=deliverables,
        )
        .execution_options(synchronize_session=False)
    )
    if job_result.rowcount != 1 or revision_result.rowcount != 1:
        await db.rollback()
        logger.warning("Revision %s submission lost a race; %d blob(s) orphaned", revision_id, len(deliverables))
        raise ConflictError("Job changed while files were uploading; revision was not saved")

    await db.commit()
    logger.info("Revision %s submitted for job %s", revision_id, job_id)
    return await _reload(db, job_id)


async def request_revision(
    db: AsyncSession, actor: Actor, job_id: uuid.UUID, data: RevisionRequestCreate
) -> Job:
    """Client asks for rework on submitted work, within the job's revision budget."""
    job = await _get_job(db, job_id)
    authorize(actor, Operation.REQUEST_REVISION, job)
    assert_transition(
        job.status,
        JobEvent.REQUEST_REVISION,
        TransitionContext(revisions_remaining=job.revisions_remaining),
    )

    values = {}
    if data.feedback is not None:
        values["client_feedback"] = data.feedback
    result = await db.execute(
        transition_update(job_id, JobEvent.REQUEST_REVISION, Job.client_id == actor.actor_id, **values)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError("Job changed while requesting a revision, please retry")

    db.add(Revision(
        revision_id=uuid.uuid4(),
        job_id=job_id,
        description=data.description,
        status=RevisionStatus.REQUESTED,
        deliverables=[],
    ))
    await db.commit()
    logger.info("Revision requested on job %s by client %s", job_id, actor.actor_id)
    return await _reload(db, job_id)


async def start_revision(
    db: AsyncSession, actor: Actor, job_id: uuid.UUID, revision_id: uuid.UUID
) -> Job:
    """Freelancer picks up a requested revision."""
    job = await _get_job(db, job_id)
    authorize(actor, Operation.START_REVISION, job)
    revision = job.find_revision(revision_id)
    if revision is None:
        raise NotFoundError("Revision request not found")
    assert_transition(
        job.status,
        JobEvent.START_REVISION,
        TransitionContext(
            actor_id=actor.actor_id,
            freelancer_id=job.freelancer_id,
            revision_status=revision.status,
        ),
    )

    job_result = await db.execute(
        transition_update(job_id, JobEvent.START_REVISION, Job.freelancer_id == actor.actor_id)
    )
    revision_result = await db.execute(
        update(Revision)
        .where(
            Revision.revision_id == revision_id,
            Revision.job_id == job_id,
            Revision.status == RevisionStatus.REQUESTED,
        )
        .values(status=RevisionStatus.IN_PROGRESS, started_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    if job_result.rowcount != 1 or revision_result.rowcount != 1:
        await db.rollback()
        raise ConflictError("Revision changed concurrently, please retry")

    await db.commit()
    logger.info("Revision %s started on job %s", revision_id, job_id)
    return await _reload(db, job_id)


async def approve_work(
    db: AsyncSession, actor: Actor, job_id: uuid.UUID, feedback: str | None = None
) -> Job:
    """Client signs off on the delivered work ahead of the final payment."""
    job = await _get_job(db, job_id)
    authorize(actor, Operation.APPROVE_WORK, job)
    assert_transition(job.status, JobEvent.APPROVE_WORK)

    values = {}
    if feedback is not None:
        values["client_feedback"] = feedback
    await apply_transition(
        db, job_id, JobEvent.APPROVE_WORK, Job.client_id == actor.actor_id, **values
    )
    logger.info("Work on job %s approved by client %s", job_id, actor.actor_id)
    return await _reload(db, job_id)


async def get_revisions(db: AsyncSession, actor: Actor, job_id: uuid.UUID) -> Job:
    job = await _get_job(db, job_id)
    authorize(actor, Operation.VIEW_REVISIONS, job)
    return job


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def _parse_status(status: str | None) -> JobStatus | None:
    if not status:
        return None
    try:
        return JobStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid job status: {status}")


async def list_jobs(
    db: AsyncSession,
    status: str | None = None,
    category: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> Page:
    query = select(Job)
    job_status = _parse_status(status)
    if job_status is not None:
        query = query.where(Job.status == job_status)
    if category:
        query = query.where(Job.category == category)
    return await paginate(db, query, page, limit, Job.created_at)


async def list_available_jobs(
    db: AsyncSession, category: str | None = None, page: int = 1, limit: int = 10
) -> Page:
    """Jobs a contributor can claim: deposit paid and nobody assigned."""
    query = select(Job).where(
        Job.status == JobStatus.DEPOSIT_PAID, Job.freelancer_id.is_(None)
    )
    if category:
        query = query.where(Job.category == category)
    return await paginate(db, query, page, limit, Job.created_at)


async def list_my_jobs(
    db: AsyncSession, actor: Actor, status: str | None = None, page: int = 1, limit: int = 10
) -> Page:
    query = select(Job).where(Job.freelancer_id == actor.actor_id)
    job_status = _parse_status(status)
    if job_status is not None:
        query = query.where(Job.status == job_status)
    return await paginate(db, query, page, limit, Job.created_at)


async def list_client_jobs(
    db: AsyncSession, actor: Actor, status: str | None = None, page: int = 1, limit: int = 10
) -> Page:
    query = select(Job).where(Job.client_id == actor.actor_id)
    job_status = _parse_status(status)
    if job_status is not None:
        query = query.where(Job.status == job_status)
    return await paginate(db, query, page, limit, Job.created_at)


async def contributor_stats(db: AsyncSession, actor: Actor) -> ContributorStats:
    async def _count(*criteria) -> int:
        return await db.scalar(select(func.count()).select_from(Job).where(*criteria)) or 0

    mine = Job.freelancer_id == actor.actor_id
    earnings = await db.scalar(
        select(func.coalesce(func.sum(Job.price), 0)).where(mine, Job.status == JobStatus.FINAL_PAID)
    )
    return ContributorStats(
        active_jobs=await _count(mine, Job.status.in_(ACTIVE_STATUSES)),
        completed_jobs=await _count(mine, Job.status.in_(DELIVERED_STATUSES)),
        revision_requests=await _count(mine, Job.status == JobStatus.REVISION_REQUESTED),
        total_earnings=Decimal(earnings or 0),
        available_jobs=await _count(
            Job.status == JobStatus.DEPOSIT_PAID, Job.freelancer_id.is_(None)
        ),
    )
