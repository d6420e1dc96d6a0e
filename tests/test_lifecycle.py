"""Unit tests for the job state machine (app/services/lifecycle.py)."""

import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, NotFoundError
from app.models.job import Job, JobStatus, RevisionStatus
from app.services.lifecycle import (
    TRANSITIONS,
    JobEvent,
    TransitionContext,
    apply_transition,
    assert_transition,
    can_transition,
    required_statuses,
    transition_update,
)

FREELANCER = uuid.uuid4()


def test_happy_path_is_connected() -> None:
    path = [
        (JobStatus.PENDING, JobEvent.APPROVE_LISTING, JobStatus.APPROVED),
        (JobStatus.APPROVED, JobEvent.DEPOSIT_VERIFIED, JobStatus.DEPOSIT_PAID),
        (JobStatus.DEPOSIT_PAID, JobEvent.CLAIM, JobStatus.IN_PROGRESS),
        (JobStatus.IN_PROGRESS, JobEvent.SUBMIT_WORK, JobStatus.COMPLETED),
        (JobStatus.COMPLETED, JobEvent.REQUEST_REVISION, JobStatus.REVISION_REQUESTED),
        (JobStatus.REVISION_REQUESTED, JobEvent.START_REVISION, JobStatus.REVISION_IN_PROGRESS),
        (JobStatus.REVISION_IN_PROGRESS, JobEvent.SUBMIT_REVISION, JobStatus.REVISION_COMPLETED),
        (JobStatus.REVISION_COMPLETED, JobEvent.APPROVE_WORK, JobStatus.APPROVED_BY_CLIENT),
        (JobStatus.APPROVED_BY_CLIENT, JobEvent.FINAL_VERIFIED, JobStatus.FINAL_PAID),
    ]
    for current, event, target in path:
        assert assert_transition(current, event) == target


def test_final_paid_is_terminal() -> None:
    for event in JobEvent:
        assert not can_transition(JobStatus.FINAL_PAID, event)


def test_final_payment_allowed_from_any_delivered_state() -> None:
    assert required_statuses(JobEvent.FINAL_VERIFIED) == {
        JobStatus.COMPLETED,
        JobStatus.REVISION_COMPLETED,
        JobStatus.APPROVED_BY_CLIENT,
    }


def test_revision_may_be_submitted_without_starting() -> None:
    assert can_transition(JobStatus.REVISION_REQUESTED, JobEvent.SUBMIT_REVISION)


def test_illegal_transition_names_states() -> None:
    with pytest.raises(ConflictError) as exc:
        assert_transition(JobStatus.PENDING, JobEvent.CLAIM)
    assert exc.value.message == "Cannot claim: job is pending, requires deposit_paid"


def test_claim_guard_rejects_assigned_job() -> None:
    context = TransitionContext(freelancer_id=FREELANCER)
    assert not can_transition(JobStatus.DEPOSIT_PAID, JobEvent.CLAIM, context)
    assert can_transition(JobStatus.DEPOSIT_PAID, JobEvent.CLAIM, TransitionContext())


def test_submit_work_guards() -> None:
    ok = TransitionContext(actor_id=FREELANCER, freelancer_id=FREELANCER, deliverable_count=1)
    assert can_transition(JobStatus.IN_PROGRESS, JobEvent.SUBMIT_WORK, ok)

    stranger = TransitionContext(actor_id=uuid.uuid4(), freelancer_id=FREELANCER, deliverable_count=1)
    with pytest.raises(ConflictError, match="not the assigned freelancer"):
        assert_transition(JobStatus.IN_PROGRESS, JobEvent.SUBMIT_WORK, stranger)

    empty = TransitionContext(actor_id=FREELANCER, freelancer_id=FREELANCER, deliverable_count=0)
    with pytest.raises(ConflictError, match="at least one deliverable"):
        assert_transition(JobStatus.IN_PROGRESS, JobEvent.SUBMIT_WORK, empty)


def test_revision_guards() -> None:
    assert not can_transition(
        JobStatus.REVISION_REQUESTED,
        JobEvent.START_REVISION,
        TransitionContext(revision_status=RevisionStatus.IN_PROGRESS),
    )
    assert not can_transition(
        JobStatus.REVISION_IN_PROGRESS,
        JobEvent.SUBMIT_REVISION,
        TransitionContext(revision_status=RevisionStatus.COMPLETED),
    )
    assert not can_transition(
        JobStatus.COMPLETED,
        JobEvent.REQUEST_REVISION,
        TransitionContext(revisions_remaining=0),
    )


def test_order_guard() -> None:
    context = TransitionContext(order_id="order_a", expected_order_id="order_b")
    assert not can_transition(JobStatus.APPROVED, JobEvent.DEPOSIT_VERIFIED, context)
    context = TransitionContext(order_id="order_a", expected_order_id="order_a")
    assert can_transition(JobStatus.APPROVED, JobEvent.DEPOSIT_VERIFIED, context)


def test_every_status_but_final_has_an_exit() -> None:
    sources = set().union(*(t.sources for t in TRANSITIONS.values()))
    assert sources == set(JobStatus) - {JobStatus.FINAL_PAID}


def test_transition_update_pins_source_status() -> None:
    stmt = transition_update(uuid.uuid4(), JobEvent.CLAIM, Job.freelancer_id.is_(None))
    sql = str(stmt)
    assert sql.startswith("UPDATE jobs SET")
    assert "jobs.status IN" in sql
    assert "jobs.freelancer_id IS NULL" in sql


async def _stored_job(db: AsyncSession, owner_id: uuid.UUID, status: JobStatus) -> Job:
    job = Job(
        job_id=uuid.uuid4(),
        client_id=owner_id,
        title="Landing page",
        description="",
        price=Decimal("500.00"),
        max_revisions=3,
        status=status,
        deliverables=[],
    )
    db.add(job)
    await db.commit()
    return job


@pytest.mark.asyncio
async def test_apply_transition_commits(db_session: AsyncSession, users: SimpleNamespace) -> None:
    job = await _stored_job(db_session, users.client.user_id, JobStatus.COMPLETED)
    await apply_transition(db_session, job.job_id, JobEvent.APPROVE_WORK, client_feedback="Thanks")

    status, feedback = (await db_session.execute(
        select(Job.status, Job.client_feedback).where(Job.job_id == job.job_id)
    )).one()
    assert status == JobStatus.APPROVED_BY_CLIENT
    assert feedback == "Thanks"


@pytest.mark.asyncio
async def test_apply_transition_names_status_another_writer_set(
    db_session: AsyncSession, users: SimpleNamespace
) -> None:
    job = await _stored_job(db_session, users.client.user_id, JobStatus.FINAL_PAID)
    with pytest.raises(ConflictError, match="job is final_paid"):
        await apply_transition(db_session, job.job_id, JobEvent.APPROVE_WORK)

    stored = await db_session.scalar(select(Job.status).where(Job.job_id == job.job_id))
    assert stored == JobStatus.FINAL_PAID


@pytest.mark.asyncio
async def test_apply_transition_unknown_job(db_session: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await apply_transition(db_session, uuid.uuid4(), JobEvent.APPROVE_LISTING)
