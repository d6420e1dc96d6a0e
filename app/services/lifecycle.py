"""Job lifecycle state machine.

Single authority for which job events are legal in which statuses. Every
service that changes ``Job.status`` writes through :func:`transition_update`
(a conditional single-row UPDATE), directly or via :func:`apply_transition`,
so the table below is the only place transition rules live.
"""

import enum
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Update, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, NotFoundError
from app.models.job import Job, JobStatus, RevisionStatus


class JobEvent(enum.Enum):
    APPROVE_LISTING = "approve_listing"
    DEPOSIT_VERIFIED = "deposit_verified"
    CLAIM = "claim"
    SUBMIT_WORK = "submit_work"
    REQUEST_REVISION = "request_revision"
    START_REVISION = "start_revision"
    SUBMIT_REVISION = "submit_revision"
    APPROVE_WORK = "approve_work"
    FINAL_VERIFIED = "final_verified"


@dataclass
class TransitionContext:
    """Facts a guard may need beyond the current status.

    Fields left as None are not checked, which lets callers ask the
    status-only question before they have loaded everything else.
    """
    actor_id: uuid.UUID | None = None
    freelancer_id: uuid.UUID | None = None
    order_id: str | None = None
    expected_order_id: str | None = None
    revision_status: RevisionStatus | None = None
    revisions_remaining: int | None = None
    deliverable_count: int | None = None


@dataclass(frozen=True)
class Guard:
    description: str
    check: Callable[[TransitionContext], bool]


@dataclass(frozen=True)
class Transition:
    sources: frozenset[JobStatus]
    target: JobStatus
    guards: tuple[Guard, ...] = field(default_factory=tuple)


def _unassigned(ctx: TransitionContext) -> bool:
    return ctx.freelancer_id is None


def _is_freelancer(ctx: TransitionContext) -> bool:
    if ctx.actor_id is None:
        return True
    return ctx.freelancer_id is not None and ctx.freelancer_id == ctx.actor_id


def _order_matches(ctx: TransitionContext) -> bool:
    if ctx.order_id is None:
        return True
    return ctx.expected_order_id is not None and ctx.order_id == ctx.expected_order_id


def _has_deliverables(ctx: TransitionContext) -> bool:
    return ctx.deliverable_count is None or ctx.deliverable_count >= 1


def _revision_requested(ctx: TransitionContext) -> bool:
    return ctx.revision_status is None or ctx.revision_status == RevisionStatus.REQUESTED


def _revision_open(ctx: TransitionContext) -> bool:
    return ctx.revision_status is None or ctx.revision_status != RevisionStatus.COMPLETED


def _revisions_left(ctx: TransitionContext) -> bool:
    return ctx.revisions_remaining is None or ctx.revisions_remaining > 0


UNASSIGNED = Guard("job already has a freelancer assigned", _unassigned)
ASSIGNED_FREELANCER = Guard("caller is not the assigned freelancer", _is_freelancer)
# Payment verification looks the job up by its stored order id and repeats the
# match in the conditional write, so a replaced order id is reported as not found.
ORDER_MATCHES = Guard("payment order does not match this job", _order_matches)
HAS_DELIVERABLES = Guard("at least one deliverable is required", _has_deliverables)
REVISION_REQUESTED = Guard("revision is not in requested status", _revision_requested)
REVISION_OPEN = Guard("revision has already been completed", _revision_open)
REVISIONS_LEFT = Guard("no revisions remaining for this job", _revisions_left)

_SUBMITTED = frozenset({JobStatus.COMPLETED, JobStatus.REVISION_COMPLETED})

TRANSITIONS: dict[JobEvent, Transition] = {
    JobEvent.APPROVE_LISTING: Transition(
        frozenset({JobStatus.PENDING}), JobStatus.APPROVED,
    ),
    JobEvent.DEPOSIT_VERIFIED: Transition(
        frozenset({JobStatus.APPROVED}), JobStatus.DEPOSIT_PAID, (ORDER_MATCHES,),
    ),
    JobEvent.CLAIM: Transition(
        frozenset({JobStatus.DEPOSIT_PAID}), JobStatus.IN_PROGRESS, (UNASSIGNED,),
    ),
    JobEvent.SUBMIT_WORK: Transition(
        frozenset({JobStatus.IN_PROGRESS}), JobStatus.COMPLETED,
        (ASSIGNED_FREELANCER, HAS_DELIVERABLES),
    ),
    JobEvent.REQUEST_REVISION: Transition(
        _SUBMITTED, JobStatus.REVISION_REQUESTED, (REVISIONS_LEFT,),
    ),
    JobEvent.START_REVISION: Transition(
        frozenset({JobStatus.REVISION_REQUESTED}), JobStatus.REVISION_IN_PROGRESS,
        (ASSIGNED_FREELANCER, REVISION_REQUESTED),
    ),
    JobEvent.SUBMIT_REVISION: Transition(
        frozenset({JobStatus.REVISION_REQUESTED, JobStatus.REVISION_IN_PROGRESS}),
        JobStatus.REVISION_COMPLETED,
        (ASSIGNED_FREELANCER, REVISION_OPEN, HAS_DELIVERABLES),
    ),
    JobEvent.APPROVE_WORK: Transition(
        _SUBMITTED, JobStatus.APPROVED_BY_CLIENT,
    ),
    JobEvent.FINAL_VERIFIED: Transition(
        frozenset({
            JobStatus.COMPLETED,
            JobStatus.REVISION_COMPLETED,
            JobStatus.APPROVED_BY_CLIENT,
        }),
        JobStatus.FINAL_PAID,
        (ORDER_MATCHES,),
    ),
}


def required_statuses(event: JobEvent) -> frozenset[JobStatus]:
    return TRANSITIONS[event].sources


def _describe(statuses: frozenset[JobStatus]) -> str:
    return " or ".join(sorted(s.value for s in statuses))


def failed_guard(event: JobEvent, context: TransitionContext) -> Guard | None:
    for guard in TRANSITIONS[event].guards:
        if not guard.check(context):
            return guard
    return None


def can_transition(
    current: JobStatus, event: JobEvent, context: TransitionContext | None = None
) -> bool:
    """True if ``event`` is legal from ``current`` and every guard passes."""
    rule = TRANSITIONS[event]
    if current not in rule.sources:
        return False
    if context is None:
        return True
    return failed_guard(event, context) is None


def assert_transition(
    current: JobStatus, event: JobEvent, context: TransitionContext | None = None
) -> JobStatus:
    """Return the target status or raise 409 naming current and required states."""
    rule = TRANSITIONS[event]
    if current not in rule.sources:
        raise ConflictError(
            f"Cannot {event.value.replace('_', ' ')}: job is {current.value}, "
            f"requires {_describe(rule.sources)}"
        )
    if context is not None:
        guard = failed_guard(event, context)
        if guard is not None:
            raise ConflictError(f"Cannot {event.value.replace('_', ' ')}: {guard.description}")
    return rule.target


def transition_update(job_id: uuid.UUID, event: JobEvent, *criteria, **values) -> Update:
    """Conditional UPDATE moving one job along ``event``.

    The WHERE clause pins the job to the event's source statuses plus any
    extra ``criteria``; zero affected rows means another writer got there
    first or the job was never in a legal state.
    """
    rule = TRANSITIONS[event]
    return (
        update(Job)
        .where(Job.job_id == job_id, Job.status.in_(tuple(rule.sources)), *criteria)
        .values(status=rule.target, updated_at=datetime.now(UTC), **values)
        .execution_options(synchronize_session=False)
    )


async def apply_transition(
    db: AsyncSession, job_id: uuid.UUID, event: JobEvent, *criteria, **values
) -> None:
    """Move one job along ``event`` and commit.

    When no row matched, the job is reread so the 409 names the status some
    other writer moved it to.
    """
    result = await db.execute(transition_update(job_id, event, *criteria, **values))
    if result.rowcount == 1:
        await db.commit()
        return
    await db.rollback()
    current = await db.scalar(select(Job.status).where(Job.job_id == job_id))
    if current is None:
        raise NotFoundError("Job not found")
    assert_transition(current, event)
    raise ConflictError("Job changed concurrently, please retry")
