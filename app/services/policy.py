"""Access policy: who may invoke which job operation.

Pure functions of (actor, job, operation). No I/O; the last-admin invariant
needs store counts and lives in ``app.services.user``.
"""

import enum
import uuid
from dataclasses import dataclass

from app.errors import ForbiddenError
from app.models.job import Job, JobStatus
from app.models.user import UserRole


@dataclass(frozen=True)
class Actor:
    """Resolved identity handed to the core by the auth dependency."""
    actor_id: uuid.UUID
    role: UserRole


class Operation(enum.Enum):
    CREATE_JOB = "create_job"
    APPROVE_LISTING = "approve_listing"
    CLAIM = "claim"
    SUBMIT_WORK = "submit_work"
    START_REVISION = "start_revision"
    VIEW_REVISIONS = "view_revisions"
    REQUEST_REVISION = "request_revision"
    APPROVE_WORK = "approve_work"
    CREATE_PAYMENT_ORDER = "create_payment_order"
    VIEW_JOB = "view_job"
    MANAGE_USERS = "manage_users"


_CLIENT_OWNED = {
    Operation.CREATE_PAYMENT_ORDER,
    Operation.REQUEST_REVISION,
    Operation.APPROVE_WORK,
}

_FREELANCER_OWNED = {
    Operation.SUBMIT_WORK,
    Operation.START_REVISION,
    Operation.VIEW_REVISIONS,
}

_DENIAL_MESSAGES = {
    Operation.CREATE_JOB: "Only clients can post jobs",
    Operation.APPROVE_LISTING: "Only admins can approve jobs",
    Operation.CLAIM: "Only contributors can apply for jobs",
    Operation.SUBMIT_WORK: "Not authorized to submit work for this job",
    Operation.START_REVISION: "Not authorized to work on this job",
    Operation.VIEW_REVISIONS: "Not authorized to view revision requests for this job",
    Operation.REQUEST_REVISION: "Only the client can request revisions",
    Operation.APPROVE_WORK: "Only the client can approve this work",
    Operation.CREATE_PAYMENT_ORDER: "Not authorized to make payment for this job",
    Operation.VIEW_JOB: "Not a party to this job",
    Operation.MANAGE_USERS: "Admin access required",
}


def is_allowed(actor: Actor, operation: Operation, job: Job | None = None) -> bool:
    if operation == Operation.CREATE_JOB:
        return actor.role == UserRole.CLIENT
    if operation in (Operation.APPROVE_LISTING, Operation.MANAGE_USERS):
        return actor.role == UserRole.ADMIN
    if operation == Operation.CLAIM:
        return actor.role == UserRole.CONTRIBUTOR
    if job is None:
        return False
    if operation in _CLIENT_OWNED:
        return job.client_id == actor.actor_id
    if operation in _FREELANCER_OWNED:
        return job.freelancer_id is not None and job.freelancer_id == actor.actor_id
    if operation == Operation.VIEW_JOB:
        if actor.role == UserRole.ADMIN or actor.actor_id in (job.client_id, job.freelancer_id):
            return True
        # Contributors browse claimable jobs before applying.
        return (
            actor.role == UserRole.CONTRIBUTOR
            and job.status == JobStatus.DEPOSIT_PAID
            and job.freelancer_id is None
        )
    return False


def authorize(actor: Actor, operation: Operation, job: Job | None = None) -> None:
    """Raise 403 unless ``actor`` may perform ``operation`` on ``job``."""
    if not is_allowed(actor, operation, job):
        raise ForbiddenError(_DENIAL_MESSAGES[operation])


def authorize_admin_target(actor: Actor, target_user_id: uuid.UUID, deactivating: bool = False) -> None:
    """Admin moderation rules that depend only on actor and target identity."""
    authorize(actor, Operation.MANAGE_USERS)
    if deactivating and target_user_id == actor.actor_id:
        raise ForbiddenError("You cannot deactivate your own account")
