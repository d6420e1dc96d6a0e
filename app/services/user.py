"""Admin user moderation and dashboard counts."""

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.job import Job
from app.models.user import User, UserRole, UserStatus
from app.schemas.user import DashboardCounts
from app.services.pagination import Page, paginate
from app.services.policy import Actor, authorize_admin_target

logger = logging.getLogger(__name__)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_enum(enum_cls, value: str | None, label: str):
    if not value or value == "all":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {label}: {value}")


async def list_users(
    db: AsyncSession,
    role: str | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> Page:
    query = select(User)
    user_role = _parse_enum(UserRole, role, "role")
    if user_role is not None:
        query = query.where(User.role == user_role)
    user_status = _parse_enum(UserStatus, status, "status")
    if user_status is not None:
        query = query.where(User.status == user_status)
    if search:
        pattern = f"%{_escape_like(search.strip())}%"
        conditions = [
            User.name.ilike(pattern, escape="\\"),
            User.email.ilike(pattern, escape="\\"),
        ]
        # A full id pasted into the search box matches that user.
        if len(search.strip()) == 36:
            try:
                conditions.append(User.user_id == uuid.UUID(search.strip()))
            except ValueError:
                pass
        query = query.where(or_(*conditions))
    return await paginate(db, query, page, limit, User.created_at)


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.user_id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _lock_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.user_id == user_id).with_for_update())
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _lock_target(db: AsyncSession, user_id: uuid.UUID) -> tuple[User, int]:
    """Lock the active admins in id order, then the target user.

    Every role or status change takes its locks in this order. Returns the
    target and the number of active admins including it.
    """
    result = await db.execute(
        select(User)
        .where(User.role == UserRole.ADMIN, User.status == UserStatus.ACTIVE)
        .order_by(User.user_id)
        .with_for_update()
    )
    admins = result.scalars().all()
    for admin in admins:
        if admin.user_id == user_id:
            return admin, len(admins)

    user = await _lock_user(db, user_id)
    active_admins = len(admins)
    # Promoted or reactivated after the admin set was read
    if user.role == UserRole.ADMIN and user.status == UserStatus.ACTIVE:
        active_admins += 1
    return user, active_admins


def _assert_not_last_admin(user: User, active_admins: int) -> None:
    """Reject removing ``user`` from the active admins if nobody would be left."""
    if user.role != UserRole.ADMIN or user.status != UserStatus.ACTIVE:
        return
    if active_admins <= 1:
        raise ConflictError("Cannot remove the last active admin")


async def update_role(
    db: AsyncSession, actor: Actor, user_id: uuid.UUID, role: str
) -> User:
    authorize_admin_target(actor, user_id)
    new_role = _parse_enum(UserRole, role, "role")
    if new_role is None:
        raise ValidationError(f"Invalid role: {role}")

    user, active_admins = await _lock_target(db, user_id)
    if user.role == new_role:
        return user
    if new_role != UserRole.ADMIN:
        _assert_not_last_admin(user, active_admins)

    old_role = user.role
    user.role = new_role
    user.updated_at = datetime.now(UTC)
    await db.commit()
    logger.info(
        "Admin %s changed role of user %s from %s to %s",
        actor.actor_id, user_id, old_role.value, new_role.value,
    )
    return user


async def deactivate_user(db: AsyncSession, actor: Actor, user_id: uuid.UUID) -> User:
    authorize_admin_target(actor, user_id, deactivating=True)
    user, active_admins = await _lock_target(db, user_id)
    if user.status == UserStatus.INACTIVE:
        return user
    _assert_not_last_admin(user, active_admins)

    user.status = UserStatus.INACTIVE
    user.updated_at = datetime.now(UTC)
    await db.commit()
    logger.info("Admin %s deactivated user %s", actor.actor_id, user_id)
    return user


async def reactivate_user(db: AsyncSession, actor: Actor, user_id: uuid.UUID) -> User:
    authorize_admin_target(actor, user_id)
    user, _ = await _lock_target(db, user_id)
    if user.status == UserStatus.ACTIVE:
        return user

    user.status = UserStatus.ACTIVE
    user.updated_at = datetime.now(UTC)
    await db.commit()
    logger.info("Admin %s reactivated user %s", actor.actor_id, user_id)
    return user


async def admin_dashboard(db: AsyncSession) -> DashboardCounts:
    """User counts per role and status, job counts per status."""
    roles = await db.execute(select(User.role, func.count()).group_by(User.role))
    statuses = await db.execute(select(User.status, func.count()).group_by(User.status))
    jobs = await db.execute(select(Job.status, func.count()).group_by(Job.status))

    users_by_role = {r.value: 0 for r in UserRole}
    users_by_role.update({r.value: n for r, n in roles.all()})
    users_by_status = {s.value: 0 for s in UserStatus}
    users_by_status.update({s.value: n for s, n in statuses.all()})
    jobs_by_status = {s.value: n for s, n in jobs.all()}

    return DashboardCounts(
        users_by_role=users_by_role,
        users_by_status=users_by_status,
        jobs_by_status=jobs_by_status,
        total_users=sum(users_by_role.values()),
        total_jobs=sum(jobs_by_status.values()),
    )
