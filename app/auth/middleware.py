"""Actor resolution dependency for FastAPI.

The identity provider in front of this service authenticates the caller and
forwards their user id in ``X-Actor-Id``. This dependency turns that id into
an :class:`Actor`, rejecting unknown and deactivated users.
"""

import uuid

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import ForbiddenError
from app.models.user import User, UserRole, UserStatus
from app.services.policy import Actor

ACTOR_HEADER = "X-Actor-Id"


async def get_actor(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Actor:
    raw = request.headers.get(ACTOR_HEADER)
    if not raw:
        raise ForbiddenError("Missing authentication headers")
    try:
        user_id = uuid.UUID(raw.strip())
    except ValueError:
        raise ForbiddenError("Malformed actor id")

    result = await db.execute(select(User).where(User.user_id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise ForbiddenError("User not found")
    if user.status != UserStatus.ACTIVE:
        raise ForbiddenError("User account is deactivated")

    return Actor(actor_id=user.user_id, role=user.role)


def require_role(*roles: UserRole):
    """Dependency factory: the actor must hold one of ``roles``."""
    allowed = set(roles)
    names = " or ".join(r.value for r in roles)

    async def _check(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in allowed:
            raise ForbiddenError(f"Requires {names} role")
        return actor

    return _check


require_admin = require_role(UserRole.ADMIN)
require_client = require_role(UserRole.CLIENT)
require_contributor = require_role(UserRole.CONTRIBUTOR)
