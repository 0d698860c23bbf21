"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.domain.entities import Actor
from dispatch.domain.enums import ActorRole
from dispatch.domain.exceptions import ForbiddenError
from dispatch.infrastructure.database import async_session_factory


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Identity forwarded by the authenticating gateway."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Missing actor identity headers")
    try:
        role = ActorRole(x_actor_role.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Unknown actor role") from None
    return Actor(x_actor_id, role)


def _require_role(role: ActorRole, message: str):
    async def dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role is not role:
            raise ForbiddenError(message, role=actor.role.value)
        return actor

    return dependency


get_requester = _require_role(ActorRole.REQUESTER, "Only requesters can do this")
get_driver = _require_role(ActorRole.DRIVER, "Only drivers can do this")
get_admin = _require_role(ActorRole.ADMIN, "Admin access required")
