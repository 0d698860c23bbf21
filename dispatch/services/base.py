"""Shared unit-of-work plumbing for the dispatch services."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.domain.entities import utcnow

Clock = Callable[[], datetime]


class SessionService:
    """Base for services bound to one ``AsyncSession``.

    Every public operation runs inside :meth:`unit_of_work`: it commits the
    whole change set on success and rolls everything back on any error, so a
    trip status write and its driver flip land together or not at all.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
