"""Append-only history of watched entry transitions."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Activity
from ..models import ActivityType

logger = logging.getLogger(__name__)


class ActivityLog:
    """Writes activity rows. Rows are never updated; they disappear only with their watched entry."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(
        self,
        watched_id: int,
        kind: ActivityType,
        data: str | None = None,
    ) -> Activity:
        async with self._session_factory() as session:
            entry = Activity(watched_id=watched_id, type=kind, data=data)
            session.add(entry)
            await session.commit()
        logger.debug("Recorded %s for watched entry %s (%s)", kind.value, watched_id, data)
        return entry
