"""Per-user watched entries and the activity derived from their changes."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..database import is_unique_violation
from ..db_models import WATCHED_OWNER_CONSTRAINT, Watched
from ..errors import (
    AlreadyExistsError,
    ContentUnavailableError,
    NotFoundError,
    PersistError,
    WatchlogError,
)
from ..models import (
    ActivityType,
    WatchedAddRequest,
    WatchedEntry,
    WatchedStatus,
    WatchedUpdateRequest,
)
from .activity import ActivityLog
from .content_cache import ContentCache

logger = logging.getLogger(__name__)


class WatchedService:
    """Create, change and remove watched entries on behalf of their owner.

    Every query filters on ``user_id`` so an id belonging to another user
    behaves exactly like an id that does not exist.
    """

    def __init__(
        self,
        content_cache: ContentCache,
        activity_log: ActivityLog,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self._cache = content_cache
        self._activity = activity_log
        self._session_factory = session_factory

    async def list(self, user_id: int) -> list[WatchedEntry]:
        """Return the user's entries with content and activity, oldest first."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    self._entry_query().where(Watched.user_id == user_id).order_by(Watched.id)
                )
                return [WatchedEntry.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Failed to list watched entries for user %s: %s", user_id, exc)
            raise PersistError() from exc

    async def get(self, user_id: int, watched_id: int) -> WatchedEntry:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    self._entry_query().where(
                        Watched.id == watched_id, Watched.user_id == user_id
                    )
                )
                watched = result.scalar_one_or_none()
                if watched is None:
                    raise NotFoundError()
                return WatchedEntry.model_validate(watched)
        except SQLAlchemyError as exc:
            logger.error("Failed to load watched entry %s: %s", watched_id, exc)
            raise PersistError() from exc

    async def add(self, user_id: int, request: WatchedAddRequest) -> WatchedEntry:
        """Put a title on the user's list, caching its metadata first if needed."""

        try:
            content = await self._cache.resolve_or_create(
                request.content_type, request.content_id
            )
        except WatchlogError as exc:
            logger.warning(
                "Could not resolve %s %s for user %s: %s",
                request.content_type,
                request.content_id,
                user_id,
                exc,
            )
            raise ContentUnavailableError() from exc

        watched = Watched(
            user_id=user_id,
            content_id=content.id,
            status=request.status or WatchedStatus.WATCHING,
            rating=request.rating,
        )
        async with self._session_factory() as session:
            session.add(watched)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if is_unique_violation(exc, WATCHED_OWNER_CONSTRAINT):
                    raise AlreadyExistsError() from exc
                logger.error("Error adding watched content to database: %s", exc)
                raise PersistError("Failed adding content to database.") from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Error adding watched content to database: %s", exc)
                raise PersistError("Failed adding content to database.") from exc

        logger.info(
            "User %s added %s %s as watched entry %s",
            user_id,
            content.type,
            content.tmdb_id,
            watched.id,
        )
        # The entry is already committed; a crash before this append leaves it
        # without its ADDED_WATCHED activity.
        await self._record(watched.id, ActivityType.ADDED_WATCHED)
        return await self.get(user_id, watched.id)

    async def update(
        self, user_id: int, watched_id: int, request: WatchedUpdateRequest
    ) -> WatchedEntry:
        """Apply the supplied status and/or rating to an entry the user owns."""

        values = request.changed_values()
        if not values:
            raise ValueError("status or rating is required")
        values["updated_at"] = datetime.utcnow()

        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    update(Watched)
                    .where(Watched.id == watched_id, Watched.user_id == user_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Watched entry %s update failed: %s", watched_id, exc)
                raise PersistError("Failed to update watched entry.") from exc
        if result.rowcount <= 0:
            raise NotFoundError()

        if request.rating:
            await self._record(watched_id, ActivityType.RATING_CHANGED, str(request.rating))
        if request.status is not None:
            await self._record(watched_id, ActivityType.STATUS_CHANGED, request.status.value)
        return await self.get(user_id, watched_id)

    async def remove(self, user_id: int, watched_id: int) -> None:
        """Permanently delete an entry the user owns, along with its activity."""

        logger.info("Removing watched entry %s for user %s", watched_id, user_id)
        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    delete(Watched)
                    .where(Watched.id == watched_id, Watched.user_id == user_id)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Removing watched entry %s failed: %s", watched_id, exc)
                raise PersistError("Failed to remove watched entry.") from exc
        if result.rowcount <= 0:
            raise NotFoundError()

    async def _record(
        self, watched_id: int, kind: ActivityType, data: str | None = None
    ) -> None:
        try:
            await self._activity.append(watched_id, kind, data)
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to record %s for watched entry %s: %s", kind.value, watched_id, exc
            )

    @staticmethod
    def _entry_query():
        return select(Watched).options(
            selectinload(Watched.content), selectinload(Watched.activity)
        )
