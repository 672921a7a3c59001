"""Lazily populated cache of catalog titles shared by every user."""

from __future__ import annotations

import logging
from dataclasses import asdict

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import is_unique_violation
from ..db_models import CONTENT_SOURCE_CONSTRAINT, Content
from ..errors import (
    CatalogError,
    CatalogNotFoundError,
    ContentNotFoundError,
    PersistError,
    UpstreamUnavailableError,
)
from ..models import ContentFields, ContentType
from .images import ImageDownloader
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class ContentCache:
    """Resolves catalog ids to cached ``Content`` rows, creating them on first use.

    Two callers resolving the same unseen title may both fetch it and both try
    to insert. The unique constraint on ``(tmdb_id, type)`` lets exactly one
    insert win; the others re-read the winner's row once and return it.
    """

    def __init__(
        self,
        tmdb_client: TMDBClient | None,
        session_factory: async_sessionmaker[AsyncSession],
        images: ImageDownloader | None = None,
    ):
        self._tmdb = tmdb_client
        self._session_factory = session_factory
        self._images = images

    async def get(self, content_type: ContentType, tmdb_id: int) -> Content | None:
        """Return the cached row without touching the catalog."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Content).where(
                        Content.tmdb_id == tmdb_id,
                        Content.type == content_type,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to read cached content %s %s: %s", content_type, tmdb_id, exc)
            raise PersistError() from exc

    async def resolve_or_create(self, content_type: ContentType, tmdb_id: int) -> Content:
        """Return the cached row for a title, fetching it from TMDB on a miss."""

        existing = await self.get(content_type, tmdb_id)
        if existing is not None:
            return existing

        if self._tmdb is None:
            logger.warning(
                "Content %s %s not cached and TMDB is not configured", content_type, tmdb_id
            )
            raise UpstreamUnavailableError("Content catalog is not configured.")

        logger.info("Content %s %s not cached, fetching from TMDB", content_type, tmdb_id)
        try:
            metadata = await self._tmdb.fetch(content_type, tmdb_id)
        except CatalogNotFoundError as exc:
            raise ContentNotFoundError() from exc
        except CatalogError as exc:
            logger.warning("TMDB fetch for %s %s failed: %s", content_type, tmdb_id, exc)
            raise UpstreamUnavailableError() from exc

        fields = metadata.to_content_fields()
        if not fields.is_usable:
            logger.warning(
                "TMDB returned %s %s without an id or title", content_type, tmdb_id
            )
            raise ContentNotFoundError("Content response missing id or title.")

        content, created = await self._insert_or_fetch(fields)
        if created:
            self._schedule_poster(content)
        return content

    async def _insert_or_fetch(self, fields: ContentFields) -> tuple[Content, bool]:
        """Insert the row, or return the one a concurrent caller inserted first."""

        async with self._session_factory() as session:
            content = Content(**asdict(fields))
            session.add(content)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if not is_unique_violation(exc, CONTENT_SOURCE_CONSTRAINT):
                    logger.error("Error caching content %s: %s", fields.tmdb_id, exc)
                    raise PersistError("Failed to cache content in database.") from exc
                logger.info(
                    "Content %s %s cached concurrently, using existing row",
                    fields.type,
                    fields.tmdb_id,
                )
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Error caching content %s: %s", fields.tmdb_id, exc)
                raise PersistError("Failed to cache content in database.") from exc
            else:
                return content, True

        existing = await self.get(fields.type, fields.tmdb_id)
        if existing is None:
            raise PersistError("Failed to cache content in database.")
        return existing, False

    def _schedule_poster(self, content: Content) -> None:
        if self._images is None or self._tmdb is None or not content.poster_path:
            return
        try:
            self._images.schedule(
                self._tmdb.poster_url(content.poster_path), content.poster_path
            )
        except Exception as exc:  # pragma: no cover - best effort side effect
            logger.warning("Could not schedule poster download for %s: %s", content.id, exc)
