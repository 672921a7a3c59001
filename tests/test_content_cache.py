"""Tests for the lazily populated content cache."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db_models import Content
from app.errors import ContentNotFoundError, PersistError, UpstreamUnavailableError
from app.services.content_cache import ContentCache
from app.services.images import ImageDownloader

from tmdb_fakes import FakeTMDB, build_http_client, build_services, open_database


async def _content_rows(database) -> int:
    async with database.session_factory() as session:
        result = await session.execute(select(func.count()).select_from(Content))
        return result.scalar_one()


def test_first_resolution_fetches_and_caches(tmp_path) -> None:
    """An unseen title is fetched once and stored with the movie fields mapped."""

    async def runner() -> None:
        database = await open_database(tmp_path / "cache-miss.db")
        tmdb = FakeTMDB()
        async with build_http_client(tmdb) as http_client:
            cache, _ = build_services(database, http_client)
            content = await cache.resolve_or_create("movie", 550)

        assert tmdb.calls == 1
        assert content.id is not None
        assert content.tmdb_id == 550
        assert content.type == "movie"
        assert content.title == "Fight Club"
        assert content.imdb_id == "tt0137523"
        assert content.budget == 63000000
        assert content.release_date is not None
        assert content.release_date.year == 1999
        assert await _content_rows(database) == 1

        await database.dispose()

    asyncio.run(runner())


def test_cached_resolution_skips_catalog(tmp_path) -> None:
    """Resolving an already cached title performs no catalog calls."""

    async def runner() -> None:
        database = await open_database(tmp_path / "cache-hit.db")
        tmdb = FakeTMDB()
        async with build_http_client(tmdb) as http_client:
            cache, _ = build_services(database, http_client)
            first = await cache.resolve_or_create("movie", 550)
            second = await cache.resolve_or_create("movie", 550)

        assert tmdb.calls == 1
        assert first.id == second.id

        await database.dispose()

    asyncio.run(runner())


def test_show_defaults_movie_only_fields(tmp_path) -> None:
    """Shows map ``name``/``first_air_date`` and carry zero budget and revenue."""

    async def runner() -> None:
        database = await open_database(tmp_path / "cache-show.db")
        async with build_http_client(FakeTMDB()) as http_client:
            cache, _ = build_services(database, http_client)
            content = await cache.resolve_or_create("tv", 1396)

        assert content.type == "tv"
        assert content.title == "Breaking Bad"
        assert content.budget == 0
        assert content.revenue == 0
        assert content.imdb_id == ""
        assert str(content.release_date) == "2008-01-20"

        await database.dispose()

    asyncio.run(runner())


def test_same_id_different_kind_is_a_separate_row(tmp_path) -> None:
    """Uniqueness is on the (id, kind) pair, not the id alone."""

    async def runner() -> None:
        database = await open_database(tmp_path / "cache-kinds.db")
        tmdb = FakeTMDB(
            {
                "/movie/42": {"id": 42, "title": "Movie Forty Two"},
                "/tv/42": {"id": 42, "name": "Show Forty Two"},
            }
        )
        async with build_http_client(tmdb) as http_client:
            cache, _ = build_services(database, http_client)
            movie = await cache.resolve_or_create("movie", 42)
            show = await cache.resolve_or_create("tv", 42)

        assert movie.id != show.id
        assert await _content_rows(database) == 2

        await database.dispose()

    asyncio.run(runner())


@pytest.mark.parametrize("callers", [2, 5])
def test_concurrent_first_resolutions_share_one_row(tmp_path, callers: int) -> None:
    """Racing first references create exactly one row and all see its identity."""

    async def runner() -> None:
        database = await open_database(tmp_path / f"cache-race-{callers}.db")
        tmdb = FakeTMDB()
        tmdb.hold_until(callers)
        async with build_http_client(tmdb) as http_client:
            cache, _ = build_services(database, http_client)
            results = await asyncio.gather(
                *(cache.resolve_or_create("movie", 550) for _ in range(callers))
            )

        # Every caller missed the cache before anyone inserted.
        assert tmdb.calls == callers
        assert len({content.id for content in results}) == 1
        assert await _content_rows(database) == 1

        await database.dispose()

    asyncio.run(runner())


def test_unknown_title_is_not_found(tmp_path) -> None:
    async def runner() -> None:
        database = await open_database(tmp_path / "cache-404.db")
        async with build_http_client(FakeTMDB()) as http_client:
            cache, _ = build_services(database, http_client)
            with pytest.raises(ContentNotFoundError):
                await cache.resolve_or_create("movie", 999)

        assert await _content_rows(database) == 0
        await database.dispose()

    asyncio.run(runner())


def test_response_without_title_is_rejected(tmp_path) -> None:
    """Malformed upstream data never reaches the cache."""

    async def runner() -> None:
        database = await open_database(tmp_path / "cache-untitled.db")
        tmdb = FakeTMDB({"/movie/7": {"id": 7, "title": "  "}})
        async with build_http_client(tmdb) as http_client:
            cache, _ = build_services(database, http_client)
            with pytest.raises(ContentNotFoundError):
                await cache.resolve_or_create("movie", 7)

        assert await _content_rows(database) == 0
        await database.dispose()

    asyncio.run(runner())


def test_upstream_failure_is_unavailable(tmp_path) -> None:
    async def runner() -> None:
        database = await open_database(tmp_path / "cache-503.db")

        def handler(_: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        async with build_http_client(handler) as http_client:
            cache, _ = build_services(database, http_client)
            with pytest.raises(UpstreamUnavailableError):
                await cache.resolve_or_create("movie", 550)

        await database.dispose()

    asyncio.run(runner())


def test_new_row_schedules_poster_download(tmp_path) -> None:
    """Creating a row fetches its poster into the image directory."""

    async def runner() -> None:
        database = await open_database(tmp_path / "cache-poster.db")
        image_requests: list[httpx.Request] = []

        def image_handler(request: httpx.Request) -> httpx.Response:
            image_requests.append(request)
            return httpx.Response(200, content=b"poster-bytes")

        image_dir = tmp_path / "data" / "img"
        async with build_http_client(FakeTMDB()) as http_client, httpx.AsyncClient(
            transport=httpx.MockTransport(image_handler)
        ) as image_client:
            images = ImageDownloader(image_client, image_dir)
            cache, _ = build_services(database, http_client, images)
            content = await cache.resolve_or_create("movie", 550)
            await images.wait_idle()
            await cache.resolve_or_create("movie", 550)
            await images.wait_idle()

        assert len(image_requests) == 1
        assert str(image_requests[0].url) == (
            "https://image.tmdb.org/t/p/w500/pB8BM7pdSp6B6Ih7QZ4DrQ3PmJK.jpg"
        )
        poster = image_dir / content.poster_path.lstrip("/")
        assert poster.read_bytes() == b"poster-bytes"

        await database.dispose()

    asyncio.run(runner())


def test_poster_failure_does_not_fail_resolution(tmp_path, caplog) -> None:
    async def runner() -> None:
        database = await open_database(tmp_path / "cache-poster-fail.db")

        def image_handler(_: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        async with build_http_client(FakeTMDB()) as http_client, httpx.AsyncClient(
            transport=httpx.MockTransport(image_handler)
        ) as image_client:
            images = ImageDownloader(image_client, tmp_path / "img")
            cache, _ = build_services(database, http_client, images)
            content = await cache.resolve_or_create("movie", 550)
            await images.wait_idle()

        assert content.title == "Fight Club"
        assert not (tmp_path / "img" / "pB8BM7pdSp6B6Ih7QZ4DrQ3PmJK.jpg").exists()
        failures = [
            record
            for record in caplog.records
            if record.name == "app.services.images" and record.exc_info
        ]
        assert len(failures) == 1

        await database.dispose()

    asyncio.run(runner())


@pytest.mark.parametrize(
    "failure",
    [
        IntegrityError(
            "INSERT INTO content", {}, Exception("NOT NULL constraint failed: content.title")
        ),
        OperationalError("INSERT INTO content", {}, Exception("database is locked")),
        # Reported as the source constraint, yet no row exists to re-read.
        IntegrityError(
            "INSERT INTO content",
            {},
            Exception("UNIQUE constraint failed: content.tmdb_id, content.type"),
        ),
    ],
    ids=["other-integrity-error", "operational-error", "re-read-finds-nothing"],
)
def test_storage_failures_are_persist_errors(tmp_path, monkeypatch, failure) -> None:
    async def runner() -> None:
        database = await open_database(tmp_path / "cache-persist.db")

        async def _failing_commit(self):
            raise failure

        async with build_http_client(FakeTMDB()) as http_client:
            cache, _ = build_services(database, http_client)
            monkeypatch.setattr(AsyncSession, "commit", _failing_commit)
            with pytest.raises(PersistError):
                await cache.resolve_or_create("movie", 550)
            monkeypatch.undo()

        assert await _content_rows(database) == 0
        await database.dispose()

    asyncio.run(runner())


def test_without_catalog_only_cached_titles_resolve(tmp_path) -> None:
    async def runner() -> None:
        database = await open_database(tmp_path / "cache-no-catalog.db")
        async with build_http_client(FakeTMDB()) as http_client:
            seeded, _ = build_services(database, http_client)
            cached = await seeded.resolve_or_create("movie", 550)

        cache = ContentCache(None, database.session_factory)
        content = await cache.resolve_or_create("movie", 550)
        with pytest.raises(UpstreamUnavailableError):
            await cache.resolve_or_create("tv", 1396)

        assert content.id == cached.id
        assert await _content_rows(database) == 1
        await database.dispose()

    asyncio.run(runner())
