"""Entry point for the FastAPI-powered Watchlog service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import Database
from .errors import WatchlogError
from .models import Game, WatchedAddRequest, WatchedEntry, WatchedUpdateRequest
from .services.activity import ActivityLog
from .services.content_cache import ContentCache
from .services.igdb import IGDBClient
from .services.images import ImageDownloader
from .services.tmdb import TMDBClient
from .services.watched import WatchedService

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    igdb_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(20.0, connect=10.0))
    )
    image_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))
    )
    database = Database(settings.database_url)
    await database.create_all()

    if not settings.has_tmdb:
        logger.warning("TMDB_API_KEY is not set; titles not yet cached cannot be added")
    tmdb = TMDBClient(settings, tmdb_http) if settings.has_tmdb else None
    images = (
        ImageDownloader(image_http, settings.image_dir)
        if settings.download_posters
        else None
    )
    content_cache = ContentCache(tmdb, database.session_factory, images)
    fastapi_app.state.watched_service = WatchedService(
        content_cache, ActivityLog(database.session_factory), database.session_factory
    )
    fastapi_app.state.igdb = IGDBClient(settings, igdb_http)
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        if images is not None:
            await images.wait_idle()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Track what you watch and play",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    @fastapi_app.exception_handler(WatchlogError)
    async def watchlog_error_handler(request: Request, exc: WatchlogError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc
            )
        else:
            logger.info("%s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    register_routes(fastapi_app)
    return fastapi_app


def get_watched_service(request: Request) -> WatchedService:
    service = getattr(request.app.state, "watched_service", None)
    if not isinstance(service, WatchedService):
        raise HTTPException(status_code=503, detail="Watched service not initialised")
    return service


def get_igdb_client(request: Request) -> IGDBClient:
    client = getattr(request.app.state, "igdb", None)
    if not isinstance(client, IGDBClient):
        raise HTTPException(status_code=503, detail="Game search not initialised")
    return client


def current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    """Identity set by the authenticating proxy in front of the service."""

    try:
        user_id = int(x_user_id or "")
    except ValueError:
        raise HTTPException(status_code=401, detail="Missing or invalid user") from None
    if user_id <= 0:
        raise HTTPException(status_code=401, detail="Missing or invalid user")
    return user_id


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/watched", response_model=list[WatchedEntry])
    async def list_watched(
        user_id: int = Depends(current_user_id),
        service: WatchedService = Depends(get_watched_service),
    ) -> list[WatchedEntry]:
        return await service.list(user_id)

    @fastapi_app.post("/api/watched", response_model=WatchedEntry, status_code=201)
    async def add_watched(
        payload: WatchedAddRequest,
        user_id: int = Depends(current_user_id),
        service: WatchedService = Depends(get_watched_service),
    ) -> WatchedEntry:
        return await service.add(user_id, payload)

    @fastapi_app.get("/api/watched/{watched_id}", response_model=WatchedEntry)
    async def get_watched(
        watched_id: int,
        user_id: int = Depends(current_user_id),
        service: WatchedService = Depends(get_watched_service),
    ) -> WatchedEntry:
        return await service.get(user_id, watched_id)

    @fastapi_app.put("/api/watched/{watched_id}", response_model=WatchedEntry)
    async def update_watched(
        watched_id: int,
        payload: WatchedUpdateRequest,
        user_id: int = Depends(current_user_id),
        service: WatchedService = Depends(get_watched_service),
    ) -> WatchedEntry:
        return await service.update(user_id, watched_id, payload)

    @fastapi_app.delete("/api/watched/{watched_id}", status_code=204)
    async def remove_watched(
        watched_id: int,
        user_id: int = Depends(current_user_id),
        service: WatchedService = Depends(get_watched_service),
    ) -> Response:
        await service.remove(user_id, watched_id)
        return Response(status_code=204)

    @fastapi_app.get("/api/game/search", response_model=list[Game])
    async def search_games(
        query: str = Query(min_length=1),
        _: int = Depends(current_user_id),
        client: IGDBClient = Depends(get_igdb_client),
    ) -> list[Game]:
        return await client.search(query)

    @fastapi_app.get("/api/game/{game_id}", response_model=Game)
    async def get_game(
        game_id: int,
        _: int = Depends(current_user_id),
        client: IGDBClient = Depends(get_igdb_client),
    ) -> Game:
        return await client.fetch(game_id)


app = create_app()
