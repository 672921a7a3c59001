"""Client for the IGDB game catalog and its Twitch client-credentials token."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
from pydantic import TypeAdapter, ValidationError

from ..config import Settings
from ..errors import (
    AuthFailedError,
    CatalogDecodeError,
    CatalogNetworkError,
    CatalogNotFoundError,
    CatalogUpstreamError,
    MissingConfigError,
)
from ..models import Game, TokenResponse

logger = logging.getLogger(__name__)

TOKEN_GRANT_TYPE = "client_credentials"
SEARCH_FIELDS = "name, cover.image_id, version_title, summary, first_release_date"

_GAMES_ADAPTER = TypeAdapter(list[Game])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class AccessToken:
    """Bearer token and the moment it stops being valid."""

    value: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class CredentialHolder:
    """Owns the current IGDB access token.

    The token object is immutable and replaced wholesale, so readers always
    see a consistent value/expiry pair. Concurrent refreshes are tolerated;
    ``swap`` keeps whichever valid token landed first.
    """

    def __init__(
        self,
        token: AccessToken | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._token = token
        self._clock = clock

    @property
    def token(self) -> AccessToken | None:
        return self._token

    def now(self) -> datetime:
        return self._clock()

    def current(self) -> AccessToken | None:
        """Return the held token when it has not yet expired."""

        token = self._token
        if token is not None and token.is_valid(self.now()):
            return token
        return None

    def swap(self, expected: AccessToken | None, new: AccessToken) -> AccessToken:
        """Install ``new`` if the held token is still ``expected`` or has expired."""

        held = self._token
        if held is expected or held is None or not held.is_valid(self.now()):
            self._token = new
            return new
        return held


class IGDBClient:
    """Thin wrapper around the IGDB v4 HTTP API."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        credentials: CredentialHolder | None = None,
    ):
        self._settings = settings
        self._client = http_client
        self._credentials = credentials or CredentialHolder()

    @property
    def credentials(self) -> CredentialHolder:
        return self._credentials

    async def ensure_credential(self) -> AccessToken:
        """Return a valid access token, requesting a new one only when needed."""

        client_id = self._settings.igdb_client_id
        client_secret = self._settings.igdb_client_secret
        if not (client_id and client_secret):
            logger.error("IGDB client id and/or secret not provided")
            raise MissingConfigError()

        held = self._credentials.token
        current = self._credentials.current()
        if current is not None:
            logger.debug("IGDB access token still valid, reusing it")
            return current
        if held is not None:
            logger.debug("IGDB access token expired, fetching a new one")

        try:
            response = await self._client.post(
                str(self._settings.twitch_token_url),
                params={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "grant_type": TOKEN_GRANT_TYPE,
                },
            )
        except httpx.HTTPError as exc:
            logger.error("IGDB token request failed: %s", exc)
            raise AuthFailedError() from exc

        if not 200 <= response.status_code <= 299:
            logger.error(
                "IGDB token request returned %s: %s",
                response.status_code,
                response.text,
            )
            raise AuthFailedError()

        try:
            grant = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error("IGDB token response could not be decoded: %s", exc)
            raise AuthFailedError() from exc

        issued = AccessToken(
            value=grant.access_token,
            expires_at=self._credentials.now() + timedelta(seconds=grant.expires_in),
        )
        logger.debug("IGDB token refreshed, expires at %s", issued.expires_at)
        return self._credentials.swap(held, issued)

    async def search(self, query: str) -> list[Game]:
        """Search games by name."""

        logger.debug("IGDB search called with %r", query)
        escaped = query.replace("\\", "\\\\").replace('"', '\\"')
        body = f'fields {SEARCH_FIELDS}; search "{escaped}";'
        return await self._query_games(body)

    async def fetch(self, game_id: int) -> Game:
        """Return a single game by its IGDB id."""

        body = f"fields {SEARCH_FIELDS}; where id = {int(game_id)};"
        games = await self._query_games(body)
        if not games:
            raise CatalogNotFoundError(404, "[]")
        return games[0]

    async def _query_games(self, body: str) -> list[Game]:
        payload = await self._post("/games", body)
        try:
            return _GAMES_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            logger.warning("IGDB games response failed validation: %s", exc)
            raise CatalogDecodeError() from exc

    async def _post(self, path: str, body: str) -> Any:
        token = await self.ensure_credential()
        url = f"{str(self._settings.igdb_api_url).rstrip('/')}{path}"
        headers = {
            "Client-ID": self._settings.igdb_client_id or "",
            "Authorization": f"Bearer {token.value}",
            "Accept": "application/json",
        }
        logger.info("IGDB request %s", url)
        try:
            response = await self._client.post(url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("IGDB request %s failed: %s", path, exc)
            raise CatalogNetworkError() from exc

        if not 200 <= response.status_code <= 299:
            logger.error(
                "IGDB request %s returned %s: %s",
                path,
                response.status_code,
                response.text,
            )
            raise CatalogUpstreamError(response.status_code, response.text)

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON IGDB response for %s", path)
            raise CatalogDecodeError() from exc
