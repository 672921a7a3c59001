"""Utilities for resolving metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import (
    CatalogDecodeError,
    CatalogNetworkError,
    CatalogNotFoundError,
    CatalogUpstreamError,
)
from ..models import CatalogMetadata, ContentType, MovieMetadata, ShowMetadata

logger = logging.getLogger(__name__)

_METADATA_MODELS: dict[str, type[MovieMetadata] | type[ShowMetadata]] = {
    "movie": MovieMetadata,
    "tv": ShowMetadata,
}


class TMDBClient:
    """Client responsible for fetching title details from TMDB."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        # v4 read access tokens are JWTs and go in the Authorization header.
        self._is_bearer = settings.tmdb_api_key.startswith("eyJ")

    async def fetch(self, content_type: ContentType, tmdb_id: int) -> CatalogMetadata:
        """Return typed details for a movie or show.

        Raises ``CatalogNotFoundError`` for unknown ids, ``CatalogUpstreamError``
        for any other non-2xx response, ``CatalogNetworkError`` when TMDB could
        not be reached and ``CatalogDecodeError`` when the body is unusable.
        """

        model = _METADATA_MODELS.get(content_type)
        if model is None:
            raise ValueError(f"Unsupported content type: {content_type}")

        payload = await self._get(f"/{content_type}/{tmdb_id}")
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            logger.warning(
                "TMDB %s %s response failed validation: %s", content_type, tmdb_id, exc
            )
            raise CatalogDecodeError() from exc

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        all_params: dict[str, Any] = {"language": self._settings.tmdb_language}
        if params:
            all_params.update(params)
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._is_bearer:
            headers["Authorization"] = f"Bearer {self._settings.tmdb_api_key}"
        else:
            all_params["api_key"] = self._settings.tmdb_api_key

        try:
            response = await self._client.get(path, params=all_params, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request %s failed: %s", path, exc)
            raise CatalogNetworkError() from exc

        if response.status_code == 404:
            raise CatalogNotFoundError(response.status_code, response.text)
        if not 200 <= response.status_code <= 299:
            logger.error(
                "TMDB request %s returned %s: %s",
                path,
                response.status_code,
                response.text,
            )
            raise CatalogUpstreamError(response.status_code, response.text)

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON TMDB response for %s", path)
            raise CatalogDecodeError() from exc

    def poster_url(self, poster_path: str) -> str:
        """Build the full image URL for a TMDB poster path."""

        if poster_path.startswith("http"):
            return poster_path
        return f"{str(self._settings.tmdb_image_url).rstrip('/')}{poster_path}"
