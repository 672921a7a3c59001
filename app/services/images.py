"""Poster image downloads, run in the background after a title is cached."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)


class ImageDownloader:
    """Stores remote images on local disk."""

    def __init__(self, http_client: httpx.AsyncClient, image_dir: Path):
        self._client = http_client
        self._image_dir = Path(image_dir)
        self._tasks: set[asyncio.Task[None]] = set()

    def destination_for(self, poster_path: str) -> Path:
        """Local file a poster path is written to."""

        return self._image_dir / Path(poster_path).name

    async def download(self, url: str, destination: Path) -> None:
        """Fetch ``url`` into ``destination``, creating parent directories."""

        logger.debug("Downloading %s to %s", url, destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        async with self._client.stream("GET", url) as response:
            if response.status_code != 200:
                raise httpx.HTTPStatusError(
                    f"bad status: {response.status_code}",
                    request=response.request,
                    response=response,
                )
            with destination.open("wb") as handle:
                async for chunk in response.aiter_bytes():
                    handle.write(chunk)

    def schedule(self, url: str, poster_path: str) -> asyncio.Task[None]:
        """Download in the background. Failures are logged and never raised."""

        destination = self.destination_for(poster_path)

        async def _runner() -> None:
            try:
                await self.download(url, destination)
            except Exception:
                logger.exception("Failed to download content image %s", url)

        task = asyncio.create_task(_runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for scheduled downloads to finish."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
