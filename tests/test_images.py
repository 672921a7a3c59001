"""Tests for the poster image downloader."""

from __future__ import annotations

from typing import cast

import httpx
import pytest

from app.services.images import ImageDownloader


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.mark.anyio("asyncio")
async def test_download_creates_missing_directories(tmp_path) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"\x89PNG")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        downloader = ImageDownloader(http_client, tmp_path / "nested" / "img")
        destination = downloader.destination_for("/abc.jpg")
        await downloader.download("https://images.example.com/abc.jpg", destination)

    assert destination == tmp_path / "nested" / "img" / "abc.jpg"
    assert destination.read_bytes() == b"\x89PNG"


@pytest.mark.anyio("asyncio")
async def test_download_rejects_bad_status(tmp_path) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        downloader = ImageDownloader(http_client, tmp_path)
        with pytest.raises(httpx.HTTPStatusError, match="bad status: 404"):
            await downloader.download("https://images.example.com/x.jpg", tmp_path / "x.jpg")

    assert not (tmp_path / "x.jpg").exists()


def test_destination_stays_inside_image_dir(tmp_path) -> None:
    downloader = ImageDownloader(cast(httpx.AsyncClient, object()), tmp_path)

    assert downloader.destination_for("/../../etc/passwd") == tmp_path / "passwd"


@pytest.mark.anyio("asyncio")
async def test_scheduled_failures_are_swallowed(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        downloader = ImageDownloader(http_client, tmp_path)
        task = downloader.schedule("https://images.example.com/x.jpg", "/x.jpg")
        await downloader.wait_idle()

    assert task.done()
    assert task.exception() is None
