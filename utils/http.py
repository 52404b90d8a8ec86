"""
Image download helpers (httpx).
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import PurePosixPath
from urllib.parse import urlparse

import httpx

import config
from agent.errors import ImageDownloadError
from models.schemas import AgentImage

log = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}


def url_extension(url: str, default: str = ".jpg") -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    return suffix if suffix in IMAGE_EXTENSIONS else default


def guess_media_type(url: str, content_type: str | None = None) -> str:
    """Content-Type header first, then the URL extension; JPEG if neither helps."""
    if content_type:
        mime = content_type.split(";")[0].strip().lower()
        if mime.startswith("image/"):
            return mime
    guessed, _ = mimetypes.guess_type(urlparse(url).path)
    if guessed and guessed.startswith("image/"):
        return guessed
    return "image/jpeg"


async def fetch_image(client: httpx.AsyncClient, url: str, index: int) -> tuple[bytes, str]:
    """GET one image. Non-2xx or an empty body is an ImageDownloadError."""
    try:
        resp = await client.get(url, follow_redirects=True)
    except httpx.RequestError as e:
        raise ImageDownloadError(f"Failed to download image {index}: {e} from {url}") from e
    if not 200 <= resp.status_code < 300:
        raise ImageDownloadError(
            f"Failed to download image {index}: HTTP {resp.status_code} from {url}"
        )
    if not resp.content:
        raise ImageDownloadError(f"Image {index} is empty (0 bytes) from {url}")
    return resp.content, guess_media_type(url, resp.headers.get("content-type"))


async def download_images(
    urls: list[str], client: httpx.AsyncClient | None = None,
) -> list[AgentImage]:
    """Download every URL in order as photo-1.jpg, photo-2.png, ..."""
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(config.IMAGE_DOWNLOAD_TIMEOUT_S))
    try:
        images = []
        for i, url in enumerate(urls):
            data, media_type = await fetch_image(client, url, i)
            images.append(AgentImage(
                filename=f"photo-{i + 1}{url_extension(url)}",
                data=data,
                media_type=media_type,
            ))
            log.info("Downloaded image %d (%d bytes, %s)", i + 1, len(data), media_type)
        return images
    finally:
        if owns_client:
            await client.aclose()
