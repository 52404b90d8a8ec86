"""
OpenAI image helpers — image-to-image enhancement for listing photos.
"""

from __future__ import annotations

import base64
import logging
import time

from openai import OpenAI, RateLimitError

import config
from agent.errors import ProviderConfigError

log = logging.getLogger(__name__)

_client: OpenAI | None = None


def get_client() -> OpenAI:
    global _client
    if _client is None:
        if not config.OPENAI_API_KEY:
            raise ProviderConfigError("OPENAI_API_KEY environment variable is required")
        _client = OpenAI(api_key=config.OPENAI_API_KEY)
    return _client


MAX_RETRIES = 5
BASE_DELAY = 10  # seconds

_EXT_FOR_MIME = {"image/png": "png", "image/webp": "webp", "image/jpeg": "jpg"}


def extension_for(mime_type: str) -> str:
    return _EXT_FOR_MIME.get(mime_type, "png")


def edit_image(
    image: bytes,
    mime_type: str,
    prompt: str,
    model: str | None = None,
) -> tuple[bytes, str]:
    """Send a photo plus instructions to the image-edit model.

    Returns the edited image bytes and their MIME type. Retries up to
    MAX_RETRIES times on rate limit (429) errors with exponential backoff.
    """
    client = get_client()
    filename = f"photo.{extension_for(mime_type)}"

    for attempt in range(MAX_RETRIES):
        try:
            resp = client.images.edit(
                model=model or config.OPENAI_IMAGE_MODEL,
                image=(filename, image, mime_type),
                prompt=prompt,
            )
            b64 = resp.data[0].b64_json if resp.data else None
            if not b64:
                raise RuntimeError("Image model returned no image data")
            return base64.b64decode(b64), "image/png"
        except RateLimitError as e:
            delay = BASE_DELAY * (2 ** attempt)
            log.warning(
                "Rate limited (attempt %d/%d), retrying in %ds: %s",
                attempt + 1, MAX_RETRIES, delay, e,
            )
            if attempt == MAX_RETRIES - 1:
                raise
            time.sleep(delay)

    raise RuntimeError("unreachable")
