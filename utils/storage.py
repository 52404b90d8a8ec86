"""
Blob storage — local-disk implementation of the upload interface the jobs use.

Objects land under config.STORAGE_DIR/<key> and are addressed as
config.STORAGE_BASE_URL/<key>. Swap in a cloud-backed class with the same
upload() signature for production.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import config

log = logging.getLogger(__name__)


@dataclass
class StoredBlob:
    key: str
    url: str


class LocalBlobStorage:

    def __init__(self, root: Path | None = None, base_url: str | None = None):
        self.root = Path(root or config.STORAGE_DIR)
        self.base_url = (base_url or config.STORAGE_BASE_URL).rstrip("/")

    def _write(self, key: str, data: bytes) -> None:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def upload(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> StoredBlob:
        if ".." in Path(key).parts:
            raise ValueError(f"Invalid blob key: {key}")
        await asyncio.to_thread(self._write, key, data)
        log.info("Stored blob %s (%d bytes, %s)", key, len(data), content_type)
        return StoredBlob(key=key, url=f"{self.base_url}/{key}")

    async def upload_transcript(self, listing_id: str, lines: list[str]) -> str | None:
        """Store an agent transcript as JSONL. Returns None instead of raising."""
        if not lines:
            return None
        try:
            blob = await self.upload(
                f"transcripts/{listing_id}.jsonl",
                "\n".join(lines).encode("utf-8"),
                "application/x-ndjson",
            )
            return blob.url
        except Exception as e:
            log.warning("Failed to upload transcript for %s: %s", listing_id, e)
            return None
