"""
Progress Log — the agent log of one listing-generation attempt.

Producers call append() synchronously. Each append schedules a flush that
rewrites the whole log to Postgres; flushes run one at a time, so the last
writer always holds the newest snapshot. A failed flush is logged and the
event stays in memory for the next flush to re-send.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from features.listings import db as listings_db
from features.listings.models import ProgressEvent, ProgressKind

log = logging.getLogger(__name__)

LogWriter = Callable[[str, list[dict]], None]


def _write_agent_log(listing_id: str, events: list[dict]) -> None:
    listings_db.update_listing(listing_id, agent_log=events)


class ProgressLog:
    """In-memory accumulator with fire-and-forget persistence."""

    def __init__(self, listing_id: str, writer: LogWriter | None = None):
        self.listing_id = listing_id
        self.events: list[ProgressEvent] = []
        self._writer = writer or _write_agent_log
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    def append(self, event: ProgressEvent) -> None:
        self.events.append(event)
        log.info("[AGENT] %s %s: %s", self.listing_id, event.kind.value, event.content[:120])
        task = asyncio.get_running_loop().create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def status(self, content: str) -> None:
        self.append(ProgressEvent(ProgressKind.STATUS, content))

    async def flush(self) -> bool:
        """Write the current snapshot. Returns False (never raises) on failure."""
        async with self._lock:
            snapshot = [e.to_dict() for e in self.events]
            try:
                await asyncio.to_thread(self._writer, self.listing_id, snapshot)
                return True
            except Exception as e:
                log.warning("[AGENT] Failed to persist agent log for %s (%d events): %s",
                            self.listing_id, len(snapshot), e)
                return False

    async def drain(self) -> None:
        """Wait for every scheduled flush to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self.events]
