"""
Newline-delimited JSON event stream from the agent CLI.

LineBuffer turns arbitrary stdout chunks into complete lines, keeping the
partial trailing line as state. parse_stream_event is the fallible parse
stage: anything that is not a JSON object comes back as None.
"""

from __future__ import annotations

import json


class LineBuffer:
    """Accumulates text chunks and yields complete lines."""

    def __init__(self):
        self._pending = ""

    def feed(self, chunk: str) -> list[str]:
        data = self._pending + chunk
        *lines, self._pending = data.split("\n")
        return lines

    def flush(self) -> list[str]:
        rest, self._pending = self._pending, ""
        return [rest] if rest else []

    @property
    def pending(self) -> str:
        return self._pending


def parse_stream_event(line: str) -> dict | None:
    line = line.strip()
    if not line:
        return None
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None
