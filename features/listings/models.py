"""
Data models for the listings feature.

Listing lifecycle enums, image types, and the ProgressEvent that makes
up a listing's agent log.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class ListingStatus(str, Enum):
    DRAFT = "DRAFT"
    PROCESSING = "PROCESSING"
    READY = "READY"
    LISTED = "LISTED"
    SOLD = "SOLD"
    ARCHIVED = "ARCHIVED"


class PipelineStep(str, Enum):
    PENDING = "PENDING"
    ANALYZING = "ANALYZING"
    RESEARCHING = "RESEARCHING"
    GENERATING = "GENERATING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class ImageType(str, Enum):
    ORIGINAL = "ORIGINAL"
    ENHANCED = "ENHANCED"


class ProgressKind(str, Enum):
    STATUS = "status"
    SEARCH = "search"
    FETCH = "fetch"
    TEXT = "text"
    WRITE = "write"
    COMPLETE = "complete"
    ERROR = "error"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ProgressEvent:
    """One entry in a listing's agent log."""
    kind: ProgressKind
    content: str
    timestamp: int = field(default_factory=_now_ms)  # epoch ms

    def to_dict(self) -> dict:
        return {"ts": self.timestamp, "type": self.kind.value, "content": self.content}
