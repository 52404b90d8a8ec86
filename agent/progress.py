"""
Progress event extraction — turns assistant content blocks into ProgressEvents.

Shared by both providers: the sandbox CLI emits blocks as JSON dicts,
the Messages API as SDK objects. Both are normalised to dicts first, then
parsed into a closed set of block variants.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Union

import config
from features.listings.models import ProgressEvent, ProgressKind


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class WebSearchCall:
    query: str


@dataclass(frozen=True)
class WebFetchCall:
    url: str


@dataclass(frozen=True)
class WriteFileCall:
    path: str


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str


ContentBlock = Union[TextBlock, WebSearchCall, WebFetchCall, WriteFileCall, SearchResult]

# CLI tool names and Messages API server tool names
_SEARCH_TOOLS = {"WebSearch", "web_search"}
_FETCH_TOOLS = {"WebFetch", "web_fetch"}
_WRITE_TOOLS = {"Write"}
_TOOL_USE_TYPES = {"tool_use", "server_tool_use"}


def as_dict(block: Any) -> dict:
    if isinstance(block, dict):
        return block
    if hasattr(block, "model_dump"):
        return block.model_dump()
    return dict(vars(block))


def parse_tool_call(name: str, tool_input: dict | None) -> ContentBlock | None:
    """Map a tool invocation to its variant. Unknown tools map to None."""
    tool_input = tool_input or {}
    if name in _SEARCH_TOOLS:
        return WebSearchCall(query=str(tool_input.get("query", "")))
    if name in _FETCH_TOOLS:
        return WebFetchCall(url=str(tool_input.get("url", "")))
    if name in _WRITE_TOOLS:
        return WriteFileCall(path=str(tool_input.get("file_path", "")))
    return None


def parse_blocks(blocks: Iterable[Any]) -> list[ContentBlock]:
    parsed: list[ContentBlock] = []
    for raw in blocks:
        block = as_dict(raw)
        btype = block.get("type")
        if btype == "text":
            parsed.append(TextBlock(text=block.get("text") or ""))
        elif btype in _TOOL_USE_TYPES:
            call = parse_tool_call(block.get("name", ""), block.get("input"))
            if call is not None:
                parsed.append(call)
        elif btype == "web_search_tool_result":
            results = block.get("content")
            if isinstance(results, list):
                for r in results:
                    r = as_dict(r)
                    if r.get("type") == "web_search_result":
                        parsed.append(SearchResult(title=r.get("title", ""), url=r.get("url", "")))
    return parsed


def _label(prefix: str, value: str) -> str:
    return f"{prefix}: {value}" if value else prefix


def to_progress_event(block: ContentBlock) -> ProgressEvent | None:
    if isinstance(block, TextBlock):
        if not block.text:
            return None
        return ProgressEvent(ProgressKind.TEXT, block.text[:config.PROGRESS_TEXT_LIMIT])
    if isinstance(block, WebSearchCall):
        return ProgressEvent(ProgressKind.SEARCH, _label("Searching", block.query))
    if isinstance(block, WebFetchCall):
        return ProgressEvent(ProgressKind.FETCH, _label("Fetching", block.url))
    if isinstance(block, WriteFileCall):
        return ProgressEvent(ProgressKind.WRITE, "Writing listing output")
    if isinstance(block, SearchResult):
        return ProgressEvent(ProgressKind.SEARCH, f"Found: {block.title} ({block.url})")
    return None


def extract_progress_events(blocks: Iterable[Any]) -> list[ProgressEvent]:
    """Produce zero or more ProgressEvents for one assistant turn."""
    events = []
    for block in parse_blocks(blocks):
        event = to_progress_event(block)
        if event is not None:
            events.append(event)
    return events
