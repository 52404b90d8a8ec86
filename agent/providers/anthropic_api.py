"""
Direct-API provider — drives the agent through the Anthropic Messages API.

No sandbox: the model gets the photos inline as base64 image blocks and
researches prices with the server-side web_search tool. The loop runs
at most config.AGENT_MAX_TURNS requests.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from anthropic import AsyncAnthropic

import config
from agent import prompts
from agent.errors import AgentError, ProviderConfigError, ProviderProtocolError
from agent.output import parse_listing_output
from agent.progress import as_dict, extract_progress_events
from agent.provider import AgentProvider, ProgressSink
from features.listings.models import ProgressEvent, ProgressKind
from models.schemas import AgentImage, AgentProviderResult

log = logging.getLogger(__name__)

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search"}
TOOL_ACK = "Tool execution handled by server."


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    return (
        input_tokens / 1_000_000 * config.INPUT_COST_PER_M
        + output_tokens / 1_000_000 * config.OUTPUT_COST_PER_M
    )


def build_user_content(images: list[AgentImage], user_description: str | None) -> list[dict]:
    blocks: list[dict] = [
        {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": img.media_type,
                "data": base64.b64encode(img.data).decode("ascii"),
            },
        }
        for img in images
    ]
    blocks.append({"type": "text", "text": prompts.direct_api_user_text(len(images), user_description)})
    return blocks


def _dump(obj: Any) -> Any:
    if obj is None or isinstance(obj, (dict, list, str, int, float)):
        return obj
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_none=True)
    return dict(vars(obj))


def _final_text(blocks: list[dict]) -> str:
    return "\n".join(b.get("text") or "" for b in blocks if b.get("type") == "text")


class AnthropicApiProvider(AgentProvider):
    """Multi-turn Messages API loop with server-managed web search."""

    name = "anthropic-api"

    def __init__(self, client: Any = None, max_turns: int | None = None):
        self._client = client
        self.max_turns = max_turns or config.AGENT_MAX_TURNS

    def _get_client(self) -> Any:
        if self._client is None:
            if not config.ANTHROPIC_API_KEY:
                raise ProviderConfigError("ANTHROPIC_API_KEY environment variable is required")
            self._client = AsyncAnthropic(api_key=config.ANTHROPIC_API_KEY)
        return self._client

    async def run(
        self,
        images: list[AgentImage],
        user_description: str | None,
        on_progress: ProgressSink,
    ) -> AgentProviderResult:
        transcript: list[str] = []
        try:
            return await self._loop(images, user_description, on_progress, transcript)
        except AgentError as e:
            e.transcript_lines = list(transcript)
            raise

    async def _loop(
        self,
        images: list[AgentImage],
        user_description: str | None,
        on_progress: ProgressSink,
        transcript: list[str],
    ) -> AgentProviderResult:
        client = self._get_client()
        system_prompt = prompts.direct_api_system_prompt()
        messages: list[dict] = [
            {"role": "user", "content": build_user_content(images, user_description)},
        ]
        input_tokens = 0
        output_tokens = 0

        on_progress(ProgressEvent(
            ProgressKind.STATUS, "Analyzing images and researching prices via Anthropic API...",
        ))

        for turn in range(self.max_turns):
            current_text = ""
            async with client.messages.stream(
                model=config.ANTHROPIC_MODEL,
                max_tokens=config.ANTHROPIC_MAX_TOKENS,
                system=system_prompt,
                messages=messages,
                tools=[WEB_SEARCH_TOOL],
            ) as stream:
                async for text in stream.text_stream:
                    current_text += text
                message = await stream.get_final_message()

            usage = message.usage
            input_tokens += usage.input_tokens
            output_tokens += usage.output_tokens
            blocks = [_dump(b) for b in message.content]
            stop_reason = message.stop_reason

            transcript.append(json.dumps({
                "turn": turn,
                "role": "assistant",
                "content": blocks,
                "usage": _dump(usage),
                "stop_reason": stop_reason,
            }, default=str))

            for event in extract_progress_events(blocks):
                on_progress(event)

            log.info("Turn %d finished: stop_reason=%s, tokens in=%d out=%d",
                     turn + 1, stop_reason, usage.input_tokens, usage.output_tokens)

            if stop_reason == "end_turn":
                final_text = _final_text(blocks)
                if not final_text.strip():
                    raise ProviderProtocolError("Agent produced no text output")
                output = parse_listing_output(final_text)
                return AgentProviderResult(
                    output=output,
                    cost_usd=estimate_cost(input_tokens, output_tokens),
                    transcript_lines=transcript,
                )

            if stop_reason != "tool_use":
                # Best-effort salvage for max_tokens, pause_turn and friends
                final_text = _final_text(blocks)
                if final_text.strip():
                    try:
                        output = parse_listing_output(final_text)
                    except AgentError as e:
                        log.warning("Salvage after stop_reason=%s failed: %s", stop_reason, e)
                    else:
                        return AgentProviderResult(
                            output=output,
                            cost_usd=estimate_cost(input_tokens, output_tokens),
                            transcript_lines=transcript,
                        )
                tail = (current_text or final_text)[-500:]
                raise ProviderProtocolError(
                    f"Unexpected stop reason: {stop_reason}. Last text: {tail}"
                )

            messages.append({"role": "assistant", "content": blocks})
            acks = [
                {"type": "tool_result", "tool_use_id": b.get("id"), "content": TOOL_ACK}
                for b in blocks
                if b.get("type") == "tool_use"
            ]
            if acks:
                messages.append({"role": "user", "content": acks})

            if turn + 1 < self.max_turns:
                on_progress(ProgressEvent(
                    ProgressKind.STATUS, f"Continuing research (turn {turn + 2})...",
                ))

        raise ProviderProtocolError(f"Agent exceeded maximum turns ({self.max_turns})")
