import json
from types import SimpleNamespace

import pytest

import config
from agent.errors import OutputValidationError, ProviderConfigError, ProviderProtocolError
from agent.providers.anthropic_api import AnthropicApiProvider, estimate_cost
from features.listings.models import ProgressKind
from models.schemas import AgentImage
from conftest import valid_output

IMAGES = [AgentImage(filename="photo-1.jpg", data=b"\xff\xd8jpeg", media_type="image/jpeg")]


def _message(stop_reason, content, input_tokens=1000, output_tokens=200):
    return SimpleNamespace(
        stop_reason=stop_reason,
        content=content,
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def tool_use_turn(query="dewalt drill sold"):
    return _message("tool_use", [
        {"type": "text", "text": "Searching for comparables."},
        {"type": "tool_use", "id": "toolu_1", "name": "web_search", "input": {"query": query}},
    ])


def server_search_turn():
    return _message("tool_use", [
        {"type": "server_tool_use", "id": "srvtoolu_1", "name": "web_search", "input": {"query": "drill"}},
        {"type": "web_search_tool_result", "tool_use_id": "srvtoolu_1", "content": [
            {"type": "web_search_result", "title": "DeWalt drill", "url": "https://ebay.test/1"},
        ]},
    ])


def end_turn(text):
    return _message("end_turn", [{"type": "text", "text": text}])


class _FakeStream:
    def __init__(self, message):
        self._message = message

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    @property
    def text_stream(self):
        async def gen():
            for block in self._message.content:
                if block.get("type") == "text":
                    yield block["text"]
        return gen()

    async def get_final_message(self):
        return self._message


class FakeAnthropic:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []
        self.messages = self

    def stream(self, **kwargs):
        self.calls.append({**kwargs, "messages": list(kwargs["messages"])})
        return _FakeStream(self._responses.pop(0))


async def _run(provider):
    events = []
    result = await provider.run(IMAGES, "old drill", events.append)
    return result, events


@pytest.mark.asyncio
@pytest.mark.parametrize("n", [0, 1, 3])
async def test_n_tool_turns_then_end_turn(n):
    client = FakeAnthropic([tool_use_turn() for _ in range(n)] + [end_turn(json.dumps(valid_output()))])
    result, _ = await _run(AnthropicApiProvider(client=client, max_turns=10))

    assert len(client.calls) == n + 1
    assert result.output.title == valid_output()["title"]
    assert len(result.transcript_lines) == n + 1
    assert result.cost_usd == pytest.approx(estimate_cost(1000 * (n + 1), 200 * (n + 1)))


@pytest.mark.asyncio
async def test_turn_budget_is_never_exceeded():
    client = FakeAnthropic([tool_use_turn() for _ in range(5)])
    with pytest.raises(ProviderProtocolError, match=r"exceeded maximum turns \(3\)") as exc:
        await _run(AnthropicApiProvider(client=client, max_turns=3))
    assert len(client.calls) == 3
    assert [json.loads(line)["turn"] for line in exc.value.transcript_lines] == [0, 1, 2]


@pytest.mark.asyncio
async def test_first_request_carries_images_tools_and_instructions():
    client = FakeAnthropic([end_turn(json.dumps(valid_output()))])
    await _run(AnthropicApiProvider(client=client))

    call = client.calls[0]
    assert call["model"] == config.ANTHROPIC_MODEL
    assert call["tools"] == [{"type": "web_search_20250305", "name": "web_search"}]
    content = call["messages"][0]["content"]
    assert content[0]["type"] == "image"
    assert content[0]["source"]["media_type"] == "image/jpeg"
    assert "Seller's Description: old drill" in content[-1]["text"]


@pytest.mark.asyncio
async def test_tool_use_blocks_are_acknowledged():
    client = FakeAnthropic([tool_use_turn(), end_turn(json.dumps(valid_output()))])
    await _run(AnthropicApiProvider(client=client))

    second = client.calls[1]["messages"]
    assert [m["role"] for m in second] == ["user", "assistant", "user"]
    assert second[2]["content"] == [{
        "type": "tool_result",
        "tool_use_id": "toolu_1",
        "content": "Tool execution handled by server.",
    }]


@pytest.mark.asyncio
async def test_server_only_turn_appends_no_ack_turn():
    client = FakeAnthropic([server_search_turn(), end_turn(json.dumps(valid_output()))])
    _, events = await _run(AnthropicApiProvider(client=client))

    assert [m["role"] for m in client.calls[1]["messages"]] == ["user", "assistant"]
    contents = [e.content for e in events if e.kind == ProgressKind.SEARCH]
    assert contents == ["Searching: drill", "Found: DeWalt drill (https://ebay.test/1)"]


@pytest.mark.asyncio
async def test_progress_and_transcript():
    client = FakeAnthropic([tool_use_turn(), end_turn("```json\n" + json.dumps(valid_output()) + "\n```")])
    result, events = await _run(AnthropicApiProvider(client=client))

    kinds = [e.kind for e in events]
    assert kinds[0] == ProgressKind.STATUS
    assert ProgressKind.SEARCH in kinds
    assert any(e.content == "Continuing research (turn 2)..." for e in events)

    line = json.loads(result.transcript_lines[0])
    assert line["turn"] == 0
    assert line["role"] == "assistant"
    assert line["stop_reason"] == "tool_use"
    assert line["usage"] == {"input_tokens": 1000, "output_tokens": 200}


@pytest.mark.asyncio
async def test_empty_final_text_is_fatal():
    client = FakeAnthropic([end_turn("   ")])
    with pytest.raises(ProviderProtocolError, match="no text output"):
        await _run(AnthropicApiProvider(client=client))


@pytest.mark.asyncio
async def test_invalid_final_output_is_fatal():
    client = FakeAnthropic([end_turn(json.dumps(valid_output(condition="Mint")))])
    with pytest.raises(OutputValidationError):
        await _run(AnthropicApiProvider(client=client))


@pytest.mark.asyncio
async def test_other_stop_reason_salvages_valid_output():
    client = FakeAnthropic([_message("max_tokens", [{"type": "text", "text": json.dumps(valid_output())}])])
    result, _ = await _run(AnthropicApiProvider(client=client))
    assert result.output.brand == "DeWalt"


@pytest.mark.asyncio
async def test_other_stop_reason_without_output_fails():
    client = FakeAnthropic([_message("max_tokens", [{"type": "text", "text": "Still researching the drill"}])])
    with pytest.raises(ProviderProtocolError) as exc:
        await _run(AnthropicApiProvider(client=client))
    assert "Unexpected stop reason: max_tokens" in str(exc.value)
    assert "Still researching the drill" in str(exc.value)


@pytest.mark.asyncio
async def test_missing_api_key_fails_at_first_use(monkeypatch):
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "")
    provider = AnthropicApiProvider()
    with pytest.raises(ProviderConfigError):
        await _run(provider)


def test_cost_rates():
    assert estimate_cost(1_000_000, 1_000_000) == pytest.approx(18.0)
