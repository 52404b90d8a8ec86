import httpx
import pytest
from temporalio.testing import ActivityEnvironment

from activities.generate_listing import ListingActivities
from agent.errors import ImageDownloadError, ProviderProtocolError
from agent.output import validate_listing_output
from agent.provider import AgentProvider, ProviderRegistry
from features.listings.models import ProgressEvent, ProgressKind
from models.schemas import AgentProviderResult, GenerateListingInput
from utils.storage import LocalBlobStorage
from conftest import valid_output


class ScriptedProvider(AgentProvider):
    name = "scripted"

    def __init__(self, output=None, error=None, events=()):
        self.output = output
        self.error = error
        self.events = list(events)
        self.received = None

    async def run(self, images, user_description, on_progress):
        self.received = (images, user_description)
        for event in self.events:
            on_progress(event)
        if self.error:
            raise self.error
        return AgentProviderResult(
            output=validate_listing_output(self.output),
            cost_usd=0.12,
            transcript_lines=['{"turn": 0}', '{"turn": 1}'],
        )


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    async def listing_ready(self, user_id, listing_id, title):
        self.calls.append({"userId": user_id, "listingId": listing_id, "title": title})
        return True


def image_client(status=200, body=b"\xff\xd8\xff-jpeg-bytes"):
    def handler(request):
        return httpx.Response(status, content=body, headers={"content-type": "image/jpeg"})
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_activities(provider, tmp_path, client=None, notifier=None):
    return ListingActivities(
        registry=ProviderRegistry(selector="scripted", factories={"scripted": lambda: provider}),
        storage=LocalBlobStorage(root=tmp_path, base_url="https://blobs.test"),
        notifier=notifier or RecordingNotifier(),
        http_client=client or image_client(),
    )


@pytest.mark.asyncio
async def test_drill_listing_end_to_end(fake_db, tmp_path):
    fake_db.add_listing("lst-1", user_id="user-7")
    provider = ScriptedProvider(
        output=valid_output(title="DeWalt Drill – Good", suggestedPrice=60),
        events=[ProgressEvent(ProgressKind.SEARCH, "Searching: dewalt drill")],
    )
    notifier = RecordingNotifier()
    acts = make_activities(provider, tmp_path, notifier=notifier)
    env = ActivityEnvironment()

    req = GenerateListingInput(listing_id="lst-1", image_urls=["https://x/a.jpg"], user_description="old drill")
    result = await env.run(acts.run_agent, req)
    await env.run(acts.complete_listing, "lst-1", result)

    listing = fake_db.listings["lst-1"]
    assert listing["status"] == "READY"
    assert listing["pipeline_step"] == "COMPLETE"
    assert listing["pipeline_error"] is None
    assert listing["title"] == "DeWalt Drill – Good"
    assert listing["suggested_price"] == 60
    assert listing["comparables"][0]["soldDate"] == "2024-05-01"
    assert listing["agent_transcript_url"] == "https://blobs.test/transcripts/lst-1.jsonl"
    assert notifier.calls == [{"userId": "user-7", "listingId": "lst-1", "title": "DeWalt Drill – Good"}]

    images, description = provider.received
    assert description == "old drill"
    assert images[0].filename == "photo-1.jpg"
    assert images[0].media_type == "image/jpeg"
    assert (tmp_path / "transcripts" / "lst-1.jsonl").read_text() == '{"turn": 0}\n{"turn": 1}'


@pytest.mark.asyncio
async def test_pipeline_steps_advance_in_order(fake_db, tmp_path):
    fake_db.add_listing("lst-1")
    provider = ScriptedProvider(
        output=valid_output(),
        events=[ProgressEvent(ProgressKind.TEXT, "looking"),
                ProgressEvent(ProgressKind.SEARCH, "Searching: a"),
                ProgressEvent(ProgressKind.SEARCH, "Searching: b")],
    )
    acts = make_activities(provider, tmp_path)
    await ActivityEnvironment().run(
        acts.run_agent, GenerateListingInput(listing_id="lst-1", image_urls=["https://x/a.jpg"]),
    )

    assert fake_db.steps("lst-1") == ["PENDING", "ANALYZING", "RESEARCHING", "GENERATING"]
    log_entries = fake_db.listings["lst-1"]["agent_log"]
    assert log_entries[0]["content"] == "Starting analysis..."
    assert log_entries[1]["content"] == "Downloaded 1 image(s) for analysis"
    assert log_entries[-1] == {**log_entries[-1], "type": "complete", "content": "Listing generated"}


@pytest.mark.asyncio
async def test_provider_failure_leaves_listing_in_error(fake_db, tmp_path):
    fake_db.add_listing("lst-1", status="READY", pipeline_error="old error")
    provider = ScriptedProvider(error=ProviderProtocolError("Agent exceeded maximum turns (10)"))
    acts = make_activities(provider, tmp_path)

    with pytest.raises(ProviderProtocolError):
        await ActivityEnvironment().run(
            acts.run_agent, GenerateListingInput(listing_id="lst-1", image_urls=["https://x/a.jpg"]),
        )

    listing = fake_db.listings["lst-1"]
    assert listing["status"] == "DRAFT"
    assert listing["pipeline_step"] == "ERROR"
    assert listing["pipeline_error"] == "Agent exceeded maximum turns (10)"
    assert listing["title"] is None
    assert listing["agent_log"][-1]["type"] == "error"
    assert listing["agent_transcript_url"] is None


@pytest.mark.asyncio
async def test_failed_run_keeps_partial_transcript(fake_db, tmp_path):
    fake_db.add_listing("lst-1")
    error = ProviderProtocolError("Claude CLI failed: exit code 1")
    error.transcript_lines = ['{"type": "system"}', '{"type": "assistant"}']
    acts = make_activities(ScriptedProvider(error=error), tmp_path)

    with pytest.raises(ProviderProtocolError):
        await ActivityEnvironment().run(
            acts.run_agent, GenerateListingInput(listing_id="lst-1", image_urls=["https://x/a.jpg"]),
        )

    listing = fake_db.listings["lst-1"]
    assert listing["pipeline_step"] == "ERROR"
    assert listing["pipeline_error"] == "Claude CLI failed: exit code 1"
    assert listing["agent_transcript_url"] == "https://blobs.test/transcripts/lst-1.jsonl"
    assert (tmp_path / "transcripts" / "lst-1.jsonl").read_text() == \
        '{"type": "system"}\n{"type": "assistant"}'


@pytest.mark.asyncio
@pytest.mark.parametrize("status, body, message", [
    (404, b"missing", "HTTP 404"),
    (200, b"", "empty"),
])
async def test_bad_image_download_fails_step(fake_db, tmp_path, status, body, message):
    fake_db.add_listing("lst-1")
    provider = ScriptedProvider(output=valid_output())
    acts = make_activities(provider, tmp_path, client=image_client(status, body))

    with pytest.raises(ImageDownloadError, match=message):
        await ActivityEnvironment().run(
            acts.run_agent, GenerateListingInput(listing_id="lst-1", image_urls=["https://x/a.jpg"]),
        )
    assert provider.received is None
    assert fake_db.listings["lst-1"]["pipeline_step"] == "ERROR"


@pytest.mark.asyncio
async def test_agent_log_write_failures_do_not_abort(fake_db, tmp_path):
    fake_db.add_listing("lst-1")
    fake_db.fail_agent_log_writes = True
    acts = make_activities(ScriptedProvider(output=valid_output()), tmp_path)

    result = await ActivityEnvironment().run(
        acts.run_agent, GenerateListingInput(listing_id="lst-1", image_urls=["https://x/a.jpg"]),
    )
    assert result.output["brand"] == "DeWalt"
    assert fake_db.listings["lst-1"]["pipeline_step"] == "GENERATING"


@pytest.mark.asyncio
async def test_rerunning_complete_is_safe(fake_db, tmp_path):
    fake_db.add_listing("lst-1")
    notifier = RecordingNotifier()
    acts = make_activities(ScriptedProvider(output=valid_output()), tmp_path, notifier=notifier)
    env = ActivityEnvironment()

    result = await env.run(
        acts.run_agent, GenerateListingInput(listing_id="lst-1", image_urls=["https://x/a.jpg"]),
    )
    await env.run(acts.complete_listing, "lst-1", result)
    first = dict(fake_db.listings["lst-1"])
    await env.run(acts.complete_listing, "lst-1", result)

    assert {k: v for k, v in fake_db.listings["lst-1"].items() if k != "agent_log"} == \
        {k: v for k, v in first.items() if k != "agent_log"}
