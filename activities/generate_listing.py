"""
Activities: Generate Listing — run the agent over a listing's photos, then
persist the result and notify the owner.

Both steps write by listing id only, so the runtime can retry either one
from scratch.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from temporalio import activity

from agent.output import validate_listing_output
from agent.provider import ProviderRegistry
from features.listings import db as listings_db
from features.listings.models import (
    ListingStatus,
    PipelineStep,
    ProgressEvent,
    ProgressKind,
)
from features.listings.progress_log import ProgressLog
from models.schemas import GenerateListingInput, RunAgentResult
from utils.http import download_images
from utils.notifications import WebhookNotifier
from utils.storage import LocalBlobStorage

log = logging.getLogger(__name__)


async def _update(listing_id: str, **fields) -> None:
    await asyncio.to_thread(listings_db.update_listing, listing_id, **fields)


async def _settle(task: asyncio.Task | None) -> None:
    """Wait for a background step update; its failure is already logged."""
    if task is not None:
        await asyncio.gather(task, return_exceptions=True)


class ListingActivities:
    """Dependencies for the generation steps. Register bound methods with the worker."""

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        storage: LocalBlobStorage | None = None,
        notifier: WebhookNotifier | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.registry = registry or ProviderRegistry()
        self.storage = storage or LocalBlobStorage()
        self.notifier = notifier or WebhookNotifier()
        self._http_client = http_client

    @activity.defn(name="run_agent")
    async def run_agent(self, req: GenerateListingInput) -> RunAgentResult:
        listing_id = req.listing_id
        progress = ProgressLog(listing_id)
        step_task: asyncio.Task | None = None

        async def advance_to_researching() -> None:
            try:
                await _update(listing_id, pipeline_step=PipelineStep.RESEARCHING)
            except Exception as e:
                log.warning("Could not mark listing %s RESEARCHING: %s", listing_id, e)

        def on_progress(event: ProgressEvent) -> None:
            nonlocal step_task
            progress.append(event)
            if event.kind == ProgressKind.SEARCH and step_task is None:
                step_task = asyncio.get_running_loop().create_task(advance_to_researching())

        try:
            await _update(
                listing_id,
                status=ListingStatus.PROCESSING,
                pipeline_step=PipelineStep.PENDING,
                pipeline_error=None,
            )
            progress.status("Starting analysis...")

            images = await download_images(req.image_urls, client=self._http_client)
            progress.status(f"Downloaded {len(images)} image(s) for analysis")

            provider = self.registry.get()
            await _update(listing_id, pipeline_step=PipelineStep.ANALYZING)
            log.info("Running %s agent for listing %s (%d images)",
                     provider.name, listing_id, len(images))

            result = await provider.run(images, req.user_description, on_progress)

            await _settle(step_task)
            await _update(listing_id, pipeline_step=PipelineStep.GENERATING)
            progress.append(ProgressEvent(ProgressKind.COMPLETE, "Listing generated"))

            transcript_url = await self.storage.upload_transcript(listing_id, result.transcript_lines)
            await progress.drain()
            log.info("Agent finished listing %s (cost $%.4f)", listing_id, result.cost_usd)
            return RunAgentResult(
                output=result.output.to_json_dict(),
                cost_usd=result.cost_usd,
                transcript_url=transcript_url,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            log.error("Agent run failed for listing %s: %s", listing_id, message, exc_info=True)
            progress.append(ProgressEvent(ProgressKind.ERROR, message))
            await _settle(step_task)
            await progress.drain()
            transcript_url = await self.storage.upload_transcript(
                listing_id, list(getattr(e, "transcript_lines", ())),
            )
            failure = {
                "status": ListingStatus.DRAFT,
                "pipeline_step": PipelineStep.ERROR,
                "pipeline_error": message,
            }
            if transcript_url:
                failure["agent_transcript_url"] = transcript_url
            try:
                await _update(listing_id, **failure)
            except Exception as db_err:
                log.error("Could not record failure for listing %s: %s", listing_id, db_err)
            raise

    @activity.defn(name="complete_listing")
    async def complete_listing(self, listing_id: str, result: RunAgentResult) -> dict:
        output = validate_listing_output(result.output)
        await _update(
            listing_id,
            title=output.title,
            description=output.description,
            suggested_price=output.suggested_price,
            price_range_low=output.price_range_low,
            price_range_high=output.price_range_high,
            category=output.category,
            condition=output.condition,
            brand=output.brand,
            model=output.model,
            research_notes=output.research_notes,
            comparables=[c.model_dump(by_alias=True, exclude_none=True) for c in output.comparables],
            agent_transcript_url=result.transcript_url,
            status=ListingStatus.READY,
            pipeline_step=PipelineStep.COMPLETE,
            pipeline_error=None,
        )
        log.info("Listing %s ready: %s", listing_id, output.title)

        listing = await asyncio.to_thread(listings_db.get_listing, listing_id)
        if listing and listing.get("user_id"):
            await self.notifier.listing_ready(listing["user_id"], listing_id, output.title)
        else:
            log.warning("Listing %s has no owner; skipping notification", listing_id)

        return {"listing_id": listing_id, "title": output.title, "status": ListingStatus.READY.value}
