"""
FastAPI application — job triggers and progress polling for listing generation.

Endpoints:
  POST /jobs/listings             — Start listing generation for a listing
  POST /jobs/enhancements         — Start enhancement of one original image
  GET  /listings/{listing_id}/progress — Pipeline state and agent log
  GET  /health                    — Health check
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from temporalio.client import Client

import config
from activities.enhance_image import EnhanceActivities
from activities.generate_listing import ListingActivities
from features.listings import db as listings_db
from models.schemas import EnhanceImageInput, GenerateListingInput
from workflows.enhance_image import EnhanceImageWorkflow
from workflows.generate_listing import GenerateListingWorkflow

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)

temporal_client: Client | None = None
_listing_activities: ListingActivities | None = None
_enhance_activities: EnhanceActivities | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global temporal_client
    try:
        listings_db.init_db()
        log.info("Postgres database initialized")
    except Exception as e:
        log.warning("Could not connect to Postgres: %s", e)
    try:
        temporal_client = await Client.connect(config.TEMPORAL_HOST, namespace=config.TEMPORAL_NAMESPACE)
        log.info("Connected to Temporal at %s", config.TEMPORAL_HOST)
    except Exception as e:
        log.warning("Could not connect to Temporal: %s (jobs will run in-process)", e)
        temporal_client = None
    yield


app = FastAPI(
    title="Listing Agent",
    description="Photos in, marketplace listing out; agent runs orchestrated by Temporal",
    version="1.0.0",
    lifespan=lifespan,
)


class GenerateListingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    listing_id: str = Field(alias="listingId")
    image_urls: list[str] = Field(alias="imageUrls", min_length=1)
    user_description: str | None = Field(default=None, alias="userDescription")


class EnhanceImageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_id: str = Field(alias="imageId")
    listing_id: str = Field(alias="listingId")


class JobStartResponse(BaseModel):
    job_id: str
    status: str
    message: str


def get_listing_activities() -> ListingActivities:
    global _listing_activities
    if _listing_activities is None:
        _listing_activities = ListingActivities()
    return _listing_activities


def get_enhance_activities() -> EnhanceActivities:
    global _enhance_activities
    if _enhance_activities is None:
        _enhance_activities = EnhanceActivities(storage=get_listing_activities().storage)
    return _enhance_activities


# ── Health ────────────────────────────────────────────────────────────

@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": "listing-agent",
        "temporal_connected": temporal_client is not None,
        "agent_provider": config.AGENT_PROVIDER,
    }


# ── Jobs ──────────────────────────────────────────────────────────────

@app.post("/jobs/listings", response_model=JobStartResponse, status_code=202)
async def start_listing_job(req: GenerateListingRequest, background: BackgroundTasks):
    """Start the generation workflow for a listing."""
    job_input = GenerateListingInput(
        listing_id=req.listing_id,
        image_urls=req.image_urls,
        user_description=req.user_description,
    )
    job_id = f"generate-listing-{req.listing_id}-{uuid.uuid4().hex[:8]}"

    if temporal_client:
        await temporal_client.start_workflow(
            GenerateListingWorkflow.run,
            job_input,
            id=job_id,
            task_queue=config.TEMPORAL_TASK_QUEUE,
        )
        return JobStartResponse(job_id=job_id, status="started",
                                message=f"Workflow started via Temporal. Workflow ID: {job_id}")

    background.add_task(_generate_inprocess, job_input)
    return JobStartResponse(job_id=job_id, status="accepted",
                            message="Running in-process (no Temporal)")


@app.post("/jobs/enhancements", response_model=JobStartResponse, status_code=202)
async def start_enhancement_job(req: EnhanceImageRequest, background: BackgroundTasks):
    """Start enhancement of one original image."""
    job_id = f"enhance-image-{req.image_id}-{uuid.uuid4().hex[:8]}"
    job_input = EnhanceImageInput(image_id=req.image_id, listing_id=req.listing_id, request_id=job_id)

    if temporal_client:
        await temporal_client.start_workflow(
            EnhanceImageWorkflow.run,
            job_input,
            id=job_id,
            task_queue=config.TEMPORAL_TASK_QUEUE,
        )
        return JobStartResponse(job_id=job_id, status="started",
                                message=f"Workflow started via Temporal. Workflow ID: {job_id}")

    background.add_task(_enhance_inprocess, job_input)
    return JobStartResponse(job_id=job_id, status="accepted",
                            message="Running in-process (no Temporal)")


# ── Progress ──────────────────────────────────────────────────────────

@app.get("/listings/{listing_id}/progress")
async def get_listing_progress(listing_id: str):
    """Current pipeline step, error and agent log for a listing."""
    try:
        row = listings_db.get_progress(listing_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Database error: {e}")
    if not row:
        raise HTTPException(status_code=404, detail=f"Listing not found: {listing_id}")
    return _serialize(row)


def _serialize(obj: Any) -> Any:
    """Make a dict JSON-serializable (handle datetimes)."""
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_serialize(v) for v in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return obj


# ── In-process jobs (fallback when Temporal is not available) ─────────

async def _generate_inprocess(job_input: GenerateListingInput) -> None:
    acts = get_listing_activities()
    try:
        result = await acts.run_agent(job_input)
        await acts.complete_listing(job_input.listing_id, result)
    except Exception as e:
        log.error("In-process generation failed for %s: %s", job_input.listing_id, e)


async def _enhance_inprocess(job_input: EnhanceImageInput) -> None:
    try:
        result = await get_enhance_activities().enhance_image(job_input)
        log.info("Enhanced image %s → %s (%d variants)",
                 job_input.image_id, result.image_id, result.variant_count)
    except Exception as e:
        log.error("In-process enhancement failed for %s: %s", job_input.image_id, e)
