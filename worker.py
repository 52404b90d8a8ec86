"""
Temporal Worker — registers the listing workflows and activities, then polls for tasks.

Usage:
    python worker.py
"""

from __future__ import annotations

import asyncio
import logging

from temporalio.client import Client
from temporalio.worker import Worker

import config
from activities.enhance_image import EnhanceActivities
from activities.generate_listing import ListingActivities
from agent.provider import ProviderRegistry
from workflows.enhance_image import EnhanceImageWorkflow
from workflows.generate_listing import GenerateListingWorkflow

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


def build_activities(registry: ProviderRegistry | None = None) -> list:
    listing = ListingActivities(registry=registry)
    enhance = EnhanceActivities(storage=listing.storage)
    return [listing.run_agent, listing.complete_listing, enhance.enhance_image]


async def main():
    log.info("Connecting to Temporal at %s", config.TEMPORAL_HOST)
    client = await Client.connect(config.TEMPORAL_HOST, namespace=config.TEMPORAL_NAMESPACE)

    log.info("Starting worker on queue: %s", config.TEMPORAL_TASK_QUEUE)
    worker = Worker(
        client,
        task_queue=config.TEMPORAL_TASK_QUEUE,
        workflows=[GenerateListingWorkflow, EnhanceImageWorkflow],
        activities=build_activities(),
    )

    log.info("Worker ready — listening for tasks")
    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
