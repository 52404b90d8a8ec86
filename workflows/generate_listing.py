"""
Temporal Workflow: Generate Listing

  1. run-agent — download photos, drive the agent, record progress
  2. complete  — persist the validated listing, mark READY, notify the owner

Each step is retried by Temporal; configuration errors are not.
"""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.generate_listing import ListingActivities
    from models.schemas import GenerateListingInput, RunAgentResult

STEP_RETRY = RetryPolicy(
    maximum_attempts=2,
    non_retryable_error_types=["ProviderConfigError"],
)


@workflow.defn
class GenerateListingWorkflow:

    @workflow.run
    async def run(self, req: GenerateListingInput) -> dict:
        workflow.logger.info("Generating listing %s from %d image(s)",
                             req.listing_id, len(req.image_urls))

        result: RunAgentResult = await workflow.execute_activity_method(
            ListingActivities.run_agent,
            req,
            start_to_close_timeout=timedelta(minutes=10),
            retry_policy=STEP_RETRY,
        )

        return await workflow.execute_activity_method(
            ListingActivities.complete_listing,
            args=[req.listing_id, result],
            start_to_close_timeout=timedelta(minutes=2),
            retry_policy=STEP_RETRY,
        )
