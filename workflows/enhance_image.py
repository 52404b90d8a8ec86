"""
Temporal Workflow: Enhance Image — a single enhance-and-upload step.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.enhance_image import EnhanceActivities
    from models.schemas import EnhanceImageInput, EnhanceImageResult


@workflow.defn
class EnhanceImageWorkflow:

    @workflow.run
    async def run(self, req: EnhanceImageInput) -> EnhanceImageResult:
        if not req.request_id:
            req = replace(req, request_id=workflow.info().workflow_id)

        return await workflow.execute_activity_method(
            EnhanceActivities.enhance_image,
            req,
            start_to_close_timeout=timedelta(minutes=5),
            retry_policy=RetryPolicy(
                maximum_attempts=2,
                non_retryable_error_types=["EnhancementError", "ProviderConfigError"],
            ),
        )
