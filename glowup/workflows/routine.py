"""RoutineWorkflow: one run per onboarding submission.

Runs the inference activity under the caller-level timeout, then builds the
cart from the returned routine. Stateless between runs.
"""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from glowup.activities.inference import build_cart_activity, run_inference_activity
    from glowup.config import settings
    from glowup.models.contracts import Profile, RoutineWorkflowResult

_INFERENCE_RETRY = RetryPolicy(maximum_attempts=2)
_CART_RETRY = RetryPolicy(maximum_attempts=3)


@workflow.defn
class RoutineWorkflow:
    @workflow.run
    async def run(self, profile: Profile) -> RoutineWorkflowResult:
        inference = await workflow.execute_activity(
            run_inference_activity,
            profile,
            start_to_close_timeout=timedelta(seconds=settings.inference_timeout_seconds),
            retry_policy=_INFERENCE_RETRY,
        )
        cart = await workflow.execute_activity(
            build_cart_activity,
            inference.routine,
            start_to_close_timeout=timedelta(seconds=30),
            retry_policy=_CART_RETRY,
        )
        workflow.logger.info(
            "routine workflow complete: %d products, %d cart items",
            len(inference.products),
            len(cart.items),
        )
        return RoutineWorkflowResult(inference=inference, cart=cart)
