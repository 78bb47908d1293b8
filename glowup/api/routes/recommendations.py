"""Recommendation endpoints: inference, cart, cart fit, product integration
and model status.

In-process mode (use_temporal=False): the engine runs inside the API process.
Temporal mode (use_temporal=True): inference runs as a RoutineWorkflow on the
worker and the API waits for its result.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from glowup.activities.cart import analyze_cart, build_cart
from glowup.activities.inference import get_catalog, is_model_available, run_inference
from glowup.activities.integration import integrate_product
from glowup.config import settings
from glowup.models.contracts import (
    Cart,
    CartAnalysis,
    CartAnalysisRequest,
    ErrorResponse,
    InferenceResult,
    IntegrationRequest,
    IntegrationResult,
    Profile,
    Routine,
)

logger = structlog.get_logger()

router = APIRouter(tags=["recommendations"])


def _error(status: int, code: str, message: str, *, retryable: bool = False) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=code, message=message, retryable=retryable).model_dump(),
    )


async def _run_via_temporal(request: Request, profile: Profile) -> InferenceResult | JSONResponse:
    from temporalio.client import WorkflowFailureError

    from glowup.workflows.routine import RoutineWorkflow

    client = request.app.state.temporal_client
    workflow_id = f"routine-{uuid.uuid4()}"
    try:
        result = await client.execute_workflow(
            RoutineWorkflow.run,
            profile,
            id=workflow_id,
            task_queue=settings.temporal_task_queue,
        )
    except WorkflowFailureError as exc:
        logger.error("routine_workflow_failed", workflow_id=workflow_id, error=str(exc.cause))
        return _error(
            503,
            "inference_failed",
            "Routine generation failed, please try again",
            retryable=True,
        )
    return result.inference


@router.post(
    "/inference",
    response_model=InferenceResult,
    responses={503: {"model": ErrorResponse}},
)
async def create_inference(profile: Profile, request: Request) -> InferenceResult | JSONResponse:
    """Recommend products and a morning/evening/weekly routine for a profile."""
    logger.info(
        "inference_requested",
        skin_type=profile.skin_type,
        budget=profile.budget,
        use_temporal=settings.use_temporal,
    )
    if settings.use_temporal:
        return await _run_via_temporal(request, profile)
    return await run_inference(profile)


@router.post("/cart", response_model=Cart)
async def create_cart(routine: Routine) -> Cart:
    """Deduplicated shopping cart for a routine."""
    return build_cart(routine)


@router.post("/cart/analyze", response_model=CartAnalysis)
async def analyze_cart_fit(body: CartAnalysisRequest) -> CartAnalysis:
    """Label each product as a great fit, good match, neutral or caution."""
    catalog = await get_catalog()
    return await analyze_cart(body.profile, body.product_ids, catalog, body.routine)


@router.post(
    "/routine/integrate-product",
    response_model=IntegrationResult,
    responses={404: {"model": ErrorResponse}},
)
async def integrate_purchased_product(body: IntegrationRequest) -> IntegrationResult | JSONResponse:
    """Place a purchased product into the routine it was bought for."""
    catalog = await get_catalog()
    record = await catalog.get(body.product_id)
    if record is None:
        return _error(404, "product_not_found", f"No product with id {body.product_id!r}")
    return integrate_product(body.routine, record)


@router.get("/model-status")
async def model_status() -> dict:
    available = is_model_available()
    return {
        "available": available,
        "provider": "anthropic",
        "model": settings.routine_model,
        "mode": "model" if available else "rule_based",
    }
