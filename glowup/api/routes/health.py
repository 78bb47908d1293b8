"""Health check endpoint with catalog, model and Temporal probes.

Each probe has a short timeout. A failing dependency is reported but never
changes the overall status: the endpoint always returns 200.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter

from glowup.activities.inference import get_catalog, is_model_available
from glowup.config import settings

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

_CHECK_TIMEOUT = 3.0  # seconds per probe


async def _check_catalog() -> str:
    try:
        catalog = await asyncio.wait_for(get_catalog(), timeout=_CHECK_TIMEOUT)
        await asyncio.wait_for(catalog.ping(), timeout=_CHECK_TIMEOUT)
        return "connected"
    except Exception as exc:
        logger.debug("health_catalog_failed", error=str(exc))
        return "disconnected"


async def _check_temporal() -> str:
    if not settings.use_temporal:
        return "disabled"
    from glowup.worker import create_temporal_client

    try:
        client = await asyncio.wait_for(create_temporal_client(), timeout=_CHECK_TIMEOUT)
        await client.service_client.check_health()
        return "connected"
    except Exception as exc:
        logger.debug("health_temporal_failed", error=str(exc))
        return "disconnected"


@router.get("/health")
async def health_check() -> dict:
    """Always 200; probes run in parallel."""
    catalog, temporal = await asyncio.gather(_check_catalog(), _check_temporal())
    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": settings.environment,
        "catalog": catalog,
        "catalog_backend": settings.catalog_backend,
        "model": "configured" if is_model_available() else "not_configured",
        "temporal": temporal,
    }
