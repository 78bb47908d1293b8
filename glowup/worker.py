"""Temporal worker for the routine workflow and its two activities.

    python -m glowup.worker

The API only routes through Temporal when USE_TEMPORAL=true; otherwise it runs
the engine in-process and this worker is not needed.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

import structlog
from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.worker import Worker

from glowup.activities.inference import build_cart_activity, run_inference_activity
from glowup.config import settings
from glowup.logging import configure_logging
from glowup.workflows.routine import RoutineWorkflow

log = structlog.get_logger("worker")

ACTIVITIES = [run_inference_activity, build_cart_activity]

WORKFLOWS = [RoutineWorkflow]


async def create_temporal_client() -> Client:
    """Connect with plain TCP, or TLS plus API key when one is configured."""
    options: dict[str, Any] = {
        "target_host": settings.temporal_address,
        "namespace": settings.temporal_namespace,
    }
    if settings.temporal_api_key:
        options["tls"] = True
        options["api_key"] = settings.temporal_api_key
    return await Client.connect(**options, data_converter=pydantic_data_converter)


async def run_worker() -> None:
    queue = settings.temporal_task_queue
    log.info("worker_connecting", address=settings.temporal_address, task_queue=queue)
    try:
        client = await create_temporal_client()
    except Exception:
        log.exception("worker_connection_failed", address=settings.temporal_address)
        raise

    worker = Worker(client, task_queue=queue, workflows=WORKFLOWS, activities=ACTIVITIES)
    log.info(
        "worker_started",
        task_queue=queue,
        catalog_backend=settings.catalog_backend,
        model_configured=bool(settings.anthropic_api_key),
    )
    await worker.run()
    log.info("worker_stopped")


def main() -> None:
    configure_logging()
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        log.info("worker_interrupted")
    except Exception:
        log.exception("worker_fatal_error")
        sys.exit(1)


if __name__ == "__main__":
    main()
