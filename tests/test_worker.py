"""Tests for the Temporal worker and RoutineWorkflow wiring."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from temporalio import activity
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.testing import WorkflowEnvironment
from temporalio.worker import Worker

from glowup.activities.inference import build_cart_activity, run_inference_activity
from glowup.models.contracts import Cart, InferenceResult, Profile, Routine, RoutineStep
from glowup.worker import ACTIVITIES, WORKFLOWS, create_temporal_client, run_worker
from glowup.workflows.routine import RoutineWorkflow
from tests.conftest import match


class TestRegistration:
    def test_activities_registered(self) -> None:
        assert ACTIVITIES == [run_inference_activity, build_cart_activity]

    def test_workflow_registered(self) -> None:
        assert WORKFLOWS == [RoutineWorkflow]


class TestCreateTemporalClient:
    @pytest.mark.asyncio
    @patch("glowup.worker.Client")
    async def test_local_connection_no_tls(self, mock_client_cls: MagicMock) -> None:
        mock_client_cls.connect = AsyncMock(return_value=MagicMock())

        with patch("glowup.worker.settings") as mock_settings:
            mock_settings.temporal_address = "localhost:7233"
            mock_settings.temporal_namespace = "default"
            mock_settings.temporal_api_key = None

            await create_temporal_client()

        mock_client_cls.connect.assert_called_once_with(
            target_host="localhost:7233",
            namespace="default",
            data_converter=pydantic_data_converter,
        )

    @pytest.mark.asyncio
    @patch("glowup.worker.Client")
    async def test_cloud_connection_with_tls(self, mock_client_cls: MagicMock) -> None:
        mock_client_cls.connect = AsyncMock(return_value=MagicMock())

        with patch("glowup.worker.settings") as mock_settings:
            mock_settings.temporal_address = "glowup.tmprl.cloud:7233"
            mock_settings.temporal_namespace = "glowup-prod"
            mock_settings.temporal_api_key = "secret-key"

            await create_temporal_client()

        mock_client_cls.connect.assert_called_once_with(
            target_host="glowup.tmprl.cloud:7233",
            namespace="glowup-prod",
            tls=True,
            api_key="secret-key",
            data_converter=pydantic_data_converter,
        )


class TestRunWorker:
    @pytest.mark.asyncio
    @patch("glowup.worker.Worker")
    @patch("glowup.worker.create_temporal_client")
    async def test_worker_created_with_task_queue(
        self, mock_create_client: AsyncMock, mock_worker_cls: MagicMock
    ) -> None:
        mock_client = MagicMock()
        mock_create_client.return_value = mock_client
        mock_worker = MagicMock()
        mock_worker.run = AsyncMock()
        mock_worker_cls.return_value = mock_worker

        with patch("glowup.worker.settings") as mock_settings:
            mock_settings.temporal_task_queue = "glowup-tasks"
            await run_worker()

        mock_worker_cls.assert_called_once_with(
            mock_client,
            task_queue="glowup-tasks",
            workflows=WORKFLOWS,
            activities=ACTIVITIES,
        )
        mock_worker.run.assert_awaited_once()

    @pytest.mark.asyncio
    @patch("glowup.worker.create_temporal_client")
    async def test_connection_failure_propagates(self, mock_create_client: AsyncMock) -> None:
        mock_create_client.side_effect = RuntimeError("no server")
        with pytest.raises(RuntimeError):
            await run_worker()


# === Workflow (time-skipping test server) ===

_PRODUCT = match("c1", "Gel Wash", "cleanser", 12.0)


@activity.defn(name="run_inference_activity")
async def _fake_inference(profile: Profile) -> InferenceResult:
    step = RoutineStep(step=1, name="Cleanser", product=_PRODUCT)
    return InferenceResult(
        products=[_PRODUCT],
        routine=Routine(morning=[step], evening=[step]),
        summary=f"A {profile.skin_type} skin routine.",
    )


@activity.defn(name="build_cart_activity")
async def _fake_cart(routine: Routine) -> Cart:
    from glowup.activities.cart import build_cart

    return build_cart(routine)


class TestRoutineWorkflow:
    @pytest.mark.asyncio
    async def test_runs_inference_then_cart(self) -> None:
        async with await WorkflowEnvironment.start_time_skipping(
            data_converter=pydantic_data_converter
        ) as env:
            task_queue = f"test-{uuid.uuid4()}"
            async with Worker(
                env.client,
                task_queue=task_queue,
                workflows=[RoutineWorkflow],
                activities=[_fake_inference, _fake_cart],
            ):
                result = await env.client.execute_workflow(
                    RoutineWorkflow.run,
                    Profile(skin_type="oily"),
                    id=f"routine-{uuid.uuid4()}",
                    task_queue=task_queue,
                )

        assert result.inference.summary == "A oily skin routine."
        assert len(result.cart.items) == 1
        assert result.cart.total_price == pytest.approx(12.0)

    @pytest.mark.asyncio
    async def test_non_retryable_inference_failure_fails_workflow(self) -> None:
        from temporalio.client import WorkflowFailureError
        from temporalio.exceptions import ApplicationError

        @activity.defn(name="run_inference_activity")
        async def _misconfigured(profile: Profile) -> InferenceResult:
            raise ApplicationError("SUPABASE_URL missing", non_retryable=True)

        async with await WorkflowEnvironment.start_time_skipping(
            data_converter=pydantic_data_converter
        ) as env:
            task_queue = f"test-{uuid.uuid4()}"
            async with Worker(
                env.client,
                task_queue=task_queue,
                workflows=[RoutineWorkflow],
                activities=[_misconfigured, _fake_cart],
            ):
                with pytest.raises(WorkflowFailureError):
                    await env.client.execute_workflow(
                        RoutineWorkflow.run,
                        Profile(),
                        id=f"routine-{uuid.uuid4()}",
                        task_queue=task_queue,
                    )
