"""Tests for the FastAPI surface: health, inference, cart, model status."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from glowup.errors import CatalogConfigError, CatalogUnavailableError
from glowup.main import app
from glowup.models.contracts import (
    Cart,
    CartAnalysis,
    ErrorResponse,
    InferenceResult,
    IntegrationResult,
    Routine,
    RoutineStep,
    RoutineWorkflowResult,
)
from tests.conftest import match

_RESULT = InferenceResult(
    products=[match("c1", "Gel Wash", "cleanser", 12.0)],
    routine=Routine(
        morning=[RoutineStep(step=1, name="Cleanser", product=match("c1", "Gel Wash", "cleanser", 12.0))]
    ),
    summary="An oily skin routine.",
    personalized_tips=["Patch test"],
)


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestHealth:
    @pytest.mark.asyncio
    async def test_reports_catalog_connected(self, client, catalog):
        with patch("glowup.api.routes.health.get_catalog", new=AsyncMock(return_value=catalog)):
            resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["catalog"] == "connected"
        assert body["model"] in {"configured", "not_configured"}

    @pytest.mark.asyncio
    async def test_always_200_when_catalog_broken(self, client):
        with patch(
            "glowup.api.routes.health.get_catalog",
            new=AsyncMock(side_effect=CatalogConfigError("SUPABASE_URL missing")),
        ):
            resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["catalog"] == "disconnected"

    @pytest.mark.asyncio
    async def test_temporal_disabled_by_default(self, client, catalog):
        with (
            patch("glowup.api.routes.health.get_catalog", new=AsyncMock(return_value=catalog)),
            patch("glowup.api.routes.health.settings") as mock_settings,
        ):
            mock_settings.use_temporal = False
            mock_settings.environment = "test"
            mock_settings.catalog_backend = "memory"
            resp = await client.get("/health")
        assert resp.json()["temporal"] == "disabled"


class TestInference:
    @pytest.mark.asyncio
    async def test_returns_inference_result(self, client):
        with patch(
            "glowup.api.routes.recommendations.run_inference",
            new=AsyncMock(return_value=_RESULT),
        ) as mock_run:
            resp = await client.post(
                "/api/v1/inference",
                json={"skin_type": "Oily", "budget": "low", "skin_concerns": ["acne"]},
            )
        assert resp.status_code == 200
        body = InferenceResult.model_validate(resp.json())
        assert body.routine.morning[0].product.id == "c1"
        profile = mock_run.await_args.args[0]
        assert profile.skin_type == "oily"

    @pytest.mark.asyncio
    async def test_catalog_outage_returns_503(self, client):
        with patch(
            "glowup.api.routes.recommendations.run_inference",
            new=AsyncMock(side_effect=CatalogUnavailableError("down")),
        ):
            resp = await client.post("/api/v1/inference", json={"skin_type": "dry"})
        assert resp.status_code == 503
        err = ErrorResponse.model_validate(resp.json())
        assert err.error == "catalog_unavailable"
        assert err.retryable is True

    @pytest.mark.asyncio
    async def test_invalid_budget_returns_422(self, client):
        resp = await client.post("/api/v1/inference", json={"budget": "unlimited"})
        assert resp.status_code == 422
        err = ErrorResponse.model_validate(resp.json())
        assert err.error == "validation_error"
        assert "budget" in err.message

    @pytest.mark.asyncio
    async def test_temporal_mode_runs_workflow(self, client):
        temporal = MagicMock()
        temporal.execute_workflow = AsyncMock(
            return_value=RoutineWorkflowResult(inference=_RESULT, cart=Cart())
        )
        app.state.temporal_client = temporal
        try:
            with patch("glowup.api.routes.recommendations.settings") as mock_settings:
                mock_settings.use_temporal = True
                mock_settings.temporal_task_queue = "glowup-tasks"
                resp = await client.post("/api/v1/inference", json={"skin_type": "oily"})
        finally:
            app.state.temporal_client = None

        assert resp.status_code == 200
        assert resp.json()["summary"] == "An oily skin routine."
        kwargs = temporal.execute_workflow.await_args.kwargs
        assert kwargs["task_queue"] == "glowup-tasks"
        assert kwargs["id"].startswith("routine-")


class TestCart:
    @pytest.mark.asyncio
    async def test_dedupes_routine_products(self, client):
        routine = Routine(
            morning=[RoutineStep(step=1, name="Cleanser", product=match("c1", "Gel Wash", "cleanser", 12.0))],
            evening=[RoutineStep(step=1, name="Cleanser", product=match("c1", "Gel Wash", "cleanser", 12.0))],
        )
        resp = await client.post("/api/v1/cart", json=routine.model_dump(mode="json"))
        assert resp.status_code == 200
        cart = Cart.model_validate(resp.json())
        assert len(cart.items) == 1
        assert cart.total_price == pytest.approx(12.0)


class TestModelStatus:
    @pytest.mark.asyncio
    async def test_reports_rule_based_without_key(self, client):
        with patch("glowup.api.routes.recommendations.is_model_available", return_value=False):
            resp = await client.get("/api/v1/model-status")
        body = resp.json()
        assert body["available"] is False
        assert body["mode"] == "rule_based"
        assert body["provider"] == "anthropic"


class TestRequestId:
    @pytest.mark.asyncio
    async def test_echoes_request_id(self, client):
        resp = await client.get("/api/v1/model-status", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_generates_request_id(self, client):
        resp = await client.get("/api/v1/model-status")
        assert len(resp.headers["X-Request-ID"]) == 36


class TestCartAnalyze:
    @pytest.mark.asyncio
    async def test_labels_each_product(self, client, catalog):
        with patch("glowup.api.routes.recommendations.get_catalog", new=AsyncMock(return_value=catalog)):
            resp = await client.post(
                "/api/v1/cart/analyze",
                json={
                    "profile": {"skin_type": "oily", "skin_concerns": ["acne"]},
                    "product_ids": ["c-oily-1", "c-dry-1"],
                },
            )
        assert resp.status_code == 200
        analysis = CartAnalysis.model_validate(resp.json())
        assert [(f.product_id, f.label) for f in analysis.items] == [
            ("c-oily-1", "Great fit"),
            ("c-dry-1", "Neutral"),
        ]

    @pytest.mark.asyncio
    async def test_catalog_outage_returns_503(self, client):
        broken = MagicMock()
        broken.get_many = AsyncMock(side_effect=CatalogUnavailableError("down"))
        with patch("glowup.api.routes.recommendations.get_catalog", new=AsyncMock(return_value=broken)):
            resp = await client.post(
                "/api/v1/cart/analyze",
                json={"profile": {}, "product_ids": ["c-oily-1"]},
            )
        assert resp.status_code == 503


class TestIntegrateProduct:
    @pytest.mark.asyncio
    async def test_places_product(self, client, catalog):
        routine = Routine(
            morning=[RoutineStep(step=1, name="Cleanser", product=match("c1", "Gel Wash", "cleanser"))]
        )
        with patch("glowup.api.routes.recommendations.get_catalog", new=AsyncMock(return_value=catalog)):
            resp = await client.post(
                "/api/v1/routine/integrate-product",
                json={"routine": routine.model_dump(mode="json"), "product_id": "c-oily-1"},
            )
        assert resp.status_code == 200
        result = IntegrationResult.model_validate(resp.json())
        assert result.routine.morning[0].product.id == "c-oily-1"
        assert [p.routine_type for p in result.placements] == ["morning", "evening"]

    @pytest.mark.asyncio
    async def test_unknown_product_returns_404(self, client, catalog):
        with patch("glowup.api.routes.recommendations.get_catalog", new=AsyncMock(return_value=catalog)):
            resp = await client.post(
                "/api/v1/routine/integrate-product",
                json={"routine": {}, "product_id": "nope"},
            )
        assert resp.status_code == 404
        assert ErrorResponse.model_validate(resp.json()).error == "product_not_found"
