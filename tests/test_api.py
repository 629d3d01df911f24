"""Tests for the HTTP API."""

import logging
import uuid

import httpx
import pytest
import respx
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr

from conftest import ENDPOINT_URL
from fixdispatch import __version__
from fixdispatch.config import get_settings
from fixdispatch.db.session import get_session
from fixdispatch.dispatch.store import create_item, mark_in_flight


async def enqueue(session_factory, project_id: str = "proj-1", **overrides):
    payload = {"project_id": project_id, "field": "title", "value": "New title"}
    payload.update(overrides)
    async with session_factory() as session:
        item = await create_item(session, payload)
        await session.commit()
        return item


class TestOperations:
    """Tests for health and readiness endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["version"] == __version__
        assert data["instance_id"] == "test-instance"
        assert data["endpoint_configured"] is True
        assert data["scheduler_enabled"] is True

    @pytest.mark.asyncio
    async def test_health_reports_missing_endpoint(self, app, client: AsyncClient, test_settings):
        unconfigured = test_settings.model_copy(update={"dispatch_endpoint_url": None})
        app.dependency_overrides[get_settings] = lambda: unconfigured

        response = await client.get("/api/v1/health")

        assert response.json()["endpoint_configured"] is False

    @pytest.mark.asyncio
    async def test_ready(self, client: AsyncClient):
        response = await client.get("/api/v1/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["database"] == "ok"
        assert data["queue"] is None

    @pytest.mark.asyncio
    async def test_ready_with_queue(self, client: AsyncClient, session_factory):
        await enqueue(session_factory)

        response = await client.get("/api/v1/ready", params={"include_queue": True})

        assert response.status_code == 200
        assert response.json()["queue"]["pending"] == 1

    @pytest.mark.asyncio
    async def test_ready_database_down(self, app, client: AsyncClient):
        class BrokenSession:
            async def execute(self, *args, **kwargs):
                raise ConnectionError("database unavailable")

        async def broken_session():
            yield BrokenSession()

        app.dependency_overrides[get_session] = broken_session

        response = await client.get("/api/v1/ready")

        assert response.status_code == 503
        assert response.json()["detail"] == "Database not ready"

    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient):
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "fixdispatch_dispatch_attempts_total" in response.text

    @pytest.mark.asyncio
    async def test_process_time_header(self, client: AsyncClient):
        response = await client.get("/api/v1/health")
        assert "x-process-time-ms" in response.headers

    @pytest.mark.asyncio
    async def test_access_log_line(self, client: AsyncClient, caplog):
        """One access line per request, using the first forwarded hop as client."""
        with caplog.at_level(logging.INFO, logger="fixdispatch.access"):
            await client.get(
                "/api/v1/dispatch/items/not-a-uuid",
                headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
            )

        lines = [r.getMessage() for r in caplog.records if r.name == "fixdispatch.access"]
        assert len(lines) == 1
        assert lines[0].startswith("203.0.113.7 GET /api/v1/dispatch/items/not-a-uuid 422 ")
        assert lines[0].endswith("ms")


class TestDispatchEndpoints:
    """Tests for queue inspection endpoints."""

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, session_factory):
        item = await enqueue(session_factory)
        await enqueue(session_factory)
        await enqueue(session_factory, project_id="other")
        async with session_factory() as session:
            await mark_in_flight(session, item.id)
            await session.commit()

        response = await client.get("/api/v1/dispatch/stats")
        assert response.status_code == 200
        assert response.json() == {
            "pending": 2,
            "in_flight": 1,
            "sent": 0,
            "failed": 0,
            "dead": 0,
        }

        response = await client.get("/api/v1/dispatch/stats", params={"project_id": "other"})
        assert response.json()["pending"] == 1
        assert response.json()["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_list_items(self, client: AsyncClient, session_factory):
        first = await enqueue(session_factory)
        second = await enqueue(session_factory, project_id="other")

        response = await client.get("/api/v1/dispatch/items")
        assert response.status_code == 200
        assert [i["id"] for i in response.json()] == [str(second.id), str(first.id)]

        response = await client.get("/api/v1/dispatch/items", params={"project_id": "proj-1"})
        assert [i["id"] for i in response.json()] == [str(first.id)]

    @pytest.mark.asyncio
    async def test_list_items_by_status(self, client: AsyncClient, session_factory):
        item = await enqueue(session_factory)
        await enqueue(session_factory)
        async with session_factory() as session:
            await mark_in_flight(session, item.id)
            await session.commit()

        response = await client.get("/api/v1/dispatch/items", params={"status": "in_flight"})

        assert [i["id"] for i in response.json()] == [str(item.id)]

    @pytest.mark.asyncio
    async def test_list_items_invalid_status(self, client: AsyncClient):
        response = await client.get("/api/v1/dispatch/items", params={"status": "bogus"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_item(self, client: AsyncClient, session_factory):
        item = await enqueue(session_factory, value={"title": "Structured"})

        response = await client.get(f"/api/v1/dispatch/items/{item.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["attempts"] == 0
        assert data["value"] == {"title": "Structured"}
        assert data["priority"] == 0

    @pytest.mark.asyncio
    async def test_get_item_not_found(self, client: AsyncClient):
        response = await client.get(f"/api/v1/dispatch/items/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Dispatch item not found"

    @pytest.mark.asyncio
    async def test_run_batch(self, client: AsyncClient, session_factory):
        sent = await enqueue(session_factory, priority=1)
        failed = await enqueue(session_factory)

        with respx.mock:
            respx.post(ENDPOINT_URL).mock(
                side_effect=[httpx.Response(200), httpx.Response(500, text="down")]
            )
            response = await client.post("/api/v1/dispatch/run")

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert data["sent"] == 1
        assert data["failed"] == 1
        assert data["dead"] == 0
        assert [r["id"] for r in data["results"]] == [str(sent.id), str(failed.id)]
        assert data["results"][1]["error"] == "HTTP 500: down"
        assert data["results"][1]["next_attempt_at"] is not None

    @pytest.mark.asyncio
    async def test_run_batch_nothing_due(self, client: AsyncClient):
        response = await client.post("/api/v1/dispatch/run")
        assert response.status_code == 200
        assert response.json()["processed"] == 0

    @pytest.mark.asyncio
    async def test_run_batch_limit_validated(self, client: AsyncClient):
        response = await client.post("/api/v1/dispatch/run", params={"limit": 0})
        assert response.status_code == 422


class TestOperatorAuth:
    """Tests for the operator API key."""

    @pytest.fixture
    def secured_app(self, app, test_settings):
        secured = test_settings.model_copy(update={"admin_api_key": SecretStr("operator-key")})
        app.dependency_overrides[get_settings] = lambda: secured
        return app

    @pytest.mark.asyncio
    async def test_missing_key_rejected(self, secured_app):
        transport = ASGITransport(app=secured_app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/api/v1/dispatch/stats")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_key_rejected(self, secured_app):
        transport = ASGITransport(app=secured_app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post("/api/v1/dispatch/run", headers={"X-API-Key": "nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_key_accepted(self, secured_app):
        transport = ASGITransport(app=secured_app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get(
                "/api/v1/dispatch/stats", headers={"X-API-Key": "operator-key"}
            )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_health_is_open(self, secured_app):
        transport = ASGITransport(app=secured_app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/api/v1/health")
        assert response.status_code == 200
