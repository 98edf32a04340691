"""Integration tests for /sources, /health and /metrics."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from caselaw.api.app import create_app
from caselaw.api.dependencies import get_orchestrator
from caselaw.core.config import Settings
from caselaw.models.domain import DataSource
from caselaw.services.search.orchestrator import UnifiedOrchestrator
from tests.conftest import CAP_BASE, FakeSource

pytestmark = pytest.mark.integration


def _cap_handler(request: httpx.Request) -> httpx.Response:
    if str(request.url).startswith(f"{CAP_BASE}/jurisdictions/"):
        return httpx.Response(200, json={"results": [{"slug": "ill", "name": "Ill."}]})
    if str(request.url).startswith(f"{CAP_BASE}/courts/"):
        return httpx.Response(200, json={"results": [{"slug": "ill-app-ct"}]})
    return httpx.Response(404, json={})


@pytest.fixture
async def wired_client(test_settings: Settings):
    """Client over an app whose orchestrator has the real remote adapters."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_cap_handler))
    orchestrator = UnifiedOrchestrator.from_settings(test_settings, http_client=http_client)
    application = create_app(test_settings)
    application.dependency_overrides[get_orchestrator] = lambda: orchestrator
    async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as ac:
        yield ac
    await http_client.aclose()


class TestSourceStatus:
    async def test_lists_every_source_in_priority_order(self, client: AsyncClient):
        response = await client.get("/api/v1/sources")

        assert response.status_code == 200
        body = response.json()
        assert [s["source"] for s in body["sources"]] == [
            "local",
            "courtlistener",
            "caselaw_access",
        ]
        assert body["cache_entries"] == 0

    async def test_cache_clear(self, client: AsyncClient):
        await client.post("/api/v1/search", json={"query": "privacy"})

        response = await client.delete("/api/v1/sources/cache")

        assert response.status_code == 200
        assert response.json() == {"cleared": 1}


class TestCredentials:
    async def test_local_source_rejected(self, client: AsyncClient):
        response = await client.put("/api/v1/sources/local/credentials", json={"api_key": "k"})
        assert response.status_code == 400

    async def test_api_key_switches_quota_tier(self, wired_client: AsyncClient):
        response = await wired_client.put(
            "/api/v1/sources/courtlistener/credentials", json={"api_key": "secret"}
        )

        assert response.status_code == 200
        status = response.json()["status"]
        assert status["authenticated"] is True
        assert status["quota_limit"] == 5000

    async def test_empty_key_reverts_to_anonymous(self, wired_client: AsyncClient):
        await wired_client.put(
            "/api/v1/sources/courtlistener/credentials", json={"api_key": "secret"}
        )
        response = await wired_client.put(
            "/api/v1/sources/courtlistener/credentials", json={"api_key": ""}
        )

        status = response.json()["status"]
        assert status["authenticated"] is False
        assert status["quota_limit"] == 100


class TestReferenceListings:
    async def test_unavailable_without_adapter(self, client: AsyncClient):
        response = await client.get("/api/v1/sources/caselaw_access/jurisdictions")

        assert response.status_code == 503
        assert response.json()["error"] == "source_unavailable"

    async def test_jurisdictions(self, wired_client: AsyncClient):
        response = await wired_client.get("/api/v1/sources/caselaw_access/jurisdictions")

        assert response.status_code == 200
        assert response.json() == {"results": [{"slug": "ill", "name": "Ill."}], "total": 1}

    async def test_courts(self, wired_client: AsyncClient):
        response = await wired_client.get(
            "/api/v1/sources/caselaw_access/courts", params={"jurisdiction": "ill"}
        )
        assert response.json()["total"] == 1


class TestHealth:
    async def test_healthy(self, client: AsyncClient):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_degraded(self, client: AsyncClient, fake_sources: dict[DataSource, FakeSource]):
        fake_sources[DataSource.CASELAW_ACCESS].available = False
        response = await client.get("/api/v1/health")
        assert response.json()["status"] == "degraded"

    async def test_unhealthy(self, client: AsyncClient, fake_sources: dict[DataSource, FakeSource]):
        for fake in fake_sources.values():
            fake.available = False
        response = await client.get("/api/v1/health")
        assert response.json()["status"] == "unhealthy"

    async def test_metrics_exposed(self, client: AsyncClient):
        await client.get("/api/v1/health")

        response = await client.get("/api/v1/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
