"""Integration tests for POST /search."""

import pytest
from httpx import AsyncClient

from caselaw.core.exceptions import QuotaExceededError
from caselaw.models.domain import DataSource
from tests.conftest import FakeSource, make_result

pytestmark = pytest.mark.integration

URL = "/api/v1/search"


class TestSearchEndpoint:
    async def test_merges_sources_and_reports_diagnostics(
        self,
        client: AsyncClient,
        fake_sources: dict[DataSource, FakeSource],
    ):
        fake_sources[DataSource.LOCAL].results = [make_result(case_id="1")]
        fake_sources[DataSource.COURTLISTENER].results = [
            make_result(source=DataSource.COURTLISTENER, case_id="130160"),
            make_result(
                source=DataSource.COURTLISTENER,
                case_id="108713",
                name="Roe v. Wade",
                cites=("410 U.S. 113",),
            ),
        ]

        response = await client.post(URL, json={"query": "privacy", "prefer_offline": False})

        assert response.status_code == 200
        body = response.json()
        assert [r["uid"] for r in body["results"]] == ["local:1", "courtlistener:108713"]
        assert body["total_count"] == 2
        assert body["cached"] is False
        assert [d["source"] for d in body["sources"]] == [
            "local",
            "courtlistener",
            "caselaw_access",
        ]

    async def test_default_limit_comes_from_settings(
        self,
        client: AsyncClient,
        fake_sources: dict[DataSource, FakeSource],
    ):
        await client.post(URL, json={"query": "privacy"})
        assert fake_sources[DataSource.LOCAL].search_calls[0].limit == 20

    async def test_failed_source_does_not_fail_request(
        self,
        client: AsyncClient,
        fake_sources: dict[DataSource, FakeSource],
    ):
        fake_sources[DataSource.COURTLISTENER].error = QuotaExceededError(
            "quota exhausted", source="courtlistener", retry_after=60
        )

        response = await client.post(URL, json={"query": "privacy"})

        assert response.status_code == 200
        diagnostic = next(d for d in response.json()["sources"] if d["source"] == "courtlistener")
        assert diagnostic["succeeded"] is False
        assert diagnostic["error_kind"] == "quota_exceeded"

    async def test_repeat_request_is_cached(self, client: AsyncClient):
        payload = {"query": "privacy", "sources": ["local"]}
        await client.post(URL, json=payload)
        response = await client.post(URL, json={**payload, "query": "  PRIVACY "})
        assert response.json()["cached"] is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"query": ""},
            {"query": "x", "limit": 0},
            {"query": "x", "sources": ["westlaw"]},
            {"query": "x", "date_min": "2020-01-01", "date_max": "2019-01-01"},
        ],
    )
    async def test_invalid_payload_rejected(self, client: AsyncClient, payload):
        response = await client.post(URL, json=payload)
        assert response.status_code == 422

    async def test_request_id_echoed(self, client: AsyncClient):
        response = await client.post(
            URL, json={"query": "privacy"}, headers={"X-Request-ID": "req-123"}
        )
        assert response.headers["X-Request-ID"] == "req-123"
