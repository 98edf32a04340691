"""Tests for CourtListenerSource and the shared HttpSource pipeline.

Every test injects an httpx.AsyncClient over MockTransport, so no
request ever leaves the process.
"""

import json
from collections.abc import Callable

import httpx
import pytest

from caselaw.core.config import Settings
from caselaw.core.exceptions import (
    MalformedResponseError,
    QuotaExceededError,
    RateLimitError,
    RemoteProtocolError,
    SourceUnavailableError,
    TransientNetworkError,
)
from caselaw.models.domain import HealthState
from caselaw.services.normalizer import normalize
from caselaw.services.quota import QuotaTracker
from caselaw.services.sources.courtlistener import CourtListenerSource
from tests.conftest import CL_BASE, make_cl_cluster, make_cl_hit, make_query

Handler = Callable[[httpx.Request], httpx.Response]


def build_source(
    settings: Settings,
    handler: Handler,
    *,
    quota: QuotaTracker | None = None,
) -> CourtListenerSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CourtListenerSource(settings, quota or QuotaTracker(), http_client=client)


class TestSearch:
    async def test_sends_query_params_and_normalizes(self, test_settings: Settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"results": [make_cl_hit()], "next": None})

        source = build_source(test_settings, handler)
        results = await source.search(make_query(query="liberty", jurisdiction="scotus"), 5)

        assert len(results) == 1
        assert results[0].case.id == "130160"
        params = seen[0].url.params
        assert str(seen[0].url).startswith(f"{CL_BASE}/search/")
        assert params["q"] == "liberty"
        assert params["type"] == "o"
        assert params["court"] == "scotus"

    async def test_follows_cursor_until_limit(self, test_settings: Settings):
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            if "cursor" in request.url.params:
                return httpx.Response(
                    200,
                    json={"results": [make_cl_hit(cluster_id=3, citation=["3 U.S. 3"])]},
                )
            return httpx.Response(
                200,
                json={
                    "results": [
                        make_cl_hit(cluster_id=1, citation=["1 U.S. 1"]),
                        make_cl_hit(cluster_id=2, citation=["2 U.S. 2"]),
                    ],
                    "next": f"{CL_BASE}/search/?cursor=abc",
                },
            )

        source = build_source(test_settings, handler)
        results = await source.search(make_query(), 3)

        assert [r.case.id for r in results] == ["1", "2", "3"]
        assert len(calls) == 2

    async def test_auth_header_only_with_key(self, test_settings: Settings):
        headers: list[httpx.Headers] = []

        def handler(request: httpx.Request) -> httpx.Response:
            headers.append(request.headers)
            return httpx.Response(200, json={"results": []})

        source = build_source(test_settings, handler)
        await source.search(make_query(), 5)
        source.set_api_key("secret-token")
        await source.search(make_query(), 5)

        assert "authorization" not in headers[0]
        assert headers[1]["authorization"] == "Token secret-token"


class TestLookups:
    async def test_get_by_id_fetches_cluster(self, test_settings: Settings):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/clusters/130160/")
            return httpx.Response(200, json=make_cl_cluster())

        source = build_source(test_settings, handler)
        result = await source.get_by_id("130160")

        assert result is not None
        assert result.citation == "539 U.S. 558"

    async def test_payloads_go_through_kind_dispatch(
        self, test_settings: Settings, monkeypatch: pytest.MonkeyPatch
    ):
        kinds: list[str] = []

        def recording_normalize(payload):
            kinds.append(payload.kind)
            return normalize(payload)

        monkeypatch.setattr(
            "caselaw.services.sources.courtlistener.normalize", recording_normalize
        )

        def handler(request: httpx.Request) -> httpx.Response:
            if "/clusters/" in request.url.path:
                return httpx.Response(200, json=make_cl_cluster())
            return httpx.Response(200, json={"results": [make_cl_hit()], "next": None})

        source = build_source(test_settings, handler)
        await source.search(make_query(), 5)
        await source.get_by_id("130160")

        assert kinds == ["courtlistener_hit", "courtlistener_cluster"]

    async def test_get_by_id_404_is_none(self, test_settings: Settings):
        source = build_source(test_settings, lambda r: httpx.Response(404, json={}))
        assert await source.get_by_id("1") is None

    async def test_get_by_id_non_numeric_skips_request(self, test_settings: Settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        source = build_source(test_settings, handler)
        assert await source.get_by_id("abc") is None

    async def test_get_by_citation_requires_exact_match(self, test_settings: Settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "results": [make_cl_hit(cluster_id=9, citation=["540 U.S. 1"]), make_cl_hit()]
                },
            )

        source = build_source(test_settings, handler)
        found = await source.get_by_citation(" 539  u.s.  558 ")

        assert found is not None
        assert found.case.id == "130160"

    async def test_find_citing_orders_by_cite_count(self, test_settings: Settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"results": [make_cl_hit(cluster_id=77)]})

        source = build_source(test_settings, handler)
        results = await source.find_citing("130160", limit=5)

        assert [r.case.id for r in results] == ["77"]
        assert seen[0].url.params["q"] == "cites:(130160)"
        assert seen[0].url.params["order_by"] == "citeCount desc"


class TestFailures:
    async def test_transport_error_becomes_transient(self, test_settings: Settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        source = build_source(test_settings, handler)
        with pytest.raises(TransientNetworkError):
            await source.search(make_query(), 5)

    async def test_transient_errors_retried_up_to_attempt_limit(self, test_settings: Settings):
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"results": [make_cl_hit()]})

        settings = test_settings.model_copy(update={"remote_retry_attempts": 2})
        quota = QuotaTracker()
        source = build_source(settings, handler, quota=quota)

        results = await source.search(make_query(), 5)

        assert len(results) == 1
        # Each attempt passes the quota gate.
        assert quota.state("courtlistener").request_count == 2

    async def test_server_error_is_protocol_error(self, test_settings: Settings):
        source = build_source(test_settings, lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(RemoteProtocolError) as exc_info:
            await source.search(make_query(), 5)
        assert exc_info.value.status_code == 500
        assert source.status().health == HealthState.AVAILABLE

    async def test_invalid_json_is_malformed(self, test_settings: Settings):
        source = build_source(test_settings, lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(MalformedResponseError):
            await source.search(make_query(), 5)

    async def test_schema_mismatch_is_malformed(self, test_settings: Settings):
        body = json.dumps({"results": [{"caseName": "no cluster id"}]})
        source = build_source(test_settings, lambda r: httpx.Response(200, text=body))
        with pytest.raises(MalformedResponseError):
            await source.search(make_query(), 5)

    async def test_undecodable_body_is_malformed(self, test_settings: Settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all"
            )

        source = build_source(test_settings, handler)
        with pytest.raises(MalformedResponseError):
            await source.search(make_query(), 5)

    async def test_redirect_loop_is_protocol_error_without_retry(self, test_settings: Settings):
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            raise httpx.TooManyRedirects("redirect loop", request=request)

        settings = test_settings.model_copy(update={"remote_retry_attempts": 3})
        source = build_source(settings, handler)
        with pytest.raises(RemoteProtocolError) as exc_info:
            await source.search(make_query(), 5)
        assert exc_info.value.status_code is None
        assert len(attempts) == 1

    async def test_search_sends_no_page_size(self, test_settings: Settings):
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"results": []})

        settings = test_settings.model_copy(update={"remote_page_size": 5})
        await build_source(settings, handler).search(make_query(), 10)

        assert "page_size" not in captured[0].url.params

    async def test_429_exhausts_quota(self, test_settings: Settings):
        quota = QuotaTracker()
        source = build_source(
            test_settings,
            lambda r: httpx.Response(429, headers={"Retry-After": "120"}),
            quota=quota,
        )

        with pytest.raises(RateLimitError) as exc_info:
            await source.search(make_query(), 5)

        assert exc_info.value.retry_after == 120
        assert quota.remaining("courtlistener") == 0
        with pytest.raises(QuotaExceededError):
            await source.search(make_query(), 5)

    async def test_quota_denial_skips_network(self, test_settings: Settings):
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={"results": []})

        settings = test_settings.model_copy(update={"courtlistener_anonymous_limit": 1})
        source = build_source(settings, handler)

        await source.search(make_query(), 5)
        with pytest.raises(QuotaExceededError):
            await source.search(make_query(), 5)
        assert len(calls) == 1

    async def test_repeated_auth_failures_make_source_unavailable(self, test_settings: Settings):
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(401, json={"detail": "Invalid token."})

        source = build_source(test_settings, handler)
        for expected in (HealthState.DEGRADED, HealthState.UNAVAILABLE):
            with pytest.raises(RemoteProtocolError):
                await source.search(make_query(), 5)
            assert source.status().health == expected

        assert not source.is_available()
        with pytest.raises(SourceUnavailableError):
            await source.search(make_query(), 5)
        assert len(calls) == 2

    async def test_new_credential_resets_health(self, test_settings: Settings):
        source = build_source(test_settings, lambda r: httpx.Response(403, json={}))
        for _ in range(2):
            with pytest.raises(RemoteProtocolError):
                await source.search(make_query(), 5)

        source.set_api_key("fresh")

        assert source.is_available()
        status = source.status()
        assert status.authenticated is True
        assert status.quota_limit == 5000
