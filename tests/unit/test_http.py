from __future__ import annotations

import pytest
from conftest import FakeBackend, ManualClock, make_target

from altus.contracts.search_v1 import Credential, RateLimitTier
from altus.interfaces.http import handle_search, parse_search_request
from altus.orchestrators.search.constants import TierLimits
from altus.orchestrators.search.errors import ValidationError
from altus.orchestrators.search.executor import DatabaseFanOutExecutor
from altus.orchestrators.search.interface import StaticConnectionProvider
from altus.orchestrators.search.orchestrator import SearchOrchestrator
from altus.orchestrators.search.rate_limiter import RateLimiter

CRED = Credential(key_id="key-1")


def _orchestrator(backend: FakeBackend | None = None, ceiling: int = 100) -> SearchOrchestrator:
    return SearchOrchestrator(
        connections=StaticConnectionProvider({"u1": [make_target("db1")]}),
        executor=DatabaseFanOutExecutor(
            backend or FakeBackend(rows={"db1": [("articles", {"title": "MySQL tips", "content": "mysql"})]})
        ),
        rate_limiter=RateLimiter(
            tiers={RateLimitTier.FREE: TierLimits(ceiling, 0, 300)}, clock=ManualClock()
        ),
    )


@pytest.mark.asyncio
async def test_success_envelope_and_rate_limit_headers():
    response = await handle_search(
        _orchestrator(), {"query": "mysql"}, CRED, caller_id="u1", request_id="req-1"
    )

    assert response.status == 200
    assert response.body["success"] is True
    data = response.body["data"]
    assert data["totalCount"] == 1
    assert data["results"][0]["relevanceScore"] > 0
    assert "executionTime" in data
    assert response.body["meta"]["requestId"] == "req-1"
    assert response.body["meta"]["apiKeyTier"] == "free"
    assert response.headers["X-RateLimit-Limit"] == "100"
    assert response.headers["X-RateLimit-Remaining"] == "99"


@pytest.mark.asyncio
async def test_empty_query_is_rejected_with_field():
    response = await handle_search(_orchestrator(), {"query": "   "}, CRED, caller_id="u1")

    assert response.status == 400
    error = response.body["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["field"] == "query"
    assert response.body["success"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body,field",
    [
        ({"query": "mysql", "limit": 500}, "limit"),
        ({"query": "mysql", "limit": 0}, "limit"),
        ({"query": "mysql", "offset": -1}, "offset"),
        ({"query": "mysql", "searchMode": "fuzzy"}, "searchMode"),
        ({"query": "x" * 501}, "query"),
        ({"query": "mysql", "limit": 100, "offset": 950}, "offset"),
    ],
)
async def test_invalid_parameters_are_rejected(body, field):
    backend = FakeBackend()
    response = await handle_search(_orchestrator(backend), body, CRED, caller_id="u1")

    assert response.status == 400
    assert response.body["error"]["details"]["field"] == field
    assert backend.calls == []


@pytest.mark.asyncio
async def test_exhausted_credential_gets_429_with_retry_after():
    orch = _orchestrator(ceiling=1)
    await handle_search(orch, {"query": "mysql"}, CRED, caller_id="u1")

    response = await handle_search(orch, {"query": "mysql"}, CRED, caller_id="u1")

    assert response.status == 429
    assert response.body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert response.body["error"]["details"]["retryAfter"] == 300
    assert response.headers["Retry-After"] == "300"
    assert response.headers["X-RateLimit-Remaining"] == "0"


@pytest.mark.asyncio
async def test_all_databases_down_is_503():
    backend = FakeBackend(errors={"db1": RuntimeError("down")})

    response = await handle_search(_orchestrator(backend), {"query": "mysql"}, CRED, caller_id="u1")

    assert response.status == 503
    assert response.body["error"]["code"] == "BACKEND_UNAVAILABLE"
    assert response.body["error"]["details"]["failedDatabases"] == ["db1"]


def test_body_must_be_an_object():
    with pytest.raises(ValidationError) as exc:
        parse_search_request(["mysql"])
    assert exc.value.field == "body"


def test_authenticated_caller_overrides_body_user():
    request = parse_search_request({"query": "mysql", "userId": "spoofed"}, caller_id="u1")
    assert request.caller_id == "u1"


def test_request_lists_are_deduplicated():
    request = parse_search_request({"query": "q", "databases": ["a", "b", "a", " "]})
    assert request.database_ids == ["a", "b"]
