# tests/test_warcraftlogs_client.py
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import httpx
import pytest

from app.services.cache import InMemoryCacheStore
from app.services.warcraftlogs_client import (
    RATE_LIMIT_CACHE_KEY,
    TOKEN_CACHE_KEY,
    GraphQLError,
    RateLimitedError,
    TransportError,
    WarcraftLogsClient,
)

TOKEN_URL = "https://wcl.test/oauth/token"
API_URL = "https://wcl.test/api/v2/client"


class _FakeResponse:
    def __init__(
        self,
        status_code: int,
        json_data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        text: Optional[str] = None,
    ):
        self.status_code = status_code
        self._json_data = json_data
        self.headers = headers or {}
        self.text = text if text is not None else str(json_data)

    def json(self) -> Any:
        if self._json_data is None:
            raise ValueError("not json")
        return self._json_data


class _FakeAsyncClient:
    """
    Minimal stand-in for httpx.AsyncClient.

    Token requests get a token valid for 5 minutes; API requests are answered
    from ``api_responses`` (oldest first), defaulting to a small data payload.
    """

    requests: List[Dict[str, Any]] = []
    api_responses: List[_FakeResponse] = []

    def __init__(self, timeout: float | None = None):
        self._timeout = timeout

    async def __aenter__(self) -> "_FakeAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def post(self, url: str, **kwargs) -> _FakeResponse:
        _FakeAsyncClient.requests.append({"url": url, **kwargs})

        if url == TOKEN_URL:
            return _FakeResponse(
                HTTPStatus.OK,
                {"access_token": "fake-token-123", "expires_in": 300, "token_type": "Bearer"},
            )

        if _FakeAsyncClient.api_responses:
            return _FakeAsyncClient.api_responses.pop(0)

        return _FakeResponse(HTTPStatus.OK, {"data": {"rateLimitData": {"pointsSpentThisHour": 1}}})


@pytest.fixture
def fake_http(monkeypatch):
    _FakeAsyncClient.requests = []
    _FakeAsyncClient.api_responses = []
    monkeypatch.setattr(httpx, "AsyncClient", _FakeAsyncClient)
    return _FakeAsyncClient


def _client(**kwargs) -> WarcraftLogsClient:
    return WarcraftLogsClient(
        client_id="client-123",
        client_secret="secret-xyz",
        api_url=API_URL,
        token_url=TOKEN_URL,
        **kwargs,
    )


def _api_calls(fake) -> List[Dict[str, Any]]:
    return [r for r in fake.requests if r["url"] == API_URL]


def test_client_requires_credentials():
    with pytest.raises(ValueError):
        WarcraftLogsClient(client_id="", client_secret="x")


@pytest.mark.asyncio
async def test_token_is_fetched_once_and_cached(fake_http):
    client = _client()

    assert await client.get_access_token() == "fake-token-123"
    assert await client.get_access_token() == "fake-token-123"

    token_calls = [r for r in fake_http.requests if r["url"] == TOKEN_URL]
    assert len(token_calls) == 1
    assert token_calls[0]["auth"] == ("client-123", "secret-xyz")
    assert token_calls[0]["data"] == {"grant_type": "client_credentials"}


@pytest.mark.asyncio
async def test_token_expires_with_reported_lifetime(fake_http):
    now = [1000.0]
    client = _client(cache=InMemoryCacheStore(clock=lambda: now[0]))

    await client.get_access_token()
    now[0] += 301
    await client.get_access_token()

    assert len([r for r in fake_http.requests if r["url"] == TOKEN_URL]) == 2


@pytest.mark.asyncio
async def test_bad_token_response_raises_transport_error(monkeypatch):
    class _BadTokenClient(_FakeAsyncClient):
        async def post(self, url: str, **kwargs) -> _FakeResponse:
            return _FakeResponse(HTTPStatus.BAD_REQUEST, {"error": "invalid_client"})

    monkeypatch.setattr(httpx, "AsyncClient", _BadTokenClient)

    with pytest.raises(TransportError):
        await _client().get_access_token()


@pytest.mark.asyncio
async def test_query_sends_bearer_token_and_caches_data(fake_http):
    client = _client()

    first = await client.query("query { a }", {"x": 1})
    second = await client.query("query { a }", {"x": 1})

    assert first == second == {"rateLimitData": {"pointsSpentThisHour": 1}}

    calls = _api_calls(fake_http)
    assert len(calls) == 1
    assert calls[0]["headers"]["Authorization"] == "Bearer fake-token-123"
    assert calls[0]["json"] == {"query": "query { a }", "variables": {"x": 1}}


@pytest.mark.asyncio
async def test_different_variables_use_different_cache_entries(fake_http):
    client = _client()

    await client.query("query { a }", {"x": 1})
    await client.query("query { a }", {"x": 2})

    assert len(_api_calls(fake_http)) == 2
    assert client.cache_key("q", {"a": 1, "b": 2}) == client.cache_key("q", {"b": 2, "a": 1})


@pytest.mark.asyncio
async def test_fresh_bypasses_cache_for_one_call_only(fake_http):
    client = _client()

    await client.query("query { a }")
    await client.fresh().query("query { a }")
    await client.query("query { a }")

    assert len(_api_calls(fake_http)) == 2


@pytest.mark.asyncio
async def test_graphql_errors_raise(fake_http):
    fake_http.api_responses = [
        _FakeResponse(HTTPStatus.OK, {"errors": [{"message": "Guild does not exist"}], "data": None})
    ]

    with pytest.raises(GraphQLError) as exc_info:
        await _client().query("query { a }")

    assert exc_info.value.first_error == "Guild does not exist"
    assert exc_info.value.has_error_matching("does NOT exist")
    assert not exc_info.value.has_error_matching("timeout")


@pytest.mark.asyncio
async def test_non_2xx_and_malformed_bodies_raise_transport_error(fake_http):
    fake_http.api_responses = [
        _FakeResponse(HTTPStatus.INTERNAL_SERVER_ERROR, {"message": "boom"}),
        _FakeResponse(HTTPStatus.OK, None, text="<html>"),
        _FakeResponse(HTTPStatus.OK, {"no_data": True}),
    ]
    client = _client()

    for _ in range(3):
        with pytest.raises(TransportError):
            await client.fresh().query("query { a }")


@pytest.mark.asyncio
async def test_rate_limit_starts_cooldown(fake_http):
    fake_http.api_responses = [_FakeResponse(HTTPStatus.TOO_MANY_REQUESTS, {"error": "slow down"})]
    client = _client()

    with pytest.raises(RateLimitedError):
        await client.query("query { a }")

    assert client.cache.has(RATE_LIMIT_CACHE_KEY)

    # While cooling down no request is made at all.
    before = len(fake_http.requests)
    with pytest.raises(RateLimitedError):
        await client.query("query { b }")
    assert len(fake_http.requests) == before


@pytest.mark.asyncio
async def test_cached_data_is_served_during_cooldown(fake_http):
    client = _client()
    cached = await client.query("query { a }")

    client.cache.set(RATE_LIMIT_CACHE_KEY, True, 3600)

    assert await client.query("query { a }") == cached


@pytest.mark.asyncio
async def test_low_rate_limit_tokens_log_warning(fake_http, caplog):
    fake_http.api_responses = [
        _FakeResponse(
            HTTPStatus.OK,
            {"data": {"ok": True}},
            headers={"x-ratelimit-limit": "3600", "x-ratelimit-remaining": "100"},
        )
    ]

    with caplog.at_level("WARNING", logger="app.services.warcraftlogs_client"):
        await _client().query("query { a }")

    assert any("running low" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_token_is_stored_under_token_key(fake_http):
    client = _client()
    await client.get_access_token()

    assert client.cache.get(TOKEN_CACHE_KEY) == "fake-token-123"
