"""
End-to-end tests for the HTTP layer.

Usage:
    pytest backend/tests/test_api.py -v
"""

from fastapi import Depends
from fastapi.testclient import TestClient

from cryptoquery.dependencies import require_bearer_token
from cryptoquery.main import create_app
from cryptoquery.services.assistant.base import DataFetcher

from conftest import RecordingFetcher, make_orchestrator


def _client(clock, *fetchers, **kwargs):
    token_verifier = kwargs.pop("token_verifier", None)
    orch = make_orchestrator(clock, *fetchers, **kwargs)
    app = create_app(orchestrator=orch, token_verifier=token_verifier, run_maintenance=False)
    return TestClient(app), orch, app


def test_query_returns_response_data_and_session(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)

    res = client.post("/query", json={"query": "What's the price of ETH?", "sessionId": "abc"})

    assert res.status_code == 200
    body = res.json()
    assert body["sessionId"] == "abc"
    assert body["data"] == {"price:ethereum": 3200.0}
    assert "3,200.00" in body["response"]
    assert body["suggestions"] == []


def test_snake_case_session_id_accepted(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)

    res = client.post("/query", json={"query": "price of BTC", "session_id": "snake"})

    assert res.json()["sessionId"] == "snake"


def test_new_session_issued_when_absent(clock, price_fetcher):
    client, orch, _ = _client(clock, price_fetcher)

    res = client.post("/query", json={"query": "price of BTC"})

    session_id = res.json()["sessionId"]
    assert session_id
    assert orch.conversations.get(session_id) is not None


def test_empty_or_missing_query_is_400(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)

    assert client.post("/query", json={"query": "   "}).status_code == 400
    res = client.post("/query", json={})
    assert res.status_code == 400
    assert res.json() == {"error": "Query is required"}


def test_malformed_body_is_400(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)

    res = client.post("/query", content="{not json", headers={"Content-Type": "application/json"})

    assert res.status_code == 400
    assert "error" in res.json()


def test_21st_request_in_a_minute_is_rate_limited(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)
    headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}

    statuses = []
    for i in range(21):
        payload = {"query": "" if i % 5 == 0 else "price of BTC"}
        statuses.append(client.post("/query", json=payload, headers=headers).status_code)
        clock.advance(1)

    assert all(s in (200, 400) for s in statuses[:20])
    assert statuses[20] == 429

    # Another client is unaffected
    other = client.post("/query", json={"query": "price of BTC"}, headers={"X-Forwarded-For": "198.51.100.1"})
    assert other.status_code == 200


def test_rate_limit_lifts_after_window(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher, max_requests=2)
    for _ in range(2):
        client.post("/query", json={"query": "price of BTC"})
    assert client.post("/query", json={"query": "price of BTC"}).status_code == 429

    clock.advance(60)
    assert client.post("/query", json={"query": "price of BTC"}).status_code == 200


def test_two_queries_same_field_one_upstream_fetch(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)

    client.post("/query", json={"query": "price of SOL and BTC"})
    client.post("/query", json={"query": "how much is BTC worth?"})

    fetched = [f for call in price_fetcher.calls for f in call if f == "price:bitcoin"]
    assert len(fetched) == 1


def test_upstream_failure_is_generic_500(clock):
    broken = RecordingFetcher(["price"], {}, fail=True)
    client, _, _ = _client(clock, broken)

    res = client.post("/query", json={"query": "price of BTC"})

    assert res.status_code == 500
    assert res.json() == {"error": "Failed to process query"}


def test_cors_headers(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)

    res = client.post("/query", json={"query": "price of BTC"}, headers={"Origin": "http://example.com"})
    assert res.headers["access-control-allow-origin"] == "*"

    preflight = client.options(
        "/query",
        headers={
            "Origin": "http://example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    assert preflight.status_code == 200
    assert "POST" in preflight.headers["access-control-allow-methods"]


def test_rate_limit_status_endpoint(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)
    client.post("/query", json={"query": "price of BTC"})

    res = client.get("/query/rate-limit")

    assert res.status_code == 200
    assert res.json()["limit"] == 20
    assert res.json()["remaining"] == 19


def test_session_summary_endpoint(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)
    client.post("/query", json={"query": "price of BTC", "sessionId": "s1"})

    res = client.get("/query/sessions/s1")
    assert res.status_code == 200
    assert res.json()["favorite_tokens"] == ["bitcoin"]
    assert res.json()["message_count"] == 1

    missing = client.get("/query/sessions/unknown")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Session not found"}


def test_health_endpoint(clock, price_fetcher):
    client, _, _ = _client(clock, price_fetcher)
    client.post("/query", json={"query": "price of BTC"})

    body = client.get("/").json()

    assert body["status"] == "ok"
    assert body["active_sessions"] == 1
    assert body["tracked_clients"] == 1
    assert body["cache"]["size"] >= 1


class StaticVerifier:
    def verify(self, token):
        return {"address": "0xabc"} if token == "good-token" else None


def test_bearer_token_guard(clock, price_fetcher):
    client, _, app = _client(clock, price_fetcher, token_verifier=StaticVerifier())

    @app.get("/private")
    def private(claims=Depends(require_bearer_token)):
        return claims

    assert client.get("/private").status_code == 401
    assert client.get("/private", headers={"Authorization": "Bearer bad"}).status_code == 401
    res = client.get("/private", headers={"Authorization": "Bearer good-token"})
    assert res.status_code == 200
    assert res.json() == {"address": "0xabc"}


class ListFetcher(DataFetcher):
    """Returns a list where a mapping is expected."""

    @property
    def domains(self):
        return ["price"]

    async def fetch(self, fields):
        return [1, 2]


def test_malformed_fetcher_result_is_json_500_with_cors(clock):
    client, _, _ = _client(clock, ListFetcher())

    res = client.post("/query", json={"query": "price of BTC"}, headers={"Origin": "http://example.com"})

    assert res.status_code == 500
    assert res.headers["content-type"].startswith("application/json")
    assert res.json() == {"error": "Failed to process query"}
    assert res.headers["access-control-allow-origin"] == "*"


def test_unhandled_route_error_is_json_500_with_cors(clock, price_fetcher):
    _, _, app = _client(clock, price_fetcher)

    @app.get("/explode")
    def explode():
        raise RuntimeError("boom")

    client = TestClient(app, raise_server_exceptions=False)
    res = client.get("/explode", headers={"Origin": "http://example.com"})

    assert res.status_code == 500
    assert res.headers["content-type"].startswith("application/json")
    assert res.json() == {"error": "Failed to process query"}
    assert res.headers["access-control-allow-origin"] == "*"
