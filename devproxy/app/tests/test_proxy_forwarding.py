"""
Unit Tests for HTTP Forwarding
==============================

Tests for devproxy/app/proxy/routes.py

Test Coverage:
--------------
1. Path (still percent-encoded), method, query and body forwarded unchanged
2. Host/Origin preserved (change_origin off) or rewritten (change_origin on)
3. Set-Cookie Domain/Path rewriting per rule
4. Observer hook only on the /api rule
5. Unmatched paths, upstream failures and upstream stream cleanup

Run tests:
----------
    pytest devproxy/app/tests/test_proxy_forwarding.py -v
"""

import logging
from typing import List

import httpx
import pytest
from fastapi import status
from fastapi.testclient import TestClient

from devproxy.app.config import Settings
from devproxy.app.main import create_app
from devproxy.app.proxy.rules import RouteRule, RuleTable


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def mock_settings():
    return Settings(
        UPSTREAM_URL="http://localhost:3000",
        COOKIE_DOMAIN_REWRITE="localhost",
        LOG_LEVEL="INFO",
    )


@pytest.fixture
def upstream_requests() -> List[httpx.Request]:
    return []


def upstream_reply(status_code: int = 200, headers=None, body: bytes = b"") -> httpx.Response:
    """Build an unread upstream response so the proxy can stream it"""
    return httpx.Response(status_code, headers=headers, stream=httpx.ByteStream(body))


def default_reply() -> httpx.Response:
    return upstream_reply(
        headers=[
            ("content-type", "application/json"),
            ("set-cookie", "sid=abc123; Domain=api.alternaview.test; Path=/api/auth; HttpOnly"),
            ("set-cookie", "theme=dark; Domain=api.alternaview.test; Path=/prefs"),
        ],
        body=b'{"ok": true}',
    )


@pytest.fixture
def upstream_response():
    """Factory for the response the mock upstream returns; tests may replace it"""
    return {"factory": default_reply}


@pytest.fixture
def transport(upstream_requests, upstream_response):
    def handler(request: httpx.Request) -> httpx.Response:
        upstream_requests.append(request)
        return upstream_response["factory"]()

    return httpx.MockTransport(handler)


@pytest.fixture
def client(mock_settings, transport):
    app = create_app(settings=mock_settings, transport=transport)
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# Forwarding Tests
# ============================================================================

def test_api_request_forwarded_with_path_and_query(client, upstream_requests):
    response = client.get("/api/foo?page=2&sort=desc")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ok": True}

    forwarded = upstream_requests[0]
    assert forwarded.method == "GET"
    assert str(forwarded.url) == "http://localhost:3000/api/foo?page=2&sort=desc"


@pytest.mark.parametrize("raw_target", [
    "/dl/report%3Fv%3D2.pdf?token=abc",
    "/api/files/a%2Fb",
    "/share/notes%23draft%20one",
])
def test_percent_encoded_path_forwarded_verbatim(client, upstream_requests, raw_target):
    client.get(raw_target)

    assert str(upstream_requests[0].url) == f"http://localhost:3000{raw_target}"


def test_body_and_method_forwarded_unchanged(client, upstream_requests):
    client.post(
        "/api/estimates",
        content=b'{"project_id":2,"runtime":"90m"}',
        headers={"Content-Type": "application/json"},
    )

    forwarded = upstream_requests[0]
    assert forwarded.method == "POST"
    assert forwarded.content == b'{"project_id":2,"runtime":"90m"}'
    assert forwarded.headers["content-type"] == "application/json"


def test_host_and_origin_preserved_without_change_origin(client, upstream_requests):
    client.get("/api/foo", headers={"Origin": "http://localhost:5173", "Cookie": "sid=abc123"})

    forwarded = upstream_requests[0]
    assert forwarded.headers["host"] == "testserver"
    assert forwarded.headers["origin"] == "http://localhost:5173"
    assert forwarded.headers["cookie"] == "sid=abc123"


def test_hop_by_hop_headers_not_forwarded(client, upstream_requests):
    client.get("/api/foo", headers={"Connection": "keep-alive, x-custom", "Keep-Alive": "timeout=5"})

    forwarded = upstream_requests[0]
    assert "keep-alive" not in forwarded.headers
    assert forwarded.headers.get("connection") != "keep-alive, x-custom"


def test_change_origin_rewrites_host_and_origin(mock_settings, transport, upstream_requests):
    rules = RuleTable([RouteRule(prefix="/api", target="http://upstream.test:8000", change_origin=True)])
    app = create_app(settings=mock_settings, rules=rules, transport=transport)

    with TestClient(app) as test_client:
        test_client.get("/api/foo", headers={"Origin": "http://localhost:5173"})

    forwarded = upstream_requests[0]
    assert forwarded.headers["host"] == "upstream.test:8000"
    assert forwarded.headers["origin"] == "http://upstream.test:8000"


# ============================================================================
# Cookie Rewrite Tests
# ============================================================================

def test_api_cookies_get_domain_and_path_rewritten(client):
    response = client.get("/api/foo")

    assert response.headers.get_list("set-cookie") == [
        "sid=abc123; Domain=localhost; Path=/; HttpOnly",
        "theme=dark; Domain=localhost; Path=/",
    ]


def test_share_cookies_get_domain_rewritten_only(client, upstream_requests):
    response = client.get("/share/xyz")

    assert str(upstream_requests[0].url) == "http://localhost:3000/share/xyz"
    assert response.headers.get_list("set-cookie") == [
        "sid=abc123; Domain=localhost; Path=/api/auth; HttpOnly",
        "theme=dark; Domain=localhost; Path=/prefs",
    ]


def test_download_route_is_proxied(client, upstream_requests, upstream_response):
    upstream_response["factory"] = lambda: upstream_reply(
        headers={"content-type": "application/octet-stream", "content-disposition": "attachment"},
        body=b"\x00\x01binary",
    )

    response = client.get("/dl/token-123")

    assert str(upstream_requests[0].url) == "http://localhost:3000/dl/token-123"
    assert response.content == b"\x00\x01binary"
    assert response.headers["content-disposition"] == "attachment"


def test_upstream_status_relayed(client, upstream_response):
    upstream_response["factory"] = lambda: upstream_reply(
        404,
        headers={"content-type": "application/json"},
        body=b'{"error": "Estimate not found"}',
    )

    response = client.get("/api/estimates/99/with-project")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "Estimate not found"}


# ============================================================================
# Observer Tests
# ============================================================================

def test_set_cookie_logged_for_api_only(client, caplog):
    caplog.set_level(logging.INFO, logger="devproxy.proxy.rules")

    client.get("/share/xyz")
    assert "[Proxy] Set-Cookie" not in caplog.text

    client.get("/api/foo")
    assert "[Proxy] Set-Cookie" in caplog.text


def test_observer_does_not_alter_response(mock_settings, transport):
    calls = []
    rules = RuleTable([
        RouteRule(prefix="/api", target="http://localhost:3000", on_response=lambda rule, resp: calls.append(resp.status_code)),
    ])
    app = create_app(settings=mock_settings, rules=rules, transport=transport)

    with TestClient(app) as test_client:
        response = test_client.get("/api/foo")

    assert calls == [200]
    assert response.json() == {"ok": True}


# ============================================================================
# Error Handling Tests
# ============================================================================

def test_unmatched_path_is_not_proxied(client, upstream_requests):
    response = client.get("/assets/app.js")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert upstream_requests == []


def test_health_is_not_proxied(client, upstream_requests):
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["upstream"] == "http://localhost:3000"
    assert upstream_requests == []


def test_upstream_connection_refused_is_bad_gateway(mock_settings):
    attempts = []

    def refuse(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("Connection refused", request=request)

    app = create_app(settings=mock_settings, transport=httpx.MockTransport(refuse))

    with TestClient(app) as test_client:
        response = test_client.get("/api/foo")

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert len(attempts) == 1


def test_upstream_timeout_is_gateway_timeout(mock_settings):
    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    app = create_app(settings=mock_settings, transport=httpx.MockTransport(stall))

    with TestClient(app) as test_client:
        response = test_client.get("/api/foo")

    assert response.status_code == status.HTTP_504_GATEWAY_TIMEOUT


class TrackedStream(httpx.AsyncByteStream):
    def __init__(self, body: bytes):
        self.body = body
        self.closed = False

    async def __aiter__(self):
        yield self.body

    async def aclose(self):
        self.closed = True


def test_upstream_response_closed_when_observer_fails(mock_settings):
    stream = TrackedStream(b'{"ok": true}')

    def reply(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "application/json"}, stream=stream)

    def broken_observer(rule, response):
        raise RuntimeError("observer failed")

    rules = RuleTable([RouteRule(prefix="/api", target="http://localhost:3000", on_response=broken_observer)])
    app = create_app(settings=mock_settings, rules=rules, transport=httpx.MockTransport(reply))

    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.get("/api/foo")

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert stream.closed is True
