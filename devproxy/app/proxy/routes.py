"""
Proxy Routes - Upstream Request Forwarding
==========================================

Catch-all HTTP and WebSocket endpoints that forward requests matching a rule
prefix to the rule's upstream origin.

Forwarding Model:
-----------------
1. The request path is matched against the app's RuleTable
2. Method, path, query string and body are forwarded unchanged
3. Host/Origin are kept as sent unless the rule sets change_origin
4. Hop-by-hop headers are dropped in both directions
5. Set-Cookie Domain/Path attributes are rewritten per rule
6. The rule's observer (if any) sees every upstream response
7. Upstream failures are reported once; there is no retry
"""

import logging
from typing import Dict, List, Tuple

import httpx
from fastapi import APIRouter, HTTPException, Request, WebSocket, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from .cookies import rewrite_set_cookie
from .rules import RouteRule
from .ws import forward_websocket, raw_request_target

logger = logging.getLogger("devproxy.proxy.routes")

proxy_router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


# ============================================================================
# Request Helpers
# ============================================================================

def build_target_url(rule: RouteRule, path: str, query: str = "") -> str:
    """
    Construct the upstream URL for a request.

    The path and query string are forwarded unchanged.
    """
    url = f"{rule.target}{path}"
    if query:
        url = f"{url}?{query}"
    return url


def build_upstream_headers(rule: RouteRule, headers: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """
    Prepare headers for forwarding to the upstream.

    Args:
        rule: Matched rule
        headers: Inbound request headers as (name, value) pairs

    Returns:
        Header pairs with hop-by-hop headers removed and Host/Origin rewritten
        when the rule sets change_origin
    """
    target_host = httpx.URL(rule.target).netloc.decode("ascii")
    forwarded = []

    for name, value in headers:
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS or name_lower == "content-length":
            continue
        if rule.change_origin and name_lower == "host":
            value = target_host
        elif rule.change_origin and name_lower == "origin":
            value = rule.target
        forwarded.append((name, value))

    return forwarded


def build_client_headers(rule: RouteRule, response: httpx.Response) -> List[Tuple[str, str]]:
    """
    Prepare upstream response headers for the client.

    Drops hop-by-hop headers and rewrites every Set-Cookie value.
    """
    relayed = []
    for name, value in response.headers.multi_items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS:
            continue
        if name_lower == "set-cookie":
            value = rewrite_set_cookie(
                value,
                domain_rewrite=rule.cookie_domain_rewrite,
                path_rewrite=rule.cookie_path_rewrite,
            )
        relayed.append((name, value))
    return relayed


# ============================================================================
# Dependencies
# ============================================================================

def resolve_rule(request: Request) -> RouteRule:
    """Match the request path against the app's rule table."""
    rule = request.app.state.rule_table.match(request.url.path)
    if rule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No proxy rule matches {request.url.path}",
        )
    return rule


def get_http_client(request: Request, rule: RouteRule) -> httpx.AsyncClient:
    """
    Get the upstream HTTP client for the rule's TLS verification mode.

    Raises:
        HTTPException: If the clients were not created at startup
    """
    clients: Dict[bool, httpx.AsyncClient] = getattr(request.app.state, "http_clients", None)
    if not clients:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upstream client not initialized",
        )
    return clients[rule.secure]


# ============================================================================
# Forwarding
# ============================================================================

async def forward_http(request: Request, rule: RouteRule) -> StreamingResponse:
    """
    Forward an HTTP request to the rule's upstream and stream the reply back.

    Raises:
        HTTPException: 502 when the upstream cannot be reached, 504 on timeout
    """
    client = get_http_client(request, rule)
    target_url = build_target_url(rule, *raw_request_target(request.scope))
    headers = build_upstream_headers(rule, request.headers.items())
    body = await request.body()

    logger.debug(f"Proxying {request.method} {request.url.path} -> {target_url}")

    upstream_request = client.build_request(
        method=request.method,
        url=target_url,
        headers=headers,
        content=body,
    )

    try:
        response = await client.send(upstream_request, stream=True)

    except httpx.TimeoutException as e:
        logger.error(f"Proxy timeout for {target_url}: {e}", extra={"prefix": rule.prefix})
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Gateway timeout",
        )

    except httpx.RequestError as e:
        logger.error(f"Failed to connect to upstream {target_url}: {e}", extra={"prefix": rule.prefix})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Bad gateway - cannot connect to upstream",
        )

    try:
        if rule.on_response is not None:
            rule.on_response(rule, response)

        proxied = StreamingResponse(
            response.aiter_raw(),
            status_code=response.status_code,
            background=BackgroundTask(response.aclose),
        )
        for name, value in build_client_headers(rule, response):
            proxied.headers.append(name, value)

    except Exception:
        # Nothing will stream the body, so release the upstream connection here
        await response.aclose()
        raise

    return proxied


# ============================================================================
# Proxy Endpoints
# ============================================================================

@proxy_router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_http(request: Request, path: str):
    """Catch-all route that proxies matched requests to the upstream."""
    rule = resolve_rule(request)
    return await forward_http(request, rule)


@proxy_router.websocket("/{path:path}")
async def proxy_websocket(websocket: WebSocket, path: str):
    """
    Catch-all WebSocket route.

    Only rules with ws enabled bridge the upgrade; every other handshake is
    refused before it is accepted.
    """
    rule = websocket.app.state.rule_table.match(websocket.url.path)

    if rule is None or not rule.ws:
        logger.info(
            "Refusing WebSocket upgrade",
            extra={"path": websocket.url.path, "prefix": rule.prefix if rule else None},
        )
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await forward_websocket(websocket, rule)
