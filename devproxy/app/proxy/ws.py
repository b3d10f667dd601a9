"""
WebSocket Upgrade Bridging
==========================

Bridges an accepted client WebSocket to the upstream origin for rules that
allow upgrades.

Flow:
    1. Open the upstream WebSocket first (cookies and Origin forwarded)
    2. Refuse the client handshake if the upstream cannot be reached
    3. Accept the client with the subprotocol the upstream negotiated
    4. Pump frames in both directions until either side closes
"""

import asyncio
import logging
import ssl
from typing import Any, Dict, List, Optional, Tuple

from fastapi import WebSocket, WebSocketDisconnect, status
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from .rules import RouteRule

logger = logging.getLogger("devproxy.proxy.ws")

# Handshake headers copied to the upstream; websockets generates the rest
FORWARDED_WS_HEADERS = {"cookie", "authorization"}

# Close codes that must not be sent in a close frame
RESERVED_CLOSE_CODES = {1005, 1006, 1015}


def raw_request_target(scope) -> Tuple[str, str]:
    """
    Path and query string exactly as the client sent them.

    Starlette percent-decodes scope["path"], which would turn an encoded
    "%3F" or "%2F" into a real separator once re-parsed upstream.
    """
    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else scope["path"]
    return path, scope.get("query_string", b"").decode("latin-1")


def build_websocket_url(rule: RouteRule, path: str, query: str = "") -> str:
    """Map the rule's http(s) origin to ws(s) and append path and query."""
    target = rule.target
    if target.startswith("https://"):
        target = "wss://" + target[len("https://"):]
    elif target.startswith("http://"):
        target = "ws://" + target[len("http://"):]

    url = f"{target}{path}"
    if query:
        url = f"{url}?{query}"
    return url


def build_connect_options(rule: RouteRule, websocket: WebSocket, url: str) -> Dict[str, Any]:
    """
    Collect keyword arguments for the upstream websockets connect() call.
    """
    headers: List[Tuple[str, str]] = [
        (name, value)
        for name, value in websocket.headers.items()
        if name.lower() in FORWARDED_WS_HEADERS
    ]

    origin: Optional[str] = websocket.headers.get("origin")
    if rule.change_origin and origin:
        origin = rule.target

    options: Dict[str, Any] = {
        "additional_headers": headers,
        "origin": origin,
        "subprotocols": websocket.scope.get("subprotocols") or None,
    }

    if url.startswith("wss://") and not rule.secure:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        options["ssl"] = context

    return options


async def _client_to_upstream(websocket: WebSocket, upstream) -> None:
    while True:
        message = await websocket.receive()

        if message["type"] == "websocket.disconnect":
            code = message.get("code", status.WS_1000_NORMAL_CLOSURE)
            if code in RESERVED_CLOSE_CODES:
                code = status.WS_1000_NORMAL_CLOSURE
            await upstream.close(code=code)
            return

        if message.get("text") is not None:
            await upstream.send(message["text"])
        elif message.get("bytes") is not None:
            await upstream.send(message["bytes"])


async def _upstream_to_client(websocket: WebSocket, upstream) -> None:
    try:
        async for message in upstream:
            if isinstance(message, str):
                await websocket.send_text(message)
            else:
                await websocket.send_bytes(message)
    except ConnectionClosed as e:
        logger.debug(f"Upstream WebSocket closed: {e}")

    code = upstream.close_code
    if code is None or code in RESERVED_CLOSE_CODES:
        code = status.WS_1000_NORMAL_CLOSURE if code is None else status.WS_1011_INTERNAL_ERROR

    await websocket.close(code=code)


async def forward_websocket(websocket: WebSocket, rule: RouteRule) -> None:
    """
    Bridge a client WebSocket to the rule's upstream.

    Args:
        websocket: Client WebSocket (not yet accepted)
        rule: Matched rule with ws enabled
    """
    url = build_websocket_url(rule, *raw_request_target(websocket.scope))
    options = build_connect_options(rule, websocket, url)

    try:
        upstream = await connect(url, **options)
    except (OSError, InvalidHandshake, InvalidURI, asyncio.TimeoutError) as e:
        logger.error(f"Failed to open upstream WebSocket {url}: {e}", extra={"prefix": rule.prefix})
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept(subprotocol=upstream.subprotocol)
    logger.info("WebSocket bridged", extra={"path": websocket.url.path, "upstream": url})

    tasks = [
        asyncio.create_task(_client_to_upstream(websocket, upstream)),
        asyncio.create_task(_upstream_to_client(websocket, upstream)),
    ]

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, (WebSocketDisconnect, ConnectionClosed)):
                logger.error(f"WebSocket bridge error: {error}", exc_info=error)

    finally:
        await upstream.close()
        logger.info("WebSocket bridge closed", extra={"path": websocket.url.path})
