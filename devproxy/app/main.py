"""
FastAPI Dev Proxy Application Factory
=====================================

Entry point for the development proxy that sits in front of the local API
server while the front end is being developed.

Architecture:
    Browser → Dev Proxy (this service) → API server (studio_api)

Routes:
    - /health       : Health check endpoint (never proxied)
    - /api/*        : Proxied, cookie Domain+Path rewritten, WebSocket upgrades bridged
    - /share/*      : Proxied, cookie Domain rewritten
    - /dl/*         : Proxied, cookie Domain rewritten

Environment Variables:
    - UPSTREAM_URL: API server origin (default: http://localhost:3000)
    - COOKIE_DOMAIN_REWRITE: Cookie domain for relayed cookies (default: localhost)
    - PROXY_TIMEOUT: Upstream timeout in seconds (default: 300)
    - PROXY_HOST / PROXY_PORT: Bind address (default: 127.0.0.1:5173)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    uvicorn devproxy.app.main:app --reload --port 5173
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from devproxy.app.config import Settings, get_settings
from devproxy.app.proxy import RuleTable, default_rules, proxy_router
from devproxy.app.proxy.cookies import cookie_rewrite_summary


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def create_http_clients(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[bool, httpx.AsyncClient]:
    """
    Create one upstream client per TLS verification mode.

    Redirects are relayed to the browser, never followed.
    """
    return {
        verify: httpx.AsyncClient(
            timeout=httpx.Timeout(settings.PROXY_TIMEOUT),
            follow_redirects=False,
            verify=verify,
            transport=transport,
        )
        for verify in (True, False)
    }


def create_app(
    settings: Optional[Settings] = None,
    rules: Optional[RuleTable] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Proxy settings (defaults to environment)
        rules: Rule table (defaults to the dev rules built from settings)
        transport: Optional httpx transport for the upstream clients

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    rule_table = rules if rules is not None else default_rules(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)
        logger = logging.getLogger("devproxy.main")

        app.state.http_clients = create_http_clients(settings, transport)

        for rule in rule_table:
            logger.info(
                f"Proxy rule {rule.prefix} -> {rule.target}",
                extra={
                    "ws": rule.ws,
                    "change_origin": rule.change_origin,
                    "secure": rule.secure,
                    **cookie_rewrite_summary(rule.cookie_domain_rewrite, rule.cookie_path_rewrite),
                },
            )

        yield

        for client in app.state.http_clients.values():
            await client.aclose()
        app.state.http_clients = {}
        logger.info("Dev proxy shutdown complete")

    app = FastAPI(
        title="AlternaView Dev Proxy",
        description="Development reverse proxy for the API server",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.rule_table = rule_table

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "ok",
            "service": "devproxy",
            "upstream": settings.upstream_url_str,
        }

    app.include_router(proxy_router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger = logging.getLogger("devproxy.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={"error": "internal_server_error", "message": "An unexpected error occurred"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "devproxy.app.main:app",
        host=settings.PROXY_HOST,
        port=settings.PROXY_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
