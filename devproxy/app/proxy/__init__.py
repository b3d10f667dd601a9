"""
Proxy Package
=============

Rule-driven reverse proxy that forwards matched requests from the dev origin
to the upstream API server.

Main Components:
----------------
- rules.py: RouteRule records, RuleTable prefix matching, default dev rules
- cookies.py: Set-Cookie Domain/Path rewriting
- routes.py: catch-all HTTP and WebSocket endpoints
- ws.py: WebSocket upgrade bridging

Usage:
------
    from devproxy.app.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .routes import proxy_router
from .rules import RouteRule, RuleTable, default_rules, log_set_cookies

__all__ = ["proxy_router", "RouteRule", "RuleTable", "default_rules", "log_set_cookies"]
