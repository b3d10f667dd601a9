"""
Proxy Rule Table
================

Ordered, immutable rules mapping inbound path prefixes to an upstream origin.

Each rule carries its own forwarding policy:
    - cookie Domain / Path rewriting for relayed Set-Cookie headers
    - Host/Origin rewriting (change_origin)
    - TLS certificate verification (secure)
    - WebSocket upgrade support (ws)
    - an optional observer called with every upstream response

The table is built once when the app is created and is never mutated.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

import httpx

from ..config import Settings
from .cookies import CookieRewrite

logger = logging.getLogger("devproxy.proxy.rules")

ResponseObserver = Callable[["RouteRule", httpx.Response], None]


@dataclass(frozen=True)
class RouteRule:
    """
    A single forwarding rule.

    Attributes:
        prefix: Path prefix this rule claims (e.g. "/api")
        target: Upstream origin, without trailing slash
        cookie_domain_rewrite: Domain written into relayed Set-Cookie headers
        cookie_path_rewrite: Path written into relayed Set-Cookie headers
        change_origin: Replace Host/Origin with the upstream origin
        secure: Verify the upstream's TLS certificate
        ws: Bridge WebSocket upgrade requests
        on_response: Observer called with each upstream response
    """

    prefix: str
    target: str
    cookie_domain_rewrite: Optional[CookieRewrite] = None
    cookie_path_rewrite: Optional[CookieRewrite] = None
    change_origin: bool = False
    secure: bool = True
    ws: bool = False
    on_response: Optional[ResponseObserver] = None

    def matches(self, path: str) -> bool:
        return path.startswith(self.prefix)


class RuleTable:
    """
    Ordered rule set evaluated by prefix match.

    The longest matching prefix wins; among equal-length prefixes the one
    declared first wins.
    """

    def __init__(self, rules: Iterable[RouteRule]):
        self._rules: Tuple[RouteRule, ...] = tuple(rules)

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> Tuple[RouteRule, ...]:
        return self._rules

    def match(self, path: str) -> Optional[RouteRule]:
        best: Optional[RouteRule] = None
        for rule in self._rules:
            if rule.matches(path) and (best is None or len(rule.prefix) > len(best.prefix)):
                best = rule
        return best


def log_set_cookies(rule: RouteRule, response: httpx.Response) -> None:
    """
    Observer that logs Set-Cookie headers sent by the upstream.

    Only logs; the response is relayed unchanged.
    """
    set_cookie = response.headers.get_list("set-cookie")
    if set_cookie:
        logger.info(
            f"[Proxy] Set-Cookie: {set_cookie}",
            extra={"prefix": rule.prefix, "status_code": response.status_code},
        )


def default_rules(
    settings: Settings,
    api_observer: Optional[ResponseObserver] = log_set_cookies,
) -> RuleTable:
    """
    Build the dev rule table: /api, /share and /dl forwarded to the upstream.

    Args:
        settings: Proxy settings (upstream origin, cookie domain)
        api_observer: Observer attached to the /api rule

    Returns:
        RuleTable with the three dev rules in declaration order
    """
    target = settings.upstream_url_str
    domain = settings.COOKIE_DOMAIN_REWRITE

    return RuleTable([
        RouteRule(
            prefix="/api",
            target=target,
            cookie_domain_rewrite=domain,
            cookie_path_rewrite="/",
            change_origin=False,
            secure=False,
            ws=True,
            on_response=api_observer,
        ),
        RouteRule(
            prefix="/share",
            target=target,
            cookie_domain_rewrite=domain,
            change_origin=False,
        ),
        RouteRule(
            prefix="/dl",
            target=target,
            cookie_domain_rewrite=domain,
            change_origin=False,
        ),
    ])
