"""
Unit Tests for the Proxy Rule Table and Cookie Rewriting
=========================================================

Tests for devproxy/app/proxy/rules.py and devproxy/app/proxy/cookies.py

Run tests:
----------
    pytest devproxy/app/tests/test_proxy_rules.py -v
"""

import dataclasses
import logging

import httpx
import pytest

from devproxy.app.config import Settings
from devproxy.app.proxy.cookies import (
    rewrite_cookie_domain,
    rewrite_cookie_path,
    rewrite_set_cookie,
)
from devproxy.app.proxy.rules import RouteRule, RuleTable, default_rules, log_set_cookies


@pytest.fixture
def settings():
    return Settings(UPSTREAM_URL="http://localhost:3000", COOKIE_DOMAIN_REWRITE="localhost")


@pytest.fixture
def rules(settings):
    return default_rules(settings)


# ============================================================================
# Rule Table Tests
# ============================================================================

def test_default_rules_are_declared_in_order(rules):
    assert [rule.prefix for rule in rules] == ["/api", "/share", "/dl"]
    assert all(rule.target == "http://localhost:3000" for rule in rules)


def test_api_rule_policy(rules):
    api = rules.match("/api/estimates/5/with-project")

    assert api.prefix == "/api"
    assert api.cookie_domain_rewrite == "localhost"
    assert api.cookie_path_rewrite == "/"
    assert api.change_origin is False
    assert api.secure is False
    assert api.ws is True
    assert api.on_response is log_set_cookies


@pytest.mark.parametrize("path,prefix", [("/share/xyz", "/share"), ("/dl/abc123", "/dl")])
def test_share_and_download_rules_policy(rules, path, prefix):
    rule = rules.match(path)

    assert rule.prefix == prefix
    assert rule.cookie_domain_rewrite == "localhost"
    assert rule.cookie_path_rewrite is None
    assert rule.change_origin is False
    assert rule.ws is False
    assert rule.on_response is None


def test_unmatched_path_returns_none(rules):
    assert rules.match("/") is None
    assert rules.match("/assets/app.js") is None


def test_longest_prefix_wins_regardless_of_order():
    table = RuleTable([
        RouteRule(prefix="/api", target="http://a"),
        RouteRule(prefix="/api/v2", target="http://b"),
    ])

    assert table.match("/api/v2/items").target == "http://b"
    assert table.match("/api/v1/items").target == "http://a"


def test_rules_are_immutable(rules):
    with pytest.raises(dataclasses.FrozenInstanceError):
        rules.rules[0].ws = False


def test_api_observer_can_be_replaced(settings):
    seen = []
    table = default_rules(settings, api_observer=lambda rule, response: seen.append(rule.prefix))

    table.match("/api/x").on_response(table.match("/api/x"), httpx.Response(200))

    assert seen == ["/api"]
    assert table.match("/share/x").on_response is None


def test_log_set_cookies_logs_values(rules, caplog):
    caplog.set_level(logging.INFO, logger="devproxy.proxy.rules")
    response = httpx.Response(200, headers=[("set-cookie", "sid=abc; Path=/api")])

    log_set_cookies(rules.match("/api"), response)

    assert "[Proxy] Set-Cookie:" in caplog.text
    assert "sid=abc; Path=/api" in caplog.text


def test_log_set_cookies_silent_without_cookies(rules, caplog):
    caplog.set_level(logging.INFO, logger="devproxy.proxy.rules")

    log_set_cookies(rules.match("/api"), httpx.Response(204))

    assert "Set-Cookie" not in caplog.text


# ============================================================================
# Cookie Rewrite Tests
# ============================================================================

def test_domain_rewrite_replaces_any_domain():
    header = "sid=abc; Domain=api.alternaview.test; Path=/api; HttpOnly"

    assert rewrite_cookie_domain(header, "localhost") == "sid=abc; Domain=localhost; Path=/api; HttpOnly"


def test_path_rewrite_is_case_insensitive():
    header = "sid=abc; path=/api/auth; Secure"

    assert rewrite_cookie_path(header, "/") == "sid=abc; path=/; Secure"


def test_cookie_without_attribute_is_untouched():
    header = "sid=abc; HttpOnly"

    assert rewrite_set_cookie(header, domain_rewrite="localhost", path_rewrite="/") == header


def test_empty_rewrite_removes_attribute():
    header = "sid=abc; Domain=example.com; Path=/"

    assert rewrite_cookie_domain(header, "") == "sid=abc; Path=/"


def test_mapping_rewrite_only_touches_listed_domains():
    mapping = {"api.example.com": "localhost"}

    assert rewrite_cookie_domain("a=1; Domain=api.example.com", mapping) == "a=1; Domain=localhost"
    assert rewrite_cookie_domain("a=1; Domain=cdn.example.com", mapping) == "a=1; Domain=cdn.example.com"


def test_none_rewrite_leaves_path_alone():
    header = "sid=abc; Domain=example.com; Path=/share"

    assert rewrite_set_cookie(header, domain_rewrite="localhost", path_rewrite=None) == (
        "sid=abc; Domain=localhost; Path=/share"
    )
