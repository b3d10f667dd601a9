"""
Set-Cookie attribute rewriting.

Cookies issued by the upstream are scoped to the upstream's domain and paths.
The proxy rewrites the Domain and Path attributes so the browser stores them
against the local dev origin instead.
"""

import re
from typing import Dict, Mapping, Optional, Union

CookieRewrite = Union[str, Mapping[str, str]]


def _normalize(rewrite: CookieRewrite) -> Mapping[str, str]:
    if isinstance(rewrite, str):
        return {"*": rewrite}
    return rewrite


def rewrite_cookie_attribute(
    set_cookie: str,
    attribute: str,
    rewrite: Optional[CookieRewrite],
) -> str:
    """
    Rewrite one attribute of a single Set-Cookie header value.

    Args:
        set_cookie: Raw Set-Cookie header value
        attribute: Attribute name ("domain" or "path"), matched case-insensitively
        rewrite: Replacement value, or a mapping of old value -> new value where
                 "*" matches anything. An empty replacement removes the
                 attribute. None leaves the header untouched.

    Returns:
        The rewritten header value. Cookies without the attribute are
        returned unchanged.
    """
    if rewrite is None:
        return set_cookie

    table: Mapping[str, str] = _normalize(rewrite)
    pattern = re.compile(r"(;\s*" + re.escape(attribute) + r"=)([^;]+)", re.IGNORECASE)

    def replace(match: "re.Match[str]") -> str:
        prefix, previous = match.group(1), match.group(2)
        if previous in table:
            new_value = table[previous]
        elif "*" in table:
            new_value = table["*"]
        else:
            return match.group(0)
        if new_value:
            return prefix + new_value
        return ""

    return pattern.sub(replace, set_cookie, count=1)


def rewrite_cookie_domain(set_cookie: str, rewrite: Optional[CookieRewrite]) -> str:
    return rewrite_cookie_attribute(set_cookie, "domain", rewrite)


def rewrite_cookie_path(set_cookie: str, rewrite: Optional[CookieRewrite]) -> str:
    return rewrite_cookie_attribute(set_cookie, "path", rewrite)


def rewrite_set_cookie(
    set_cookie: str,
    domain_rewrite: Optional[CookieRewrite] = None,
    path_rewrite: Optional[CookieRewrite] = None,
) -> str:
    """Apply the domain rewrite, then the path rewrite."""
    value = rewrite_cookie_domain(set_cookie, domain_rewrite)
    return rewrite_cookie_path(value, path_rewrite)


def cookie_rewrite_summary(
    domain_rewrite: Optional[CookieRewrite],
    path_rewrite: Optional[CookieRewrite],
) -> Dict[str, Optional[str]]:
    """Flatten a rule's cookie policy for log records."""

    def describe(rewrite: Optional[CookieRewrite]) -> Optional[str]:
        if rewrite is None or isinstance(rewrite, str):
            return rewrite
        return ",".join(f"{old}->{new}" for old, new in rewrite.items())

    return {"cookie_domain": describe(domain_rewrite), "cookie_path": describe(path_rewrite)}
