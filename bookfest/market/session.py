from __future__ import annotations

import sys
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter

from bookfest.config import (
    CONCURRENCY,
    GRAPHQL_URL,
    MARKET_URL,
    REQUEST_TIMEOUT,
    USER_AGENT,
    XSRF_COOKIE,
)

from .errors import SessionError


@dataclass(frozen=True)
class MarketSession:
    """
    Everything the client needs to talk to the GraphQL API.

    Returned by establish() and passed explicitly into every client call.
    """

    http: requests.Session
    xsrf_token: str
    graphql_url: str = GRAPHQL_URL
    timeout: float = REQUEST_TIMEOUT


def _mount_pool(http: requests.Session, pool_size: int) -> None:
    # Every worker thread holds one connection; the default pool keeps 10.
    size = max(1, int(pool_size))
    adapter = HTTPAdapter(pool_connections=1, pool_maxsize=size)
    http.mount("https://", adapter)
    http.mount("http://", adapter)


def _find_cookie(http: requests.Session, name: str) -> str:
    token = ""
    for cookie in http.cookies:
        if cookie.name == name and cookie.value:
            token = cookie.value
    return token


def establish(
    *,
    market_url: str = MARKET_URL,
    graphql_url: str = GRAPHQL_URL,
    timeout: float = REQUEST_TIMEOUT,
    pool_size: int = CONCURRENCY,
    http: requests.Session | None = None,
) -> MarketSession:
    """
    HEAD the market page so the site sets its XSRF-TOKEN cookie, then hand
    back a session carrying that token.
    """
    if http is None:
        http = requests.Session()
        http.headers["user-agent"] = USER_AGENT
    _mount_pool(http, pool_size)

    try:
        resp = http.head(market_url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        raise SessionError(f"[session] HEAD {market_url} failed: {exc}") from exc

    token = _find_cookie(http, XSRF_COOKIE)
    if not token:
        raise SessionError(
            f"[session] {market_url} answered status={resp.status_code} without a {XSRF_COOKIE} cookie"
        )

    print(f"[session] {XSRF_COOKIE} acquired from {market_url}", file=sys.stderr)
    return MarketSession(http=http, xsrf_token=token, graphql_url=graphql_url, timeout=timeout)
