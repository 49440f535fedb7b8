from __future__ import annotations

import re
import sys
from typing import Any, Dict, List, Tuple

import requests

from bookfest.config import XSRF_HEADER

from .errors import PayloadError, TransportError
from .models import Candidate, DetailRecord, Variant
from .queries import market_dashboard_query, product_info_query
from .session import MarketSession


def log(msg: str) -> None:
    print(f"[market] {msg}", file=sys.stderr)


def _safe_snippet(text: str, limit: int = 300) -> str:
    snippet = re.sub(r"\s+", " ", text or "").strip()
    if len(snippet) > limit:
        return snippet[:limit] + "..."
    return snippet


def _post_graphql(session: MarketSession, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    POST one GraphQL operation and return its `data` object.

    Exactly one round trip; nothing is retried.
    """
    op = payload.get("operationName") or "query"
    headers = {
        "content-type": "application/json",
        XSRF_HEADER: session.xsrf_token,
    }
    try:
        resp = session.http.post(
            session.graphql_url,
            json=payload,
            headers=headers,
            timeout=session.timeout,
        )
    except requests.RequestException as exc:
        raise TransportError(f"[market] {op} request failed: {exc}") from exc

    if resp.status_code != 200:
        raise TransportError(
            f"[market] {op} HTTP status {resp.status_code}: {_safe_snippet(resp.text)}",
            status_code=resp.status_code,
        )

    try:
        body = resp.json()
    except ValueError as exc:
        raise PayloadError(f"[market] {op} returned a non-JSON body: {_safe_snippet(resp.text)}") from exc

    if not isinstance(body, dict):
        raise PayloadError(f"[market] {op} returned {type(body).__name__}, expected an object")

    errors = body.get("errors")
    if errors:
        messages = [str(e.get("message") if isinstance(e, dict) else e) for e in errors]
        raise PayloadError(f"[market] {op} GraphQL errors: {'; '.join(messages)}")

    data = body.get("data")
    if not isinstance(data, dict):
        raise PayloadError(f"[market] {op} response has no data object")
    return data


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_dict(value: Any, what: str) -> Dict[str, Any]:
    """Nested GraphQL object: None reads as empty, any other non-object is a payload error."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PayloadError(f"[market] {what} is {type(value).__name__}, expected an object")
    return value


def _as_list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PayloadError(f"[market] {what} is {type(value).__name__}, expected a list")
    return value


def _parse_candidates(data: Dict[str, Any]) -> Tuple[List[Candidate], bool]:
    conn = data.get("allProductVariants")
    if not isinstance(conn, dict) or not isinstance(conn.get("nodes"), list):
        raise PayloadError("[market] MarketDashboardQuery response has no allProductVariants.nodes")

    candidates: List[Candidate] = []
    skipped = 0
    for node in conn["nodes"]:
        if not isinstance(node, dict):
            raise PayloadError(f"[market] unexpected listing node: {node!r}")
        products_conn = _as_dict(node.get("products"), "listing products")
        products = _as_list(products_conn.get("nodes"), "listing products.nodes")
        first = products[0] if products else None
        if not isinstance(first, dict) or not first.get("id"):
            skipped += 1
            continue
        candidates.append(Candidate(product_id=str(first["id"]), variant_id=str(node.get("id") or "")))

    if skipped:
        log(f"skipped {skipped} listing nodes without a product")

    has_next = bool(_as_dict(conn.get("pageInfo"), "pageInfo").get("hasNextPage"))
    return candidates, has_next


def _parse_variant(node: Any, product_id: str) -> Variant:
    if not isinstance(node, dict):
        raise PayloadError(f"[market] product {product_id} has a malformed variant: {node!r}")
    price = node.get("price")
    if isinstance(price, bool) or not isinstance(price, int):
        raise PayloadError(f"[market] product {product_id} variant has no integer price: {price!r}")
    return Variant(
        name=str(node.get("name") or ""),
        price=price,
        shipping_required=bool(node.get("marketShippingRequired")),
    )


def _parse_detail(data: Dict[str, Any], product_id: str) -> DetailRecord:
    product = data.get("product")
    if not isinstance(product, dict):
        raise PayloadError(f"[market] product {product_id} not found")

    key = product.get("databaseID")
    if not key:
        raise PayloadError(f"[market] product {product_id} has no databaseID")

    variants_conn = _as_dict(product.get("productVariants"), f"product {product_id} productVariants")
    variant_nodes = _as_list(variants_conn.get("nodes"), f"product {product_id} productVariants.nodes")
    variants = tuple(_parse_variant(node, product_id) for node in variant_nodes)
    organization = _as_dict(product.get("organization"), f"product {product_id} organization")

    return DetailRecord(
        product_key=str(key),
        name=str(product.get("name") or ""),
        organization=str(organization.get("name") or ""),
        event_name=str(product.get("firstAppearanceEventName") or ""),
        page_count=_coerce_int(product.get("page")),
        variants=variants,
        description=str(product.get("description") or ""),
    )


def list_candidates(session: MarketSession, page_size: int) -> List[Candidate]:
    """
    Fetch one page of market listings and return the products they point at.

    Only the first page is read; a truncated listing is logged, not followed.
    """
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    data = _post_graphql(session, market_dashboard_query(page_size))
    candidates, has_next = _parse_candidates(data)
    if has_next:
        log(f"listing has more than {page_size} entries; only the first page is used")
    log(f"listed {len(candidates)} candidates (page_size={page_size})")
    return candidates


def fetch_detail(session: MarketSession, product_id: str) -> DetailRecord:
    data = _post_graphql(session, product_info_query(product_id))
    return _parse_detail(data, product_id)
