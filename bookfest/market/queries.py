"""
GraphQL operations sent to the marketplace API.

Only the fields the catalog needs are selected; the web front end asks for
thumbnails, recommendations and purchase state on top of these.
"""

from __future__ import annotations

from typing import Any, Dict

from bookfest.config import VARIANTS_PER_PRODUCT

MARKET_DASHBOARD_QUERY = """
query MarketDashboardQuery($first: Int!, $after: String) {
  allProductVariants: productVariants(first: $first, after: $after, input: {route: "market"}) {
    pageInfo {
      hasNextPage
      endCursor
      __typename
    }
    nodes {
      id
      products(first: 1) {
        nodes {
          id
          databaseID
          name
          __typename
        }
        __typename
      }
      __typename
    }
    __typename
  }
}
"""

PRODUCT_INFO_QUERY = """
query ProductInfoQuery($productInfoID: ID!) {
  product(id: $productInfoID) {
    id
    databaseID
    name
    description
    page
    firstAppearanceEventName
    organization {
      id
      name
      __typename
    }
    productVariants(first: %d, input: {route: "market"}) {
      nodes {
        id
        name
        price
        marketShippingRequired
        __typename
      }
      __typename
    }
    __typename
  }
}
""" % VARIANTS_PER_PRODUCT


def market_dashboard_query(first: int, after: str | None = None) -> Dict[str, Any]:
    return {
        "operationName": "MarketDashboardQuery",
        "variables": {"first": int(first), "after": after},
        "query": MARKET_DASHBOARD_QUERY,
    }


def product_info_query(product_id: str) -> Dict[str, Any]:
    return {
        "operationName": "ProductInfoQuery",
        "variables": {"productInfoID": product_id},
        "query": PRODUCT_INFO_QUERY,
    }
