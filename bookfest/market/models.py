"""
Marketplace records passed between the client, the aggregator and the reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

from bookfest.config import PRODUCT_URL_BASE


@dataclass(frozen=True)
class Candidate:
    """A product referenced from the market listing, awaiting its detail lookup."""

    product_id: str
    variant_id: str = ""


@dataclass(frozen=True)
class Variant:
    name: str
    price: int
    shipping_required: bool = False


@dataclass(frozen=True)
class DetailRecord:
    product_key: str
    name: str
    organization: str
    event_name: str
    page_count: int
    variants: Tuple[Variant, ...] = field(default_factory=tuple)
    description: str = ""

    @property
    def url(self) -> str:
        return PRODUCT_URL_BASE + self.product_key


@dataclass(frozen=True)
class DisplayEntry:
    """
    Report row for a product that has a free variant.

    price and shipping_required come from the first zero-price variant.
    """

    product_key: str
    name: str
    url: str
    organization: str
    price: int
    event_name: str
    page_count: int
    shipping_required: bool

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.organization, self.event_name, self.name)
