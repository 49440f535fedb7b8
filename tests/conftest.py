from __future__ import annotations

from typing import Callable, Sequence, Tuple

import pytest

from bookfest.market.models import Candidate, DetailRecord, Variant


def _make_record(
    key: str,
    *,
    prices: Sequence[int] = (0,),
    shipping: Sequence[bool] | None = None,
    name: str | None = None,
    organization: str = "Circle",
    event_name: str = "TBF1",
    page_count: int = 10,
) -> DetailRecord:
    shipping = list(shipping) if shipping is not None else [False] * len(prices)
    variants: Tuple[Variant, ...] = tuple(
        Variant(name=f"v{i}", price=price, shipping_required=ship)
        for i, (price, ship) in enumerate(zip(prices, shipping))
    )
    return DetailRecord(
        product_key=key,
        name=name if name is not None else f"Book {key}",
        organization=organization,
        event_name=event_name,
        page_count=page_count,
        variants=variants,
    )


@pytest.fixture()
def make_record() -> Callable[..., DetailRecord]:
    """Factory for DetailRecord fixtures; prices default to one free variant."""
    return _make_record


@pytest.fixture()
def candidates_for() -> Callable[..., list]:
    def build(*product_ids: str) -> list:
        return [Candidate(product_id=pid, variant_id=f"ProductVariant:{pid}") for pid in product_ids]

    return build
