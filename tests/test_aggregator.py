"""
tests/test_aggregator.py

Unit tests for the bounded fan-out aggregator.

All detail lookups are in-process stubs; no network.

Coverage
--------
- Free-variant filter (first zero-price variant, no free variant)
- Dedup by product key, including completion-order independence
- Report ordering (organization, event, name; byte-wise)
- Concurrency cap, C=1 vs C=50 equivalence, idempotence
- First-error propagation and stop-after-error
- External cancellation
- Progress reporting
"""

from __future__ import annotations

import threading
import time

import pytest

from bookfest.market.aggregator import (
    FreeBookAggregator,
    _RunState,
    collect_free_books,
    free_entry,
    order_report,
)
from bookfest.market.errors import AggregationCancelled, TransportError
from bookfest.market.models import DisplayEntry
from bookfest.reports.table import render


def _stub(records):
    """fetch_detail stub backed by a dict product_id -> DetailRecord."""
    calls = []
    lock = threading.Lock()

    def fetch(product_id):
        with lock:
            calls.append(product_id)
        value = records[product_id]
        if isinstance(value, BaseException):
            raise value
        return value

    fetch.calls = calls
    return fetch


# ---------------------------------------------------------------------------
# free_entry
# ---------------------------------------------------------------------------


class TestFreeEntry:
    def test_no_zero_price_variant_gives_none(self, make_record) -> None:
        assert free_entry(make_record("1", prices=(500, 1000))) is None

    def test_no_variants_gives_none(self, make_record) -> None:
        assert free_entry(make_record("1", prices=())) is None

    def test_uses_first_zero_price_variant(self, make_record) -> None:
        record = make_record("42", prices=(800, 0, 0), shipping=(False, True, False))
        entry = free_entry(record)
        assert entry is not None
        assert entry.price == 0
        assert entry.shipping_required is True

    def test_projects_record_fields(self, make_record) -> None:
        record = make_record(
            "5712",
            name="Go Concurrency",
            organization="gophers",
            event_name="TBF14",
            page_count=88,
        )
        entry = free_entry(record)
        assert entry == DisplayEntry(
            product_key="5712",
            name="Go Concurrency",
            url="https://techbookfest.org/product/5712",
            organization="gophers",
            price=0,
            event_name="TBF14",
            page_count=88,
            shipping_required=False,
        )


# ---------------------------------------------------------------------------
# order_report
# ---------------------------------------------------------------------------


class TestOrderReport:
    def test_sorts_by_organization_event_then_name(self, make_record) -> None:
        entries = [
            free_entry(make_record("1", organization="b", event_name="e1", name="x")),
            free_entry(make_record("2", organization="a", event_name="e2", name="a")),
            free_entry(make_record("3", organization="a", event_name="e1", name="z")),
            free_entry(make_record("4", organization="a", event_name="e1", name="m")),
        ]
        ordered = order_report(entries)
        assert [e.product_key for e in ordered] == ["4", "3", "2", "1"]

    def test_comparison_is_case_sensitive(self, make_record) -> None:
        entries = [
            free_entry(make_record("1", organization="beta")),
            free_entry(make_record("2", organization="alpha")),
            free_entry(make_record("3", organization="Alpha")),
        ]
        assert [e.organization for e in order_report(entries)] == ["Alpha", "alpha", "beta"]

    def test_non_ascii_sorts_by_code_point(self, make_record) -> None:
        entries = [
            free_entry(make_record("1", organization="技術")),
            free_entry(make_record("2", organization="zeta")),
            free_entry(make_record("3", organization="かな")),
        ]
        assert [e.organization for e in order_report(entries)] == ["zeta", "かな", "技術"]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class TestCollectFreeBooks:
    def test_shared_key_and_paid_record_example(self, make_record, candidates_for) -> None:
        fetch = _stub(
            {
                "A": make_record("k1", prices=(0,)),
                "B": make_record("k2", prices=(300,)),
                "C": make_record("k1", prices=(0,)),
            }
        )
        report = collect_free_books(candidates_for("A", "B", "C"), fetch, concurrency=3)
        assert len(report) == 1
        assert report[0].product_key == "k1"
        assert sorted(fetch.calls) == ["A", "B", "C"]

    def test_empty_candidates(self) -> None:
        assert collect_free_books([], _stub({}), concurrency=4) == []

    def test_duplicate_key_keeps_earliest_candidate(self, make_record, candidates_for) -> None:
        first = make_record("k", name="first")
        second = make_record("k", name="second")

        def fetch(product_id):
            if product_id == "p0":
                time.sleep(0.05)
                return first
            return second

        report = collect_free_books(candidates_for("p0", "p1"), fetch, concurrency=2)
        assert [e.name for e in report] == ["first"]

    def test_output_is_sorted(self, make_record, candidates_for) -> None:
        records = {
            f"p{i}": make_record(f"k{i}", organization=f"org{(i * 7) % 5}", event_name=f"ev{i % 3}", name=f"n{i}")
            for i in range(30)
        }
        report = collect_free_books(candidates_for(*records), _stub(records), concurrency=8)
        keys = [e.sort_key() for e in report]
        assert keys == sorted(keys)
        assert len(report) == 30

    def test_cap_one_and_fifty_render_identically(self, make_record, candidates_for) -> None:
        records = {}
        for i in range(60):
            prices = (0,) if i % 3 else (100, 200)
            records[f"p{i}"] = make_record(f"k{i % 45}", prices=prices, organization=f"o{i % 4}", name=f"t{i}")
        candidates = candidates_for(*records)

        def jittery(product_id):
            time.sleep((hash(product_id) % 5) / 1000.0)
            return records[product_id]

        serial = collect_free_books(candidates, jittery, concurrency=1)
        parallel = collect_free_books(candidates, jittery, concurrency=50)
        assert render(serial) == render(parallel)

    def test_repeated_runs_are_identical(self, make_record, candidates_for) -> None:
        records = {f"p{i}": make_record(f"k{i % 4}", organization=f"o{i % 2}") for i in range(12)}
        aggregator = FreeBookAggregator(_stub(records), concurrency=5)
        assert aggregator.run(candidates_for(*records)) == aggregator.run(candidates_for(*records))

    def test_in_flight_lookups_never_exceed_cap(self, make_record, candidates_for) -> None:
        lock = threading.Lock()
        active = {"now": 0, "peak": 0}

        def fetch(product_id):
            with lock:
                active["now"] += 1
                active["peak"] = max(active["peak"], active["now"])
            time.sleep(0.01)
            with lock:
                active["now"] -= 1
            return make_record(product_id)

        ids = [f"p{i}" for i in range(25)]
        report = collect_free_books(candidates_for(*ids), fetch, concurrency=3)
        assert len(report) == 25
        assert 1 <= active["peak"] <= 3

    def test_rejects_non_positive_concurrency(self) -> None:
        with pytest.raises(ValueError):
            FreeBookAggregator(_stub({}), concurrency=0)


# ---------------------------------------------------------------------------
# Failure and cancellation
# ---------------------------------------------------------------------------


class TestFailurePropagation:
    def test_single_failure_fails_the_run(self, make_record, candidates_for) -> None:
        boom = TransportError("[market] ProductInfoQuery HTTP status 500", status_code=500)
        records = {f"p{i}": make_record(f"k{i}") for i in range(10)}
        records["p6"] = boom
        with pytest.raises(TransportError) as excinfo:
            collect_free_books(candidates_for(*records), _stub(records), concurrency=4)
        assert excinfo.value is boom

    def test_no_new_lookups_after_first_error(self, make_record, candidates_for) -> None:
        records = {f"p{i}": make_record(f"k{i}") for i in range(5)}
        records["p0"] = RuntimeError("first")
        fetch = _stub(records)
        with pytest.raises(RuntimeError, match="first"):
            collect_free_books(candidates_for(*records), fetch, concurrency=1)
        assert fetch.calls == ["p0"]

    def test_worker_exit_fails_the_run(self, make_record, candidates_for) -> None:
        records = {f"p{i}": make_record(f"k{i}") for i in range(3)}
        records["p1"] = SystemExit("worker died")
        with pytest.raises(SystemExit, match="worker died"):
            collect_free_books(candidates_for(*records), _stub(records), concurrency=2)

    def test_first_recorded_error_wins(self) -> None:
        state = _RunState(total=2, cancel_event=None)
        first, later = ValueError("first"), ValueError("later")
        state.fail(first)
        state.fail(later)
        assert state.error is first
        assert state.cancelled()

    def test_progress_callback_errors_surface(self, make_record, candidates_for) -> None:
        def on_progress(completed, total):
            raise RuntimeError("progress broke")

        with pytest.raises(RuntimeError, match="progress broke"):
            collect_free_books(
                candidates_for("p0"),
                _stub({"p0": make_record("k0")}),
                concurrency=1,
                on_progress=on_progress,
            )


class TestCancellation:
    def test_pre_cancelled_run_fetches_nothing(self, make_record, candidates_for) -> None:
        cancel = threading.Event()
        cancel.set()
        fetch = _stub({"p0": make_record("k0")})
        with pytest.raises(AggregationCancelled):
            collect_free_books(candidates_for("p0"), fetch, concurrency=2, cancel_event=cancel)
        assert fetch.calls == []

    def test_cancel_mid_run_stops_submitting(self, make_record, candidates_for) -> None:
        cancel = threading.Event()
        calls = []

        def fetch(product_id):
            calls.append(product_id)
            cancel.set()
            return make_record(product_id)

        with pytest.raises(AggregationCancelled):
            collect_free_books(candidates_for("p0", "p1", "p2"), fetch, concurrency=1, cancel_event=cancel)
        assert calls == ["p0"]

    def test_cancel_after_last_lookup_keeps_report(self, make_record, candidates_for) -> None:
        cancel = threading.Event()
        records = {"p0": make_record("k0"), "p1": make_record("k1")}

        def on_progress(done, total):
            if done == total:
                cancel.set()

        report = collect_free_books(
            candidates_for(*records),
            _stub(records),
            concurrency=1,
            cancel_event=cancel,
            on_progress=on_progress,
        )
        assert [e.product_key for e in report] == ["k0", "k1"]


class TestProgress:
    def test_reports_each_completion(self, make_record, candidates_for) -> None:
        seen = []
        records = {f"p{i}": make_record(f"k{i}", prices=(0,) if i else (10,)) for i in range(3)}
        collect_free_books(
            candidates_for(*records),
            _stub(records),
            concurrency=1,
            on_progress=lambda done, total: seen.append((done, total)),
        )
        assert seen == [(1, 3), (2, 3), (3, 3)]
