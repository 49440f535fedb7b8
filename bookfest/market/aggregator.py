"""
Bounded fan-out over the product detail lookups.

One task per candidate runs on a pool of `concurrency` worker threads. The
submitting loop takes a semaphore permit before each submit and the task
gives it back when it finishes, so at most `concurrency` lookups are ever in
flight. Free books land in one lock-guarded map keyed by product, and the
report is sorted only after every submitted task has settled.

The first failing lookup wins: its exception is kept, the stop signal is
set, nothing new is submitted, queued tasks return without fetching, and
results from lookups still in flight are thrown away.
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, wait

from bookfest.config import CONCURRENCY

from .errors import AggregationCancelled
from .models import Candidate, DetailRecord, DisplayEntry

FetchDetail = Callable[[str], DetailRecord]
ProgressCallback = Callable[[int, int], None]

# How often a blocked submitter re-checks the stop signals, in seconds.
PERMIT_POLL_SECONDS = 0.05


def log(msg: str) -> None:
    print(f"[aggregator] {msg}", file=sys.stderr)


def free_entry(record: DetailRecord) -> DisplayEntry | None:
    """
    Project a record onto its first zero-price variant, or None if it has none.
    """
    for variant in record.variants:
        if variant.price == 0:
            return DisplayEntry(
                product_key=record.product_key,
                name=record.name,
                url=record.url,
                organization=record.organization,
                price=variant.price,
                event_name=record.event_name,
                page_count=record.page_count,
                shipping_required=variant.shipping_required,
            )
    return None


def order_report(entries: Iterable[DisplayEntry]) -> list[DisplayEntry]:
    """
    Sort by organization, then first event, then title.

    str comparison is by code point, which matches UTF-8 byte order.
    """
    return sorted(entries, key=DisplayEntry.sort_key)


class _RunState:
    """Shared state for one aggregation run."""

    def __init__(self, total: int, cancel_event: threading.Event | None) -> None:
        self.total = total
        self.cancel_event = cancel_event
        self.stop = threading.Event()
        self.lock = threading.Lock()
        self.entries: dict[str, tuple[int, DisplayEntry]] = {}
        self.error: BaseException | None = None
        self.completed = 0

    def cancelled(self) -> bool:
        if self.stop.is_set():
            return True
        return self.cancel_event is not None and self.cancel_event.is_set()

    def fail(self, exc: BaseException) -> None:
        with self.lock:
            if self.error is None:
                self.error = exc
        self.stop.set()

    def insert(self, index: int, entry: DisplayEntry) -> None:
        # Lowest candidate position wins, whatever order the lookups finish in.
        with self.lock:
            current = self.entries.get(entry.product_key)
            if current is None or index < current[0]:
                self.entries[entry.product_key] = (index, entry)

    def tick(self) -> int:
        with self.lock:
            self.completed += 1
            return self.completed


class FreeBookAggregator:
    def __init__(
        self,
        fetch_detail: FetchDetail,
        *,
        concurrency: int = CONCURRENCY,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.fetch_detail = fetch_detail
        self.concurrency = int(concurrency)
        self.on_progress = on_progress

    def run(
        self,
        candidates: Iterable[Candidate],
        cancel_event: threading.Event | None = None,
    ) -> list[DisplayEntry]:
        """
        Look up every candidate and return the free books in report order.

        Raises the first lookup error unchanged, or AggregationCancelled when
        cancel_event fires before every lookup has finished. A signal that
        arrives after the last lookup does not discard the report.
        """
        items = list(candidates)
        state = _RunState(len(items), cancel_event)
        permits = threading.BoundedSemaphore(self.concurrency)

        with ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="bookfest-detail",
        ) as executor:
            futures = []
            try:
                for index, candidate in enumerate(items):
                    if not self._acquire(permits, state):
                        break
                    try:
                        futures.append(executor.submit(self._work, state, permits, index, candidate))
                    except BaseException:
                        permits.release()
                        raise
                wait(futures)
            except BaseException:
                # Interrupted: queued tasks must return without fetching
                # before the executor joins them.
                state.stop.set()
                raise

        for future in futures:
            exc = future.exception()
            if exc is not None:
                state.fail(exc)

        if state.error is not None:
            log(f"aborted after {state.completed}/{state.total} lookups: {state.error}")
            raise state.error
        if state.completed < state.total:
            # Only a fired cancel_event leaves lookups unfinished without an error.
            raise AggregationCancelled(
                f"[aggregator] cancelled after {state.completed}/{state.total} lookups"
            )

        report = order_report(entry for _, entry in state.entries.values())
        log(f"{len(report)} free books from {state.total} candidates (concurrency={self.concurrency})")
        return report

    @staticmethod
    def _acquire(permits: threading.BoundedSemaphore, state: _RunState) -> bool:
        while not state.cancelled():
            if not permits.acquire(timeout=PERMIT_POLL_SECONDS):
                continue
            if state.cancelled():
                permits.release()
                return False
            return True
        return False

    def _work(
        self,
        state: _RunState,
        permits: threading.BoundedSemaphore,
        index: int,
        candidate: Candidate,
    ) -> None:
        try:
            self._lookup(state, index, candidate)
        except BaseException as exc:
            # Kept on the run state: nothing reads the future's result.
            state.fail(exc)
        finally:
            permits.release()

    def _lookup(self, state: _RunState, index: int, candidate: Candidate) -> None:
        if state.cancelled():
            return
        record = self.fetch_detail(candidate.product_id)
        if state.cancelled():
            return
        entry = free_entry(record)
        if entry is not None:
            state.insert(index, entry)
        completed = state.tick()
        if self.on_progress is not None:
            self.on_progress(completed, state.total)


def collect_free_books(
    candidates: Iterable[Candidate],
    fetch_detail: FetchDetail,
    *,
    concurrency: int = CONCURRENCY,
    cancel_event: threading.Event | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[DisplayEntry]:
    aggregator = FreeBookAggregator(fetch_detail, concurrency=concurrency, on_progress=on_progress)
    return aggregator.run(candidates, cancel_event=cancel_event)
