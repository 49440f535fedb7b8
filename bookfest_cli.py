#!/usr/bin/env python3
import argparse
import sys
import threading

from bookfest.config import CONCURRENCY, DEFAULT_LANG, PAGE_SIZE, REQUEST_TIMEOUT
from bookfest.market.aggregator import collect_free_books
from bookfest.market.client import fetch_detail, list_candidates
from bookfest.market.errors import MarketError
from bookfest.market.session import establish
from bookfest.reports.table import LABELS, labels_for, render, write_csv

try:  # Japanese labels and titles on Windows consoles
    sys.stdout.reconfigure(encoding="utf-8")
except (AttributeError, ValueError):
    pass


def log(msg: str) -> None:
    print(f"[bookfest] {msg}", file=sys.stderr)


def _progress_printer(enabled: bool):
    if not enabled:
        return None

    def show(completed: int, total: int) -> None:
        print(f"...{completed}", end="\r", file=sys.stderr, flush=True)

    return show


def cmd_run(args: argparse.Namespace, cancel_event: threading.Event | None = None) -> int:
    labels = labels_for(args.lang)

    session = establish(timeout=args.timeout, pool_size=args.concurrency)
    candidates = list_candidates(session, args.page_size)
    print(f"All Books: {len(candidates)}", flush=True)

    report = collect_free_books(
        candidates,
        lambda product_id: fetch_detail(session, product_id),
        concurrency=args.concurrency,
        cancel_event=cancel_event,
        on_progress=_progress_printer(not args.no_progress),
    )
    if not args.no_progress:
        print(file=sys.stderr)

    print(render(report, labels))

    if args.csv:
        write_csv(report, args.csv, labels)
        log(f"wrote {len(report)} rows to {args.csv}")
    return 0


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="List the free books on the techbookfest market as a Markdown table.")
    parser.add_argument("--page-size", type=_positive_int, default=PAGE_SIZE, help="Listings to request (one page).")
    parser.add_argument("--concurrency", type=_positive_int, default=CONCURRENCY, help="Detail lookups in flight.")
    parser.add_argument("--timeout", type=float, default=REQUEST_TIMEOUT, help="Per-request timeout in seconds.")
    lang = DEFAULT_LANG if DEFAULT_LANG in LABELS else "en"
    parser.add_argument("--lang", default=lang, choices=sorted(LABELS), help="Table header language.")
    parser.add_argument("--csv", help="Also write the report to this CSV file.")
    parser.add_argument("--no-progress", action="store_true", help="Do not print lookup progress to stderr.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cancel_event = threading.Event()
    try:
        return cmd_run(args, cancel_event)
    except MarketError as exc:
        log(f"failed: {exc}")
        return 1
    except KeyboardInterrupt:
        cancel_event.set()
        log("interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
