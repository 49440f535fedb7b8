"""
Bookfest marketplace package.

Usage examples:

    python bookfest_cli.py
    python bookfest_cli.py --lang ja --concurrency 20 --csv out/free_books.csv

session.establish() performs the cookie exchange, client.list_candidates()
pulls one page of market listings, and aggregator.collect_free_books() fans
the per-product detail lookups out over a bounded thread pool and returns
the free books in report order.
"""
