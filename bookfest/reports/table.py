"""
Markdown table (stdout) and CSV export for the free-book report.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, Iterable, List

from bookfest.market.models import DisplayEntry

LABELS: Dict[str, Dict[str, str]] = {
    "en": {
        "title": "Title",
        "organization": "Organization",
        "event_name": "First Event",
        "page_count": "Pages",
        "url": "URL",
        "price": "Price",
        "shipping_required": "Shipping Required",
    },
    "ja": {
        "title": "書名",
        "organization": "サークル名",
        "event_name": "初出イベント",
        "page_count": "ページ数",
        "url": "URL",
        "price": "価格",
        "shipping_required": "配送あり",
    },
}

TABLE_KEYS = ("title", "organization", "event_name", "page_count")
CSV_KEYS = ("title", "url", "organization", "event_name", "page_count", "price", "shipping_required")


def labels_for(lang: str) -> Dict[str, str]:
    try:
        return LABELS[(lang or "en").lower()]
    except KeyError:
        raise ValueError(f"unsupported report language {lang!r}; choose from {sorted(LABELS)}") from None


def _cell(text: object) -> str:
    # Keep each entry on one table row.
    s = " ".join(str(text).split())
    return s.replace("|", "\\|")


def _link_text(text: object) -> str:
    return _cell(text).replace("[", "\\[").replace("]", "\\]")


def _row(cells: Iterable[str]) -> str:
    return "| " + " | ".join(cells) + " |"


def render(report: List[DisplayEntry], labels: Dict[str, str] | None = None) -> str:
    labels = labels or LABELS["en"]
    lines = [
        _row(labels[k] for k in TABLE_KEYS),
        _row("--" for _ in TABLE_KEYS),
    ]
    for entry in report:
        lines.append(
            _row(
                [
                    f"[{_link_text(entry.name)}]({entry.url})",
                    _cell(entry.organization),
                    _cell(entry.event_name),
                    str(entry.page_count),
                ]
            )
        )
    return "\n".join(lines)


def _value_for_column(entry: DisplayEntry, key: str) -> str:
    if key == "title":
        return entry.name
    if key == "shipping_required":
        return "yes" if entry.shipping_required else "no"
    return str(getattr(entry, key))


def write_csv(report: List[DisplayEntry], outfile_path: str | Path, labels: Dict[str, str] | None = None) -> None:
    """Write the report to CSV with the link, price and shipping columns spelled out."""
    labels = labels or LABELS["en"]
    path = Path(outfile_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow([labels[k] for k in CSV_KEYS])
        for entry in report:
            w.writerow([_value_for_column(entry, k) for k in CSV_KEYS])
