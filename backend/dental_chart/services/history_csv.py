from __future__ import annotations

import csv
import io
from datetime import datetime, timezone
from typing import Iterable, TextIO

from dental_chart.services.assessment_flow import HistoryEntry

HISTORY_COLUMNS = ["snapshot_id", "domain", "created_at", "summary", "details"]
DETAILS_SEPARATOR = " | "


def format_epoch_ms(value: int | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


def history_row(entry: HistoryEntry) -> dict[str, object]:
    return {
        "snapshot_id": entry.snapshot_id,
        "domain": entry.domain.value,
        "created_at": format_epoch_ms(entry.created_at_ms),
        "summary": entry.summary,
        # Fillings details hold one multi-line block per tooth.
        "details": DETAILS_SEPARATOR.join(
            " ".join(line.strip() for line in detail.splitlines()) for detail in entry.details
        ),
    }


def write_history_csv(entries: Iterable[HistoryEntry], handle: TextIO) -> int:
    writer = csv.DictWriter(handle, fieldnames=HISTORY_COLUMNS)
    writer.writeheader()
    count = 0
    for entry in entries:
        writer.writerow(history_row(entry))
        count += 1
    return count


def history_csv_text(entries: Iterable[HistoryEntry]) -> str:
    buffer = io.StringIO()
    write_history_csv(entries, buffer)
    return buffer.getvalue()
