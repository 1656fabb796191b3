"""Notification export in JSON and CSV formats."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable
from typing import Any

from smartnotify.common.schemas import Notification

CSV_HEADER: tuple[str, ...] = ("Timestamp", "Category", "Type", "Priority", "Message", "Status")
EXPORT_FORMATS: tuple[str, ...] = ("json", "csv")


def notifications_to_csv(history: Iterable[Notification]) -> str:
    """Render history as CSV with every field quoted."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for n in history:
        record = n.to_json_dict()
        writer.writerow([
            record["timestamp"],
            n.category,
            n.type,
            str(n.priority),
            n.message,
            str(n.status),
        ])
    return output.getvalue()


def export_notifications(
    rules: dict[str, Any],
    channels: Iterable[Any],
    history: Iterable[Notification],
    fmt: str = "json",
) -> str:
    """Export rules, channels and history.

    Args:
        rules: Rule table as plain dicts.
        channels: Channel objects exposing ``describe()``.
        history: Notifications in creation order.
        fmt: ``"json"`` for the full document, ``"csv"`` for history rows only.

    Raises:
        ValueError: If ``fmt`` is not supported.
    """
    if fmt == "json":
        document = {
            "rules": rules,
            "channels": {c.channel_id: c.describe() for c in channels},
            "history": [n.to_json_dict() for n in history],
        }
        return json.dumps(document, indent=2)
    if fmt == "csv":
        return notifications_to_csv(history)
    raise ValueError(f"Unsupported format: {fmt}")


__all__ = ["CSV_HEADER", "EXPORT_FORMATS", "notifications_to_csv", "export_notifications"]
