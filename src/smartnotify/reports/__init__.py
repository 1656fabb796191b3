"""Notification history export."""

from smartnotify.reports.export import (
    CSV_HEADER,
    EXPORT_FORMATS,
    export_notifications,
    notifications_to_csv,
)

__all__ = [
    "CSV_HEADER",
    "EXPORT_FORMATS",
    "export_notifications",
    "notifications_to_csv",
]
