"""SmartNotify command-line interface.

Usage:
  # Send a notification
  smartnotify send project created '{"projectName": "My App"}'

  # Send and print the full notification
  smartnotify test task overdue '{"taskTitle": "Fix bug", "dueDate": "2023-01-01"}'

  # Statistics, history, maintenance
  smartnotify stats 24h
  smartnotify history '{"category": "project"}'
  smartnotify cleanup 30
  smartnotify export csv
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from smartnotify.common.config import SmartNotifyConfig
from smartnotify.common.constants import (
    DEFAULT_RETENTION_DAYS,
    DEFAULT_STATS_PERIOD,
    STATS_PERIODS,
)
from smartnotify.common.errors import MalformedInputError, SmartNotifyError
from smartnotify.common.schemas import HistoryFilter
from smartnotify.notifications.dispatch import NotificationDispatcher
from smartnotify.reports.export import EXPORT_FORMATS

logger = logging.getLogger("smartnotify.cli")

HISTORY_DISPLAY_LIMIT = 10


def _parse_json_object(raw: str, what: str) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedInputError(f"Invalid JSON for {what}: {exc}") from exc
    if not isinstance(value, dict):
        raise MalformedInputError(f"{what} must be a JSON object")
    return value


def _parse_filters(raw: str | None) -> HistoryFilter:
    if raw is None:
        return HistoryFilter()
    try:
        return HistoryFilter.model_validate(_parse_json_object(raw, "filters"))
    except ValidationError as exc:
        raise MalformedInputError(f"Invalid filters: {exc}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smartnotify",
        description="SmartNotify rule-based notification system",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--data-dir", type=str, default=None,
        help="Directory for history, log and database files",
    )
    parser.add_argument(
        "--config-dir", type=str, default=None,
        help="Directory holding notification-rules.json",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default=None,
        help="Logging level (default: from SMARTNOTIFY_LOG_LEVEL or INFO)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("send", "Send a notification"), ("test", "Test a notification")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("category")
        cmd.add_argument("type")
        cmd.add_argument("data", help="Event data as a JSON object")

    stats = sub.add_parser("stats", help="Show notification statistics")
    stats.add_argument(
        "period", nargs="?", default=DEFAULT_STATS_PERIOD,
        help=f"One of {', '.join(STATS_PERIODS)}; anything else covers all history",
    )

    history = sub.add_parser("history", help="Show notification history")
    history.add_argument("filters", nargs="?", default=None, help="Filters as a JSON object")

    sub.add_parser("rules", help="Show notification rules")
    sub.add_parser("channels", help="Show available channels")

    cleanup = sub.add_parser("cleanup", help="Remove old notifications")
    cleanup.add_argument("days", nargs="?", type=int, default=DEFAULT_RETENTION_DAYS)

    export = sub.add_parser("export", help="Export notifications")
    export.add_argument("format", nargs="?", default="json", choices=list(EXPORT_FORMATS))

    return parser


def _build_config(args: argparse.Namespace) -> SmartNotifyConfig:
    overrides: dict[str, Any] = {}
    if args.data_dir:
        overrides["data_dir"] = Path(args.data_dir)
    if args.config_dir:
        overrides["config_dir"] = Path(args.config_dir)
    if args.log_level:
        overrides["log_level"] = args.log_level
    return SmartNotifyConfig(**overrides)


def run(args: argparse.Namespace, dispatcher: NotificationDispatcher) -> None:
    command = args.command

    if command == "send":
        data = _parse_json_object(args.data, "data")
        notification = dispatcher.submit_event(args.type, args.category, data)
        print(f"Notification sent: {notification.id}")

    elif command == "test":
        data = _parse_json_object(args.data, "data")
        print(f"Testing notification: {args.category}.{args.type}")
        print(f"Data: {json.dumps(data, indent=2)}")
        notification = dispatcher.test_notification(args.category, args.type, data)
        print(f"Result: {json.dumps(notification.to_json_dict(), indent=2)}")

    elif command == "stats":
        stats = dispatcher.compute_stats(args.period)
        print(f"Notification Statistics ({args.period}):")
        print(f"Total: {stats.total}")
        print(f"Success Rate: {stats.success_rate:.0%}")
        print(f"Failure Rate: {stats.failure_rate:.0%}")
        print("By Priority:")
        for priority, count in stats.by_priority.items():
            print(f"  {priority}: {count}")

    elif command == "history":
        matches = dispatcher.query_history(_parse_filters(args.filters))
        print(f"Notification History ({len(matches)} notifications):")
        for n in matches[:HISTORY_DISPLAY_LIMIT]:
            print(f"{n.timestamp.isoformat()} [{n.priority}] {n.message}")

    elif command == "rules":
        print("Notification Rules:")
        current = None
        for category, type_, rule in dispatcher.list_rules():
            if category != current:
                print(f"{category}:")
                current = category
            print(f"  {type_}: {rule.message}")

    elif command == "channels":
        print("Available Channels:")
        for channel in dispatcher.list_channels():
            state = "enabled" if channel.enabled else "disabled"
            print(f"  {channel.channel_id}: {channel.name} ({state})")

    elif command == "cleanup":
        removed = dispatcher.cleanup(args.days)
        print(f"Cleaned up {removed} notifications older than {args.days} days")

    elif command == "export":
        print(dispatcher.export(args.format))


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        # argparse exits 2 on usage errors; every failure exits 1 here
        return 0 if exc.code in (0, None) else 1

    try:
        config = _build_config(args)
    except ValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        dispatcher = NotificationDispatcher(config)
        run(args, dispatcher)
    except SmartNotifyError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
