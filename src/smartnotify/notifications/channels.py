"""Notification delivery channels.

Console, log-file and database channels write locally. Email is a stub that
always raises; Slack and the generic webhook POST JSON over HTTP once a URL
is configured and raise until then.
"""

from __future__ import annotations

import json
import logging
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, TextIO

import requests

from smartnotify.common.config import SmartNotifyConfig
from smartnotify.common.constants import DATABASE_FILENAME, LOG_FILENAME, Priority
from smartnotify.common.errors import ChannelNotConfiguredError
from smartnotify.common.schemas import Notification

logger = logging.getLogger(__name__)

_COLORS: dict[str, str] = {
    Priority.ERROR: "\x1b[31m",
    Priority.WARNING: "\x1b[33m",
    Priority.INFO: "\x1b[36m",
    Priority.SUCCESS: "\x1b[32m",
}
_RESET = "\x1b[0m"


class Channel(ABC):
    """A named delivery mechanism with an enable flag."""

    def __init__(self, channel_id: str, name: str, enabled: bool = True) -> None:
        self.channel_id = channel_id
        self.name = name
        self.enabled = enabled

    @abstractmethod
    def deliver(self, notification: Notification) -> None:
        """Deliver a notification, raising on failure."""

    def describe(self) -> dict[str, Any]:
        return {"id": self.channel_id, "name": self.name, "enabled": self.enabled}

    def __repr__(self) -> str:
        state = "enabled" if self.enabled else "disabled"
        return f"{type(self).__name__}({self.channel_id!r}, {state})"


class ConsoleChannel(Channel):
    """Writes a coloured one-line summary plus the event data."""

    def __init__(
        self,
        channel_id: str = "console",
        name: str = "Console",
        enabled: bool = True,
        stream: TextIO | None = None,
    ) -> None:
        super().__init__(channel_id, name, enabled)
        self._stream = stream

    def deliver(self, notification: Notification) -> None:
        stream = self._stream or sys.stdout
        color = _COLORS.get(notification.priority, _RESET)
        print(
            f"{color}[{notification.priority.upper()}]{_RESET} {notification.message}",
            file=stream,
        )
        if notification.data:
            print(f"  Data: {json.dumps(notification.data, indent=2, default=str)}", file=stream)


class LogFileChannel(Channel):
    """Appends one JSON record per notification to a log file."""

    def __init__(
        self,
        path: Path,
        channel_id: str = "log",
        name: str = "Log File",
        enabled: bool = True,
    ) -> None:
        super().__init__(channel_id, name, enabled)
        self.path = Path(path)

    def deliver(self, notification: Notification) -> None:
        record = notification.to_json_dict()
        entry = {
            "timestamp": record["timestamp"],
            "level": record["priority"],
            "category": record["category"],
            "type": record["type"],
            "message": record["message"],
            "data": record["data"],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")


class DatabaseChannel(Channel):
    """Keeps a JSON array of every delivered notification."""

    def __init__(
        self,
        path: Path,
        channel_id: str = "database",
        name: str = "Database",
        enabled: bool = True,
    ) -> None:
        super().__init__(channel_id, name, enabled)
        self.path = Path(path)

    def read_all(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def deliver(self, notification: Notification) -> None:
        records = self.read_all()
        records.append(notification.to_json_dict())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)


class EmailChannel(Channel):
    """Placeholder for an email provider integration."""

    def __init__(
        self, channel_id: str = "email", name: str = "Email", enabled: bool = False,
    ) -> None:
        super().__init__(channel_id, name, enabled)

    def deliver(self, notification: Notification) -> None:
        raise ChannelNotConfiguredError(self.channel_id, "not implemented")


class WebhookChannel(Channel):
    """POSTs the notification as JSON to a configured URL."""

    def __init__(
        self,
        url: str = "",
        channel_id: str = "webhook",
        name: str = "Webhook",
        enabled: bool = False,
        timeout_s: float = 2.0,
    ) -> None:
        super().__init__(channel_id, name, enabled)
        self.url = url
        self.timeout_s = timeout_s

    def build_payload(self, notification: Notification) -> dict[str, Any]:
        return notification.to_json_dict()

    def deliver(self, notification: Notification) -> None:
        if not self.url:
            raise ChannelNotConfiguredError(self.channel_id)
        r = requests.post(
            self.url,
            json=self.build_payload(notification),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout_s,
        )
        r.raise_for_status()


class SlackChannel(WebhookChannel):
    """Chat webhook; sends a single text message."""

    def __init__(
        self,
        url: str = "",
        channel_id: str = "slack",
        name: str = "Slack",
        enabled: bool = False,
        timeout_s: float = 2.0,
    ) -> None:
        super().__init__(url, channel_id, name, enabled, timeout_s)

    def build_payload(self, notification: Notification) -> dict[str, Any]:
        return {"text": f"[{notification.priority.upper()}] {notification.message}"}


def build_default_channels(config: SmartNotifyConfig) -> dict[str, Channel]:
    """Build the default channel set keyed by id."""
    data_dir = Path(config.data_dir)
    channels: list[Channel] = [
        ConsoleChannel(),
        LogFileChannel(data_dir / LOG_FILENAME),
        EmailChannel(),
        SlackChannel(config.slack_webhook_url, timeout_s=config.webhook_timeout_seconds),
        WebhookChannel(config.webhook_url, timeout_s=config.webhook_timeout_seconds),
        DatabaseChannel(data_dir / DATABASE_FILENAME),
    ]
    return {c.channel_id: c for c in channels}


__all__ = [
    "Channel",
    "ConsoleChannel",
    "LogFileChannel",
    "DatabaseChannel",
    "EmailChannel",
    "WebhookChannel",
    "SlackChannel",
    "build_default_channels",
]
