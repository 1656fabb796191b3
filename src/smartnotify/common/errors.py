"""Exception types raised by SmartNotify."""

from __future__ import annotations

from pathlib import Path


class SmartNotifyError(Exception):
    """Base class for SmartNotify errors."""


class RuleNotFoundError(SmartNotifyError, KeyError):
    """Raised when no rule exists for a category/type pair."""

    def __init__(self, category: str, type_: str) -> None:
        self.category = category
        self.type = type_
        super().__init__(f"No rule found for {category}.{type_}")

    def __str__(self) -> str:
        return self.args[0]


class ChannelNotFoundError(SmartNotifyError, KeyError):
    """Raised when a channel id is not registered."""

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(f"Unknown channel: {channel_id}")

    def __str__(self) -> str:
        return self.args[0]


class ChannelDeliveryError(SmartNotifyError):
    """A single channel failed to deliver a notification."""

    def __init__(self, channel_id: str, cause: BaseException) -> None:
        self.channel_id = channel_id
        self.cause = cause
        super().__init__(f"Failed to send notification via {channel_id}: {cause}")


class ChannelNotConfiguredError(SmartNotifyError, NotImplementedError):
    """Raised by channels that have no backend configured."""

    def __init__(self, channel_id: str, detail: str = "not configured") -> None:
        self.channel_id = channel_id
        super().__init__(f"Channel '{channel_id}' is {detail}")


class PersistenceError(SmartNotifyError):
    """Writing a state file failed."""

    def __init__(self, path: Path, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Could not write {path}: {cause}")


class MalformedInputError(SmartNotifyError, ValueError):
    """CLI input could not be parsed."""


__all__ = [
    "SmartNotifyError",
    "RuleNotFoundError",
    "ChannelNotFoundError",
    "ChannelDeliveryError",
    "ChannelNotConfiguredError",
    "PersistenceError",
    "MalformedInputError",
]
