"""Pydantic v2 schemas for SmartNotify rules, notifications and stats."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from smartnotify.common.constants import MAX_ATTEMPTS, NotificationStatus, Priority


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    """Base model persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class NotificationRule(BaseModel):
    """Maps an event category/type to priority, channels and a message template."""

    priority: Priority
    channels: list[str] = Field(default_factory=list)
    message: str
    conditions: list[str] = Field(default_factory=lambda: ["always"])

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, value: list[str]) -> list[str]:
        """Channels form an ordered set."""
        return list(dict.fromkeys(value))


class Notification(CamelModel):
    """A notification produced from a rule and event data."""

    id: str
    type: str
    category: str
    priority: Priority
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    channels: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=lambda: ["always"])
    timestamp: datetime
    status: NotificationStatus = NotificationStatus.PENDING
    attempts: int = 0
    max_attempts: int = MAX_ATTEMPTS
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class HistoryFilter(CamelModel):
    """Filters for history queries; date bounds are inclusive.

    Unrecognised keys are ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore",
    )

    category: str | None = None
    type: str | None = None
    priority: Priority | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_bounds(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    def matches(self, notification: Notification) -> bool:
        if self.category and notification.category != self.category:
            return False
        if self.type and notification.type != self.type:
            return False
        if self.priority and notification.priority != self.priority:
            return False
        if self.start_date and notification.timestamp < self.start_date:
            return False
        if self.end_date and notification.timestamp > self.end_date:
            return False
        return True


class NotificationStats(CamelModel):
    """Aggregate statistics over a history window."""

    period: str
    total: int = 0
    by_priority: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    by_channel: dict[str, int] = Field(default_factory=dict)
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    failure_rate: float = Field(default=0.0, ge=0.0, le=1.0)


__all__ = [
    "ensure_utc",
    "NotificationRule",
    "Notification",
    "HistoryFilter",
    "NotificationStats",
]
