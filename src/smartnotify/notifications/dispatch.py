"""Notification dispatch service.

Looks up the rule for an incoming ``(category, type)`` event, renders its
message, decides whether it should fire (trigger conditions, subscriber
gate, hourly rate limit), delivers it to every enabled channel and records
it in the persisted history.

Events that do not pass the gates are returned still ``pending`` and leave
no history entry.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic_core import PydanticSerializationError

from smartnotify.common.config import SmartNotifyConfig
from smartnotify.common.constants import (
    HISTORY_FILENAME,
    RULES_FILENAME,
    SMART_CATEGORY,
    STATS_PERIODS,
    NotificationStatus,
)
from smartnotify.common.errors import (
    ChannelDeliveryError,
    ChannelNotFoundError,
    MalformedInputError,
)
from smartnotify.common.schemas import (
    HistoryFilter,
    Notification,
    NotificationRule,
    NotificationStats,
)
from smartnotify.notifications.channels import Channel, build_default_channels
from smartnotify.notifications.conditions import evaluate_all
from smartnotify.notifications.rules import RuleStore
from smartnotify.notifications.smart import analyze_context
from smartnotify.notifications.store import HistoryStore
from smartnotify.notifications.templates import render, unresolved_fields
from smartnotify.reports.export import export_notifications

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Listener = Callable[[Notification], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    """Owns the rule table, channels, subscribers and history.

    All state lives on the instance; nothing is shared at module level.
    ``clock`` supplies "now" for conditions, rate limiting, stats and
    cleanup.
    """

    def __init__(
        self,
        config: SmartNotifyConfig | None = None,
        channels: Mapping[str, Channel] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or SmartNotifyConfig()
        self._clock = clock or utc_now
        self._rules = RuleStore(Path(self._config.config_dir) / RULES_FILENAME)
        self._rules.load()
        self._history = HistoryStore(Path(self._config.data_dir) / HISTORY_FILENAME)
        self._history.load()
        self._channels: dict[str, Channel] = (
            dict(channels) if channels is not None else build_default_channels(self._config)
        )
        self._subscribers: dict[str, list[str]] = {}
        self._listeners: list[Listener] = []

    @property
    def config(self) -> SmartNotifyConfig:
        return self._config

    @property
    def rules(self) -> RuleStore:
        return self._rules

    @property
    def history(self) -> HistoryStore:
        return self._history

    def now(self) -> datetime:
        return self._clock()

    # --- Event submission ---

    def submit_event(
        self,
        event_type: str,
        category: str,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> Notification:
        """Create, gate, deliver and record a notification for an event.

        Raises RuleNotFoundError when no rule matches ``category``/``event_type``.
        """
        rule = self._rules.get(category, event_type)
        notification = self._create_notification(category, event_type, rule, data, options)
        return self._dispatch(notification)

    def send_smart_notification(
        self,
        context: Mapping[str, Any],
        event: str,
        data: Mapping[str, Any] | None = None,
    ) -> Notification:
        """Send an ad-hoc notification whose strategy is derived from context.

        The rule used is built on the fly and never added to the rule table.
        """
        analysis = analyze_context(context, event, data or {}, self.now())
        rule = NotificationRule(
            priority=analysis.priority,
            channels=analysis.channels,
            message=event,
            conditions=["always"],
        )
        options = {"urgency": str(analysis.urgency), "smart": True}
        notification = self._create_notification(SMART_CATEGORY, event, rule, data, options)
        return self._dispatch(notification)

    def test_notification(
        self, category: str, event_type: str, data: Mapping[str, Any] | None = None,
    ) -> Notification:
        """Submit an event and log the outcome; side effects are unchanged."""
        logger.info("Testing notification %s.%s with data %s", category, event_type, data)
        notification = self.submit_event(event_type, category, data)
        logger.info("Test result: %s (%s)", notification.id, notification.status)
        return notification

    def _create_notification(
        self,
        category: str,
        event_type: str,
        rule: NotificationRule,
        data: Mapping[str, Any] | None,
        options: Mapping[str, Any] | None,
    ) -> Notification:
        payload = dict(data or {})
        notification = Notification(
            id=uuid.uuid4().hex,
            type=event_type,
            category=category,
            priority=rule.priority,
            message=render(rule.message, payload),
            data=payload,
            channels=list(rule.channels),
            conditions=list(rule.conditions),
            timestamp=self.now(),
            max_attempts=self._config.max_attempts,
            options=dict(options or {}),
        )
        # History is persisted as JSON; reject payloads that cannot be written.
        try:
            notification.to_json_dict()
        except PydanticSerializationError as exc:
            raise MalformedInputError(
                f"Event data for {category}.{event_type} is not JSON-serializable: {exc}"
            ) from exc

        missing = unresolved_fields(notification.message)
        if missing:
            logger.debug(
                "Unresolved template fields for %s.%s: %s",
                category, event_type, ", ".join(missing),
            )
        return notification

    def _dispatch(self, notification: Notification) -> Notification:
        if not self.should_deliver(notification):
            logger.debug(
                "Suppressed %s.%s (%s)",
                notification.category, notification.type, notification.id,
            )
            return notification

        self.deliver(notification)
        self._history.append(notification)
        self._notify_listeners(notification)
        return notification

    # --- Gates ---

    def should_deliver(self, notification: Notification) -> bool:
        """Check trigger conditions, the subscriber gate and the rate limit."""
        now = self.now()
        if not evaluate_all(notification.conditions, notification.data, now):
            return False

        subscribers = self._subscribers.get(notification.category)
        if subscribers is not None and not subscribers:
            return False

        return self._within_rate_limit(notification, now)

    def _within_rate_limit(self, notification: Notification, now: datetime) -> bool:
        window_start = now - timedelta(seconds=self._config.rate_limit_window_seconds)
        recent = self._history.count_since(
            notification.category, notification.type, window_start,
        )
        if recent >= self._config.rate_limit_max:
            logger.info(
                "Rate limit reached for %s.%s (%d in window)",
                notification.category, notification.type, recent,
            )
            return False
        return True

    # --- Delivery ---

    def deliver(self, notification: Notification) -> Notification:
        """Send to every enabled channel; one failure never stops the rest."""
        delivered = 0
        for channel_id in notification.channels:
            channel = self._channels.get(channel_id)
            if channel is None or not channel.enabled:
                continue
            try:
                channel.deliver(notification)
            except Exception as exc:
                logger.error("%s", ChannelDeliveryError(channel_id, exc))
                notification.attempts += 1
                notification.status = NotificationStatus.FAILED
                continue
            delivered += 1

        notification.status = (
            NotificationStatus.DELIVERED if delivered else NotificationStatus.FAILED
        )
        return notification

    # --- Listeners ---

    def add_listener(self, listener: Listener) -> None:
        """Register a callback run after each notification is recorded."""
        self._listeners.append(listener)

    def _notify_listeners(self, notification: Notification) -> None:
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener %r failed", listener)

    # --- Rules ---

    def add_rule(
        self, category: str, event_type: str, rule: NotificationRule | dict[str, Any],
    ) -> NotificationRule:
        return self._rules.add(category, event_type, rule)

    def update_rule(
        self, category: str, event_type: str, updates: dict[str, Any],
    ) -> NotificationRule:
        return self._rules.update(category, event_type, updates)

    def remove_rule(self, category: str, event_type: str) -> NotificationRule:
        return self._rules.remove(category, event_type)

    def get_rule(self, category: str, event_type: str) -> NotificationRule:
        return self._rules.get(category, event_type)

    def list_rules(self) -> list[tuple[str, str, NotificationRule]]:
        return list(self._rules)

    def load_rules(self) -> bool:
        return self._rules.load()

    # --- Subscriptions ---

    def subscribe(self, category: str, subscriber_id: str) -> None:
        self._subscribers.setdefault(category, []).append(subscriber_id)

    def unsubscribe(self, category: str, subscriber_id: str) -> None:
        subscribers = self._subscribers.get(category)
        if subscribers and subscriber_id in subscribers:
            subscribers.remove(subscriber_id)

    def get_subscribers(self, category: str) -> list[str] | None:
        subscribers = self._subscribers.get(category)
        return list(subscribers) if subscribers is not None else None

    # --- Channels ---

    def _channel(self, channel_id: str) -> Channel:
        try:
            return self._channels[channel_id]
        except KeyError:
            raise ChannelNotFoundError(channel_id) from None

    def enable_channel(self, channel_id: str) -> None:
        self._channel(channel_id).enabled = True

    def disable_channel(self, channel_id: str) -> None:
        self._channel(channel_id).enabled = False

    def add_channel(self, channel: Channel) -> None:
        self._channels[channel.channel_id] = channel

    def get_channel(self, channel_id: str) -> Channel:
        return self._channel(channel_id)

    def list_channels(self) -> list[Channel]:
        return list(self._channels.values())

    # --- History & analytics ---

    def query_history(
        self, filters: HistoryFilter | Mapping[str, Any] | None = None,
    ) -> list[Notification]:
        """Return matching history entries, newest first."""
        if filters is None:
            filters = HistoryFilter()
        elif not isinstance(filters, HistoryFilter):
            filters = HistoryFilter.model_validate(dict(filters))
        matches = [n for n in reversed(self._history.all()) if filters.matches(n)]
        return sorted(matches, key=lambda n: n.timestamp, reverse=True)

    def compute_stats(self, period: str = "24h") -> NotificationStats:
        """Aggregate counts and delivery rates over a look-back period.

        Unknown periods cover the whole history, like ``"all"``.
        """
        window = STATS_PERIODS.get(period)
        items = self._history.all()
        if window is not None:
            cutoff = self.now() - timedelta(seconds=window)
            items = [n for n in items if n.timestamp >= cutoff]

        stats = NotificationStats(period=period, total=len(items))
        for n in items:
            priority = str(n.priority)
            stats.by_priority[priority] = stats.by_priority.get(priority, 0) + 1
            stats.by_category[n.category] = stats.by_category.get(n.category, 0) + 1
            stats.by_type[n.type] = stats.by_type.get(n.type, 0) + 1
            for channel_id in n.channels:
                stats.by_channel[channel_id] = stats.by_channel.get(channel_id, 0) + 1

        if items:
            delivered = sum(1 for n in items if n.status == NotificationStatus.DELIVERED)
            failed = sum(1 for n in items if n.status == NotificationStatus.FAILED)
            stats.success_rate = round(delivered / len(items), 4)
            stats.failure_rate = round(failed / len(items), 4)
        return stats

    def cleanup(self, retention_days: int = 30) -> int:
        """Drop history older than ``retention_days`` and persist immediately."""
        cutoff = self.now() - timedelta(days=retention_days)
        removed = self._history.prune_before(cutoff)
        logger.info("Removed %d notifications older than %s", removed, cutoff.isoformat())
        return removed

    def export(self, fmt: str = "json") -> str:
        return export_notifications(
            self._rules.to_dict(), self.list_channels(), self._history.all(), fmt,
        )


__all__ = ["NotificationDispatcher", "utc_now"]
