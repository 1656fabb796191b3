"""Common utilities and schemas for SmartNotify."""

from smartnotify.common.config import SmartNotifyConfig
from smartnotify.common.constants import (
    NotificationStatus,
    Priority,
    Urgency,
)
from smartnotify.common.errors import (
    ChannelDeliveryError,
    ChannelNotConfiguredError,
    ChannelNotFoundError,
    MalformedInputError,
    PersistenceError,
    RuleNotFoundError,
    SmartNotifyError,
)
from smartnotify.common.schemas import (
    HistoryFilter,
    Notification,
    NotificationRule,
    NotificationStats,
)

__all__ = [
    "SmartNotifyConfig",
    "Priority",
    "NotificationStatus",
    "Urgency",
    "SmartNotifyError",
    "RuleNotFoundError",
    "ChannelNotFoundError",
    "ChannelDeliveryError",
    "ChannelNotConfiguredError",
    "PersistenceError",
    "MalformedInputError",
    "NotificationRule",
    "Notification",
    "HistoryFilter",
    "NotificationStats",
]
