"""Constants and enums for SmartNotify."""

from enum import StrEnum
from typing import Final


class Priority(StrEnum):
    """Notification priority levels."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationStatus(StrEnum):
    """Delivery status of a notification."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class Urgency(StrEnum):
    """Urgency assigned by context analysis."""

    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


# Stats look-back windows in seconds; "all" has no lower bound
STATS_PERIODS: Final[dict[str, int | None]] = {
    "1h": 60 * 60,
    "24h": 24 * 60 * 60,
    "7d": 7 * 24 * 60 * 60,
    "30d": 30 * 24 * 60 * 60,
    "all": None,
}

DEFAULT_STATS_PERIOD: Final[str] = "24h"
DEFAULT_RETENTION_DAYS: Final[int] = 30

RATE_LIMIT_WINDOW_SECONDS: Final[int] = 60 * 60
RATE_LIMIT_MAX: Final[int] = 10
MAX_ATTEMPTS: Final[int] = 3

RULES_FILENAME: Final[str] = "notification-rules.json"
HISTORY_FILENAME: Final[str] = "history.json"
DATABASE_FILENAME: Final[str] = "notifications.json"
LOG_FILENAME: Final[str] = "notifications.log"

SMART_CATEGORY: Final[str] = "smart"

__all__ = [
    "Priority",
    "NotificationStatus",
    "Urgency",
    "STATS_PERIODS",
    "DEFAULT_STATS_PERIOD",
    "DEFAULT_RETENTION_DAYS",
    "RATE_LIMIT_WINDOW_SECONDS",
    "RATE_LIMIT_MAX",
    "MAX_ATTEMPTS",
    "RULES_FILENAME",
    "HISTORY_FILENAME",
    "DATABASE_FILENAME",
    "LOG_FILENAME",
    "SMART_CATEGORY",
]
