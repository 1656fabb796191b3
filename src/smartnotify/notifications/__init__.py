"""Rule-based notification dispatch."""

from __future__ import annotations

from smartnotify.notifications.channels import (
    Channel,
    ConsoleChannel,
    DatabaseChannel,
    EmailChannel,
    LogFileChannel,
    SlackChannel,
    WebhookChannel,
    build_default_channels,
)
from smartnotify.notifications.conditions import evaluate_all, parse_condition
from smartnotify.notifications.dispatch import NotificationDispatcher
from smartnotify.notifications.rules import DEFAULT_RULES, RuleStore
from smartnotify.notifications.smart import ContextAnalysis, analyze_context
from smartnotify.notifications.store import HistoryStore
from smartnotify.notifications.templates import render

__all__ = [
    "Channel",
    "ConsoleChannel",
    "DatabaseChannel",
    "EmailChannel",
    "LogFileChannel",
    "SlackChannel",
    "WebhookChannel",
    "build_default_channels",
    "evaluate_all",
    "parse_condition",
    "NotificationDispatcher",
    "DEFAULT_RULES",
    "RuleStore",
    "ContextAnalysis",
    "analyze_context",
    "HistoryStore",
    "render",
]
