"""Context-aware notification strategy.

Derives urgency, priority and channels for an ad-hoc event from the caller's
context (project deadline, user channel preferences) and keywords in the
event name.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from smartnotify.common.constants import Priority, Urgency
from smartnotify.notifications.conditions import days_until, parse_due_date

_KEYWORD_PRIORITIES: tuple[tuple[tuple[str, ...], Priority], ...] = (
    (("error", "failed"), Priority.ERROR),
    (("warning", "overdue"), Priority.WARNING),
    (("completed", "success"), Priority.SUCCESS),
)


@dataclass
class ContextAnalysis:
    """Delivery strategy chosen for a smart notification."""

    event: str
    urgency: Urgency = Urgency.NORMAL
    priority: Priority = Priority.INFO
    channels: list[str] = field(default_factory=lambda: ["console", "log"])
    data: dict[str, Any] = field(default_factory=dict)


def analyze_context(
    context: Mapping[str, Any],
    event: str,
    data: Mapping[str, Any],
    now: datetime,
) -> ContextAnalysis:
    analysis = ContextAnalysis(event=event, data=dict(data))

    project = context.get("project") or {}
    deadline = parse_due_date(project.get("deadline"))
    if deadline is not None:
        remaining = days_until(deadline, now)
        if remaining < 1:
            analysis.urgency = Urgency.CRITICAL
            analysis.priority = Priority.ERROR
            analysis.channels += ["email", "slack"]
        elif remaining < 3:
            analysis.urgency = Urgency.HIGH
            analysis.priority = Priority.WARNING
            analysis.channels.append("email")

    preferences = (context.get("user") or {}).get("preferences") or {}
    preferred = preferences.get("notificationChannels")
    if preferred:
        analysis.channels = list(preferred)

    for keywords, priority in _KEYWORD_PRIORITIES:
        if any(k in event for k in keywords):
            analysis.priority = priority
            break

    return analysis


__all__ = ["ContextAnalysis", "analyze_context"]
