"""Trigger condition mini-language.

Rule conditions are plain strings from a small closed grammar:

- ``always``
- ``due_in_days <= N``
- ``due_date < now``
- ``score < N``
- ``score > previous_score``

Each string is parsed into one of the variants below. Anything outside the
grammar becomes :class:`Unknown`, which always evaluates true, so an
unrecognised condition never blocks delivery.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Union

from smartnotify.common.schemas import ensure_utc

logger = logging.getLogger(__name__)

_NUMBER = r"(-?\d+(?:\.\d+)?)"
_SECONDS_PER_DAY = 86400


# --- Value coercion ---


def parse_due_date(value: Any) -> datetime | None:
    """Parse a ``dueDate`` value into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return ensure_utc(datetime(value.year, value.month, value.day))
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value))
        except ValueError:
            logger.debug("Unparseable dueDate %r", value)
            return None
    return None


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def days_until(due: datetime, now: datetime) -> int:
    """Whole days until ``due``, rounded up."""
    return math.ceil((due - now).total_seconds() / _SECONDS_PER_DAY)


# --- Condition variants ---


@dataclass(frozen=True)
class Always:
    def evaluate(self, data: Mapping[str, Any], now: datetime) -> bool:
        return True


@dataclass(frozen=True)
class DueInDaysLE:
    days: float

    def evaluate(self, data: Mapping[str, Any], now: datetime) -> bool:
        due = parse_due_date(data.get("dueDate"))
        if due is None:
            return False
        return days_until(due, now) <= self.days


@dataclass(frozen=True)
class DueDatePast:
    def evaluate(self, data: Mapping[str, Any], now: datetime) -> bool:
        due = parse_due_date(data.get("dueDate"))
        if due is None:
            return False
        return due < now


@dataclass(frozen=True)
class ScoreLT:
    threshold: float

    def evaluate(self, data: Mapping[str, Any], now: datetime) -> bool:
        score = _as_number(data.get("score"))
        return score is not None and score < self.threshold


@dataclass(frozen=True)
class ScoreGTPrevious:
    def evaluate(self, data: Mapping[str, Any], now: datetime) -> bool:
        score = _as_number(data.get("score"))
        if score is None:
            return False
        previous = _as_number(data.get("previousScore")) or 0.0
        return score > previous


@dataclass(frozen=True)
class Unknown:
    raw: str

    def evaluate(self, data: Mapping[str, Any], now: datetime) -> bool:
        return True


Condition = Union[Always, DueInDaysLE, DueDatePast, ScoreLT, ScoreGTPrevious, Unknown]


_PATTERNS: list[tuple[re.Pattern[str], Any]] = [
    (re.compile(r"^always$"), lambda m: Always()),
    (re.compile(rf"^due_in_days\s*<=\s*{_NUMBER}$"), lambda m: DueInDaysLE(float(m.group(1)))),
    (re.compile(r"^due_date\s*<\s*now$"), lambda m: DueDatePast()),
    (re.compile(rf"^score\s*<\s*{_NUMBER}$"), lambda m: ScoreLT(float(m.group(1)))),
    (re.compile(r"^score\s*>\s*previous_score$"), lambda m: ScoreGTPrevious()),
]


def parse_condition(text: str) -> Condition:
    """Parse a condition string into its variant."""
    stripped = text.strip()
    for pattern, build in _PATTERNS:
        match = pattern.match(stripped)
        if match:
            return build(match)
    logger.debug("Unrecognised condition %r treated as always-true", text)
    return Unknown(text)


def evaluate_all(
    conditions: list[str], data: Mapping[str, Any], now: datetime,
) -> bool:
    """AND together every condition in order."""
    return all(parse_condition(c).evaluate(data, now) for c in conditions)


__all__ = [
    "Always",
    "DueInDaysLE",
    "DueDatePast",
    "ScoreLT",
    "ScoreGTPrevious",
    "Unknown",
    "Condition",
    "parse_condition",
    "parse_due_date",
    "days_until",
    "evaluate_all",
]
