"""Notification rule table and its JSON persistence."""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from smartnotify.common.errors import (
    MalformedInputError,
    PersistenceError,
    RuleNotFoundError,
)
from smartnotify.common.schemas import NotificationRule

logger = logging.getLogger(__name__)

_ALERT = ["console", "log", "email", "slack"]

DEFAULT_RULES: dict[str, dict[str, dict[str, Any]]] = {
    "project": {
        "created": {"priority": "info", "channels": ["console", "log"],
                    "message": "New project created: {{projectName}}"},
        "updated": {"priority": "info", "channels": ["console", "log"],
                    "message": "Project updated: {{projectName}} - {{changes}}"},
        "completed": {"priority": "success", "channels": ["console", "log", "email"],
                      "message": "Project completed successfully: {{projectName}}"},
        "failed": {"priority": "error", "channels": _ALERT,
                   "message": "Project failed: {{projectName}} - {{error}}"},
    },
    "task": {
        "created": {"priority": "info", "channels": ["console", "log"],
                    "message": "New task created: {{taskTitle}}"},
        "assigned": {"priority": "info", "channels": ["console", "log", "email"],
                     "message": "Task assigned to {{assignee}}: {{taskTitle}}"},
        "due_soon": {"priority": "warning", "channels": _ALERT,
                     "message": "Task due soon: {{taskTitle}} (due {{dueDate}})",
                     "conditions": ["due_in_days <= 3"]},
        "overdue": {"priority": "error", "channels": _ALERT,
                    "message": "Task overdue: {{taskTitle}} (was due {{dueDate}})",
                    "conditions": ["due_date < now"]},
        "completed": {"priority": "success", "channels": ["console", "log"],
                      "message": "Task completed: {{taskTitle}}"},
    },
    "workflow": {
        "started": {"priority": "info", "channels": ["console", "log"],
                    "message": "Workflow started: {{workflowName}}"},
        "completed": {"priority": "success", "channels": ["console", "log"],
                      "message": "Workflow completed: {{workflowName}}"},
        "failed": {"priority": "error", "channels": _ALERT,
                   "message": "Workflow failed: {{workflowName}} - {{error}}"},
        "step_failed": {"priority": "warning", "channels": ["console", "log"],
                        "message": "Workflow step failed: {{stepName}} in {{workflowName}}"},
    },
    "system": {
        "error": {"priority": "error", "channels": _ALERT,
                  "message": "System error: {{error}}"},
        "warning": {"priority": "warning", "channels": ["console", "log"],
                    "message": "System warning: {{warning}}"},
        "info": {"priority": "info", "channels": ["console", "log"],
                 "message": "System info: {{info}}"},
        "maintenance": {"priority": "info", "channels": ["console", "log", "email"],
                        "message": "Maintenance scheduled: {{maintenance}}"},
    },
    "quality": {
        "check_failed": {"priority": "warning", "channels": ["console", "log"],
                         "message": "Quality check failed: {{checkType}} - {{issues}}"},
        "check_passed": {"priority": "success", "channels": ["console", "log"],
                         "message": "Quality check passed: {{checkType}}"},
        "score_low": {"priority": "warning", "channels": ["console", "log", "email"],
                      "message": "Low quality score: {{score}}/100 - {{projectName}}",
                      "conditions": ["score < 60"]},
        "score_improved": {"priority": "success", "channels": ["console", "log"],
                           "message": "Quality score improved: {{score}}/100 - {{projectName}}",
                           "conditions": ["score > previous_score"]},
    },
}


def _parse_table(raw: dict[str, Any]) -> dict[str, dict[str, NotificationRule]]:
    return {
        category: {
            type_: NotificationRule.model_validate(rule)
            for type_, rule in types.items()
        }
        for category, types in raw.items()
    }


class RuleStore:
    """Owns the ``{category: {type: rule}}`` table.

    Every mutation rewrites the rule file. A failed write is logged and the
    in-memory change is kept.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._rules: dict[str, dict[str, NotificationRule]] = _parse_table(
            copy.deepcopy(DEFAULT_RULES)
        )

    # --- Loading / saving ---

    def load(self) -> bool:
        """Replace the table with the rule file's contents if it exists."""
        if not self.path.exists():
            return False
        try:
            with open(self.path, encoding="utf-8") as f:
                self._rules = _parse_table(json.load(f))
        except (OSError, ValueError, ValidationError, AttributeError) as exc:
            logger.warning("Ignoring unreadable rule file %s: %s", self.path, exc)
            return False
        logger.info("Loaded %d rules from %s", len(self), self.path)
        return True

    def save(self) -> bool:
        try:
            table = self.to_dict()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(table, f, indent=2)
        except (OSError, PydanticSerializationError, TypeError) as exc:
            logger.warning("%s", PersistenceError(self.path, exc))
            return False
        return True

    def to_dict(self) -> dict[str, dict[str, dict[str, Any]]]:
        return {
            category: {t: rule.model_dump(mode="json") for t, rule in types.items()}
            for category, types in self._rules.items()
        }

    # --- Lookup ---

    def get(self, category: str, type_: str) -> NotificationRule:
        try:
            return self._rules[category][type_]
        except KeyError:
            raise RuleNotFoundError(category, type_) from None

    def has(self, category: str, type_: str) -> bool:
        return type_ in self._rules.get(category, {})

    def __iter__(self) -> Iterator[tuple[str, str, NotificationRule]]:
        for category, types in self._rules.items():
            for type_, rule in types.items():
                yield category, type_, rule

    def __len__(self) -> int:
        return sum(len(types) for types in self._rules.values())

    # --- Mutation ---

    def add(self, category: str, type_: str, rule: NotificationRule | dict[str, Any]) -> NotificationRule:
        """Insert or replace a rule."""
        if not isinstance(rule, NotificationRule):
            rule = NotificationRule.model_validate(rule)
        if self.has(category, type_):
            logger.info("Replacing rule %s.%s", category, type_)
        self._rules.setdefault(category, {})[type_] = rule
        self.save()
        return rule

    def update(self, category: str, type_: str, updates: dict[str, Any]) -> NotificationRule:
        """Shallow-merge ``updates`` into an existing rule.

        Keys that are not rule fields raise MalformedInputError.
        """
        current = self.get(category, type_)
        unknown = sorted(set(updates) - set(NotificationRule.model_fields))
        if unknown:
            raise MalformedInputError(
                f"Unknown rule fields for {category}.{type_}: {', '.join(unknown)}"
            )
        merged = NotificationRule.model_validate({**current.model_dump(), **updates})
        self._rules[category][type_] = merged
        self.save()
        return merged

    def remove(self, category: str, type_: str) -> NotificationRule:
        rule = self.get(category, type_)
        del self._rules[category][type_]
        if not self._rules[category]:
            del self._rules[category]
        self.save()
        return rule


__all__ = ["DEFAULT_RULES", "RuleStore"]
