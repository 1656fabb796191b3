"""Append-only notification history backed by a JSON file."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from smartnotify.common.errors import PersistenceError
from smartnotify.common.schemas import Notification

logger = logging.getLogger(__name__)

_HISTORY_ADAPTER = TypeAdapter(list[Notification])


class HistoryStore:
    """Ordered notification history; insertion order is creation order."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._items: list[Notification] = []

    def load(self) -> int:
        """Load history from disk, returning the number of entries."""
        if not self.path.exists():
            return 0
        try:
            with open(self.path, encoding="utf-8") as f:
                self._items = _HISTORY_ADAPTER.validate_python(json.load(f))
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable history file %s: %s", self.path, exc)
            self._items = []
        return len(self._items)

    def save(self) -> bool:
        """Rewrite the history file; a failed write is logged, not raised."""
        try:
            records = [n.to_json_dict() for n in self._items]
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
        except (OSError, PydanticSerializationError, TypeError) as exc:
            logger.warning("%s", PersistenceError(self.path, exc))
            return False
        return True

    def append(self, notification: Notification) -> None:
        self._items.append(notification)
        self.save()

    def count_since(self, category: str, type_: str, since: datetime) -> int:
        """Count entries of a category/type strictly newer than ``since``."""
        return sum(
            1 for n in self._items
            if n.category == category and n.type == type_ and n.timestamp > since
        )

    def prune_before(self, cutoff: datetime) -> int:
        """Drop entries older than ``cutoff`` and persist. Returns removed count."""
        kept = [n for n in self._items if n.timestamp >= cutoff]
        removed = len(self._items) - len(kept)
        self._items = kept
        self.save()
        return removed

    def all(self) -> list[Notification]:
        return list(self._items)

    def __iter__(self) -> Iterator[Notification]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["HistoryStore"]
