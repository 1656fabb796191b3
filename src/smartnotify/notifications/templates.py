"""Message template rendering."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def render(template: str, data: Mapping[str, Any]) -> str:
    """Substitute ``{{field}}`` placeholders with values from ``data``.

    Fields missing from ``data`` (or set to ``None``) leave the placeholder
    in the output unchanged, so consumers can detect unresolved fields.
    """

    def _replace(match: re.Match[str]) -> str:
        value = data.get(match.group(1))
        if value is None:
            return match.group(0)
        return str(value)

    return PLACEHOLDER.sub(_replace, template)


def unresolved_fields(message: str) -> list[str]:
    """Return the placeholder names still present in a rendered message."""
    return PLACEHOLDER.findall(message)


__all__ = ["render", "unresolved_fields"]
