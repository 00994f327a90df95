"""Utilities to normalize user-supplied queue item fields."""

from __future__ import annotations

import re
from typing import Any, Optional

from .errors import ValidationError

_WHITESPACE_PATTERN = re.compile(r"\s{2,}")

_ISO_PATTERN = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?$", re.IGNORECASE)
_CLOCK_PATTERN = re.compile(r"^(\d+):([0-5]\d)$")
_UNITS_PATTERN = re.compile(r"^(?:(\d+)\s*h)?\s*(?:(\d+)\s*m(?:in)?)?$", re.IGNORECASE)


def normalize_text(value: Optional[str]) -> str:
    """Trim and collapse runs of whitespace."""
    if not value:
        return ""
    return _WHITESPACE_PATTERN.sub(" ", value.strip())


def normalize_identifier(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_duration(value: Any) -> int:
    """Parse ``90``, ``"90"``, ``"1h30m"``, ``"1h 30m"``, ``"45m"``, ``"1:30"`` or ``"PT1H30M"`` to minutes."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value or "").strip()
    if not text:
        raise ValidationError("Duration is required")
    if text.isdigit():
        return int(text)

    for pattern in (_ISO_PATTERN, _CLOCK_PATTERN, _UNITS_PATTERN):
        match = pattern.match(text)
        if match and any(match.groups()):
            hours = int(match.group(1) or 0)
            minutes = int(match.group(2) or 0)
            return hours * 60 + minutes
    raise ValidationError(f"Invalid duration: {text!r}")


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(max(0, int(minutes)), 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"
