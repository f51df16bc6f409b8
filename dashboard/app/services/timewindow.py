from __future__ import annotations

import re
from collections.abc import Mapping

from dashboard.app.core.errors import FieldError, FormValidationError

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Order matters: the first pattern that parses wins.
_PATTERNS = (
    ("meridiem", re.compile(r"^(\d{1,2}):(\d{2})(am|pm)$")),
    ("meridiem", re.compile(r"^(\d{1,2})(am|pm)$")),
    ("24h", re.compile(r"^(\d{1,2}):(\d{2})$")),
    ("24h", re.compile(r"^(\d{1,2})$")),
)
_IGNORED = re.compile(r"[\s.]+")


def _to_24h(kind: str, groups: tuple[str, ...]) -> tuple[int, int] | None:
    if kind == "meridiem":
        if len(groups) == 3:
            hour, minute, meridiem = int(groups[0]), int(groups[1]), groups[2]
        else:
            hour, minute, meridiem = int(groups[0]), 0, groups[1]
        if not 1 <= hour <= 12:
            return None
        hour = hour % 12 + (12 if meridiem == "pm" else 0)
    else:
        hour = int(groups[0])
        minute = int(groups[1]) if len(groups) == 2 else 0
        if not 0 <= hour <= 23:
            return None
    if not 0 <= minute <= 59:
        return None
    return hour, minute


def normalize(value: object) -> str | None:
    """Parse a free-form time of day into ``HH:mm``.

    ``""`` comes back unchanged (the day has no opening/closing time),
    ``None`` means the value could not be parsed.
    """
    if not isinstance(value, str):
        return None
    compact = _IGNORED.sub("", value).lower()
    if not compact:
        return ""
    for kind, pattern in _PATTERNS:
        match = pattern.match(compact)
        if match is None:
            continue
        parsed = _to_24h(kind, match.groups())
        if parsed is None:
            return None
        return f"{parsed[0]:02d}:{parsed[1]:02d}"
    return None


def hour_fields() -> list[tuple[str, str, str]]:
    """(weekday, open field, close field) for every day of the week."""
    return [(day, f"{day}Open", f"{day}Close") for day in WEEKDAYS]


def normalize_hours(form: Mapping[str, object]) -> dict[str, str]:
    """Normalize every ``{weekday}Open``/``{weekday}Close`` field of a form.

    Raises FormValidationError listing all offending fields; the caller must
    not submit anything in that case.
    """
    errors: list[FieldError] = []
    normalized: dict[str, str] = {}
    for _day, open_field, close_field in hour_fields():
        day_values: dict[str, str | None] = {}
        for field in (open_field, close_field):
            raw = form.get(field, "")
            if raw is None:
                raw = ""
            value = normalize(raw)
            if value is None:
                errors.append(FieldError(field, raw, f"Could not read {raw!r} as a time (try 10am or 22:00)"))
            day_values[field] = value

        opened, closed = day_values[open_field], day_values[close_field]
        if opened is None or closed is None:
            continue
        if bool(opened) != bool(closed):
            missing = open_field if not opened else close_field
            errors.append(FieldError(missing, "", "Open and close must both be set or both be empty"))
            continue
        normalized[open_field] = opened
        normalized[close_field] = closed

    if errors:
        raise FormValidationError(errors)
    return normalized
