"""Seat capacity and calendar rules.

Pure functions, no I/O. Weekdays are numbered 0-6 with 0 = Sunday throughout.
"""
import json
import re
from datetime import date, datetime, timedelta
from typing import Any, FrozenSet, Iterable, Optional, Set, Tuple, Union

# Full names only: spoken text is matched against these, and short forms
# like "so" or "do" are ordinary German words.
UTTERANCE_WEEKDAYS = {
    "sonntag": 0,
    "montag": 1,
    "dienstag": 2,
    "mittwoch": 3,
    "donnerstag": 4,
    "freitag": 5,
    "samstag": 6,
    "sonnabend": 6,
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}

CLOSED_DAY_ALIASES = {
    **UTTERANCE_WEEKDAYS,
    "so": 0,
    "mo": 1,
    "di": 2,
    "mi": 3,
    "do": 4,
    "fr": 5,
    "sa": 6,
    "sun": 0,
    "mon": 1,
    "tue": 2,
    "tues": 2,
    "wed": 3,
    "thu": 4,
    "thur": 4,
    "thurs": 4,
    "fri": 5,
    "sat": 6,
}

_UTTERANCE_WEEKDAY_RE = re.compile(r"\b(" + "|".join(UTTERANCE_WEEKDAYS) + r")\b", re.IGNORECASE)
_CLOSED_DAY_SPLIT_RE = re.compile(r"[,;/|\s]+")

BookedSlot = Tuple[int, int]  # (start minute, party size)


def weekday_number(day: date) -> int:
    """Weekday of a date, 0 = Sunday."""
    return (day.weekday() + 1) % 7


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse YYYY-MM-DD, returning None for anything else."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def parse_time_to_minutes(value: Any) -> Optional[int]:
    """Minutes since midnight for spoken or typed clock times.

    Accepts 19:30, 19.30, "19 30", 1930, 19 and an optional trailing "Uhr".
    """
    if value is None:
        return None
    raw = str(value).strip().lower()
    if not raw:
        return None
    trimmed = re.sub(r"\s*uhr$", "", raw)
    normalized = re.sub(r"\s+", ":", trimmed.replace(".", ":"))

    match = re.fullmatch(r"(\d{1,2}):(\d{2})(?::\d{2})?", normalized)
    if not match:
        match = re.fullmatch(r"(\d{1,2})(\d{2})", normalized)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None
        return hours * 60 + minutes

    match = re.fullmatch(r"(\d{1,2})", normalized)
    if match:
        hours = int(match.group(1))
        if hours > 23:
            return None
        return hours * 60
    return None


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_from_text(text: Optional[str]) -> Optional[int]:
    """First full weekday name mentioned in an utterance."""
    if not text:
        return None
    match = _UTTERANCE_WEEKDAY_RE.search(text)
    if not match:
        return None
    return UTTERANCE_WEEKDAYS[match.group(1).lower()]


def next_weekday_after(target_weekday: int, reference: date) -> date:
    """Next date with the given weekday strictly after the reference date."""
    delta = (target_weekday - weekday_number(reference)) % 7
    if delta == 0:
        delta = 7
    return reference + timedelta(days=delta)


def resolve_date(candidate: str, utterance: Optional[str], today: date) -> str:
    """Reinterpret a model-proposed date using a weekday the caller named.

    The result is the next occurrence of the named weekday after today. A
    candidate that already falls on that weekday and lies in the future is kept,
    so "Freitag in zwei Wochen" survives. Unparseable input comes back unchanged.
    """
    target = weekday_from_text(utterance)
    if target is None:
        return candidate
    parsed = parse_iso_date(candidate)
    if parsed is None:
        return candidate
    if weekday_number(parsed) == target and parsed > today:
        return candidate
    return next_weekday_after(target, today).isoformat()


def is_past_date(day: Union[date, str], today: date) -> bool:
    """Date-only comparison; unparseable dates are not considered past."""
    parsed = parse_iso_date(day)
    if parsed is None:
        return False
    return parsed < today


def _closed_day_token(token: Any) -> Optional[int]:
    if isinstance(token, bool):
        return None
    if isinstance(token, (int, float)):
        number = int(token)
        if number == 7:
            return 0
        return number if 0 <= number <= 6 else None
    text = str(token).strip().lower().rstrip(".")
    if not text:
        return None
    if text.isdigit():
        return _closed_day_token(int(text))
    return CLOSED_DAY_ALIASES.get(text)


def normalize_closed_days(raw: Any) -> FrozenSet[int]:
    """Canonical weekday set from whatever the tenant entered.

    Handles numbers, JSON arrays (as lists or as strings), delimited strings
    and German/English names or abbreviations. Unknown tokens are ignored.
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped.startswith("["):
            try:
                return normalize_closed_days(json.loads(stripped))
            except ValueError:
                pass
        tokens: Iterable[Any] = [t for t in _CLOSED_DAY_SPLIT_RE.split(stripped.strip("[]")) if t]
        tokens = [t.strip("\"'") for t in tokens]
    elif isinstance(raw, (list, tuple, set, frozenset)):
        days: Set[int] = set()
        for item in raw:
            if isinstance(item, str) and _closed_day_token(item) is None:
                days |= normalize_closed_days(item)
            else:
                day = _closed_day_token(item)
                if day is not None:
                    days.add(day)
        return frozenset(days)
    else:
        tokens = [raw]

    return frozenset(day for day in (_closed_day_token(t) for t in tokens) if day is not None)


def is_closed_day(day: Union[date, str], closed_days: Iterable[int]) -> bool:
    parsed = parse_iso_date(day)
    if parsed is None:
        return False
    return weekday_number(parsed) in set(closed_days)


def peak_occupancy(
    existing: Iterable[BookedSlot],
    requested_start: int,
    party_size: int,
    slot_duration_minutes: int = 60,
) -> int:
    """Maximum number of seated guests at any moment of the requested slot.

    Every reservation, the candidate included, occupies the half-open interval
    [start, start + duration). Only the part overlapping the requested slot
    contributes events; events at the same instant are ordered by delta so
    departures are applied before arrivals.
    """
    requested_end = requested_start + slot_duration_minutes
    events = []

    def add_overlap(start: int, end: int, size: int) -> None:
        overlap_start = max(start, requested_start)
        overlap_end = min(end, requested_end)
        if overlap_start >= overlap_end:
            return
        events.append((overlap_start, size))
        events.append((overlap_end, -size))

    for start, size in existing:
        if start is None or size is None or size <= 0:
            continue
        add_overlap(start, start + slot_duration_minutes, size)

    if party_size and party_size > 0:
        add_overlap(requested_start, requested_end, party_size)

    peak = 0
    current = 0
    for _, delta in sorted(events):
        current += delta
        peak = max(peak, current)
    return peak


def is_available(
    existing: Iterable[BookedSlot],
    requested_start: int,
    party_size: int,
    capacity: int,
    slot_duration_minutes: int = 60,
) -> bool:
    return peak_occupancy(existing, requested_start, party_size, slot_duration_minutes) <= capacity
