"""Natural-language time phrases to absolute moments.

Handles relative durations ("in 5 minutes", "2 hours and 30 minutes from
now"), day words combined with a clock time ("tomorrow at 5pm", "8:30 next
friday", "tonight") and, as a last resort, absolute dates understood by
dateutil ("24/12/2026 18:00").

Ambiguous input always resolves the same way:
- a clock time without am/pm is read on a 24-hour clock ("at 5" is 05:00),
  except after "tonight" where hours below 12 are taken as evening;
- a clock time with no day word that is not after the reference rolls over to
  the next day;
- a day word without a clock time keeps the reference's time of day
  ("tonight" alone is 21:00);
- a weekday name that is today means today only when a later clock time is
  given, otherwise the same weekday next week;
- numeric dates are day-first.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

from dateutil import parser as dateutil_parser

from .errors import ParseError


logger = logging.getLogger("fercord")

_UNIT_SECONDS = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
}

_UNIT_DAYS = {
    "d": 1,
    "day": 1,
    "days": 1,
    "w": 7,
    "wk": 7,
    "wks": 7,
    "week": 7,
    "weeks": 7,
}

_UNIT_PATTERN = "|".join(sorted({*_UNIT_SECONDS, *_UNIT_DAYS}, key=len, reverse=True))
_AMOUNT_PATTERN = r"\d+|(?<![a-z])(?:an?|one)(?=\s)"
_DURATION_PART = rf"(?:{_AMOUNT_PATTERN})\s*(?:{_UNIT_PATTERN})(?![a-z])"

_DURATION_RE = re.compile(rf"{_DURATION_PART}(?:\s*(?:,|and)?\s*{_DURATION_PART})*")
_DURATION_PART_RE = re.compile(rf"({_AMOUNT_PATTERN})\s*({_UNIT_PATTERN})(?![a-z])")

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_DAY_PATTERN = (
    r"(?P<day>today|tonight|tomorrow|day after tomorrow|"
    rf"(?P<next>next\s+)?(?P<weekday>{'|'.join(_WEEKDAYS)}))"
)
_CLOCK_PATTERN = (
    r"(?P<clock>noon|midnight|"
    r"(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<meridiem>am|pm|a\.m\.|p\.m\.)?)"
)

_CLOCK_FIRST_RE = re.compile(rf"(?:at\s+)?{_CLOCK_PATTERN}(?:\s+(?:on\s+)?{_DAY_PATTERN})?")
_DAY_FIRST_RE = re.compile(rf"{_DAY_PATTERN}(?:\s+(?:at\s+)?{_CLOCK_PATTERN})?")

_FILLERS = (
    re.compile(r"^in\s+"),
    re.compile(r"\s*\bfrom now\b"),
    re.compile(r"\s+at\s+"),
)

TONIGHT_DEFAULT = time(21, 0)


def clean_input(text: str) -> str:
    """Lower-case and strip the filler words the grammar does not understand.

    Removes a leading "in", the first "from now" and the first infix "at".
    Cleaning repeats until nothing changes, so cleaning clean text is a no-op.
    """
    cleaned = " ".join(str(text or "").casefold().split())
    while True:
        previous = cleaned
        for pattern in _FILLERS:
            cleaned = pattern.sub(" ", cleaned, count=1)
            cleaned = " ".join(cleaned.split())
        if cleaned == previous:
            return cleaned


def _as_timezone(zone: tzinfo | str) -> tzinfo:
    if isinstance(zone, str):
        try:
            return ZoneInfo(zone)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ParseError(f"Unknown timezone {zone!r}") from exc
    return zone


def _amount(raw: str) -> int:
    if raw in {"a", "an", "one"}:
        return 1
    return int(raw)


def _parse_duration(text: str, reference: datetime) -> datetime | None:
    if not _DURATION_RE.fullmatch(text):
        return None

    seconds = 0
    days = 0
    for match in _DURATION_PART_RE.finditer(text):
        amount = _amount(match.group(1))
        unit = match.group(2)
        if unit in _UNIT_DAYS:
            days += amount * _UNIT_DAYS[unit]
        else:
            seconds += amount * _UNIT_SECONDS[unit]

    try:
        # Whole days keep the wall-clock time; shorter units are exact elapsed time.
        moved = reference + timedelta(days=days)
        return (moved.astimezone(timezone.utc) + timedelta(seconds=seconds)).astimezone(reference.tzinfo)
    except OverflowError as exc:
        raise ParseError(f"'{text}' is too far in the future") from exc


def _clock_time(match: re.Match[str], tonight: bool) -> time | None:
    clock = match.group("clock")
    if clock is None:
        return None
    if clock == "noon":
        return time(12, 0)
    if clock == "midnight":
        return time(0, 0)

    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    meridiem = (match.group("meridiem") or "").replace(".", "")
    if minute > 59:
        raise ParseError(f"Invalid minute in '{clock}'")
    if meridiem:
        if not 1 <= hour <= 12:
            raise ParseError(f"Invalid hour in '{clock}'")
        hour = hour % 12 + (12 if meridiem == "pm" else 0)
    elif hour > 23:
        raise ParseError(f"Invalid hour in '{clock}'")
    elif tonight and hour < 12:
        hour += 12
    return time(hour, minute)


def _day_offset(match: re.Match[str], today: date, clock: time | None, now_time: time) -> int | None:
    day = match.group("day")
    if day is None:
        return None
    if day in {"today", "tonight"}:
        return 0
    if day == "tomorrow":
        return 1
    if day == "day after tomorrow":
        return 2

    weekday = _WEEKDAYS.index(match.group("weekday"))
    delta = (weekday - today.weekday()) % 7
    if delta == 0 and (match.group("next") or clock is None or clock <= now_time):
        delta = 7
    return delta


def _parse_day_and_clock(text: str, reference: datetime) -> datetime | None:
    match = _CLOCK_FIRST_RE.fullmatch(text) or _DAY_FIRST_RE.fullmatch(text)
    if match is None:
        return None

    tonight = match.group("day") == "tonight"
    clock = _clock_time(match, tonight)
    now_time = reference.time()
    offset = _day_offset(match, reference.date(), clock, now_time)

    if clock is None:
        clock = TONIGHT_DEFAULT if tonight else now_time

    zone = reference.tzinfo
    target = datetime.combine(reference.date() + timedelta(days=offset or 0), clock, tzinfo=zone)
    if offset is None and target <= reference:
        target = datetime.combine(reference.date() + timedelta(days=1), clock, tzinfo=zone)
    return target


def _parse_absolute(text: str, reference: datetime) -> datetime:
    default = reference.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    try:
        parsed = dateutil_parser.parse(text, default=default, dayfirst=True, fuzzy=False)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=reference.tzinfo)
        return parsed.astimezone(reference.tzinfo)
    except (ValueError, OverflowError) as exc:
        raise ParseError(f"Failed to parse '{text}' to a useful date/time") from exc


def parse_human_time(
    text: str,
    zone: tzinfo | str,
    reference: datetime | None = None,
) -> datetime:
    """Turn `text` into an aware datetime in `zone`.

    `reference` is the moment relative phrases are anchored at; it defaults to
    now, and a naive reference is taken to be wall-clock time in `zone`.
    Raises ParseError for anything that cannot be understood.
    """
    tz = _as_timezone(zone)
    if reference is None:
        reference = datetime.now(tz)
    elif reference.tzinfo is None:
        reference = reference.replace(tzinfo=tz)
    else:
        reference = reference.astimezone(tz)

    logger.debug("Parsing '%s' to a date/time", text)
    cleaned = clean_input(text)
    if not cleaned:
        raise ParseError("Empty time phrase")
    if cleaned.startswith("-"):
        raise ParseError(f"Negative time phrase '{cleaned}'")

    parsed = _parse_duration(cleaned, reference)
    if parsed is None:
        parsed = _parse_day_and_clock(cleaned, reference)
    if parsed is None:
        parsed = _parse_absolute(cleaned, reference)

    logger.debug("Parsed '%s' into %s", cleaned, parsed.isoformat())
    return parsed


@lru_cache(maxsize=1)
def _timezone_names() -> tuple[str, ...]:
    return tuple(sorted(available_timezones()))


def filter_timezones(pattern: str) -> Iterator[str]:
    """IANA timezone names containing `pattern`, ignoring case."""
    needle = (pattern or "").strip().casefold()
    for name in _timezone_names():
        if needle in name.casefold():
            yield name
