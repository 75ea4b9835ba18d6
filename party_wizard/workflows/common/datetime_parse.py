"""Utility helpers for parsing human-friendly party dates and times."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import NamedTuple, Optional

_MONTHS = {
    "jan": 1,
    "january": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "jun": 6,
    "june": 6,
    "jul": 7,
    "july": 7,
    "aug": 8,
    "august": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
}

_WEEKDAY_ALIASES = {
    "monday": 0,
    "mon": 0,
    "tuesday": 1,
    "tue": 1,
    "tues": 1,
    "wednesday": 2,
    "wed": 2,
    "thursday": 3,
    "thu": 3,
    "thur": 3,
    "thurs": 3,
    "friday": 4,
    "fri": 4,
    "saturday": 5,
    "sat": 5,
    "sunday": 6,
    "sun": 6,
}

SATURDAY = 5
SUNDAY = 6
TONIGHT_DEFAULT = (19, 0)

_QUALIFIER = r"this|next|coming|following"
_WEEKDAY_PATTERN = (
    r"sunday|sun|monday|mon|tuesday|tues|tue|wednesday|wed|"
    r"thursday|thurs|thur|thu|friday|fri|saturday|sat"
)
_MONTH_PATTERN = (
    r"january|jan|february|feb|march|mar|april|apr|may|june|jun|july|jul|"
    r"august|aug|september|sept|sep|october|oct|november|nov|december|dec"
)

_TIME_12H = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b", re.IGNORECASE)
_TIME_24H = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_TOMORROW = re.compile(r"\btomorrow\b", re.IGNORECASE)
_TODAY = re.compile(r"\btoday\b", re.IGNORECASE)
_TONIGHT = re.compile(r"\btonight\b", re.IGNORECASE)
_WEEKEND = re.compile(rf"\b(?:({_QUALIFIER})\s+)?weekend\b", re.IGNORECASE)
_WEEKDAY = re.compile(rf"\b(?:({_QUALIFIER})\s+)?({_WEEKDAY_PATTERN})\b", re.IGNORECASE)
_MONTH_DAY = re.compile(
    rf"\b(?:on\s+)?({_MONTH_PATTERN})\s+(\d{{1,2}})(?:st|nd|rd|th)?(?:,?\s*(\d{{4}}))?\b",
    re.IGNORECASE,
)
_FOUR_DIGIT_YEAR = re.compile(r"\b\d{4}\b")

_DATE_SIGNAL = re.compile(
    r"\b(today|tomorrow|tonight|weekend|monday|mon|tuesday|tues|tue|wednesday|wed|"
    r"thursday|thurs|thur|thu|friday|fri|saturday|sat|sunday|sun|january|jan|"
    r"february|feb|march|mar|april|apr|may|june|jun|july|jul|august|aug|"
    r"september|sept|sep|october|oct|november|nov|december|dec|"
    r"\d{1,2}:\d{2}|\d{1,2}\s*(?:am|pm))\b",
    re.IGNORECASE,
)

# Strict formats accepted verbatim before any natural-language handling.
_DATE_FORMATS_WITH_YEAR = (
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%m/%d/%Y",
)
_DATE_FORMATS_NO_YEAR = (
    "%B %d",
    "%b %d",
)
_TIME_SUFFIXES = (
    "",
    " %I:%M %p",
    " %I:%M%p",
    " %I %p",
    " %I%p",
    " %H:%M",
    ", %I:%M %p",
    ", %H:%M",
)


class ClockTime(NamedTuple):
    hour: int
    minute: int


def parse_clock_time(text: str) -> Optional[ClockTime]:
    """Return the first 12h (am/pm) or 24h clock time found in ``text``."""
    match = _TIME_12H.search(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2)) if match.group(2) else 0
        meridiem = match.group(3).lower()
        if hour < 1 or hour > 12 or minute > 59:
            return None
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
        return ClockTime(hour, minute)

    match = _TIME_24H.search(text)
    if match:
        return ClockTime(int(match.group(1)), int(match.group(2)))
    return None


def has_datetime_signal(text: str) -> bool:
    """True when the text carries a date- or time-like token."""
    return bool(_DATE_SIGNAL.search(text or ""))


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _apply_time(value: datetime, clock: Optional[ClockTime]) -> datetime:
    if clock is None:
        return value
    return value.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)


def _align_tz(parsed: datetime, reference: datetime) -> datetime:
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=reference.tzinfo)
    if reference.tzinfo is None:
        return parsed.replace(tzinfo=None)
    return parsed.astimezone(reference.tzinfo)


def _strict_parse(text: str, reference: datetime) -> Optional[datetime]:
    try:
        return _align_tz(datetime.fromisoformat(text.replace("Z", "+00:00")), reference)
    except ValueError:
        pass

    for date_fmt in _DATE_FORMATS_WITH_YEAR:
        for suffix in _TIME_SUFFIXES:
            try:
                return _align_tz(datetime.strptime(text, date_fmt + suffix), reference)
            except ValueError:
                continue

    for date_fmt in _DATE_FORMATS_NO_YEAR:
        for suffix in _TIME_SUFFIXES:
            try:
                parsed = datetime.strptime(text, date_fmt + suffix)
            except ValueError:
                continue
            try:
                parsed = parsed.replace(year=reference.year)
            except ValueError:
                return None
            return _align_tz(parsed, reference)
    return None


def _parse_direct(text: str, reference: datetime) -> Optional[datetime]:
    parsed = _strict_parse(text, reference)
    if parsed is None:
        return None
    if _FOUR_DIGIT_YEAR.search(text) or parsed > reference:
        return parsed
    while parsed <= reference:
        parsed = parsed.replace(year=parsed.year + 1)
    return parsed


def _parse_relative(lowered: str, reference: datetime, clock: Optional[ClockTime]) -> Optional[datetime]:
    today = _start_of_day(reference)

    if _TOMORROW.search(lowered):
        return _apply_time(today + timedelta(days=1), clock)

    tonight = bool(_TONIGHT.search(lowered))
    if tonight or _TODAY.search(lowered):
        if clock is None and tonight:
            clock = ClockTime(*TONIGHT_DEFAULT)
        candidate = _apply_time(today, clock)
        return candidate if candidate > reference else candidate + timedelta(days=1)

    weekend = _WEEKEND.search(lowered)
    weekday = _WEEKDAY.search(lowered)
    if not weekend and not weekday:
        return None

    qualifier = None
    if weekday and weekday.group(1):
        qualifier = weekday.group(1).lower()
    elif weekend and weekend.group(1):
        qualifier = weekend.group(1).lower()
    week_offset = 1 if qualifier in ("next", "following") else 0

    if weekday:
        target = _WEEKDAY_ALIASES[weekday.group(2).lower()]
    elif reference.weekday() == SUNDAY and week_offset == 0:
        target = SUNDAY
    else:
        target = SATURDAY

    days_until = (target - reference.weekday()) % 7
    candidate = _apply_time(today + timedelta(days=days_until), clock)
    if candidate <= reference:
        candidate += timedelta(days=7)
    # "next" is one week after the plain occurrence. On a Sunday the plain
    # weekend is today, so "next weekend" is the coming Saturday.
    if week_offset and (weekday or reference.weekday() != SUNDAY):
        candidate += timedelta(days=7)
    return candidate


def _parse_month_day(lowered: str, reference: datetime, clock: Optional[ClockTime]) -> Optional[datetime]:
    match = _MONTH_DAY.search(lowered)
    if not match:
        return None

    month = _MONTHS.get(match.group(1).lower())
    day = int(match.group(2))
    explicit_year = int(match.group(3)) if match.group(3) else None
    if month is None or day < 1 or day > 31:
        return None

    year = explicit_year or reference.year
    try:
        candidate = _apply_time(reference.replace(year=year, month=month, day=day, hour=0, minute=0, second=0, microsecond=0), clock)
    except ValueError:
        # Feb 30 and friends
        return None

    if explicit_year is None and candidate <= reference:
        try:
            candidate = candidate.replace(year=year + 1)
        except ValueError:
            return None
    return candidate


def parse_party_datetime(text: Optional[str], reference: datetime) -> Optional[datetime]:
    """
    Resolve free text such as "Saturday at 7pm" or "March 15" to a datetime.

    Resolution order: strict ISO/locale formats, relative words
    (today/tonight/tomorrow), weekday and weekend terms with an optional
    this/next/coming/following qualifier, then month name plus day. Any
    embedded clock time is applied to the resolved day. Returns None when
    nothing date-like can be resolved; the result carries the reference's
    tzinfo.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return None

    direct = _parse_direct(trimmed, reference)
    if direct is not None:
        return direct

    lowered = trimmed.lower()
    clock = parse_clock_time(lowered)

    relative = _parse_relative(lowered, reference, clock)
    if relative is not None:
        return relative

    return _parse_month_day(lowered, reference, clock)


__all__ = [
    "ClockTime",
    "parse_clock_time",
    "has_datetime_signal",
    "parse_party_datetime",
]
