from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional, Pattern, Tuple

from dateutil import tz
from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta, weekday

DEFAULT_HOUR = 17
DEFAULT_MINUTE = 0
EVENING_HOUR = 20

TODAY_FILTER = "__TODAY__"
TOMORROW_FILTER = "__TOMORROW__"
PAST_DUE_FILTER = "__PAST_DUE__"
BUILTIN_FILTERS = (PAST_DUE_FILTER, TODAY_FILTER, TOMORROW_FILTER)


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class ParsedSchedule:
    """
    Result of scanning free-form text for a schedule phrase.

    Fields:
    - cleaned_text: Input with the phrase removed and whitespace/punctuation tidied
    - scheduled_at: UTC ISO-8601 instant ('2024-01-02T09:00:00.000Z'), or None
    - schedule_text: The recognized phrase as typed, or None
    """

    cleaned_text: str
    scheduled_at: Optional[str]
    schedule_text: Optional[str]


@dataclass
class _Component:
    # "date", "time" or "datetime" (a fully resolved relative instant)
    category: str
    start: int
    end: int
    day: Optional[date] = None
    hour: Optional[int] = None
    minute: Optional[int] = None
    meridiem: bool = False


_CASUAL_OFFSETS = {
    "today": 0,
    "tonight": 0,
    "tomorrow": 1,
    "tmrw": 1,
    "tmr": 1,
    "yesterday": -1,
    "day after tomorrow": 2,
}

_WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "tues": 1,
    "tue": 1,
    "wednesday": 2,
    "weds": 2,
    "thursday": 3,
    "thurs": 3,
    "thur": 3,
    "thu": 3,
    "friday": 4,
    "fri": 4,
    "saturday": 5,
    "sunday": 6,
}

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
}

_MONTH_NAME = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b\.?"
)
_COUNT = r"(\d+|" + "|".join(_NUMBER_WORDS) + r")"

_CASUAL_RE = re.compile(r"\b(day\s+after\s+tomorrow|today|tonight|tomorrow|tmrw|tmr|yesterday)\b", re.IGNORECASE)
_WEEKDAY_RE = re.compile(
    r"\b(?:(this|next|on)\s+)?(" + "|".join(sorted(_WEEKDAYS, key=len, reverse=True)) + r")\b\.?",
    re.IGNORECASE,
)
_OFFSET_RE = re.compile(
    r"\bin\s+" + _COUNT + r"\s+(minutes?|mins?|hours?|hrs?|days?|weeks?|months?|years?)\b",
    re.IGNORECASE,
)
_NEXT_UNIT_RE = re.compile(r"\bnext\s+(week|month|year)\b", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_SLASH_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{4}|\d{2}))?\b")
_MONTH_DAY_RE = re.compile(
    r"\b" + _MONTH_NAME + r"\s+(\d{1,2})(?:st|nd|rd|th)?\b(?:,?\s+(\d{4})\b)?", re.IGNORECASE
)
_DAY_MONTH_RE = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s+(?:of\s+)?" + _MONTH_NAME + r"(?:,?\s+(\d{4})\b)?", re.IGNORECASE
)
_MERIDIEM_TIME_RE = re.compile(
    r"\b(?:at\s+)?(\d{1,2})(?::([0-5]\d))?\s*(a\.?m\.?|p\.?m\.?)(?!\w)", re.IGNORECASE
)
_CLOCK_TIME_RE = re.compile(r"\b(?:at\s+)?([01]?\d|2[0-3]):([0-5]\d)\b", re.IGNORECASE)
_AT_HOUR_RE = re.compile(r"\bat\s+([01]?\d|2[0-3])\b(?!:)", re.IGNORECASE)
_NAMED_TIME_RE = re.compile(r"\b(noon|midday|midnight)\b", re.IGNORECASE)

# Text allowed between a date phrase and a time phrase for them to read as one expression
_JOINER_RE = re.compile(r"[\s,]*(?:(?:at|on)\s+)?", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([.,!?;:])")


def _count(token: str) -> int:
    token = token.lower()
    return _NUMBER_WORDS[token] if token in _NUMBER_WORDS else int(token)


def _forward_date(ref_day: date, month: int, day_of_month: int) -> date:
    """First occurrence of month/day on or after ref_day (Feb 29 waits for a leap year)."""
    # leap years are at most eight years apart
    for year in range(ref_day.year, ref_day.year + 9):
        try:
            candidate = date(year, month, day_of_month)
        except ValueError:
            continue
        if candidate >= ref_day:
            return candidate
    raise ValueError(f"no {month}/{day_of_month} on or after {ref_day}")


def _casual(m: re.Match, ref: datetime) -> _Component:
    word = " ".join(m.group(1).lower().split())
    return _Component("date", m.start(), m.end(), day=ref.date() + timedelta(days=_CASUAL_OFFSETS[word]))


def _weekday(m: re.Match, ref: datetime) -> _Component:
    modifier = (m.group(1) or "").lower()
    target = weekday(_WEEKDAYS[m.group(2).lower()])
    # 'next friday' is never today; a bare weekday may be
    start = ref.date() + timedelta(days=1) if modifier == "next" else ref.date()
    return _Component("date", m.start(), m.end(), day=start + relativedelta(weekday=target(+1)))


def _offset(m: re.Match, ref: datetime) -> _Component:
    amount = _count(m.group(1))
    unit = m.group(2).lower()
    if unit.startswith("min") or unit.startswith("h"):
        delta = timedelta(minutes=amount) if unit.startswith("min") else timedelta(hours=amount)
        moment = ref + delta
        return _Component(
            "datetime", m.start(), m.end(), day=moment.date(), hour=moment.hour, minute=moment.minute
        )
    if unit.startswith("d"):
        shift = relativedelta(days=amount)
    elif unit.startswith("w"):
        shift = relativedelta(weeks=amount)
    elif unit.startswith("mo"):
        shift = relativedelta(months=amount)
    else:
        shift = relativedelta(years=amount)
    return _Component("date", m.start(), m.end(), day=ref.date() + shift)


def _next_unit(m: re.Match, ref: datetime) -> _Component:
    unit = m.group(1).lower() + "s"
    return _Component("date", m.start(), m.end(), day=ref.date() + relativedelta(**{unit: 1}))


def _iso_date(m: re.Match, ref: datetime) -> _Component:
    day = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    return _Component("date", m.start(), m.end(), day=day)


def _slash_date(m: re.Match, ref: datetime) -> _Component:
    month, day_of_month, year = int(m.group(1)), int(m.group(2)), m.group(3)
    if year is None:
        day = _forward_date(ref.date(), month, day_of_month)
    else:
        full_year = int(year) + 2000 if len(year) == 2 else int(year)
        day = date(full_year, month, day_of_month)
    return _Component("date", m.start(), m.end(), day=day)


def _named_date(month_name: str, day_of_month: str, year: Optional[str], ref: datetime) -> date:
    month = _MONTHS[month_name.lower()[:3]]
    if year is None:
        return _forward_date(ref.date(), month, int(day_of_month))
    return date(int(year), month, int(day_of_month))


def _month_day(m: re.Match, ref: datetime) -> _Component:
    day = _named_date(m.group(1), m.group(2), m.group(3), ref)
    return _Component("date", m.start(), m.end(), day=day)


def _day_month(m: re.Match, ref: datetime) -> _Component:
    day = _named_date(m.group(2), m.group(1), m.group(3), ref)
    return _Component("date", m.start(), m.end(), day=day)


def _meridiem_time(m: re.Match, ref: datetime) -> Optional[_Component]:
    hour = int(m.group(1))
    if not 1 <= hour <= 12:
        return None
    minute = int(m.group(2)) if m.group(2) else None
    pm = m.group(3).lower().startswith("p")
    hour = hour % 12 + (12 if pm else 0)
    return _Component("time", m.start(), m.end(), hour=hour, minute=minute, meridiem=True)


def _clock_time(m: re.Match, ref: datetime) -> _Component:
    return _Component("time", m.start(), m.end(), hour=int(m.group(1)), minute=int(m.group(2)))


def _at_hour(m: re.Match, ref: datetime) -> _Component:
    return _Component("time", m.start(), m.end(), hour=int(m.group(1)))


def _named_time(m: re.Match, ref: datetime) -> _Component:
    hour = 0 if m.group(1).lower() == "midnight" else 12
    return _Component("time", m.start(), m.end(), hour=hour, minute=0, meridiem=True)


_PATTERNS: List[Tuple[Pattern[str], Callable[[re.Match, datetime], Optional[_Component]]]] = [
    (_CASUAL_RE, _casual),
    (_WEEKDAY_RE, _weekday),
    (_OFFSET_RE, _offset),
    (_NEXT_UNIT_RE, _next_unit),
    (_ISO_DATE_RE, _iso_date),
    (_SLASH_DATE_RE, _slash_date),
    (_MONTH_DAY_RE, _month_day),
    (_DAY_MONTH_RE, _day_month),
    (_MERIDIEM_TIME_RE, _meridiem_time),
    (_CLOCK_TIME_RE, _clock_time),
    (_AT_HOUR_RE, _at_hour),
    (_NAMED_TIME_RE, _named_time),
]


def _scan(text: str, ref: datetime) -> List[_Component]:
    """Return non-overlapping components in text order; at equal starts the longest wins."""
    found: List[_Component] = []
    for pattern, resolver in _PATTERNS:
        for m in pattern.finditer(text):
            try:
                comp = resolver(m, ref)
            except (ValueError, OverflowError):
                # e.g. 2/30 or Feb 29 rolled into a non-leap year
                comp = None
            if comp is not None:
                found.append(comp)
    found.sort(key=lambda c: (c.start, -(c.end - c.start)))
    selected: List[_Component] = []
    for comp in found:
        if selected and comp.start < selected[-1].end:
            continue
        selected.append(comp)
    return selected


def _joinable(first: _Component, second: _Component, text: str) -> bool:
    if "datetime" in (first.category, second.category):
        return False
    if (first.category == "time") == (second.category == "time"):
        return False
    return _JOINER_RE.fullmatch(text[first.end:second.start]) is not None


def _resolve(parts: List[_Component], phrase: str, ref: datetime) -> datetime:
    date_part = next((p for p in parts if p.category != "time"), None)
    time_part = next((p for p in parts if p.category == "time"), None)

    if date_part is not None and date_part.category == "datetime":
        return datetime.combine(date_part.day, time(date_part.hour, date_part.minute))

    tonight = "tonight" in phrase.lower()
    if time_part is None:
        if date_part is None or date_part.day is None:
            raise ValueError("schedule phrase has neither a date nor a time")
        hour = EVENING_HOUR if tonight else DEFAULT_HOUR
        return datetime.combine(date_part.day, time(hour, DEFAULT_MINUTE))

    hour = time_part.hour if time_part.hour is not None else DEFAULT_HOUR
    if tonight and not time_part.meridiem and hour < 12:
        hour += 12
    minute = DEFAULT_MINUTE if time_part.minute is None else time_part.minute
    if date_part is not None and date_part.day is not None:
        return datetime.combine(date_part.day, time(hour, minute))

    # A bare time of day means its next occurrence
    moment = datetime.combine(ref.date(), time(hour, minute))
    if moment < ref:
        moment += timedelta(days=1)
    return moment


def _cleanup(text: str) -> str:
    collapsed = _WHITESPACE_RE.sub(" ", text)
    return _SPACE_BEFORE_PUNCT_RE.sub(r"\1", collapsed).strip()


def local_wall_clock(moment: Optional[datetime] = None) -> datetime:
    """Naive local wall-clock time for `moment` (naive values are taken as already local)."""
    if moment is None:
        return datetime.now()
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(tz.tzlocal()).replace(tzinfo=None)


def to_utc_iso(local_moment: datetime) -> str:
    """Serialize a naive local datetime as a UTC ISO-8601 string with millisecond precision."""
    aware = local_moment.replace(second=0, microsecond=0, tzinfo=tz.tzlocal())
    return aware.astimezone(tz.UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z")


# PUBLIC_INTERFACE
def parse_schedule(text: str, reference: Optional[datetime] = None) -> ParsedSchedule:
    """
    Extract the first natural-language date/time phrase from `text`.

    Args:
        text: Free-form todo text, e.g. "Buy milk tomorrow 9am".
        reference: The instant relative phrases resolve against. Naive values are local
            wall-clock; defaults to now.

    Returns:
        ParsedSchedule. When nothing is recognized both schedule fields are None and
        cleaned_text is the tidied input. Never raises for malformed input.

    Resolution rules:
    - Ambiguous phrases (bare weekday, month/day without year, bare time) resolve forward.
    - Date without an hour -> 17:00, or 20:00 when the phrase says "tonight".
    - Hour without minutes -> :00. Seconds are always zero.
    """
    ref = local_wall_clock(reference)
    found = _scan(text, ref)
    if not found:
        return ParsedSchedule(cleaned_text=_cleanup(text), scheduled_at=None, schedule_text=None)

    parts = [found[0]]
    if len(found) > 1 and _joinable(found[0], found[1], text):
        parts.append(found[1])
    start, end = parts[0].start, parts[-1].end
    phrase = text[start:end]

    try:
        moment = _resolve(parts, phrase, ref)
    except (ValueError, OverflowError):
        return ParsedSchedule(cleaned_text=_cleanup(text), scheduled_at=None, schedule_text=None)

    return ParsedSchedule(
        cleaned_text=_cleanup(text[:start] + text[end:]),
        scheduled_at=to_utc_iso(moment),
        schedule_text=phrase.strip(),
    )


def _parse_instant(scheduled_at: Optional[str]) -> Optional[datetime]:
    if not scheduled_at:
        return None
    try:
        parsed = isoparse(scheduled_at)
    except (ValueError, OverflowError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz.tzlocal())
    return parsed


def _aware_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(tz.tzlocal())
    if now.tzinfo is None:
        return now.replace(tzinfo=tz.tzlocal())
    return now


def _local_date(moment: datetime) -> date:
    return moment.astimezone(tz.tzlocal()).date()


# PUBLIC_INTERFACE
def is_past_due(scheduled_at: Optional[str], now: Optional[datetime] = None) -> bool:
    """True if `scheduled_at` parses to an instant strictly earlier than `now`."""
    due = _parse_instant(scheduled_at)
    return due is not None and due < _aware_now(now)


# PUBLIC_INTERFACE
def is_due_today(scheduled_at: Optional[str], now: Optional[datetime] = None) -> bool:
    """True if `scheduled_at` falls on `now`'s local calendar date (past-due instants included)."""
    due = _parse_instant(scheduled_at)
    return due is not None and _local_date(due) == _local_date(_aware_now(now))


# PUBLIC_INTERFACE
def is_due_tomorrow(scheduled_at: Optional[str], now: Optional[datetime] = None) -> bool:
    """True if `scheduled_at` falls on the local calendar date after `now`'s."""
    due = _parse_instant(scheduled_at)
    if due is None:
        return False
    return _local_date(due) == _local_date(_aware_now(now)) + timedelta(days=1)


# PUBLIC_INTERFACE
def format_scheduled_at(scheduled_at: Optional[str]) -> Optional[str]:
    """
    Human-readable local rendering such as 'Jan 2, 2024, 9:00 AM'.

    Returns None when `scheduled_at` is None or unparseable.
    """
    due = _parse_instant(scheduled_at)
    if due is None:
        return None
    local = due.astimezone(tz.tzlocal())
    hour12 = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local:%b} {local.day}, {local.year}, {hour12}:{local:%M} {meridiem}"
