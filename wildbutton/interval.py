"""
Time-zone-aware fire time arithmetic.

A team configures a weekday mask, an interval inside the day (seconds since
local midnight) and a timezone. ``next_fire_time`` turns that plus a reference
instant into the epoch second the next button should be posted at.

All day arithmetic happens on aware local datetimes (``zoneinfo``), so a DST
change moves the UTC instant and keeps the local wall clock inside the window.
"""
from __future__ import annotations

import random
import re
from datetime import date, datetime, time, timedelta
from typing import Protocol, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidScheduleError
from .models import ALL_WEEKDAYS, SECONDS_PER_DAY

DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

RE_CLOCK = re.compile(r"^(?P<h>\d{1,2}):(?P<m>\d{2})$")


class ScheduleConfig(Protocol):
    weekdays: int
    interval_start: int
    interval_end: int
    timezone: str


def weekday_bit(day: date) -> int:
    return 1 << (6 - day.weekday())


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidScheduleError(f"Unknown timezone: {name!r}") from e


def validate(config: ScheduleConfig) -> ZoneInfo:
    """Raise InvalidScheduleError unless ``config`` can ever fire."""
    if not config.weekdays & ALL_WEEKDAYS:
        raise InvalidScheduleError("No weekday is enabled")
    if not 0 <= config.interval_start < config.interval_end <= SECONDS_PER_DAY:
        raise InvalidScheduleError(
            f"Invalid interval {config.interval_start}..{config.interval_end}"
        )
    return _zone(config.timezone)


def next_fire_time(
    config: ScheduleConfig,
    reference: float,
    rng: random.Random = random,
    skip_today: bool = False,
) -> int:
    """
    Epoch second of the next fire instant strictly after ``reference``.

    Today is a candidate only while the local clock is before the end of the
    interval (and never when ``skip_today`` is set). On today the random
    offset is drawn from what is left of the interval.
    """
    tz = validate(config)
    local_now = datetime.fromtimestamp(reference, tz)
    today = local_now.date()
    seconds_today = local_now.hour * 3600 + local_now.minute * 60 + local_now.second

    # a week plus today covers every enabled weekday once
    for days_ahead in range(1 if skip_today else 0, 8):
        day = today + timedelta(days=days_ahead)
        if not config.weekdays & weekday_bit(day):
            continue
        low = config.interval_start
        if days_ahead == 0:
            low = max(low, seconds_today + 1)
        if low >= config.interval_end:
            continue
        midnight = datetime.combine(day, time(), tzinfo=tz)
        offset = rng.randrange(low, config.interval_end)
        fire = int((midnight + timedelta(seconds=offset)).timestamp())
        if fire > reference:
            return fire

    raise InvalidScheduleError("No fire time found within a week")


def same_local_day(timezone: str, first: float, second: float) -> bool:
    tz = _zone(timezone)
    return datetime.fromtimestamp(first, tz).date() == datetime.fromtimestamp(second, tz).date()


def parse_weekdays(text: str) -> int:
    """``"mon,tue,fri"`` or ``"mon-fri"`` -> weekday mask."""
    mask = 0
    for part in re.split(r"[\s,]+", text.strip().lower()):
        if not part:
            continue
        if "-" in part:
            first, _, last = part.partition("-")
            start, end = _day_index(first), _day_index(last)
            if start > end:
                raise ValueError(f"Backwards day range: {part}")
            for idx in range(start, end + 1):
                mask |= 1 << (6 - idx)
        else:
            mask |= 1 << (6 - _day_index(part))
    return mask


def _day_index(name: str) -> int:
    try:
        return DAY_NAMES.index(name[:3])
    except ValueError:
        raise ValueError(f"Unknown weekday: {name}") from None


def format_weekdays(mask: int) -> str:
    days = [name.title() for idx, name in enumerate(DAY_NAMES) if mask & (1 << (6 - idx))]
    return ", ".join(days) if days else "no days"


def parse_clock(text: str) -> int:
    m = RE_CLOCK.match(text.strip())
    if not m:
        raise ValueError(f"Expected HH:MM, got {text!r}")
    hours, minutes = int(m.group("h")), int(m.group("m"))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes):
        raise ValueError(f"Not a time of day: {text!r}")
    return hours * 3600 + minutes * 60


def parse_interval(text: str) -> Tuple[int, int]:
    """``"09:00-16:00"`` -> (32400, 57600)."""
    first, sep, last = text.partition("-")
    if not sep:
        raise ValueError(f"Expected HH:MM-HH:MM, got {text!r}")
    start, end = parse_clock(first), parse_clock(last)
    if start >= end:
        raise ValueError("Interval must end after it starts")
    return start, end


def format_clock(seconds: int) -> str:
    return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}"
