"""
SLA Value Objects
==================

Immutable value objects and pure domain services for the SLA domain.

- Duration strings ("30m", "4h", "2d") and their parser
- Business hours schedules (validated with Pydantic, as persisted)
- BusinessCalendar: read-only lookup of open windows and holidays
- SlaDeadlineCalculator: walks business time forward from a start instant
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from deskflow.config import DURATION_PATTERN
from deskflow.core import ConfigurationException, InvalidDuration

if TYPE_CHECKING:
    from deskflow.sla.domain.entities import Holiday


WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
MINUTES_PER_DAY = 24 * 60

_DURATION_RE = re.compile(DURATION_PATTERN)
_UNIT_MINUTES = {"m": 1, "h": 60, "d": MINUTES_PER_DAY}


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string like "2h", "30m" or "1d".

    Raises:
        InvalidDuration: when the value is not <positive integer><m|h|d>
    """
    if not isinstance(value, str):
        raise InvalidDuration(value, "duration must be a string")

    match = _DURATION_RE.fullmatch(value)
    if match is None:
        raise InvalidDuration(value)

    minutes = int(match.group(1)) * _UNIT_MINUTES[match.group(2)]
    if minutes <= 0:
        raise InvalidDuration(value, "duration must be greater than 0")
    return timedelta(minutes=minutes)


def ensure_utc(instant: datetime) -> datetime:
    """Return ``instant`` as an aware UTC datetime (naive values are taken as UTC)."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _parse_clock(value: str, allow_end_of_day: bool = False) -> int:
    """Convert "HH:MM" to minutes after midnight."""
    try:
        hours_str, minutes_str = value.split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")

    if allow_end_of_day and hours == 24 and minutes == 0:
        return MINUTES_PER_DAY
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return hours * 60 + minutes


class DaySchedule(BaseModel):
    """Opening window for one weekday in the schedule's local time."""
    day: str = Field(..., description="Weekday name, e.g. Monday")
    start: str = Field(..., description="Opening time HH:MM")
    end: str = Field(..., description="Closing time HH:MM (24:00 allowed)")

    @field_validator("day")
    @classmethod
    def validate_day(cls, v: str) -> str:
        normalized = v.strip().capitalize()
        if normalized not in WEEKDAYS:
            raise ValueError(f"day must be one of {WEEKDAYS}")
        return normalized

    @model_validator(mode="after")
    def validate_window(self) -> "DaySchedule":
        if self.end_minute <= self.start_minute:
            raise ValueError(f"{self.day}: end {self.end} must be after start {self.start}")
        return self

    @property
    def weekday(self) -> int:
        return WEEKDAYS.index(self.day)

    @property
    def start_minute(self) -> int:
        return _parse_clock(self.start)

    @property
    def end_minute(self) -> int:
        return _parse_clock(self.end, allow_end_of_day=True)


class BusinessHours(BaseModel):
    """
    Named weekly schedule in an IANA timezone.

    Persisted as {"timezone": "America/New_York", "schedule": [{"day": "Monday",
    "start": "09:00", "end": "17:00"}, ...]}.
    """
    name: str = Field(default="default", min_length=1, max_length=100)
    timezone: str = Field(default="UTC", description="IANA timezone identifier")
    schedule: List[DaySchedule] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @classmethod
    def around_the_clock(cls, name: str = "24x7", timezone: str = "UTC") -> "BusinessHours":
        return cls(
            name=name,
            timezone=timezone,
            schedule=[DaySchedule(day=d, start="00:00", end="24:00") for d in WEEKDAYS]
        )


Window = Tuple[datetime, datetime]


class BusinessCalendar:
    """
    Read-only lookup of business windows and holidays.

    Pure function of (timezone, weekly schedule, holiday set). All returned
    instants are aware UTC datetimes.
    """

    SEARCH_HORIZON_DAYS = 731

    def __init__(
        self,
        timezone_name: str,
        windows: Dict[int, List[Tuple[int, int]]],
        holidays: Iterable["Holiday"] = ()
    ):
        self._tz = ZoneInfo(timezone_name)
        self.timezone_name = timezone_name
        self._windows = {day: _merge(windows.get(day, [])) for day in range(7)}
        if not any(self._windows.values()):
            raise ConfigurationException("Business calendar has no open window on any weekday")

        self._exact_holidays = set()
        self._recurring_holidays = set()
        for holiday in holidays:
            if holiday.recurring:
                self._recurring_holidays.add((holiday.date.month, holiday.date.day))
            else:
                self._exact_holidays.add(holiday.date)

    @classmethod
    def from_business_hours(
        cls,
        hours: BusinessHours,
        holidays: Iterable["Holiday"] = ()
    ) -> "BusinessCalendar":
        windows: Dict[int, List[Tuple[int, int]]] = {}
        for entry in hours.schedule:
            windows.setdefault(entry.weekday, []).append((entry.start_minute, entry.end_minute))
        return cls(hours.timezone, windows, holidays)

    @classmethod
    def around_the_clock(cls, timezone_name: str = "UTC") -> "BusinessCalendar":
        """Calendar where every minute is business time."""
        return cls.from_business_hours(BusinessHours.around_the_clock(timezone=timezone_name))

    def is_holiday(self, day: date) -> bool:
        return day in self._exact_holidays or (day.month, day.day) in self._recurring_holidays

    def is_business_time(self, instant: datetime) -> bool:
        t = ensure_utc(instant)
        start, end = self.next_window(t)
        return start <= t < end

    def next_business_instant(self, instant: datetime) -> datetime:
        """Return ``instant`` if it is open, else the start of the next open window."""
        t = ensure_utc(instant)
        start, _ = self.next_window(t)
        if start <= t:
            return t
        return start

    def business_window_end(self, instant: datetime) -> datetime:
        """End of the open window containing ``instant``."""
        t = ensure_utc(instant)
        start, end = self.next_window(t)
        if start > t:
            raise ValueError(f"{instant.isoformat()} is not business time")
        return end

    def next_window(self, instant: datetime) -> Window:
        """
        First open window that ends after ``instant``.

        The window may start before ``instant`` (``instant`` is inside it) or
        after it (``instant`` falls in a gap).
        """
        t = ensure_utc(instant)
        local_day = t.astimezone(self._tz).date()
        for offset in range(-1, self.SEARCH_HORIZON_DAYS):
            for start, end in self._windows_on(local_day + timedelta(days=offset)):
                if end > t:
                    return start, end
        raise ConfigurationException(
            f"No business hours within {self.SEARCH_HORIZON_DAYS} days of {t.isoformat()}"
        )

    def _windows_on(self, day: date) -> List[Window]:
        if self.is_holiday(day):
            return []
        midnight = datetime(day.year, day.month, day.day, tzinfo=self._tz)
        return [
            (
                (midnight + timedelta(minutes=start)).astimezone(timezone.utc),
                (midnight + timedelta(minutes=end)).astimezone(timezone.utc),
            )
            for start, end in self._windows[day.weekday()]
        ]


def _merge(windows: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
    merged: List[Tuple[int, int]] = []
    for start, end in sorted(windows):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


class SlaDeadlineCalculator:
    """
    Pure functions for SLA deadline calculation.

    Stateless utility class - all deadline logic in one place.
    """

    @staticmethod
    def compute_deadline(
        start: datetime,
        duration_spec: str,
        calendar: Optional[BusinessCalendar] = None
    ) -> datetime:
        """
        Calculate an absolute deadline by consuming business time only.

        The clock runs in whole minutes: seconds of ``start`` are dropped.

        Args:
            start: Instant the SLA clock starts
            duration_spec: Duration string, e.g. "4h"
            calendar: Business calendar (24/7 when omitted)

        Returns:
            Aware UTC deadline

        Raises:
            InvalidDuration: when ``duration_spec`` does not parse
        """
        remaining = parse_duration(duration_spec)
        calendar = calendar or BusinessCalendar.around_the_clock()

        cursor = ensure_utc(start).replace(second=0, microsecond=0)
        while True:
            window_start, window_end = calendar.next_window(cursor)
            cursor = max(cursor, window_start)
            available = window_end - cursor
            if remaining <= available:
                return cursor + remaining
            remaining -= available
            cursor = window_end
