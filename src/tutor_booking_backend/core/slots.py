'''
Derives bookable time slots from a tutor's availability windows.

Windows hold wall-clock times in the tutor's timezone. Slots are concrete
[start, end) UTC instants. A slot always fits inside a single window: two
adjacent or overlapping windows are never merged to fit a longer lesson.
'''
import heapq
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Iterator, Protocol
from zoneinfo import ZoneInfo

from ..common.exceptions import ValidationError


class WindowLike(Protocol):
    is_recurring: bool
    day_of_week: int | None
    specific_date: date | None
    start_time: time
    end_time: time


@dataclass(frozen=True, order=True)
class Slot:
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def day_of_week_for(target_date: date) -> int:
    """Weekday number with 0 as Sunday, the convention availability windows use."""
    return (target_date.weekday() + 1) % 7


def window_applies_to(window: WindowLike, target_date: date) -> bool:
    if window.is_recurring:
        return window.day_of_week == day_of_week_for(target_date)
    return window.specific_date == target_date


def window_bounds_utc(window: WindowLike, target_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """The window's [start, end) on `target_date`, as UTC instants."""
    start = datetime.combine(target_date, window.start_time, tzinfo=tz).astimezone(timezone.utc)
    end = datetime.combine(target_date, window.end_time, tzinfo=tz).astimezone(timezone.utc)
    return start, end


def load_timezone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (KeyError, ValueError) as e:
        raise ValidationError(f"Unknown timezone '{tz_name}'.") from e


class SlotGenerator:
    """
    A lazy, finite and restartable sequence of candidate slots for one date.

    Iterating twice yields the same slots in the same order (by start, then
    end). Identical slots produced by overlapping windows are emitted once.
    """

    def __init__(
        self,
        windows: Iterable[WindowLike],
        target_date: date,
        tz_name: str = "UTC",
        duration_minutes: int = 60,
        step_minutes: int = 30,
    ):
        if duration_minutes <= 0:
            raise ValidationError("Lesson duration must be a positive number of minutes.")
        if step_minutes <= 0:
            raise ValidationError("Slot step must be a positive number of minutes.")
        self.target_date = target_date
        self.tz = load_timezone(tz_name)
        self.duration = timedelta(minutes=duration_minutes)
        self.step = timedelta(minutes=step_minutes)
        self.windows = [w for w in windows if window_applies_to(w, target_date)]

    def _walk_window(self, window: WindowLike) -> Iterator[Slot]:
        window_start, window_end = window_bounds_utc(window, self.target_date, self.tz)
        cursor = window_start
        while cursor + self.duration <= window_end:
            yield Slot(cursor, cursor + self.duration)
            cursor += self.step

    def __iter__(self) -> Iterator[Slot]:
        previous = None
        for slot in heapq.merge(*(self._walk_window(w) for w in self.windows)):
            if slot != previous:
                yield slot
            previous = slot

    def __repr__(self) -> str:
        return (f"SlotGenerator(date={self.target_date}, windows={len(self.windows)}, "
                f"duration={self.duration}, step={self.step})")


def fits_availability(start: datetime, end: datetime, windows: Iterable[Any], tz_name: str = "UTC") -> bool:
    """
    True if [start, end) lies entirely inside a single window applicable to
    the local date of `start` in the tutor's timezone.
    """
    tz = load_timezone(tz_name)
    local_date = start.astimezone(tz).date()
    for window in windows:
        if not window_applies_to(window, local_date):
            continue
        window_start, window_end = window_bounds_utc(window, local_date, tz)
        if window_start <= start and end <= window_end:
            return True
    return False
