"""
Time windows and weekly opening hours of a service bay.

All times are local wall-clock times of the bay, with a minute resolution.
Windows are half-open: `[start, end)`. Two windows which only touch at an endpoint do not overlap.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, time

from app.modules.service_bay.types_service_bay import Weekday


class InvalidTimeWindowError(ValueError):
    def __init__(self, start: time, end: time):
        super().__init__(
            f"Invalid time window {start.isoformat()}-{end.isoformat()}: start should be before end and times should have a minute resolution",
        )


class InvalidWeeklyTimingError(ValueError):
    def __init__(self, message: str):
        super().__init__(f"Invalid weekly timing: {message}")


def is_minute_resolution(value: time) -> bool:
    return value.second == 0 and value.microsecond == 0 and value.tzinfo is None


@dataclass(frozen=True, order=True)
class TimeWindow:
    start: time
    end: time

    def __post_init__(self) -> None:
        if (
            not is_minute_resolution(self.start)
            or not is_minute_resolution(self.end)
            or self.start >= self.end
        ):
            raise InvalidTimeWindowError(self.start, self.end)

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeWindow") -> bool:
        return self.start <= other.start and other.end <= self.end

    def subtract(self, others: Iterable["TimeWindow"]) -> list["TimeWindow"]:
        """
        Return the parts of this window which are not covered by `others`, in chronological order
        """
        free: list[TimeWindow] = []
        cursor = self.start
        for other in sorted(others):
            if not self.overlaps(other):
                continue
            if other.start > cursor:
                free.append(TimeWindow(cursor, other.start))
            cursor = max(cursor, other.end)
        if cursor < self.end:
            free.append(TimeWindow(cursor, self.end))
        return free

    def __str__(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


@dataclass(frozen=True)
class DayTiming:
    """
    Opening hours of a bay for one day of the week.

    A closed day has no window: a closed day with opening times can not be built.
    """

    day_of_week: Weekday
    window: TimeWindow | None = None

    @classmethod
    def open(cls, day_of_week: Weekday, start: time, end: time) -> "DayTiming":
        return cls(day_of_week=day_of_week, window=TimeWindow(start, end))

    @classmethod
    def closed(cls, day_of_week: Weekday) -> "DayTiming":
        return cls(day_of_week=day_of_week, window=None)

    @property
    def is_working_day(self) -> bool:
        return self.window is not None


class WeeklyTimingTable:
    """
    The seven opening hours entries of a bay, exactly one per day of the week.
    """

    def __init__(self, entries: Iterable[DayTiming]):
        self._entries: dict[Weekday, DayTiming] = {}
        for entry in entries:
            if entry.day_of_week in self._entries:
                raise InvalidWeeklyTimingError(
                    f"{entry.day_of_week.value} is defined more than once",
                )
            self._entries[entry.day_of_week] = entry

        missing = [day.value for day in Weekday if day not in self._entries]
        if missing:
            raise InvalidWeeklyTimingError(f"missing entries for {', '.join(missing)}")

    @classmethod
    def default(cls) -> "WeeklyTimingTable":
        """
        Opening hours given to a bay created without explicit timings
        """
        return cls(
            [
                DayTiming.open(Weekday.monday, time(9, 0), time(18, 0)),
                DayTiming.open(Weekday.tuesday, time(9, 0), time(18, 0)),
                DayTiming.open(Weekday.wednesday, time(9, 0), time(18, 0)),
                DayTiming.open(Weekday.thursday, time(9, 0), time(18, 0)),
                DayTiming.open(Weekday.friday, time(9, 0), time(18, 0)),
                DayTiming.open(Weekday.saturday, time(9, 0), time(14, 0)),
                DayTiming.closed(Weekday.sunday),
            ],
        )

    def __getitem__(self, day_of_week: Weekday) -> DayTiming:
        return self._entries[day_of_week]

    def __iter__(self) -> Iterator[DayTiming]:
        return (self._entries[day] for day in Weekday)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeeklyTimingTable):
            return NotImplemented
        return self._entries == other._entries

    def for_date(self, day: date) -> DayTiming:
        return self[Weekday.from_date(day)]
