from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """
    Source of the current instant.

    Code comparing records to "now" should receive a clock instead of calling `datetime.now()`,
    tests can then provide a fixed instant. Use the `get_clock` dependency to access it.
    """

    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """
    A clock always returning the same timezone-aware instant
    """

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")  # noqa: TRY003
        self.instant = instant

    def now(self) -> datetime:
        return self.instant
