"""
Decide whether an interval can be booked on a bay.

The validator only reads the records it is given. Callers are responsible for
providing a consistent snapshot of the bay holidays and bookings, see `BayLockManager`.
"""

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, tzinfo

from app.modules.service_bay import models_service_bay
from app.modules.service_bay.schemas_service_bay import Rejection, Window
from app.modules.service_bay.timing_service_bay import (
    InvalidTimeWindowError,
    TimeWindow,
    WeeklyTimingTable,
)
from app.modules.service_bay.types_service_bay import BookingStatus, RejectionReason
from app.types.clock import Clock


@dataclass(frozen=True)
class OccupiedInterval:
    """
    A holiday or a booking interval on a given date.

    `status` is None for holidays.
    """

    id: uuid.UUID
    day: date
    window: TimeWindow
    status: BookingStatus | None = None

    @property
    def occupies_slot(self) -> bool:
        return self.status is None or self.status.occupies_slot


@dataclass(frozen=True)
class LocalInterval:
    day: date
    window: TimeWindow


def to_bay_wall_clock(value: datetime, bay_timezone: tzinfo) -> datetime:
    """
    Naive datetimes are already wall-clock times of the bay. Timezone-aware ones are converted to the bay timezone.
    """
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=None)
    return value.astimezone(bay_timezone).replace(tzinfo=None)


def _conflict_detail(conflict: OccupiedInterval) -> dict:
    return {
        "conflicting_id": str(conflict.id),
        "conflicting_start": conflict.window.start.strftime("%H:%M"),
        "conflicting_end": conflict.window.end.strftime("%H:%M"),
    }


class AvailabilityValidator:
    def __init__(self, clock: Clock):
        self.clock = clock

    def check_interval_shape(
        self,
        start: datetime,
        end: datetime,
        bay_timezone: tzinfo,
    ) -> LocalInterval | Rejection:
        """
        Convert a candidate interval to the bay wall-clock and make sure it is a valid single day interval
        """
        local_start = to_bay_wall_clock(start, bay_timezone)
        local_end = to_bay_wall_clock(end, bay_timezone)

        if local_end <= local_start:
            return Rejection(
                reason=RejectionReason.INVALID_INTERVAL,
                message="The interval end should be after its start",
                detail={
                    "start": local_start.isoformat(),
                    "end": local_end.isoformat(),
                },
            )
        if local_start.date() != local_end.date():
            return Rejection(
                reason=RejectionReason.CROSS_DAY_INTERVAL,
                message="The interval should start and end on the same day",
                detail={
                    "start_date": local_start.date().isoformat(),
                    "end_date": local_end.date().isoformat(),
                },
            )
        try:
            window = TimeWindow(local_start.time(), local_end.time())
        except InvalidTimeWindowError as error:
            return Rejection(
                reason=RejectionReason.INVALID_INTERVAL,
                message=str(error),
                detail={
                    "start": local_start.isoformat(),
                    "end": local_end.isoformat(),
                },
            )
        return LocalInterval(day=local_start.date(), window=window)

    def today(self, bay_timezone: tzinfo) -> date:
        return self.clock.now().astimezone(bay_timezone).date()

    def check_not_past(
        self,
        interval: LocalInterval,
        bay_timezone: tzinfo,
    ) -> Rejection | None:
        """
        An interval is in the past when it ends before the current instant, in the bay timezone
        """
        now = self.clock.now().astimezone(bay_timezone).replace(tzinfo=None)
        interval_end = datetime.combine(interval.day, interval.window.end)
        if interval_end <= now:
            return Rejection(
                reason=RejectionReason.PAST_INTERVAL,
                message="The interval is in the past",
                detail={
                    "end": interval_end.isoformat(),
                    "now": now.isoformat(timespec="minutes"),
                },
            )
        return None

    def validate(
        self,
        weekly_timing: WeeklyTimingTable,
        day: date,
        window: TimeWindow,
        holidays: Iterable[OccupiedInterval],
        bookings: Iterable[OccupiedInterval] = (),
    ) -> Rejection | None:
        """
        Return None if `window` can be used on `day`, a rejection otherwise.

        Holidays and bookings dated on another day are ignored, as well as rejected bookings.
        Pass no bookings to only check the opening hours and the holidays.
        """
        timing = weekly_timing.for_date(day)
        if timing.window is None:
            return Rejection(
                reason=RejectionReason.NON_WORKING_DAY,
                message=f"The bay is closed on {timing.day_of_week.value}",
                detail={"date": day.isoformat(), "day_of_week": timing.day_of_week},
            )

        if not timing.window.contains(window):
            return Rejection(
                reason=RejectionReason.OUTSIDE_WORKING_HOURS,
                message=f"The bay is open from {timing.window.start.strftime('%H:%M')} to {timing.window.end.strftime('%H:%M')} on {timing.day_of_week.value}",
                detail={
                    "date": day.isoformat(),
                    "open_start": timing.window.start.strftime("%H:%M"),
                    "open_end": timing.window.end.strftime("%H:%M"),
                },
            )

        for holiday in holidays:
            if holiday.day == day and holiday.window.overlaps(window):
                return Rejection(
                    reason=RejectionReason.HOLIDAY_CONFLICT,
                    message=f"The bay is closed for a holiday from {holiday.window}",
                    detail=_conflict_detail(holiday),
                )

        for booking in bookings:
            if (
                booking.occupies_slot
                and booking.day == day
                and booking.window.overlaps(window)
            ):
                return Rejection(
                    reason=RejectionReason.BOOKING_CONFLICT,
                    message=f"The bay is already booked from {booking.window}",
                    detail=_conflict_detail(booking),
                )

        return None


def free_windows(
    open_window: TimeWindow | None,
    occupied: Sequence[OccupiedInterval],
) -> list[Window]:
    """
    Parts of the open window which are covered by no holiday and no occupying booking
    """
    if open_window is None:
        return []
    return [
        Window.from_time_window(window)
        for window in open_window.subtract(
            interval.window for interval in occupied if interval.occupies_slot
        )
    ]


def holiday_interval(
    holiday: models_service_bay.ServiceBayHoliday,
) -> OccupiedInterval:
    return OccupiedInterval(
        id=holiday.id,
        day=holiday.holiday_date,
        window=TimeWindow(holiday.start_time, holiday.end_time),
    )


def booking_interval(
    booking: models_service_bay.ServiceBayBooking,
) -> OccupiedInterval:
    return OccupiedInterval(
        id=booking.id,
        day=booking.booking_date,
        window=TimeWindow(booking.start_time, booking.end_time),
        status=booking.status,
    )
