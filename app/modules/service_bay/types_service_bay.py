from datetime import date
from enum import Enum


class Weekday(str, Enum):
    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"
    saturday = "saturday"
    sunday = "sunday"

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        # date.weekday() is 0 for Monday, which is also the declaration order
        return list(cls)[day.weekday()]

    def __str__(self) -> str:
        return f"{self.name}<{self.value}>"


class BookingStatus(str, Enum):
    booking_request = "booking_request"
    booking_accepted = "booking_accepted"
    booking_rejected = "booking_rejected"
    work_in_progress = "work_in_progress"
    work_review = "work_review"
    rework = "rework"
    completed_jobs = "completed_jobs"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.booking_rejected, BookingStatus.completed_jobs)

    @property
    def occupies_slot(self) -> bool:
        """
        Every booking which was not rejected keeps its slot, including completed ones
        """
        return self != BookingStatus.booking_rejected

    def __str__(self) -> str:
        return f"{self.name}<{self.value}>"


class BookingEvent(str, Enum):
    accept = "accept"
    reject = "reject"
    start_work = "start_work"
    submit_work = "submit_work"
    save_draft = "save_draft"
    approve = "approve"
    request_rework = "request_rework"
    resubmit_work = "resubmit_work"

    def __str__(self) -> str:
        return f"{self.name}<{self.value}>"


class VehicleType(str, Enum):
    inspection = "inspection"
    tradein = "tradein"


class RejectionReason(str, Enum):
    NON_WORKING_DAY = "NON_WORKING_DAY"
    OUTSIDE_WORKING_HOURS = "OUTSIDE_WORKING_HOURS"
    HOLIDAY_CONFLICT = "HOLIDAY_CONFLICT"
    BOOKING_CONFLICT = "BOOKING_CONFLICT"
    PAST_INTERVAL = "PAST_INTERVAL"
    CROSS_DAY_INTERVAL = "CROSS_DAY_INTERVAL"
    INVALID_INTERVAL = "INVALID_INTERVAL"
    BAY_INACTIVE = "BAY_INACTIVE"
    DUPLICATE_BOOKING = "DUPLICATE_BOOKING"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_FOUND = "NOT_FOUND"


class SchedulingEventType(str, Enum):
    booking_created = "booking_created"
    booking_transitioned = "booking_transitioned"
    holiday_created = "holiday_created"
    holiday_removed = "holiday_removed"
