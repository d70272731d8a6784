"""Schemas file for endpoint /service-bay"""

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.notification.schemas_notification import Message
from app.modules.service_bay.timing_service_bay import (
    DayTiming,
    TimeWindow,
    WeeklyTimingTable,
)
from app.modules.service_bay.types_service_bay import (
    BookingEvent,
    BookingStatus,
    RejectionReason,
    SchedulingEventType,
    VehicleType,
    Weekday,
)


class Rejection(BaseModel):
    """
    A refused operation. No state was modified.

    `detail` contains the information needed to render a precise message, for example the bay opening hours
    or the conflicting interval.
    """

    reason: RejectionReason
    message: str
    detail: dict[str, Any] = {}

    @classmethod
    def not_found(cls, object_name: str, object_id: Any) -> "Rejection":
        return cls(
            reason=RejectionReason.NOT_FOUND,
            message=f"{object_name} not found",
            detail={"id": str(object_id)},
        )

    @classmethod
    def forbidden(cls, message: str) -> "Rejection":
        return cls(reason=RejectionReason.FORBIDDEN, message=message)


class Window(BaseModel):
    start: time
    end: time

    @classmethod
    def from_time_window(cls, window: TimeWindow) -> "Window":
        return cls(start=window.start, end=window.end)


class DayTimingBase(BaseModel):
    day_of_week: Weekday
    is_working_day: bool
    start_time: time | None = None
    end_time: time | None = None
    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def check_times(self) -> "DayTimingBase":
        """
        A closed day never keeps opening times, an open day requires a valid window
        """
        if not self.is_working_day:
            self.start_time = None
            self.end_time = None
            return self
        if self.start_time is None or self.end_time is None:
            raise ValueError("A working day requires a start_time and an end_time")  # noqa: TRY003
        # Raises InvalidTimeWindowError, a ValueError, if the window is invalid
        TimeWindow(self.start_time, self.end_time)
        return self

    def to_day_timing(self) -> DayTiming:
        if self.is_working_day and self.start_time and self.end_time:
            return DayTiming.open(self.day_of_week, self.start_time, self.end_time)
        return DayTiming.closed(self.day_of_week)

    @classmethod
    def from_day_timing(cls, day_timing: DayTiming) -> "DayTimingBase":
        return cls(
            day_of_week=day_timing.day_of_week,
            is_working_day=day_timing.is_working_day,
            start_time=day_timing.window.start if day_timing.window else None,
            end_time=day_timing.window.end if day_timing.window else None,
        )


def weekly_timing_from_schemas(entries: list[DayTimingBase]) -> WeeklyTimingTable:
    return WeeklyTimingTable(entry.to_day_timing() for entry in entries)


class WeeklyTimingUpdate(BaseModel):
    weekly_timing: list[DayTimingBase]

    @field_validator("weekly_timing")
    @classmethod
    def check_one_entry_per_day(
        cls,
        weekly_timing: list[DayTimingBase],
    ) -> list[DayTimingBase]:
        # Raises InvalidWeeklyTimingError, a ValueError, if a day is missing or duplicated
        weekly_timing_from_schemas(weekly_timing)
        return weekly_timing


class BayBase(BaseModel):
    name: str
    description: str | None = None
    dealership_id: str
    primary_admin_id: str
    bay_user_ids: list[str] = []
    timezone: str | None = Field(
        default=None,
        description="IANA timezone of the bay opening hours, the server default is used if not provided",
    )
    weekly_timing: list[DayTimingBase] | None = Field(
        default=None,
        description="Default opening hours (Monday to Friday 09:00-18:00, Saturday 09:00-14:00) are used if not provided",
    )

    @field_validator("weekly_timing")
    @classmethod
    def check_one_entry_per_day(
        cls,
        weekly_timing: list[DayTimingBase] | None,
    ) -> list[DayTimingBase] | None:
        if weekly_timing is not None:
            weekly_timing_from_schemas(weekly_timing)
        return weekly_timing


class BayUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    dealership_id: str | None = None
    primary_admin_id: str | None = None
    bay_user_ids: list[str] | None = None


class BayStatusUpdate(BaseModel):
    is_active: bool


class BayComplete(BaseModel):
    id: uuid.UUID
    company_id: str
    name: str
    description: str | None
    dealership_id: str
    primary_admin_id: str
    bay_user_ids: list[str]
    timezone: str
    is_active: bool
    weekly_timing: list[DayTimingBase]
    created_by: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class HolidayBase(BaseModel):
    start: datetime = Field(
        description="Local wall-clock time of the bay. Timezone-aware values are converted to the bay timezone",
    )
    end: datetime
    reason: str | None = None


class HolidayComplete(BaseModel):
    id: uuid.UUID
    bay_id: uuid.UUID
    holiday_date: date
    start_time: time
    end_time: time
    reason: str
    marked_by: str
    marked_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BookingBase(BaseModel):
    vehicle_type: VehicleType
    vehicle_stock_id: int
    field_id: str
    field_name: str
    start: datetime = Field(
        description="Local wall-clock time of the bay. Timezone-aware values are converted to the bay timezone",
    )
    end: datetime
    quote_amount: Decimal | None = None
    booking_description: str | None = None
    images: list[str] = []
    videos: list[str] = []


class WorkSubmissionBase(BaseModel):
    final_price: Decimal | None = None
    gst_amount: Decimal | None = None
    total_amount: Decimal | None = None
    supplier_comments: str | None = None
    work_images: list[str] = []
    work_videos: list[str] = []


class WorkSubmissionComplete(WorkSubmissionBase):
    draft_status: bool
    company_feedback: str | None
    submitted_at: datetime | None
    reviewed_at: datetime | None
    model_config = ConfigDict(from_attributes=True)


class BookingComplete(BaseModel):
    id: uuid.UUID
    bay_id: uuid.UUID
    company_id: str
    vehicle_type: VehicleType
    vehicle_stock_id: int
    field_id: str
    field_name: str
    booking_date: date
    start_time: time
    end_time: time
    status: BookingStatus
    quote_amount: Decimal | None
    booking_description: str | None
    images: list[str]
    videos: list[str]
    created_by: str
    created_at: datetime
    updated_at: datetime
    accepted_by: str | None
    accepted_at: datetime | None
    rejected_reason: str | None
    work_started_at: datetime | None
    work_submitted_at: datetime | None
    work_completed_at: datetime | None
    work_submission: WorkSubmissionComplete | None
    model_config = ConfigDict(from_attributes=True)


class AcceptBooking(BaseModel):
    event: Literal[BookingEvent.accept]


class RejectBooking(BaseModel):
    event: Literal[BookingEvent.reject]
    reason: str


class StartWork(BaseModel):
    event: Literal[BookingEvent.start_work]


class SubmitWork(BaseModel):
    event: Literal[BookingEvent.submit_work]
    submission: WorkSubmissionBase


class SaveDraft(BaseModel):
    event: Literal[BookingEvent.save_draft]
    submission: WorkSubmissionBase


class ApproveWork(BaseModel):
    event: Literal[BookingEvent.approve]


class RequestRework(BaseModel):
    event: Literal[BookingEvent.request_rework]
    feedback: str


class ResubmitWork(BaseModel):
    event: Literal[BookingEvent.resubmit_work]
    submission: WorkSubmissionBase
    draft: bool = False


TransitionRequest = Annotated[
    AcceptBooking
    | RejectBooking
    | StartWork
    | SubmitWork
    | SaveDraft
    | ApproveWork
    | RequestRework
    | ResubmitWork,
    Field(discriminator="event"),
]


class HolidayInterval(BaseModel):
    id: uuid.UUID
    start: time
    end: time
    reason: str


class BookingInterval(BaseModel):
    id: uuid.UUID
    start: time
    end: time
    status: BookingStatus
    field_name: str


class DayAvailability(BaseModel):
    date: date
    day_of_week: Weekday
    open_window: Window | None
    holidays: list[HolidayInterval]
    bookings: list[BookingInterval]
    free_windows: list[Window]
    rejected_bookings: list[BookingInterval] | None = None


class BayCalendar(BaseModel):
    bays: list[BayComplete]
    bookings: list[BookingComplete]


class SchedulingEvent(Message):
    """
    Sent to the notification webhook once an operation was committed
    """

    event_type: SchedulingEventType
    action_module: str = "service-bay"
    bay_id: uuid.UUID
    booking_id: uuid.UUID | None = None
    booking_event: BookingEvent | None = None
    status: BookingStatus | None = None
    holiday_id: uuid.UUID | None = None
