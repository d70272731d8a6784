"""Models file for service bay scheduling"""

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.modules.service_bay.timing_service_bay import DayTiming, WeeklyTimingTable
from app.modules.service_bay.types_service_bay import (
    BookingStatus,
    VehicleType,
    Weekday,
)
from app.types.sqlalchemy import Base, PrimaryKey


class ServiceBayUser(Base):
    __tablename__ = "service_bay_user"

    bay_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("service_bay.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(primary_key=True, index=True)


class ServiceBayTiming(Base):
    __tablename__ = "service_bay_timing"
    __table_args__ = (
        # A closed day can not keep opening times
        CheckConstraint(
            "(is_working_day AND start_time IS NOT NULL AND end_time IS NOT NULL AND start_time < end_time) "
            "OR (NOT is_working_day AND start_time IS NULL AND end_time IS NULL)",
            name="ck_service_bay_timing_window",
        ),
    )

    bay_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("service_bay.id", ondelete="CASCADE"),
        primary_key=True,
    )
    day_of_week: Mapped[Weekday] = mapped_column(primary_key=True)
    is_working_day: Mapped[bool]
    start_time: Mapped[time | None]
    end_time: Mapped[time | None]

    def to_day_timing(self) -> DayTiming:
        if self.is_working_day and self.start_time and self.end_time:
            return DayTiming.open(self.day_of_week, self.start_time, self.end_time)
        return DayTiming.closed(self.day_of_week)

    def set_day_timing(self, day_timing: DayTiming) -> None:
        self.is_working_day = day_timing.is_working_day
        self.start_time = day_timing.window.start if day_timing.window else None
        self.end_time = day_timing.window.end if day_timing.window else None

    @classmethod
    def from_day_timing(
        cls,
        bay_id: uuid.UUID,
        day_timing: DayTiming,
    ) -> "ServiceBayTiming":
        return cls(
            bay_id=bay_id,
            day_of_week=day_timing.day_of_week,
            is_working_day=day_timing.is_working_day,
            start_time=day_timing.window.start if day_timing.window else None,
            end_time=day_timing.window.end if day_timing.window else None,
        )


class ServiceBay(Base):
    __tablename__ = "service_bay"

    id: Mapped[PrimaryKey]
    company_id: Mapped[str] = mapped_column(index=True)
    name: Mapped[str]
    description: Mapped[str | None]
    dealership_id: Mapped[str] = mapped_column(index=True)
    primary_admin_id: Mapped[str]
    timezone: Mapped[str]
    is_active: Mapped[bool]
    created_by: Mapped[str]
    created_at: Mapped[datetime]

    users: Mapped[list[ServiceBayUser]] = relationship(
        lazy="selectin",
        cascade="all, delete-orphan",
        default_factory=list,
    )
    timings: Mapped[list[ServiceBayTiming]] = relationship(
        lazy="selectin",
        cascade="all, delete-orphan",
        default_factory=list,
    )

    @property
    def bay_user_ids(self) -> list[str]:
        return [bay_user.user_id for bay_user in self.users]

    @property
    def weekly_timing(self) -> list[ServiceBayTiming]:
        days = list(Weekday)
        return sorted(self.timings, key=lambda timing: days.index(timing.day_of_week))

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def timing_table(self) -> WeeklyTimingTable:
        return WeeklyTimingTable(timing.to_day_timing() for timing in self.timings)

    def is_bay_user(self, user_id: str) -> bool:
        """
        The primary admin is always a user of the bay
        """
        return user_id == self.primary_admin_id or user_id in self.bay_user_ids


class ServiceBayHoliday(Base):
    __tablename__ = "service_bay_holiday"
    __table_args__ = (
        Index("ix_service_bay_holiday_bay_id_holiday_date", "bay_id", "holiday_date"),
    )

    id: Mapped[PrimaryKey]
    bay_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("service_bay.id", ondelete="CASCADE"),
    )
    holiday_date: Mapped[date]
    start_time: Mapped[time]
    end_time: Mapped[time]
    reason: Mapped[str]
    marked_by: Mapped[str]
    marked_at: Mapped[datetime]


class ServiceBayWorkSubmission(Base):
    __tablename__ = "service_bay_work_submission"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("service_bay_booking.id", ondelete="CASCADE"),
        primary_key=True,
    )
    draft_status: Mapped[bool]
    final_price: Mapped[Decimal | None] = mapped_column(default=None)
    gst_amount: Mapped[Decimal | None] = mapped_column(default=None)
    total_amount: Mapped[Decimal | None] = mapped_column(default=None)
    supplier_comments: Mapped[str | None] = mapped_column(default=None)
    work_images: Mapped[list[str]] = mapped_column(JSON, default_factory=list)
    work_videos: Mapped[list[str]] = mapped_column(JSON, default_factory=list)
    company_feedback: Mapped[str | None] = mapped_column(default=None)
    submitted_at: Mapped[datetime | None] = mapped_column(default=None)
    reviewed_at: Mapped[datetime | None] = mapped_column(default=None)


class ServiceBayBooking(Base):
    __tablename__ = "service_bay_booking"
    __table_args__ = (
        Index("ix_service_bay_booking_bay_id_booking_date", "bay_id", "booking_date"),
        Index("ix_service_bay_booking_company_id_status", "company_id", "status"),
    )

    id: Mapped[PrimaryKey]
    bay_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service_bay.id"))
    company_id: Mapped[str]
    vehicle_type: Mapped[VehicleType]
    vehicle_stock_id: Mapped[int]
    field_id: Mapped[str]
    field_name: Mapped[str]
    booking_date: Mapped[date]
    start_time: Mapped[time]
    end_time: Mapped[time]
    status: Mapped[BookingStatus]
    created_by: Mapped[str]
    created_at: Mapped[datetime]
    updated_at: Mapped[datetime]
    quote_amount: Mapped[Decimal | None] = mapped_column(default=None)
    booking_description: Mapped[str | None] = mapped_column(default=None)
    images: Mapped[list[str]] = mapped_column(JSON, default_factory=list)
    videos: Mapped[list[str]] = mapped_column(JSON, default_factory=list)
    accepted_by: Mapped[str | None] = mapped_column(default=None)
    accepted_at: Mapped[datetime | None] = mapped_column(default=None)
    rejected_reason: Mapped[str | None] = mapped_column(default=None)
    work_started_at: Mapped[datetime | None] = mapped_column(default=None)
    work_submitted_at: Mapped[datetime | None] = mapped_column(default=None)
    work_completed_at: Mapped[datetime | None] = mapped_column(default=None)

    work_submission: Mapped[ServiceBayWorkSubmission | None] = relationship(
        lazy="selectin",
        cascade="all, delete-orphan",
        default=None,
    )
