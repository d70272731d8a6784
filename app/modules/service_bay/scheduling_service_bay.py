"""
Entry point of the service bay scheduling.

`SchedulingService` administrates bays, creates bookings and drives them through their lifecycle.
Every operation returns its result or a `Rejection`. A rejected operation never modifies the database.

Operations which check then write bay data run inside `bay_transaction`: they are serialized per bay and
committed before the bay is released. Notifications are only queued once the operation was committed.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import date, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth.schemas_auth import Actor
from app.core.auth.types_auth import CompanyRole
from app.core.utils.config import Settings
from app.modules.service_bay import (
    cruds_service_bay,
    lifecycle_service_bay,
    models_service_bay,
    notifications_service_bay,
)
from app.modules.service_bay.availability_service_bay import (
    AvailabilityValidator,
    OccupiedInterval,
    booking_interval,
    free_windows,
    holiday_interval,
)
from app.modules.service_bay.locks_service_bay import bay_transaction, committing
from app.modules.service_bay.schemas_service_bay import (
    BayBase,
    BayCalendar,
    BayComplete,
    BayUpdate,
    BookingBase,
    BookingComplete,
    BookingInterval,
    DayAvailability,
    HolidayInterval,
    Rejection,
    ResubmitWork,
    SaveDraft,
    TransitionRequest,
    Window,
    WeeklyTimingUpdate,
    weekly_timing_from_schemas,
)
from app.modules.service_bay.timing_service_bay import WeeklyTimingTable
from app.modules.service_bay.types_service_bay import (
    BookingStatus,
    RejectionReason,
    VehicleType,
    Weekday,
)
from app.types.clock import Clock
from app.utils.communication.notifications import NotificationTool
from app.utils.locks import BayLockManager

bayplan_scheduling_logger = logging.getLogger("bayplan.scheduling")

BOOKING_REQUESTER_ROLES = {CompanyRole.company_admin, CompanyRole.company_super_admin}


def can_request_booking(actor: Actor, bay: models_service_bay.ServiceBay) -> bool:
    return actor.belongs_to(bay.company_id) and actor.role in BOOKING_REQUESTER_ROLES


def can_administrate_bay(actor: Actor, company_id: str) -> bool:
    return actor.belongs_to(company_id) and actor.is_company_super_admin


def can_edit_timings(actor: Actor, bay: models_service_bay.ServiceBay) -> bool:
    return actor.user_id == bay.primary_admin_id or can_administrate_bay(
        actor,
        bay.company_id,
    )


def is_company_reviewer(
    actor: Actor,
    booking: models_service_bay.ServiceBayBooking,
) -> bool:
    """
    The company user who requested the booking, or a super admin of the same company, reviews the work
    """
    return actor.belongs_to(booking.company_id) and (
        actor.user_id == booking.created_by or actor.is_company_super_admin
    )


def can_read_booking(
    actor: Actor,
    bay: models_service_bay.ServiceBay,
    booking: models_service_bay.ServiceBayBooking,
) -> bool:
    return actor.belongs_to(booking.company_id) or bay.is_bay_user(actor.user_id)


class SchedulingService:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        lock_manager: BayLockManager,
        settings: Settings,
        notification_tool: NotificationTool | None = None,
    ):
        self.db = db
        self.clock = clock
        self.lock_manager = lock_manager
        self.settings = settings
        self.notification_tool = notification_tool
        self.validator = AvailabilityValidator(clock)

    ##################
    # Administration #
    ##################

    async def create_bay(
        self,
        bay: BayBase,
        actor: Actor,
    ) -> models_service_bay.ServiceBay | Rejection:
        """
        Create a bay in the company of the actor.

        The default weekly timing is used if none is provided. The bay is created active.
        """
        if not actor.is_company_super_admin:
            return Rejection.forbidden("Only a company super admin can create bays")

        timezone = bay.timezone or self.settings.DEFAULT_BAY_TIMEZONE
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return Rejection(
                reason=RejectionReason.INVALID_PAYLOAD,
                message=f"Unknown timezone {timezone}",
                detail={"timezone": timezone},
            )

        weekly_timing = (
            weekly_timing_from_schemas(bay.weekly_timing)
            if bay.weekly_timing is not None
            else WeeklyTimingTable.default()
        )

        bay_id = uuid.uuid4()
        db_bay = models_service_bay.ServiceBay(
            id=bay_id,
            company_id=actor.company_id,
            name=bay.name,
            description=bay.description,
            dealership_id=bay.dealership_id,
            primary_admin_id=bay.primary_admin_id,
            timezone=timezone,
            is_active=True,
            created_by=actor.user_id,
            created_at=self.clock.now(),
            timings=[
                models_service_bay.ServiceBayTiming.from_day_timing(bay_id, day_timing)
                for day_timing in weekly_timing
            ],
        )
        cruds_service_bay.set_bay_users(db_bay, bay.bay_user_ids)

        async with committing(self.db):
            await cruds_service_bay.create_bay(self.db, db_bay)

        bayplan_scheduling_logger.info(
            f"Bay {db_bay.name}<{db_bay.id}> created by {actor.user_id}",
        )
        return db_bay

    async def list_bays(
        self,
        actor: Actor,
        dealership_id: str | None = None,
        is_active: bool | None = None,
        search: str | None = None,
    ) -> Sequence[models_service_bay.ServiceBay]:
        return await cruds_service_bay.get_bays(
            self.db,
            company_id=actor.company_id,
            dealership_id=dealership_id,
            is_active=is_active,
            search=search,
        )

    async def get_bay(
        self,
        bay_id: uuid.UUID,
        actor: Actor,
    ) -> models_service_bay.ServiceBay | Rejection:
        bay = await cruds_service_bay.get_bay_by_id(self.db, bay_id)
        if bay is None:
            return Rejection.not_found("Bay", bay_id)
        if not actor.belongs_to(bay.company_id):
            return Rejection.forbidden("The bay belongs to another company")
        return bay

    async def update_bay(
        self,
        bay_id: uuid.UUID,
        bay_update: BayUpdate,
        actor: Actor,
    ) -> models_service_bay.ServiceBay | Rejection:
        result: models_service_bay.ServiceBay | Rejection
        async with bay_transaction(self.db, self.lock_manager, bay_id):
            bay = await cruds_service_bay.lock_bay(self.db, bay_id)
            if bay is None:
                result = Rejection.not_found("Bay", bay_id)
            elif not can_administrate_bay(actor, bay.company_id):
                result = Rejection.forbidden(
                    "Only a super admin of the company can update the bay",
                )
            else:
                for field, value in bay_update.model_dump(
                    exclude_none=True,
                    exclude={"bay_user_ids"},
                ).items():
                    setattr(bay, field, value)
                if bay_update.bay_user_ids is not None:
                    cruds_service_bay.set_bay_users(bay, bay_update.bay_user_ids)
                await self.db.flush()
                result = bay

        if not isinstance(result, Rejection):
            bayplan_scheduling_logger.info(
                f"Bay {bay_id} updated by {actor.user_id}: {bay_update.model_dump(exclude_none=True)}",
            )
        return result

    async def set_bay_status(
        self,
        bay_id: uuid.UUID,
        is_active: bool,
        actor: Actor,
    ) -> models_service_bay.ServiceBay | Rejection:
        """
        An inactive bay accepts no new booking. Existing bookings can still go through their lifecycle.
        """
        result: models_service_bay.ServiceBay | Rejection
        async with bay_transaction(self.db, self.lock_manager, bay_id):
            bay = await cruds_service_bay.lock_bay(self.db, bay_id)
            if bay is None:
                result = Rejection.not_found("Bay", bay_id)
            elif not can_administrate_bay(actor, bay.company_id):
                result = Rejection.forbidden(
                    "Only a super admin of the company can change the bay status",
                )
            else:
                bay.is_active = is_active
                await self.db.flush()
                result = bay

        if not isinstance(result, Rejection):
            bayplan_scheduling_logger.info(
                f"Bay {bay_id} {'activated' if is_active else 'deactivated'} by {actor.user_id}",
            )
        return result

    async def delete_bay(
        self,
        bay_id: uuid.UUID,
        actor: Actor,
    ) -> None | Rejection:
        """
        A bay can only be deleted once all its bookings reached a terminal status
        """
        result: None | Rejection = None
        async with bay_transaction(self.db, self.lock_manager, bay_id):
            bay = await cruds_service_bay.lock_bay(self.db, bay_id)
            if bay is None:
                result = Rejection.not_found("Bay", bay_id)
            elif not can_administrate_bay(actor, bay.company_id):
                result = Rejection.forbidden(
                    "Only a super admin of the company can delete the bay",
                )
            else:
                open_bookings = await cruds_service_bay.count_open_bookings(
                    self.db,
                    bay_id=bay.id,
                )
                if open_bookings > 0:
                    result = Rejection(
                        reason=RejectionReason.BOOKING_CONFLICT,
                        message=f"The bay still has {open_bookings} open bookings",
                        detail={"open_bookings": open_bookings},
                    )
                else:
                    await cruds_service_bay.delete_bay(self.db, bay)

        if result is None:
            bayplan_scheduling_logger.info(f"Bay {bay_id} deleted by {actor.user_id}")
        return result

    async def update_weekly_timing(
        self,
        bay_id: uuid.UUID,
        timing_update: WeeklyTimingUpdate,
        actor: Actor,
    ) -> models_service_bay.ServiceBay | Rejection:
        """
        Replace the seven opening hours entries of the bay.

        The update is refused if a holiday or an occupying booking, today or later, would not be
        within the new opening hours anymore.
        """
        result: models_service_bay.ServiceBay | Rejection
        async with bay_transaction(self.db, self.lock_manager, bay_id):
            result = await self._update_weekly_timing(bay_id, timing_update, actor)

        if not isinstance(result, Rejection):
            bayplan_scheduling_logger.info(
                f"Weekly timing of bay {bay_id} updated by {actor.user_id}: "
                + ", ".join(
                    f"{timing.day_of_week.value} {timing.window or 'closed'}"
                    for timing in result.timing_table()
                ),
            )
        return result

    async def _update_weekly_timing(
        self,
        bay_id: uuid.UUID,
        timing_update: WeeklyTimingUpdate,
        actor: Actor,
    ) -> models_service_bay.ServiceBay | Rejection:
        bay = await cruds_service_bay.lock_bay(self.db, bay_id)
        if bay is None:
            return Rejection.not_found("Bay", bay_id)
        if not can_edit_timings(actor, bay):
            return Rejection.forbidden(
                "Only the primary admin of the bay or a company super admin can edit its timings",
            )

        table = weekly_timing_from_schemas(timing_update.weekly_timing)
        today = self.validator.today(bay.zone)

        live_records: list[OccupiedInterval] = [
            holiday_interval(holiday)
            for holiday in await cruds_service_bay.get_holidays(
                self.db,
                bay_id=bay.id,
                start_date=today,
            )
        ]
        live_records += [
            booking_interval(booking)
            for booking in await cruds_service_bay.get_bookings(
                self.db,
                bay_ids=[bay.id],
                start_date=today,
            )
            if booking.status.occupies_slot
        ]

        closed_day_records = []
        outside_hours_records = []
        for record in live_records:
            timing = table.for_date(record.day)
            if timing.window is None:
                closed_day_records.append(record)
            elif not timing.window.contains(record.window):
                outside_hours_records.append(record)

        if closed_day_records or outside_hours_records:
            offending = closed_day_records + outside_hours_records
            return Rejection(
                reason=RejectionReason.NON_WORKING_DAY
                if closed_day_records
                else RejectionReason.OUTSIDE_WORKING_HOURS,
                message="Some holidays or bookings would not be within the opening hours anymore",
                detail={
                    "holiday_ids": [
                        str(record.id) for record in offending if record.status is None
                    ],
                    "booking_ids": [
                        str(record.id)
                        for record in offending
                        if record.status is not None
                    ],
                },
            )

        for timing in bay.timings:
            timing.set_day_timing(table[timing.day_of_week])
        await self.db.flush()
        return bay

    ############
    # Bookings #
    ############

    async def create_booking(
        self,
        bay_id: uuid.UUID,
        booking: BookingBase,
        actor: Actor,
    ) -> models_service_bay.ServiceBayBooking | Rejection:
        """
        Request a booking on the bay. The booking is created with the `booking_request` status.
        """
        result: models_service_bay.ServiceBayBooking | Rejection
        async with bay_transaction(self.db, self.lock_manager, bay_id):
            result = await self._create_booking(bay_id, booking, actor)

        if isinstance(result, Rejection):
            return result

        bayplan_scheduling_logger.info(
            f"Booking {result.id} requested on bay {bay_id} for {result.booking_date} {result.start_time}-{result.end_time} by {actor.user_id}",
        )
        if self.notification_tool is not None:
            bay = await cruds_service_bay.get_bay_by_id(self.db, bay_id)
            if bay is not None:
                self.notification_tool.send_event(
                    notifications_service_bay.booking_created_event(
                        bay=bay,
                        booking=result,
                        actor_id=actor.user_id,
                        occurred_at=self.clock.now(),
                    ),
                )
        return result

    async def _create_booking(
        self,
        bay_id: uuid.UUID,
        booking: BookingBase,
        actor: Actor,
    ) -> models_service_bay.ServiceBayBooking | Rejection:
        bay = await cruds_service_bay.lock_bay(self.db, bay_id)
        if bay is None:
            return Rejection.not_found("Bay", bay_id)
        if not can_request_booking(actor, bay):
            return Rejection.forbidden(
                "Only an admin of the bay company can request a booking",
            )
        if not bay.is_active:
            return Rejection(
                reason=RejectionReason.BAY_INACTIVE,
                message="The bay is inactive and does not accept bookings",
                detail={"bay_id": str(bay.id)},
            )

        interval = self.validator.check_interval_shape(
            booking.start,
            booking.end,
            bay.zone,
        )
        if isinstance(interval, Rejection):
            return interval
        past = self.validator.check_not_past(interval, bay.zone)
        if past is not None:
            return past

        holidays = await cruds_service_bay.get_holidays(
            self.db,
            bay_id=bay.id,
            start_date=interval.day,
            end_date=interval.day,
        )
        bookings = await cruds_service_bay.get_bookings(
            self.db,
            bay_ids=[bay.id],
            start_date=interval.day,
            end_date=interval.day,
        )
        rejection = self.validator.validate(
            weekly_timing=bay.timing_table(),
            day=interval.day,
            window=interval.window,
            holidays=[holiday_interval(holiday) for holiday in holidays],
            bookings=[booking_interval(existing) for existing in bookings],
        )
        if rejection is not None:
            return rejection

        duplicate = await cruds_service_bay.get_active_booking_for_field(
            self.db,
            company_id=bay.company_id,
            vehicle_type=booking.vehicle_type,
            vehicle_stock_id=booking.vehicle_stock_id,
            field_id=booking.field_id,
        )
        if duplicate is not None:
            return Rejection(
                reason=RejectionReason.DUPLICATE_BOOKING,
                message=f"A booking already exists for {booking.field_name}",
                detail={"booking_id": str(duplicate.id)},
            )

        now = self.clock.now()
        db_booking = models_service_bay.ServiceBayBooking(
            id=uuid.uuid4(),
            bay_id=bay.id,
            company_id=bay.company_id,
            vehicle_type=booking.vehicle_type,
            vehicle_stock_id=booking.vehicle_stock_id,
            field_id=booking.field_id,
            field_name=booking.field_name,
            booking_date=interval.day,
            start_time=interval.window.start,
            end_time=interval.window.end,
            status=BookingStatus.booking_request,
            created_by=actor.user_id,
            created_at=now,
            updated_at=now,
            quote_amount=booking.quote_amount,
            booking_description=booking.booking_description,
            images=list(booking.images),
            videos=list(booking.videos),
        )
        await cruds_service_bay.create_booking(self.db, db_booking)
        return db_booking

    async def apply_transition(
        self,
        booking_id: uuid.UUID,
        request: TransitionRequest,
        actor: Actor,
    ) -> models_service_bay.ServiceBayBooking | Rejection:
        booking = await cruds_service_bay.get_booking_by_id(self.db, booking_id)
        if booking is None:
            return Rejection.not_found("Booking", booking_id)
        bay_id = booking.bay_id

        result: (
            tuple[
                models_service_bay.ServiceBay,
                models_service_bay.ServiceBayBooking,
                BookingStatus,
            ]
            | Rejection
        )
        async with bay_transaction(self.db, self.lock_manager, bay_id):
            result = await self._apply_transition(bay_id, booking_id, request, actor)

        if isinstance(result, Rejection):
            return result

        bay, booking, previous_status = result
        bayplan_scheduling_logger.info(
            f"Booking {booking.id} on bay {bay_id}: {request.event.value} by {actor.user_id}, {previous_status.value} -> {booking.status.value}",
        )
        if self.notification_tool is not None:
            self.notification_tool.send_event(
                notifications_service_bay.booking_transitioned_event(
                    bay=bay,
                    booking=booking,
                    event=request.event,
                    draft=isinstance(request, SaveDraft)
                    or (isinstance(request, ResubmitWork) and request.draft),
                    actor_id=actor.user_id,
                    occurred_at=self.clock.now(),
                ),
            )
        return booking

    async def _apply_transition(
        self,
        bay_id: uuid.UUID,
        booking_id: uuid.UUID,
        request: TransitionRequest,
        actor: Actor,
    ) -> (
        tuple[
            models_service_bay.ServiceBay,
            models_service_bay.ServiceBayBooking,
            BookingStatus,
        ]
        | Rejection
    ):
        bay = await cruds_service_bay.lock_bay(self.db, bay_id)
        booking = await cruds_service_bay.get_booking_by_id(
            self.db,
            booking_id,
            for_update=True,
        )
        if bay is None or booking is None:
            return Rejection.not_found("Booking", booking_id)

        transition = lifecycle_service_bay.plan_transition(
            status=booking.status,
            request=request,
            is_bay_user=bay.is_bay_user(actor.user_id),
            is_company_reviewer=is_company_reviewer(actor, booking),
        )
        if isinstance(transition, Rejection):
            return transition

        previous_status = booking.status
        lifecycle_service_bay.apply_transition(
            booking=booking,
            transition=transition,
            request=request,
            actor_id=actor.user_id,
            now=self.clock.now(),
        )
        await self.db.flush()
        return bay, booking, previous_status

    async def get_booking(
        self,
        booking_id: uuid.UUID,
        actor: Actor,
    ) -> models_service_bay.ServiceBayBooking | Rejection:
        booking = await cruds_service_bay.get_booking_by_id(self.db, booking_id)
        if booking is None:
            return Rejection.not_found("Booking", booking_id)
        bay = await cruds_service_bay.get_bay_by_id(self.db, booking.bay_id)
        if bay is None or not can_read_booking(actor, bay, booking):
            return Rejection.forbidden("You are not allowed to access this booking")
        return booking

    async def list_bay_bookings(
        self,
        bay_id: uuid.UUID,
        actor: Actor,
        start_date: date | None = None,
        end_date: date | None = None,
        status: BookingStatus | None = None,
    ) -> Sequence[models_service_bay.ServiceBayBooking] | Rejection:
        bay = await self.get_bay(bay_id, actor)
        if isinstance(bay, Rejection):
            return bay
        return await cruds_service_bay.get_bookings(
            self.db,
            bay_ids=[bay.id],
            start_date=start_date,
            end_date=end_date,
            status=status,
        )

    async def get_booking_for_field(
        self,
        actor: Actor,
        vehicle_type: VehicleType,
        vehicle_stock_id: int,
        field_id: str,
    ) -> models_service_bay.ServiceBayBooking | Rejection:
        """
        Return the latest booking made by the company of the actor for a vehicle field
        """
        booking = await cruds_service_bay.get_latest_booking_for_field(
            self.db,
            company_id=actor.company_id,
            vehicle_type=vehicle_type,
            vehicle_stock_id=vehicle_stock_id,
            field_id=field_id,
        )
        if booking is None:
            return Rejection.not_found("Booking", field_id)
        return booking

    ################
    # Availability #
    ################

    def _check_range(self, start_date: date, end_date: date) -> Rejection | None:
        if end_date < start_date:
            return Rejection(
                reason=RejectionReason.INVALID_INTERVAL,
                message="The end date should not be before the start date",
                detail={
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
            )
        if (end_date - start_date).days + 1 > self.settings.AVAILABILITY_MAX_RANGE_DAYS:
            return Rejection(
                reason=RejectionReason.INVALID_INTERVAL,
                message=f"The range can not be longer than {self.settings.AVAILABILITY_MAX_RANGE_DAYS} days",
                detail={"max_range_days": self.settings.AVAILABILITY_MAX_RANGE_DAYS},
            )
        return None

    async def list_availability(
        self,
        bay_id: uuid.UUID,
        start_date: date,
        end_date: date,
        actor: Actor,
        include_rejected: bool = False,
    ) -> list[DayAvailability] | Rejection:
        """
        Project the schedule of the bay, one entry per date from `start_date` to `end_date` included.

        This is a read only operation. Rejected bookings never reduce the free windows,
        they are only listed when `include_rejected` is set.
        """
        bay = await self.get_bay(bay_id, actor)
        if isinstance(bay, Rejection):
            return bay
        range_rejection = self._check_range(start_date, end_date)
        if range_rejection is not None:
            return range_rejection

        table = bay.timing_table()
        holidays = await cruds_service_bay.get_holidays(
            self.db,
            bay_id=bay.id,
            start_date=start_date,
            end_date=end_date,
        )
        bookings = await cruds_service_bay.get_bookings(
            self.db,
            bay_ids=[bay.id],
            start_date=start_date,
            end_date=end_date,
        )

        days: list[DayAvailability] = []
        day = start_date
        while day <= end_date:
            timing = table.for_date(day)
            day_holidays = [
                holiday for holiday in holidays if holiday.holiday_date == day
            ]
            day_bookings = [
                booking for booking in bookings if booking.booking_date == day
            ]
            occupying = [
                booking for booking in day_bookings if booking.status.occupies_slot
            ]
            days.append(
                DayAvailability(
                    date=day,
                    day_of_week=Weekday.from_date(day),
                    open_window=Window.from_time_window(timing.window)
                    if timing.window
                    else None,
                    holidays=[
                        HolidayInterval(
                            id=holiday.id,
                            start=holiday.start_time,
                            end=holiday.end_time,
                            reason=holiday.reason,
                        )
                        for holiday in day_holidays
                    ],
                    bookings=[
                        BookingInterval(
                            id=booking.id,
                            start=booking.start_time,
                            end=booking.end_time,
                            status=booking.status,
                            field_name=booking.field_name,
                        )
                        for booking in occupying
                    ],
                    free_windows=free_windows(
                        timing.window,
                        [holiday_interval(holiday) for holiday in day_holidays]
                        + [booking_interval(booking) for booking in occupying],
                    ),
                    rejected_bookings=[
                        BookingInterval(
                            id=booking.id,
                            start=booking.start_time,
                            end=booking.end_time,
                            status=booking.status,
                            field_name=booking.field_name,
                        )
                        for booking in day_bookings
                        if not booking.status.occupies_slot
                    ]
                    if include_rejected
                    else None,
                ),
            )
            day += timedelta(days=1)
        return days

    async def get_bay_calendar(
        self,
        actor: Actor,
        start_date: date,
        end_date: date,
        bay_id: uuid.UUID | None = None,
    ) -> BayCalendar | Rejection:
        """
        Bays where the actor is a bay user, with their bookings between `start_date` and `end_date`
        """
        range_rejection = self._check_range(start_date, end_date)
        if range_rejection is not None:
            return range_rejection

        bays = await cruds_service_bay.get_bays_for_user(
            self.db,
            company_id=actor.company_id,
            user_id=actor.user_id,
            bay_id=bay_id,
        )
        bookings = (
            await cruds_service_bay.get_bookings(
                self.db,
                bay_ids=[bay.id for bay in bays],
                start_date=start_date,
                end_date=end_date,
            )
            if bays
            else []
        )
        return BayCalendar(
            bays=[BayComplete.model_validate(bay) for bay in bays],
            bookings=[BookingComplete.model_validate(booking) for booking in bookings],
        )
