import logging
import uuid
from collections.abc import Sequence
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth.schemas_auth import Actor
from app.modules.service_bay import (
    cruds_service_bay,
    models_service_bay,
    notifications_service_bay,
)
from app.modules.service_bay.availability_service_bay import (
    AvailabilityValidator,
    booking_interval,
    holiday_interval,
)
from app.modules.service_bay.locks_service_bay import bay_transaction
from app.modules.service_bay.schemas_service_bay import HolidayBase, Rejection
from app.modules.service_bay.types_service_bay import SchedulingEventType
from app.types.clock import Clock
from app.utils.communication.notifications import NotificationTool
from app.utils.locks import BayLockManager

bayplan_scheduling_logger = logging.getLogger("bayplan.scheduling")

DEFAULT_HOLIDAY_REASON = "Holiday"


class HolidayManager:
    """
    Create and remove the holidays of a bay. Only the primary admin of the bay can manage its holidays.

    A holiday must lie within the opening hours of a working day and can not overlap another holiday or an occupying booking of the bay.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        lock_manager: BayLockManager,
        notification_tool: NotificationTool | None = None,
    ):
        self.db = db
        self.clock = clock
        self.lock_manager = lock_manager
        self.notification_tool = notification_tool
        self.validator = AvailabilityValidator(clock)

    async def create(
        self,
        bay_id: uuid.UUID,
        holiday: HolidayBase,
        actor: Actor,
    ) -> models_service_bay.ServiceBayHoliday | Rejection:
        result: models_service_bay.ServiceBayHoliday | Rejection
        async with bay_transaction(self.db, self.lock_manager, bay_id):
            result = await self._create(bay_id, holiday, actor)

        if isinstance(result, Rejection):
            return result

        bayplan_scheduling_logger.info(
            f"Holiday {result.id} created on bay {bay_id} for {result.holiday_date} {result.start_time}-{result.end_time} by {actor.user_id}",
        )
        await self._notify(bay_id, result, SchedulingEventType.holiday_created, actor)
        return result

    async def _create(
        self,
        bay_id: uuid.UUID,
        holiday: HolidayBase,
        actor: Actor,
    ) -> models_service_bay.ServiceBayHoliday | Rejection:
        bay = await cruds_service_bay.lock_bay(self.db, bay_id)
        if bay is None:
            return Rejection.not_found("Bay", bay_id)
        if actor.user_id != bay.primary_admin_id:
            return Rejection.forbidden(
                "Only the primary admin of the bay can declare holidays",
            )

        interval = self.validator.check_interval_shape(
            holiday.start,
            holiday.end,
            bay.zone,
        )
        if isinstance(interval, Rejection):
            return interval
        past = self.validator.check_not_past(interval, bay.zone)
        if past is not None:
            return past

        existing_holidays = await cruds_service_bay.get_holidays(
            self.db,
            bay_id=bay.id,
            start_date=interval.day,
            end_date=interval.day,
        )
        existing_bookings = await cruds_service_bay.get_bookings(
            self.db,
            bay_ids=[bay.id],
            start_date=interval.day,
            end_date=interval.day,
        )
        rejection = self.validator.validate(
            weekly_timing=bay.timing_table(),
            day=interval.day,
            window=interval.window,
            holidays=[holiday_interval(existing) for existing in existing_holidays],
            bookings=[booking_interval(existing) for existing in existing_bookings],
        )
        if rejection is not None:
            return rejection

        db_holiday = models_service_bay.ServiceBayHoliday(
            id=uuid.uuid4(),
            bay_id=bay.id,
            holiday_date=interval.day,
            start_time=interval.window.start,
            end_time=interval.window.end,
            reason=(holiday.reason or "").strip() or DEFAULT_HOLIDAY_REASON,
            marked_by=actor.user_id,
            marked_at=self.clock.now(),
        )
        await cruds_service_bay.create_holiday(self.db, db_holiday)
        return db_holiday

    async def remove(
        self,
        bay_id: uuid.UUID,
        holiday_id: uuid.UUID,
        actor: Actor,
    ) -> models_service_bay.ServiceBayHoliday | Rejection:
        """
        Remove a holiday and return it
        """
        result: models_service_bay.ServiceBayHoliday | Rejection
        async with bay_transaction(self.db, self.lock_manager, bay_id):
            result = await self._remove(bay_id, holiday_id, actor)

        if isinstance(result, Rejection):
            return result

        bayplan_scheduling_logger.info(
            f"Holiday {holiday_id} removed from bay {bay_id} by {actor.user_id}",
        )
        await self._notify(bay_id, result, SchedulingEventType.holiday_removed, actor)
        return result

    async def _remove(
        self,
        bay_id: uuid.UUID,
        holiday_id: uuid.UUID,
        actor: Actor,
    ) -> models_service_bay.ServiceBayHoliday | Rejection:
        bay = await cruds_service_bay.lock_bay(self.db, bay_id)
        if bay is None:
            return Rejection.not_found("Bay", bay_id)
        if actor.user_id != bay.primary_admin_id:
            return Rejection.forbidden(
                "Only the primary admin of the bay can remove holidays",
            )

        holiday = await cruds_service_bay.get_holiday_by_id(self.db, holiday_id)
        if holiday is None or holiday.bay_id != bay.id:
            return Rejection.not_found("Holiday", holiday_id)

        await cruds_service_bay.delete_holiday(self.db, holiday_id)
        return holiday

    async def list_holidays(
        self,
        bay_id: uuid.UUID,
        actor: Actor,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Sequence[models_service_bay.ServiceBayHoliday] | Rejection:
        bay = await cruds_service_bay.get_bay_by_id(self.db, bay_id)
        if bay is None:
            return Rejection.not_found("Bay", bay_id)
        if not actor.belongs_to(bay.company_id):
            return Rejection.forbidden("The bay belongs to another company")
        return await cruds_service_bay.get_holidays(
            self.db,
            bay_id=bay.id,
            start_date=start_date,
            end_date=end_date,
        )

    async def _notify(
        self,
        bay_id: uuid.UUID,
        holiday: models_service_bay.ServiceBayHoliday,
        event_type: SchedulingEventType,
        actor: Actor,
    ) -> None:
        if self.notification_tool is None:
            return
        bay = await cruds_service_bay.get_bay_by_id(self.db, bay_id)
        if bay is None:
            return
        self.notification_tool.send_event(
            notifications_service_bay.holiday_event(
                bay=bay,
                holiday=holiday,
                event_type=event_type,
                actor_id=actor.user_id,
                occurred_at=self.clock.now(),
            ),
        )
