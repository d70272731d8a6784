import logging
import uuid
from datetime import date

from fastapi import Depends, Query

from app.core.auth.schemas_auth import Actor
from app.dependencies import get_actor, get_request_id
from app.modules.service_bay import schemas_service_bay
from app.modules.service_bay.dependencies_service_bay import (
    get_holiday_manager,
    get_scheduling_service,
)
from app.modules.service_bay.holidays_service_bay import HolidayManager
from app.modules.service_bay.scheduling_service_bay import SchedulingService
from app.modules.service_bay.schemas_service_bay import Rejection
from app.modules.service_bay.types_service_bay import (
    BookingStatus,
    RejectionReason,
    VehicleType,
)
from app.types.exceptions import ContentHTTPException
from app.types.module import Module

module = Module(
    root="service-bay",
    tag="ServiceBay",
)

bayplan_security_logger = logging.getLogger("bayplan.security")

REJECTION_STATUS_CODES = {
    RejectionReason.NOT_FOUND: 404,
    RejectionReason.FORBIDDEN: 403,
    RejectionReason.INVALID_TRANSITION: 409,
    RejectionReason.BOOKING_CONFLICT: 409,
    RejectionReason.HOLIDAY_CONFLICT: 409,
    RejectionReason.DUPLICATE_BOOKING: 409,
}


def rejection_exception(
    rejection: Rejection,
    actor: Actor,
    request_id: str,
) -> ContentHTTPException:
    """
    Convert a refused operation to an HTTP error. The body of the response is the serialized rejection
    """
    if rejection.reason == RejectionReason.FORBIDDEN:
        bayplan_security_logger.warning(
            f"Service bay: {actor.user_id} of company {actor.company_id} was refused an operation: {rejection.message} ({request_id})",
        )
    return ContentHTTPException(
        status_code=REJECTION_STATUS_CODES.get(rejection.reason, 400),
        content=rejection.model_dump(mode="json"),
    )


########
# Bays #
########


@module.router.post(
    "/service-bay/bays",
    response_model=schemas_service_bay.BayComplete,
    status_code=201,
)
async def create_bay(
    bay: schemas_service_bay.BayBase,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Create a bay in the company of the user. The default opening hours are used if none are provided.

    **The user must be a company super admin**
    """
    result = await service.create_bay(bay=bay, actor=actor)
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.get(
    "/service-bay/bays",
    response_model=list[schemas_service_bay.BayComplete],
    status_code=200,
)
async def get_bays(
    dealership_id: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """
    Get the bays of the company of the user
    """
    return await service.list_bays(
        actor=actor,
        dealership_id=dealership_id,
        is_active=is_active,
        search=search,
    )


@module.router.get(
    "/service-bay/bays/{bay_id}",
    response_model=schemas_service_bay.BayComplete,
    status_code=200,
)
async def get_bay(
    bay_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    result = await service.get_bay(bay_id=bay_id, actor=actor)
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.patch(
    "/service-bay/bays/{bay_id}",
    response_model=schemas_service_bay.BayComplete,
    status_code=200,
)
async def update_bay(
    bay_id: uuid.UUID,
    bay_update: schemas_service_bay.BayUpdate,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Update a bay, the request should contain a JSON with the fields to change (not necessarily all fields) and their new value.

    **The user must be a super admin of the bay company**
    """
    result = await service.update_bay(
        bay_id=bay_id,
        bay_update=bay_update,
        actor=actor,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.patch(
    "/service-bay/bays/{bay_id}/status",
    response_model=schemas_service_bay.BayComplete,
    status_code=200,
)
async def set_bay_status(
    bay_id: uuid.UUID,
    bay_status: schemas_service_bay.BayStatusUpdate,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Activate or deactivate a bay. An inactive bay does not accept new bookings.

    **The user must be a super admin of the bay company**
    """
    result = await service.set_bay_status(
        bay_id=bay_id,
        is_active=bay_status.is_active,
        actor=actor,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.delete(
    "/service-bay/bays/{bay_id}",
    status_code=204,
)
async def delete_bay(
    bay_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Delete a bay with its holidays and bookings, only if all its bookings are rejected or completed

    **The user must be a super admin of the bay company**
    """
    result = await service.delete_bay(bay_id=bay_id, actor=actor)
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)


@module.router.put(
    "/service-bay/bays/{bay_id}/timings",
    response_model=schemas_service_bay.BayComplete,
    status_code=200,
)
async def update_weekly_timing(
    bay_id: uuid.UUID,
    timing_update: schemas_service_bay.WeeklyTimingUpdate,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Replace the opening hours of the bay. One entry is expected for each day of the week.

    **The user must be the primary admin of the bay or a super admin of the bay company**
    """
    result = await service.update_weekly_timing(
        bay_id=bay_id,
        timing_update=timing_update,
        actor=actor,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.get(
    "/service-bay/bays/{bay_id}/availability",
    response_model=list[schemas_service_bay.DayAvailability],
    status_code=200,
)
async def get_bay_availability(
    bay_id: uuid.UUID,
    start_date: date,
    end_date: date,
    include_rejected: bool = False,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Get the schedule of the bay for each date between `start_date` and `end_date` included:
    opening hours, holidays, bookings and free windows.

    Rejected bookings never reduce the free windows, they are only listed if `include_rejected` is set.
    """
    result = await service.list_availability(
        bay_id=bay_id,
        start_date=start_date,
        end_date=end_date,
        actor=actor,
        include_rejected=include_rejected,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


############
# Holidays #
############


@module.router.get(
    "/service-bay/bays/{bay_id}/holidays",
    response_model=list[schemas_service_bay.HolidayComplete],
    status_code=200,
)
async def get_bay_holidays(
    bay_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    actor: Actor = Depends(get_actor),
    holiday_manager: HolidayManager = Depends(get_holiday_manager),
    request_id: str = Depends(get_request_id),
):
    result = await holiday_manager.list_holidays(
        bay_id=bay_id,
        actor=actor,
        start_date=start_date,
        end_date=end_date,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.post(
    "/service-bay/bays/{bay_id}/holidays",
    response_model=schemas_service_bay.HolidayComplete,
    status_code=201,
)
async def create_holiday(
    bay_id: uuid.UUID,
    holiday: schemas_service_bay.HolidayBase,
    actor: Actor = Depends(get_actor),
    holiday_manager: HolidayManager = Depends(get_holiday_manager),
    request_id: str = Depends(get_request_id),
):
    """
    Close the bay during an interval of a working day. The interval must be within the opening hours of the bay.

    **The user must be the primary admin of the bay**
    """
    result = await holiday_manager.create(
        bay_id=bay_id,
        holiday=holiday,
        actor=actor,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.delete(
    "/service-bay/bays/{bay_id}/holidays/{holiday_id}",
    status_code=204,
)
async def delete_holiday(
    bay_id: uuid.UUID,
    holiday_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    holiday_manager: HolidayManager = Depends(get_holiday_manager),
    request_id: str = Depends(get_request_id),
):
    """
    **The user must be the primary admin of the bay**
    """
    result = await holiday_manager.remove(
        bay_id=bay_id,
        holiday_id=holiday_id,
        actor=actor,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)


############
# Bookings #
############


@module.router.get(
    "/service-bay/bays/{bay_id}/bookings",
    response_model=list[schemas_service_bay.BookingComplete],
    status_code=200,
)
async def get_bay_bookings(
    bay_id: uuid.UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    status: BookingStatus | None = None,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    result = await service.list_bay_bookings(
        bay_id=bay_id,
        actor=actor,
        start_date=start_date,
        end_date=end_date,
        status=status,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.post(
    "/service-bay/bays/{bay_id}/bookings",
    response_model=schemas_service_bay.BookingComplete,
    status_code=201,
)
async def create_booking(
    bay_id: uuid.UUID,
    booking: schemas_service_bay.BookingBase,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Request a booking on the bay. The booking is created with the `booking_request` status
    and waits for a user of the bay to accept or reject it.

    **The user must be an admin of the bay company**
    """
    result = await service.create_booking(
        bay_id=bay_id,
        booking=booking,
        actor=actor,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.get(
    "/service-bay/bookings/field",
    response_model=schemas_service_bay.BookingComplete,
    status_code=200,
)
async def get_booking_for_field(
    vehicle_type: VehicleType,
    vehicle_stock_id: int,
    field_id: str = Query(min_length=1),
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Get the latest booking made by the company of the user for a vehicle field
    """
    result = await service.get_booking_for_field(
        actor=actor,
        vehicle_type=vehicle_type,
        vehicle_stock_id=vehicle_stock_id,
        field_id=field_id,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.get(
    "/service-bay/bookings/{booking_id}",
    response_model=schemas_service_bay.BookingComplete,
    status_code=200,
)
async def get_booking(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    **The user must belong to the booking company or be a user of the bay**
    """
    result = await service.get_booking(booking_id=booking_id, actor=actor)
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


@module.router.post(
    "/service-bay/bookings/{booking_id}/transitions",
    response_model=schemas_service_bay.BookingComplete,
    status_code=200,
)
async def apply_booking_transition(
    booking_id: uuid.UUID,
    transition: schemas_service_bay.TransitionRequest,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Apply an event to the booking. The body should contain the `event` and its payload:
     * `accept`, `reject` (with a `reason`), `start_work`, `submit_work` and `save_draft` (with a `submission`),
       `resubmit_work` (with a `submission` and an optional `draft` flag) are used by the users of the bay
     * `approve` and `request_rework` (with a `feedback`) are used by the company user who requested the booking
       or a company super admin
    """
    result = await service.apply_transition(
        booking_id=booking_id,
        request=transition,
        actor=actor,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result


############
# Calendar #
############


@module.router.get(
    "/service-bay/calendar",
    response_model=schemas_service_bay.BayCalendar,
    status_code=200,
)
async def get_bay_calendar(
    start_date: date,
    end_date: date,
    bay_id: uuid.UUID | None = None,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    request_id: str = Depends(get_request_id),
):
    """
    Get the bays where the user is a bay user, with their bookings between `start_date` and `end_date`
    """
    result = await service.get_bay_calendar(
        actor=actor,
        start_date=start_date,
        end_date=end_date,
        bay_id=bay_id,
    )
    if isinstance(result, Rejection):
        raise rejection_exception(result, actor, request_id)
    return result
