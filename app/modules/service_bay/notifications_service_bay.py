"""Scheduling events sent to the notification collaborator"""

from datetime import datetime

from app.modules.service_bay import models_service_bay
from app.modules.service_bay.schemas_service_bay import SchedulingEvent
from app.modules.service_bay.types_service_bay import (
    BookingEvent,
    SchedulingEventType,
)

# Events which inform the company user who requested the booking.
# Others inform the users of the bay. Drafts are not notified.
REQUESTER_EVENTS = {
    BookingEvent.accept,
    BookingEvent.reject,
    BookingEvent.start_work,
    BookingEvent.submit_work,
    BookingEvent.resubmit_work,
}
BAY_USERS_EVENTS = {
    BookingEvent.approve,
    BookingEvent.request_rework,
}


def bay_recipients(
    bay: models_service_bay.ServiceBay,
    actor_id: str,
) -> list[str]:
    """
    Users of the bay, including its primary admin, without the actor
    """
    recipients = [bay.primary_admin_id, *bay.bay_user_ids]
    return [
        user_id for user_id in dict.fromkeys(recipients) if user_id != actor_id
    ]


def transition_recipients(
    bay: models_service_bay.ServiceBay,
    booking: models_service_bay.ServiceBayBooking,
    event: BookingEvent,
    draft: bool,
    actor_id: str,
) -> list[str]:
    if draft:
        return []
    if event in REQUESTER_EVENTS:
        return [booking.created_by] if booking.created_by != actor_id else []
    if event in BAY_USERS_EVENTS:
        return bay_recipients(bay, actor_id)
    return []


def booking_created_event(
    bay: models_service_bay.ServiceBay,
    booking: models_service_bay.ServiceBayBooking,
    actor_id: str,
    occurred_at: datetime,
) -> SchedulingEvent:
    return SchedulingEvent(
        event_type=SchedulingEventType.booking_created,
        bay_id=bay.id,
        actor_id=actor_id,
        recipient_ids=bay_recipients(bay, actor_id),
        occurred_at=occurred_at,
        booking_id=booking.id,
        status=booking.status,
        message=f"New booking request for {booking.field_name} on {booking.booking_date.isoformat()} {booking.start_time.strftime('%H:%M')}-{booking.end_time.strftime('%H:%M')}",
    )


def booking_transitioned_event(
    bay: models_service_bay.ServiceBay,
    booking: models_service_bay.ServiceBayBooking,
    event: BookingEvent,
    draft: bool,
    actor_id: str,
    occurred_at: datetime,
) -> SchedulingEvent:
    return SchedulingEvent(
        event_type=SchedulingEventType.booking_transitioned,
        bay_id=bay.id,
        actor_id=actor_id,
        recipient_ids=transition_recipients(bay, booking, event, draft, actor_id),
        occurred_at=occurred_at,
        booking_id=booking.id,
        booking_event=event,
        status=booking.status,
        message=booking.rejected_reason
        if event == BookingEvent.reject
        else None,
    )


def holiday_event(
    bay: models_service_bay.ServiceBay,
    holiday: models_service_bay.ServiceBayHoliday,
    event_type: SchedulingEventType,
    actor_id: str,
    occurred_at: datetime,
) -> SchedulingEvent:
    return SchedulingEvent(
        event_type=event_type,
        bay_id=bay.id,
        actor_id=actor_id,
        recipient_ids=bay_recipients(bay, actor_id),
        occurred_at=occurred_at,
        holiday_id=holiday.id,
        message=f"{holiday.reason}: {holiday.holiday_date.isoformat()} {holiday.start_time.strftime('%H:%M')}-{holiday.end_time.strftime('%H:%M')}",
    )
