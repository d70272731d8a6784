import uuid
from datetime import time

import httpx
from pytest_mock import MockerFixture

from app.modules.service_bay import models_service_bay
from app.modules.service_bay.notifications_service_bay import (
    bay_recipients,
    booking_created_event,
    booking_transitioned_event,
)
from app.modules.service_bay.types_service_bay import (
    BookingEvent,
    BookingStatus,
    VehicleType,
)
from app.utils.communication.notifications import NotificationManager
from tests.commons import MONDAY, TEST_NOW, settings

bay_id = uuid.uuid4()
bay = models_service_bay.ServiceBay(
    id=bay_id,
    company_id="company",
    name="Bay",
    description=None,
    dealership_id="dealership",
    primary_admin_id="admin",
    timezone="UTC",
    is_active=True,
    created_by="admin",
    created_at=TEST_NOW,
    users=[
        models_service_bay.ServiceBayUser(bay_id=bay_id, user_id="mechanic"),
        models_service_bay.ServiceBayUser(bay_id=bay_id, user_id="admin"),
    ],
)
booking = models_service_bay.ServiceBayBooking(
    id=uuid.uuid4(),
    bay_id=bay_id,
    company_id="company",
    vehicle_type=VehicleType.inspection,
    vehicle_stock_id=3,
    field_id="field",
    field_name="Tyres",
    booking_date=MONDAY,
    start_time=time(10, 0),
    end_time=time(11, 0),
    status=BookingStatus.booking_accepted,
    created_by="requester",
    created_at=TEST_NOW,
    updated_at=TEST_NOW,
)


def transition_event(event: BookingEvent, actor_id: str, draft: bool = False):
    return booking_transitioned_event(
        bay=bay,
        booking=booking,
        event=event,
        draft=draft,
        actor_id=actor_id,
        occurred_at=TEST_NOW,
    )


def test_bay_recipients_exclude_the_actor():
    assert bay_recipients(bay, actor_id="mechanic") == ["admin"]
    assert bay_recipients(bay, actor_id="requester") == ["admin", "mechanic"]


def test_booking_created_informs_the_bay_users():
    event = booking_created_event(
        bay=bay,
        booking=booking,
        actor_id="requester",
        occurred_at=TEST_NOW,
    )
    assert event.recipient_ids == ["admin", "mechanic"]
    assert event.booking_id == booking.id


def test_transition_recipients():
    assert transition_event(BookingEvent.accept, "mechanic").recipient_ids == [
        "requester",
    ]
    assert transition_event(BookingEvent.request_rework, "requester").recipient_ids == [
        "admin",
        "mechanic",
    ]
    assert transition_event(BookingEvent.save_draft, "mechanic", draft=True).recipient_ids == []
    assert transition_event(BookingEvent.resubmit_work, "mechanic", draft=True).recipient_ids == []


async def test_notification_manager_posts_the_event(mocker: MockerFixture):
    post = mocker.patch(
        "httpx.AsyncClient.post",
        return_value=httpx.Response(
            200,
            request=httpx.Request("POST", "https://hooks.example.com/bayplan"),
        ),
    )
    manager = NotificationManager(
        settings=settings.model_copy(
            update={"NOTIFICATION_WEBHOOK_URL": "https://hooks.example.com/bayplan"},
        ),
    )
    assert manager.is_enabled

    event = transition_event(BookingEvent.accept, "mechanic")
    await manager.send_event(event)

    post.assert_called_once()
    assert post.call_args.args[0] == "https://hooks.example.com/bayplan"
    assert post.call_args.kwargs["json"]["booking_event"] == "accept"
    assert post.call_args.kwargs["json"]["recipient_ids"] == ["requester"]


async def test_notification_delivery_failure_is_not_raised(mocker: MockerFixture):
    mocker.patch(
        "httpx.AsyncClient.post",
        side_effect=httpx.ConnectError("Connection refused"),
    )
    manager = NotificationManager(
        settings=settings.model_copy(
            update={"NOTIFICATION_WEBHOOK_URL": "https://hooks.example.com/bayplan"},
        ),
    )
    await manager.send_event(transition_event(BookingEvent.accept, "mechanic"))


async def test_disabled_notification_manager(mocker: MockerFixture):
    post = mocker.patch("httpx.AsyncClient.post")
    manager = NotificationManager(settings=settings)
    assert not manager.is_enabled
    await manager.send_event(transition_event(BookingEvent.accept, "mechanic"))
    post.assert_not_called()
