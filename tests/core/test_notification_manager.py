from datetime import datetime

import httpx
from pytest_mock import MockerFixture

from app.core.notification.schemas_notification import Message
from app.utils.communication.notifications import NotificationManager
from tests.commons import TEST_NOW, settings

WEBHOOK_URL = "https://hooks.example.com/bayplan"


async def test_notification_manager_delivers_any_message(mocker: MockerFixture):
    post = mocker.patch(
        "httpx.AsyncClient.post",
        return_value=httpx.Response(200, request=httpx.Request("POST", WEBHOOK_URL)),
    )
    manager = NotificationManager(
        settings=settings.model_copy(update={"NOTIFICATION_WEBHOOK_URL": WEBHOOK_URL}),
    )

    await manager.send_event(
        Message(
            event_type="maintenance",
            action_module="core",
            actor_id="admin",
            recipient_ids=["mechanic"],
            occurred_at=TEST_NOW,
            message="The workshop closes early",
        ),
    )

    post.assert_called_once()
    body = post.call_args.kwargs["json"]
    assert body["event_type"] == "maintenance"
    assert body["action_module"] == "core"
    assert body["recipient_ids"] == ["mechanic"]
    assert datetime.fromisoformat(body["occurred_at"]) == TEST_NOW
    assert body["message"] == "The workshop closes early"


async def test_message_without_recipients_is_not_sent(mocker: MockerFixture):
    post = mocker.patch("httpx.AsyncClient.post")
    manager = NotificationManager(
        settings=settings.model_copy(update={"NOTIFICATION_WEBHOOK_URL": WEBHOOK_URL}),
    )

    await manager.send_event(
        Message(
            event_type="maintenance",
            action_module="core",
            actor_id="admin",
            recipient_ids=[],
            occurred_at=TEST_NOW,
        ),
    )

    post.assert_not_called()
