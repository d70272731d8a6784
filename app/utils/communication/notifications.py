import logging

import httpx
from fastapi import BackgroundTasks

from app.core.notification.schemas_notification import Message
from app.core.utils.config import Settings

bayplan_error_logger = logging.getLogger("bayplan.error")


class NotificationManager:
    """
    Deliver the messages of the modules to the notification webhook.
    This class should only be instantiated once.

    If `NOTIFICATION_WEBHOOK_URL` is not configured, events are dropped.
    """

    def __init__(self, settings: Settings):
        self.webhook_url = settings.NOTIFICATION_WEBHOOK_URL
        self.timeout = settings.NOTIFICATION_WEBHOOK_TIMEOUT

        if not self.webhook_url:
            bayplan_error_logger.info(
                "Notification webhook is not configured, notifications are disabled.",
            )

    @property
    def is_enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send_event(self, event: Message) -> None:
        """
        POST the event to the webhook. Delivery failures are logged and never raised:
        the operation which produced the event was already committed.
        """
        if not self.webhook_url:
            return
        if not event.recipient_ids:
            return

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.webhook_url,
                    json=event.model_dump(mode="json"),
                    timeout=self.timeout,
                )
            response.raise_for_status()
        except httpx.HTTPError:
            bayplan_error_logger.exception(
                f"Notification: could not deliver {event.action_module} {event.event_type} event to {len(event.recipient_ids)} recipients",
            )


class NotificationTool:
    """
    Utility class to send notifications in the background.

    This class should be instantiated before each use with a `BackgroundTasks` manager,
    use the `get_notification_tool` dependency. Background tasks run once the response was sent,
    after the database session was committed.
    """

    def __init__(
        self,
        background_tasks: BackgroundTasks,
        notification_manager: NotificationManager,
    ):
        self.background_tasks = background_tasks
        self.notification_manager = notification_manager

    def send_event(self, event: Message) -> None:
        if not self.notification_manager.is_enabled or not event.recipient_ids:
            return
        self.background_tasks.add_task(
            self.notification_manager.send_event,
            event=event,
        )
