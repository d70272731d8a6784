from datetime import datetime

from pydantic import BaseModel


class Message(BaseModel):
    """
    A notification delivered to the webhook. Modules subclass it to add the ids the recipients need.
    """

    event_type: str
    action_module: str
    actor_id: str
    recipient_ids: list[str]
    occurred_at: datetime
    message: str | None = None
