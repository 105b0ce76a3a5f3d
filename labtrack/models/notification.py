# labtrack/models/notification.py
from typing import Any, Dict
from datetime import datetime
from pydantic import BaseModel, Field

from .enum import NotificationType
from ..core.utils import new_id, utc_now


class Notification(BaseModel):
    """Intent to notify a borrower. Delivery belongs to the NotificationSink."""
    id: str = Field(default_factory=new_id)
    to: str
    subject: str
    text: str
    html: str
    user_id: str
    type: NotificationType
    transaction_id: str
    created_at: datetime = Field(default_factory=utc_now)

    def delivery_payload(self) -> Dict[str, Any]:
        return {
            "to": self.to,
            "subject": self.subject,
            "text": self.text,
            "html": self.html,
            "userId": self.user_id,
            "type": self.type.value,
            "transactionId": self.transaction_id,
        }
