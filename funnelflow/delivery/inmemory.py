"""In-memory delivery backend for testing."""

from __future__ import annotations

from typing import List

from .base import BaseDelivery, EmailMessage, SmsMessage, UserNotification


class InMemoryDelivery(BaseDelivery):
    """Record every hand-off so tests can inspect it."""

    def __init__(self) -> None:
        self.emails: List[EmailMessage] = []
        self.sms: List[SmsMessage] = []
        self.user_notifications: List[UserNotification] = []

    async def send_email(self, message: EmailMessage) -> None:
        self.emails.append(message)

    async def send_sms(self, message: SmsMessage) -> None:
        self.sms.append(message)

    async def notify_user(self, notification: UserNotification) -> None:
        self.user_notifications.append(notification)
