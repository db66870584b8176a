"""Delivery backend that logs hand-offs instead of calling a provider."""

from __future__ import annotations

import logging

from .base import BaseDelivery, EmailMessage, SmsMessage, UserNotification

logger = logging.getLogger(__name__)


class LoggingDelivery(BaseDelivery):
    """Default backend until a provider integration is configured."""

    async def send_email(self, message: EmailMessage) -> None:
        logger.info(
            f"Sending email to={message.to} subject={message.subject!r} "
            f"template_id={message.template_id}"
        )

    async def send_sms(self, message: SmsMessage) -> None:
        logger.info(f"Sending SMS to={message.to} length={len(message.message)}")

    async def notify_user(self, notification: UserNotification) -> None:
        logger.info(
            f"Sending {notification.channel} notification to user={notification.user_id} "
            f"subject={notification.subject!r}"
        )
