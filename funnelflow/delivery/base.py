"""Base delivery interface for outbound email, SMS and team notifications."""

from __future__ import annotations

import abc
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class EmailMessage(BaseModel):
    to: str
    subject: str
    content_html: str
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    template_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SmsMessage(BaseModel):
    to: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UserNotification(BaseModel):
    """Notification addressed to a workspace user rather than a contact."""

    channel: Literal["email", "slack"]
    user_id: str
    subject: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BaseDelivery(metaclass=abc.ABCMeta):
    """Abstract hand-off point to email/SMS/Slack providers.

    Implementations accept resolved recipients and content; transport
    guarantees are the provider's concern.
    """

    @abc.abstractmethod
    async def send_email(self, message: EmailMessage) -> None:
        """Hand an email to the provider."""
        raise NotImplementedError

    @abc.abstractmethod
    async def send_sms(self, message: SmsMessage) -> None:
        """Hand an SMS to the provider."""
        raise NotImplementedError

    @abc.abstractmethod
    async def notify_user(self, notification: UserNotification) -> None:
        """Deliver a team notification over email or Slack."""
        raise NotImplementedError
