"""Email and SMS actions addressed to the enrolled contact."""

from __future__ import annotations

import logging
import math

from ..constants import SMS_SEGMENT_LENGTH
from ..contracts import ActionResult, SendEmailConfig, SendSmsConfig
from ..delivery import EmailMessage, SmsMessage
from ..personalization import parse_personalization_tokens, personalization_data
from .base import ExecutionContext, action_handler

logger = logging.getLogger(__name__)


@action_handler("Failed to send email")
async def send_email(config: SendEmailConfig, context: ExecutionContext) -> ActionResult:
    contact = context.contact
    if not contact.email:
        return ActionResult.fail("Contact does not have an email address")

    if config.template_id:
        logger.debug(f"Using template {config.template_id} for workflow_id={context.workflow.id}")

    data = personalization_data(contact)
    subject = parse_personalization_tokens(config.subject, data)
    content_html = parse_personalization_tokens(config.content_html, data)

    await context.delivery.send_email(
        EmailMessage(
            to=contact.email,
            subject=subject,
            content_html=content_html,
            from_name=config.from_name,
            from_email=config.from_email,
            template_id=config.template_id,
            metadata={"workflow_id": context.workflow.id, "contact_id": contact.id},
        )
    )

    return ActionResult.ok(
        to=contact.email,
        subject=subject,
        template_id=config.template_id,
        from_name=config.from_name,
        from_email=config.from_email,
        sent_at=context.now().isoformat(),
    )


@action_handler("Failed to send SMS")
async def send_sms(config: SendSmsConfig, context: ExecutionContext) -> ActionResult:
    contact = context.contact
    if not contact.phone:
        return ActionResult.fail("Contact does not have a phone number")

    message = parse_personalization_tokens(config.message, personalization_data(contact))

    await context.delivery.send_sms(
        SmsMessage(
            to=contact.phone,
            message=message,
            metadata={"workflow_id": context.workflow.id, "contact_id": contact.id},
        )
    )

    return ActionResult.ok(
        to=contact.phone,
        message=message,
        sent_at=context.now().isoformat(),
        segments=math.ceil(len(message) / SMS_SEGMENT_LENGTH),
    )
