"""Team notifications about a contact reaching a workflow step."""

from __future__ import annotations

from typing import List

from ..constants import OWNER_RECIPIENT
from ..contracts import ActionResult, SendNotificationConfig
from ..delivery import UserNotification
from ..persistence.models import Notification
from ..personalization import parse_personalization_tokens, personalization_data
from .base import ExecutionContext, action_handler


def resolve_recipients(config: SendNotificationConfig, context: ExecutionContext) -> List[str]:
    """Map ``owner`` to a user id and drop empties and duplicates, keeping order."""
    resolved = []
    for recipient in config.recipients:
        if recipient == OWNER_RECIPIENT:
            recipient = context.contact.assigned_to or context.workflow.created_by
        if recipient and recipient not in resolved:
            resolved.append(recipient)
    return resolved


@action_handler("Failed to send notification")
async def send_notification(
    config: SendNotificationConfig, context: ExecutionContext
) -> ActionResult:
    if not config.recipients:
        return ActionResult.fail("No recipients specified")

    recipients = resolve_recipients(config, context)
    if not recipients:
        return ActionResult.fail("No valid recipients found")

    contact, workflow = context.contact, context.workflow
    data = personalization_data(contact, workflow)
    subject = parse_personalization_tokens(config.subject, data)
    message = parse_personalization_tokens(config.message, data)
    metadata = {
        "workflow_id": workflow.id,
        "workflow_name": workflow.name,
        "contact_id": contact.id,
        "notification_type": config.type,
    }

    notifications = []
    for user_id in recipients:
        if config.type in ("in_app", "email"):
            notifications.append(
                Notification(
                    user_id=user_id,
                    workspace_id=workflow.workspace_id,
                    title=subject,
                    message=message,
                    link=f"/dashboard/contacts/{contact.id}",
                    metadata=metadata,
                    created_at=context.now(),
                )
            )
        if config.type in ("email", "slack"):
            await context.delivery.notify_user(
                UserNotification(
                    channel=config.type,
                    user_id=user_id,
                    subject=subject,
                    message=message,
                    metadata=metadata,
                )
            )

    created = 0
    if notifications:
        created = await context.repository.insert_notifications(notifications)

    return ActionResult.ok(
        notification_type=config.type,
        recipients=recipients,
        subject=subject,
        notifications_created=created,
    )
