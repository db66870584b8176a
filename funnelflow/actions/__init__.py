"""Workflow action handlers.

Each handler takes its step's typed configuration and an
:class:`ExecutionContext` and always returns an :class:`ActionResult`.
"""

from .base import ExecutionContext, action_handler, resolve_assignee
from .deals import create_deal
from .fields import update_field
from .messaging import send_email, send_sms
from .notify import send_notification
from .tags import add_tags, remove_tags
from .tasks import create_task

__all__ = [
    "ExecutionContext",
    "action_handler",
    "resolve_assignee",
    "add_tags",
    "create_deal",
    "create_task",
    "remove_tags",
    "send_email",
    "send_notification",
    "send_sms",
    "update_field",
]
