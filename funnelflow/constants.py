"""Shared constants for funnelflow."""

from __future__ import annotations

from datetime import timedelta

OPEN_ENROLLMENT_STATUSES = ("active", "paused")

WAIT_UNITS = {
    "minutes": timedelta(minutes=1),
    "hours": timedelta(hours=1),
    "days": timedelta(days=1),
    "weeks": timedelta(weeks=1),
}
DEFAULT_WAIT_UNIT = "days"
DEFAULT_WAIT_DURATION = 1

# Non-wait steps become due one tick after "now".
SCHEDULING_TICK = timedelta(seconds=1)

# Contact columns written directly by update_field; anything else is a custom field.
STANDARD_CONTACT_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "company_name",
    "job_title",
    "type",
    "status",
    "source",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip_code",
    "country",
)

OWNER_RECIPIENT = "owner"

SMS_SEGMENT_LENGTH = 160

DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_PROCESSING_SECONDS = 55.0
DEFAULT_POLL_INTERVAL = 60.0
