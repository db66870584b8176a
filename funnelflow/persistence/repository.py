"""Repository abstraction for automation state persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Protocol

from ..contracts import Workflow
from .models import ActivityLog, Contact, Deal, Enrollment, Notification, Task

WorkflowCounter = Literal["enrolled_count", "completed_count"]

# Enrollment columns that may be changed through ``update_enrollment``.
ENROLLMENT_MUTABLE_FIELDS = frozenset(
    {
        "status",
        "current_step_id",
        "current_step_index",
        "completed_at",
        "exited_at",
        "exit_reason",
        "error_message",
        "next_step_at",
        "step_history",
        "updated_at",
    }
)


class WorkflowRepository(Protocol):
    """Protocol for persistence backends used by the engine.

    Tenant isolation is the backend's concern; the engine only issues
    record-level reads and writes.
    """

    # Workflows ---------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or replace a workflow definition."""

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Retrieve a workflow by id."""

    async def list_active_workflows(
        self, workspace_id: str, trigger_type: str
    ) -> list[Workflow]:
        """Return ``active`` workflows of a workspace with the given trigger type."""

    async def count_active_workflows(self) -> int:
        """Return the number of ``active`` workflows."""

    async def increment_workflow_counter(
        self, workflow_id: str, counter: WorkflowCounter, amount: int = 1
    ) -> None:
        """Atomically increment ``enrolled_count`` or ``completed_count``."""

    # Contacts ----------------------------------------------------------
    async def save_contact(self, contact: Contact) -> None:
        """Insert or replace a contact."""

    async def get_contact(self, contact_id: str) -> Contact | None:
        """Retrieve a contact by id."""

    async def update_contact(self, contact_id: str, changes: dict[str, Any]) -> None:
        """Merge ``changes`` into the stored contact."""

    # Enrollments -------------------------------------------------------
    async def create_enrollment(self, enrollment: Enrollment) -> Enrollment:
        """Persist a new enrollment and return the stored record."""

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        """Retrieve an enrollment by id."""

    async def find_open_enrollment(
        self, workflow_id: str, contact_id: str
    ) -> Enrollment | None:
        """Return an ``active`` or ``paused`` enrollment for the pair, if any."""

    async def update_enrollment(
        self,
        enrollment_id: str,
        changes: dict[str, Any],
        expected_status: str,
        expected_version: Optional[int] = None,
    ) -> bool:
        """Apply ``changes`` only if the stored row still matches.

        The stored status must equal ``expected_status`` and, when given, the
        stored version must equal ``expected_version``. A successful write bumps
        the version. Returns ``True`` when a row was affected.
        """

    async def list_due_enrollments(
        self, now: datetime, limit: int
    ) -> list[Enrollment]:
        """Return ``active`` enrollments with ``next_step_at <= now``, oldest first."""

    async def list_enrollments(
        self, workflow_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Enrollment]:
        """Return enrollments, optionally filtered."""

    async def count_enrollments(
        self, status: Optional[str] = None, due_before: Optional[datetime] = None
    ) -> int:
        """Count enrollments, optionally by status and due time."""

    # Deals, tasks, activities, notifications ---------------------------
    async def max_deal_position(self, stage_id: str) -> int | None:
        """Return the highest deal position within a stage."""

    async def create_deal(self, deal: Deal) -> Deal:
        """Persist a deal."""

    async def create_task(self, task: Task) -> Task:
        """Persist a task."""

    async def insert_activity(self, activity: ActivityLog) -> ActivityLog:
        """Append an activity log entry."""

    async def insert_notifications(self, notifications: list[Notification]) -> int:
        """Persist in-app notifications and return how many were stored."""
