"""Data models for persisted automation state."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..contracts import utcnow

EnrollmentStatus = Literal["active", "completed", "exited", "paused", "failed"]


def new_id() -> str:
    return str(uuid.uuid4())


class StepExecution(BaseModel):
    """Immutable record of one step attempt."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    step_type: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: Literal["pending", "completed", "failed", "skipped"] = "pending"
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    branch_taken: Optional[str] = None


class Enrollment(BaseModel):
    """A contact progressing through a workflow."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    contact_id: str
    status: EnrollmentStatus = "active"
    current_step_id: Optional[str] = None
    current_step_index: int = 0
    enrolled_at: datetime = Field(default_factory=utcnow)
    enrolled_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    exited_at: Optional[datetime] = None
    exit_reason: Optional[str] = None
    error_message: Optional[str] = None
    next_step_at: Optional[datetime] = None
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    step_history: List[StepExecution] = Field(default_factory=list)
    version: int = 1
    updated_at: datetime = Field(default_factory=utcnow)


class Contact(BaseModel):
    """Contact record as read from the CRM."""

    model_config = ConfigDict(extra="allow")

    id: str
    workspace_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Deal(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=new_id)
    workspace_id: Optional[str] = None
    pipeline_id: str
    stage_id: str
    contact_id: Optional[str] = None
    title: str
    value: float = 0
    position: int = 0
    status: str = "open"
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    workspace_id: Optional[str] = None
    contact_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: str = "pending"
    priority: str = "medium"
    due_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    workspace_id: Optional[str] = None
    type: str = "workflow_notification"
    title: str
    message: str
    link: Optional[str] = None
    read: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class ActivityLog(BaseModel):
    id: str = Field(default_factory=new_id)
    workspace_id: Optional[str] = None
    contact_id: Optional[str] = None
    deal_id: Optional[str] = None
    type: str
    title: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class FormSubmission(BaseModel):
    id: str
    form_id: str
    contact_id: str
    workspace_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
