"""Workflow definition contracts for funnelflow.

A workflow is an ordered list of steps. Every step type is its own model with
its own typed configuration, and the ``Step`` union is discriminated on the
``type`` field so an unknown step type is rejected when a definition is
validated rather than silently skipped at run time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------------------------------------------------------
# Errors


class FunnelflowError(Exception):
    """Base error raised by the automation engine."""


class StepNotFoundError(FunnelflowError):
    """A step id referenced by an enrollment or go_to step does not exist."""

    def __init__(self, step_id: Optional[str]) -> None:
        super().__init__(f"Step not found: {step_id}")
        self.step_id = step_id


class UnknownStepTypeError(FunnelflowError):
    """The step executor has no handler for a step."""

    def __init__(self, step: Any) -> None:
        step_type = getattr(step, "type", type(step).__name__)
        super().__init__(f"Unknown step type: {step_type}")
        self.step_type = step_type


# ----------------------------------------------------------------------
# Conditions

FilterOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "starts_with",
    "ends_with",
    "greater_than",
    "less_than",
    "is_empty",
    "is_not_empty",
    "in",
    "not_in",
]

ConditionLogic = Literal["and", "or"]


class Condition(BaseModel):
    """Field predicate evaluated against a contact or deal record."""

    field: str
    operator: FilterOperator
    value: Any = None


# ----------------------------------------------------------------------
# Step configuration payloads


class SendEmailConfig(BaseModel):
    template_id: Optional[str] = None
    subject: Optional[str] = None
    content_html: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None


class SendSmsConfig(BaseModel):
    message: str = ""


class TagConfig(BaseModel):
    tag_ids: List[str] = Field(default_factory=list)


class UpdateFieldConfig(BaseModel):
    field: str = ""
    value: Union[str, int, float, bool, None] = None


class CreateTaskConfig(BaseModel):
    title: str = ""
    description: Optional[str] = None
    due_in_days: Optional[int] = None
    assigned_to: Optional[str] = None
    priority: Literal["low", "medium", "high"] = "medium"


class CreateDealConfig(BaseModel):
    pipeline_id: str = ""
    stage_id: str = ""
    title: str = ""
    value: float = 0
    assigned_to: Optional[str] = None


class SendNotificationConfig(BaseModel):
    type: Literal["email", "in_app", "slack"] = "in_app"
    recipients: List[str] = Field(default_factory=list, description="User ids or 'owner'")
    subject: str = ""
    message: str = ""


class WaitConfig(BaseModel):
    duration: Optional[float] = None
    unit: Optional[Literal["minutes", "hours", "days", "weeks"]] = None


class ConditionConfig(BaseModel):
    conditions: List[Condition] = Field(default_factory=list)
    logic: ConditionLogic = "and"


class SplitVariant(BaseModel):
    id: str
    name: str = ""
    percentage: Optional[float] = None


class SplitConfig(BaseModel):
    split_type: Literal["percentage", "random"] = "random"
    variants: List[SplitVariant] = Field(default_factory=list)


class GoToConfig(BaseModel):
    target_step_id: Optional[str] = None


class EndConfig(BaseModel):
    pass


# ----------------------------------------------------------------------
# Steps


class Branch(BaseModel):
    """Named outgoing edge of a condition or split step."""

    id: str
    name: str = ""
    next_step_id: Optional[str] = None


class StepBase(BaseModel):
    id: str
    name: str = ""
    next_step_id: Optional[str] = None
    branches: List[Branch] = Field(default_factory=list)

    def branch_target(self, branch_id: Optional[str]) -> Optional[str]:
        """Return the step id mapped under ``branch_id`` if any."""
        if not branch_id:
            return None
        for branch in self.branches:
            if branch.id == branch_id:
                return branch.next_step_id
        return None


class SendEmailStep(StepBase):
    type: Literal["send_email"] = "send_email"
    config: SendEmailConfig = Field(default_factory=SendEmailConfig)


class SendSmsStep(StepBase):
    type: Literal["send_sms"] = "send_sms"
    config: SendSmsConfig = Field(default_factory=SendSmsConfig)


class AddTagStep(StepBase):
    type: Literal["add_tag"] = "add_tag"
    config: TagConfig = Field(default_factory=TagConfig)


class RemoveTagStep(StepBase):
    type: Literal["remove_tag"] = "remove_tag"
    config: TagConfig = Field(default_factory=TagConfig)


class UpdateFieldStep(StepBase):
    type: Literal["update_field"] = "update_field"
    config: UpdateFieldConfig = Field(default_factory=UpdateFieldConfig)


class CreateTaskStep(StepBase):
    type: Literal["create_task"] = "create_task"
    config: CreateTaskConfig = Field(default_factory=CreateTaskConfig)


class CreateDealStep(StepBase):
    type: Literal["create_deal"] = "create_deal"
    config: CreateDealConfig = Field(default_factory=CreateDealConfig)


class SendNotificationStep(StepBase):
    type: Literal["send_notification"] = "send_notification"
    config: SendNotificationConfig = Field(default_factory=SendNotificationConfig)


class WaitStep(StepBase):
    type: Literal["wait"] = "wait"
    config: WaitConfig = Field(default_factory=WaitConfig)


class ConditionStep(StepBase):
    type: Literal["condition"] = "condition"
    config: ConditionConfig = Field(default_factory=ConditionConfig)


class SplitStep(StepBase):
    type: Literal["split"] = "split"
    config: SplitConfig = Field(default_factory=SplitConfig)


class GoToStep(StepBase):
    type: Literal["go_to"] = "go_to"
    config: GoToConfig = Field(default_factory=GoToConfig)


class EndStep(StepBase):
    type: Literal["end"] = "end"
    config: EndConfig = Field(default_factory=EndConfig)


Step = Annotated[
    Union[
        SendEmailStep,
        SendSmsStep,
        AddTagStep,
        RemoveTagStep,
        UpdateFieldStep,
        CreateTaskStep,
        CreateDealStep,
        SendNotificationStep,
        WaitStep,
        ConditionStep,
        SplitStep,
        GoToStep,
        EndStep,
    ],
    Field(discriminator="type"),
]


# ----------------------------------------------------------------------
# Triggers


class ContactTriggerConfig(BaseModel):
    filters: List[Condition] = Field(default_factory=list)


class TagTriggerConfig(BaseModel):
    tag_ids: List[str] = Field(default_factory=list)
    filters: List[Condition] = Field(default_factory=list)


class DealCreatedTriggerConfig(BaseModel):
    pipeline_id: Optional[str] = None
    filters: List[Condition] = Field(default_factory=list)


class DealStageTriggerConfig(BaseModel):
    pipeline_id: Optional[str] = None
    from_stage_id: Optional[str] = None
    to_stage_id: Optional[str] = None
    filters: List[Condition] = Field(default_factory=list)


class FormTriggerConfig(BaseModel):
    form_id: Optional[str] = None
    filters: List[Condition] = Field(default_factory=list)


class ManualTriggerConfig(BaseModel):
    pass


class ContactCreatedTrigger(BaseModel):
    type: Literal["contact_created"] = "contact_created"
    config: ContactTriggerConfig = Field(default_factory=ContactTriggerConfig)


class TagAddedTrigger(BaseModel):
    type: Literal["tag_added"] = "tag_added"
    config: TagTriggerConfig = Field(default_factory=TagTriggerConfig)


class TagRemovedTrigger(BaseModel):
    type: Literal["tag_removed"] = "tag_removed"
    config: TagTriggerConfig = Field(default_factory=TagTriggerConfig)


class DealCreatedTrigger(BaseModel):
    type: Literal["deal_created"] = "deal_created"
    config: DealCreatedTriggerConfig = Field(default_factory=DealCreatedTriggerConfig)


class DealStageChangedTrigger(BaseModel):
    type: Literal["deal_stage_changed"] = "deal_stage_changed"
    config: DealStageTriggerConfig = Field(default_factory=DealStageTriggerConfig)


class FormSubmittedTrigger(BaseModel):
    type: Literal["form_submitted"] = "form_submitted"
    config: FormTriggerConfig = Field(default_factory=FormTriggerConfig)


class ManualTrigger(BaseModel):
    type: Literal["manual"] = "manual"
    config: ManualTriggerConfig = Field(default_factory=ManualTriggerConfig)


WorkflowTrigger = Annotated[
    Union[
        ContactCreatedTrigger,
        TagAddedTrigger,
        TagRemovedTrigger,
        DealCreatedTrigger,
        DealStageChangedTrigger,
        FormSubmittedTrigger,
        ManualTrigger,
    ],
    Field(discriminator="type"),
]


# ----------------------------------------------------------------------
# Workflow


class WorkflowSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    allow_re_enrollment: bool = False
    enrollment_limit: Optional[int] = None


class Workflow(BaseModel):
    """Tenant-owned automation definition."""

    id: str
    workspace_id: str
    name: str
    description: Optional[str] = None
    status: Literal["draft", "active", "paused", "archived"] = "draft"
    trigger: WorkflowTrigger = Field(default_factory=ManualTrigger)
    steps: List[Step] = Field(default_factory=list)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    enrolled_count: int = 0
    completed_count: int = 0
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def trigger_type(self) -> str:
        return self.trigger.type

    def find_step(self, step_id: Optional[str]) -> Optional[Tuple[int, StepBase]]:
        """Return ``(index, step)`` for ``step_id`` or ``None``."""
        if step_id is None:
            return None
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index, step
        return None

    def enrollment_limit_reached(self) -> bool:
        limit = self.settings.enrollment_limit
        return bool(limit) and self.enrolled_count >= limit


# ----------------------------------------------------------------------
# Results


class ActionResult(BaseModel):
    """Uniform outcome reported by action handlers."""

    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, **data: Any) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)


class StepResult(ActionResult):
    """Outcome of executing one workflow step."""

    branch_taken: Optional[str] = None
