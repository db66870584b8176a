"""Funnelflow: CRM workflow automation engine."""

from .config import FunnelflowConfig, load_config
from .contracts import (
    ActionResult,
    Condition,
    FunnelflowError,
    StepNotFoundError,
    StepResult,
    UnknownStepTypeError,
    Workflow,
)
from .delivery import get_delivery
from .engine import EnrollmentSummary, WorkflowEngine
from .persistence import Contact, Deal, Enrollment, FormSubmission, get_repository
from .worker import EnrollmentWorker, WorkerReport

__version__ = "0.1.0"
__all__ = [
    "ActionResult",
    "Condition",
    "Contact",
    "Deal",
    "Enrollment",
    "EnrollmentSummary",
    "EnrollmentWorker",
    "FormSubmission",
    "FunnelflowConfig",
    "FunnelflowError",
    "StepNotFoundError",
    "StepResult",
    "UnknownStepTypeError",
    "WorkerReport",
    "Workflow",
    "WorkflowEngine",
    "get_delivery",
    "get_repository",
    "load_config",
]
