"""procflow: execution engine for step-by-step business procedures."""

from .constants import COMPLETED
from .contracts import (
    Assignment,
    Condition,
    LogEntry,
    Notification,
    Procedure,
    Routes,
    Run,
    Step,
    Transition,
    ValidationResult,
)
from .engine import RunExecutor, build_context, resolve_config, route, validate
from .enums import Action, AssigneeKind, AssignmentType, Outcome, RunStatus
from .notifications import get_notifier
from .persistence import get_repository
from .service import RunService

__version__ = "0.1.0"
__all__ = [
    "COMPLETED",
    "Action",
    "AssigneeKind",
    "Assignment",
    "AssignmentType",
    "Condition",
    "LogEntry",
    "Notification",
    "Outcome",
    "Procedure",
    "Routes",
    "Run",
    "RunExecutor",
    "RunService",
    "RunStatus",
    "Step",
    "Transition",
    "ValidationResult",
    "build_context",
    "get_notifier",
    "get_repository",
    "resolve_config",
    "route",
    "validate",
]
