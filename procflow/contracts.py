"""Procedure and run documents exchanged with storage and callers."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .base import CamelModel
from .constants import COMPLETED
from .enums import (
    Action,
    AssigneeKind,
    AssignmentType,
    ConditionOperator,
    NotificationKind,
    Outcome,
    RunStatus,
)
from .step_configs import BaseStepConfig, coerce_config

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Condition(CamelModel):
    """One ordered branching rule: ``variable operator value -> target``."""

    variable: str
    operator: ConditionOperator = ConditionOperator.EQ
    value: Any = None
    target_step_id: str = Field(
        validation_alias=AliasChoices("targetStepId", "nextStepId", "target_step_id"),
        serialization_alias="targetStepId",
    )
    label: Optional[str] = None


class Routes(CamelModel):
    default_next_step_id: Optional[str] = None
    on_success_step_id: Optional[str] = None
    on_failure_step_id: Optional[str] = None
    conditions: List[Condition] = Field(default_factory=list)

    def targets(self) -> Iterator[str]:
        """Yield every step id (or sentinel) these routes can lead to."""
        for target in (
            self.on_success_step_id,
            self.on_failure_step_id,
            self.default_next_step_id,
        ):
            if target:
                yield target
        for condition in self.conditions:
            yield condition.target_step_id

    def is_empty(self) -> bool:
        return next(self.targets(), None) is None


class Assignment(CamelModel):
    type: AssignmentType = AssignmentType.STARTER
    assignee_id: Optional[str] = None


class Step(CamelModel):
    """A unit of work within a procedure."""

    id: str
    title: str = ""
    description: str = ""
    action: Action = Action.INPUT
    config: SerializeAsAny[BaseStepConfig] = Field(default_factory=BaseStepConfig)
    routes: Optional[Routes] = None
    assignment: Optional[Assignment] = None
    requires_evidence: bool = False

    @model_validator(mode="before")
    @classmethod
    def _coerce_document(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        legacy_type = data.pop("assigneeType", None) or data.pop("assignee_type", None)
        legacy_id = data.pop("assigneeId", None) or data.pop("assignee_id", None)
        if data.get("assignment") is None and (legacy_type or legacy_id):
            data["assignment"] = {
                "type": legacy_type or AssignmentType.SPECIFIC_USER,
                "assigneeId": legacy_id,
            }

        try:
            action = Action(data.get("action", Action.INPUT))
        except ValueError:
            # let field validation report the unknown action
            return data
        data["config"] = coerce_config(action, data.get("config"))
        return data

    @property
    def output_variable_name(self) -> Optional[str]:
        return self.config.output_variable_name

    @property
    def has_routes(self) -> bool:
        return self.routes is not None and not self.routes.is_empty()


class Procedure(CamelModel):
    """An ordered set of steps owned by an organization."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    organization_id: Optional[str] = None
    title: str = ""
    description: str = ""
    steps: List[Step] = Field(default_factory=list)
    is_published: bool = False

    @model_validator(mode="after")
    def _check_steps(self) -> "Procedure":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            if step.id == COMPLETED:
                raise ValueError(f"'{COMPLETED}' is reserved and cannot be a step id")
            seen.add(step.id)
        if self.is_published and not self.steps:
            raise ValueError("A published procedure needs at least one step")
        return self

    def index_of(self, step_id: str) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return None

    def step_by_id(self, step_id: str) -> Optional[Step]:
        index = self.index_of(step_id)
        return None if index is None else self.steps[index]

    def has_step(self, step_id: str) -> bool:
        return self.index_of(step_id) is not None


class LogEntry(CamelModel):
    """Immutable record of one executed step."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    step_id: str
    step_title: str = ""
    action: Optional[Action] = None
    output: Any = None
    timestamp: datetime = Field(default_factory=utcnow)
    outcome: Outcome = Outcome.SUCCESS
    executed_by: Optional[str] = None


class Run(CamelModel):
    """One live execution of a procedure.

    ``version`` is bumped by every transition and lets storage reject a write
    based on a stale read.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    procedure_id: str
    procedure_title: str = ""
    organization_id: Optional[str] = None
    current_step_index: int = 0
    status: RunStatus = RunStatus.IN_PROGRESS
    log: List[LogEntry] = Field(
        default_factory=list, validation_alias=AliasChoices("log", "logs")
    )
    current_assignee_id: Optional[str] = None
    assignee_kind: AssigneeKind = AssigneeKind.USER
    started_by: str
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error_detail: Optional[str] = None
    trigger_context: Dict[str, Any] = Field(default_factory=dict)
    version: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    error: Optional[str] = None
    field: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: str, field: Optional[str] = None) -> "ValidationResult":
        return cls(valid=False, error=error, field=field)


class Notification(CamelModel):
    """Side effect produced by a transition and delivered by a notifier."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: NotificationKind
    recipient_id: str
    run_id: str
    step_id: Optional[str] = None
    title: str = ""
    message: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str) -> "Notification":
        return cls.model_validate_json(data)


class Transition(BaseModel):
    """Result of one executor operation: new run state plus side effects."""

    run: Run
    next_target: Optional[str] = None
    held: bool = False
    log_entry: Optional[LogEntry] = None
    notifications: List[Notification] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
