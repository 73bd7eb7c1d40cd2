"""Pure run transitions.

Every operation takes the current run and procedure and returns a
:class:`~procflow.contracts.Transition` holding a new run value plus the
notifications to emit. Nothing here performs I/O and the input run is never
modified. Each transition increments ``Run.version`` by one.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel

from ..constants import COMPLETED
from ..contracts import (
    LogEntry,
    Notification,
    Procedure,
    Run,
    Step,
    Transition,
    utcnow,
)
from ..enums import (
    MISMATCH_ACTIONS,
    AssigneeKind,
    NotificationKind,
    Outcome,
    RunStatus,
)
from ..errors import ConfigurationError, InvalidTransitionError, StepValidationError
from .assignment import resolve_assignment
from .context import RunContext
from .resolver import ResolvedConfig, build_run_context, resolve_with_context
from .routing import decide_route
from .validation import validate_step

logger = logging.getLogger(__name__)

REASSIGNABLE_STATUSES = (RunStatus.IN_PROGRESS, RunStatus.FLAGGED, RunStatus.OPEN_FOR_CLAIM)


class StepView(BaseModel):
    """The current step of a run, ready for display or execution."""

    run_id: str
    step: Step
    step_index: int
    resolved: ResolvedConfig
    status: RunStatus
    assignee_id: Optional[str] = None
    assignee_kind: AssigneeKind = AssigneeKind.USER


def assignment_notification(run: Run, step: Step, user_id: str) -> Notification:
    return Notification(
        kind=NotificationKind.ASSIGNMENT,
        recipient_id=user_id,
        run_id=run.id,
        step_id=step.id,
        title="New task assigned",
        message=f"You have been assigned '{step.title or step.id}' in {run.procedure_title or run.procedure_id}",
    )


def completion_notification(run: Run) -> Notification:
    return Notification(
        kind=NotificationKind.COMPLETION,
        recipient_id=run.started_by,
        run_id=run.id,
        title="Procedure completed",
        message=f"'{run.procedure_title or run.procedure_id}' has been completed",
    )


class RunExecutor:
    """Apply state transitions to runs."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    # ------------------------------------------------------------------
    # Reading
    def current_step(self, run: Run, procedure: Procedure) -> Optional[Step]:
        if run.is_completed or not 0 <= run.current_step_index < len(procedure.steps):
            return None
        return procedure.steps[run.current_step_index]

    def _require_current_step(self, run: Run, procedure: Procedure) -> Step:
        if run.is_completed:
            raise InvalidTransitionError(f"Run {run.id} is already completed")
        step = self.current_step(run, procedure)
        if step is None:
            raise InvalidTransitionError(
                f"Run {run.id} points at step index {run.current_step_index}, "
                f"but procedure {procedure.id} has {len(procedure.steps)} steps"
            )
        return step

    def context_for(self, run: Run, procedure: Procedure) -> RunContext:
        return build_run_context(run.log, procedure, run.trigger_context)

    def present_step(self, run: Run, procedure: Procedure) -> StepView:
        """Resolve the current step's config against the run so far."""
        step = self._require_current_step(run, procedure)
        resolved = resolve_with_context(step.config, self.context_for(run, procedure))
        return StepView(
            run_id=run.id,
            step=step,
            step_index=run.current_step_index,
            resolved=resolved,
            status=run.status,
            assignee_id=run.current_assignee_id,
            assignee_kind=run.assignee_kind,
        )

    # ------------------------------------------------------------------
    # Transitions
    def start_run(
        self,
        procedure: Procedure,
        started_by: str,
        *,
        trigger_context: Optional[Mapping[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> Transition:
        """Create a run positioned at the first step."""
        if not procedure.steps:
            raise ConfigurationError(f"Procedure {procedure.id} has no steps")

        run = Run(
            id=run_id or str(uuid.uuid4()),
            procedure_id=procedure.id,
            procedure_title=procedure.title,
            organization_id=procedure.organization_id,
            started_by=started_by,
            started_at=self._clock(),
            trigger_context=copy.deepcopy(dict(trigger_context or {})),
            version=1,
        )
        first = procedure.steps[0]
        assignment = resolve_assignment(first, run)
        run = run.model_copy(
            update={
                "current_assignee_id": assignment.assignee_id,
                "assignee_kind": assignment.assignee_kind,
                "status": assignment.run_status,
            }
        )
        logger.info(f"Started run {run.id} of procedure {procedure.id} for {started_by}")

        notifications = []
        if assignment.assignee_kind == AssigneeKind.USER and assignment.assignee_id != started_by:
            notifications.append(assignment_notification(run, first, assignment.assignee_id))
        return Transition(
            run=run,
            next_target=first.id,
            notifications=notifications,
            warnings=list(assignment.warnings),
        )

    def complete_step(
        self,
        run: Run,
        procedure: Procedure,
        submitted_output: Any,
        outcome: Outcome = Outcome.SUCCESS,
        actor_id: Optional[str] = None,
    ) -> Transition:
        """Record the current step's output and advance the run."""
        step = self._require_current_step(run, procedure)
        outcome = Outcome(outcome)
        if run.status == RunStatus.BLOCKED:
            raise InvalidTransitionError(f"Run {run.id} is blocked")
        if run.status == RunStatus.OPEN_FOR_CLAIM and actor_id is not None:
            raise InvalidTransitionError(
                f"Run {run.id} is waiting in a team queue and must be claimed first"
            )

        if step.action.is_human:
            resolved = resolve_with_context(step.config, self.context_for(run, procedure))
            result = validate_step(step, submitted_output, resolved.config)
            if not result.valid:
                logger.info(f"Rejected output for step {step.id} of run {run.id}: {result.error}")
                raise StepValidationError(result, step.id)

        has_failure_route = bool(step.routes and step.routes.on_failure_step_id)
        if outcome == Outcome.FAILURE and step.action in MISMATCH_ACTIONS and not has_failure_route:
            outcome = Outcome.FLAGGED

        now = self._clock()
        entry = LogEntry(
            step_id=step.id,
            step_title=step.title,
            action=step.action,
            output=copy.deepcopy(submitted_output),
            timestamp=now,
            outcome=outcome,
            executed_by=actor_id,
        )
        log = [*run.log, entry]
        updates: dict = {"log": log, "version": run.version + 1, "error_detail": None}

        if outcome == Outcome.FLAGGED and not has_failure_route:
            updates["status"] = RunStatus.FLAGGED
            logger.info(f"Run {run.id} held for review at step {step.id}")
            return Transition(run=run.model_copy(update=updates), held=True, log_entry=entry)

        context = build_run_context(log, procedure, run.trigger_context)
        decision = decide_route(step, outcome, context, procedure)
        notifications = []
        warnings = list(decision.warnings)

        if decision.target == COMPLETED:
            updates.update(
                status=RunStatus.COMPLETED,
                completed_at=now,
                current_step_index=len(procedure.steps),
            )
            new_run = run.model_copy(update=updates)
            notifications.append(completion_notification(new_run))
            logger.info(f"Run {run.id} completed after step {step.id}")
        else:
            index = procedure.index_of(decision.target)
            next_step = procedure.steps[index]
            assignment = resolve_assignment(next_step, run)
            warnings.extend(assignment.warnings)
            updates.update(
                current_step_index=index,
                status=assignment.run_status,
                current_assignee_id=assignment.assignee_id,
                assignee_kind=assignment.assignee_kind,
            )
            new_run = run.model_copy(update=updates)
            if (
                assignment.assignee_kind == AssigneeKind.USER
                and assignment.assignee_id
                and assignment.assignee_id != actor_id
            ):
                notifications.append(
                    assignment_notification(new_run, next_step, assignment.assignee_id)
                )
            logger.info(
                f"Run {run.id} advanced from {step.id} to {next_step.id} via {decision.rule}"
            )

        return Transition(
            run=new_run,
            next_target=decision.target,
            log_entry=entry,
            notifications=notifications,
            warnings=warnings,
        )

    def flag_run(self, run: Run, error_detail: str) -> Transition:
        """Hold a run after a system-level execution failure."""
        if run.is_completed:
            raise InvalidTransitionError(f"Run {run.id} is already completed")
        logger.warning(f"Flagging run {run.id}: {error_detail}")
        new_run = run.model_copy(
            update={
                "status": RunStatus.FLAGGED,
                "error_detail": error_detail,
                "version": run.version + 1,
            }
        )
        return Transition(run=new_run, held=True)

    def claim_run(self, run: Run, user_id: str) -> Transition:
        """Take a team-queued run as ``user_id``."""
        if run.status != RunStatus.OPEN_FOR_CLAIM or run.assignee_kind != AssigneeKind.TEAM:
            raise InvalidTransitionError(f"Run {run.id} is not open for claim")
        logger.info(f"Run {run.id} claimed by {user_id} from team {run.current_assignee_id}")
        new_run = run.model_copy(
            update={
                "status": RunStatus.IN_PROGRESS,
                "current_assignee_id": user_id,
                "assignee_kind": AssigneeKind.USER,
                "version": run.version + 1,
            }
        )
        return Transition(run=new_run)

    def reassign_run(
        self,
        run: Run,
        procedure: Procedure,
        user_id: str,
        actor_id: Optional[str] = None,
    ) -> Transition:
        """Hand the current step to ``user_id``. FLAGGED runs stay flagged."""
        if run.status not in REASSIGNABLE_STATUSES:
            raise InvalidTransitionError(
                f"Run {run.id} cannot be reassigned while {run.status.value}"
            )
        step = self._require_current_step(run, procedure)
        status = RunStatus.FLAGGED if run.status == RunStatus.FLAGGED else RunStatus.IN_PROGRESS
        new_run = run.model_copy(
            update={
                "status": status,
                "current_assignee_id": user_id,
                "assignee_kind": AssigneeKind.USER,
                "version": run.version + 1,
            }
        )
        notifications = []
        if user_id != actor_id:
            notifications.append(assignment_notification(new_run, step, user_id))
        logger.info(f"Run {run.id} reassigned to {user_id}")
        return Transition(run=new_run, next_target=step.id, notifications=notifications)
