"""Decide who owns a run once it advances to a new step."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from ..contracts import Run, Step
from ..enums import AssigneeKind, AssignmentType, RunStatus

logger = logging.getLogger(__name__)


class ResolvedAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    assignee_id: Optional[str]
    assignee_kind: AssigneeKind
    run_status: RunStatus
    warnings: List[str] = []


def _starter(run: Run, warnings: Optional[List[str]] = None) -> ResolvedAssignment:
    return ResolvedAssignment(
        assignee_id=run.started_by,
        assignee_kind=AssigneeKind.USER,
        run_status=RunStatus.IN_PROGRESS,
        warnings=warnings or [],
    )


def resolve_assignment(next_step: Step, run: Run) -> ResolvedAssignment:
    """Owner, owner kind and run status for ``next_step`` becoming current.

    Steps without an assignment go to the run's starter.
    """
    assignment = next_step.assignment
    if assignment is None or assignment.type == AssignmentType.STARTER:
        return _starter(run)

    if not assignment.assignee_id:
        message = (
            f"Step {next_step.id} is assigned to {assignment.type.value} "
            "without an assignee; handing back to the starter"
        )
        logger.warning(message)
        return _starter(run, [message])

    if assignment.type == AssignmentType.TEAM_QUEUE:
        return ResolvedAssignment(
            assignee_id=assignment.assignee_id,
            assignee_kind=AssigneeKind.TEAM,
            run_status=RunStatus.OPEN_FOR_CLAIM,
        )
    return ResolvedAssignment(
        assignee_id=assignment.assignee_id,
        assignee_kind=AssigneeKind.USER,
        run_status=RunStatus.IN_PROGRESS,
    )
