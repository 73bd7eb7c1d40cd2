"""Authoring-time checks for procedure definitions.

Run-time code tolerates most of these defects (the router falls back to
sequential advance, unresolved markers are kept) so they are reported here,
before a procedure is published.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from enum import Enum
from typing import Iterator, List, Optional, Set

from pydantic import BaseModel, ConfigDict

from .constants import COMPLETED, TRIGGER_NAMESPACE
from .contracts import Procedure, Step
from .engine.context import OUTPUT_SUFFIX
from .engine.expressions import find_markers, strip_markers
from .enums import DECISION_ACTIONS, Action, AssignmentType, InputType
from .errors import ConfigurationError
from .step_configs import CalculateConfig, CompareConfig, InputConfig, ValidateConfig

logger = logging.getLogger(__name__)

POSITIONAL_NAME = re.compile(r"^step_\d+(_output)?$")


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class AuthoringIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: Severity
    message: str
    step_id: Optional[str] = None

    def __str__(self) -> str:
        where = f"[{self.step_id}] " if self.step_id else ""
        return f"{self.severity.value}: {where}{self.message}"


def _error(message: str, step: Optional[Step] = None) -> AuthoringIssue:
    return AuthoringIssue(severity=Severity.ERROR, message=message, step_id=step.id if step else None)


def _warning(message: str, step: Optional[Step] = None) -> AuthoringIssue:
    return AuthoringIssue(severity=Severity.WARNING, message=message, step_id=step.id if step else None)


def known_variable_roots(procedure: Procedure) -> Set[str]:
    """Every top-level name a template in ``procedure`` may reference."""
    roots = {TRIGGER_NAMESPACE}
    for position in range(len(procedure.steps)):
        roots.add(f"step_{position + 1}_output")
        roots.add(f"step_{position + 1}")
    for step in procedure.steps:
        name = step.output_variable_name
        if name:
            roots.add(name)
            if name.endswith(OUTPUT_SUFFIX):
                roots.add(name[: -len(OUTPUT_SUFFIX)])
    return roots


def _check_routes(step: Step, step_ids: Set[str]) -> Iterator[AuthoringIssue]:
    if step.routes is not None:
        for target in step.routes.targets():
            if target != COMPLETED and target not in step_ids:
                yield _error(f"Route target '{target}' does not exist", step)
            if target == step.id:
                yield _warning("Step routes to itself", step)
    if step.action.is_routing_only and not step.has_routes:
        yield _error(f"{step.action.value} steps must declare routes", step)


def _check_assignment(step: Step) -> Iterator[AuthoringIssue]:
    assignment = step.assignment
    if assignment is None or assignment.type == AssignmentType.STARTER:
        return
    if not assignment.assignee_id:
        yield _error(f"{assignment.type.value} assignment needs an assignee", step)


def _check_config(step: Step) -> Iterator[AuthoringIssue]:
    config = step.config
    if isinstance(config, CompareConfig):
        if not config.target_a or not config.target_b:
            yield _error("COMPARE steps need both targetA and targetB", step)
    elif isinstance(config, ValidateConfig):
        if not config.target:
            yield _error("VALIDATE steps need a target", step)
        if (config.rule or "").upper() == "REGEX" and not config.validation_rule:
            yield _error("REGEX validation needs a validationRule pattern", step)
    elif isinstance(config, CalculateConfig):
        if not config.formula:
            yield _error("CALCULATE steps need a formula", step)

    if isinstance(config, InputConfig):
        if step.action == Action.INPUT:
            if config.input_type is None:
                yield _warning("INPUT step has no input type; free text is assumed", step)
            if not config.field_label:
                yield _warning("INPUT step has no field label", step)
        if config.input_type == InputType.FILE and not config.allowed_extensions:
            yield _warning("File input accepts any extension", step)
        if config.input_type == InputType.SELECT and not config.options:
            yield _error("Selection input has no options", step)
    if (step.action in DECISION_ACTIONS or step.action == Action.NEGOTIATE) and not (
        getattr(config, "instruction", None) or step.description
    ):
        yield _warning(f"{step.action.value} step has no instruction for the assignee", step)


def _check_variable_names(procedure: Procedure) -> Iterator[AuthoringIssue]:
    names = [step.output_variable_name for step in procedure.steps if step.output_variable_name]
    for name, count in Counter(names).items():
        if count > 1:
            yield _warning(
                f"Output variable '{name}' is declared by {count} steps; the latest value wins"
            )
    for step in procedure.steps:
        name = step.output_variable_name
        if name and (name == TRIGGER_NAMESPACE or POSITIONAL_NAME.match(name)):
            yield _warning(f"Output variable '{name}' shadows a built-in name", step)


def _check_references(procedure: Procedure) -> Iterator[AuthoringIssue]:
    roots = known_variable_roots(procedure)
    for step in procedure.steps:
        paths = find_markers(step.config.to_document())
        if step.routes is not None:
            for condition in step.routes.conditions:
                paths.append(strip_markers(condition.variable))
                paths.extend(find_markers(condition.value))
        for path in paths:
            root = path.split(".")[0].strip()
            if root not in roots:
                yield _warning(f"Reference '{{{{{path}}}}}' does not match any step output", step)


def lint_procedure(procedure: Procedure) -> List[AuthoringIssue]:
    """Return every authoring problem found in ``procedure``."""
    if not procedure.steps:
        return [_error("Procedure has no steps")]

    step_ids = {step.id for step in procedure.steps}
    issues: List[AuthoringIssue] = []
    for step in procedure.steps:
        issues.extend(_check_routes(step, step_ids))
        issues.extend(_check_assignment(step))
        issues.extend(_check_config(step))
    issues.extend(_check_variable_names(procedure))
    issues.extend(_check_references(procedure))
    return issues


def ensure_publishable(procedure: Procedure) -> List[AuthoringIssue]:
    """Raise :class:`ConfigurationError` if ``procedure`` has any error.

    Returns the remaining warnings.
    """
    issues = lint_procedure(procedure)
    errors = [issue for issue in issues if issue.severity == Severity.ERROR]
    if errors:
        for issue in errors:
            logger.error(f"Procedure {procedure.id}: {issue}")
        raise ConfigurationError(
            f"Procedure {procedure.id} has {len(errors)} error(s): "
            + "; ".join(str(issue) for issue in errors)
        )
    return [issue for issue in issues if issue.severity == Severity.WARNING]
