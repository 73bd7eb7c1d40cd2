"""Branching: decide which step follows a completed step.

Decision order, first match wins:

1. SUCCESS and ``on_success_step_id``
2. FAILURE or FLAGGED and ``on_failure_step_id``
3. the first condition, in declared order, whose variable is defined and
   whose comparison holds
4. ``default_next_step_id``
5. the next step by position, or ``COMPLETED`` after the last step

A target naming a step that does not exist is a data-integrity problem. It is
logged and the router advances sequentially instead of dead-ending the run.
The FLAGGED hold (no failure route) is applied by the executor, not here.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from ..constants import COMPLETED
from ..contracts import Condition, Procedure, Step
from ..enums import ConditionOperator, Outcome
from .coerce import as_number, as_text, is_blank
from .expressions import MARKER_PATTERN, lookup, resolve_value, strip_markers

logger = logging.getLogger(__name__)

_MISSING = object()


class RouteDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: str
    rule: str
    warnings: List[str] = []

    @property
    def completes(self) -> bool:
        return self.target == COMPLETED


def _steps_of(steps: Union[Procedure, Sequence[Step]]) -> Sequence[Step]:
    return steps.steps if isinstance(steps, Procedure) else steps


def next_in_sequence(step: Step, steps: Sequence[Step]) -> str:
    """Step id following ``step`` by position, or ``COMPLETED``."""
    for index, candidate in enumerate(steps):
        if candidate.id == step.id:
            return steps[index + 1].id if index + 1 < len(steps) else COMPLETED
    logger.error(f"Step {step.id} is not part of the procedure; completing run")
    return COMPLETED


def _operand(value: Any, context: Mapping[str, Any]) -> Any:
    # a value that is exactly one marker keeps the referenced value's type
    if isinstance(value, str):
        match = MARKER_PATTERN.fullmatch(value.strip())
        if match:
            found = lookup(context, match.group(1), _MISSING)
            return value if found is _MISSING else found
    return resolve_value(value, context)


def _contains(container: Any, item: Any) -> bool:
    if isinstance(container, Mapping):
        return as_text(item) in {as_text(key) for key in container}
    if isinstance(container, (list, tuple, set, frozenset)):
        return any(as_text(element) == as_text(item) for element in container)
    return as_text(item) in as_text(container)


def compare(left: Any, operator: ConditionOperator, right: Any) -> bool:
    """Evaluate ``left operator right``.

    Numeric-looking operands on both sides compare as numbers, everything
    else compares by string form.
    """
    if operator == ConditionOperator.IS_EMPTY:
        return is_blank(left)
    if operator == ConditionOperator.IS_NOT_EMPTY:
        return not is_blank(left)
    if operator == ConditionOperator.CONTAINS:
        return _contains(left, right)
    if operator == ConditionOperator.NOT_CONTAINS:
        return not _contains(left, right)
    if operator == ConditionOperator.STARTS_WITH:
        return as_text(left).startswith(as_text(right))
    if operator == ConditionOperator.ENDS_WITH:
        return as_text(left).endswith(as_text(right))

    left_num, right_num = as_number(left), as_number(right)
    pair: Tuple[Any, Any]
    if left_num is not None and right_num is not None:
        pair = (left_num, right_num)
    else:
        pair = (as_text(left), as_text(right))
    a, b = pair
    if operator == ConditionOperator.EQ:
        return a == b
    if operator == ConditionOperator.NEQ:
        return a != b
    if operator == ConditionOperator.GT:
        return a > b
    if operator == ConditionOperator.LT:
        return a < b
    if operator == ConditionOperator.GTE:
        return a >= b
    if operator == ConditionOperator.LTE:
        return a <= b
    raise ValueError(f"Unsupported operator: {operator}")


def condition_matches(condition: Condition, context: Mapping[str, Any]) -> bool:
    value = lookup(context, strip_markers(condition.variable), _MISSING)
    if value is _MISSING or value is None:
        return False
    return compare(value, condition.operator, _operand(condition.value, context))


def _declared_target(
    step: Step, outcome: Outcome, context: Mapping[str, Any]
) -> Optional[Tuple[str, str]]:
    routes = step.routes
    if routes is None:
        return None
    if outcome == Outcome.SUCCESS and routes.on_success_step_id:
        return routes.on_success_step_id, "on_success"
    if outcome in (Outcome.FAILURE, Outcome.FLAGGED) and routes.on_failure_step_id:
        return routes.on_failure_step_id, "on_failure"
    for index, condition in enumerate(routes.conditions):
        if condition_matches(condition, context):
            return condition.target_step_id, f"condition[{index}]"
    if routes.default_next_step_id:
        return routes.default_next_step_id, "default"
    return None


def decide_route(
    step: Step,
    outcome: Outcome,
    context: Mapping[str, Any],
    steps: Union[Procedure, Sequence[Step]],
) -> RouteDecision:
    """Compute the next target and report which rule produced it."""
    steps = _steps_of(steps)
    warnings: List[str] = []

    if step.action.is_routing_only and not step.has_routes:
        message = f"{step.action.value} step {step.id} has no routes; advancing sequentially"
        logger.error(message)
        warnings.append(message)

    declared = _declared_target(step, outcome, context)
    if declared is not None:
        target, rule = declared
        if target == COMPLETED or any(s.id == target for s in steps):
            logger.debug(f"Step {step.id} ({outcome.value}) routed to {target} via {rule}")
            return RouteDecision(target=target, rule=rule, warnings=warnings)
        message = f"Step {step.id} routes to unknown step {target!r} via {rule}; advancing sequentially"
        logger.error(message)
        warnings.append(message)

    return RouteDecision(
        target=next_in_sequence(step, steps), rule="sequential", warnings=warnings
    )


def route(
    step: Step,
    outcome: Outcome,
    context: Mapping[str, Any],
    steps: Union[Procedure, Sequence[Step]],
) -> str:
    """Next step id for ``step`` completing with ``outcome``, or ``COMPLETED``."""
    return decide_route(step, outcome, context, steps).target
