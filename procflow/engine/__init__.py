"""Pure procedure execution engine: context, resolution, validation, routing."""

from __future__ import annotations

from .actions import ActionResult, evaluate_action, is_logic_action
from .assignment import ResolvedAssignment, resolve_assignment
from .context import RunContext, VariableSource, build_context
from .executor import RunExecutor, StepView
from .expressions import lookup, resolve, resolve_value
from .resolver import ResolvedConfig, build_run_context, resolve_config
from .routing import RouteDecision, decide_route, route
from .validation import validate, validate_step

__all__ = [
    "ActionResult",
    "ResolvedAssignment",
    "ResolvedConfig",
    "RouteDecision",
    "RunContext",
    "RunExecutor",
    "StepView",
    "VariableSource",
    "build_context",
    "build_run_context",
    "decide_route",
    "evaluate_action",
    "is_logic_action",
    "lookup",
    "resolve",
    "resolve_assignment",
    "resolve_config",
    "resolve_value",
    "route",
    "validate",
    "validate_step",
]
