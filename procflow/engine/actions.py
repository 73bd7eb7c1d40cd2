"""In-process evaluation of the logic actions: VALIDATE, COMPARE, CALCULATE, GATEWAY.

These actions only read the run context, so they run without an external
executor. An evaluation problem is reported as a FAILURE result, never raised.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from ..enums import LOGIC_ACTIONS, Action, Outcome
from ..step_configs import (
    BaseStepConfig,
    CalculateConfig,
    CompareConfig,
    ValidateConfig,
    coerce_config,
)
from . import formula
from .coerce import as_date, as_number, as_text, is_blank
from .expressions import MARKER_PATTERN, lookup, resolve
from .validation import EMAIL_PATTERN

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-().]{7,20}$")

_MISSING = object()


class ActionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: Outcome
    output: Any = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str, output: Any = None) -> "ActionResult":
        return cls(outcome=Outcome.FAILURE, output=output, error=error)


def is_logic_action(action: Action) -> bool:
    return action in LOGIC_ACTIONS


def context_value(raw: Any, context: Mapping[str, Any]) -> Any:
    """Value of ``raw`` read from the context, or ``raw`` itself.

    A lone ``{{ path }}`` marker or a bare path yields the native value at that
    path. Text with embedded markers is resolved once and used as a literal.
    """
    if not isinstance(raw, str) or not raw.strip():
        return raw
    match = MARKER_PATTERN.fullmatch(raw.strip())
    if match is None and "{{" in raw:
        return resolve(raw, context)
    found = lookup(context, match.group(1) if match else raw.strip(), _MISSING)
    return raw if found is _MISSING else found


# ----------------------------------------------------------------------
# VALIDATE
def _check_rule(rule: str, value: Any, expected: Any, config: ValidateConfig) -> Optional[str]:
    """Return an error message, or None when the rule holds."""
    if rule == "IS_NOT_EMPTY":
        return "Value is empty" if is_blank(value) else None
    if rule == "IS_VALID_EMAIL":
        return None if EMAIL_PATTERN.match(as_text(value).strip()) else f'"{as_text(value)}" is not a valid email address'
    if rule == "IS_VALID_PHONE":
        text = as_text(value).strip()
        digits = sum(ch.isdigit() for ch in text)
        return None if PHONE_PATTERN.match(text) and digits >= 7 else f'"{text}" is not a valid phone number'
    if rule in ("GREATER_THAN", "LESS_THAN"):
        number, threshold = as_number(value), as_number(expected)
        if number is None or threshold is None:
            return f"Both values must be numbers for {rule} comparison"
        if rule == "GREATER_THAN" and not number > threshold:
            return f"Value {as_text(number)} is not greater than {as_text(threshold)}"
        if rule == "LESS_THAN" and not number < threshold:
            return f"Value {as_text(number)} is not less than {as_text(threshold)}"
        return None
    if rule == "EQUAL":
        number, other = as_number(value), as_number(expected)
        equal = number == other if number is not None and other is not None else as_text(value) == as_text(expected)
        return None if equal else f'Value "{as_text(value)}" does not equal "{as_text(expected)}"'
    if rule == "CONTAINS":
        return None if as_text(expected) in as_text(value) else f'Value "{as_text(value)}" does not contain "{as_text(expected)}"'
    if rule == "REGEX":
        if not config.validation_rule:
            raise ValueError("validationRule (regex pattern) is required for REGEX validation")
        try:
            matched = re.search(config.validation_rule, as_text(value)) is not None
        except re.error as exc:
            raise ValueError(f"Invalid regex pattern: {exc}") from exc
        return None if matched else "Value does not match required pattern"
    raise ValueError(f"Unknown validation rule: {rule}")


def evaluate_validate(config: ValidateConfig, context: Mapping[str, Any]) -> ActionResult:
    if is_blank(config.target):
        return ActionResult.failed("target is required for VALIDATE action")
    config = config.model_copy(
        update={
            "validation_rule": resolve(config.validation_rule, context),
            "error_message": resolve(config.error_message, context),
        }
    )
    rule = (config.rule or ("REGEX" if config.validation_rule else "IS_NOT_EMPTY")).upper()
    value = context_value(config.target, context)
    expected = context_value(config.value, context)
    try:
        error = _check_rule(rule, value, expected, config)
    except ValueError as exc:
        return ActionResult.failed(str(exc))
    if error and config.error_message:
        error = config.error_message
    output = {"valid": error is None, "value": value, "error": error}
    if error:
        return ActionResult.failed(error, output)
    return ActionResult(outcome=Outcome.SUCCESS, output=output)


# ----------------------------------------------------------------------
# COMPARE
def compare_values(value_a: Any, value_b: Any, comparison_type: str = "exact") -> Dict[str, Any]:
    """Compare two values. Returns ``match``, ``diff`` and ``details``."""
    if value_a is None or value_b is None:
        return {"match": False, "diff": "One or both values are missing", "details": None}

    kind = (comparison_type or "exact").lower()
    if kind == "exact":
        match = as_text(value_a) == as_text(value_b)
        diff = "Values match exactly" if match else f'Mismatch: "{as_text(value_a)}" vs "{as_text(value_b)}"'
        return {"match": match, "diff": diff, "details": {"valueA": value_a, "valueB": value_b}}

    if kind == "numeric":
        num_a, num_b = as_number(value_a), as_number(value_b)
        if num_a is None or num_b is None:
            return {"match": False, "diff": "One or both values are not numeric", "details": None}
        difference = abs(num_a - num_b)
        match = num_a == num_b
        diff = "Values match numerically" if match else f"Numeric difference: {as_text(difference)}"
        return {
            "match": match,
            "diff": diff,
            "details": {"valueA": num_a, "valueB": num_b, "difference": difference},
        }

    if kind == "date":
        date_a, date_b = as_date(value_a), as_date(value_b)
        if date_a is None or date_b is None:
            return {"match": False, "diff": "One or both values are not valid dates", "details": None}
        match = date_a == date_b
        diff = "Dates match" if match else f"Date difference: {date_a.date().isoformat()} vs {date_b.date().isoformat()}"
        return {
            "match": match,
            "diff": diff,
            "details": {"valueA": date_a.isoformat(), "valueB": date_b.isoformat()},
        }

    if kind == "fuzzy":
        text_a = as_text(value_a).strip().lower()
        text_b = as_text(value_b).strip().lower()
        match = text_a == text_b or text_b in text_a or text_a in text_b
        diff = "Values match (fuzzy)" if match else f'Fuzzy mismatch: "{as_text(value_a)}" vs "{as_text(value_b)}"'
        return {"match": match, "diff": diff, "details": {"valueA": value_a, "valueB": value_b}}

    return {"match": False, "diff": f"Unknown comparison type: {comparison_type}", "details": None}


def evaluate_compare(config: CompareConfig, context: Mapping[str, Any]) -> ActionResult:
    if is_blank(config.target_a) or is_blank(config.target_b):
        return ActionResult.failed("Both targetA and targetB must be specified for comparison")
    value_a = context_value(config.target_a, context)
    value_b = context_value(config.target_b, context)
    result = compare_values(value_a, value_b, config.comparison_type)
    output = {**result, "valueA": value_a, "valueB": value_b}
    if result["match"]:
        return ActionResult(outcome=Outcome.SUCCESS, output=output)
    return ActionResult.failed(result["diff"], output)


# ----------------------------------------------------------------------
# CALCULATE
def evaluate_calculate(config: CalculateConfig, context: Mapping[str, Any]) -> ActionResult:
    if is_blank(config.formula):
        return ActionResult.failed("Formula is required for CALCULATE action")

    values: Dict[str, float] = {}
    for name, raw in config.variables.items():
        number = as_number(context_value(raw, context))
        if number is None:
            logger.warning(f"CALCULATE variable {name} did not resolve to a number; using 0")
            number = 0.0
        values[name] = number

    text = resolve(config.formula, context)
    try:
        result = formula.evaluate(text, values)
    except formula.FormulaError as exc:
        return ActionResult.failed(f"Calculation failed: {exc}")
    if isinstance(result, float) and result.is_integer():
        result = int(result)
    output = {
        "result": result,
        "formula": formula.substitute(text, {k: as_text(v) for k, v in values.items()}),
        "variables": values,
    }
    return ActionResult(outcome=Outcome.SUCCESS, output=output)


def evaluate_action(
    action: Action, config: BaseStepConfig, context: Mapping[str, Any]
) -> ActionResult:
    """Evaluate a logic action against ``context``."""
    config = coerce_config(action, config)
    if action == Action.VALIDATE:
        return evaluate_validate(config, context)
    if action == Action.COMPARE:
        return evaluate_compare(config, context)
    if action == Action.CALCULATE:
        return evaluate_calculate(config, context)
    if action == Action.GATEWAY:
        return ActionResult(outcome=Outcome.SUCCESS)
    raise ValueError(f"{action.value} is not evaluated in-process")
