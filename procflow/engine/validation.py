"""Check submitted output against a human step's input constraints."""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from ..contracts import Step, ValidationResult
from ..enums import DECISION_ACTIONS, Action, InputType
from ..step_configs import ApprovalConfig, BaseStepConfig, InputConfig
from .coerce import as_date, as_number, as_text, is_blank

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
FILE_REFERENCE_KEYS = ("url", "fileUrl", "path", "name", "fileName")
EVIDENCE_KEYS = ("evidence", "evidenceUrl", "proof", "attachments")


def _format_number(number: float) -> str:
    return str(int(number)) if number.is_integer() else str(number)


def _as_input_config(config: BaseStepConfig) -> InputConfig:
    if isinstance(config, InputConfig):
        return config
    return InputConfig.model_validate(config.to_document())


def _file_reference(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, Mapping):
        for key in FILE_REFERENCE_KEYS:
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
    return None


def _file_name(value: Any, reference: str) -> str:
    if isinstance(value, Mapping):
        for key in ("name", "fileName"):
            if isinstance(value.get(key), str):
                return value[key]
    return urlparse(reference).path or reference


def _check_file(value: Any, config: InputConfig) -> Optional[str]:
    reference = _file_reference(value)
    if reference is None:
        return f"{config.label} requires an uploaded file"
    if config.allowed_extensions:
        suffix = PurePosixPath(_file_name(value, reference)).suffix.lower().lstrip(".")
        if suffix not in config.allowed_extensions:
            allowed = ", ".join(f".{ext}" for ext in config.allowed_extensions)
            return f"{config.label} must be a file of type: {allowed}"
    return None


def _check_number(value: Any, config: InputConfig) -> Optional[str]:
    number = as_number(value)
    if number is None:
        return f"{config.label} must be a number"
    minimum = as_number(config.minimum)
    if minimum is not None and number < minimum:
        return f"{config.label} must be at least {_format_number(minimum)}"
    maximum = as_number(config.maximum)
    if maximum is not None and number > maximum:
        return f"{config.label} must be at most {_format_number(maximum)}"
    return None


def _check_choice(value: Any, config: InputConfig) -> Optional[str]:
    if not config.options:
        return None
    chosen = value if isinstance(value, (list, tuple)) else [value]
    for item in chosen:
        if not any(option.matches(item) for option in config.options):
            allowed = ", ".join(as_text(v) for v in config.option_values())
            return f"{config.label} must be one of: {allowed}"
    return None


def validate(output: Any, config: BaseStepConfig) -> ValidationResult:
    """Validate ``output`` against the declared input constraints."""
    config = _as_input_config(config)
    field = config.output_variable_name or config.field_label
    input_type = config.input_type

    missing = is_blank(output) or (
        input_type == InputType.CHECKBOX and not config.options and output is False
    )
    if missing:
        if config.required:
            message = config.validation_message or f"{config.label} is required"
            return ValidationResult.fail(message, field)
        return ValidationResult.ok()

    error: Optional[str] = None
    if input_type == InputType.NUMBER:
        error = _check_number(output, config)
    elif input_type == InputType.EMAIL:
        if not EMAIL_PATTERN.match(as_text(output).strip()):
            error = f"{config.label} must be a valid email address"
    elif input_type == InputType.DATE:
        if as_date(output) is None:
            error = f"{config.label} must be a valid date"
    elif input_type == InputType.FILE:
        error = _check_file(output, config)
    elif input_type in (InputType.SELECT, InputType.CHECKBOX):
        error = _check_choice(output, config)
    if error:
        return ValidationResult.fail(error, field)

    if config.validation_regex:
        try:
            matched = re.search(config.validation_regex, as_text(output)) is not None
        except re.error as exc:
            logger.error(f"Invalid validation pattern {config.validation_regex!r}: {exc}")
            return ValidationResult.fail(f"{config.label} has an invalid validation pattern", field)
        if not matched:
            message = config.validation_message or f"{config.label} does not match the required format"
            return ValidationResult.fail(message, field)

    return ValidationResult.ok()


def _decision_of(output: Any) -> Any:
    if isinstance(output, Mapping):
        return output.get("decision", output.get("action"))
    return output


def _has_evidence(output: Any) -> bool:
    if not isinstance(output, Mapping):
        return False
    return any(not is_blank(output.get(key)) for key in EVIDENCE_KEYS)


def validate_step(
    step: Step, output: Any, config: Optional[BaseStepConfig] = None
) -> ValidationResult:
    """Validate a submission for ``step``.

    Automated steps are never validated here: their output is the result of
    their own evaluation. ``config`` is normally the resolved config.
    """
    if not step.action.is_human:
        return ValidationResult.ok()
    config = config or step.config

    if step.action in DECISION_ACTIONS and isinstance(config, ApprovalConfig) and config.actions:
        decision = _decision_of(output)
        if is_blank(decision):
            return ValidationResult.fail("A decision is required", "decision")
        allowed = {action.lower() for action in config.actions}
        if as_text(decision).strip().lower() not in allowed:
            return ValidationResult.fail(
                f"Decision must be one of: {', '.join(config.actions)}", "decision"
            )

    if step.requires_evidence and not _has_evidence(output):
        return ValidationResult.fail("Evidence is required to complete this step", "evidence")

    if step.action == Action.INPUT or getattr(config, "input_type", None) is not None:
        return validate(output, config)
    return ValidationResult.ok()
