"""Exception hierarchy raised by the procflow engine and its collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .contracts import ValidationResult


class ProcflowError(Exception):
    """Base class for all procflow errors."""


class NotFoundError(ProcflowError, LookupError):
    """A requested document does not exist."""


class ProcedureNotFoundError(NotFoundError):
    def __init__(self, procedure_id: str) -> None:
        super().__init__(f"Procedure not found: {procedure_id}")
        self.procedure_id = procedure_id


class RunNotFoundError(NotFoundError):
    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id


class RepositoryReadError(ProcflowError):
    """Transient failure while reading from storage. Safe to retry."""


class ConcurrentModificationError(ProcflowError):
    """The run was modified by another writer since it was read."""

    def __init__(self, run_id: str, expected_version: int, actual_version: Optional[int]) -> None:
        super().__init__(
            f"Run {run_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.run_id = run_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ConfigurationError(ProcflowError):
    """A procedure definition is inconsistent or a reference cannot be resolved."""


class StepValidationError(ProcflowError, ValueError):
    """Submitted output failed the current step's input constraints."""

    def __init__(self, result: "ValidationResult", step_id: Optional[str] = None) -> None:
        super().__init__(result.error or "Invalid step output")
        self.result = result
        self.step_id = step_id


class InvalidTransitionError(ProcflowError):
    """The requested transition is not allowed in the run's current state."""


class StaleStepError(InvalidTransitionError):
    """A submission targeted a step that is no longer current."""

    def __init__(self, run_id: str, expected_step_id: str, current_step_id: Optional[str]) -> None:
        super().__init__(
            f"Run {run_id} is not at step {expected_step_id} (current: {current_step_id})"
        )
        self.run_id = run_id
        self.expected_step_id = expected_step_id
        self.current_step_id = current_step_id


class StepExecutionError(ProcflowError):
    """An automated step's executor failed at the system level."""

    def __init__(self, message: str, step_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.step_id = step_id
