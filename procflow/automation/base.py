"""Interface between the run service and automated-step executors."""

from __future__ import annotations

import abc
from typing import Any, Dict, Optional

from pydantic import Field

from ..base import CamelModel
from ..enums import Action, Outcome


class StepExecutionRequest(CamelModel):
    """What an executor receives for one automated step."""

    run_id: str
    step_id: str
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    action: Action
    config: Dict[str, Any] = Field(default_factory=dict)
    raw_config: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)


class StepExecutionResult(CamelModel):
    outcome: Outcome = Outcome.SUCCESS
    output: Any = None
    error: Optional[str] = None


class StepRunner(metaclass=abc.ABCMeta):
    """Executes automated steps.

    A business result (including a failed check) is returned as a
    :class:`StepExecutionResult`. A system failure raises
    :class:`~procflow.errors.StepExecutionError`.
    """

    async def aclose(self) -> None:
        """Release held resources (no-op by default)."""
        pass

    @abc.abstractmethod
    def supports(self, action: Action) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def execute(self, request: StepExecutionRequest) -> StepExecutionResult:
        raise NotImplementedError
