"""Automated-step runners and factory."""

from __future__ import annotations

from typing import Optional, Sequence

from ..config import ProcflowConfig, load_config
from ..enums import Action
from ..errors import StepExecutionError
from .base import StepExecutionRequest, StepExecutionResult, StepRunner
from .builtin import LogicStepRunner


class CompositeStepRunner(StepRunner):
    """Dispatch to the first runner that supports the action."""

    def __init__(self, runners: Sequence[StepRunner]) -> None:
        self.runners = list(runners)

    def supports(self, action: Action) -> bool:
        return any(runner.supports(action) for runner in self.runners)

    async def execute(self, request: StepExecutionRequest) -> StepExecutionResult:
        for runner in self.runners:
            if runner.supports(request.action):
                return await runner.execute(request)
        raise StepExecutionError(
            f"No executor available for {request.action.value} steps", step_id=request.step_id
        )

    async def aclose(self) -> None:
        for runner in self.runners:
            await runner.aclose()


def get_step_runner(config: Optional[ProcflowConfig] = None) -> StepRunner:
    """Logic runner, plus the HTTP executor when one is configured."""

    config = config or load_config()
    runners: list[StepRunner] = [LogicStepRunner()]
    if config.automation.executor_url:
        from .http import HttpStepRunner

        runners.append(
            HttpStepRunner(
                config.automation.executor_url, timeout=config.automation.timeout
            )
        )
    return CompositeStepRunner(runners)


__all__ = [
    "CompositeStepRunner",
    "LogicStepRunner",
    "StepExecutionRequest",
    "StepExecutionResult",
    "StepRunner",
    "get_step_runner",
]
