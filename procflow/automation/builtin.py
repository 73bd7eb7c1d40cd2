"""Runner for logic actions evaluated in-process."""

from __future__ import annotations

import logging

from ..engine.actions import evaluate_action, is_logic_action
from ..enums import Action
from ..step_configs import coerce_config
from .base import StepExecutionRequest, StepExecutionResult, StepRunner

logger = logging.getLogger(__name__)


class LogicStepRunner(StepRunner):
    """Evaluate VALIDATE, COMPARE, CALCULATE and GATEWAY steps locally."""

    def supports(self, action: Action) -> bool:
        return is_logic_action(action)

    async def execute(self, request: StepExecutionRequest) -> StepExecutionResult:
        # markers stay in place so values are read from the context only once
        config = coerce_config(request.action, request.raw_config or request.config)
        result = evaluate_action(request.action, config, request.context)
        if result.error:
            logger.info(
                f"{request.action.value} step {request.step_id} of run {request.run_id}: {result.error}"
            )
        return StepExecutionResult(
            outcome=result.outcome, output=result.output, error=result.error
        )
