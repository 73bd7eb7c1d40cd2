"""Async orchestration around the pure run executor.

:class:`RunService` loads documents, applies one executor transition,
persists the result with a single write and then emits notifications. A
failing notifier is logged and never undoes or blocks the transition.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Tuple

from .automation import StepExecutionRequest, StepRunner, get_step_runner
from .config import ProcflowConfig, load_config
from .contracts import Notification, Procedure, Run, Transition
from .engine.executor import RunExecutor, StepView
from .enums import Outcome, RunStatus
from .errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    StaleStepError,
    StepExecutionError,
)
from .notifications import BaseNotifier, get_notifier
from .persistence import RunRepository, get_repository
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)


class RunService:
    """Start runs, accept step submissions and execute automated steps."""

    def __init__(
        self,
        repository: Optional[RunRepository] = None,
        notifier: Optional[BaseNotifier] = None,
        runner: Optional[StepRunner] = None,
        executor: Optional[RunExecutor] = None,
        config: Optional[ProcflowConfig] = None,
    ) -> None:
        self.config = config or load_config()
        self.repository = repository or get_repository(config=self.config)
        self.notifier = notifier or get_notifier(config=self.config)
        self.runner = runner or get_step_runner(self.config)
        self.executor = executor or RunExecutor()
        self.retry_base = 0.05

    # ------------------------------------------------------------------
    # Helpers
    async def _load(self, run_id: str) -> Tuple[Run, Procedure]:
        run = await self.repository.get_run(run_id)
        procedure = await self.repository.get_procedure(run.procedure_id)
        return run, procedure

    async def _notify(self, notification: Notification) -> None:
        try:
            await self.notifier.publish(notification)
        except Exception:
            logger.exception(
                f"Failed to deliver {notification.kind.value} notification "
                f"for run {notification.run_id} to {notification.recipient_id}"
            )

    async def _emit(self, transition: Transition) -> None:
        for warning in transition.warnings:
            logger.warning(f"Run {transition.run.id}: {warning}")
        for notification in transition.notifications:
            await self._notify(notification)

    async def _commit(self, transition: Transition) -> Transition:
        await self.repository.save_run(transition.run)
        await self._emit(transition)
        return transition

    # ------------------------------------------------------------------
    # Operations
    async def start_run(
        self,
        procedure_id: str,
        started_by: str,
        trigger_context: Optional[Mapping[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> Run:
        procedure = await self.repository.get_procedure(procedure_id)
        transition = self.executor.start_run(
            procedure, started_by, trigger_context=trigger_context, run_id=run_id
        )
        await self.repository.create_run(transition.run)
        await self._emit(transition)
        return transition.run

    async def get_current_step(self, run_id: str) -> StepView:
        run, procedure = await self._load(run_id)
        return self.executor.present_step(run, procedure)

    async def submit_step(
        self,
        run_id: str,
        step_id: str,
        output: Any,
        outcome: Outcome = Outcome.SUCCESS,
        actor_id: Optional[str] = None,
        conflict_retries: int = 0,
    ) -> Transition:
        """Complete ``step_id`` of a run with ``output``.

        ``step_id`` must be the run's current step. On a concurrent write the
        submission is re-applied to freshly read state up to
        ``conflict_retries`` times. If the competing write already completed
        the step, the retry fails with :class:`StaleStepError` instead of
        completing it twice.
        """
        attempt = 0
        while True:
            run, procedure = await self._load(run_id)
            current = self.executor.current_step(run, procedure)
            if current is None or current.id != step_id:
                raise StaleStepError(run_id, step_id, current.id if current else None)

            transition = self.executor.complete_step(run, procedure, output, outcome, actor_id)
            try:
                return await self._commit(transition)
            except ConcurrentModificationError:
                if attempt >= conflict_retries:
                    raise
                attempt += 1
                logger.warning(
                    f"Concurrent update on run {run_id}; retrying step {step_id} (attempt {attempt})"
                )
                await schedule_retry(attempt, base=self.retry_base)

    async def execute_automated_step(self, run_id: str) -> Transition:
        """Run the current automated step and feed its result back as a completion."""
        run, procedure = await self._load(run_id)
        view = self.executor.present_step(run, procedure)
        step = view.step
        if step.action.is_human:
            raise InvalidTransitionError(
                f"Step {step.id} of run {run_id} needs a human actor"
            )

        if not view.resolved.is_complete:
            detail = (
                f"Step {step.id} has unresolved reference(s): "
                f"{', '.join(sorted(set(view.resolved.unresolved)))}"
            )
            logger.error(detail)
            return await self._commit(self.executor.flag_run(run, detail))

        context = self.executor.context_for(run, procedure)
        request = StepExecutionRequest(
            run_id=run.id,
            step_id=step.id,
            organization_id=run.organization_id,
            user_id=run.current_assignee_id or run.started_by,
            action=step.action,
            config=view.resolved.config.to_document(),
            raw_config=step.config.to_document(),
            context=context.as_dict(),
        )
        try:
            result = await self.runner.execute(request)
        except StepExecutionError as exc:
            return await self._commit(self.executor.flag_run(run, str(exc)))
        except Exception as exc:
            logger.exception(f"Executor failed on step {step.id} of run {run_id}")
            return await self._commit(
                self.executor.flag_run(run, f"Unexpected executor error: {exc}")
            )

        transition = self.executor.complete_step(run, procedure, result.output, result.outcome)
        return await self._commit(transition)

    async def drive(self, run_id: str, max_steps: Optional[int] = None) -> Run:
        """Execute consecutive automated steps until a human step or a stop state."""
        limit = max_steps if max_steps is not None else self.config.automation.max_auto_steps
        executed = 0
        while True:
            run, procedure = await self._load(run_id)
            step = self.executor.current_step(run, procedure)
            # FLAGGED runs wait for a person; execute_automated_step re-runs them
            if step is None or step.action.is_human or run.status != RunStatus.IN_PROGRESS:
                return run
            if executed >= limit:
                logger.warning(f"Run {run_id} stopped after {executed} automated steps")
                return run
            transition = await self.execute_automated_step(run_id)
            executed += 1
            if transition.held:
                return transition.run

    async def flag_run(self, run_id: str, error_detail: str) -> Run:
        run, _ = await self._load(run_id)
        transition = await self._commit(self.executor.flag_run(run, error_detail))
        return transition.run

    async def claim_run(self, run_id: str, user_id: str) -> Run:
        run, _ = await self._load(run_id)
        transition = await self._commit(self.executor.claim_run(run, user_id))
        return transition.run

    async def reassign_run(
        self, run_id: str, user_id: str, actor_id: Optional[str] = None
    ) -> Run:
        run, procedure = await self._load(run_id)
        transition = await self._commit(
            self.executor.reassign_run(run, procedure, user_id, actor_id)
        )
        return transition.run
