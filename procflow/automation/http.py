"""Runner that delegates automated steps to an external HTTP executor."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx
from pydantic import ValidationError

from ..enums import Action
from ..errors import StepExecutionError
from .base import StepExecutionRequest, StepExecutionResult, StepRunner

logger = logging.getLogger(__name__)


class HttpStepRunner(StepRunner):
    """POST each request to ``executor_url`` and read back ``{outcome, output}``.

    A transport error, a non-2xx response, an ``error`` field in the body or a
    malformed body all raise :class:`StepExecutionError`.
    """

    def __init__(
        self,
        executor_url: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.executor_url = executor_url
        self._client = httpx.AsyncClient(
            timeout=timeout, headers=headers or {}, transport=transport
        )

    def supports(self, action: Action) -> bool:
        return action.is_automated

    async def aclose(self) -> None:
        await self._client.aclose()

    async def execute(self, request: StepExecutionRequest) -> StepExecutionResult:
        payload = request.model_dump(mode="json", by_alias=True)
        try:
            response = await self._client.post(self.executor_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise StepExecutionError(
                f"Executor returned {exc.response.status_code}: {exc.response.text}",
                step_id=request.step_id,
            ) from exc
        except httpx.HTTPError as exc:
            raise StepExecutionError(
                f"Executor request failed: {exc}", step_id=request.step_id
            ) from exc
        except ValueError as exc:
            raise StepExecutionError(
                f"Executor returned invalid JSON: {exc}", step_id=request.step_id
            ) from exc

        if not isinstance(body, dict):
            raise StepExecutionError("Executor response must be an object", step_id=request.step_id)
        if body.get("error") and "outcome" not in body:
            raise StepExecutionError(str(body["error"]), step_id=request.step_id)
        try:
            result = StepExecutionResult.model_validate(body)
        except ValidationError as exc:
            raise StepExecutionError(
                f"Executor response is malformed: {exc}", step_id=request.step_id
            ) from exc
        logger.debug(f"Executor finished step {request.step_id} with {result.outcome.value}")
        return result
