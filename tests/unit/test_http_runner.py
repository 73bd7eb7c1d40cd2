import json

import httpx
import pytest

from procflow.automation import CompositeStepRunner, LogicStepRunner, get_step_runner
from procflow.automation.base import StepExecutionRequest
from procflow.automation.http import HttpStepRunner
from procflow.config import AutomationConfig, ProcflowConfig
from procflow.enums import Action, Outcome
from procflow.errors import StepExecutionError


def _request(action=Action.HTTP_REQUEST, **config) -> StepExecutionRequest:
    return StepExecutionRequest(
        run_id="run-1",
        step_id="fetch",
        organization_id="acme",
        user_id="alice",
        action=action,
        config=config,
        context={"vendor": "ACME"},
    )


def _runner(handler) -> HttpStepRunner:
    return HttpStepRunner(
        "http://executor.test/execute",
        headers={"Authorization": "Bearer token"},
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_http_runner_posts_request_and_reads_result():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"outcome": "SUCCESS", "output": {"status": 200}})

    runner = _runner(handler)
    result = await runner.execute(_request(url="https://api.example.com"))
    await runner.aclose()

    assert result.outcome == Outcome.SUCCESS
    assert result.output == {"status": 200}
    assert seen["auth"] == "Bearer token"
    assert seen["body"]["runId"] == "run-1"
    assert seen["body"]["action"] == "HTTP_REQUEST"
    assert seen["body"]["config"] == {"url": "https://api.example.com"}
    assert seen["body"]["context"] == {"vendor": "ACME"}


@pytest.mark.asyncio
async def test_http_runner_business_failure_is_a_result():
    runner = _runner(
        lambda request: httpx.Response(200, json={"outcome": "FAILURE", "error": "no rows"})
    )
    result = await runner.execute(_request())
    assert result.outcome == Outcome.FAILURE
    assert result.error == "no rows"


@pytest.mark.parametrize(
    "response, message",
    [
        (httpx.Response(502, text="bad gateway"), "Executor returned 502"),
        (httpx.Response(200, text="not json"), "invalid JSON"),
        (httpx.Response(200, json=["list"]), "must be an object"),
        (httpx.Response(200, json={"error": "quota exceeded"}), "quota exceeded"),
        (httpx.Response(200, json={"outcome": "MAYBE"}), "malformed"),
    ],
)
@pytest.mark.asyncio
async def test_http_runner_system_failures_raise(response, message):
    runner = _runner(lambda request: response)
    with pytest.raises(StepExecutionError, match=message) as excinfo:
        await runner.execute(_request())
    assert excinfo.value.step_id == "fetch"


@pytest.mark.asyncio
async def test_http_runner_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(StepExecutionError, match="request failed"):
        await _runner(handler).execute(_request())


@pytest.mark.asyncio
async def test_composite_prefers_logic_runner():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"output": "remote"})

    runner = CompositeStepRunner([LogicStepRunner(), _runner(handler)])
    result = await runner.execute(
        _request(Action.CALCULATE, formula="a * 2", variables={"a": 21})
    )
    assert result.outcome == Outcome.SUCCESS
    assert result.output["result"] == 42
    assert calls == []

    remote = await runner.execute(_request(Action.SEND_EMAIL))
    assert remote.output == "remote"
    assert len(calls) == 1
    await runner.aclose()


@pytest.mark.asyncio
async def test_composite_without_executor_raises():
    runner = get_step_runner(ProcflowConfig())
    assert not runner.supports(Action.SEND_EMAIL)
    with pytest.raises(StepExecutionError, match="No executor available"):
        await runner.execute(_request(Action.SEND_EMAIL))

    configured = get_step_runner(
        ProcflowConfig(automation=AutomationConfig(executor_url="http://executor.test"))
    )
    assert configured.supports(Action.SEND_EMAIL)
    await configured.aclose()
