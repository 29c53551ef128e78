"""Tests for the bounded conversation driver"""
import asyncio

import pytest

from app.agents.conversation import ConversationDriver, TurnDecision, UnitStatus
from app.agents.discovery_agent import discovery_adapter
from app.agents.schemas import DiscoveryCompletedResponse
from app.core.cancellation import AnalysisCancelled
from app.core.llm_client import LLMError
from app.agents.prompts import DISCOVERY_SYSTEM_PROMPT
from tests.factories import ScriptedLLM, discovered, pick


def _driver(llm, archive=None, **kwargs):
    options = {"max_depth": 5, "max_retries": 3}
    options.update(kwargs)
    return ConversationDriver(llm, "test-model", DISCOVERY_SYSTEM_PROMPT, discovery_adapter, archive=archive, **options)


def _finish_on_completed(response, conversation):
    if isinstance(response, DiscoveryCompletedResponse):
        return TurnDecision.finish(response.result)
    return TurnDecision.continue_with(f"here is {response.file_to_read_next}")


@pytest.mark.asyncio
async def test_parse_failures_consume_retries_not_depth():
    """Two unparseable replies followed by a valid one succeed with two retries"""
    llm = ScriptedLLM(discovery=["no json here", '{"status": "bogus"}', discovered()])
    archive = []

    outcome = await _driver(llm, archive).run("unit", "start", _finish_on_completed)

    assert outcome.status == UnitStatus.COMPLETED
    assert outcome.result.entry_point == "POST /api/login"
    assert outcome.transcript.retries == 2
    assert outcome.transcript.depth == 1
    assert len(llm.calls) == 3
    # bad assistant turns are dropped from the history
    assert [m["role"] for m in outcome.transcript.messages] == ["user", "assistant"]
    assert archive == [outcome.transcript]


@pytest.mark.asyncio
async def test_retry_request_carries_corrective_note():
    llm = ScriptedLLM(discovery=["garbage", discovered()])

    await _driver(llm).run("unit", "start", _finish_on_completed)

    first, second = (c["messages"] for c in llm.calls)
    assert first == [{"role": "user", "content": "start"}]
    assert second[-1]["content"].startswith("start\n\n⚠️ Your previous response could not be used")
    assert "No JSON object found" in second[-1]["content"]


@pytest.mark.asyncio
async def test_fails_when_retry_budget_is_exhausted():
    llm = ScriptedLLM(discovery=["nope"] * 10)

    outcome = await _driver(llm, max_retries=2).run("unit", "start", _finish_on_completed)

    assert outcome.status == UnitStatus.FAILED
    assert not outcome.success
    assert outcome.transport_only is False
    assert outcome.transcript.retries == 3
    assert len(llm.calls) == 3
    assert len(outcome.transcript.failures) == 3
    assert outcome.transcript.failures[0]["reply"] == "nope"


@pytest.mark.asyncio
async def test_transport_errors_only():
    llm = ScriptedLLM(discovery=[LLMError("connection refused")] * 5)

    outcome = await _driver(llm, max_retries=1).run("unit", "start", _finish_on_completed)

    assert outcome.status == UnitStatus.FAILED
    assert outcome.transport_only is True
    assert len(llm.calls) == 2
    assert outcome.transcript.failures[0] == {"error": "connection refused", "reply": None}


@pytest.mark.asyncio
async def test_transport_error_then_success():
    llm = ScriptedLLM(discovery=[LLMError("timeout"), discovered()])

    outcome = await _driver(llm).run("unit", "start", _finish_on_completed)

    assert outcome.success
    assert outcome.transcript.retries == 1


@pytest.mark.asyncio
async def test_depth_exhaustion():
    llm = ScriptedLLM(discovery=[pick(f"f{i}.ts") for i in range(10)])

    outcome = await _driver(llm, max_depth=3).run("unit", "start", _finish_on_completed)

    assert outcome.status == UnitStatus.EXHAUSTED
    assert outcome.result is None
    assert len(llm.calls) == 3
    assert outcome.transcript.depth == 3
    assert outcome.transcript.outcome == "exhausted"


@pytest.mark.asyncio
async def test_handler_retry_counts_as_failure():
    llm = ScriptedLLM(discovery=[pick("a.ts"), discovered()])
    seen = []

    def handler(response, conversation):
        seen.append(type(response).__name__)
        if isinstance(response, DiscoveryCompletedResponse):
            return TurnDecision.finish(response.result)
        return TurnDecision.retry("picking is not allowed here")

    outcome = await _driver(llm).run("unit", "start", handler)

    assert outcome.success
    assert seen == ["PickEndpointResponse", "DiscoveryCompletedResponse"]
    assert outcome.transcript.failures[0]["error"] == "picking is not allowed here"


@pytest.mark.asyncio
async def test_continue_appends_joined_user_turn():
    llm = ScriptedLLM(discovery=[pick("a.ts"), discovered()])

    def handler(response, conversation):
        if isinstance(response, DiscoveryCompletedResponse):
            return TurnDecision.finish(response.result)
        return TurnDecision.continue_with("part one", "", "part two")

    outcome = await _driver(llm).run("unit", "start", handler)

    assert outcome.transcript.messages[2] == {"role": "user", "content": "part one\n\npart two"}
    assert outcome.transcript.depth == 2


@pytest.mark.asyncio
async def test_cancelled_before_first_turn():
    llm = ScriptedLLM(discovery=[discovered()])
    abort = asyncio.Event()
    abort.set()
    archive = []

    with pytest.raises(AnalysisCancelled):
        await _driver(llm, archive, abort_event=abort).run("unit", "start", _finish_on_completed)

    assert llm.calls == []
    assert archive[0].outcome == "cancelled"


@pytest.mark.asyncio
async def test_cancelled_mid_conversation_is_not_retried():
    abort = asyncio.Event()
    llm = ScriptedLLM(discovery=[pick("a.ts"), pick("b.ts"), discovered()])

    def handler(response, conversation):
        abort.set()
        return TurnDecision.continue_with("more")

    with pytest.raises(AnalysisCancelled):
        await _driver(llm, abort_event=abort).run("unit", "start", handler)

    assert len(llm.calls) == 1


def test_rejects_invalid_budgets():
    with pytest.raises(ValueError):
        _driver(ScriptedLLM(), max_depth=0)
    with pytest.raises(ValueError):
        _driver(ScriptedLLM(), max_retries=-1)
