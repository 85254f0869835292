"""Three-pass orchestration: ordering, chaining, cost accumulation, retries, timeouts."""

import json

import pytest

from arvi.core.errors import AIProviderRejectedError, AITemporarilyUnavailableError, AIUnclassifiedError
from arvi.core.metrics import ai_pass_duration_seconds, ai_pass_total
from arvi.features.habit_series.pipeline import (
    ParsedObject,
    PipelineInput,
    PipelineOrchestrator,
    RawText,
    RetryPolicy,
    parse_pass_output,
)
from arvi.tests.mocks import CREATIVE_TEXT, VALID_SERIES, FakeGateway, HangingGateway

REQUEST = PipelineInput(language="en", test_data={"goal": "sleep better"}, assistant_context=None)


async def _no_sleep(_seconds):
    return None


def _orchestrator(gateway, *, attempts=2, timeout=5.0):
    return PipelineOrchestrator(
        gateway,
        pass_timeout_seconds=timeout,
        retry_policy=RetryPolicy(max_attempts=attempts, backoff_seconds=0.0),
        sleep=_no_sleep,
    )


@pytest.mark.asyncio
async def test_runs_three_passes_in_order_and_sums_costs():
    gateway = FakeGateway(pass_costs=[10, 0, 5])

    result = await _orchestrator(gateway).run("user_alice", REQUEST)

    assert [r.function_type for r in result.pass_results] == [
        "habit_series_creative",
        "habit_series_structure",
        "json_conversion",
    ]
    assert [c.temperature for c in gateway.calls] == [0.8, 0.2, 0.0]
    assert result.total_cost == 15
    assert ai_pass_duration_seconds.count({"function_type": "json_conversion"}) == 1


@pytest.mark.asyncio
async def test_each_pass_is_fed_by_previous_raw_output():
    gateway = FakeGateway()

    await _orchestrator(gateway).run("user_alice", REQUEST)

    creative_msgs, structure_msgs, schema_msgs = gateway.messages
    assert "goal: sleep better" in creative_msgs[-1]["content"]
    assert structure_msgs[-1]["content"] == CREATIVE_TEXT
    assert json.dumps(VALID_SERIES) in schema_msgs[-1]["content"]


@pytest.mark.asyncio
async def test_pass_outputs_are_tagged():
    result = await _orchestrator(FakeGateway()).run("user_alice", REQUEST)

    creative, structure, schema = result.pass_results
    assert isinstance(creative.output, RawText)
    assert isinstance(structure.output, ParsedObject)
    assert isinstance(schema.output, ParsedObject)
    assert result.final_output == schema.output
    assert schema.output.data["title"] == VALID_SERIES["title"]


def test_structured_pass_with_non_object_json_stays_raw():
    assert isinstance(parse_pass_output("[1, 2]", expect_object=True), RawText)
    assert isinstance(parse_pass_output("not json", expect_object=True), RawText)
    assert isinstance(parse_pass_output('{"a": 1}', expect_object=False), RawText)


@pytest.mark.asyncio
async def test_transient_failure_is_retried_and_failed_attempt_costs_nothing():
    gateway = FakeGateway(
        pass_costs=[7, 0, 3],
        errors={0: AITemporarilyUnavailableError("network blip")},
    )

    result = await _orchestrator(gateway, attempts=2).run("user_alice", REQUEST)

    assert len(gateway.calls) == 4
    assert result.pass_results[0].attempts == 2
    assert result.total_cost == 10
    assert ai_pass_total.value({"function_type": "habit_series_creative", "outcome": "retry"}) == 1


@pytest.mark.asyncio
async def test_transient_failure_exhausts_bounded_attempts():
    gateway = FakeGateway(errors={i: AITemporarilyUnavailableError("down") for i in range(10)})

    with pytest.raises(AITemporarilyUnavailableError):
        await _orchestrator(gateway, attempts=3).run("user_alice", REQUEST)

    assert len(gateway.calls) == 3


@pytest.mark.asyncio
async def test_provider_rejection_aborts_without_retry():
    gateway = FakeGateway(errors={1: AIProviderRejectedError("bad key", provider="openai")})

    with pytest.raises(AIProviderRejectedError):
        await _orchestrator(gateway, attempts=3).run("user_alice", REQUEST)

    # creative ok, structure rejected, schema never called
    assert len(gateway.calls) == 2


@pytest.mark.asyncio
async def test_unexpected_gateway_exception_is_wrapped():
    gateway = FakeGateway(errors={0: RuntimeError("boom")})

    with pytest.raises(AIUnclassifiedError):
        await _orchestrator(gateway).run("user_alice", REQUEST)


@pytest.mark.asyncio
async def test_pass_timeout_surfaces_as_temporarily_unavailable():
    gateway = HangingGateway()

    with pytest.raises(AITemporarilyUnavailableError):
        await _orchestrator(gateway, attempts=2, timeout=0.01).run("user_alice", REQUEST)

    assert gateway.calls == 2
