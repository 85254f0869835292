"""Vendor gateways (fake SDK clients), energy formula, error mapping and routing."""

import math

import groq
import httpx
import openai
import pytest

from arvi.core.errors import (
    AIProviderRejectedError,
    AITemporarilyUnavailableError,
    AIUnclassifiedError,
)
from arvi.features.ai.gateway import InvokeOptions, energy_for_text, estimate_tokens, messages_text
from arvi.features.ai.groq_gateway import GroqGateway
from arvi.features.ai.openai_gateway import OpenAIGateway
from arvi.features.ai.router import AIRouter, provider_for_model
from arvi.tests.mocks import FakeGateway, FakeSDKClient, FakeUsage

MESSAGES = [
    {"role": "system", "content": "s" * 370},
    {"role": "user", "content": "u" * 370},
]
CREATIVE = InvokeOptions(model="llama-3.3-70b-versatile", temperature=0.8, max_output_tokens=900)
STRUCTURE = InvokeOptions(model="gpt-4o-mini", temperature=0.2, max_output_tokens=800, strict_json=True)

_REQUEST = httpx.Request("POST", "https://api.example.test/v1/chat/completions")


def _status_error(sdk, status: int):
    response = httpx.Response(status, request=_REQUEST)
    if status == 429:
        return sdk.RateLimitError("rate limited", response=response, body=None)
    return sdk.APIStatusError(f"status {status}", response=response, body=None)


def test_estimate_tokens_uses_chars_heuristic():
    assert estimate_tokens("") == 0
    assert estimate_tokens("a" * 37) == 10
    assert estimate_tokens(None) == 0


def test_energy_formula_weights_prompt_at_thirty_percent():
    prompt = "p" * 3700   # 1000 tokens
    response = "r" * 1850  # 500 tokens
    # round(500 + 0.3 * 1000) = 800 -> ceil(800 / 100) = 8
    assert energy_for_text(prompt, response) == 8


def test_energy_rounds_up_partial_hundreds():
    assert energy_for_text("", "r" * 37) == 1
    assert energy_for_text("", "") == 0


@pytest.mark.asyncio
async def test_groq_gateway_charges_energy_and_reports_vendor_usage():
    client = FakeSDKClient(content="x" * 3700, usage=FakeUsage(150, 900))
    gateway = GroqGateway(client=client)

    result = await gateway.invoke("user_alice", MESSAGES, CREATIVE)

    expected = math.ceil(round(estimate_tokens("x" * 3700) + 0.30 * estimate_tokens(messages_text(MESSAGES))) / 100)
    assert result.resource_cost == expected
    assert result.resource_cost > 0
    assert result.tokens_used == 1050
    assert result.model == CREATIVE.model
    assert client.chat.completions.kwargs["max_tokens"] == 900
    assert "response_format" not in client.chat.completions.kwargs


@pytest.mark.asyncio
async def test_groq_gateway_estimates_tokens_without_usage():
    gateway = GroqGateway(client=FakeSDKClient(content="y" * 74, usage=None))

    result = await gateway.invoke("user_alice", MESSAGES, CREATIVE)

    assert result.tokens_used == estimate_tokens(messages_text(MESSAGES)) + 20


@pytest.mark.asyncio
async def test_openai_gateway_never_charges_energy():
    client = FakeSDKClient(content='{"title": "t"}', usage=FakeUsage(4000, 4000))
    gateway = OpenAIGateway(client=client)

    result = await gateway.invoke("user_alice", MESSAGES, STRUCTURE)

    assert result.resource_cost == 0
    assert result.tokens_used == 8000
    assert client.chat.completions.kwargs["response_format"] == {"type": "json_object"}
    assert client.chat.completions.kwargs["temperature"] == 0.2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "sdk,gateway_cls,options",
    [(openai, OpenAIGateway, STRUCTURE), (groq, GroqGateway, CREATIVE)],
)
async def test_connection_and_timeout_errors_are_temporary(sdk, gateway_cls, options):
    for error in (sdk.APIConnectionError(request=_REQUEST), sdk.APITimeoutError(request=_REQUEST)):
        gateway = gateway_cls(client=FakeSDKClient(error=error))
        with pytest.raises(AITemporarilyUnavailableError) as excinfo:
            await gateway.invoke("user_alice", MESSAGES, options)
        assert excinfo.value.retryable
        assert excinfo.value.details["provider"] == gateway.provider


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "sdk,gateway_cls,options",
    [(openai, OpenAIGateway, STRUCTURE), (groq, GroqGateway, CREATIVE)],
)
@pytest.mark.parametrize("status", [401, 429, 500])
async def test_status_errors_are_provider_rejections(sdk, gateway_cls, options, status):
    gateway = gateway_cls(client=FakeSDKClient(error=_status_error(sdk, status)))

    with pytest.raises(AIProviderRejectedError) as excinfo:
        await gateway.invoke("user_alice", MESSAGES, options)

    assert excinfo.value.code == "ai_provider_failure"
    assert not excinfo.value.retryable


@pytest.mark.asyncio
async def test_unexpected_sdk_errors_are_unclassified():
    gateway = OpenAIGateway(client=FakeSDKClient(error=KeyError("choices")))

    with pytest.raises(AIUnclassifiedError) as excinfo:
        await gateway.invoke("user_alice", MESSAGES, STRUCTURE)

    assert excinfo.value.code == "ai_unclassified_failure"


@pytest.mark.parametrize(
    "model,provider",
    [
        ("gpt-4o-mini", "openai"),
        ("o1-mini", "openai"),
        ("llama-3.3-70b-versatile", "groq"),
        ("mixtral-8x7b-32768", "groq"),
        ("gemma2-9b-it", "groq"),
    ],
)
def test_provider_for_model(model, provider):
    assert provider_for_model(model) == provider


@pytest.mark.parametrize("model", ["claude-3", "", None])
def test_unknown_model_prefix_is_rejected(model):
    with pytest.raises(AIProviderRejectedError):
        provider_for_model(model)


@pytest.mark.asyncio
async def test_router_delegates_by_model_prefix():
    groq_side = FakeGateway(pass_costs=[4])
    openai_side = FakeGateway()
    router = AIRouter({"groq": groq_side, "openai": openai_side})

    creative = await router.invoke("user_alice", MESSAGES, CREATIVE)
    structure = await router.invoke("user_alice", MESSAGES, STRUCTURE)

    assert creative.resource_cost == 4
    assert structure.resource_cost == 0
    assert len(groq_side.calls) == 1
    assert len(openai_side.calls) == 1


@pytest.mark.asyncio
async def test_router_rejects_unconfigured_provider():
    router = AIRouter({"openai": FakeGateway()})

    with pytest.raises(AIProviderRejectedError) as excinfo:
        await router.invoke("user_alice", MESSAGES, CREATIVE)

    assert excinfo.value.details["provider"] == "groq"
