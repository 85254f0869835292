"""
AI gateway protocol.

One implementation per vendor. A gateway turns a chat request into a
normalized AIResult and maps vendor failures onto the AI error taxonomy.
It never persists anything and never touches the energy ledger.
"""
import math
from dataclasses import dataclass
from typing import Dict, List, Protocol

from arvi.core.errors import (
    AIGatewayError,
    AIProviderRejectedError,
    AITemporarilyUnavailableError,
    AIUnclassifiedError,
)

Message = Dict[str, str]

# Heuristic used when the vendor does not report usage.
CHARS_PER_TOKEN = 3.7
PROMPT_TOKEN_WEIGHT = 0.30
TOKENS_PER_ENERGY = 100


@dataclass(frozen=True)
class InvokeOptions:
    model: str
    temperature: float
    max_output_tokens: int
    strict_json: bool = False


@dataclass(frozen=True)
class AIResult:
    content: str
    tokens_used: int
    resource_cost: int
    model: str

    def __post_init__(self):
        if self.resource_cost < 0:
            raise ValueError("resource_cost must be >= 0")


class AIGateway(Protocol):
    """
    Protocol for AI vendors.

    Raises:
        AITemporarilyUnavailableError: network errors and timeouts (retryable)
        AIProviderRejectedError: auth, quota, 4xx/5xx responses
        AIUnclassifiedError: anything else
    """

    provider: str

    async def invoke(self, user_id: str, messages: List[Message], options: InvokeOptions) -> AIResult:
        ...


def estimate_tokens(text: str) -> int:
    return round(len(text or "") / CHARS_PER_TOKEN)


def messages_text(messages: List[Message]) -> str:
    return "\n\n".join(m.get("content", "") for m in messages)


def energy_for_text(prompt_text: str, response_text: str) -> int:
    """Energy charged for one call: ceil(weighted tokens / 100)."""
    weighted = round(estimate_tokens(response_text) + PROMPT_TOKEN_WEIGHT * estimate_tokens(prompt_text))
    return math.ceil(weighted / TOKENS_PER_ENERGY)


def classify_sdk_error(exc: Exception, sdk, *, provider: str, model: str) -> AIGatewayError:
    """Map an openai/groq SDK exception onto the gateway taxonomy.

    Both SDKs share the same exception hierarchy shape, so the module itself
    is passed in.
    """
    if isinstance(exc, AIGatewayError):
        return exc
    if isinstance(exc, (sdk.APIConnectionError, sdk.APITimeoutError)):
        return AITemporarilyUnavailableError(f"{provider} unreachable: {exc}", provider=provider, model=model)
    if isinstance(exc, sdk.RateLimitError):
        return AIProviderRejectedError(f"{provider} quota exceeded: {exc}", provider=provider, model=model)
    if isinstance(exc, sdk.APIStatusError):
        return AIProviderRejectedError(
            f"{provider} rejected request with status {exc.status_code}",
            provider=provider,
            model=model,
        )
    return AIUnclassifiedError(f"{provider} call failed: {type(exc).__name__}: {exc}", provider=provider, model=model)
