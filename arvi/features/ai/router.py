"""Route a call to the gateway that serves the requested model."""
import logging
from typing import Dict, List, Tuple

from arvi.core.errors import AIProviderRejectedError
from arvi.features.ai.gateway import AIGateway, AIResult, InvokeOptions, Message

logger = logging.getLogger("arvi")

# Model-name prefix -> provider name
PROVIDER_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("gpt-", "openai"),
    ("o1-", "openai"),
    ("llama-", "groq"),
    ("mixtral-", "groq"),
    ("gemma", "groq"),
)


def provider_for_model(model: str) -> str:
    if not model or not isinstance(model, str):
        raise AIProviderRejectedError("Model name is required", model=model)
    for prefix, provider in PROVIDER_PREFIXES:
        if model.startswith(prefix):
            return provider
    raise AIProviderRejectedError(f'No gateway configured for model "{model}"', model=model)


class AIRouter:
    """AIGateway that delegates by model prefix to per-vendor gateways."""

    provider = "router"

    def __init__(self, gateways: Dict[str, AIGateway]):
        self.gateways = dict(gateways)

    def gateway_for(self, model: str) -> AIGateway:
        provider = provider_for_model(model)
        gateway = self.gateways.get(provider)
        if gateway is None:
            raise AIProviderRejectedError(
                f'Provider "{provider}" is not configured for model "{model}"',
                provider=provider,
                model=model,
            )
        return gateway

    async def invoke(self, user_id: str, messages: List[Message], options: InvokeOptions) -> AIResult:
        gateway = self.gateway_for(options.model)
        logger.debug("ai.route", extra={"model": options.model, "provider": gateway.provider})
        return await gateway.invoke(user_id, messages, options)
