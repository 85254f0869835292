"""OpenAI gateway. Used for structuring passes, which never cost energy."""
import logging
from typing import List, Optional

import openai

from arvi.features.ai.gateway import AIResult, InvokeOptions, Message, classify_sdk_error

logger = logging.getLogger("arvi")


class OpenAIGateway:
    provider = "openai"

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None, *, api_key: Optional[str] = None):
        self.client = client or openai.AsyncOpenAI(api_key=api_key)

    async def invoke(self, user_id: str, messages: List[Message], options: InvokeOptions) -> AIResult:
        kwargs = {
            "model": options.model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_output_tokens,
        }
        if options.strict_json:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            completion = await self.client.chat.completions.create(**kwargs)
        except Exception as exc:
            error = classify_sdk_error(exc, openai, provider=self.provider, model=options.model)
            logger.warning(
                "ai.openai.failed",
                extra={"user_id": user_id, "model": options.model, "error_code": error.code},
            )
            raise error from exc

        content = completion.choices[0].message.content or ""
        usage = getattr(completion, "usage", None)
        tokens_used = getattr(usage, "total_tokens", None) or 0

        logger.info(
            "ai.openai.complete",
            extra={"user_id": user_id, "model": options.model, "tokens_used": tokens_used},
        )
        return AIResult(content=content, tokens_used=tokens_used, resource_cost=0, model=options.model)
