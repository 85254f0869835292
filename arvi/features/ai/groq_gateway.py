"""Groq gateway. Powers the creative pass and is the only vendor that charges energy."""
import logging
from typing import List, Optional

import groq

from arvi.features.ai.gateway import (
    AIResult,
    InvokeOptions,
    Message,
    classify_sdk_error,
    energy_for_text,
    estimate_tokens,
    messages_text,
)

logger = logging.getLogger("arvi")


class GroqGateway:
    provider = "groq"

    def __init__(self, client: Optional[groq.AsyncGroq] = None, *, api_key: Optional[str] = None):
        self.client = client or groq.AsyncGroq(api_key=api_key)

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
            error = classify_sdk_error(exc, groq, provider=self.provider, model=options.model)
            logger.warning(
                "ai.groq.failed",
                extra={"user_id": user_id, "model": options.model, "error_code": error.code},
            )
            raise error from exc

        content = completion.choices[0].message.content or ""
        prompt_text = messages_text(messages)

        usage = getattr(completion, "usage", None)
        if usage is not None and getattr(usage, "total_tokens", None) is not None:
            tokens_used = usage.total_tokens
        else:
            tokens_used = estimate_tokens(prompt_text) + estimate_tokens(content)

        # Energy always uses the text heuristic so cost does not drift with vendor tokenizers.
        energy = energy_for_text(prompt_text, content)
        logger.info(
            "ai.groq.complete",
            extra={"user_id": user_id, "model": options.model, "tokens_used": tokens_used, "energy": energy},
        )
        return AIResult(content=content, tokens_used=tokens_used, resource_cost=energy, model=options.model)
