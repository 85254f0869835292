import asyncio
import json
from typing import Dict, List, Optional

from arvi.features.ai.gateway import AIResult, InvokeOptions

VALID_SERIES = {
    "title": "Morning Momentum",
    "description": "A progressive series that builds a calm, focused start to the day.",
    "actions": [
        {"name": "Wake at a fixed time", "description": "Set one alarm and get up on the first ring.", "difficulty": "low"},
        {"name": "Ten minute walk", "description": "Walk outside before checking the phone.", "difficulty": "Media"},
        {"name": "Plan the top task", "description": "Write the single most important task of the day.", "difficulty": "ALTA"},
    ],
}

CREATIVE_TEXT = "Morning Momentum\nA progressive series...\n1. Wake at a fixed time (low)"


def completion_for(model: str, valid_series: Optional[dict] = None) -> str:
    """Canned content per pass: plain text for the creative model, JSON for structuring models."""
    if model.startswith("gpt-"):
        return json.dumps(valid_series or VALID_SERIES)
    return CREATIVE_TEXT


class FakeGateway:
    """
    Scripted AIGateway.

    `pass_costs` gives the energy reported by each successful call, in order;
    `errors` maps a call index (0-based, counting every attempt) to the
    exception that call raises; `final_content` overrides the schema pass output.
    """

    provider = "fake"

    def __init__(
        self,
        *,
        pass_costs: Optional[List[int]] = None,
        errors: Optional[Dict[int, Exception]] = None,
        final_content: Optional[str] = None,
        delay: float = 0.0,
    ):
        self.pass_costs = list(pass_costs or [])
        self.succeeded = 0
        self.errors = dict(errors or {})
        self.final_content = final_content
        self.delay = delay
        self.calls: List[InvokeOptions] = []
        self.messages: List[list] = []

    async def invoke(self, user_id: str, messages, options: InvokeOptions) -> AIResult:
        self.calls.append(options)
        self.messages.append(messages)
        await asyncio.sleep(self.delay)
        error = self.errors.get(len(self.calls) - 1)
        if error is not None:
            raise error
        content = completion_for(options.model)
        cost = self.pass_costs[self.succeeded] if self.succeeded < len(self.pass_costs) else 0
        self.succeeded += 1
        if self.final_content is not None and options.temperature == 0.0:
            content = self.final_content
        return AIResult(
            content=content,
            tokens_used=100,
            resource_cost=cost,
            model=options.model,
        )


class HangingGateway:
    provider = "fake"

    def __init__(self):
        self.calls = 0

    async def invoke(self, user_id, messages, options):
        self.calls += 1
        await asyncio.sleep(3600)


# Fake vendor SDK clients (openai / groq share the chat.completions shape)

class FakeUsage:
    def __init__(self, prompt_tokens: int, completion_tokens: int):
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens


class FakeMessage:
    def __init__(self, content: str):
        self.content = content


class FakeChoice:
    def __init__(self, content: str):
        self.message = FakeMessage(content)


class FakeCompletion:
    def __init__(self, content: str, usage: Optional[FakeUsage] = None):
        self.choices = [FakeChoice(content)]
        self.usage = usage


class FakeCompletions:
    def __init__(self, content: str = "", usage: Optional[FakeUsage] = None, error: Optional[Exception] = None):
        self.content = content
        self.usage = usage
        self.error = error
        self.kwargs: Dict = {}

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return FakeCompletion(self.content, self.usage)


class FakeChat:
    def __init__(self, completions: FakeCompletions):
        self.completions = completions


class FakeSDKClient:
    def __init__(self, content: str = "", usage: Optional[FakeUsage] = None, error: Optional[Exception] = None):
        self.chat = FakeChat(FakeCompletions(content, usage, error))
