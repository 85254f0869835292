"""
arvi/features/habit_series/pipeline.py

Three-pass generation pipeline: creative -> structure -> schema enforcement.

Passes run strictly in order, each one fed by the previous pass's raw output.
Energy cost is accumulated in memory only; nothing is persisted or debited
here. A failed attempt contributes zero cost. Transient failures are retried
a bounded number of times; any other failure aborts the whole pipeline.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from arvi.core.config import settings
from arvi.core.errors import AIGatewayError, AITemporarilyUnavailableError, AIUnclassifiedError
from arvi.core.metrics import ai_pass_duration_seconds, ai_pass_total
from arvi.core.tracing import start_span
from arvi.features.ai import model_selection
from arvi.features.ai.gateway import AIGateway, InvokeOptions, Message
from arvi.features.habit_series import prompts

logger = logging.getLogger("arvi")


@dataclass(frozen=True)
class RawText:
    text: str


@dataclass(frozen=True)
class ParsedObject:
    data: Dict[str, Any]
    raw: str


PassOutput = Union[RawText, ParsedObject]


@dataclass(frozen=True)
class PassResult:
    function_type: str
    output: PassOutput
    resource_cost: int
    tokens_used: int
    model: str
    attempts: int = 1

    @property
    def raw(self) -> str:
        return self.output.text if isinstance(self.output, RawText) else self.output.raw


@dataclass(frozen=True)
class PipelineResult:
    final_output: PassOutput
    pass_results: Tuple[PassResult, ...]
    total_cost: int


@dataclass(frozen=True)
class PipelineInput:
    language: str
    test_data: Dict[str, Any]
    assistant_context: Optional[str] = None


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for transient gateway failures. max_attempts counts the first try."""
    max_attempts: int = 2
    backoff_seconds: float = 0.5

    def delay_for(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=max(1, settings.AI_PASS_MAX_ATTEMPTS),
        backoff_seconds=settings.AI_RETRY_BACKOFF_SECONDS,
    )


def parse_pass_output(content: str, *, expect_object: bool) -> PassOutput:
    """Tag pass output. Structured passes yield ParsedObject when the content is a JSON object."""
    if not expect_object:
        return RawText(content)
    try:
        data = json.loads(content)
    except (TypeError, ValueError):
        return RawText(content)
    if isinstance(data, dict):
        return ParsedObject(data=data, raw=content)
    return RawText(content)


# (function type, prompt builder taking (request, previous raw output), structured?)
PassSpec = Tuple[str, Callable[[PipelineInput, Optional[str]], List[Message]], bool]

PASSES: Tuple[PassSpec, ...] = (
    (
        model_selection.HABIT_SERIES_CREATIVE,
        lambda req, _prev: prompts.creative_messages(req.language, req.test_data, req.assistant_context),
        False,
    ),
    (
        model_selection.HABIT_SERIES_STRUCTURE,
        lambda req, prev: prompts.structure_messages(req.language, prev or ""),
        True,
    ),
    (
        model_selection.JSON_CONVERSION,
        lambda _req, prev: prompts.schema_messages(prev or ""),
        True,
    ),
)


class PipelineOrchestrator:
    def __init__(
        self,
        gateway: AIGateway,
        *,
        pass_timeout_seconds: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.pass_timeout_seconds = pass_timeout_seconds or settings.AI_PASS_TIMEOUT_SECONDS
        self.retry_policy = retry_policy or default_retry_policy()
        self._sleep = sleep

    async def run(self, user_id: str, request: PipelineInput) -> PipelineResult:
        results: List[PassResult] = []
        total_cost = 0
        previous_raw: Optional[str] = None

        for function_type, build_messages, structured in PASSES:
            messages = build_messages(request, previous_raw)
            result = await self._run_pass(user_id, function_type, messages, structured)
            results.append(result)
            total_cost += result.resource_cost
            previous_raw = result.raw

        logger.info(
            "pipeline.complete",
            extra={"user_id": user_id, "total_cost": total_cost, "passes": len(results)},
        )
        return PipelineResult(final_output=results[-1].output, pass_results=tuple(results), total_cost=total_cost)

    async def _run_pass(self, user_id: str, function_type: str, messages: List[Message], structured: bool) -> PassResult:
        config = model_selection.resolve(function_type)
        options = InvokeOptions(
            model=config.model,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            strict_json=config.strict_json,
        )

        attempt = 0
        while True:
            attempt += 1
            started = time.perf_counter()
            try:
                with start_span("pipeline.pass", {"function_type": function_type, "attempt": attempt}):
                    ai_result = await self._invoke_with_timeout(user_id, messages, options)
            except AIGatewayError as exc:
                retry = exc.retryable and attempt < self.retry_policy.max_attempts
                ai_pass_total.inc(labels={"function_type": function_type, "outcome": "retry" if retry else exc.code})
                logger.warning(
                    "pipeline.pass_failed",
                    extra={
                        "user_id": user_id,
                        "function_type": function_type,
                        "attempt": attempt,
                        "error_code": exc.code,
                        "will_retry": retry,
                    },
                )
                if not retry:
                    raise
                await self._sleep(self.retry_policy.delay_for(attempt))
                continue

            ai_pass_total.inc(labels={"function_type": function_type, "outcome": "ok"})
            ai_pass_duration_seconds.observe(time.perf_counter() - started, labels={"function_type": function_type})
            logger.info(
                "pipeline.pass_complete",
                extra={
                    "user_id": user_id,
                    "function_type": function_type,
                    "model": ai_result.model,
                    "resource_cost": ai_result.resource_cost,
                    "attempt": attempt,
                },
            )
            return PassResult(
                function_type=function_type,
                output=parse_pass_output(ai_result.content, expect_object=structured),
                resource_cost=ai_result.resource_cost,
                tokens_used=ai_result.tokens_used,
                model=ai_result.model,
                attempts=attempt,
            )

    async def _invoke_with_timeout(self, user_id: str, messages: List[Message], options: InvokeOptions):
        try:
            return await asyncio.wait_for(
                self.gateway.invoke(user_id, messages, options),
                timeout=self.pass_timeout_seconds,
            )
        except AIGatewayError:
            raise
        except asyncio.TimeoutError:
            raise AITemporarilyUnavailableError(
                f"AI call exceeded {self.pass_timeout_seconds}s",
                model=options.model,
            ) from None
        except Exception as exc:
            raise AIUnclassifiedError(f"AI call failed: {type(exc).__name__}", model=options.model) from exc
