"""Remote LLM client handed to step executors."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models import Model

from .context import ExecutionContext
from .persistence.models import LLMCallLog, TokenUsage
from .persistence.repository import StepExecutionRepository
from .sinks import Logger, RepositoryLogger, to_step_execution, write_record
from .utils.retry import with_retry_after

logger = logging.getLogger(__name__)

T = TypeVar("T")

Messages = Union[str, Sequence[dict]]


class AIServiceConfig(BaseModel):
    """Identity of the step a client instance serves."""

    project_id: str = "unknown"
    workflow_id: str = "unknown"
    run_id: str = "unknown"
    step_id: str = "unknown"
    logger: Optional[Any] = None
    context: ExecutionContext = ExecutionContext()
    default_model: Optional[Union[str, Model]] = None
    cache: Optional[Any] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


def _model_name(model: Union[str, Model]) -> str:
    if isinstance(model, str):
        return model
    return getattr(model, "model_name", type(model).__name__)


def _normalize_messages(messages: Messages) -> list[dict]:
    if isinstance(messages, str):
        return [{"role": "user", "content": messages}]
    return [dict(m) for m in messages]


def _split_messages(
    messages: list[dict],
) -> tuple[list[str], list[ModelMessage], Optional[str]]:
    """Split chat messages into instructions, history and the final prompt."""
    instructions: list[str] = []
    history: list[ModelMessage] = []
    turns = [m for m in messages if m.get("role") != "system"]
    for message in messages:
        if message.get("role") == "system":
            instructions.append(str(message.get("content", "")))

    prompt = None
    if turns and turns[-1].get("role") == "user":
        prompt = str(turns.pop().get("content", ""))
    for message in turns:
        content = str(message.get("content", ""))
        if message.get("role") == "assistant":
            history.append(ModelResponse(parts=[TextPart(content=content)]))
        else:
            history.append(ModelRequest(parts=[UserPromptPart(content=content)]))
    return instructions, history, prompt


def _usage(result: Any) -> TokenUsage:
    # A method on older pydantic-ai releases, a plain attribute on newer ones.
    usage = result.usage
    if callable(usage):
        usage = usage()
    prompt_tokens = getattr(usage, "input_tokens", None)
    if prompt_tokens is None:
        prompt_tokens = getattr(usage, "request_tokens", None)
    completion_tokens = getattr(usage, "output_tokens", None)
    if completion_tokens is None:
        completion_tokens = getattr(usage, "response_tokens", None)
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=getattr(usage, "total_tokens", None),
    )


def request_hash(
    model: str, messages: list[dict], system_prompt: Optional[str], schema: Any
) -> str:
    """Stable key identifying a request for the response cache."""
    payload = {
        "model": model,
        "messages": messages,
        "system_prompt": system_prompt,
        "schema": getattr(schema, "__name__", repr(schema)) if schema else None,
    }
    encoded = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode()).hexdigest()


class AIService:
    """LLM calls with retry-after handling, logging and optional caching.

    One instance is created per step invocation so that every record carries
    the identity and execution context of the calling step.
    """

    def __init__(self, config: Optional[AIServiceConfig] = None) -> None:
        self.config = config or AIServiceConfig()

    @property
    def _sink(self) -> Optional[Logger]:
        return self.config.logger

    @property
    def _cache(self) -> Optional[StepExecutionRepository]:
        return self.config.cache

    def _resolve_model(self, model: Optional[Union[str, Model]]) -> Union[str, Model]:
        resolved = model or self.config.default_model
        if resolved is None:
            raise ValueError("No model given and no default model configured")
        return resolved

    async def generate(
        self,
        messages: Messages,
        model: Optional[Union[str, Model]] = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Return the text completion for ``messages``."""
        return await self._call(
            messages, str, model, system_prompt, temperature, max_tokens
        )

    async def generate_object(
        self,
        messages: Messages,
        schema: Type[T],
        model: Optional[Union[str, Model]] = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> T:
        """Return structured output validated against ``schema``."""
        if schema is None:
            raise ValueError("Schema required for structured output")
        return await self._call(
            messages, schema, model, system_prompt, temperature, max_tokens
        )

    async def _call(
        self,
        messages: Messages,
        output_type: Any,
        model: Optional[Union[str, Model]],
        system_prompt: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Any:
        resolved = self._resolve_model(model)
        name = _model_name(resolved)
        chat = _normalize_messages(messages)
        adapter = TypeAdapter(output_type)
        structured = output_type is not str

        key = None
        if self._cache is not None:
            key = request_hash(
                name, chat, system_prompt, output_type if structured else None
            )
            cached = await self._cache.get_cached_response(self.config.project_id, key)
            if cached is not None and cached.result is not None:
                logger.debug(f"Cache hit for {self.config.step_id} ({name})")
                if structured:
                    return adapter.validate_json(cached.result)
                return cached.result

        instructions, history, prompt = _split_messages(chat)
        if system_prompt:
            instructions.insert(0, system_prompt)
        agent = Agent(
            resolved,
            output_type=output_type,
            instructions="\n\n".join(instructions) or None,
        )
        settings: dict = {}
        if temperature is not None:
            settings["temperature"] = temperature
        if max_tokens is not None:
            settings["max_tokens"] = max_tokens

        started = time.perf_counter()
        try:
            result = await with_retry_after(
                lambda: agent.run(
                    prompt,
                    message_history=history or None,
                    model_settings=settings or None,
                )
            )
        except Exception as e:
            logger.error(f"LLM call for step {self.config.step_id} ({name}) failed: {e}")
            await write_record(
                self._sink,
                self._record(name, chat, started, error=str(e)),
            )
            raise

        output = result.output
        serialized = (
            adapter.dump_json(output).decode() if structured else str(output)
        )
        finish_reason = getattr(result.all_messages()[-1], "finish_reason", None)
        record = self._record(
            name,
            chat,
            started,
            result=serialized,
            usage=_usage(result),
            finish_reason=finish_reason,
        )
        execution_id = await write_record(self._sink, record)
        if key is not None:
            if not self._sink_writes_to_cache():
                # Cache entries must point at a row in the cache repository.
                execution_id = await self._cache.save(to_step_execution(record))
            if execution_id is not None:
                await self._cache.set_cached_response(
                    self.config.project_id, key, execution_id
                )
        return output

    def _sink_writes_to_cache(self) -> bool:
        sink = self._sink
        return isinstance(sink, RepositoryLogger) and sink.repository is self._cache

    def _record(self, model: str, messages: list[dict], started: float, **fields: Any) -> LLMCallLog:
        return LLMCallLog(
            project_id=self.config.project_id,
            workflow_id=self.config.workflow_id,
            run_id=self.config.run_id,
            step_id=self.config.step_id,
            model=model,
            messages=messages,
            duration_ms=int((time.perf_counter() - started) * 1000),
            **self.config.context.as_metadata(),
            **fields,
        )
