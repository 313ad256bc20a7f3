"""Step definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict

from .context import ExecutionContext
from .validation import Validator, as_validator

State = Dict[str, Any]


@dataclass
class StepContext:
    """Everything a step executor (or error handler) is handed."""

    input: Any
    state: State
    set_state: Callable[[State], None]
    ai: Any = None
    run_id: str = ""
    workflow_id: str = ""
    context: ExecutionContext = field(default_factory=ExecutionContext)


Executor = Callable[[StepContext], Awaitable[Any]]
ErrorHandler = Callable[[Exception, StepContext], Awaitable[None]]


class Step(BaseModel):
    """An immutable unit of work.

    ``state_schema`` documents the part of the shared state the step reads
    or writes; it is not enforced.
    """

    id: str
    input_validator: Any
    output_validator: Any
    executor: Callable[..., Any]
    on_error: Optional[Callable[..., Any]] = None
    state_schema: Any = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"Step(id={self.id!r})"


def create_step(
    id: str,
    executor: Executor,
    input_schema: Any = None,
    output_schema: Any = None,
    state_schema: Any = None,
    on_error: Optional[ErrorHandler] = None,
) -> Step:
    """Package a step. Nothing is executed until a workflow runs it.

    Schemas may be types, pydantic models, ``TypeAdapter`` instances or any
    object with a ``parse`` method; ``None`` accepts any value.
    """
    input_validator: Validator = as_validator(input_schema)
    output_validator: Validator = as_validator(output_schema)
    return Step(
        id=id,
        input_validator=input_validator,
        output_validator=output_validator,
        executor=executor,
        on_error=on_error,
        state_schema=state_schema,
    )
