"""Workflow engine: sequential, parallel, branch and nested composition."""

from __future__ import annotations

import copy
import functools
import inspect
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from .ai import AIService, AIServiceConfig
from .concurrency import run_with_concurrency_limit
from .config import get_max_parallel_steps, get_step_retries
from .constants import DEFAULT_PROJECT_ID
from .context import ExecutionContext, ExecutionType
from .errors import StepExecutionError
from .persistence.models import LLMCallLog
from .sinks import Logger, write_record
from .steps import State, Step, StepContext
from .validation import as_validator, validate

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]
ClientFactory = Callable[[AIServiceConfig], Any]

_UNSET: Any = object()


@dataclass(frozen=True)
class StepOperand:
    step: Step

    @property
    def key(self) -> str:
        return self.step.id


@dataclass(frozen=True)
class WorkflowOperand:
    workflow: "Workflow"

    @property
    def key(self) -> str:
        return self.workflow.workflow_id


Operand = Union[StepOperand, WorkflowOperand]


@dataclass(frozen=True)
class SequentialOp:
    operand: Operand


@dataclass(frozen=True)
class ParallelOp:
    operands: Tuple[Operand, ...]


@dataclass(frozen=True)
class BranchOp:
    branches: Tuple[Tuple[Operand, Predicate], ...]


Operation = Union[SequentialOp, ParallelOp, BranchOp]


def to_operand(item: Union[Step, "Workflow"]) -> Operand:
    """Wrap a step or workflow in its operand variant."""
    if isinstance(item, Workflow):
        return WorkflowOperand(item)
    if isinstance(item, Step):
        return StepOperand(item)
    raise TypeError(f"Expected a Step or Workflow, got {type(item).__name__}")


def _serialize(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)


class Workflow:
    """An ordered composition of steps sharing one mutable state dict.

    Operations run strictly in the order they were added. Members of a
    parallel or branch batch run concurrently and all receive the same
    input; their results are collected into a dict keyed by step id (or
    workflow id for nested workflows).

    ``state`` is reset from the declared default at the start of every
    :meth:`run`. During a nested workflow the child borrows the parent's
    state dict, and the parent takes the child's state back once the child
    finishes, so later steps observe everything the child wrote.
    """

    def __init__(
        self,
        workflow_id: Optional[str] = None,
        state: Optional[State] = None,
        input_schema: Any = None,
        project_id: str = DEFAULT_PROJECT_ID,
        logger: Optional[Logger] = None,
        client_factory: Optional[ClientFactory] = None,
        default_model: Any = None,
        cache: Any = None,
    ) -> None:
        self.workflow_id = workflow_id or str(uuid.uuid4())
        self._default_state: State = dict(state or {})
        self.state: State = copy.deepcopy(self._default_state)
        self.input_schema = input_schema
        self.input_validator = as_validator(input_schema)

        self.project_id = project_id
        self.logger = logger
        self.client_factory: ClientFactory = client_factory or AIService
        self.default_model = default_model
        self.cache = cache

        self.last_output: Any = None
        self.run_id = ""
        self.context = ExecutionContext()
        self._operations: List[Operation] = []

    def __repr__(self) -> str:
        return f"Workflow(id={self.workflow_id!r}, operations={len(self._operations)})"

    # ------------------------------------------------------------------
    # Builder API
    def add_step(self, step: Union[Step, Workflow]) -> Workflow:
        """Run ``step`` (or a nested workflow) on the current output."""
        self._operations.append(SequentialOp(to_operand(step)))
        return self

    def parallel(self, steps: Sequence[Union[Step, Workflow]]) -> Workflow:
        """Run all ``steps`` concurrently on the current output."""
        self._operations.append(ParallelOp(tuple(to_operand(s) for s in steps)))
        return self

    def branch(
        self, branches: Sequence[Tuple[Union[Step, Workflow], Predicate]]
    ) -> Workflow:
        """Run every step whose predicate accepts the current output.

        Predicates are evaluated before anything executes. Several matches
        run together like a parallel batch; no match yields ``{}``.
        """
        self._operations.append(
            BranchOp(
                tuple((to_operand(step), predicate) for step, predicate in branches)
            )
        )
        return self

    @property
    def operations(self) -> Tuple[Operation, ...]:
        return tuple(self._operations)

    def get_state(self) -> State:
        return self.state

    def get_output(self) -> Any:
        return self.last_output

    # ------------------------------------------------------------------
    # Execution
    async def run(
        self,
        initial_input: Any = _UNSET,
        initial_state: Optional[State] = None,
        run_id: Optional[str] = None,
    ) -> Any:
        """Execute every operation and return the final output.

        Args:
            initial_input: Input for the first operation, validated against
                the workflow's ``input_schema``. When omitted the first
                operation receives ``None``.
            initial_state: Merged over a fresh copy of the default state.
            run_id: Identifier of this run; generated when omitted.

        Raises:
            StepExecutionError: A step failed on every attempt and had no
                ``on_error`` handler, here or in a nested workflow.
            StepValidationError: ``initial_input`` was rejected.
        """
        self.state = {**copy.deepcopy(self._default_state), **(initial_state or {})}
        self.context = ExecutionContext()
        return await self._execute(initial_input, run_id)

    async def _execute(self, initial_input: Any, run_id: Optional[str]) -> Any:
        self.run_id = run_id or str(uuid.uuid4())
        if initial_input is _UNSET:
            self.last_output = None
        else:
            self.last_output = validate(
                self.input_validator, initial_input, "workflow input", self.workflow_id
            )

        logger.info(
            f"Starting workflow {self.workflow_id} run_id={self.run_id} "
            f"depth={self.context.depth} operations={len(self._operations)}"
        )
        for operation in self._operations:
            await self._run_operation(operation)
        logger.info(f"Workflow {self.workflow_id} run_id={self.run_id} completed")
        return self.last_output

    async def _run_operation(self, operation: Operation) -> None:
        if isinstance(operation, SequentialOp):
            self.last_output = await self._execute_operand(
                operation.operand, self.last_output, self.context
            )
        elif isinstance(operation, ParallelOp):
            self.last_output = await self._run_batch(operation.operands, "parallel")
        elif isinstance(operation, BranchOp):
            current = self.last_output
            selected = [
                operand for operand, predicate in operation.branches if predicate(current)
            ]
            if not selected:
                logger.debug(f"No branch matched in run {self.run_id}")
                self.last_output = {}
                return
            self.last_output = await self._run_batch(selected, "branch")
        else:
            raise TypeError(f"Unknown operation: {operation!r}")

    async def _run_batch(
        self, operands: Sequence[Operand], execution_type: ExecutionType
    ) -> Dict[str, Any]:
        context = self.context.grouped(execution_type)
        current = self.last_output
        logger.debug(
            f"Running {execution_type} batch {context.execution_group} in run "
            f"{self.run_id}: {[operand.key for operand in operands]}"
        )
        tasks = [
            functools.partial(self._execute_operand, operand, current, context)
            for operand in operands
        ]
        results = await run_with_concurrency_limit(tasks, get_max_parallel_steps())
        # Duplicate keys: the later member wins.
        return {operand.key: result for operand, result in zip(operands, results)}

    async def _execute_operand(
        self, operand: Operand, input: Any, context: ExecutionContext
    ) -> Any:
        attempts = 1 + get_step_retries()
        if isinstance(operand, WorkflowOperand):
            return await self._run_nested(operand.workflow, input, context, attempts)
        return await self._run_step(operand.step, input, context, attempts)

    def _lend_to(self, child: Workflow, state: State, context: ExecutionContext) -> None:
        """Hand configuration and the shared state dict over to ``child``."""
        child.project_id = self.project_id
        child.logger = self.logger
        child.client_factory = self.client_factory
        child.default_model = self.default_model
        child.cache = self.cache
        for key, value in child._default_state.items():
            if key not in state:
                state[key] = copy.deepcopy(value)
        child.state = state
        child.context = context.nested(child.workflow_id)

    async def _run_nested(
        self, child: Workflow, input: Any, context: ExecutionContext, attempts: int
    ) -> Any:
        state = self.state
        nested_run_id = f"{self.run_id}->{child.workflow_id}"
        for attempt in range(1, attempts + 1):
            self._lend_to(child, state, context)
            try:
                output = await child._execute(input, nested_run_id)
            except Exception as e:
                # Nested failures are never absorbed at this level.
                if attempt == attempts:
                    logger.error(f"Nested workflow '{nested_run_id}' failed: {e}")
                    raise
                logger.warning(
                    f"Nested workflow '{nested_run_id}' failed "
                    f"(attempt {attempt}/{attempts}), retrying: {e}"
                )
                continue
            # A newer run may have replaced the state while the child ran.
            if self.state is state:
                self.state = child.state
            return output

    def _step_context(
        self,
        input: Any,
        state: State,
        run_id: str,
        context: ExecutionContext,
        ai: Any = None,
    ) -> StepContext:
        def set_state(partial: State) -> None:
            state.update(partial)

        return StepContext(
            input=input,
            state=state,
            set_state=set_state,
            ai=ai,
            run_id=run_id,
            workflow_id=self.workflow_id,
            context=context,
        )

    async def _record_step(
        self,
        step: Step,
        run_id: str,
        context: ExecutionContext,
        started: float,
        result: Any = None,
        error: Optional[str] = None,
    ) -> None:
        record = LLMCallLog(
            project_id=self.project_id,
            workflow_id=self.workflow_id,
            run_id=run_id,
            step_id=step.id,
            duration_ms=int((time.perf_counter() - started) * 1000),
            result=_serialize(result),
            error=error,
            **context.as_metadata(),
        )
        await write_record(self.logger, record)

    async def _run_step(
        self, step: Step, input: Any, context: ExecutionContext, attempts: int
    ) -> Any:
        # Bound once so a step outliving its run never touches the next one.
        run_id = self.run_id
        state = self.state
        step_key = f"{run_id}:{step.id}"
        ai = self.client_factory(
            AIServiceConfig(
                project_id=self.project_id,
                workflow_id=self.workflow_id,
                run_id=run_id,
                step_id=step.id,
                logger=self.logger,
                context=context,
                default_model=self.default_model,
                cache=self.cache,
            )
        )

        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            started = time.perf_counter()
            step_context = self._step_context(input, state, run_id, context, ai)
            try:
                step_context.input = validate(
                    step.input_validator, input, "input", step.id
                )
                result = step.executor(step_context)
                if inspect.isawaitable(result):
                    result = await result
                output = validate(step.output_validator, result, "output", step.id)
            except Exception as e:
                last_error = e
                await self._record_step(step, run_id, context, started, error=str(e))
                if attempt < attempts:
                    logger.warning(
                        f"Step '{step_key}' failed (attempt {attempt}/{attempts}), "
                        f"retrying: {e}"
                    )
                continue
            await self._record_step(step, run_id, context, started, result=output)
            return output

        if step.on_error is not None:
            logger.warning(f"Step '{step_key}' failed, handled by on_error: {last_error}")
            handled = step.on_error(
                last_error, self._step_context(input, state, run_id, context, ai)
            )
            if inspect.isawaitable(handled):
                await handled
            return None

        logger.error(f"Step '{step_key}' failed after {attempts} attempt(s): {last_error}")
        raise StepExecutionError(step_key, last_error) from last_error
