"""Sequential, parallel and branch composition."""

import asyncio

import pytest
from pydantic import BaseModel

from mule import StepValidationError, Workflow, create_step
from mule.config import get_max_parallel_steps


def make_step(step_id, fn, input_schema=None, output_schema=None):
    async def executor(ctx):
        return fn(ctx.input)

    return create_step(
        id=step_id,
        executor=executor,
        input_schema=input_schema,
        output_schema=output_schema,
    )


@pytest.mark.asyncio
async def test_single_step_execution():
    step1 = make_step("step1", lambda _: "Hello, World!", output_schema=str)

    result = await Workflow().add_step(step1).run()

    assert result == "Hello, World!"


@pytest.mark.asyncio
async def test_sequential_steps_chain_output_to_input():
    """Test that each step receives the previous step's output."""
    step1 = make_step("step1", lambda _: "test", output_schema=str)
    step2 = make_step("step2", len, input_schema=str, output_schema=int)

    result = await Workflow().add_step(step1).add_step(step2).run()

    assert result == 4


@pytest.mark.asyncio
async def test_sync_executor_is_accepted():
    step = create_step(id="sync", executor=lambda ctx: ctx.input * 3)

    assert await Workflow().add_step(step).run(initial_input=2) == 6


@pytest.mark.asyncio
async def test_parallel_results_keyed_by_step_id():
    initial = make_step("initial", lambda _: "Hello")
    s1 = make_step("s1", len, input_schema=str)
    s2 = make_step("s2", lambda text: len(text) * 2, input_schema=str)

    result = await Workflow().add_step(initial).parallel([s1, s2]).run()

    assert result == {"s1": 5, "s2": 10}


@pytest.mark.asyncio
async def test_parallel_duplicate_ids_last_member_wins():
    first = make_step("same", lambda _: "first")
    second = make_step("same", lambda _: "second")

    result = await Workflow().parallel([first, second]).run()

    assert result == {"same": "second"}


@pytest.mark.asyncio
async def test_parallel_output_feeds_next_step():
    s1 = make_step("a", lambda x: x + 1)
    s2 = make_step("b", lambda x: x + 2)
    total = make_step("total", lambda results: results["a"] + results["b"])

    result = await Workflow().parallel([s1, s2]).add_step(total).run(initial_input=1)

    assert result == 5


@pytest.mark.asyncio
async def test_branch_with_single_condition_true():
    big = make_step("big", lambda x: f"big {x}")
    small = make_step("small", lambda x: f"small {x}")

    result = await (
        Workflow(input_schema=int)
        .branch([(big, lambda x: x > 10), (small, lambda x: x <= 10)])
        .run(initial_input=42)
    )

    assert result == {"big": "big 42"}


@pytest.mark.asyncio
async def test_branch_with_multiple_conditions_true():
    branch1 = make_step("branchStep1", lambda x: x + 1)
    branch2 = make_step("branchStep2", lambda x: x // 2)

    result = await (
        Workflow()
        .branch([(branch1, lambda x: x > 0), (branch2, lambda x: x % 2 == 0)])
        .run(initial_input=10)
    )

    assert result == {"branchStep1": 11, "branchStep2": 5}


@pytest.mark.asyncio
async def test_branch_with_no_match_yields_empty_dict():
    """Test the output of a branch where no predicate matches."""
    calls = []

    async def executor(ctx):
        calls.append(ctx.input)
        return ctx.input

    step1 = create_step(id="branchStep1", executor=executor)
    step2 = create_step(id="branchStep2", executor=executor)

    result = await (
        Workflow()
        .branch([(step1, lambda x: x > 10), (step2, lambda x: x < 3)])
        .run(initial_input=5)
    )

    assert result == {}
    assert calls == []


@pytest.mark.asyncio
async def test_operations_run_in_append_order():
    order = []

    def record(name):
        async def executor(ctx):
            order.append(name)
            return name

        return create_step(id=name, executor=executor)

    await (
        Workflow()
        .add_step(record("first"))
        .parallel([record("p1"), record("p2")])
        .add_step(record("last"))
        .run()
    )

    assert order[0] == "first"
    assert set(order[1:3]) == {"p1", "p2"}
    assert order[3] == "last"


@pytest.mark.asyncio
async def test_workflow_input_schema_validates_initial_input():
    class Order(BaseModel):
        user_id: str
        total: float

    step = make_step("summarize", lambda order: f"{order.user_id}:{order.total}")
    workflow = Workflow(input_schema=Order).add_step(step)

    result = await workflow.run(initial_input={"user_id": "u1", "total": "9.5"})
    assert result == "u1:9.5"

    with pytest.raises(StepValidationError):
        await workflow.run(initial_input={"user_id": "u1"})


@pytest.mark.asyncio
async def test_omitted_initial_input_starts_from_none():
    step = make_step("echo", lambda x: x)
    workflow = Workflow().add_step(step)

    assert await workflow.run(initial_input="first") == "first"
    assert await workflow.run() is None


def test_builder_records_operations_without_running():
    """Test that building a workflow executes nothing."""
    calls = []

    async def executor(ctx):
        calls.append(1)

    step = create_step(id="noop", executor=executor)
    workflow = Workflow().add_step(step).parallel([step]).branch([(step, bool)])

    assert len(workflow.operations) == 3
    assert calls == []


def test_add_step_rejects_other_objects():
    with pytest.raises(TypeError):
        Workflow().add_step(lambda ctx: None)


@pytest.mark.asyncio
async def test_concurrency_limit_bounds_parallel_batch(monkeypatch):
    """Test that MULE_STEP_CONCURRENCY caps the members running at once."""
    monkeypatch.setenv("MULE_STEP_CONCURRENCY", "2")
    get_max_parallel_steps.cache_clear()
    in_flight = 0
    peak = 0

    def tracked(step_id):
        async def executor(ctx):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return step_id

        return create_step(id=step_id, executor=executor)

    ids = ["a", "b", "c", "d", "e"]
    result = await Workflow().parallel([tracked(i) for i in ids]).run()

    assert peak == 2
    assert list(result) == ids
    assert list(result.values()) == ids


@pytest.mark.asyncio
async def test_concurrency_limit_bounds_branch_batch(monkeypatch):
    monkeypatch.setenv("MULE_STEP_CONCURRENCY", "1")
    get_max_parallel_steps.cache_clear()
    order = []

    def tracked(step_id):
        async def executor(ctx):
            order.append(f"start:{step_id}")
            await asyncio.sleep(0.01)
            order.append(f"end:{step_id}")
            return step_id

        return create_step(id=step_id, executor=executor)

    always = lambda _: True
    result = await Workflow().branch(
        [(tracked("x"), always), (tracked("y"), always)]
    ).run()

    assert result == {"x": "x", "y": "y"}
    assert order == ["start:x", "end:x", "start:y", "end:y"]
