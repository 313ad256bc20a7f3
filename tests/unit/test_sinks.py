"""Execution record sinks."""

import logging

import pytest

from mule.persistence import InMemoryStepExecutionRepository, LLMCallLog
from mule.persistence.models import CallCost, TokenUsage
from mule.sinks import ConsoleLogger, RepositoryLogger, to_step_execution, write_record


def make_record(**fields):
    values = dict(project_id="proj", workflow_id="wf", run_id="run", step_id="step")
    values.update(fields)
    return LLMCallLog(**values)


def test_record_maps_to_step_execution():
    record = make_record(
        messages=[{"role": "user", "content": "hi"}],
        usage=TokenUsage(prompt_tokens=1, completion_tokens=2, total_tokens=3),
        cost=CallCost(prompt_cost=0.1, completion_cost=0.2, total_cost=0.3),
        execution_type="branch",
        depth=2,
    )

    execution = to_step_execution(record)

    assert execution.prompt == '[{"role": "user", "content": "hi"}]'
    assert execution.total_tokens == 3
    assert execution.total_cost_usd == 0.3
    assert execution.execution_type == "branch"
    assert execution.status == "success"


def test_error_record_maps_to_error_status():
    assert to_step_execution(make_record(error="boom")).status == "error"


@pytest.mark.asyncio
async def test_repository_logger_returns_row_id():
    sink = RepositoryLogger(InMemoryStepExecutionRepository())

    assert await sink.log(make_record()) == 1
    assert await sink.log(make_record()) == 2


@pytest.mark.asyncio
async def test_console_logger(caplog):
    with caplog.at_level(logging.INFO, logger="mule.executions"):
        result = await ConsoleLogger().log(make_record(error="boom"))

    assert result is None
    assert "run:step error" in caplog.text
    assert "error=boom" in caplog.text


@pytest.mark.asyncio
async def test_write_record_tolerates_missing_and_failing_sinks(caplog):
    """Test that sink failures are logged and swallowed."""
    class Failing:
        async def log(self, record):
            raise RuntimeError("sink offline")

    assert await write_record(None, make_record()) is None
    with caplog.at_level(logging.WARNING):
        assert await write_record(Failing(), make_record()) is None
    assert "sink offline" in caplog.text
