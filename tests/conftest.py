import pytest

from mule.config import get_max_parallel_steps, get_step_retries


@pytest.fixture(autouse=True)
def _reset_tunables(monkeypatch):
    """Each test starts from the default retry and concurrency settings."""
    monkeypatch.delenv("MULE_STEP_RETRIES", raising=False)
    monkeypatch.delenv("MULE_STEP_CONCURRENCY", raising=False)
    monkeypatch.delenv("MULE_PROJECT_ID", raising=False)
    get_step_retries.cache_clear()
    get_max_parallel_steps.cache_clear()
    yield
    get_step_retries.cache_clear()
    get_max_parallel_steps.cache_clear()
