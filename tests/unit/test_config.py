"""Tests for configuration loading and tunables."""

import pytest

from mule.config import get_max_parallel_steps, get_step_retries, load_config


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "mule.yaml"
    config_path.write_text(
        """
project_id: from-file
default_model: "openai:gpt-4o-mini"
cache_enabled: true
persistence:
  backend: sqlite
  path: /tmp/mule-test.db
logging:
  enabled: false
"""
    )
    monkeypatch.setenv("MULE_CONFIG", str(config_path))

    config = load_config()
    assert config.project_id == "from-file"
    assert config.default_model == "openai:gpt-4o-mini"
    assert config.cache_enabled is True
    assert config.persistence.path == "/tmp/mule-test.db"
    assert config.logging.enabled is False


def test_load_config_defaults_when_missing(tmp_path):
    config = load_config(str(tmp_path / "absent.yaml"))

    assert config.project_id is None
    assert config.persistence.backend == "sqlite"
    assert config.persistence.path == "~/.mule/executions.db"
    assert config.logging.enabled is True


def test_environment_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "mule.yaml"
    config_path.write_text("project_id: from-file\n")
    monkeypatch.setenv("MULE_PROJECT_ID", "from-env")
    monkeypatch.setenv("MULE_DATABASE_PATH", str(tmp_path / "x.db"))

    config = load_config(str(config_path))
    assert config.project_id == "from-env"
    assert config.persistence.path == str(tmp_path / "x.db")


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 1), ("", 1), ("0", 0), ("4", 4), ("-2", 1), ("many", 1)],
)
def test_step_retries(monkeypatch, raw, expected):
    if raw is not None:
        monkeypatch.setenv("MULE_STEP_RETRIES", raw)
    get_step_retries.cache_clear()

    assert get_step_retries() == expected


@pytest.mark.parametrize(
    "raw, expected",
    [(None, None), ("", None), ("0", None), ("-1", None), ("abc", None), ("3", 3)],
)
def test_max_parallel_steps(monkeypatch, raw, expected):
    if raw is not None:
        monkeypatch.setenv("MULE_STEP_CONCURRENCY", raw)
    get_max_parallel_steps.cache_clear()

    assert get_max_parallel_steps() == expected


def test_tunables_read_once(monkeypatch):
    get_step_retries.cache_clear()
    assert get_step_retries() == 1

    monkeypatch.setenv("MULE_STEP_RETRIES", "5")
    assert get_step_retries() == 1

    get_step_retries.cache_clear()
    assert get_step_retries() == 5
