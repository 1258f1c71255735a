"""Tests for configuration loading and RuntimeConfig."""

import json

import pytest

from agentflow.config import (
    DEFAULT_MAX_CONCURRENT_NODES,
    RuntimeConfig,
    get_agentflow_config,
    get_max_concurrent_nodes,
    get_mode,
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "configuration.json"
    monkeypatch.setenv("AGENTFLOW_CONFIG", str(path))
    for var in ("AGENTFLOW_MAX_CONCURRENCY", "MODE", "LOG_LEVEL", "LOG_FORMAT"):
        monkeypatch.delenv(var, raising=False)
    return path


def test_missing_file_gives_defaults(config_file):
    assert get_agentflow_config() == {}

    config = RuntimeConfig()

    assert config.max_concurrent_nodes == DEFAULT_MAX_CONCURRENT_NODES
    assert config.mode == "main"
    assert config.log_level == "INFO"
    assert config.log_format == "auto"
    assert config.is_queue_mode is False


def test_values_from_file(config_file):
    config_file.write_text(
        json.dumps(
            {
                "mode": "queue",
                "runtime": {"max_concurrent_nodes": 3},
                "logging": {"level": "DEBUG", "format": "json"},
            }
        )
    )

    config = RuntimeConfig()

    assert config.max_concurrent_nodes == 3
    assert config.is_queue_mode
    assert config.log_level == "DEBUG"
    assert config.log_format == "json"


def test_environment_wins(config_file, monkeypatch):
    config_file.write_text(json.dumps({"mode": "queue", "runtime": {"max_concurrent_nodes": 3}}))
    monkeypatch.setenv("AGENTFLOW_MAX_CONCURRENCY", "16")
    monkeypatch.setenv("MODE", "MAIN")

    assert get_max_concurrent_nodes() == 16
    assert get_mode() == "main"


def test_invalid_values(config_file, monkeypatch):
    monkeypatch.setenv("AGENTFLOW_MAX_CONCURRENCY", "lots")
    assert get_max_concurrent_nodes() == DEFAULT_MAX_CONCURRENT_NODES

    monkeypatch.setenv("AGENTFLOW_MAX_CONCURRENCY", "0")
    assert get_max_concurrent_nodes() == 1


def test_unreadable_file(config_file):
    config_file.write_text("{not json")
    assert get_agentflow_config() == {}

    config_file.write_text("[1, 2]")
    assert get_agentflow_config() == {}
