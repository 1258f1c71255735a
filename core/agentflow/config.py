"""Shared agentflow configuration utilities.

Centralises reading of ~/.agentflow/configuration.json so the executor, the
cache pool and the CLI share one implementation. Environment variables win
over the file.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MAX_CONCURRENT_NODES = 8

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

AGENTFLOW_CONFIG_FILE = Path.home() / ".agentflow" / "configuration.json"


def get_config_path() -> Path:
    """Return the configuration file path, honouring AGENTFLOW_CONFIG."""
    override = os.environ.get("AGENTFLOW_CONFIG")
    return Path(override) if override else AGENTFLOW_CONFIG_FILE


def get_agentflow_config() -> dict[str, Any]:
    """Load agentflow configuration from disk; empty dict when absent or unreadable."""
    config_file = get_config_path()
    if not config_file.exists():
        return {}
    try:
        with open(config_file, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_max_concurrent_nodes() -> int:
    """Return how many node invocations one run may have in flight."""
    raw = os.environ.get("AGENTFLOW_MAX_CONCURRENCY")
    if raw is None:
        raw = get_agentflow_config().get("runtime", {}).get("max_concurrent_nodes")
    try:
        value = int(raw) if raw is not None else DEFAULT_MAX_CONCURRENT_NODES
    except (TypeError, ValueError):
        return DEFAULT_MAX_CONCURRENT_NODES
    return max(1, value)


def get_mode() -> str:
    """Return the deployment mode ("main" or "queue")."""
    return (os.environ.get("MODE") or get_agentflow_config().get("mode") or "main").lower()


def get_log_level() -> str:
    return os.environ.get("LOG_LEVEL") or get_agentflow_config().get("logging", {}).get(
        "level", "INFO"
    )


def get_log_format() -> str:
    return os.environ.get("LOG_FORMAT") or get_agentflow_config().get("logging", {}).get(
        "format", "auto"
    )


# ---------------------------------------------------------------------------
# RuntimeConfig
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Flow runtime configuration loaded from ~/.agentflow/configuration.json."""

    max_concurrent_nodes: int = field(default_factory=get_max_concurrent_nodes)
    mode: str = field(default_factory=get_mode)
    log_level: str = field(default_factory=get_log_level)
    log_format: str = field(default_factory=get_log_format)

    @property
    def is_queue_mode(self) -> bool:
        return self.mode == "queue"
