"""Shared nodeflow configuration utilities.

Centralises reading of ~/.nodeflow/configuration.json so the engine, the CLI
and embedding hosts agree on run limits and logging settings.

Example file:
    {
        "engine": {"max_execution_steps": 5000, "max_cycle_depth": 20},
        "logging": {"level": "DEBUG", "format": "json"}
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nodeflow.graph.model import (
    DEFAULT_MAX_ITERATIONS,
    MAX_CYCLE_DEPTH_LIMIT,
    MAX_EXECUTION_STEPS,
)

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

NODEFLOW_CONFIG_FILE = Path.home() / ".nodeflow" / "configuration.json"


def get_nodeflow_config() -> dict[str, Any]:
    """Load configuration from ~/.nodeflow/configuration.json."""
    if not NODEFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(NODEFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _engine_setting(key: str, default: int) -> int:
    value = get_nodeflow_config().get("engine", {}).get(key, default)
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def get_max_execution_steps() -> int:
    """Ceiling on visited steps per run, falling back to MAX_EXECUTION_STEPS."""
    return _engine_setting("max_execution_steps", MAX_EXECUTION_STEPS)


def get_max_cycle_depth() -> int:
    """Per-node revisit and sub-graph nesting ceiling."""
    return _engine_setting("max_cycle_depth", MAX_CYCLE_DEPTH_LIMIT)


def get_default_max_iterations() -> int:
    return _engine_setting("default_max_iterations", DEFAULT_MAX_ITERATIONS)


def get_log_level() -> str:
    return str(get_nodeflow_config().get("logging", {}).get("level", "INFO")).upper()


def get_log_format() -> str:
    return get_nodeflow_config().get("logging", {}).get("format", "auto")


# ---------------------------------------------------------------------------
# EngineConfig
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Engine limits and logging settings loaded from ~/.nodeflow/configuration.json."""

    max_execution_steps: int = field(default_factory=get_max_execution_steps)
    max_cycle_depth: int = field(default_factory=get_max_cycle_depth)
    default_max_iterations: int = field(default_factory=get_default_max_iterations)
    log_level: str = field(default_factory=get_log_level)
    log_format: str = field(default_factory=get_log_format)
