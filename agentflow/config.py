"""Shared agentflow configuration utilities.

Centralises reading of ~/.agentflow/configuration.json so that workflows,
history stores and entry points share one set of engine defaults.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_NUM_HISTORY_RUNS = 3
DEFAULT_HISTORY_CAPACITY = 100
DEFAULT_PARALLEL_FAILURE_POLICY = "wait_all"

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

AGENTFLOW_CONFIG_FILE = Path.home() / ".agentflow" / "configuration.json"


def get_config_path() -> Path:
    """Return the configuration file path, honouring AGENTFLOW_CONFIG."""
    override = os.environ.get("AGENTFLOW_CONFIG")
    if override:
        return Path(override)
    return AGENTFLOW_CONFIG_FILE


def get_agentflow_config() -> dict[str, Any]:
    """Load agentflow configuration from disk ({} when missing or unreadable)."""
    config_path = get_config_path()
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _workflow_section() -> dict[str, Any]:
    section = get_agentflow_config().get("workflow", {})
    return section if isinstance(section, dict) else {}


def _logging_section() -> dict[str, Any]:
    section = get_agentflow_config().get("logging", {})
    return section if isinstance(section, dict) else {}


def _positive_int(value: Any, fallback: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return fallback


def get_default_num_history_runs() -> int:
    """Return how many past runs are replayed when a workflow does not say."""
    return _positive_int(_workflow_section().get("num_history_runs"), DEFAULT_NUM_HISTORY_RUNS)


def get_default_history_capacity() -> int:
    """Return the retained-run cap for the default in-memory history store."""
    return _positive_int(_workflow_section().get("history_capacity"), DEFAULT_HISTORY_CAPACITY)


def get_default_parallel_failure_policy() -> str:
    """Return the configured Parallel failure policy name."""
    policy = _workflow_section().get("parallel_failure_policy")
    if policy in ("wait_all", "cancel_on_first"):
        return policy
    return DEFAULT_PARALLEL_FAILURE_POLICY


def get_log_level() -> str:
    return str(_logging_section().get("level", "INFO")).upper()


def get_log_format() -> str:
    fmt = _logging_section().get("format", "auto")
    return fmt if fmt in ("json", "human", "auto") else "auto"


# ---------------------------------------------------------------------------
# EngineConfig – shared across workflows and entry points
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Engine defaults loaded from ~/.agentflow/configuration.json."""

    num_history_runs: int = field(default_factory=get_default_num_history_runs)
    history_capacity: int = field(default_factory=get_default_history_capacity)
    parallel_failure_policy: str = field(default_factory=get_default_parallel_failure_policy)
    log_level: str = field(default_factory=get_log_level)
    log_format: str = field(default_factory=get_log_format)
