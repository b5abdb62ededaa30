"""agent-relay configuration.

Sources, later wins: built-in defaults, an optional JSON config file, then
environment variables.

Environment variables:
    AGENT_RELAY_CONFIG: path to a JSON config file
        {
          "agent": {"command": "...", "args": [...], "completion_signal": "..."},
          "timeout_seconds": 3600,
          "max_iterations": 100
        }

    AGENT_RELAY_COMMAND: agent executable (default "claude")
    AGENT_RELAY_ARGS: agent arguments, shell-style quoting
    AGENT_RELAY_COMPLETION_SIGNAL: substring marking the agent as finished
        - default "<promise>COMPLETE</promise>"

    AGENT_RELAY_TIMEOUT: run timeout in seconds (default 3600)
    AGENT_RELAY_MAX_ITERATIONS: iteration cap shown on the dashboard (default 100)

    AGENT_RELAY_DRY_RUN: skip spawning, return a canned result
        - true/1/yes/on = on
        - false/0/no/off = off (default)

    AGENT_RELAY_TERM_TIMEOUT: seconds to wait after SIGTERM (default 2.0)
    AGENT_RELAY_KILL_TIMEOUT: seconds to wait after SIGKILL (default 1.0)

    AGENT_RELAY_LOG_DEBUG: write DEBUG logs to a temp file instead of stderr
"""

from __future__ import annotations

import json
import os
import shlex
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import ConfigError

__all__ = [
    "AgentConfig",
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "DEFAULT_COMPLETION_SIGNAL",
]

DEFAULT_COMMAND = "claude"
DEFAULT_ARGS = ("--dangerously-skip-permissions", "--print")
DEFAULT_COMPLETION_SIGNAL = "<promise>COMPLETE</promise>"
DEFAULT_TIMEOUT_SECONDS = 3600
DEFAULT_MAX_ITERATIONS = 100
DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0

ENV_PREFIX = "AGENT_RELAY_"


@dataclass
class AgentConfig:
    """How to launch the agent.

    Attributes:
        command: Executable to run
        args: Arguments passed to the executable
        completion_signal: Substring whose presence in output marks completion
    """

    command: str = DEFAULT_COMMAND
    args: list[str] = field(default_factory=lambda: list(DEFAULT_ARGS))
    completion_signal: str = DEFAULT_COMPLETION_SIGNAL


@dataclass
class Config:
    """agent-relay configuration.

    Attributes:
        agent: Agent launch settings
        timeout_seconds: Wall-clock limit for one run
        max_iterations: Iteration cap reported to the dashboard
        dry_run: Return canned results without spawning
        term_timeout: Grace period after SIGTERM before SIGKILL
        kill_timeout: Wait after SIGKILL before giving up
        log_debug: Write DEBUG logs to a temp file
        log_file: Log file path (set when log_debug is on)
    """

    agent: AgentConfig = field(default_factory=AgentConfig)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    dry_run: bool = False
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(command={self.agent.command}, "
            f"args={self.agent.args}, "
            f"completion_signal={self.agent.completion_signal!r}, "
            f"timeout_seconds={self.timeout_seconds}, "
            f"max_iterations={self.max_iterations}, "
            f"dry_run={self.dry_run}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(
    value: str | None,
    default: float,
    minimum: float,
    maximum: float,
) -> float:
    """Parse a float, clamped to [minimum, maximum]; invalid values give default."""
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return max(minimum, min(parsed, maximum))


def _parse_int(value: str | None, default: int, minimum: int = 1) -> int:
    if not value:
        return default
    try:
        return max(minimum, int(value))
    except ValueError:
        return default


def _parse_args(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    try:
        return shlex.split(value)
    except ValueError:
        return default


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp dir."""
    log_dir = Path(tempfile.gettempdir()) / "agent-relay"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"relay_debug_{timestamp}.log"

    return str(log_file.resolve())


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read the JSON config file.

    Raises:
        ConfigError: If the file cannot be read or is not a JSON object
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _apply_file(config: Config, data: dict[str, Any]) -> None:
    """Merge config file values over the defaults."""
    agent = data.get("agent")
    if isinstance(agent, dict):
        if isinstance(agent.get("command"), str):
            config.agent.command = agent["command"]
        if isinstance(agent.get("args"), list):
            config.agent.args = [str(a) for a in agent["args"]]
        if isinstance(agent.get("completion_signal"), str):
            config.agent.completion_signal = agent["completion_signal"]

    timeout = data.get("timeout_seconds")
    if isinstance(timeout, (int, float)) and timeout > 0:
        config.timeout_seconds = float(timeout)

    max_iterations = data.get("max_iterations")
    if isinstance(max_iterations, int) and max_iterations > 0:
        config.max_iterations = max_iterations


def load_config(config_file: str | Path | None = None) -> Config:
    """Load configuration from defaults, a JSON file and the environment.

    Args:
        config_file: JSON config path (defaults to $AGENT_RELAY_CONFIG)

    Raises:
        ConfigError: If the config file is unreadable or invalid
    """
    env = os.environ
    config = Config()

    path = config_file or env.get(f"{ENV_PREFIX}CONFIG")
    if path:
        _apply_file(config, _read_config_file(Path(path)))

    config.agent.command = env.get(f"{ENV_PREFIX}COMMAND") or config.agent.command
    config.agent.args = _parse_args(env.get(f"{ENV_PREFIX}ARGS"), config.agent.args)
    config.agent.completion_signal = (
        env.get(f"{ENV_PREFIX}COMPLETION_SIGNAL") or config.agent.completion_signal
    )
    config.timeout_seconds = _parse_float(
        env.get(f"{ENV_PREFIX}TIMEOUT"), config.timeout_seconds, 0.1, 86400.0
    )
    config.max_iterations = _parse_int(
        env.get(f"{ENV_PREFIX}MAX_ITERATIONS"), config.max_iterations
    )
    config.dry_run = _parse_bool(env.get(f"{ENV_PREFIX}DRY_RUN"), default=False)
    config.term_timeout = _parse_float(
        env.get(f"{ENV_PREFIX}TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, 0.1, 60.0
    )
    config.kill_timeout = _parse_float(
        env.get(f"{ENV_PREFIX}KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, 0.1, 60.0
    )

    config.log_debug = _parse_bool(env.get(f"{ENV_PREFIX}LOG_DEBUG"), default=False)
    config.log_file = _generate_log_file_path() if config.log_debug else None

    return config


# Global config instance (lazy)
_config: Config | None = None


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the global config (used by tests)."""
    global _config
    _config = load_config()
    return _config
