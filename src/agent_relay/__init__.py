"""agent-relay - run coding agents as subprocesses and stream their activity.

Environment variables:
    AGENT_RELAY_COMMAND: Agent executable (default: claude)
    AGENT_RELAY_ARGS: Agent arguments, shell-quoted
    AGENT_RELAY_TIMEOUT: Per-run timeout in seconds (default: 3600)
    AGENT_RELAY_DRY_RUN: Do not spawn agents (default: false)
    AGENT_RELAY_LOG_DEBUG: Write a debug log file (default: false)

Usage:
    echo "Implement the next story" | agent-relay
"""

__version__ = "0.1.0"

from .app import main, run_agents
from .bridge import run_agent_with_updates
from .runtime import ExecutionResult, ProcessRunner, RunOptions
from .store import StateStore

__all__ = [
    "__version__",
    "main",
    "run_agents",
    "run_agent_with_updates",
    "ExecutionResult",
    "ProcessRunner",
    "RunOptions",
    "StateStore",
]
