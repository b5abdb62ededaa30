"""Agent process execution."""

from .process_runner import IS_WINDOWS, ProcessRunner
from .types import DRY_RUN_OUTPUT, ExecutionResult, OutputCallback, RunOptions

__all__ = [
    "IS_WINDOWS",
    "ProcessRunner",
    "RunOptions",
    "ExecutionResult",
    "OutputCallback",
    "DRY_RUN_OUTPUT",
]
