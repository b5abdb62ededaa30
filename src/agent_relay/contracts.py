"""Collaborator interfaces consumed by agent-relay.

These are implemented outside this package: workflow validation and
result persistence live with the workflow layer.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .runtime.types import ExecutionResult

__all__ = ["WorkflowChecker", "ResultSink"]


@runtime_checkable
class WorkflowChecker(Protocol):
    """Checks that a run may start.

    ``check`` raises (any exception) when the run's workflow state does not
    allow it to start; the run is then not launched.
    """

    def check(self, run_id: str) -> None: ...


@runtime_checkable
class ResultSink(Protocol):
    """Receives each run's ExecutionResult, e.g. to persist it."""

    def save(self, run_id: str, result: ExecutionResult) -> None: ...
