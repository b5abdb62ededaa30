"""Run bookkeeping for run_agents.

Each run either starts as a task or is rejected before it starts. Once
every task has settled, ``RunRegistry.wait`` reports one outcome per run,
in the order the runs were added: the ExecutionResult, the error that
ended the run, or RunInterrupted for a cancelled run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from .errors import RunInterrupted
from .runtime import ExecutionResult

__all__ = ["RunRegistry", "RunHandle", "RunOutcome"]

logger = logging.getLogger(__name__)

# Per-run outcome: a result, or the error that prevented one
RunOutcome = ExecutionResult | BaseException


@dataclass
class RunHandle:
    """A started run and the task executing it."""

    run_id: str
    task: asyncio.Task[ExecutionResult]
    started_at: float = field(default_factory=time.monotonic)

    def outcome(self) -> RunOutcome:
        """Outcome of a settled run; a cancelled run maps to RunInterrupted."""
        if self.task.cancelled():
            return RunInterrupted(f"Run {self.run_id} interrupted")
        error = self.task.exception()
        if error is not None:
            return error
        return self.task.result()


class RunRegistry:
    """Started and rejected runs, keyed by run id.

    Must be used from the event loop that owns the tasks; ``cancel_all``
    is safe to call from a loop signal handler.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RunHandle | BaseException] = {}

    def _check_new(self, run_id: str) -> None:
        if run_id in self._entries:
            raise ValueError(f"Run {run_id} already added")

    def start(
        self,
        run_id: str,
        coro: Coroutine[Any, Any, ExecutionResult],
    ) -> RunHandle:
        """Start ``coro`` as the task for ``run_id``.

        Raises:
            ValueError: If ``run_id`` was already added
        """
        self._check_new(run_id)
        task = asyncio.create_task(coro, name=f"run-{run_id}")
        handle = RunHandle(run_id=run_id, task=task)
        self._entries[run_id] = handle
        logger.debug(f"Started run {run_id}")
        return handle

    def reject(self, run_id: str, error: BaseException) -> None:
        """Record a run that was refused before starting."""
        self._check_new(run_id)
        self._entries[run_id] = error
        logger.debug(f"Rejected run {run_id}: {error}")

    def cancel_all(self) -> int:
        """Cancel every unfinished run. Returns the number cancelled."""
        cancelled = 0
        for entry in self._entries.values():
            if isinstance(entry, RunHandle) and not entry.task.done():
                entry.task.cancel()
                cancelled += 1
        if cancelled:
            logger.info(f"Interrupting {cancelled} active run(s)")
        return cancelled

    async def wait(self) -> dict[str, RunOutcome]:
        """Wait for every started run, then return all outcomes."""
        tasks = [e.task for e in self._entries.values() if isinstance(e, RunHandle)]
        await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: dict[str, RunOutcome] = {}
        for run_id, entry in self._entries.items():
            outcomes[run_id] = entry.outcome() if isinstance(entry, RunHandle) else entry
        return outcomes
