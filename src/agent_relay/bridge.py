"""Bridge between one agent run and the shared state store.

The ProcessRunner knows nothing about the store: it puts extracted events
on a per-run queue. For the lifetime of the run a forwarder task takes them
off that queue, tags them with the run id, and puts them on the store's
shared update queue.

Once the run's result is available the forwarder gets a short grace period
to drain, then is cancelled; events still in flight after that are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time

import anyio

from .contracts import ResultSink
from .errors import AgentError
from .events import AgentEvent, GenericError, RunFinished
from .runtime import ExecutionResult, ProcessRunner, RunOptions
from .updates import AgentUpdate, UpdateCommand

__all__ = ["run_agent_with_updates", "EVENT_QUEUE_SIZE", "DEFAULT_GRACE_PERIOD"]

logger = logging.getLogger(__name__)

EVENT_QUEUE_SIZE = 100
DEFAULT_GRACE_PERIOD = 0.1  # seconds to let the forwarder drain


async def _forward_events(
    run_id: str,
    events: asyncio.Queue[AgentEvent],
    updates: asyncio.Queue[UpdateCommand],
) -> None:
    """Forward run events to the update queue, in order, until cancelled."""
    while True:
        event = await events.get()
        try:
            await updates.put(AgentUpdate(run_id=run_id, event=event, timestamp=time.time()))
        finally:
            events.task_done()


async def _drain_and_cancel(
    forwarder: asyncio.Task[None],
    events: asyncio.Queue[AgentEvent],
    grace_period: float,
) -> None:
    if grace_period > 0 and not forwarder.done():
        with anyio.move_on_after(grace_period) as scope:
            await events.join()
        if scope.cancelled_caught:
            logger.debug(f"Dropping {events.qsize()} undelivered event(s)")

    forwarder.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await forwarder


async def run_agent_with_updates(
    options: RunOptions,
    run_id: str,
    updates: asyncio.Queue[UpdateCommand],
    *,
    runner: ProcessRunner | None = None,
    grace_period: float = DEFAULT_GRACE_PERIOD,
    result_sink: ResultSink | None = None,
) -> ExecutionResult:
    """Run an agent and stream its activity to the state store.

    After the run, a GenericError update is published if it timed out,
    followed by a RunFinished update. Dry runs publish nothing.

    Args:
        options: Run options
        run_id: Identity attached to every forwarded event
        updates: The store's shared update queue (``StateStore.updates``)
        runner: Runner to use (default: a new ProcessRunner)
        grace_period: Seconds to let in-flight events drain after the run
        result_sink: Optional collaborator receiving the result

    Returns:
        The run's ExecutionResult

    Raises:
        AgentError: Spawn, stdin or wait failure; a GenericError update is
            published before re-raising
    """
    runner = runner or ProcessRunner()
    events: asyncio.Queue[AgentEvent] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)
    forwarder = asyncio.create_task(
        _forward_events(run_id, events, updates),
        name=f"bridge-{run_id}",
    )

    try:
        result = await runner.execute(options, events=events)
    except AgentError as e:
        logger.error(f"Run {run_id} failed: {e}")
        await _drain_and_cancel(forwarder, events, grace_period)
        await updates.put(AgentUpdate(run_id=run_id, event=GenericError(message=str(e))))
        raise
    except BaseException:
        forwarder.cancel()
        raise

    await _drain_and_cancel(forwarder, events, grace_period)

    if options.dry_run:
        return result

    if result.timed_out:
        await updates.put(
            AgentUpdate(
                run_id=run_id,
                event=GenericError(message=f"Agent timed out after {options.timeout}s"),
            )
        )
    await updates.put(AgentUpdate(run_id=run_id, event=RunFinished()))

    logger.info(
        f"Run {run_id} finished: success={result.success} "
        f"timed_out={result.timed_out} exit_code={result.exit_code}"
    )

    if result_sink is not None:
        result_sink.save(run_id, result)

    return result
