"""Single-owner state store.

The StateStore owns the GlobalState. Producers (one bridge per run, the
app) put UpdateCommands on a shared queue; exactly one consumer task takes
them off in arrival order and applies each one. Since only that task
mutates the state, no lock is held around it. Readers call ``get_state()``
and receive an independent deep copy.

Example:
    async with StateStore() as store:
        await store.send(SetPhase("implement"))
        await store.join()
        snapshot = store.get_state()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable

from .state import GlobalState, apply_update
from .updates import UpdateCommand

__all__ = ["StateStore", "replay"]

logger = logging.getLogger(__name__)

# Enqueued by close(): stop after draining everything sent before it
_CLOSE = object()


def replay(
    commands: Iterable[UpdateCommand],
    initial: GlobalState | None = None,
) -> GlobalState:
    """Apply ``commands`` in order to a state and return it.

    Synchronous equivalent of running the consumer loop; the state is
    mutated in place and must not be shared.
    """
    state = initial if initial is not None else GlobalState()
    for command in commands:
        apply_update(state, command)
    return state


class StateStore:
    """Actor owning the dashboard's GlobalState.

    Attributes:
        updates: The shared multi-producer update queue
    """

    def __init__(
        self,
        initial: GlobalState | None = None,
        maxsize: int = 0,
    ) -> None:
        """Create the store.

        Args:
            initial: Initial state (default: empty GlobalState)
            maxsize: Update queue bound (0 = unbounded)
        """
        self._state = initial if initial is not None else GlobalState()
        self.updates: asyncio.Queue[UpdateCommand] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task[None] | None = None
        self._applied = 0
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def applied_count(self) -> int:
        """Number of commands applied so far."""
        return self._applied

    async def send(self, command: UpdateCommand) -> None:
        """Queue a command for the consumer."""
        if self._closed:
            logger.debug(f"Store closed, dropping {type(command).__name__}")
            return
        await self.updates.put(command)

    def send_nowait(self, command: UpdateCommand) -> None:
        """Queue a command without waiting.

        Raises:
            asyncio.QueueFull: If the queue is bounded and full
        """
        if self._closed:
            logger.debug(f"Store closed, dropping {type(command).__name__}")
            return
        self.updates.put_nowait(command)

    def start(self) -> asyncio.Task[None]:
        """Start the consumer task (idempotent)."""
        if self._task is None or self._task.done():
            self._closed = False
            self._task = asyncio.create_task(self.run(), name="state-store")
        return self._task

    async def run(self) -> None:
        """Consumer loop: apply commands one at a time until closed."""
        logger.debug("State store consumer started")
        while True:
            command = await self.updates.get()
            try:
                if command is _CLOSE:
                    break
                apply_update(self._state, command)
                self._applied += 1
            except Exception as e:
                # one bad command must not stop the consumer
                logger.warning(f"Failed to apply {type(command).__name__}: {e}")
            finally:
                self.updates.task_done()
        logger.debug(f"State store consumer exited after {self._applied} update(s)")

    async def join(self) -> None:
        """Wait until every command queued so far has been applied."""
        await self.updates.join()

    async def close(self) -> None:
        """Apply everything already queued, then stop the consumer."""
        if self._closed:
            return
        self._closed = True
        if self._task is None:
            return
        await self.updates.put(_CLOSE)  # type: ignore[arg-type]
        await self._task

    async def stop(self) -> None:
        """Stop the consumer immediately; queued commands are dropped."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    def get_state(self) -> GlobalState:
        """Return an independent snapshot of the current state."""
        return self._state.snapshot()

    async def __aenter__(self) -> StateStore:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
