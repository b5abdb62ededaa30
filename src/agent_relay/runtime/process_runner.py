"""Agent process runner with timeout and reliable termination.

agent-relay runtime module

This module provides:
- Process isolation (new session on POSIX, new process group on Windows)
- Concurrent stdout/stderr capture with per-line callbacks
- Tagged event extraction from stdout onto a per-run side channel
- A wall-clock timeout over the whole write/read/wait phase
- Graceful-then-forceful termination (SIGTERM -> term_timeout -> SIGKILL)
- Cancel-safe cleanup using asyncio.shield

Key design points:
- Output is stdout followed by stderr, not interleaved by time
- A timeout is a normal result (timed_out=True), never an exception
- Spawn and stdin failures raise; no ExecutionResult is produced
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import anyio

from ..errors import AgentSpawnError, AgentStdinError, AgentWaitError
from ..events import AgentEvent
from ..extractor import extract_events
from .types import ExecutionResult, OutputCallback, RunOptions

__all__ = [
    "ProcessRunner",
    "IS_WINDOWS",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL
DEFAULT_STREAM_LIMIT = 8 * 1024 * 1024  # max line length for StreamReader


class _OutputBuffer:
    """Text accumulated from one stream; readable after cancellation."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def append(self, text: str) -> None:
        self._parts.append(text)

    def text(self) -> str:
        return "".join(self._parts)


@dataclass
class ProcessRunner:
    """Runs one agent process per call and reports an ExecutionResult.

    Example:
        runner = ProcessRunner()
        options = RunOptions(
            command="claude",
            args=("--print",),
            cwd=Path("/workspace"),
            prompt="Implement the next story",
            timeout=600,
            completion_signal="<promise>COMPLETE</promise>",
        )
        events: asyncio.Queue[AgentEvent] = asyncio.Queue()
        result = await runner.execute(options, events=events)

    Instances hold configuration only and may run several agents
    concurrently; each call owns its process and its event queue.
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    stream_limit: int = DEFAULT_STREAM_LIMIT

    async def execute(
        self,
        options: RunOptions,
        *,
        events: asyncio.Queue[AgentEvent] | None = None,
    ) -> ExecutionResult:
        """Run the agent described by ``options``.

        Args:
            options: Run options
            events: Optional queue receiving events extracted from stdout,
                in output order

        Returns:
            The run's ExecutionResult (also for timeouts)

        Raises:
            AgentSpawnError: If the process cannot be started
            AgentStdinError: If the prompt cannot be written
            AgentWaitError: If waiting for the process fails
        """
        if options.dry_run:
            logger.info(f"Dry run: not executing {options.command}")
            return ExecutionResult.dry_run()

        start = time.monotonic()
        process = await self._spawn(options)

        stdout_buf = _OutputBuffer()
        stderr_buf = _OutputBuffer()
        readers: list[asyncio.Task[None]] = []

        try:
            readers = [
                asyncio.create_task(
                    self._read_stream(process.stdout, stdout_buf, options.on_stdout, events),
                    name=f"agent-stdout-{process.pid}",
                ),
                asyncio.create_task(
                    self._read_stream(process.stderr, stderr_buf, options.on_stderr, None),
                    name=f"agent-stderr-{process.pid}",
                ),
            ]

            returncode: int | None = None
            with anyio.move_on_after(options.timeout) as scope:
                await self._write_stdin(process, options.prompt)
                await asyncio.gather(*readers)
                returncode = await self._wait(process)

            duration = time.monotonic() - start

            if scope.cancelled_caught or returncode is None:
                # the finally block terminates the process before returning
                logger.warning(
                    f"Agent timed out after {options.timeout}s pid={process.pid}, terminating"
                )
                return ExecutionResult.timeout(
                    partial_output=stdout_buf.text() + stderr_buf.text(),
                    duration_sec=duration,
                )

            output = stdout_buf.text() + stderr_buf.text()
            # an empty signal matches any output
            completion_detected = options.completion_signal in output

            logger.debug(
                f"Agent exited pid={process.pid} returncode={returncode} "
                f"completion_detected={completion_detected}"
            )

            return ExecutionResult(
                success=returncode == 0 and completion_detected,
                output=output,
                timed_out=False,
                exit_code=returncode,
                completion_detected=completion_detected,
                duration_sec=duration,
            )

        finally:
            await self._safe_cleanup(process, readers)

    def _build_subprocess_kwargs(self, options: RunOptions) -> dict[str, Any]:
        """Build platform-specific kwargs for create_subprocess_exec."""
        kwargs: dict[str, Any] = {"limit": self.stream_limit}

        if options.env is not None:
            kwargs["env"] = dict(options.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # own session, so termination reaches the whole process group
            kwargs["start_new_session"] = True

        return kwargs

    async def _spawn(self, options: RunOptions) -> asyncio.subprocess.Process:
        """Start the agent with piped stdin/stdout/stderr."""
        try:
            process = await asyncio.create_subprocess_exec(
                *options.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=options.cwd,
                **self._build_subprocess_kwargs(options),
            )
        except (OSError, ValueError) as e:
            raise AgentSpawnError(options.command, str(e)) from e

        logger.debug(
            f"Started agent pid={process.pid} "
            f"argv={options.argv[0]} cwd={options.cwd}"
        )
        return process

    async def _write_stdin(
        self,
        process: asyncio.subprocess.Process,
        prompt: str,
    ) -> None:
        """Write the prompt and close stdin to signal end of input.

        A child that exits without reading its input is not an error.
        """
        stdin = process.stdin
        if stdin is None:
            return
        try:
            if prompt:
                stdin.write(prompt.encode("utf-8"))
                await stdin.drain()
            stdin.close()
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug(f"Agent closed stdin early pid={process.pid}")
        except OSError as e:
            raise AgentStdinError(str(e)) from e

    async def _read_stream(
        self,
        stream: asyncio.StreamReader | None,
        buffer: _OutputBuffer,
        callback: OutputCallback | None,
        events: asyncio.Queue[AgentEvent] | None,
    ) -> None:
        """Read one stream line by line until EOF."""
        if stream is None:
            return

        while True:
            try:
                raw = await stream.readline()
            except ValueError as e:
                # line exceeded stream_limit; the oversized line is discarded
                logger.debug(f"Skipping oversized output line: {e}")
                continue
            if not raw:
                break

            line = raw.decode("utf-8", errors="replace")
            buffer.append(line)

            if callback is not None:
                try:
                    callback(line)
                except Exception as e:
                    logger.warning(f"Output callback raised: {e}")

            if events is not None:
                for event in extract_events(line):
                    await events.put(event)

    async def _wait(self, process: asyncio.subprocess.Process) -> int:
        try:
            return await process.wait()
        except OSError as e:
            raise AgentWaitError(str(e)) from e

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process,
        readers: Sequence[asyncio.Task[None]],
    ) -> None:
        """Cleanup shielded from cancellation of the calling task."""
        try:
            await asyncio.shield(self._do_cleanup(process, readers))
        except asyncio.CancelledError:
            # shield was cancelled; finish cleanup, then propagate
            await self._do_cleanup(process, readers)
            raise

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process,
        readers: Sequence[asyncio.Task[None]],
    ) -> None:
        for task in readers:
            if not task.done():
                task.cancel()
        for task in readers:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Reader task failed: {e}")

        if process.returncode is None:
            await self._terminate(process)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate gracefully, then forcefully if needed.

        1. SIGTERM to the process group (CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout
        3. SIGKILL to the process group (kill() on Windows)
        4. Wait up to kill_timeout
        """
        pid = process.pid
        logger.debug(f"Terminating agent pid={pid}")

        try:
            self._signal(process, hard=False)
            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(f"Agent terminated pid={pid} returncode={process.returncode}")
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"SIGTERM ignored, killing agent pid={pid}")
            self._signal(process, hard=True)
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(f"Agent killed pid={pid} returncode={process.returncode}")
            except asyncio.TimeoutError:
                logger.warning(f"Agent did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Agent already exited pid={pid}")
        except Exception as e:
            logger.warning(f"Error terminating agent pid={pid}: {e}")

    def _signal(self, process: asyncio.subprocess.Process, *, hard: bool) -> None:
        """Send a soft or hard termination signal to the process group."""
        if IS_WINDOWS:
            if hard:
                process.kill()
                return
            try:
                os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            except OSError as e:
                logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
                process.terminate()
            return

        sig = signal.SIGKILL if hard else signal.SIGTERM
        try:
            os.killpg(os.getpgid(process.pid), sig)
            logger.debug(f"Sent {sig.name} to process group of pid={process.pid}")
        except ProcessLookupError:
            raise
        except OSError as e:
            logger.debug(f"killpg failed, signalling pid only: {e}")
            process.send_signal(sig)
