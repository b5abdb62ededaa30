"""agent-relay application entry.

Wires the pieces together: one StateStore, one bridge task per run, a
RunRegistry for cancellation, and logging setup.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Mapping
from pathlib import Path

from .bridge import run_agent_with_updates
from .config import Config, get_config
from .contracts import ResultSink, WorkflowChecker
from .errors import RelayError, to_exit_code
from .registry import RunOutcome, RunRegistry
from .runtime import ExecutionResult, ProcessRunner, RunOptions
from .state import GlobalState
from .store import StateStore
from .updates import (
    AppendLogs,
    RegisterRun,
    SetCompletedCount,
    SetCurrentRun,
    SetIteration,
    SetMaxIterations,
    SetRunState,
)

__all__ = ["run_agents", "main", "RunOutcome"]

logger = logging.getLogger(__name__)


class _Progress:
    """Completed-run counter owned by run_agents (same event loop, no locking)."""

    def __init__(self) -> None:
        self.completed = 0


def _run_state_label(result: ExecutionResult) -> str:
    if result.success:
        return "done"
    if result.timed_out:
        return "timed_out"
    return "failed"


async def _run_one(
    store: StateStore,
    runner: ProcessRunner,
    options: RunOptions,
    run_id: str,
    progress: _Progress,
    result_sink: ResultSink | None,
) -> ExecutionResult:
    await store.send(SetRunState(run_id, "running"))
    await store.send(SetCurrentRun(run_id))
    try:
        result = await run_agent_with_updates(
            options,
            run_id,
            store.updates,
            runner=runner,
            result_sink=result_sink,
        )
    except RelayError:
        await store.send(SetRunState(run_id, "failed"))
        raise
    except asyncio.CancelledError:
        store.send_nowait(SetRunState(run_id, "interrupted"))
        raise

    await store.send(SetRunState(run_id, _run_state_label(result)))
    if result.success:
        progress.completed += 1
        await store.send(SetCompletedCount(progress.completed))
    return result


def _install_sigint_handler(registry: RunRegistry) -> bool:
    """Cancel active runs on SIGINT instead of killing the process."""
    if sys.platform == "win32":
        return False
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, registry.cancel_all)
    except (NotImplementedError, RuntimeError) as e:
        logger.debug(f"Cannot install SIGINT handler: {e}")
        return False
    return True


async def run_agents(
    config: Config,
    prompts: Mapping[str, str],
    cwd: Path,
    *,
    checker: WorkflowChecker | None = None,
    runner: ProcessRunner | None = None,
    result_sink: ResultSink | None = None,
    handle_sigint: bool = True,
) -> tuple[dict[str, RunOutcome], GlobalState]:
    """Run one agent per prompt concurrently, streaming activity to a store.

    Args:
        config: Loaded configuration
        prompts: run_id -> prompt
        cwd: Working directory for every agent
        checker: Optional workflow checker consulted before each run
        runner: Runner to use (default: built from config)
        result_sink: Optional collaborator receiving each result
        handle_sigint: Cancel active runs on SIGINT

    Returns:
        Tuple of (run_id -> outcome, final state snapshot). A run that was
        interrupted maps to RunInterrupted; a run that failed to start maps
        to its error.
    """
    runner = runner or ProcessRunner(
        term_timeout=config.term_timeout,
        kill_timeout=config.kill_timeout,
    )
    registry = RunRegistry()
    progress = _Progress()

    async with StateStore() as store:
        await store.send(SetMaxIterations(config.max_iterations))
        for run_id in prompts:
            await store.send(RegisterRun(run_id, title=run_id, state="pending"))

        sigint_installed = handle_sigint and _install_sigint_handler(registry)
        try:
            for iteration, (run_id, prompt) in enumerate(prompts.items(), start=1):
                if checker is not None:
                    try:
                        checker.check(run_id)
                    except Exception as e:
                        logger.warning(f"Run {run_id} rejected by workflow check: {e}")
                        registry.reject(run_id, e)
                        await store.send(SetRunState(run_id, "rejected"))
                        continue

                def log_line(line: str, _run_id: str = run_id) -> None:
                    store.send_nowait(AppendLogs((f"[{_run_id}] {line.rstrip()}",)))

                options = RunOptions.from_config(
                    config, cwd, prompt, on_stdout=log_line, on_stderr=log_line
                )
                await store.send(SetIteration(iteration))
                registry.start(
                    run_id, _run_one(store, runner, options, run_id, progress, result_sink)
                )

            outcomes = await registry.wait()
        finally:
            if sigint_installed:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

    return outcomes, store.get_state()


def _configure_logging(config: Config) -> None:
    """stderr at INFO by default; a temp file at DEBUG when log_debug is on."""
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    handler: logging.Handler
    if config.log_debug and config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO
    handler.setFormatter(logging.Formatter(log_format))

    # third-party loggers stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("agent_relay").setLevel(log_level)


def main() -> None:
    """Run a single agent with the prompt read from stdin."""
    try:
        config = get_config()
    except RelayError as e:
        print(f"agent-relay: {e}", file=sys.stderr)
        sys.exit(to_exit_code(e))

    _configure_logging(config)
    logger.info(f"Starting agent-relay: {config}")

    prompt = "" if sys.stdin.isatty() else sys.stdin.read()
    outcomes, state = asyncio.run(run_agents(config, {"agent": prompt}, Path.cwd()))
    outcome = outcomes["agent"]

    activity = state.activity.get("agent")
    if activity is not None:
        logger.info(
            f"Activity: {len(activity.thoughts)} thought(s), {len(activity.tools)} tool call(s)"
        )

    if isinstance(outcome, BaseException):
        logger.error(f"Run failed: {outcome}")
        sys.exit(to_exit_code(outcome))
    if outcome.timed_out:
        logger.error(f"Run timed out after {config.timeout_seconds}s")
        sys.exit(1)
    if not outcome.success:
        logger.error(
            f"Run did not complete: exit_code={outcome.exit_code} "
            f"completion_detected={outcome.completion_detected}"
        )
        sys.exit(1)
    logger.info(f"Run completed in {outcome.duration_sec:.1f}s")


if __name__ == "__main__":
    main()
