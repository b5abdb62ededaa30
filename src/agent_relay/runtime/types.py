"""Run input and result types.

RunOptions is immutable once handed to the ProcessRunner; ExecutionResult
is produced exactly once per run and never modified afterwards.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..config import Config

__all__ = [
    "OutputCallback",
    "RunOptions",
    "ExecutionResult",
    "DRY_RUN_OUTPUT",
]

# Per-line output callback (stdout or stderr)
OutputCallback = Callable[[str], None]

DRY_RUN_OUTPUT = "[DRY RUN] Would execute agent"


@dataclass(frozen=True)
class RunOptions:
    """Options for one agent run.

    Attributes:
        command: Agent executable
        args: Arguments for the executable
        cwd: Working directory for the agent
        prompt: Text written to the agent's stdin
        timeout: Wall-clock limit in seconds for reading output and waiting
        completion_signal: Substring marking the agent's work as finished
        dry_run: Return a canned result without spawning
        env: Environment variables (None = inherit parent)
        on_stdout: Optional callback invoked for each stdout line
        on_stderr: Optional callback invoked for each stderr line
    """

    command: str
    cwd: Path
    prompt: str = ""
    args: tuple[str, ...] = ()
    timeout: float = 3600.0
    completion_signal: str = ""
    dry_run: bool = False
    env: Mapping[str, str] | None = None
    on_stdout: OutputCallback | None = field(default=None, compare=False)
    on_stderr: OutputCallback | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        if isinstance(self.cwd, str):
            object.__setattr__(self, "cwd", Path(self.cwd))
        if not isinstance(self.args, tuple):
            object.__setattr__(self, "args", tuple(self.args))

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]

    @classmethod
    def from_config(
        cls,
        config: Config,
        cwd: Path | str,
        prompt: str,
        *,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
    ) -> RunOptions:
        """Build run options from the loaded configuration."""
        return cls(
            command=config.agent.command,
            args=tuple(config.agent.args),
            cwd=Path(cwd),
            prompt=prompt,
            timeout=config.timeout_seconds,
            completion_signal=config.agent.completion_signal,
            dry_run=config.dry_run,
            on_stdout=on_stdout,
            on_stderr=on_stderr,
        )


@dataclass(frozen=True)
class ExecutionResult:
    """Result of one agent run.

    Attributes:
        success: Exit code 0 and completion signal detected
        output: stdout followed by stderr (partial on timeout)
        timed_out: The run hit its timeout and the agent was terminated
        exit_code: Process exit code (None when timed out)
        completion_detected: The completion signal was found in the output
        duration_sec: Wall-clock duration of the run
    """

    success: bool
    output: str = ""
    timed_out: bool = False
    exit_code: int | None = None
    completion_detected: bool = False
    duration_sec: float = 0.0

    @classmethod
    def dry_run(cls) -> ExecutionResult:
        """Canned result returned in dry-run mode."""
        return cls(
            success=True,
            output=DRY_RUN_OUTPUT,
            timed_out=False,
            exit_code=0,
            completion_detected=True,
        )

    @classmethod
    def timeout(cls, partial_output: str = "", duration_sec: float = 0.0) -> ExecutionResult:
        """Result for a run that hit its timeout."""
        return cls(
            success=False,
            output=partial_output,
            timed_out=True,
            exit_code=None,
            completion_detected=False,
            duration_sec=duration_sec,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        result: dict[str, Any] = {
            "success": self.success,
            "output": self.output,
            "timed_out": self.timed_out,
            "completion_detected": self.completion_detected,
            "duration_sec": round(self.duration_sec, 3),
        }
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        return result
