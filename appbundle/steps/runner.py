"""Command runner for external build tools.

This module handles:
- Checking that required tools are on PATH
- Executing commands with subprocess and merged environment overrides
- Teeing stdout/stderr to per-step log files (and optionally the terminal)
- Turning non-zero exits into SubBuildFailureError

Every external process the orchestrator starts goes through CommandRunner,
which keeps the steps testable with a recording fake.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import sys
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from appbundle.errors import SubBuildFailureError, ToolMissingError

logger = logging.getLogger(__name__)

TOOL_HINTS = {
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "git": "Install Git or fix PATH.",
    "make": "Install make (build-essential / Xcode command line tools).",
    "rustc": "Install the Rust toolchain (https://rustup.rs).",
    "cargo": "Install the Rust toolchain (https://rustup.rs).",
}

# Lines of output kept in memory for error reports
DEFAULT_TAIL_LINES = 40


@dataclass
class CommandResult:
    """Result of a finished external command.

    Attributes:
        command: The command that was executed (shell-quoted).
        exit_code: Process exit code.
        output: Last lines of combined stdout/stderr.
        log_path: Log file the output was written to, if any.
        started_at: Start time.
        finished_at: Finish time.
    """

    command: str
    exit_code: int
    output: str
    log_path: Path | None
    started_at: datetime
    finished_at: datetime

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class CommandRunner:
    """Runs external commands on behalf of build steps.

    Args:
        log_dir: Directory for ``<label>.log`` files (None = no log files).
        echo: Echo command output to stdout while it runs.
        tail_lines: Number of trailing output lines kept for error reports.
    """

    def __init__(
        self,
        log_dir: Path | None = None,
        echo: bool = True,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ) -> None:
        self.log_dir = log_dir
        self.echo = echo
        self.tail_lines = tail_lines

    def require(self, tool: str) -> None:
        """Ensure a tool is available.

        Raises:
            ToolMissingError: If the tool cannot be found on PATH.
        """
        if shutil.which(tool) is None:
            raise ToolMissingError(tool, TOOL_HINTS.get(tool))

    def log_path(self, label: str) -> Path | None:
        """Return the log file path for a label, if logging to files."""
        if self.log_dir is None:
            return None
        return self.log_dir / f"{label}.log"

    def reset_log(self, label: str) -> None:
        """Discard the previous log file for a label."""
        path = self.log_path(label)
        if path is not None and path.exists():
            path.unlink()

    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        label: str = "command",
        interactive: bool = False,
    ) -> CommandResult:
        """Execute a command and wait for it to finish.

        Args:
            cmd: Command as list of strings.
            cwd: Working directory.
            env: Environment variable overrides merged over os.environ.
            label: Step id used for the log file name and log messages.
            interactive: Attach the command to the terminal instead of
                capturing its output (long-running dev servers).

        Returns:
            CommandResult for a zero exit.

        Raises:
            ToolMissingError: If the executable cannot be found.
            SubBuildFailureError: If the command exits non-zero or cannot start.
        """
        self.require(cmd[0])

        cmd_str = shlex.join(cmd)
        logger.info("[%s] Executing: %s", label, cmd_str)
        logger.debug("[%s] Working directory: %s", label, cwd)
        if env:
            logger.debug("[%s] Environment overrides: %s", label, env)

        full_env: dict[str, str] | None = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        started_at = datetime.now(timezone.utc)
        log_path = None if interactive else self.log_path(label)

        try:
            if interactive:
                completed = subprocess.run(cmd, cwd=cwd, env=full_env, check=False)
                exit_code = completed.returncode
                output = ""
            else:
                exit_code, output = self._run_captured(
                    cmd, cmd_str, cwd, full_env, log_path, started_at
                )
        except FileNotFoundError as e:
            raise ToolMissingError(cmd[0], TOOL_HINTS.get(cmd[0])) from e
        except OSError as e:
            message = f"Failed to execute {cmd_str}: {e}"
            logger.error("[%s] %s", label, message)
            raise SubBuildFailureError(message, command=cmd_str) from e

        finished_at = datetime.now(timezone.utc)

        if exit_code != 0:
            message = f"Command failed with exit code {exit_code}: {cmd_str}"
            if log_path is not None:
                logger.error("[%s] %s. See log: %s", label, message, log_path)
            else:
                logger.error("[%s] %s", label, message)
            raise SubBuildFailureError(
                message,
                exit_code=exit_code,
                command=cmd_str,
                output=output,
                log_path=str(log_path) if log_path is not None else None,
            )

        return CommandResult(
            command=cmd_str,
            exit_code=exit_code,
            output=output,
            log_path=log_path,
            started_at=started_at,
            finished_at=finished_at,
        )

    def _run_captured(
        self,
        cmd: list[str],
        cmd_str: str,
        cwd: Path,
        env: dict[str, str] | None,
        log_path: Path | None,
        started_at: datetime,
    ) -> tuple[int, str]:
        tail: deque[str] = deque(maxlen=self.tail_lines)
        log_file = None
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_file = log_path.open("a", encoding="utf-8")
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {cwd}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

        try:
            with subprocess.Popen(
                cmd,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            ) as proc:
                assert proc.stdout is not None
                for line in proc.stdout:
                    tail.append(line)
                    if log_file is not None:
                        log_file.write(line)
                    if self.echo:
                        sys.stdout.write(line)
                        sys.stdout.flush()
                exit_code = proc.wait()

            if log_file is not None:
                finished_at = datetime.now(timezone.utc)
                duration = (finished_at - started_at).total_seconds()
                log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
                log_file.write(f"# Exit code: {exit_code}\n")
                log_file.write(f"# Duration: {duration:.1f}s\n\n")
        finally:
            if log_file is not None:
                log_file.close()

        return exit_code, "".join(tail)

    def capture(self, cmd: list[str], *, cwd: Path | None = None) -> str:
        """Run a short introspection command and return its stdout.

        Raises:
            ToolMissingError: If the executable cannot be found.
            SubBuildFailureError: If the command exits non-zero.
        """
        self.require(cmd[0])
        cmd_str = shlex.join(cmd)
        logger.debug("Capturing: %s", cmd_str)

        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolMissingError(cmd[0], TOOL_HINTS.get(cmd[0])) from e

        if result.returncode != 0:
            raise SubBuildFailureError(
                f"Command failed with exit code {result.returncode}: {cmd_str}",
                exit_code=result.returncode,
                command=cmd_str,
                output=result.stderr,
            )
        return result.stdout


__all__ = [
    "DEFAULT_TAIL_LINES",
    "TOOL_HINTS",
    "CommandResult",
    "CommandRunner",
]
