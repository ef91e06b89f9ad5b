"""Error definitions for appbundle.

Every error carries a stable ``code`` for programmatic handling and for
the JSON run report. All build errors are fatal for the current run;
nothing here is retried.
"""

from __future__ import annotations

from typing import Any

# Error code constants
SOURCE_UNAVAILABLE = "source_unavailable"
SUB_BUILD_FAILED = "sub_build_failed"
TOOL_MISSING = "tool_missing"
INVALID_GRAPH = "invalid_graph"
LOCK_TIMEOUT = "lock_timeout"
BUILD_ERROR = "build_error"


class BuildError(Exception):
    """Base error for orchestration failures."""

    def __init__(self, message: str, code: str = BUILD_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"code": self.code, "message": self.message}


class SourceUnavailableError(BuildError):
    """A nested source tree or required source file could not be materialized."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message, code=SOURCE_UNAVAILABLE)
        self.path = path
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.path is not None:
            result["path"] = self.path
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        return result


class SubBuildFailureError(BuildError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        command: str | None = None,
        output: str = "",
        log_path: str | None = None,
    ) -> None:
        super().__init__(message, code=SUB_BUILD_FAILED)
        self.exit_code = exit_code
        self.command = command
        self.output = output
        self.log_path = log_path

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["exit_code"] = self.exit_code
        if self.command is not None:
            result["command"] = self.command
        if self.log_path is not None:
            result["log_path"] = self.log_path
        return result


class ToolMissingError(BuildError):
    """A required external utility is not installed or not on PATH."""

    def __init__(self, tool: str, hint: str | None = None) -> None:
        message = f"Required tool not found: {tool}"
        super().__init__(message, code=TOOL_MISSING)
        self.tool = tool
        self.hint = hint or f"Install {tool} or fix PATH."

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["tool"] = self.tool
        result["hint"] = self.hint
        return result


class GraphError(BuildError):
    """The step graph is malformed or a target is unknown."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code=INVALID_GRAPH)


class LockTimeoutError(BuildError):
    """An artifact lock could not be acquired in time."""

    def __init__(self, name: str, timeout: float) -> None:
        super().__init__(
            f"Timeout waiting for artifact lock '{name}' after {timeout}s",
            code=LOCK_TIMEOUT,
        )
        self.name = name
        self.timeout = timeout


__all__ = [
    "BUILD_ERROR",
    "INVALID_GRAPH",
    "LOCK_TIMEOUT",
    "SOURCE_UNAVAILABLE",
    "SUB_BUILD_FAILED",
    "TOOL_MISSING",
    "BuildError",
    "GraphError",
    "LockTimeoutError",
    "SourceUnavailableError",
    "SubBuildFailureError",
    "ToolMissingError",
]
