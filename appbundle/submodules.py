"""Submodule resolver.

This module provides:
- ensure(): make sure a nested source tree is checked out
- status(): list submodules with their pinned revisions

Materialization always runs ``git submodule update --init --recursive`` for
the whole repository, not only the requested path.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from appbundle.errors import SourceUnavailableError, SubBuildFailureError
from appbundle.types import SubmoduleState

if TYPE_CHECKING:
    from appbundle.steps.runner import CommandRunner

logger = logging.getLogger(__name__)

UPDATE_COMMAND = ["git", "submodule", "update", "--init", "--recursive"]
STATUS_COMMAND = ["git", "submodule", "status", "--recursive"]

_STATE_PREFIXES = {
    " ": SubmoduleState.INITIALIZED,
    "-": SubmoduleState.UNINITIALIZED,
    "+": SubmoduleState.OUT_OF_DATE,
    "U": SubmoduleState.CONFLICT,
}


@dataclass
class SubmoduleRef:
    """A submodule pinned by the top-level repository.

    Attributes:
        path: Path relative to the repository root.
        revision: Pinned (or checked-out, when out of date) commit SHA.
        state: Checkout state.
        describe: Output of ``git describe`` for the revision, if any.
    """

    path: str
    revision: str
    state: SubmoduleState
    describe: str | None = None


def parse_submodule_status(output: str) -> list[SubmoduleRef]:
    """Parse ``git submodule status`` output.

    Each line is ``<state><sha> <path>[ (<describe>)]`` where state is a
    space, ``-``, ``+`` or ``U``.

    Args:
        output: Command output.

    Returns:
        List of SubmoduleRef in output order.
    """
    refs: list[SubmoduleRef] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        state = _STATE_PREFIXES.get(line[0], SubmoduleState.INITIALIZED)
        fields = line[1:].strip().split(" ", 2)
        if len(fields) < 2:
            logger.debug("Skipping unparseable submodule status line: %r", line)
            continue
        describe = None
        if len(fields) == 3:
            describe = fields[2].strip().removeprefix("(").removesuffix(")")
        refs.append(
            SubmoduleRef(
                path=fields[1],
                revision=fields[0],
                state=state,
                describe=describe,
            )
        )
    return refs


class SubmoduleResolver:
    """Materializes nested source trees on demand.

    Args:
        repo_root: Root of the top-level git repository.
        runner: Command runner used for git.
    """

    def __init__(self, repo_root: Path, runner: CommandRunner) -> None:
        self.repo_root = repo_root
        self.runner = runner
        self._lock = threading.Lock()

    def marker(self, path: str | Path) -> Path:
        """Return the git marker that proves a submodule is checked out."""
        return self.repo_root / path / ".git"

    def is_materialized(self, path: str | Path) -> bool:
        return self.marker(path).exists()

    def ensure(self, path: str | Path) -> bool:
        """Ensure a submodule working tree is present.

        Args:
            path: Submodule path relative to the repository root.

        Returns:
            True if a checkout was performed, False if already present.

        Raises:
            SourceUnavailableError: If git fails or the tree is still missing.
            ToolMissingError: If git is not installed.
        """
        if self.is_materialized(path):
            logger.debug("Submodule already present: %s", path)
            return False

        with self._lock:
            # Another thread may have checked everything out meanwhile
            if self.is_materialized(path):
                return False

            logger.info("Submodule %s missing, initializing all submodules", path)
            try:
                self.runner.run(UPDATE_COMMAND, cwd=self.repo_root, label="submodules")
            except SubBuildFailureError as e:
                raise SourceUnavailableError(
                    f"Failed to update submodules for {path}: {e}",
                    path=str(path),
                    exit_code=e.exit_code,
                ) from e

        if not self.is_materialized(path):
            raise SourceUnavailableError(
                f"Submodule {path} is still missing after update "
                "(not declared in .gitmodules?)",
                path=str(path),
            )
        return True

    def status(self) -> list[SubmoduleRef]:
        """List declared submodules and their pinned revisions."""
        try:
            output = self.runner.capture(STATUS_COMMAND, cwd=self.repo_root)
        except SubBuildFailureError as e:
            raise SourceUnavailableError(
                f"Failed to query submodules: {e}", exit_code=e.exit_code
            ) from e
        return parse_submodule_status(output)


__all__ = [
    "STATUS_COMMAND",
    "UPDATE_COMMAND",
    "SubmoduleRef",
    "SubmoduleResolver",
    "parse_submodule_status",
]
