"""Step data model.

A Step is a named unit of build work with declared outputs, prerequisite
steps, an action and a staleness predicate. Steps are immutable; everything
mutable a step touches travels in the StepContext passed to it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from appbundle.errors import GraphError
from appbundle.host import host_target_triple
from appbundle.types import StepStatus

if TYPE_CHECKING:
    from appbundle.config import Settings
    from appbundle.host import PlatformVariant
    from appbundle.steps.runner import CommandResult, CommandRunner
    from appbundle.store import ArtifactStore
    from appbundle.submodules import SubmoduleResolver

Action = Callable[["Step", "StepContext"], None]
StaleCheck = Callable[["Step", "StepContext"], "str | None"]


@dataclass(frozen=True)
class Step:
    """A unit of build work.

    Attributes:
        id: Unique step identifier.
        action: Callable receiving (step, context) that does the work;
            raises BuildError on failure.
        outputs: Store-relative paths the action writes.
        needs: Prerequisite step ids, in declared order.
        inputs: Glob patterns fingerprinted under the fingerprint policy.
        stale: Staleness predicate returning a reason when the step must
            run, or None when it can be skipped. Defaults to "any output
            missing".
        description: Human-readable summary.
    """

    id: str
    action: Action
    outputs: tuple[str, ...] = ()
    needs: tuple[str, ...] = ()
    inputs: tuple[str, ...] = ()
    stale: StaleCheck | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise GraphError("Step id must not be empty")
        if len(set(self.needs)) != len(self.needs):
            raise GraphError(f"Step '{self.id}' lists a prerequisite twice")
        if self.id in self.needs:
            raise GraphError(f"Step '{self.id}' depends on itself")


@dataclass
class StepContext:
    """Everything a step may use while running.

    Attributes:
        settings: Effective settings.
        store: Artifact store handle.
        runner: Command runner for external processes.
        resolver: Submodule resolver.
        variant: Command variant for the host platform.
    """

    settings: Settings
    store: ArtifactStore
    runner: CommandRunner
    resolver: SubmoduleResolver
    variant: PlatformVariant
    _triple: str | None = field(default=None, repr=False)
    _triple_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def target_triple(self) -> str:
        """Return the host target triple, asking the toolchain once."""
        with self._triple_lock:
            if self._triple is None:
                self._triple = self.settings.target_triple or host_target_triple(
                    self.runner
                )
            return self._triple

    def run(
        self,
        step: Step,
        cmd: list[str],
        cwd: str | Path = ".",
        env: dict[str, str] | None = None,
        interactive: bool = False,
    ) -> CommandResult:
        """Run a command for a step with cwd relative to the project root."""
        return self.runner.run(
            cmd,
            cwd=self.store.path(cwd),
            env=env,
            label=step.id,
            interactive=interactive,
        )


@dataclass
class StepResult:
    """Outcome of executing (or skipping) a step.

    Attributes:
        step_id: Step identifier.
        status: Skipped, succeeded or failed.
        reason: Why the step ran, or why it was skipped.
        duration: Wall-clock seconds spent in the action.
        error_code: BuildError code when failed.
        message: Error message when failed.
        exit_code: Exit code of the failing external command, if any.
        output: Tail of the failing command's output.
    """

    step_id: str
    status: StepStatus
    reason: str | None = None
    duration: float = 0.0
    error_code: str | None = None
    message: str | None = None
    exit_code: int | None = None
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FAILED


__all__ = ["Action", "StaleCheck", "Step", "StepContext", "StepResult"]
