"""Orchestrator: named targets over the step graphs.

This module provides:
- The target table (prebuild, build, dev, format, check, precommit)
- run(): execute a target fail-fast and return a RunReport
- plan(): dry-run staleness evaluation for a target
- status(): artifact and submodule state

Artifact targets run on the artifact graph; format/check/precommit run on a
separate maintenance graph whose steps have no outputs and always run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict

from appbundle.config import Settings
from appbundle.errors import BuildError, GraphError
from appbundle.host import PlatformVariant, variant_for
from appbundle.steps.definitions import (
    ARTIFACT_STEPS,
    CLIPPY,
    DEV,
    FMT,
    PACKAGE,
    build_maintenance_steps,
    build_steps,
)
from appbundle.steps.executor import StepExecutor
from appbundle.steps.graph import DependencyGraph
from appbundle.steps.models import StepContext, StepResult
from appbundle.steps.runner import CommandRunner
from appbundle.store import ArtifactStore
from appbundle.submodules import SubmoduleResolver
from appbundle.types import StepStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Target:
    """A named entry point.

    Attributes:
        name: Target name as used on the command line.
        graph: Which graph the steps live in.
        steps: Step ids to reach, in order.
        description: Help text.
    """

    name: str
    graph: Literal["artifact", "maintenance"]
    steps: tuple[str, ...]
    description: str


TARGETS: dict[str, Target] = {
    t.name: t
    for t in (
        Target(
            "prebuild",
            "artifact",
            ARTIFACT_STEPS,
            "Produce the web UI bundle, icon and backend executable",
        ),
        Target("build", "artifact", (PACKAGE,), "Prebuild, then bundle installers"),
        Target("dev", "artifact", (DEV,), "Prebuild, then run in development mode"),
        Target("format", "maintenance", (FMT,), "Format the app crate"),
        Target("check", "maintenance", (CLIPPY,), "Type-check and lint the app crate"),
        Target("precommit", "maintenance", (FMT, CLIPPY), "Format, then check"),
    )
}


class StepReport(BaseModel):
    """Serializable outcome of one step."""

    model_config = ConfigDict(extra="forbid")

    step_id: str
    status: StepStatus
    reason: str | None = None
    duration: float = 0.0
    error_code: str | None = None
    message: str | None = None
    exit_code: int | None = None
    output: str = ""

    @classmethod
    def from_result(cls, result: StepResult) -> StepReport:
        return cls(
            step_id=result.step_id,
            status=result.status,
            reason=result.reason,
            duration=round(result.duration, 3),
            error_code=result.error_code,
            message=result.message,
            exit_code=result.exit_code,
            output=result.output,
        )


class RunReport(BaseModel):
    """Result of running a target.

    Attributes:
        target: Target name.
        success: Whether every step succeeded or was skipped.
        steps: Per-step reports in run order; steps after a failure are absent.
        failed_step: Id of the step that failed, if any.
        exit_code: Process exit code to propagate (0 on success).
    """

    model_config = ConfigDict(extra="forbid")

    target: str
    success: bool
    steps: list[StepReport]
    failed_step: str | None = None
    exit_code: int = 0

    @property
    def failure(self) -> StepReport | None:
        for step in self.steps:
            if step.status is StepStatus.FAILED:
                return step
        return None


class PlanEntry(BaseModel):
    """One step of a dry-run plan."""

    model_config = ConfigDict(extra="forbid")

    step_id: str
    description: str
    will_run: bool
    reason: str | None = None


class ArtifactReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str
    producer: str
    consumers: list[str]
    exists: bool
    is_dir: bool


class SubmoduleReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str
    revision: str
    state: str
    describe: str | None = None


class StatusReport(BaseModel):
    """Snapshot of the project's build state."""

    model_config = ConfigDict(extra="forbid")

    project_root: str
    platform: str
    target_triple: str | None
    artifacts: list[ArtifactReport]
    submodules: list[SubmoduleReport]


class Orchestrator:
    """Runs targets for one project.

    Args:
        settings: Effective settings.
        runner: Command runner (defaults to one logging under the state dir).
        variant: Platform command variant (defaults to the configured or
            detected host platform).
    """

    def __init__(
        self,
        settings: Settings,
        runner: CommandRunner | None = None,
        variant: PlatformVariant | None = None,
    ) -> None:
        self.settings = settings
        self.store = ArtifactStore(settings.project_root, settings.state_dir)
        self.runner = runner or CommandRunner(
            log_dir=self.store.log_dir, echo=settings.echo_output
        )
        self.resolver = SubmoduleResolver(settings.project_root, self.runner)
        self.variant = variant or variant_for(settings.platform)
        self.ctx = StepContext(
            settings=settings,
            store=self.store,
            runner=self.runner,
            resolver=self.resolver,
            variant=self.variant,
        )
        self.graph = DependencyGraph(build_steps(settings))
        self.maintenance = DependencyGraph(build_maintenance_steps(settings))

    def _target(self, name: str) -> tuple[Target, DependencyGraph]:
        try:
            target = TARGETS[name]
        except KeyError:
            raise GraphError(
                f"Unknown target: {name}. Known targets: {', '.join(TARGETS)}"
            ) from None
        graph = self.graph if target.graph == "artifact" else self.maintenance
        return target, graph

    def run(self, name: str, parallel: bool | None = None) -> RunReport:
        """Run a target, stopping at the first failed step.

        Args:
            name: Target name.
            parallel: Override the configured execution mode.

        Returns:
            RunReport for the run.

        Raises:
            GraphError: If the target is unknown.
        """
        target, graph = self._target(name)
        if parallel is None:
            parallel = self.settings.parallel

        logger.info(
            "Target %s on %s (%s)",
            target.name,
            self.variant.platform.value,
            "parallel" if parallel else "sequential",
        )
        results = graph.run(
            target.steps,
            StepExecutor(self.ctx),
            parallel=parallel,
            max_workers=self.settings.max_workers,
        )

        failed = next((r for r in results if not r.ok), None)
        exit_code = 0
        if failed is not None:
            exit_code = failed.exit_code or 1
            logger.error("Target %s failed at step %s", target.name, failed.step_id)
        else:
            ran = sum(1 for r in results if r.status is StepStatus.SUCCEEDED)
            logger.info(
                "Target %s complete: %d ran, %d up to date",
                target.name,
                ran,
                len(results) - ran,
            )

        return RunReport(
            target=target.name,
            success=failed is None,
            steps=[StepReport.from_result(r) for r in results],
            failed_step=failed.step_id if failed else None,
            exit_code=exit_code,
        )

    def prebuild(self) -> RunReport:
        return self.run("prebuild")

    def build(self) -> RunReport:
        return self.run("build")

    def dev(self) -> RunReport:
        return self.run("dev")

    def format(self) -> RunReport:
        return self.run("format")

    def check(self) -> RunReport:
        return self.run("check")

    def precommit(self) -> RunReport:
        return self.run("precommit")

    def plan(self, name: str) -> list[PlanEntry]:
        """Report which steps of a target would run, without running them."""
        target, graph = self._target(name)
        return [
            PlanEntry(
                step_id=step.id,
                description=step.description,
                will_run=reason is not None,
                reason=reason,
            )
            for step, reason in graph.plan(target.steps, self.ctx)
        ]

    def status(self) -> StatusReport:
        """Describe artifacts, submodules and the host target triple.

        Toolchain and git lookups that fail are reported as unknown
        instead of failing the whole status query.
        """
        try:
            triple: str | None = self.ctx.target_triple()
        except BuildError as e:
            logger.warning("Target triple unavailable: %s", e)
            triple = None

        try:
            submodules = self.resolver.status()
        except BuildError as e:
            logger.warning("Submodule status unavailable: %s", e)
            submodules = []

        return StatusReport(
            project_root=str(self.settings.project_root),
            platform=self.variant.platform.value,
            target_triple=triple,
            artifacts=[
                ArtifactReport(
                    path=a.path,
                    producer=a.producer,
                    consumers=a.consumers,
                    exists=a.exists,
                    is_dir=a.is_dir,
                )
                for a in self.graph.artifacts(self.ctx)
            ],
            submodules=[
                SubmoduleReport(
                    path=s.path,
                    revision=s.revision,
                    state=s.state.value,
                    describe=s.describe,
                )
                for s in submodules
            ],
        )


__all__ = [
    "TARGETS",
    "Orchestrator",
    "PlanEntry",
    "RunReport",
    "StatusReport",
    "StepReport",
    "Target",
]
