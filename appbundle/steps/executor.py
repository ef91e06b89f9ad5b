"""Step executor.

Runs a single step: evaluates its staleness, runs its action when stale,
records the input fingerprint and converts build errors into a failed
StepResult. Exceptions that are not BuildErrors are bugs and propagate.
"""

from __future__ import annotations

import logging
import time

from appbundle.errors import BuildError
from appbundle.steps.models import Step, StepContext, StepResult
from appbundle.steps.staleness import evaluate
from appbundle.types import StepStatus

logger = logging.getLogger(__name__)


class StepExecutor:
    """Executes steps against one StepContext."""

    def __init__(self, ctx: StepContext) -> None:
        self.ctx = ctx

    def execute(self, step: Step) -> StepResult:
        """Execute a step if it is stale.

        With ``lock_artifacts`` enabled the staleness check and the action
        run under the step's artifact lock, so concurrent processes do not
        both rebuild the same output.

        Args:
            step: Step to execute.

        Returns:
            StepResult describing what happened.
        """
        settings = self.ctx.settings
        if not settings.lock_artifacts:
            return self._execute(step)

        try:
            with self.ctx.store.lock(step.id, timeout=settings.lock_timeout):
                return self._execute(step)
        except BuildError as e:
            logger.error("[%s] %s", step.id, e)
            return StepResult(
                step_id=step.id,
                status=StepStatus.FAILED,
                error_code=e.code,
                message=e.message,
            )

    def _execute(self, step: Step) -> StepResult:
        try:
            reason = evaluate(step, self.ctx)
        except BuildError as e:
            # Predicates may need the toolchain (target triple)
            logger.error("[%s] staleness check failed: %s", step.id, e)
            return StepResult(
                step_id=step.id,
                status=StepStatus.FAILED,
                error_code=e.code,
                message=e.message,
            )

        if reason is None:
            logger.info("[%s] up to date, skipping", step.id)
            return StepResult(
                step_id=step.id, status=StepStatus.SKIPPED, reason="up to date"
            )

        logger.info("[%s] running (%s)", step.id, reason)
        self.ctx.runner.reset_log(step.id)
        started = time.monotonic()

        try:
            step.action(step, self.ctx)
        except BuildError as e:
            duration = time.monotonic() - started
            logger.error("[%s] failed after %.1fs: %s", step.id, duration, e)
            return StepResult(
                step_id=step.id,
                status=StepStatus.FAILED,
                reason=reason,
                duration=duration,
                error_code=e.code,
                message=e.message,
                exit_code=getattr(e, "exit_code", None),
                output=getattr(e, "output", ""),
            )

        duration = time.monotonic() - started
        if step.inputs and self.ctx.settings.staleness_policy == "fingerprint":
            self.ctx.store.write_stamp(step.id, self.ctx.store.fingerprint(step.inputs))

        logger.info("[%s] done in %.1fs", step.id, duration)
        return StepResult(
            step_id=step.id,
            status=StepStatus.SUCCEEDED,
            reason=reason,
            duration=duration,
        )


__all__ = ["StepExecutor"]
