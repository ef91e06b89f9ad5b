"""Staleness predicates.

A predicate receives the step and its context and returns a short reason
when the step must run, or None when it can be skipped. Predicates are
plain callables so each step can pick the granularity that fits its
artifact.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from appbundle.steps.models import StaleCheck, Step, StepContext

logger = logging.getLogger(__name__)


def outputs_missing(step: Step, ctx: StepContext) -> str | None:
    """Stale when the step declares no output or any output is missing."""
    if not step.outputs:
        return "no declared output"
    missing = ctx.store.missing(step.outputs)
    if missing:
        return f"missing output: {', '.join(missing)}"
    return None


def directory_missing(directory: str) -> StaleCheck:
    """Stale only when a directory is absent, whatever it contains."""

    def check(step: Step, ctx: StepContext) -> str | None:  # noqa: ARG001
        if ctx.store.is_dir(directory):
            return None
        return f"missing directory: {directory}"

    return check


def path_missing(resolve: Callable[[StepContext], str]) -> StaleCheck:
    """Stale when a path computed at run time is absent."""

    def check(step: Step, ctx: StepContext) -> str | None:  # noqa: ARG001
        path = resolve(ctx)
        if ctx.store.exists(path):
            return None
        return f"missing output: {path}"

    return check


def inputs_changed(step: Step, ctx: StepContext) -> str | None:
    """Stale when the input fingerprint differs from the recorded stamp."""
    if not step.inputs:
        return None
    recorded = ctx.store.read_stamp(step.id)
    if recorded is None:
        return "no input fingerprint recorded"
    current = ctx.store.fingerprint(step.inputs)
    if current != recorded:
        logger.debug("%s inputs changed: %s -> %s", step.id, recorded, current)
        return "inputs changed"
    return None


def evaluate(step: Step, ctx: StepContext) -> str | None:
    """Apply the step's predicate and the configured staleness policy.

    Under the ``existence`` policy only the step's own predicate counts.
    Under ``fingerprint`` a step whose outputs exist is still stale when
    its declared inputs changed since its last successful run.
    """
    check = step.stale or outputs_missing
    reason = check(step, ctx)
    if reason is None and ctx.settings.staleness_policy == "fingerprint":
        reason = inputs_changed(step, ctx)
    return reason


__all__ = [
    "directory_missing",
    "evaluate",
    "inputs_changed",
    "outputs_missing",
    "path_missing",
]
