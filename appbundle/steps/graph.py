"""Dependency graph of build steps.

This module handles:
- Validating step definitions (unique ids, known prerequisites, no cycles)
- Computing the ordered closure of the steps a target needs
- Grouping steps into topological levels for parallel execution
- Running a target fail-fast, sequentially or level by level
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from appbundle.errors import GraphError
from appbundle.steps.staleness import evaluate
from appbundle.types import ArtifactState

if TYPE_CHECKING:
    from appbundle.steps.executor import StepExecutor
    from appbundle.steps.models import Step, StepContext, StepResult

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Immutable set of steps with declared prerequisites.

    Args:
        steps: Step definitions; order is the declared order.

    Raises:
        GraphError: On duplicate ids, unknown prerequisites or cycles.
    """

    def __init__(self, steps: Iterable[Step]) -> None:
        self._steps: dict[str, Step] = {}
        for step in steps:
            if step.id in self._steps:
                raise GraphError(f"Duplicate step id: {step.id}")
            self._steps[step.id] = step

        for step in self._steps.values():
            for need in step.needs:
                if need not in self._steps:
                    raise GraphError(
                        f"Step '{step.id}' needs missing step '{need}'. "
                        f"Known steps: {sorted(self._steps)}"
                    )

        # Raises on cycles
        self.levels(list(self._steps.values()))

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    def get(self, step_id: str) -> Step:
        try:
            return self._steps[step_id]
        except KeyError:
            raise GraphError(f"Unknown step: {step_id}") from None

    def dependents(self, step_id: str) -> list[str]:
        """Return ids of steps that list ``step_id`` as a prerequisite."""
        return [s.id for s in self._steps.values() if step_id in s.needs]

    def closure(self, targets: Iterable[str]) -> list[Step]:
        """Return the targets and all their prerequisites in run order.

        Prerequisites come before dependents; ties follow declared order
        (depth-first over ``needs``, then the targets in the order given).

        Args:
            targets: Step ids to reach.

        Returns:
            Ordered list of steps, each appearing once.
        """
        ordered: list[Step] = []
        seen: set[str] = set()

        def visit(step_id: str) -> None:
            if step_id in seen:
                return
            seen.add(step_id)
            step = self.get(step_id)
            for need in step.needs:
                visit(need)
            ordered.append(step)

        for target in targets:
            visit(target)
        return ordered

    def levels(self, steps: list[Step]) -> list[list[Step]]:
        """Group steps into levels whose members share no dependency.

        Only edges between the given steps count. Within a level, steps
        keep their order in ``steps``.

        Raises:
            GraphError: If the steps contain a cycle.
        """
        index = {s.id: i for i, s in enumerate(steps)}
        indeg = {s.id: 0 for s in steps}
        adj: dict[str, list[str]] = {s.id: [] for s in steps}
        for step in steps:
            for need in step.needs:
                if need in indeg:
                    adj[need].append(step.id)
                    indeg[step.id] += 1

        queue = deque(s.id for s in steps if indeg[s.id] == 0)
        levels: list[list[Step]] = []
        processed = 0

        while queue:
            level_ids = sorted(queue, key=index.__getitem__)
            queue.clear()
            levels.append([steps[index[i]] for i in level_ids])
            processed += len(level_ids)
            for step_id in level_ids:
                for child in adj[step_id]:
                    indeg[child] -= 1
                    if indeg[child] == 0:
                        queue.append(child)

        if processed != len(steps):
            stuck = sorted(i for i, d in indeg.items() if d > 0)
            raise GraphError(f"Step graph has a cycle. Stuck steps: {stuck}")

        return levels

    def plan(
        self, targets: Iterable[str], ctx: StepContext
    ) -> list[tuple[Step, str | None]]:
        """Evaluate staleness for a target without running anything.

        Returns:
            (step, reason) pairs in run order; reason is None when the step
            would be skipped.
        """
        return [(step, evaluate(step, ctx)) for step in self.closure(targets)]

    def artifacts(self, ctx: StepContext) -> list[ArtifactState]:
        """Describe every declared output and its current state."""
        states: list[ArtifactState] = []
        for step in self._steps.values():
            for output in step.outputs:
                states.append(
                    ArtifactState(
                        path=output,
                        producer=step.id,
                        consumers=self.dependents(step.id),
                        exists=ctx.store.exists(output),
                        is_dir=ctx.store.is_dir(output),
                    )
                )
        return states

    def run(
        self,
        targets: Iterable[str],
        executor: StepExecutor,
        parallel: bool = False,
        max_workers: int | None = None,
    ) -> list[StepResult]:
        """Run the steps a target needs, stopping at the first failure.

        In parallel mode each topological level runs on a thread pool and
        the next level starts only after the whole level finished.

        Args:
            targets: Step ids to reach.
            executor: Executor bound to the run's context.
            parallel: Run independent steps of a level concurrently.
            max_workers: Thread pool size in parallel mode.

        Returns:
            Results of the executed or skipped steps, in run order. Steps
            after a failure are absent.
        """
        steps = self.closure(targets)
        results: list[StepResult] = []

        if not parallel:
            for step in steps:
                result = executor.execute(step)
                results.append(result)
                if not result.ok:
                    logger.error("Stopping after failed step: %s", step.id)
                    break
            return results

        for level_idx, level in enumerate(self.levels(steps)):
            logger.debug(
                "Level %d: %s", level_idx + 1, ", ".join(s.id for s in level)
            )
            if len(level) == 1:
                level_results = [executor.execute(level[0])]
            else:
                with ThreadPoolExecutor(max_workers=max_workers) as pool:
                    level_results = list(pool.map(executor.execute, level))
            results.extend(level_results)

            failed = [r.step_id for r in level_results if not r.ok]
            if failed:
                logger.error("Stopping after failed step(s): %s", ", ".join(failed))
                break

        return results


__all__ = ["DependencyGraph"]
