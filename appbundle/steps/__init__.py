"""Build step module.

This module handles:
- Step definitions and the context passed to step actions
- Staleness predicates
- Running external commands with per-step logs
- Executing single steps and whole dependency graphs
"""

from appbundle.steps.models import Step, StepContext, StepResult

__all__ = ["Step", "StepContext", "StepResult"]

# Lazy imports for submodules to avoid circular imports
# Access via appbundle.steps.graph, appbundle.steps.definitions, etc.
