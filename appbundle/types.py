"""Shared type definitions for appbundle.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum


class Platform(str, Enum):
    """Host operating system classification."""

    LINUX = "linux"
    MACOS = "macos"
    OTHER_UNIX = "other-unix"
    WINDOWS = "windows"


class StepStatus(str, Enum):
    """Outcome of a single step execution."""

    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PackagingMode(str, Enum):
    """Mode passed to the packaging tool."""

    BUILD = "build"
    DEV = "dev"


class SubmoduleState(str, Enum):
    """Checkout state of a submodule as reported by git."""

    INITIALIZED = "initialized"
    UNINITIALIZED = "uninitialized"
    OUT_OF_DATE = "out-of-date"
    CONFLICT = "conflict"


@dataclass
class ArtifactState:
    """A declared output in the artifact store.

    Attributes:
        path: Path relative to the project root.
        producer: Step id that writes this artifact.
        consumers: Step ids that depend on the producer.
        exists: Whether the path currently exists.
        is_dir: Whether the path is a directory.
    """

    path: str
    producer: str
    consumers: list[str] = field(default_factory=list)
    exists: bool = False
    is_dir: bool = False


__all__ = [
    "ArtifactState",
    "PackagingMode",
    "Platform",
    "StepStatus",
    "SubmoduleState",
]
