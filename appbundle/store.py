"""Artifact store: the filesystem namespace build outputs land in.

This module handles:
- Resolving store-relative artifact paths
- Existence checks used by staleness predicates
- Input fingerprints and per-step stamps (fingerprint staleness policy)
- Backend executable naming with the target-triple suffix
- Optional cross-process artifact locks

The store never deletes artifacts. Existence is checked and then acted on
without a lock unless ``lock()`` is used explicitly, so two processes
building the same target concurrently can both decide a step is stale.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from appbundle.errors import LockTimeoutError

logger = logging.getLogger(__name__)

# Schema version for stamp files; bump when the fingerprint format changes
FINGERPRINT_SCHEMA_VERSION = "1"

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB

_TRIPLE_PATTERN = re.compile(r"^[A-Za-z0-9_.]+(-[A-Za-z0-9_.]+)+$")


def compute_file_hash(file_path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def backend_binary_name(base_name: str, triple: str) -> str:
    """Name of the backend executable for a target triple.

    Args:
        base_name: Base executable name, e.g. ``app-server``.
        triple: Target triple, e.g. ``aarch64-apple-darwin``.

    Returns:
        ``<base_name>-<triple>``.

    Raises:
        ValueError: If the triple is empty or not a plausible triple.
    """
    triple = triple.strip()
    if not _TRIPLE_PATTERN.match(triple):
        raise ValueError(f"Invalid target triple: {triple!r}")
    return f"{base_name}-{triple}"


class ArtifactStore:
    """Handle on the project's artifact namespace.

    Args:
        root: Project root; artifact paths are relative to it.
        state_dir: Directory for logs, stamps and locks (relative to root
            unless absolute).
    """

    def __init__(self, root: Path, state_dir: Path = Path(".appbundle")) -> None:
        self.root = root
        self.state_dir = state_dir if state_dir.is_absolute() else root / state_dir

    def __repr__(self) -> str:
        return f"ArtifactStore(root={str(self.root)!r})"

    @property
    def log_dir(self) -> Path:
        return self.state_dir / "logs"

    @property
    def stamp_dir(self) -> Path:
        return self.state_dir / "stamps"

    @property
    def lock_dir(self) -> Path:
        return self.state_dir / "locks"

    def path(self, rel: str | Path) -> Path:
        """Resolve a store-relative path."""
        rel = Path(rel)
        if rel.is_absolute():
            return rel
        return self.root / rel

    def exists(self, rel: str | Path) -> bool:
        return self.path(rel).exists()

    def is_dir(self, rel: str | Path) -> bool:
        return self.path(rel).is_dir()

    def missing(self, rels: Iterable[str | Path]) -> list[str]:
        """Return the subset of paths that do not exist, in order."""
        return [str(rel) for rel in rels if not self.exists(rel)]

    def fingerprint(self, patterns: Iterable[str]) -> str:
        """Fingerprint the files matched by glob patterns.

        The fingerprint is a SHA-256 over the canonical JSON list of
        (relative path, content hash) pairs, so renames and edits both
        change it.

        Args:
            patterns: Glob patterns relative to the store root.

        Returns:
            Fingerprint as ``sha256:<hex>``.
        """
        pattern_list = sorted(patterns)
        files: set[Path] = set()
        for pattern in pattern_list:
            files.update(p for p in self.root.glob(pattern) if p.is_file())

        entries = [
            {
                "path": p.relative_to(self.root).as_posix(),
                "sha256": compute_file_hash(p),
            }
            for p in sorted(files)
        ]
        canonical_json = json.dumps(
            {
                "schema_version": FINGERPRINT_SCHEMA_VERSION,
                "patterns": pattern_list,
                "files": entries,
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return "sha256:" + hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()

    def stamp_path(self, step_id: str) -> Path:
        return self.stamp_dir / f"{step_id}.json"

    def read_stamp(self, step_id: str) -> str | None:
        """Return the fingerprint recorded after the last successful run."""
        path = self.stamp_path(step_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable stamp %s: %s", path, e)
            return None
        if data.get("schema_version") != FINGERPRINT_SCHEMA_VERSION:
            return None
        fingerprint = data.get("fingerprint")
        return fingerprint if isinstance(fingerprint, str) else None

    def write_stamp(self, step_id: str, fingerprint: str) -> Path:
        """Record the input fingerprint of a successful step run."""
        path = self.stamp_path(step_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "schema_version": FINGERPRINT_SCHEMA_VERSION,
            "step": step_id,
            "fingerprint": fingerprint,
            "recorded_at": datetime.now(timezone.utc).isoformat(),
        }
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n")
        logger.debug("Wrote stamp for %s: %s", step_id, fingerprint[:23])
        return path

    @contextmanager
    def lock(self, name: str, timeout: float | None = None) -> Iterator[None]:
        """Acquire an exclusive cross-process lock for an artifact producer.

        Uses fcntl file locks, so it is only available on POSIX hosts.

        Args:
            name: Lock name (usually a step id).
            timeout: Lock acquisition timeout in seconds (None = blocking).

        Yields:
            None when lock is acquired.

        Raises:
            LockTimeoutError: If lock cannot be acquired within timeout.
        """
        import fcntl
        import time

        self.lock_dir.mkdir(parents=True, exist_ok=True)
        safe_name = name.replace(os.sep, "_").replace(":", "_")
        lock_file = self.lock_dir / f"{safe_name}.lock"

        logger.debug("Acquiring artifact lock: %s", name)

        fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
        lock_acquired = False
        try:
            if timeout is not None:
                start = time.monotonic()
                while True:
                    try:
                        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                        lock_acquired = True
                        break
                    except BlockingIOError:
                        if time.monotonic() - start >= timeout:
                            raise LockTimeoutError(name, timeout) from None
                        time.sleep(0.1)
            else:
                fcntl.flock(fd, fcntl.LOCK_EX)
                lock_acquired = True

            logger.debug("Artifact lock acquired: %s", name)
            yield
        finally:
            if lock_acquired:
                fcntl.flock(fd, fcntl.LOCK_UN)
                logger.debug("Artifact lock released: %s", name)
            os.close(fd)


__all__ = [
    "FINGERPRINT_SCHEMA_VERSION",
    "ArtifactStore",
    "backend_binary_name",
    "compute_file_hash",
]
