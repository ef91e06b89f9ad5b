"""Shared fixtures: a recording command runner that simulates the toolchain."""

import shlex
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import pytest

from appbundle.config import Settings
from appbundle.errors import SubBuildFailureError
from appbundle.host import variant_for
from appbundle.steps.models import StepContext
from appbundle.steps.runner import CommandResult, CommandRunner
from appbundle.store import ArtifactStore
from appbundle.submodules import SubmoduleResolver

DEFAULT_TRIPLE = "x86_64-unknown-linux-gnu"


@dataclass
class Call:
    """One recorded external command."""

    cmd: list[str]
    cwd: Path
    env: dict[str, str] = field(default_factory=dict)
    label: str = "command"
    interactive: bool = False


class FakeRunner(CommandRunner):
    """CommandRunner that records commands and fakes their outputs.

    Args:
        root: Project root the simulated tools write into.
        triple: Host triple reported by ``rustc -Vv``.
        fail: Map of command tuple to the exit code it should fail with.
        submodules: Submodule paths materialized by ``git submodule update``.
        simulate: Create the files the real tools would create.
    """

    def __init__(
        self,
        root: Path,
        triple: str = DEFAULT_TRIPLE,
        fail: dict[tuple[str, ...], int] | None = None,
        submodules: tuple[str, ...] = ("webui", "server"),
        simulate: bool = True,
    ) -> None:
        super().__init__(log_dir=None, echo=False)
        self.root = root
        self.triple = triple
        self.fail = fail or {}
        self.submodules = submodules
        self.simulate = simulate
        self.calls: list[Call] = []
        self.captures: list[list[str]] = []

    def require(self, tool: str) -> None:
        pass

    @property
    def commands(self) -> list[list[str]]:
        return [c.cmd for c in self.calls]

    def run(self, cmd, *, cwd, env=None, label="command", interactive=False):
        self.calls.append(
            Call(list(cmd), Path(cwd), dict(env or {}), label, interactive)
        )
        cmd_str = shlex.join(cmd)
        code = self.fail.get(tuple(cmd))
        if code is not None:
            raise SubBuildFailureError(
                f"Command failed with exit code {code}: {cmd_str}",
                exit_code=code,
                command=cmd_str,
                output="error: simulated failure\n",
            )
        if self.simulate:
            self._simulate(list(cmd), Path(cwd))
        now = datetime.now(timezone.utc)
        return CommandResult(
            command=cmd_str,
            exit_code=0,
            output="",
            log_path=None,
            started_at=now,
            finished_at=now,
        )

    def _simulate(self, cmd: list[str], cwd: Path) -> None:
        if cmd[:3] == ["git", "submodule", "update"]:
            for sub in self.submodules:
                (cwd / sub).mkdir(parents=True, exist_ok=True)
                (cwd / sub / ".git").write_text("gitdir: ../.git/modules/x\n")
        elif cmd[1:] == ["run", "build"]:
            (cwd / "dist").mkdir(parents=True, exist_ok=True)
            (cwd / "dist" / "index.html").write_text("<html></html>")
        elif cmd[1:4] == ["run", "tauri", "icon"]:
            icon = self.root / "src-tauri" / "icons" / "icon.png"
            icon.parent.mkdir(parents=True, exist_ok=True)
            icon.write_bytes(b"\x89PNG")
        elif cmd[0] == "make":
            dist = cwd / "dist"
            dist.mkdir(parents=True, exist_ok=True)
            (dist / "app-server").write_text("#!/bin/sh\n")

    def capture(self, cmd, *, cwd=None):
        self.captures.append(list(cmd))
        if cmd[0] == "rustc":
            return (
                "rustc 1.80.0 (051478957 2024-07-21)\n"
                "binary: rustc\n"
                f"host: {self.triple}\n"
                "release: 1.80.0\n"
            )
        if cmd[:2] == ["git", "submodule"]:
            return (
                " 1111111111111111111111111111111111111111 server (v0.1.0)\n"
                "-2222222222222222222222222222222222222222 webui\n"
            )
        raise AssertionError(f"unexpected capture: {cmd}")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Fresh checkout: only the icon source image exists."""
    logo = tmp_path / "public" / "logo.png"
    logo.parent.mkdir(parents=True)
    logo.write_bytes(b"\x89PNG logo")
    return tmp_path


@pytest.fixture
def settings(project: Path) -> Settings:
    return Settings(
        _env_file=None,
        project_root=project,
        platform="linux",
        echo_output=False,
    )


@pytest.fixture
def fake_runner(project: Path) -> FakeRunner:
    return FakeRunner(project)


def make_context(settings: Settings, runner: CommandRunner) -> StepContext:
    """Build a StepContext the way the orchestrator does."""
    store = ArtifactStore(settings.project_root, settings.state_dir)
    return StepContext(
        settings=settings,
        store=store,
        runner=runner,
        resolver=SubmoduleResolver(settings.project_root, runner),
        variant=variant_for(settings.platform),
    )


@pytest.fixture
def ctx(settings: Settings, fake_runner: FakeRunner) -> StepContext:
    return make_context(settings, fake_runner)
