"""Smoke tests for the CLI.

Build targets run against a temporary project with the recording fake
runner patched into the orchestrator, so no toolchain is needed.
"""

import json

import pytest
from conftest import FakeRunner
from pydantic import ValidationError
from typer.testing import CliRunner

from appbundle import __version__
from appbundle.cli import app
from appbundle.orchestrator import Orchestrator

runner = CliRunner()

# Keep INFO logs out of the captured output so JSON stays parseable
QUIET = {"APPBUNDLE_LOG_LEVEL": "WARNING"}


@pytest.fixture
def fake(project, monkeypatch):
    """Patch the CLI to build orchestrators around a FakeRunner."""
    fake_runner = FakeRunner(project)

    def factory(settings):
        return Orchestrator(settings, runner=fake_runner)

    monkeypatch.setattr("appbundle.cli.Orchestrator", factory)
    return fake_runner


def invoke(args, **kwargs):
    return runner.invoke(app, args, env=QUIET, **kwargs)


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "prebuild" in result.stdout
        assert "precommit" in result.stdout

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self) -> None:
        result = invoke(["config"])
        assert result.exit_code == 0
        assert "Staleness policy" in result.stdout
        assert "Backend gate" in result.stdout

    def test_config_json(self) -> None:
        result = invoke(["config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["bins_dir"] == "bins"


class TestCLITargets:
    """Test build target commands."""

    def test_prebuild(self, project, fake) -> None:
        result = invoke(["prebuild", "--root", str(project), "--platform", "linux"])

        assert result.exit_code == 0, result.output
        assert ["make", "build-server-exe"] in fake.commands
        assert "prebuild succeeded" in result.stdout

    def test_build_json(self, project, fake) -> None:
        result = invoke(
            ["build", "--root", str(project), "--platform", "linux", "--json"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["target"] == "build"
        assert data["success"] is True
        assert data["steps"][-1]["step_id"] == "package"
        assert fake.calls[-1].env == {"NO_STRIP": "true"}

    def test_build_macos(self, project, fake) -> None:
        result = invoke(["build", "--root", str(project), "--platform", "macos"])

        assert result.exit_code == 0, result.output
        assert "NO_STRIP" not in fake.calls[-1].env

    def test_parallel_flag(self, project, fake) -> None:
        result = invoke(
            ["prebuild", "--root", str(project), "--platform", "linux", "--parallel"]
        )
        assert result.exit_code == 0, result.output

    def test_failure_propagates_exit_code(self, project, monkeypatch) -> None:
        failing = FakeRunner(project, fail={("make", "build-server-exe"): 2})
        monkeypatch.setattr(
            "appbundle.cli.Orchestrator",
            lambda settings: Orchestrator(settings, runner=failing),
        )

        result = invoke(["build", "--root", str(project), "--platform", "linux"])

        assert result.exit_code == 2
        assert "failed at step 'server-binary'" in result.stdout
        assert "simulated failure" in result.stdout

    def test_invalid_platform(self, project, fake) -> None:
        result = invoke(["build", "--root", str(project), "--platform", "beos"])
        assert result.exit_code == 1
        assert "Invalid platform" in result.stdout
        assert fake.calls == []

    def test_check(self, project, fake) -> None:
        result = invoke(["check", "--root", str(project)])
        assert result.exit_code == 0, result.output
        assert fake.commands == [["cargo", "check"], ["cargo", "clippy"]]

    def test_precommit(self, project, fake) -> None:
        result = invoke(["precommit", "--root", str(project)])
        assert result.exit_code == 0, result.output
        assert fake.commands[0] == ["cargo", "fmt"]


class TestCLIInspection:
    """Test plan and status commands."""

    def test_plan_json(self, project, fake) -> None:
        result = invoke(["plan", "prebuild", "--root", str(project), "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [s["step_id"] for s in data["steps"]][-1] == "server-binary"
        assert fake.calls == []

    def test_plan_unknown_target(self, project, fake) -> None:
        result = invoke(["plan", "deploy", "--root", str(project)])
        assert result.exit_code == 1
        assert "Unknown target" in result.stdout

    def test_status(self, project, fake) -> None:
        result = invoke(["status", "--root", str(project), "--platform", "linux"])

        assert result.exit_code == 0, result.output
        assert "x86_64-unknown-linux-gnu" in result.stdout
        assert "webui/dist" in result.stdout


class TestCLIErrors:
    """Test clean exits for bad configuration and interrupts."""

    def test_invalid_env_setting(self) -> None:
        result = runner.invoke(
            app, ["config"], env={**QUIET, "APPBUNDLE_PLATFORM": "foo"}
        )
        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout
        assert "APPBUNDLE_PLATFORM" in result.stdout
        assert not isinstance(result.exception, ValidationError)

    def test_invalid_env_setting_on_target(self, project, fake) -> None:
        result = runner.invoke(
            app,
            ["build", "--root", str(project)],
            env={**QUIET, "APPBUNDLE_MAX_WORKERS": "0"},
        )
        assert result.exit_code == 1
        assert "APPBUNDLE_MAX_WORKERS" in result.stdout
        assert fake.calls == []

    def test_interrupt_exits_130(self, project, monkeypatch) -> None:
        class Interrupted:
            def __init__(self, settings):
                pass

            def run(self, name, parallel=None):
                raise KeyboardInterrupt

        monkeypatch.setattr("appbundle.cli.Orchestrator", Interrupted)

        result = invoke(["dev", "--root", str(project), "--platform", "linux"])

        assert result.exit_code == 130
        assert not isinstance(result.exception, KeyboardInterrupt)
