"""Thin CLI wrapper for appbundle.

This module provides the command-line interface using Typer.
All build logic is delegated to the orchestrator.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from appbundle import __version__
from appbundle.config import Settings, get_settings, print_settings_json
from appbundle.errors import BuildError
from appbundle.orchestrator import TARGETS, Orchestrator, RunReport
from appbundle.types import Platform, StepStatus

app = typer.Typer(
    name="appbundle",
    help="Build orchestrator for the desktop app bundle - prebuild, package, check",
    no_args_is_help=True,
)
console = Console()
# Logs go to stderr so --json output stays parseable
err_console = Console(stderr=True)

RootOption = Annotated[
    Path | None,
    typer.Option("--root", "-C", help="Project root (default: current directory)"),
]
PlatformOption = Annotated[
    str | None,
    typer.Option(
        "--platform", help="Force host platform: linux, macos, other-unix, windows"
    ),
]
ParallelOption = Annotated[
    bool | None,
    typer.Option(
        "--parallel/--sequential",
        help="Run independent steps concurrently (default from config)",
    ),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def setup_logging(level: str) -> None:
    """Attach a Rich handler to the package logger.

    Safe to call more than once; the previous handler is replaced.
    """
    pkg_logger = logging.getLogger("appbundle")
    for handler in list(pkg_logger.handlers):
        if isinstance(handler, RichHandler):
            pkg_logger.removeHandler(handler)
    pkg_logger.addHandler(
        RichHandler(console=err_console, show_time=False, show_path=False)
    )
    pkg_logger.setLevel(level)


def load_settings_or_exit() -> Settings:
    """Load settings from the environment, exiting cleanly when they are invalid."""
    try:
        return get_settings()
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            name = f"APPBUNDLE_{field.upper()}" if field else "settings"
            console.print(f"  {name}: {escape(error['msg'])}")
        raise typer.Exit(code=1) from None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"appbundle version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Build orchestrator for the desktop app bundle - prebuild, package, check."""
    setup_logging("DEBUG" if verbose else load_settings_or_exit().log_level)


def _load_settings(
    root: Path | None = None,
    platform: str | None = None,
    json_output: bool = False,
) -> Settings:
    settings = load_settings_or_exit()
    updates: dict[str, object] = {}
    if root is not None:
        updates["project_root"] = root.resolve()
    if platform is not None:
        try:
            updates["platform"] = Platform(platform).value
        except ValueError:
            console.print(f"[red]Invalid platform: {platform}[/red]")
            console.print("Valid values: " + ", ".join(p.value for p in Platform))
            raise typer.Exit(code=1) from None
    if json_output:
        # Command output would interleave with the JSON document
        updates["echo_output"] = False
    return settings.model_copy(update=updates) if updates else settings


def _print_error(e: BuildError, json_output: bool) -> None:
    if json_output:
        typer.echo(_dump_json(e.to_dict()))
        return
    console.print(f"[red]Error ({e.code}): {e.message}[/red]")
    hint = getattr(e, "hint", None)
    if hint:
        console.print(f"  Hint: {hint}")


def _dump_json(data: dict) -> str:
    return json.dumps(data, indent=2)


def _print_report(report: RunReport, json_output: bool) -> None:
    if json_output:
        typer.echo(report.model_dump_json(indent=2))
        return

    console.print()
    console.print(f"[bold]Target {report.target}:[/bold]")
    for step in report.steps:
        if step.status is StepStatus.SKIPPED:
            console.print(f"  [dim]- {step.step_id} (up to date)[/dim]")
        elif step.status is StepStatus.SUCCEEDED:
            console.print(f"  [green]✓ {step.step_id}[/green] ({step.duration:.1f}s)")
        else:
            console.print(f"  [red]✗ {step.step_id}[/red]")

    failure = report.failure
    if failure is None:
        console.print(f"[green]✓ {report.target} succeeded[/green]")
        return

    console.print()
    console.print(
        f"[red]Target '{report.target}' failed at step '{failure.step_id}'[/red]"
    )
    if failure.message:
        console.print(f"  Error ({failure.error_code}): {failure.message}", markup=False)
    if failure.output:
        console.print("  Last output lines:")
        console.print(failure.output.rstrip(), markup=False, highlight=False)


def _run_target(
    name: str,
    root: Path | None,
    platform: str | None,
    parallel: bool | None,
    json_output: bool,
) -> None:
    settings = _load_settings(root, platform, json_output)
    try:
        report = Orchestrator(settings).run(name, parallel=parallel)
    except BuildError as e:
        _print_error(e, json_output)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        err_console.print(f"[yellow]{name} interrupted[/yellow]")
        raise typer.Exit(code=130) from None

    _print_report(report, json_output)
    if not report.success:
        raise typer.Exit(code=report.exit_code)


@app.command()
def prebuild(
    root: RootOption = None,
    platform: PlatformOption = None,
    parallel: ParallelOption = None,
    json_output: JsonOption = False,
) -> None:
    """Produce the web UI bundle, application icon and backend executable.

    Steps whose outputs already exist are skipped.
    """
    _run_target("prebuild", root, platform, parallel, json_output)


@app.command()
def build(
    root: RootOption = None,
    platform: PlatformOption = None,
    parallel: ParallelOption = None,
    json_output: JsonOption = False,
) -> None:
    """Prebuild, then bundle platform installers.

    On Linux the packaging tool runs with NO_STRIP=true.
    """
    _run_target("build", root, platform, parallel, json_output)


@app.command()
def dev(
    root: RootOption = None,
    platform: PlatformOption = None,
    parallel: ParallelOption = None,
) -> None:
    """Prebuild, then run the app in development mode (attached to terminal)."""
    _run_target("dev", root, platform, parallel, json_output=False)


@app.command("format")
def format_(
    root: RootOption = None,
    json_output: JsonOption = False,
) -> None:
    """Format the application crate with cargo fmt."""
    _run_target("format", root, None, False, json_output)


@app.command()
def check(
    root: RootOption = None,
    json_output: JsonOption = False,
) -> None:
    """Type-check and lint the application crate (cargo check, cargo clippy)."""
    _run_target("check", root, None, False, json_output)


@app.command()
def precommit(
    root: RootOption = None,
    json_output: JsonOption = False,
) -> None:
    """Run format, then check."""
    _run_target("precommit", root, None, False, json_output)


@app.command()
def plan(
    target: Annotated[
        str,
        typer.Argument(help=f"Target to plan: {', '.join(TARGETS)}"),
    ] = "build",
    root: RootOption = None,
    platform: PlatformOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show which steps a target would run, and why, without running them."""
    settings = _load_settings(root, platform, json_output)
    try:
        entries = Orchestrator(settings).plan(target)
    except BuildError as e:
        _print_error(e, json_output)
        raise typer.Exit(code=1) from None

    if json_output:
        typer.echo(
            _dump_json({"target": target, "steps": [e.model_dump() for e in entries]})
        )
        return

    console.print(f"[bold]Plan for {target}:[/bold]")
    for entry in entries:
        if entry.will_run:
            console.print(f"  [yellow]▶ {entry.step_id}[/yellow]: {entry.reason}")
        else:
            console.print(f"  [dim]- {entry.step_id}: up to date[/dim]")


@app.command()
def status(
    root: RootOption = None,
    platform: PlatformOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show artifact and submodule state."""
    settings = _load_settings(root, platform, json_output)
    report = Orchestrator(settings).status()

    if json_output:
        typer.echo(report.model_dump_json(indent=2))
        return

    console.print("[bold]Project:[/bold]")
    console.print(f"  Root:          {report.project_root}")
    console.print(f"  Platform:      {report.platform}")
    console.print(f"  Target triple: {report.target_triple or '(unknown)'}")
    console.print()
    console.print("[bold]Artifacts:[/bold]")
    for a in report.artifacts:
        marker = "[green]✓[/green]" if a.exists else "[red]✗[/red]"
        console.print(f"  {marker} {a.path} [dim]({a.producer})[/dim]")
    console.print()
    console.print("[bold]Submodules:[/bold]")
    if not report.submodules:
        console.print("  [yellow]No submodules found[/yellow]")
    for s in report.submodules:
        console.print(f"  {s.path}: {s.state} @ {s.revision[:12]}")


@app.command()
def config(
    json_output: JsonOption = False,
) -> None:
    """Show effective configuration."""
    settings = load_settings_or_exit()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Layout:[/bold]")
    console.print(f"  Project root:        {settings.project_root}")
    console.print(f"  Web UI directory:    {settings.webui_dir}")
    console.print(f"  Server directory:    {settings.server_dir}")
    console.print(f"  App crate:           {settings.app_dir}")
    console.print(f"  Backend binaries:    {settings.bins_dir}")
    console.print(f"  Icon source:         {settings.icon_source}")
    console.print(f"  State directory:     {settings.state_dir}")
    console.print()
    console.print("[bold]Backend:[/bold]")
    console.print(f"  Executable name:     {settings.backend_name}")
    console.print(f"  Make target:         {settings.backend_make_target}")
    console.print(f"  Target triple:       {settings.target_triple or '(rustc)'}")
    console.print()
    console.print("[bold]Incremental:[/bold]")
    console.print(f"  Staleness policy:    {settings.staleness_policy}")
    console.print(f"  Backend gate:        {settings.backend_gate}")
    console.print()
    console.print("[bold]Execution:[/bold]")
    console.print(f"  Platform:            {settings.platform or '(detected)'}")
    console.print(f"  Parallel:            {settings.parallel}")
    console.print(f"  Max workers:         {settings.max_workers}")
    console.print(f"  Artifact locks:      {settings.lock_artifacts}")
    console.print(f"  Log level:           {settings.log_level}")


if __name__ == "__main__":
    app()
