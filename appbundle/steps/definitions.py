"""Concrete build steps.

The artifact graph:

    webui-source ──> webui-dist ──┐
    icon ─────────────────────────┼──> package / dev
    server-source ─> server-binary┘

and the maintenance graph (no outputs, always runs):

    fmt        cargo-check ──> clippy
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from appbundle.config import Settings
from appbundle.errors import BuildError, SourceUnavailableError, SubBuildFailureError
from appbundle.steps.models import Step, StepContext
from appbundle.steps.staleness import directory_missing, path_missing
from appbundle.store import backend_binary_name
from appbundle.types import PackagingMode

logger = logging.getLogger(__name__)

WEBUI_SOURCE = "webui-source"
SERVER_SOURCE = "server-source"
WEBUI_DIST = "webui-dist"
ICON = "icon"
SERVER_BINARY = "server-binary"
PACKAGE = "package"
DEV = "dev"

FMT = "fmt"
CARGO_CHECK = "cargo-check"
CLIPPY = "clippy"

ARTIFACT_STEPS = (WEBUI_DIST, ICON, SERVER_BINARY)


def _rel(path: Path) -> str:
    return path.as_posix()


def checkout_webui(step: Step, ctx: StepContext) -> None:  # noqa: ARG001
    ctx.resolver.ensure(ctx.settings.webui_dir)


def checkout_server(step: Step, ctx: StepContext) -> None:  # noqa: ARG001
    ctx.resolver.ensure(ctx.settings.server_dir)


def build_webui(step: Step, ctx: StepContext) -> None:
    """Install outer and nested npm dependencies, then build the web UI."""
    webui = ctx.settings.webui_dir
    npm = ctx.variant
    # The outer project must be installed before the nested one
    ctx.run(step, npm.npm_command("install"))
    ctx.run(step, npm.npm_command("install"), cwd=webui)
    ctx.run(step, npm.npm_command("run", "build"), cwd=webui)


def generate_icon(step: Step, ctx: StepContext) -> None:
    """Generate the application icon set from the source image."""
    source = ctx.settings.icon_source
    if not ctx.store.exists(source):
        raise SourceUnavailableError(
            f"Icon source image not found: {source}", path=str(source)
        )
    ctx.run(step, ctx.variant.npm_command("run", "tauri", "icon", _rel(source)))


def backend_binary_path(ctx: StepContext) -> str:
    """Store-relative path of the backend executable for the host triple.

    Raises:
        BuildError: If the triple is unavailable or malformed.
    """
    try:
        name = backend_binary_name(ctx.settings.backend_name, ctx.target_triple())
    except ValueError as e:
        raise BuildError(str(e), code="triple_unavailable") from e
    return _rel(ctx.settings.bins_dir / name)


def build_server_binary(step: Step, ctx: StepContext) -> None:
    """Build the backend executable and file it under its triple-suffixed name.

    The bins directory is created before the nested build runs and is left
    in place if the build fails.
    """
    settings = ctx.settings
    destination = ctx.store.path(backend_binary_path(ctx))

    ctx.store.path(settings.bins_dir).mkdir(parents=True, exist_ok=True)
    ctx.run(step, ["make", settings.backend_make_target], cwd=settings.server_dir)

    built = ctx.store.path(settings.server_dir / "dist" / settings.backend_name)
    if not built.is_file():
        raise SubBuildFailureError(
            f"Backend build finished but produced no executable at {built}"
        )

    shutil.move(str(built), str(destination))
    logger.info("[%s] Installed backend executable: %s", step.id, destination)


def _package(step: Step, ctx: StepContext, mode: PackagingMode) -> None:
    variant = ctx.variant
    env = variant.packaging_env(mode)
    if env:
        logger.info(
            "[%s] %s packaging overrides: %s",
            step.id,
            variant.platform.value,
            ", ".join(f"{k}={v}" for k, v in env.items()),
        )
    ctx.run(
        step,
        variant.packaging_command(mode),
        env=env or None,
        interactive=mode is PackagingMode.DEV,
    )


def package_app(step: Step, ctx: StepContext) -> None:
    """Bundle the application into platform installers."""
    _package(step, ctx, PackagingMode.BUILD)


def run_dev(step: Step, ctx: StepContext) -> None:
    """Launch the application with hot reload, attached to the terminal."""
    _package(step, ctx, PackagingMode.DEV)


def cargo_fmt(step: Step, ctx: StepContext) -> None:
    ctx.run(step, ["cargo", "fmt"], cwd=ctx.settings.app_dir)


def cargo_check(step: Step, ctx: StepContext) -> None:
    ctx.run(step, ["cargo", "check"], cwd=ctx.settings.app_dir)


def cargo_clippy(step: Step, ctx: StepContext) -> None:
    ctx.run(step, ["cargo", "clippy"], cwd=ctx.settings.app_dir)


def build_steps(settings: Settings) -> list[Step]:
    """Define the artifact graph for the given settings.

    Args:
        settings: Effective settings (paths, gate and input globs).

    Returns:
        Steps in declared order.
    """
    webui = settings.webui_dir
    server = settings.server_dir

    if settings.backend_gate == "file":
        server_gate = path_missing(backend_binary_path)
    else:
        server_gate = directory_missing(_rel(settings.bins_dir))

    return [
        Step(
            id=WEBUI_SOURCE,
            action=checkout_webui,
            outputs=(_rel(webui / ".git"),),
            description=f"Check out {_rel(webui)} submodule",
        ),
        Step(
            id=SERVER_SOURCE,
            action=checkout_server,
            outputs=(_rel(server / ".git"),),
            description=f"Check out {_rel(server)} submodule",
        ),
        Step(
            id=WEBUI_DIST,
            action=build_webui,
            outputs=(_rel(webui / "dist"),),
            needs=(WEBUI_SOURCE,),
            inputs=tuple(_rel(webui / p) for p in settings.webui_inputs),
            description="Build web UI static assets",
        ),
        Step(
            id=ICON,
            action=generate_icon,
            outputs=(_rel(settings.icon_path),),
            inputs=(_rel(settings.icon_source),),
            description="Generate application icons",
        ),
        Step(
            id=SERVER_BINARY,
            action=build_server_binary,
            outputs=(_rel(settings.bins_dir),),
            needs=(SERVER_SOURCE,),
            inputs=tuple(_rel(server / p) for p in settings.server_inputs),
            stale=server_gate,
            description="Build backend executable with target-triple suffix",
        ),
        Step(
            id=PACKAGE,
            action=package_app,
            needs=ARTIFACT_STEPS,
            description="Bundle platform installers",
        ),
        Step(
            id=DEV,
            action=run_dev,
            needs=ARTIFACT_STEPS,
            description="Run the app in development mode",
        ),
    ]


def build_maintenance_steps(settings: Settings) -> list[Step]:
    """Define the maintenance graph (format and lint of the app crate)."""
    crate = _rel(settings.app_dir)
    return [
        Step(id=FMT, action=cargo_fmt, description=f"Format {crate}"),
        Step(id=CARGO_CHECK, action=cargo_check, description=f"Type-check {crate}"),
        Step(
            id=CLIPPY,
            action=cargo_clippy,
            needs=(CARGO_CHECK,),
            description=f"Lint {crate}",
        ),
    ]


__all__ = [
    "ARTIFACT_STEPS",
    "CARGO_CHECK",
    "CLIPPY",
    "DEV",
    "FMT",
    "ICON",
    "PACKAGE",
    "SERVER_BINARY",
    "SERVER_SOURCE",
    "WEBUI_DIST",
    "WEBUI_SOURCE",
    "backend_binary_path",
    "build_maintenance_steps",
    "build_server_binary",
    "build_steps",
    "build_webui",
    "generate_icon",
    "package_app",
    "run_dev",
]
