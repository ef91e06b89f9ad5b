"""Host platform classification and per-platform command variants.

This module handles:
- Classifying the build host into a closed set of platforms
- Per-platform command construction (PlatformVariant subclasses)
- Querying the toolchain for the host target triple

Platform-sensitive steps never branch on the platform themselves; they ask
the variant carried by the step context.
"""

from __future__ import annotations

import logging
import platform as _platform
from typing import TYPE_CHECKING

from appbundle.errors import BuildError
from appbundle.types import PackagingMode, Platform

if TYPE_CHECKING:
    from appbundle.steps.runner import CommandRunner

logger = logging.getLogger(__name__)

# linuxdeploy fails with "failed to run linuxdeploy" unless stripping is off
LINUX_STRIP_OVERRIDE = {"NO_STRIP": "true"}

_OTHER_UNIX_SYSTEMS = {"freebsd", "openbsd", "netbsd", "dragonfly", "sunos", "aix"}


def detect_platform(system: str | None = None) -> Platform:
    """Classify the host operating system.

    Args:
        system: Value of ``platform.system()``; detected when None.

    Returns:
        Platform. Unknown hosts fall back to ``Platform.OTHER_UNIX``.
    """
    if system is None:
        system = _platform.system()
    name = system.strip().lower()

    if name == "linux":
        return Platform.LINUX
    if name == "darwin":
        return Platform.MACOS
    if name == "windows" or name.startswith(("cygwin", "msys", "mingw")):
        return Platform.WINDOWS
    if name in _OTHER_UNIX_SYSTEMS:
        return Platform.OTHER_UNIX

    logger.warning(
        "Unrecognized host system %r, using the %s command variant",
        system,
        Platform.OTHER_UNIX.value,
    )
    return Platform.OTHER_UNIX


class PlatformVariant:
    """Command construction for one host platform.

    Subclasses override only what differs on their platform.
    """

    platform: Platform = Platform.OTHER_UNIX
    npm: str = "npm"

    def npm_command(self, *args: str) -> list[str]:
        """Compose an npm invocation."""
        return [self.npm, *args]

    def packaging_command(self, mode: PackagingMode) -> list[str]:
        """Compose the packaging tool invocation for a mode."""
        return self.npm_command("run", "tauri", mode.value)

    def packaging_env(self, mode: PackagingMode) -> dict[str, str]:  # noqa: ARG002
        """Environment overrides for the packaging tool."""
        return {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class LinuxVariant(PlatformVariant):
    """Linux: disable binary stripping when bundling."""

    platform = Platform.LINUX

    def packaging_env(self, mode: PackagingMode) -> dict[str, str]:
        if mode is PackagingMode.BUILD:
            return dict(LINUX_STRIP_OVERRIDE)
        return {}


class MacOSVariant(PlatformVariant):
    platform = Platform.MACOS


class OtherUnixVariant(PlatformVariant):
    platform = Platform.OTHER_UNIX


class WindowsVariant(PlatformVariant):
    """Windows: npm is a batch shim that CreateProcess cannot run by name."""

    platform = Platform.WINDOWS
    npm = "npm.cmd"


VARIANTS: dict[Platform, type[PlatformVariant]] = {
    Platform.LINUX: LinuxVariant,
    Platform.MACOS: MacOSVariant,
    Platform.OTHER_UNIX: OtherUnixVariant,
    Platform.WINDOWS: WindowsVariant,
}


def variant_for(platform: Platform | str | None = None) -> PlatformVariant:
    """Return the command variant for a platform.

    Args:
        platform: Platform or its string value; detected when None.

    Returns:
        PlatformVariant instance.
    """
    if platform is None:
        platform = detect_platform()
    return VARIANTS[Platform(platform)]()


def parse_host_triple(rustc_output: str) -> str:
    """Extract the host triple from ``rustc -Vv`` output.

    Args:
        rustc_output: Verbose version output.

    Returns:
        Target triple such as ``x86_64-unknown-linux-gnu``.

    Raises:
        ValueError: If no ``host:`` line is present.
    """
    for line in rustc_output.splitlines():
        key, _, value = line.partition(":")
        if key.strip() == "host" and value.strip():
            return value.strip()
    raise ValueError("no 'host:' line in rustc output")


def host_target_triple(runner: CommandRunner) -> str:
    """Ask the Rust toolchain for the host target triple.

    Raises:
        ToolMissingError: If rustc is not installed.
        BuildError: If the triple cannot be parsed.
    """
    output = runner.capture(["rustc", "-Vv"])
    try:
        triple = parse_host_triple(output)
    except ValueError as e:
        raise BuildError(
            f"Could not determine host target triple: {e}",
            code="triple_unavailable",
        ) from e
    logger.debug("Host target triple: %s", triple)
    return triple


__all__ = [
    "LINUX_STRIP_OVERRIDE",
    "VARIANTS",
    "LinuxVariant",
    "MacOSVariant",
    "OtherUnixVariant",
    "PlatformVariant",
    "WindowsVariant",
    "detect_platform",
    "host_target_triple",
    "parse_host_triple",
    "variant_for",
]
