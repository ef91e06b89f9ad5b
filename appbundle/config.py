"""Configuration settings for appbundle.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

All paths except ``project_root`` are relative to the project root.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the APPBUNDLE_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="APPBUNDLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Layout
    project_root: Path = Field(
        default_factory=Path.cwd,
        description="Root of the top-level repository",
    )
    webui_dir: Path = Field(
        default=Path("webui"),
        description="Nested web UI sub-project (git submodule)",
    )
    server_dir: Path = Field(
        default=Path("server"),
        description="Nested backend sub-project (git submodule)",
    )
    app_dir: Path = Field(
        default=Path("src-tauri"),
        description="Application crate checked by the format/check targets",
    )
    bins_dir: Path = Field(
        default=Path("bins"),
        description="Directory receiving the triple-suffixed backend executables",
    )
    icon_source: Path = Field(
        default=Path("public/logo.png"),
        description="Source image for icon generation",
    )
    icon_path: Path = Field(
        default=Path("src-tauri/icons/icon.png"),
        description="Generated icon consumed by the packaging tool",
    )
    state_dir: Path = Field(
        default=Path(".appbundle"),
        description="Directory for step logs, fingerprint stamps and locks",
    )

    # Backend
    backend_name: str = Field(
        default="app-server",
        min_length=1,
        description="Base name of the backend executable",
    )
    backend_make_target: str = Field(
        default="build-server-exe",
        description="make target producing the self-contained backend executable",
    )

    # Incremental behaviour
    staleness_policy: Literal["existence", "fingerprint"] = Field(
        default="existence",
        description="Rebuild only on missing outputs, or also on changed inputs",
    )
    backend_gate: Literal["directory", "file"] = Field(
        default="directory",
        description="Skip the backend build when the bins directory exists, "
        "or only when the expected executable exists",
    )
    webui_inputs: list[str] = Field(
        default_factory=lambda: [
            "src/**/*",
            "public/**/*",
            "index.html",
            "package.json",
            "package-lock.json",
        ],
        description="Globs under webui_dir fingerprinted by the fingerprint policy",
    )
    server_inputs: list[str] = Field(
        default_factory=lambda: ["Makefile", "pyproject.toml", "poetry.lock"],
        description="Globs under server_dir fingerprinted by the fingerprint policy",
    )

    # Host overrides
    platform: Literal["linux", "macos", "other-unix", "windows"] | None = Field(
        default=None,
        description="Force the host platform classification",
    )
    target_triple: str | None = Field(
        default=None,
        description="Force the target triple instead of asking rustc",
    )

    # Concurrency
    parallel: bool = Field(
        default=False,
        description="Run independent steps of a dependency level concurrently",
    )
    max_workers: int = Field(
        default=3,
        ge=1,
        le=16,
        description="Maximum concurrent steps in parallel mode",
    )
    lock_artifacts: bool = Field(
        default=False,
        description="Serialize step execution across processes with file locks",
    )
    lock_timeout: float | None = Field(
        default=None,
        ge=0,
        description="Seconds to wait for an artifact lock (None = blocking)",
    )

    # Output
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    echo_output: bool = Field(
        default=True,
        description="Echo external command output to the terminal",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
