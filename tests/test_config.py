"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from appbundle.config import Settings, get_settings, print_settings_json


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        settings = Settings(_env_file=None)

        assert settings.webui_dir == Path("webui")
        assert settings.server_dir == Path("server")
        assert settings.bins_dir == Path("bins")
        assert settings.icon_source == Path("public/logo.png")
        assert settings.icon_path == Path("src-tauri/icons/icon.png")
        assert settings.backend_make_target == "build-server-exe"
        assert settings.staleness_policy == "existence"
        assert settings.backend_gate == "directory"
        assert settings.parallel is False
        assert settings.lock_artifacts is False
        assert settings.log_level == "INFO"

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "APPBUNDLE_STALENESS_POLICY": "fingerprint",
                "APPBUNDLE_PARALLEL": "true",
                "APPBUNDLE_MAX_WORKERS": "4",
                "APPBUNDLE_TARGET_TRIPLE": "aarch64-apple-darwin",
            },
        ):
            settings = Settings(_env_file=None)
            assert settings.staleness_policy == "fingerprint"
            assert settings.parallel is True
            assert settings.max_workers == 4
            assert settings.target_triple == "aarch64-apple-darwin"

    def test_invalid_platform_rejected(self) -> None:
        """Unknown platform overrides should fail validation."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, platform="beos")

    def test_max_workers_bounds(self) -> None:
        """max_workers must be at least 1."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_workers=0)


class TestGetSettings:
    """Test get_settings function."""

    def test_returns_settings_instance(self) -> None:
        assert isinstance(get_settings(), Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_outputs_valid_json(self) -> None:
        """Should output valid JSON with every field."""
        output = print_settings_json(Settings(_env_file=None))
        data = json.loads(output)
        assert data["backend_name"] == "app-server"
        assert data["staleness_policy"] == "existence"
        assert "webui_inputs" in data
