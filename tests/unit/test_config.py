# =============================================================================
# tests/unit/test_config.py
# Unit Tests for Settings loading
# =============================================================================

import logging
from pathlib import Path

import pytest

from sitesinc_core.config import DEFAULT_API_URL, Settings, load_settings
from sitesinc_core.errors import ConfigurationError


class TestDefaults:
    """Test default settings"""

    def test_defaults(self, tmp_path):
        settings = load_settings(secrets_path=tmp_path / "missing.toml", environ={})

        assert settings.api_url == DEFAULT_API_URL
        assert settings.request_timeout == 30.0
        assert settings.log_to_file is False
        assert settings.data_dir.name == "sitesinc"

    def test_derived_paths(self, tmp_path):
        settings = Settings(data_dir=tmp_path)

        assert settings.cache_dir == tmp_path / "SiteSincCache"
        assert settings.attachments_root == tmp_path / "Documents"
        assert settings.preferences_file == tmp_path / "preferences.json"

    def test_documents_dir_override(self, tmp_path):
        settings = Settings(data_dir=tmp_path, documents_dir=tmp_path / "docs")

        assert settings.attachments_root == tmp_path / "docs"

    def test_logging_level(self):
        assert Settings(log_level="debug").logging_level == logging.DEBUG
        assert Settings(log_level="nonsense").logging_level == logging.INFO


class TestEnvironment:
    """Test environment variable overrides"""

    def test_environment_overrides(self, tmp_path):
        settings = load_settings(
            secrets_path=tmp_path / "missing.toml",
            environ={
                "SITESINC_API_URL": "https://staging.sitesinc.test/api",
                "SITESINC_DATA_DIR": str(tmp_path / "data"),
                "SITESINC_REQUEST_TIMEOUT": "12.5",
                "SITESINC_LOG_TO_FILE": "yes",
                "UNRELATED": "ignored",
            },
        )

        assert settings.api_url == "https://staging.sitesinc.test/api"
        assert settings.data_dir == tmp_path / "data"
        assert settings.request_timeout == 12.5
        assert settings.log_to_file is True

    @pytest.mark.parametrize("name, value", [
        ("SITESINC_REQUEST_TIMEOUT", "soon"),
        ("SITESINC_DOWNLOAD_TIMEOUT", "-1"),
        ("SITESINC_MONITOR_INTERVAL", "0"),
        ("SITESINC_LOG_TO_FILE", "maybe"),
    ])
    def test_invalid_values_raise(self, tmp_path, name, value):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(secrets_path=tmp_path / "missing.toml", environ={name: value})

        assert exc_info.value.code == "CONFIG_001"
        assert not exc_info.value.recoverable

    def test_env_file_is_loaded(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("SITESINC_LOG_LEVEL=DEBUG\n")
        monkeypatch.delenv("SITESINC_LOG_LEVEL", raising=False)

        settings = load_settings(secrets_path=tmp_path / "missing.toml", env_file=env_file)

        assert settings.log_level == "DEBUG"
        monkeypatch.delenv("SITESINC_LOG_LEVEL", raising=False)


class TestSecretsToml:
    """Test the [sitesinc] table of secrets.toml"""

    def test_toml_values(self, tmp_path):
        secrets = tmp_path / "secrets.toml"
        secrets.write_text(
            '[sitesinc]\n'
            'api_url = "https://toml.sitesinc.test/api"\n'
            'download_timeout = 120\n'
            'unknown_key = 1\n'
        )

        settings = load_settings(secrets_path=secrets, environ={})

        assert settings.api_url == "https://toml.sitesinc.test/api"
        assert settings.download_timeout == 120.0

    def test_environment_wins_over_toml(self, tmp_path):
        secrets = tmp_path / "secrets.toml"
        secrets.write_text('[sitesinc]\napi_url = "https://toml.test/api"\n')

        settings = load_settings(
            secrets_path=secrets,
            environ={"SITESINC_API_URL": "https://env.test/api"},
        )

        assert settings.api_url == "https://env.test/api"

    def test_unparseable_toml(self, tmp_path):
        secrets = tmp_path / "secrets.toml"
        secrets.write_text("[sitesinc\napi_url = ")

        with pytest.raises(ConfigurationError):
            load_settings(secrets_path=secrets, environ={})

    def test_data_dir_expands_user(self, tmp_path):
        settings = load_settings(
            secrets_path=tmp_path / "missing.toml",
            environ={"SITESINC_DATA_DIR": "~/sitesinc-data"},
        )

        assert settings.data_dir == Path.home() / "sitesinc-data"
