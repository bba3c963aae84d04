# =============================================================================
# sitesinc_core/config.py
# Settings for the SiteSinc offline core
# =============================================================================
"""
Settings are resolved in three layers (later layers win):

1. Defaults defined on ``Settings``
2. ``[sitesinc]`` table of an optional ``secrets.toml``
3. Environment variables (a ``.env`` file is loaded into the environment first)

Expected secrets.toml format:

    [sitesinc]
    api_url = "https://sitesinc.onrender.com/api"
    data_dir = "/var/lib/sitesinc"
    request_timeout = 30
"""

from __future__ import annotations
import logging
import os
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from sitesinc_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://sitesinc.onrender.com/api"
CACHE_NAMESPACE = "SiteSincCache"


def _default_data_root() -> Path:
    """Durable per-user application data directory (never a purgeable cache dir)."""
    base = os.getenv("XDG_DATA_HOME")
    return (Path(base) if base else Path.home() / ".local" / "share") / "sitesinc"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the offline core."""
    api_url: str = DEFAULT_API_URL
    data_dir: Path = field(default_factory=_default_data_root)
    documents_dir: Optional[Path] = None
    request_timeout: float = 30.0
    download_timeout: float = 300.0
    monitor_interval: float = 30.0
    log_level: str = "INFO"
    log_to_file: bool = False

    @property
    def cache_dir(self) -> Path:
        """Directory holding metadata snapshots."""
        return Path(self.data_dir) / CACHE_NAMESPACE

    @property
    def attachments_root(self) -> Path:
        """Root under which Project_<id> attachment folders live."""
        if self.documents_dir is not None:
            return Path(self.documents_dir)
        return Path(self.data_dir) / "Documents"

    @property
    def preferences_file(self) -> Path:
        return Path(self.data_dir) / "preferences.json"

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)


# Environment variable -> Settings field
ENV_MAPPING = {
    "SITESINC_API_URL": "api_url",
    "SITESINC_DATA_DIR": "data_dir",
    "SITESINC_DOCUMENTS_DIR": "documents_dir",
    "SITESINC_REQUEST_TIMEOUT": "request_timeout",
    "SITESINC_DOWNLOAD_TIMEOUT": "download_timeout",
    "SITESINC_MONITOR_INTERVAL": "monitor_interval",
    "SITESINC_LOG_LEVEL": "log_level",
    "SITESINC_LOG_TO_FILE": "log_to_file",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw toml/env value to the type of the Settings field."""
    if name in ("data_dir", "documents_dir"):
        return Path(value).expanduser() if value not in (None, "") else None
    if name in ("request_timeout", "download_timeout", "monitor_interval"):
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Invalid value for {name}: {value!r}",
                config_key=name,
                expected_type="float",
            )
        if number <= 0:
            raise ConfigurationError(
                f"{name} must be positive, got {number}",
                config_key=name,
                expected_type="float",
            )
        return number
    if name == "log_to_file":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ConfigurationError(
            f"Invalid boolean for {name}: {value!r}",
            config_key=name,
            expected_type="bool",
        )
    return str(value)


def load_secrets_toml(path: Path) -> Dict[str, Any]:
    """Load the [sitesinc] table from a secrets.toml file, if it exists."""
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            secrets = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Could not parse {path}: {e}", config_key=str(path))

    section = secrets.get("sitesinc", {})
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"[sitesinc] in {path} must be a table",
            config_key="sitesinc",
            expected_type="table",
        )
    return section


def load_settings(
    secrets_path: Optional[Path] = None,
    env_file: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Settings:
    """
    Build Settings from defaults, secrets.toml and the environment.

    Args:
        secrets_path: Path to a secrets.toml file (default: ./.sitesinc/secrets.toml)
        env_file: .env file to load (default: python-dotenv discovery)
        environ: Environment mapping to read instead of os.environ (tests)

    Returns:
        Resolved Settings
    """
    if environ is None:
        load_dotenv(dotenv_path=env_file)
        environ = dict(os.environ)

    valid_fields = {f.name for f in fields(Settings)}
    overrides: Dict[str, Any] = {}

    toml_path = secrets_path or Path(".sitesinc") / "secrets.toml"
    for key, value in load_secrets_toml(toml_path).items():
        if key not in valid_fields:
            logger.warning(f"Ignoring unknown setting '{key}' in {toml_path}")
            continue
        overrides[key] = _coerce(key, value)

    for env_key, field_name in ENV_MAPPING.items():
        if env_key in environ:
            overrides[field_name] = _coerce(field_name, environ[env_key])

    if overrides.get("data_dir") is None:
        overrides.pop("data_dir", None)

    settings = replace(Settings(), **overrides)
    logger.debug(f"Settings loaded: api_url={settings.api_url}, data_dir={settings.data_dir}")
    return settings


# Lazy global settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide Settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
