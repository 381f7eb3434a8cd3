"""
Centralized configuration loader for the X post publisher.

Loads settings from a YAML file and environment variables, providing
sensible defaults when the configuration file is absent.

Provides:
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Singleton accessor for Settings
    - reset_settings(): Drop the cached Settings (tests, reloads)
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from xpublisher.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of xpublisher/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


# ===========================================================================
# GLOBAL SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    defaults. ``XPUB_*`` environment variables override YAML values.
    """

    # Remote platform
    api_base_url: str = "https://api.twitter.com/2"
    request_timeout_seconds: float = 15.0

    # Publishing
    lease_seconds: int = 120
    max_post_length: int = 280

    # Background trigger
    check_interval_seconds: int = 60
    recovery_interval_cycles: int = 10

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    def __post_init__(self) -> None:
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("request_timeout_seconds must be positive")
        if self.lease_seconds <= self.request_timeout_seconds:
            raise ConfigurationError(
                f"lease_seconds ({self.lease_seconds}) must exceed "
                f"request_timeout_seconds ({self.request_timeout_seconds}) "
                "so a hung request resolves before its lease expires"
            )
        if self.max_post_length <= 0:
            raise ConfigurationError("max_post_length must be positive")

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables (``XPUB_<FIELD>``) override YAML values.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Returns:
            Populated Settings instance.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed,
                or the resulting values are inconsistent.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Settings YAML at {path} must be a mapping"
                )

        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            value = data.get(f.name, f.default)

            env_key = f"XPUB_{f.name.upper()}"
            env_val = os.environ.get(env_key)
            if env_val is not None:
                value = env_val

            try:
                kwargs[f.name] = _coerce(value, f.default)
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid value for %s=%r, using default", f.name, value
                )
                kwargs[f.name] = f.default

        return cls(**kwargs)


def _coerce(value: Any, default: Any) -> Any:
    """Convert *value* to the type of *default*."""
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return str(value)


# ===========================================================================
# SINGLETON SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """Reset the cached Settings singleton."""
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Required environment variables for the system to function
REQUIRED_ENV_VARS: List[str] = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
]

# Optional environment variables
OPTIONAL_ENV_VARS: List[str] = [
    "XPUB_API_BASE_URL",
    "XPUB_REQUEST_TIMEOUT_SECONDS",
    "XPUB_LEASE_SECONDS",
    "XPUB_CHECK_INTERVAL_SECONDS",
    "XPUB_LOG_LEVEL",
    "XPUB_LOG_DIR",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.

    Returns:
        Dict mapping variable name to presence status (``True`` if set).

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for var in REQUIRED_ENV_VARS:
        present = bool(os.environ.get(var))
        status[var] = present
        if not present:
            missing.append(var)

    for var in OPTIONAL_ENV_VARS:
        status[var] = bool(os.environ.get(var))

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            "Set them in your environment or .env file."
        )

    if missing:
        logger.warning("Missing required environment variables: %s", missing)

    return status


__all__ = [
    "PROJECT_ROOT",
    "Settings",
    "get_settings",
    "reset_settings",
    "REQUIRED_ENV_VARS",
    "OPTIONAL_ENV_VARS",
    "validate_env",
]
