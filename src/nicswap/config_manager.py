"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores workflow timing (poll interval, wait budget, settle pauses), the
Azure CLI timeout and the default log file.

Precedence: environment (NICSWAP_*) > config file > defaults.

Security:
- Config file permissions: 0600 (owner read/write only)
- Atomic writes via temporary file + rename
"""

import logging
import os
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import tomlkit

logger = logging.getLogger(__name__)

ENV_PREFIX = "NICSWAP_"

# Poll interval, wait budget and command timeout of 0 would never make progress
POSITIVE_KEYS = frozenset({"poll_interval_seconds", "max_wait_minutes", "az_timeout_seconds"})


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class NicSwapConfig:
    """nicswap configuration data."""

    poll_interval_seconds: int = 10
    max_wait_minutes: float = 10.0
    ip_settle_seconds: float = 15.0
    leftover_release_seconds: float = 5.0
    az_timeout_seconds: int = 300
    log_file: str = "./vm-nic-update-log.txt"
    fallback_ip_prefix: str = "10.0.0."

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NicSwapConfig":
        """Create from dictionary, ignoring unknown keys."""
        config = cls()
        for key, value in data.items():
            if key not in cls.field_names():
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            setattr(config, key, coerce_value(key, value))
        return config

    @classmethod
    def field_names(cls) -> list[str]:
        """Names of all configurable keys."""
        return [f.name for f in fields(cls)]

    def apply_environment(self) -> "NicSwapConfig":
        """Override values from NICSWAP_<KEY> environment variables.

        Example:
            NICSWAP_MAX_WAIT_MINUTES=20 overrides max_wait_minutes.
        """
        for name in self.field_names():
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                setattr(self, name, coerce_value(name, raw))
        return self


def coerce_value(key: str, value: Any) -> Any:
    """Convert a raw value to the type of the config field.

    Raises:
        ConfigError: If the key is unknown or the value has the wrong type
    """
    defaults = NicSwapConfig()
    if key not in NicSwapConfig.field_names():
        raise ConfigError(f"Unknown config key: {key}")
    expected = type(getattr(defaults, key))
    try:
        if expected is int:
            coerced: Any = int(value)
        elif expected is float:
            coerced = float(value)
        else:
            coerced = str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from e
    if key in POSITIVE_KEYS and coerced <= 0:
        raise ConfigError(f"{key} must be positive, got {value!r}")
    if isinstance(coerced, (int, float)) and coerced < 0:
        raise ConfigError(f"{key} must not be negative")
    return coerced


class ConfigManager:
    """Manage nicswap configuration file.

    Configuration is stored at ~/.nicswap/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".nicswap"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If a custom path was given and does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path
        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> NicSwapConfig:
        """Load configuration from file and environment.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            NicSwapConfig object

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return NicSwapConfig().apply_environment()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600...")
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

        logger.debug(f"Loaded config from: {config_path}")
        return NicSwapConfig.from_dict(data).apply_environment()

    @classmethod
    def save_config(cls, config: NicSwapConfig, custom_path: str | None = None) -> Path:
        """Save configuration to file.

        Existing comments and formatting are preserved.

        Returns:
            Path the config was written to

        Raises:
            ConfigError: If saving fails
        """
        if custom_path:
            config_path = Path(custom_path).expanduser().resolve()
        else:
            config_path = cls.DEFAULT_CONFIG_FILE
        temp_path = config_path.with_suffix(".tmp")

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()
            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)
            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

        logger.debug(f"Saved config to: {config_path}")
        return config_path

    @classmethod
    def set_value(cls, key: str, value: str, custom_path: str | None = None) -> Path:
        """Persist a single config key.

        Raises:
            ConfigError: If the key is unknown, the value invalid or saving fails
        """
        coerced = coerce_value(key, value)
        config_path = Path(custom_path).expanduser().resolve() if custom_path else cls.DEFAULT_CONFIG_FILE
        if config_path.exists():
            with open(config_path, "rb") as f:
                try:
                    config = NicSwapConfig.from_dict(tomllib.load(f))
                except tomllib.TOMLDecodeError as e:
                    raise ConfigError(f"Failed to load config: {e}") from e
        else:
            config = NicSwapConfig()
        setattr(config, key, coerced)
        return cls.save_config(config, custom_path)


__all__ = ["ConfigError", "ConfigManager", "NicSwapConfig", "coerce_value"]
