"""
AMDOC - Configuration Module

User preferences for the console tools and the privileged helper, stored as
JSON. GPU state (clocks, modes, levels) is never cached here; it is always
read fresh from sysfs.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "amdoc"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_CARD_PATH = "/sys/class/drm/card0/device"


@dataclass
class AppConfig:
    """Application configuration."""

    # Sysfs device directory used when --card is not given
    card_path: str = DEFAULT_CARD_PATH

    # Logging level name for the console entry points
    log_level: str = "INFO"

    # Send "c" after writing an edited clocks table
    commit_after_write: bool = True
    # Clamp gen2 voltage curve points into their allowed ranges before writing
    normalize_vddc_curve: bool = True

    # Seconds to wait for the helper, polkit prompt included
    helper_timeout_seconds: int = 30

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """
        Create a config from a dictionary.

        Unknown keys are ignored, missing keys keep their defaults.
        """
        known = {f.name for f in fields(cls)}
        ignored = sorted(set(data) - known)
        if ignored:
            logger.warning(f"Ignoring unknown config keys: {', '.join(ignored)}")
        return cls(**{key: value for key, value in data.items() if key in known})


class ConfigManager:
    """Loads and saves the AppConfig of one config file."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or CONFIG_FILE
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        """The current configuration, read from disk on first access."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> AppConfig:
        """
        Read the config file.

        A missing or unreadable file yields the defaults.
        """
        try:
            raw = self.config_file.read_text()
        except FileNotFoundError:
            logger.debug(f"No config file at {self.config_file}, using defaults")
            return AppConfig()
        except OSError as e:
            logger.warning(f"Could not read {self.config_file}: {e}, using defaults")
            return AppConfig()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid config file {self.config_file}: {e}, using defaults")
            return AppConfig()

        if not isinstance(data, dict):
            logger.warning(f"Config file {self.config_file} does not hold an object, using defaults")
            return AppConfig()

        return AppConfig.from_dict(data)

    def save(self, config: Optional[AppConfig] = None) -> bool:
        """
        Write the configuration, creating the config directory if needed.

        Args:
            config: Configuration to store and make current; the current one if omitted

        Returns:
            True if the file was written
        """
        if config is not None:
            self._config = config
        if self._config is None:
            return False

        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            self.config_file.write_text(json.dumps(self._config.to_dict(), indent=2))
        except OSError as e:
            logger.error(f"Could not save config to {self.config_file}: {e}")
            return False

        logger.info(f"Configuration saved to {self.config_file}")
        return True

    def reset_to_defaults(self) -> AppConfig:
        self._config = AppConfig()
        self.save()
        return self._config


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the process-wide config manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_config() -> AppConfig:
    return get_config_manager().config


def save_config(config: Optional[AppConfig] = None) -> bool:
    return get_config_manager().save(config)
