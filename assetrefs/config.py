"""Configuration management for assetrefs.

Loads environment variables and provides centralized config access.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

__version__ = "1.2.0"

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off'}
_LOG_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}


class ConfigError(ValueError):
    """Raised when an environment setting has an invalid value."""


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_path: str | Path | None = None):
        """Initialize config by loading a .env file.

        Args:
            env_path: Explicit .env file; defaults to `.env` in the working directory
        """
        load_dotenv(Path(env_path) if env_path else Path.cwd() / ".env")
        self._validate()

    def _validate(self):
        """Read every setting once so bad values fail early.

        Raises:
            ConfigError: If a setting can't be parsed
        """
        _ = self.show_node, self.persist_cache, self.log_level
        if self.max_depth < 1:
            raise ConfigError("ASSETREFS_MAX_DEPTH must be a positive integer")

    @staticmethod
    def _get_bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None or raw.strip() == '':
            return default
        value = raw.strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        raise ConfigError(f"{name} must be a boolean, got {raw!r}")

    @property
    def show_node(self) -> bool:
        """Whether results list the node/component/property of each reference.

        Returns:
            Value of ASSETREFS_SHOW_NODE (default True)
        """
        return self._get_bool("ASSETREFS_SHOW_NODE", True)

    @property
    def persist_cache(self) -> bool:
        """Whether decoded trees are kept in the SQLite snapshot between runs."""
        return self._get_bool("ASSETREFS_PERSIST_CACHE", True)

    @property
    def cache_dir(self) -> str:
        """Snapshot directory name, relative to the project root."""
        return os.getenv("ASSETREFS_CACHE_DIR", ".assetrefs_cache")

    @property
    def log_level(self) -> str:
        """Logging level name.

        Returns:
            Value of ASSETREFS_LOG_LEVEL (default WARNING)
        """
        level = os.getenv("ASSETREFS_LOG_LEVEL", "WARNING").strip().upper()
        if level not in _LOG_LEVELS:
            raise ConfigError(f"ASSETREFS_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
        return level

    @property
    def max_depth(self) -> int:
        """Deepest node nesting accepted when decoding scenes and prefabs."""
        raw = os.getenv("ASSETREFS_MAX_DEPTH", "256")
        try:
            return int(raw)
        except ValueError:
            raise ConfigError(f"ASSETREFS_MAX_DEPTH must be an integer, got {raw!r}") from None


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config():
    """Forget the singleton so the next get_config() re-reads the environment."""
    global _config
    _config = None
