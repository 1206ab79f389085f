"""
Configuration system for dedupscan.

Settings come from, in increasing precedence: dataclass defaults, a YAML
file (``.dedupscan.yml`` in the current or home directory, or the path in
``DEDUPSCAN_CONFIG``), ``DEDUPSCAN_*`` environment variables, and finally
command-line flags.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

DEFAULT_CONFIG_FILE = ".dedupscan.yml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ScanConfig:
    """
    Configuration for a scan run.

    Controls the worker pool, the directory walk, the console reports and
    the optional read-only HTTP API.
    """

    # Worker threads decoding index files
    workers: int = 4

    # Capacity of the path queue between walker and workers
    queue_size: int = 100

    # Chunk store directory skipped during the walk
    chunk_dir_name: str = ".chunks"

    # Report sizes (0 disables the report)
    top_chunks: int = 0
    top_files: int = 0

    # Read-only API (port 0 disables it)
    web_port: int = 0
    web_host: str = "0.0.0.0"

    log_level: str = "WARNING"
    log_dir: Optional[str] = None

    show_progress: bool = True

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")

        if self.queue_size < 1:
            raise ValueError(f"queue_size must be at least 1, got {self.queue_size}")

        if not self.chunk_dir_name or os.sep in self.chunk_dir_name:
            raise ValueError(f"chunk_dir_name must be a plain directory name, got {self.chunk_dir_name!r}")

        if self.top_chunks < 0 or self.top_files < 0:
            raise ValueError("top_chunks and top_files must not be negative")

        if not (0 <= self.web_port <= 65535):
            raise ValueError(f"web_port must be between 0 and 65535, got {self.web_port}")

        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {self.log_level}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanConfig":
        """Create from dictionary representation, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logging.getLogger(__name__).warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def replace(self, **overrides: Any) -> "ScanConfig":
        """Return a copy with the given non-None values replaced."""
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return ScanConfig.from_dict(data)

    def save_to_file(self, file_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load_from_file(cls, file_path: Union[str, Path]) -> "ScanConfig":
        """Load configuration from YAML file."""
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(file_path, "r") as f:
            data = yaml.safe_load(f)

        if data is not None and not isinstance(data, dict):
            raise ValueError(f"Configuration file {file_path} must contain a mapping")

        return cls.from_dict(data or {})

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        current_dir_config = Path(DEFAULT_CONFIG_FILE)
        if current_dir_config.exists():
            return current_dir_config

        return Path.home() / DEFAULT_CONFIG_FILE

    @classmethod
    def load_or_default(
        cls, config_path: Optional[Union[str, Path]] = None
    ) -> "ScanConfig":
        """
        Load configuration from file or return default if not found.

        Args:
            config_path: Optional path to configuration file

        Returns:
            ScanConfig instance
        """
        if config_path:
            config_path = Path(config_path)
            if config_path.exists():
                return cls.load_from_file(config_path)
        else:
            default_path = cls.get_default_config_path()
            if default_path.exists():
                return cls.load_from_file(default_path)

        return cls()


class ConfigManager:
    """
    Manager for dedupscan configuration.

    Resolves the configuration file and applies environment overrides.
    """

    ENV_MAPPINGS = {
        "DEDUPSCAN_WORKERS": ("workers", int),
        "DEDUPSCAN_QUEUE_SIZE": ("queue_size", int),
        "DEDUPSCAN_CHUNK_DIR": ("chunk_dir_name", str),
        "DEDUPSCAN_TOP_CHUNKS": ("top_chunks", int),
        "DEDUPSCAN_TOP_FILES": ("top_files", int),
        "DEDUPSCAN_WEB_PORT": ("web_port", int),
        "DEDUPSCAN_WEB_HOST": ("web_host", str),
        "DEDUPSCAN_LOG_LEVEL": ("log_level", str),
        "DEDUPSCAN_LOG_DIR": ("log_dir", str),
    }

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[ScanConfig] = None

    @property
    def config(self) -> ScanConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def load_config(self) -> ScanConfig:
        """Load configuration from file, then apply environment overrides."""
        env_config_path = os.getenv("DEDUPSCAN_CONFIG")
        if env_config_path and Path(env_config_path).exists():
            config = ScanConfig.load_from_file(env_config_path)
        elif self.config_path and self.config_path.exists():
            config = ScanConfig.load_from_file(self.config_path)
        else:
            config = ScanConfig.load_or_default()

        return self.apply_environment_overrides(config)

    def save_config(
        self, config: ScanConfig, path: Optional[Union[str, Path]] = None
    ) -> Path:
        """Save configuration to file."""
        save_path = (
            Path(path)
            if path
            else (self.config_path or ScanConfig.get_default_config_path())
        )
        config.save_to_file(save_path)
        self._config = config
        return save_path

    def get_environment_overrides(self) -> Dict[str, Any]:
        """Get configuration overrides from environment variables."""
        overrides = {}

        for env_var, (config_key, config_type) in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                try:
                    overrides[config_key] = config_type(env_value)
                except ValueError as e:
                    raise ValueError(
                        f"Invalid environment variable {env_var}={env_value}: {e}"
                    )

        return overrides

    def apply_environment_overrides(self, config: ScanConfig) -> ScanConfig:
        """Apply environment variable overrides to configuration."""
        overrides = self.get_environment_overrides()
        if not overrides:
            return config
        return config.replace(**overrides)

    def validate_config(self, config: ScanConfig) -> List[str]:
        """Validate configuration and return list of issues."""
        issues = []

        try:
            config.__post_init__()
        except ValueError as e:
            issues.append(str(e))

        cpu_count = os.cpu_count() or 1
        if config.workers > cpu_count * 4:
            issues.append(
                f"Warning: {config.workers} workers is far above the {cpu_count} available CPUs"
            )

        if config.queue_size < config.workers:
            issues.append("Warning: queue_size smaller than workers leaves workers idle")

        return issues


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[Union[str, Path]] = None) -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None or (
        config_path and _config_manager.config_path != Path(config_path)
    ):
        _config_manager = ConfigManager(config_path)
    return _config_manager


def get_config(config_path: Optional[Union[str, Path]] = None) -> ScanConfig:
    """Get the current scan configuration."""
    manager = get_config_manager(config_path)
    return manager.config
