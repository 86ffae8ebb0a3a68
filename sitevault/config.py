"""
sitevault configuration.

Settings come from three layers, later ones winning:
1. the packaged ``sitevault_config.json``
2. an optional custom JSON file (merged section by section)
3. ``SITEVAULT_*`` environment variables
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple


DEFAULT_CONFIG_PATH = Path(__file__).parent / "sitevault_config.json"


@dataclass
class StorageConfig:
    """Where the store keeps its data, relative paths resolved against base_path."""
    base_path: str
    journal_path: str
    secondary_path: str
    logs_path: str


@dataclass
class PrimaryTierConfig:
    """Primary (fast, quota-limited) tier configuration."""
    max_bytes: int
    journal_enabled: bool
    max_segment_size_mb: int


@dataclass
class SecondaryTierConfig:
    """Secondary (large, transactional) tier configuration."""
    max_storage_mb: int
    compression: str
    staging_enabled: bool
    max_thread_workers: int


@dataclass
class UploadConfig:
    """Upload validation limits and public URL layout."""
    max_archive_mb: int
    max_app_file_mb: int
    site_url_prefix: str
    app_url_prefix: str


@dataclass
class LoggingConfig:
    level: str
    console_output: bool


@dataclass
class DebugConfig:
    enabled: bool


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    'SITEVAULT_STORAGE_PATH': ('storage', 'base_path', str),
    'SITEVAULT_PRIMARY_MAX_BYTES': ('primary_tier', 'max_bytes', int),
    'SITEVAULT_SECONDARY_MAX_MB': ('secondary_tier', 'max_storage_mb', int),
    'SITEVAULT_LOG_LEVEL': ('logging', 'level', str),
    'SITEVAULT_DEBUG': ('debug', 'enabled', _as_bool),
    'SITEVAULT_MAX_ARCHIVE_MB': ('upload', 'max_archive_mb', int),
}


def _read_json(path: Path) -> dict:
    with open(path, 'r') as f:
        return json.load(f)


def _deep_merge(base: dict, overrides: dict):
    """Merge overrides into base in place; nested sections merge key by key."""
    for key, value in overrides.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


class VaultConfig:
    """Typed view over the merged configuration layers."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Args:
            config_path: Custom JSON file layered over the packaged defaults.
                Raises FileNotFoundError if given but missing.
        """
        self.config_path = config_path
        self._config_data = self._merged_layers()

        self.storage = StorageConfig(**self._config_data['storage'])
        self.primary_tier = PrimaryTierConfig(**self._config_data['primary_tier'])
        self.secondary_tier = SecondaryTierConfig(**self._config_data['secondary_tier'])
        self.upload = UploadConfig(**self._config_data['upload'])
        self.logging = LoggingConfig(**self._config_data['logging'])
        self.debug = DebugConfig(**self._config_data['debug'])

    def _merged_layers(self) -> dict:
        if not DEFAULT_CONFIG_PATH.exists():
            raise FileNotFoundError(f"Packaged default config missing: {DEFAULT_CONFIG_PATH}")
        data = _read_json(DEFAULT_CONFIG_PATH)

        if self.config_path:
            custom_path = Path(self.config_path)
            if not custom_path.exists():
                raise FileNotFoundError(f"Config file not found: {custom_path}")
            _deep_merge(data, _read_json(custom_path))

        for env_var, (section, key, convert) in ENV_OVERRIDES.items():
            raw = os.getenv(env_var)
            if raw is not None:
                data.setdefault(section, {})[key] = convert(raw)

        return data

    def get_storage_path(self) -> Path:
        return Path(self.storage.base_path)

    def get_journal_path(self) -> Path:
        """Directory holding the primary tier's journal segments."""
        return self.get_storage_path() / self.storage.journal_path

    def get_secondary_path(self) -> Path:
        """Root of the secondary tier's records and staging directories."""
        return self.get_storage_path() / self.storage.secondary_path

    def get_logs_path(self) -> Path:
        return self.get_storage_path() / self.storage.logs_path

    def to_dict(self) -> Dict[str, Any]:
        """Deep copy of the merged settings."""
        return json.loads(json.dumps(self._config_data))

    def save_to_file(self, path: str):
        """Write the merged settings out, e.g. to seed a custom config file."""
        with open(path, 'w') as f:
            json.dump(self._config_data, f, indent=2)

    def __repr__(self) -> str:
        return f"VaultConfig(config_path={self.config_path!r}, storage={self.storage.base_path!r})"


_global_config: Optional[VaultConfig] = None


def get_config(config_path: Optional[str] = None) -> VaultConfig:
    """
    Shared configuration for the process.

    config_path only matters on the first call; afterwards the cached
    instance is returned until reset_config().
    """
    global _global_config
    if _global_config is None:
        _global_config = VaultConfig(config_path)
    return _global_config


def reset_config():
    global _global_config
    _global_config = None
