"""
Configuration loading and management.

Layers defaults, an optional JSON config file and environment variable
overrides into a validated SyncConfig.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

from pydantic import ValidationError

from toolsync.models.config import GlobalSettings, SyncConfig
from .defaults import ENV_VAR_MAPPING, STRING_KEYS, get_default_config

logger = logging.getLogger(__name__)


class ConfigurationLoader:
    """Load and save sync engine configuration"""

    def __init__(self, global_settings: Optional[GlobalSettings] = None):
        self.global_settings = global_settings or GlobalSettings()

    def load(self, config_file: Optional[Union[str, Path]] = None) -> SyncConfig:
        """
        Build the runtime configuration.

        Args:
            config_file: JSON file to merge over the defaults; falls back to
                the globally configured file when None

        Raises:
            ValueError: when the merged configuration fails validation
        """
        config_data = get_default_config()

        path = Path(config_file) if config_file else self.global_settings.config_file
        if path is not None:
            self._merge(config_data, self._read_file(Path(path)))

        if config_data.get('catalog_path') is None and self.global_settings.catalog_path:
            config_data['catalog_path'] = str(self.global_settings.catalog_path)

        config_data = self._apply_env_overrides(config_data)

        try:
            return SyncConfig(**config_data)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e

    def _read_file(self, config_file: Path) -> Dict[str, Any]:
        """Read a JSON config file; a missing file contributes nothing"""
        if not config_file.exists():
            logger.warning(f"Config file {config_file} not found, using defaults")
            return {}

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file {config_file} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_file} must contain a JSON object")

        logger.debug(f"Loaded configuration from {config_file}")
        return data

    def _merge(self, base: Dict[str, Any], overrides: Dict[str, Any]) -> None:
        """Recursively merge overrides into base in place"""
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            else:
                base[key] = value

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration"""
        for env_var, config_path in ENV_VAR_MAPPING.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(config_data, config_path, env_value)

        return config_data

    def _set_nested_value(self, data: Dict[str, Any], path: str, value: str) -> None:
        """Set nested dictionary value using dot notation path"""
        keys = path.split('.')
        current = data

        for key in keys[:-1]:
            if key not in current or current[key] is None:
                current[key] = {}
            current = current[key]

        if path in STRING_KEYS:
            current[keys[-1]] = value
        else:
            current[keys[-1]] = self._convert_env_value(value)

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type"""
        if value.lower() in ('true', 'yes', 'on'):
            return True
        elif value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if '.' in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        return value

    def save(self, config: SyncConfig, config_file: Union[str, Path]) -> bool:
        """Save configuration to disk as JSON"""
        config_file = Path(config_file)
        try:
            config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(config_file, 'w', encoding='utf-8') as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)

            logger.info(f"Saved configuration to {config_file}")
            return True

        except OSError as e:
            logger.error(f"Failed to save config to {config_file}: {e}")
            return False
