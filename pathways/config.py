"""
Configuration management for Pathways.
"""

import copy
import os
import yaml
import toml
import json
from pathlib import Path
from typing import Dict, Any, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import (
    BUSY_THRESHOLD_WEEKS, CONFIG_FILES, DEFAULT_CONFIG, DEFAULT_WINDOW_WEEKS,
    OVERLOADED_THRESHOLD_WEEKS, STALE_IN_PROGRESS_DAYS,
)
from .utils import logger, merge_dicts


class ForecastConfig(BaseModel):
    """Forecasting parameters."""
    window_weeks: int = Field(default=DEFAULT_WINDOW_WEEKS, gt=0)
    busy_threshold_weeks: float = Field(default=BUSY_THRESHOLD_WEEKS, gt=0)
    overloaded_threshold_weeks: float = Field(default=OVERLOADED_THRESHOLD_WEEKS, gt=0)
    stale_in_progress_days: int = Field(default=STALE_IN_PROGRESS_DAYS, ge=0)


class StorageConfig(BaseModel):
    """Storage configuration."""
    db_path: str = Field(default=".pathways/pathways.db")


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5000)
    debug: bool = Field(default=False)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")

    @field_validator('level')
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


class PathwaysConfig(BaseModel):
    """Main configuration model."""
    forecast: ForecastConfig = Field(default_factory=ForecastConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Config:
    """Configuration manager for Pathways."""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file
        self.config_data = self._load_config()
        try:
            self.config = PathwaysConfig(**self.config_data)
        except ValidationError as e:
            logger.error(f"Invalid configuration, using defaults: {e}")
            self.config_data = copy.deepcopy(DEFAULT_CONFIG)
            self.config = PathwaysConfig(**self.config_data)
        self._apply_environment_overrides()

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in current directory or parent directories."""
        current_dir = Path.cwd()

        for parent in [current_dir] + list(current_dir.parents):
            for config_name in CONFIG_FILES:
                config_path = parent / config_name
                if config_path.exists():
                    logger.debug(f"Found config file: {config_path}")
                    return config_path

        return None

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file, merged over the defaults."""
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_file:
            config_path = Path(self.config_file)
        else:
            config_path = self._find_config_file()

        if not config_path or not config_path.exists():
            logger.debug("No config file found, using defaults")
            return config

        try:
            if config_path.suffix in ['.yaml', '.yml']:
                with open(config_path, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            elif config_path.suffix == '.toml':
                with open(config_path, 'r') as f:
                    file_config = toml.load(f)
            elif config_path.suffix == '.json':
                with open(config_path, 'r') as f:
                    file_config = json.load(f)
            else:
                logger.warning(f"Unknown config file format: {config_path}")
                return config
        except (OSError, yaml.YAMLError, toml.TomlDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config file {config_path}: {e}")
            return config

        config = merge_dicts(config, file_config)
        logger.info(f"Loaded config from: {config_path}")
        return config

    def _apply_environment_overrides(self):
        """Apply environment variable overrides to configuration."""
        db_path = os.getenv('PATHWAYS_DB_PATH')
        if db_path:
            self.config.storage.db_path = db_path

        log_level = os.getenv('PATHWAYS_LOG_LEVEL')
        if log_level:
            self.config.logging.level = log_level.upper()

        window = os.getenv('PATHWAYS_WINDOW_WEEKS')
        if window:
            try:
                self.config.forecast = ForecastConfig(
                    **{**self.config.forecast.model_dump(), 'window_weeks': int(window)}
                )
            except ValueError:
                logger.warning(f"Ignoring invalid PATHWAYS_WINDOW_WEEKS={window!r}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split('.')
        value = self.config.model_dump()

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any):
        """Set configuration value by dot-notation key."""
        keys = key.split('.')
        config_dict = self.config_data

        for k in keys[:-1]:
            if k not in config_dict:
                config_dict[k] = {}
            config_dict = config_dict[k]

        config_dict[keys[-1]] = value

        self.config = PathwaysConfig(**self.config_data)

    def save(self, path: Optional[str] = None):
        """Save configuration to file."""
        if path:
            save_path = Path(path)
        else:
            save_path = Path(self.config_file or '.pathways.yaml')

        if save_path.suffix in ['.yaml', '.yml']:
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)
        elif save_path.suffix == '.toml':
            with open(save_path, 'w') as f:
                toml.dump(self.config_data, f)
        elif save_path.suffix == '.json':
            with open(save_path, 'w') as f:
                json.dump(self.config_data, f, indent=2)
        else:
            save_path = save_path.with_suffix('.yaml')
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)

        logger.info(f"Configuration saved to: {save_path}")
        return save_path

    @property
    def forecast(self) -> ForecastConfig:
        return self.config.forecast

    @property
    def storage(self) -> StorageConfig:
        return self.config.storage

    @property
    def server(self) -> ServerConfig:
        return self.config.server

    @property
    def logging(self) -> LoggingConfig:
        return self.config.logging
