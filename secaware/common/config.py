"""
Engagement configuration

Nested configuration for the engagement engine. Values come from, in order
of increasing priority:
1. Model defaults
2. An optional YAML or JSON file named by ``CONFIG_PATH``
3. A small set of environment variables (see ``ENV_OVERRIDES``)
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, Field, field_validator
import yaml

logger = logging.getLogger(__name__)


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    use_json: bool = False
    file_path: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class EngagementConfig(BaseModel):
    """Attempt lifecycle and scoring configuration"""
    default_passing_score: int = Field(default=70, ge=0)
    default_question_points: int = Field(default=1, ge=1)
    # Bounded retries when a concurrent start wins the open slot first
    start_retry_limit: int = Field(default=3, ge=1)
    # Keep discarded open attempts as "abandoned" instead of deleting them
    retain_abandoned_attempts: bool = False
    leaderboard_limit: int = Field(default=20, ge=1)
    history_page_size: int = Field(default=10, ge=1)


class TrainingConfig(BaseModel):
    """Training module defaults"""
    default_content_type: str = "interactive"
    default_duration_minutes: int = Field(default=30, ge=0)


class EnvironmentConfig(BaseModel):
    """Environment configuration"""
    env: str = "development"
    debug: bool = False

    @field_validator('env')
    @classmethod
    def validate_env(cls, v):
        valid_envs = ['development', 'testing', 'staging', 'production']
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()


class AppConfig(BaseModel):
    """Main application configuration"""
    app_name: str = "SecAware"
    version: str = "0.1.0"
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    engagement: EngagementConfig = Field(default_factory=EngagementConfig)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    @property
    def is_development(self) -> bool:
        return self.environment.env == "development"


# Environment variable -> (section, field)
ENV_OVERRIDES: Dict[str, Tuple[str, str]] = {
    "ENV": ("environment", "env"),
    "DEBUG": ("environment", "debug"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_JSON": ("logging", "use_json"),
    "LOG_FILE": ("logging", "file_path"),
    "RETAIN_ABANDONED_ATTEMPTS": ("engagement", "retain_abandoned_attempts"),
    "DEFAULT_PASSING_SCORE": ("engagement", "default_passing_score"),
}


class ConfigLoader:
    """
    Configuration loader for the application.

    Loads defaults, then the config file, then environment overrides.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the config loader.

        Args:
            config_path: Path to config file (YAML or JSON)
        """
        self.config_path = config_path or os.environ.get("CONFIG_PATH")
        self._config: Optional[AppConfig] = None

    def load(self) -> AppConfig:
        """
        Load configuration from all sources.

        Returns:
            Loaded configuration
        """
        if self._config is not None:
            return self._config

        data: Dict[str, Any] = {}
        if self.config_path:
            data = self._load_from_file(self.config_path)

        for env_name, (section, field) in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                data.setdefault(section, {})[field] = value

        self._config = AppConfig(**data)
        return self._config

    def _load_from_file(self, path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            path: Path to config file

        Returns:
            Loaded configuration dictionary (empty on any problem)
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    loaded = yaml.safe_load(f)
                elif path.suffix.lower() == '.json':
                    loaded = json.load(f)
                else:
                    logger.warning(f"Unsupported config file format: {path.suffix}")
                    return {}
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Error loading config file {path}: {e}")
            return {}

        if not isinstance(loaded, dict):
            logger.warning(f"Config file {path} does not contain a mapping, ignoring it")
            return {}
        return loaded


config_loader = ConfigLoader()
config = config_loader.load()


def get_config() -> AppConfig:
    """Get the loaded configuration."""
    return config


def reload_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Reload the configuration.

    Args:
        config_path: Path to config file

    Returns:
        Reloaded configuration
    """
    global config_loader, config
    config_loader = ConfigLoader(config_path)
    config = config_loader.load()
    return config
