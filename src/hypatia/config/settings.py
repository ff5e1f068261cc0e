"""
Hypatia Material Ingestion System - Configuration Module
========================================================
Handles application configuration, environment settings, and logging setup.
"""

import os
import yaml
import logging
import traceback
from enum import Enum
from typing import List, Optional
from functools import lru_cache

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

from hypatia.utils.logging_utils import configure_logging

load_dotenv()

VERSION = "0.1.0"
DEFAULT_CONFIG_PATH = "config.yaml"


class EnvSettings(BaseSettings):
    """Environment-based settings with secure secrets handling."""
    environment: str = "development"
    mongodb_uri: Optional[str] = None
    mongo_password: Optional[SecretStr] = None
    hypatia_config: Optional[str] = None
    hypatia_use_mock: Optional[bool] = None

    class Config:
        env_file = ".env"
        extra = "ignore"


# Load environment settings
env_settings = EnvSettings()


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# Base class for all configuration models to support dict-like access
class DictLikeModel(BaseModel):
    """Base class for configuration models that supports dictionary-like access."""

    def get(self, key, default=None):
        """Get a configuration value with a fallback default."""
        return getattr(self, key, default)

    def __getitem__(self, key):
        return getattr(self, key)

    def __contains__(self, key):
        return hasattr(self, key)


class MongoConfig(DictLikeModel):
    uri: str = "mongodb://localhost:27017/hypatia"
    database: str = "hypatia"
    materials_collection: str = "materials"
    edges_collection: str = "material_relationships"
    counters_collection: str = "counters"
    use_mock: bool = True  # In-memory storage unless a real database is configured


class ApiConfig(DictLikeModel):
    host: str = "0.0.0.0"
    port: int = 8005
    api_prefix: str = "/api/v1"
    cors_origins: List[str] = ["*"]
    docs_url: str = "/docs"
    debug: bool = False


class LoggingConfig(DictLikeModel):
    level: LogLevel = LogLevel.INFO
    file: Optional[str] = None
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s"
    enable_structured_logging: bool = False
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5


class RelationshipConfig(DictLikeModel):
    """Limits applied by the relationship graph manager."""
    default_max_depth: int = 5
    max_allowed_depth: int = 50
    max_hierarchy_nodes: int = 1000  # Hierarchy walks stop expanding past this many nodes
    reject_cycles: bool = True


class IngestionConfig(DictLikeModel):
    """Payload normalization behaviour."""
    skip_invalid_related_ids: bool = True


class Config(DictLikeModel):
    mongo: MongoConfig = Field(default_factory=MongoConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    relationships: RelationshipConfig = Field(default_factory=RelationshipConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    environment: str = "development"
    version: str = VERSION


def create_default_config() -> Config:
    """Create default configuration."""
    return Config()


def load_config(config_path: Optional[str] = None, env: Optional[str] = None) -> Config:
    """
    Load configuration from file with environment-specific overrides.
    Falls back to default configuration if no file is found.
    """
    if config_path is None:
        config_path = env_settings.hypatia_config or DEFAULT_CONFIG_PATH
    if env is None:
        env = env_settings.environment

    # Look for environment-specific config first
    env_config_path = f"{os.path.splitext(config_path)[0]}.{env}.yaml"

    try:
        if os.path.exists(env_config_path):
            with open(env_config_path, 'r') as f:
                config_dict = yaml.safe_load(f) or {}
                logging.info(f"Loaded environment-specific config from {env_config_path}")
                config = Config.model_validate(config_dict)
        elif os.path.exists(config_path):
            with open(config_path, 'r') as f:
                config_dict = yaml.safe_load(f) or {}
                logging.info(f"Loaded config from {config_path}")
                config = Config.model_validate(config_dict)
        else:
            config = create_default_config()
    except Exception as e:
        logging.error(f"Error loading config: {e}")
        logging.error(traceback.format_exc())
        config = create_default_config()

    # Override with environment variables
    if env_settings.mongodb_uri:
        config.mongo.uri = env_settings.mongodb_uri
        config.mongo.use_mock = False
    if env_settings.mongo_password:
        config.mongo.uri = config.mongo.uri.replace(
            "mongodb://", f"mongodb://admin:{env_settings.mongo_password.get_secret_value()}@"
        )
    if env_settings.hypatia_use_mock is not None:
        config.mongo.use_mock = env_settings.hypatia_use_mock

    config.environment = env

    return config


def setup_logging(config: LoggingConfig):
    """Set up the application's logging configuration."""
    configure_logging(
        level=config.level.value,
        log_file=config.file,
        console=config.console,
        use_structured_logging=config.enable_structured_logging,
        max_file_size=config.max_file_size,
        backup_count=config.backup_count,
        log_format=config.format,
    )


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance, loading it if necessary."""
    config = load_config()
    setup_logging(config.logging)
    return config
