"""
Configuration for Braindump

Settings are resolved in three layers, later layers winning:
1. Defaults declared on BraindumpConfig
2. YAML file (~/.braindump/config.yaml, or an explicit path)
3. BRAINDUMP_* environment variables (a .env file is loaded first)

Usage:
    from core.config import get_config

    config = get_config()
    repo = NoteRepository(config.db_path)
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / '.braindump'
DEFAULT_CONFIG_PATH = CONFIG_DIR / 'config.yaml'
DEFAULT_DB_PATH = CONFIG_DIR / 'braindump.sqlite'

ENV_PREFIX = 'BRAINDUMP_'


class BraindumpConfig(BaseModel):
    """Resolved runtime settings."""

    db_path: Path = DEFAULT_DB_PATH
    source_path: Optional[Path] = None

    # Embeddings
    embedding_model: str = 'all-MiniLM-L6-v2'
    embeddings_enabled: bool = True

    # Search
    rrf_k: int = Field(default=60, ge=1)
    snippet_length: int = Field(default=200, ge=0)
    default_limit: int = Field(default=10, ge=0)

    # Logging
    log_level: str = 'INFO'
    log_json: bool = False

    @field_validator('db_path', 'source_path', mode='before')
    @classmethod
    def _expand_path(cls, value):
        if value is None or value == '':
            return None
        return Path(value).expanduser()

    @field_validator('log_level')
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"unknown log level: {value}")
        return level


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}", path=str(path))

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping", path=str(path))
    return data


def _read_env() -> Dict[str, str]:
    values = {}
    for name in BraindumpConfig.model_fields:
        raw = os.getenv(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = raw
    return values


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> BraindumpConfig:
    """
    Build a configuration from file, environment and explicit overrides.

    Args:
        config_path: YAML file to read. Defaults to ~/.braindump/config.yaml,
                     which is optional; an explicit path must exist.
        overrides: Values that take precedence over everything else

    Returns:
        Validated BraindumpConfig
    """
    load_dotenv()

    values: Dict[str, Any] = {}

    if config_path is not None:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}", path=str(path))
        values.update(_read_yaml(path))
    elif DEFAULT_CONFIG_PATH.exists():
        values.update(_read_yaml(DEFAULT_CONFIG_PATH))

    values.update(_read_env())
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        config = BraindumpConfig(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")

    logger.debug(f"Loaded configuration (db_path={config.db_path})")
    return config


_config: Optional[BraindumpConfig] = None


def get_config() -> BraindumpConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """Forget the cached configuration (used by tests)."""
    global _config
    _config = None
