"""
Core Infrastructure for Braindump

Provides:
- Configuration loading (YAML + environment)
- Shared exception hierarchy
- Logging setup

Usage:
    from core import get_config, setup_logging

    config = get_config()
    setup_logging(config.log_level, json_format=config.log_json)
"""

from .config import BraindumpConfig, get_config, load_config, reset_config
from .errors import (
    BraindumpError,
    ConfigurationError,
    DatabaseError,
    EmbeddingUnavailableError,
    NormalizationError,
    NotFoundError,
    SourceUnavailableError,
    StoreNotInitializedError,
    ValidationError,
)
from .logging_config import setup_logging, get_logger

__all__ = [
    'BraindumpConfig',
    'get_config',
    'load_config',
    'reset_config',
    'BraindumpError',
    'ConfigurationError',
    'DatabaseError',
    'EmbeddingUnavailableError',
    'NormalizationError',
    'NotFoundError',
    'SourceUnavailableError',
    'StoreNotInitializedError',
    'ValidationError',
    'setup_logging',
    'get_logger',
]
