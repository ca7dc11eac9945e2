"""Configuration models."""

from .config import (
    Config,
    ExportConfig,
    LoggingConfig,
    MigrationConfig,
    ServerConfig,
)

__all__ = [
    'Config',
    'ExportConfig',
    'LoggingConfig',
    'MigrationConfig',
    'ServerConfig',
]
