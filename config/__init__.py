"""Configuration module for server and viewer settings."""

from config.settings import (
    ServerConfig,
    ViewerConfig,
    Config,
)

__all__ = [
    'ServerConfig',
    'ViewerConfig',
    'Config',
]
