"""Configuration management."""

# Local imports
from .base import PoolConfig, clear_config, get_config
from .options import CommandOptions, build_environment, merge_options

__all__ = [
    "PoolConfig",
    "get_config",
    "clear_config",
    "CommandOptions",
    "merge_options",
    "build_environment",
]
