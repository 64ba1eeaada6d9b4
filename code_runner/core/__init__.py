"""Core configuration, logging and exceptions."""

from .config import ConfigManager, RunnerConfig
from .exceptions import CodeRunnerError, ConfigurationError, format_error_message
from .logging import get_logger, setup_logging

__all__ = [
    "CodeRunnerError",
    "ConfigManager",
    "ConfigurationError",
    "RunnerConfig",
    "format_error_message",
    "get_logger",
    "setup_logging",
]
