"""Logging infrastructure for AI Trace Core.

@public

Unified, Prefect-integrated logging for every module of the library.

Key components:
    get_pipeline_logger: Factory function for creating library loggers
    setup_logging: Initialize logging configuration from YAML
    LoggingConfig: Configuration class for logging settings

Example:
    >>> from ai_trace_core.logging import get_pipeline_logger
    >>>
    >>> logger = get_pipeline_logger(__name__)
    >>> logger.info("Trace committed")

Note:
    Never import Python's logging module directly. Always use
    get_pipeline_logger() for consistent Prefect integration.
"""

from .logging_config import LoggingConfig, get_pipeline_logger, setup_logging

__all__ = [
    "LoggingConfig",
    "setup_logging",
    "get_pipeline_logger",
]
