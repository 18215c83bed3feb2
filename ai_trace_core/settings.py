"""Core configuration settings for trace instrumentation.

@public

Settings are loaded from environment variables (prefixed with ``AI_TRACE_``)
with .env file support via pydantic-settings.

Environment variables:
    AI_TRACE_DISABLE_LOGGING: Turn every trace logger call into a no-op.
        Any value other than empty, "0" or "false" disables logging.
    AI_TRACE_FLUSH_ON_TRACE_END: Flush the trace logger after each trace (default true)

Example:
    >>> from ai_trace_core.settings import settings
    >>> if settings.disable_logging:
    ...     print("tracing is off")

Note:
    Settings are loaded once at module import and frozen. The process must be
    restarted to pick up changes to environment variables or .env file.
"""

from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for trace instrumentation.

    @public

    Attributes:
        disable_logging: When True, trace loggers accept calls but record and
                         ship nothing. Mirrors the behavior of a kill switch
                         for instrumentation in production.

        flush_on_trace_end: Default for ``TracingProcessor`` - whether the
                            logger is flushed after every finished trace.
    """

    model_config = SettingsConfigDict(
        env_prefix="AI_TRACE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    disable_logging: bool = False
    flush_on_trace_end: bool = True

    @field_validator("disable_logging", mode="before")
    @classmethod
    def _parse_disable_flag(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() not in {"", "0", "false"}
        return bool(value)


settings = Settings()
"""Global settings instance for the entire library.

@public
"""
