"""Common test fixtures for trace instrumentation tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ai_trace_core.trace_logger import BufferedTraceLogger, TraceLogger, set_trace_logger


@pytest.fixture
def mock_logger() -> MagicMock:
    """TraceLogger double that records every call in ``method_calls``."""
    logger = MagicMock(spec=TraceLogger)
    logger.current_parent.return_value = None
    logger.flush = AsyncMock(return_value=[])
    return logger


@pytest.fixture
def buffered_logger() -> BufferedTraceLogger:
    """In-memory logger with logging forced on, regardless of the environment."""
    return BufferedTraceLogger(disabled=False)


@pytest.fixture(autouse=True)
def reset_global_trace_logger():
    """Drop the process-global trace logger after each test."""
    yield
    set_trace_logger(None)
