"""Exception hierarchy for AI Trace Core.

All exceptions inherit from TraceCoreError. Instrumentation code never lets
these escape into the observed application; they surface only from direct
misuse of the trace logger or from ingestion callables.
"""


class TraceCoreError(Exception):
    """Base exception for all AI Trace Core errors."""


class LoggerStateError(TraceCoreError):
    """Raised when the trace logger's parent stack is used out of order."""


class IngestionError(TraceCoreError):
    """Raised by ingestion callables when a batch of traces cannot be submitted."""
