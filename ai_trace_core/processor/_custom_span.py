"""Marked custom span payloads.

A custom span carries a reference to a record built outside the agent run so
it can be placed in the run's span tree. The marker key tells it apart from an
ordinary ``custom`` span emitted by the agent framework.
"""

from collections.abc import Mapping
from typing import Any

CUSTOM_SPAN_MARKER = "__trace_custom_span__"
CUSTOM_SPAN_DATA_KEY = "span"


def create_custom_span_data(span: Any, name: str | None = None, extra_data: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Build span data wrapping a pre-built span under ``data["span"]``."""
    return {
        "type": "custom",
        "name": name,
        "data": {**(extra_data or {}), CUSTOM_SPAN_DATA_KEY: span},
        CUSTOM_SPAN_MARKER: True,
    }


def is_custom_span_data(span_data: Any) -> bool:
    return isinstance(span_data, Mapping) and span_data.get(CUSTOM_SPAN_MARKER) is True
