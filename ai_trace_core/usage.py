"""Token usage normalization.

Chat Completions reports ``prompt_tokens``/``completion_tokens`` with
``prompt_tokens_details``/``completion_tokens_details``; the Responses and
Agents APIs report ``input_tokens``/``output_tokens`` with
``input_tokens_details``/``output_tokens_details`` or a flat ``details``
dict. ``parse_usage`` folds all of them into one ``TokenUsage``.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

_DETAIL_KEYS: dict[str, tuple[str, ...]] = {
    "reasoning_tokens": ("details", "completion_tokens_details", "output_tokens_details"),
    "cached_tokens": ("details", "prompt_tokens_details", "input_tokens_details"),
    "rejected_prediction_tokens": ("details", "completion_tokens_details", "output_tokens_details"),
}


class TokenUsage(BaseModel):
    """Canonical token counts for one LLM call."""

    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int | None = None
    reasoning_tokens: int = 0
    cached_tokens: int = 0
    rejected_prediction_tokens: int = 0


def as_mapping(value: Any) -> dict[str, Any]:
    """View a dict, pydantic model or plain object as a dict. Anything else is empty."""
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, BaseModel):
        return value.model_dump()
    attributes = getattr(value, "__dict__", None)
    if isinstance(attributes, Mapping):
        return {key: item for key, item in attributes.items() if not str(key).startswith("_")}
    return {}


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def as_float(value: Any) -> float | None:
    """Numeric value as float; bools and non-numbers give None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _first_int(*candidates: Any) -> int | None:
    for candidate in candidates:
        if (number := _as_int(candidate)) is not None:
            return number
    return None


def _detail(usage: dict[str, Any], key: str) -> int:
    nested = (as_mapping(usage.get(container)).get(key) for container in _DETAIL_KEYS[key])
    return _first_int(*nested, usage.get(key)) or 0


def parse_usage(payload: Any) -> TokenUsage:
    """Normalize a usage payload from any supported API shape.

    ``total_tokens`` is taken from the payload when present, otherwise computed
    from input and output counts when either is non-zero; it stays ``None``
    when the payload is missing or carries no counts at all.
    """
    if payload is None:
        return TokenUsage()
    usage = as_mapping(payload)

    input_tokens = _first_int(usage.get("input_tokens"), usage.get("prompt_tokens")) or 0
    output_tokens = _first_int(usage.get("output_tokens"), usage.get("completion_tokens")) or 0
    total_tokens = _as_int(usage.get("total_tokens"))
    if total_tokens is None and (input_tokens or output_tokens):
        total_tokens = input_tokens + output_tokens

    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
        reasoning_tokens=_detail(usage, "reasoning_tokens"),
        cached_tokens=_detail(usage, "cached_tokens"),
        rejected_prediction_tokens=_detail(usage, "rejected_prediction_tokens"),
    )
