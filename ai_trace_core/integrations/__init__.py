"""Client instrumentation."""

from .openai_client import TracedOpenAI, extract_request_parameters, wrap_openai

__all__ = ["TracedOpenAI", "extract_request_parameters", "wrap_openai"]
