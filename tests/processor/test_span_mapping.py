"""Tests for span kind and name resolution."""

import pytest

from ai_trace_core.processor import NodeType, create_custom_span_data, is_custom_span_data, map_span_name, map_span_type


class TestMapSpanType:
    @pytest.mark.parametrize(
        ("span_type", "expected"),
        [
            ("generation", NodeType.LLM),
            ("response", NodeType.LLM),
            ("function", NodeType.TOOL),
            ("guardrail", NodeType.TOOL),
            ("transcription", NodeType.TOOL),
            ("speech", NodeType.TOOL),
            ("speech_group", NodeType.TOOL),
            ("mcp_tools", NodeType.TOOL),
            ("agent", NodeType.AGENT),
            ("retriever", NodeType.RETRIEVER),
            ("custom", NodeType.CUSTOM),
            ("handoff", NodeType.WORKFLOW),
            ("task", NodeType.WORKFLOW),
        ],
    )
    def test_known_and_unknown_types(self, span_type: str, expected: NodeType):
        assert map_span_type({"type": span_type}) is expected

    def test_missing_type_is_workflow(self):
        assert map_span_type({}) is NodeType.WORKFLOW

    def test_marked_custom_span(self):
        data = create_custom_span_data({"id": 1}, name="Lookup")
        assert is_custom_span_data(data)
        assert map_span_type(data) is NodeType.CUSTOM
        assert not is_custom_span_data({"type": "custom"})


class TestMapSpanName:
    def test_explicit_name_wins(self):
        assert map_span_name({"type": "function", "name": "get_weather"}) == "get_weather"

    def test_handoff_names(self):
        assert map_span_name({"type": "handoff", "from_agent": "A", "to_agent": "B"}) == "Handoff: A → B"
        assert map_span_name({"type": "handoff", "to_agent": "B"}) == "Handoff:  → B"
        assert map_span_name({"type": "handoff"}) == "Handoff"

    def test_defaults(self):
        assert map_span_name({"type": "generation"}) == "Generation"
        assert map_span_name({"type": "mcp_tools"}) == "MCP Tools"
        assert map_span_name({"type": "speech_group"}) == "Speech Group"
        assert map_span_name({"type": "mystery"}) == "Span"
        assert map_span_name({}) == "Span"

    def test_custom_without_name(self):
        data = create_custom_span_data({"id": 1})
        assert map_span_name(data, NodeType.CUSTOM) == "Custom"
