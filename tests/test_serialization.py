"""Tests for the event serializer."""

import json
from datetime import UTC, date, datetime
from enum import Enum, StrEnum
from types import MappingProxyType

import pytest
from pydantic import BaseModel

from ai_trace_core.serialization import (
    BYTES_SENTINEL,
    CYCLE_SENTINEL,
    MAX_SAFE_INTEGER,
    EventSerializer,
    convert_to_string_dict,
    not_serializable,
    safe_stringify,
    serialize_to_str,
)


class Color(Enum):
    RED = "red"


class Mode(StrEnum):
    FAST = "fast"


class Wrapper:
    def __init__(self, value):
        self.value = value


class Point:
    def __init__(self, x, y):
        self.x = x
        self.y = y
        self._secret = "hidden"


class Hostile:
    def __getattribute__(self, name):
        raise RuntimeError("no access")


class Message(BaseModel):
    role: str
    content: str


class Scored(BaseModel):
    value: float


class TestJsonValues:
    """JSON-representable values survive a round trip unchanged."""

    @pytest.mark.parametrize(
        "value",
        [
            None,
            True,
            "héllo",
            42,
            -3.5,
            [1, "two", None],
            {"a": {"b": [1, 2, {"c": False}]}},
            {"value": 1, "other": 2},
        ],
    )
    def test_round_trip(self, value):
        assert json.loads(EventSerializer().encode(value)) == value

    def test_tuple_becomes_list(self):
        assert EventSerializer().default((1, 2)) == [1, 2]

    def test_set_becomes_list(self):
        assert sorted(EventSerializer().default({3, 1, 2})) == [1, 2, 3]

    def test_mapping_keys_are_stringified(self):
        assert EventSerializer().default({1: "a", None: "b"}) == {"1": "a", "None": "b"}


class TestDicts:
    def test_private_keys_dropped(self):
        assert EventSerializer().default({"_secret": 1, "a": 2}) == {"a": 2}

    def test_single_value_key_unwraps(self):
        assert EventSerializer().default({"value": "RED"}) == "RED"
        assert EventSerializer().default({"value": {"_k": 1, "v": 2}, "_tag": "x"}) == {"v": 2}

    def test_nested_dicts_are_filtered(self):
        assert EventSerializer().default([{"_id": 3, "name": "a"}]) == [{"name": "a"}]
        assert json.loads(serialize_to_str({"outer": {"value": 5}})) == {"outer": 5}

    def test_other_mappings_keep_all_keys(self):
        assert EventSerializer().default(MappingProxyType({"_k": 1, "value": 2})) == {"_k": 1, "value": 2}
        assert EventSerializer().default(MappingProxyType({"value": 2})) == {"value": 2}

    def test_pydantic_fields_are_not_unwrapped(self):
        assert EventSerializer().default(Scored(value=0.5)) == {"value": 0.5}
        assert EventSerializer().default([Scored(value=1.0)]) == [{"value": 1.0}]

    def test_dict_value_cycle(self):
        value: dict = {}
        value["value"] = value
        assert EventSerializer().default(value) == CYCLE_SENTINEL


class TestNumbers:
    def test_safe_integer_boundary_stays_numeric(self):
        serializer = EventSerializer()
        assert serializer.default(MAX_SAFE_INTEGER) == MAX_SAFE_INTEGER
        assert serializer.default(-MAX_SAFE_INTEGER) == -MAX_SAFE_INTEGER

    def test_large_integer_becomes_decimal_string(self):
        assert EventSerializer().default(MAX_SAFE_INTEGER + 1) == str(MAX_SAFE_INTEGER + 1)
        assert EventSerializer().default(-(2**64)) == str(-(2**64))

    def test_large_integral_float_becomes_decimal_string(self):
        assert EventSerializer().default(1e20) == "100000000000000000000"
        assert EventSerializer().default(-1e20) == "-100000000000000000000"
        assert EventSerializer().default(1e300) == str(int(1e300))
        assert "e" not in EventSerializer().default(1e300)

    def test_float_within_safe_range_stays_numeric(self):
        assert EventSerializer().default(2.0**53 - 1) == 2.0**53 - 1

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_float_becomes_null(self, value):
        assert EventSerializer().default(value) is None
        assert EventSerializer().encode(value) == "null"


class TestSpecialValues:
    def test_datetime_and_date_are_iso(self):
        moment = datetime(2024, 5, 1, 12, 30, tzinfo=UTC)
        assert EventSerializer().default(moment) == "2024-05-01T12:30:00+00:00"
        assert EventSerializer().default(date(2024, 5, 1)) == "2024-05-01"

    def test_exception(self):
        assert EventSerializer().default(ValueError("bad input")) == "ValueError: bad input"

    def test_bytes_utf8_decoded(self):
        assert EventSerializer().default("héllo".encode()) == "héllo"

    def test_undecodable_bytes(self):
        assert EventSerializer().default(b"\xff\xfe\xfa") == BYTES_SENTINEL

    def test_enum_members_unwrap(self):
        assert EventSerializer().default(Color.RED) == "red"
        assert EventSerializer().default(Mode.FAST) == "fast"

    def test_enum_like_object_unwraps(self):
        assert EventSerializer().default(Wrapper(5)) == 5

    def test_plain_object_public_attributes(self):
        assert EventSerializer().default(Point(1, 2)) == {"x": 1, "y": 2}

    def test_pydantic_model(self):
        assert EventSerializer().default(Message(role="user", content="hi")) == {"role": "user", "content": "hi"}

    def test_callable_and_type(self):
        assert EventSerializer().default(len) == "<builtin_function_or_method>"
        assert EventSerializer().default(int) == "<type>"

    def test_hostile_object_gives_sentinel(self):
        assert EventSerializer().default(Hostile()) == not_serializable(Hostile())
        assert EventSerializer().default(Hostile()).startswith("<not serializable object of type: Hostile")


class TestCycles:
    def test_self_referencing_dict(self):
        value: dict = {"name": "root"}
        value["self"] = value
        assert EventSerializer().default(value) == {"name": "root", "self": CYCLE_SENTINEL}

    def test_self_referencing_list_encodes(self):
        value: list = [1]
        value.append(value)
        assert json.loads(EventSerializer().encode(value)) == [1, CYCLE_SENTINEL]

    def test_object_cycle(self):
        a = Point(1, None)
        b = Point(2, a)
        a.y = b
        assert EventSerializer().default(a) == {"x": 1, "y": {"x": 2, "y": CYCLE_SENTINEL}}

    def test_shared_sibling_is_not_a_cycle(self):
        shared = {"k": 1}
        assert EventSerializer().default([shared, shared]) == [{"k": 1}, {"k": 1}]

    def test_serializer_is_reusable(self):
        serializer = EventSerializer()
        value: dict = {}
        value["loop"] = value
        serializer.default(value)
        assert serializer.default({"fresh": [1]}) == {"fresh": [1]}


class TestHelpers:
    def test_serialize_to_str_passes_strings(self):
        assert serialize_to_str("already text") == "already text"
        assert serialize_to_str({"a": 1}) == '{"a": 1}'

    def test_safe_stringify_indent(self):
        assert safe_stringify({"a": 1}, indent=2) == '{\n  "a": 1\n}'
        assert safe_stringify("text") == '"text"'

    def test_convert_to_string_dict(self):
        result = convert_to_string_dict({"none": None, "text": "t", "number": 3, "flag": True, "nested": {"a": [1]}})
        assert result == {"none": "", "text": "t", "number": "3", "flag": "true", "nested": '{"a": [1]}'}

    def test_convert_to_string_dict_empty(self):
        assert convert_to_string_dict(None) == {}
