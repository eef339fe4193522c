"""Tests for JSON output."""

import datetime
import enum
import fractions
import io
import json
import types
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Annotated, ClassVar, Optional

import numpy as np
import pytest

from objson import (
    ConversionError,
    DefaultValue,
    DepthExceeded,
    Engine,
    FunctionConverter,
    JsonParameters,
    json_alias,
    json_enum_names,
)
from objson.encoder import format_datetime, format_timedelta


# ============================================================================
# Module-level types
# ============================================================================


class Level(enum.Enum):
    LOW = 1
    HIGH = 2


class Access(enum.Flag):
    READ = 1
    WRITE = 2
    EXECUTE = 4


@json_enum_names(VIP="very-important")
class Tier(enum.Enum):
    BASIC = "basic"
    VIP = "vip"


@dataclass
class Item:
    Description: Optional[str] = None
    Tags: list[str] = field(default_factory=list)


@dataclass
class Defaulted:
    MyProperty: Annotated[int, DefaultValue(0)] = 0
    Version: ClassVar[int] = 3


@dataclass
class Holder:
    value: object = None


@json_alias("labelled")
@dataclass
class Labelled:
    text: str = ""


class WithProperty:
    first: str

    def __init__(self):
        self.first = "Ada"

    @property
    def shout(self) -> str:
        return self.first.upper()


# ============================================================================
# Scalars
# ============================================================================


class TestScalars:
    def test_primitives(self, engine):
        assert engine.encode(None) == "null"
        assert engine.encode(True) == "true"
        assert engine.encode(12) == "12"
        assert engine.encode(1.5) == "1.5"
        assert engine.encode(Decimal("1.10")) == "1.10"
        assert engine.encode("a\"b") == '"a\\"b"'

    def test_non_finite_floats(self, engine):
        assert engine.encode([float("nan"), float("inf"), float("-inf")]) == "[NaN,Infinity,-Infinity]"

    def test_unicode_escaping(self, engine):
        assert engine.encode("é") == '"\\u00e9"'
        assert engine.encode("é", escaped_unicode_strings=False) == '"é"'

    def test_bytes_are_base64(self, engine):
        assert engine.encode(b"\x00\x01\x02") == '"AAEC"'

    def test_uuid(self, engine):
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert engine.encode(value) == '"12345678-1234-5678-1234-567812345678"'
        compact = engine.encode(value, compact_guids=True)
        assert compact == '"EjRWeBI0VngSNFZ4EjRWeA=="'

    def test_numpy_scalars(self, engine):
        assert engine.encode(np.int64(3)) == "3"
        assert engine.encode(np.float32(0.5)) == "0.5"

    def test_type_objects(self, engine):
        assert engine.encode(int) == '"builtins:int"'

    def test_library_classes_need_a_converter(self, engine):
        with pytest.raises(ConversionError, match="register a converter"):
            engine.encode(complex(1, 2))
        with pytest.raises(ConversionError):
            engine.encode(Holder(fractions.Fraction(1, 3)))

    def test_library_class_with_converter(self, engine):
        converter = FunctionConverter(
            lambda c: [c.real, c.imag], lambda v: complex(*v), wire_type=list[float]
        )
        engine.override_converter(complex, converter)
        assert engine.encode(complex(1, 2)) == "[1.0,2.0]"
        assert engine.decode("[1, 2]", complex) == complex(1, 2)


class TestDates:
    def test_naive_datetime(self):
        value = datetime.datetime(2024, 1, 2, 3, 4, 5, 678000)
        assert format_datetime(value) == "2024-01-02T03:04:05"
        assert format_datetime(value, milliseconds=True) == "2024-01-02T03:04:05.678"

    def test_aware_datetime_is_utc(self):
        tz = datetime.timezone(datetime.timedelta(hours=2))
        value = datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=tz)
        assert format_datetime(value) == "2024-01-02T01:04:05Z"

    def test_date_and_time(self, engine):
        assert engine.encode(datetime.date(2024, 5, 6)) == '"2024-05-06"'
        assert engine.encode(datetime.time(7, 8, 9)) == '"07:08:09"'

    def test_timedelta(self):
        assert format_timedelta(datetime.timedelta(hours=1, minutes=2, seconds=3)) == "01:02:03"
        assert format_timedelta(datetime.timedelta(days=2, seconds=5)) == "2.00:00:05"
        assert format_timedelta(datetime.timedelta(seconds=-90)) == "-00:01:30"
        assert format_timedelta(datetime.timedelta(microseconds=5)) == "00:00:00.000005"


class TestEnums:
    def test_names(self, engine):
        assert engine.encode(Level.HIGH) == '"HIGH"'

    def test_numeric(self, engine):
        assert engine.encode(Level.HIGH, numeric_enums=True) == "2"

    def test_configured_names(self, engine):
        assert engine.encode(Tier.VIP) == '"very-important"'
        assert engine.encode(Tier.BASIC) == '"BASIC"'

    def test_flags(self, engine):
        assert engine.encode(Access.READ | Access.WRITE) == '"READ, WRITE"'
        assert engine.encode(Access.EXECUTE) == '"EXECUTE"'


# ============================================================================
# Collections
# ============================================================================


class TestCollections:
    def test_lists_and_tuples(self, engine):
        assert engine.encode([1, "a", None]) == '[1,"a",null]'
        assert engine.encode((1, 2)) == "[1,2]"

    def test_string_keyed_dict(self, engine):
        assert engine.encode({"a": 1, "b": [True]}) == '{"a":1,"b":[true]}'

    def test_non_string_keys_use_pairs(self, engine):
        assert engine.encode({1: "a", 2: "b"}) == '[{"k":1,"v":"a"},{"k":2,"v":"b"}]'

    def test_kv_style_option(self, engine):
        text = engine.encode({"a": 1}, kv_style_string_dictionary=True)
        assert text == '[{"k":"a","v":1}]'

    def test_enum_keys_are_names(self, engine):
        assert engine.encode({Level.LOW: 1}) == '{"LOW":1}'

    def test_ndarray(self, engine):
        assert engine.encode(np.arange(4).reshape(2, 2)) == "[[0,1],[2,3]]"

    def test_zero_dimensional_ndarray(self, engine):
        assert engine.encode(np.array(5)) == "5"
        assert engine.encode({"x": np.array(1.5)}) == '{"x":1.5}'

    def test_depth_guard(self, engine):
        value = []
        for _ in range(25):
            value = [value]
        with pytest.raises(DepthExceeded):
            engine.encode(value)

    def test_depth_within_limit(self, engine):
        value = []
        for _ in range(4):
            value = [value]
        assert engine.encode(value, max_depth=5) == "[[[[[]]]]]"


# ============================================================================
# Objects
# ============================================================================


class TestObjects:
    def test_null_and_empty_elision(self, engine):
        item = Item()
        assert engine.encode(item) == '{"Description":null,"Tags":[]}'
        text = engine.encode(item, null_values_emitted=False, empty_collections_emitted=False)
        assert text == "{}"

    def test_default_value_elision(self, engine):
        assert engine.encode(Defaulted(), static_members_emitted=True) == '{"Version":3}'
        assert engine.encode(Defaulted(0)) == "{}"
        assert engine.encode(Defaulted(1)) == '{"MyProperty":1}'

    def test_statics_off_by_default(self, engine):
        assert "Version" not in engine.encode(Defaulted(1))

    def test_readonly_properties(self, engine):
        assert engine.encode(WithProperty()) == '{"first":"Ada","shout":"ADA"}'
        text = engine.encode(WithProperty(), readonly_members_emitted=False)
        assert text == '{"first":"Ada"}'

    def test_type_tag_for_dynamic_member(self, engine):
        text = engine.encode(Holder(Item("x")))
        tree = json.loads(text)
        assert tree["value"]["$type"].endswith(":Item")
        assert list(tree["value"]) == ["$type", "Description", "Tags"]

    def test_no_type_tag_without_extensions(self, engine):
        text = engine.encode(Holder(Item("x")), extensions_enabled=False)
        assert "$type" not in text

    def test_alias_is_always_written(self, engine):
        assert engine.encode(Labelled("t")) == '{"$type":"labelled","text":"t"}'

    def test_declared_root_type(self, engine):
        text = engine.encode(Item(), declared_type=object)
        assert json.loads(text)["$type"].endswith(":Item")

    def test_naming_conventions(self, engine):
        item = Item("d")
        assert engine.encode(item, naming_convention="lower") == '{"description":"d","tags":[]}'
        assert engine.encode(item, naming_convention="camel") == '{"description":"d","tags":[]}'
        assert engine.encode(item, naming_convention="upper") == '{"DESCRIPTION":"d","TAGS":[]}'


class TestOutput:
    def test_dump_to_file(self, engine):
        buffer = io.StringIO()
        engine.dump({"a": 1}, buffer)
        assert buffer.getvalue() == '{"a":1}'

    def test_output_is_valid_json(self, engine):
        value = {"items": [Item("a", ["x"]), Item()], "when": datetime.date(2020, 1, 1)}
        assert json.loads(engine.encode(value))["when"] == "2020-01-01"

    def test_engine_defaults(self):
        engine = Engine(JsonParameters(null_values_emitted=False))
        assert engine.encode(Item()) == '{"Tags":[]}'
        assert engine.encode(Item(), null_values_emitted=True) == '{"Description":null,"Tags":[]}'


def test_special_collections(engine):
    assert engine.encode(types.SimpleNamespace(a=1)) == '{"a":1}'
    assert engine.encode(types.MappingProxyType({"b": 2})) == '{"b":2}'
