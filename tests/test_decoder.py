"""Tests for reading JSON into typed object graphs."""

import collections
import datetime
import enum
import types
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import NamedTuple, Optional

import numpy as np
import pytest
from pydantic import BaseModel

from objson import (
    ConversionError,
    JsonSerializationError,
    MalformedArray,
    NotConstructible,
    ParseError,
    json_enum_names,
    json_serializable,
)


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
class Person:
    name: str = ""
    age: int = 0


@dataclass
class Schedule:
    start: Optional[datetime.datetime] = None
    span: datetime.timedelta = datetime.timedelta(0)
    day: Optional[datetime.date] = None
    key: Optional[uuid.UUID] = None
    payload: bytes = b""


@dataclass(frozen=True)
class FrozenPoint:
    x: int = 0
    y: int = 0


@dataclass
class NeedsArgs:
    value: int


class Point(NamedTuple):
    x: int
    y: float


class Inventory:
    def __init__(self):
        self._items = []

    @property
    def items(self) -> list[int]:
        return self._items


class Model(BaseModel):
    name: str = ""
    size: int = 0


@json_serializable
class Wallet:
    def __init__(self, owner: str, balance: int):
        self.owner = owner
        self.balance = balance


class Note:
    def __init__(self, text, extra=None):
        self.text = text
        if extra is not None:
            self.extra = extra


@dataclass
class Team:
    lead: Person = field(default_factory=Person)
    members: list[Person] = field(default_factory=list)
    scores: dict[int, float] = field(default_factory=dict)


# ============================================================================
# Scalars
# ============================================================================


class TestScalars:
    def test_numbers_from_strings(self, engine):
        assert engine.decode('{"age": "42"}', Person).age == 42
        assert engine.decode('"1.5"', float) == 1.5

    def test_integral_floats(self, engine):
        assert engine.decode("3.0", int) == 3

    def test_lossy_int_conversion(self, engine):
        with pytest.raises(ConversionError, match="without losing precision"):
            engine.decode('{"age": 4.5}', Person)

    def test_bool_is_not_a_number(self, engine):
        with pytest.raises(ConversionError):
            engine.decode("true", int)

    def test_bools(self, engine):
        assert engine.decode('"True"', bool) is True
        with pytest.raises(ConversionError):
            engine.decode("1", bool)

    def test_strings_from_numbers(self, engine):
        assert engine.decode("12", str) == "12"

    def test_decimal(self, engine):
        assert engine.decode('"1.10"', Decimal) == Decimal("1.10")

    def test_nullable(self, engine):
        assert engine.decode("null", Optional[int]) is None
        assert engine.decode('"5"', Optional[int]) == 5

    def test_type_objects(self, engine):
        assert engine.decode('"builtins:int"', type) is int

    def test_conversion_error_is_value_error(self, engine):
        with pytest.raises(ValueError):
            engine.decode('"abc"', int)


class TestDates:
    def test_round_trip(self, engine):
        start = datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)
        schedule = Schedule(start, datetime.timedelta(days=1, minutes=5), datetime.date(2024, 2, 3))
        decoded = engine.decode(engine.encode(schedule), Schedule)
        assert decoded.start == start
        assert decoded.span == datetime.timedelta(days=1, minutes=5)
        assert decoded.day == datetime.date(2024, 2, 3)

    def test_naive_datetime(self, engine):
        decoded = engine.decode('{"start": "2024-01-02T03:04:05"}', Schedule)
        assert decoded.start == datetime.datetime(2024, 1, 2, 3, 4, 5)

    def test_utc_suffix_is_aware(self, engine):
        decoded = engine.decode('{"start": "2024-01-02T03:04:05Z"}', Schedule)
        assert decoded.start.tzinfo is not None
        assert decoded.start.utcoffset() == datetime.timedelta(0)

    def test_utc_dates_give_local_time(self, engine):
        decoded = engine.decode('{"start": "2024-01-02T03:04:05Z"}', Schedule, utc_dates=True)
        assert decoded.start.tzinfo is None

    def test_timedelta_from_seconds(self, engine):
        assert engine.decode('{"span": 90}', Schedule).span == datetime.timedelta(seconds=90)

    def test_timedelta_text(self, engine):
        assert engine.decode('"-1.02:03:04.5"', datetime.timedelta) == -datetime.timedelta(
            days=1, hours=2, minutes=3, seconds=4, microseconds=500000
        )

    def test_invalid_datetime(self, engine):
        with pytest.raises(ConversionError):
            engine.decode('{"start": "yesterday"}', Schedule)


class TestBinary:
    def test_uuid_forms(self, engine):
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert engine.decode('"12345678-1234-5678-1234-567812345678"', uuid.UUID) == value
        assert engine.decode('"EjRWeBI0VngSNFZ4EjRWeA=="', uuid.UUID) == value

    def test_invalid_uuid(self, engine):
        with pytest.raises(ConversionError):
            engine.decode('"not-a-uuid"', uuid.UUID)

    def test_bytes(self, engine):
        assert engine.decode('{"payload": "AAEC"}', Schedule).payload == b"\x00\x01\x02"

    def test_invalid_base64(self, engine):
        with pytest.raises(ConversionError):
            engine.decode('"**"', bytes)


class TestEnums:
    def test_by_name(self, engine):
        assert engine.decode('"HIGH"', Level) is Level.HIGH

    def test_case_insensitive(self, engine):
        assert engine.decode('"high"', Level) is Level.HIGH

    def test_by_value(self, engine):
        assert engine.decode("2", Level) is Level.HIGH
        assert engine.decode('"2"', Level) is Level.HIGH

    def test_configured_names(self, engine):
        assert engine.decode('"very-important"', Tier) is Tier.VIP
        assert engine.decode('"vip"', Tier) is Tier.VIP

    def test_flags(self, engine):
        assert engine.decode('"READ, WRITE"', Access) == Access.READ | Access.WRITE

    def test_unknown(self, engine):
        with pytest.raises(ConversionError):
            engine.decode('"nope"', Level)


# ============================================================================
# Collections
# ============================================================================


class TestCollections:
    def test_typed_lists(self, engine):
        assert engine.decode('["1", 2]', list[int]) == [1, 2]
        assert engine.decode("[1, 2, 2]", set[int]) == {1, 2}
        decoded = engine.decode("[1, 2]", collections.deque[int])
        assert isinstance(decoded, collections.deque)

    def test_tuples(self, engine):
        assert engine.decode('[1, "a"]', tuple[int, str]) == (1, "a")
        assert engine.decode("[1, 2]", Point) == Point(1, 2.0)

    def test_dict_forms(self, engine):
        assert engine.decode('{"1": "a"}', dict[int, str]) == {1: "a"}
        pairs = '[{"k": 1, "v": "a"}, {"k": 2, "v": "b"}]'
        assert engine.decode(pairs, dict[int, str]) == {1: "a", 2: "b"}

    def test_enum_keys(self, engine):
        assert engine.decode('{"LOW": 1}', dict[Level, int]) == {Level.LOW: 1}

    def test_bad_pair_entries(self, engine):
        with pytest.raises(ConversionError):
            engine.decode('[{"key": 1}]', dict[int, str])

    def test_ndarray(self, engine):
        decoded = engine.decode("[[1, 2], [3, 4]]", np.ndarray)
        assert decoded.shape == (2, 2)
        assert decoded.tolist() == [[1, 2], [3, 4]]

    def test_zero_dimensional_ndarray(self, engine):
        decoded = engine.decode("5", np.ndarray)
        assert decoded.shape == ()
        assert decoded.item() == 5

    def test_ragged_ndarray(self, engine):
        with pytest.raises(MalformedArray):
            engine.decode("[[1, 2], [3]]", np.ndarray)

    def test_dynamic_values(self, engine):
        decoded = engine.decode('{"a": [1, {"b": null}]}')
        assert type(decoded) is dict
        assert decoded == {"a": [1, {"b": None}]}

    def test_expected_array(self, engine):
        with pytest.raises(ConversionError):
            engine.decode('{"a": 1}', list[int])


# ============================================================================
# Objects
# ============================================================================


class TestObjects:
    def test_nested(self, engine):
        text = '{"lead": {"name": "A"}, "members": [{"name": "B", "age": 3}], "scores": {"1": 0.5}}'
        team = engine.decode(text, Team)
        assert team.lead == Person("A", 0)
        assert team.members == [Person("B", 3)]
        assert team.scores == {1: 0.5}

    def test_unknown_keys_are_ignored(self, engine):
        assert engine.decode('{"unknownKey": 1, "Age": 2}', Person) == Person("", 2)

    def test_naming_convention_lookup(self, engine):
        decoded = engine.decode('{"NAME": "x"}', Person, naming_convention="upper")
        assert decoded.name == "x"

    def test_frozen_dataclass(self, engine):
        assert engine.decode('{"x": 1, "y": 2}', FrozenPoint) == FrozenPoint(1, 2)

    def test_pydantic_model(self, engine):
        model = engine.decode('{"name": "m", "size": "3"}', Model)
        assert isinstance(model, Model)
        assert (model.name, model.size) == ("m", 3)

    def test_read_only_collection_is_filled(self, engine):
        assert engine.decode('{"items": [1, 2]}', Inventory).items == [1, 2]

    def test_not_constructible(self, engine):
        with pytest.raises(NotConstructible):
            engine.decode('{"value": 1}', NeedsArgs)

    def test_parametric_constructor_override(self, engine):
        decoded = engine.decode('{"value": 1}', NeedsArgs, parametric_constructor_override=True)
        assert decoded.value == 1

    def test_expected_object(self, engine):
        with pytest.raises(ConversionError, match="Expected a JSON object"):
            engine.decode("[1]", Person)

    def test_parse_errors_propagate(self, engine):
        with pytest.raises(ParseError):
            engine.decode("{", Person)

    def test_errors_share_a_base(self, engine):
        with pytest.raises(JsonSerializationError):
            engine.decode('{"age": []}', Person)


class TestUndeclaredMembers:
    def test_init_parameters_round_trip(self, engine):
        text = engine.encode(Wallet("ann", 10))
        assert text == '{"owner":"ann","balance":10}'
        decoded = engine.decode(text, Wallet)
        assert (decoded.owner, decoded.balance) == ("ann", 10)

    def test_parameter_annotations_coerce(self, engine):
        assert engine.decode('{"owner": "a", "balance": "7"}', Wallet).balance == 7

    def test_unset_attribute_is_skipped(self, engine):
        assert engine.encode(Note("bob")) == '{"text":"bob"}'
        assert engine.encode(Note("bob", [1])) == '{"text":"bob","extra":[1]}'

    def test_other_public_attributes(self, engine):
        note = Note("x")
        note.stamp = 3
        note._cache = "skip"
        text = engine.encode(note)
        assert text == '{"text":"x","stamp":3}'
        decoded = engine.decode(text, Note, parametric_constructor_override=True)
        assert (decoded.text, decoded.stamp) == ("x", 3)
        assert not hasattr(decoded, "_cache")

    def test_library_class_target(self, engine):
        with pytest.raises(ConversionError, match="register a converter"):
            engine.decode("{}", complex)


class TestDecodeInto:
    def test_object(self, engine):
        person = Person("A", 7)
        assert engine.decode_into(person, '{"name": "B"}') is person
        assert person == Person("B", 7)

    def test_list_is_extended(self, engine):
        items = [1]
        engine.decode_into(items, "[2, 3]")
        assert items == [1, 2, 3]

    def test_dict_is_updated(self, engine):
        values = {"a": 1}
        engine.decode_into(values, '{"b": 2}')
        assert values == {"a": 1, "b": 2}

    def test_root_back_reference(self, engine):
        team = Team()
        engine.decode_into(team, '{"members": [{"$i": 1}]}')
        assert team.members == [team]

    def test_scalar_target(self, engine):
        with pytest.raises(ConversionError):
            engine.decode_into(Person(), "[1]")


def test_load(engine, tmp_path):
    path = tmp_path / "person.json"
    path.write_text('{"name": "F", "age": 9}')
    with open(path) as fp:
        assert engine.load(fp, Person) == Person("F", 9)


def test_special_collections(engine):
    namespace = engine.decode('{"a": 1, "b": [2]}', types.SimpleNamespace)
    assert namespace == types.SimpleNamespace(a=1, b=[2])
    proxy = engine.decode('{"a": 1}', types.MappingProxyType)
    assert isinstance(proxy, types.MappingProxyType)
    assert proxy["a"] == 1
