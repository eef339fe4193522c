"""
JSON text -> object graph.

One Decoder instance serves a single decode call. It walks the parsed value
tree against the plan of the declared target type:

- `{"$i": n}` returns the n-th object allocated so far in this call. Sibling
  keys are ignored.
- `{"$type": "..."}` switches to the plan of the named type, which must be a
  subclass of the declared class.
- Every other object is allocated, registered under the next sequence
  number, and only then filled. A member may therefore point back at an
  owner that is still being filled.

Scalars are coerced to the declared type when the conversion is exact, and
ConversionError is raised otherwise:

    >>> decode('{"age": "42"}', Person).age
    42
    >>> decode('{"age": 4.5}', Person)
    Traceback (most recent call last):
    ...
    objson.errors.ConversionError: Cannot convert 4.5 to int without losing precision

Keys matching no member are ignored.
"""

from __future__ import annotations

import base64
import binascii
import collections
import datetime
import decimal
import enum
import functools
import operator
import re
import types
import uuid
from typing import Any

import numpy as np

from objson.converters import Converter
from objson.errors import (
    ConversionError,
    MalformedArray,
    TypeResolutionError,
    UnresolvedReference,
)
from objson.interceptors import JsonItem
from objson.naming import NamingConvention, NamingStrategy, get_strategy
from objson.parameters import DEFAULT_PARAMETERS, JsonParameters
from objson.plans import MemberPlan, TypePlan, TypePlanCache
from objson.reflection import ABSTRACT_LISTS, ABSTRACT_MAPPINGS, MISSING, DataKind
from objson.values import PAIR_KEY, PAIR_VALUE, JsonObject, ValueTree, is_pair_array, parse

_TIMEDELTA_PATTERN = re.compile(
    r"^(?P<sign>-)?(?:(?P<days>\d+)\.)?(?P<hours>\d+):(?P<minutes>\d{2}):(?P<seconds>\d{2})"
    r"(?:\.(?P<fraction>\d{1,7}))?$"
)


# =============================================================================
# Literal Formats
# =============================================================================


def parse_datetime(text: str, utc: bool = False) -> datetime.datetime:
    """
    Parse yyyy-MM-ddTHH:mm:ss[.fff][Z].

    Values ending in Z come back as aware UTC datetimes, or as naive local
    time when utc is set, mirroring how the encoder wrote them.
    """
    in_utc = text.endswith("Z")
    body = text[:-1] if in_utc else text
    try:
        value = datetime.datetime.fromisoformat(body)
    except ValueError as e:
        raise ConversionError(f"Invalid datetime {text!r}") from e
    if in_utc and value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    if utc and in_utc:
        value = value.astimezone().replace(tzinfo=None)
    return value


def parse_timedelta(text: str) -> datetime.timedelta:
    """Parse [-][d.]HH:mm:ss[.ffffff]."""
    match = _TIMEDELTA_PATTERN.match(text.strip())
    if match is None:
        raise ConversionError(f"Invalid time span {text!r}")
    fraction = (match["fraction"] or "").ljust(6, "0")[:6]
    value = datetime.timedelta(
        days=int(match["days"] or 0),
        hours=int(match["hours"]),
        minutes=int(match["minutes"]),
        seconds=int(match["seconds"]),
        microseconds=int(fraction),
    )
    return -value if match["sign"] else value


def parse_uuid(text: str) -> uuid.UUID:
    """Parse a canonical UUID string, or base64 of its 16 bytes."""
    try:
        return uuid.UUID(text)
    except ValueError:
        pass
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConversionError(f"Invalid UUID {text!r}") from e
    if len(raw) != 16:
        raise ConversionError(f"Invalid UUID {text!r}")
    return uuid.UUID(bytes=raw)


def _array_shape(tree: list) -> list[int]:
    """Infer the extents of a nested array, checking that it is rectangular."""
    shape = []
    level: Any = tree
    while isinstance(level, list):
        shape.append(len(level))
        if not level:
            break
        level = level[0]

    def check(node, depth):
        if depth == len(shape):
            if isinstance(node, list):
                raise MalformedArray(f"Array is deeper than {len(shape)} dimensions")
            return
        if not isinstance(node, list) or len(node) != shape[depth]:
            raise MalformedArray(
                f"Array is not rectangular: expected {shape[depth]} items at depth {depth}"
            )
        for child in node:
            check(child, depth + 1)

    check(tree, 0)
    return shape


def _extend(target: Any, items: Any) -> None:
    """Fill an existing collection in place."""
    if isinstance(target, dict):
        target.update(items)
    elif hasattr(target, "extend"):
        target.extend(items)
    elif hasattr(target, "update"):
        target.update(items)
    else:
        for item in items:
            target.append(item)


def _is_state_name(key: str, plan: TypePlan) -> bool:
    return key.isidentifier() and not key.startswith("_") and key not in plan.state_names


# =============================================================================
# Decoder
# =============================================================================


class Decoder:
    """
    Reads one value tree into an object graph.

    Args:
        cache: The plan cache to read type plans from.
        options: The parameters of this call.
        naming: The naming strategy. Defaults to the built-in strategy
            selected by options.naming_convention.
    """

    def __init__(
        self,
        cache: TypePlanCache,
        options: JsonParameters = DEFAULT_PARAMETERS,
        naming: NamingStrategy | None = None,
    ):
        self.cache = cache
        self.registry = cache.registry
        self.options = options
        self.naming = naming or get_strategy(options.naming_convention)
        self._refs: list = []
        # id(plan) -> (plan, names produced by the naming strategy)
        self._renamed: dict[int, tuple[TypePlan, dict[str, MemberPlan]]] = {}

    def decode(self, text: str | bytes, target_type: Any = object) -> Any:
        """Parse text and decode it into target_type."""
        return self.read_value(parse(text), target_type)

    def decode_into(self, instance: Any, text: str | bytes) -> Any:
        """
        Fill an existing instance from text, skipping construction.

        The instance is registered as sequence number 1, so back-references
        to the root resolve to it.
        """
        tree = parse(text)
        plan = self.cache.get_plan(type(instance))
        if plan.kind is DataKind.DICTIONARY:
            _extend(instance, self.read_value(tree, plan.type))
            return instance
        if plan.kind is DataKind.LIST:
            _extend(instance, self.read_value(tree, plan.type))
            return instance
        if plan.kind is not DataKind.OBJECT or not isinstance(tree, JsonObject):
            raise ConversionError(
                f"Cannot fill {type(instance).__qualname__} from {type(tree).__name__}"
            )
        self._refs.append(instance)
        self._fill_object(instance, tree, plan)
        return instance

    # =========================================================================
    # Dispatch
    # =========================================================================

    def read_value(
        self, tree: ValueTree, declared_type: Any = object, item_converter: Converter | None = None
    ) -> Any:
        """
        Decode one tree node into the declared type.

        Args:
            tree: The parsed value.
            declared_type: The statically declared type of the slot.
            item_converter: Converter for the items of a collection value.
        """
        if tree is None:
            return None
        plan = self.cache.get_plan(declared_type)
        if plan.kind is DataKind.NULLABLE:
            plan = self.cache.get_plan(plan.arg(0))

        if isinstance(tree, JsonObject):
            if tree.is_reference:
                return self._resolve_reference(tree.ref_index)
            if tree.type_tag is not None:
                plan = self._tagged_plan(tree.type_tag, plan)

        if plan.converter is not None:
            return self._convert(tree, plan.converter)

        kind = plan.kind
        if plan.is_dynamic:
            return self._read_dynamic(tree)
        if kind is DataKind.OBJECT:
            return self._read_object(tree, plan)
        if kind is DataKind.STRING:
            return self._read_string(tree, plan)
        if kind is DataKind.PRIMITIVE:
            return self._read_primitive(tree, plan.cls)
        if kind is DataKind.ENUM:
            return self._read_enum(tree, plan)
        if kind is DataKind.LIST:
            return self._read_list(tree, plan, item_converter)
        if kind is DataKind.ARRAY:
            return self._read_array(tree, plan, item_converter)
        if kind is DataKind.DICTIONARY:
            return self._read_dict(tree, plan, item_converter)
        if kind is DataKind.SPECIAL_COLLECTION:
            return self._read_special(tree, plan)
        raise ConversionError(f"Cannot decode into {plan.type!r}")

    def _convert(self, tree: ValueTree, converter: Converter) -> Any:
        if converter.wire_type is not None:
            return converter.from_wire(self.read_value(tree, converter.wire_type))
        return converter.from_wire(tree)

    def _read_item(self, tree: ValueTree, item_type: Any, converter: Converter | None) -> Any:
        if converter is not None:
            return self._convert(tree, converter)
        return self.read_value(tree, item_type)

    def _resolve_reference(self, index: Any) -> Any:
        if isinstance(index, bool) or not isinstance(index, int):
            raise UnresolvedReference(index)
        if not 1 <= index <= len(self._refs):
            raise UnresolvedReference(index)
        return self._refs[index - 1]

    def _tagged_plan(self, tag: str, declared: TypePlan) -> TypePlan:
        cls = self.registry.resolve(tag)
        if cls is declared.cls:
            return declared
        if not declared.is_dynamic and not issubclass(cls, declared.cls):
            raise TypeResolutionError(
                f"$type {tag!r} names {cls.__qualname__}, "
                f"which is not a subclass of {declared.cls.__qualname__}"
            )
        return self.cache.get_plan(cls)

    def _read_dynamic(self, tree: ValueTree) -> Any:
        if isinstance(tree, JsonObject):
            return {key: self.read_value(value) for key, value in tree.items()}
        if isinstance(tree, list):
            return [self.read_value(item) for item in tree]
        return tree

    # =========================================================================
    # Scalars
    # =========================================================================

    def _read_string(self, tree: ValueTree, plan: TypePlan) -> str:
        if isinstance(tree, str):
            return tree if plan.cls is str else plan.cls(tree)
        if isinstance(tree, (int, float)) and not isinstance(tree, bool):
            return str(tree)
        raise ConversionError(f"Cannot convert {type(tree).__name__} to str")

    def _read_primitive(self, tree: ValueTree, cls: type) -> Any:
        if isinstance(tree, (list, dict)):
            raise ConversionError(f"Cannot convert {type(tree).__name__} to {cls.__name__}")
        if issubclass(cls, bool):
            return self._read_bool(tree)
        if issubclass(cls, int):
            return cls(self._read_int(tree))
        if issubclass(cls, float):
            if isinstance(tree, bool):
                raise ConversionError("Cannot convert a boolean to float")
            try:
                return cls(tree)
            except ValueError as e:
                raise ConversionError(f"Cannot convert {tree!r} to float") from e
        if issubclass(cls, decimal.Decimal):
            if isinstance(tree, bool):
                raise ConversionError("Cannot convert a boolean to Decimal")
            try:
                return cls(str(tree))
            except decimal.InvalidOperation as e:
                raise ConversionError(f"Cannot convert {tree!r} to Decimal") from e
        if issubclass(cls, type):
            return self.registry.resolve(tree)
        if not isinstance(tree, str):
            if issubclass(cls, datetime.timedelta) and isinstance(tree, (int, float)):
                return datetime.timedelta(seconds=tree)
            raise ConversionError(f"Cannot convert {type(tree).__name__} to {cls.__name__}")
        if issubclass(cls, (bytes, bytearray)):
            try:
                return cls(base64.b64decode(tree, validate=True))
            except (binascii.Error, ValueError) as e:
                raise ConversionError(f"Invalid base64 data for {cls.__name__}") from e
        if issubclass(cls, datetime.datetime):
            return parse_datetime(tree, self.options.utc_dates)
        if issubclass(cls, datetime.date):
            try:
                return datetime.date.fromisoformat(tree[:10])
            except ValueError as e:
                raise ConversionError(f"Invalid date {tree!r}") from e
        if issubclass(cls, datetime.time):
            try:
                return datetime.time.fromisoformat(tree)
            except ValueError as e:
                raise ConversionError(f"Invalid time {tree!r}") from e
        if issubclass(cls, datetime.timedelta):
            return parse_timedelta(tree)
        if issubclass(cls, uuid.UUID):
            return parse_uuid(tree)
        raise ConversionError(f"Cannot convert {tree!r} to {cls.__name__}")

    @staticmethod
    def _read_bool(tree: ValueTree) -> bool:
        if isinstance(tree, bool):
            return tree
        if isinstance(tree, str) and tree.lower() in ("true", "false"):
            return tree.lower() == "true"
        raise ConversionError(f"Cannot convert {tree!r} to bool")

    @staticmethod
    def _read_int(tree: ValueTree) -> int:
        if isinstance(tree, bool):
            raise ConversionError("Cannot convert a boolean to int")
        if isinstance(tree, int):
            return tree
        if isinstance(tree, float):
            if tree.is_integer():
                return int(tree)
            raise ConversionError(f"Cannot convert {tree!r} to int without losing precision")
        if isinstance(tree, str):
            try:
                return int(tree.strip())
            except ValueError as e:
                raise ConversionError(f"Cannot convert {tree!r} to int") from e
        raise ConversionError(f"Cannot convert {type(tree).__name__} to int")

    def _read_enum(self, tree: ValueTree, plan: TypePlan) -> enum.Enum:
        cls = plan.cls
        if isinstance(tree, str):
            member = plan.enum_values.get(tree)
            if member is not None:
                return member
            if plan.is_flag and "," in tree:
                parts = [self._read_enum(part.strip(), plan) for part in tree.split(",")]
                return functools.reduce(operator.or_, parts)
            folded = tree.casefold()
            for name, member in plan.enum_values.items():
                if name.casefold() == folded:
                    return member
        elif isinstance(tree, bool):
            raise ConversionError(f"Cannot convert a boolean to {cls.__qualname__}")
        try:
            return cls(tree)
        except ValueError:
            pass
        if isinstance(tree, str):
            try:
                return cls(int(tree))
            except ValueError:
                pass
        raise ConversionError(f"{tree!r} is not a valid {cls.__qualname__}")

    # =========================================================================
    # Collections
    # =========================================================================

    def _read_list(self, tree: ValueTree, plan: TypePlan, item_converter) -> Any:
        if not isinstance(tree, list):
            raise ConversionError(f"Expected a JSON array for {plan.type!r}")
        item_type = plan.arg(0)
        items = [self._read_item(raw, item_type, item_converter) for raw in tree]
        cls = ABSTRACT_LISTS.get(plan.cls, plan.cls)
        if cls is list:
            return items
        if cls in (set, frozenset, collections.deque):
            return cls(items)
        container = plan.create(self.options.parametric_constructor_override)
        _extend(container, items)
        return container

    def _read_array(self, tree: ValueTree, plan: TypePlan, item_converter) -> Any:
        cls = plan.cls
        if issubclass(cls, np.ndarray) and not isinstance(tree, (list, JsonObject)):
            # Zero-dimensional array
            return np.array(tree)
        if not isinstance(tree, list):
            raise ConversionError(f"Expected a JSON array for {plan.type!r}")
        if issubclass(cls, np.ndarray):
            _array_shape(tree)
            return np.array(self._read_dynamic(tree))
        items = [
            self._read_item(raw, plan.item_type(index), item_converter)
            for index, raw in enumerate(tree)
        ]
        if hasattr(cls, "_fields"):
            return cls(*items)
        return tuple(items) if cls is tuple else cls(items)

    def _read_dict(self, tree: ValueTree, plan: TypePlan, item_converter) -> Any:
        key_type, value_type = plan.arg(0), plan.arg(1)
        cls = ABSTRACT_MAPPINGS.get(plan.cls, plan.cls)
        result = cls() if cls is dict else plan.create(self.options.parametric_constructor_override)
        if isinstance(tree, JsonObject):
            for key, raw in tree.items():
                if key_type is not object and key_type is not str:
                    key = self.read_value(key, key_type)
                result[key] = self._read_item(raw, value_type, item_converter)
        elif isinstance(tree, list):
            if not is_pair_array(tree):
                raise ConversionError(
                    f'Dictionary entries must be {{"{PAIR_KEY}": ..., "{PAIR_VALUE}": ...}} objects'
                )
            for entry in tree:
                key = self.read_value(entry[PAIR_KEY], key_type)
                result[key] = self._read_item(entry.get(PAIR_VALUE), value_type, item_converter)
        else:
            raise ConversionError(f"Expected a JSON object or array for {plan.type!r}")
        return result

    def _read_special(self, tree: ValueTree, plan: TypePlan) -> Any:
        if not isinstance(tree, JsonObject):
            raise ConversionError(f"Expected a JSON object for {plan.cls.__qualname__}")
        data = self._read_dynamic(tree)
        if issubclass(plan.cls, types.SimpleNamespace):
            return plan.cls(**data)
        return types.MappingProxyType(data)

    # =========================================================================
    # Objects
    # =========================================================================

    def _read_object(self, tree: ValueTree, plan: TypePlan) -> Any:
        if plan.is_opaque:
            raise ConversionError(
                f"{plan.raw_name} has no JSON representation; register a converter for it"
            )
        if not isinstance(tree, JsonObject):
            raise ConversionError(
                f"Expected a JSON object for {plan.cls.__qualname__}, got {type(tree).__name__}"
            )
        instance = plan.create(self.options.parametric_constructor_override)
        self._refs.append(instance)
        self._fill_object(instance, tree, plan)
        return instance

    def _fill_object(self, instance: Any, tree: JsonObject, plan: TypePlan) -> None:
        interceptor = plan.interceptor
        if interceptor is not None:
            interceptor.on_deserializing(instance)

        for key, raw in tree.items():
            if key == plan.collection_container:
                items = self.read_value(raw, list[plan.arg(0)])
                _extend(instance, items)
                continue
            member = self._find_member(plan, key)
            if member is None:
                if plan.open_state and _is_state_name(key, plan):
                    setattr(instance, key, self.read_value(raw))
                continue
            if member.converter is not None:
                value = self._convert(raw, member.converter)
            else:
                value = self.read_value(raw, member.declared_type, member.item_converter)
            if interceptor is not None:
                item = JsonItem(member.name, value, renameable=False)
                if not interceptor.on_deserializing_member(instance, item):
                    continue
                value = item.value
            self._assign(instance, member, value)

        if interceptor is not None:
            interceptor.on_deserialized(instance)

    def _find_member(self, plan: TypePlan, key: str) -> MemberPlan | None:
        member = plan.find_setter(key)
        if member is not None or self.naming.convention is NamingConvention.DEFAULT:
            return member
        entry = self._renamed.get(id(plan))
        if entry is None:
            renamed: dict[str, MemberPlan] = {}
            for name, candidate in plan.setters.items():
                if not candidate.specific_name:
                    renamed.setdefault(self.naming.rename(name), candidate)
            for name, candidate in list(renamed.items()):
                renamed.setdefault(name.casefold(), candidate)
            entry = self._renamed[id(plan)] = (plan, renamed)
        renamed = entry[1]
        return renamed.get(key) or renamed.get(key.casefold())

    @staticmethod
    def _assign(instance: Any, member: MemberPlan, value: Any) -> None:
        if not member.appends:
            member.setter(instance, value)
            return
        existing = member.getter(instance)
        if existing is MISSING or existing is None:
            return
        _extend(existing, value)
