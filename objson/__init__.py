"""
objson - object graph <-> JSON mapping.

This library writes arbitrary Python object graphs as compact JSON and reads
them back into typed objects, without requiring the types to implement any
serialization contract. Each type is introspected once (annotations,
properties, __slots__, dataclass and pydantic fields) and the resulting plan
is cached.

- Shared and circular references are written once and referenced with
  `{"$i": n}` afterwards; decoding restores identity, not copies.
- Members holding a subclass of their declared type carry a `$type` tag and
  decode back into that subclass.
- Scalars are coerced to the declared member types on decode.

Basic Usage:
    >>> from objson import encode, decode
    >>>
    >>> @dataclass
    ... class Node:
    ...     name: str = ""
    ...     parent: "Node | None" = None
    >>>
    >>> root = Node("root")
    >>> leaf = Node("leaf", parent=root)
    >>> encode(leaf)
    '{"name":"leaf","parent":{"name":"root","parent":null}}'
    >>> decode(encode(leaf), Node).parent.name
    'root'

Options:
    Pass a JsonParameters instance, or change single fields per call:

    >>> encode(leaf, null_values_emitted=False, naming_convention="upper")
    '{"NAME":"leaf","PARENT":{"NAME":"root"}}'

Declarative metadata:
    >>> from typing import Annotated
    >>> from objson import JsonField, DefaultValue, json_alias
    >>>
    >>> @json_alias("point")
    ... @dataclass
    ... class Point:
    ...     x: Annotated[int, JsonField("X"), DefaultValue(0)] = 0
    ...     y: int = 0

Programmatic configuration uses an Engine, which owns its own plan cache
and alias registry. The module-level functions use a shared default engine:

    >>> from objson import Engine, JsonParameters
    >>> engine = Engine(JsonParameters(extensions_enabled=False))
    >>> engine.override_member_name(Point, "y", "Y")
"""

from objson.attributes import (
    DefaultValue,
    ItemConverter,
    JsonField,
    JsonInclude,
    ReadOnly,
    json_alias,
    json_collection,
    json_converter,
    json_enum_names,
    json_interceptor,
    json_serializable,
)
from objson.controller import (
    JsonReflectionController,
    ReflectionController,
    SerializedNames,
    TriState,
)
from objson.converters import (
    Converter,
    FunctionConverter,
    IPAddressConverter,
    JsonConverter,
    PathConverter,
    RegexConverter,
    ZeroOneBooleanConverter,
)
from objson.engine import Engine
from objson.errors import (
    CircularReferenceError,
    ConfigurationError,
    ConversionError,
    DepthExceeded,
    JsonSerializationError,
    MalformedArray,
    NotConstructible,
    ParseError,
    TypeResolutionError,
    UnresolvedReference,
)
from objson.interceptors import Interceptor, JsonItem
from objson.naming import NamingConvention, NamingStrategy
from objson.parameters import JsonParameters
from objson.plans import MemberOverride, MemberPlan, TypeOverride, TypePlan
from objson.reflection import ConstructorKind, DataKind
from objson.values import DynamicJson, JsonObject, beautify, parse

default_engine = Engine()


def encode(value, options=None, *, declared_type=None, **changes) -> str:
    """
    Encode a value as JSON text with the default engine.

    Args:
        value: The object graph to encode.
        options: A JsonParameters instance replacing the defaults.
        declared_type: The type the reader will decode into.
        **changes: JsonParameters fields to change for this call.

    Returns:
        The JSON text.

    Raises:
        DepthExceeded: If the graph nests deeper than max_depth.
        CircularReferenceError: If inline references meet a cycle.
    """
    return default_engine.encode(value, options, declared_type=declared_type, **changes)


def encode_nice(value, options=None, *, declared_type=None, indent=2, **changes) -> str:
    """Encode a value as indented JSON text with the default engine."""
    return default_engine.encode_nice(
        value, options, declared_type=declared_type, indent=indent, **changes
    )


def dump(value, fp, options=None, *, declared_type=None, **changes) -> None:
    """Encode a value into a text file object with the default engine."""
    default_engine.dump(value, fp, options, declared_type=declared_type, **changes)


def decode(text, target_type=object, options=None, **changes):
    """
    Decode JSON text with the default engine.

    Args:
        text: The JSON document (str or UTF-8 bytes).
        target_type: The type to decode into.
        options: A JsonParameters instance replacing the defaults.
        **changes: JsonParameters fields to change for this call.

    Returns:
        The decoded object graph.

    Raises:
        ParseError: If the text is not valid JSON.
        TypeResolutionError: If a `$type` tag cannot be resolved, or a type
            cannot be constructed.
        UnresolvedReference: If a `$i` reference is unknown.
        ConversionError: If a value cannot be coerced to its declared type.
    """
    return default_engine.decode(text, target_type, options, **changes)


def load(fp, target_type=object, options=None, **changes):
    """Decode the contents of a file object with the default engine."""
    return default_engine.load(fp, target_type, options, **changes)


def to_dynamic(text, options=None, **changes):
    """
    Decode JSON text without a target type, with attribute access to objects.

    Example:
        >>> to_dynamic('{"user": {"name": "ann"}}').user.name
        'ann'
    """
    return default_engine.to_dynamic(text, options, **changes)


def decode_into(instance, text, options=None, **changes):
    """Fill an existing instance from JSON text and return it."""
    return default_engine.decode_into(instance, text, options, **changes)


def deep_copy(value, options=None, **changes):
    """Copy an object graph by encoding and decoding it."""
    return default_engine.deep_copy(value, options, **changes)


def override(tp, override, purge_existing=False) -> TypePlan:
    """Apply a TypeOverride on the default engine."""
    return default_engine.override(tp, override, purge_existing)


def invalidate(tp=None) -> None:
    """Drop cached plans of the default engine."""
    default_engine.invalidate(tp)


__all__ = [
    "CircularReferenceError",
    "ConfigurationError",
    "ConstructorKind",
    "ConversionError",
    "Converter",
    "DataKind",
    "DefaultValue",
    "DepthExceeded",
    "DynamicJson",
    "Engine",
    "FunctionConverter",
    "IPAddressConverter",
    "Interceptor",
    "ItemConverter",
    "JsonConverter",
    "JsonField",
    "JsonInclude",
    "JsonItem",
    "JsonObject",
    "JsonParameters",
    "JsonReflectionController",
    "JsonSerializationError",
    "MalformedArray",
    "MemberOverride",
    "MemberPlan",
    "NamingConvention",
    "NamingStrategy",
    "NotConstructible",
    "ParseError",
    "PathConverter",
    "ReadOnly",
    "ReflectionController",
    "RegexConverter",
    "SerializedNames",
    "TriState",
    "TypeOverride",
    "TypePlan",
    "TypeResolutionError",
    "UnresolvedReference",
    "ZeroOneBooleanConverter",
    "beautify",
    "decode",
    "decode_into",
    "deep_copy",
    "default_engine",
    "dump",
    "encode",
    "encode_nice",
    "invalidate",
    "json_alias",
    "json_collection",
    "json_converter",
    "json_enum_names",
    "json_interceptor",
    "json_serializable",
    "load",
    "override",
    "parse",
    "to_dynamic",
]
