"""
Declarative serialization metadata.

Member metadata rides inside typing.Annotated, on class annotations or on
property return annotations:

    @dataclass
    class Demo:
        # written as "prop"
        my_property: Annotated[str, JsonField("prop")] = ""

        # omitted while the value is 0
        number: Annotated[int, DefaultValue(0)] = 0

        # written as "a" for ClassA, "b" for ClassB, "variant" otherwise
        identifier: Annotated[
            object,
            JsonField("a", ClassA),
            JsonField("b", ClassB),
            JsonField("variant"),
        ] = None

        # neither written nor read
        internal: Annotated[int, JsonInclude(False), ReadOnly()] = 0

A Converter instance in the metadata is the member converter, and
ItemConverter(converter) converts the items of a collection member.

Type metadata is set with class decorators:

    @json_serializable              # may be constructed without a public ctor
    @json_alias("demo")             # `$type` tag
    @json_interceptor(AuditHooks)   # lifecycle hooks
    @json_converter(DemoConverter())
    @json_collection("items")       # record + iterable: items under "items"
    class Demo: ...

    @json_enum_names(Vip="VIP")
    class Level(Enum): ...

The default JsonReflectionController reads all of these. Type decorators
store their settings in the class's own `__json_options__` dict, so a
subclass does not inherit them, except the interceptor, which is looked up
along the MRO.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass
from typing import Any

from objson.converters import Converter
from objson.interceptors import Interceptor

OPTIONS_ATTR = "__json_options__"

# Classes decorated with json_alias, so `$type` aliases resolve before the
# class has been serialized once
_declared_aliases: weakref.WeakValueDictionary = weakref.WeakValueDictionary()


# =============================================================================
# Member Markers
# =============================================================================


@dataclass(frozen=True)
class JsonField:
    """
    Sets the serialized name of a member.

    With `type`, the name applies only while the member holds an instance of
    exactly that type, and decoding that name produces that type.
    """

    name: str
    type: Any = None


@dataclass(frozen=True)
class JsonInclude:
    """Forces a member in (True) or out (False) of serialization."""

    include: bool = True


class DefaultValue:
    """Values for which the member is omitted from the output."""

    __slots__ = ("values",)

    def __init__(self, *values: Any):
        self.values = values

    def __repr__(self) -> str:
        return f"DefaultValue{self.values!r}"


@dataclass(frozen=True)
class ReadOnly:
    """Marks a member as not deserializable."""

    read_only: bool = True


@dataclass(frozen=True)
class ItemConverter:
    """Wraps the converter applied to each item of a collection member."""

    converter: Converter


# =============================================================================
# Type Decorators
# =============================================================================


def _options(cls: type) -> dict:
    options = cls.__dict__.get(OPTIONS_ATTR)
    if options is None:
        options = {}
        setattr(cls, OPTIONS_ATTR, options)
    return options


def json_serializable(cls: type) -> type:
    """Marks a class as constructible even without a public parameterless constructor."""
    _options(cls)["serializable"] = True
    return cls


def json_alias(alias: str):
    """Sets the `$type` alias of a class."""

    def decorate(cls: type) -> type:
        _options(cls)["alias"] = alias
        _declared_aliases[alias] = cls
        return cls

    return decorate


def json_converter(converter: Converter):
    """Attaches a type converter to a class."""

    def decorate(cls: type) -> type:
        _options(cls)["converter"] = converter
        return cls

    return decorate


def json_interceptor(interceptor: Interceptor | type[Interceptor]):
    """Attaches lifecycle hooks to a class. Accepts an instance or a class."""
    if isinstance(interceptor, type):
        if not issubclass(interceptor, Interceptor):
            raise TypeError(f"{interceptor.__qualname__} is not an Interceptor subclass")
        interceptor = interceptor()

    def decorate(cls: type) -> type:
        _options(cls)["interceptor"] = interceptor
        return cls

    return decorate


def json_collection(name: str):
    """Writes an iterable record as an object, with its items under `name`."""

    def decorate(cls: type) -> type:
        _options(cls)["collection"] = name
        return cls

    return decorate


def json_enum_names(**names: str):
    """Sets the serialized names of enum members, keyed by member name."""

    def decorate(cls: type) -> type:
        _options(cls)["enum_names"] = dict(names)
        return cls

    return decorate


def type_options(cls: type) -> dict:
    """Return the decorator settings declared on the class itself."""
    return getattr(cls, "__dict__", {}).get(OPTIONS_ATTR) or {}


def declared_alias_type(alias: str) -> type | None:
    """Return the class most recently decorated with json_alias(alias)."""
    return _declared_aliases.get(alias)
