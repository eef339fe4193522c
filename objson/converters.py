"""
Value converters for the serialization pipeline.

A converter is a pure pair of functions: to_wire() turns a value into the
form that is written, from_wire() turns a decoded value back. A converter can
be attached to:

- a type (json_converter decorator, or Engine.override_converter),
- a member (a Converter instance inside typing.Annotated),
- the items of a collection member (ItemConverter inside typing.Annotated).

Member and item converters take precedence over type converters.

When a converter sets `wire_type`, the decoder first decodes the raw JSON
value into that type and hands the result to from_wire(), so from_wire()
never has to deal with raw parsed data:

    >>> class PointConverter(JsonConverter):
    ...     original_type = Point
    ...     wire_type = list[float]
    ...     def convert(self, value):
    ...         return [value.x, value.y]
    ...     def revert(self, value):
    ...         return Point(*value)
"""

from __future__ import annotations

import ipaddress
import pathlib
import re
import typing
from typing import Any, Callable, ClassVar


class Converter:
    """
    Base class of all converters.

    Attributes:
        wire_type: The type the decoder should produce from the raw JSON
            value before calling from_wire(). None passes the raw value.
    """

    wire_type: ClassVar[Any] = None

    def to_wire(self, value: Any) -> Any:
        return value

    def from_wire(self, value: Any) -> Any:
        return value


class JsonConverter(Converter):
    """
    A converter between one original type and one wire type.

    Values that are not instances of `original_type` pass through to_wire()
    unchanged. from_wire() only reverts values already shaped like
    `wire_type` (when it is a plain class); anything else passes through.
    """

    original_type: ClassVar[type] = object

    def to_wire(self, value: Any) -> Any:
        if isinstance(value, self.original_type):
            return self.convert(value)
        return value

    def from_wire(self, value: Any) -> Any:
        wire = typing.get_origin(self.wire_type) or self.wire_type
        if isinstance(wire, type) and not isinstance(value, wire):
            return value
        return self.revert(value)

    def convert(self, value: Any) -> Any:
        raise NotImplementedError

    def revert(self, value: Any) -> Any:
        raise NotImplementedError


class FunctionConverter(Converter):
    """A converter assembled from two plain functions."""

    def __init__(
        self,
        to_wire: Callable[[Any], Any],
        from_wire: Callable[[Any], Any],
        wire_type: Any = None,
    ):
        self._to_wire = to_wire
        self._from_wire = from_wire
        self.wire_type = wire_type

    def to_wire(self, value: Any) -> Any:
        return self._to_wire(value)

    def from_wire(self, value: Any) -> Any:
        return self._from_wire(value)


# =============================================================================
# Bundled Converters
# =============================================================================


class IPAddressConverter(JsonConverter):
    """Writes IPv4/IPv6 addresses and networks as their text form."""

    original_type = (
        ipaddress.IPv4Address,
        ipaddress.IPv6Address,
        ipaddress.IPv4Network,
        ipaddress.IPv6Network,
    )
    wire_type = str

    def convert(self, value):
        return str(value)

    def revert(self, value):
        if "/" in value:
            return ipaddress.ip_network(value, strict=False)
        return ipaddress.ip_address(value)


class PathConverter(JsonConverter):
    """Writes filesystem paths as POSIX strings."""

    original_type = pathlib.PurePath
    wire_type = str

    def __init__(self, path_type: type = pathlib.Path):
        self.path_type = path_type

    def convert(self, value):
        return value.as_posix()

    def revert(self, value):
        return self.path_type(value)


class RegexConverter(JsonConverter):
    """Writes compiled patterns as {"pattern": ..., "flags": ...}."""

    original_type = re.Pattern
    wire_type = dict

    def convert(self, value):
        return {"pattern": value.pattern, "flags": int(value.flags)}

    def revert(self, value):
        return re.compile(value["pattern"], value.get("flags", 0))


class ZeroOneBooleanConverter(JsonConverter):
    """Writes booleans as 1 and 0, and reads 0, 1, true and false back."""

    original_type = bool
    wire_type = None

    def convert(self, value):
        return 1 if value else 0

    def revert(self, value):
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true")
        return bool(value)

