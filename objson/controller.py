"""
Reflection controllers: the policy consulted while building type plans.

The plan cache asks the controller about each type and each discovered
member. ReflectionController answers every question with "no opinion", which
leaves the built-in defaults in charge:

- public readable members are serialized
- public writable members are deserialized
- read-only members holding a mutable collection are filled in place
- everything else is left out

JsonReflectionController, the default, answers from declarative metadata:
typing.Annotated markers on members and class decorators (see
objson.attributes). Subclass either one to plug in a different source of
metadata:

    >>> class NoPrivates(JsonReflectionController):
    ...     def is_member_serializable(self, cls, member):
    ...         if member.name.startswith("secret"):
    ...             return TriState.EXCLUDE
    ...         return super().is_member_serializable(cls, member)
    ...
    >>> engine = Engine(controller=NoPrivates())
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from objson.attributes import (
    DefaultValue,
    ItemConverter,
    JsonField,
    JsonInclude,
    ReadOnly,
    declared_alias_type,
    type_options,
)
from objson.converters import Converter
from objson.interceptors import Interceptor
from objson.reflection import MemberInfo


class TriState(enum.Enum):
    """A controller decision: force in, force out, or leave to the default."""

    DEFAULT = "default"
    INCLUDE = "include"
    EXCLUDE = "exclude"

    @classmethod
    def of(cls, flag: bool | None) -> "TriState":
        if flag is None:
            return cls.DEFAULT
        return cls.INCLUDE if flag else cls.EXCLUDE


@dataclass(frozen=True)
class SerializedNames:
    """
    Serialized names of a member.

    Attributes:
        default: The name used for any value, None to keep the member name.
        typed: Names used only while the member holds an instance of exactly
            the given type.
    """

    default: str | None = None
    typed: dict[type, str] = field(default_factory=dict)


class ReflectionController:
    """Controller with no metadata of its own."""

    def get_type_alias(self, cls: type) -> str | None:
        return None

    def is_always_constructible(self, cls: type) -> bool:
        return False

    def get_converter(self, cls: type) -> Converter | None:
        return None

    def get_interceptor(self, cls: type) -> Interceptor | None:
        return None

    def get_collection_container_name(self, cls: type) -> str | None:
        return None

    def get_enum_value_name(self, cls: type, member: enum.Enum) -> str | None:
        return None

    def is_member_serializable(self, cls: type, member: MemberInfo) -> TriState:
        return TriState.DEFAULT

    def is_member_deserializable(self, cls: type, member: MemberInfo) -> TriState:
        return TriState.DEFAULT

    def get_serialized_names(self, cls: type, member: MemberInfo) -> SerializedNames | None:
        return None

    def get_non_serialized_values(self, cls: type, member: MemberInfo) -> tuple | None:
        return None

    def get_member_converter(self, cls: type, member: MemberInfo) -> Converter | None:
        return None

    def get_member_item_converter(self, cls: type, member: MemberInfo) -> Converter | None:
        return None

    def find_aliased_type(self, alias: str) -> type | None:
        """Look up a type by an alias the registry has not seen yet."""
        return None


def _markers(member: MemberInfo, kind: type) -> list:
    return [m for m in member.metadata if isinstance(m, kind)]


class JsonReflectionController(ReflectionController):
    """Reads Annotated member markers and json_* class decorators."""

    def get_type_alias(self, cls):
        return type_options(cls).get("alias")

    def is_always_constructible(self, cls):
        return bool(type_options(cls).get("serializable", False))

    def get_converter(self, cls):
        return type_options(cls).get("converter")

    def get_interceptor(self, cls):
        for klass in getattr(cls, "__mro__", ()):
            interceptor = type_options(klass).get("interceptor")
            if interceptor is not None:
                return interceptor
        return None

    def get_collection_container_name(self, cls):
        return type_options(cls).get("collection")

    def get_enum_value_name(self, cls, member):
        return type_options(cls).get("enum_names", {}).get(member.name)

    def is_member_serializable(self, cls, member):
        includes = _markers(member, JsonInclude)
        if includes:
            return TriState.of(includes[-1].include)
        return TriState.DEFAULT

    def is_member_deserializable(self, cls, member):
        read_only = _markers(member, ReadOnly)
        if read_only and read_only[-1].read_only:
            return TriState.EXCLUDE
        return self.is_member_serializable(cls, member)

    def get_serialized_names(self, cls, member):
        fields = _markers(member, JsonField)
        if not fields:
            return None
        default = None
        typed = {}
        for marker in fields:
            if marker.type is None:
                default = marker.name
            else:
                typed[marker.type] = marker.name
        return SerializedNames(default=default, typed=typed)

    def get_non_serialized_values(self, cls, member):
        values: tuple[Any, ...] = ()
        for marker in _markers(member, DefaultValue):
            values += marker.values
        return values or None

    def get_member_converter(self, cls, member):
        converters = _markers(member, Converter)
        return converters[-1] if converters else None

    def get_member_item_converter(self, cls, member):
        wrappers = _markers(member, ItemConverter)
        return wrappers[-1].converter if wrappers else None

    def find_aliased_type(self, alias):
        return declared_alias_type(alias)
