"""
Lifecycle hooks around the (de)serialization of a type's instances.

Attach an Interceptor subclass to a type with the json_interceptor decorator
or Engine.override_interceptor. Every hook has a no-op default, so
subclasses override only what they need.

Serialization order for one object:
    on_serializing(obj)                    False writes the object as null
    on_serializing_member(obj, item)       per member; False skips it
    serialize_extra_values(obj)            extra (name, value) pairs
    on_serialized(obj)

Deserialization order for one object:
    on_deserializing(obj)                  after allocation, before members
    on_deserializing_member(obj, item)     per member; False skips it
    on_deserialized(obj)
"""

from __future__ import annotations

from typing import Any, Iterable


class JsonItem:
    """
    A member name/value pair handed to member hooks.

    The value may always be replaced. The name may only be changed while
    serializing an object member; renaming during deserialization raises
    AttributeError.
    """

    __slots__ = ("_name", "value", "_renameable")

    def __init__(self, name: str, value: Any, renameable: bool = True):
        self._name = name
        self.value = value
        self._renameable = renameable

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        if not self._renameable:
            raise AttributeError(f"The name of item {self._name!r} cannot be changed")
        self._name = value

    @property
    def renameable(self) -> bool:
        return self._renameable

    def __repr__(self) -> str:
        return f"JsonItem({self._name!r}, {self.value!r})"


class Interceptor:
    """Base class for lifecycle hooks. All hooks default to no-ops."""

    def on_serializing(self, obj: Any) -> bool:
        return True

    def on_serializing_member(self, obj: Any, item: JsonItem) -> bool:
        return True

    def serialize_extra_values(self, obj: Any) -> Iterable[tuple[str, Any]] | None:
        return None

    def on_serialized(self, obj: Any) -> None:
        pass

    def on_deserializing(self, obj: Any) -> None:
        pass

    def on_deserializing_member(self, obj: Any, item: JsonItem) -> bool:
        return True

    def on_deserialized(self, obj: Any) -> None:
        pass
