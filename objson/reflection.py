"""
Type introspection used to build serialization plans.

This module answers the questions the plan cache asks about a type, without
caching anything itself:

- classify(): which data kind a declared type belongs to
- get_members(): the data members a class declares, with resolved types
- constructor_kind(): whether the class can be created without arguments
- TypeRegistry: alias and raw-name lookup for `$type` tags

Data members come from, in order of discovery along the MRO:

1. Resolved class annotations (typing.get_type_hints, extras included).
   ClassVar annotations are static members.
2. Properties, read-only when they have no setter. Their type is the
   getter's return annotation.
3. `__slots__` entries not covered above.
4. Only for classes declaring none of the above: the parameters of their
   __init__, then, when constructible without arguments, the instance
   attributes of one probe instance. Instances of such classes also write
   and read back any other public attribute they hold.

Builtin and standard-library classes get no members at all.

Raw type names have the form `module:qualname`. Classes are looked up by
reference through cloudpickle, the same check it applies before pickling a
class by reference.
"""

from __future__ import annotations

import collections
import collections.abc
import dataclasses
import datetime
import decimal
import enum
import importlib
import inspect
import logging
import sys
import threading
import types
import typing
import uuid
from typing import Annotated, Any, ClassVar, Final, Union

import numpy as np
from cloudpickle.cloudpickle import _lookup_module_and_qualname
from pydantic import BaseModel

from objson.errors import ConfigurationError, TypeResolutionError

logger = logging.getLogger(__name__)


# =============================================================================
# Data Kinds
# =============================================================================


class DataKind(enum.Enum):
    """How a type is laid out on the wire. Exactly one applies per type."""

    PRIMITIVE = "primitive"
    STRING = "string"
    ENUM = "enum"
    ARRAY = "array"
    LIST = "list"
    DICTIONARY = "dictionary"
    SPECIAL_COLLECTION = "special_collection"
    OBJECT = "object"
    NULLABLE = "nullable"


class ConstructorKind(enum.Enum):
    PUBLIC = "public"
    NON_PUBLIC = "non_public"
    NONE = "none"


# Built-in primitives, checked in order (datetime before its base class date)
PRIMITIVE_TYPES: tuple[type, ...] = (
    bool,
    int,
    float,
    decimal.Decimal,
    bytes,
    bytearray,
    datetime.datetime,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    uuid.UUID,
    type,
)

SPECIAL_COLLECTIONS: tuple[type, ...] = (types.SimpleNamespace, types.MappingProxyType)

# Concrete list-like classes; subclasses count as list-like too
LIST_TYPES: tuple[type, ...] = (list, set, frozenset, collections.deque)

# Abstract collection types that decode into a concrete container
ABSTRACT_LISTS: dict[type, type] = {
    collections.abc.Iterable: list,
    collections.abc.Collection: list,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
}
ABSTRACT_MAPPINGS: dict[type, type] = {
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
}

_UNION_TYPES = (Union, types.UnionType)
NoneType = type(None)


def classify(tp: Any) -> tuple[DataKind, type, tuple]:
    """
    Classify a declared type.

    Args:
        tp: A class or a typing construct such as list[int] or int | None.

    Returns:
        A (kind, runtime class, type arguments) triple. Dynamic types
        (object, Any, multi-member unions, type variables) come back as
        (OBJECT, object, ()).
    """
    if tp is Any or tp is object or tp is None or tp is NoneType:
        return DataKind.OBJECT, object, ()
    if isinstance(tp, typing.TypeVar):
        return DataKind.OBJECT, object, ()
    supertype = getattr(tp, "__supertype__", None)
    if supertype is not None:
        # typing.NewType
        return classify(supertype)

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is Annotated:
        return classify(args[0])
    if origin in _UNION_TYPES:
        members = tuple(a for a in args if a is not NoneType)
        if len(members) == len(args):
            return DataKind.OBJECT, object, ()
        inner = members[0] if len(members) == 1 else Union[members]
        return DataKind.NULLABLE, object, (inner,)
    if origin is typing.Literal:
        return classify(type(args[0])) if args else (DataKind.OBJECT, object, ())

    cls = origin if origin is not None else tp
    if not isinstance(cls, type):
        return DataKind.OBJECT, object, ()

    if issubclass(cls, enum.Enum):
        return DataKind.ENUM, cls, ()
    if issubclass(cls, (tuple, np.ndarray)):
        return DataKind.ARRAY, cls, args
    if issubclass(cls, LIST_TYPES) or cls in ABSTRACT_LISTS:
        return DataKind.LIST, cls, args
    if (issubclass(cls, dict) or cls in ABSTRACT_MAPPINGS) and cls is not types.MappingProxyType:
        return DataKind.DICTIONARY, cls, args
    if issubclass(cls, str):
        return DataKind.STRING, cls, ()
    if issubclass(cls, PRIMITIVE_TYPES):
        return DataKind.PRIMITIVE, cls, args
    if issubclass(cls, SPECIAL_COLLECTIONS):
        return DataKind.SPECIAL_COLLECTION, cls, ()
    return DataKind.OBJECT, cls, args


# =============================================================================
# Members
# =============================================================================

MISSING = object()


@dataclasses.dataclass(frozen=True)
class MemberInfo:
    """
    A data member discovered on a class.

    Attributes:
        name: The attribute name.
        declared_type: The member's type with Annotated metadata removed.
        metadata: The Annotated metadata, in declaration order.
        owner: The class that declared the member.
        is_property: Whether the member is a property.
        is_static: Whether the member is a ClassVar.
        writable: Whether the member can be assigned.
        inferred: Found on the __init__ signature or on a probe instance
            rather than declared on the class.
    """

    name: str
    declared_type: Any
    metadata: tuple = ()
    owner: type = object
    is_property: bool = False
    is_static: bool = False
    writable: bool = True
    inferred: bool = False

    @property
    def is_public(self) -> bool:
        return not self.name.startswith("_")

    @property
    def is_readonly(self) -> bool:
        return not self.writable

    @property
    def is_collection(self) -> bool:
        kind, cls, _ = classify(self.declared_type)
        return kind in (DataKind.LIST, DataKind.DICTIONARY) and not issubclass(cls, frozenset)


def split_annotated(hint: Any) -> tuple[Any, tuple]:
    """Separate an Annotated type into its type and its metadata."""
    if typing.get_origin(hint) is Annotated:
        return hint.__origin__, tuple(hint.__metadata__)
    return hint, ()


def _own_annotations(klass: type) -> dict[str, Any]:
    """The annotations a class declares itself, unevaluated where possible."""
    try:
        return dict(inspect.get_annotations(klass))
    except NameError:
        # Deferred annotations (3.14+) with unresolved forward references
        import annotationlib

        return dict(
            annotationlib.get_annotations(klass, format=annotationlib.Format.FORWARDREF)
        )


def _evaluate(hint: Any, klass: type, localns: dict) -> Any:
    if isinstance(hint, typing.ForwardRef):
        hint = hint.__forward_arg__
    if not isinstance(hint, str):
        return hint
    module = sys.modules.get(klass.__module__)
    globalns = dict(getattr(module, "__dict__", {}))
    try:
        return eval(hint, globalns, {**localns, klass.__name__: klass})
    except (NameError, SyntaxError, TypeError, AttributeError):
        logger.debug("Unresolved annotation %r on %s, treated as object", hint, klass.__qualname__)
        return object


def _resolve_hints(cls: type) -> dict[str, Any]:
    localns = {cls.__name__: cls}
    try:
        return typing.get_type_hints(cls, localns=localns, include_extras=True)
    except (NameError, TypeError, AttributeError) as e:
        logger.debug("Falling back to per-annotation resolution for %s: %s", cls.__qualname__, e)
    hints = {}
    for klass in reversed(cls.__mro__):
        for name, hint in _own_annotations(klass).items():
            hints[name] = _evaluate(hint, klass, localns)
    return hints


def _property_type(prop: property, owner: type) -> Any:
    if prop.fget is None:
        return object
    try:
        hints = typing.get_type_hints(
            prop.fget, localns={owner.__name__: owner}, include_extras=True
        )
    except (NameError, TypeError, AttributeError):
        return object
    return hints.get("return", object)


def _is_library_base(klass: type) -> bool:
    """Bases whose own attributes are machinery rather than data."""
    if klass is object or klass is BaseModel or klass is typing.Generic:
        return True
    module = getattr(klass, "__module__", "") or ""
    return module == "builtins" or module.split(".")[0] in ("pydantic", "typing", "enum", "abc")


def is_library_class(cls: type) -> bool:
    """
    Builtin and standard-library classes other than dataclasses.

    Their attributes are implementation state, so they get no members and
    need a converter to be written.
    """
    if dataclasses.is_dataclass(cls):
        return False
    module = (getattr(cls, "__module__", "") or "").split(".")[0]
    if module == "__main__":
        return False
    return module == "builtins" or module in sys.stdlib_module_names


def _unwrap_qualifiers(hint: Any) -> tuple[Any, bool, tuple]:
    """Strip ClassVar, Final and Annotated, reporting staticness and metadata."""
    is_static = False
    metadata: tuple = ()
    while True:
        origin = typing.get_origin(hint)
        if hint is ClassVar or hint is Final:
            return object, hint is ClassVar or is_static, metadata
        if origin is ClassVar:
            is_static = True
            hint = typing.get_args(hint)[0]
        elif origin is Final:
            hint = typing.get_args(hint)[0]
        elif origin is Annotated:
            hint, extra = split_annotated(hint)
            metadata = metadata + extra
        else:
            return hint, is_static, metadata


def get_members(cls: type) -> list[MemberInfo]:
    """
    Discover the data members of a class.

    Args:
        cls: The class to inspect.

    Returns:
        Members in declaration order, base classes first. A member redefined
        in a subclass keeps its original position with the subclass's
        definition.
    """
    if not isinstance(cls, type) or _is_library_base(cls) or is_library_class(cls):
        return []

    hints = _resolve_hints(cls)
    members: dict[str, MemberInfo] = {}

    for klass in reversed(cls.__mro__):
        if _is_library_base(klass):
            continue
        for name in _own_annotations(klass):
            if name.startswith("__"):
                continue
            hint = hints.get(name, object)
            if isinstance(hint, dataclasses.InitVar) or hint is dataclasses.InitVar:
                continue
            declared, is_static, metadata = _unwrap_qualifiers(hint)
            members[name] = MemberInfo(
                name=name,
                declared_type=declared,
                metadata=metadata,
                owner=klass,
                is_static=is_static,
            )
        for name, attr in vars(klass).items():
            if name.startswith("__"):
                continue
            if isinstance(attr, property):
                declared, _, metadata = _unwrap_qualifiers(_property_type(attr, klass))
                members[name] = MemberInfo(
                    name=name,
                    declared_type=declared,
                    metadata=metadata,
                    owner=klass,
                    is_property=True,
                    writable=attr.fset is not None,
                )
        slots = vars(klass).get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name.startswith("__") or name in members:
                continue
            members[name] = MemberInfo(name=name, declared_type=object, owner=klass)

    if not members:
        members = {m.name: m for m in _init_members(cls)}
        for member in _probe_members(cls):
            members.setdefault(member.name, member)
    return list(members.values())


def _init_members(cls: type) -> list[MemberInfo]:
    """Parameters of a Python-level __init__, for classes declaring no members."""
    init = cls.__init__
    if init is object.__init__ or not inspect.isfunction(init):
        return []
    try:
        parameters = list(inspect.signature(init).parameters.values())[1:]
    except (TypeError, ValueError):
        return []
    try:
        hints = typing.get_type_hints(init, include_extras=True)
    except (NameError, TypeError, AttributeError):
        hints = {}
    members = []
    for param in parameters:
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        declared, _, metadata = _unwrap_qualifiers(hints.get(param.name, object))
        members.append(
            MemberInfo(
                name=param.name,
                declared_type=declared,
                metadata=metadata,
                owner=cls,
                inferred=True,
            )
        )
    return members


def _probe_members(cls: type) -> list[MemberInfo]:
    """Instance attributes of a probe instance, for classes declaring no members."""
    if constructor_kind(cls) is not ConstructorKind.PUBLIC:
        return []
    try:
        probe = cls()
    except Exception as e:
        logger.debug("Probe construction of %s failed: %s", cls.__qualname__, e)
        return []
    state = getattr(probe, "__dict__", None) or {}
    return [
        MemberInfo(name=name, declared_type=object, owner=cls, inferred=True)
        for name in state
        if not name.startswith("__")
    ]


# =============================================================================
# Accessors
# =============================================================================


def make_getter(member: MemberInfo):
    """Build a getter returning MISSING when the attribute is unset."""
    name = member.name

    def getter(obj):
        return getattr(obj, name, MISSING)

    getter.__name__ = f"get_{name}"
    return getter


def make_setter(member: MemberInfo, cls: type):
    """Build a setter. Frozen dataclasses and models are written through object.__setattr__."""
    name = member.name
    params = getattr(cls, "__dataclass_params__", None)
    frozen = params is not None and params.frozen
    if issubclass(cls, BaseModel):
        frozen = bool(cls.model_config.get("frozen"))
    if frozen and not member.is_property:

        def setter(obj, value):
            object.__setattr__(obj, name, value)

    else:

        def setter(obj, value):
            setattr(obj, name, value)

    setter.__name__ = f"set_{name}"
    return setter


# =============================================================================
# Construction
# =============================================================================


def constructor_kind(cls: type) -> ConstructorKind:
    """
    Determine whether a class can be instantiated without arguments.

    Classes whose name starts with an underscore are non-public. Abstract
    classes and classes whose constructor requires arguments have no usable
    constructor. Pydantic models are always constructible through
    model_construct().
    """
    if inspect.isabstract(cls) or getattr(cls, "_is_protocol", False):
        return ConstructorKind.NONE
    if cls.__name__.startswith("_"):
        return ConstructorKind.NON_PUBLIC
    if issubclass(cls, BaseModel):
        return ConstructorKind.PUBLIC
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        # Builtins without introspectable signatures
        return ConstructorKind.PUBLIC
    for param in signature.parameters.values():
        if param.default is param.empty and param.kind not in (
            param.VAR_POSITIONAL,
            param.VAR_KEYWORD,
        ):
            return ConstructorKind.NONE
    return ConstructorKind.PUBLIC


def make_constructor(cls: type):
    """Return the zero-argument factory of a publicly constructible class."""
    if issubclass(cls, BaseModel):
        return cls.model_construct
    return cls


def allocate(cls: type):
    """Create an instance without calling __init__, applying dataclass defaults."""
    obj = cls.__new__(cls)
    if dataclasses.is_dataclass(cls):
        for field in dataclasses.fields(cls):
            if field.default is not dataclasses.MISSING:
                object.__setattr__(obj, field.name, field.default)
            elif field.default_factory is not dataclasses.MISSING:
                object.__setattr__(obj, field.name, field.default_factory())
    return obj


# =============================================================================
# Type Registry
# =============================================================================


def raw_type_name(cls: type) -> str:
    """
    Return the `module:qualname` name of a class.

    Classes that cannot be found again by reference (defined in __main__ or
    inside a function) still get a name, which only resolves in the process
    that registered it.
    """
    found = _lookup_module_and_qualname(cls)
    if found is not None:
        module, qualname = found
        return f"{module.__name__}:{qualname}"
    return f"{cls.__module__}:{cls.__qualname__}"


class TypeRegistry:
    """
    Bidirectional type <-> alias map used for `$type` tags.

    Raw names of every type named through the registry are remembered, so
    they resolve even when the type cannot be imported by reference.

    Args:
        resolver: Optional callable mapping an unknown alias to a type, tried
            before importing the name as `module:qualname`.
        allowed_modules: When given, only raw names in these modules (or
            their submodules) are imported. Types already named by this
            registry resolve regardless.
    """

    def __init__(self, resolver=None, allowed_modules=None):
        self._lock = threading.RLock()
        self._resolver = resolver
        self.allowed_modules = (
            tuple(allowed_modules) if allowed_modules is not None else None
        )
        self._aliases: dict[type, str] = {}
        self._by_alias: dict[str, type] = {}
        self._by_raw_name: dict[str, type] = {}

    def register_alias(self, cls: type, alias: str | None) -> None:
        """
        Set or clear the alias of a type.

        Raises:
            ConfigurationError: If the alias is already used by another type.
        """
        with self._lock:
            if not alias:
                previous = self._aliases.pop(cls, None)
                if previous is not None:
                    self._by_alias.pop(previous, None)
                return
            owner = self._by_alias.get(alias)
            if owner is not None and owner is not cls:
                raise ConfigurationError(
                    f"Type alias {alias!r} is already used by {raw_type_name(owner)}"
                )
            previous = self._aliases.get(cls)
            if previous is not None and previous != alias:
                self._by_alias.pop(previous, None)
            self._aliases[cls] = alias
            self._by_alias[alias] = cls
            logger.debug("Registered alias %r for %s", alias, cls.__qualname__)

    def alias_of(self, cls: type) -> str | None:
        return self._aliases.get(cls)

    def raw_name(self, cls: type) -> str:
        name = raw_type_name(cls)
        if self._by_raw_name.get(name) is not cls:
            with self._lock:
                self._by_raw_name[name] = cls
        return name

    def name_of(self, cls: type) -> str:
        """The alias of a type, or its raw name."""
        return self._aliases.get(cls) or self.raw_name(cls)

    def resolve(self, name: str) -> type:
        """
        Resolve an alias or raw type name.

        Raises:
            TypeResolutionError: If the name matches no type.
        """
        if not isinstance(name, str) or not name:
            raise TypeResolutionError(f"Invalid $type tag: {name!r}")
        cls = self._by_alias.get(name) or self._by_raw_name.get(name)
        if cls is None and self._resolver is not None:
            cls = self._resolver(name)
            if cls is not None:
                self.register_alias(cls, name)
                return cls
        if cls is not None:
            return cls
        cls = self._import(name)
        with self._lock:
            self._by_raw_name[name] = cls
        return cls

    def is_allowed(self, module_name: str) -> bool:
        if self.allowed_modules is None:
            return True
        return any(
            module_name == allowed or module_name.startswith(allowed + ".")
            for allowed in self.allowed_modules
        )

    def _import(self, name: str) -> type:
        module_name, sep, qualname = name.partition(":")
        if not sep or not qualname:
            raise TypeResolutionError(f"Unknown type alias or name: {name!r}")
        if not self.is_allowed(module_name):
            raise TypeResolutionError(f"Type {name!r} is outside the allowed modules")
        try:
            obj = importlib.import_module(module_name)
        except ImportError as e:
            raise TypeResolutionError(f"Cannot import module of type {name!r}") from e
        for part in qualname.split("."):
            obj = getattr(obj, part, None)
            if obj is None:
                raise TypeResolutionError(f"Type {name!r} not found")
        if not isinstance(obj, type):
            raise TypeResolutionError(f"{name!r} does not name a type")
        return obj
