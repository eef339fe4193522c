"""
Type plans: the cached result of introspecting a type once.

A TypePlan says how values of one type are written and read: its data kind,
how to construct it, its members in output order, the lookup table used to
match incoming keys, and the converter, interceptor and alias attached to
it. Plans are immutable; the cache builds each one completely before
publishing it, so a reader never sees a half-built plan.

    >>> cache = TypePlanCache()
    >>> plan = cache.get_plan(Person)
    >>> [m.serialized_name for m in plan.members]
    ['name', 'age']

Plans are keyed by the declared type, which may be a typing construct:
list[int] and list[str] get plans of their own, sharing nothing but the
runtime class. Member value plans are not stored inside the member; the
encoder and decoder look them up by the member's declared type, which is
what lets recursive types build.

Overrides:
    Settings can be changed programmatically with TypeOverride and
    MemberOverride. Only the fields explicitly passed to an override model
    take effect:

    >>> cache.override(Person, TypeOverride(
    ...     alias="person",
    ...     members=[MemberOverride(member_name="age", serialized_name="years")],
    ... ))

    Overrides are kept per type and re-applied whenever the plan is rebuilt
    (for example after invalidate()). Apply them before the type is first
    used: calls already running keep the plan they started with.
"""

from __future__ import annotations

import dataclasses
import enum
import inspect
import logging
import threading
import typing
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from objson.controller import (
    JsonReflectionController,
    ReflectionController,
    SerializedNames,
    TriState,
)
from objson.converters import Converter
from objson.errors import ConfigurationError, NotConstructible
from objson.interceptors import Interceptor
from objson.reflection import (
    ConstructorKind,
    DataKind,
    MemberInfo,
    TypeRegistry,
    allocate,
    classify,
    constructor_kind,
    get_members,
    is_library_class,
    make_constructor,
    make_getter,
    make_setter,
    raw_type_name,
    split_annotated,
)

logger = logging.getLogger(__name__)

_EMPTY: Mapping = MappingProxyType({})


def _empty() -> Mapping:
    return _EMPTY


# =============================================================================
# Overrides
# =============================================================================


class MemberOverride(BaseModel):
    """
    Programmatic settings for one member.

    Only fields passed explicitly are applied; the others keep the value the
    controller produced. Passing converter=None removes a converter.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    member_name: str
    serialized_name: str | None = None
    typed_names: dict[Any, str] = Field(default_factory=dict)
    serializable: bool | None = None
    deserializable: bool | None = None
    non_serialized_values: tuple[Any, ...] = ()
    converter: Converter | None = None
    item_converter: Converter | None = None


class TypeOverride(BaseModel):
    """Programmatic settings for a type and any of its members."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    alias: str | None = None
    converter: Converter | None = None
    interceptor: Interceptor | None = None
    collection_container: str | None = None
    always_constructible: bool = False
    enum_names: dict[str, str] = Field(default_factory=dict)
    members: list[MemberOverride] = Field(default_factory=list)


# =============================================================================
# Plans
# =============================================================================


@dataclass(frozen=True)
class MemberPlan:
    """
    How one member is written and read.

    Attributes:
        name: The attribute name.
        serialized_name: The name on the wire before the naming strategy.
        declared_type: The declared value type.
        specific_name: Whether the name was set explicitly. Explicit names
            are not passed through the naming strategy.
        typed_names: Names used while the member holds exactly these types.
        serializable: The controller's decision, before defaults.
        can_read: Whether the member is written.
        can_write: Whether the member is read back.
        appends: Read back by filling the existing collection in place.
        is_static: A class-level member.
        is_readonly: A property without a setter.
        converter: Member converter.
        item_converter: Converter applied to each collection item.
        non_serialized_values: Values for which the member is skipped.
    """

    name: str
    serialized_name: str
    declared_type: Any
    specific_name: bool = False
    typed_names: Mapping[type, str] = field(default_factory=_empty)
    serializable: TriState = TriState.DEFAULT
    can_read: bool = True
    can_write: bool = True
    appends: bool = False
    is_static: bool = False
    is_readonly: bool = False
    converter: Converter | None = None
    item_converter: Converter | None = None
    non_serialized_values: tuple = ()
    getter: Callable[[Any], Any] | None = None
    setter: Callable[[Any, Any], None] | None = None

    def name_for(self, value: Any) -> tuple[str, bool]:
        """
        Return the name to write for a value, and whether it is a typed name.

        A typed name identifies the concrete type by itself, so the value is
        written without `$type`.
        """
        tag = self.typed_names.get(type(value))
        if tag is not None:
            return tag, True
        return self.serialized_name, False

    def is_non_serialized(self, value: Any) -> bool:
        for default in self.non_serialized_values:
            if type(value) is type(default) and value == default:
                return True
        return False


@dataclass(frozen=True)
class TypePlan:
    """
    How one type is written and read.

    Attributes:
        type: The declared type this plan was built for.
        cls: The runtime class (object for dynamic types).
        kind: The data kind.
        args: Generic type arguments (element, key and value types).
        constructor_kind: Public, non-public or none.
        constructor: Zero-argument factory when public.
        members: Members written, in output order.
        setters: Members read back, by serialized name. Typed names have
            entries of their own whose declared type is the concrete type.
        folded_setters: The same entries keyed by case-folded name.
        converter: Type converter.
        interceptor: Lifecycle hooks.
        alias: The `$type` alias.
        collection_container: Key holding the items of an iterable record.
        enum_names: Enum member -> wire name.
        enum_values: Wire name (and member name) -> enum member.
        always_constructible: May be allocated without a public constructor.
        is_abstract: An abstract class.
        is_dynamic: The declared type leaves the concrete type to the value.
        raw_name: The `module:qualname` name.
        open_state: The class declares no members, so instance attributes
            outside state_names are written and read back as well.
        state_names: Attribute names of the discovered members.
        is_opaque: A builtin or standard-library class with no members.
    """

    type: Any
    cls: type
    kind: DataKind
    args: tuple = ()
    constructor_kind: ConstructorKind = ConstructorKind.NONE
    constructor: Callable[[], Any] | None = None
    members: tuple[MemberPlan, ...] = ()
    setters: Mapping[str, MemberPlan] = field(default_factory=_empty)
    folded_setters: Mapping[str, MemberPlan] = field(default_factory=_empty)
    converter: Converter | None = None
    interceptor: Interceptor | None = None
    alias: str | None = None
    collection_container: str | None = None
    enum_names: Mapping[Any, str] = field(default_factory=_empty)
    enum_values: Mapping[str, Any] = field(default_factory=_empty)
    always_constructible: bool = False
    is_abstract: bool = False
    is_dynamic: bool = False
    raw_name: str = ""
    open_state: bool = False
    state_names: frozenset = frozenset()
    is_opaque: bool = False

    @property
    def is_flag(self) -> bool:
        return self.kind is DataKind.ENUM and issubclass(self.cls, enum.Flag)

    def arg(self, index: int = 0) -> Any:
        """The generic argument at index, or object when undeclared."""
        if len(self.args) > index and self.args[index] is not Ellipsis:
            return self.args[index]
        return object

    def item_type(self, index: int = 0) -> Any:
        """The declared type of the item at index of a list or array."""
        args = self.args
        if self.kind is DataKind.ARRAY and args and not (len(args) == 2 and args[1] is Ellipsis):
            return args[index] if index < len(args) else object
        return self.arg(0)

    def find_setter(self, name: str) -> MemberPlan | None:
        member = self.setters.get(name)
        if member is None:
            member = self.folded_setters.get(name.casefold())
        return member

    def create(self, allow_allocation: bool = False) -> Any:
        """
        Instantiate the type for decoding.

        Args:
            allow_allocation: Allocate without calling the constructor when
                there is no public parameterless one.

        Raises:
            NotConstructible: If the type cannot be instantiated.
        """
        if self.constructor is not None:
            return self.constructor()
        if self.is_abstract:
            raise NotConstructible(self.cls, "the class is abstract")
        if self.always_constructible or allow_allocation:
            return allocate(self.cls)
        if self.constructor_kind is ConstructorKind.NON_PUBLIC:
            reason = "the class is not public; mark it with @json_serializable"
        else:
            reason = "no parameterless constructor; mark it with @json_serializable"
        raise NotConstructible(self.cls, reason)


# =============================================================================
# Cache
# =============================================================================


def _plan_key(tp: Any) -> Any:
    tp, _ = split_annotated(tp)
    return tp


class TypePlanCache:
    """
    Builds and memoizes type plans.

    Reads are lock-free. A missing plan is built outside the lock and
    published with setdefault under it, so concurrent first uses converge on
    one plan. Overrides and invalidation take the same lock.

    Args:
        controller: The metadata policy. Defaults to JsonReflectionController.
        registry: The alias registry. Defaults to a new one that also asks
            the controller for aliases it has not seen.
    """

    def __init__(
        self,
        controller: ReflectionController | None = None,
        registry: TypeRegistry | None = None,
    ):
        self.controller = controller or JsonReflectionController()
        self.registry = registry or TypeRegistry(resolver=self.controller.find_aliased_type)
        self._lock = threading.RLock()
        self._plans: dict[Any, TypePlan] = {}
        self._overrides: dict[Any, list[TypeOverride]] = {}

    def __len__(self) -> int:
        return len(self._plans)

    def __contains__(self, tp: Any) -> bool:
        return _plan_key(tp) in self._plans

    def get_plan(self, tp: Any) -> TypePlan:
        """
        Return the plan of a declared type, building it on first use.

        Raises:
            ConfigurationError: If the type's metadata is inconsistent.
        """
        key = _plan_key(tp)
        try:
            plan = self._plans.get(key)
        except TypeError:
            # Unhashable typing construct
            return self._build(key)
        if plan is not None:
            return plan

        plan = self._build(key)
        with self._lock:
            published = self._plans.get(key)
            if published is None:
                self._register(plan)
                published = self._plans.setdefault(key, plan)
        return published

    def override(self, tp: Any, override: TypeOverride, purge_existing: bool = False) -> TypePlan:
        """
        Apply an override to a type and publish the rebuilt plan.

        Args:
            tp: The type to override.
            override: The settings to apply.
            purge_existing: Drop overrides applied to the type earlier.

        Returns:
            The new plan.

        Raises:
            ConfigurationError: If a member override names a member the type
                does not have, or the result has conflicting names.
        """
        key = _plan_key(tp)
        with self._lock:
            previous = self._overrides.get(key, [])
            self._overrides[key] = [override] if purge_existing else [*previous, override]
            try:
                plan = self._build(key)
                # Also clears an alias dropped by this override
                self.registry.register_alias(plan.cls, plan.alias)
            except Exception:
                if previous:
                    self._overrides[key] = previous
                else:
                    del self._overrides[key]
                raise
            self._plans[key] = plan
        logger.debug("Applied override to %s", plan.raw_name or key)
        return plan

    def invalidate(self, tp: Any = None) -> None:
        """Drop one cached plan, or all of them. Overrides are kept."""
        with self._lock:
            if tp is None:
                self._plans.clear()
            else:
                self._plans.pop(_plan_key(tp), None)
        logger.debug("Invalidated plans for %s", "all types" if tp is None else tp)

    def _register(self, plan: TypePlan) -> None:
        if plan.alias:
            self.registry.register_alias(plan.cls, plan.alias)

    # =========================================================================
    # Building
    # =========================================================================

    def _build(self, tp: Any) -> TypePlan:
        kind, cls, args = classify(tp)
        if kind is DataKind.ARRAY and not args and hasattr(cls, "_fields"):
            # Named tuple: item types come from the field annotations
            try:
                hints = typing.get_type_hints(cls)
            except (NameError, TypeError):
                hints = {}
            args = tuple(hints.get(name, object) for name in cls._fields)
        if kind is DataKind.NULLABLE:
            return TypePlan(type=tp, cls=object, kind=kind, args=args)
        if kind is DataKind.OBJECT and cls is object:
            return TypePlan(type=tp, cls=object, kind=kind, is_dynamic=True)

        controller = self.controller
        overrides = self._overrides_for(tp, cls)
        ctor_kind = constructor_kind(cls)
        settings = {
            "alias": controller.get_type_alias(cls),
            "converter": controller.get_converter(cls),
            "interceptor": controller.get_interceptor(cls),
            "collection_container": controller.get_collection_container_name(cls),
            "always_constructible": controller.is_always_constructible(cls),
        }
        enum_names: dict[str, str] = {}
        member_overrides: dict[str, list[MemberOverride]] = {}
        for override in overrides:
            for name in override.model_fields_set & settings.keys():
                settings[name] = getattr(override, name)
            enum_names.update(override.enum_names)
            for member in override.members:
                member_overrides.setdefault(member.member_name, []).append(member)

        fields: dict[str, Any] = {}
        if kind is DataKind.ENUM:
            fields["enum_names"], fields["enum_values"] = self._enum_tables(cls, enum_names)
        if settings["collection_container"] or kind is DataKind.OBJECT:
            kind = DataKind.OBJECT
            infos = get_members(cls)
            members = self._build_members(cls, infos, member_overrides)
            _check_names(cls, members)
            setters = _setter_table(members)
            fields["members"] = tuple(m for m in members if m.can_read)
            fields["setters"] = MappingProxyType(setters)
            folded: dict[str, MemberPlan] = {}
            for name, member in setters.items():
                folded.setdefault(name.casefold(), member)
            fields["folded_setters"] = MappingProxyType(folded)
            if is_library_class(cls):
                fields["is_opaque"] = True
            elif all(info.inferred for info in infos):
                fields["open_state"] = True
                fields["state_names"] = frozenset(info.name for info in infos)
        elif member_overrides:
            raise ConfigurationError(f"{cls.__qualname__} has no members to override")

        plan = TypePlan(
            type=tp,
            cls=cls,
            kind=kind,
            args=args,
            constructor_kind=ctor_kind,
            constructor=make_constructor(cls) if ctor_kind is ConstructorKind.PUBLIC else None,
            is_abstract=inspect.isabstract(cls),
            raw_name=raw_type_name(cls),
            **settings,
            **fields,
        )
        logger.debug(
            "Built %s plan for %s with %d members", kind.value, plan.raw_name, len(plan.members)
        )
        return plan

    def _overrides_for(self, tp: Any, cls: type) -> list[TypeOverride]:
        found = list(self._overrides.get(cls, []))
        if cls is not tp:
            try:
                found += self._overrides.get(tp, [])
            except TypeError:
                pass
        return found

    def _enum_tables(self, cls: type, overrides: dict[str, str]):
        names: dict[Any, str] = {}
        values: dict[str, Any] = {}
        for name, member in cls.__members__.items():
            wire = (
                overrides.get(member.name)
                or self.controller.get_enum_value_name(cls, member)
                or member.name
            )
            names.setdefault(member, wire)
            values[wire] = member
        for name, member in cls.__members__.items():
            values.setdefault(name, member)
        return MappingProxyType(names), MappingProxyType(values)

    def _build_members(
        self, cls: type, infos: list[MemberInfo], overrides: dict[str, list[MemberOverride]]
    ) -> list[MemberPlan]:
        known = {info.name for info in infos}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(
                f"{cls.__qualname__} has no member named {', '.join(map(repr, unknown))}"
            )
        plans = []
        for info in infos:
            plan = self._member_plan(cls, info, overrides.get(info.name, []))
            if plan is not None:
                plans.append(plan)
        return plans

    def _member_plan(
        self, cls: type, info: MemberInfo, overrides: list[MemberOverride]
    ) -> MemberPlan | None:
        controller = self.controller
        serializable = controller.is_member_serializable(cls, info)
        deserializable = controller.is_member_deserializable(cls, info)
        names = controller.get_serialized_names(cls, info) or SerializedNames()
        default_name = names.default
        typed_names = dict(names.typed)
        non_serialized = controller.get_non_serialized_values(cls, info) or ()
        converter = controller.get_member_converter(cls, info)
        item_converter = controller.get_member_item_converter(cls, info)

        for override in overrides:
            given = override.model_fields_set
            if "serialized_name" in given:
                default_name = override.serialized_name
            if "typed_names" in given:
                typed_names.update(override.typed_names)
            if "serializable" in given:
                serializable = TriState.of(override.serializable)
            if "deserializable" in given:
                deserializable = TriState.of(override.deserializable)
            if "non_serialized_values" in given:
                non_serialized = override.non_serialized_values
            if "converter" in given:
                converter = override.converter
            if "item_converter" in given:
                item_converter = override.item_converter

        # An overridden member is treated as public
        visible = info.is_public or bool(overrides)
        can_read = serializable is TriState.INCLUDE or (
            serializable is TriState.DEFAULT and visible
        )
        if info.is_static or deserializable is TriState.EXCLUDE:
            can_write = False
        elif deserializable is TriState.INCLUDE or visible:
            can_write = info.writable or info.is_collection
        else:
            can_write = False
        if not (can_read or can_write):
            return None

        return MemberPlan(
            name=info.name,
            serialized_name=default_name or info.name,
            declared_type=info.declared_type,
            specific_name=default_name is not None,
            typed_names=MappingProxyType(typed_names),
            serializable=serializable,
            can_read=can_read,
            can_write=can_write,
            appends=can_write and not info.writable,
            is_static=info.is_static,
            is_readonly=info.is_readonly,
            converter=converter,
            item_converter=item_converter,
            non_serialized_values=tuple(non_serialized),
            getter=make_getter(info),
            setter=make_setter(info, cls),
        )


def _check_names(cls: type, members: list[MemberPlan]) -> None:
    seen: dict[str, str] = {}
    for member in members:
        for name in (member.serialized_name, *member.typed_names.values()):
            if not name:
                raise ConfigurationError(
                    f"Member {member.name!r} of {cls.__qualname__} has an empty serialized name"
                )
            owner = seen.setdefault(name, member.name)
            if owner != member.name:
                raise ConfigurationError(
                    f"Members {owner!r} and {member.name!r} of {cls.__qualname__} "
                    f"are both serialized as {name!r}"
                )


def _setter_table(members: list[MemberPlan]) -> dict[str, MemberPlan]:
    setters: dict[str, MemberPlan] = {}
    for member in members:
        if not member.can_write:
            continue
        setters[member.serialized_name] = member
        for concrete, tag in member.typed_names.items():
            setters[tag] = dataclasses.replace(
                member, serialized_name=tag, declared_type=concrete, typed_names=_EMPTY
            )
    return setters
