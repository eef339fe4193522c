"""
The Engine: one self-contained serialization context.

An Engine owns a plan cache, a type registry, a reflection controller and
default parameters. Engines share nothing with each other, so two engines
may configure the same type differently. The module-level functions in
objson use a process-wide default engine.

Every encode and decode call creates its own Encoder or Decoder, so an
engine can be used from several threads at once; only plan building and
overrides touch shared state, under the cache lock.

Example:
    >>> engine = Engine(JsonParameters(null_values_emitted=False))
    >>> engine.override_alias(Circle, "circle")
    >>> text = engine.encode(shapes, declared_type=list[Shape])
    >>> engine.decode(text, list[Shape])
"""

from __future__ import annotations

from typing import IO, Any, Iterable

from objson.controller import JsonReflectionController, ReflectionController
from objson.converters import Converter
from objson.decoder import Decoder
from objson.encoder import Encoder, JsonWriter
from objson.interceptors import Interceptor
from objson.naming import NamingStrategy
from objson.parameters import DEFAULT_PARAMETERS, JsonParameters
from objson.plans import MemberOverride, TypeOverride, TypePlan, TypePlanCache
from objson.reflection import TypeRegistry
from objson.values import DynamicJson, beautify


class Engine:
    """
    Serialization context.

    Args:
        parameters: Default parameters for every call.
        controller: The metadata policy. Defaults to JsonReflectionController.
        naming_strategy: A custom naming strategy, used instead of the
            built-in one selected by naming_convention.
        registry: The alias registry. Defaults to a new one.
        allowed_modules: Modules whose types `$type` tags may import, for
            decoding untrusted input. None allows every module. Ignored
            when a registry is given.
    """

    def __init__(
        self,
        parameters: JsonParameters | None = None,
        controller: ReflectionController | None = None,
        naming_strategy: NamingStrategy | None = None,
        registry: TypeRegistry | None = None,
        allowed_modules: Iterable[str] | None = None,
    ):
        self.parameters = parameters if parameters is not None else DEFAULT_PARAMETERS
        self.controller = controller if controller is not None else JsonReflectionController()
        self.registry = registry or TypeRegistry(
            resolver=self.controller.find_aliased_type, allowed_modules=allowed_modules
        )
        self.cache = TypePlanCache(self.controller, self.registry)
        self.naming_strategy = naming_strategy

    def options(self, options: JsonParameters | None = None, **changes: Any) -> JsonParameters:
        """Return the parameters for one call."""
        base = options if options is not None else self.parameters
        return base.patch(**changes)

    def encoder(self, options: JsonParameters | None = None) -> Encoder:
        return Encoder(self.cache, options or self.parameters, self.naming_strategy)

    def decoder(self, options: JsonParameters | None = None) -> Decoder:
        return Decoder(self.cache, options or self.parameters, self.naming_strategy)

    # =========================================================================
    # Entry Points
    # =========================================================================

    def encode(
        self,
        value: Any,
        options: JsonParameters | None = None,
        *,
        declared_type: Any = None,
        **changes: Any,
    ) -> str:
        """
        Encode a value as JSON text.

        Args:
            value: The object graph to encode.
            options: Parameters replacing the engine defaults.
            declared_type: The type the reader will decode into. A `$type`
                tag is written for the root when its type differs.
            **changes: Parameter fields to change for this call.
        """
        return self.encoder(self.options(options, **changes)).encode(value, declared_type)

    def encode_nice(
        self,
        value: Any,
        options: JsonParameters | None = None,
        *,
        declared_type: Any = None,
        indent: int = 2,
        **changes: Any,
    ) -> str:
        """Encode a value as indented JSON text. See encode."""
        text = self.encode(value, options, declared_type=declared_type, **changes)
        return beautify(text, indent)

    def dump(
        self,
        value: Any,
        fp: IO[str],
        options: JsonParameters | None = None,
        *,
        declared_type: Any = None,
        **changes: Any,
    ) -> None:
        """Encode a value into a text file object."""
        encoder = self.encoder(self.options(options, **changes))
        encoder.write(value, JsonWriter(fp), declared_type)

    def decode(
        self,
        text: str | bytes,
        target_type: Any = object,
        options: JsonParameters | None = None,
        **changes: Any,
    ) -> Any:
        """
        Decode JSON text.

        Args:
            text: The JSON document.
            target_type: The type to decode into. With object (the default),
                untagged values come back as plain dicts, lists and scalars.
            options: Parameters replacing the engine defaults.
            **changes: Parameter fields to change for this call.
        """
        return self.decoder(self.options(options, **changes)).decode(text, target_type)

    def load(
        self,
        fp: IO,
        target_type: Any = object,
        options: JsonParameters | None = None,
        **changes: Any,
    ) -> Any:
        """Decode the contents of a file object."""
        return self.decode(fp.read(), target_type, options, **changes)

    def to_dynamic(self, text: str | bytes, options: JsonParameters | None = None, **changes: Any):
        """Decode JSON text without a target type, with attribute access to objects."""
        return DynamicJson.wrap(self.decode(text, object, options, **changes))

    def decode_into(
        self, instance: Any, text: str | bytes, options: JsonParameters | None = None, **changes: Any
    ) -> Any:
        """Fill an existing instance from JSON text and return it."""
        return self.decoder(self.options(options, **changes)).decode_into(instance, text)

    def deep_copy(self, value: Any, options: JsonParameters | None = None, **changes: Any) -> Any:
        """Copy an object graph by encoding and decoding it."""
        if value is None:
            return None
        options = self.options(options, **changes)
        text = self.encoder(options).encode(value)
        return self.decoder(options).decode(text, type(value))

    # =========================================================================
    # Plans and Overrides
    # =========================================================================

    def get_plan(self, tp: Any) -> TypePlan:
        return self.cache.get_plan(tp)

    def override(self, tp: Any, override: TypeOverride, purge_existing: bool = False) -> TypePlan:
        """Apply a TypeOverride. See TypePlanCache.override."""
        return self.cache.override(tp, override, purge_existing)

    def override_alias(self, cls: type, alias: str | None) -> TypePlan:
        return self.override(cls, TypeOverride(alias=alias))

    def override_converter(self, cls: type, converter: Converter | None) -> TypePlan:
        return self.override(cls, TypeOverride(converter=converter))

    def override_interceptor(self, cls: type, interceptor: Interceptor | None) -> TypePlan:
        return self.override(cls, TypeOverride(interceptor=interceptor))

    def override_member_name(self, cls: type, member_name: str, serialized_name: str) -> TypePlan:
        return self.override(
            cls,
            TypeOverride(
                members=[MemberOverride(member_name=member_name, serialized_name=serialized_name)]
            ),
        )

    def override_member_converter(
        self, cls: type, member_name: str, converter: Converter | None
    ) -> TypePlan:
        return self.override(
            cls,
            TypeOverride(members=[MemberOverride(member_name=member_name, converter=converter)]),
        )

    def override_enum_names(self, cls: type, names: dict[str, str]) -> TypePlan:
        """Set the serialized names of enum members, keyed by member name."""
        return self.override(cls, TypeOverride(enum_names=names))

    def invalidate(self, tp: Any = None) -> None:
        """Drop one cached plan, or all of them."""
        self.cache.invalidate(tp)
