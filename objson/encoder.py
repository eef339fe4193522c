"""
Object graph -> JSON text.

One Encoder instance serves a single encode call: it owns the reference
table that numbers each object the first time it is written, so the table
is never shared between calls.

Output format:
    Objects are written member by member in plan order. When the same object
    is met again, only a back-reference is written:

        {"name":"root","child":{"name":"leaf","parent":{"$i":1}}}

    Numbering starts at 1 and follows the order in which objects are first
    written, which is also the order in which the decoder allocates them.

    When an object's runtime type differs from its declared type, its first
    key is a `$type` tag holding the type's alias or `module:qualname`.

Inline mode:
    With inline_circular_refs (or with extensions disabled) repeated objects
    are written out again in full. An object met while it is still being
    written forms a true cycle, which cannot be inlined and raises
    CircularReferenceError.
"""

from __future__ import annotations

import base64
import datetime
import decimal
import enum
import functools
import operator
import uuid
from json.encoder import encode_basestring, encode_basestring_ascii
from typing import Any, Callable

import numpy as np

from objson.converters import Converter
from objson.errors import CircularReferenceError, ConversionError, DepthExceeded
from objson.interceptors import JsonItem
from objson.naming import NamingStrategy, get_strategy
from objson.parameters import DEFAULT_PARAMETERS, JsonParameters
from objson.plans import TypePlan, TypePlanCache
from objson.reflection import MISSING, DataKind
from objson.values import PAIR_KEY, PAIR_VALUE, REF_KEY, TYPE_KEY


class JsonWriter:
    """
    Output sink collecting text chunks.

    Args:
        fp: Optional file-like object. When given, chunks are written to it
            directly instead of being collected.
    """

    def __init__(self, fp=None):
        self._chunks: list[str] = []
        self.write: Callable[[str], Any] = fp.write if fp is not None else self._chunks.append

    def getvalue(self) -> str:
        return "".join(self._chunks)


# =============================================================================
# Literal Formats
# =============================================================================


def format_float(value: float) -> str:
    if value != value:
        return "NaN"
    if value == float("inf"):
        return "Infinity"
    if value == float("-inf"):
        return "-Infinity"
    return float.__repr__(value)


def format_datetime(value: datetime.datetime, utc: bool = False, milliseconds: bool = False) -> str:
    """
    Format as yyyy-MM-ddTHH:mm:ss[.fff][Z].

    Aware values are converted to UTC. Naive values are taken as they are,
    or as local time converted to UTC when utc is set.
    """
    in_utc = False
    if value.tzinfo is not None and value.utcoffset() is not None:
        value = value.astimezone(datetime.timezone.utc)
        in_utc = True
    elif utc:
        value = value.astimezone(datetime.timezone.utc)
        in_utc = True
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if milliseconds:
        text += f".{value.microsecond // 1000:03d}"
    return text + "Z" if in_utc else text


def format_time(value: datetime.time, milliseconds: bool = False) -> str:
    text = f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    if milliseconds:
        text += f".{value.microsecond // 1000:03d}"
    return text


def format_timedelta(value: datetime.timedelta) -> str:
    """Format as [-][d.]HH:mm:ss[.ffffff]."""
    sign = "-" if value < datetime.timedelta(0) else ""
    value = abs(value)
    hours, rest = divmod(value.seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    text = f"{sign}{value.days}." if value.days else sign
    text += f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if value.microseconds:
        text += f".{value.microseconds:06d}"
    return text


def _is_empty_collection(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray)):
        return False
    if isinstance(value, np.ndarray):
        return value.size == 0
    try:
        return len(value) == 0
    except TypeError:
        return False


# =============================================================================
# Encoder
# =============================================================================


class Encoder:
    """
    Writes one object graph as JSON.

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
        self._inline = options.inline_references
        self._escape = (
            encode_basestring_ascii if options.escaped_unicode_strings else encode_basestring
        )
        # id -> sequence number. Objects stay referenced by _alive so an id
        # is never reused during the call.
        self._refs: dict[int, int] = {}
        self._alive: list = []
        # Ids of objects being written, for cycle detection in inline mode
        self._writing: set[int] = set()
        # Nesting level of converter output read back as a raw tree
        self._raw = 0
        self._depth = 0
        self._write: Callable[[str], Any] = None

    def encode(self, value: Any, declared_type: Any = None) -> str:
        """Encode a value and return the JSON text."""
        writer = JsonWriter()
        self.write(value, writer, declared_type)
        return writer.getvalue()

    def write(self, value: Any, writer: JsonWriter, declared_type: Any = None) -> None:
        """
        Encode a value into a writer.

        Args:
            value: The root of the object graph.
            writer: The output sink.
            declared_type: The type the reader will decode into. Defaults to
                the value's own type, so the root carries no `$type` tag.
        """
        self._write = writer.write
        if declared_type is None:
            declared_type = type(value) if value is not None else object
        self.write_value(value, declared_type)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def write_value(
        self,
        value: Any,
        declared_type: Any = object,
        item_converter: Converter | None = None,
        typed: bool = False,
    ) -> None:
        """
        Write one value.

        Args:
            value: The value.
            declared_type: The statically declared type of the slot.
            item_converter: Converter for the items of a collection value.
            typed: The value's type is already identified by a typed member
                name, so no `$type` is needed.
        """
        if value is None:
            self._write("null")
            return
        if isinstance(value, np.generic):
            value = value.item()

        declared = self.cache.get_plan(declared_type)
        if declared.kind is DataKind.NULLABLE:
            declared = self.cache.get_plan(declared.arg(0))
        if not declared.is_dynamic and type(value) is declared.cls:
            plan = declared
        else:
            plan = self.cache.get_plan(type(value))

        if plan.converter is not None:
            wire = plan.converter.to_wire(value)
            if wire is not value:
                self._write_converted(wire, plan.converter)
                return

        kind = plan.kind
        if kind is DataKind.OBJECT:
            self._write_object(value, plan, declared, typed)
        elif kind is DataKind.STRING:
            self._write(self._escape(value))
        elif kind is DataKind.PRIMITIVE:
            self._write(self._primitive(value))
        elif kind is DataKind.ENUM:
            self._write_enum(value, plan)
        elif kind is DataKind.DICTIONARY:
            self._write_dict(value, plan, item_converter)
        elif kind is DataKind.ARRAY and isinstance(value, np.ndarray):
            if value.ndim == 0:
                self.write_value(value.item(), object)
            else:
                self._write_items(value.tolist(), plan, object)
        elif kind in (DataKind.LIST, DataKind.ARRAY):
            self._write_items(value, plan, None, item_converter)
        elif kind is DataKind.SPECIAL_COLLECTION:
            self._write_dict(dict(vars(value)) if hasattr(value, "__dict__") else dict(value), plan)
        else:
            raise TypeError(f"Cannot encode {type(value).__qualname__}")

    def _write_converted(
        self,
        value: Any,
        converter: Converter,
        item_converter: Converter | None = None,
        typed: bool = False,
    ) -> None:
        """
        Write the output of a converter.

        Without a wire_type the decoder hands the raw tree to the converter,
        so objects inside it take no sequence numbers.
        """
        if converter.wire_type is not None:
            self.write_value(value, converter.wire_type, item_converter, typed)
            return
        self._raw += 1
        self.write_value(value, type(value), item_converter, typed)
        self._raw -= 1

    def _enter(self, plan: TypePlan) -> None:
        self._depth += 1
        if self._depth > self.options.max_depth:
            raise DepthExceeded(self.options.max_depth, plan.raw_name or repr(plan.type))

    def _leave(self) -> None:
        self._depth -= 1

    # =========================================================================
    # Scalars
    # =========================================================================

    def _primitive(self, value: Any) -> str:
        options = self.options
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return int.__repr__(value)
        if isinstance(value, float):
            return format_float(value)
        if isinstance(value, decimal.Decimal):
            return str(value)
        if isinstance(value, (bytes, bytearray)):
            return '"' + base64.b64encode(value).decode("ascii") + '"'
        if isinstance(value, datetime.datetime):
            return '"' + format_datetime(value, options.utc_dates, options.datetime_milliseconds) + '"'
        if isinstance(value, datetime.date):
            return '"' + value.isoformat() + '"'
        if isinstance(value, datetime.time):
            return '"' + format_time(value, options.datetime_milliseconds) + '"'
        if isinstance(value, datetime.timedelta):
            return '"' + format_timedelta(value) + '"'
        if isinstance(value, uuid.UUID):
            if options.compact_guids:
                return '"' + base64.b64encode(value.bytes).decode("ascii") + '"'
            return '"' + str(value) + '"'
        if isinstance(value, type):
            return self._escape(self.registry.name_of(value))
        raise TypeError(f"Cannot encode primitive {type(value).__qualname__}")

    def _write_enum(self, value: enum.Enum, plan: TypePlan) -> None:
        name = None if self.options.numeric_enums else self._enum_name(value, plan)
        if name is None:
            self.write_value(value.value, object)
        else:
            self._write(self._escape(name))

    @staticmethod
    def _enum_name(value: enum.Enum, plan: TypePlan) -> str | None:
        name = plan.enum_names.get(value)
        if name is not None or not plan.is_flag:
            return name
        # Composite flag: join the names of its canonical members
        parts = [m for m in plan.cls if m.value and m in value]
        if not parts or functools.reduce(operator.or_, parts) != value:
            return None
        return ", ".join(plan.enum_names[m] for m in parts)

    # =========================================================================
    # Collections
    # =========================================================================

    def _write_items(
        self,
        items,
        plan: TypePlan,
        item_type: Any = None,
        item_converter: Converter | None = None,
    ) -> None:
        write = self._write
        self._enter(plan)
        write("[")
        for index, item in enumerate(items):
            if index:
                write(",")
            if item_converter is not None:
                self._write_converted(item_converter.to_wire(item), item_converter)
            else:
                self.write_value(item, item_type if item_type is not None else plan.item_type(index))
        write("]")
        self._leave()

    def _write_dict(self, value, plan: TypePlan, item_converter: Converter | None = None) -> None:
        key_type, value_type = plan.arg(0), plan.arg(1)
        if not self.options.kv_style_string_dictionary and all(
            isinstance(key, (str, enum.Enum)) for key in value
        ):
            self._write_string_dict(value, plan, value_type, item_converter)
            return

        write = self._write
        self._enter(plan)
        write("[")
        first = True
        for key, item in value.items():
            write("{" if first else ",{")
            first = False
            write(f'"{PAIR_KEY}":')
            self.write_value(key, key_type)
            write(f',"{PAIR_VALUE}":')
            self._write_entry(item, value_type, item_converter)
            write("}")
        write("]")
        self._leave()

    def _write_string_dict(self, value, plan, value_type, item_converter) -> None:
        write = self._write
        self._enter(plan)
        write("{")
        first = True
        for key, item in value.items():
            if item is None and not self.options.null_values_emitted:
                continue
            if isinstance(key, enum.Enum):
                key = self._enum_name(key, self.cache.get_plan(type(key))) or str(key.value)
            if not first:
                write(",")
            first = False
            write(self._escape(key))
            write(":")
            self._write_entry(item, value_type, item_converter)
        write("}")
        self._leave()

    def _write_entry(self, item: Any, value_type: Any, item_converter: Converter | None) -> None:
        if item_converter is not None:
            self._write_converted(item_converter.to_wire(item), item_converter)
        else:
            self.write_value(item, value_type)

    # =========================================================================
    # Objects
    # =========================================================================

    def _write_object(self, value: Any, plan: TypePlan, declared: TypePlan, typed: bool) -> None:
        if plan.is_opaque:
            raise ConversionError(
                f"{plan.raw_name} has no JSON representation; register a converter for it"
            )
        write = self._write
        key = id(value)
        inline = self._inline or self._raw > 0
        if inline:
            if key in self._writing:
                raise CircularReferenceError(
                    f"{type(value).__qualname__} object refers back to itself; "
                    "cycles cannot be written with inline references"
                )
        else:
            index = self._refs.get(key)
            if index is not None:
                write(f'{{"{REF_KEY}":{index}}}')
                return

        interceptor = plan.interceptor
        if interceptor is not None and not interceptor.on_serializing(value):
            write("null")
            return

        if inline:
            self._writing.add(key)
        else:
            self._refs[key] = len(self._refs) + 1
            self._alive.append(value)

        self._enter(plan)
        write("{")
        first = True
        if self._needs_type_tag(plan, declared, typed):
            write(f'"{TYPE_KEY}":')
            write(self._escape(self.registry.name_of(plan.cls)))
            first = False

        for member in plan.members:
            first = self._write_member(value, member, interceptor, first)
        if plan.open_state:
            first = self._write_state(value, plan, first)

        if plan.collection_container:
            if not first:
                write(",")
            first = False
            write(self._escape(plan.collection_container))
            write(":")
            self._write_items(list(value), plan, plan.arg(0))

        if interceptor is not None:
            extras = interceptor.serialize_extra_values(value)
            for name, extra in extras or ():
                if not first:
                    write(",")
                first = False
                write(self._escape(name))
                write(":")
                self.write_value(extra, object)

        write("}")
        self._leave()
        if inline:
            self._writing.discard(key)
        if interceptor is not None:
            interceptor.on_serialized(value)

    def _needs_type_tag(self, plan: TypePlan, declared: TypePlan, typed: bool) -> bool:
        if not self.options.extensions_enabled or typed:
            return False
        return plan.cls is not declared.cls or declared.is_abstract or plan.alias is not None

    def _write_member(self, obj: Any, member, interceptor, first: bool) -> bool:
        options = self.options
        if member.is_static and not options.static_members_emitted:
            return first
        if member.is_readonly and not options.readonly_members_emitted:
            return first
        value = member.getter(obj)
        if value is MISSING:
            return first
        if member.non_serialized_values and member.is_non_serialized(value):
            return first

        name, typed = member.name_for(value)
        if not (member.specific_name or typed):
            name = self.naming.rename(name)
        if interceptor is not None:
            item = JsonItem(name, value)
            if not interceptor.on_serializing_member(obj, item):
                return first
            name, value = item.name, item.value

        converter = member.converter
        if converter is not None:
            value = converter.to_wire(value)

        if value is None and not options.null_values_emitted:
            return first
        if not options.empty_collections_emitted and _is_empty_collection(value):
            return first

        if not first:
            self._write(",")
        self._write(self._escape(name))
        self._write(":")
        if converter is not None:
            self._write_converted(value, converter, member.item_converter, typed)
        else:
            declared_type = type(value) if typed else member.declared_type
            self.write_value(value, declared_type, member.item_converter, typed)
        return False

    def _write_state(self, obj: Any, plan: TypePlan, first: bool) -> bool:
        """Write public instance attributes the plan has no member for."""
        state = getattr(obj, "__dict__", None)
        if not state:
            return first
        options = self.options
        for name, value in list(state.items()):
            if name.startswith("_") or name in plan.state_names:
                continue
            if value is None and not options.null_values_emitted:
                continue
            if not options.empty_collections_emitted and _is_empty_collection(value):
                continue
            if not first:
                self._write(",")
            first = False
            self._write(self._escape(name))
            self._write(":")
            self.write_value(value, object)
        return first
