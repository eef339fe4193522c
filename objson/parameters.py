"""
Options controlling a single encode or decode call.

JsonParameters is an immutable pydantic model. An Engine holds one instance
as its defaults; each call may pass a replacement, or keyword changes that
patch the defaults for that call only:

    >>> from objson import encode
    >>> encode(obj, null_values_emitted=False, naming_convention="camel")

Invalid values fail fast with pydantic's ValidationError.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from objson.naming import NamingConvention


class JsonParameters(BaseModel):
    """
    Serialization and deserialization switches.

    Attributes:
        extensions_enabled: Write `$type` and `$i` extensions. When off,
            repeated objects are always inlined.
        null_values_emitted: Write members whose value is None.
        empty_collections_emitted: Write members holding empty collections.
            The root value and byte strings are never affected.
        static_members_emitted: Write ClassVar members.
        readonly_members_emitted: Write read-only properties.
        utc_dates: Treat naive datetimes as local time and write them in UTC.
        datetime_milliseconds: Write milliseconds in datetimes and times.
        escaped_unicode_strings: Escape non-ASCII characters as \\uXXXX.
        compact_guids: Write UUIDs as base64 of their 16 bytes.
        max_depth: Maximum nesting of arrays, dictionaries and objects.
        inline_circular_refs: Re-emit repeated objects instead of `$i`
            references. True cycles are rejected in this mode.
        naming_convention: Built-in member naming convention.
        numeric_enums: Write enum values instead of names.
        kv_style_string_dictionary: Write every dictionary in the
            `[{"k":...,"v":...}]` form.
        parametric_constructor_override: Allocate instances without calling
            their constructor when they lack a parameterless one.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    extensions_enabled: bool = True
    null_values_emitted: bool = True
    empty_collections_emitted: bool = True
    static_members_emitted: bool = False
    readonly_members_emitted: bool = True
    utc_dates: bool = False
    datetime_milliseconds: bool = False
    escaped_unicode_strings: bool = True
    compact_guids: bool = False
    max_depth: int = Field(default=20, ge=1)
    inline_circular_refs: bool = False
    naming_convention: NamingConvention = NamingConvention.DEFAULT
    numeric_enums: bool = False
    kv_style_string_dictionary: bool = False
    parametric_constructor_override: bool = False

    @property
    def inline_references(self) -> bool:
        """Whether repeated objects are re-emitted rather than referenced."""
        return self.inline_circular_refs or not self.extensions_enabled

    def patch(self, **changes: Any) -> "JsonParameters":
        """Return a validated copy with the given fields replaced."""
        if not changes:
            return self
        return type(self).model_validate({**self.model_dump(), **changes})


DEFAULT_PARAMETERS = JsonParameters()
