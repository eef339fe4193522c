"""
Exception types raised by the objson engine.

Every error raised while encoding or decoding derives from
JsonSerializationError, so callers can catch the whole family at once:

- ParseError: the input text is not valid JSON
- TypeResolutionError: a `$type` tag names no known type, or a target type
  cannot be resolved
- NotConstructible: a target type has no usable parameterless constructor
- UnresolvedReference: a `$i` back-reference names an unknown instance
- MalformedArray: a multi-dimensional array is not rectangular
- DepthExceeded: the object graph nests deeper than `max_depth`
- CircularReferenceError: a true cycle met while inlining repeated objects
- ConversionError: a value cannot be coerced to its target type
- ConfigurationError: an inconsistent override, alias or member name

None of these are retried internally. Exceptions raised by user converters
and interceptors are never wrapped.
"""

from __future__ import annotations


class JsonSerializationError(Exception):
    """Base class for all objson errors."""


class ParseError(JsonSerializationError, ValueError):
    """
    Raised when the input text is not valid JSON.

    Attributes:
        position: Character offset of the error in the input.
        line: 1-based line number of the error.
        column: 1-based column number of the error.
        context: A short excerpt of the input around the error.
    """

    def __init__(self, reason: str, position: int = 0, text: str = ""):
        self.reason = reason
        self.position = position
        self.line = text.count("\n", 0, position) + 1
        self.column = position - text.rfind("\n", 0, position)
        self.context = text[max(0, position - 20) : position + 20]
        super().__init__(
            f"{reason} at line {self.line} column {self.column} "
            f"(char {position}): {self.context!r}"
        )


class TypeResolutionError(JsonSerializationError):
    """Raised when a type cannot be resolved or instantiated."""


class NotConstructible(TypeResolutionError):
    """Raised when a target type has no usable parameterless constructor."""

    def __init__(self, cls: type, reason: str):
        self.cls = cls
        super().__init__(
            f"Cannot construct {cls.__module__}.{cls.__qualname__}: {reason}"
        )


class UnresolvedReference(JsonSerializationError):
    """Raised when `$i` points at a sequence number not yet registered."""

    def __init__(self, index):
        self.index = index
        super().__init__(f"Back-reference $i={index!r} does not match a decoded object")


class MalformedArray(JsonSerializationError):
    """Raised when a multi-dimensional array is not rectangular."""


class DepthExceeded(JsonSerializationError):
    """Raised when encoding nests deeper than the configured max_depth."""

    def __init__(self, max_depth: int, type_name: str):
        self.max_depth = max_depth
        super().__init__(
            f"Serializer exceeded the maximum depth of {max_depth}. "
            f"Last type on stack: {type_name}"
        )


class CircularReferenceError(JsonSerializationError):
    """Raised when inline mode meets an object inside its own representation."""


class ConversionError(JsonSerializationError, ValueError):
    """Raised when a value cannot be converted to the target type."""


class ConfigurationError(JsonSerializationError):
    """Raised for conflicting aliases, duplicate member names or unknown members."""
