"""
The neutral parsed-value tree consumed by the decoder.

Parsing is delegated to the standard library scanner. Scalars come back as
None, bool, int, float and str; arrays as list; objects as JsonObject, an
ordered dict whose control keys have been lifted out into attributes:

- `$type`   -> JsonObject.type_tag  (polymorphic tag)
- `$i`      -> JsonObject.ref_index (back-reference sequence number)
- `$schema` -> JsonObject.schema    (tabular schema blob, carried only)

Control keys are never visible as ordinary members. When a key repeats, the
last occurrence wins.

Example:
    >>> tree = parse('{"$type": "shapes:Circle", "r": 2}')
    >>> tree.type_tag, dict(tree)
    ('shapes:Circle', {'r': 2})

The module also holds the text-level helpers: beautify() pretty-prints JSON
text and DynamicJson gives attribute access to untyped decode results.
"""

from __future__ import annotations

import json
import re
from typing import Any, Union

from objson.errors import ParseError

# Control keys recognized wherever they appear as a direct child key
TYPE_KEY = "$type"
REF_KEY = "$i"
SCHEMA_KEY = "$schema"

# Keys of the pair-array dictionary form: [{"k": ..., "v": ...}]
PAIR_KEY = "k"
PAIR_VALUE = "v"

ValueTree = Union[None, bool, int, float, str, list, "JsonObject"]


class JsonObject(dict):
    """
    A parsed JSON object.

    Behaves as a plain dict of the ordinary members. The recognized control
    keys are exposed as attributes and are None when absent.
    """

    __slots__ = ("type_tag", "ref_index", "schema")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.type_tag: str | None = None
        self.ref_index: Any = None
        self.schema: Any = None

    @classmethod
    def from_pairs(cls, pairs: list[tuple[str, Any]]) -> "JsonObject":
        """Build an object from the scanner's key/value pairs."""
        obj = cls()
        for key, value in pairs:
            if key == TYPE_KEY:
                obj.type_tag = value
            elif key == REF_KEY:
                obj.ref_index = value
            elif key == SCHEMA_KEY:
                obj.schema = value
            else:
                obj[key] = value
        return obj

    @property
    def is_reference(self) -> bool:
        return self.ref_index is not None

    def __repr__(self) -> str:
        extras = []
        if self.type_tag is not None:
            extras.append(f"$type={self.type_tag!r}")
        if self.ref_index is not None:
            extras.append(f"$i={self.ref_index!r}")
        prefix = f"<{' '.join(extras)}> " if extras else ""
        return f"JsonObject({prefix}{dict.__repr__(self)})"


def parse(text: str | bytes | bytearray) -> ValueTree:
    """
    Parse JSON text into a value tree.

    Args:
        text: The JSON document. Bytes are decoded as UTF-8.

    Returns:
        The root of the value tree.

    Raises:
        ParseError: If the text is malformed, truncated, or nested deeper
            than the interpreter stack allows.
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Invalid UTF-8 input: {e.reason}", e.start) from e
    if not isinstance(text, str):
        raise TypeError(f"JSON text must be str or bytes, not {type(text).__name__}")

    try:
        return json.loads(text, object_pairs_hook=JsonObject.from_pairs)
    except json.JSONDecodeError as e:
        raise ParseError(e.msg, e.pos, text) from e
    except RecursionError as e:
        raise ParseError("Input nested too deeply", 0, text) from e


def is_pair_array(tree: Any) -> bool:
    """Check whether an array holds `{"k": ..., "v": ...}` dictionary entries."""
    return isinstance(tree, list) and all(
        isinstance(item, JsonObject) and PAIR_KEY in item for item in tree
    )


# =============================================================================
# Pretty Printing
# =============================================================================

_WHITESPACE = " \t\r\n"

_ESCAPE = re.compile(
    r"\\u(d[89ab][0-9a-f]{2})\\u(d[c-f][0-9a-f]{2})|\\u([0-9a-f]{4})|\\.",
    re.IGNORECASE,
)


def _unescape(match: re.Match) -> str:
    if match.group(1):
        high, low = int(match.group(1), 16), int(match.group(2), 16)
        code = 0x10000 + ((high - 0xD800) << 10) + (low - 0xDC00)
    elif match.group(3):
        code = int(match.group(3), 16)
    else:
        return match.group(0)
    # Quotes, backslashes, control characters and lone surrogates stay escaped
    if code < 0x20 or code in (0x22, 0x5C) or 0xD800 <= code <= 0xDFFF:
        return match.group(0)
    return chr(code)


def _string_end(text: str, start: int) -> int:
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
        elif char == '"':
            return index + 1
        else:
            index += 1
    raise ParseError("Unterminated string", start, text)


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index] in _WHITESPACE:
        index += 1
    return index


def beautify(text: str, indent: int = 2, decode_unicode: bool = False) -> str:
    """
    Pretty-print JSON text without decoding its values.

    Tokens are copied as they are, so number formats, key order and the
    NaN and Infinity literals survive. Empty arrays and objects stay on one
    line.

    Args:
        text: Compact or already formatted JSON text.
        indent: Spaces per nesting level.
        decode_unicode: Replace `\\uXXXX` escapes of printable characters
            with the characters themselves.

    Raises:
        ParseError: If a string is not terminated.

    Example:
        >>> print(beautify('{"a":[1,2],"b":{}}'))
        {
          "a": [
            1,
            2
          ],
          "b": {}
        }
    """
    pad = " " * indent
    out: list[str] = []
    depth = 0
    index = 0
    while index < len(text):
        char = text[index]
        if char == '"':
            end = _string_end(text, index)
            literal = text[index:end]
            out.append(_ESCAPE.sub(_unescape, literal) if decode_unicode else literal)
            index = end
            continue
        index += 1
        if char in _WHITESPACE:
            continue
        if char in "{[":
            closing = "}" if char == "{" else "]"
            after = _skip_whitespace(text, index)
            if after < len(text) and text[after] == closing:
                out.append(char + closing)
                index = after + 1
                continue
            depth += 1
            out.append(char + "\n" + pad * depth)
        elif char in "}]":
            depth -= 1
            out.append("\n" + pad * depth + char)
        elif char == ",":
            out.append(",\n" + pad * depth)
        elif char == ":":
            out.append(": ")
        else:
            out.append(char)
    return "".join(out)


# =============================================================================
# Dynamic Access
# =============================================================================


class DynamicJson:
    """
    Attribute-style access to an untyped decode result.

    Members of a JSON object are read as attributes or with [], falling back
    to a case-insensitive match. Nested objects, including those inside arrays,
    are wrapped as well. Other values come back as they are.

    Example:
        >>> doc = DynamicJson.wrap(decode('{"User": {"name": "ann"}, "tags": [{"id": 1}]}'))
        >>> doc.user.name, doc.tags[0].id
        ('ann', 1)
    """

    __slots__ = ("_data",)

    def __init__(self, data: dict):
        self._data = data

    @classmethod
    def wrap(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return cls(value)
        if isinstance(value, list):
            return [cls.wrap(item) for item in value]
        return value

    def __getitem__(self, name: str) -> Any:
        data = self._data
        if name not in data:
            for key in data:
                if key.lower() == name.lower():
                    name = key
                    break
        return self.wrap(data[name])

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or name == "_data":
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"JSON object has no member {name!r}") from None

    def __contains__(self, name: str) -> bool:
        return name in self._data

    def __iter__(self):
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __dir__(self):
        return list(self._data)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, DynamicJson):
            other = other._data
        return self._data == other

    __hash__ = None

    def to_dict(self) -> dict:
        return self._data

    def __repr__(self) -> str:
        return f"DynamicJson({self._data!r})"
