"""Tests for the parsed value tree."""

import pytest

from objson import JsonObject, ParseError, parse
from objson.values import DynamicJson, beautify, is_pair_array


class TestParse:
    def test_scalars(self):
        assert parse("null") is None
        assert parse("true") is True
        assert parse("12") == 12
        assert parse("1.5") == 1.5
        assert parse('"x"') == "x"

    def test_objects_are_json_objects(self):
        tree = parse('{"a": [1, {"b": 2}]}')
        assert isinstance(tree, JsonObject)
        assert isinstance(tree["a"][1], JsonObject)
        assert tree == {"a": [1, {"b": 2}]}

    def test_member_order_is_preserved(self):
        tree = parse('{"z": 1, "a": 2, "m": 3}')
        assert list(tree) == ["z", "a", "m"]

    def test_duplicate_keys_last_wins(self):
        assert parse('{"a": 1, "a": 2}') == {"a": 2}

    def test_bytes_input(self):
        assert parse(b'{"a": "\xc3\xa9"}') == {"a": "é"}

    def test_non_text_input(self):
        with pytest.raises(TypeError):
            parse(12)


class TestControlKeys:
    def test_type_tag_is_extracted(self):
        tree = parse('{"$type": "shapes:Circle", "r": 2}')
        assert tree.type_tag == "shapes:Circle"
        assert dict(tree) == {"r": 2}
        assert "$type" not in tree

    def test_reference(self):
        tree = parse('{"$i": 3, "ignored": true}')
        assert tree.is_reference
        assert tree.ref_index == 3

    def test_schema_is_carried(self):
        tree = parse('{"$schema": {"cols": ["a"]}, "rows": []}')
        assert tree.schema == {"cols": ["a"]}
        assert list(tree) == ["rows"]

    def test_absent_control_keys(self):
        tree = parse('{"a": 1}')
        assert tree.type_tag is None
        assert tree.ref_index is None
        assert not tree.is_reference

    def test_repr_shows_control_keys(self):
        assert "$type='T'" in repr(parse('{"$type": "T"}'))


class TestParseErrors:
    def test_truncated_input(self):
        with pytest.raises(ParseError) as info:
            parse('{"a": [1, 2')
        assert info.value.position > 0

    def test_unterminated_string(self):
        with pytest.raises(ParseError):
            parse('{"a": "abc')

    def test_line_and_column(self):
        with pytest.raises(ParseError) as info:
            parse('{\n  "a": 1,\n  "b": ?\n}')
        error = info.value
        assert error.line == 3
        assert error.column == 8
        assert "?" in error.context

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse("[1,]")

    def test_invalid_utf8(self):
        with pytest.raises(ParseError):
            parse(b'"\xff"')


def test_is_pair_array():
    assert is_pair_array(parse('[{"k": 1, "v": 2}]'))
    assert is_pair_array(parse("[]"))
    assert not is_pair_array(parse('[{"key": 1}]'))
    assert not is_pair_array(parse('{"k": 1}'))


# ============================================================================
# Pretty printing
# ============================================================================


class TestBeautify:
    def test_layout(self):
        text = beautify('{"a":[1,2],"b":{}}')
        assert text == '{\n  "a": [\n    1,\n    2\n  ],\n  "b": {}\n}'

    def test_strings_are_copied(self):
        assert beautify('["a,b:{c}", "q\\"x"]') == '[\n  "a,b:{c}",\n  "q\\"x"\n]'

    def test_indent(self):
        assert beautify("[1]", indent=4) == "[\n    1\n]"

    def test_formatted_input(self):
        text = beautify('{"a":[1,{"b":NaN}]}')
        assert beautify(text) == text

    def test_decode_unicode(self):
        text = beautify('["\\u00e9\\u0022\\ud83d\\ude00"]', decode_unicode=True)
        assert text == '[\n  "é\\u0022\U0001F600"\n]'

    def test_escaped_backslash_is_kept(self):
        assert beautify('["\\\\u0041"]', decode_unicode=True) == '[\n  "\\\\u0041"\n]'

    def test_unterminated_string(self):
        with pytest.raises(ParseError):
            beautify('["abc')


class TestDynamicJson:
    def test_attribute_access(self):
        doc = DynamicJson.wrap(parse('{"User": {"name": "ann"}, "tags": [{"id": 1}, 2]}'))
        assert doc.User.name == "ann"
        assert doc.user.name == "ann"
        assert doc["tags"][0].id == 1
        assert doc.tags[1] == 2

    def test_mapping_behaviour(self):
        doc = DynamicJson.wrap({"a": 1, "b": {"c": 2}})
        assert "a" in doc
        assert len(doc) == 2
        assert list(doc) == ["a", "b"]
        assert doc.b == {"c": 2}
        assert doc.to_dict() == {"a": 1, "b": {"c": 2}}

    def test_missing_member(self):
        doc = DynamicJson.wrap({"a": 1})
        with pytest.raises(AttributeError):
            doc.missing
        with pytest.raises(KeyError):
            doc["missing"]

    def test_scalars_and_arrays(self):
        assert DynamicJson.wrap(3) == 3
        assert DynamicJson.wrap([{"a": 1}])[0].a == 1
