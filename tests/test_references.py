"""Tests for shared and circular object references."""

import json
from dataclasses import dataclass, field
from typing import Optional

import pytest

from objson import (
    CircularReferenceError,
    FunctionConverter,
    Interceptor,
    UnresolvedReference,
    json_converter,
    json_interceptor,
)


# ============================================================================
# Module-level types
# ============================================================================


@dataclass(eq=False)
class Node:
    name: str = ""
    parent: Optional["Node"] = None
    children: list["Node"] = field(default_factory=list)


@dataclass
class Person:
    name: str = ""


@dataclass
class Pair:
    left: Optional[Person] = None
    right: Optional[Person] = None


@dataclass
class Holder:
    value: object = None


class VetoHidden(Interceptor):
    def on_serializing(self, obj):
        return not obj.hidden


@json_interceptor(VetoHidden)
@dataclass
class Guarded:
    hidden: bool = False


@dataclass
class Wrapper:
    v: int = 0


@json_converter(
    FunctionConverter(lambda amount: Wrapper(amount.cents), lambda tree: Amount(tree["v"]))
)
@dataclass
class Amount:
    cents: int = 0


@dataclass
class Ledger:
    amount: Amount = field(default_factory=Amount)
    first: Optional[Person] = None
    again: Optional[Person] = None


def make_tree():
    root = Node("root")
    leaf = Node("leaf", parent=root)
    root.children.append(leaf)
    return root


# ============================================================================
# Encoding
# ============================================================================


class TestEncodeReferences:
    def test_back_reference_to_root(self, engine):
        text = engine.encode(make_tree())
        assert text == (
            '{"name":"root","parent":null,'
            '"children":[{"name":"leaf","parent":{"$i":1},"children":[]}]}'
        )

    def test_self_reference(self, engine):
        node = Node("a")
        node.parent = node
        assert engine.encode(node) == '{"name":"a","parent":{"$i":1},"children":[]}'

    def test_shared_object(self, engine):
        person = Person("x")
        text = engine.encode(Pair(person, person))
        assert text == '{"left":{"name":"x"},"right":{"$i":2}}'

    def test_numbering_follows_first_write(self, engine):
        a, b = Person("a"), Person("b")
        text = engine.encode([a, b, b, a], declared_type=list[Person])
        assert text == '[{"name":"a"},{"name":"b"},{"$i":2},{"$i":1}]'

    def test_vetoed_objects_are_not_numbered(self, engine):
        kept = Guarded()
        text = engine.encode([Guarded(hidden=True), kept, kept], declared_type=list[Guarded])
        assert text == '[null,{"hidden":false},{"$i":1}]'

    def test_equal_objects_are_not_shared(self, engine):
        text = engine.encode(Pair(Person("x"), Person("x")))
        assert "$i" not in text


class TestInline:
    def test_shared_object_is_repeated(self, engine):
        person = Person("x")
        text = engine.encode(Pair(person, person), inline_circular_refs=True)
        assert text == '{"left":{"name":"x"},"right":{"name":"x"}}'

    def test_cycle_is_rejected(self, engine):
        with pytest.raises(CircularReferenceError):
            engine.encode(make_tree(), inline_circular_refs=True)

    def test_extensions_disabled_inline(self, engine):
        person = Person("x")
        text = engine.encode(Pair(person, person), extensions_enabled=False)
        assert "$i" not in text
        with pytest.raises(CircularReferenceError):
            engine.encode(make_tree(), extensions_enabled=False)


# ============================================================================
# Decoding
# ============================================================================


class TestDecodeReferences:
    def test_cycle_identity(self, engine):
        root = engine.decode(engine.encode(make_tree()), Node)
        leaf = root.children[0]
        assert leaf.name == "leaf"
        assert leaf.parent is root

    def test_self_reference(self, engine):
        node = engine.decode('{"name":"a","parent":{"$i":1}}', Node)
        assert node.parent is node

    def test_shared_identity(self, engine):
        pair = engine.decode('{"left":{"name":"x"},"right":{"$i":2}}', Pair)
        assert pair.left is pair.right

    def test_reference_inside_tagged_member(self, engine):
        person = Person("p")
        text = engine.encode([Holder(person), Holder(person)], declared_type=list[Holder])
        assert json.loads(text)[1] == {"value": {"$i": 2}}
        first, second = engine.decode(text, list[Holder])
        assert first.value is second.value
        assert first.value == person

    def test_sibling_keys_are_ignored(self, engine):
        pair = engine.decode('{"left":{"name":"x"},"right":{"$i":2,"name":"y"}}', Pair)
        assert pair.right is pair.left

    def test_unknown_index(self, engine):
        with pytest.raises(UnresolvedReference) as info:
            engine.decode('{"name":"a","parent":{"$i":5}}', Node)
        assert info.value.index == 5

    def test_forward_reference_is_unresolved(self, engine):
        with pytest.raises(UnresolvedReference):
            engine.decode('{"left":{"$i":2},"right":{"name":"x"}}', Pair)

    def test_non_integer_index(self, engine):
        with pytest.raises(UnresolvedReference):
            engine.decode('{"left":{"$i":"1"}}', Pair)


def test_deep_copy_keeps_shape(engine):
    original = make_tree()
    copy = engine.deep_copy(original)
    assert copy is not original
    assert copy.children[0].parent is copy
    assert copy.children[0] is not original.children[0]


def test_converter_output_takes_no_sequence_number(engine):
    person = Person("x")
    text = engine.encode(Ledger(Amount(3), person, person))
    assert text == '{"amount":{"v":3},"first":{"name":"x"},"again":{"$i":2}}'
    ledger = engine.decode(text, Ledger)
    assert ledger.amount == Amount(3)
    assert ledger.first is ledger.again
