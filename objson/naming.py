"""
Naming strategies applied to member names on the wire.

A strategy maps a member name to its serialized name. It is applied to every
member except those that carry an explicit name (JsonField or a
MemberOverride serialized name).
"""

from __future__ import annotations

from enum import Enum


class NamingConvention(str, Enum):
    """The built-in naming conventions selectable from JsonParameters."""

    DEFAULT = "default"
    LOWER = "lower"
    UPPER = "upper"
    CAMEL = "camel"


class NamingStrategy:
    """
    Renames members for serialization.

    Subclass and override rename() to plug in a custom convention, then pass
    the instance to Engine(naming_strategy=...).
    """

    convention: NamingConvention | None = None

    def rename(self, name: str) -> str:
        return name


class LowerCaseNaming(NamingStrategy):
    convention = NamingConvention.LOWER

    def rename(self, name: str) -> str:
        return name.lower()


class UpperCaseNaming(NamingStrategy):
    convention = NamingConvention.UPPER

    def rename(self, name: str) -> str:
        return name.upper()


class CamelCaseNaming(NamingStrategy):
    """Lowercases the first letter when it is an ASCII capital."""

    convention = NamingConvention.CAMEL

    def rename(self, name: str) -> str:
        if name and "A" <= name[0] <= "Z":
            return name[0].lower() + name[1:]
        return name


class DefaultNaming(NamingStrategy):
    convention = NamingConvention.DEFAULT


_STRATEGIES: dict[NamingConvention, NamingStrategy] = {
    NamingConvention.DEFAULT: DefaultNaming(),
    NamingConvention.LOWER: LowerCaseNaming(),
    NamingConvention.UPPER: UpperCaseNaming(),
    NamingConvention.CAMEL: CamelCaseNaming(),
}


def get_strategy(convention: NamingConvention | str) -> NamingStrategy:
    """Return the shared strategy instance for a built-in convention."""
    return _STRATEGIES[NamingConvention(convention)]
