"""Identifier conversion from front-end names to target names."""

from __future__ import annotations

import re

RESERVED_WORDS: frozenset[str] = frozenset(
    {
        "after",
        "and",
        "catch",
        "do",
        "else",
        "end",
        "false",
        "fn",
        "in",
        "nil",
        "not",
        "or",
        "rescue",
        "true",
        "when",
        "__MODULE__",
        "__ENV__",
    }
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(name: str) -> str:
    """``camelCase`` / ``PascalCase`` → ``snake_case``; leading underscores kept."""
    stripped = name.lstrip("_")
    prefix = name[: len(name) - len(stripped)]
    if not stripped:
        return name
    converted = _CAMEL_BOUNDARY.sub("_", stripped).lower()
    return prefix + converted


def var_name(name: str) -> str:
    """Target-safe variable name for a front-end local."""
    converted = snake_case(name)
    if converted in RESERVED_WORDS:
        return f"{converted}_"
    if converted and converted[0].isdigit():
        return f"v_{converted}"
    return converted


def function_name(name: str) -> str:
    converted = snake_case(name)
    return f"{converted}_" if converted in RESERVED_WORDS else converted


def atom_name(name: str) -> str:
    return snake_case(name)


def module_name(path: str) -> str:
    """``my.pack.FooBar`` → ``My.Pack.FooBar``."""
    segments = [s for s in path.split(".") if s]
    return ".".join(s[:1].upper() + s[1:] for s in segments)


def numbered(base: str, taken) -> str:
    """First of ``base``, ``base_2``, ``base_3``… not in *taken*."""
    if base not in taken:
        return base
    n = 2
    while f"{base}_{n}" in taken:
        n += 1
    return f"{base}_{n}"
