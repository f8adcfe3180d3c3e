"""Haxe IR → Elixir AST builder package."""

from .api import (  # noqa: F401
    build_unit,
    build_expression,
    load_unit,
    build_unit_from_json,
)
from .build_types import BuildConfig, BuildStats  # noqa: F401
from .errors import BuildError, InvariantViolation, UnitLoadError  # noqa: F401
