"""Composable API functions for the IR → Elixir AST pipeline.

Each function is one entry point a code generator needs: load a serialized
compilation unit, build all of its modules, or build a single expression
against an existing context.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from . import ast, ir
from .build_types import BuildConfig
from .context import CompilationContext
from .driver import ElixirBuilder
from .errors import UnitLoadError

logger = logging.getLogger(__name__)


def load_unit(json_text: str) -> ir.CompilationUnit:
    """Validate a JSON-serialized compilation unit.

    Raises:
        UnitLoadError: if the document does not match the IR schema.
    """
    try:
        return ir.CompilationUnit.model_validate_json(json_text)
    except ValidationError as exc:
        raise UnitLoadError(f"invalid compilation unit: {exc.error_count()} errors") from exc


def build_unit(unit: ir.CompilationUnit, config: Optional[BuildConfig] = None) -> list[ast.Node]:
    """Build one ``defmodule`` node per enum and non-extern class in *unit*.

    Args:
        unit: The typed compilation unit.
        config: Builder options; defaults to :class:`BuildConfig`.

    Returns:
        Module nodes in declaration order, enums first.
    """
    modules, ctx = ElixirBuilder(config).build_unit(unit)
    logger.debug("%s", ctx.stats.report())
    return modules


def build_unit_from_json(json_text: str, config: Optional[BuildConfig] = None) -> list[ast.Node]:
    return build_unit(load_unit(json_text), config)


def build_expression(
    expr: ir.ExprBase, ctx: Optional[CompilationContext] = None
) -> ast.Node:
    """Build a single expression.

    Without *ctx*, a fresh context with default configuration and no
    declarations is used.
    """
    if ctx is None:
        ctx = ElixirBuilder().new_context()
    return ctx.build(expr)
