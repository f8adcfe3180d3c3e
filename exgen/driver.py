"""Root expression builder — the single dispatch point that owns all recursion.

Builders are plain module-level functions ``build_x(expr, ctx) -> Node``
registered in a type-keyed dispatch table. They never call each other to
build a sub-expression; they go back through ``ctx.build``, which routes
here with the same context.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable

from . import ast, ir
from .build_types import BuildConfig
from .builders import (
    binops,
    blocks,
    calls,
    classes,
    control_flow,
    core,
    enums,
    exceptions,
    loops,
    variables,
)
from .builders._base import span_of
from .context import CompilationContext
from .errors import InvariantViolation

logger = logging.getLogger(__name__)

Handler = Callable[[ir.ExprBase, CompilationContext], ast.Node]


class ElixirBuilder:
    """Dispatches typed IR nodes to the builder for their shape."""

    def __init__(self, config: BuildConfig | None = None):
        self.config = config or BuildConfig()
        self._DISPATCH: dict[type, Handler] = {
            ir.Const: core.build_const,
            ir.Unop: core.build_unop,
            ir.ArrayDecl: core.build_array_decl,
            ir.ObjectDecl: core.build_object_decl,
            ir.Parenthesis: core.build_parenthesis,
            ir.Meta: core.build_meta,
            ir.Cast: core.build_cast,
            ir.Local: variables.build_local,
            ir.VarDecl: variables.build_var_decl,
            ir.FieldAccess: variables.build_field_access,
            ir.ArrayAccess: variables.build_array_access,
            ir.TypeExpr: variables.build_type_expr,
            ir.Ident: variables.build_ident,
            ir.Binop: binops.build_binop,
            ir.Block: blocks.build_block,
            ir.If: control_flow.build_if,
            ir.Switch: control_flow.build_switch,
            ir.Return: control_flow.build_return,
            ir.Call: calls.build_call,
            ir.New: calls.build_new,
            ir.EnumParameter: enums.build_enum_parameter,
            ir.EnumIndex: enums.build_enum_index,
            ir.Try: exceptions.build_try,
            ir.Throw: exceptions.build_throw,
            ir.Break: exceptions.build_break,
            ir.Continue: exceptions.build_continue,
            ir.While: loops.build_while,
            ir.For: loops.build_for,
            ir.Function: classes.build_function_literal,
        }

    def new_context(self, unit: ir.CompilationUnit | None = None) -> CompilationContext:
        """A context wired back into this builder, seeded with *unit*'s declarations."""
        if unit is None:
            return CompilationContext(build=self.build, config=self.config)
        return CompilationContext(
            build=self.build,
            config=self.config,
            classes=unit.classes,
            enums=unit.enums,
        )

    def build(self, expr: ir.ExprBase, ctx: CompilationContext) -> ast.Node:
        handler = self._DISPATCH.get(type(expr))
        if handler is None:
            raise InvariantViolation(
                f"no builder for IR node {type(expr).__name__}",
                node_kind=getattr(expr, "kind", type(expr).__name__),
                scope=ctx.describe_scope(),
            )
        node = handler(expr, ctx)
        if node.position is None and not expr.location.is_unknown():
            node = dataclasses.replace(node, position=span_of(expr.location))
        return node

    def build_unit(self, unit: ir.CompilationUnit) -> tuple[list[ast.Node], CompilationContext]:
        """Build one module per enum and per non-extern class, in declaration order."""
        ctx = self.new_context(unit)
        modules: list[ast.Node] = []
        for enum in unit.enums:
            modules.append(classes.build_enum_module(enum, ctx))
        for cls in unit.classes:
            if cls.is_extern:
                logger.debug("Skipping extern class %s", cls.qualified_name)
                continue
            modules.append(classes.build_class(cls, ctx))
        logger.info(
            "Built %d modules (%d functions)",
            ctx.stats.modules_built,
            ctx.stats.functions_built,
        )
        return modules, ctx
