"""Shared builder helpers — branch scoping and immutable state threading.

The target has no mutation, so a construct whose branches rebind variables
declared outside it (an ``if`` arm assigning ``x``, a loop body appending to
a list) threads those variables explicitly: every branch ends with their
current values and the construct's result is matched back onto them.
"""

from __future__ import annotations

from .. import ast, ir
from ..context import CompilationContext
from ..ir_walk import assigned_vars


def span_of(location: ir.SourceLocation) -> ast.SourceSpan | None:
    if location.is_unknown():
        return None
    return ast.SourceSpan(
        file=location.file,
        line=location.start_line,
        col=location.start_col,
        end_line=location.end_line,
        end_col=location.end_col,
    )


def build_branch(expr: ir.Expr | None, ctx: CompilationContext) -> ast.Node:
    """Build one branch of a construct inside its own scope."""
    if expr is None:
        return ast.nil()
    return ctx.with_scope((), lambda: ctx.build(expr))


def outer_rebinds(exprs: list[ir.Expr | None], ctx: CompilationContext) -> list[ir.Var]:
    """Variables bound outside *exprs* that some expression in *exprs* rebinds."""
    seen: dict[int, ir.Var] = {}
    for expr in exprs:
        if expr is None:
            continue
        for var in assigned_vars(expr):
            if var.id not in seen and ctx.is_bound(var):
                seen[var.id] = var
    return list(seen.values())


def state_names(variables: list[ir.Var], ctx: CompilationContext) -> list[str]:
    return [ctx.resolve_name(v.id, v.name) for v in variables]


def state_pattern(names: list[str]) -> ast.Pattern:
    if len(names) == 1:
        return ast.PVar(names[0])
    return ast.PTuple(tuple(ast.PVar(n) for n in names))


def state_value(names: list[str]) -> ast.Node:
    if len(names) == 1:
        return ast.var(names[0])
    return ast.tuple_of(*(ast.var(n) for n in names))


def ending_with(body: ast.Node, tail: ast.Node) -> ast.Node:
    """*body* followed by *tail*, as one flat block."""
    nodes = ast.flatten([body]) if not ast.is_empty_block(body) else []
    return ast.block(nodes + [tail])


def with_state(body: ast.Node, names: list[str]) -> ast.Node:
    if not names:
        return body
    return ending_with(body, state_value(names))


def rebind_state(names: list[str], value: ast.Node) -> ast.Node:
    """``{a, b} = value`` so the construct's result replaces the outer bindings."""
    return ast.match(state_pattern(names), value)
