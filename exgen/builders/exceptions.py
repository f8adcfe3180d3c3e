"""Exception builder — try/catch/throw and loop-control sentinels.

Strings and exception structs are raised; any other value is thrown, so a
catch-all catch needs both a ``rescue`` and a ``catch :throw`` clause.
``break``/``continue`` become thrown sentinels that the loop builder
catches around each iteration. Inside a loop that threads state the
sentinel carries the current state: ``throw {:break, {a, b}}``.
"""

from __future__ import annotations

import logging

from .. import ast, constants, ir
from ..context import CompilationContext
from ..ir_walk import loop_controls, references
from ..naming import var_name
from ._base import build_branch, outer_rebinds, rebind_state, state_names, state_value, with_state

logger = logging.getLogger(__name__)

RUNTIME_ERROR_MODULE = "RuntimeError"

CONTROL_ATOMS: dict[type, str] = {
    ir.Break: constants.BREAK_ATOM,
    ir.Continue: constants.CONTINUE_ATOM,
}


def build_try(expr: ir.Try, ctx: CompilationContext) -> ast.Node:
    names = state_names(
        outer_rebinds([expr.body, *(c.body for c in expr.catches)], ctx), ctx
    )
    body = with_state(build_branch(expr.body, ctx), names)
    rescues: list[ast.RescueClause] = []
    catches: list[ast.CatchClause] = []
    for catch in expr.catches:
        name = var_name(catch.var.name)
        binder = _binder(catch, name, ctx)
        with ctx.clause([(catch.var, name)]):
            handler = with_state(build_branch(catch.body, ctx), names)
        kind = catch.var.type.kind
        if kind == ir.TypeKind.STRING:
            pattern = ast.PStruct(RUNTIME_ERROR_MODULE, (("message", binder),))
            rescues.append(ast.RescueClause(pattern, handler))
        elif kind == ir.TypeKind.INSTANCE and catch.var.type.name:
            module = ctx.module_for(catch.var.type.name)
            struct = ast.PStruct(module)
            pattern = ast.PAlias(struct, name) if isinstance(binder, ast.PVar) else struct
            rescues.append(ast.RescueClause(pattern, handler))
        else:
            rescues.append(ast.RescueClause(binder, handler))
            catches.append(ast.CatchClause("throw", binder, handler))
    if catches and ctx.in_loop:
        catches[:0] = _rethrow_controls(loop_controls(expr.body), ctx)
    node = ast.Node(ast.Try(body, tuple(rescues), tuple(catches)))
    return rebind_state(names, node) if names else node


def _binder(catch: ir.Catch, name: str, ctx: CompilationContext) -> ast.Pattern:
    if references(catch.body, catch.var):
        return ast.PVar(name)
    if ctx.config.strict_binders:
        return ast.PWildcard()
    return ast.PVar(f"_{name.lstrip('_')}")


def _rethrow_controls(controls: set[type], ctx: CompilationContext) -> list[ast.CatchClause]:
    """Pass loop sentinels through a catch-all so the enclosing loop still sees them."""
    clauses = []
    for control, tag in CONTROL_ATOMS.items():
        if control not in controls:
            continue
        if ctx.loop_state:
            signal = constants.LOOP_SIGNAL_BINDER
            pattern = ast.PAlias(ast.PTuple((ast.PLiteral(ast.atom(tag)), ast.PWildcard())), signal)
            clauses.append(ast.CatchClause("throw", pattern, ast.Node(ast.Throw(ast.var(signal)))))
        else:
            sentinel = ast.atom(tag)
            clauses.append(ast.CatchClause("throw", ast.PLiteral(sentinel), ast.Node(ast.Throw(sentinel))))
    if clauses:
        logger.debug("Re-throwing %d loop sentinel(s) past a catch-all", len(clauses))
    return clauses


def build_throw(expr: ir.Throw, ctx: CompilationContext) -> ast.Node:
    value = ctx.build(expr.value)
    value_type = expr.value.type
    if value_type.is_string():
        return ast.Node(ast.Raise(value))
    if value_type.kind == ir.TypeKind.INSTANCE:
        cls = ctx.lookup_class(value_type.name)
        if cls is not None and cls.is_exception:
            return ast.Node(ast.Raise(value))
    return ast.Node(ast.Throw(value))


def loop_signal(tag: str, ctx: CompilationContext) -> ast.Node:
    """The value thrown to leave the current iteration."""
    state = list(ctx.loop_state)
    if not state:
        return ast.atom(tag)
    return ast.tuple_of(ast.atom(tag), state_value(state))


def build_break(expr: ir.Break, ctx: CompilationContext) -> ast.Node:
    return ast.Node(ast.Throw(loop_signal(constants.BREAK_ATOM, ctx)))


def build_continue(expr: ir.Continue, ctx: CompilationContext) -> ast.Node:
    return ast.Node(ast.Throw(loop_signal(constants.CONTINUE_ATOM, ctx)))
