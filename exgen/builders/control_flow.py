"""Control-flow builder — conditionals, switches and returns.

An ``if`` is lowered by the first of three strategies that applies:

1. a tag comparison ``enum_index(x) == N`` is rebuilt as a ``case`` on ``x``
   whose first arm binds the constructor parameters the branch uses;
2. an ``else if`` chain is flattened into ``cond``;
3. anything else stays a two-branch ``if``.

Branches that rebind variables declared outside the conditional thread
them out: every arm ends with their values and the conditional's result
is matched back onto them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .. import ast, constants, ir
from ..context import CompilationContext
from ..errors import InvariantViolation
from ..ir_walk import unwrap
from . import enums
from ._base import build_branch, outer_rebinds, rebind_state, state_names, state_value, with_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagDispatch:
    subject: ir.Expr
    enum: ir.EnumDecl
    ctor: ir.EnumConstructor


def detect_tag_dispatch(cond: ir.Expr, ctx: CompilationContext) -> TagDispatch | None:
    """``enum_index(x) == N`` (either orientation) against a known constructor."""
    cond = unwrap(cond)
    if not isinstance(cond, ir.Binop) or cond.op != ir.BinaryOp.EQ:
        return None
    left, right = unwrap(cond.left), unwrap(cond.right)
    if isinstance(right, ir.EnumIndex):
        left, right = right, left
    if not isinstance(left, ir.EnumIndex):
        return None
    if not (isinstance(right, ir.Const) and right.const_kind == ir.ConstKind.INT):
        return None
    enum = ctx.lookup_enum(left.enum_name)
    if enum is None:
        logger.debug("Tag comparison on undeclared enum %s", left.enum_name)
        return None
    ctor = enum.constructor_at(int(right.value))
    if ctor is None:
        logger.debug("Tag %s out of range for enum %s", right.value, enum.name)
        return None
    return TagDispatch(left.subject, enum, ctor)


def constructor_arm(
    enum: ir.EnumDecl,
    ctor: ir.EnumConstructor,
    subject: ir.Expr,
    body: ir.Expr | None,
    names: list[str],
    ctx: CompilationContext,
) -> ast.CaseClause:
    """One ``case`` arm matching *ctor*, with *body* built under its binders."""
    arm = enums.clause_pattern(enum, ctor, subject, body, ctx)
    with ctx.pattern_bindings(arm.binders, arm.sites):
        built = build_branch(body, ctx)
    return ast.CaseClause(arm.pattern, with_state(built, names))


def _rebinding(result: ast.Node, names: list[str]) -> ast.Node:
    return rebind_state(names, result) if names else result


# ── if ───────────────────────────────────────────────────────────


def build_if(expr: ir.If, ctx: CompilationContext) -> ast.Node:
    rebinds = outer_rebinds([expr.then, expr.else_], ctx)
    names = state_names(rebinds, ctx)

    dispatch = detect_tag_dispatch(expr.cond, ctx)
    if dispatch is not None:
        return _rebinding(_build_tag_dispatch(expr, dispatch, names, ctx), names)

    chain_else = unwrap(expr.else_)
    if isinstance(chain_else, ir.If) and detect_tag_dispatch(chain_else.cond, ctx) is None:
        arms, final = _flatten_chain(expr, ctx)
        if not _all_literal_arms(arms, final):
            return _rebinding(_build_cond(arms, final, names, ctx), names)
        logger.debug("Keeping literal-valued else-if chain as nested if")

    condition = ctx.build(expr.cond)
    then = with_state(build_branch(expr.then, ctx), names)
    if expr.else_ is not None:
        else_ = with_state(build_branch(expr.else_, ctx), names)
    elif names:
        else_ = state_value(names)
    else:
        else_ = None
    return _rebinding(ast.Node(ast.If(condition, then, else_)), names)


def _build_tag_dispatch(
    expr: ir.If, dispatch: TagDispatch, names: list[str], ctx: CompilationContext
) -> ast.Node:
    subject = ctx.build(dispatch.subject)
    matched = constructor_arm(dispatch.enum, dispatch.ctor, dispatch.subject, expr.then, names, ctx)
    if expr.else_ is not None:
        fallback = with_state(build_branch(expr.else_, ctx), names)
    else:
        fallback = ast.Node(ast.Raise(ast.string(constants.UNMATCHED_VALUE_MESSAGE)))
    ctx.stats.record_rewrite("tag_dispatch_case")
    return ast.Node(ast.Case(subject, (matched, ast.CaseClause(ast.PWildcard(), fallback))))


def _flatten_chain(expr: ir.If, ctx: CompilationContext) -> tuple[list[tuple[ir.Expr, ir.Expr]], ir.Expr | None]:
    arms: list[tuple[ir.Expr, ir.Expr]] = []
    current: ir.Expr | None = expr
    while isinstance(current, ir.If):
        if arms and detect_tag_dispatch(current.cond, ctx) is not None:
            break
        arms.append((current.cond, current.then))
        current = unwrap(current.else_)
    return arms, current


def _all_literal_arms(arms: list[tuple[ir.Expr, ir.Expr]], final: ir.Expr | None) -> bool:
    bodies = [body for _, body in arms]
    if final is None:
        return False
    bodies.append(final)
    return all(isinstance(unwrap(b), ir.Const) for b in bodies)


def _build_cond(
    arms: list[tuple[ir.Expr, ir.Expr]],
    final: ir.Expr | None,
    names: list[str],
    ctx: CompilationContext,
) -> ast.Node:
    clauses = []
    for cond, body in arms:
        clauses.append(
            ast.CondClause(ctx.build(cond), with_state(build_branch(body, ctx), names))
        )
    if final is not None:
        fallback = with_state(build_branch(final, ctx), names)
    elif names:
        fallback = state_value(names)
    else:
        fallback = ast.nil()
    clauses.append(ast.CondClause(ast.boolean(True), fallback))
    ctx.stats.record_rewrite("cond_chain")
    return ast.Node(ast.Cond(tuple(clauses)))


# ── switch ───────────────────────────────────────────────────────


def build_switch(expr: ir.Switch, ctx: CompilationContext) -> ast.Node:
    bodies = [c.body for c in expr.cases] + [expr.default]
    names = state_names(outer_rebinds(bodies, ctx), ctx)
    subject = unwrap(expr.subject)
    if isinstance(subject, ir.EnumIndex):
        enum = ctx.lookup_enum(subject.enum_name)
        if enum is not None:
            return _rebinding(_build_enum_switch(expr, subject, enum, names, ctx), names)
        logger.debug("Switch over undeclared enum %s; matching on tag values", subject.enum_name)
    return _rebinding(_build_value_switch(expr, names, ctx), names)


def _build_enum_switch(
    expr: ir.Switch,
    subject: ir.EnumIndex,
    enum: ir.EnumDecl,
    names: list[str],
    ctx: CompilationContext,
) -> ast.Node:
    value = ctx.build(subject.subject)
    clauses: list[ast.CaseClause] = []
    for case in expr.cases:
        for tag in case.values:
            tag = unwrap(tag)
            ctor = enum.constructor_at(int(tag.value)) if isinstance(tag, ir.Const) else None
            if ctor is None:
                _raise_unknown_tag(tag, enum, ctx)
            clauses.append(constructor_arm(enum, ctor, subject.subject, case.body, names, ctx))
    # Without a default the switch is exhaustive over the enum
    if expr.default is not None:
        clauses.append(
            ast.CaseClause(ast.PWildcard(), with_state(build_branch(expr.default, ctx), names))
        )
    ctx.stats.record_rewrite("enum_switch_case")
    return ast.Node(ast.Case(value, tuple(clauses)))


def _raise_unknown_tag(tag: ir.Expr, enum: ir.EnumDecl, ctx: CompilationContext) -> None:
    raise InvariantViolation(
        f"switch case {getattr(tag, 'value', tag.kind)!r} is not a constructor of {enum.name}",
        node_kind="switch",
        scope=ctx.describe_scope(),
    )


def _value_pattern(value: ast.Node, ctx: CompilationContext) -> tuple[ast.Pattern, ast.Node | None]:
    if ast.is_literal(value):
        return ast.PLiteral(value), None
    if isinstance(value.kind, ast.Var):
        return ast.PPin(value.kind.name), None
    binder = ctx.fresh_temp(constants.SWITCH_VALUE_TEMP)
    return ast.PVar(binder), ast.binop("==", ast.var(binder), value)


def _build_value_switch(expr: ir.Switch, names: list[str], ctx: CompilationContext) -> ast.Node:
    subject = ctx.build(expr.subject)
    clauses: list[ast.CaseClause] = []
    for case in expr.cases:
        body = with_state(build_branch(case.body, ctx), names)
        for value in case.values:
            pattern, guard = _value_pattern(ctx.build(value), ctx)
            clauses.append(ast.CaseClause(pattern, body, guard))
    if expr.default is not None:
        fallback = with_state(build_branch(expr.default, ctx), names)
    elif names:
        fallback = state_value(names)
    else:
        fallback = ast.nil()
    clauses.append(ast.CaseClause(ast.PWildcard(), fallback))
    return ast.Node(ast.Case(subject, tuple(clauses)))


# ── return ───────────────────────────────────────────────────────


def build_return(expr: ir.Return, ctx: CompilationContext) -> ast.Node:
    """The value of the last expression is the function result.

    An iteration cannot end its enclosing function, so a return inside a
    loop body is rejected rather than lowered to the iteration's value.
    """
    if ctx.in_loop:
        raise InvariantViolation(
            "return inside a loop body", node_kind="return", scope=ctx.describe_scope()
        )
    if expr.value is None:
        return ast.nil()
    return ctx.build(expr.value)
