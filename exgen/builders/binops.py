"""Binary-operation builder — type-directed operators, assignment, null-coalescing.

Intercepts the operators the core builder refuses (assignment, compound
assignment, intervals, null-coalescing) and lowers string addition to
concatenation using the operands' static types.
"""

from __future__ import annotations

import logging

from .. import ast, constants, ir
from ..context import CompilationContext
from ..errors import InvariantViolation
from ..ir_walk import unwrap
from ..naming import atom_name, function_name
from .core import build_operator

logger = logging.getLogger(__name__)


def build_binop(expr: ir.Binop, ctx: CompilationContext) -> ast.Node:
    op = expr.op
    if op == ir.BinaryOp.ASSIGN:
        return build_assignment(expr.left, ctx.build(expr.right), ctx)
    if op == ir.BinaryOp.ASSIGN_OP:
        if expr.assign_op is None:
            raise InvariantViolation(
                "compound assignment without an operator",
                node_kind="binop",
                scope=ctx.describe_scope(),
            )
        current = ctx.build(expr.left)
        value = build_bin_op(
            expr.assign_op, current, ctx.build(expr.right), expr.left.type, expr.right.type
        )
        return build_assignment(expr.left, value, ctx)
    if op == ir.BinaryOp.NULL_COAL:
        return build_null_coalescing(expr.left, expr.right, ctx)
    if op == ir.BinaryOp.INTERVAL:
        return exclusive_range(ctx.build(expr.left), ctx.build(expr.right))
    left = ctx.build(expr.left)
    right = ctx.build(expr.right)
    return build_bin_op(op, left, right, expr.left.type, expr.right.type)


def build_bin_op(
    op: ir.BinaryOp,
    left: ast.Node,
    right: ast.Node,
    left_type: ir.StaticType,
    right_type: ir.StaticType,
) -> ast.Node:
    """Lower *op* over built operands, choosing concatenation for string addition."""
    if op == ir.BinaryOp.ADD and (left_type.is_string() or right_type.is_string()):
        concat = ast.binop(
            "<>", _as_string(left, left_type), _as_string(right, right_type)
        )
        return concat.with_metadata(yields_string=True)
    return build_operator(op, left, right)


def _as_string(node: ast.Node, static_type: ir.StaticType) -> ast.Node:
    if static_type.is_string() or yields_string(node):
        return node
    return ast.local("to_string", node).with_metadata(yields_string=True)


def yields_string(node: ast.Node) -> bool:
    """Statically known to produce a string, looking through blocks and branches."""
    if node.metadata.yields_string:
        return True
    kind = node.kind
    if isinstance(kind, ast.Block):
        return bool(kind.expressions) and yields_string(kind.expressions[-1])
    if isinstance(kind, ast.If):
        return (
            kind.else_ is not None and yields_string(kind.then) and yields_string(kind.else_)
        )
    if isinstance(kind, ast.Case):
        return all(yields_string(c.body) for c in kind.clauses)
    if isinstance(kind, ast.Cond):
        return all(yields_string(c.body) for c in kind.clauses)
    return False


def exclusive_range(first: ast.Node, end: ast.Node) -> ast.Node:
    """``first..(end - 1)//1``; the explicit step keeps ``a...a`` empty."""
    if isinstance(end.kind, ast.Integer):
        last = ast.integer(end.kind.value - 1)
    else:
        last = ast.binop("-", end, ast.integer(1))
    return ast.Node(ast.Range(first, last, ast.integer(1)))


# ── assignment ───────────────────────────────────────────────────


def build_assignment(target: ir.Expr, value: ast.Node, ctx: CompilationContext) -> ast.Node:
    """Rebind the assignable *target* to the already-built *value*."""
    target = unwrap(target)
    if isinstance(target, ir.Local):
        var = target.var
        name = ctx.resolve_name(var.id, var.name) if ctx.is_bound(var) else ctx.declare(var)
        return ast.match(ast.PVar(name), value)
    if isinstance(target, ir.FieldAccess):
        if target.access in (ir.FieldAccessKind.INSTANCE, ir.FieldAccessKind.ANON):
            obj = ctx.build(target.obj)
            update = ast.Node(ast.StructUpdate(obj, ((atom_name(target.field), value),)))
            return _rebind_container(obj, update, target, ctx)
        if target.access == ir.FieldAccessKind.DYNAMIC:
            obj = ctx.build(target.obj)
            update = ast.remote("Map", "put", obj, ast.atom(atom_name(target.field)), value)
            return _rebind_container(obj, update, target, ctx)
        if target.access == ir.FieldAccessKind.STATIC:
            key = ast.tuple_of(
                ast.Node(ast.Alias(ctx.module_for(target.owner))),
                ast.atom(function_name(target.field)),
            )
            return ast.remote(constants.STATIC_STATE_MODULE, "put", key, value)
    if isinstance(target, ir.ArrayAccess):
        obj = ctx.build(target.obj)
        index = ctx.build(target.index)
        if target.obj.type.kind == ir.TypeKind.MAP:
            update = ast.remote("Map", "put", obj, index, value)
        else:
            update = ast.remote("List", "replace_at", obj, index, value)
        return _rebind_container(obj, update, target, ctx)
    raise InvariantViolation(
        f"assignment target {getattr(target, 'kind', type(target).__name__)} is not assignable",
        node_kind="binop",
        scope=ctx.describe_scope(),
    )


def _rebind_container(
    obj: ast.Node, update: ast.Node, target: ir.Expr, ctx: CompilationContext
) -> ast.Node:
    if not isinstance(obj.kind, ast.Var):
        raise InvariantViolation(
            f"cannot rebind the container of a nested {target.kind} assignment",
            node_kind="binop",
            scope=ctx.describe_scope(),
        )
    return ast.match(ast.PVar(obj.kind.name), update)


# ── null-coalescing ──────────────────────────────────────────────


def build_null_coalescing(left: ir.Expr, right: ir.Expr, ctx: CompilationContext) -> ast.Node:
    value = ctx.build(left)
    default = ctx.build(right)
    return null_coalesce(value, default, ctx)


def null_coalesce(value: ast.Node, default: ast.Node, ctx: CompilationContext) -> ast.Node:
    """Evaluate *value* once; fall back to *default* when it is nil.

    A simple value is tested and reused directly; anything else is bound to
    a fresh temporary inside the condition.
    """
    ctx.stats.record_rewrite("null_coalescing")
    if ast.is_simple(value):
        return ast.Node(ast.If(ast.binop("!=", value, ast.nil()), value, default))
    temp = ctx.fresh_temp()
    test = ast.binop("!=", ast.match(ast.PVar(temp), value), ast.nil())
    return ast.Node(ast.If(test, ast.var(temp), default))
