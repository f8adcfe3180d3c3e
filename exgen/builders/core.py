"""Core expression builder — literals, operators and transparent wrappers.

The base case of the recursion: pure mappings from leaf IR shapes to target
nodes with no context mutation. Operators that need context (assignment,
intervals, null-coalescing) must be intercepted one layer up by the
binary-operation builder; reaching :func:`build_operator` with one of them
is an invariant violation.
"""

from __future__ import annotations

import logging

from .. import ast, ir
from ..context import CompilationContext
from ..errors import InvariantViolation
from ..naming import atom_name

logger = logging.getLogger(__name__)

# Operators with a direct infix form in the target.
INFIX_OPERATORS: dict[ir.BinaryOp, str] = {
    ir.BinaryOp.ADD: "+",
    ir.BinaryOp.SUB: "-",
    ir.BinaryOp.MULT: "*",
    ir.BinaryOp.DIV: "/",
    ir.BinaryOp.EQ: "==",
    ir.BinaryOp.NOT_EQ: "!=",
    ir.BinaryOp.GT: ">",
    ir.BinaryOp.GTE: ">=",
    ir.BinaryOp.LT: "<",
    ir.BinaryOp.LTE: "<=",
    ir.BinaryOp.BOOL_AND: "&&",
    ir.BinaryOp.BOOL_OR: "||",
}

# Operators lowered to calls on the Bitwise module.
BITWISE_FUNCTIONS: dict[ir.BinaryOp, str] = {
    ir.BinaryOp.AND: "band",
    ir.BinaryOp.OR: "bor",
    ir.BinaryOp.XOR: "bxor",
    ir.BinaryOp.SHL: "bsl",
    ir.BinaryOp.SHR: "bsr",
    # No unsigned shift in the target: same primitive as SHR (differs for
    # negative operands).
    ir.BinaryOp.USHR: "bsr",
}

CONTEXT_OPERATORS = frozenset(
    {
        ir.BinaryOp.ASSIGN,
        ir.BinaryOp.ASSIGN_OP,
        ir.BinaryOp.INTERVAL,
        ir.BinaryOp.NULL_COAL,
    }
)


def build_operator(op: ir.BinaryOp, left: ast.Node, right: ast.Node) -> ast.Node:
    """Map a context-free binary operator over already-built operands."""
    if op in CONTEXT_OPERATORS:
        raise InvariantViolation(
            f"operator {op.value} must be lowered before the core builder",
            node_kind="binop",
        )
    if op in INFIX_OPERATORS:
        return ast.binop(INFIX_OPERATORS[op], left, right)
    if op == ir.BinaryOp.MOD:
        return ast.local("rem", left, right)
    if op in BITWISE_FUNCTIONS:
        node = ast.remote("Bitwise", BITWISE_FUNCTIONS[op], left, right)
        if op == ir.BinaryOp.USHR:
            logger.debug("Unsigned shift mapped to signed shift (negative operands differ)")
            return node.with_metadata(review="unsigned shift lowered to signed bsr")
        return node
    raise InvariantViolation(f"unsupported binary operator {op.value}", node_kind="binop")


# ── literals ─────────────────────────────────────────────────────


def build_const(expr: ir.Const, ctx: CompilationContext) -> ast.Node:
    kind = expr.const_kind
    if kind == ir.ConstKind.INT:
        return ast.integer(int(expr.value))
    if kind == ir.ConstKind.FLOAT:
        return ast.Node(ast.Float(float(expr.value)))
    if kind == ir.ConstKind.STRING:
        return ast.string(str(expr.value))
    if kind == ir.ConstKind.BOOL:
        return ast.boolean(bool(expr.value))
    if kind == ir.ConstKind.NULL:
        return ast.nil()
    # this / super both denote the active receiver
    if ctx.receiver is None:
        raise InvariantViolation(
            f"{kind.value.lower()} used outside an instance method",
            node_kind="const",
            scope=ctx.describe_scope(),
        )
    return ast.var(ctx.receiver)


def build_array_decl(expr: ir.ArrayDecl, ctx: CompilationContext) -> ast.Node:
    return ast.Node(ast.ListLit(tuple(ctx.build(e) for e in expr.elements)))


def build_object_decl(expr: ir.ObjectDecl, ctx: CompilationContext) -> ast.Node:
    """Anonymous structures become maps keyed by atoms, in declaration order."""
    pairs = tuple((ast.atom(atom_name(f.name)), ctx.build(f.expr)) for f in expr.fields)
    return ast.Node(ast.MapLit(pairs))


# ── unary operators ──────────────────────────────────────────────


def build_unop(expr: ir.Unop, ctx: CompilationContext) -> ast.Node:
    if expr.op in (ir.UnaryOp.INCREMENT, ir.UnaryOp.DECREMENT):
        from .binops import build_assignment

        delta = "+" if expr.op == ir.UnaryOp.INCREMENT else "-"
        current = ctx.build(expr.operand)
        updated = build_assignment(expr.operand, ast.binop(delta, current, ast.integer(1)), ctx)
        if not expr.postfix:
            return updated
        # Postfix yields the value from before the update
        stem = current.kind.name.lstrip("_") if isinstance(current.kind, ast.Var) else "value"
        old = ctx.fresh_temp(f"old_{stem}")
        return ast.block([ast.match(ast.PVar(old), current), updated, ast.var(old)])
    operand = ctx.build(expr.operand)
    if expr.op == ir.UnaryOp.NOT:
        return ast.Node(ast.UnaryOp("not", operand))
    if expr.op == ir.UnaryOp.NEG:
        if isinstance(operand.kind, ast.Integer):
            return ast.integer(-operand.kind.value)
        return ast.Node(ast.UnaryOp("-", operand))
    if expr.op == ir.UnaryOp.NEG_BITS:
        return ast.remote("Bitwise", "bnot", operand)
    raise InvariantViolation(f"unsupported unary operator {expr.op.value}", node_kind="unop")


# ── transparent wrappers ─────────────────────────────────────────


def build_parenthesis(expr: ir.Parenthesis, ctx: CompilationContext) -> ast.Node:
    return ctx.build(expr.expr)


def build_meta(expr: ir.Meta, ctx: CompilationContext) -> ast.Node:
    return ctx.build(expr.expr)


def build_cast(expr: ir.Cast, ctx: CompilationContext) -> ast.Node:
    return ctx.build(expr.expr)
