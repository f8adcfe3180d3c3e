"""Pure queries over typed IR trees (traversal, variable usage, control flow)."""

from __future__ import annotations

from collections import Counter
from typing import Callable, Iterator

from pydantic import BaseModel

from .ir import (
    ArrayDecl,
    Binop,
    BinaryOp,
    Block,
    Break,
    Call,
    Cast,
    Const,
    Continue,
    Expr,
    ExprBase,
    FieldAccess,
    FieldAccessKind,
    For,
    Function,
    Local,
    Meta,
    ObjectDecl,
    Parenthesis,
    Return,
    TypeKind,
    UnaryOp,
    Unop,
    Var,
    While,
)


def children(expr: BaseModel) -> Iterator[ExprBase]:
    """Yield the direct sub-expressions of *expr* in evaluation order."""
    for name in type(expr).model_fields:
        value = getattr(expr, name)
        yield from _expr_values(value)


def _expr_values(value) -> Iterator[ExprBase]:
    if isinstance(value, ExprBase):
        yield value
    elif isinstance(value, list):
        for item in value:
            yield from _expr_values(item)
    elif isinstance(value, BaseModel) and not isinstance(value, Var):
        # SwitchCase / Catch / ObjectField / FunctionArg wrappers
        for name in type(value).model_fields:
            yield from _expr_values(getattr(value, name))


def walk(expr: BaseModel, *, into_functions: bool = True) -> Iterator[ExprBase]:
    """Pre-order traversal of *expr* (inclusive)."""
    stack: list[BaseModel] = [expr]
    while stack:
        current = stack.pop()
        if isinstance(current, ExprBase):
            yield current
            if isinstance(current, Function) and not into_functions and current is not expr:
                continue
        stack.extend(reversed(list(children(current))))


def unwrap(expr: Expr | None) -> Expr | None:
    """Strip parentheses, casts, metadata and single-statement blocks."""
    while True:
        if isinstance(expr, (Parenthesis, Meta, Cast)):
            expr = expr.expr
        elif isinstance(expr, Block) and len(expr.exprs) == 1:
            expr = expr.exprs[0]
        else:
            return expr


def statements(expr: Expr | None) -> list[Expr]:
    """View *expr* as a statement list."""
    if expr is None:
        return []
    expr = unwrap(expr)
    if isinstance(expr, Block):
        return list(expr.exprs)
    return [expr]


def local_uses(expr: BaseModel) -> Counter:
    """Count ``Local`` references per var id (declarations excluded)."""
    return Counter(e.var.id for e in walk(expr) if isinstance(e, Local))


def references(expr: BaseModel, var: Var) -> bool:
    return any(isinstance(e, Local) and e.var.id == var.id for e in walk(expr))


def references_any(exprs: list[Expr], var: Var) -> bool:
    return any(references(e, var) for e in exprs)


def assigned_vars(expr: BaseModel) -> list[Var]:
    """Vars rebound by assignment or ++/-- inside *expr*, first-assignment order.

    Nested function literals are skipped since their rebinding never escapes.
    """
    seen: dict[int, Var] = {}
    for e in walk(expr, into_functions=False):
        target = None
        if isinstance(e, Binop) and e.op in (BinaryOp.ASSIGN, BinaryOp.ASSIGN_OP):
            target = unwrap(e.left)
        elif isinstance(e, Unop) and e.op in (UnaryOp.INCREMENT, UnaryOp.DECREMENT):
            target = unwrap(e.operand)
        elif _is_mutating_method_call(e):
            target = unwrap(e.callee.obj)
        if isinstance(target, Local) and target.var.id not in seen:
            seen[target.var.id] = target.var
    return list(seen.values())


_MUTATING_METHODS = frozenset(
    {"push", "pop", "shift", "unshift", "insert", "remove", "reverse", "sort", "set", "splice"}
)


def _is_mutating_method_call(expr: ExprBase) -> bool:
    return (
        isinstance(expr, Call)
        and isinstance(expr.callee, FieldAccess)
        and expr.callee.access == FieldAccessKind.INSTANCE
        and expr.callee.field in _MUTATING_METHODS
        and (expr.callee.obj.type.is_array() or expr.callee.obj.type.kind == TypeKind.MAP)
    )


def contains(expr: BaseModel, predicate: Callable[[ExprBase], bool]) -> bool:
    return any(predicate(e) for e in walk(expr))


def loop_controls(expr: BaseModel) -> set[type]:
    """Break/Continue classes in *expr* that target the enclosing loop."""
    found: set[type] = set()
    stack: list[BaseModel] = [expr]
    while stack:
        current = stack.pop()
        if isinstance(current, (Break, Continue)):
            found.add(type(current))
            continue
        if current is not expr and isinstance(current, (While, For, Function)):
            continue
        stack.extend(children(current))
    return found


def ends_with_return(expr: Expr | None) -> bool:
    stmts = statements(expr)
    return bool(stmts) and isinstance(unwrap(stmts[-1]), Return)


def is_side_effect_free(expr: Expr | None) -> bool:
    """Constants, locals and pure operators over them."""
    expr = unwrap(expr)
    if isinstance(expr, (Const, Local)):
        return True
    if isinstance(expr, Binop) and expr.op not in (BinaryOp.ASSIGN, BinaryOp.ASSIGN_OP):
        return is_side_effect_free(expr.left) and is_side_effect_free(expr.right)
    if isinstance(expr, Unop) and expr.op not in (UnaryOp.INCREMENT, UnaryOp.DECREMENT):
        return is_side_effect_free(expr.operand)
    if isinstance(expr, ArrayDecl):
        return all(is_side_effect_free(e) for e in expr.elements)
    if isinstance(expr, ObjectDecl):
        return all(is_side_effect_free(f.expr) for f in expr.fields)
    return False
