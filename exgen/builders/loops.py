"""Loop builder — for/while lowering onto Enum iteration.

The target has no loops or mutation, so each loop becomes a fold whose
accumulator is exactly the set of outer variables the body rebinds:

* no state, no loop control → ``Enum.each``;
* state only → ``Enum.reduce`` with the result matched back onto the state;
* ``break``/``continue`` → ``Enum.reduce_while`` with each iteration wrapped
  in a ``try`` that catches the thrown sentinels.

Counter loops the front-end desugared into
``_g = a; _g1 = b; while (_g < _g1) { var i = _g++; ... }`` are recovered
as iteration over ``a..(b - 1)//1`` using the recorded temp initializers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .. import ast, constants, ir
from ..context import CompilationContext
from ..ir_walk import is_side_effect_free, loop_controls, references_any, statements, unwrap
from ._base import outer_rebinds, rebind_state, state_names, state_pattern, state_value, with_state
from .binops import exclusive_range

logger = logging.getLogger(__name__)

# control → (thrown sentinel, reduce_while tag)
_CONTROL_OUTCOMES: dict[type, tuple[str, str]] = {
    ir.Break: (constants.BREAK_ATOM, constants.LOOP_HALT_TAG),
    ir.Continue: (constants.CONTINUE_ATOM, constants.LOOP_CONTINUE_TAG),
}


@dataclass(frozen=True)
class LoopHeader:
    """What a loop iterates over, independent of its surface form."""

    var: ir.Var
    body: list[ir.Expr]
    # for-in loops
    iterable: ir.Expr | None = None
    # recovered counter loops
    start: ir.Expr | None = None
    end: ir.Expr | None = None
    consumed_temps: tuple[str, ...] = ()

    def body_block(self) -> ir.Block:
        return ir.Block(exprs=self.body)


def loop_header(
    stmt: ir.Expr, ctx: CompilationContext, pending: dict[int, ir.Expr] | None = None
) -> LoopHeader | None:
    stmt = unwrap(stmt)
    if isinstance(stmt, ir.For):
        return LoopHeader(stmt.var, statements(stmt.body), iterable=stmt.iterable)
    if isinstance(stmt, ir.While):
        return detect_counter_loop(stmt, ctx, pending)
    return None


def detect_counter_loop(
    expr: ir.While, ctx: CompilationContext, pending: dict[int, ir.Expr] | None = None
) -> LoopHeader | None:
    """``while (_g < bound) { var i = _g++; rest }`` with a recorded ``_g`` start.

    *pending* holds initializers (by var id) of temps declared in a statement
    window that has not been built yet.
    """
    if not expr.normal_while:
        return None
    cond = unwrap(expr.cond)
    if not (isinstance(cond, ir.Binop) and cond.op == ir.BinaryOp.LT):
        return None
    counter = unwrap(cond.left)
    if not (isinstance(counter, ir.Local) and ctx.is_infra_temp(counter.var.name)):
        return None
    counter_name = ctx.resolve_name(counter.var.id, counter.var.name)
    start = _temp_init(counter.var, counter_name, ctx, pending)
    if start is None:
        logger.debug("Counter %s has no recorded initializer", counter_name)
        return None

    body = statements(expr.body)
    if not body:
        return None
    first = unwrap(body[0])
    if not (isinstance(first, ir.VarDecl) and _is_post_increment(first.init, counter.var)):
        return None
    rest = body[1:]
    if references_any(rest, counter.var):
        return None

    consumed: list[str] = []
    if is_side_effect_free(start):
        consumed.append(counter_name)
    else:
        start = counter
    end = unwrap(cond.right)
    if isinstance(end, ir.Local) and ctx.is_infra_temp(end.var.name):
        bound_name = ctx.resolve_name(end.var.id, end.var.name)
        bound = _temp_init(end.var, bound_name, ctx, pending)
        if bound is not None and is_side_effect_free(bound) and not references_any(rest, end.var):
            end = bound
            consumed.append(bound_name)
    return LoopHeader(first.var, rest, start=start, end=end, consumed_temps=tuple(consumed))


def _temp_init(
    var: ir.Var, name: str, ctx: CompilationContext, pending: dict[int, ir.Expr] | None
) -> ir.Expr | None:
    if pending and var.id in pending:
        return pending[var.id]
    return ctx.lookup_infra_temp_init(name)


def _is_post_increment(expr: ir.Expr | None, var: ir.Var) -> bool:
    expr = unwrap(expr)
    return (
        isinstance(expr, ir.Unop)
        and expr.op == ir.UnaryOp.INCREMENT
        and expr.postfix
        and isinstance(unwrap(expr.operand), ir.Local)
        and unwrap(expr.operand).var.id == var.id
    )


def build_source(header: LoopHeader, ctx: CompilationContext) -> ast.Node:
    """The enumerable a loop header iterates; commits any consumed temps."""
    if header.iterable is None:
        for name in header.consumed_temps:
            ctx.consume_infra_temp(name)
        return exclusive_range(ctx.build(header.start), ctx.build(header.end))
    iterable = unwrap(header.iterable)
    if isinstance(iterable, ir.Binop) and iterable.op == ir.BinaryOp.INTERVAL:
        return exclusive_range(ctx.build(iterable.left), ctx.build(iterable.right))
    source = ctx.build(header.iterable)
    if header.iterable.type.kind == ir.TypeKind.MAP:
        return ast.remote("Map", "values", source)
    return source


# ── IR node handlers ─────────────────────────────────────────────


def build_for(expr: ir.For, ctx: CompilationContext) -> ast.Node:
    header = LoopHeader(expr.var, statements(expr.body), iterable=expr.iterable)
    return iterate(header, ctx)


def build_while(expr: ir.While, ctx: CompilationContext) -> ast.Node:
    header = detect_counter_loop(expr, ctx)
    if header is not None:
        ctx.stats.record_rewrite("counter_loop")
        return iterate(header, ctx)
    return _build_general_while(expr, ctx)


def iterate(header: LoopHeader, ctx: CompilationContext) -> ast.Node:
    body_ir = header.body_block()
    names = state_names(outer_rebinds([body_ir], ctx), ctx)
    controls = loop_controls(body_ir)
    source = build_source(header, ctx)
    with ctx.scope(), ctx.loop(names):
        binder = ctx.declare(header.var)
        body = ctx.build(body_ir)
    item = ast.PVar(binder)

    if controls:
        state = _state_or_ok(names)
        step = _catching_controls(
            ast.block(_statements(body) + [_tagged(constants.LOOP_CONTINUE_TAG, state)]),
            controls,
            names,
        )
        loop = ast.remote(
            "Enum", "reduce_while", source, state, ast.fn((item, _state_binder(names)), step)
        )
    elif names:
        loop = ast.remote(
            "Enum",
            "reduce",
            source,
            state_value(names),
            ast.fn((item, state_pattern(names)), with_state(body, names)),
        )
    else:
        loop = ast.remote("Enum", "each", source, ast.fn((item,), body))
    return rebind_state(names, loop) if names else loop


def _build_general_while(expr: ir.While, ctx: CompilationContext) -> ast.Node:
    names = state_names(outer_rebinds([expr.cond, expr.body], ctx), ctx)
    controls = loop_controls(expr.body)
    state = _state_or_ok(names)
    with ctx.scope(), ctx.loop(names):
        cond = ctx.build(expr.cond)
        body = ctx.build(expr.body)
    proceed = _tagged(constants.LOOP_CONTINUE_TAG, state)
    halt = _tagged(constants.LOOP_HALT_TAG, state)

    if expr.normal_while:
        run = ast.block(_statements(body) + [proceed])
        if controls:
            run = _catching_controls(run, controls, names)
        step = ast.Node(ast.If(cond, run, halt))
    else:
        check = ast.Node(ast.If(cond, proceed, halt))
        step = ast.block(_statements(body) + [check])
        if controls:
            step = _catching_controls(step, controls, names)

    counter = ast.remote(
        "Stream",
        "iterate",
        ast.integer(0),
        ast.fn(
            (ast.PVar(constants.ITERATION_COUNTER),),
            ast.binop("+", ast.var(constants.ITERATION_COUNTER), ast.integer(1)),
        ),
    )
    loop = ast.remote(
        "Enum",
        "reduce_while",
        counter,
        state,
        ast.fn((ast.PWildcard(), _state_binder(names)), step),
    )
    ctx.stats.record_rewrite("while_reduce")
    return rebind_state(names, loop) if names else loop


def _statements(node: ast.Node) -> list[ast.Node]:
    if ast.is_empty_block(node):
        return []
    return ast.flatten([node])


def _state_or_ok(names: list[str]) -> ast.Node:
    return state_value(names) if names else ast.atom(constants.LOOP_NO_STATE_ATOM)


def _state_binder(names: list[str]) -> ast.Pattern:
    return state_pattern(names) if names else ast.PWildcard()


def _tagged(tag: str, state: ast.Node) -> ast.Node:
    return ast.tuple_of(ast.atom(tag), state)


def _catching_controls(body: ast.Node, controls: set[type], names: list[str]) -> ast.Node:
    """Wrap one iteration so thrown break/continue sentinels end it.

    With loop state the sentinel carries the state current at the throw, so
    rebindings made earlier in the interrupted iteration survive.
    """
    clauses = []
    for control, (sentinel, tag) in _CONTROL_OUTCOMES.items():
        if control not in controls:
            continue
        if names:
            carried = constants.LOOP_STATE_BINDER
            pattern = ast.PTuple((ast.PLiteral(ast.atom(sentinel)), ast.PVar(carried)))
            clauses.append(ast.CatchClause("throw", pattern, _tagged(tag, ast.var(carried))))
        else:
            clauses.append(
                ast.CatchClause(
                    "throw",
                    ast.PLiteral(ast.atom(sentinel)),
                    _tagged(tag, ast.atom(constants.LOOP_NO_STATE_ATOM)),
                )
            )
    return ast.Node(ast.Try(body, (), tuple(clauses)))
