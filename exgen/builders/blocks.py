"""Block/statement builder — prioritized idiom detection over statement windows.

Each detector inspects a whole statement list and returns a closed pattern
record or ``None``; detectors never touch the context, so a miss leaves it
exactly as it was. The first match wins and is rewritten by the handler
registered for its record type. When nothing matches, statements are built
one by one (splicing any embedded comprehension runs) and a final repair
pass tidies infrastructure-temp bindings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

from .. import ast, constants, ir
from ..context import CompilationContext
from ..ir_walk import ends_with_return, is_side_effect_free, local_uses, references, references_any, unwrap
from ._base import build_branch
from .binops import null_coalesce
from .loops import LoopHeader, build_source, loop_header

logger = logging.getLogger(__name__)


# ── detected patterns ────────────────────────────────────────────


@dataclass(frozen=True)
class MapLiteralPattern:
    pairs: tuple[tuple[ir.Expr, ir.Expr], ...]


@dataclass(frozen=True)
class NullCoalescePattern:
    init: ir.Expr
    default: ir.Expr


@dataclass(frozen=True)
class ListLiteralPattern:
    elements: tuple[ir.Expr, ...]


@dataclass(frozen=True)
class ComprehensionPattern:
    container: ir.Var
    header: LoopHeader
    element: ir.Expr
    filter: ir.Expr | None = None
    # Counter-loop temps declared between the container and the loop
    temps: tuple[ir.VarDecl, ...] = ()


@dataclass(frozen=True)
class NestedListPattern:
    rows: tuple[tuple[ir.Expr, ...], ...]


DetectedPattern = Union[
    MapLiteralPattern,
    NullCoalescePattern,
    ListLiteralPattern,
    ComprehensionPattern,
    NestedListPattern,
]

Detector = Callable[[list[ir.Expr], CompilationContext], "DetectedPattern | None"]


# ── statement shape helpers ──────────────────────────────────────


def _declared_empty(stmt: ir.Expr, init_check: Callable[[ir.Expr | None], bool]) -> ir.Var | None:
    stmt = unwrap(stmt)
    if isinstance(stmt, ir.VarDecl) and init_check(unwrap(stmt.init)):
        return stmt.var
    return None


def _is_empty_map(expr: ir.Expr | None) -> bool:
    return isinstance(expr, ir.New) and expr.class_name in constants.MAP_CLASS_NAMES and not expr.args


def _is_empty_list(expr: ir.Expr | None) -> bool:
    return isinstance(expr, ir.ArrayDecl) and not expr.elements


def _is_trailing_ref(stmt: ir.Expr, var: ir.Var) -> bool:
    stmt = unwrap(stmt)
    if isinstance(stmt, ir.Return):
        stmt = unwrap(stmt.value)
    return isinstance(stmt, ir.Local) and stmt.var.id == var.id


def _method_call_on(stmt: ir.Expr, var: ir.Var, method: str) -> list[ir.Expr] | None:
    stmt = unwrap(stmt)
    if not (isinstance(stmt, ir.Call) and isinstance(unwrap(stmt.callee), ir.FieldAccess)):
        return None
    callee = unwrap(stmt.callee)
    target = unwrap(callee.obj)
    if callee.field != method or not (isinstance(target, ir.Local) and target.var.id == var.id):
        return None
    return list(stmt.args)


def _map_insert(stmt: ir.Expr, var: ir.Var) -> tuple[ir.Expr, ir.Expr] | None:
    args = _method_call_on(stmt, var, constants.MAP_INSERT_METHOD)
    if args is not None:
        return (args[0], args[1]) if len(args) == 2 else None
    stmt = unwrap(stmt)
    if isinstance(stmt, ir.Binop) and stmt.op == ir.BinaryOp.ASSIGN:
        target = unwrap(stmt.left)
        if isinstance(target, ir.ArrayAccess) and _is_trailing_ref(target.obj, var):
            return target.index, stmt.right
    return None


def _appended(stmt: ir.Expr, var: ir.Var) -> list[ir.Expr] | None:
    """Elements appended to *var* by ``l.push(e)``, ``l = l.concat([..])`` or ``l = l + [..]``."""
    args = _method_call_on(stmt, var, "push")
    if args is not None:
        return args if len(args) == 1 else None
    stmt = unwrap(stmt)
    if not (isinstance(stmt, ir.Binop) and stmt.op == ir.BinaryOp.ASSIGN):
        return None
    if not _is_trailing_ref(stmt.left, var):
        return None
    value = unwrap(stmt.right)
    if isinstance(value, ir.Binop) and value.op == ir.BinaryOp.ADD and _is_trailing_ref(value.left, var):
        appended = unwrap(value.right)
    else:
        concat_args = _method_call_on(value, var, "concat")
        appended = unwrap(concat_args[0]) if concat_args and len(concat_args) == 1 else None
    if isinstance(appended, ir.ArrayDecl):
        return list(appended.elements)
    return None


# ── detectors ────────────────────────────────────────────────────


def detect_map_literal(stmts: list[ir.Expr], ctx: CompilationContext) -> MapLiteralPattern | None:
    """``m = new Map(); m.set(k, v)...; m`` (simple temps for keys/values inlined)."""
    if len(stmts) < 3:
        return None
    var = _declared_empty(stmts[0], _is_empty_map)
    if var is None or not _is_trailing_ref(stmts[-1], var):
        return None
    temps: dict[int, ir.Expr] = {}
    pairs: list[tuple[ir.Expr, ir.Expr]] = []
    for stmt in stmts[1:-1]:
        insert = _map_insert(stmt, var)
        if insert is not None:
            key, value = insert
            if references(key, var) or references(value, var):
                return None
            pairs.append((_inline(key, temps), _inline(value, temps)))
            continue
        decl = unwrap(stmt)
        if isinstance(decl, ir.VarDecl) and decl.init is not None and is_side_effect_free(decl.init):
            temps[decl.var.id] = decl.init
            continue
        return None
    if not pairs:
        return None
    # Every temp must have been consumed by exactly one insert
    uses = local_uses(ir.Block(exprs=[e for pair in pairs for e in pair]))
    declared = [e.var.id for e in map(unwrap, stmts[1:-1]) if isinstance(e, ir.VarDecl)]
    if temps or any(uses[var_id] for var_id in declared):
        return None
    return MapLiteralPattern(tuple(pairs))


def _inline(expr: ir.Expr, temps: dict[int, ir.Expr]) -> ir.Expr:
    bare = unwrap(expr)
    if isinstance(bare, ir.Local) and bare.var.id in temps:
        return temps.pop(bare.var.id)
    return expr


def detect_null_coalesce(stmts: list[ir.Expr], ctx: CompilationContext) -> NullCoalescePattern | None:
    """``t = init; if (t == null) default else t`` (either comparison orientation)."""
    if len(stmts) != 2 or not ctx.config.inline_null_coalescing:
        return None
    decl = unwrap(stmts[0])
    branch = unwrap(stmts[1])
    if not (isinstance(decl, ir.VarDecl) and decl.init is not None and isinstance(branch, ir.If)):
        return None
    if branch.else_ is None:
        return None
    cond = unwrap(branch.cond)
    if not (isinstance(cond, ir.Binop) and cond.op in (ir.BinaryOp.EQ, ir.BinaryOp.NOT_EQ)):
        return None
    operands = (unwrap(cond.left), unwrap(cond.right))
    is_null = [isinstance(o, ir.Const) and o.const_kind == ir.ConstKind.NULL for o in operands]
    is_temp = [isinstance(o, ir.Local) and o.var.id == decl.var.id for o in operands]
    if not ((is_null[0] and is_temp[1]) or (is_null[1] and is_temp[0])):
        return None
    if cond.op == ir.BinaryOp.EQ:
        default, passthrough = branch.then, branch.else_
    else:
        passthrough, default = branch.then, branch.else_
    if not _is_trailing_ref(passthrough, decl.var) or references(default, decl.var):
        return None
    return NullCoalescePattern(decl.init, default)


def detect_list_literal(stmts: list[ir.Expr], ctx: CompilationContext) -> ListLiteralPattern | None:
    """``l = []; l.push(a); l = l.concat([b]); l`` → ``[a, b]``."""
    if len(stmts) < 3:
        return None
    var = _declared_empty(stmts[0], _is_empty_list)
    if var is None or not _is_trailing_ref(stmts[-1], var):
        return None
    elements: list[ir.Expr] = []
    for stmt in stmts[1:-1]:
        appended = _appended(stmt, var)
        if appended is None or references_any(appended, var):
            return None
        elements.extend(appended)
    return ListLiteralPattern(tuple(elements))


def match_generator_run(
    stmts: list[ir.Expr], start: int, ctx: CompilationContext
) -> tuple[ComprehensionPattern, int] | None:
    """``l = []; [counter temps]; loop { [if (c)] l.push(e) }`` starting at *start*.

    Returns the pattern and the index of the loop statement.
    """
    if not ctx.config.emit_comprehensions:
        return None
    var = _declared_empty(stmts[start], _is_empty_list)
    if var is None:
        return None
    temps: list[ir.VarDecl] = []
    pending: dict[int, ir.Expr] = {}
    index = start + 1
    while index < len(stmts):
        decl = unwrap(stmts[index])
        if not (isinstance(decl, ir.VarDecl) and ctx.is_infra_temp(decl.var.name) and decl.init is not None):
            break
        temps.append(decl)
        pending[decl.var.id] = decl.init
        index += 1
    if index >= len(stmts):
        return None
    header = loop_header(stmts[index], ctx, pending)
    if header is None or len(header.body) != 1:
        return None
    if header.iterable is not None and references(header.iterable, var):
        return None
    body = unwrap(header.body[0])
    condition = None
    if isinstance(body, ir.If) and body.else_ is None:
        condition = body.cond
        body = unwrap(body.then)
    appended = _appended(body, var)
    if appended is None or len(appended) != 1 or references(appended[0], var):
        return None
    if condition is not None and references(condition, var):
        return None
    pattern = ComprehensionPattern(var, header, appended[0], condition, tuple(temps))
    return pattern, index


def detect_comprehension(stmts: list[ir.Expr], ctx: CompilationContext) -> ComprehensionPattern | None:
    if len(stmts) < 3:
        return None
    matched = match_generator_run(stmts, 0, ctx)
    if matched is None:
        return None
    pattern, loop_index = matched
    if loop_index != len(stmts) - 2 or not _is_trailing_ref(stmts[-1], pattern.container):
        return None
    return pattern


def detect_nested_list(stmts: list[ir.Expr], ctx: CompilationContext) -> NestedListPattern | None:
    """Rows built in a shared temp that is reset to ``[]`` between pushes into the outer list."""
    if len(stmts) < 4:
        return None
    outer = _declared_empty(stmts[0], _is_empty_list)
    if outer is None or not _is_trailing_ref(stmts[-1], outer):
        return None
    rows: list[tuple[ir.Expr, ...]] = []
    inner: ir.Var | None = None
    row: list[ir.Expr] | None = None
    for stmt in stmts[1:-1]:
        bare = unwrap(stmt)
        reset = _row_reset(bare, inner)
        if reset is not None:
            inner, row = reset, []
            continue
        if inner is None:
            return None
        pushed = _method_call_on(bare, outer, "push")
        if pushed is not None:
            if row is None or len(pushed) != 1 or not _is_trailing_ref(pushed[0], inner):
                return None
            rows.append(tuple(row))
            row = None
            continue
        appended = _appended(bare, inner)
        if appended is None or row is None:
            return None
        if references_any(appended, inner) or references_any(appended, outer):
            return None
        row.extend(appended)
    if not rows or row is not None:
        return None
    return NestedListPattern(tuple(rows))


def _row_reset(stmt: ir.Expr, inner: ir.Var | None) -> ir.Var | None:
    if isinstance(stmt, ir.VarDecl) and _is_empty_list(unwrap(stmt.init)):
        return stmt.var if inner is None or inner.id == stmt.var.id else None
    if (
        inner is not None
        and isinstance(stmt, ir.Binop)
        and stmt.op == ir.BinaryOp.ASSIGN
        and _is_trailing_ref(stmt.left, inner)
        and _is_empty_list(unwrap(stmt.right))
    ):
        return inner
    return None


DETECTORS: tuple[Detector, ...] = (
    detect_map_literal,
    detect_null_coalesce,
    detect_list_literal,
    detect_comprehension,
    detect_nested_list,
)


def detect(stmts: list[ir.Expr], ctx: CompilationContext) -> DetectedPattern | None:
    """First detector to recognize *stmts*, or None."""
    for detector in DETECTORS:
        found = detector(stmts, ctx)
        if found is not None:
            return found
    return None


# ── rewrites ─────────────────────────────────────────────────────


def _rewrite_map_literal(pattern: MapLiteralPattern, ctx: CompilationContext) -> ast.Node:
    pairs = tuple((ctx.build(k), ctx.build(v)) for k, v in pattern.pairs)
    return ast.Node(ast.MapLit(pairs))


def _rewrite_null_coalesce(pattern: NullCoalescePattern, ctx: CompilationContext) -> ast.Node:
    value = ctx.build(pattern.init)
    return null_coalesce(value, ctx.build(pattern.default), ctx)


def _rewrite_list_literal(pattern: ListLiteralPattern, ctx: CompilationContext) -> ast.Node:
    return ast.Node(ast.ListLit(tuple(ctx.build(e) for e in pattern.elements)))


def build_comprehension(pattern: ComprehensionPattern, ctx: CompilationContext) -> list[ast.Node]:
    """Temp bindings the comprehension still reads, then the comprehension itself."""
    nodes = [ctx.build(decl) for decl in pattern.temps]
    source = build_source(pattern.header, ctx)
    with ctx.scope():
        binder = ctx.declare(pattern.header.var)
        filters = (ctx.build(pattern.filter),) if pattern.filter is not None else ()
        body = ctx.build(pattern.element)
    generator = ast.Generator(ast.PVar(binder), source)
    nodes.append(ast.Node(ast.Comprehension((generator,), body, filters)))
    return repair(nodes, ctx)


def _rewrite_comprehension(pattern: ComprehensionPattern, ctx: CompilationContext) -> ast.Node:
    nodes = build_comprehension(pattern, ctx)
    return nodes[0] if len(nodes) == 1 else ast.block(nodes)


def _rewrite_nested_list(pattern: NestedListPattern, ctx: CompilationContext) -> ast.Node:
    rows = tuple(
        ast.Node(ast.ListLit(tuple(ctx.build(e) for e in row))) for row in pattern.rows
    )
    return ast.Node(ast.ListLit(rows))


_REWRITES: dict[type, Callable] = {
    MapLiteralPattern: _rewrite_map_literal,
    NullCoalescePattern: _rewrite_null_coalesce,
    ListLiteralPattern: _rewrite_list_literal,
    ComprehensionPattern: _rewrite_comprehension,
    NestedListPattern: _rewrite_nested_list,
}

_REWRITE_NAMES: dict[type, str] = {
    MapLiteralPattern: "map_literal",
    NullCoalescePattern: "null_coalescing_temp",
    ListLiteralPattern: "list_literal",
    ComprehensionPattern: "comprehension",
    NestedListPattern: "nested_list_literal",
}


# ── entry points ─────────────────────────────────────────────────


def build_block(expr: ir.Block, ctx: CompilationContext) -> ast.Node:
    if not expr.exprs:
        return ast.EMPTY_BLOCK
    with ctx.scope():
        return build_statements(list(expr.exprs), ctx)


def build_statements(stmts: list[ir.Expr], ctx: CompilationContext) -> ast.Node:
    if not stmts:
        return ast.EMPTY_BLOCK
    stmts = [_discarding_value(s) for s in stmts]
    if len(stmts) == 1:
        return ctx.build(stmts[0])
    found = detect(stmts, ctx)
    if found is not None:
        ctx.stats.record_rewrite(_REWRITE_NAMES[type(found)])
        return _REWRITES[type(found)](found, ctx)
    return _assemble(stmts, ctx)


def _discarding_value(stmt: ir.Expr) -> ir.Expr:
    """A statement-level postfix ++/-- rebinds exactly like its prefix form."""
    bare = unwrap(stmt)
    if (
        isinstance(bare, ir.Unop)
        and bare.postfix
        and bare.op in (ir.UnaryOp.INCREMENT, ir.UnaryOp.DECREMENT)
    ):
        return bare.model_copy(update={"postfix": False})
    return stmt


def _assemble(stmts: list[ir.Expr], ctx: CompilationContext) -> ast.Node:
    """Generic sequential block, splicing embedded comprehension runs."""
    nodes: list[ast.Node] = []
    index = 0
    while index < len(stmts):
        stmt = stmts[index]
        bare = unwrap(stmt)
        last = index == len(stmts) - 1

        embedded = match_generator_run(stmts, index, ctx)
        if embedded is not None:
            pattern, loop_index = embedded
            ctx.stats.record_rewrite("embedded_comprehension")
            built = build_comprehension(pattern, ctx)
            name = ctx.declare(pattern.container)
            nodes.extend(built[:-1])
            nodes.append(ast.match(ast.PVar(name), built[-1]))
            index = loop_index + 1
            continue

        if isinstance(bare, ir.If) and bare.else_ is None and not last and ends_with_return(bare.then):
            # Early-return guard: the rest of the block becomes the else branch
            condition = ctx.build(bare.cond)
            then = build_branch(bare.then, ctx)
            rest = ctx.with_scope((), lambda: build_statements(stmts[index + 1 :], ctx))
            nodes.append(ast.Node(ast.If(condition, then, rest)))
            ctx.stats.record_rewrite("early_return")
            break

        nodes.append(ctx.build(stmt))
        if isinstance(bare, ir.Return) and not last:
            logger.debug("Dropping %d unreachable statements after return", len(stmts) - index - 1)
            break
        index += 1

    ctx.stats.record_fallback("generic_block")
    nodes = repair(ast.flatten(nodes), ctx)
    if not nodes:
        return ast.EMPTY_BLOCK
    return nodes[0] if len(nodes) == 1 else ast.block(nodes)


# ── repair pass ──────────────────────────────────────────────────


def _binding_name(node: ast.Node) -> str | None:
    if isinstance(node.kind, ast.Match) and isinstance(node.kind.pattern, ast.PVar):
        return node.kind.pattern.name
    return None


def _names_after(nodes: list[ast.Node], index: int) -> set[str]:
    names: set[str] = set()
    for node in nodes[index + 1 :]:
        names |= ast.referenced_names(node)
    return names


def repair(nodes: list[ast.Node], ctx: CompilationContext) -> list[ast.Node]:
    """Tidy infrastructure-temp bindings in an assembled statement list.

    * ``tmp = v`` followed by ``case tmp`` merges into ``case v`` when the
      case subject is the temp's only use;
    * a temp binding whose initializer was inlined elsewhere is dropped once
      nothing reads it.
    """
    result: list[ast.Node] = []
    index = 0
    while index < len(nodes):
        node = nodes[index]
        name = _binding_name(node) if node.metadata.infra_temp else None
        if name is not None and index + 1 < len(nodes):
            merged = _merge_into_case(node, nodes[index + 1], name, nodes, index)
            if merged is not None:
                result.append(merged)
                index += 2
                continue
        if (
            name is not None
            and ctx.is_consumed_infra_temp(name)
            and name not in _names_after(nodes, index)
        ):
            logger.debug("Dropping consumed infrastructure temp %s", name)
            index += 1
            continue
        result.append(node)
        index += 1
    return result


def _merge_into_case(
    binding: ast.Node, following: ast.Node, name: str, nodes: list[ast.Node], index: int
) -> ast.Node | None:
    case = following.kind
    if not isinstance(case, ast.Case):
        return None
    if not (isinstance(case.subject.kind, ast.Var) and case.subject.kind.name == name):
        return None
    in_clauses = set()
    for clause in case.clauses:
        in_clauses |= ast.referenced_names(clause.body)
        if clause.guard is not None:
            in_clauses |= ast.referenced_names(clause.guard)
    if name in in_clauses or name in _names_after(nodes, index + 1):
        return None
    merged = ast.Case(binding.kind.value, case.clauses)
    return ast.Node(merged, following.metadata, following.position)
