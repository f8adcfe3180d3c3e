"""Enum/Pattern handler — constructor lowering and parameter-binder recovery.

Two constructor strategies, chosen per enum:

* **idiomatic** — parameterless constructors are bare snake-cased atoms
  (``:none``), parameterized ones tagged tuples (``{:some, v}``);
* **tagged tuple** — every constructor is a tuple headed by its atom,
  including parameterless ones (``{:none}``), so all patterns share a shape.

The front-end frequently rewrites a structured match into a tag comparison
followed by raw "extract parameter N" expressions, losing the names the
programmer gave the binders. :func:`recover_bindings` scans a branch body for
those extraction sites so the rebuilt pattern can bind the right names.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field

from .. import ast, ir
from ..context import CompilationContext, ExtractionSite
from ..errors import InvariantViolation
from ..ir_walk import local_uses, unwrap, walk
from ..naming import atom_name, var_name

logger = logging.getLogger(__name__)


def uses_bare_atoms(enum: ir.EnumDecl, ctx: CompilationContext) -> bool:
    if enum.idiomatic is None:
        return ctx.config.idiomatic_enums_default
    return enum.idiomatic


def require_enum(name: str, ctx: CompilationContext) -> ir.EnumDecl:
    enum = ctx.lookup_enum(name)
    if enum is None:
        raise InvariantViolation(
            f"unknown enum {name}", node_kind="enum", scope=ctx.describe_scope()
        )
    return enum


def require_constructor(enum: ir.EnumDecl, name: str, ctx: CompilationContext) -> ir.EnumConstructor:
    ctor = enum.constructor(name)
    if ctor is None:
        raise InvariantViolation(
            f"enum {enum.name} has no constructor {name}",
            node_kind="enum",
            scope=ctx.describe_scope(),
        )
    return ctor


# ── constructor values and patterns ──────────────────────────────


def constructor_value(
    enum: ir.EnumDecl,
    ctor: ir.EnumConstructor,
    args: list[ast.Node],
    ctx: CompilationContext,
) -> ast.Node:
    tag = ast.atom(atom_name(ctor.name))
    if not ctor.params and uses_bare_atoms(enum, ctx):
        return tag
    return ast.tuple_of(tag, *args)


def constructor_pattern(
    enum: ir.EnumDecl,
    ctor: ir.EnumConstructor,
    params: list[ast.Pattern],
    ctx: CompilationContext,
) -> ast.Pattern:
    tag = ast.PLiteral(ast.atom(atom_name(ctor.name)))
    if not ctor.params and uses_bare_atoms(enum, ctx):
        return tag
    return ast.PTuple((tag, *params))


def constructor_function(
    enum: ir.EnumDecl, ctor: ir.EnumConstructor, ctx: CompilationContext
) -> ast.Node:
    """A parameterized constructor used as a first-class value."""
    names = [var_name(p) for p in ctor.params]
    body = constructor_value(enum, ctor, [ast.var(n) for n in names], ctx)
    return ast.fn(tuple(ast.PVar(n) for n in names), body)


def build_constructor_reference(expr: ir.FieldAccess, ctx: CompilationContext) -> ast.Node:
    enum = require_enum(expr.owner, ctx)
    ctor = require_constructor(enum, expr.field, ctx)
    if ctor.params:
        return constructor_function(enum, ctor, ctx)
    return constructor_value(enum, ctor, [], ctx)


def build_constructor_call(
    enum: ir.EnumDecl,
    ctor: ir.EnumConstructor,
    args: list[ir.Expr],
    ctx: CompilationContext,
) -> ast.Node:
    built = [ctx.build(a) for a in args]
    # Omitted trailing optional parameters
    built.extend(ast.nil() for _ in range(len(ctor.params) - len(built)))
    return constructor_value(enum, ctor, built, ctx)


# ── binder recovery ──────────────────────────────────────────────


def subject_key(subject: ir.Expr) -> str:
    """Structural identity of an enum subject, ignoring source positions."""
    subject = unwrap(subject)
    if isinstance(subject, ir.Local):
        return f"local:{subject.var.id}"
    return json.dumps(_strip_locations(subject.model_dump(mode="json")), sort_keys=True)


def _strip_locations(value):
    if isinstance(value, dict):
        return {k: _strip_locations(v) for k, v in value.items() if k != "location"}
    if isinstance(value, list):
        return [_strip_locations(v) for v in value]
    return value


@dataclass(frozen=True)
class RecoveredBinder:
    index: int
    var: ir.Var
    # Locals that merely copy the extracted value (``y = g``)
    aliases: tuple[ir.Var, ...] = ()

    def all_vars(self) -> tuple[ir.Var, ...]:
        return (self.var, *self.aliases)

    def preferred(self) -> ir.Var:
        """The user-written name when the extraction went through a temp."""
        if self.aliases and CompilationContext.is_infra_temp(self.var.name):
            return self.aliases[0]
        return self.var


@dataclass
class BindingRecovery:
    """Constructor-parameter index → recovered binder for one branch."""

    binders: dict[int, RecoveredBinder] = field(default_factory=dict)
    # Extraction sites used inline, with no local to name them
    orphan_indexes: set[int] = field(default_factory=set)


def _extraction(expr: ir.Expr | None, key: str, ctor: ir.EnumConstructor) -> ir.EnumParameter | None:
    expr = unwrap(expr)
    if (
        isinstance(expr, ir.EnumParameter)
        and expr.constructor == ctor.name
        and subject_key(expr.subject) == key
    ):
        return expr
    return None


def recover_bindings(
    body: ir.Expr | None, subject: ir.Expr, ctor: ir.EnumConstructor
) -> BindingRecovery:
    recovery = BindingRecovery()
    if body is None:
        return recovery
    key = subject_key(subject)
    binder_ids: dict[int, int] = {}
    declared_sites: set[int] = set()

    for e in walk(body):
        if not isinstance(e, ir.VarDecl):
            continue
        site = _extraction(e.init, key, ctor)
        if site is not None:
            declared_sites.add(id(unwrap(e.init)))
            existing = recovery.binders.get(site.index)
            if existing is None:
                recovery.binders[site.index] = RecoveredBinder(site.index, e.var)
            else:
                recovery.binders[site.index] = RecoveredBinder(
                    site.index, existing.var, existing.aliases + (e.var,)
                )
            binder_ids[e.var.id] = site.index
            continue
        init = unwrap(e.init)
        if isinstance(init, ir.Local) and init.var.id in binder_ids:
            index = binder_ids[init.var.id]
            existing = recovery.binders[index]
            recovery.binders[index] = RecoveredBinder(
                index, existing.var, existing.aliases + (e.var,)
            )
            binder_ids[e.var.id] = index

    for e in walk(body):
        if (
            isinstance(e, ir.EnumParameter)
            and id(e) not in declared_sites
            and _extraction(e, key, ctor) is not None
        ):
            recovery.orphan_indexes.add(e.index)
    return recovery


def _is_referenced(binder: RecoveredBinder, body: ir.Expr) -> bool:
    ids = {v.id for v in binder.all_vars()}
    uses = local_uses(body)
    # Alias initializers (``y = g``) read the binder without using it
    copies = Counter(
        unwrap(e.init).var.id
        for e in walk(body)
        if isinstance(e, ir.VarDecl)
        and e.var.id in ids
        and isinstance(unwrap(e.init), ir.Local)
    )
    return any(uses[i] - copies[i] > 0 for i in ids)


@dataclass(frozen=True)
class ClausePattern:
    """A rebuilt constructor pattern plus the registrations its body needs."""

    pattern: ast.Pattern
    binders: tuple[tuple[ir.Var, str], ...] = ()
    sites: tuple[tuple[ExtractionSite, str], ...] = ()


def clause_pattern(
    enum: ir.EnumDecl,
    ctor: ir.EnumConstructor,
    subject: ir.Expr,
    body: ir.Expr | None,
    ctx: CompilationContext,
) -> ClausePattern:
    """Pattern for one constructor arm, naming exactly the binders *body* uses."""
    recovery = recover_bindings(body, subject, ctor)
    key = subject_key(subject)
    params: list[ast.Pattern] = []
    binders: list[tuple[ir.Var, str]] = []
    sites: list[tuple[ExtractionSite, str]] = []
    for index, param_name in enumerate(ctor.params):
        site = (key, ctor.name, index)
        recovered = recovery.binders.get(index)
        if recovered is not None:
            name = var_name(recovered.preferred().name)
            used = body is not None and _is_referenced(recovered, body)
            if not used and ctx.config.strict_binders:
                params.append(ast.PWildcard())
            else:
                name = name if used else f"_{name.lstrip('_')}"
                params.append(ast.PVar(name))
            # Registered even when wildcarded so the extraction itself is elided
            binders.extend((v, name) for v in recovered.all_vars())
            sites.append((site, name))
        elif index in recovery.orphan_indexes:
            name = var_name(param_name)
            params.append(ast.PVar(name))
            sites.append((site, name))
        else:
            params.append(ast.PWildcard())
    if binders or sites:
        ctx.stats.record_rewrite("binder_recovery")
    return ClausePattern(
        constructor_pattern(enum, ctor, params, ctx), tuple(binders), tuple(sites)
    )


# ── IR node handlers ─────────────────────────────────────────────


def build_enum_parameter(expr: ir.EnumParameter, ctx: CompilationContext) -> ast.Node:
    site = (subject_key(expr.subject), expr.constructor, expr.index)
    name = ctx.lookup_extraction_site(site)
    if name is not None:
        return ast.var(name)
    logger.debug(
        "Unmatched extraction of %s.%s[%d]; using elem/2",
        expr.enum_name,
        expr.constructor,
        expr.index,
    )
    ctx.stats.record_fallback("enum_parameter_elem")
    return ast.local("elem", ctx.build(expr.subject), ast.integer(expr.index + 1))


def build_enum_index(expr: ir.EnumIndex, ctx: CompilationContext) -> ast.Node:
    """Tag read outside a recognized dispatch: map each constructor to its index."""
    enum = require_enum(expr.enum_name, ctx)
    subject = ctx.build(expr.subject)
    clauses = tuple(
        ast.CaseClause(
            constructor_pattern(enum, c, [ast.PWildcard() for _ in c.params], ctx),
            ast.integer(c.index),
        )
        for c in enum.constructors
    )
    ctx.stats.record_fallback("enum_index_case")
    return ast.Node(ast.Case(subject, clauses))
