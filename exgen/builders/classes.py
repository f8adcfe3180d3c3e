"""Class/module builder — one ``defmodule`` per class or enum.

A class becomes a struct module: instance fields are struct keys, the
constructor is ``new/N`` returning the struct, instance methods take the
struct as their first argument and static fields are 0-arity functions.
Every function body is built in a fresh top-level scope.
"""

from __future__ import annotations

import logging

from .. import ast, constants, ir
from ..context import CompilationContext
from ..ir_walk import contains, references
from ..naming import function_name, var_name
from . import enums
from .binops import null_coalesce
from .variables import method_target_name

logger = logging.getLogger(__name__)

EXCEPTION_MESSAGE_FIELD = "message"


def build_class(cls: ir.ClassDecl, ctx: CompilationContext) -> ast.Node:
    module = ctx.module_for(cls.qualified_name)
    body: list[ast.Node] = []
    with ctx.function_scope(cls):
        struct = _struct_definition(cls, ctx)
        getters = [_static_getter(cls, f, ctx) for f in cls.fields if f.is_static]
    if struct is not None:
        body.append(struct)
    body.extend(getters)
    if cls.constructor is not None:
        body.append(_constructor(cls, cls.constructor, module, ctx))
    for method in cls.methods:
        body.append(_method(cls, method, ctx))
    ctx.stats.modules_built += 1
    logger.info("Built module %s (%d definitions)", module, len(body))
    return ast.Node(ast.DefModule(module, tuple(body)))


def _struct_definition(cls: ir.ClassDecl, ctx: CompilationContext) -> ast.Node | None:
    fields = [
        (function_name(f.name), ctx.build(f.init) if f.init is not None else ast.nil())
        for f in cls.fields
        if not f.is_static
    ]
    if cls.is_exception and not any(name == EXCEPTION_MESSAGE_FIELD for name, _ in fields):
        fields.insert(0, (EXCEPTION_MESSAGE_FIELD, ast.string("")))
    if not fields and cls.constructor is None and not cls.is_exception:
        return None
    return ast.Node(ast.DefStruct(tuple(fields), exception=cls.is_exception))


def _static_getter(cls: ir.ClassDecl, field: ir.FieldDecl, ctx: CompilationContext) -> ast.Node:
    name = function_name(field.name)
    value = ctx.build(field.init) if field.init is not None else ast.nil()
    if field.is_mutable:
        # Writes go through Process.put with the same key
        key = ast.tuple_of(ast.Node(ast.Alias(ctx.module_for(cls.qualified_name))), ast.atom(name))
        value = ast.remote(constants.STATIC_STATE_MODULE, "get", key, value)
    return ast.Node(ast.Def(name, (), value))


def _constructor(
    cls: ir.ClassDecl, ctor: ir.FunctionDecl, module: str, ctx: CompilationContext
) -> ast.Node:
    receiver = constants.RECEIVER_BINDER
    with ctx.function_scope(cls, ctor, receiver):
        params, prelude = _parameters(ctor.args, ctor.body, ctx)
        body = ctx.build(ctor.body) if ctor.body is not None else ast.EMPTY_BLOCK
    start = ast.match(ast.PVar(receiver), ast.Node(ast.StructLit(module)))
    nodes = [start, *prelude, *_body_statements(body), ast.var(receiver)]
    ctx.stats.functions_built += 1
    return ast.Node(ast.Def("new", tuple(params), ast.block(nodes)))


def _method(cls: ir.ClassDecl, method: ir.FunctionDecl, ctx: CompilationContext) -> ast.Node:
    receiver = None if method.is_static else constants.RECEIVER_BINDER
    with ctx.function_scope(cls, method, receiver):
        params, prelude = _parameters(method.args, method.body, ctx)
        body = ctx.build(method.body) if method.body is not None else ast.nil()
    if receiver is not None:
        used = method.body is not None and contains(method.body, _is_receiver)
        params.insert(0, ast.PVar(receiver if used else f"_{receiver}"))
    if prelude:
        body = ast.block([*prelude, *_body_statements(body)])
    ctx.stats.functions_built += 1
    logger.debug("Built %s.%s/%d", cls.name, method.name, len(params))
    return ast.Node(
        ast.Def(method_target_name(method), tuple(params), body, private=method.is_private)
    )


def _is_receiver(expr: ir.ExprBase) -> bool:
    return isinstance(expr, ir.Const) and expr.const_kind in (ir.ConstKind.THIS, ir.ConstKind.SUPER)


def _body_statements(body: ast.Node) -> list[ast.Node]:
    if ast.is_empty_block(body):
        return []
    return ast.flatten([body])


def _parameters(
    args: list[ir.FunctionArg], body: ir.Expr | None, ctx: CompilationContext
) -> tuple[list[ast.Pattern], list[ast.Node]]:
    """Declare *args* in the current scope.

    Returns the parameter patterns and the statements that substitute
    defaults for omitted optional arguments (passed as nil).
    """
    params: list[ast.Pattern] = []
    prelude: list[ast.Node] = []
    for arg in args:
        name = ctx.declare(arg.var)
        if body is not None and not references(body, arg.var):
            params.append(ast.PVar(f"_{name.lstrip('_')}"))
            continue
        params.append(ast.PVar(name))
        if arg.default is not None:
            value = null_coalesce(ast.var(name), ctx.build(arg.default), ctx)
            prelude.append(ast.match(ast.PVar(name), value))
    return params, prelude


# ── enums ────────────────────────────────────────────────────────


def build_enum_module(enum: ir.EnumDecl, ctx: CompilationContext) -> ast.Node:
    """Constructor functions returning atoms or tagged tuples."""
    path = f"{enum.module}.{enum.name}" if enum.module else enum.name
    module = ctx.module_for(path)
    definitions = []
    for ctor in sorted(enum.constructors, key=lambda c: c.index):
        names = [var_name(p) for p in ctor.params]
        value = enums.constructor_value(enum, ctor, [ast.var(n) for n in names], ctx)
        params = tuple(ast.PVar(n) for n in names)
        definitions.append(ast.Node(ast.Def(function_name(ctor.name), params, value)))
        ctx.stats.functions_built += 1
    ctx.stats.modules_built += 1
    return ast.Node(ast.DefModule(module, tuple(definitions)))


# ── anonymous functions ──────────────────────────────────────────


def build_function_literal(expr: ir.Function, ctx: CompilationContext) -> ast.Node:
    with ctx.scope(), ctx.outside_loops():
        params, prelude = _parameters(expr.args, expr.body, ctx)
        body = ctx.build(expr.body)
    if prelude:
        body = ast.block([*prelude, *_body_statements(body)])
    elif ast.is_empty_block(body):
        body = ast.nil()
    return ast.fn(tuple(params), body)
