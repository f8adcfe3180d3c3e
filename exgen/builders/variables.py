"""Variable and field-access builder.

Locals resolve through the context's priority chain. Field access
dispatches on the access kind; enum constructor references are routed to
the enum handler before any generic field handling since they are not a
projection on a value.
"""

from __future__ import annotations

import logging

from .. import ast, constants, ir
from ..context import CompilationContext
from ..errors import InvariantViolation
from ..naming import atom_name, function_name, var_name
from . import enums

logger = logging.getLogger(__name__)


# ── locals ───────────────────────────────────────────────────────


def resolve_var(var: ir.Var, ctx: CompilationContext) -> ast.Node:
    return ast.var(ctx.resolve_name(var.id, var.name))


def build_local(expr: ir.Local, ctx: CompilationContext) -> ast.Node:
    return resolve_var(expr.var, ctx)


def build_var_decl(expr: ir.VarDecl, ctx: CompilationContext) -> ast.Node:
    if ctx.is_pattern_var(expr.var):
        # Already bound by the enclosing case pattern
        return ast.EMPTY_BLOCK.with_metadata(elided=True)
    value = ctx.build(expr.init) if expr.init is not None else ast.nil()
    name = ctx.declare(expr.var)
    node = ast.match(ast.PVar(name), value)
    if ctx.is_infra_temp(expr.var.name) and expr.init is not None:
        ctx.record_infra_temp_init(name, expr.init)
        return node.with_metadata(infra_temp=True)
    return node


def build_ident(expr: ir.Ident, ctx: CompilationContext) -> ast.Node:
    if expr.name == constants.INJECTION_MARKER:
        raise InvariantViolation(
            "code injection marker used outside a call",
            node_kind="ident",
            scope=ctx.describe_scope(),
        )
    return ast.var(var_name(expr.name))


def build_type_expr(expr: ir.TypeExpr, ctx: CompilationContext) -> ast.Node:
    return ast.Node(ast.Alias(ctx.module_for(expr.name)))


# ── field access ─────────────────────────────────────────────────


def build_field_access(expr: ir.FieldAccess, ctx: CompilationContext) -> ast.Node:
    if expr.access == ir.FieldAccessKind.ENUM:
        return enums.build_constructor_reference(expr, ctx)
    if expr.access == ir.FieldAccessKind.STATIC:
        return _static_field(expr, ctx)
    if expr.access == ir.FieldAccessKind.INSTANCE:
        return _instance_field(expr, ctx)
    if expr.access == ir.FieldAccessKind.ANON:
        return ast.Node(ast.FieldGet(ctx.build(expr.obj), atom_name(expr.field)))
    if expr.access == ir.FieldAccessKind.DYNAMIC:
        return ast.remote("Map", "get", ctx.build(expr.obj), ast.atom(atom_name(expr.field)))
    if expr.access == ir.FieldAccessKind.CLOSURE:
        return _closure(expr, ctx)
    raise InvariantViolation(
        f"unsupported field access kind {expr.access.value}", node_kind="field"
    )


def qualified_call(owner: str, function: str, args: list[ast.Node], ctx: CompilationContext) -> ast.Node:
    """Call into *owner*'s module; unqualified when *owner* is the module being built."""
    if ctx.is_current_module(owner):
        return ast.local(function, *args)
    return ast.remote(ctx.module_for(owner), function, *args)


def method_target_name(method: ir.FunctionDecl) -> str:
    return method.native_name or function_name(method.name)


def _static_field(expr: ir.FieldAccess, ctx: CompilationContext) -> ast.Node:
    if expr.type.kind == ir.TypeKind.ATOM:
        return ast.atom(atom_name(expr.field))
    cls = ctx.lookup_class(expr.owner)
    method = cls.method(expr.field) if cls is not None else None
    if method is not None:
        # A static method used as a value
        module = "" if ctx.is_current_module(expr.owner) else ctx.module_for(expr.owner)
        return ast.Node(ast.Capture(module, method_target_name(method), method.arity))
    # Static fields are exposed as 0-arity functions
    return qualified_call(expr.owner, function_name(expr.field), [], ctx)


def _instance_field(expr: ir.FieldAccess, ctx: CompilationContext) -> ast.Node:
    obj = ctx.build(expr.obj)
    if expr.field == "length":
        if expr.obj.type.is_string():
            return ast.remote(constants.STRING_CLASS, "length", obj)
        if expr.obj.type.is_array():
            return ast.local("length", obj)
    cls = ctx.lookup_class(expr.obj.type.name) if expr.obj.type.name else None
    method = cls.method(expr.field) if cls is not None else None
    if method is not None:
        return _bound_method(expr.obj.type.name, method, obj, ctx)
    return ast.Node(ast.FieldGet(obj, atom_name(expr.field)))


def _bound_method(
    owner: str, method: ir.FunctionDecl, receiver: ast.Node, ctx: CompilationContext
) -> ast.Node:
    """``fn a, b -> Mod.method(receiver, a, b) end``"""
    names = [var_name(a.var.name) for a in method.args]
    call = qualified_call(
        owner, method_target_name(method), [receiver, *(ast.var(n) for n in names)], ctx
    )
    return ast.fn(tuple(ast.PVar(n) for n in names), call)


def _closure(expr: ir.FieldAccess, ctx: CompilationContext) -> ast.Node:
    cls = ctx.lookup_class(expr.owner)
    method = cls.method(expr.field) if cls is not None else None
    if method is None:
        arity = max(len(expr.type.params) - 1, 0)
        logger.debug("Closure over undeclared method %s.%s/%d", expr.owner, expr.field, arity)
        return ast.Node(ast.Capture(ctx.module_for(expr.owner), function_name(expr.field), arity))
    if method.is_static:
        module = "" if ctx.is_current_module(expr.owner) else ctx.module_for(expr.owner)
        return ast.Node(ast.Capture(module, method_target_name(method), method.arity))
    return _bound_method(expr.owner, method, ctx.build(expr.obj), ctx)


# ── indexed access ───────────────────────────────────────────────


def build_array_access(expr: ir.ArrayAccess, ctx: CompilationContext) -> ast.Node:
    obj = ctx.build(expr.obj)
    index = ctx.build(expr.index)
    if expr.obj.type.kind == ir.TypeKind.MAP:
        return ast.remote("Map", "get", obj, index)
    return ast.remote("Enum", "at", obj, index)
