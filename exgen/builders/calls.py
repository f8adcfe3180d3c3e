"""Call-expression builder.

Dispatch order, first match wins:

1. verbatim code injection (``__elixir__("...{0}...", arg)``);
2. built-in container/string/static helpers;
3. static and instance methods → module-qualified calls, receiver first;
4. enum constructors → tagged values;
5. anything else → ``fun.(args)``.
"""

from __future__ import annotations

import logging

from .. import ast, constants, ir
from ..context import CompilationContext
from ..errors import InvariantViolation
from ..ir_walk import unwrap
from ..naming import function_name
from . import enums
from .builtins import Builtins, MethodCall, passthrough, receiver_table
from .variables import method_target_name, qualified_call

logger = logging.getLogger(__name__)


def build_call(expr: ir.Call, ctx: CompilationContext) -> ast.Node:
    callee = unwrap(expr.callee)
    if isinstance(callee, ir.Ident) and callee.name == constants.INJECTION_MARKER:
        return build_injection(expr, ctx)
    if isinstance(callee, ir.Const) and callee.const_kind == ir.ConstKind.SUPER:
        return _super_constructor(expr, ctx)
    if isinstance(callee, ir.FieldAccess):
        node = _member_call(expr, callee, ctx)
        if node is not None:
            return node
    return _generic_call(expr, callee, ctx)


# ── code injection ───────────────────────────────────────────────


def build_injection(expr: ir.Call, ctx: CompilationContext) -> ast.Node:
    template = unwrap(expr.args[0]) if expr.args else None
    if not (isinstance(template, ir.Const) and template.const_kind == ir.ConstKind.STRING):
        raise InvariantViolation(
            "code injection template must be a constant string",
            node_kind="call",
            scope=ctx.describe_scope(),
        )
    args = [ctx.build(a) for a in expr.args[1:]]
    ctx.stats.record_rewrite("code_injection")
    return ast.Node(ast.Raw(tuple(splice_template(str(template.value), args, ctx))))


def splice_template(
    template: str, args: list[ast.Node], ctx: CompilationContext
) -> list[str | ast.CodeSplice | ast.InterpolatedSplice]:
    """Split *template* at ``{N}`` placeholders, substituting built arguments.

    A placeholder inside a double-quoted literal becomes an interpolation;
    outside one it is spliced as code.
    """
    segments: list[str | ast.CodeSplice | ast.InterpolatedSplice] = []
    in_string = False
    pos = 0
    for m in constants.INJECTION_PLACEHOLDER_PATTERN.finditer(template):
        text = template[pos : m.start()]
        if text:
            segments.append(text)
        in_string = _quote_state(text, in_string)
        index = int(m.group(1))
        if index >= len(args):
            raise InvariantViolation(
                f"code injection placeholder {{{index}}} has no argument",
                node_kind="call",
                scope=ctx.describe_scope(),
            )
        splice = ast.InterpolatedSplice if in_string else ast.CodeSplice
        segments.append(splice(args[index]))
        pos = m.end()
    if pos < len(template):
        segments.append(template[pos:])
    return segments


def _quote_state(text: str, in_string: bool) -> bool:
    escaped = False
    for ch in text:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            in_string = not in_string
    return in_string


# ── member calls ─────────────────────────────────────────────────


def _short_name(owner: str) -> str:
    return owner.rsplit(".", 1)[-1]


def _member_call(expr: ir.Call, callee: ir.FieldAccess, ctx: CompilationContext) -> ast.Node | None:
    if callee.access == ir.FieldAccessKind.ENUM:
        enum = enums.require_enum(callee.owner, ctx)
        ctor = enums.require_constructor(enum, callee.field, ctx)
        ctx.stats.record_rewrite("enum_constructor")
        return enums.build_constructor_call(enum, ctor, expr.args, ctx)
    if callee.access == ir.FieldAccessKind.STATIC:
        return _static_call(expr, callee, ctx)
    if callee.access in (ir.FieldAccessKind.INSTANCE, ir.FieldAccessKind.CLOSURE):
        return _instance_call(expr, callee, ctx)
    return None


def _static_call(expr: ir.Call, callee: ir.FieldAccess, ctx: CompilationContext) -> ast.Node:
    cls = ctx.lookup_class(callee.owner)
    short = _short_name(callee.owner)
    if cls is None and short in Builtins.STATIC_CLASSES:
        call = MethodCall(callee.field, [ctx.build(a) for a in expr.args], list(expr.args), ctx)
        handler = Builtins.STATIC.get((short, callee.field))
        if handler is None:
            return passthrough(ctx.module_for(callee.owner), call)
        ctx.stats.record_rewrite("builtin")
        return handler(call)
    method = cls.method(callee.field) if cls is not None else None
    args = pad_arguments([ctx.build(a) for a in expr.args], method, ctx)
    name = method_target_name(method) if method is not None else function_name(callee.field)
    return qualified_call(callee.owner, name, args, ctx)


def _instance_call(expr: ir.Call, callee: ir.FieldAccess, ctx: CompilationContext) -> ast.Node | None:
    receiver_type = callee.obj.type
    table = receiver_table(receiver_type)
    if table is not None:
        receiver = ctx.build(callee.obj)
        call = MethodCall(
            callee.field,
            [ctx.build(a) for a in expr.args],
            list(expr.args),
            ctx,
            receiver,
            callee.obj,
        )
        handler = table.get(callee.field)
        if handler is None:
            return passthrough(_collection_module(receiver_type), call)
        ctx.stats.record_rewrite("builtin")
        return handler(call)

    owner = callee.owner or receiver_type.name
    cls = ctx.lookup_class(owner) if owner else None
    method = cls.method(callee.field) if cls is not None else None
    if method is None and (not owner or (cls is not None and cls.field(callee.field))):
        # A function stored in a field, not a method
        return None
    if method is not None and method.is_static:
        args = pad_arguments([ctx.build(a) for a in expr.args], method, ctx)
        return qualified_call(owner, method_target_name(method), args, ctx)
    receiver = ctx.build(callee.obj)
    args = pad_arguments([ctx.build(a) for a in expr.args], method, ctx)
    name = method_target_name(method) if method is not None else function_name(callee.field)
    return qualified_call(owner, name, [receiver, *args], ctx)


def _collection_module(receiver_type: ir.StaticType) -> str:
    if receiver_type.is_string():
        return constants.STRING_CLASS
    if receiver_type.is_array():
        return "List"
    return "Map"


def pad_arguments(
    args: list[ast.Node], method: ir.FunctionDecl | None, ctx: CompilationContext
) -> list[ast.Node]:
    """Pad omitted trailing optional parameters with nil (fixed-arity calls)."""
    if method is None or len(args) >= method.arity:
        return args
    missing = method.args[len(args) :]
    if not all(a.optional or a.default is not None for a in missing):
        raise InvariantViolation(
            f"call to {method.name} omits required parameters",
            node_kind="call",
            scope=ctx.describe_scope(),
        )
    return args + [ast.nil() for _ in missing]


def _super_constructor(expr: ir.Call, ctx: CompilationContext) -> ast.Node:
    logger.warning("Parent constructor call in %s dropped", ctx.describe_scope())
    receiver = ast.var(ctx.receiver or constants.RECEIVER_BINDER)
    return receiver.with_metadata(review="parent constructor call dropped")


# ── fallback ─────────────────────────────────────────────────────


def _generic_call(expr: ir.Call, callee: ir.Expr, ctx: CompilationContext) -> ast.Node:
    fun = ctx.build(callee)
    args = [ctx.build(a) for a in expr.args]
    expected = len(callee.type.params) - 1 if callee.type.kind == ir.TypeKind.FUNCTION else 0
    if len(args) < expected:
        args.extend(ast.nil() for _ in range(expected - len(args)))
    if isinstance(fun.kind, ast.Capture):
        # Direct call instead of invoking a capture
        if fun.kind.module:
            return ast.remote(fun.kind.module, fun.kind.function, *args)
        return ast.local(fun.kind.function, *args)
    return ast.Node(ast.AnonCall(fun, tuple(args)))


# ── construction ─────────────────────────────────────────────────


def build_new(expr: ir.New, ctx: CompilationContext) -> ast.Node:
    name = expr.class_name
    if name in constants.MAP_CLASS_NAMES:
        return ast.Node(ast.MapLit(()))
    if name == constants.ARRAY_CLASS:
        return ast.Node(ast.ListLit(()))
    if name == constants.STRING_CLASS:
        return ctx.build(expr.args[0]) if expr.args else ast.string("")
    cls = ctx.lookup_class(name)
    constructor = cls.constructor if cls is not None else None
    args = pad_arguments([ctx.build(a) for a in expr.args], constructor, ctx)
    return qualified_call(name, "new", args, ctx)
