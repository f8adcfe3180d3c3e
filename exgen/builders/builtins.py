"""Built-in method lowerings onto the target's immutable collection primitives."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .. import ast, constants, ir
from ..context import CompilationContext
from ..ir_walk import unwrap
from ..naming import function_name
from .binops import build_assignment, exclusive_range

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MethodCall:
    """A call on a built-in receiver with its arguments already built."""

    method: str
    args: list[ast.Node]
    arg_exprs: list[ir.Expr]
    ctx: CompilationContext
    # Instance calls only
    receiver: ast.Node | None = None
    receiver_expr: ir.Expr | None = None

    def arg(self, index: int) -> ast.Node:
        return self.args[index]

    def arg_type(self, index: int) -> ir.StaticType:
        return self.arg_exprs[index].type

    def rebind(self, value: ast.Node) -> ast.Node:
        """Mutating methods rebind the receiver to the updated collection."""
        return build_assignment(self.receiver_expr, value, self.ctx)


BuiltinHandler = Callable[[MethodCall], ast.Node]


def _stringy(node: ast.Node) -> ast.Node:
    return node.with_metadata(yields_string=True)


def _is_literal_string(node: ast.Node, value: str | None = None) -> bool:
    if not isinstance(node.kind, ast.String):
        return False
    return value is None or node.kind.value == value


def _fallback(node: ast.Node, default: ast.Node) -> ast.Node:
    return ast.binop("||", node, default)


def _to_end(first: ast.Node) -> ast.Node:
    return ast.Node(ast.Range(first, ast.integer(-1), ast.integer(1)))


# ── arrays ───────────────────────────────────────────────────────


def _array_push(call: MethodCall) -> ast.Node:
    appended = ast.binop("++", call.receiver, ast.Node(ast.ListLit((call.arg(0),))))
    return call.rebind(appended)


def _array_take(call: MethodCall, index: int) -> ast.Node:
    """``{popped, list} = List.pop_at(list, index)``, yielding the removed element."""
    ctx = call.ctx
    popped = ctx.fresh_temp(constants.POPPED_VALUE_TEMP)
    split = ast.remote("List", "pop_at", call.receiver, ast.integer(index))
    if isinstance(call.receiver.kind, ast.Var) and isinstance(unwrap(call.receiver_expr), ir.Local):
        unpack = ast.match(ast.PTuple((ast.PVar(popped), ast.PVar(call.receiver.kind.name))), split)
        return ast.block([unpack, ast.var(popped)])
    rest = ctx.fresh_temp("rest")
    unpack = ast.match(ast.PTuple((ast.PVar(popped), ast.PVar(rest))), split)
    return ast.block([unpack, call.rebind(ast.var(rest)), ast.var(popped)])


def _array_pop(call: MethodCall) -> ast.Node:
    return _array_take(call, -1)


def _array_shift(call: MethodCall) -> ast.Node:
    return _array_take(call, 0)


def _array_unshift(call: MethodCall) -> ast.Node:
    return call.rebind(ast.binop("++", ast.Node(ast.ListLit((call.arg(0),))), call.receiver))


def _array_insert(call: MethodCall) -> ast.Node:
    return call.rebind(ast.remote("List", "insert_at", call.receiver, call.arg(0), call.arg(1)))


def _array_remove(call: MethodCall) -> ast.Node:
    return call.rebind(ast.remote("List", "delete", call.receiver, call.arg(0)))


def _array_reverse(call: MethodCall) -> ast.Node:
    return call.rebind(ast.remote("Enum", "reverse", call.receiver))


def _array_sort(call: MethodCall) -> ast.Node:
    # Comparator returns <0/0/>0; Enum.sort wants a "sorted before" predicate
    comparator = ast.binop(
        "<=", ast.Node(ast.AnonCall(call.arg(0), (ast.var("a"), ast.var("b")))), ast.integer(0)
    )
    sorter = ast.fn((ast.PVar("a"), ast.PVar("b")), comparator)
    return call.rebind(ast.remote("Enum", "sort", call.receiver, sorter))


def _array_concat(call: MethodCall) -> ast.Node:
    return ast.binop("++", call.receiver, call.arg(0))


def _array_map(call: MethodCall) -> ast.Node:
    return ast.remote("Enum", "map", call.receiver, call.arg(0))


def _array_filter(call: MethodCall) -> ast.Node:
    return ast.remote("Enum", "filter", call.receiver, call.arg(0))


def _array_join(call: MethodCall) -> ast.Node:
    return _stringy(ast.remote("Enum", "join", call.receiver, call.arg(0)))


def _array_index_of(call: MethodCall) -> ast.Node:
    matches = ast.fn((ast.PVar("item"),), ast.binop("==", ast.var("item"), call.arg(0)))
    return _fallback(ast.remote("Enum", "find_index", call.receiver, matches), ast.integer(-1))


def _array_contains(call: MethodCall) -> ast.Node:
    return ast.remote("Enum", "member?", call.receiver, call.arg(0))


def _array_slice(call: MethodCall) -> ast.Node:
    if len(call.args) == 1:
        # A negative start counts from the end, as in the target's ranges
        return ast.remote("Enum", "slice", call.receiver, _to_end(call.arg(0)))
    return ast.remote("Enum", "slice", call.receiver, exclusive_range(call.arg(0), call.arg(1)))


def _array_copy(call: MethodCall) -> ast.Node:
    return call.receiver


def _array_to_string(call: MethodCall) -> ast.Node:
    return _stringy(ast.local("inspect", call.receiver))


# ── strings ──────────────────────────────────────────────────────


def _string_split(call: MethodCall) -> ast.Node:
    sep = call.arg(0)
    graphemes = ast.remote(constants.STRING_CLASS, "graphemes", call.receiver)
    if _is_literal_string(sep, ""):
        return graphemes
    split = ast.remote(constants.STRING_CLASS, "split", call.receiver, sep)
    if _is_literal_string(sep):
        return split
    # An empty separator splits into characters, without empty segments
    return ast.Node(ast.If(ast.binop("==", sep, ast.string("")), graphemes, split))


def _string_substring(call: MethodCall) -> ast.Node:
    if len(call.args) == 1:
        return _stringy(ast.remote(constants.STRING_CLASS, "slice", call.receiver, _to_end(call.arg(0))))
    return _stringy(
        ast.remote(constants.STRING_CLASS, "slice", call.receiver, exclusive_range(call.arg(0), call.arg(1)))
    )


def _string_substr(call: MethodCall) -> ast.Node:
    if len(call.args) == 1:
        return _string_substring(call)
    return _stringy(ast.remote(constants.STRING_CLASS, "slice", call.receiver, call.arg(0), call.arg(1)))


def _string_char_at(call: MethodCall) -> ast.Node:
    # Out of range yields "" rather than nil
    at = ast.remote(constants.STRING_CLASS, "at", call.receiver, call.arg(0))
    return _stringy(_fallback(at, ast.string("")))


def _string_char_code_at(call: MethodCall) -> ast.Node:
    # Out of range yields nil; a negative index must not count from the end
    index = call.arg(0)
    codes = ast.remote(":binary", "bin_to_list", call.receiver)
    if isinstance(index.kind, ast.Integer):
        if index.kind.value < 0:
            return ast.nil()
        return ast.remote("Enum", "at", codes, index)
    if ast.is_simple(index):
        test = ast.binop(">=", index, ast.integer(0))
    else:
        temp = call.ctx.fresh_temp("index")
        test = ast.binop(">=", ast.match(ast.PVar(temp), index), ast.integer(0))
        index = ast.var(temp)
    return ast.Node(ast.If(test, ast.remote("Enum", "at", codes, index), ast.nil()))


def _string_index_of(call: MethodCall) -> ast.Node:
    found = ast.CaseClause(ast.PTuple((ast.PVar("index"), ast.PWildcard())), ast.var("index"))
    missing = ast.CaseClause(ast.PLiteral(ast.atom("nomatch")), ast.integer(-1))
    lookup = ast.remote(":binary", "match", call.receiver, call.arg(0))
    return ast.Node(ast.Case(lookup, (found, missing)))


def _string_upcase(call: MethodCall) -> ast.Node:
    return _stringy(ast.remote(constants.STRING_CLASS, "upcase", call.receiver))


def _string_downcase(call: MethodCall) -> ast.Node:
    return _stringy(ast.remote(constants.STRING_CLASS, "downcase", call.receiver))


def _string_contains(call: MethodCall) -> ast.Node:
    return ast.remote(constants.STRING_CLASS, "contains?", call.receiver, call.arg(0))


def _string_identity(call: MethodCall) -> ast.Node:
    return call.receiver


# ── maps ─────────────────────────────────────────────────────────


def _map_set(call: MethodCall) -> ast.Node:
    return call.rebind(ast.remote("Map", "put", call.receiver, call.arg(0), call.arg(1)))


def _map_get(call: MethodCall) -> ast.Node:
    return ast.remote("Map", "get", call.receiver, call.arg(0))


def _map_exists(call: MethodCall) -> ast.Node:
    return ast.remote("Map", "has_key?", call.receiver, call.arg(0))


def _map_remove(call: MethodCall) -> ast.Node:
    return call.rebind(ast.remote("Map", "delete", call.receiver, call.arg(0)))


def _map_keys(call: MethodCall) -> ast.Node:
    return ast.remote("Map", "keys", call.receiver)


def _map_values(call: MethodCall) -> ast.Node:
    return ast.remote("Map", "values", call.receiver)


def _map_copy(call: MethodCall) -> ast.Node:
    return call.receiver


# ── static helpers (Std / Math / StringTools / String) ───────────


def _std_string(call: MethodCall) -> ast.Node:
    value = call.arg(0)
    kind = call.arg_type(0).kind
    if kind == ir.TypeKind.STRING:
        return value
    if kind in (ir.TypeKind.INT, ir.TypeKind.FLOAT, ir.TypeKind.BOOL):
        return _stringy(ast.local("to_string", value))
    return _stringy(ast.local("inspect", value))


def _std_int(call: MethodCall) -> ast.Node:
    return ast.local("trunc", call.arg(0))


def _std_parse_int(call: MethodCall) -> ast.Node:
    return ast.remote(constants.STRING_CLASS, "to_integer", call.arg(0))


def _std_parse_float(call: MethodCall) -> ast.Node:
    return ast.remote(constants.STRING_CLASS, "to_float", call.arg(0))


def _std_random(call: MethodCall) -> ast.Node:
    return ast.binop("-", ast.remote(":rand", "uniform", call.arg(0)), ast.integer(1))


def _kernel(function: str) -> BuiltinHandler:
    def handler(call: MethodCall) -> ast.Node:
        return ast.local(function, *call.args)

    return handler


def _erlang_math(function: str) -> BuiltinHandler:
    def handler(call: MethodCall) -> ast.Node:
        return ast.remote(":math", function, *call.args)

    return handler


def _string_module(function: str) -> BuiltinHandler:
    def handler(call: MethodCall) -> ast.Node:
        return ast.remote(constants.STRING_CLASS, function, *call.args)

    return handler


def _math_random(call: MethodCall) -> ast.Node:
    return ast.remote(":rand", "uniform")


def _string_from_char_code(call: MethodCall) -> ast.Node:
    return _stringy(ast.remote("List", "to_string", ast.Node(ast.ListLit((call.arg(0),)))))


class Builtins:
    """Tables of built-in method lowerings, by receiver kind."""

    ARRAY: dict[str, BuiltinHandler] = {
        "push": _array_push,
        "pop": _array_pop,
        "shift": _array_shift,
        "unshift": _array_unshift,
        "insert": _array_insert,
        "remove": _array_remove,
        "reverse": _array_reverse,
        "sort": _array_sort,
        "concat": _array_concat,
        "map": _array_map,
        "filter": _array_filter,
        "join": _array_join,
        "indexOf": _array_index_of,
        "contains": _array_contains,
        "slice": _array_slice,
        "copy": _array_copy,
        "toString": _array_to_string,
    }

    STRING: dict[str, BuiltinHandler] = {
        "split": _string_split,
        "substring": _string_substring,
        "substr": _string_substr,
        "charAt": _string_char_at,
        "charCodeAt": _string_char_code_at,
        "indexOf": _string_index_of,
        "toUpperCase": _string_upcase,
        "toLowerCase": _string_downcase,
        "contains": _string_contains,
        "toString": _string_identity,
    }

    MAP: dict[str, BuiltinHandler] = {
        "set": _map_set,
        "get": _map_get,
        "exists": _map_exists,
        "remove": _map_remove,
        "keys": _map_keys,
        "iterator": _map_values,
        "copy": _map_copy,
    }

    STATIC: dict[tuple[str, str], BuiltinHandler] = {
        (constants.STD_CLASS, "string"): _std_string,
        (constants.STD_CLASS, "int"): _std_int,
        (constants.STD_CLASS, "parseInt"): _std_parse_int,
        (constants.STD_CLASS, "parseFloat"): _std_parse_float,
        (constants.STD_CLASS, "random"): _std_random,
        (constants.MATH_CLASS, "floor"): _kernel("floor"),
        (constants.MATH_CLASS, "ceil"): _kernel("ceil"),
        (constants.MATH_CLASS, "round"): _kernel("round"),
        (constants.MATH_CLASS, "abs"): _kernel("abs"),
        (constants.MATH_CLASS, "max"): _kernel("max"),
        (constants.MATH_CLASS, "min"): _kernel("min"),
        (constants.MATH_CLASS, "sqrt"): _erlang_math("sqrt"),
        (constants.MATH_CLASS, "pow"): _erlang_math("pow"),
        (constants.MATH_CLASS, "sin"): _erlang_math("sin"),
        (constants.MATH_CLASS, "cos"): _erlang_math("cos"),
        (constants.MATH_CLASS, "tan"): _erlang_math("tan"),
        (constants.MATH_CLASS, "log"): _erlang_math("log"),
        (constants.MATH_CLASS, "exp"): _erlang_math("exp"),
        (constants.MATH_CLASS, "random"): _math_random,
        (constants.STRING_TOOLS_CLASS, "trim"): _string_module("trim"),
        (constants.STRING_TOOLS_CLASS, "ltrim"): _string_module("trim_leading"),
        (constants.STRING_TOOLS_CLASS, "rtrim"): _string_module("trim_trailing"),
        (constants.STRING_TOOLS_CLASS, "startsWith"): _string_module("starts_with?"),
        (constants.STRING_TOOLS_CLASS, "endsWith"): _string_module("ends_with?"),
        (constants.STRING_TOOLS_CLASS, "replace"): _string_module("replace"),
        (constants.STRING_TOOLS_CLASS, "contains"): _string_module("contains?"),
        (constants.STRING_TOOLS_CLASS, "lpad"): _string_module("pad_leading"),
        (constants.STRING_TOOLS_CLASS, "rpad"): _string_module("pad_trailing"),
        (constants.STRING_CLASS, "fromCharCode"): _string_from_char_code,
    }

    STATIC_CLASSES = frozenset(owner for owner, _ in STATIC)


def receiver_table(receiver_type: ir.StaticType) -> dict[str, BuiltinHandler] | None:
    if receiver_type.is_array():
        return Builtins.ARRAY
    if receiver_type.is_string():
        return Builtins.STRING
    if receiver_type.kind == ir.TypeKind.MAP or receiver_type.name in constants.MAP_CLASS_NAMES:
        return Builtins.MAP
    return None


def passthrough(module: str, call: MethodCall) -> ast.Node:
    """Unrecognized built-in: keep the call shape and flag it for review."""
    name = function_name(call.method)
    args = call.args if call.receiver is None else [call.receiver, *call.args]
    logger.warning("No lowering for built-in %s.%s; emitting passthrough call", module, call.method)
    call.ctx.stats.passthrough_methods.append(f"{module}.{call.method}")
    return ast.remote(module, name, *args).with_metadata(
        review=f"unrecognized built-in {module}.{call.method}"
    )
