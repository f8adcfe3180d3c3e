"""Shared helpers for building synthetic IR in builder tests.

Every helper returns a validated IR model; binders get unique ids from a
module-level counter so independently built fragments never collide.
"""

import itertools

from exgen import ir
from exgen.build_types import BuildConfig
from exgen.context import CompilationContext
from exgen.driver import ElixirBuilder

_ids = itertools.count(1)

INT = ir.INT_TYPE
STRING = ir.STRING_TYPE
DYNAMIC = ir.DYNAMIC_TYPE
ARRAY = ir.StaticType(kind=ir.TypeKind.ARRAY, name="Array", params=[ir.INT_TYPE])
MAP = ir.StaticType(kind=ir.TypeKind.MAP, name="haxe.ds.StringMap")


def make_context(
    config: BuildConfig | None = None,
    classes: list[ir.ClassDecl] | None = None,
    enums: list[ir.EnumDecl] | None = None,
) -> CompilationContext:
    unit = ir.CompilationUnit(classes=classes or [], enums=enums or [])
    return ElixirBuilder(config).new_context(unit)


def var(name: str, type_: ir.StaticType = ir.UNKNOWN_TYPE) -> ir.Var:
    return ir.Var(id=next(_ids), name=name, type=type_)


def local(v: ir.Var) -> ir.Local:
    return ir.Local(var=v, type=v.type)


def decl(v: ir.Var, init: ir.Expr | None = None) -> ir.VarDecl:
    return ir.VarDecl(var=v, init=init)


def int_(value: int) -> ir.Const:
    return ir.Const(const_kind=ir.ConstKind.INT, value=value, type=INT)


def str_(value: str) -> ir.Const:
    return ir.Const(const_kind=ir.ConstKind.STRING, value=value, type=STRING)


def bool_(value: bool) -> ir.Const:
    return ir.Const(const_kind=ir.ConstKind.BOOL, value=value, type=ir.BOOL_TYPE)


def null() -> ir.Const:
    return ir.Const(const_kind=ir.ConstKind.NULL)


def this(class_name: str = "") -> ir.Const:
    return ir.Const(
        const_kind=ir.ConstKind.THIS,
        type=ir.StaticType(kind=ir.TypeKind.INSTANCE, name=class_name),
    )


def block(*exprs: ir.Expr) -> ir.Block:
    return ir.Block(exprs=list(exprs))


def binop(op: ir.BinaryOp, left: ir.Expr, right: ir.Expr, type_=ir.UNKNOWN_TYPE) -> ir.Binop:
    return ir.Binop(op=op, left=left, right=right, type=type_)


def assign(target: ir.Expr, value: ir.Expr) -> ir.Binop:
    return binop(ir.BinaryOp.ASSIGN, target, value)


def eq(left: ir.Expr, right: ir.Expr) -> ir.Binop:
    return binop(ir.BinaryOp.EQ, left, right, ir.BOOL_TYPE)


def lt(left: ir.Expr, right: ir.Expr) -> ir.Binop:
    return binop(ir.BinaryOp.LT, left, right, ir.BOOL_TYPE)


def post_increment(v: ir.Var) -> ir.Unop:
    return ir.Unop(op=ir.UnaryOp.INCREMENT, operand=local(v), postfix=True, type=INT)


def field(obj: ir.Expr, name: str, access=ir.FieldAccessKind.INSTANCE, owner: str = "", type_=ir.UNKNOWN_TYPE):
    return ir.FieldAccess(obj=obj, field=name, access=access, owner=owner, type=type_)


def method_call(obj: ir.Expr, name: str, *args: ir.Expr, type_=ir.UNKNOWN_TYPE) -> ir.Call:
    return ir.Call(callee=field(obj, name), args=list(args), type=type_)


def static_call(owner: str, name: str, *args: ir.Expr, type_=ir.UNKNOWN_TYPE) -> ir.Call:
    callee = field(ir.TypeExpr(name=owner), name, ir.FieldAccessKind.STATIC, owner)
    return ir.Call(callee=callee, args=list(args), type=type_)


def new_map() -> ir.New:
    return ir.New(class_name="haxe.ds.StringMap", type=MAP)


def array(*elements: ir.Expr) -> ir.ArrayDecl:
    return ir.ArrayDecl(elements=list(elements), type=ARRAY)


def if_(cond: ir.Expr, then: ir.Expr, else_: ir.Expr | None = None) -> ir.If:
    return ir.If(cond=cond, then=then, else_=else_)


def ret(value: ir.Expr | None = None) -> ir.Return:
    return ir.Return(value=value)


def enum_index(subject: ir.Expr, enum_name: str) -> ir.EnumIndex:
    return ir.EnumIndex(subject=subject, enum_name=enum_name, type=INT)


def enum_param(subject: ir.Expr, enum_name: str, ctor: str, index: int) -> ir.EnumParameter:
    return ir.EnumParameter(subject=subject, enum_name=enum_name, constructor=ctor, index=index)


def shape_enum(idiomatic: bool | None = None) -> ir.EnumDecl:
    """``Shape``: Empty | Circle(radius) | Rect(width, height)."""
    return ir.EnumDecl(
        name="Shape",
        constructors=[
            ir.EnumConstructor(name="Empty", index=0),
            ir.EnumConstructor(name="Circle", index=1, params=["radius"]),
            ir.EnumConstructor(name="Rect", index=2, params=["width", "height"]),
        ],
        idiomatic=idiomatic,
    )
