"""Typed IR — the front-end's fully type-checked expression tree.

Every expression shape is a frozen pydantic model tagged with a ``kind``
literal, so a whole compilation unit round-trips through JSON and can be
validated on load.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class SourceLocation(BaseModel):
    """Source span of an IR node in the original program."""

    model_config = ConfigDict(frozen=True)

    file: str = ""
    start_line: int = 0
    start_col: int = 0
    end_line: int = 0
    end_col: int = 0

    def is_unknown(self) -> bool:
        return (
            self.start_line == 0
            and self.start_col == 0
            and self.end_line == 0
            and self.end_col == 0
        )

    def __str__(self) -> str:
        if self.is_unknown():
            return "<unknown>"
        prefix = f"{self.file}:" if self.file else ""
        return f"{prefix}{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


NO_SOURCE_LOCATION = SourceLocation()


# ── types ────────────────────────────────────────────────────────


class TypeKind(str, Enum):
    INT = "INT"
    FLOAT = "FLOAT"
    STRING = "STRING"
    BOOL = "BOOL"
    VOID = "VOID"
    DYNAMIC = "DYNAMIC"
    ARRAY = "ARRAY"
    MAP = "MAP"
    INSTANCE = "INSTANCE"
    ENUM = "ENUM"
    FUNCTION = "FUNCTION"
    ATOM = "ATOM"
    UNKNOWN = "UNKNOWN"


class StaticType(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: TypeKind = TypeKind.UNKNOWN
    name: str = ""
    params: list[StaticType] = []
    nullable: bool = False

    def is_string(self) -> bool:
        return self.kind == TypeKind.STRING

    def is_array(self) -> bool:
        return self.kind == TypeKind.ARRAY

    def is_dynamic(self) -> bool:
        return self.kind in (TypeKind.DYNAMIC, TypeKind.UNKNOWN)


UNKNOWN_TYPE = StaticType()
INT_TYPE = StaticType(kind=TypeKind.INT, name="Int")
FLOAT_TYPE = StaticType(kind=TypeKind.FLOAT, name="Float")
STRING_TYPE = StaticType(kind=TypeKind.STRING, name="String")
BOOL_TYPE = StaticType(kind=TypeKind.BOOL, name="Bool")
VOID_TYPE = StaticType(kind=TypeKind.VOID, name="Void")
DYNAMIC_TYPE = StaticType(kind=TypeKind.DYNAMIC, name="Dynamic")


class Var(BaseModel):
    """A local binder with a stable front-end id."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    type: StaticType = UNKNOWN_TYPE


# ── operators ────────────────────────────────────────────────────


class BinaryOp(str, Enum):
    ADD = "ADD"
    SUB = "SUB"
    MULT = "MULT"
    DIV = "DIV"
    MOD = "MOD"
    EQ = "EQ"
    NOT_EQ = "NOT_EQ"
    GT = "GT"
    GTE = "GTE"
    LT = "LT"
    LTE = "LTE"
    BOOL_AND = "BOOL_AND"
    BOOL_OR = "BOOL_OR"
    AND = "AND"
    OR = "OR"
    XOR = "XOR"
    SHL = "SHL"
    SHR = "SHR"
    USHR = "USHR"
    ASSIGN = "ASSIGN"
    ASSIGN_OP = "ASSIGN_OP"
    INTERVAL = "INTERVAL"
    NULL_COAL = "NULL_COAL"


class UnaryOp(str, Enum):
    INCREMENT = "INCREMENT"
    DECREMENT = "DECREMENT"
    NOT = "NOT"
    NEG = "NEG"
    NEG_BITS = "NEG_BITS"


class ConstKind(str, Enum):
    INT = "INT"
    FLOAT = "FLOAT"
    STRING = "STRING"
    BOOL = "BOOL"
    NULL = "NULL"
    THIS = "THIS"
    SUPER = "SUPER"


class FieldAccessKind(str, Enum):
    INSTANCE = "INSTANCE"
    STATIC = "STATIC"
    ANON = "ANON"
    DYNAMIC = "DYNAMIC"
    CLOSURE = "CLOSURE"
    ENUM = "ENUM"


# ── expressions ──────────────────────────────────────────────────


class ExprBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: StaticType = UNKNOWN_TYPE
    location: SourceLocation = NO_SOURCE_LOCATION


class Const(ExprBase):
    kind: Literal["const"] = "const"
    const_kind: ConstKind
    value: int | float | str | bool | None = None


class Local(ExprBase):
    kind: Literal["local"] = "local"
    var: Var


class VarDecl(ExprBase):
    kind: Literal["var"] = "var"
    var: Var
    init: Expr | None = None


class Block(ExprBase):
    kind: Literal["block"] = "block"
    exprs: list[Expr] = []


class Binop(ExprBase):
    kind: Literal["binop"] = "binop"
    op: BinaryOp
    left: Expr
    right: Expr
    # The arithmetic operator of a compound assignment (``x += y``).
    assign_op: BinaryOp | None = None


class Unop(ExprBase):
    kind: Literal["unop"] = "unop"
    op: UnaryOp
    operand: Expr
    postfix: bool = False


class FieldAccess(ExprBase):
    kind: Literal["field"] = "field"
    obj: Expr
    access: FieldAccessKind
    field: str
    # Declaring class or enum for STATIC / INSTANCE / CLOSURE / ENUM access.
    owner: str = ""


class TypeExpr(ExprBase):
    kind: Literal["type_expr"] = "type_expr"
    name: str


class ArrayAccess(ExprBase):
    kind: Literal["array"] = "array"
    obj: Expr
    index: Expr


class Call(ExprBase):
    kind: Literal["call"] = "call"
    callee: Expr
    args: list[Expr] = []


class New(ExprBase):
    kind: Literal["new"] = "new"
    class_name: str
    args: list[Expr] = []


class If(ExprBase):
    kind: Literal["if"] = "if"
    cond: Expr
    then: Expr
    else_: Expr | None = None


class While(ExprBase):
    kind: Literal["while"] = "while"
    cond: Expr
    body: Expr
    # False for do-while loops (body runs before the first check).
    normal_while: bool = True


class For(ExprBase):
    kind: Literal["for"] = "for"
    var: Var
    iterable: Expr
    body: Expr


class SwitchCase(BaseModel):
    model_config = ConfigDict(frozen=True)

    values: list[Expr]
    body: Expr


class Switch(ExprBase):
    kind: Literal["switch"] = "switch"
    subject: Expr
    cases: list[SwitchCase] = []
    default: Expr | None = None


class EnumParameter(ExprBase):
    """Extraction of constructor parameter ``index`` from an enum value."""

    kind: Literal["enum_parameter"] = "enum_parameter"
    subject: Expr
    enum_name: str
    constructor: str
    index: int


class EnumIndex(ExprBase):
    """The constructor tag (declaration index) of an enum value."""

    kind: Literal["enum_index"] = "enum_index"
    subject: Expr
    enum_name: str


class Catch(BaseModel):
    model_config = ConfigDict(frozen=True)

    var: Var
    body: Expr


class Try(ExprBase):
    kind: Literal["try"] = "try"
    body: Expr
    catches: list[Catch] = []


class Throw(ExprBase):
    kind: Literal["throw"] = "throw"
    value: Expr


class Return(ExprBase):
    kind: Literal["return"] = "return"
    value: Expr | None = None


class Break(ExprBase):
    kind: Literal["break"] = "break"


class Continue(ExprBase):
    kind: Literal["continue"] = "continue"


class ObjectField(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    expr: Expr


class ObjectDecl(ExprBase):
    kind: Literal["object"] = "object"
    fields: list[ObjectField] = []


class ArrayDecl(ExprBase):
    kind: Literal["array_decl"] = "array_decl"
    elements: list[Expr] = []


class FunctionArg(BaseModel):
    model_config = ConfigDict(frozen=True)

    var: Var
    optional: bool = False
    default: Expr | None = None


class Function(ExprBase):
    kind: Literal["function"] = "function"
    args: list[FunctionArg] = []
    body: Expr
    ret: StaticType = UNKNOWN_TYPE


class Parenthesis(ExprBase):
    kind: Literal["paren"] = "paren"
    expr: Expr


class Meta(ExprBase):
    kind: Literal["meta"] = "meta"
    name: str
    expr: Expr


class Cast(ExprBase):
    kind: Literal["cast"] = "cast"
    expr: Expr


class Ident(ExprBase):
    """An untyped identifier (e.g. the verbatim-injection marker)."""

    kind: Literal["ident"] = "ident"
    name: str


Expr = Annotated[
    Union[
        Const,
        Local,
        VarDecl,
        Block,
        Binop,
        Unop,
        FieldAccess,
        TypeExpr,
        ArrayAccess,
        Call,
        New,
        If,
        While,
        For,
        Switch,
        EnumParameter,
        EnumIndex,
        Try,
        Throw,
        Return,
        Break,
        Continue,
        ObjectDecl,
        ArrayDecl,
        Function,
        Parenthesis,
        Meta,
        Cast,
        Ident,
    ],
    Field(discriminator="kind"),
]


# ── declarations ─────────────────────────────────────────────────


class EnumConstructor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    index: int
    params: list[str] = []


class EnumDecl(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    module: str = ""
    constructors: list[EnumConstructor] = []
    # None defers to the build configuration's default strategy.
    idiomatic: bool | None = None
    native_name: str | None = None

    def constructor(self, name: str) -> EnumConstructor | None:
        return next((c for c in self.constructors if c.name == name), None)

    def constructor_at(self, index: int) -> EnumConstructor | None:
        return next((c for c in self.constructors if c.index == index), None)


class FieldDecl(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: StaticType = UNKNOWN_TYPE
    is_static: bool = False
    # Static fields declared ``var`` are mutable and become functions.
    is_mutable: bool = False
    init: Expr | None = None


class FunctionDecl(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    args: list[FunctionArg] = []
    ret: StaticType = UNKNOWN_TYPE
    body: Expr | None = None
    is_static: bool = False
    is_private: bool = False
    native_name: str | None = None

    @property
    def arity(self) -> int:
        return len(self.args)


class ClassDecl(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    module: str = ""
    fields: list[FieldDecl] = []
    methods: list[FunctionDecl] = []
    constructor: FunctionDecl | None = None
    native_name: str | None = None
    is_extern: bool = False
    is_exception: bool = False

    @property
    def qualified_name(self) -> str:
        return f"{self.module}.{self.name}" if self.module else self.name

    def method(self, name: str) -> FunctionDecl | None:
        return next((m for m in self.methods if m.name == name), None)

    def field(self, name: str) -> FieldDecl | None:
        return next((f for f in self.fields if f.name == name), None)


class CompilationUnit(BaseModel):
    model_config = ConfigDict(frozen=True)

    classes: list[ClassDecl] = []
    enums: list[EnumDecl] = []


for _model in (
    StaticType,
    VarDecl,
    Block,
    Binop,
    Unop,
    FieldAccess,
    ArrayAccess,
    Call,
    New,
    If,
    While,
    For,
    SwitchCase,
    Switch,
    EnumParameter,
    EnumIndex,
    Catch,
    Try,
    Throw,
    Return,
    ObjectField,
    ObjectDecl,
    ArrayDecl,
    FunctionArg,
    Function,
    Parenthesis,
    Meta,
    Cast,
    FieldDecl,
    FunctionDecl,
    ClassDecl,
    CompilationUnit,
):
    _model.model_rebuild()
