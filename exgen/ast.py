"""Target Node Algebra — immutable AST of the generated Elixir code (pure data).

A :class:`Node` is an envelope ``(kind, metadata, position)``; ``kind`` is one
of the closed set of frozen dataclasses below. Match-position constructs use
the parallel :data:`Pattern` algebra. Sequences are tuples so every tree is
hashable and structurally comparable.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from typing import Iterator, Union

# ── envelope ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class SourceSpan:
    file: str = ""
    line: int = 0
    col: int = 0
    end_line: int = 0
    end_col: int = 0

    def __str__(self) -> str:
        prefix = f"{self.file}:" if self.file else ""
        return f"{prefix}{self.line}:{self.col}-{self.end_line}:{self.end_col}"


@dataclass(frozen=True)
class Metadata:
    # Statically known to evaluate to a string
    yields_string: bool = False
    # Binding of a compiler-synthesized temporary
    infra_temp: bool = False
    # Produced a binding the enclosing block may drop (pattern-bound extraction)
    elided: bool = False
    # Non-empty when the output degraded and should be reviewed
    review: str = ""


EMPTY_METADATA = Metadata()


@dataclass(frozen=True)
class Node:
    kind: NodeKind
    metadata: Metadata = EMPTY_METADATA
    position: SourceSpan | None = None

    def with_metadata(self, **changes) -> Node:
        return dataclasses.replace(
            self, metadata=dataclasses.replace(self.metadata, **changes)
        )


# ── literals ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Integer:
    value: int


@dataclass(frozen=True)
class Float:
    value: float


@dataclass(frozen=True)
class String:
    value: str


@dataclass(frozen=True)
class Boolean:
    value: bool


@dataclass(frozen=True)
class Nil:
    pass


@dataclass(frozen=True)
class Atom:
    value: str


@dataclass(frozen=True)
class Var:
    name: str


@dataclass(frozen=True)
class Alias:
    """A module name used as a value (``Foo.Bar``)."""

    name: str


# ── collections ──────────────────────────────────────────────────


@dataclass(frozen=True)
class ListLit:
    elements: tuple[Node, ...] = ()


@dataclass(frozen=True)
class TupleLit:
    elements: tuple[Node, ...] = ()


@dataclass(frozen=True)
class MapLit:
    pairs: tuple[tuple[Node, Node], ...] = ()


@dataclass(frozen=True)
class KeywordList:
    pairs: tuple[tuple[str, Node], ...] = ()


@dataclass(frozen=True)
class StructLit:
    module: str
    fields: tuple[tuple[str, Node], ...] = ()


@dataclass(frozen=True)
class StructUpdate:
    """``%{target | field: value}``"""

    target: Node
    fields: tuple[tuple[str, Node], ...]


@dataclass(frozen=True)
class Range:
    first: Node
    last: Node
    step: Node | None = None


@dataclass(frozen=True)
class Interpolation:
    """A double-quoted string with ``#{}`` holes; parts are text or nodes."""

    parts: tuple[str | Node, ...]


# ── operators, access, calls ─────────────────────────────────────


@dataclass(frozen=True)
class BinOp:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Node


@dataclass(frozen=True)
class FieldGet:
    """``target.field``"""

    target: Node
    field: str


@dataclass(frozen=True)
class Access:
    """``target[key]``"""

    target: Node
    key: Node


@dataclass(frozen=True)
class RemoteCall:
    module: str
    function: str
    args: tuple[Node, ...] = ()


@dataclass(frozen=True)
class LocalCall:
    function: str
    args: tuple[Node, ...] = ()


@dataclass(frozen=True)
class AnonCall:
    """``fun.(args)``"""

    fun: Node
    args: tuple[Node, ...] = ()


@dataclass(frozen=True)
class Capture:
    """``&Module.function/arity`` (module empty for local captures)."""

    module: str
    function: str
    arity: int


# ── binding & control flow ───────────────────────────────────────


@dataclass(frozen=True)
class Match:
    """``pattern = value``"""

    pattern: Pattern
    value: Node


@dataclass(frozen=True)
class If:
    condition: Node
    then: Node
    else_: Node | None = None


@dataclass(frozen=True)
class CondClause:
    condition: Node
    body: Node


@dataclass(frozen=True)
class Cond:
    clauses: tuple[CondClause, ...]


@dataclass(frozen=True)
class CaseClause:
    pattern: Pattern
    body: Node
    guard: Node | None = None


@dataclass(frozen=True)
class Case:
    subject: Node
    clauses: tuple[CaseClause, ...]


@dataclass(frozen=True)
class WithClause:
    pattern: Pattern
    value: Node


@dataclass(frozen=True)
class With:
    clauses: tuple[WithClause, ...]
    body: Node
    else_clauses: tuple[CaseClause, ...] = ()


@dataclass(frozen=True)
class Generator:
    pattern: Pattern
    source: Node


@dataclass(frozen=True)
class Comprehension:
    generators: tuple[Generator, ...]
    body: Node
    filters: tuple[Node, ...] = ()
    into: Node | None = None


@dataclass(frozen=True)
class FnClause:
    params: tuple[Pattern, ...]
    body: Node


@dataclass(frozen=True)
class Fn:
    clauses: tuple[FnClause, ...]


@dataclass(frozen=True)
class RescueClause:
    pattern: Pattern
    body: Node


@dataclass(frozen=True)
class CatchClause:
    """``kind, pattern -> body`` where kind is ``:throw`` / ``:exit`` / ``:error``."""

    kind: str
    pattern: Pattern
    body: Node


@dataclass(frozen=True)
class Try:
    body: Node
    rescue: tuple[RescueClause, ...] = ()
    catch: tuple[CatchClause, ...] = ()
    after: Node | None = None


@dataclass(frozen=True)
class Raise:
    value: Node


@dataclass(frozen=True)
class Throw:
    value: Node


@dataclass(frozen=True)
class Block:
    """Sequential expressions. An empty block prints as nothing, unlike ``nil``."""

    expressions: tuple[Node, ...] = ()


@dataclass(frozen=True)
class CodeSplice:
    """Injected code argument spliced as raw code."""

    node: Node


@dataclass(frozen=True)
class InterpolatedSplice:
    """Injected code argument placed inside a quoted literal (``#{}``)."""

    node: Node


@dataclass(frozen=True)
class Raw:
    """Verbatim target code with positional substitutions."""

    segments: tuple[str | CodeSplice | InterpolatedSplice, ...]


# ── definitions ──────────────────────────────────────────────────


@dataclass(frozen=True)
class DefStruct:
    fields: tuple[tuple[str, Node], ...]
    # ``defexception`` rather than ``defstruct``
    exception: bool = False


@dataclass(frozen=True)
class Def:
    name: str
    params: tuple[Pattern, ...]
    body: Node
    private: bool = False


@dataclass(frozen=True)
class DefModule:
    name: str
    body: tuple[Node, ...]


NodeKind = Union[
    Integer,
    Float,
    String,
    Boolean,
    Nil,
    Atom,
    Var,
    Alias,
    ListLit,
    TupleLit,
    MapLit,
    KeywordList,
    StructLit,
    StructUpdate,
    Range,
    Interpolation,
    BinOp,
    UnaryOp,
    FieldGet,
    Access,
    RemoteCall,
    LocalCall,
    AnonCall,
    Capture,
    Match,
    If,
    Cond,
    Case,
    With,
    Comprehension,
    Fn,
    Try,
    Raise,
    Throw,
    Block,
    Raw,
    DefStruct,
    Def,
    DefModule,
]


# ── patterns ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class PVar:
    name: str


@dataclass(frozen=True)
class PLiteral:
    value: Node


@dataclass(frozen=True)
class PTuple:
    elements: tuple[Pattern, ...]


@dataclass(frozen=True)
class PList:
    elements: tuple[Pattern, ...]


@dataclass(frozen=True)
class PCons:
    heads: tuple[Pattern, ...]
    tail: Pattern


@dataclass(frozen=True)
class PMap:
    pairs: tuple[tuple[Node, Pattern], ...]


@dataclass(frozen=True)
class PStruct:
    module: str
    fields: tuple[tuple[str, Pattern], ...] = ()


@dataclass(frozen=True)
class PWildcard:
    pass


@dataclass(frozen=True)
class PPin:
    name: str


@dataclass(frozen=True)
class PAlias:
    """``pattern = name``"""

    pattern: Pattern
    name: str


Pattern = Union[PVar, PLiteral, PTuple, PList, PCons, PMap, PStruct, PWildcard, PPin, PAlias]

LITERAL_KINDS = (Integer, Float, String, Boolean, Nil, Atom)


# ── constructors ─────────────────────────────────────────────────


def nil() -> Node:
    return Node(Nil())


def atom(value: str) -> Node:
    return Node(Atom(value))


def var(name: str) -> Node:
    return Node(Var(name))


def integer(value: int) -> Node:
    return Node(Integer(value))


def string(value: str) -> Node:
    return Node(String(value), Metadata(yields_string=True))


def boolean(value: bool) -> Node:
    return Node(Boolean(value))


def block(nodes) -> Node:
    return Node(Block(tuple(nodes)))


def tuple_of(*nodes: Node) -> Node:
    return Node(TupleLit(tuple(nodes)))


def remote(module: str, function: str, *args: Node) -> Node:
    return Node(RemoteCall(module, function, tuple(args)))


def local(function: str, *args: Node) -> Node:
    return Node(LocalCall(function, tuple(args)))


def binop(op: str, left: Node, right: Node) -> Node:
    return Node(BinOp(op, left, right))


def match(pattern: Pattern, value: Node) -> Node:
    return Node(Match(pattern, value))


def fn(params: tuple[Pattern, ...], body: Node) -> Node:
    return Node(Fn((FnClause(params, body),)))


EMPTY_BLOCK = Node(Block(()))


# ── queries ──────────────────────────────────────────────────────


def is_literal(node: Node) -> bool:
    return isinstance(node.kind, LITERAL_KINDS)


def is_simple(node: Node) -> bool:
    """Side-effect-free and cheap to repeat: a variable or a literal."""
    return isinstance(node.kind, (Var, *LITERAL_KINDS))


def is_empty_block(node: Node) -> bool:
    return isinstance(node.kind, Block) and not node.kind.expressions


def flatten(nodes) -> list[Node]:
    """Splice nested blocks and drop elided bindings."""
    result: list[Node] = []
    for n in nodes:
        if n.metadata.elided:
            continue
        if isinstance(n.kind, Block) and n.metadata == EMPTY_METADATA:
            result.extend(flatten(n.kind.expressions))
        else:
            result.append(n)
    return result


def _sub_values(value) -> Iterator:
    if isinstance(value, (Node, str)) or value is None:
        yield value
    elif isinstance(value, tuple):
        for item in value:
            yield from _sub_values(item)
    elif dataclasses.is_dataclass(value):
        for f in dataclasses.fields(value):
            yield from _sub_values(getattr(value, f.name))


def child_nodes(node: Node) -> Iterator[Node]:
    """Direct child nodes of *node*, looking through clause/pattern records."""
    for f in dataclasses.fields(node.kind):
        for value in _sub_values(getattr(node.kind, f.name)):
            if isinstance(value, Node):
                yield value


def walk(node: Node) -> Iterator[Node]:
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(child_nodes(current))))


_IDENTIFIER = re.compile(r"\b[a-z_][A-Za-z0-9_]*\b")


def referenced_names(node: Node) -> set[str]:
    """Variable names read anywhere in *node* (binders excluded)."""
    names: set[str] = set()
    for n in walk(node):
        if isinstance(n.kind, Var):
            names.add(n.kind.name)
        elif isinstance(n.kind, Raw):
            for segment in n.kind.segments:
                if isinstance(segment, str):
                    names.update(_IDENTIFIER.findall(segment))
    return names
