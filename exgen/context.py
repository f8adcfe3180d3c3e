"""Compilation Context — mutable state threaded explicitly through every builder.

Owns the scoped rename tables, the case-clause binder stack, the
infrastructure-temp tracker and the pattern-variable registry, plus the
callback into the root expression builder. Every nested block or clause is
entered through a context manager so the prior state is restored on every
exit path, including raised errors.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, TypeVar

from . import constants
from .ast import Node
from .build_types import BuildConfig, BuildStats
from .errors import BuildError
from .ir import ClassDecl, EnumDecl, Expr, FunctionDecl, Var
from .naming import module_name, numbered, var_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

ExprBuilder = Callable[[Expr, "CompilationContext"], Node]

# (subject key, constructor name, parameter index)
ExtractionSite = tuple[str, str, int]


@dataclass
class Scope:
    """Dual-key rename table: stable binder id and original name → target name."""

    by_id: dict[int, str] = field(default_factory=dict)
    by_name: dict[str, str] = field(default_factory=dict)

    def bind(self, var: Var, name: str) -> None:
        self.by_id[var.id] = name
        self.by_name[var.name] = name


@dataclass(frozen=True)
class ContextSnapshot:
    """Comparable copy of the scoped state, for save/restore checks."""

    scopes: tuple
    clauses: tuple
    infra_temps: tuple
    consumed_infra_temps: frozenset
    pattern_vars: tuple
    extraction_sites: tuple


class CompilationContext:
    def __init__(
        self,
        build: ExprBuilder | None = None,
        config: BuildConfig | None = None,
        classes: Iterable[ClassDecl] = (),
        enums: Iterable[EnumDecl] = (),
    ):
        self._build = build
        self.config = config or BuildConfig()
        self.stats = BuildStats()
        self.classes: dict[str, ClassDecl] = {}
        self.enums: dict[str, EnumDecl] = {}
        for cls in classes:
            self.register_class(cls)
        for enum in enums:
            self.register_enum(enum)
        self.current_class: ClassDecl | None = None
        self.current_function: FunctionDecl | None = None
        self.receiver: str | None = None
        self._scopes: list[Scope] = [Scope()]
        self._clauses: list[Scope] = []
        self._infra_temps: dict[str, Expr] = {}
        self._consumed_infra_temps: set[str] = set()
        self._pattern_vars: dict[int, str] = {}
        self._extraction_sites: dict[ExtractionSite, str] = {}
        self._temps: set[str] = set()
        # State names of each enclosing loop, innermost last
        self._loops: list[tuple[str, ...]] = []

    # ── declarations ─────────────────────────────────────────────

    def register_class(self, cls: ClassDecl) -> None:
        self.classes[cls.name] = cls
        self.classes[cls.qualified_name] = cls

    def register_enum(self, enum: EnumDecl) -> None:
        self.enums[enum.name] = enum
        if enum.module:
            self.enums[f"{enum.module}.{enum.name}"] = enum

    def lookup_class(self, name: str) -> ClassDecl | None:
        return self.classes.get(name)

    def lookup_enum(self, name: str) -> EnumDecl | None:
        return self.enums.get(name)

    def module_for(self, type_name: str) -> str:
        """Target module name for a class or enum, honoring native renames."""
        cls = self.classes.get(type_name)
        if cls is not None:
            return cls.native_name or module_name(cls.qualified_name)
        enum = self.enums.get(type_name)
        if enum is not None:
            path = f"{enum.module}.{enum.name}" if enum.module else enum.name
            return enum.native_name or module_name(path)
        return module_name(type_name)

    def is_current_module(self, type_name: str) -> bool:
        if self.current_class is None:
            return False
        return type_name in (self.current_class.name, self.current_class.qualified_name)

    # ── recursion ────────────────────────────────────────────────

    def build(self, expr: Expr) -> Node:
        """Build *expr* through the root dispatcher, threading this context."""
        if self._build is None:
            raise BuildError("CompilationContext has no expression builder attached")
        return self._build(expr, self)

    # ── name resolution ──────────────────────────────────────────

    def resolve_name(self, binder_id: int, original_name: str) -> str:
        """Resolve a binder to its target name.

        Priority: pattern-variable registry, clause stack (innermost first),
        rename tables by id then by original name, receiver aliases, and
        finally the case-normalized original name.
        """
        if binder_id in self._pattern_vars:
            return self._pattern_vars[binder_id]
        for clause in reversed(self._clauses):
            if binder_id in clause.by_id:
                return clause.by_id[binder_id]
            if original_name in clause.by_name:
                return clause.by_name[original_name]
        for scope in reversed(self._scopes):
            if binder_id in scope.by_id:
                return scope.by_id[binder_id]
        for scope in reversed(self._scopes):
            if original_name in scope.by_name:
                return scope.by_name[original_name]
        if original_name in constants.RESERVED_RECEIVER_NAMES and self.receiver:
            return self.receiver
        return var_name(original_name)

    def declare(self, var: Var, name: str | None = None) -> str:
        """Bind *var* in the innermost scope and return its target name.

        A name already bound to a different binder in an enclosing scope is
        numbered, so a nested declaration never clobbers an outer variable.
        """
        current = self._scopes[-1]
        if name is None:
            for scope in reversed(self._scopes[:-1]):
                if var.id in scope.by_id:
                    current.bind(var, scope.by_id[var.id])
                    return scope.by_id[var.id]
            base = var_name(var.name)
            taken = {
                bound
                for scope in self._scopes[:-1]
                for binder_id, bound in scope.by_id.items()
                if binder_id != var.id
            }
            name = numbered(base, taken | self._temps)
        current.bind(var, name)
        return name

    def is_bound(self, var: Var) -> bool:
        """True if *var* was declared in any active scope or clause."""
        if var.id in self._pattern_vars:
            return True
        if any(var.id in clause.by_id for clause in self._clauses):
            return True
        return any(var.id in scope.by_id for scope in self._scopes)

    def fresh_temp(self, prefix: str = constants.NULL_COALESCING_TEMP) -> str:
        """A name no active binder or earlier temp in this function uses."""
        taken = {n for s in self._scopes for n in s.by_id.values()}
        taken.update(n for c in self._clauses for n in c.by_id.values())
        taken.update(self._pattern_vars.values())
        name = numbered(prefix, taken | self._temps)
        self._temps.add(name)
        return name

    def describe_scope(self) -> str:
        parts = []
        if self.current_class is not None:
            parts.append(self.current_class.name)
        if self.current_function is not None:
            parts.append(self.current_function.name)
        parts.append(f"depth={len(self._scopes)}")
        return "/".join(parts)

    @property
    def depth(self) -> int:
        return len(self._scopes)

    # ── scopes ───────────────────────────────────────────────────

    @contextmanager
    def scope(self, seed: Iterable[tuple[Var, str]] = ()) -> Iterator[Scope]:
        """Enter a nested block scope; prior scope and infra-temp state restored on exit."""
        saved_infra = dict(self._infra_temps)
        saved_consumed = set(self._consumed_infra_temps)
        new_scope = Scope()
        for var, name in seed:
            new_scope.bind(var, name)
        self._scopes.append(new_scope)
        try:
            yield new_scope
        finally:
            self._scopes.pop()
            self._infra_temps = saved_infra
            self._consumed_infra_temps = saved_consumed

    def with_scope(self, seed: Iterable[tuple[Var, str]], body: Callable[[], T]) -> T:
        with self.scope(seed):
            return body()

    @contextmanager
    def function_scope(
        self,
        cls: ClassDecl | None = None,
        function: FunctionDecl | None = None,
        receiver: str | None = None,
    ) -> Iterator[Scope]:
        """Fresh top-level scope for one function body."""
        saved = (
            self._scopes,
            self._clauses,
            self._infra_temps,
            self._consumed_infra_temps,
            self._pattern_vars,
            self._extraction_sites,
            self._temps,
            self._loops,
            self.current_class,
            self.current_function,
            self.receiver,
        )
        self._scopes = [Scope()]
        self._clauses = []
        self._infra_temps = {}
        self._consumed_infra_temps = set()
        self._pattern_vars = {}
        self._extraction_sites = {}
        self._temps = set()
        self._loops = []
        if cls is not None:
            self.current_class = cls
        self.current_function = function
        self.receiver = receiver
        try:
            yield self._scopes[0]
        finally:
            (
                self._scopes,
                self._clauses,
                self._infra_temps,
                self._consumed_infra_temps,
                self._pattern_vars,
                self._extraction_sites,
                self._temps,
                self._loops,
                self.current_class,
                self.current_function,
                self.receiver,
            ) = saved

    # ── case clauses ─────────────────────────────────────────────

    def push_clause(self, mapping: Iterable[tuple[Var, str]]) -> None:
        clause = Scope()
        for var, name in mapping:
            clause.bind(var, name)
        self._clauses.append(clause)

    def pop_clause(self) -> None:
        self._clauses.pop()

    @contextmanager
    def clause(self, mapping: Iterable[tuple[Var, str]]) -> Iterator[None]:
        self.push_clause(mapping)
        try:
            yield
        finally:
            self.pop_clause()

    # ── loops ────────────────────────────────────────────────────

    @contextmanager
    def loop(self, state: Iterable[str]) -> Iterator[None]:
        """Enter a loop body whose iterations thread *state* between them."""
        self._loops.append(tuple(state))
        try:
            yield
        finally:
            self._loops.pop()

    @contextmanager
    def outside_loops(self) -> Iterator[None]:
        """A nested function body: enclosing loops are out of reach."""
        saved = self._loops
        self._loops = []
        try:
            yield
        finally:
            self._loops = saved

    @property
    def in_loop(self) -> bool:
        return bool(self._loops)

    @property
    def loop_state(self) -> tuple[str, ...]:
        """State names of the innermost enclosing loop."""
        return self._loops[-1] if self._loops else ()

    # ── infrastructure temporaries ───────────────────────────────

    @staticmethod
    def is_infra_temp(name: str) -> bool:
        return bool(constants.INFRA_TEMP_PATTERN.match(name))

    def record_infra_temp_init(self, name: str, init: Expr) -> None:
        self._infra_temps[name] = init

    def lookup_infra_temp_init(self, name: str) -> Expr | None:
        return self._infra_temps.get(name)

    def consume_infra_temp(self, name: str) -> None:
        """Mark a temp whose initializer was inlined into a rewrite."""
        self._consumed_infra_temps.add(name)

    def is_consumed_infra_temp(self, name: str) -> bool:
        return name in self._consumed_infra_temps

    # ── pattern-variable registry ────────────────────────────────

    def lookup_extraction_site(self, site: ExtractionSite) -> str | None:
        return self._extraction_sites.get(site)

    def is_pattern_var(self, var: Var) -> bool:
        return var.id in self._pattern_vars

    @contextmanager
    def pattern_bindings(
        self,
        binders: Iterable[tuple[Var, str]],
        sites: Iterable[tuple[ExtractionSite, str]] = (),
    ) -> Iterator[None]:
        """Register pattern-extracted binders for the duration of one branch."""
        saved_vars = dict(self._pattern_vars)
        saved_sites = dict(self._extraction_sites)
        for var, name in binders:
            self._pattern_vars[var.id] = name
        for site, name in sites:
            self._extraction_sites[site] = name
        try:
            yield
        finally:
            self._pattern_vars = saved_vars
            self._extraction_sites = saved_sites

    # ── snapshots ────────────────────────────────────────────────

    def snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            scopes=tuple(
                (tuple(sorted(s.by_id.items())), tuple(sorted(s.by_name.items())))
                for s in self._scopes
            ),
            clauses=tuple(
                (tuple(sorted(c.by_id.items())), tuple(sorted(c.by_name.items())))
                for c in self._clauses
            ),
            infra_temps=tuple(sorted(self._infra_temps)),
            consumed_infra_temps=frozenset(self._consumed_infra_temps),
            pattern_vars=tuple(sorted(self._pattern_vars.items())),
            extraction_sites=tuple(sorted(self._extraction_sites.items())),
        )
