"""Build pipeline data types (pure data, no business logic)."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BuildConfig:
    """Groups builder configuration."""

    # Strategy for enums that do not declare one themselves.
    idiomatic_enums_default: bool = False
    emit_comprehensions: bool = True
    inline_null_coalescing: bool = True
    # Wildcard pattern binders the branch body never references.
    strict_binders: bool = True


@dataclass
class BuildStats:
    """Counts of idiom reconstructions, fallbacks and degraded output."""

    rewrites: Counter = field(default_factory=Counter)
    fallbacks: Counter = field(default_factory=Counter)
    passthrough_methods: list[str] = field(default_factory=list)
    modules_built: int = 0
    functions_built: int = 0

    def record_rewrite(self, name: str) -> None:
        self.rewrites[name] += 1

    def record_fallback(self, name: str) -> None:
        self.fallbacks[name] += 1

    def report(self) -> str:
        lines = [
            "═══ Build Statistics ═══",
            f"  Modules: {self.modules_built}, functions: {self.functions_built}",
            "",
            f"  {'Reconstruction':<30} {'Count':>6}",
            f"  {'─' * 30} {'─' * 6}",
        ]
        for name, count in sorted(self.rewrites.items()):
            lines.append(f"  {name:<30} {count:>6}")
        if self.fallbacks:
            lines.append("")
            lines.append(f"  {'Fallback':<30} {'Count':>6}")
            lines.append(f"  {'─' * 30} {'─' * 6}")
            for name, count in sorted(self.fallbacks.items()):
                lines.append(f"  {name:<30} {count:>6}")
        if self.passthrough_methods:
            lines.append("")
            lines.append(
                "  Passthrough methods (review): "
                + ", ".join(sorted(set(self.passthrough_methods)))
            )
        return "\n".join(lines)
