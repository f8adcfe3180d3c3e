"""Build error hierarchy."""

from __future__ import annotations


class BuildError(Exception):
    """Base class for failures raised while building the target AST."""

    pass


class InvariantViolation(BuildError):
    """An upstream structural precondition does not hold.

    These indicate a contract breach by the front-end (or an earlier
    builder layer), never ordinary heterogeneity in input programs, so
    they abort the enclosing compilation unit.
    """

    def __init__(self, message: str, *, node_kind: str = "", scope: str = ""):
        self.node_kind = node_kind
        self.scope = scope
        details = [message]
        if node_kind:
            details.append(f"node={node_kind}")
        if scope:
            details.append(f"scope={scope}")
        super().__init__(" | ".join(details))


class UnitLoadError(BuildError):
    """Raised when a serialized compilation unit fails validation."""

    pass
