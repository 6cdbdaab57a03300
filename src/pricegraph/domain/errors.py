"""Exceptions raised at the mutation boundary.

Validation and simulation never raise; they return diagnostics. Only
loading a revision or applying an edit command can fail, and both leave
the previous revision in place.
"""

from __future__ import annotations


class InvalidConfigError(ValueError):
    """A loaded document violates structural invariants."""

    def __init__(self, issues: list[str]) -> None:
        self.issues = list(issues)
        summary = "; ".join(self.issues[:3])
        if len(self.issues) > 3:
            summary += f" (+{len(self.issues) - 3} more)"
        super().__init__(f"Invalid configuration: {summary}")


class CommandError(ValueError):
    """An edit command was rejected; ``code`` is a stable machine-readable key."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)
