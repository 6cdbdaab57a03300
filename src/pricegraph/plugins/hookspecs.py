"""Pluggy hook specifications for pricegraph builder and lint events.

Builder notifications are dispatched synchronously after the revision
changes. A hook failure never undoes the change; it becomes a warning.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from pricegraph.infrastructure.builder import ChangeNotice, StackNotice

hookspec = pluggy.HookspecMarker("pricegraph")
hookimpl = pluggy.HookimplMarker("pricegraph")


class PricegraphHookSpec:
    """Hook specifications for the pricegraph plugin system."""

    @hookspec
    def post_change(self, notice: ChangeNotice) -> None:
        """Called after load, apply, undo or redo replaced the revision."""

    @hookspec
    def post_stack(self, notice: StackNotice) -> None:
        """Called after the command history moved."""

    @hookspec
    def post_lint(
        self,
        issues_found: int,
        errors: int,
        warnings: int,
        issues: list[dict[str, Any]],
    ) -> None:
        """Called after a lint pass completes."""
