"""EditService: loading, command application and undo/redo.

INVARIANT: errors from the builder never escape; they become
``ServiceResult(ok=False)`` with a stable error code.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pricegraph.domain.commands import EditCommand, command_from_dict
from pricegraph.domain.errors import CommandError, InvalidConfigError
from pricegraph.infrastructure.builder import CommandOutcome
from pricegraph.infrastructure.history import History
from pricegraph.services.base import BaseService
from pricegraph.services.result import ErrorCode, ServiceResult
from pricegraph.services.telemetry import traced


def _outcome_data(outcome: CommandOutcome, history: History) -> dict[str, Any]:
    return {
        "changed": outcome.changed,
        "command": outcome.entry.name if outcome.entry is not None else None,
        "sections": outcome.entry.sections if outcome.entry is not None else [],
        "stack_size": history.size,
        "index": history.index,
    }


class EditService(BaseService):
    """Write-side operations against the builder."""

    @traced
    def load(self, raw: Mapping[str, Any]) -> ServiceResult:
        try:
            outcome = self._builder.load(raw)
        except InvalidConfigError as exc:
            return ServiceResult.failure(
                "load", ErrorCode.INVALID_CONFIG, str(exc), issues=exc.issues
            )
        props = outcome.revision
        return ServiceResult(
            ok=True,
            op="load",
            data={"tags": len(props.filters), "fields": len(props.fields)},
            warnings=list(outcome.warnings),
        )

    @traced
    def apply(self, command: EditCommand | Mapping[str, Any]) -> ServiceResult:
        """Apply a command object or its dumped form."""
        try:
            cmd = command if isinstance(command, EditCommand) else command_from_dict(dict(command))
            outcome = self._builder.apply(cmd)
        except CommandError as exc:
            code = ErrorCode.NOT_FOUND if exc.code == "not_found" else ErrorCode.COMMAND_REJECTED
            return ServiceResult.failure("apply", code, str(exc), reason=exc.code)
        return ServiceResult(
            ok=True,
            op="apply",
            data=_outcome_data(outcome, self._builder.history),
            warnings=list(outcome.warnings),
        )

    @traced
    def undo(self) -> ServiceResult:
        outcome = self._builder.undo()
        if not outcome.changed:
            return ServiceResult.failure("undo", ErrorCode.NOTHING_TO_UNDO, "Nothing to undo")
        return ServiceResult(
            ok=True,
            op="undo",
            data=_outcome_data(outcome, self._builder.history),
            warnings=list(outcome.warnings),
        )

    @traced
    def redo(self) -> ServiceResult:
        outcome = self._builder.redo()
        if not outcome.changed:
            return ServiceResult.failure("redo", ErrorCode.NOTHING_TO_REDO, "Nothing to redo")
        return ServiceResult(
            ok=True,
            op="redo",
            data=_outcome_data(outcome, self._builder.history),
            warnings=list(outcome.warnings),
        )

    def history(self) -> ServiceResult:
        history = self._builder.history
        return ServiceResult(
            ok=True,
            op="history",
            data={
                "entries": [entry.to_dict() for entry in history.entries],
                "index": history.index,
                "can_undo": history.can_undo,
                "can_redo": history.can_redo,
            },
        )
