"""Index-addressed edit history.

Each entry stores only the top-level revision sections a command changed,
before and after, so history can be inspected, capped and replayed
without keeping executable closures around.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pricegraph.domain.models import ServiceProps

DEFAULT_HISTORY_LIMIT = 50


@dataclass(frozen=True)
class HistoryEntry:
    name: str
    reason: str = "apply"
    command: dict[str, Any] | None = None
    before: dict[str, Any] = field(default_factory=dict)
    after: dict[str, Any] = field(default_factory=dict)

    @property
    def sections(self) -> list[str]:
        """Names of the revision sections this entry touches."""
        return sorted(set(self.before) | set(self.after))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "reason": self.reason, "command": self.command, "sections": self.sections}


def _sections(props: ServiceProps) -> dict[str, Any]:
    return props.model_dump(by_alias=True)


def diff_sections(before: ServiceProps, after: ServiceProps) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return ``(old, new)`` values of every top-level section that differs."""
    old = _sections(before)
    new = _sections(after)
    changed = [key for key in new if old.get(key) != new[key]]
    return {key: old[key] for key in changed}, {key: new[key] for key in changed}


def restore_sections(props: ServiceProps, sections: dict[str, Any]) -> ServiceProps:
    """Overlay stored section values onto *props*."""
    return ServiceProps.model_validate({**_sections(props), **sections})


class History:
    """Bounded command history with a cursor.

    ``cursor`` counts applied entries: ``entries[:cursor]`` can be undone
    (newest last), ``entries[cursor:]`` can be redone.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            msg = f"History limit must be >= 1, got {limit}"
            raise ValueError(msg)
        self._limit = limit
        self._entries: list[HistoryEntry] = []
        self._cursor = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        """Position of the newest applied entry; -1 when nothing can be undone."""
        return self._cursor - 1

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._entries)

    def push(self, entry: HistoryEntry) -> None:
        """Append *entry*, dropping the redo tail and the oldest entries over the limit."""
        del self._entries[self._cursor :]
        self._entries.append(entry)
        overflow = len(self._entries) - self._limit
        if overflow > 0:
            del self._entries[:overflow]
        self._cursor = len(self._entries)

    def step_back(self) -> HistoryEntry | None:
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self._entries[self._cursor]

    def step_forward(self) -> HistoryEntry | None:
        if not self.can_redo:
            return None
        entry = self._entries[self._cursor]
        self._cursor += 1
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = 0
