"""Selection: explicit, immutable selection state passed into every query.

Ids keep insertion order (the order they were chosen), which drives
service composition. Every mutator returns a new Selection.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Selection:
    """Ordered set of selected ids plus the tracked primary and tag context."""

    ids: tuple[str, ...] = ()
    primary: str | None = None
    current_tag: str | None = None

    @classmethod
    def of(cls, ids: Iterable[str], *, primary: str | None = None) -> Selection:
        unique = tuple(dict.fromkeys(ids))
        if primary is None and unique:
            primary = unique[0]
        return cls(ids=unique, primary=primary)

    def __contains__(self, item: object) -> bool:
        return item in self.ids

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids)

    def __len__(self) -> int:
        return len(self.ids)

    def add(self, item: str) -> Selection:
        ids = self.ids if item in self.ids else (*self.ids, item)
        return replace(self, ids=ids, primary=item)

    def remove(self, item: str) -> Selection:
        if item not in self.ids:
            return self
        ids = tuple(i for i in self.ids if i != item)
        primary = self.primary
        if primary == item:
            primary = ids[0] if ids else None
        return replace(self, ids=ids, primary=primary)

    def toggle(self, item: str) -> Selection:
        return self.remove(item) if item in self.ids else self.add(item)

    def replace_with(self, item: str | None) -> Selection:
        if not item:
            return self.clear()
        return replace(self, ids=(item,), primary=item)

    def clear(self) -> Selection:
        return replace(self, ids=(), primary=None)

    def with_tag(self, tag_id: str | None) -> Selection:
        return replace(self, current_tag=tag_id)
