"""Builder: owner of the current revision and its edit history.

The Builder is the only stateful object in the engine. Reads return
immutable revisions; writes go through :meth:`Builder.load` or an edit
command passed to :meth:`Builder.apply`, and are serialized by an RLock.

INVARIANT: Plugin failures are warnings, never errors.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pricegraph.domain.commands import EditCommand
from pricegraph.domain.errors import CommandError, InvalidConfigError
from pricegraph.domain.keys import canonical_key
from pricegraph.domain.models import (
    ConfigIndex,
    ServiceCapability,
    ServiceProps,
    coerce_service_map,
    lookup_service,
)
from pricegraph.domain.normalise import normalise
from pricegraph.domain.selection import Selection
from pricegraph.domain.types import ROOT_TAG_ID, ServiceId
from pricegraph.domain.visibility import visible_fields
from pricegraph.infrastructure.graph.engine import GraphEngine
from pricegraph.infrastructure.history import (
    DEFAULT_HISTORY_LIMIT,
    History,
    HistoryEntry,
    diff_sections,
    restore_sections,
)

if TYPE_CHECKING:
    from pricegraph.plugins.manager import PluginManager

logger = logging.getLogger(__name__)

type ChangeReason = Literal["load", "apply", "undo", "redo"]


@dataclass(frozen=True)
class ChangeNotice:
    props: ServiceProps
    reason: ChangeReason
    command: str | None = None


@dataclass(frozen=True)
class StackNotice:
    stack_size: int
    index: int


@dataclass(frozen=True)
class CommandOutcome:
    """What a write did: whether the revision changed, the revision, hook warnings."""

    changed: bool
    revision: ServiceProps
    warnings: tuple[str, ...] = ()
    entry: HistoryEntry | None = None


def structural_issues(props: ServiceProps) -> list[str]:
    """Invariant violations that make a revision unloadable.

    Duplicate tag/field ids (tags and fields share one id space), duplicate
    option ids within a field, and ``bind_id`` values naming no tag.
    """
    issues: list[str] = []
    id_counts = Counter([t.id for t in props.filters] + [f.id for f in props.fields])
    for node_id, count in id_counts.items():
        if count > 1:
            issues.append(f"duplicate id {node_id!r} ({count} nodes)")

    tag_ids = {t.id for t in props.filters}
    for tag in props.filters:
        if not tag.id:
            issues.append("tag with empty id")
        if tag.bind_id is not None and tag.bind_id not in tag_ids:
            issues.append(f"tag {tag.id!r} binds to unknown tag {tag.bind_id!r}")
    for fld in props.fields:
        if not fld.id:
            issues.append("field with empty id")
        for tag_id in fld.bind_ids:
            if tag_id not in tag_ids:
                issues.append(f"field {fld.id!r} binds to unknown tag {tag_id!r}")
        option_counts = Counter(opt.id for opt in fld.options)
        for option_id, count in option_counts.items():
            if count > 1:
                issues.append(f"field {fld.id!r} repeats option id {option_id!r}")
    return issues


class Builder:
    """Revision owner with bounded, index-addressed undo/redo.

    Parameters:
        history_limit: Maximum number of history entries kept.
        validate: Reject structurally invalid documents on load and edits that
            introduce a structural issue.
        services: Optional service-capability map used by resolvers.
        plugins: Optional plugin manager receiving change notifications.
        root_tag_id: Tag used when no tag context can be inferred.
    """

    def __init__(
        self,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        validate: bool = True,
        services: Mapping[Any, Any] | None = None,
        plugins: PluginManager | None = None,
        root_tag_id: str = ROOT_TAG_ID,
    ) -> None:
        self._lock = threading.RLock()
        self._history = History(history_limit)
        self._validate = validate
        self._plugins = plugins
        self._services: dict[ServiceId, ServiceCapability] = coerce_service_map(services or {})
        self._props = normalise({})
        self._index: ConfigIndex | None = None
        self.root_tag_id = root_tag_id

    # ── reads ──────────────────────────────────────────────────────────

    def get_props(self) -> ServiceProps:
        return self._props

    @property
    def index(self) -> ConfigIndex:
        """Lookup index for the current revision, built once per revision."""
        with self._lock:
            if self._index is None or self._index.props is not self._props:
                self._index = ConfigIndex.of(self._props)
            return self._index

    @property
    def history(self) -> History:
        return self._history

    @property
    def plugins(self) -> PluginManager | None:
        return self._plugins

    @property
    def service_map(self) -> Mapping[ServiceId, ServiceCapability]:
        return self._services

    def set_service_map(self, services: Mapping[Any, Any]) -> None:
        self._services = coerce_service_map(services)

    def resolve_service(self, service_id: ServiceId) -> ServiceCapability | None:
        return lookup_service(self._services, service_id)

    def visible_fields(self, tag_id: str, selection_keys: Iterable[str] = ()) -> list[str]:
        """Ordered field ids visible under *tag_id* for the given selected keys."""
        index = self.index
        selection = Selection.of(canonical_key(index, key) for key in selection_keys)
        return list(visible_fields(index.props, tag_id, selection, index=index).field_ids)

    def effective_constraints(self, tag_id: str) -> dict[str, bool]:
        tag = self.index.tag(tag_id)
        return dict(tag.constraints) if tag is not None else {}

    def tree(self) -> dict[str, Any]:
        """Graph snapshot of the revision: tag, field and option nodes plus typed edges."""
        return GraphEngine(self._props).snapshot()

    def cleaned_props(self) -> ServiceProps:
        """Current revision with dangling reveal keys, targets and orderings pruned."""
        index = self.index
        props = index.props
        field_ids = set(index.fields)

        def triggers(mapping: Mapping[str, tuple[str, ...]]) -> dict[str, tuple[str, ...]]:
            out: dict[str, tuple[str, ...]] = {}
            for key, targets in mapping.items():
                if key not in index.option_owner and key not in field_ids:
                    continue
                kept = tuple(t for t in targets if t in field_ids)
                if kept:
                    out[key] = kept
            return out

        order = {
            tag_id: kept
            for tag_id, ids in props.order_for_tags.items()
            if tag_id in index.tags and (kept := tuple(i for i in ids if i in field_ids))
        }
        tags = tuple(
            tag.model_copy(
                update={
                    "includes": tuple(i for i in tag.includes if i in field_ids),
                    "excludes": tuple(i for i in tag.excludes if i in field_ids),
                }
            )
            for tag in props.filters
        )
        return props.model_copy(
            update={
                "filters": tags,
                "includes_for_buttons": triggers(props.includes_for_buttons),
                "excludes_for_buttons": triggers(props.excludes_for_buttons),
                "order_for_tags": order,
            }
        )

    # ── writes ─────────────────────────────────────────────────────────

    def load(self, raw: ServiceProps | Mapping[str, Any]) -> CommandOutcome:
        """Replace the revision with a normalised *raw* and clear history.

        Raises:
            InvalidConfigError: If *raw* is not a mapping or, with validation
                enabled, breaks a structural invariant. The prior revision
                is kept.
        """
        try:
            props = normalise(raw)
        except TypeError as exc:
            raise InvalidConfigError([str(exc)]) from exc
        if self._validate:
            issues = structural_issues(props)
            if issues:
                raise InvalidConfigError(issues)

        with self._lock:
            self._props = props
            self._history.clear()
            logger.debug(
                "Loaded revision: %d tags, %d fields", len(props.filters), len(props.fields)
            )
            warnings: list[str] = []
            self._notify("post_change", ChangeNotice(props=props, reason="load"), warnings)
            return CommandOutcome(changed=True, revision=props, warnings=tuple(warnings))

    def apply(self, command: EditCommand) -> CommandOutcome:
        """Run *command* against the current revision and record it.

        Raises:
            CommandError: If the command is rejected; nothing changes.
        """
        with self._lock:
            before = self._props
            after = command.apply(before)
            if after == before:
                return CommandOutcome(changed=False, revision=before)
            if self._validate:
                known = set(structural_issues(before))
                introduced = [i for i in structural_issues(after) if i not in known]
                if introduced:
                    raise CommandError("invalid_config", "; ".join(introduced))

            old, new = diff_sections(before, after)
            entry = HistoryEntry(
                name=command.name,
                reason="apply",
                command=command.model_dump(mode="json"),
                before=old,
                after=new,
            )
            self._history.push(entry)
            self._props = after
            logger.debug("Applied %s (sections: %s)", command.name, ", ".join(entry.sections))
            return self._after_move(after, "apply", entry)

    def undo(self) -> CommandOutcome:
        with self._lock:
            entry = self._history.step_back()
            if entry is None:
                return CommandOutcome(changed=False, revision=self._props)
            self._props = restore_sections(self._props, entry.before)
            return self._after_move(self._props, "undo", entry)

    def redo(self) -> CommandOutcome:
        with self._lock:
            entry = self._history.step_forward()
            if entry is None:
                return CommandOutcome(changed=False, revision=self._props)
            self._props = restore_sections(self._props, entry.after)
            return self._after_move(self._props, "redo", entry)

    def _after_move(
        self, props: ServiceProps, reason: ChangeReason, entry: HistoryEntry
    ) -> CommandOutcome:
        warnings: list[str] = []
        self._notify(
            "post_change", ChangeNotice(props=props, reason=reason, command=entry.name), warnings
        )
        self._notify(
            "post_stack",
            StackNotice(stack_size=self._history.size, index=self._history.index),
            warnings,
        )
        return CommandOutcome(changed=True, revision=props, warnings=tuple(warnings), entry=entry)

    def _notify(self, hook_name: str, notice: object, warnings: list[str]) -> None:
        """Dispatch a builder notification. No-op without a plugin manager."""
        if self._plugins is None:
            return
        try:
            getattr(self._plugins.hook, hook_name)(notice=notice)
        except Exception:
            logger.debug("Plugin hook %s failed", hook_name, exc_info=True)
            warnings.append(f"Plugin hook {hook_name} failed")
