"""ResolveService: visible fields, visible groups and composed services."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pricegraph.domain.composer import compose_entries
from pricegraph.domain.keys import canonical_key
from pricegraph.domain.models import Field, Tag
from pricegraph.domain.selection import Selection
from pricegraph.domain.types import Env
from pricegraph.domain.visibility import (
    MultiGroup,
    resolve_tag_context,
    resolve_visible_group,
    visible_fields,
)
from pricegraph.services.base import BaseService
from pricegraph.services.result import ServiceResult
from pricegraph.services.telemetry import trace_span, traced


def _field_summary(fld: Field) -> dict[str, Any]:
    return {
        "id": fld.id,
        "label": fld.label,
        "type": fld.type,
        "button": fld.button,
        "options": [opt.id for opt in fld.options],
    }


def _tag_summary(tag: Tag) -> dict[str, Any]:
    return {"id": tag.id, "label": tag.label, "service_id": tag.service_id}


class ResolveService(BaseService):
    """Read-side queries against the current revision."""

    def _selection(self, keys: Iterable[str]) -> Selection:
        index = self._builder.index
        return Selection.of(canonical_key(index, key) for key in keys)

    @traced
    def visible(self, tag_id: str, selected: Iterable[str] = ()) -> ServiceResult:
        """Ordered fields visible under *tag_id* for the selected trigger keys."""
        index = self._builder.index
        if index.tag(tag_id) is None:
            return ServiceResult.unknown_tag("visible", tag_id)
        selection = self._selection(selected)
        result = visible_fields(index.props, tag_id, selection, index=index)
        return ServiceResult(
            ok=True,
            op="visible",
            data={
                "tag_id": tag_id,
                "selection": list(selection.ids),
                "field_ids": list(result.field_ids),
                "fields": [_field_summary(fld) for fld in result.fields],
            },
        )

    @traced
    def compose(self, selected: Iterable[str] = (), *, tag_id: str | None = None) -> ServiceResult:
        """Ordered services for the selection; the tag context is inferred when omitted."""
        index = self._builder.index
        selection = self._selection(selected)
        if tag_id is not None and index.tag(tag_id) is None:
            return ServiceResult.unknown_tag("compose", tag_id)
        if tag_id is None:
            tag_id = resolve_tag_context(index, selection, self._builder.root_tag_id)
        tag = index.tag(tag_id)

        with trace_span("compose_entries", tag_id=tag_id):
            entries = compose_entries(
                index.props, tag, selection, self._builder.resolve_service, index=index
            )
        warnings = [
            f"Service {entry.service.id} has no known capability record"
            for entry in entries
            if self._builder.resolve_service(entry.service.id) is None
        ]
        return ServiceResult(
            ok=True,
            op="compose",
            data={
                "tag_id": tag_id,
                "selection": list(selection.ids),
                "service_ids": [entry.service.id for entry in entries],
                "services": [
                    {
                        "id": entry.service.id,
                        "rate": entry.service.rate,
                        "role": entry.role.value,
                        "source_id": entry.source_id,
                        "field_id": entry.field_id,
                    }
                    for entry in entries
                ],
            },
            warnings=warnings,
        )

    @traced
    def group(self, selected: Iterable[str] = (), *, env: Env = Env.CLIENT) -> ServiceResult:
        """Visible-group snapshot: tag context, fields, tag tree neighbours, services."""
        selection = self._selection(selected)
        resolved = resolve_visible_group(
            self._builder.get_props(),
            selection,
            resolve_service=self._builder.resolve_service,
            root_tag_id=self._builder.root_tag_id,
            env=env,
        )
        if isinstance(resolved, MultiGroup):
            return ServiceResult(
                ok=True,
                op="group",
                data={"kind": resolved.kind, "groups": list(resolved.groups)},
            )

        group = resolved.group
        return ServiceResult(
            ok=True,
            op="group",
            data={
                "kind": resolved.kind,
                "tag_id": group.tag_id,
                "field_ids": list(group.field_ids),
                "fields": [_field_summary(fld) for fld in group.fields],
                "parent_tags": [_tag_summary(tag) for tag in group.parent_tags],
                "children_tags": [_tag_summary(tag) for tag in group.children_tags],
                "services": [cap.as_record() for cap in group.services],
            },
        )

    @traced
    def tree(self) -> ServiceResult:
        """Node/edge snapshot of the revision graph."""
        snapshot = self._builder.tree()
        return ServiceResult(
            ok=True,
            op="tree",
            data=snapshot,
            meta={"nodes": len(snapshot["nodes"]), "edges": len(snapshot["edges"])},
        )
