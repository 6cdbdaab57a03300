"""Visibility resolution: which fields show under a tag for a given selection.

Pure functions of (revision, tag context, selection). Unknown ids in the
reveal maps, tag includes/excludes, and tag orderings are ignored here;
the lint pass reports them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Literal

from pricegraph.domain.composer import compose_services
from pricegraph.domain.keys import owner_field, resolve_trigger
from pricegraph.domain.models import ConfigIndex, Field, ServiceCapability, ServiceProps, Tag
from pricegraph.domain.selection import Selection
from pricegraph.domain.types import ROOT_TAG_ID, Env, ServiceId

type ServiceResolver = Callable[[ServiceId], ServiceCapability | None]


@dataclass(frozen=True)
class VisibleFields:
    """Ordered visible fields and the parallel id list."""

    fields: tuple[Field, ...] = ()
    field_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class VisibleGroup:
    """Resolved visible group for one tag context."""

    tag_id: str | None = None
    tag: Tag | None = None
    fields: tuple[Field, ...] = ()
    field_ids: tuple[str, ...] = ()
    parent_tags: tuple[Tag, ...] = ()
    children_tags: tuple[Tag, ...] = ()
    services: tuple[ServiceCapability, ...] = ()


@dataclass(frozen=True)
class SingleGroup:
    group: VisibleGroup
    kind: Literal["single"] = "single"


@dataclass(frozen=True)
class MultiGroup:
    """Several tags selected in the workspace; the raw selection is returned."""

    groups: tuple[str, ...] = field(default_factory=tuple)
    kind: Literal["multi"] = "multi"


# ---------------------------------------------------------------------------
# Trigger set and field pool
# ---------------------------------------------------------------------------


def trigger_set(index: ConfigIndex, selected: Iterable[str]) -> list[str]:
    """Canonical trigger ids for the selected ids, in selection order.

    Option ids pass through, button field ids pass through, composite
    ``fid::oid`` keys become their global option id. Anything else is dropped.
    """
    triggers: list[str] = []
    for key in selected:
        trigger = resolve_trigger(index, key)
        if trigger is not None and trigger not in triggers:
            triggers.append(trigger)
    return triggers


def visible_fields(
    props: ServiceProps,
    tag_id: str,
    selected: Selection | Iterable[str] = (),
    *,
    index: ConfigIndex | None = None,
) -> VisibleFields:
    """Compute the ordered fields visible under *tag_id*.

    The pool is every field bound to the tag, named in the tag's
    ``includes``, or revealed by a selected trigger. Tag excludes and
    trigger excludes are removed afterwards, so exclude always wins.
    ``order_for_tags[tag_id]`` entries lead; the rest keep pool order.
    """
    index = index or ConfigIndex.of(props)
    tag = index.tag(tag_id)
    if tag is None:
        return VisibleFields()

    trigger_include: set[str] = set()
    trigger_exclude: set[str] = set()
    for trigger in trigger_set(index, selected):
        trigger_include.update(props.includes_for_buttons.get(trigger, ()))
        trigger_exclude.update(props.excludes_for_buttons.get(trigger, ()))

    tag_include = set(tag.includes)
    pool: dict[str, Field] = {}
    for fld in props.fields:
        if fld.id in pool:
            continue
        if fld.is_bound_to(tag_id) or fld.id in tag_include or fld.id in trigger_include:
            pool[fld.id] = fld

    for field_id in (*tag.excludes, *trigger_exclude):
        pool.pop(field_id, None)

    ordered: list[Field] = []
    for field_id in props.order_for_tags.get(tag_id, ()):
        fld = pool.get(field_id)
        if fld is not None and fld not in ordered:
            ordered.append(fld)
    listed = {fld.id for fld in ordered}
    ordered.extend(fld for fid, fld in pool.items() if fid not in listed)

    return VisibleFields(
        fields=tuple(ordered),
        field_ids=tuple(fld.id for fld in ordered),
    )


# ---------------------------------------------------------------------------
# Tag tree
# ---------------------------------------------------------------------------


def ancestors(index: ConfigIndex, tag_id: str) -> list[Tag]:
    """Ancestor chain of *tag_id*, nearest first. Halts on revisit."""
    chain: list[Tag] = []
    seen = {tag_id}
    tag = index.tag(tag_id)
    current = tag.bind_id if tag is not None else None
    while current is not None and current not in seen:
        parent = index.tag(current)
        if parent is None:
            break
        chain.append(parent)
        seen.add(current)
        current = parent.bind_id
    return chain


def children(index: ConfigIndex, tag_id: str) -> list[Tag]:
    """Immediate child tags of *tag_id*."""
    return list(index.children_of(tag_id))


# ---------------------------------------------------------------------------
# Tag context
# ---------------------------------------------------------------------------


def tag_for_id(index: ConfigIndex, item: str) -> str | None:
    """The tag an id implies: itself, its bound tag, or its owning field's bound tag."""
    if index.tag(item) is not None:
        return item
    fld = index.field(item)
    if fld is not None and fld.bind_ids:
        return fld.bind_ids[0]
    owner = owner_field(index, item)
    if owner is not None and owner.bind_ids:
        return owner.bind_ids[0]
    return None


def resolve_tag_context(
    index: ConfigIndex,
    selection: Selection,
    root_tag_id: str | None = ROOT_TAG_ID,
) -> str | None:
    """Pick the tag context for a selection with no explicit tag.

    Order: tracked current tag, first selected tag id, bound tag of the
    first selected field, bound tag of the field owning a selected option,
    then *root_tag_id*.
    """
    if selection.current_tag:
        return selection.current_tag
    for item in selection:
        if index.tag(item) is not None:
            return item
    for item in selection:
        fld = index.field(item)
        if fld is not None and fld.bind_ids:
            return fld.bind_ids[0]
    for item in selection:
        owner = owner_field(index, item)
        if owner is not None and owner.bind_ids:
            return owner.bind_ids[0]
    return root_tag_id


def select(props: ServiceProps, selection: Selection, item: str) -> Selection:
    """Add *item* and track the tag context it implies."""
    tag_id = tag_for_id(ConfigIndex.of(props), item)
    return selection.add(item).with_tag(tag_id or selection.current_tag)


# ---------------------------------------------------------------------------
# Visible group
# ---------------------------------------------------------------------------


def resolve_visible_group(
    props: ServiceProps,
    selection: Selection,
    *,
    resolve_service: ServiceResolver | None = None,
    root_tag_id: str | None = ROOT_TAG_ID,
    env: Env = Env.CLIENT,
) -> SingleGroup | MultiGroup:
    """Resolve the visible group snapshot for *selection*.

    In the workspace, selecting more than one tag yields a ``multi`` result
    carrying the raw selection instead of a group.
    """
    index = ConfigIndex.of(props)
    if env is Env.WORKSPACE:
        selected_tags = [item for item in selection if index.tag(item) is not None]
        if len(selected_tags) > 1:
            return MultiGroup(groups=selection.ids)

    tag_id = resolve_tag_context(index, selection, root_tag_id)
    if tag_id is None:
        return SingleGroup(group=VisibleGroup())
    return SingleGroup(group=group_for_tag(props, tag_id, selection, resolve_service, index=index))


def group_for_tag(
    props: ServiceProps,
    tag_id: str,
    selection: Selection,
    resolve_service: ServiceResolver | None = None,
    *,
    index: ConfigIndex | None = None,
) -> VisibleGroup:
    index = index or ConfigIndex.of(props)
    tag = index.tag(tag_id)
    visible = visible_fields(props, tag_id, selection, index=index)
    return VisibleGroup(
        tag_id=tag_id,
        tag=tag,
        fields=visible.fields,
        field_ids=visible.field_ids,
        parent_tags=tuple(ancestors(index, tag_id)),
        children_tags=tuple(children(index, tag_id)),
        services=tuple(compose_services(props, tag, selection, resolve_service, index=index)),
    )
