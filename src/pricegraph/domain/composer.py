"""Service composition: ordered services implied by a tag and a selection.

The tag's own service seeds slot 0. The first selected base-role option
replaces it (or is inserted at slot 0 when the tag has none); later base
options and every utility/addon option append in selection order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pricegraph.domain.keys import owner_field, resolve_option
from pricegraph.domain.models import ConfigIndex, ServiceCapability, ServiceProps, Tag
from pricegraph.domain.types import PricingRole, ServiceId


@dataclass(frozen=True)
class ComposedEntry:
    """One slot of a composed service list and where it came from."""

    service: ServiceCapability
    role: PricingRole
    source_id: str
    field_id: str | None = None


def identity_resolver(service_id: ServiceId) -> ServiceCapability:
    """Default resolver: a bare ``{id}`` record."""
    return ServiceCapability(id=service_id)


def compose_entries(
    props: ServiceProps,
    tag: Tag | None,
    selected: Iterable[str],
    resolve_service: Callable[[ServiceId], ServiceCapability | None] | None = None,
    *,
    index: ConfigIndex | None = None,
) -> list[ComposedEntry]:
    """Compose the ordered entries for *tag* and the selected ids.

    *selected* must iterate in insertion order. Ids that do not resolve to
    an option with a ``service_id`` are skipped.
    """
    index = index or ConfigIndex.of(props)

    def resolve(service_id: ServiceId) -> ServiceCapability:
        cap = resolve_service(service_id) if resolve_service is not None else None
        return cap if cap is not None else identity_resolver(service_id)

    entries: list[ComposedEntry] = []
    base_from_tag = False
    if tag is not None and tag.service_id is not None:
        entries.append(ComposedEntry(resolve(tag.service_id), PricingRole.BASE, tag.id))
        base_from_tag = True

    base_seen = False
    for key in selected:
        opt = resolve_option(index, key)
        if opt is None or opt.service_id is None:
            continue
        owner = owner_field(index, key)
        entry = ComposedEntry(
            service=resolve(opt.service_id),
            role=opt.pricing_role,
            source_id=opt.id,
            field_id=owner.id if owner is not None else None,
        )
        if opt.pricing_role is PricingRole.BASE and not base_seen:
            base_seen = True
            if base_from_tag:
                entries[0] = entry
            else:
                entries.insert(0, entry)
        else:
            entries.append(entry)
    return entries


def compose_services(
    props: ServiceProps,
    tag: Tag | None,
    selected: Iterable[str],
    resolve_service: Callable[[ServiceId], ServiceCapability | None] | None = None,
    *,
    index: ConfigIndex | None = None,
) -> list[ServiceCapability]:
    """Ordered service capabilities: primary first, then the rest as chosen."""
    entries = compose_entries(props, tag, selected, resolve_service, index=index)
    return [entry.service for entry in entries]
