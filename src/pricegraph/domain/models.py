"""Config model: tags, fields, options, reveal maps, and service records.

A :class:`ServiceProps` instance is one immutable revision of the
configuration graph. Every sequence is a tuple so revisions can be shared
freely between the builder history and the resolvers.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

import pydantic
from pydantic import BaseModel

from pricegraph.domain.types import PricingRole, ServiceId

# ---------------------------------------------------------------------------
# Service records
# ---------------------------------------------------------------------------


class ServiceCapability(BaseModel):
    """Resolved priced-service record.

    Only ``id`` and ``rate`` are typed; every other key (``dripfeed``,
    ``platform_id``, ``flags`` ...) is kept as an extra capability flag.
    """

    model_config = {"frozen": True, "extra": "allow"}

    id: ServiceId
    rate: float | None = None

    def flag(self, name: str) -> Any:
        """Return the raw value of a capability flag, or None when absent."""
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name)

    def flag_enabled(self, name: str) -> bool:
        """Whether *name* is enabled, via ``flags[name].enabled`` or a bare boolean."""
        flags = self.flag("flags")
        if isinstance(flags, Mapping):
            entry = flags.get(name)
            if isinstance(entry, Mapping) and isinstance(entry.get("enabled"), bool):
                return entry["enabled"]
        return self.flag(name) is True

    def as_record(self) -> dict[str, Any]:
        """Plain dict view used for projections and where-clauses."""
        return self.model_dump()


type ServiceMap = Mapping[ServiceId, ServiceCapability]


def coerce_service_id(value: Any) -> ServiceId | None:
    """Normalise a service reference: digit strings become ints, blanks None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not text:
        return None
    if text.lstrip("-").isdigit():
        return int(text)
    return text


def coerce_service_map(raw: Mapping[Any, Any]) -> dict[ServiceId, ServiceCapability]:
    """Build a service map from loosely keyed JSON-ish data.

    Entries without an ``id`` take their key as id. Keys are normalised with
    :func:`coerce_service_id` so ``"200"`` and ``200`` address one service.
    """
    out: dict[ServiceId, ServiceCapability] = {}
    for key, value in raw.items():
        if isinstance(value, ServiceCapability):
            cap = value
        else:
            data = dict(value) if isinstance(value, Mapping) else {}
            data.setdefault("id", key)
            data["id"] = coerce_service_id(data["id"])
            cap = ServiceCapability.model_validate(data)
        sid = coerce_service_id(key)
        if sid is not None:
            out[sid] = cap
    return out


def lookup_service(services: ServiceMap, service_id: Any) -> ServiceCapability | None:
    """Find a capability by id, tolerating int/str key mismatches."""
    if service_id is None:
        return None
    cap = services.get(service_id)
    if cap is not None:
        return cap
    sid = coerce_service_id(service_id)
    if sid is None:
        return None
    cap = services.get(sid)
    if cap is None:
        cap = services.get(str(sid))
    return cap


# ---------------------------------------------------------------------------
# Graph nodes
# ---------------------------------------------------------------------------


class ConstraintOverride(BaseModel):
    """A child constraint value replaced by an ancestor's effective value."""

    model_config = {"frozen": True, "populate_by_name": True}

    from_: bool = pydantic.Field(alias="from")
    to: bool
    origin: str


class Tag(BaseModel):
    """Configuration category; forms a forest through ``bind_id``."""

    model_config = {"frozen": True}

    id: str
    label: str = ""
    bind_id: str | None = None
    service_id: ServiceId | None = None
    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()
    constraints: dict[str, bool] = {}
    constraints_origin: dict[str, str] = {}
    constraints_overrides: dict[str, ConstraintOverride] = {}
    meta: dict[str, Any] = {}


class FieldOption(BaseModel):
    """Selectable value of an option-bearing field."""

    model_config = {"frozen": True}

    id: str
    label: str = ""
    value: str | int | float | None = None
    pricing_role: PricingRole = PricingRole.BASE
    service_id: ServiceId | None = None
    meta: dict[str, Any] = {}


class Field(BaseModel):
    """Input definition, optionally bound to tags and carrying options."""

    model_config = {"frozen": True}

    id: str
    label: str = ""
    type: str = "text"
    name: str | None = None
    component: str | None = None
    bind_id: str | tuple[str, ...] | None = None
    options: tuple[FieldOption, ...] = ()
    button: bool = False
    pricing_role: PricingRole = PricingRole.BASE
    service_id: ServiceId | None = None
    required: bool = False
    meta: dict[str, Any] = {}

    @property
    def bind_ids(self) -> tuple[str, ...]:
        if self.bind_id is None:
            return ()
        if isinstance(self.bind_id, str):
            return (self.bind_id,)
        return self.bind_id

    @property
    def has_options(self) -> bool:
        return bool(self.options)

    @property
    def is_multi(self) -> bool:
        return bool(self.meta.get("multi"))

    def is_bound_to(self, tag_id: str) -> bool:
        return tag_id in self.bind_ids

    def option(self, option_id: str) -> FieldOption | None:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None


class ServiceFallbacks(BaseModel):
    """Replacement candidates per node and per primary service."""

    model_config = {"frozen": True, "populate_by_name": True}

    nodes: dict[str, tuple[ServiceId, ...]] = {}
    global_: dict[ServiceId, tuple[ServiceId, ...]] = pydantic.Field(
        default_factory=dict, alias="global"
    )


class ServiceProps(BaseModel):
    """One revision of the configuration graph."""

    model_config = {"frozen": True}

    filters: tuple[Tag, ...] = ()
    fields: tuple[Field, ...] = ()
    includes_for_buttons: dict[str, tuple[str, ...]] = {}
    excludes_for_buttons: dict[str, tuple[str, ...]] = {}
    order_for_tags: dict[str, tuple[str, ...]] = {}
    fallbacks: ServiceFallbacks | None = None
    policies: tuple[Any, ...] = ()
    schema_version: str = "1.0"

    def to_document(self) -> dict[str, Any]:
        """JSON-ready dump with empty sections left out."""
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)


# ---------------------------------------------------------------------------
# Lookup index
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfigIndex:
    """Id-addressed lookups over one revision. Build once per query."""

    props: ServiceProps
    tags: dict[str, Tag]
    fields: dict[str, Field]
    option_owner: dict[str, Field]

    @classmethod
    def of(cls, props: ServiceProps) -> ConfigIndex:
        tags: dict[str, Tag] = {}
        for tag in props.filters:
            tags.setdefault(tag.id, tag)
        fields: dict[str, Field] = {}
        owners: dict[str, Field] = {}
        for fld in props.fields:
            fields.setdefault(fld.id, fld)
            for opt in fld.options:
                owners.setdefault(opt.id, fld)
        return cls(props=props, tags=tags, fields=fields, option_owner=owners)

    def tag(self, tag_id: str | None) -> Tag | None:
        if tag_id is None:
            return None
        return self.tags.get(tag_id)

    def field(self, field_id: str) -> Field | None:
        return self.fields.get(field_id)

    def option(self, option_id: str) -> FieldOption | None:
        owner = self.option_owner.get(option_id)
        if owner is None:
            return None
        return owner.option(option_id)

    def owner_of(self, option_id: str) -> Field | None:
        return self.option_owner.get(option_id)

    def is_button(self, field_id: str) -> bool:
        fld = self.fields.get(field_id)
        return fld is not None and fld.button

    def children_of(self, tag_id: str) -> Iterator[Tag]:
        for tag in self.props.filters:
            if tag.bind_id == tag_id:
                yield tag
