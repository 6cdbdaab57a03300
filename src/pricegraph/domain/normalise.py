"""Normalisation: coerce loosely authored documents into a ServiceProps revision.

Accepts camelCase and legacy aliases, injects the root tag, canonicalises
``bind_id`` and service ids, rewrites composite reveal-map keys, and
propagates tag constraints down the tag tree.

Utility-role nodes that carry a ``service_id`` are kept as authored; edit
commands clear such ids and the lint pass reports them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pricegraph.domain.keys import split_composite
from pricegraph.domain.models import ServiceProps, coerce_service_id
from pricegraph.domain.types import CONSTRAINT_FLAGS, ROOT_TAG_ID, PricingRole

logger = logging.getLogger(__name__)

_ROLE_VALUES = {role.value for role in PricingRole}


def normalise(
    raw: Any,
    *,
    default_role: PricingRole = PricingRole.BASE,
) -> ServiceProps:
    """Coerce *raw* into a canonical, validated :class:`ServiceProps`.

    Raises:
        TypeError: If *raw* is not a mapping (or a ServiceProps instance).
    """
    if isinstance(raw, ServiceProps):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        msg = f"normalise() expected a mapping payload, got {type(raw).__name__}"
        raise TypeError(msg)

    tags = [_coerce_tag(src) for src in _records(_first(raw, "filters", "tags"), "tag")]
    fields = [
        _coerce_field(src, default_role) for src in _records(raw.get("fields"), "field")
    ]

    if not any(tag["id"] == ROOT_TAG_ID for tag in tags):
        tags.insert(0, {"id": ROOT_TAG_ID, "label": "Root"})
    _migrate_root_lists(raw, tags)

    option_ids = _option_ids_by_field(fields)
    includes = _coerce_reveal_map(
        _first(raw, "includes_for_buttons", "includesForButtons", "includes_for_options"),
        option_ids,
    )
    excludes = _coerce_reveal_map(
        _first(raw, "excludes_for_buttons", "excludesForButtons", "excludes_for_options"),
        option_ids,
    )
    order = _coerce_list_map(_first(raw, "order_for_tags", "orderForTags"))

    _propagate_constraints(tags)

    policies = raw.get("policies")
    if policies is not None and not isinstance(policies, list | tuple):
        logger.warning("Ignoring non-list policies payload of type %s", type(policies).__name__)
        policies = None

    document: dict[str, Any] = {
        "filters": tags,
        "fields": fields,
        "includes_for_buttons": includes,
        "excludes_for_buttons": excludes,
        "order_for_tags": order,
        "fallbacks": _coerce_fallbacks(raw.get("fallbacks")),
        "policies": list(policies or ()),
        "schema_version": _text(raw.get("schema_version")) or "1.0",
    }
    return ServiceProps.model_validate(document)


# ---------------------------------------------------------------------------
# Node coercion
# ---------------------------------------------------------------------------


def _coerce_tag(src: Mapping[str, Any]) -> dict[str, Any]:
    tag: dict[str, Any] = {
        "id": _text(src.get("id")) or "",
        "label": _text(src.get("label")) or "",
        "bind_id": _text(_first(src, "bind_id", "bindId")),
        "service_id": coerce_service_id(_first(src, "service_id", "serviceId")),
        "includes": _dedupe(_strings(src.get("includes"))),
        "excludes": _dedupe(_strings(src.get("excludes"))),
    }
    constraints = src.get("constraints")
    if isinstance(constraints, Mapping):
        tag["constraints"] = {
            flag: bool(constraints[flag])
            for flag in CONSTRAINT_FLAGS
            if constraints.get(flag) is not None
        }
    if isinstance(src.get("meta"), Mapping):
        tag["meta"] = dict(src["meta"])
    return tag


def _coerce_field(src: Mapping[str, Any], default_role: PricingRole) -> dict[str, Any]:
    field_id = _text(src.get("id")) or ""
    role = _coerce_role(_first(src, "pricing_role", "pricingRole"), default_role)
    service_id = coerce_service_id(_first(src, "service_id", "serviceId"))
    if role is PricingRole.UTILITY and service_id is not None:
        logger.debug("Utility field %s carries service_id %s", field_id, service_id)

    options = [
        _coerce_option(opt, role, field_id)
        for opt in _records(src.get("options"), f"option of {field_id}")
    ]

    meta = dict(src["meta"]) if isinstance(src.get("meta"), Mapping) else {}
    if "multi" in meta:
        meta["multi"] = bool(meta["multi"])

    return {
        "id": field_id,
        "label": _text(src.get("label")) or "",
        "type": _text(src.get("type")) or "text",
        "name": _text(src.get("name")),
        "component": _text(src.get("component")),
        "bind_id": _coerce_bind(_first(src, "bind_id", "bindId", "bind")),
        "options": options,
        "button": bool(src.get("button", False)),
        "pricing_role": role,
        "service_id": service_id,
        "required": bool(src.get("required", False)),
        "meta": meta,
    }


def _coerce_option(
    src: Mapping[str, Any], inherit_role: PricingRole, field_id: str
) -> dict[str, Any]:
    option_id = _text(src.get("id")) or ""
    role = _coerce_role(_first(src, "pricing_role", "pricingRole"), inherit_role)
    service_id = coerce_service_id(_first(src, "service_id", "serviceId"))
    if role is PricingRole.UTILITY and service_id is not None:
        logger.debug(
            "Utility option %s of field %s carries service_id %s",
            option_id,
            field_id,
            service_id,
        )
    value = src.get("value")
    return {
        "id": option_id,
        "label": _text(src.get("label")) or "",
        "value": value if isinstance(value, str | int | float) and not isinstance(value, bool) else None,
        "pricing_role": role,
        "service_id": service_id,
        "meta": dict(src["meta"]) if isinstance(src.get("meta"), Mapping) else {},
    }


def _coerce_role(value: Any, default: PricingRole) -> PricingRole:
    if isinstance(value, str) and value in _ROLE_VALUES:
        return PricingRole(value)
    return default


def _coerce_bind(value: Any) -> str | list[str] | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list | tuple):
        ids = _dedupe(str(v).strip() for v in value if v is not None and str(v).strip())
        if not ids:
            return None
        if len(ids) == 1:
            return ids[0]
        return ids
    return None


# ---------------------------------------------------------------------------
# Top-level maps
# ---------------------------------------------------------------------------


def _migrate_root_lists(raw: Mapping[str, Any], tags: list[dict[str, Any]]) -> None:
    """Fold legacy ``rootIncludes``/``rootExcludes`` into the root tag. Exclude wins."""
    root_includes = _strings(raw.get("rootIncludes"))
    root_excludes = _strings(raw.get("rootExcludes"))
    if not root_includes and not root_excludes:
        return
    for tag in tags:
        if tag["id"] != ROOT_TAG_ID:
            continue
        excludes = _dedupe([*tag.get("excludes", []), *root_excludes])
        blocked = set(excludes)
        includes = [
            fid for fid in _dedupe([*tag.get("includes", []), *root_includes]) if fid not in blocked
        ]
        tag["includes"] = includes
        tag["excludes"] = excludes


def _option_ids_by_field(fields: list[dict[str, Any]]) -> dict[str, set[str]]:
    return {fld["id"]: {opt["id"] for opt in fld["options"]} for fld in fields}


def _coerce_reveal_map(src: Any, option_ids: dict[str, set[str]]) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for key, targets in _coerce_list_map(src).items():
        canonical = _canonical_key(key, option_ids)
        merged = out.setdefault(canonical, [])
        merged.extend(t for t in targets if t not in merged)
    return out


def _canonical_key(key: str, option_ids: dict[str, set[str]]) -> str:
    parts = split_composite(key)
    if parts is None:
        return key
    field_id, option_id = parts
    owned = option_ids.get(field_id, set())
    if option_id in owned:
        return option_id
    return key


def _coerce_list_map(src: Any) -> dict[str, list[str]]:
    if not isinstance(src, Mapping):
        return {}
    out: dict[str, list[str]] = {}
    for key, value in src.items():
        if not key:
            continue
        values = _dedupe(_strings(value))
        if values:
            out[str(key)] = values
    return out


def _coerce_fallbacks(src: Any) -> dict[str, Any] | None:
    if not isinstance(src, Mapping):
        return None
    nodes: dict[str, list[Any]] = {}
    for node_id, ids in (src.get("nodes") or {}).items():
        cleaned = _service_ids(ids)
        if cleaned:
            nodes[str(node_id)] = cleaned
    global_: dict[Any, list[Any]] = {}
    for primary, ids in (src.get("global") or src.get("global_") or {}).items():
        key = coerce_service_id(primary)
        cleaned = _service_ids(ids)
        if key is not None and cleaned:
            global_[key] = cleaned
    if not nodes and not global_:
        return None
    return {"nodes": nodes, "global": global_}


def _service_ids(values: Any) -> list[Any]:
    if not isinstance(values, list | tuple):
        return []
    ids = (coerce_service_id(v) for v in values)
    return _dedupe(sid for sid in ids if sid is not None)


# ---------------------------------------------------------------------------
# Constraint propagation
# ---------------------------------------------------------------------------


def _propagate_constraints(tags: list[dict[str, Any]]) -> None:
    """Push effective constraint flags from ancestors onto descendants.

    An ancestor's effective value overrides the child's local one. Each tag
    records where its effective flags came from (``constraints_origin``) and
    which local values were overridden (``constraints_overrides``).
    Children inherit the effective value, not the parent's raw local one.
    """
    by_id = {tag["id"]: tag for tag in tags}
    children: dict[str, list[dict[str, Any]]] = {}
    for tag in tags:
        parent = tag.get("bind_id")
        if parent and parent in by_id and parent != tag["id"]:
            children.setdefault(parent, []).append(tag)

    roots = [tag for tag in tags if not tag.get("bind_id") or tag["bind_id"] not in by_id]
    visited: set[str] = set()
    # Tags caught in a bind cycle have no root; visit them last with no inheritance.
    pending: list[tuple[dict[str, Any], dict[str, tuple[bool, str]]]] = [
        (tag, {}) for tag in reversed([*roots, *tags])
    ]
    while pending:
        tag, inherited = pending.pop()
        if tag["id"] in visited:
            continue
        visited.add(tag["id"])
        passed_down = _apply_inherited(tag, inherited)
        for child in reversed(children.get(tag["id"], [])):
            pending.append((child, passed_down))


def _apply_inherited(
    tag: dict[str, Any], inherited: dict[str, tuple[bool, str]]
) -> dict[str, tuple[bool, str]]:
    local: dict[str, bool] = tag.get("constraints") or {}
    effective = dict(local)
    origin: dict[str, str] = {}
    overrides: dict[str, dict[str, Any]] = {}

    for flag in CONSTRAINT_FLAGS:
        if flag in inherited:
            value, source = inherited[flag]
            effective[flag] = value
            origin[flag] = source
            previous = local.get(flag)
            if previous is not None and previous != value:
                overrides[flag] = {"from": previous, "to": value, "origin": source}
        elif flag in local:
            origin[flag] = tag["id"]

    tag["constraints"] = effective
    tag["constraints_origin"] = origin
    tag["constraints_overrides"] = overrides

    passed = dict(inherited)
    for flag, source in origin.items():
        passed[flag] = (effective[flag], source)
    return passed


# ---------------------------------------------------------------------------
# Small coercions
# ---------------------------------------------------------------------------


def _first(src: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = src.get(key)
        if value is not None:
            return value
    return None


def _records(src: Any, kind: str) -> list[Mapping[str, Any]]:
    if not isinstance(src, list | tuple):
        return []
    records: list[Mapping[str, Any]] = []
    for item in src:
        if isinstance(item, Mapping):
            records.append(item)
        else:
            logger.warning("Skipping non-mapping %s entry: %r", kind, item)
    return records


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list | tuple):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


def _dedupe[T](items: Iterable[T]) -> list[T]:
    seen: list[T] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen
