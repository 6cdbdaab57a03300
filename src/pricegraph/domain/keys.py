"""Trigger keys: option ids, button field ids, and legacy composite keys.

Reveal maps and selections address triggers by a global option id or by a
button field id. Older documents use the composite ``"fieldId::optionId"``
form, which must resolve to the same global option id.
"""

from __future__ import annotations

from pricegraph.domain.models import ConfigIndex, Field, FieldOption

COMPOSITE_SEP = "::"


def split_composite(key: str) -> tuple[str, str] | None:
    """Split ``"fid::oid"`` into its parts, or None for a plain id."""
    if COMPOSITE_SEP not in key:
        return None
    field_id, _, option_id = key.partition(COMPOSITE_SEP)
    if not field_id or not option_id:
        return None
    return field_id, option_id


def resolve_option(index: ConfigIndex, key: str) -> FieldOption | None:
    """Resolve a plain or composite key to the option it names."""
    opt = index.option(key)
    if opt is not None:
        return opt
    parts = split_composite(key)
    if parts is None:
        return None
    fld = index.field(parts[0])
    if fld is None:
        return None
    return fld.option(parts[1]) or fld.option(key)


def resolve_trigger(index: ConfigIndex, key: str) -> str | None:
    """Return the canonical trigger id for *key*, or None if it is not a trigger.

    Triggers are option ids and the ids of fields with ``button=True``.
    """
    if key in index.option_owner:
        return key
    if index.is_button(key):
        return key
    opt = resolve_option(index, key)
    return opt.id if opt is not None else None


def owner_field(index: ConfigIndex, key: str) -> Field | None:
    """Field owning the option addressed by *key* (plain or composite)."""
    owner = index.owner_of(key)
    if owner is not None:
        return owner
    parts = split_composite(key)
    if parts is None:
        return None
    fld = index.field(parts[0])
    if fld is not None and (fld.option(parts[1]) or fld.option(key)):
        return fld
    return None


def canonical_key(index: ConfigIndex, key: str) -> str:
    """Rewrite a composite key to its global option id when it resolves."""
    if split_composite(key) is None:
        return key
    opt = resolve_option(index, key)
    return opt.id if opt is not None else key
