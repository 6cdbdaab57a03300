"""Editor commands: small serializable edits applied to a revision.

Each command is a frozen pydantic model discriminated on ``command``. Its
:meth:`EditCommand.apply` takes a revision and returns the next one, or
raises :class:`~pricegraph.domain.errors.CommandError` and leaves the
input untouched. Every applied command re-normalises the document and
strips ``service_id`` from utility-role nodes.

Use :func:`command_from_dict` to rebuild a command from ``model_dump()``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Annotated, Any, Literal

import pydantic
from pydantic import BaseModel, TypeAdapter

from pricegraph.domain.errors import CommandError
from pricegraph.domain.models import ConfigIndex, ServiceProps, coerce_service_id
from pricegraph.domain.normalise import normalise
from pricegraph.domain.types import CONSTRAINT_FLAGS, ROOT_TAG_ID, PricingRole, ServiceId

logger = logging.getLogger(__name__)

type Document = dict[str, Any]

REVEAL_MAPS = ("includes_for_buttons", "excludes_for_buttons")
QUANTITY_SOURCES = ("value", "length", "eval")


class EditCommand(BaseModel):
    """Base for all edit commands."""

    model_config = {"frozen": True}

    @property
    def name(self) -> str:
        return self.command  # type: ignore[attr-defined]

    def apply(self, props: ServiceProps) -> ServiceProps:
        index = ConfigIndex.of(props)
        self.check(index)
        doc = to_document(props)
        self.mutate(doc, index)
        strip_utility_services(doc)
        return normalise(doc)

    def check(self, index: ConfigIndex) -> None:
        """Reject the command before any mutation. Default: accept."""

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Document helpers
# ---------------------------------------------------------------------------


def to_document(props: ServiceProps) -> Document:
    """Mutable plain-data copy of *props* with tag constraints back to local values."""
    doc = props.model_dump(mode="json", by_alias=True)
    for tag in doc["filters"]:
        tag["constraints"] = _local_constraints(tag)
        tag.pop("constraints_origin", None)
        tag.pop("constraints_overrides", None)
    return doc


def _local_constraints(tag: Document) -> dict[str, bool]:
    origin = tag.get("constraints_origin") or {}
    overrides = tag.get("constraints_overrides") or {}
    local: dict[str, bool] = {}
    for flag, value in (tag.get("constraints") or {}).items():
        if flag in overrides:
            local[flag] = overrides[flag]["from"]
        elif origin.get(flag, tag["id"]) == tag["id"]:
            local[flag] = value
    return local


def strip_utility_services(doc: Document) -> None:
    """Clear ``service_id`` on every utility-role field and option."""
    for fld in doc["fields"]:
        if fld.get("pricing_role") == PricingRole.UTILITY and fld.get("service_id") is not None:
            logger.debug("Clearing service_id on utility field %s", fld["id"])
            fld["service_id"] = None
        for opt in fld.get("options") or ():
            if opt.get("pricing_role") == PricingRole.UTILITY and opt.get("service_id") is not None:
                logger.debug("Clearing service_id on utility option %s", opt["id"])
                opt["service_id"] = None


def _tag(doc: Document, tag_id: str) -> Document:
    for tag in doc["filters"]:
        if tag["id"] == tag_id:
            return tag
    raise CommandError("not_found", f"Tag not found: {tag_id}")


def _field(doc: Document, field_id: str) -> Document:
    for fld in doc["fields"]:
        if fld["id"] == field_id:
            return fld
    raise CommandError("not_found", f"Field not found: {field_id}")


def _option(doc: Document, option_id: str) -> tuple[Document, Document]:
    for fld in doc["fields"]:
        for opt in fld.get("options") or ():
            if opt["id"] == option_id:
                return fld, opt
    raise CommandError("not_found", f"Option not found: {option_id}")


def _bind_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _bind_value(ids: list[str]) -> str | list[str] | None:
    if not ids:
        return None
    return ids[0] if len(ids) == 1 else ids


def _discard(values: list[str] | None, item: str) -> list[str]:
    return [v for v in values or () if v != item]


def _prune_map_values(mapping: dict[str, list[str]], item: str) -> None:
    for key in list(mapping):
        mapping[key] = _discard(mapping[key], item)
        if not mapping[key]:
            del mapping[key]


def _prune_fallback_node(doc: Document, node_id: str) -> None:
    fallbacks = doc.get("fallbacks")
    if fallbacks:
        fallbacks.get("nodes", {}).pop(node_id, None)


def _all_ids(index: ConfigIndex) -> Iterator[str]:
    yield from index.tags
    yield from index.fields
    yield from index.option_owner


def _would_cycle(index: ConfigIndex, parent_id: str, child_id: str) -> bool:
    """Whether binding *child_id* under *parent_id* closes a loop."""
    current: str | None = parent_id
    seen: set[str] = set()
    while current is not None and current not in seen:
        if current == child_id:
            return True
        seen.add(current)
        tag = index.tag(current)
        current = tag.bind_id if tag is not None else None
    return False


def _require_new_id(index: ConfigIndex, node_id: str) -> None:
    if not node_id:
        raise CommandError("invalid_id", "Node id must be a non-empty string")
    if node_id in set(_all_ids(index)):
        raise CommandError("duplicate_id", f"Id already in use: {node_id}")


def _check_option_ids(options: Any, taken: set[str]) -> None:
    """Every option needs an id unused elsewhere and unique within *options*."""
    seen: set[str] = set()
    for opt in options or ():
        oid = str(opt.get("id") or "") if isinstance(opt, Mapping) else ""
        if not oid or oid in taken or oid in seen:
            raise CommandError("duplicate_option_id", f"Option id unavailable: {oid!r}")
        seen.add(oid)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class AddTag(EditCommand):
    command: Literal["add_tag"] = "add_tag"
    tag: dict[str, Any]

    def check(self, index: ConfigIndex) -> None:
        _require_new_id(index, str(self.tag.get("id") or ""))
        parent = self.tag.get("bind_id")
        if parent is not None and index.tag(parent) is None:
            raise CommandError("unknown_reference", f"Parent tag not found: {parent}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        doc["filters"].append(dict(self.tag))


class UpdateTag(EditCommand):
    command: Literal["update_tag"] = "update_tag"
    tag_id: str
    patch: dict[str, Any]

    def check(self, index: ConfigIndex) -> None:
        if index.tag(self.tag_id) is None:
            raise CommandError("not_found", f"Tag not found: {self.tag_id}")
        if "id" in self.patch and self.patch["id"] != self.tag_id:
            raise CommandError("immutable_id", "Tag ids cannot be changed")
        parent = self.patch.get("bind_id")
        if parent is not None:
            if index.tag(parent) is None:
                raise CommandError("unknown_reference", f"Parent tag not found: {parent}")
            if _would_cycle(index, parent, self.tag_id):
                raise CommandError("cycle", f"Binding {self.tag_id} under {parent} creates a cycle")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        _tag(doc, self.tag_id).update(self.patch)


class RemoveTag(EditCommand):
    """Delete a tag and every reference to it."""

    command: Literal["remove_tag"] = "remove_tag"
    tag_id: str

    def check(self, index: ConfigIndex) -> None:
        if self.tag_id == ROOT_TAG_ID:
            raise CommandError("root_protected", "The root tag cannot be removed")
        if index.tag(self.tag_id) is None:
            raise CommandError("not_found", f"Tag not found: {self.tag_id}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        doc["filters"] = [t for t in doc["filters"] if t["id"] != self.tag_id]
        for tag in doc["filters"]:
            if tag.get("bind_id") == self.tag_id:
                tag["bind_id"] = None
        for fld in doc["fields"]:
            fld["bind_id"] = _bind_value(_discard(_bind_list(fld.get("bind_id")), self.tag_id))
        doc["order_for_tags"].pop(self.tag_id, None)
        _prune_fallback_node(doc, self.tag_id)


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


class AddField(EditCommand):
    command: Literal["add_field"] = "add_field"
    field: dict[str, Any]

    def check(self, index: ConfigIndex) -> None:
        _require_new_id(index, str(self.field.get("id") or ""))
        for tag_id in _bind_list(self.field.get("bind_id")):
            if index.tag(tag_id) is None:
                raise CommandError("unknown_reference", f"Bound tag not found: {tag_id}")
        _check_option_ids(self.field.get("options"), set(_all_ids(index)))

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        doc["fields"].append(dict(self.field))


class UpdateField(EditCommand):
    command: Literal["update_field"] = "update_field"
    field_id: str
    patch: dict[str, Any]

    def check(self, index: ConfigIndex) -> None:
        if index.field(self.field_id) is None:
            raise CommandError("not_found", f"Field not found: {self.field_id}")
        if "id" in self.patch and self.patch["id"] != self.field_id:
            raise CommandError("immutable_id", "Field ids cannot be changed")
        for tag_id in _bind_list(self.patch.get("bind_id")):
            if index.tag(tag_id) is None:
                raise CommandError("unknown_reference", f"Bound tag not found: {tag_id}")
        if "options" in self.patch:
            own = {opt.id for opt in index.fields[self.field_id].options}
            _check_option_ids(self.patch["options"], set(_all_ids(index)) - own)

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        _field(doc, self.field_id).update(self.patch)


class RemoveField(EditCommand):
    """Delete a field; prune reveal maps, tag lists, orderings and option keys."""

    command: Literal["remove_field"] = "remove_field"
    field_id: str

    def check(self, index: ConfigIndex) -> None:
        if index.field(self.field_id) is None:
            raise CommandError("not_found", f"Field not found: {self.field_id}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        removed = _field(doc, self.field_id)
        option_ids = [opt["id"] for opt in removed.get("options") or ()]
        doc["fields"] = [f for f in doc["fields"] if f["id"] != self.field_id]
        for key in REVEAL_MAPS:
            mapping = doc[key]
            for trigger in (self.field_id, *option_ids):
                mapping.pop(trigger, None)
            _prune_map_values(mapping, self.field_id)
        _prune_map_values(doc["order_for_tags"], self.field_id)
        for tag in doc["filters"]:
            tag["includes"] = _discard(tag.get("includes"), self.field_id)
            tag["excludes"] = _discard(tag.get("excludes"), self.field_id)
        for node_id in (self.field_id, *option_ids):
            _prune_fallback_node(doc, node_id)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class AddOption(EditCommand):
    command: Literal["add_option"] = "add_option"
    field_id: str
    option: dict[str, Any]

    def check(self, index: ConfigIndex) -> None:
        if index.field(self.field_id) is None:
            raise CommandError("not_found", f"Field not found: {self.field_id}")
        option_id = str(self.option.get("id") or "")
        if not option_id or option_id in set(_all_ids(index)):
            raise CommandError("duplicate_option_id", f"Option id unavailable: {option_id!r}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        fld = _field(doc, self.field_id)
        fld["options"] = [*(fld.get("options") or ()), dict(self.option)]


class UpdateOption(EditCommand):
    command: Literal["update_option"] = "update_option"
    option_id: str
    patch: dict[str, Any]

    def check(self, index: ConfigIndex) -> None:
        if index.option(self.option_id) is None:
            raise CommandError("not_found", f"Option not found: {self.option_id}")
        if "id" in self.patch and self.patch["id"] != self.option_id:
            raise CommandError("immutable_id", "Option ids cannot be changed")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        _, opt = _option(doc, self.option_id)
        opt.update(self.patch)


class RemoveOption(EditCommand):
    command: Literal["remove_option"] = "remove_option"
    option_id: str

    def check(self, index: ConfigIndex) -> None:
        if index.option(self.option_id) is None:
            raise CommandError("not_found", f"Option not found: {self.option_id}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        fld, _ = _option(doc, self.option_id)
        fld["options"] = [o for o in fld["options"] if o["id"] != self.option_id]
        for key in REVEAL_MAPS:
            doc[key].pop(self.option_id, None)
        _prune_fallback_node(doc, self.option_id)


# ---------------------------------------------------------------------------
# Services and roles
# ---------------------------------------------------------------------------


class SetService(EditCommand):
    """Attach (or clear, with ``service_id=None``) a node's service.

    Utility nodes never carry a service; option-bearing fields keep theirs
    on the options; only button fields may carry one directly.
    """

    command: Literal["set_service"] = "set_service"
    node_id: str
    service_id: ServiceId | None = None
    pricing_role: PricingRole | None = None

    def check(self, index: ConfigIndex) -> None:
        sid = coerce_service_id(self.service_id)
        if index.tag(self.node_id) is not None:
            if self.pricing_role is not None:
                raise CommandError("unsupported_target", "Tags have no pricing role")
            return
        opt = index.option(self.node_id)
        if opt is not None:
            role = self.pricing_role or opt.pricing_role
            if role is PricingRole.UTILITY and sid is not None:
                raise CommandError("utility_service_conflict", "Utilities cannot have service_id (option)")
            return
        fld = index.field(self.node_id)
        if fld is None:
            raise CommandError("not_found", f"Node not found: {self.node_id}")
        if sid is None:
            return
        if fld.has_options:
            raise CommandError(
                "field_option_based_service_forbidden",
                "Cannot set service_id on an option-based field; assign it on its options",
            )
        if not fld.button:
            raise CommandError(
                "non_button_field_service_forbidden",
                "Only button fields (without options) can have a service_id",
            )
        if (self.pricing_role or fld.pricing_role) is PricingRole.UTILITY:
            raise CommandError("utility_service_conflict", "Utilities cannot have service_id (field)")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        sid = coerce_service_id(self.service_id)
        if index.tag(self.node_id) is not None:
            _tag(doc, self.node_id)["service_id"] = sid
            return
        if index.option(self.node_id) is not None:
            _, target = _option(doc, self.node_id)
        else:
            target = _field(doc, self.node_id)
        if self.pricing_role is not None:
            target["pricing_role"] = self.pricing_role.value
        target["service_id"] = sid


class SetPricingRole(EditCommand):
    """Change a field's or option's role; switching to utility drops its service."""

    command: Literal["set_pricing_role"] = "set_pricing_role"
    node_id: str
    pricing_role: PricingRole

    def check(self, index: ConfigIndex) -> None:
        if index.tag(self.node_id) is not None:
            raise CommandError("unsupported_target", "Tags have no pricing role")
        if index.option(self.node_id) is None and index.field(self.node_id) is None:
            raise CommandError("not_found", f"Node not found: {self.node_id}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        if index.option(self.node_id) is not None:
            _, target = _option(doc, self.node_id)
        else:
            target = _field(doc, self.node_id)
        target["pricing_role"] = self.pricing_role.value


# ---------------------------------------------------------------------------
# Wires
# ---------------------------------------------------------------------------

WireKind = Literal["bind", "include", "exclude"]


def _route(index: ConfigIndex, kind: str, from_id: str, to_id: str) -> str:
    """Classify a wire: ``tag_tag``, ``tag_field``, ``trigger_field``."""
    from_tag = index.tag(from_id) is not None
    to_tag = index.tag(to_id) is not None
    to_field = index.field(to_id) is not None
    if kind == "bind":
        if from_tag and to_tag:
            return "tag_tag"
        if (from_tag and to_field) or (index.field(from_id) is not None and to_tag):
            return "tag_field"
    else:
        if from_tag and to_field:
            return "tag_field"
        trigger = index.option(from_id) is not None or index.field(from_id) is not None
        if trigger and to_field:
            return "trigger_field"
    raise CommandError("unsupported_route", f"{kind}: unsupported route {from_id} -> {to_id}")


def _tag_and_field(index: ConfigIndex, from_id: str, to_id: str) -> tuple[str, str]:
    if index.tag(from_id) is not None:
        return from_id, to_id
    return to_id, from_id


class Connect(EditCommand):
    """Add a ``bind``, ``include`` or ``exclude`` wire between two nodes."""

    command: Literal["connect"] = "connect"
    kind: WireKind
    from_id: str
    to_id: str

    @property
    def name(self) -> str:
        return f"connect:{self.kind}"

    def check(self, index: ConfigIndex) -> None:
        route = _route(index, self.kind, self.from_id, self.to_id)
        if route == "tag_tag" and _would_cycle(index, self.from_id, self.to_id):
            raise CommandError("cycle", f"bind would create a cycle: {self.from_id} -> {self.to_id}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        route = _route(index, self.kind, self.from_id, self.to_id)
        if self.kind == "bind":
            if route == "tag_tag":
                _tag(doc, self.to_id)["bind_id"] = self.from_id
                return
            tag_id, field_id = _tag_and_field(index, self.from_id, self.to_id)
            fld = _field(doc, field_id)
            ids = _bind_list(fld.get("bind_id"))
            if tag_id not in ids:
                ids.append(tag_id)
            fld["bind_id"] = _bind_value(ids)
            return
        if route == "tag_field":
            tag = _tag(doc, self.from_id)
            key = "includes" if self.kind == "include" else "excludes"
            values = list(tag.get(key) or ())
            if self.to_id not in values:
                values.append(self.to_id)
            tag[key] = values
            return
        mapping = doc["includes_for_buttons" if self.kind == "include" else "excludes_for_buttons"]
        targets = mapping.setdefault(self.from_id, [])
        if self.to_id not in targets:
            targets.append(self.to_id)


class Disconnect(EditCommand):
    command: Literal["disconnect"] = "disconnect"
    kind: WireKind
    from_id: str
    to_id: str

    @property
    def name(self) -> str:
        return f"disconnect:{self.kind}"

    def check(self, index: ConfigIndex) -> None:
        _route(index, self.kind, self.from_id, self.to_id)

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        route = _route(index, self.kind, self.from_id, self.to_id)
        if self.kind == "bind":
            if route == "tag_tag":
                child = _tag(doc, self.to_id)
                if child.get("bind_id") == self.from_id:
                    child["bind_id"] = None
                return
            tag_id, field_id = _tag_and_field(index, self.from_id, self.to_id)
            fld = _field(doc, field_id)
            fld["bind_id"] = _bind_value(_discard(_bind_list(fld.get("bind_id")), tag_id))
            return
        if route == "tag_field":
            tag = _tag(doc, self.from_id)
            key = "includes" if self.kind == "include" else "excludes"
            tag[key] = _discard(tag.get(key), self.to_id)
            return
        mapping = doc["includes_for_buttons" if self.kind == "include" else "excludes_for_buttons"]
        if self.from_id in mapping:
            mapping[self.from_id] = _discard(mapping[self.from_id], self.to_id)
            if not mapping[self.from_id]:
                del mapping[self.from_id]


# ---------------------------------------------------------------------------
# Misc edits
# ---------------------------------------------------------------------------


class SetConstraint(EditCommand):
    """Set or clear (``value=None``) a tag's local constraint flag."""

    command: Literal["set_constraint"] = "set_constraint"
    tag_id: str
    flag: str
    value: bool | None = None

    def check(self, index: ConfigIndex) -> None:
        if self.flag not in CONSTRAINT_FLAGS:
            raise CommandError("unsupported_constraint", f"Unknown constraint flag: {self.flag}")
        if index.tag(self.tag_id) is None:
            raise CommandError("not_found", f"Tag not found: {self.tag_id}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        constraints = _tag(doc, self.tag_id)["constraints"]
        if self.value is None:
            constraints.pop(self.flag, None)
        else:
            constraints[self.flag] = self.value


class EditLabel(EditCommand):
    command: Literal["edit_label"] = "edit_label"
    node_id: str
    label: str

    def check(self, index: ConfigIndex) -> None:
        if not self.label.strip():
            raise CommandError("empty_label", "Label cannot be empty")
        if self.node_id not in set(_all_ids(index)):
            raise CommandError("not_found", f"Node not found: {self.node_id}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        if index.tag(self.node_id) is not None:
            target = _tag(doc, self.node_id)
        elif index.field(self.node_id) is not None:
            target = _field(doc, self.node_id)
        else:
            _, target = _option(doc, self.node_id)
        target["label"] = self.label.strip()


def normalise_quantity_rule(rule: Any) -> dict[str, Any] | None:
    """``{"value_by": value|length|eval, "code"?}`` or None for invalid shapes.

    ``code`` is kept only for ``eval`` rules.
    """
    if not isinstance(rule, dict):
        return None
    value_by = rule.get("value_by", rule.get("valueBy"))
    if value_by not in QUANTITY_SOURCES:
        return None
    out: dict[str, Any] = {"value_by": value_by}
    code = rule.get("code")
    if value_by == "eval" and isinstance(code, str) and code.strip():
        out["code"] = code
    return out


class SetQuantityRule(EditCommand):
    """Store a field's quantity derivation rule in ``meta.quantity``; invalid rules clear it."""

    command: Literal["set_quantity_rule"] = "set_quantity_rule"
    field_id: str
    rule: dict[str, Any] | None = None

    def check(self, index: ConfigIndex) -> None:
        if index.field(self.field_id) is None:
            raise CommandError("not_found", f"Field not found: {self.field_id}")

    def mutate(self, doc: Document, index: ConfigIndex) -> None:
        fld = _field(doc, self.field_id)
        meta = dict(fld.get("meta") or {})
        rule = normalise_quantity_rule(self.rule)
        if rule is None:
            meta.pop("quantity", None)
        else:
            meta["quantity"] = rule
        fld["meta"] = meta


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

Command = Annotated[
    AddTag
    | UpdateTag
    | RemoveTag
    | AddField
    | UpdateField
    | RemoveField
    | AddOption
    | UpdateOption
    | RemoveOption
    | SetService
    | SetPricingRole
    | Connect
    | Disconnect
    | SetConstraint
    | EditLabel
    | SetQuantityRule,
    pydantic.Field(discriminator="command"),
]

_COMMAND_ADAPTER: TypeAdapter[Any] = TypeAdapter(Command)


def command_from_dict(data: dict[str, Any]) -> EditCommand:
    """Rebuild a command from its ``model_dump()``.

    Raises:
        CommandError: If the payload names no known command or is malformed.
    """
    try:
        return _COMMAND_ADAPTER.validate_python(data)
    except pydantic.ValidationError as exc:
        raise CommandError("invalid_command", f"Invalid command payload: {exc.error_count()} error(s)") from exc
