"""Policy engine: compile loose rule JSON into closed variants and evaluate them.

Compilation is tolerant: missing or unknown fields default with a warning
diagnostic. Only an invalid ``op``, or a non-numeric bound for
``max_count``/``min_count``, drops a rule (error diagnostic).

Evaluation fails closed: a projection that does not start with
``service.`` or that does not resolve on every subject fails the rule.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from pricegraph.domain.composer import ComposedEntry
from pricegraph.domain.models import ServiceCapability, ServiceMap, ServiceProps, lookup_service
from pricegraph.domain.types import (
    PolicyOp,
    PolicyScope,
    PolicySubject,
    PricingRole,
    RoleFilter,
    ServiceId,
    Severity,
    WhereOp,
)

PROJECTION_ROOT = "service"
DEFAULT_PROJECTION = "service.id"

_MISSING = object()

# ---------------------------------------------------------------------------
# Compiled rule variants
# ---------------------------------------------------------------------------


class WhereClause(BaseModel):
    model_config = {"frozen": True}

    path: str
    op: WhereOp = WhereOp.EQ
    value: Any = None


class PolicyFilter(BaseModel):
    """Subject pre-filter applied before projection."""

    model_config = {"frozen": True}

    role: RoleFilter = RoleFilter.BOTH
    tag_ids: tuple[str, ...] = ()
    field_ids: tuple[str, ...] = ()
    where: tuple[WhereClause, ...] = ()


class _CompiledRule(BaseModel):
    model_config = {"frozen": True}

    id: str
    scope: PolicyScope = PolicyScope.VISIBLE_GROUP
    subject: PolicySubject = PolicySubject.SERVICES
    projection: str = DEFAULT_PROJECTION
    filter: PolicyFilter = PolicyFilter()
    severity: Severity = Severity.ERROR
    message: str | None = None


class AllEqualPolicy(_CompiledRule):
    op: Literal[PolicyOp.ALL_EQUAL] = PolicyOp.ALL_EQUAL


class UniquePolicy(_CompiledRule):
    op: Literal[PolicyOp.UNIQUE] = PolicyOp.UNIQUE


class NoMixPolicy(_CompiledRule):
    op: Literal[PolicyOp.NO_MIX] = PolicyOp.NO_MIX


class AllTruePolicy(_CompiledRule):
    op: Literal[PolicyOp.ALL_TRUE] = PolicyOp.ALL_TRUE


class AnyTruePolicy(_CompiledRule):
    op: Literal[PolicyOp.ANY_TRUE] = PolicyOp.ANY_TRUE


class MaxCountPolicy(_CompiledRule):
    op: Literal[PolicyOp.MAX_COUNT] = PolicyOp.MAX_COUNT
    value: float


class MinCountPolicy(_CompiledRule):
    op: Literal[PolicyOp.MIN_COUNT] = PolicyOp.MIN_COUNT
    value: float


CompiledPolicy = Annotated[
    AllEqualPolicy
    | UniquePolicy
    | NoMixPolicy
    | AllTruePolicy
    | AnyTruePolicy
    | MaxCountPolicy
    | MinCountPolicy,
    Field(discriminator="op"),
]

_COMPILED_ADAPTER: TypeAdapter[Any] = TypeAdapter(CompiledPolicy)

_COUNT_OPS = {PolicyOp.MAX_COUNT, PolicyOp.MIN_COUNT}
_VALUELESS_OPS = {PolicyOp.ALL_TRUE, PolicyOp.ANY_TRUE}


@dataclass(frozen=True)
class PolicyDiagnostic:
    """A problem found while compiling one raw rule."""

    rule_index: int
    severity: Severity
    message: str
    rule_id: str | None = None
    path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_index": self.rule_index,
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "message": self.message,
            "path": self.path,
        }


@dataclass(frozen=True)
class CompiledPolicies:
    policies: tuple[Any, ...] = ()
    diagnostics: tuple[PolicyDiagnostic, ...] = ()

    @property
    def errors(self) -> list[PolicyDiagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[PolicyDiagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def compile_policies(raw: Any) -> CompiledPolicies:
    """Validate and default raw rule descriptors.

    Defaults: ``id`` → ``policy_{n}``, ``scope`` → ``visible_group``,
    ``subject`` → ``services``, ``filter.role`` → ``both``,
    ``severity`` → ``error``, ``projection`` → ``service.id``.
    """
    if not isinstance(raw, list | tuple):
        return CompiledPolicies(
            diagnostics=(
                PolicyDiagnostic(-1, Severity.ERROR, "Policies root must be an array."),
            )
        )

    policies: list[Any] = []
    diagnostics: list[PolicyDiagnostic] = []
    for i, entry in enumerate(raw):
        compiled, found = _compile_one(i, entry if isinstance(entry, Mapping) else {})
        diagnostics.extend(found)
        if compiled is not None:
            policies.append(compiled)
    return CompiledPolicies(policies=tuple(policies), diagnostics=tuple(diagnostics))


def _compile_one(i: int, src: Mapping[str, Any]) -> tuple[Any | None, list[PolicyDiagnostic]]:
    found: list[PolicyDiagnostic] = []
    rule_id = src.get("id").strip() if isinstance(src.get("id"), str) else ""
    if not rule_id:
        rule_id = f"policy_{i + 1}"
        found.append(_diag(i, rule_id, Severity.WARNING, 'Missing "id"; generated automatically.', "id"))

    def pick[E](key: str, enum: type[E], default: E, label: str) -> E:
        value = src.get(key)
        if value is None:
            return default
        try:
            return enum(value)  # type: ignore[call-arg]
        except ValueError:
            found.append(
                _diag(i, rule_id, Severity.WARNING, f'Unknown "{label}"; defaulted to "{default}".', label)
            )
            return default

    scope = pick("scope", PolicyScope, PolicyScope.VISIBLE_GROUP, "scope")
    subject = pick("subject", PolicySubject, PolicySubject.SERVICES, "subject")
    severity = pick("severity", Severity, Severity.ERROR, "severity")

    op: PolicyOp | None
    try:
        op = PolicyOp(src.get("op"))
    except ValueError:
        op = None
        found.append(_diag(i, rule_id, Severity.ERROR, f'Invalid "op": {src.get("op")}.', "op"))

    projection = src.get("projection")
    projection = projection.strip() if isinstance(projection, str) and projection.strip() else DEFAULT_PROJECTION
    if not projection.startswith(f"{PROJECTION_ROOT}."):
        found.append(
            _diag(
                i,
                rule_id,
                Severity.WARNING,
                'Projection should start with "service." for subject "services".',
                "projection",
            )
        )

    policy_filter = _compile_filter(i, rule_id, src.get("filter"), found)

    value = src.get("value")
    if op in _COUNT_OPS:
        if not (isinstance(value, int | float) and not isinstance(value, bool)):
            found.append(_diag(i, rule_id, Severity.ERROR, f'"{op}" requires numeric "value".', "value"))
    elif op is not None and value is not None:
        hint = "it checks all/any true" if op in _VALUELESS_OPS else "it is ignored"
        found.append(_diag(i, rule_id, Severity.WARNING, f'"{op}" does not use "value"; {hint}.', "value"))

    if any(d.severity is Severity.ERROR for d in found):
        return None, found

    data: dict[str, Any] = {
        "id": rule_id,
        "op": op,
        "scope": scope,
        "subject": subject,
        "projection": projection,
        "filter": policy_filter,
        "severity": severity,
        "message": src.get("message") if isinstance(src.get("message"), str) else None,
    }
    if op in _COUNT_OPS:
        data["value"] = value
    return _COMPILED_ADAPTER.validate_python(data), found


def _compile_filter(
    i: int, rule_id: str, src: Any, found: list[PolicyDiagnostic]
) -> PolicyFilter:
    if not isinstance(src, Mapping):
        return PolicyFilter()

    role = RoleFilter.BOTH
    if src.get("role") is not None:
        try:
            role = RoleFilter(src["role"])
        except ValueError:
            found.append(
                _diag(i, rule_id, Severity.WARNING, 'Unknown filter.role; defaulted to "both".', "filter.role")
            )

    return PolicyFilter(
        role=role,
        tag_ids=_as_strings(src.get("tag_id")),
        field_ids=_as_strings(src.get("field_id")),
        where=_compile_where(i, rule_id, src.get("where"), found),
    )


def _compile_where(
    i: int, rule_id: str, src: Any, found: list[PolicyDiagnostic]
) -> tuple[WhereClause, ...]:
    if src is None:
        return ()
    if not isinstance(src, list | tuple):
        found.append(
            _diag(i, rule_id, Severity.WARNING, "filter.where must be an array; ignored.", "filter.where")
        )
        return ()

    clauses: list[WhereClause] = []
    for j, entry in enumerate(src):
        at = f"filter.where[{j}]"
        obj = entry if isinstance(entry, Mapping) else {}
        path = obj.get("path").strip() if isinstance(obj.get("path"), str) else ""
        if not path:
            found.append(
                _diag(i, rule_id, Severity.WARNING, f"{at}.path must be a non-empty string; entry ignored.", f"{at}.path")
            )
            continue
        if not path.startswith(f"{PROJECTION_ROOT}."):
            found.append(
                _diag(i, rule_id, Severity.WARNING, f'{at}.path should start with "service.".', f"{at}.path")
            )

        op = WhereOp.EQ
        if obj.get("op") is not None:
            try:
                op = WhereOp(obj["op"])
            except ValueError:
                found.append(
                    _diag(i, rule_id, Severity.WARNING, f'Unknown {at}.op; defaulted to "eq".', f"{at}.op")
                )

        value = obj.get("value")
        if op in {WhereOp.EXISTS, WhereOp.TRUTHY, WhereOp.FALSY} and value is not None:
            found.append(
                _diag(i, rule_id, Severity.WARNING, f'{at} op "{op}" does not use "value".', f"{at}.value")
            )
        elif op in {WhereOp.IN, WhereOp.NIN} and not isinstance(value, list | tuple):
            found.append(
                _diag(i, rule_id, Severity.WARNING, f'{at} op "{op}" expects an array "value".', f"{at}.value")
            )
        clauses.append(WhereClause(path=path, op=op, value=value))
    return tuple(clauses)


def _diag(
    i: int, rule_id: str, severity: Severity, message: str, path: str | None
) -> PolicyDiagnostic:
    return PolicyDiagnostic(rule_index=i, rule_id=rule_id, severity=severity, message=message, path=path)


def _as_strings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, list | tuple):
        return tuple(str(v) for v in value)
    return (str(value),)


# ---------------------------------------------------------------------------
# Evaluation subjects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServiceItem:
    """One service subject: its record plus where it sits in the graph.

    ``role`` is None when unknown (fallback candidates); role filters then
    let the subject through.
    """

    service_id: ServiceId
    service: ServiceCapability | None = None
    role: PricingRole | None = None
    tag_id: str | None = None
    field_id: str | None = None
    node_id: str | None = None

    def record(self) -> dict[str, Any]:
        if self.service is not None:
            return self.service.as_record()
        return {"id": self.service_id}


def items_for_ids(
    service_ids: Iterable[ServiceId],
    services: ServiceMap,
    *,
    tag_id: str | None = None,
) -> list[ServiceItem]:
    """Subjects for bare service ids (roles unknown)."""
    return [
        ServiceItem(service_id=sid, service=lookup_service(services, sid), tag_id=tag_id)
        for sid in service_ids
    ]


def items_for_entries(entries: Iterable[ComposedEntry], tag_id: str | None) -> list[ServiceItem]:
    """Subjects for a composed visible group."""
    return [
        ServiceItem(
            service_id=entry.service.id,
            service=entry.service,
            role=entry.role,
            tag_id=tag_id,
            field_id=entry.field_id,
            node_id=entry.source_id,
        )
        for entry in entries
    ]


def collect_service_items(props: ServiceProps, services: ServiceMap) -> list[ServiceItem]:
    """Every service referenced anywhere in the revision, one subject per node."""
    items: list[ServiceItem] = []

    def add(sid: ServiceId | None, role: PricingRole, node_id: str, **where: Any) -> None:
        if sid is None:
            return
        items.append(
            ServiceItem(
                service_id=sid,
                service=lookup_service(services, sid),
                role=role,
                node_id=node_id,
                **where,
            )
        )

    for tag in props.filters:
        add(tag.service_id, PricingRole.BASE, tag.id, tag_id=tag.id)
    for fld in props.fields:
        tag_id = fld.bind_ids[0] if fld.bind_ids else None
        add(fld.service_id, fld.pricing_role, fld.id, tag_id=tag_id, field_id=fld.id)
        for opt in fld.options:
            add(opt.service_id, opt.pricing_role, opt.id, tag_id=tag_id, field_id=fld.id)
    return items


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyResult:
    """Outcome of one rule against one subject list."""

    rule_id: str
    op: PolicyOp
    scope: PolicyScope
    severity: Severity
    ok: bool
    count: int
    message: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "op": self.op.value,
            "scope": self.scope.value,
            "severity": self.severity.value,
            "ok": self.ok,
            "count": self.count,
            "message": self.message,
            "reason": self.reason,
        }


def evaluate_policies(
    compiled: CompiledPolicies | Iterable[Any],
    scope: PolicyScope,
    items: Sequence[ServiceItem],
    *,
    tag_id: str | None = None,
) -> list[PolicyResult]:
    """Run every rule of *scope* over *items*; one result per rule.

    *tag_id* is the evaluation context for ``filter.tag_id`` when a subject
    carries no tag of its own.
    """
    rules = compiled.policies if isinstance(compiled, CompiledPolicies) else tuple(compiled)
    results: list[PolicyResult] = []
    for rule in rules:
        if rule.scope is not scope or rule.subject is not PolicySubject.SERVICES:
            continue
        subjects = [item for item in items if _matches_filter(item, rule.filter, tag_id)]
        ok, reason = _evaluate_rule(rule, subjects)
        results.append(
            PolicyResult(
                rule_id=rule.id,
                op=rule.op,
                scope=rule.scope,
                severity=rule.severity,
                ok=ok,
                count=len(subjects),
                message=rule.message or (None if ok else f'Policy "{rule.id}" violated'),
                reason=reason,
            )
        )
    return results


def _evaluate_rule(rule: Any, subjects: list[ServiceItem]) -> tuple[bool, str | None]:
    if not rule.projection.startswith(f"{PROJECTION_ROOT}."):
        return False, "malformed_projection"

    match rule:
        case MaxCountPolicy(value=limit):
            return (len(subjects) <= limit, None if len(subjects) <= limit else "count_exceeded")
        case MinCountPolicy(value=minimum):
            return (len(subjects) >= minimum, None if len(subjects) >= minimum else "count_below")

    values: list[Any] = []
    for item in subjects:
        value = resolve_path({PROJECTION_ROOT: item.record()}, rule.projection)
        if value is _MISSING:
            return False, "unresolved_projection"
        values.append(value)

    check = _OPS[rule.op]
    ok = check(values)
    return ok, None if ok else rule.op.value


def _distinct(values: Iterable[Any]) -> set[str]:
    return {_stable(v) for v in values}


def _unique(values: list[Any]) -> bool:
    seen: set[str] = set()
    for value in values:
        key = _stable(value)
        if key in seen:
            return False
        seen.add(key)
    return True


_OPS: dict[PolicyOp, Callable[[list[Any]], bool]] = {
    PolicyOp.ALL_EQUAL: lambda values: len(_distinct(values)) <= 1,
    PolicyOp.UNIQUE: _unique,
    PolicyOp.NO_MIX: lambda values: len(_distinct(v for v in values if v is not None)) <= 1,
    PolicyOp.ALL_TRUE: lambda values: all(bool(v) for v in values),
    PolicyOp.ANY_TRUE: lambda values: any(bool(v) for v in values),
}


def _matches_filter(item: ServiceItem, policy_filter: PolicyFilter, tag_id: str | None) -> bool:
    if policy_filter.role is not RoleFilter.BOTH and item.role is not None:
        if item.role.value != policy_filter.role.value:
            return False
    if policy_filter.tag_ids:
        context = item.tag_id or tag_id
        if context is None or context not in policy_filter.tag_ids:
            return False
    if policy_filter.field_ids:
        if item.field_id is None or item.field_id not in policy_filter.field_ids:
            return False
    return matches_where(item.record(), policy_filter.where)


def matches_where(record: Mapping[str, Any], where: Iterable[WhereClause]) -> bool:
    """Whether a service record satisfies every where-clause."""
    root = {PROJECTION_ROOT: record}
    for clause in where:
        current = resolve_path(root, clause.path)
        present = current is not _MISSING and current is not None
        match clause.op:
            case WhereOp.EXISTS:
                if not present:
                    return False
            case WhereOp.TRUTHY:
                if not present or not current:
                    return False
            case WhereOp.FALSY:
                if present and current:
                    return False
            case WhereOp.IN | WhereOp.NIN:
                options = clause.value if isinstance(clause.value, list | tuple) else ()
                hit = present and any(_stable(o) == _stable(current) for o in options)
                if (clause.op is WhereOp.IN) != hit:
                    return False
            case WhereOp.NEQ:
                if present and _stable(current) == _stable(clause.value):
                    return False
            case _:
                if not present or _stable(current) != _stable(clause.value):
                    return False
    return True


def resolve_path(root: Any, path: str) -> Any:
    """Walk a dotted path through mappings and sequences; ``_MISSING`` if absent."""
    current = root
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list | tuple) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def _stable(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)
