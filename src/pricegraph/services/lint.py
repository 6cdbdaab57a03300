"""LintService: read-only integrity report over the current revision.

Single command following the linter pattern. Each category is a private
``_check_*`` method returning issue dicts of the shape
``{category, severity, code, node_id, message, detail}``. Categories can be
switched off through the ``[lint]`` config section.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pricegraph.domain.fallback import collect_failed_fallbacks
from pricegraph.domain.keys import resolve_trigger
from pricegraph.domain.models import ConfigIndex, Field, ServiceMap, ServiceProps, lookup_service
from pricegraph.domain.policy import (
    ServiceItem,
    collect_service_items,
    compile_policies,
    evaluate_policies,
)
from pricegraph.domain.simulation import validate_rate_coherence_all
from pricegraph.domain.types import FallbackMode, PolicyScope, PricingRole, Severity
from pricegraph.domain.visibility import visible_fields
from pricegraph.infrastructure.graph.engine import GraphEngine
from pricegraph.services.base import BaseService
from pricegraph.services.result import ServiceResult
from pricegraph.services.telemetry import trace_span, traced

# ---------------------------------------------------------------------------
# Issue severity and category constants
# ---------------------------------------------------------------------------

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

CAT_STRUCTURE = "structure"
CAT_IDENTITY = "identity"
CAT_REFERENCES = "references"
CAT_OPTION_MAPS = "option_maps"
CAT_VISIBILITY = "visibility"
CAT_INPUTS = "inputs"
CAT_UTILITY = "utility"
CAT_UNBOUND = "unbound"
CAT_CONSTRAINTS = "constraints"
CAT_RATES = "rates"
CAT_FALLBACKS = "fallbacks"
CAT_POLICIES = "policies"

type Issue = dict[str, Any]


def _issue(
    category: str,
    severity: str,
    code: str,
    message: str,
    node_id: str | None = None,
    /,
    **detail: Any,
) -> Issue:
    return {
        "category": category,
        "severity": severity,
        "code": code,
        "node_id": node_id,
        "message": message,
        "detail": detail,
    }


class LintService(BaseService):
    """Reports structural, reference, pricing and policy issues."""

    @traced
    def lint(self) -> ServiceResult:
        """Run every enabled category against the current revision."""
        props = self._builder.get_props()
        index = self._builder.index
        services = self._builder.service_map

        checks: list[tuple[str, Callable[[ConfigIndex, ServiceMap], list[Issue]]]] = [
            (CAT_STRUCTURE, self._check_structure),
            (CAT_IDENTITY, self._check_identity),
            (CAT_REFERENCES, self._check_references),
            (CAT_OPTION_MAPS, self._check_option_maps),
            (CAT_VISIBILITY, self._check_visibility),
            (CAT_INPUTS, self._check_inputs),
            (CAT_UTILITY, self._check_utility),
            (CAT_UNBOUND, self._check_unbound),
            (CAT_CONSTRAINTS, self._check_constraints),
            (CAT_RATES, self._check_rates),
            (CAT_FALLBACKS, self._check_fallbacks),
            (CAT_POLICIES, self._check_policies),
        ]
        issues: list[Issue] = []
        for category, check in checks:
            if not self._config.lint.enabled(category):
                continue
            with trace_span("lint_category", category=category):
                issues.extend(check(index, services))

        errors = sum(1 for i in issues if i["severity"] == SEVERITY_ERROR)
        warnings: list[str] = []
        self._dispatch_event(
            "post_lint",
            {
                "issues_found": len(issues),
                "errors": errors,
                "warnings": len(issues) - errors,
                "issues": issues,
            },
            warnings,
        )
        return ServiceResult(
            ok=True,
            op="lint",
            data={
                "issues": issues,
                "count": len(issues),
                "errors": errors,
                "warnings": len(issues) - errors,
                "tags": len(props.filters),
                "fields": len(props.fields),
            },
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def _check_structure(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        issues: list[Issue] = []
        props = index.props
        root_id = self._builder.root_tag_id
        if root_id not in index.tags:
            issues.append(
                _issue(
                    CAT_STRUCTURE,
                    SEVERITY_ERROR,
                    "root_missing",
                    f"Root tag {root_id!r} is missing",
                    root_id,
                )
            )

        for cycle in GraphEngine(props).tag_cycles():
            issues.append(
                _issue(
                    CAT_STRUCTURE,
                    SEVERITY_ERROR,
                    "cycle_in_tags",
                    f"Tag parentage forms a cycle: {' -> '.join(cycle)}",
                    cycle[0],
                    cycle=cycle,
                )
            )

        for tag in props.filters:
            if tag.bind_id is not None and tag.bind_id not in index.tags:
                issues.append(
                    _issue(
                        CAT_STRUCTURE,
                        SEVERITY_ERROR,
                        "bad_bind_reference",
                        f"Tag {tag.id!r} binds to unknown tag {tag.bind_id!r}",
                        tag.id,
                        ref=tag.bind_id,
                    )
                )
        for fld in props.fields:
            for tag_id in fld.bind_ids:
                if tag_id not in index.tags:
                    issues.append(
                        _issue(
                            CAT_STRUCTURE,
                            SEVERITY_ERROR,
                            "bad_bind_reference",
                            f"Field {fld.id!r} binds to unknown tag {tag_id!r}",
                            fld.id,
                            ref=tag_id,
                        )
                    )
        return issues

    def _check_identity(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        issues: list[Issue] = []
        props = index.props

        kinds: dict[str, str] = {}
        for kind, node_id in [("tag", t.id) for t in props.filters] + [
            ("field", f.id) for f in props.fields
        ]:
            if node_id in kinds:
                issues.append(
                    _issue(
                        CAT_IDENTITY,
                        SEVERITY_ERROR,
                        "duplicate_id",
                        f"Duplicate id {node_id!r} ({kind}), already used by a {kinds[node_id]}",
                        node_id,
                    )
                )
            else:
                kinds[node_id] = kind

        option_fields: dict[str, str] = {}
        for fld in props.fields:
            for opt in fld.options:
                other = option_fields.get(opt.id)
                if other is not None:
                    issues.append(
                        _issue(
                            CAT_IDENTITY,
                            SEVERITY_ERROR,
                            "duplicate_option_id",
                            f"Option id {opt.id!r} on field {fld.id!r} is already used on field {other!r}",
                            opt.id,
                            field_id=fld.id,
                            other=other,
                        )
                    )
                else:
                    option_fields[opt.id] = fld.id

        labels: dict[tuple[str | None, str], str] = {}
        for tag in props.filters:
            if not tag.label.strip():
                issues.append(self._label_missing("tag", tag.id))
                continue
            key = (tag.bind_id, tag.label)
            other = labels.get(key)
            if other is not None:
                issues.append(
                    _issue(
                        CAT_IDENTITY,
                        SEVERITY_WARNING,
                        "duplicate_tag_label",
                        f"Tag {tag.id!r} repeats sibling label {tag.label!r}",
                        tag.id,
                        other=other,
                        label=tag.label,
                    )
                )
            else:
                labels[key] = tag.id
        for fld in props.fields:
            if not fld.label.strip():
                issues.append(self._label_missing("field", fld.id))
            for opt in fld.options:
                if not opt.label.strip():
                    issues.append(self._label_missing("option", opt.id, field_id=fld.id))
        return issues

    @staticmethod
    def _label_missing(kind: str, node_id: str, **detail: Any) -> Issue:
        return _issue(
            CAT_IDENTITY,
            SEVERITY_WARNING,
            "label_missing",
            f"{kind.capitalize()} {node_id!r} is missing a label",
            node_id,
            kind=kind,
            **detail,
        )

    def _check_references(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        issues: list[Issue] = []
        props = index.props

        def unknown(node_id: str | None, ref: str, where: str) -> None:
            issues.append(
                _issue(
                    CAT_REFERENCES,
                    SEVERITY_WARNING,
                    "unknown_reference",
                    f"{where} references unknown id {ref!r}",
                    node_id,
                    ref=ref,
                    where=where,
                )
            )

        for map_name in ("includes_for_buttons", "excludes_for_buttons"):
            reveal: dict[str, tuple[str, ...]] = getattr(props, map_name)
            for key, targets in reveal.items():
                if resolve_trigger(index, key) is None:
                    unknown(key, key, f"{map_name} key")
                for target in targets:
                    if target not in index.fields:
                        unknown(key, target, f"{map_name}[{key!r}]")

        for tag in props.filters:
            for field_id in tag.includes:
                if field_id not in index.fields:
                    unknown(tag.id, field_id, f"tag {tag.id!r} includes")
            for field_id in tag.excludes:
                if field_id not in index.fields:
                    unknown(tag.id, field_id, f"tag {tag.id!r} excludes")

        for tag_id, field_ids in props.order_for_tags.items():
            if tag_id not in index.tags:
                unknown(tag_id, tag_id, "order_for_tags key")
            for field_id in field_ids:
                if field_id not in index.fields:
                    unknown(tag_id, field_id, f"order_for_tags[{tag_id!r}]")
        return issues

    def _check_option_maps(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        props = index.props
        issues: list[Issue] = []
        for key in props.includes_for_buttons:
            if key not in props.excludes_for_buttons:
                continue
            owner = index.owner_of(key)
            issues.append(
                _issue(
                    CAT_OPTION_MAPS,
                    SEVERITY_ERROR,
                    "option_include_exclude_conflict",
                    f"Trigger {key!r} appears in both includes_for_buttons and excludes_for_buttons",
                    owner.id if owner is not None else key,
                    key=key,
                )
            )
        return issues

    def _check_visibility(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        """Per-tag checks over the default visible group (no selection)."""
        issues: list[Issue] = []
        props = index.props
        for tag in props.filters:
            visible = visible_fields(props, tag.id, index=index).fields

            labels: dict[str, str] = {}
            for fld in visible:
                label = fld.label.strip()
                if not label:
                    continue
                other = labels.setdefault(label, fld.id)
                if other != fld.id:
                    issues.append(
                        _issue(
                            CAT_VISIBILITY,
                            SEVERITY_ERROR,
                            "duplicate_visible_label",
                            f"Field {fld.id!r} repeats label {label!r} of {other!r} under tag {tag.id!r}",
                            fld.id,
                            tag_id=tag.id,
                            other=other,
                        )
                    )

            markers = [fld.id for fld in visible if fld.meta.get("quantity")]
            if len(markers) > 1:
                issues.append(
                    _issue(
                        CAT_VISIBILITY,
                        SEVERITY_ERROR,
                        "quantity_multiple_markers",
                        f"Tag {tag.id!r} shows {len(markers)} quantity fields: {', '.join(markers)}",
                        tag.id,
                        tag_id=tag.id,
                        markers=markers,
                    )
                )

            has_base = tag.service_id is not None
            utility_ids: list[str] = []
            for fld in visible:
                for opt in fld.options:
                    if opt.pricing_role is PricingRole.UTILITY:
                        utility_ids.append(opt.id)
                    elif opt.pricing_role is PricingRole.BASE and opt.service_id is not None:
                        has_base = True
            if utility_ids and not has_base:
                issues.append(
                    _issue(
                        CAT_VISIBILITY,
                        SEVERITY_ERROR,
                        "utility_without_base",
                        f"Tag {tag.id!r} shows utility options but no base service",
                        tag.id,
                        scope="visible_group",
                        utility_option_ids=utility_ids,
                    )
                )
        return issues

    def _check_inputs(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        """Service-backed versus user-input fields, and custom components.

        A field with a ``name`` collects user input and must not map options
        to services. An unnamed option-bearing field is service-backed and
        needs at least one option with a service, unless every option is
        utility-priced. Custom fields never map services and must name their
        component.
        """
        issues: list[Issue] = []
        for fld in index.props.fields:
            service_options = [opt.id for opt in fld.options if opt.service_id is not None]
            custom = fld.type == "custom"
            if custom and not (fld.component or "").strip():
                issues.append(
                    _issue(
                        CAT_INPUTS,
                        SEVERITY_ERROR,
                        "custom_component_missing",
                        f"Custom field {fld.id!r} is missing a component reference",
                        fld.id,
                    )
                )
            if service_options and (custom or fld.name):
                issues.append(
                    _issue(
                        CAT_INPUTS,
                        SEVERITY_ERROR,
                        "user_input_field_has_service_option",
                        f"{'Custom' if custom else 'User-input'} field {fld.id!r} "
                        "must not map options to services",
                        fld.id,
                        option_ids=service_options,
                    )
                )
            elif fld.has_options and not (custom or fld.name or service_options or _all_utility(fld)):
                issues.append(
                    _issue(
                        CAT_INPUTS,
                        SEVERITY_ERROR,
                        "service_field_missing_service_id",
                        f"Field {fld.id!r} has no name, so at least one option needs a service_id",
                        fld.id,
                    )
                )
        return issues

    def _check_utility(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        issues: list[Issue] = []
        has_utility = False
        has_base = False
        for fld in index.props.fields:
            nodes = [(fld.id, fld.pricing_role, fld.service_id)] + [
                (opt.id, opt.pricing_role, opt.service_id) for opt in fld.options
            ]
            for node_id, role, service_id in nodes:
                if role is PricingRole.UTILITY:
                    has_utility = True
                    if service_id is not None:
                        issues.append(
                            _issue(
                                CAT_UTILITY,
                                SEVERITY_ERROR,
                                "utility_with_service_id",
                                f"Utility-priced node {node_id!r} must not reference a service",
                                node_id,
                                field_id=fld.id,
                                service_id=service_id,
                            )
                        )
                elif role is PricingRole.BASE and service_id is not None:
                    has_base = True
        if any(tag.service_id is not None for tag in index.props.filters):
            has_base = True
        if self._config.lint.global_utility_guard and has_utility and not has_base:
            issues.append(
                _issue(
                    CAT_UTILITY,
                    SEVERITY_ERROR,
                    "utility_without_base",
                    "Utility pricing is configured but no base service exists",
                    None,
                    scope="global",
                )
            )
        return issues

    def _check_unbound(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        props = index.props
        included = {fid for tag in props.filters for fid in tag.includes}
        revealed = {fid for targets in props.includes_for_buttons.values() for fid in targets}
        return [
            _issue(
                CAT_UNBOUND,
                SEVERITY_WARNING,
                "field_unbound",
                f"Field {fld.id!r} is not bound to a tag and never included or revealed",
                fld.id,
            )
            for fld in props.fields
            if not fld.bind_ids and fld.id not in included and fld.id not in revealed
        ]

    def _check_constraints(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        issues: list[Issue] = []
        props = index.props
        for tag in props.filters:
            required = [flag for flag, value in tag.constraints.items() if value]
            if required:
                tag_cap = lookup_service(services, tag.service_id)
                if tag_cap is not None:
                    for flag in required:
                        if not tag_cap.flag_enabled(flag):
                            issues.append(
                                _issue(
                                    CAT_CONSTRAINTS,
                                    SEVERITY_ERROR,
                                    "unsupported_constraint",
                                    f"Tag {tag.id!r} maps to service {tag.service_id!r} "
                                    f"which does not support required constraint {flag!r}",
                                    tag.id,
                                    flag=flag,
                                    service_id=tag.service_id,
                                )
                            )
                for fld in visible_fields(props, tag.id, index=index).fields:
                    for opt in fld.options:
                        cap = lookup_service(services, opt.service_id)
                        if cap is None:
                            continue
                        for flag in required:
                            if not cap.flag_enabled(flag):
                                issues.append(
                                    _issue(
                                        CAT_CONSTRAINTS,
                                        SEVERITY_ERROR,
                                        "unsupported_constraint",
                                        f"Option {opt.id!r} under tag {tag.id!r} does not "
                                        f"support required constraint {flag!r}",
                                        tag.id,
                                        flag=flag,
                                        service_id=opt.service_id,
                                        field_id=fld.id,
                                        option_id=opt.id,
                                    )
                                )
            for flag, override in tag.constraints_overrides.items():
                issues.append(
                    _issue(
                        CAT_CONSTRAINTS,
                        SEVERITY_WARNING,
                        "constraint_overridden",
                        f"Constraint {flag!r} on tag {tag.id!r} was overridden by ancestor "
                        f"{override.origin!r} ({override.from_} -> {override.to})",
                        tag.id,
                        flag=flag,
                        origin=override.origin,
                    )
                )
        return issues

    def _check_rates(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        issues: list[Issue] = []
        props = index.props
        for fld in props.fields:
            if not fld.is_multi:
                continue
            rates: set[float] = set()
            for opt in fld.options:
                if opt.pricing_role is not PricingRole.BASE:
                    continue
                cap = lookup_service(services, opt.service_id)
                if cap is not None and cap.rate is not None:
                    rates.add(cap.rate)
            if len(rates) > 1:
                issues.append(
                    _issue(
                        CAT_RATES,
                        SEVERITY_ERROR,
                        "rate_mismatch_across_base",
                        f"Multi-select field {fld.id!r} mixes base rates {sorted(rates)}",
                        fld.id,
                        rates=sorted(rates),
                    )
                )

        if self._config.lint.simulate_rates:
            for diag in validate_rate_coherence_all(props, services, self._config.rates.policy):
                issues.append(
                    _issue(
                        CAT_RATES,
                        SEVERITY_ERROR,
                        "rate_coherence",
                        diag.reason,
                        diag.offender.id,
                        **diag.to_dict(),
                    )
                )
        return issues

    def _check_fallbacks(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        settings = self._config.fallback.to_settings()
        node_severity = (
            SEVERITY_ERROR if settings.mode is FallbackMode.STRICT else SEVERITY_WARNING
        )
        issues: list[Issue] = []
        for failure in collect_failed_fallbacks(index.props, services, settings):
            scope_label = failure.node_id or f"service {failure.primary}"
            issues.append(
                _issue(
                    CAT_FALLBACKS,
                    node_severity if failure.scope == "node" else SEVERITY_WARNING,
                    f"fallback_{failure.reason}",
                    f"Fallback {failure.candidate!r} for {scope_label} fails: {failure.reason}",
                    failure.node_id,
                    **failure.to_dict(),
                )
            )
        return issues

    def _check_policies(self, index: ConfigIndex, services: ServiceMap) -> list[Issue]:
        props = index.props
        compiled = compile_policies(props.policies)
        issues: list[Issue] = [
            _issue(
                CAT_POLICIES,
                diag.severity.value,
                "policy_compile",
                diag.message,
                None,
                **diag.to_dict(),
            )
            for diag in compiled.diagnostics
        ]
        if not compiled.policies:
            return issues

        for result in evaluate_policies(
            compiled, PolicyScope.GLOBAL, collect_service_items(props, services)
        ):
            if not result.ok:
                issues.append(self._violation(result.to_dict(), None))

        for tag in props.filters:
            items = _visible_group_items(props, index, services, tag.id)
            for result in evaluate_policies(
                compiled, PolicyScope.VISIBLE_GROUP, items, tag_id=tag.id
            ):
                if not result.ok:
                    issues.append(self._violation(result.to_dict(), tag.id))
        return issues

    @staticmethod
    def _violation(result: dict[str, Any], tag_id: str | None) -> Issue:
        severity = (
            SEVERITY_WARNING if result["severity"] == Severity.WARNING.value else SEVERITY_ERROR
        )
        return _issue(
            CAT_POLICIES,
            severity,
            "policy_violation",
            result["message"],
            tag_id,
            **result,
        )


def _visible_group_items(
    props: ServiceProps, index: ConfigIndex, services: ServiceMap, tag_id: str
) -> list[ServiceItem]:
    """Service subjects of a tag's default visible group: tag, visible fields, their options."""
    tag = index.tag(tag_id)
    items: list[ServiceItem] = []
    if tag is not None and tag.service_id is not None:
        items.append(
            ServiceItem(
                service_id=tag.service_id,
                service=lookup_service(services, tag.service_id),
                role=PricingRole.BASE,
                tag_id=tag_id,
                node_id=tag_id,
            )
        )
    for fld in visible_fields(props, tag_id, index=index).fields:
        nodes = [(fld.id, fld.pricing_role, fld.service_id)] + [
            (opt.id, opt.pricing_role, opt.service_id) for opt in fld.options
        ]
        for node_id, role, service_id in nodes:
            if service_id is None:
                continue
            items.append(
                ServiceItem(
                    service_id=service_id,
                    service=lookup_service(services, service_id),
                    role=role,
                    tag_id=tag_id,
                    field_id=fld.id,
                    node_id=node_id,
                )
            )
    return items


def _all_utility(fld: Field) -> bool:
    return all(opt.pricing_role is PricingRole.UTILITY for opt in fld.options)
