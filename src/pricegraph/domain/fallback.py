"""Fallback candidates: which replacement services fit a visible group.

Two families of checks live here:

* :func:`filter_services_for_visible_group` scores arbitrary candidate ids
  against the live group (used services, effective constraints, policies).
* :func:`resolve_service_fallback`, :func:`get_eligible_fallbacks` and
  :func:`collect_failed_fallbacks` walk the authored ``fallbacks`` lists of
  a revision (per node, then per primary service).
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from pricegraph.domain.models import (
    ConfigIndex,
    ServiceCapability,
    ServiceFallbacks,
    ServiceMap,
    ServiceProps,
    lookup_service,
)
from pricegraph.domain.policy import (
    CompiledPolicies,
    ServiceItem,
    compile_policies,
    evaluate_policies,
    items_for_ids,
)
from pricegraph.domain.rates import (
    DEFAULT_RATE_POLICY,
    RatePolicy,
    parse_rate_policy,
    passes_rate,
)
from pricegraph.domain.types import (
    FallbackMode,
    PolicyScope,
    SelectionStrategy,
    ServiceId,
    Severity,
)

REASON_MISSING_CAPABILITY = "missing_capability"
REASON_CONSTRAINT_MISMATCH = "constraint_mismatch"
REASON_RATE_POLICY = "rate_policy"
REASON_POLICY_ERROR = "policy_error"


class FallbackSettings(BaseModel):
    """How fallback candidates are judged and ordered."""

    model_config = {"frozen": True}

    rate_policy: RatePolicy = DEFAULT_RATE_POLICY
    require_constraint_fit: bool = True
    selection_strategy: SelectionStrategy = SelectionStrategy.PRIORITY
    mode: FallbackMode = FallbackMode.STRICT

    @classmethod
    def coerce(cls, raw: FallbackSettings | Mapping[str, Any] | None) -> FallbackSettings:
        """Accept settings, a loose mapping (``rate_policy`` may be text), or None."""
        if raw is None:
            return cls()
        if isinstance(raw, FallbackSettings):
            return raw
        data = dict(raw)
        if "rate_policy" in data:
            data["rate_policy"] = parse_rate_policy(data["rate_policy"])
        return cls.model_validate(data)


# ---------------------------------------------------------------------------
# Visible-group candidate filter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FallbackContext:
    """Live visible-group state a candidate is judged against.

    The first id in ``used_service_ids`` found in the service map is the
    primary for rate comparisons.
    """

    tag_id: str | None = None
    used_service_ids: tuple[ServiceId, ...] = ()
    effective_constraints: Mapping[str, bool] = field(default_factory=dict)
    policies: Any = ()
    settings: FallbackSettings = field(default_factory=FallbackSettings)


@dataclass(frozen=True)
class CandidateCheck:
    id: ServiceId
    ok: bool
    fits_constraints: bool
    passes_rate: bool
    passes_policies: bool
    reasons: tuple[str, ...] = ()
    policy_errors: tuple[str, ...] = ()
    policy_warnings: tuple[str, ...] = ()
    rate: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ok": self.ok,
            "fits_constraints": self.fits_constraints,
            "passes_rate": self.passes_rate,
            "passes_policies": self.passes_policies,
            "reasons": list(self.reasons),
            "policy_errors": list(self.policy_errors),
            "policy_warnings": list(self.policy_warnings),
            "rate": self.rate,
        }


def filter_services_for_visible_group(
    candidate_ids: Iterable[ServiceId],
    ctx: FallbackContext,
    services: ServiceMap,
) -> list[CandidateCheck]:
    """Score each candidate not already used in the group.

    Used ids are dropped from the output entirely. Reasons are ordered
    ``constraint_mismatch``, ``rate_policy``, ``policy_error``.
    """
    used = {str(sid) for sid in ctx.used_service_ids}
    compiled = ctx.policies
    if not isinstance(compiled, CompiledPolicies):
        compiled = compile_policies(compiled if compiled is not None else ())
    primary = _first_known(ctx.used_service_ids, services)

    out: list[CandidateCheck] = []
    seen: set[str] = set()
    for sid in candidate_ids:
        key = str(sid)
        if key in used or key in seen:
            continue
        seen.add(key)

        cap = lookup_service(services, sid)
        if cap is None:
            out.append(
                CandidateCheck(
                    id=sid,
                    ok=False,
                    fits_constraints=False,
                    passes_rate=False,
                    passes_policies=False,
                    reasons=(REASON_MISSING_CAPABILITY,),
                )
            )
            continue

        fits = fits_constraints(cap, ctx.effective_constraints)
        if not ctx.used_service_ids:
            rate_ok = True
        else:
            rate_ok = primary is not None and passes_rate(ctx.settings.rate_policy, primary.rate, cap.rate)

        items: list[ServiceItem] = items_for_ids((*ctx.used_service_ids, sid), services, tag_id=ctx.tag_id)
        errors, warnings = _policy_outcome(compiled, items, ctx)
        policies_ok = not errors

        reasons: list[str] = []
        if not fits:
            reasons.append(REASON_CONSTRAINT_MISMATCH)
        if not rate_ok:
            reasons.append(REASON_RATE_POLICY)
        if not policies_ok:
            reasons.append(REASON_POLICY_ERROR)

        out.append(
            CandidateCheck(
                id=sid,
                ok=fits and rate_ok and policies_ok,
                fits_constraints=fits,
                passes_rate=rate_ok,
                passes_policies=policies_ok,
                reasons=tuple(reasons),
                policy_errors=tuple(errors),
                policy_warnings=tuple(warnings),
                rate=_finite(cap.rate),
            )
        )
    return out


def fits_constraints(cap: ServiceCapability, constraints: Mapping[str, bool]) -> bool:
    """Every constraint key must equal the capability's flag of that name."""
    return all(cap.flag_enabled(name) is bool(required) for name, required in constraints.items())


def _policy_outcome(
    compiled: CompiledPolicies,
    items: Sequence[ServiceItem],
    ctx: FallbackContext,
) -> tuple[list[str], list[str]]:
    errors: list[str] = []
    warnings: list[str] = []
    for result in evaluate_policies(compiled, PolicyScope.VISIBLE_GROUP, items, tag_id=ctx.tag_id):
        if result.ok:
            continue
        if ctx.settings.mode is FallbackMode.DEV and result.severity is Severity.WARNING:
            warnings.append(result.rule_id)
        else:
            errors.append(result.rule_id)
    return errors, warnings


def _first_known(ids: Iterable[ServiceId], services: ServiceMap) -> ServiceCapability | None:
    for sid in ids:
        cap = lookup_service(services, sid)
        if cap is not None:
            return cap
    return None


def _finite(rate: float | None) -> float | None:
    if rate is None or not math.isfinite(rate):
        return None
    return rate


# ---------------------------------------------------------------------------
# Authored fallback lists
# ---------------------------------------------------------------------------


def satisfies_tag_constraints(index: ConfigIndex, tag_id: str, cap: ServiceCapability) -> bool:
    """Only flags set true on the tag's effective constraints are required."""
    tag = index.tag(tag_id)
    if tag is None:
        return True
    return all(cap.flag_enabled(name) for name, value in tag.constraints.items() if value is True)


def _candidate_lists(
    fallbacks: ServiceFallbacks | None,
    primary: ServiceId,
    node_id: str | None,
) -> list[tuple[ServiceId, ...]]:
    if fallbacks is None:
        return []
    lists: list[tuple[ServiceId, ...]] = []
    if node_id is not None and node_id in fallbacks.nodes:
        lists.append(fallbacks.nodes[node_id])
    for key, candidates in fallbacks.global_.items():
        if str(key) == str(primary):
            lists.append(candidates)
            break
    return lists


def resolve_service_fallback(
    primary: ServiceId,
    props: ServiceProps,
    services: ServiceMap,
    *,
    node_id: str | None = None,
    tag_id: str | None = None,
    settings: FallbackSettings | None = None,
) -> ServiceId | None:
    """First eligible replacement for *primary*, node list before global list."""
    eligible = get_eligible_fallbacks(
        primary, props, services, node_id=node_id, tag_id=tag_id, settings=settings, limit=1
    )
    return eligible[0] if eligible else None


def get_eligible_fallbacks(
    primary: ServiceId,
    props: ServiceProps,
    services: ServiceMap,
    *,
    node_id: str | None = None,
    tag_id: str | None = None,
    settings: FallbackSettings | None = None,
    exclude: Iterable[ServiceId] = (),
    unique: bool = True,
    limit: int | None = None,
) -> list[ServiceId]:
    """Every authored fallback for *primary* that passes rate and constraints.

    The primary itself is always excluded. ``cheapest`` strategy sorts by
    rate ascending (unknown rates last); ``priority`` keeps list order.
    """
    settings = settings or FallbackSettings()
    excluded = {str(sid) for sid in exclude}
    excluded.add(str(primary))
    index = ConfigIndex.of(props)
    primary_cap = lookup_service(services, primary)
    primary_rate = primary_cap.rate if primary_cap is not None else None

    seen: set[str] = set()
    eligible: list[ServiceId] = []
    for candidates in _candidate_lists(props.fallbacks, primary, node_id):
        for sid in candidates:
            key = str(sid)
            if key in excluded or (unique and key in seen):
                continue
            seen.add(key)
            cap = lookup_service(services, sid)
            if cap is None:
                continue
            if not passes_rate(settings.rate_policy, primary_rate, cap.rate):
                continue
            if settings.require_constraint_fit and tag_id and not satisfies_tag_constraints(index, tag_id, cap):
                continue
            eligible.append(sid)

    if settings.selection_strategy is SelectionStrategy.CHEAPEST:
        eligible.sort(key=lambda sid: _sort_rate(_rate_of(services, sid)))
    if limit is not None and limit >= 0:
        return eligible[:limit]
    return eligible


def _sort_rate(rate: float | None) -> float:
    finite = _finite(rate)
    return math.inf if finite is None else finite


def _rate_of(services: ServiceMap, sid: ServiceId) -> float | None:
    cap = lookup_service(services, sid)
    return cap.rate if cap is not None else None


type FailureReason = Literal[
    "unknown_service", "no_primary", "rate_violation", "constraint_mismatch", "cycle", "no_tag_context"
]


@dataclass(frozen=True)
class FailedFallback:
    """One authored fallback entry that can never be used."""

    scope: Literal["node", "global"]
    reason: FailureReason
    primary: ServiceId | None = None
    candidate: ServiceId | None = None
    node_id: str | None = None
    tag_context: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "reason": self.reason,
            "primary": self.primary,
            "candidate": self.candidate,
            "node_id": self.node_id,
            "tag_context": self.tag_context,
        }


def _primary_for_node(index: ConfigIndex, node_id: str) -> tuple[ServiceId | None, tuple[str, ...]]:
    tag = index.tag(node_id)
    if tag is not None:
        return tag.service_id, (tag.id,)
    owner = index.owner_of(node_id)
    if owner is None:
        return None, ()
    opt = owner.option(node_id)
    return (opt.service_id if opt is not None else None), owner.bind_ids


def collect_failed_fallbacks(
    props: ServiceProps,
    services: ServiceMap,
    settings: FallbackSettings | None = None,
) -> list[FailedFallback]:
    """Every authored fallback entry that fails, with the first failing reason.

    Node lists are checked against their node's primary and every tag
    context the node sits in. Global lists carry no tag context, so only
    existence, self-reference and rate are checked.
    """
    settings = settings or FallbackSettings()
    fallbacks = props.fallbacks
    if fallbacks is None:
        return []
    index = ConfigIndex.of(props)
    out: list[FailedFallback] = []

    for node_id, candidates in fallbacks.nodes.items():
        primary, contexts = _primary_for_node(index, node_id)
        if primary is None:
            out.append(FailedFallback(scope="node", reason="no_primary", node_id=node_id))
            continue
        for sid in candidates:
            failure = _basic_failure(services, primary, sid, settings)
            if failure is not None:
                out.append(FailedFallback("node", failure, primary, sid, node_id))
                continue
            if not contexts:
                out.append(FailedFallback("node", "no_tag_context", primary, sid, node_id))
                continue
            if not settings.require_constraint_fit:
                continue
            cap = lookup_service(services, sid)
            for tag_id in contexts:
                if cap is not None and not satisfies_tag_constraints(index, tag_id, cap):
                    out.append(FailedFallback("node", "constraint_mismatch", primary, sid, node_id, tag_id))

    for primary, candidates in fallbacks.global_.items():
        for sid in candidates:
            failure = _basic_failure(services, primary, sid, settings)
            if failure is not None:
                out.append(FailedFallback("global", failure, primary, sid))
    return out


def _basic_failure(
    services: ServiceMap,
    primary: ServiceId,
    candidate: ServiceId,
    settings: FallbackSettings,
) -> FailureReason | None:
    cap = lookup_service(services, candidate)
    if cap is None:
        return "unknown_service"
    if str(candidate) == str(primary):
        return "cycle"
    if not passes_rate(settings.rate_policy, _rate_of(services, primary), cap.rate):
        return "rate_violation"
    return None
