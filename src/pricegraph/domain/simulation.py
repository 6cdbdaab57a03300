"""Rate-coherence simulator.

Walks every selection path reachable under a tag without touching live
selection state, and flags priced alternatives whose rates are incoherent
with the first base service found (the *primary*).
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from pricegraph.domain.models import ConfigIndex, ServiceMap, ServiceProps, lookup_service
from pricegraph.domain.rates import (
    DEFAULT_RATE_POLICY,
    AtLeastPctLower,
    LtePrimary,
    WithinPct,
    describe,
    is_violation,
    parse_rate_policy,
)
from pricegraph.domain.types import PricingRole, ServiceId
from pricegraph.domain.visibility import visible_fields

logger = logging.getLogger(__name__)

type NodeKind = Literal["field", "option"]


class PropsProvider(Protocol):
    def get_props(self) -> ServiceProps: ...


@dataclass(frozen=True)
class Anchor:
    """A selection starting point: a button field or one option of a field."""

    kind: NodeKind
    id: str
    field_id: str
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "id": self.id, "field_id": self.field_id, "label": self.label}


@dataclass(frozen=True)
class Candidate:
    """A base-role priced node reached during simulation."""

    kind: NodeKind
    id: str
    service_id: ServiceId
    rate: float
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "service_id": self.service_id,
            "rate": self.rate,
            "label": self.label,
        }


@dataclass(frozen=True)
class RateDiagnostic:
    tag_id: str
    offender: Candidate
    primary: Candidate
    simulation_anchor: Anchor
    reason: str
    policy: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag_id": self.tag_id,
            "offender": self.offender.to_dict(),
            "primary": self.primary.to_dict(),
            "simulation_anchor": self.simulation_anchor.to_dict(),
            "reason": self.reason,
            "policy": self.policy,
        }


def _props_of(source: ServiceProps | PropsProvider) -> ServiceProps:
    if isinstance(source, ServiceProps):
        return source
    return source.get_props()


# ---------------------------------------------------------------------------
# Anchors and reveal sequences
# ---------------------------------------------------------------------------


def anchors_for_tag(props: ServiceProps, tag_id: str, *, index: ConfigIndex | None = None) -> list[Anchor]:
    """Button and option-bearing fields visible with no selection, in declaration order."""
    index = index or ConfigIndex.of(props)
    visible = set(visible_fields(props, tag_id, (), index=index).field_ids)
    anchors: list[Anchor] = []
    for fld in props.fields:
        if fld.id not in visible:
            continue
        if fld.has_options:
            anchors.extend(
                Anchor(kind="option", id=opt.id, field_id=fld.id, label=opt.label or opt.id)
                for opt in fld.options
            )
        elif fld.button:
            anchors.append(Anchor(kind="field", id=fld.id, field_id=fld.id, label=fld.label or fld.id))
    return anchors


def reveal_sequence(
    props: ServiceProps,
    anchor: Anchor,
    services: ServiceMap,
    *,
    tag_id: str | None = None,
    index: ConfigIndex | None = None,
) -> Iterator[Candidate]:
    """Base candidates reached by selecting *anchor*, in first-encountered order.

    The anchor itself comes first, then ``includes_for_buttons`` is expanded
    breadth-first. Each revealed trigger is expanded once, and only button
    or option-bearing fields are followed. With *tag_id*, a revealed field
    must also be visible under that tag for the selections leading to it,
    so tag excludes and ``excludes_for_buttons`` hide it.
    """
    index = index or ConfigIndex.of(props)
    queue: deque[tuple[str, tuple[str, ...]]] = deque([(anchor.id, (anchor.id,))])
    visited: set[str] = {anchor.id}

    first = _candidate_for(index, anchor.id, services)
    if first is not None:
        yield first

    while queue:
        trigger, path = queue.popleft()
        targets = props.includes_for_buttons.get(trigger, ())
        if not targets:
            continue
        shown: set[str] | None = None
        if tag_id is not None:
            shown = set(visible_fields(props, tag_id, path, index=index).field_ids)
        for target in targets:
            fld = index.field(target)
            if fld is None or not (fld.button or fld.has_options):
                continue
            if shown is not None and fld.id not in shown:
                continue
            nodes = [opt.id for opt in fld.options] if fld.has_options else [fld.id]
            for node_id in nodes:
                if node_id in visited:
                    continue
                visited.add(node_id)
                candidate = _candidate_for(index, node_id, services)
                if candidate is not None:
                    yield candidate
                queue.append((node_id, (*path, node_id)))


def _candidate_for(index: ConfigIndex, node_id: str, services: ServiceMap) -> Candidate | None:
    opt = index.option(node_id)
    if opt is not None:
        kind: NodeKind = "option"
        role, sid, label = opt.pricing_role, opt.service_id, opt.label
    else:
        fld = index.field(node_id)
        if fld is None or fld.has_options:
            return None
        kind = "field"
        role, sid, label = fld.pricing_role, fld.service_id, fld.label
    if role is not PricingRole.BASE or sid is None:
        return None
    cap = lookup_service(services, sid)
    if cap is None or cap.rate is None:
        logger.debug("Skipping %s %s: no known rate for service %s", kind, node_id, sid)
        return None
    return Candidate(kind=kind, id=node_id, service_id=sid, rate=cap.rate, label=label or node_id)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _explain(
    policy: LtePrimary | WithinPct | AtLeastPctLower,
    primary: Candidate,
    offender: Candidate,
    where: str,
) -> str:
    match policy:
        case WithinPct(pct=pct):
            bound = f"within {pct:g}% of"
        case AtLeastPctLower(pct=pct):
            bound = f"at least {pct:g}% lower than"
        case _:
            bound = "<="
    return (
        f"Rate coherence failed ({where}): candidate {offender.rate:g} must be "
        f"{bound} primary {primary.rate:g}"
    )


def validate_rate_coherence_deep(
    builder: ServiceProps | PropsProvider,
    services: ServiceMap,
    tag_id: str,
    rate_policy: LtePrimary | WithinPct | AtLeastPctLower | Mapping[str, Any] | str | None = None,
) -> list[RateDiagnostic]:
    """Simulate every anchor under *tag_id* and report incoherent rates.

    The first distinct base candidate across all anchors becomes the
    primary; each later distinct candidate is checked once, against the
    anchor that first revealed it. The tag's own service never takes part.
    """
    policy = parse_rate_policy(rate_policy) if rate_policy is not None else DEFAULT_RATE_POLICY
    props = _props_of(builder)
    index = ConfigIndex.of(props)
    tag = index.tag(tag_id)
    if tag is None:
        return []
    where = tag.label or tag.id

    primary: Candidate | None = None
    checked: set[str] = set()
    diagnostics: list[RateDiagnostic] = []
    for anchor in anchors_for_tag(props, tag_id, index=index):
        for candidate in reveal_sequence(props, anchor, services, tag_id=tag_id, index=index):
            key = str(candidate.service_id)
            if key in checked:
                continue
            checked.add(key)
            if primary is None:
                primary = candidate
                continue
            if is_violation(policy, primary.rate, candidate.rate):
                diagnostics.append(
                    RateDiagnostic(
                        tag_id=tag_id,
                        offender=candidate,
                        primary=primary,
                        simulation_anchor=anchor,
                        reason=_explain(policy, primary, candidate, where),
                        policy=describe(policy),
                    )
                )
    return diagnostics


def validate_rate_coherence_all(
    builder: ServiceProps | PropsProvider,
    services: ServiceMap,
    rate_policy: LtePrimary | WithinPct | AtLeastPctLower | Mapping[str, Any] | str | None = None,
) -> list[RateDiagnostic]:
    """Run the deep check for every tag of the revision, in tag order."""
    props = _props_of(builder)
    diagnostics: list[RateDiagnostic] = []
    for tag in props.filters:
        diagnostics.extend(validate_rate_coherence_deep(props, services, tag.id, rate_policy))
    return diagnostics
