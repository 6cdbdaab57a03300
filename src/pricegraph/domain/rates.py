"""Rate policies: how an alternative's rate may relate to the primary's.

Three variants, discriminated on ``kind``:

* ``lte_primary``: the candidate may not cost more than the primary.
* ``within_pct``: the candidate may cost at most ``pct`` percent more.
* ``at_least_pct_lower``: the candidate must be at least ``pct`` percent cheaper.
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class LtePrimary(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["lte_primary"] = "lte_primary"


class WithinPct(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["within_pct"] = "within_pct"
    pct: float = Field(ge=0)


class AtLeastPctLower(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["at_least_pct_lower"] = "at_least_pct_lower"
    pct: float = Field(ge=0, le=100)


RatePolicy = Annotated[LtePrimary | WithinPct | AtLeastPctLower, Field(discriminator="kind")]

_ADAPTER: TypeAdapter[LtePrimary | WithinPct | AtLeastPctLower] = TypeAdapter(RatePolicy)

DEFAULT_RATE_POLICY = LtePrimary()


def parse_rate_policy(raw: Any) -> LtePrimary | WithinPct | AtLeastPctLower:
    """Build a rate policy from a model, a mapping, or ``"kind"`` / ``"kind:pct"`` text.

    Raises:
        pydantic.ValidationError: If the payload names no known policy.
    """
    if isinstance(raw, LtePrimary | WithinPct | AtLeastPctLower):
        return raw
    if raw is None:
        return DEFAULT_RATE_POLICY
    if isinstance(raw, str):
        kind, _, pct = raw.partition(":")
        data: dict[str, Any] = {"kind": kind.strip()}
        if pct.strip():
            data["pct"] = pct.strip()
        return _ADAPTER.validate_python(data)
    return _ADAPTER.validate_python(raw)


def describe(policy: LtePrimary | WithinPct | AtLeastPctLower) -> str:
    """Short human label, e.g. ``within_pct(10)``."""
    match policy:
        case WithinPct(pct=pct) | AtLeastPctLower(pct=pct):
            return f"{policy.kind}({pct:g})"
        case _:
            return policy.kind


def is_violation(
    policy: LtePrimary | WithinPct | AtLeastPctLower,
    primary_rate: float,
    offender_rate: float,
) -> bool:
    """Whether *offender_rate* breaks *policy* relative to *primary_rate*.

    Only overage counts for ``within_pct``; cheaper or equal never violates.
    A zero primary rate makes any positive offender a ``within_pct`` violation.
    """
    match policy:
        case LtePrimary():
            return offender_rate > primary_rate
        case WithinPct(pct=pct):
            return offender_rate - primary_rate > primary_rate * pct / 100
        case AtLeastPctLower(pct=pct):
            return offender_rate > primary_rate * (1 - pct / 100)
    msg = f"Unknown rate policy: {policy!r}"
    raise TypeError(msg)


def passes_rate(
    policy: LtePrimary | WithinPct | AtLeastPctLower,
    primary_rate: float | None,
    candidate_rate: float | None,
) -> bool:
    """Rate check for fallback candidates. Unknown or non-finite rates fail."""
    if primary_rate is None or candidate_rate is None:
        return False
    if not (math.isfinite(primary_rate) and math.isfinite(candidate_rate)):
        return False
    return not is_violation(policy, primary_rate, candidate_rate)
