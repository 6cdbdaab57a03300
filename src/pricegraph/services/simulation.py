"""SimulationService: rate coherence across every reachable selection path."""

from __future__ import annotations

from typing import Any

from pricegraph.domain.rates import describe, parse_rate_policy
from pricegraph.domain.simulation import validate_rate_coherence_deep
from pricegraph.services.base import BaseService
from pricegraph.services.result import ServiceResult
from pricegraph.services.telemetry import trace_span, traced


class SimulationService(BaseService):
    """Runs the rate-coherence simulator for one tag or all of them."""

    @traced
    def simulate(self, tag_id: str | None = None, *, rate_policy: Any = None) -> ServiceResult:
        """Report rate-coherence diagnostics.

        *rate_policy* overrides the ``[rates]`` policy; it accepts the same
        text and table forms as the config file.
        """
        index = self._builder.index
        if tag_id is not None and index.tag(tag_id) is None:
            return ServiceResult.unknown_tag("simulate", tag_id)

        policy = (
            parse_rate_policy(rate_policy) if rate_policy is not None else self._config.rates.policy
        )
        tag_ids = [tag_id] if tag_id is not None else list(index.tags)
        diagnostics: list[dict[str, Any]] = []
        for tid in tag_ids:
            with trace_span("simulate_tag", tag_id=tid):
                found = validate_rate_coherence_deep(
                    self._builder, self._builder.service_map, tid, policy
                )
            diagnostics.extend(diag.to_dict() for diag in found)

        return ServiceResult(
            ok=True,
            op="simulate",
            data={
                "policy": describe(policy),
                "tags": tag_ids,
                "diagnostics": diagnostics,
                "count": len(diagnostics),
            },
        )
