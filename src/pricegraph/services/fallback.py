"""FallbackService: candidate scoring and authored fallback checks."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pricegraph.domain.composer import compose_entries
from pricegraph.domain.fallback import (
    FallbackContext,
    collect_failed_fallbacks,
    filter_services_for_visible_group,
    get_eligible_fallbacks,
)
from pricegraph.domain.keys import canonical_key
from pricegraph.domain.models import coerce_service_id
from pricegraph.domain.selection import Selection
from pricegraph.domain.types import ServiceId
from pricegraph.services.base import BaseService
from pricegraph.services.result import ErrorCode, ServiceResult
from pricegraph.services.telemetry import traced


class FallbackService(BaseService):
    """Fallback candidate queries using the ``[fallback]`` settings."""

    @traced
    def check_candidates(
        self,
        candidate_ids: Iterable[Any],
        *,
        tag_id: str,
        selected: Iterable[str] = (),
    ) -> ServiceResult:
        """Score candidates against the visible group of *tag_id* under *selected*.

        Used services are the composed services of that group; effective
        constraints come from the tag; policies from the revision.
        """
        index = self._builder.index
        tag = index.tag(tag_id)
        if tag is None:
            return ServiceResult.unknown_tag("check_candidates", tag_id)
        selection = Selection.of(canonical_key(index, key) for key in selected)
        entries = compose_entries(
            index.props, tag, selection, self._builder.resolve_service, index=index
        )
        ctx = FallbackContext(
            tag_id=tag_id,
            used_service_ids=tuple(entry.service.id for entry in entries),
            effective_constraints=dict(tag.constraints),
            policies=index.props.policies,
            settings=self._config.fallback.to_settings(),
        )
        candidates = [sid for sid in map(coerce_service_id, candidate_ids) if sid is not None]
        checks = filter_services_for_visible_group(candidates, ctx, self._builder.service_map)
        return ServiceResult(
            ok=True,
            op="check_candidates",
            data={
                "tag_id": tag_id,
                "used_service_ids": list(ctx.used_service_ids),
                "candidates": [check.to_dict() for check in checks],
                "eligible": [check.id for check in checks if check.ok],
            },
        )

    @traced
    def eligible(
        self,
        primary: ServiceId,
        *,
        node_id: str | None = None,
        tag_id: str | None = None,
        limit: int | None = None,
    ) -> ServiceResult:
        """Authored fallbacks for *primary* that pass rate and constraint checks."""
        primary_id = coerce_service_id(primary)
        if primary_id is None:
            return ServiceResult.failure(
                "eligible_fallbacks", ErrorCode.NOT_FOUND, f"Invalid service id: {primary!r}"
            )
        found = get_eligible_fallbacks(
            primary_id,
            self._builder.get_props(),
            self._builder.service_map,
            node_id=node_id,
            tag_id=tag_id,
            settings=self._config.fallback.to_settings(),
            limit=limit,
        )
        return ServiceResult(
            ok=True,
            op="eligible_fallbacks",
            data={"primary": primary_id, "node_id": node_id, "tag_id": tag_id, "eligible": found},
        )

    @traced
    def failed(self) -> ServiceResult:
        """Every authored fallback entry that can never be used."""
        failures = collect_failed_fallbacks(
            self._builder.get_props(),
            self._builder.service_map,
            self._config.fallback.to_settings(),
        )
        return ServiceResult(
            ok=True,
            op="failed_fallbacks",
            data={"failures": [f.to_dict() for f in failures], "count": len(failures)},
        )
