"""Tests for service composition."""

from __future__ import annotations

import pytest

from pricegraph.domain.composer import compose_entries, compose_services
from pricegraph.domain.models import ConfigIndex, ServiceCapability, ServiceProps
from pricegraph.domain.normalise import normalise
from pricegraph.domain.types import PricingRole


def _props(tag_service: int | None = None) -> ServiceProps:
    return normalise(
        {
            "filters": [{"id": "root", "label": "Root", "service_id": tag_service}],
            "fields": [
                {
                    "id": "f:plan",
                    "label": "Plan",
                    "bind_id": "root",
                    "options": [
                        {"id": "o:util", "pricing_role": "utility", "service_id": 300},
                        {"id": "o:base2", "pricing_role": "base", "service_id": 200},
                        {"id": "o:base3", "pricing_role": "base", "service_id": 400},
                        {"id": "o:free"},
                    ],
                }
            ],
        }
    )


def _ids(props: ServiceProps, selected: list[str]) -> list[object]:
    tag = ConfigIndex.of(props).tag("root")
    return [svc.id for svc in compose_services(props, tag, selected)]


class TestComposeServices:
    def test_first_base_leads_then_selection_order(self) -> None:
        assert _ids(_props(), ["o:util", "o:base2", "o:base3"]) == [200, 300, 400]

    def test_selection_order_decides_primary(self) -> None:
        assert _ids(_props(), ["o:base3", "o:util", "o:base2"]) == [400, 300, 200]

    def test_first_base_replaces_tag_service(self) -> None:
        assert _ids(_props(tag_service=100), ["o:util", "o:base2"]) == [200, 300]

    def test_tag_service_kept_without_base(self) -> None:
        assert _ids(_props(tag_service=100), ["o:util"]) == [100, 300]

    def test_no_tag_service_no_base(self) -> None:
        assert _ids(_props(), ["o:util"]) == [300]

    def test_skips_unpriced_and_unknown(self) -> None:
        assert _ids(_props(), ["o:free", "missing", "o:base2"]) == [200]

    def test_composite_key(self) -> None:
        assert _ids(_props(), ["f:plan::o:base3"]) == [400]

    def test_no_tag(self) -> None:
        props = _props()
        assert [s.id for s in compose_services(props, None, ["o:util", "o:base2"])] == [200, 300]


class TestResolver:
    def test_identity_resolver_by_default(self) -> None:
        props = _props()
        tag = ConfigIndex.of(props).tag("root")
        services = compose_services(props, tag, ["o:base2"])
        assert services == [ServiceCapability(id=200)]
        assert services[0].rate is None

    def test_resolver_records_used(self) -> None:
        records = {200: ServiceCapability(id=200, rate=1.5, refill=True)}
        props = _props()
        tag = ConfigIndex.of(props).tag("root")
        services = compose_services(props, tag, ["o:base2", "o:util"], records.get)
        assert services[0].rate == 1.5
        assert services[0].flag("refill") is True
        assert services[1] == ServiceCapability(id=300)


class TestComposeEntries:
    @pytest.fixture
    def entries(self):
        props = _props(tag_service=100)
        tag = ConfigIndex.of(props).tag("root")
        return compose_entries(props, tag, ["o:util", "o:base3"])

    def test_entry_sources(self, entries) -> None:
        assert [(e.source_id, e.field_id) for e in entries] == [
            ("o:base3", "f:plan"),
            ("o:util", "f:plan"),
        ]

    def test_entry_roles(self, entries) -> None:
        assert [e.role for e in entries] == [PricingRole.BASE, PricingRole.UTILITY]

    def test_tag_entry_without_selection(self) -> None:
        props = _props(tag_service=100)
        tag = ConfigIndex.of(props).tag("root")
        (entry,) = compose_entries(props, tag, [])
        assert entry.source_id == "root"
        assert entry.field_id is None
        assert entry.role is PricingRole.BASE
