"""Tests for rate policies."""

from __future__ import annotations

import math

import pytest
from pydantic import ValidationError

from pricegraph.domain.rates import (
    DEFAULT_RATE_POLICY,
    AtLeastPctLower,
    LtePrimary,
    WithinPct,
    describe,
    is_violation,
    parse_rate_policy,
    passes_rate,
)


class TestParseRatePolicy:
    def test_none_is_default(self) -> None:
        assert parse_rate_policy(None) == DEFAULT_RATE_POLICY == LtePrimary()

    def test_text_forms(self) -> None:
        assert parse_rate_policy("lte_primary") == LtePrimary()
        assert parse_rate_policy("within_pct:10") == WithinPct(pct=10)
        assert parse_rate_policy(" at_least_pct_lower : 5 ") == AtLeastPctLower(pct=5)

    def test_mapping(self) -> None:
        assert parse_rate_policy({"kind": "within_pct", "pct": 2.5}) == WithinPct(pct=2.5)

    def test_model_passthrough(self) -> None:
        policy = WithinPct(pct=1)
        assert parse_rate_policy(policy) is policy

    @pytest.mark.parametrize(
        "raw",
        ["cheapest", "within_pct", "within_pct:-1", "at_least_pct_lower:150", {"pct": 3}],
    )
    def test_invalid(self, raw: object) -> None:
        with pytest.raises(ValidationError):
            parse_rate_policy(raw)


class TestDescribe:
    def test_labels(self) -> None:
        assert describe(LtePrimary()) == "lte_primary"
        assert describe(WithinPct(pct=10)) == "within_pct(10)"
        assert describe(AtLeastPctLower(pct=2.5)) == "at_least_pct_lower(2.5)"


class TestIsViolation:
    def test_lte_primary(self) -> None:
        assert is_violation(LtePrimary(), 10, 11) is True
        assert is_violation(LtePrimary(), 10, 10) is False
        assert is_violation(LtePrimary(), 10, 9) is False

    def test_within_pct_counts_only_overage(self) -> None:
        policy = WithinPct(pct=10)
        assert is_violation(policy, 100, 110) is False
        assert is_violation(policy, 100, 112) is True
        assert is_violation(policy, 100, 20) is False

    @pytest.mark.parametrize(
        ("primary", "offender", "pct"),
        [(100, 107, 7), (10, 21, 110), (3, 3.3, 10)],
    )
    def test_within_pct_exact_bound_passes(self, primary: float, offender: float, pct: float) -> None:
        assert is_violation(WithinPct(pct=pct), primary, offender) is False
        assert passes_rate(WithinPct(pct=pct), primary, offender) is True

    def test_within_pct_zero_primary(self) -> None:
        policy = WithinPct(pct=10)
        assert is_violation(policy, 0, 1) is True
        assert is_violation(policy, 0, 0) is False

    def test_at_least_pct_lower(self) -> None:
        policy = AtLeastPctLower(pct=5)
        assert is_violation(policy, 190, 195) is True
        assert is_violation(policy, 190, 185) is True
        assert is_violation(policy, 190, 180) is False


class TestPassesRate:
    def test_unknown_rates_fail(self) -> None:
        assert passes_rate(LtePrimary(), None, 1) is False
        assert passes_rate(LtePrimary(), 1, None) is False

    def test_non_finite_rates_fail(self) -> None:
        assert passes_rate(LtePrimary(), math.inf, 1) is False
        assert passes_rate(LtePrimary(), 10, math.nan) is False

    def test_within_policy(self) -> None:
        assert passes_rate(WithinPct(pct=10), 100, 105) is True
        assert passes_rate(WithinPct(pct=10), 100, 115) is False
