"""Tests for the configuration section models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pricegraph.config.models import (
    LINT_CATEGORIES,
    BuilderConfig,
    FallbackConfig,
    LintConfig,
    PricegraphConfig,
    RatesConfig,
)
from pricegraph.domain.fallback import FallbackSettings
from pricegraph.domain.rates import AtLeastPctLower, LtePrimary, WithinPct
from pricegraph.domain.types import FallbackMode, SelectionStrategy


class TestDefaults:
    def test_empty_config_is_valid(self) -> None:
        cfg = PricegraphConfig.model_validate({})
        assert cfg.builder.history_limit == 50
        assert cfg.builder.validate_on_load is True
        assert cfg.builder.root_tag_id == "root"
        assert cfg.fallback.rate_policy == LtePrimary()
        assert cfg.fallback.mode is FallbackMode.STRICT
        assert cfg.rates.policy == LtePrimary()
        assert cfg.lint.categories == LINT_CATEGORIES

    def test_frozen(self) -> None:
        cfg = PricegraphConfig()
        with pytest.raises(ValidationError):
            cfg.builder = BuilderConfig()  # type: ignore[misc]


class TestBuilderConfig:
    def test_validate_alias(self) -> None:
        assert BuilderConfig.model_validate({"validate": False}).validate_on_load is False
        assert BuilderConfig(validate_on_load=False).validate_on_load is False

    def test_history_limit_positive(self) -> None:
        with pytest.raises(ValidationError):
            BuilderConfig(history_limit=0)


class TestFallbackConfig:
    def test_text_policy(self) -> None:
        cfg = FallbackConfig.model_validate({"rate_policy": "within_pct:5", "selection_strategy": "cheapest"})
        assert cfg.rate_policy == WithinPct(pct=5)
        assert cfg.selection_strategy is SelectionStrategy.CHEAPEST

    def test_table_policy(self) -> None:
        cfg = FallbackConfig.model_validate({"rate_policy": {"kind": "at_least_pct_lower", "pct": 3}})
        assert cfg.rate_policy == AtLeastPctLower(pct=3)

    def test_bad_policy(self) -> None:
        with pytest.raises(ValidationError):
            FallbackConfig.model_validate({"rate_policy": "cheapest"})

    def test_to_settings(self) -> None:
        cfg = FallbackConfig(mode=FallbackMode.DEV, require_constraint_fit=False)
        assert cfg.to_settings() == FallbackSettings(mode=FallbackMode.DEV, require_constraint_fit=False)


class TestRatesConfig:
    def test_policy(self) -> None:
        assert RatesConfig.model_validate({"policy": "within_pct:10"}).policy == WithinPct(pct=10)


class TestLintConfig:
    def test_unknown_category(self) -> None:
        with pytest.raises(ValidationError, match="Unknown lint categories: bogus"):
            LintConfig(categories=("rates", "bogus"))

    def test_enabled(self) -> None:
        cfg = LintConfig(categories=("rates",))
        assert cfg.enabled("rates") is True
        assert cfg.enabled("fallbacks") is False
