"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, pricegraph.toml only contains
overrides. An empty file (or none at all) is a valid configuration.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from pricegraph.domain.fallback import FallbackSettings
from pricegraph.domain.rates import DEFAULT_RATE_POLICY, RatePolicy, parse_rate_policy
from pricegraph.domain.types import ROOT_TAG_ID, FallbackMode, SelectionStrategy

LINT_CATEGORIES: tuple[str, ...] = (
    "structure",
    "identity",
    "references",
    "option_maps",
    "visibility",
    "inputs",
    "utility",
    "unbound",
    "constraints",
    "rates",
    "fallbacks",
    "policies",
)


class BuilderConfig(BaseModel):
    """[builder] section. ``validate`` rejects structurally broken documents on load."""

    model_config = {"frozen": True, "populate_by_name": True}

    history_limit: int = Field(default=50, ge=1)
    validate_on_load: bool = Field(default=True, alias="validate")
    root_tag_id: str = ROOT_TAG_ID


class FallbackConfig(BaseModel):
    """[fallback] section. ``rate_policy`` accepts ``"within_pct:10"`` or a table."""

    model_config = {"frozen": True}

    rate_policy: RatePolicy = DEFAULT_RATE_POLICY
    require_constraint_fit: bool = True
    selection_strategy: SelectionStrategy = SelectionStrategy.PRIORITY
    mode: FallbackMode = FallbackMode.STRICT

    @field_validator("rate_policy", mode="before")
    @classmethod
    def coerce_rate_policy(cls, value: Any) -> Any:
        return parse_rate_policy(value)

    def to_settings(self) -> FallbackSettings:
        return FallbackSettings(
            rate_policy=self.rate_policy,
            require_constraint_fit=self.require_constraint_fit,
            selection_strategy=self.selection_strategy,
            mode=self.mode,
        )


class RatesConfig(BaseModel):
    """[rates] section: the rate policy used by the coherence simulator."""

    model_config = {"frozen": True}

    policy: RatePolicy = DEFAULT_RATE_POLICY

    @field_validator("policy", mode="before")
    @classmethod
    def coerce_policy(cls, value: Any) -> Any:
        return parse_rate_policy(value)


class LintConfig(BaseModel):
    """[lint] section."""

    model_config = {"frozen": True}

    categories: tuple[str, ...] = LINT_CATEGORIES
    simulate_rates: bool = True
    global_utility_guard: bool = True

    @field_validator("categories")
    @classmethod
    def known_categories(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        unknown = sorted(set(value) - set(LINT_CATEGORIES))
        if unknown:
            msg = f"Unknown lint categories: {', '.join(unknown)}"
            raise ValueError(msg)
        return value

    def enabled(self, category: str) -> bool:
        return category in self.categories


class PricegraphConfig(BaseModel):
    """Root configuration composing all sections."""

    model_config = {"frozen": True}

    builder: BuilderConfig = Field(default_factory=BuilderConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    rates: RatesConfig = Field(default_factory=RatesConfig)
    lint: LintConfig = Field(default_factory=LintConfig)
