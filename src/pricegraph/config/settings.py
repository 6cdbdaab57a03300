"""Unified settings: CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  (CLI flags passed by Click)
  2. Env vars     (``PRICEGRAPH_*`` prefix, ``__`` for nested sections)
  3. TOML file    (``pricegraph.toml`` discovered via walk-up)
  4. Code defaults baked into the section models
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

import click
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from pricegraph.config.discovery import find_config, read_config_table
from pricegraph.config.models import (
    BuilderConfig,
    FallbackConfig,
    LintConfig,
    PricegraphConfig,
    RatesConfig,
)


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from ``pricegraph.toml`` or ``[tool.pricegraph]`` in pyproject.toml."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            try:
                self._data = read_config_table(toml_path)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Thread-local storage for the TOML path during construction.
_tls = threading.local()


class PricegraphSettings(BaseSettings):
    """Settings for the pricegraph CLI, stored in ``click.Context.obj``.

    Attributes:
        project_root: Parent of ``pricegraph.toml``, or CWD if none was found.
        config_path: The TOML file the settings were read from, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "PRICEGRAPH_",
        "env_nested_delimiter": "__",
    }

    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    builder: BuilderConfig = Field(default_factory=BuilderConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    rates: RatesConfig = Field(default_factory=RatesConfig)
    lint: LintConfig = Field(default_factory=LintConfig)

    @property
    def config(self) -> PricegraphConfig:
        """The TOML-backed sections as one PricegraphConfig."""
        return PricegraphConfig(
            builder=self.builder, fallback=self.fallback, rates=self.rates, lint=self.lint
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert the TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        project_root: Path | None = None,
        **cli_flags: Any,
    ) -> PricegraphSettings:
        """Discover ``pricegraph.toml`` (or use *config_path*) and merge CLI flags on top."""
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(project_root)

        resolved_root = project_root
        if resolved_root is None:
            resolved_root = toml_path.parent if toml_path else Path.cwd()

        _tls.toml_path = toml_path
        try:
            return cls(project_root=resolved_root, config_path=toml_path, **cli_flags)
        finally:
            _tls.toml_path = None
