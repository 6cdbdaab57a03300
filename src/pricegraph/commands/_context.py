"""AppContext: shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``. Builds a Builder per invocation and centralizes
result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from pricegraph.config.logging import bind_document, configure_logging
from pricegraph.domain.errors import InvalidConfigError
from pricegraph.infrastructure.builder import Builder
from pricegraph.infrastructure.loader import read_document, read_service_map
from pricegraph.output.formatters import OutputSettings, format_result
from pricegraph.plugins.manager import PluginManager
from pricegraph.services.edit import EditService
from pricegraph.services.result import ErrorCode, ServiceResult
from pricegraph.services.telemetry import enable_telemetry

if TYPE_CHECKING:
    from pricegraph.config.settings import PricegraphSettings


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The plugin manager is created lazily so ``--help`` and ``--version``
    never trigger entry-point discovery.
    """

    def __init__(self, settings: PricegraphSettings) -> None:
        self.settings = settings
        self._plugins: PluginManager | None = None

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)
        if settings.verbose:
            enable_telemetry()

    @property
    def plugins(self) -> PluginManager:
        if self._plugins is None:
            self._plugins = PluginManager()
            self._plugins.discover_and_load()
        return self._plugins

    def open_builder(self, document: Path, services_path: Path | None = None) -> Builder:
        """Read *document* (and the service map) into a fresh Builder.

        Emits an ``INVALID_CONFIG`` failure and exits when either file is
        unreadable or the document breaks a structural invariant.
        """
        bind_document(document)
        section = self.settings.builder
        builder = Builder(
            history_limit=section.history_limit,
            validate=section.validate_on_load,
            plugins=self.plugins,
            root_tag_id=section.root_tag_id,
        )
        try:
            raw = read_document(document)
            if services_path is not None:
                builder.set_service_map(read_service_map(services_path))
        except InvalidConfigError as exc:
            result = ServiceResult.failure(
                "load", ErrorCode.INVALID_CONFIG, str(exc), issues=exc.issues
            )
        else:
            result = EditService(builder, self.settings.config).load(raw)
        if not result.ok:
            self.emit(result)
        return builder

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success: writes to stdout. Warnings go to stderr so they don't
          pollute piped output.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
