"""Command: tag/field/option outline of a document."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from pricegraph.commands._base import PricegraphCommand, document_options

if TYPE_CHECKING:
    from pricegraph.commands._context import AppContext


@click.command(
    cls=PricegraphCommand,
    examples="""\
  pricegraph tree config.json
  pricegraph --json tree config.json""",
)
@document_options
@click.pass_obj
def tree(app: AppContext, document: Path, services_path: Path | None) -> None:
    """Show the tag tree with bound fields and options."""
    from pricegraph.services.resolve import ResolveService

    builder = app.open_builder(document, services_path)
    app.emit(ResolveService(builder, app.settings.config).tree())
