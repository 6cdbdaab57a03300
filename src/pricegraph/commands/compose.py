"""Command: services implied by a selection."""

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
  pricegraph compose config.json o_basic o_addon --services services.json
  pricegraph compose config.json o_basic --tag t1""",
)
@document_options
@click.argument("selected", nargs=-1)
@click.option("--tag", "tag_id", default=None, help="Tag context (inferred when omitted).")
@click.pass_obj
def compose(
    app: AppContext,
    document: Path,
    services_path: Path | None,
    selected: tuple[str, ...],
    tag_id: str | None,
) -> None:
    """Compose the ordered services for SELECTED option ids."""
    from pricegraph.services.resolve import ResolveService

    builder = app.open_builder(document, services_path)
    app.emit(ResolveService(builder, app.settings.config).compose(selected, tag_id=tag_id))
