"""Command: fields visible under a tag."""

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
  pricegraph visible config.json root
  pricegraph visible config.json t1 o_fast o_gift
  pricegraph visible config.json t1 f_size::o_large""",
)
@document_options
@click.argument("tag_id")
@click.argument("selected", nargs=-1)
@click.pass_obj
def visible(
    app: AppContext,
    document: Path,
    services_path: Path | None,
    tag_id: str,
    selected: tuple[str, ...],
) -> None:
    """List fields visible under TAG_ID after selecting SELECTED triggers."""
    from pricegraph.services.resolve import ResolveService

    builder = app.open_builder(document, services_path)
    app.emit(ResolveService(builder, app.settings.config).visible(tag_id, selected))
