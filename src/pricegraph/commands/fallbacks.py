"""Command group: fallback candidates."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from pricegraph.commands._base import PricegraphGroup, document_options

if TYPE_CHECKING:
    from pricegraph.commands._context import AppContext


@click.group(
    cls=PricegraphGroup,
    examples="""\
  pricegraph fallbacks failed config.json -s services.json
  pricegraph fallbacks eligible config.json 200 --node o_basic -s services.json
  pricegraph fallbacks check config.json t1 300 301 --select o_basic -s services.json""",
)
def fallbacks() -> None:
    """Inspect authored fallbacks and score replacement candidates."""


@fallbacks.command(
    examples="""\
  pricegraph fallbacks failed config.json -s services.json""",
)
@document_options
@click.pass_obj
def failed(app: AppContext, document: Path, services_path: Path | None) -> None:
    """List authored fallbacks that can never be used."""
    from pricegraph.services.fallback import FallbackService

    builder = app.open_builder(document, services_path)
    app.emit(FallbackService(builder, app.settings.config).failed())


@fallbacks.command(
    examples="""\
  pricegraph fallbacks eligible config.json 200 -s services.json
  pricegraph fallbacks eligible config.json 200 --node o_basic --tag t1 --limit 1""",
)
@document_options
@click.argument("primary")
@click.option("--node", "node_id", default=None, help="Node whose list is tried first.")
@click.option("--tag", "tag_id", default=None, help="Tag whose constraints must fit.")
@click.option("--limit", type=int, default=None, help="Return at most N candidates.")
@click.pass_obj
def eligible(
    app: AppContext,
    document: Path,
    services_path: Path | None,
    primary: str,
    node_id: str | None,
    tag_id: str | None,
    limit: int | None,
) -> None:
    """List eligible fallbacks for the PRIMARY service id."""
    from pricegraph.services.fallback import FallbackService

    builder = app.open_builder(document, services_path)
    svc = FallbackService(builder, app.settings.config)
    app.emit(svc.eligible(primary, node_id=node_id, tag_id=tag_id, limit=limit))


@fallbacks.command(
    examples="""\
  pricegraph fallbacks check config.json t1 300 301 --select o_basic -s services.json""",
)
@document_options
@click.argument("tag_id")
@click.argument("candidates", nargs=-1, required=True)
@click.option("--select", "selected", multiple=True, help="Selected trigger id (repeatable).")
@click.pass_obj
def check(
    app: AppContext,
    document: Path,
    services_path: Path | None,
    tag_id: str,
    candidates: tuple[str, ...],
    selected: tuple[str, ...],
) -> None:
    """Score CANDIDATES against the visible group of TAG_ID."""
    from pricegraph.services.fallback import FallbackService

    builder = app.open_builder(document, services_path)
    svc = FallbackService(builder, app.settings.config)
    app.emit(svc.check_candidates(candidates, tag_id=tag_id, selected=selected))
