"""Command: rate-coherence simulation."""

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
  pricegraph simulate config.json --services services.json
  pricegraph simulate config.json -s services.json --tag t1
  pricegraph simulate config.json -s services.json --policy within_pct:10""",
)
@document_options
@click.option("--tag", "tag_id", default=None, help="Only simulate this tag.")
@click.option(
    "--policy",
    "rate_policy",
    default=None,
    help="Rate policy: lte_primary, within_pct:N or at_least_pct_lower:N.",
)
@click.pass_obj
def simulate(
    app: AppContext,
    document: Path,
    services_path: Path | None,
    tag_id: str | None,
    rate_policy: str | None,
) -> None:
    """Walk every selection path and report base rates that break the policy."""
    from pydantic import ValidationError

    from pricegraph.services.simulation import SimulationService

    builder = app.open_builder(document, services_path)
    try:
        result = SimulationService(builder, app.settings.config).simulate(
            tag_id, rate_policy=rate_policy
        )
    except ValidationError as exc:
        raise click.BadParameter(f"unknown rate policy {rate_policy!r}", param_hint="--policy") from exc
    app.emit(result)
