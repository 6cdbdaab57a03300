"""Command: configuration integrity report."""

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
  pricegraph lint config.json
  pricegraph lint config.json --services services.json
  pricegraph lint config.toml --errors-only
  pricegraph --json lint config.json""",
)
@document_options
@click.option("--errors-only", is_flag=True, help="Hide warnings.")
@click.option(
    "--strict",
    is_flag=True,
    help="Exit with code 1 when any error-severity issue is found.",
)
@click.pass_obj
def lint(
    app: AppContext,
    document: Path,
    services_path: Path | None,
    errors_only: bool,
    strict: bool,
) -> None:
    """Report structural, reference, pricing and policy issues."""
    from pricegraph.services.lint import SEVERITY_ERROR, LintService

    builder = app.open_builder(document, services_path)
    result = LintService(builder, app.settings.config).lint()
    if errors_only:
        issues = [i for i in result.data["issues"] if i["severity"] == SEVERITY_ERROR]
        result = result.model_copy(
            update={
                "data": {**result.data, "issues": issues, "count": len(issues), "warnings": 0}
            }
        )
    app.emit(result)
    if strict and result.data["errors"]:
        raise SystemExit(1)
