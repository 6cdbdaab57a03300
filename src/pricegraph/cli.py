"""Root CLI group for pricegraph with global flags and command registration."""

from __future__ import annotations

from typing import Any

import click

from pricegraph import __version__
from pricegraph.commands import register_commands
from pricegraph.commands._context import AppContext
from pricegraph.config.settings import PricegraphSettings

EPILOG = """\b
Settings are read from pricegraph.toml or [tool.pricegraph] in
pyproject.toml, found by walking up from the working directory.
PRICEGRAPH_* environment variables override the file; flags override both.

\b
Examples:
  pricegraph lint config.json --services services.json
  pricegraph --root-tag t_web compose config.json
  pricegraph --no-validate --json lint draft.json"""


@click.group(invoke_without_command=True, epilog=EPILOG)
@click.version_option(version=__version__, prog_name="pricegraph")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logs and timing spans in JSON meta.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Settings file to use instead of discovery.",
)
@click.option(
    "--root-tag",
    default=None,
    help="Tag used when no tag context can be inferred (overrides [builder] root_tag_id).",
)
@click.option(
    "--no-validate",
    is_flag=True,
    help="Load documents that break structural invariants so lint can report them.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    root_tag: str | None,
    no_validate: bool,
) -> None:
    """pricegraph: pricing configuration graph resolver and linter."""
    ctx.ensure_object(dict)
    settings = PricegraphSettings.from_cli(
        config_path=config_path,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
    )
    builder_overrides: dict[str, Any] = {}
    if root_tag is not None:
        builder_overrides["root_tag_id"] = root_tag
    if no_validate:
        builder_overrides["validate_on_load"] = False
    if builder_overrides:
        settings = settings.model_copy(
            update={"builder": settings.builder.model_copy(update=builder_overrides)}
        )
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
