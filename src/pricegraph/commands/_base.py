"""Custom Click base classes with --examples support, plus shared parameters.

PricegraphCommand and PricegraphGroup accept an ``examples`` parameter.
When ``--examples`` is passed, the command prints usage examples and exits.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import click


def _add_examples_option(cmd: click.Command | click.Group, examples: str) -> None:
    """Attach an eager ``--examples`` flag to a Click command or group."""

    def show_examples(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(examples)
        ctx.exit(0)

    cmd.params.append(
        click.Option(
            ["--examples"],
            is_flag=True,
            expose_value=False,
            is_eager=True,
            callback=show_examples,
            help="Show usage examples.",
        )
    )


class PricegraphCommand(click.Command):
    """Click Command subclass that supports an ``--examples`` flag."""

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            _add_examples_option(self, examples)


class PricegraphGroup(click.Group):
    """Click Group whose subcommands default to :class:`PricegraphCommand`."""

    command_class = PricegraphCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            _add_examples_option(self, examples)


def document_options[F: Callable[..., Any]](func: F) -> F:
    """Add the ``DOCUMENT`` argument and ``--services`` option every command reads."""
    func = click.option(
        "-s",
        "--services",
        "services_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="Service capability map (JSON object or list).",
    )(func)
    return click.argument(
        "document",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
    )(func)
