"""Subcommand modules for pricegraph.

Provides register_commands() which uses deferred imports to keep
``pricegraph --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the ``fallbacks`` group and the standalone commands."""
    from pricegraph.commands.fallbacks import fallbacks

    cli.add_command(fallbacks)

    from pricegraph.commands.compose import compose
    from pricegraph.commands.lint import lint
    from pricegraph.commands.simulate import simulate
    from pricegraph.commands.tree import tree
    from pricegraph.commands.visible import visible

    cli.add_command(lint)
    cli.add_command(visible)
    cli.add_command(compose)
    cli.add_command(simulate)
    cli.add_command(tree)
