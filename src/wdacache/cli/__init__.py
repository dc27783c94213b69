"""
wdacache CLI — inspect and reconcile the WebDriverAgent on a device.

The main Click group is defined here; command groups are registered from
their own modules.

Entry point: wdacache.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="wdacache")
@click.option(
    "--config", "config_path", default=None, type=click.Path(),
    help="Options file (default: $WDACACHE_HOME/config.yaml).",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, config_path, verbose: bool):
    """wdacache — reuse or reinstall the WebDriverAgent on a device."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


from .agent import register_agent_commands

register_agent_commands(main)
