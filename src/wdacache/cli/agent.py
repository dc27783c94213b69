"""Agent lifecycle commands: url, status, decide, setup, uninstall."""

from __future__ import annotations

import sys

import click
from rich.table import Table

from ..errors import WdaCacheError
from ._common import (
    build_handle,
    console,
    decision_markup,
    handle_options,
    print_json,
    run,
)


def _fail(message: str, json_out: bool) -> None:
    if json_out:
        print_json({"error": message})
    else:
        console.print(f"[bold red]Error:[/] {message}")
    sys.exit(1)


def register_agent_commands(main: click.Group) -> None:
    """Register the agent lifecycle commands on the main CLI group."""

    @main.command()
    @handle_options
    @click.pass_context
    def url(ctx: click.Context, json_out: bool, **flags):
        """Print the resolved agent endpoint."""
        handle = build_handle(ctx.obj["config_path"], **flags)
        if json_out:
            print_json(handle.url.model_dump() | {"href": handle.url.href})
            return
        click.echo(handle.url.href)

    @main.command()
    @handle_options
    @click.pass_context
    def status(ctx: click.Context, json_out: bool, **flags):
        """Query the running agent for its build metadata."""
        handle = build_handle(ctx.obj["config_path"], **flags)
        try:
            report = run(handle.get_status())
        except WdaCacheError as exc:
            _fail(str(exc), json_out)
            return

        if json_out:
            print_json(None if report is None else report.build.model_dump(by_alias=True))
            return
        if report is None:
            console.print(f"  [dim]No WDA listening at {handle.url.href}[/]")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Field", style="bold")
        table.add_column("Value", style="cyan")
        for key, value in report.build.model_dump(by_alias=True).items():
            table.add_row(key, value if value is not None else "[dim]absent[/]")
        console.print()
        console.print(f"  [bold]WDA at {handle.url.href}[/]")
        console.print(table)
        console.print()

    @main.command()
    @handle_options
    @click.pass_context
    def decide(ctx: click.Context, json_out: bool, **flags):
        """Show whether the running agent would be reused, without acting."""
        handle = build_handle(ctx.obj["config_path"], **flags)
        try:
            decision = run(handle.evaluate())
        except WdaCacheError as exc:
            _fail(str(exc), json_out)
            return

        if json_out:
            print_json(decision.to_dict())
            return
        console.print(f"  {decision_markup(decision)}  {decision.detail}")

    @main.command()
    @handle_options
    @click.pass_context
    def setup(ctx: click.Context, json_out: bool, **flags):
        """Reuse the running agent, or uninstall it if it is stale."""
        handle = build_handle(ctx.obj["config_path"], **flags)
        try:
            decision = run(handle.setup_caching())
        except WdaCacheError as exc:
            _fail(str(exc), json_out)
            return

        if json_out:
            print_json(decision.to_dict() | {"url": handle.web_driver_agent_url})
            return
        console.print(f"  {decision_markup(decision)}  {decision.detail}")
        if handle.web_driver_agent_url:
            console.print(f"  [dim]Agent URL: {handle.web_driver_agent_url}[/]")

    @main.command()
    @handle_options
    @click.pass_context
    def uninstall(ctx: click.Context, json_out: bool, **flags):
        """Remove every installed agent bundle from the device."""
        handle = build_handle(ctx.obj["config_path"], **flags)
        if handle.device is None:
            _fail("A device is required: pass --udid", json_out)
            return
        try:
            report = run(handle.uninstall())
        except WdaCacheError as exc:
            _fail(str(exc), json_out)
            return

        if json_out:
            print_json(report.to_dict())
        elif not report.requested:
            console.print("  [dim]No WDAs on the device.[/]")
        else:
            for bundle_id in report.removed:
                console.print(f"  [green]removed[/] {bundle_id}")
            for bundle_id, error in report.failed:
                console.print(f"  [red]failed[/]  {bundle_id}: {error}")
        if not report.ok:
            sys.exit(1)
