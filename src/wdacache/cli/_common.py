"""Shared utilities for the wdacache command modules.

Provides the Rich console, the option decorator every device command
shares, and the glue that turns CLI flags into an AgentHandle.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional

import click
from rich.console import Console

from ..agent import AgentHandle
from ..config import load_options
from ..models import CacheDecision, DecisionReason

console = Console()


def handle_options(func: Callable) -> Callable:
    """Attach the options that select a device and an agent endpoint."""
    decorators = [
        click.option("--udid", default=None, help="Device or simulator UDID."),
        click.option(
            "--real-device/--simulator", "real_device", default=None,
            help="Target a physical device instead of a simulator.",
        ),
        click.option("--wda-base-url", default=None, help="Agent base URL (default: http://localhost)."),
        click.option("--wda-local-port", default=None, type=click.IntRange(1, 65535), help="Agent port (default: 8100)."),
        click.option(
            "--url", "web_driver_agent_url", default=None,
            help="Use an already running agent at this URL verbatim.",
        ),
        click.option(
            "--bundle-id", "updated_wda_bundle_id", default=None,
            help="Bundle id the running agent is expected to carry.",
        ),
        click.option("--bootstrap-path", default=None, type=click.Path(), help="Agent project root."),
        click.option("--json-out", is_flag=True, help="Output as machine-readable JSON."),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def build_handle(config_path: Optional[str], **flags: Any) -> AgentHandle:
    """Load config, apply CLI flags on top and build the handle."""
    flags.pop("json_out", None)
    return AgentHandle(load_options(config_path, overrides=flags))


def run(coro):
    """Drive a lifecycle coroutine from a synchronous click command."""
    return asyncio.run(coro)


def print_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def decision_markup(decision: CacheDecision) -> str:
    """Map a cache decision to a Rich-formatted indicator.

    Args:
        decision: The decision to render.

    Returns:
        str: Rich markup string.
    """
    if decision.reuse:
        return "[bold green]REUSE[/]"
    if decision.reason == DecisionReason.NOT_RUNNING:
        return "[bold yellow]NOT RUNNING[/]"
    return "[bold red]UNINSTALL[/]"
