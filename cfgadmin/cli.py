"""cfgadmin CLI — inspect and edit a directory of ``<pid>.cfg`` configurations."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from cfgadmin import __version__
from cfgadmin.context import CONFIG_EXTENSION, ConfigurationContext, load_context
from cfgadmin.filter.ldap_filter import InvalidFilterSyntax
from cfgadmin.registry.configuration_registry import ConfigurationRegistry
from cfgadmin.utils.logging_setup import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--settings",
    "-s",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML settings file (default: process environment)",
)
@click.option("--config-path", "-c", default=None, help="Directory holding <pid>.cfg files")
@click.option("--log-level", default=None, help="Enable logging at this level")
@click.pass_context
def main(ctx: click.Context, settings: str | None, config_path: str | None, log_level: str | None):
    """cfgadmin — a file-backed configuration registry.

    Configurations are resolved from <pid>.cfg in the configuration
    directory, bundled resources, or winegrower.service.<pid>.* properties.
    """
    if log_level:
        setup_logging(log_level)

    if settings:
        try:
            context = load_context(settings)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--settings")
    else:
        context = ConfigurationContext.from_environ()

    if config_path:
        context.config_path = Path(config_path)

    ctx.obj = ConfigurationRegistry(context)


# ── List ─────────────────────────────────────────────────────────────


@main.command(name="list")
@click.option("--filter", "-f", "filter_expression", default=None, help="LDAP-style filter, e.g. (env=prod)")
@click.pass_obj
def list_configurations(registry: ConfigurationRegistry, filter_expression: str | None):
    """List the configurations of the configuration directory."""
    config_path = registry.context.config_path
    if config_path is None:
        raise click.UsageError("No configuration directory set (use --config-path)")

    for path in sorted(Path(config_path).glob(f"*{CONFIG_EXTENSION}")):
        registry.get_configuration(path.name[: -len(CONFIG_EXTENSION)])

    try:
        configurations = registry.list_configurations(filter_expression)
    except InvalidFilterSyntax as e:
        raise click.BadParameter(str(e), param_hint="--filter")

    if not configurations:
        console.print("[yellow]No matching configurations found.[/]")
        return

    table = Table(title=f"Configurations ({len(configurations)})")
    table.add_column("PID", style="cyan")
    table.add_column("Source")
    table.add_column("Keys", justify="right")

    for configuration in sorted(configurations, key=lambda c: c.get_pid() or ""):
        table.add_row(
            configuration.get_pid(),
            configuration.resolution.source.value,
            str(len(configuration.get_properties())),
        )

    console.print(table)


# ── Show ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("pid")
@click.pass_obj
def show(registry: ConfigurationRegistry, pid: str):
    """Show the resolved properties of a configuration."""
    configuration = registry.get_configuration(pid)
    resolution = configuration.resolution

    console.print(f"\n[bold blue]{pid}[/] (source: {resolution.source.value})\n")
    if resolution.warning:
        console.print(f"  [yellow]Warning:[/] {resolution.warning.message}")

    properties = configuration.get_properties()
    if not properties:
        console.print("  [dim]No properties.[/]")
        return

    for key, value in properties.items():
        console.print(f"  {key} = {value}", markup=False, highlight=False)


# ── Set ──────────────────────────────────────────────────────────────


@main.command(name="set")
@click.argument("pid")
@click.argument("assignments", nargs=-1, required=True)
@click.pass_obj
def set_properties(registry: ConfigurationRegistry, pid: str, assignments: tuple):
    """Set KEY=VALUE properties on a configuration and save it."""
    updates = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got {assignment!r}", param_hint="ASSIGNMENTS")
        updates[key] = value

    configuration = registry.get_configuration(pid)
    properties = configuration.get_properties()
    properties.update(updates)
    result = configuration.update(properties)

    status = "[green]saved[/]" if result.persisted else "[yellow]not persisted[/]"
    console.print(f"  {pid}: {len(updates)} propert{'y' if len(updates) == 1 else 'ies'} set, {status}")
    console.print(f"  Change count: {result.change_count}")
    if result.warning:
        console.print(f"  [yellow]Warning:[/] {result.warning.message}")


if __name__ == "__main__":
    main()
