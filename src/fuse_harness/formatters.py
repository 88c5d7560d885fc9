"""CLI output formatting helpers."""

from typing import Any

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .container import DeployedUnit, UnitStatusRecord
from .errors import HarnessError

console = Console()
err_console = Console(stderr=True)


def print_config_yaml(data: dict[str, Any], section: str | None = None) -> None:
    """Print config as YAML.

    Args:
        data: Configuration data
        section: Optional section name for header
    """
    if section:
        click.echo(f"{section}:")
        yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False)
        for line in yaml_str.splitlines():
            click.echo(f"  {line}")
    else:
        click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))


def print_deployed_units(units: list[DeployedUnit]) -> None:
    """Print a summary table of deployed units."""
    if not units:
        click.echo("No units deployed.")
        return

    table = Table(title="Deployed units")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("State")
    table.add_column("Artifact")
    for deployed in units:
        record = deployed.record
        if record is None:
            table.add_row(str(deployed.unit_id), "-", "-", "unverified", str(deployed.unit.path))
        else:
            table.add_row(
                str(record.id),
                record.name,
                record.version,
                _state_label(record),
                str(deployed.unit.path),
            )
    console.print(table)


def print_unit_record(record: UnitStatusRecord) -> None:
    """Print one unit status record."""
    click.echo(f"ID:      {record.id}")
    click.echo(f"Name:    {record.name}")
    click.echo(f"Version: {record.version}")
    click.echo(f"State:   {record.core_state}")
    for subsystem, state in record.subsystem_states.items():
        click.echo(f"{subsystem.title()}: {state or '-'}")


def print_error(error: HarnessError) -> None:
    """Print a harness error to stderr, naming the failed stage."""
    stage = escape(f" [{error.stage}]") if error.stage else ""
    err_console.print(
        f"[red]Error{stage}:[/red] {escape(error.message)}",
        highlight=False,
        soft_wrap=True,
    )


def _state_label(record: UnitStatusRecord) -> str:
    extras = [f"{k}:{v}" for k, v in record.subsystem_states.items() if v]
    if extras:
        return f"{record.core_state} ({', '.join(extras)})"
    return str(record.core_state)
