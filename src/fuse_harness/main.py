"""CLI main entry point."""

import json
import sys

import click

from .config import OrchestrationConfig, get_config_path, load_config, with_overrides
from .container import (
    DeploymentVerifier,
    LifecycleOrchestrator,
    ManagementClient,
    ProcessController,
    has_running_marker,
)
from .errors import ConfigurationError, HarnessError
from .formatters import print_config_yaml, print_deployed_units, print_error, print_unit_record
from .shared.logging import configure_logging, level_from_verbosity

# Config sections accepted by `config show --section`
VALID_SECTIONS = [
    "container",
    "management",
    "timeouts",
    "readiness_checks",
    "deployments",
    "deploy_directories",
    "configure",
    "feature_repositories",
    "features",
]


@click.group()
@click.option("-c", "--config", type=click.Path(), help="Config file path")
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON lines")
@click.option("--log-file", type=click.Path(), help="Write logs to file instead of stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    config: str | None,
    verbose: int,
    quiet: bool,
    json_output: bool,
    log_json: bool,
    log_file: str | None,
) -> None:
    """Start, provision and verify a Karaf container for integration tests."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["json_output"] = json_output
    configure_logging(
        level_from_verbosity(verbose, quiet),
        log_file=log_file,
        json_output=log_json,
    )


def _load(ctx: click.Context, **overrides) -> OrchestrationConfig:
    """Load config or exit with status 2."""
    try:
        return load_config(ctx.obj["config_path"], overrides)
    except ConfigurationError as e:
        print_error(e)
        sys.exit(2)


@cli.command()
@click.option("--home", type=click.Path(), help="Container installation directory")
@click.option("--start-timeout", type=float, help="Seconds to wait for the container process")
@click.option(
    "--management-timeout",
    type=float,
    help="Seconds to wait for the management endpoint",
)
@click.option("--skip-verify", is_flag=True, help="Install units without verifying their state")
@click.pass_context
def start(
    ctx: click.Context,
    home: str | None,
    start_timeout: float | None,
    management_timeout: float | None,
    skip_verify: bool,
) -> None:
    """Start the container, configure it and deploy all units.

    On any failure the container is stopped again before exiting.
    """
    config = _load(
        ctx,
        home=home,
        start_timeout=start_timeout,
        management_timeout=management_timeout,
    )
    if skip_verify:
        config = with_overrides(config, verify_units=False)

    orchestrator = LifecycleOrchestrator(config)
    try:
        result = orchestrator.run()
    except HarnessError as e:
        print_error(e)
        sys.exit(1)

    if ctx.obj["json_output"]:
        data = {
            "state": result.state.value,
            "elapsed_seconds": result.elapsed_seconds,
            "units": [
                {
                    "id": d.unit_id,
                    "path": str(d.unit.path),
                    "state": d.record.core_state if d.record else None,
                }
                for d in result.deployed
            ],
        }
        click.echo(json.dumps(data, indent=2))
        return

    print_deployed_units(result.deployed)
    click.echo(f"✓ Container ready ({result.elapsed_seconds:.1f}s)")


@cli.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop the container."""
    config = _load(ctx)
    controller = ProcessController(config.container)
    try:
        success, msg = controller.stop()
    except HarnessError as e:
        print_error(e)
        sys.exit(1)

    if success:
        click.echo("✓ Container stopped.")
    else:
        click.echo(f"✗ {msg}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show container status. Exits 1 when it is not running."""
    config = _load(ctx)
    controller = ProcessController(config.container)
    try:
        output = controller.status()
    except HarnessError as e:
        print_error(e)
        sys.exit(1)

    running = has_running_marker(output, config.container.running_marker)
    if ctx.obj["json_output"]:
        click.echo(json.dumps({"running": running, "output": output.strip()}, indent=2))
    else:
        if output.strip():
            click.echo(output.strip())
        click.echo(f"Container state: {'running' if running else 'not running'}")
    if not running:
        sys.exit(1)


@cli.command()
@click.argument("unit_id", type=int)
@click.pass_context
def unit(ctx: click.Context, unit_id: int) -> None:
    """Show and verify the state of an installed unit."""
    config = _load(ctx)
    client = ManagementClient.from_settings(config.management)
    try:
        record = client.status(unit_id)
        print_unit_record(record)
        DeploymentVerifier().verify(record)
    except HarnessError as e:
        print_error(e)
        sys.exit(1)
    click.echo("✓ Unit verified")


@cli.group()
def config() -> None:
    """Inspect configuration."""
    pass


@config.command("show")
@click.option("--section", help="Show specific section")
@click.pass_context
def config_show(ctx: click.Context, section: str | None) -> None:
    """Show the resolved configuration."""
    if section and section not in VALID_SECTIONS:
        click.echo(f"Error: Unknown section '{section}'", err=True)
        click.echo(f"\nValid sections:\n  {', '.join(VALID_SECTIONS)}")
        sys.exit(1)

    loaded = _load(ctx)
    data = loaded.to_dict()
    if section:
        data = {section: data[section]}

    sources = {
        key: loaded.get_source(key)
        for key in (
            "home",
            "start_timeout",
            "management_timeout",
            "poll_interval",
            "management_url",
            "management_user",
        )
    }

    if ctx.obj["json_output"]:
        click.echo(json.dumps({"values": data, "sources": sources}, indent=2, default=str))
        return

    click.echo("fuse-harness configuration")
    click.echo(f"Source: {get_config_path(ctx.obj['config_path'])}\n")
    if section:
        print_config_yaml(data[section], section)
    else:
        print_config_yaml(data)
        click.echo("Value sources:")
        for key, source in sources.items():
            click.echo(f"  {key}: {source}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
