#!/usr/bin/env python3
"""
Hawkwatch - production monitoring for long-running async services

Runs the monitoring service behind its HTTP surface, prints one-shot status
reports and validates configuration files.

Usage:
    python main.py --help
    python main.py serve --config config/default.yaml
    python main.py status
    python main.py validate-config config/default.yaml
    python main.py show-config
"""

import asyncio
import json
import sys
from typing import Optional

import click
import uvicorn
import yaml
from rich.console import Console
from rich.table import Table

from hawkwatch import __version__
from hawkwatch.api import create_http_app, wire_format
from hawkwatch.app import MonitoringService, SystemStatus
from hawkwatch.config import MonitoringConfig, config_to_dict, load_config, validate_config_file
from hawkwatch.monitoring.health import HealthStatus
from hawkwatch.utils.errors import ConfigurationError
from hawkwatch.utils.logging import LogLevel, get_logger, setup_logging


# Global console for rich output
console = Console()

STATUS_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.UNHEALTHY: "red",
}


class CLIContext:
    """CLI context for passing state between commands."""

    def __init__(self):
        self.config_path: Optional[str] = None
        self.log_level: Optional[str] = None
        self.config: Optional[MonitoringConfig] = None


# Global CLI context
cli_context = CLIContext()


def get_config() -> MonitoringConfig:
    """Load configuration once and configure logging from it."""
    if cli_context.config is not None:
        return cli_context.config

    try:
        config = load_config(cli_context.config_path)
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration: {e.message}[/red]")
        sys.exit(1)

    logging_config = config.logging.to_logging_config()
    if cli_context.log_level:
        logging_config.level = LogLevel(cli_context.log_level.lower())
    setup_logging(logging_config)

    cli_context.config = config
    return config


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True),
              help='Configuration file path')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              default=None, help='Override the configured logging level')
@click.version_option(version=__version__, prog_name='hawkwatch')
def cli(config, log_level):
    """
    Hawkwatch - production monitoring for long-running async services

    Health probes, metrics retention, threshold alerts and counters, exposed
    over HTTP under /monitoring.
    """
    cli_context.config_path = config
    cli_context.log_level = log_level


@cli.command()
@click.option('--host', default='127.0.0.1', show_default=True, help='Bind address')
@click.option('--port', '-p', type=int, default=8080, show_default=True, help='Bind port')
def serve(host, port):
    """Run the monitoring service behind its HTTP surface."""
    config = get_config()
    logger = get_logger(__name__)

    service = MonitoringService(config)
    app = create_http_app(service, install_handlers=True)

    logger.info(f"Serving monitoring endpoints on http://{host}:{port}/monitoring")
    uvicorn.run(app, host=host, port=port, log_config=None)


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print the raw status document')
def status(as_json):
    """Run every probe once and print the aggregate status."""
    config = get_config()

    async def collect_status() -> SystemStatus:
        service = MonitoringService(config)
        await service.collect_metrics()
        return await service.get_system_status()

    system_status = asyncio.run(collect_status())

    if as_json:
        click.echo(json.dumps(wire_format(system_status.to_dict()), indent=2, default=str))
    else:
        show_status(system_status)

    if system_status.status == HealthStatus.UNHEALTHY:
        sys.exit(1)


@cli.command()
@click.argument('config_file', type=click.Path())
def validate_config(config_file):
    """Validate a configuration file."""
    console.print(f"[blue]Validating configuration: {config_file}[/blue]")

    errors = validate_config_file(config_file)

    if errors:
        console.print(f"[red]Configuration validation failed with {len(errors)} errors:[/red]")
        for error in errors:
            console.print(f"  • {error.strip()}")
        sys.exit(1)

    console.print("[green]✓ Configuration is valid[/green]")


@cli.command()
def show_config():
    """Print the effective configuration (file plus environment) as YAML."""
    config = get_config()
    click.echo(yaml.safe_dump(config_to_dict(config), sort_keys=False))


def show_status(system_status: SystemStatus):
    """Render a status report as rich tables."""
    style = STATUS_STYLES[system_status.status]
    console.print(
        f"Overall status: [bold {style}]{system_status.status.value}[/bold {style}] "
        f"(uptime {system_status.uptime:.1f}s)"
    )

    checks = Table(title="Health Checks")
    checks.add_column("Service", style="cyan")
    checks.add_column("Status")
    checks.add_column("Response (ms)", justify="right")
    checks.add_column("Message")

    for result in system_status.health_checks:
        result_style = STATUS_STYLES[result.status]
        checks.add_row(
            result.service,
            f"[{result_style}]{result.status.value}[/{result_style}]",
            f"{result.response_time:.1f}",
            result.message or ""
        )

    console.print(checks)

    if system_status.metrics is not None:
        memory = system_status.metrics.memory
        console.print(
            f"Memory: {memory.percentage:.2f}% ({memory.used / (1024 * 1024):.1f} MB), "
            f"CPU: {system_status.metrics.cpu_percentage:.2f}%"
        )

    if system_status.alerts:
        alerts = Table(title="Active Alerts")
        alerts.add_column("Severity", style="magenta")
        alerts.add_column("Service", style="cyan")
        alerts.add_column("Message")

        for alert in system_status.alerts:
            alerts.add_row(alert.severity.value, alert.service, alert.message)

        console.print(alerts)


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(0)


if __name__ == '__main__':
    main()
