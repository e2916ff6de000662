"""
plugshell CLI Main Entry Point.

Provides the interactive shell and one-shot commands for running and
inspecting plugins.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from plugshell import __version__
from plugshell.cli.shell import ShellSession
from plugshell.core.config import HostConfig, load_config
from plugshell.core.errors import DispatchError, LoadError
from plugshell.core.host import Host

console = Console()
err_console = Console(stderr=True)


def get_host(ctx: click.Context) -> Host:
    """Get or create the host from context."""
    if "host" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        host = Host(config=config)
        ctx.obj["host"] = host
        ctx.call_on_close(host.close)
    return ctx.obj["host"]


def report_load_errors(errors: list[LoadError]) -> None:
    for error in errors:
        err_console.print(f"[red]ERR:[/red] {escape(str(error))}")


@click.group()
@click.version_option(version=__version__, prog_name="plugshell")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Host log level on the console",
)
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Time budget in seconds for each plugin call",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    json_logs: bool,
    timeout: float | None,
) -> None:
    """
    plugshell - a shell extended by sandboxed WebAssembly plugins.

    Plugins are loaded at runtime and contribute their own commands.
    """
    ctx.ensure_object(dict)

    host_config = HostConfig.load(config) if config else load_config()
    if log_level:
        host_config.logging.level = log_level.upper()
    if json_logs:
        host_config.logging.json_format = True
    if timeout is not None:
        host_config.sandbox.call_timeout_seconds = timeout

    ctx.obj["config"] = host_config


@cli.command("shell")
@click.argument("plugins", nargs=-1, type=click.Path(path_type=Path))
@click.pass_context
def shell(ctx: click.Context, plugins: tuple[Path, ...]) -> None:
    """Start the interactive shell, loading PLUGINS first."""
    host = get_host(ctx)

    report = host.autoload(plugins)
    report_load_errors(report.errors)

    ShellSession(host, console).run()


@cli.command(
    "run",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option(
    "--plugin",
    "-p",
    "plugins",
    multiple=True,
    type=click.Path(path_type=Path),
    help="Plugin artifact to load (repeatable)",
)
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run_command(
    ctx: click.Context,
    plugins: tuple[Path, ...],
    command: str,
    args: tuple[str, ...],
) -> None:
    """Load plugins, run one COMMAND with ARGS, and exit."""
    host = get_host(ctx)

    report = host.autoload(plugins)
    if not report.ok:
        report_load_errors(report.errors)
        sys.exit(1)

    try:
        host.dispatch(command, list(args))
    except DispatchError as e:
        err_console.print(f"[red]ERR:[/red] {escape(str(e))}")
        sys.exit(1)


@cli.command("inspect")
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def inspect_plugin(ctx: click.Context, path: Path, json_output: bool) -> None:
    """Load the plugin at PATH and show what it declares."""
    host = get_host(ctx)

    try:
        info = host.load(path)
    except LoadError as e:
        err_console.print(f"[red]ERR:[/red] {escape(str(e))}")
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(info.model_dump(mode="json"), indent=2))
        return

    console.print(
        Panel(
            f"[cyan]Name:[/cyan] {info.name}\n"
            f"[cyan]Version:[/cyan] {info.version}\n"
            f"[cyan]Description:[/cyan] {escape(info.description)}\n"
            f"[cyan]File:[/cyan] {path}",
            title="Plugin",
        )
    )

    table = Table(title="Commands")
    table.add_column("Name", style="cyan")
    table.add_column("Usage", style="green")
    table.add_column("Description")
    for command in info.commands:
        table.add_row(command.name, escape(command.usage), escape(command.description))
    console.print(table)


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
