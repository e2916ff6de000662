"""
plugshell interactive shell.

Reads a line, runs a built-in command or dispatches it to a plugin, and
keeps going whatever the plugin does.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable
from dataclasses import dataclass

import humanize
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from plugshell.core.errors import PluginHostError, UnknownCommand
from plugshell.core.host import Host
from plugshell.core.logging import get_logger

logger = get_logger(__name__)

WELCOME_MSG = (
    "Welcome to plugshell, a shell you can extend with plugins at runtime.\n"
    'Type "help" to get some help.'
)

_LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "green",
    "WARN": "yellow",
    "ERROR": "red",
}


class _UsageFailure(PluginHostError):
    """A built-in was called with the wrong arguments; already reported."""


@dataclass(frozen=True)
class Builtin:
    """A command implemented by the shell itself."""

    name: str
    usage: str
    description: str
    handler: Callable[[list[str]], None]


class ShellSession:
    """Interactive command loop over a Host."""

    def __init__(self, host: Host, console: Console | None = None) -> None:
        self.host = host
        self.console = console or Console()
        self.running = True
        self.builtins: dict[str, Builtin] = {}

        self._define("quit", "quit", "Quit the shell.", self._quit)
        self._define(
            "help",
            "help [cmd..]",
            "Print all commands, or the usage of the given commands",
            self._help,
        )
        self._define("plugins", "plugins", "Print all the plugins currently loaded", self._plugins)
        self._define("load", "load <path>", "Load a new plugin", self._load)
        self._define("unload", "unload <plugin>", "Unload a plugin", self._unload)
        self._define(
            "reload",
            "reload <plugin>",
            "Load a plugin again from its file, clearing a quarantine",
            self._reload,
        )
        self._define(
            "logs",
            "logs [n|clear]",
            "Print the last n plugin log messages, or clear them",
            self._logs,
        )

    def _define(
        self, name: str, usage: str, description: str, handler: Callable[[list[str]], None]
    ) -> None:
        self.builtins[name] = Builtin(name, usage, description, handler)

    def run(self) -> None:
        """Run until quit or end of input."""
        self.console.print(WELCOME_MSG)

        while self.running:
            try:
                line = self.console.input(self.host.config.prompt)
            except (EOFError, KeyboardInterrupt):
                self.console.print()
                break
            self.execute(line)

    def execute(self, line: str) -> bool:
        """
        Run one input line.

        Returns True when the command succeeded. Failures are printed,
        never raised.
        """
        try:
            words = shlex.split(line)
        except ValueError as e:
            self._error(f"cannot parse input: {e}")
            return False

        if not words:
            return True

        name, args = words[0], words[1:]
        builtin = self.builtins.get(name)

        try:
            if builtin is not None:
                builtin.handler(args)
            else:
                self.host.dispatch(name, args)
        except _UsageFailure:
            return False
        except UnknownCommand as e:
            self._error(f'{e}, type "help" to see all commands.')
            return False
        except PluginHostError as e:
            logger.debug("Shell command failed", command=name, error_type=type(e).__name__)
            self._error(str(e))
            return False

        return True

    def _error(self, message: str) -> None:
        self.console.print(f"[red]ERR:[/red] {escape(message)}")

    def _usage_error(self, builtin: str) -> None:
        self._error(f"usage: {self.builtins[builtin].usage}")

    def _invocation(self, entry_name: str, qualified: str, ambiguous: bool) -> str:
        if ambiguous or entry_name in self.builtins:
            return qualified
        return entry_name

    # Built-in commands

    def _quit(self, args: list[str]) -> None:
        self.running = False

    def _help(self, args: list[str]) -> None:
        rows: list[tuple[str, str, str]] = [
            (b.name, b.usage, b.description) for b in self.builtins.values()
        ]
        for entry in self.host.list_commands():
            name = self._invocation(entry.command.name, entry.qualified_name, entry.ambiguous)
            usage = entry.command.usage or entry.command.name
            if name != entry.command.name:
                usage = f"{name} ({usage})"
            rows.append((name, usage, entry.command.description))

        if args:
            by_name = {name: (usage, description) for name, usage, description in rows}
            for wanted in args:
                if wanted not in by_name:
                    found = self.host.registry.lookup(wanted)
                    if found is None:
                        self._error(f"unknown command {wanted!r}")
                        continue
                    _, command = found
                    by_name[wanted] = (command.usage or command.name, command.description)
                usage, description = by_name[wanted]
                self.console.print(f"[cyan]{escape(usage)}[/cyan]")
                self.console.print(f"    {escape(description)}")
            return

        table = Table(title="All commands", show_header=False, box=None)
        table.add_column("Usage", style="cyan")
        table.add_column("Description")
        for _, usage, description in sorted(rows, key=lambda row: row[1]):
            table.add_row(escape(usage), escape(description))
        self.console.print(table)

    def _plugins(self, args: list[str]) -> None:
        instances = self.host.list_instances()
        if not instances:
            self.console.print("There are currently no plugins loaded!")
            return

        table = Table(title="All loaded plugins")
        table.add_column("Name", style="cyan")
        table.add_column("Version", style="green")
        table.add_column("Commands", style="yellow")
        table.add_column("Loaded", style="dim")
        table.add_column("Status")
        table.add_column("Description")
        for instance in instances:
            status = "[red]quarantined[/red]" if instance.quarantined else "ok"
            table.add_row(
                instance.name,
                instance.info.version,
                ", ".join(c.name for c in instance.commands),
                humanize.naturaltime(instance.loaded_at),
                status,
                escape(instance.info.description),
            )
        self.console.print(table)

    def _load(self, args: list[str]) -> None:
        if len(args) != 1:
            self._error("you must give the path to a WASM file to load.")
            raise _UsageFailure()
        info = self.host.load(args[0])
        self.console.print(
            f"Plugin [cyan]{info.name}[/cyan] {info.version} loaded "
            f"({len(info.commands)} commands)."
        )

    def _unload(self, args: list[str]) -> None:
        if len(args) != 1:
            self._usage_error("unload")
            raise _UsageFailure()
        info = self.host.unload(args[0])
        self.console.print(f"Plugin [cyan]{info.name}[/cyan] unloaded.")

    def _reload(self, args: list[str]) -> None:
        if len(args) != 1:
            self._usage_error("reload")
            raise _UsageFailure()
        info = self.host.reload(args[0])
        self.console.print(f"Plugin [cyan]{info.name}[/cyan] {info.version} reloaded.")

    def _logs(self, args: list[str]) -> None:
        limit = 20
        if args and args[0] == "clear":
            self.host.clear_logs()
            self.console.print("Plugin log history cleared.")
            return
        if args:
            try:
                limit = int(args[0])
            except ValueError:
                self._usage_error("logs")
                raise _UsageFailure() from None

        records = self.host.recent_logs(limit)
        if not records:
            self.console.print("No plugin log messages.")
            return
        for record in records:
            style = _LEVEL_STYLES[record.level.name]
            self.console.print(
                f"[dim]{record.timestamp:%H:%M:%S}[/dim] "
                f"[{style}]{record.level.name:5}[/{style}] "
                f"[cyan]{escape(record.plugin)}[/cyan]: {escape(record.message)}"
            )
