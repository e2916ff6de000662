"""
plugshell Plugin Registry.

The table of loaded plugin instances and the commands they declare. It is
the only mutable structure shared between threads; every read and write
goes through one re-entrant lock so dispatch never observes a
half-registered plugin.

Command names are unique within a plugin but several plugins may declare
the same one. A bare name resolves only while exactly one plugin declares
it; otherwise the caller must qualify it as ``plugin:command``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from plugshell.core.errors import AmbiguousCommand, DuplicatePlugin, PluginNotLoaded
from plugshell.core.logging import get_logger
from plugshell.plugins.base import PluginInstance
from plugshell.plugins.contract import Command, PluginInfo

logger = get_logger(__name__)

QUALIFIER = ":"


def qualify(plugin: str, command: str) -> str:
    return f"{plugin}{QUALIFIER}{command}"


@dataclass(frozen=True)
class CommandEntry:
    """A registered command as listed for help output."""

    plugin: str
    command: Command
    ambiguous: bool

    @property
    def qualified_name(self) -> str:
        return qualify(self.plugin, self.command.name)

    @property
    def invocation(self) -> str:
        """The shortest name that resolves to this command."""
        return self.qualified_name if self.ambiguous else self.command.name


class PluginRegistry:
    """Registry of loaded plugins, in load order."""

    def __init__(self) -> None:
        self._plugins: dict[str, PluginInstance] = {}
        # command name -> {plugin name: Command}, in load order
        self._owners: dict[str, dict[str, Command]] = {}
        self._lock = threading.RLock()

    def register(self, instance: PluginInstance) -> None:
        """Add a validated instance. Its commands become resolvable at once."""
        collisions: list[tuple[str, list[str]]] = []

        with self._lock:
            if instance.name in self._plugins:
                raise DuplicatePlugin(instance.path, instance.name)

            self._plugins[instance.name] = instance
            for command in instance.commands:
                owners = self._owners.setdefault(command.name, {})
                owners[instance.name] = command
                if len(owners) > 1:
                    collisions.append((command.name, list(owners)))

        logger.info(
            "Plugin registered",
            plugin=instance.name,
            version=instance.info.version,
            commands=[c.name for c in instance.commands],
        )
        for command_name, owners in collisions:
            logger.warning(
                "Command declared by several plugins, qualify it to run it",
                command=command_name,
                candidates=[qualify(owner, command_name) for owner in owners],
            )

    def unregister(self, name: str) -> PluginInstance:
        """
        Remove a plugin and release its instance.

        The commands stop resolving immediately; the instance itself is
        released once any call already running in it has returned.
        """
        with self._lock:
            instance = self._plugins.pop(name, None)
            if instance is None:
                raise PluginNotLoaded(name)

            for command in instance.commands:
                owners = self._owners.get(command.name, {})
                owners.pop(name, None)
                if not owners:
                    self._owners.pop(command.name, None)

        instance.close()
        logger.info("Plugin unregistered", plugin=name)
        return instance

    def lookup(self, command_name: str) -> tuple[PluginInstance, Command] | None:
        """
        Find the instance and command a name refers to.

        Raises AmbiguousCommand when a bare name is declared by more than
        one plugin.
        """
        with self._lock:
            if QUALIFIER in command_name:
                plugin_name, _, bare = command_name.partition(QUALIFIER)
                instance = self._plugins.get(plugin_name)
                if instance is None:
                    return None
                command = instance.info.get_command(bare)
                if command is None:
                    return None
                return instance, command

            owners = self._owners.get(command_name)
            if not owners:
                return None
            if len(owners) > 1:
                raise AmbiguousCommand(
                    command_name, [qualify(owner, command_name) for owner in owners]
                )

            [(plugin_name, command)] = owners.items()
            return self._plugins[plugin_name], command

    def resolve(self, command_name: str) -> tuple[str, Command] | None:
        """Resolve a bare or qualified command name to ``(plugin, command)``."""
        found = self.lookup(command_name)
        if found is None:
            return None
        instance, command = found
        return instance.name, command

    def get(self, name: str) -> PluginInstance | None:
        with self._lock:
            return self._plugins.get(name)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._plugins

    def __len__(self) -> int:
        with self._lock:
            return len(self._plugins)

    def list_instances(self) -> list[PluginInstance]:
        with self._lock:
            return list(self._plugins.values())

    def list_plugins(self) -> list[PluginInfo]:
        """List the metadata of all loaded plugins, in load order."""
        with self._lock:
            return [instance.info for instance in self._plugins.values()]

    def list_commands(self) -> list[CommandEntry]:
        """List every registered command, in load order."""
        with self._lock:
            return [
                CommandEntry(
                    plugin=instance.name,
                    command=command,
                    ambiguous=len(self._owners.get(command.name, {})) > 1,
                )
                for instance in self._plugins.values()
                for command in instance.commands
            ]

    def clear(self) -> None:
        """Unregister every plugin, most recently loaded first."""
        for name in reversed([instance.name for instance in self.list_instances()]):
            try:
                self.unregister(name)
            except PluginNotLoaded:
                continue
