"""
plugshell Dispatcher.

Resolves a command name and runs it in the owning plugin. A guest fault
quarantines that plugin only; the host and every other plugin keep going.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from plugshell.core.errors import GuestProtocolError, GuestTrap, PluginFault, UnknownCommand
from plugshell.core.logging import get_logger

if TYPE_CHECKING:
    from plugshell.plugins.registry import PluginRegistry

logger = get_logger(__name__)


class Dispatcher:
    """Runs plugin commands by name."""

    def __init__(self, registry: PluginRegistry) -> None:
        self.registry = registry

    def dispatch(self, command_name: str, args: Sequence[str] = ()) -> None:
        """
        Run ``command_name`` with ``args``.

        Raises UnknownCommand, AmbiguousCommand or PluginFault. Returning
        normally means the guest returned normally.
        """
        found = self.registry.lookup(command_name)
        if found is None:
            raise UnknownCommand(command_name)
        instance, command = found

        log = logger.bind(plugin=instance.name, command=command.name)

        with instance.locked():
            if instance.quarantined:
                raise PluginFault(
                    command_name,
                    instance.name,
                    f"the plugin is quarantined after an earlier fault ({instance.fault}), "
                    "reload it to use it again",
                    quarantined=True,
                )

            log.debug("Dispatching command", args=list(args))

            try:
                instance.plugin.run_command(command.name, list(args))
            except GuestTrap as e:
                instance.quarantine(e.reason)
                log.error(
                    "Plugin faulted, quarantined", reason=e.reason, timed_out=e.timed_out
                )
                raise PluginFault(
                    command_name, instance.name, e.reason, timed_out=e.timed_out, quarantined=True
                ) from e
            except GuestProtocolError as e:
                instance.quarantine(str(e))
                log.error("Plugin broke the interface contract, quarantined", reason=str(e))
                raise PluginFault(command_name, instance.name, str(e), quarantined=True) from e

        log.debug("Command completed")
