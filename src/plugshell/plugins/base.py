"""
plugshell Plugin System Base.

The host only ever talks to a plugin through the two operations of the
interface contract.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plugshell.plugins.contract import Command, PluginInfo


class Plugin(ABC):
    """Base class for everything the host can load as a plugin."""

    @abstractmethod
    def init(self) -> PluginInfo:
        """
        Initialize the plugin and return its metadata.

        Called exactly once, before any other call.
        """

    @abstractmethod
    def run_command(self, name: str, args: Sequence[str]) -> None:
        """
        Run one of the commands the plugin declared.

        Returning normally means success. Any fault is raised as
        GuestTrap or GuestProtocolError.
        """

    def close(self) -> None:
        """Release whatever backs the plugin. Called on unload."""


@dataclass
class PluginInstance:
    """A loaded, validated plugin owned by the registry."""

    info: PluginInfo
    plugin: Plugin
    path: Path
    loaded_at: datetime = field(default_factory=datetime.now)
    quarantined: bool = False
    fault: str | None = None
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def commands(self) -> tuple[Command, ...]:
        return self.info.commands

    @contextmanager
    def locked(self) -> Iterator[PluginInstance]:
        """
        Hold the instance for one call.

        Calls are serialized, so a caller that checks ``quarantined`` while
        holding the lock sees the outcome of every earlier call.
        """
        with self._lock:
            yield self

    def quarantine(self, reason: str) -> None:
        """Stop further dispatch to this instance until it is reloaded."""
        with self._lock:
            self.quarantined = True
            self.fault = reason

    def close(self) -> None:
        self.plugin.close()
