"""
plugshell Host.

The composition root: owns the configuration, the logging bridge, the
plugin registry, the loader and the dispatcher for the lifetime of the
process.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from plugshell.core.config import HostConfig, load_config
from plugshell.core.errors import LoadError, PluginNotLoaded
from plugshell.core.logging import get_logger, setup_logging
from plugshell.plugins.base import PluginInstance
from plugshell.plugins.bridge import GuestLogRecord, LoggingBridge
from plugshell.plugins.contract import LogLevel, PluginInfo
from plugshell.plugins.dispatcher import Dispatcher
from plugshell.plugins.loader import PluginLoader
from plugshell.plugins.registry import CommandEntry, PluginRegistry

logger = get_logger(__name__)

ARTIFACT_PATTERN = "*.wasm"


@dataclass
class AutoloadReport:
    """Outcome of loading the configured plugins at startup."""

    loaded: list[PluginInfo] = field(default_factory=list)
    errors: list[LoadError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class Host:
    """
    A plugshell host process.

    Created once at startup and closed at shutdown; every plugin operation
    goes through it.
    """

    def __init__(
        self,
        config: HostConfig | None = None,
        host_id: str | None = None,
    ) -> None:
        self.id = host_id or str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()
        self._closed = False

        setup_logging(self.config.logging)

        self.bridge = LoggingBridge(
            min_level=LogLevel.from_name(self.config.plugins.guest_log_level),
            history=self.config.plugins.log_history,
        )
        self.registry = PluginRegistry()
        self.loader = PluginLoader(self.registry, self.bridge, self.config.sandbox)
        self.dispatcher = Dispatcher(self.registry)

        logger.info("Host started", host_id=self.id)

    def load(self, path: Path | str) -> PluginInfo:
        """Load a plugin artifact. Raises a LoadError subclass on failure."""
        return self.loader.load(path)

    def unload(self, name: str) -> PluginInfo:
        """Unload a plugin by name. Raises PluginNotLoaded."""
        return self.registry.unregister(name).info

    def reload(self, name: str) -> PluginInfo:
        """
        Unload a plugin and load it again from the same artifact.

        This is the only way to clear a quarantine. If loading fails the
        plugin stays unloaded.
        """
        instance = self.registry.get(name)
        if instance is None:
            raise PluginNotLoaded(name)

        path = instance.path
        self.registry.unregister(name)
        logger.info("Reloading plugin", plugin=name, path=str(path))
        return self.loader.load(path)

    def dispatch(self, command: str, args: Sequence[str] = ()) -> None:
        """Run a plugin command. Raises a DispatchError subclass on failure."""
        self.dispatcher.dispatch(command, args)

    def list_plugins(self) -> list[PluginInfo]:
        return self.registry.list_plugins()

    def list_instances(self) -> list[PluginInstance]:
        return self.registry.list_instances()

    def list_commands(self) -> list[CommandEntry]:
        return self.registry.list_commands()

    def recent_logs(self, limit: int | None = None) -> list[GuestLogRecord]:
        return self.bridge.recent(limit)

    def clear_logs(self) -> None:
        """Forget the guest log history kept for the shell."""
        self.bridge.clear()

    def discover(self) -> list[Path]:
        """List the configured autoload artifacts, then those in plugin directories."""
        paths: list[Path] = list(self.config.plugins.autoload)

        for directory in self.config.plugins.directories:
            if not directory.is_dir():
                logger.warning("Plugin directory not found", path=str(directory))
                continue
            paths.extend(sorted(directory.glob(ARTIFACT_PATTERN)))

        seen: set[Path] = set()
        unique: list[Path] = []
        for path in paths:
            key = path.resolve()
            if key not in seen:
                seen.add(key)
                unique.append(path)
        return unique

    def autoload(self, extra: Sequence[Path | str] = ()) -> AutoloadReport:
        """Load every discovered plugin plus ``extra``. Failures are collected, not raised."""
        report = AutoloadReport()

        for path in [*self.discover(), *(Path(p) for p in extra)]:
            try:
                report.loaded.append(self.load(path))
            except LoadError as e:
                logger.error("Failed to load plugin", path=str(path), error=str(e))
                report.errors.append(e)

        return report

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Unload every plugin."""
        if self._closed:
            return
        self.registry.clear()
        self._closed = True

        logger.info(
            "Host closed",
            host_id=self.id,
            duration_seconds=(datetime.now() - self.started_at).total_seconds(),
        )

    def __enter__(self) -> Host:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
