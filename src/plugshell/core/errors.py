"""
plugshell error hierarchy.

Every failure a plugin can cause is reported through one of these
exceptions. None of them is fatal to the host process.
"""

from __future__ import annotations

from pathlib import Path


class PluginHostError(Exception):
    """Base class for all plugin host errors."""


# Validation


class NameInvalid(PluginHostError):
    """A plugin or command name breaks the naming rule."""

    def __init__(self, field: str, value: str, reason: str) -> None:
        super().__init__(f"{field} {value!r} is not a valid name: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


class VersionInvalid(PluginHostError):
    """A plugin version is not a semantic version."""

    def __init__(self, field: str, value: str, reason: str) -> None:
        super().__init__(f"{field} {value!r} is not a valid version: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


# Loading


class LoadError(PluginHostError):
    """Base class for failures while loading a plugin artifact."""

    def __init__(self, path: Path | str, message: str) -> None:
        super().__init__(f"cannot load {path}: {message}")
        self.path = Path(path)
        self.detail = message


class NotFound(LoadError):
    """The artifact path does not exist."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(path, "file not found")


class ReadError(LoadError):
    """The artifact exists but could not be read."""


class InstantiationError(LoadError):
    """The module does not satisfy the interface contract."""


class InitError(LoadError):
    """The guest's init entry point faulted or returned garbage."""


class ValidationError(LoadError):
    """The plugin declared metadata that breaks a structural rule."""

    def __init__(self, path: Path | str, field: str, cause: PluginHostError | str) -> None:
        super().__init__(path, str(cause))
        self.field = field
        self.cause = cause


class DuplicatePlugin(LoadError):
    """A plugin with the same name is already loaded."""

    def __init__(self, path: Path | str, name: str) -> None:
        super().__init__(path, f"a plugin named {name!r} is already loaded")
        self.name = name


# Dispatch


class DispatchError(PluginHostError):
    """Base class for failures while running a plugin command."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(message)
        self.command = command


class UnknownCommand(DispatchError):
    """No loaded plugin declares the command."""

    def __init__(self, command: str) -> None:
        super().__init__(command, f"unknown command {command!r}")


class AmbiguousCommand(DispatchError):
    """Several plugins declare the command; it must be qualified."""

    def __init__(self, command: str, candidates: list[str]) -> None:
        super().__init__(
            command,
            f"command {command!r} is declared by several plugins, "
            f"use one of: {', '.join(candidates)}",
        )
        self.candidates = candidates


class PluginFault(DispatchError):
    """The guest trapped, ran out of budget, or is quarantined."""

    def __init__(
        self,
        command: str,
        plugin: str,
        reason: str,
        timed_out: bool = False,
        quarantined: bool = False,
    ) -> None:
        super().__init__(command, f"plugin {plugin!r} failed running {command!r}: {reason}")
        self.plugin = plugin
        self.reason = reason
        self.timed_out = timed_out
        self.quarantined = quarantined


# Sandbox


class GuestTrap(PluginHostError):
    """A guest call did not return normally."""

    def __init__(self, export: str, reason: str, timed_out: bool = False) -> None:
        super().__init__(f"guest call {export!r} trapped: {reason}")
        self.export = export
        self.reason = reason
        self.timed_out = timed_out


class GuestProtocolError(PluginHostError):
    """A guest returned data that does not follow the interface contract."""


class PluginNotLoaded(PluginHostError):
    """No plugin with the given name is loaded."""

    def __init__(self, name: str) -> None:
        super().__init__(f"no plugin named {name!r} is loaded")
        self.name = name
