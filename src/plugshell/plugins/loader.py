"""
plugshell Component Loader.

Turns an artifact on disk into a registered plugin: read, instantiate in a
fresh sandbox, init, validate, register. Any failure leaves the registry
exactly as it was.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from plugshell.core.errors import (
    GuestProtocolError,
    GuestTrap,
    InitError,
    NotFound,
    ReadError,
)
from plugshell.core.logging import OperationLogger, get_logger
from plugshell.plugins.base import PluginInstance
from plugshell.plugins.sandbox import Sandbox, WasmPlugin
from plugshell.plugins.validation import validate_plugin_info

if TYPE_CHECKING:
    from plugshell.core.config import SandboxConfig
    from plugshell.plugins.bridge import LoggingBridge
    from plugshell.plugins.contract import PluginInfo
    from plugshell.plugins.registry import PluginRegistry

logger = get_logger(__name__)

TEXT_SUFFIX = ".wat"


def read_artifact(path: Path) -> bytes | str:
    """Read a binary module, or a text module when the file ends in .wat."""
    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        raise NotFound(path) from e
    except IsADirectoryError as e:
        raise ReadError(path, "is a directory") from e
    except OSError as e:
        raise ReadError(path, e.strerror or str(e)) from e

    if path.suffix.lower() == TEXT_SUFFIX:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ReadError(path, f"text module is not valid UTF-8: {e}") from e
    return data


class PluginLoader:
    """Loads plugin artifacts into the registry."""

    def __init__(
        self,
        registry: PluginRegistry,
        bridge: LoggingBridge,
        config: SandboxConfig,
    ) -> None:
        self.registry = registry
        self.bridge = bridge
        self.config = config

    def load(self, path: Path | str) -> PluginInfo:
        """
        Load, initialize, validate and register the plugin at ``path``.

        Raises a LoadError subclass on failure:

        - NotFound / ReadError: the artifact cannot be read
        - InstantiationError: not a module, or it does not match the contract
        - InitError: init trapped, timed out, or returned malformed metadata
        - ValidationError: a declared name or the version breaks a rule
        - DuplicatePlugin: a plugin with the same name is already loaded
        """
        path = Path(path).expanduser()

        with OperationLogger("plugin load", logger, path=str(path)) as op:
            instance = self.instantiate(path)
            try:
                self.registry.register(instance)
            except Exception:
                instance.close()
                raise
            op.update(plugin=instance.name, version=instance.info.version)

        return instance.info

    def instantiate(self, path: Path) -> PluginInstance:
        """Build a validated instance without registering it."""
        source = read_artifact(path)
        sandbox = Sandbox(path, source, self.bridge, self.config)
        plugin = WasmPlugin(sandbox)

        try:
            try:
                info = plugin.init()
            except (GuestTrap, GuestProtocolError) as e:
                raise InitError(path, str(e)) from e

            validate_plugin_info(info, path)
        except Exception:
            plugin.close()
            raise

        return PluginInstance(info=info, plugin=plugin, path=path)
