"""
plugshell Core - Host service layer.

Contains configuration, logging, the error hierarchy and the host that
ties the plugin system together.
"""

from plugshell.core.config import HostConfig
from plugshell.core.errors import DispatchError, LoadError, PluginHostError
from plugshell.core.host import AutoloadReport, Host
from plugshell.core.logging import get_logger, setup_logging

__all__ = [
    "AutoloadReport",
    "DispatchError",
    "Host",
    "HostConfig",
    "LoadError",
    "PluginHostError",
    "get_logger",
    "setup_logging",
]
