"""
plugshell Plugin System.

Loads sandboxed WebAssembly plugins and dispatches the commands they
declare.
"""

from plugshell.plugins.base import Plugin, PluginInstance
from plugshell.plugins.bridge import GuestLogRecord, LoggingBridge
from plugshell.plugins.contract import Command, LogLevel, PluginInfo
from plugshell.plugins.dispatcher import Dispatcher
from plugshell.plugins.loader import PluginLoader
from plugshell.plugins.registry import CommandEntry, PluginRegistry
from plugshell.plugins.validation import validate_name, validate_version

__all__ = [
    "Command",
    "CommandEntry",
    "Dispatcher",
    "GuestLogRecord",
    "LogLevel",
    "LoggingBridge",
    "Plugin",
    "PluginInfo",
    "PluginInstance",
    "PluginLoader",
    "PluginRegistry",
    "validate_name",
    "validate_version",
]
