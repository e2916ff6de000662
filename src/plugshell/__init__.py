"""
plugshell - Shell host for sandboxed WebAssembly plugins.

Loads independently compiled plugin modules at runtime and exposes the
commands they declare through an interactive shell.
"""

__version__ = "0.1.0"
__author__ = "plugshell Team"

from plugshell.core.config import HostConfig
from plugshell.core.host import Host

__all__ = ["HostConfig", "Host", "__version__"]
