"""
plugshell CLI Module.

Provides the command-line interface and the interactive shell.
"""

from plugshell.cli.main import cli, main

__all__ = ["main", "cli"]
