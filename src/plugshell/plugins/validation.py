"""
plugshell metadata validation.

Checks the names and versions a plugin declares before anything it
declares reaches the registry.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from plugshell.core.errors import NameInvalid, ValidationError, VersionInvalid

if TYPE_CHECKING:
    from pathlib import Path

    from plugshell.plugins.contract import PluginInfo

MAX_NAME_LENGTH = 16

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$",
    re.ASCII,
)


def check_name(value: str, field: str = "name") -> None:
    """Raise NameInvalid if value is not a valid plugin or command name."""
    if not value:
        raise NameInvalid(field, value, "it must not be empty")

    if len(value) > MAX_NAME_LENGTH:
        raise NameInvalid(
            field,
            value,
            f"it is {len(value)} characters long, the maximum is {MAX_NAME_LENGTH}",
        )

    for index, char in enumerate(value):
        if char.isspace():
            raise NameInvalid(field, value, f"whitespace {char!r} at position {index}")
        if not (char.isascii() and char.isalnum()):
            raise NameInvalid(
                field,
                value,
                f"character {char!r} at position {index} is not an ASCII letter or digit",
            )


def check_version(value: str, field: str = "version") -> None:
    """Raise VersionInvalid if value is not a semantic version."""
    if not value:
        raise VersionInvalid(field, value, "it must not be empty")

    if not SEMVER_PATTERN.fullmatch(value):
        raise VersionInvalid(field, value, "expected MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]")


def validate_name(value: str) -> bool:
    try:
        check_name(value)
    except NameInvalid:
        return False
    return True


def validate_version(value: str) -> bool:
    try:
        check_version(value)
    except VersionInvalid:
        return False
    return True


def validate_plugin_info(info: PluginInfo, path: Path | str) -> None:
    """
    Check everything a plugin declared about itself.

    Raises ValidationError naming the first offending field. The plugin
    name, the version and every command name are checked, and command
    names must be unique within the plugin.
    """
    try:
        check_name(info.name, "plugin name")
    except NameInvalid as e:
        raise ValidationError(path, "name", e) from e

    try:
        check_version(info.version)
    except VersionInvalid as e:
        raise ValidationError(path, "version", e) from e

    seen: set[str] = set()
    for index, command in enumerate(info.commands):
        field = f"commands[{index}].name"
        try:
            check_name(command.name, "command name")
        except NameInvalid as e:
            raise ValidationError(path, field, e) from e

        if command.name in seen:
            raise ValidationError(
                path, field, f"command {command.name!r} is declared more than once"
            )
        seen.add(command.name)
