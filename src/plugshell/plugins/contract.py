"""
plugshell Interface Contract.

Data shapes shared by host and guest, and the WebAssembly ABI that carries
them across the sandbox boundary.

Guest exports::

    memory                                      linear memory
    alloc(size: i32) -> i32                     scratch buffer for host writes
    init() -> i32                               pointer to (data_ptr: u32, data_len: u32),
                                                data is a UTF-8 JSON PluginInfo
    run_command(name_ptr, name_len,
                args_ptr, args_len: i32)        args are a UTF-8 JSON array of strings
    dealloc(ptr: i32, len: i32)                 optional

Host imports (module ``plugin-app``)::

    log(level: i32, msg_ptr: i32, msg_len: i32)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from pydantic import BaseModel, ConfigDict

HOST_MODULE = "plugin-app"
MEMORY_EXPORT = "memory"


class LogLevel(IntEnum):
    """Guest log severity. The value is the wire code."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3

    @classmethod
    def from_name(cls, name: str) -> LogLevel:
        return cls[name.upper()]


class Command(BaseModel):
    """A command declared by a plugin."""

    model_config = ConfigDict(frozen=True)

    name: str
    usage: str
    description: str


class PluginInfo(BaseModel):
    """Metadata returned once by a plugin's init entry point."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    version: str
    commands: tuple[Command, ...]

    def get_command(self, name: str) -> Command | None:
        for command in self.commands:
            if command.name == name:
                return command
        return None


@dataclass(frozen=True)
class FuncSignature:
    """A wasm function signature, as lists of value type names."""

    params: tuple[str, ...]
    results: tuple[str, ...]

    def __str__(self) -> str:
        return f"({', '.join(self.params)}) -> ({', '.join(self.results)})"


REQUIRED_EXPORTS: dict[str, FuncSignature] = {
    "alloc": FuncSignature(("i32",), ("i32",)),
    "init": FuncSignature((), ("i32",)),
    "run_command": FuncSignature(("i32", "i32", "i32", "i32"), ()),
}

OPTIONAL_EXPORTS: dict[str, FuncSignature] = {
    "dealloc": FuncSignature(("i32", "i32"), ()),
}

HOST_IMPORTS: dict[tuple[str, str], FuncSignature] = {
    (HOST_MODULE, "log"): FuncSignature(("i32", "i32", "i32"), ()),
}
