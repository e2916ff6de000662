"""
plugshell WebAssembly sandbox.

Each plugin runs in its own engine and store with no capability other than
the logging bridge. Every guest call is bounded by a wall-clock deadline
(epoch interruption) and, when configured, a fuel budget.
"""

from __future__ import annotations

import json
import struct
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import wasmtime
from pydantic import ValidationError as PydanticValidationError

from plugshell.core.errors import GuestProtocolError, GuestTrap, InstantiationError
from plugshell.core.logging import get_logger
from plugshell.plugins.base import Plugin
from plugshell.plugins.contract import (
    HOST_IMPORTS,
    HOST_MODULE,
    MEMORY_EXPORT,
    OPTIONAL_EXPORTS,
    REQUIRED_EXPORTS,
    FuncSignature,
    PluginInfo,
)

if TYPE_CHECKING:
    from plugshell.core.config import SandboxConfig
    from plugshell.plugins.bridge import LoggingBridge

logger = get_logger(__name__)

_U32_MASK = 0xFFFFFFFF


def _signature(func_type: wasmtime.FuncType) -> FuncSignature:
    return FuncSignature(
        tuple(str(t) for t in func_type.params),
        tuple(str(t) for t in func_type.results),
    )


def _trap_reason(error: Exception) -> str:
    lines = str(error).strip().splitlines()
    return lines[0] if lines else type(error).__name__


def contract_problems(module: wasmtime.Module) -> list[str]:
    """List every way ``module`` fails to match the interface contract."""
    problems: list[str] = []

    for imp in module.imports:
        key = (imp.module, imp.name or "")
        expected = HOST_IMPORTS.get(key)
        if expected is None:
            problems.append(f"imports {imp.module}.{imp.name}, which the host does not provide")
        elif not isinstance(imp.type, wasmtime.FuncType):
            problems.append(f"imports {imp.module}.{imp.name} as a non-function")
        elif _signature(imp.type) != expected:
            problems.append(
                f"imports {imp.module}.{imp.name} with signature "
                f"{_signature(imp.type)}, expected {expected}"
            )

    exports = {exp.name: exp.type for exp in module.exports}

    if not isinstance(exports.get(MEMORY_EXPORT), wasmtime.MemoryType):
        problems.append(f"does not export a memory named {MEMORY_EXPORT!r}")

    for name, expected in REQUIRED_EXPORTS.items():
        export_type = exports.get(name)
        if export_type is None:
            problems.append(f"does not export {name!r}")
        elif not isinstance(export_type, wasmtime.FuncType):
            problems.append(f"exports {name!r} as a non-function")
        elif _signature(export_type) != expected:
            problems.append(
                f"exports {name!r} with signature {_signature(export_type)}, expected {expected}"
            )

    for name, expected in OPTIONAL_EXPORTS.items():
        export_type = exports.get(name)
        if export_type is None:
            continue
        if not isinstance(export_type, wasmtime.FuncType) or _signature(export_type) != expected:
            problems.append(f"exports {name!r} with an unexpected type, expected {expected}")

    return problems


class Sandbox:
    """
    One isolated guest instance.

    The engine is private to the sandbox so that expiring one call's
    deadline never interrupts a call running in another sandbox.
    """

    def __init__(
        self,
        path: Path,
        source: bytes | str,
        bridge: LoggingBridge,
        config: SandboxConfig,
    ) -> None:
        self.path = path
        self.identity = path.stem
        self.config = config
        self._lock = threading.RLock()
        self._closed = False

        engine_config = wasmtime.Config()
        engine_config.epoch_interruption = True
        if config.fuel_per_call is not None:
            engine_config.consume_fuel = True
        self._engine = wasmtime.Engine(engine_config)

        try:
            module = wasmtime.Module(self._engine, source)
        except wasmtime.WasmtimeError as e:
            raise InstantiationError(path, f"not a valid WebAssembly module: {e}") from e

        problems = contract_problems(module)
        if problems:
            raise InstantiationError(path, "module " + "; ".join(problems))

        self._store = wasmtime.Store(self._engine)
        self._store.set_limits(memory_size=config.max_memory_bytes)

        linker = wasmtime.Linker(self._engine)
        log_type = wasmtime.FuncType([wasmtime.ValType.i32()] * 3, [])
        linker.define_func(
            HOST_MODULE,
            "log",
            log_type,
            bridge.bind(lambda: self.identity),
            access_caller=True,
        )

        try:
            instance = self._guarded(
                "instantiate",
                lambda: linker.instantiate(self._store, module),
                config.init_timeout_seconds,
            )
        except GuestTrap as e:
            raise InstantiationError(path, str(e)) from e

        exports = instance.exports(self._store)
        self._memory: wasmtime.Memory = exports[MEMORY_EXPORT]
        self._funcs: dict[str, wasmtime.Func] = {
            name: exports[name]
            for name in (*REQUIRED_EXPORTS, *OPTIONAL_EXPORTS)
            if exports.get(name) is not None
        }

        logger.debug("Sandbox instantiated", path=str(path))

    @property
    def closed(self) -> bool:
        return self._closed

    def has_export(self, name: str) -> bool:
        return name in self._funcs

    @contextmanager
    def locked(self) -> Iterator[Sandbox]:
        """Hold the instance for a sequence of calls that must not interleave."""
        with self._lock:
            if self._closed:
                raise GuestTrap("*", "the instance has been released")
            yield self

    def call(self, export: str, *args: int, timeout: float | None = None) -> Any:
        """Call a guest export within the time budget."""
        if timeout is None:
            timeout = self.config.call_timeout_seconds

        with self.locked():
            func = self._funcs.get(export)
            if func is None:
                raise GuestTrap(export, "no such export")
            return self._guarded(export, lambda: func(self._store, *args), timeout)

    def _guarded(self, export: str, run: Any, timeout: float) -> Any:
        expired = threading.Event()

        def expire() -> None:
            expired.set()
            self._engine.increment_epoch()

        self._store.set_epoch_deadline(1)
        if self.config.fuel_per_call is not None:
            self._store.set_fuel(self.config.fuel_per_call)

        timer = threading.Timer(timeout, expire)
        timer.daemon = True
        timer.start()
        try:
            return run()
        except (wasmtime.Trap, wasmtime.WasmtimeError) as e:
            if expired.is_set():
                raise GuestTrap(
                    export, f"exceeded the {timeout:g}s time budget", timed_out=True
                ) from e
            if self.config.fuel_per_call is not None and self._store.get_fuel() == 0:
                raise GuestTrap(
                    export,
                    f"exhausted the budget of {self.config.fuel_per_call} fuel units",
                    timed_out=True,
                ) from e
            raise GuestTrap(export, _trap_reason(e)) from e
        finally:
            # expire() may already be running; wait for it so its epoch
            # increment cannot land in the next call.
            timer.cancel()
            timer.join()

    def read_bytes(self, ptr: int, length: int) -> bytes:
        """Copy ``length`` bytes out of guest memory."""
        with self.locked():
            start = ptr & _U32_MASK
            stop = start + (length & _U32_MASK)
            if stop > self._memory.data_len(self._store):
                raise GuestProtocolError(
                    f"range {start}..{stop} is outside the guest memory of {self.identity!r}"
                )
            return bytes(self._memory.read(self._store, start, stop))

    def write_bytes(self, data: bytes) -> int:
        """Copy ``data`` into a buffer obtained from the guest's ``alloc``."""
        with self.locked():
            ptr = self.call("alloc", len(data))
            start = ptr & _U32_MASK
            if start + len(data) > self._memory.data_len(self._store):
                raise GuestProtocolError(
                    f"alloc returned {start}, which cannot hold {len(data)} bytes"
                )
            if data:
                self._memory.write(self._store, data, start)
            return ptr

    def close(self) -> None:
        """Release the instance once no call is in flight."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._funcs.clear()
            del self._memory
            del self._store
        logger.debug("Sandbox released", plugin=self.identity)


class WasmPlugin(Plugin):
    """Plugin backed by a sandboxed WebAssembly instance."""

    def __init__(self, sandbox: Sandbox) -> None:
        self.sandbox = sandbox
        self._initialized = False

    def init(self) -> PluginInfo:
        if self._initialized:
            raise GuestProtocolError("init may only be called once per instance")
        self._initialized = True

        with self.sandbox.locked():
            ptr = self.sandbox.call("init", timeout=self.sandbox.config.init_timeout_seconds)
            data_ptr, data_len = struct.unpack("<II", self.sandbox.read_bytes(ptr, 8))
            payload = self.sandbox.read_bytes(data_ptr, data_len)

        try:
            info = PluginInfo.model_validate_json(payload)
        except PydanticValidationError as e:
            raise GuestProtocolError(f"init returned a malformed PluginInfo: {e}") from e

        self.sandbox.identity = info.name
        return info

    def run_command(self, name: str, args: Sequence[str]) -> None:
        if not self._initialized:
            raise GuestProtocolError("run_command called before init")

        name_data = name.encode("utf-8")
        args_data = json.dumps(list(args)).encode("utf-8")

        with self.sandbox.locked():
            name_ptr = self.sandbox.write_bytes(name_data)
            args_ptr = self.sandbox.write_bytes(args_data)
            self.sandbox.call("run_command", name_ptr, len(name_data), args_ptr, len(args_data))
            if self.sandbox.has_export("dealloc"):
                self.sandbox.call("dealloc", name_ptr, len(name_data))
                self.sandbox.call("dealloc", args_ptr, len(args_data))

    def close(self) -> None:
        self.sandbox.close()
