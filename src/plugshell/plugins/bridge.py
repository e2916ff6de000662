"""
plugshell Logging Bridge.

The only capability granted to guest code. A single bridge is shared by
every sandbox; each sandbox receives its own bound host function that tags
messages with the plugin's identity.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import wasmtime

from plugshell.core.logging import get_logger
from plugshell.plugins.contract import MEMORY_EXPORT, LogLevel

logger = get_logger(__name__)

_U32_MASK = 0xFFFFFFFF

_LEVEL_METHODS = {
    LogLevel.DEBUG: "debug",
    LogLevel.INFO: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
}


@dataclass(frozen=True)
class GuestLogRecord:
    """A message a guest emitted through the bridge."""

    plugin: str
    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


class LoggingBridge:
    """Receives leveled log messages from guest code."""

    def __init__(
        self,
        min_level: LogLevel = LogLevel.DEBUG,
        history: int = 200,
    ) -> None:
        self.min_level = min_level
        self._records: deque[GuestLogRecord] = deque(maxlen=history)
        self._lock = threading.Lock()
        self._guest_logger = get_logger("plugshell.guest")

    def emit(self, plugin: str, level: int, message: str) -> None:
        """Emit one guest message. Never raises."""
        try:
            self._emit(plugin, level, message)
        except Exception as e:
            logger.warning("Dropped guest log message", plugin=plugin, error=str(e))

    def _emit(self, plugin: str, level: int, message: str) -> None:
        extra: dict[str, Any] = {}
        try:
            log_level = LogLevel(level)
        except ValueError:
            log_level = LogLevel.WARN
            extra["raw_level"] = level

        if log_level < self.min_level:
            return

        with self._lock:
            self._records.append(GuestLogRecord(plugin, log_level, message))

        log_method = getattr(self._guest_logger, _LEVEL_METHODS[log_level])
        log_method(message, plugin=plugin, **extra)

    def bind(self, identity: Callable[[], str]) -> Callable[..., None]:
        """
        Build the ``plugin-app.log`` host function for one sandbox.

        ``identity`` is called on every message so the sandbox can rename
        itself once init has told it the plugin's name.
        """

        def log(caller: wasmtime.Caller, level: int, ptr: int, length: int) -> None:
            plugin = identity()
            try:
                message = _read_guest_string(caller, ptr, length)
            except Exception as e:
                logger.warning("Unreadable guest log message", plugin=plugin, error=str(e))
                return
            self.emit(plugin, level, message)

        return log

    def recent(self, limit: int | None = None) -> list[GuestLogRecord]:
        """Return the most recent records, oldest first."""
        with self._lock:
            records = list(self._records)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def _read_guest_string(caller: wasmtime.Caller, ptr: int, length: int) -> str:
    memory = caller.get(MEMORY_EXPORT)
    if not isinstance(memory, wasmtime.Memory):
        raise ValueError("guest exports no memory")

    start = ptr & _U32_MASK
    stop = start + (length & _U32_MASK)
    if stop > memory.data_len(caller):
        raise ValueError(f"message range {start}..{stop} is outside guest memory")

    return bytes(memory.read(caller, start, stop)).decode("utf-8", errors="replace")
