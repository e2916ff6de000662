"""
Pytest configuration and fixtures for plugshell tests.
"""

import json
import struct
import sys
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


INFO_OFFSET = 64
INIT_MSG_OFFSET = 4096
RUN_MSG_OFFSET = 6144

INIT_BODIES = {
    "ok": "(call $log (i32.const 1) (i32.const {init_msg}) (i32.const {init_msg_len}))",
    "quiet": "",
    "trap": "unreachable",
    "loop": "(loop $spin (br $spin))",
}

RUN_BODIES = {
    "ok": "(call $log (i32.const 1) (i32.const {run_msg}) (i32.const {run_msg_len}))",
    "echo": (
        "(call $log (i32.const 1) (local.get $name) (local.get $name_len))\n"
        "    (call $log (i32.const 0) (local.get $args) (local.get $args_len))"
    ),
    "badlog": (
        "(call $log (i32.const 7) (i32.const {run_msg}) (i32.const {run_msg_len}))\n"
        "    (call $log (i32.const 1) (i32.const 1000000) (i32.const 16))\n"
        "    (call $log (i32.const 2) (i32.const {run_msg}) (i32.const {run_msg_len}))"
    ),
    "trap": "unreachable",
    "loop": "(loop $spin (br $spin))",
}

PLUGIN_TEMPLATE = """\
(module
  (import "plugin-app" "log" (func $log (param i32 i32 i32)))
  (memory (export "memory") 1)
  (global $heap (mut i32) (i32.const 8192))
  (data (i32.const 8) "{header}")
  (data (i32.const {info_offset}) "{info}")
  (data (i32.const {init_msg}) "{init_text}")
  (data (i32.const {run_msg}) "{run_text}")
  (func (export "alloc") (param $size i32) (result i32)
    (local $ptr i32)
    (local.set $ptr (global.get $heap))
    (global.set $heap (i32.add (global.get $heap) (local.get $size)))
    (local.get $ptr))
  (func (export "init") (result i32)
    {init_body}
    (i32.const 8))
  (func (export "run_command")
    (param $name i32) (param $name_len i32) (param $args i32) (param $args_len i32)
    {run_body})
)
"""


def wat_string(data: bytes) -> str:
    """Escape bytes for a WAT data segment."""
    return "".join(f"\\{b:02x}" for b in data)


def plugin_wat(
    name: str = "greeter",
    version: str = "1.0.0",
    description: str = "Test plugin",
    commands: Sequence[Any] = ("greet", "bye"),
    init: str = "ok",
    run: str = "ok",
    info_json: str | None = None,
    header: tuple[int, int] | None = None,
    init_message: str = "initializing",
    run_message: str = "Hello!",
) -> str:
    """
    Build the text of a guest module implementing the plugin ABI.

    ``commands`` items are either a bare name or a full command dict.
    """
    if info_json is None:
        info_json = json.dumps(
            {
                "name": name,
                "description": description,
                "version": version,
                "commands": [
                    c
                    if isinstance(c, dict)
                    else {"name": c, "usage": f"{c} [args..]", "description": f"Runs {c}"}
                    for c in commands
                ],
            }
        )
    info = info_json.encode("utf-8")
    if header is None:
        header = (INFO_OFFSET, len(info))

    init_text = init_message.encode("utf-8")
    run_text = run_message.encode("utf-8")
    offsets = {
        "init_msg": INIT_MSG_OFFSET,
        "init_msg_len": len(init_text),
        "run_msg": RUN_MSG_OFFSET,
        "run_msg_len": len(run_text),
    }

    return PLUGIN_TEMPLATE.format(
        header=wat_string(struct.pack("<II", *header)),
        info_offset=INFO_OFFSET,
        info=wat_string(info),
        init_msg=INIT_MSG_OFFSET,
        run_msg=RUN_MSG_OFFSET,
        init_text=wat_string(init_text),
        run_text=wat_string(run_text),
        init_body=INIT_BODIES[init].format(**offsets),
        run_body=RUN_BODIES[run].format(**offsets),
    )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def write_module(temp_dir: Path) -> Callable[..., Path]:
    """Write WAT text to a file, compiled to binary unless text=True."""
    import wasmtime

    def write(wat: str, filename: str = "plugin.wasm", text: bool = False) -> Path:
        path = temp_dir / filename
        if text:
            path.write_text(wat, encoding="utf-8")
        else:
            path.write_bytes(bytes(wasmtime.wat2wasm(wat)))
        return path

    return write


@pytest.fixture
def make_plugin(write_module: Callable[..., Path]) -> Callable[..., Path]:
    """Build a plugin artifact; see plugin_wat for the options."""

    def make(filename: str | None = None, text: bool = False, **options: Any) -> Path:
        wat = plugin_wat(**options)
        if filename is None:
            stem = options.get("name", "greeter") or "plugin"
            filename = f"{stem}.wat" if text else f"{stem}.wasm"
        return write_module(wat, filename=filename, text=text)

    return make


@pytest.fixture
def sample_config() -> Generator["HostConfig", None, None]:
    """Create a sample configuration for testing."""
    from plugshell.core.config import HostConfig, LoggingConfig, SandboxConfig

    with tempfile.TemporaryDirectory() as tmpdir:
        config = HostConfig(
            logging=LoggingConfig(
                console_enabled=False,
                file_enabled=False,
                log_directory=Path(tmpdir) / "logs",
            ),
            sandbox=SandboxConfig(call_timeout_seconds=0.5, init_timeout_seconds=0.5),
        )
        yield config


@pytest.fixture
def host(sample_config: "HostConfig") -> Generator["Host", None, None]:
    """Create a host with no plugins loaded."""
    from plugshell.core.host import Host

    with Host(config=sample_config, host_id="test-host") as h:
        yield h


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
