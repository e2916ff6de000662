"""
Tests for plugshell.plugins.registry module.
"""

import threading
from collections.abc import Sequence
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from plugshell.core.errors import AmbiguousCommand, DuplicatePlugin, PluginNotLoaded
from plugshell.plugins.base import Plugin, PluginInstance
from plugshell.plugins.contract import Command, PluginInfo
from plugshell.plugins.registry import PluginRegistry, qualify


class FakePlugin(Plugin):
    """In-process plugin for registry tests."""

    def __init__(self) -> None:
        self.closed = False
        self.calls: list[tuple[str, list[str]]] = []

    def init(self) -> PluginInfo:
        raise NotImplementedError

    def run_command(self, name: str, args: Sequence[str]) -> None:
        self.calls.append((name, list(args)))

    def close(self) -> None:
        self.closed = True


def make_instance(name: str, *commands: str) -> PluginInstance:
    info = PluginInfo(
        name=name,
        description=f"{name} plugin",
        version="1.0.0",
        commands=tuple(
            Command(name=c, usage=f"{c} [args..]", description=f"{c} from {name}")
            for c in commands
        ),
    )
    return PluginInstance(info=info, plugin=FakePlugin(), path=Path(f"{name}.wasm"))


class TestRegister:
    """Tests for register and unregister."""

    def test_register_makes_commands_resolvable(self) -> None:
        registry = PluginRegistry()
        instance = make_instance("greeter", "greet", "bye")
        registry.register(instance)

        plugin, command = registry.resolve("greet")
        assert plugin == "greeter"
        assert command == instance.info.commands[0]
        assert registry.resolve("missing") is None

    def test_duplicate_plugin_name_rejected(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("greeter", "greet"))

        with pytest.raises(DuplicatePlugin):
            registry.register(make_instance("greeter", "other"))

        assert registry.resolve("other") is None
        assert len(registry) == 1

    def test_unregister_removes_only_that_plugin(self) -> None:
        registry = PluginRegistry()
        greeter = make_instance("greeter", "greet", "bye")
        registry.register(greeter)
        registry.register(make_instance("counter", "count"))

        removed = registry.unregister("greeter")

        assert removed is greeter
        assert registry.resolve("greet") is None
        assert registry.resolve("bye") is None
        assert registry.resolve("count") is not None
        assert "greeter" not in registry

    def test_unregister_releases_instance(self) -> None:
        registry = PluginRegistry()
        instance = make_instance("greeter", "greet")
        registry.register(instance)

        registry.unregister("greeter")

        assert isinstance(instance.plugin, FakePlugin)
        assert instance.plugin.closed is True

    def test_unregister_unknown(self) -> None:
        registry = PluginRegistry()
        with pytest.raises(PluginNotLoaded):
            registry.unregister("ghost")

    def test_clear(self) -> None:
        registry = PluginRegistry()
        instances = [make_instance("a", "x"), make_instance("b", "y")]
        for instance in instances:
            registry.register(instance)

        registry.clear()

        assert len(registry) == 0
        assert all(i.plugin.closed for i in instances)  # type: ignore[attr-defined]


class TestCollisions:
    """Tests for the command name collision policy."""

    def test_bare_name_is_ambiguous_once_declared_twice(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("alpha", "start"))
        registry.register(make_instance("beta", "start"))

        with pytest.raises(AmbiguousCommand) as exc_info:
            registry.resolve("start")

        assert exc_info.value.candidates == ["alpha:start", "beta:start"]

    def test_candidates_follow_load_order(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("beta", "start"))
        registry.register(make_instance("alpha", "start"))

        with pytest.raises(AmbiguousCommand) as exc_info:
            registry.resolve("start")

        assert exc_info.value.candidates == ["beta:start", "alpha:start"]

    def test_repeatable_across_registries(self) -> None:
        outcomes = []
        for _ in range(3):
            registry = PluginRegistry()
            registry.register(make_instance("alpha", "start"))
            registry.register(make_instance("beta", "start"))
            with pytest.raises(AmbiguousCommand) as exc_info:
                registry.resolve("start")
            outcomes.append(exc_info.value.candidates)

        assert outcomes[0] == outcomes[1] == outcomes[2]

    def test_qualified_name_resolves(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("alpha", "start"))
        registry.register(make_instance("beta", "start"))

        assert registry.resolve("alpha:start")[0] == "alpha"  # type: ignore[index]
        assert registry.resolve("beta:start")[0] == "beta"  # type: ignore[index]
        assert registry.resolve("gamma:start") is None
        assert registry.resolve("alpha:stop") is None

    def test_qualified_name_works_without_collision(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("alpha", "start"))

        assert registry.resolve("alpha:start") == registry.resolve("start")

    def test_collision_clears_after_unregister(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("alpha", "start"))
        registry.register(make_instance("beta", "start"))

        registry.unregister("alpha")

        plugin, _ = registry.resolve("start")  # type: ignore[misc]
        assert plugin == "beta"

    def test_lookup_after_collision_returns_remaining_owner(self) -> None:
        registry = PluginRegistry()
        alpha = make_instance("alpha", "start")
        beta = make_instance("beta", "start", "stop")
        registry.register(alpha)
        registry.register(beta)

        registry.unregister("alpha")

        assert registry.lookup("start") == (beta, beta.commands[0])
        assert registry.lookup("stop") == (beta, beta.commands[1])
        assert registry.lookup("alpha:start") is None

    def test_reregistered_plugin_moves_to_end_of_candidates(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("alpha", "start"))
        registry.register(make_instance("beta", "start"))

        registry.unregister("alpha")
        registry.register(make_instance("alpha", "start"))

        with pytest.raises(AmbiguousCommand) as exc_info:
            registry.lookup("start")
        assert exc_info.value.candidates == ["beta:start", "alpha:start"]

    def test_collision_is_logged(self, mocker: MockerFixture) -> None:
        mock_logger = mocker.patch("plugshell.plugins.registry.logger")
        registry = PluginRegistry()
        registry.register(make_instance("alpha", "start"))
        mock_logger.warning.assert_not_called()

        registry.register(make_instance("beta", "start"))

        mock_logger.warning.assert_called_once()
        _, kwargs = mock_logger.warning.call_args
        assert kwargs["command"] == "start"
        assert kwargs["candidates"] == ["alpha:start", "beta:start"]

    def test_list_commands_marks_ambiguous(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("alpha", "start", "only"))
        registry.register(make_instance("beta", "start"))

        entries = registry.list_commands()

        assert [(e.plugin, e.command.name, e.ambiguous) for e in entries] == [
            ("alpha", "start", True),
            ("alpha", "only", False),
            ("beta", "start", True),
        ]
        assert [e.invocation for e in entries] == ["alpha:start", "only", "beta:start"]


class TestListing:
    """Tests for list operations."""

    def test_list_plugins_in_load_order(self) -> None:
        registry = PluginRegistry()
        registry.register(make_instance("zeta", "z"))
        registry.register(make_instance("alpha", "a"))

        assert [info.name for info in registry.list_plugins()] == ["zeta", "alpha"]

    def test_get(self) -> None:
        registry = PluginRegistry()
        instance = make_instance("alpha", "a")
        registry.register(instance)

        assert registry.get("alpha") is instance
        assert registry.get("beta") is None

    def test_qualify(self) -> None:
        assert qualify("alpha", "start") == "alpha:start"


class TestConcurrency:
    """Tests for concurrent registry access."""

    def test_concurrent_register_and_resolve(self) -> None:
        registry = PluginRegistry()
        errors: list[Exception] = []

        def register(index: int) -> None:
            try:
                registry.register(make_instance(f"p{index}", f"cmd{index}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=register, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(registry) == 20
        for i in range(20):
            assert registry.resolve(f"cmd{i}") == (f"p{i}", registry.get(f"p{i}").commands[0])  # type: ignore[union-attr]
