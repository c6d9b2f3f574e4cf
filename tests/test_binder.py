"""Tests for binding component commands."""

import pytest

from compman.binder import CommandBinder, CommandTable, module_file_for
from compman.models import ComponentStatus

from conftest import make_record


def write_module(install_path, relative, body="def run():\n    return 'ok'\n"):
    module_file = install_path / "src" / relative
    module_file.parent.mkdir(parents=True, exist_ok=True)
    module_file.write_text(body)
    return module_file


def record_with(temp_dir, name, commands, **overrides):
    return make_record(temp_dir, name, metadata={"commands": commands}, **overrides)


class TestModuleFileFor:
    """Test entry point resolution."""

    def test_module_file(self, temp_dir):
        """A dotted module resolves to its .py file."""
        expected = write_module(temp_dir, "pkg/cli.py")

        assert module_file_for(temp_dir / "src", "pkg.cli:run") == expected

    def test_package_init(self, temp_dir):
        """A package entry point resolves to __init__.py."""
        expected = write_module(temp_dir, "pkg/__init__.py")

        assert module_file_for(temp_dir / "src", "pkg:run") == expected

    @pytest.mark.parametrize("entry_point", ["", "pkg.cli", "pkg/cli:run", "../x:run", ":run", None])
    def test_malformed(self, temp_dir, entry_point):
        """Malformed entry points never resolve."""
        assert module_file_for(temp_dir / "src", entry_point) is None

    def test_absent(self, temp_dir):
        """A well-formed entry point whose module is missing does not resolve."""
        assert module_file_for(temp_dir / "src", "missing.mod:run") is None


class TestBind:
    """Test binding installed components."""

    def test_bind_and_invoke(self, temp_dir):
        """Valid commands are registered and invocable."""
        record = record_with(
            temp_dir, "weather",
            [{"name": "weather:today", "summary": "Today", "entry_point": "weather_cli:run"}],
        )
        write_module(record.path, "weather_cli.py", "def run(city='here'):\n    return f'sunny {city}'\n")
        binder = CommandBinder()

        result = binder.bind(record)

        assert result.ok
        assert [c.name for c in result.commands] == ["weather:today"]
        assert binder.table.get("weather:today")(city="Oslo") == "sunny Oslo"

    def test_nested_attribute(self, temp_dir):
        """Entry points may name an attribute path."""
        record = record_with(temp_dir, "tools", [{"name": "tools:go", "entry_point": "tools_cli:App.run"}])
        write_module(
            record.path, "tools_cli.py",
            "class App:\n    @staticmethod\n    def run():\n        return 'ran'\n",
        )
        binder = CommandBinder()
        binder.bind(record)

        assert binder.table.get("tools:go")() == "ran"

    def test_same_module_name_in_two_components(self, temp_dir):
        """Two components shipping the same module name stay separate."""
        binder = CommandBinder()
        for name in ("alpha", "beta"):
            record = record_with(temp_dir, name, [{"name": f"{name}:id", "entry_point": "cli:run"}])
            write_module(record.path, "cli.py", f"def run():\n    return '{name}'\n")
            binder.bind(record)

        assert binder.table.get("alpha:id")() == "alpha"
        assert binder.table.get("beta:id")() == "beta"

    def test_failures_reported_per_command(self, temp_dir):
        """Bad declarations fail alone; good ones still bind."""
        record = record_with(
            temp_dir, "weather",
            [
                {"name": "weather:ok", "entry_point": "weather_cli:run"},
                {"name": "bad name", "entry_point": "weather_cli:run"},
                {"name": "x" * 101, "entry_point": "weather_cli:run"},
                {"name": "weather:gone", "entry_point": "missing:run"},
                {"name": "weather:malformed", "entry_point": "not an entry point"},
                "not a dict",
            ],
        )
        write_module(record.path, "weather_cli.py")

        result = CommandBinder().bind(record)

        assert [c.name for c in result.commands] == ["weather:ok"]
        assert len(result.failures) == 5
        assert not result.ok

    def test_name_owned_by_other_component(self, temp_dir):
        """A command name already bound elsewhere is refused."""
        binder = CommandBinder()
        first = record_with(temp_dir, "alpha", [{"name": "shared", "entry_point": "cli:run"}])
        second = record_with(temp_dir, "beta", [{"name": "shared", "entry_point": "cli:run"}])
        for record in (first, second):
            write_module(record.path, "cli.py")

        binder.bind(first)
        result = binder.bind(second)

        assert binder.table.owner("shared") == "alpha"
        assert result.failures[0].reason == "already provided by 'alpha'"

    def test_rebind_replaces_commands(self, temp_dir):
        """Binding again drops commands the component no longer declares."""
        binder = CommandBinder()
        old = record_with(
            temp_dir, "weather",
            [{"name": "weather:a", "entry_point": "cli:run"}, {"name": "weather:b", "entry_point": "cli:run"}],
        )
        write_module(old.path, "cli.py")
        binder.bind(old)

        binder.bind(record_with(temp_dir, "weather", [{"name": "weather:a", "entry_point": "cli:run"}]))

        assert [d.name for d in binder.table.descriptors()] == ["weather:a"]

    def test_not_installed(self, temp_dir):
        """Only installed records bind."""
        record = record_with(temp_dir, "weather", [], status=ComponentStatus.UNINSTALLED)

        result = CommandBinder().bind(record)

        assert not result.ok
        assert result.commands == []


class TestUnbind:
    """Test removing bound commands."""

    def test_unbind(self, temp_dir):
        """unbind() removes only that component's commands."""
        table = CommandTable()
        binder = CommandBinder(table)
        for name in ("alpha", "beta"):
            record = record_with(temp_dir, name, [{"name": f"{name}:run", "entry_point": "cli:run"}])
            write_module(record.path, "cli.py")
            binder.bind(record)

        assert binder.unbind("alpha") == ["alpha:run"]
        assert "alpha:run" not in table
        assert "beta:run" in table
        assert len(table) == 1

    def test_unbind_never_bound(self):
        """Unbinding an unknown component is a no-op."""
        assert CommandBinder().unbind("ghost") == []
