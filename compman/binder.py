"""
Command Surface Binder - Expose installed components' commands to the host.

A manifest declares commands as:
    "commands": [
        {"name": "weather:today", "summary": "Today's forecast",
         "entry_point": "weather_cli.commands:today"}
    ]

bind() turns each valid declaration into a CommandDescriptor and registers
an EntryPointHandle for it in the CommandTable. The handle is resolved to a
module file at bind time; the module itself is imported only when the host
invokes the command. Bad declarations are reported one by one and do not
stop the component's other commands from binding.
"""

import hashlib
import importlib.util
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any

import structlog

from .models import ComponentRecord, ComponentStatus

__all__ = [
    "BindFailure",
    "BindResult",
    "CommandBinder",
    "CommandDescriptor",
    "CommandTable",
    "EntryPointHandle",
    "module_file_for",
]

logger = structlog.get_logger(__name__)

COMMAND_NAME_RE = re.compile(r"^[a-zA-Z0-9_:-]+$")
ENTRY_POINT_RE = re.compile(r"^[A-Za-z_]\w*(\.[A-Za-z_]\w*)*:[A-Za-z_]\w*(\.[A-Za-z_]\w*)*$")
MAX_COMMAND_NAME = 100
_NON_IDENT = re.compile(r"\W")


def module_file_for(source_dir: Path, entry_point: str) -> Path | None:
    """Locate the file backing an entry point's module inside source_dir.

    Returns:
        The module's .py file or package __init__.py, or None if the entry
        point is malformed or the module is not in the tree
    """
    if not isinstance(entry_point, str) or not ENTRY_POINT_RE.match(entry_point):
        return None
    module = entry_point.split(":", 1)[0]
    rel = Path(*module.split("."))
    for candidate in (source_dir / f"{rel}.py", source_dir / rel / "__init__.py"):
        if candidate.is_file():
            return candidate
    return None


@dataclass(frozen=True)
class CommandDescriptor:
    name: str
    summary: str
    entry_point: str
    component: str


@dataclass(frozen=True)
class BindFailure:
    command: str
    reason: str


@dataclass
class BindResult:
    component: str
    commands: list[CommandDescriptor] = field(default_factory=list)
    failures: list[BindFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class EntryPointHandle:
    """Invocable handle for one bound command.

    The module is loaded under a per-component namespace so two
    components can ship modules with the same name.
    """

    def __init__(self, descriptor: CommandDescriptor, install_path: Path, module_file: Path) -> None:
        self.descriptor = descriptor
        self.install_path = install_path
        self.module_file = module_file
        self._target: Any = None

    def _import(self) -> ModuleType:
        module_name = self.descriptor.entry_point.split(":", 1)[0]
        # One namespace per install so an update never reuses a stale module
        digest = hashlib.sha1(str(self.install_path).encode()).hexdigest()[:12]
        prefix = _NON_IDENT.sub("_", f"_compman_{self.descriptor.component}_{digest}")
        unique = f"{prefix}.{module_name}"
        if unique in sys.modules:
            return sys.modules[unique]

        source_dir = self.install_path / "src"
        for extra in (self.install_path / "deps", source_dir):
            if extra.is_dir() and str(extra) not in sys.path:
                sys.path.insert(0, str(extra))

        # Parent namespace so the module's package attributes resolve
        if prefix not in sys.modules:
            ns_pkg = ModuleType(prefix)
            ns_pkg.__path__ = [str(source_dir)]
            ns_pkg.__package__ = prefix
            sys.modules[prefix] = ns_pkg

        is_package = self.module_file.name == "__init__.py"
        spec = importlib.util.spec_from_file_location(
            unique,
            self.module_file,
            submodule_search_locations=[str(self.module_file.parent)] if is_package else None,
        )
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot load {self.module_file}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[unique] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(unique, None)
            raise
        return module

    def load(self) -> Any:
        """Import the module and return the entry point's attribute."""
        if self._target is None:
            target: Any = self._import()
            for attr in self.descriptor.entry_point.split(":", 1)[1].split("."):
                target = getattr(target, attr)
            self._target = target
        return self._target

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.load()(*args, **kwargs)


class CommandTable:
    """Host dispatch table: command name -> invocable handle."""

    def __init__(self) -> None:
        self._handles: dict[str, EntryPointHandle] = {}

    def register(self, handle: EntryPointHandle) -> None:
        self._handles[handle.descriptor.name] = handle

    def owner(self, command: str) -> str | None:
        handle = self._handles.get(command)
        return handle.descriptor.component if handle else None

    def get(self, command: str) -> EntryPointHandle | None:
        return self._handles.get(command)

    def drop_component(self, component: str) -> list[str]:
        dropped = [n for n, h in self._handles.items() if h.descriptor.component == component]
        for name in dropped:
            del self._handles[name]
        return dropped

    def descriptors(self) -> list[CommandDescriptor]:
        return [self._handles[n].descriptor for n in sorted(self._handles)]

    def __contains__(self, command: str) -> bool:
        return command in self._handles

    def __len__(self) -> int:
        return len(self._handles)


class CommandBinder:
    """Binds installed components' declared commands into a CommandTable."""

    def __init__(self, table: CommandTable | None = None) -> None:
        self.table = table if table is not None else CommandTable()

    def bind(self, record: ComponentRecord) -> BindResult:
        """Register every valid command declared in record.metadata.

        Re-binding a component replaces its previous commands.
        """
        result = BindResult(component=record.name)
        if record.status is not ComponentStatus.INSTALLED:
            result.failures.append(BindFailure("*", f"component is {record.status.value}"))
            return result

        self.table.drop_component(record.name)
        source_dir = record.path / "src"
        declared = record.metadata.get("commands") or []
        if not isinstance(declared, list):
            result.failures.append(BindFailure("*", "'commands' is not a list"))
            declared = []

        for index, entry in enumerate(declared):
            failure = self._bind_one(record, source_dir, entry, index, result)
            if failure:
                result.failures.append(failure)
                logger.warning(
                    "command_bind_failed",
                    component=record.name,
                    command=failure.command,
                    reason=failure.reason,
                )

        logger.info(
            "component_bound",
            component=record.name,
            commands=len(result.commands),
            failures=len(result.failures),
        )
        return result

    def _bind_one(
        self,
        record: ComponentRecord,
        source_dir: Path,
        entry: Any,
        index: int,
        result: BindResult,
    ) -> BindFailure | None:
        if not isinstance(entry, dict):
            return BindFailure(f"#{index}", "declaration is not an object")

        name = entry.get("name")
        label = name if isinstance(name, str) and name else f"#{index}"
        if not isinstance(name, str) or not COMMAND_NAME_RE.match(name):
            return BindFailure(label, "invalid command name")
        if len(name) > MAX_COMMAND_NAME:
            return BindFailure(label, f"command name longer than {MAX_COMMAND_NAME}")

        owner = self.table.owner(name)
        if owner and owner != record.name:
            return BindFailure(name, f"already provided by '{owner}'")

        entry_point = entry.get("entry_point", "")
        module_file = module_file_for(source_dir, entry_point)
        if module_file is None:
            return BindFailure(name, f"entry point '{entry_point}' does not resolve")

        summary = entry.get("summary") or ""
        descriptor = CommandDescriptor(
            name=name,
            summary=summary if isinstance(summary, str) else str(summary),
            entry_point=entry_point,
            component=record.name,
        )
        self.table.register(EntryPointHandle(descriptor, record.path, module_file))
        result.commands.append(descriptor)
        return None

    def unbind(self, name: str) -> list[str]:
        """Remove a component's commands. No-op if it was never bound."""
        dropped = self.table.drop_component(name)
        if dropped:
            logger.info("component_unbound", component=name, commands=len(dropped))
        return dropped
