"""
CLI Commands - Lifecycle command handlers.

Every handler gets a fully wired ComponentManager; collaborators are
built here once per invocation and passed in by constructor.
"""

import argparse
import sys

import structlog

from ..binder import CommandBinder
from ..config import CompmanConfig
from ..deps import UvDependencyInstaller
from ..installer import IsolatedInstaller
from ..manager import ComponentManager
from ..registry import RegistryStore
from ..resolver import ManifestResolver, load_catalog
from ..sources import GitFetcher, GitHubVersionSource
from ..updates import UpdateChecker, UpdatePolicy
from .output import print_deltas, print_records, print_report

__all__ = ["COMMANDS", "build_manager", "run_command"]

logger = structlog.get_logger(__name__)

COMMANDS = {
    "install", "update", "uninstall", "rollback",
    "list", "validate", "check-updates",
}

# Upper bound for single REST lookups during lifecycle commands
API_TIMEOUT = 30.0


def build_manager(config: CompmanConfig, source: GitHubVersionSource) -> ComponentManager:
    """Wire the manager's collaborators for one invocation."""
    return ComponentManager(
        store=RegistryStore.from_config(config),
        resolver=ManifestResolver(source, load_catalog(config.catalog_file)),
        installer=IsolatedInstaller.from_config(config, GitFetcher(), UvDependencyInstaller()),
        binder=CommandBinder(),
        config=config,
    )


def run_command(command: str, args: argparse.Namespace, config: CompmanConfig) -> int:
    """Run the specified command.

    Args:
        command: Command name
        args: Parsed arguments
        config: Component manager configuration

    Returns:
        Exit code

    Raises:
        ComponentError: Lifecycle failures, reported by main()
    """
    config.ensure_dirs()
    timeout = config.check_timeout if command in ("list", "check-updates") else API_TIMEOUT

    with GitHubVersionSource(config, timeout=timeout) as source:
        manager = build_manager(config, source)

        if command == "install":
            record = manager.install(args.identifier, timeout=args.timeout)
            print(f"Installed {record.name} {record.version}")
            return 0

        elif command == "update":
            before = manager.store.find(args.name)
            record = manager.update(args.name, timeout=args.timeout)
            if before is not None and before.install_path == record.install_path:
                print(f"{record.name} is up to date ({record.version})")
            else:
                print(f"Updated {record.name} to {record.version}")
            return 0

        elif command == "uninstall":
            record = manager.uninstall(args.name, keep_files=args.keep_files)
            if record is None:
                print(f"{args.name} is not installed")
            else:
                print(f"Uninstalled {record.name} {record.version}")
            return 0

        elif command == "rollback":
            record = manager.rollback(args.name)
            print(f"Rolled back {record.name} to {record.version}")
            return 0

        elif command == "list":
            print_records(manager.list())
            show_update_hint(manager, source, config)
            return 0

        elif command == "validate":
            report = manager.validate(args.name)
            print_report(report)
            return 0 if report.ok else 1

        elif command == "check-updates":
            policy = UpdatePolicy(manager.store, manager.resolver, source)
            checker = UpdateChecker.from_config(policy, config)
            print_deltas(checker.quick_check(force=args.force))
            return 0

    return 0


def show_update_hint(
    manager: ComponentManager, source: GitHubVersionSource, config: CompmanConfig
) -> None:
    """Print available updates after a listing, when the session allows it."""
    policy = UpdatePolicy(manager.store, manager.resolver, source)
    checker = UpdateChecker.from_config(policy, config)
    if not checker.should_check():
        return
    deltas = checker.quick_check()
    if deltas:
        print(file=sys.stderr)
        print_deltas(deltas, stream=sys.stderr)
