"""
CLI Parser - Argument parser for the compman command.

Defines all subcommands and their arguments.
"""

import argparse

from .. import __version__

__all__ = ["create_parser"]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="compman",
        description="Component manager - install and update CLI components",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log progress to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # install
    install_parser = subparsers.add_parser("install", help="Install a component")
    install_parser.add_argument(
        "identifier",
        help="Catalog name or owner/repository, optionally pinned with @version",
    )
    install_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds allowed for fetch and dependency install",
    )

    # update
    update_parser = subparsers.add_parser("update", help="Update a component")
    update_parser.add_argument("name", help="Component name")
    update_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds allowed for fetch and dependency install",
    )

    # uninstall
    uninstall_parser = subparsers.add_parser("uninstall", help="Uninstall a component")
    uninstall_parser.add_argument("name", help="Component name")
    uninstall_parser.add_argument(
        "--keep-files",
        action="store_true",
        help="Leave files on disk so the install can be rolled back",
    )

    # rollback
    rollback_parser = subparsers.add_parser("rollback", help="Restore the previous install")
    rollback_parser.add_argument("name", help="Component name")

    # list
    subparsers.add_parser("list", help="List registered components")

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate an installed component")
    validate_parser.add_argument("name", help="Component name")

    # check-updates
    check_parser = subparsers.add_parser("check-updates", help="Show available updates")
    check_parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore cached results and query the sources",
    )

    return parser
