"""
CLI Main - Entry point for the `compman` command.

Usage:
    compman install <identifier>     Install a component
    compman update <name>            Update a component
    compman uninstall <name>         Uninstall a component
    compman rollback <name>          Restore the previous install
    compman list                     List components
    compman validate <name>          Validate an install
    compman check-updates            Show available updates
"""

import sys

from ..config import CompmanConfig
from ..errors import ComponentError
from ..log import configure_logging
from .commands import run_command
from .output import print_error
from .parser import create_parser

__all__ = ["main"]


def main(args: list[str] | None = None) -> int:
    """Main entry point for the compman CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    if args is None:
        args = sys.argv[1:]

    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 0

    config = CompmanConfig()
    configure_logging(config, console=parsed.verbose)

    try:
        return run_command(parsed.command, parsed, config)
    except KeyboardInterrupt:
        return 130
    except (ComponentError, OSError) as e:
        print_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
