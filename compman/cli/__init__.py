"""
CLI - Command-line interface for the component manager.

The `compman` command installs, updates and removes CLI components.

Commands:
    compman install <id>            Install a component (name or owner/repo[@version])
    compman update <name>           Update to the latest stable release
    compman uninstall <name>        Remove a component (--keep-files to allow rollback)
    compman rollback <name>         Re-activate the previous install
    compman list                    List registered components
    compman validate <name>         Check an install without changing it
    compman check-updates [--force] Show available updates

Example:
    $ compman install acme/weather
    Installed weather 1.2.0

    $ compman list
    [*] weather 1.2.0 (acme/weather)
        Weather forecasts in your terminal

    $ compman check-updates
    weather 1.2.0 -> 1.3.0 [security]
"""

from .main import main

__all__ = ["main"]
