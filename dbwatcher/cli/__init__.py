"""CLI tools: dbwatcher install, uninstall, watch, notify."""

import sys
from importlib import metadata

import typer

from dbwatcher.cli.notify import notify_command
from dbwatcher.cli.triggers import install_command, uninstall_command
from dbwatcher.cli.watch import watch_command

app = typer.Typer(
    name="dbwatcher",
    help="dbwatcher: typed row change events from PostgreSQL LISTEN/NOTIFY.",
    no_args_is_help=True,
)

app.command("install")(install_command)
app.command("uninstall")(uninstall_command)
app.command("watch")(watch_command)
app.command("notify")(notify_command)


def _print_version_and_exit() -> None:
    """Print installed package version and exit."""
    try:
        version = metadata.version("dbwatcher")
    except metadata.PackageNotFoundError:
        version = "unknown"
    print(f"dbwatcher {version}")
    raise SystemExit(0)


def main() -> None:
    """CLI entry point."""
    if "--version" in sys.argv or "-V" in sys.argv:
        _print_version_and_exit()
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)
