"""The ``loopauth`` command line.

:data:`app` is the Typer application; :func:`main` is the console-script
entry point. Global flags are parsed once in :func:`main_callback`, which
installs the process-wide :class:`~loopauth.output.OutputManager` and points
the ``loopauth`` logger at the same stderr console.

A :class:`~loopauth.exceptions.LoopauthError` that escapes a command ends
the process with that error's exit code. Any other exception leaves a
traceback in ``crash-<timestamp>.log`` under the data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime

import typer
from rich.console import Console
from rich.logging import RichHandler

from loopauth import __version__
from loopauth.commands.config import config_app
from loopauth.commands.login import login_command
from loopauth.commands.provider import provider_app
from loopauth.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE
from loopauth.output import OutputFormat


app = typer.Typer(
    name="loopauth",
    help="Authorize command-line tools with OAuth through a localhost redirect.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("login")(login_command)
app.add_typer(provider_app, name="provider", help="Register and inspect OAuth applications.")
app.add_typer(config_app, name="config", help="Show or change global settings.")


def _print_version(value: bool) -> None:
    if not value:
        return
    typer.echo(f"loopauth {__version__}")
    raise typer.Exit()


def _configure_logging(verbose: bool, console: Console) -> None:
    """Send ``loopauth.*`` records to *console*; DEBUG with ``--verbose``, else WARNING."""
    handler = RichHandler(console=console, show_path=False, markup=False)
    logger = logging.getLogger("loopauth")
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def _stored_format() -> OutputFormat:
    """``output.format`` from ``config.json``; AUTO when unset or unreadable.

    A broken config file is reported by the command that loads it.
    """
    from loopauth.config import load_global_config
    from loopauth.exceptions import LoopauthError

    try:
        return OutputFormat(load_global_config().output.format)
    except (LoopauthError, ValueError):
        return OutputFormat.AUTO


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_print_version, is_eager=True, help="Show version and exit."
    ),
    json_output: bool = typer.Option(False, "--json", help="Write results as JSON."),
    plain_output: bool = typer.Option(False, "--plain", help="Write results as tab-separated text."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour and styling."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print results, warnings and errors."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print debug messages."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing providers and skip confirmations."
    ),
) -> None:
    """Authorize command-line tools with OAuth through a localhost redirect."""
    from loopauth.output import OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = _stored_format()

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    _configure_logging(verbose, output.stderr_console)

    ctx.obj = {"force": force, "verbose": verbose}


def _exit_cancelled() -> None:
    sys.stderr.write("\nCancelled.\n")
    sys.exit(EXIT_CANCELLED)


def _install_sigint_handler() -> None:
    """Turn Ctrl-C into a clean exit so a waiting listener releases its port."""
    signal.signal(signal.SIGINT, lambda signum, frame: _exit_cancelled())


def _write_crash_log() -> str:
    """Save the traceback being handled and return where it went."""
    from loopauth.config import get_data_dir

    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = get_data_dir() / f"crash-{stamp}.log"
    log_path.write_text(traceback.format_exc(), encoding="utf-8")
    return str(log_path)


def main() -> None:
    """Entry point of the ``loopauth`` console script; always exits."""
    from loopauth.exceptions import LoopauthError
    from loopauth.output import error

    _install_sigint_handler()
    try:
        app()
    except KeyboardInterrupt:
        _exit_cancelled()
    except LoopauthError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception:
        error(f"Unexpected error. Debug log: {_write_crash_log()}")
        sys.exit(EXIT_GENERIC_FAILURE)
