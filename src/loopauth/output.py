"""Terminal output for loopauth: data on stdout, everything else on stderr.

The split follows `clig.dev <https://clig.dev/>`_. Only the result of a
command goes to stdout: the access token from ``loopauth login``, a provider
listing, a config dump. Scripts can therefore capture it directly::

    export GITHUB_TOKEN=$(loopauth --quiet login --provider github)

Prompts, the authorization URL, progress notes and errors go to stderr.
``--quiet`` hides the notes but never errors, warnings, or a URL the user
has to open by hand. Colour follows ``NO_COLOR``, ``TERM=dumb`` and
``--no-color``; when it is off, diagnostics are written without Rich so no
markup or line wrapping is applied.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    """Formats for data written to stdout.

    ``AUTO`` becomes ``RICH`` on an interactive, colour-capable terminal and
    ``PLAIN`` everywhere else.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


def resolve_format(requested: OutputFormat, no_color: bool) -> OutputFormat:
    if requested != OutputFormat.AUTO:
        return requested
    if _is_tty() and not no_color:
        return OutputFormat.RICH
    return OutputFormat.PLAIN


class OutputManager:
    """Writes command results and diagnostics for one CLI invocation.

    Args:
        format: Format for stdout data; ``AUTO`` is resolved immediately.
        no_color: Turn off colour and Rich markup on both streams.
        quiet: Hide informational notes, successes and suggestions.
        verbose: Show ``debug`` messages.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._format = resolve_format(format, self._no_color)

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=self._format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, stderr=True, no_color=self._no_color)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """Console for stderr; the CLI's log handler writes through it too."""
        return self._stderr

    # -- stdout ----------------------------------------------------------

    def print_data(self, text: str) -> None:
        """Write one line of raw data to stdout."""
        print(text, file=sys.stdout, flush=True)

    def format_response(self, data: Any) -> None:
        """Write a dict, list or scalar to stdout in the active format.

        JSON mode dumps it as-is; plain mode writes ``key<TAB>value`` lines
        for a dict and one line per item for a list; rich mode highlights
        dicts and lists as JSON.
        """
        if self._format == OutputFormat.JSON:
            self.print_data(_to_json(data))
            return
        if self._format == OutputFormat.RICH:
            if isinstance(data, (dict, list)):
                self._stdout.print(Syntax(_to_json(data), "json", theme="monokai", word_wrap=True))
            else:
                self._stdout.print(str(data))
            return

        if isinstance(data, dict):
            lines = [f"{key}\t{value}" for key, value in data.items()]
        elif isinstance(data, list):
            lines = [str(item) for item in data]
        else:
            lines = [str(data)]
        for line in lines:
            self.print_data(line)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Write rows to stdout as JSON records, TSV, or a Rich table."""
        if self._format == OutputFormat.JSON:
            self.print_data(_to_json([dict(zip(headers, row)) for row in rows]))
        elif self._format == OutputFormat.PLAIN:
            for row in [headers, *rows]:
                self.print_data("\t".join(row))
        else:
            table = Table(*headers, title=title, header_style="bold cyan")
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    # -- stderr ----------------------------------------------------------

    def info(self, message: str) -> None:
        self._emit(message, message, optional=True)

    def success(self, message: str) -> None:
        self._emit(message, f"[green]{message}[/green]", optional=True)

    def suggest(self, message: str) -> None:
        self._emit(f"→ {message}", f"[dim]→ {message}[/dim]", optional=True)

    def warning(self, message: str) -> None:
        self._emit(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self._emit(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._emit(f"[debug] {message}", f"[dim]\\[debug] {message}[/dim]")

    def show_url(self, message: str, url: str) -> None:
        """Print *message* and then *url* on its own line, even in quiet mode.

        The URL is never wrapped or styled so it can be copied from the
        terminal in one piece.
        """
        self._emit(message, message)
        if self._no_color:
            print(url, file=sys.stderr, flush=True)
        else:
            self._stderr.print(url, markup=False, highlight=False, soft_wrap=True)

    def _emit(self, plain: str, markup: str, optional: bool = False) -> None:
        if optional and self._quiet:
            return
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(markup)


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set to anything, or ``TERM`` is ``dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


# -- process-wide instance ------------------------------------------------

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the manager installed by the CLI, or a default one."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager; tests call this between runs."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_data(text: str) -> None:
    get_output().print_data(text)


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: Optional[str] = None,
) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)


def show_url(message: str, url: str) -> None:
    get_output().show_url(message, url)
