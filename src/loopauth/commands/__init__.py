"""Built-in CLI sub-commands for loopauth.

This package groups the Typer command modules that form the CLI's
top-level command tree:

* :mod:`~loopauth.commands.login` -- run the browser flow and print a token.
* :mod:`~loopauth.commands.provider` -- register and inspect OAuth applications.
* :mod:`~loopauth.commands.config` -- view and modify global settings.

Multi-command groups export a :class:`typer.Typer` sub-application; ``login``
is a plain callback registered directly on the root app.
"""
