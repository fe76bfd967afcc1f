"""loopauth -- OAuth web application flow for command-line clients.

A CLI cannot host a public redirect URI, so this package opens a
short-lived HTTP listener on ``localhost``, sends the user's browser to the
provider's authorization page, captures the redirect carrying the
authorization code, verifies its anti-forgery ``state``, and exchanges the
code for an access token.

Typical workflow::

    loopauth provider add github --authorize-url ... --token-url ... --client-id ...
    loopauth login --provider github   # prints the access token on stdout

Modules:
    webapp: The flow and its localhost callback listener.
    client: Token endpoint POST and response parsing.
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and provider management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
