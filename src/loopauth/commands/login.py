"""Login command -- run the web application flow for a configured provider.

Opens the provider's authorization page in the browser, waits for the
redirect on a localhost listener, exchanges the code, and prints the access
token on stdout so it can be captured by scripts::

    export GITHUB_TOKEN=$(loopauth login --provider github)

The token is never written to disk.
"""

from __future__ import annotations

import threading
import webbrowser
from typing import Optional

import httpx
import typer

from loopauth.client.form import DEFAULT_TIMEOUT
from loopauth.exceptions import LoopauthError
from loopauth.exit_codes import EXIT_INVALID_USAGE
from loopauth.models import AccessToken, BrowserParams
from loopauth.output import (
    OutputFormat,
    debug,
    error,
    format_response,
    get_output,
    info,
    print_data,
    show_url,
    success,
    suggest,
)
from loopauth.webapp import Flow


def _make_http_client() -> httpx.Client:
    """HTTP client used for the token exchange."""
    return httpx.Client(timeout=DEFAULT_TIMEOUT)


def _open_browser(url: str) -> None:
    """Open *url* on a daemon thread so a slow browser launch never delays the listener."""

    def _open() -> None:
        if not webbrowser.open(url):
            show_url("Could not open a browser. Visit this URL to continue:", url)

    threading.Thread(target=_open, daemon=True).start()


def _print_token(token: AccessToken) -> None:
    if get_output().format == OutputFormat.JSON:
        format_response(token.model_dump(mode="json", exclude_none=True))
    else:
        print_data(token.token)


def login_command(
    provider_name: Optional[str] = typer.Option(
        None, "--provider", "-p", help="Provider name (defaults to the configured one)."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the authorization URL instead of opening it."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the browser redirect."
    ),
    login_handle: Optional[str] = typer.Option(
        None, "--login", help="Suggest an account to sign in with."
    ),
) -> None:
    """Authorize in the browser and print the resulting access token.

    Resolves the provider (``--provider`` > ``LOOPAUTH_PROVIDER`` >
    ``default_provider`` > the only configured provider), resolves its
    client secret, then runs :class:`~loopauth.webapp.flow.Flow` to
    completion.

    Raises:
        typer.Exit: With the failing error's exit code.

    Example::

        loopauth login
        loopauth login --provider github --no-browser --timeout 120
        loopauth --json login
    """
    from loopauth.config import resolve_config, resolve_credential

    try:
        global_cfg, provider = resolve_config(cli_provider=provider_name)
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if provider is None:
        error("No provider selected and none could be inferred.")
        suggest("Add one: loopauth provider add NAME --authorize-url ... --token-url ... --client-id ...")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    params = BrowserParams(
        client_id=provider.client_id,
        redirect_uri=provider.redirect_uri,
        scopes=provider.scopes,
        login_handle=login_handle or provider.login,
        allow_signup=provider.allow_signup,
    )
    wait = timeout if timeout is not None else global_cfg.callback_timeout
    open_browser = global_cfg.open_browser and not no_browser

    try:
        client_secret = (
            resolve_credential(provider.client_secret_source)
            if provider.client_secret_source
            else ""
        )
        with Flow.create() as flow, _make_http_client() as client:
            url = flow.browser_url(provider.authorize_url, params)
            debug(f"Callback listener on port {flow.port}")
            flow.start_server()

            if open_browser:
                info(f"Opening {provider.name} in your browser...")
                _open_browser(url)
            else:
                show_url("Open this URL in your browser to continue:", url)
            info("Waiting for the authorization redirect...")

            token = flow.exchange_token(
                client,
                provider.token_url,
                client_secret,
                extra_params=provider.extra_params,
                timeout=wait,
            )
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success(f"Authorized with {provider.name}.")
    _print_token(token)
