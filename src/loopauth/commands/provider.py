"""Provider commands -- register and inspect OAuth applications.

Provides the ``loopauth provider`` sub-command group. Each provider is one
registered OAuth application: its authorization and token endpoints, client
ID, where to read the client secret from, and the redirect URI registered
with the provider.

Typical workflow::

    loopauth provider add github \\
        --authorize-url https://github.com/login/oauth/authorize \\
        --token-url https://github.com/login/oauth/access_token \\
        --client-id Iv1.abc123 --client-secret-source env:GITHUB_CLIENT_SECRET \\
        --scope repo --scope read:org --default
    loopauth provider list
    loopauth provider show github
"""

from __future__ import annotations

from typing import Optional

import typer

from loopauth.exceptions import LoopauthError
from loopauth.exit_codes import EXIT_INVALID_USAGE
from loopauth.output import error, format_response, info, print_table, success, suggest


provider_app = typer.Typer(no_args_is_help=True)


def _parse_params(pairs: list[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` strings into a dict, exiting on malformed input."""
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            error(f"Expected KEY=VALUE, got: {pair}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        params[key] = value
    return params


@provider_app.command("add")
def provider_add(
    ctx: typer.Context,
    name: str = typer.Argument(help="Provider name."),
    authorize_url: str = typer.Option(..., "--authorize-url", help="Authorization endpoint."),
    token_url: str = typer.Option(..., "--token-url", help="Token endpoint."),
    client_id: str = typer.Option(..., "--client-id", help="OAuth application client ID."),
    client_secret_source: Optional[str] = typer.Option(
        None,
        "--client-secret-source",
        "-s",
        help="Client secret source: env:VAR, file:/path, prompt, value:SECRET.",
    ),
    redirect_uri: str = typer.Option(
        "http://127.0.0.1/callback",
        "--redirect-uri",
        help="Redirect URI registered with the provider.",
    ),
    scopes: Optional[list[str]] = typer.Option(
        None, "--scope", help="Scope to request (repeatable, order is kept)."
    ),
    login: Optional[str] = typer.Option(None, "--login", help="Default account hint."),
    no_signup: bool = typer.Option(
        False, "--no-signup", help="Ask the provider to hide its sign-up option."
    ),
    params: Optional[list[str]] = typer.Option(
        None, "--param", help="Extra token request field as KEY=VALUE (repeatable)."
    ),
    make_default: bool = typer.Option(
        False, "--default", help="Make this the default provider."
    ),
) -> None:
    """Register an OAuth application.

    Refuses to overwrite an existing provider unless ``--force`` is active.

    Example::

        loopauth provider add github --authorize-url ... --token-url ... --client-id ...
    """
    from loopauth.config import (
        load_global_config,
        provider_exists,
        save_global_config,
        save_provider,
    )
    from loopauth.models import ProviderConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    try:
        exists = provider_exists(name)
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if exists and not force:
        error(f"Provider '{name}' already exists.")
        suggest(f"Overwrite it: loopauth --force provider add {name} ...")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    provider = ProviderConfig(
        name=name,
        authorize_url=authorize_url,
        token_url=token_url,
        client_id=client_id,
        client_secret_source=client_secret_source,
        redirect_uri=redirect_uri,
        scopes=scopes or [],
        login=login,
        allow_signup=not no_signup,
        extra_params=_parse_params(params or []),
    )
    save_provider(provider)

    if make_default:
        try:
            config = load_global_config()
        except LoopauthError as exc:
            error(str(exc))
            raise typer.Exit(code=exc.exit_code) from None
        config.default_provider = name
        save_global_config(config)

    success(f'Provider "{name}" saved.')
    suggest(f"Log in: loopauth login --provider {name}")


@provider_app.command("list")
def provider_list() -> None:
    """List registered providers, marking the default one."""
    from loopauth.config import list_providers, load_global_config, load_provider

    names = list_providers()
    if not names:
        info("No providers configured.")
        suggest("Add one: loopauth provider add NAME ...")
        return

    default = load_global_config().default_provider
    rows: list[list[str]] = []
    for name in names:
        try:
            provider = load_provider(name)
        except LoopauthError as exc:
            error(str(exc))
            continue
        rows.append([
            name,
            provider.client_id,
            " ".join(provider.scopes),
            "yes" if name == default else "",
        ])
    print_table(["name", "client_id", "scopes", "default"], rows, title="Providers")


@provider_app.command("show")
def provider_show(
    name: str = typer.Argument(help="Provider name."),
) -> None:
    """Show a provider's stored settings."""
    from loopauth.config import load_provider

    try:
        provider = load_provider(name)
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    format_response(provider.model_dump(mode="json"))


@provider_app.command("remove")
def provider_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Provider name."),
) -> None:
    """Delete a provider, clearing it as default if needed.

    Asks for confirmation unless ``--force`` is active.
    """
    from loopauth.config import delete_provider, load_global_config, save_global_config

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm(f"Remove provider '{name}'?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    try:
        delete_provider(name)
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    config = load_global_config()
    if config.default_provider == name:
        config.default_provider = None
        save_global_config(config)
    success(f'Provider "{name}" removed.')
