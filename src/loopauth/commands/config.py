"""``loopauth config`` -- inspect and edit ``config.json``.

Only :class:`~loopauth.models.GlobalConfig` is touched here; provider
files are managed by ``loopauth provider``.
"""

from __future__ import annotations

from typing import Any

import typer

from loopauth.exceptions import InvalidUsageError, LoopauthError
from loopauth.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)

_CLEARING_VALUES = {"", "none", "null"}
_TRUE_VALUES = {"true", "1", "yes", "on"}


def _fail(exc: LoopauthError) -> typer.Exit:
    error(str(exc))
    return typer.Exit(code=exc.exit_code)


def _locate(data: dict[str, Any], key: str) -> tuple[dict[str, Any], str]:
    """Return the dict holding the last segment of dotted *key*, and that segment."""
    *parents, leaf = key.split(".")
    node = data
    for segment in parents:
        child = node.get(segment)
        if not isinstance(child, dict):
            raise InvalidUsageError(f"Invalid config key: {key}")
        node = child
    if leaf not in node:
        raise InvalidUsageError(f"Unknown config key: {key}")
    return node, leaf


def _coerce(current: Any, raw: str) -> Any:
    """Turn the command-line string into something the field will accept.

    Booleans are parsed here; a clearing word empties any other field.
    Everything else is handed to validation as-is.
    """
    lowered = raw.strip().lower()
    if isinstance(current, bool):
        return lowered in _TRUE_VALUES
    if lowered in _CLEARING_VALUES:
        return None
    return raw


@config_app.command("show")
def config_show() -> None:
    """Print the effective global configuration.

    Example::

        loopauth --json config show
    """
    from loopauth.config import get_config_dir, load_global_config

    try:
        config = load_global_config()
    except LoopauthError as exc:
        raise _fail(exc) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. 'output.format' or 'open_browser'."),
    value: str = typer.Argument(help="New value; 'none' clears an optional key."),
) -> None:
    """Change one configuration value.

    Example::

        loopauth config set default_provider github
        loopauth config set callback_timeout 120
        loopauth config set open_browser false
    """
    from loopauth.config import load_global_config, save_global_config
    from loopauth.models import GlobalConfig

    try:
        data = load_global_config().model_dump(mode="json")
        node, leaf = _locate(data, key)
    except LoopauthError as exc:
        raise _fail(exc) from None

    node[leaf] = _coerce(node[leaf], value)
    try:
        updated = GlobalConfig.model_validate(data)
    except ValueError as exc:
        raise _fail(InvalidUsageError(f"Validation error: {exc}")) from None

    save_global_config(updated)
    success(f"Set {key} = {node[leaf]}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Restore every global setting to its default; providers are kept.

    Asks first unless ``--force`` was given.
    """
    from loopauth.config import save_global_config
    from loopauth.models import GlobalConfig

    force = bool(ctx.obj and ctx.obj.get("force"))
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
