"""Where loopauth keeps its settings, and how the active provider is chosen.

Two kinds of file live under the config directory, both plain JSON:

``config.json``
    One :class:`~loopauth.models.GlobalConfig` holding user defaults.
``providers/<name>.json``
    One :class:`~loopauth.models.ProviderConfig` per registered OAuth app.

On Linux and the BSDs the config directory is ``$XDG_CONFIG_HOME/loopauth``
and crash logs go to ``$XDG_DATA_HOME/loopauth``; elsewhere both live
under ``~/.loopauth``. Writes replace the target file in one rename.

Client secrets are referenced by a source descriptor and read at login time
(:func:`resolve_credential`). Access tokens are never stored.
"""

from __future__ import annotations

import contextlib
import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel

from loopauth.exceptions import ConfigError
from loopauth.models import GlobalConfig, ProviderConfig

_APP_NAME = "loopauth"
_PROVIDER_ENV = "LOOPAUTH_PROVIDER"

_M = TypeVar("_M", bound=BaseModel)


# --- Directories ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(xdg_var: str, xdg_default: str, fallback: str = "") -> Path:
    """``$<xdg_var>/loopauth`` on XDG platforms, else ``~/.loopauth/<fallback>``."""
    if _is_xdg_platform():
        root = os.environ.get(xdg_var) or str(Path.home() / xdg_default)
        path = Path(root) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
        if fallback:
            path = path / fallback
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the directory holding ``config.json`` and ``providers/``."""
    return _app_dir("XDG_CONFIG_HOME", ".config")


def get_data_dir() -> Path:
    """Return the directory crash logs are written to."""
    return _app_dir("XDG_DATA_HOME", os.path.join(".local", "share"), fallback="logs")


def get_providers_dir() -> Path:
    path = get_config_dir() / "providers"
    path.mkdir(exist_ok=True)
    return path


# --- File I/O ---


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data*, never leaving a half-written file behind.

    The text goes to a hidden sibling first, is fsynced, then renamed over
    the target. The sibling is removed if any step fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def _read_model(path: Path, model: type[_M], label: str) -> _M:
    try:
        return model.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except ValueError as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc


def _write_model(path: Path, obj: BaseModel) -> None:
    _atomic_write(path, json.dumps(obj.model_dump(mode="json"), indent=2) + "\n")


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / "config.json"


def load_global_config() -> GlobalConfig:
    """Read ``config.json``, or return defaults when there is none yet.

    Raises:
        ConfigError: The file is not JSON or does not validate.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    return _read_model(path, GlobalConfig, "global config")


def save_global_config(config: GlobalConfig) -> None:
    _write_model(_global_config_path(), config)


# --- Providers ---


def _provider_path(name: str) -> Path:
    if not name or ".." in name or any(sep in name for sep in "/\\"):
        raise ConfigError(f"Invalid provider name '{name}': it must not contain path separators or '..'")
    return get_providers_dir() / f"{name}.json"


def _existing_provider_path(name: str) -> Path:
    path = _provider_path(name)
    if not path.is_file():
        raise ConfigError(f"Provider '{name}' not found at {path}")
    return path


def list_providers() -> list[str]:
    """Names of all registered providers, sorted."""
    return sorted(p.stem for p in get_providers_dir().glob("*.json") if p.is_file())


def provider_exists(name: str) -> bool:
    return _provider_path(name).is_file()


def load_provider(name: str) -> ProviderConfig:
    """Load provider *name* from ``providers/<name>.json``.

    Raises:
        ConfigError: No such provider, or its file is not a valid provider.
    """
    return _read_model(_existing_provider_path(name), ProviderConfig, f"provider '{name}'")


def save_provider(provider: ProviderConfig) -> None:
    """Create or overwrite the file for ``provider.name``."""
    _write_model(_provider_path(provider.name), provider)


def delete_provider(name: str) -> None:
    _existing_provider_path(name).unlink()


# --- Resolution ---


def resolve_config(
    cli_provider: Optional[str] = None,
) -> tuple[GlobalConfig, Optional[ProviderConfig]]:
    """Load the global config and pick the provider a command should use.

    The provider name is taken from the first of these that is set:

    1. ``cli_provider`` (the ``--provider`` flag)
    2. ``$LOOPAUTH_PROVIDER``
    3. ``default_provider`` in ``config.json``
    4. the single registered provider, when there is exactly one and
       ``auto_select_single_provider`` is on

    Returns:
        ``(global_config, provider)``; *provider* is None when no name was
        found.

    Raises:
        ConfigError: A name was found but that provider cannot be loaded.
    """
    global_cfg = load_global_config()

    candidates = (cli_provider, os.environ.get(_PROVIDER_ENV) or None, global_cfg.default_provider)
    name = next((c for c in candidates if c is not None), None)
    if name is None and global_cfg.auto_select_single_provider:
        registered = list_providers()
        if len(registered) == 1:
            name = registered[0]

    return global_cfg, load_provider(name) if name is not None else None


def _secret_from_env(var_name: str) -> str:
    value = os.environ.get(var_name)
    if value is None:
        raise ConfigError(f"Environment variable '{var_name}' is not set (source: env:{var_name})")
    return value


def _secret_from_file(location: str) -> str:
    path = Path(location).expanduser()
    if not path.is_file():
        raise ConfigError(f"Credential file not found: {path} (source: file:{location})")
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc


def _secret_from_prompt() -> str:
    if not sys.stdin.isatty():
        raise ConfigError("Cannot prompt for the client secret: stdin is not a TTY (source: prompt)")
    return getpass.getpass("Client secret: ")


_SECRET_READERS: dict[str, Callable[[str], str]] = {
    "env": _secret_from_env,
    "file": _secret_from_file,
    "value": lambda literal: literal,
}


def resolve_credential(source: str) -> str:
    """Read a client secret from its source descriptor.

    ==================  ==============================================
    ``env:VAR``         value of the environment variable ``VAR``
    ``file:PATH``       contents of ``PATH`` (``~`` expanded), stripped
    ``prompt``          typed at a hidden prompt; needs a TTY
    ``value:SECRET``    ``SECRET`` itself
    ==================  ==============================================

    Raises:
        ConfigError: Unknown descriptor, or the source has no value.
    """
    if source == "prompt":
        return _secret_from_prompt()
    kind, sep, rest = source.partition(":")
    reader = _SECRET_READERS.get(kind) if sep else None
    if reader is None:
        raise ConfigError(f"Unknown credential source format: {source}")
    return reader(rest)
