"""Canonical Pydantic models shared across all loopauth modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Flow models** -- values passed into and out of the web application flow:
    :class:`BrowserParams`, :class:`CallbackResult`, and :class:`AccessToken`.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`OutputConfig`, :class:`GlobalConfig`, and :class:`ProviderConfig`.

All models use Pydantic v2 with ``model_config`` where needed. Values that
must not change after they are produced (browser parameters, the callback
result) are frozen. :class:`AccessToken` accepts provider-specific fields via
``extra="allow"`` so they are preserved in ``model_extra``.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Flow Models ---


class BrowserParams(BaseModel):
    """GET query parameters used to build the authorization URL.

    Example::

        BrowserParams(
            client_id="Iv1.abc123",
            redirect_uri="http://127.0.0.1/callback",
            scopes=["repo", "read:org"],
        )
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    redirect_uri: str = Field(
        description="Registered redirect URI; its host is rewritten to the local listener"
    )
    scopes: list[str] = Field(default_factory=list)
    login_handle: Optional[str] = Field(
        default=None, description="Suggested account to sign in with"
    )
    allow_signup: bool = Field(
        default=True,
        description="When false, ask the provider to hide its sign-up option",
    )


class CallbackResult(BaseModel):
    """Query parameters captured from the browser redirect.

    Produced exactly once per flow by the callback listener. When the
    provider reported an error only :attr:`error` (and optionally
    :attr:`error_description`) is set; otherwise :attr:`code` and
    :attr:`state` carry the redirect values.
    """

    model_config = ConfigDict(frozen=True)

    code: str = ""
    state: str = ""
    error: Optional[str] = None
    error_description: Optional[str] = None

    @property
    def is_error(self) -> bool:
        """Whether the redirect carried an ``error`` parameter."""
        return bool(self.error)


class AccessToken(BaseModel):
    """Access token parsed from the token endpoint's response.

    Fields beyond the standard ones (``expires_in``, ``id_token`` ...)
    are kept as strings in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    token: str
    type: str = ""
    scope: str = ""
    refresh_token: Optional[str] = None


# --- Configuration Models ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/loopauth/config.json``.

    Loaded and saved by :func:`~loopauth.config.load_global_config` and
    :func:`~loopauth.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by environment variables or CLI
    flags. See :func:`~loopauth.config.resolve_config` for the full
    precedence chain.
    """

    default_provider: Optional[str] = None
    auto_select_single_provider: bool = True
    open_browser: bool = Field(
        default=True, description="Open the authorization URL in the default browser"
    )
    callback_timeout: Optional[float] = Field(
        default=None,
        description="Seconds to wait for the browser redirect; unset waits forever",
    )
    output: OutputConfig = Field(default_factory=OutputConfig)


class ProviderConfig(BaseModel):
    """Per-provider OAuth application settings stored under ``providers/``.

    Each provider describes one registered OAuth application: where users
    authorize it, where codes are exchanged, and how the client secret is
    obtained. Providers are created with ``loopauth provider add``.

    Extra fields are preserved in ``model_extra``.

    See Also:
        :func:`~loopauth.config.load_provider`: Deserialise a provider by name.
        :func:`~loopauth.config.save_provider`: Persist a provider to disk.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    authorize_url: str = Field(description="Provider's authorization endpoint")
    token_url: str = Field(description="Provider's token endpoint")
    client_id: str
    client_secret_source: Optional[str] = Field(
        default=None,
        description="Client secret source: env:VAR, file:/path, prompt, value:SECRET",
    )
    redirect_uri: str = Field(
        default="http://127.0.0.1/callback",
        description="Registered redirect URI; only its path is used locally",
    )
    scopes: list[str] = Field(default_factory=list)
    login: Optional[str] = None
    allow_signup: bool = True
    extra_params: dict[str, str] = Field(
        default_factory=dict,
        description="Additional form fields sent to the token endpoint",
    )
