"""Form-encoded POSTs to an OAuth token endpoint and parsing of the reply.

Token endpoints disagree on their response encoding: most return JSON, some
(GitHub without an ``Accept`` header, older providers) return
``application/x-www-form-urlencoded``. :class:`FormResponse` flattens both
into a ``str -> str`` mapping so :meth:`FormResponse.access_token` can treat
them the same way.

Some providers answer a rejected code with HTTP 200 and an ``error`` field,
so success is decided by the presence of ``access_token`` *and* a 2xx status.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional
from urllib.parse import parse_qs

import httpx

from loopauth.exceptions import TokenExchangeError
from loopauth.models import AccessToken

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_REQUEST_HEADERS = {"Accept": "application/json"}

_TOKEN_FIELDS = ("access_token", "token_type", "scope", "refresh_token")
_RESERVED_NAMES = frozenset(AccessToken.model_fields)


def _stringify(value: Any) -> Optional[str]:
    """Render a scalar JSON value the way it would appear in a form body."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return None


class FormResponse:
    """Status and flattened body values of a token endpoint response.

    Args:
        status_code: HTTP status of the response.
        request_url: URL the form was posted to (used in error messages).
        values: Parsed body values; non-scalar JSON values are dropped.
    """

    def __init__(self, status_code: int, request_url: str, values: dict[str, str]):
        self.status_code = status_code
        self.request_url = request_url
        self.values = values

    @classmethod
    def from_response(cls, response: httpx.Response, request_url: str) -> FormResponse:
        """Parse an ``httpx.Response`` according to its ``Content-Type``.

        Bodies in any other media type yield no values.

        Raises:
            TokenExchangeError: If a JSON body cannot be decoded or is not
                an object.
        """
        content_type = response.headers.get("Content-Type", "")
        media_type = content_type.split(";", 1)[0].strip().lower()

        values: dict[str, str] = {}
        if media_type == "application/x-www-form-urlencoded":
            parsed = parse_qs(response.text, keep_blank_values=True)
            values = {key: items[0] for key, items in parsed.items()}
        elif media_type == "application/json" or media_type.endswith("+json"):
            try:
                data = response.json()
            except ValueError as exc:
                raise TokenExchangeError(
                    f"Token endpoint returned invalid JSON: {exc}",
                    status_code=response.status_code,
                ) from exc
            if not isinstance(data, dict):
                raise TokenExchangeError(
                    "Token endpoint returned JSON that is not an object",
                    status_code=response.status_code,
                )
            for key, raw in data.items():
                text = _stringify(raw)
                if text is not None:
                    values[key] = text

        return cls(response.status_code, request_url, values)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def get(self, key: str) -> str:
        """Return a body value, or ``""`` when absent."""
        return self.values.get(key, "")

    def access_token(self) -> AccessToken:
        """Extract the access token from the response.

        Returns:
            An :class:`~loopauth.models.AccessToken`. Provider-specific
            values (``expires_in``, ``id_token`` ...) are kept as extras.

        Raises:
            TokenExchangeError: If the status is not 2xx or the body has no
                ``access_token``.
        """
        token = self.get("access_token")
        if not (self.is_success and token):
            raise self.error()

        extras = {
            key: value
            for key, value in self.values.items()
            if key not in _TOKEN_FIELDS and key not in _RESERVED_NAMES
        }
        return AccessToken(
            token=token,
            type=self.get("token_type"),
            scope=self.get("scope"),
            refresh_token=self.get("refresh_token") or None,
            **extras,
        )

    def error(self) -> TokenExchangeError:
        """Build the :class:`~loopauth.exceptions.TokenExchangeError` describing this response."""
        code = self.get("error")
        description = self.get("error_description")
        if code:
            message = f"Token exchange failed (HTTP {self.status_code}): {code}"
            if description:
                message += f" - {description}"
        elif not self.is_success:
            message = f"Token exchange failed with HTTP status {self.status_code}"
        else:
            message = "Token response missing 'access_token' field"
        return TokenExchangeError(
            message,
            status_code=self.status_code,
            error=code or None,
            description=description or None,
            error_uri=self.get("error_uri") or None,
        )


def post_form(
    client: Optional[httpx.Client],
    url: str,
    params: Mapping[str, str],
) -> FormResponse:
    """POST *params* form-encoded to *url* and parse the reply.

    Args:
        client: HTTP client to send with. Transport, proxy and TLS settings
            are the caller's business; when ``None`` a short-lived
            ``httpx.Client`` with a 30 second timeout is used.
        url: Token endpoint URL.
        params: Form fields.

    Returns:
        The parsed :class:`FormResponse`.

    Raises:
        TokenExchangeError: On transport errors or an undecodable body.
    """
    logger.debug("POST %s with fields %s", url, sorted(params))
    try:
        if client is None:
            with httpx.Client(timeout=DEFAULT_TIMEOUT) as owned:
                response = owned.post(url, data=dict(params), headers=_REQUEST_HEADERS)
        else:
            response = client.post(url, data=dict(params), headers=_REQUEST_HEADERS)
    except httpx.HTTPError as exc:
        raise TokenExchangeError(f"Token exchange failed: {exc}") from exc

    logger.debug("Token endpoint answered HTTP %d", response.status_code)
    return FormResponse.from_response(response, url)
