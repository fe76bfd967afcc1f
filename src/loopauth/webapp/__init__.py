"""OAuth web application flow for clients that cannot receive redirects.

The user's browser is sent to the provider's authorization page with a
redirect URI pointing at a short-lived listener on ``localhost``. The
listener captures the redirect, and the flow verifies its ``state`` before
exchanging the code for an access token.

See Also:
    :class:`~loopauth.webapp.flow.Flow` for the step-by-step API.
    :class:`~loopauth.webapp.server.LocalCallbackServer` for the listener.
"""

from loopauth.webapp.flow import Flow, FlowState, generate_state
from loopauth.webapp.server import (
    CompletionSignal,
    LocalCallbackServer,
    bind_local_server,
    parse_callback_query,
    write_default_page,
)

__all__ = [
    "CompletionSignal",
    "Flow",
    "FlowState",
    "LocalCallbackServer",
    "bind_local_server",
    "generate_state",
    "parse_callback_query",
    "write_default_page",
]
