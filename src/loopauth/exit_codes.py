"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~loopauth.exceptions.LoopauthError` subclass.
Shell wrappers can inspect the exit code to tell a denied authorization
from a broken listener without parsing stderr.

Example::

    $ loopauth login --provider github
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the user denied access or the state did not match
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The authorization was denied, the state did not match, or the provider reported an error."""

EXIT_TOKEN_EXCHANGE_FAILURE = 4
"""The token endpoint rejected the code or returned an unusable response."""

EXIT_LISTENER_ERROR = 5
"""The local callback listener could not bind a port or failed while serving."""

EXIT_CANCELLED = 130
"""The flow was cancelled or timed out before the callback arrived."""
