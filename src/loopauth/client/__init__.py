"""Token endpoint client.

Provides :func:`~loopauth.client.form.post_form` for sending the
code-for-token exchange, and :class:`~loopauth.client.form.FormResponse`
for parsing JSON or form-encoded token responses into an
:class:`~loopauth.models.AccessToken`.
"""

from loopauth.client.form import FormResponse, post_form

__all__ = ["FormResponse", "post_form"]
