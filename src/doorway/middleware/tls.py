"""TLS enforcement gate.

When the listener has TLS material configured, any request that arrived
over plain HTTP is redirected to the same host and original URL with the
scheme swapped to ``https``. Nothing else about the URL changes.

Known limitation: the redirect is built from the ``Host`` header and the
URL the server received. When a reverse proxy mounts the server under a
base path, that base path is not part of the redirect, because the
scheme cannot be specified without spelling out the whole URL.
"""

from doorway.http.request import Request
from doorway.http.response import Redirect, Response
from doorway.middleware.protocol import Next


def https_url(request: Request) -> str:
    """The HTTPS equivalent of the URL *request* was sent to."""
    return f"https://{request.host}{request.url}"


class EnforceTLS:
    """Redirects unencrypted requests to HTTPS when TLS is configured.

    Usage::

        gate = EnforceTLS(enabled=config.tls_enabled)
    """

    __slots__ = ("enabled",)

    def __init__(self, *, enabled: bool) -> None:
        self.enabled = enabled

    async def __call__(self, request: Request, next: Next) -> Response:
        if self.enabled and not request.is_encrypted:
            return Redirect(https_url(request)).to_response()
        return await next(request)
