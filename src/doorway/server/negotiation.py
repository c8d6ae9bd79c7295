"""Return-value negotiation: maps sub-router handler results to Responses.

isinstance-based dispatch, no magic, fully predictable.
"""

import json as json_module
from typing import Any

from doorway.errors import ConfigurationError
from doorway.http.response import JSON_CONTENT_TYPE, Redirect, Response


def negotiate(value: Any) -> Response:
    """Convert a route handler's return value to a Response.

    Dispatch order:

    1. ``Response``         -> pass through
    2. ``Redirect``         -> redirect status with Location header
    3. ``str``              -> 200, text/html
    4. ``bytes``            -> 200, application/octet-stream
    5. ``dict`` / ``list``  -> 200, application/json
    6. ``None``             -> 204, empty
    7. ``(value, int)``     -> negotiate value, override status
    8. ``(value, int, dict)`` -> negotiate value, override status + headers
    """
    match value:
        case Response():
            return value
        case Redirect():
            return value.to_response()
        case str():
            return Response(body=value)
        case bytes():
            return Response(body=value, content_type="application/octet-stream")
        case dict() | list():
            return Response(
                body=json_module.dumps(value, default=str),
                content_type=JSON_CONTENT_TYPE,
            )
        case None:
            return Response(status=204)
        case (inner, int() as status):
            return negotiate(inner).with_status(status)
        case (inner, int() as status, dict() as headers):
            return negotiate(inner).with_status(status).with_headers(headers)
        case _:
            msg = (
                f"Cannot convert {type(value).__name__} to a response. "
                "Return a Response, Redirect, str, bytes, dict, list, or a "
                "(value, status) tuple."
            )
            raise ConfigurationError(msg)
