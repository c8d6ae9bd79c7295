"""ErrorNormalizer: the terminal handler of the HTTP surface.

Every failure raised anywhere in the HTTP chain ends up here. The failure is
reduced to an ``ErrorEnvelope`` and rendered as JSON or as the HTML error page
depending on what the client accepts. This module never raises: if
rendering itself fails, the client gets a plain 500.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from kida import Environment

from doorway.errors import ErrorEnvelope, ErrorKind, envelope_from_exception
from doorway.http.request import Request
from doorway.http.response import Response

logger = logging.getLogger("doorway.server")

ERROR_TEMPLATE = "error/index.html"

JSON = "application/json"

# Variables every server-rendered page receives from the application shell
type TemplateVars = Callable[[Request], Mapping[str, Any]]


def relative_root(request: Request) -> str:
    """Relative path from the current URL back to the server root.

    ``/`` → ``.``; ``/a/b`` → ``./..``. Survives a reverse proxy that
    mounts the server under a base path.
    """
    depth = request.raw_path.count("/")
    return "./" + "../" * (depth - 1) if depth > 1 else "."


def common_template_vars(request: Request) -> dict[str, Any]:
    """Default variables for server-rendered pages."""
    return {"BASE": relative_root(request).rstrip("/")}


def home_path(request: Request) -> str:
    """Where the error page's home link points.

    The ``to`` query parameter when it is a single non-empty string,
    otherwise ``/``.
    """
    return request.query.get_single("to") or "/"


def _log(envelope: ErrorEnvelope, exc: BaseException, request: Request) -> None:
    match envelope.kind:
        case ErrorKind.SERVER_ERROR:
            logger.error(
                "%d %s %s", envelope.status, request.method, request.url, exc_info=exc
            )
        case ErrorKind.UNAUTHORIZED:
            logger.info("%d %s %s", envelope.status, request.method, request.url)
        case _:
            logger.debug(
                "%d %s %s: %s", envelope.status, request.method, request.url, envelope.message
            )


def _render(
    envelope: ErrorEnvelope,
    request: Request,
    env: Environment | None,
    template_vars: TemplateVars | None,
) -> Response:
    if env is None or request.accepts(JSON) == JSON:
        return Response.json(envelope.to_json(), status=envelope.status)

    context: dict[str, Any] = common_template_vars(request)
    if template_vars is not None:
        context.update(template_vars(request))
    context.update(
        HOME_PATH=home_path(request),
        ERROR_TITLE=envelope.status,
        ERROR_HEADER=envelope.status,
        ERROR_BODY=envelope.message,
    )
    html = env.get_template(ERROR_TEMPLATE).render(context)
    return Response(body=html, status=envelope.status)


def render_error(
    exc: BaseException,
    request: Request,
    *,
    env: Environment | None,
    template_vars: TemplateVars | None = None,
) -> Response:
    """Turn *exc* into the response the client sees.

    JSON (``{"error": message, **details}``) whenever the client accepts
    ``application/json`` at all, wildcards included, or sends no ``Accept``
    header; the HTML error page otherwise. Server errors are logged with
    their traceback, rejected credentials at info, everything else at debug.
    Headers carried by the failure (e.g. ``Allow``) are kept.
    """
    try:
        envelope = envelope_from_exception(exc)
        _log(envelope, exc, request)
        response = _render(envelope, request, env, template_vars)
        for name, value in envelope.headers:
            response = response.with_header(name, value)
        return response
    except Exception:
        logger.exception("Failed to render error response for %s %s", request.method, request.url)
        return Response(
            body="Internal Server Error",
            status=500,
            content_type="text/plain; charset=utf-8",
        )
