"""ASGI handler: translates ASGI scope/messages to doorway types.

The only component that touches raw ASGI connections directly. Converts
scope dicts to typed Request / WebSocket objects, runs them through the
pipeline's chain, and hands failures to the terminal handler of their
surface.
"""

import logging
from collections.abc import Callable
from contextvars import Token

from kida import Environment

from doorway._internal.asgi import ConnectionScope, Receive, Scope, Send
from doorway.context import g, request_var
from doorway.http.request import Request
from doorway.middleware.protocol import Next, WebSocketNext
from doorway.server.errors import TemplateVars, render_error
from doorway.server.sender import send_response
from doorway.server.ws_errors import teardown_websocket
from doorway.websocket import WebSocket, WebSocketDisconnect

logger = logging.getLogger("doorway.server")

# Runs before any router sees a request or handshake
type Prepare = Callable[[Request], None]


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    dispatch: Next,
    prepare: Prepare,
    kida_env: Environment | None = None,
    template_vars: TemplateVars | None = None,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    request = Request.from_scope(ConnectionScope.from_scope(scope), receive)
    token: Token[Request] = request_var.set(request)

    try:
        prepare(request)
        response = await dispatch(request)
    except Exception as exc:
        response = render_error(exc, request, env=kida_env, template_vars=template_vars)
    finally:
        g._reset()
        request_var.reset(token)

    await send_response(response, send, method=request.method)


async def handle_websocket(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    dispatch: WebSocketNext,
    prepare: Prepare,
    on_message: Callable[[], None] | None = None,
) -> None:
    """Process a single WebSocket connection through the full pipeline.

    A client that goes away is a normal end of the connection. Any other
    failure tears the connection down.
    """
    request = Request.from_scope(ConnectionScope.from_scope(scope), receive)
    ws = WebSocket.from_asgi(request, receive, send, on_message=on_message)
    token: Token[Request] = request_var.set(request)

    try:
        prepare(request)
        await dispatch(ws)
    except WebSocketDisconnect as exc:
        logger.debug("WebSocket %s closed by client (%d)", request.original_path, exc.code)
    except Exception as exc:
        await teardown_websocket(exc, ws)
    finally:
        g._reset()
        request_var.reset(token)
