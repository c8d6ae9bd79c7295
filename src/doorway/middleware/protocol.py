"""Sub-app protocols and the Next type aliases.

Everything mounted on the pipeline (the editor, proxies, static assets,
plugin routers and the pipeline's own interceptors) has one of two shapes::

    async def http_app(request: Request, next: Next) -> Response: ...
    async def ws_app(ws: WebSocket, next: WebSocketNext) -> None: ...

No base class required. The pipeline checks the shape, not the lineage.
A sub-app that does not handle a request calls ``next`` so later entries
get to see it; one that answers owns the request.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol

from doorway.http.request import Request
from doorway.http.response import Response
from doorway.websocket import WebSocket

# The next HTTP handler in the chain
type Next = Callable[[Request], Awaitable[Response]]

# The next WebSocket handler in the chain
type WebSocketNext = Callable[[WebSocket], Awaitable[None]]


class SubApp(Protocol):
    """Protocol for anything mounted on the HTTP surface.

    Accepts both functions and callable objects::

        # Function sub-app
        async def manifest(request: Request, next: Next) -> Response:
            if request.path != "/manifest.json":
                return await next(request)
            return Response.json({"name": "doorway"})

        # Class sub-app
        class DomainProxy:
            async def __call__(self, request: Request, next: Next) -> Response:
                ...
    """

    async def __call__(self, request: Request, next: Next) -> Response: ...


class WebSocketSubApp(Protocol):
    """Protocol for anything mounted on the WebSocket surface."""

    async def __call__(self, ws: WebSocket, next: WebSocketNext) -> None: ...
