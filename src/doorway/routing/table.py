"""RouteTable: the ordered, first-match-wins mount table.

Entries are offered a request in registration order. An entry whose
prefix (and host predicate) matches is handed a mounted copy of the request
plus a ``next`` that resumes the walk with the *original* request, exactly
like nested Express routers. A sub-app that answers owns the request and no
later entry runs; a sub-app that calls ``next`` lets the walk continue.

The chain is compiled once, when the table is built. The table is
immutable afterwards, so reads need no synchronization.
"""

import logging
from collections.abc import Iterator, Sequence

from doorway._internal.invoke import invoke
from doorway.errors import Unauthorized
from doorway.http.request import Request
from doorway.http.response import Response
from doorway.middleware.protocol import Next, WebSocketNext
from doorway.routing.entry import RouteEntry, Surface
from doorway.websocket import WebSocket

logger = logging.getLogger("doorway.pipeline")


async def _check_gate(entry: RouteEntry, request: Request) -> None:
    if entry.gate is not None and not await invoke(entry.gate, request):
        logger.debug("gate rejected %s %s at %r", request.method, request.url, entry.name)
        raise Unauthorized()


def _bind_http(entry: RouteEntry, downstream: Next) -> Next:
    handler = entry.handler
    assert handler is not None

    async def step(request: Request) -> Response:
        if not entry.matches(request):
            return await downstream(request)
        await _check_gate(entry, request)

        async def resume(_: Request) -> Response:
            return await downstream(request)

        return await handler(request.mounted(entry.prefix), resume)

    return step


def _bind_ws(entry: RouteEntry, downstream: WebSocketNext) -> WebSocketNext:
    handler = entry.ws_handler
    assert handler is not None

    async def step(ws: WebSocket) -> None:
        if not entry.matches(ws.request):
            await downstream(ws)
            return
        await _check_gate(entry, ws.request)

        async def resume(_: WebSocket) -> None:
            await downstream(ws)

        await handler(ws.mounted(entry.prefix), resume)

    return step


class RouteTable:
    """An immutable, ordered sequence of ``RouteEntry``.

    Usage::

        table = RouteTable(entries, http_fallback=not_found, ws_fallback=close)
        response = await table.dispatch(request)
        await table.dispatch_websocket(ws)
    """

    __slots__ = ("_entries", "_http_chain", "_ws_chain")

    def __init__(
        self,
        entries: Sequence[RouteEntry],
        *,
        http_fallback: Next,
        ws_fallback: WebSocketNext,
    ) -> None:
        self._entries: tuple[RouteEntry, ...] = tuple(entries)

        http_chain = http_fallback
        for entry in reversed(self.entries_for(Surface.HTTP)):
            http_chain = _bind_http(entry, http_chain)
        self._http_chain: Next = http_chain

        ws_chain = ws_fallback
        for entry in reversed(self.entries_for(Surface.WS)):
            ws_chain = _bind_ws(entry, ws_chain)
        self._ws_chain: WebSocketNext = ws_chain

    def __iter__(self) -> Iterator[RouteEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[RouteEntry, ...]:
        return self._entries

    def entries_for(self, surface: Surface) -> tuple[RouteEntry, ...]:
        """Entries mounted on *surface*, in registration order."""
        return tuple(e for e in self._entries if surface in e.applies_to)

    def describe(self, surface: Surface = Surface.HTTP) -> list[tuple[str, str]]:
        """``(prefix, name)`` pairs for *surface*, in precedence order."""
        return [(e.prefix, e.name) for e in self.entries_for(surface)]

    async def dispatch(self, request: Request) -> Response:
        """Walk the HTTP entries; the fallback runs if none answers."""
        return await self._http_chain(request)

    async def dispatch_websocket(self, ws: WebSocket) -> None:
        """Walk the WebSocket entries; the fallback runs if none takes the socket."""
        await self._ws_chain(ws)
