"""Shared fixtures: request factories and a recording ASGI channel."""

from collections.abc import Callable
from typing import Any
from urllib.parse import quote, unquote

import pytest

from doorway._internal.asgi import ConnectionScope
from doorway.http.request import URL_SAFE, Request
from doorway.http.response import Response
from doorway.websocket import WebSocket


def build_request(
    path: str = "/",
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    query_string: str = "",
    scheme: str = "http",
    scope_type: str = "http",
) -> Request:
    """Build a request the way an ASGI server would: ``path`` decoded, ``raw_path`` as sent."""
    raw_path = quote(path, safe=URL_SAFE + "%")
    scope: dict[str, Any] = {
        "type": scope_type,
        "http_version": "1.1",
        "method": method,
        "scheme": scheme,
        "path": unquote(raw_path),
        "raw_path": raw_path.encode("ascii"),
        "query_string": query_string.encode("latin-1"),
        "root_path": "",
        "headers": [
            (k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()
        ],
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 0),
    }
    return Request.from_scope(ConnectionScope.from_scope(scope))


class RecordingChannel:
    """ASGI receive/send pair for a WebSocket: scripted inbound, recorded outbound."""

    def __init__(self, inbound: list[dict[str, Any]] | None = None) -> None:
        self.inbound = list(inbound or [{"type": "websocket.connect"}])
        self.sent: list[dict[str, Any]] = []

    async def receive(self) -> dict[str, Any]:
        if self.inbound:
            return self.inbound.pop(0)
        return {"type": "websocket.disconnect", "code": 1000}

    async def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    @property
    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


@pytest.fixture
def make_request() -> Callable[..., Request]:
    return build_request


@pytest.fixture
def make_websocket() -> Callable[..., tuple[WebSocket, RecordingChannel]]:
    def factory(
        path: str = "/",
        *,
        inbound: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
        scheme: str = "ws",
        on_message: Callable[[], None] | None = None,
    ) -> tuple[WebSocket, RecordingChannel]:
        channel = RecordingChannel(inbound)
        request = build_request(path, headers=headers, scheme=scheme, scope_type="websocket")
        ws = WebSocket.from_asgi(request, channel.receive, channel.send, on_message=on_message)
        return ws, channel

    return factory


@pytest.fixture
def unhandled() -> Callable[[Request], Any]:
    """A ``next`` that answers 599 so fall-through is observable."""

    async def next_(request: Request) -> Response:
        return Response(body=f"fell through: {request.path}", status=599)

    return next_
