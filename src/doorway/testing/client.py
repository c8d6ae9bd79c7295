"""Async test client for doorway pipelines.

Uses the same Request and Response types as production.
No wrapper translation layer.
"""

import asyncio
import contextlib
import json as json_module
from typing import Any
from urllib.parse import quote, unquote

from doorway.http.request import URL_SAFE
from doorway.http.response import Response
from doorway.pipeline import RoutingPipeline
from doorway.websocket import WebSocketDisconnect

_DEFAULT_TIMEOUT = 5.0


def _split_path(path: str) -> tuple[str, str]:
    if "?" in path:
        path_part, query_string = path.split("?", 1)
        return path_part, query_string
    return path, ""


def _target(path: str) -> tuple[str, bytes]:
    """Scope ``path`` and ``raw_path`` for a request target, as servers build them.

    Non-ASCII characters are percent-encoded on the wire; ``path`` is the
    decoded form.
    """
    raw = quote(path, safe=URL_SAFE + "%")
    return unquote(raw), raw.encode("ascii")


def _raw_headers(headers: dict[str, str] | None) -> list[tuple[bytes, bytes]]:
    return [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    ]


class WebSocketSession:
    """One in-process WebSocket connection to the pipeline.

    Created by ``TestClient.websocket()``. After entering, ``accepted``
    tells whether the handshake completed; a refused handshake leaves
    ``close_code`` set instead.
    """

    __test__ = False

    __slots__ = (
        "_app",
        "_inbound",
        "_outbound",
        "_scope",
        "_task",
        "accepted",
        "close_code",
        "close_reason",
        "subprotocol",
    )

    def __init__(self, app: RoutingPipeline, scope: dict[str, Any]) -> None:
        self._app = app
        self._scope = scope
        self._inbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._outbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self.accepted = False
        self.subprotocol: str | None = None
        self.close_code: int | None = None
        self.close_reason = ""

    async def __aenter__(self) -> WebSocketSession:
        await self._inbound.put({"type": "websocket.connect"})
        self._task = asyncio.create_task(self._run())
        message = await self._next_message()
        if message["type"] == "websocket.accept":
            self.accepted = True
            self.subprotocol = message.get("subprotocol")
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._task is None:
            return
        if not self._task.done():
            await self._inbound.put({"type": "websocket.disconnect", "code": 1000})
        try:
            await asyncio.wait_for(self._task, timeout=_DEFAULT_TIMEOUT)
        except TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    # -- ASGI plumbing --

    async def _run(self) -> None:
        try:
            await self._app(self._scope, self._receive, self._send)
        finally:
            await self._outbound.put({"type": "app.exit"})

    async def _receive(self) -> dict[str, Any]:
        return await self._inbound.get()

    async def _send(self, message: dict[str, Any]) -> None:
        if message["type"] == "websocket.close":
            self.close_code = message.get("code", 1000)
            self.close_reason = message.get("reason") or ""
        await self._outbound.put(message)

    async def _next_message(self) -> dict[str, Any]:
        return await asyncio.wait_for(self._outbound.get(), timeout=_DEFAULT_TIMEOUT)

    # -- Client side --

    async def send_text(self, data: str) -> None:
        await self._inbound.put({"type": "websocket.receive", "text": data})

    async def send_bytes(self, data: bytes) -> None:
        await self._inbound.put({"type": "websocket.receive", "bytes": data})

    async def send_json(self, data: Any) -> None:
        await self.send_text(json_module.dumps(data))

    async def receive(self) -> str | bytes:
        """Next message from the server.

        Raises ``WebSocketDisconnect`` once the server has closed.
        """
        if self.closed:
            raise WebSocketDisconnect(self.close_code or 1000, self.close_reason)
        message = await self._next_message()
        if message["type"] == "websocket.send":
            text = message.get("text")
            return text if text is not None else message.get("bytes") or b""
        if message["type"] == "app.exit" and not self.closed:
            # ASGI servers close the connection when the app returns
            self.close_code = 1000
        raise WebSocketDisconnect(self.close_code or 1000, self.close_reason)

    async def receive_text(self) -> str:
        data = await self.receive()
        return data if isinstance(data, str) else data.decode("utf-8")

    async def receive_json(self) -> Any:
        return json_module.loads(await self.receive_text())

    async def close(self, code: int = 1000) -> None:
        """Disconnect from the client side and wait for the app to finish."""
        await self._inbound.put({"type": "websocket.disconnect", "code": code})
        if self._task is not None:
            await asyncio.wait_for(self._task, timeout=_DEFAULT_TIMEOUT)


class TestClient:
    """Async test client for doorway pipelines.

    Returns the same ``Response`` type used in production. Sends requests
    through the ASGI interface directly, no HTTP involved.

    Usage::

        async with TestClient(pipeline) as client:
            response = await client.get("/healthz")
            assert response.status == 200

            async with client.websocket("/proxy/8080/") as ws:
                await ws.send_text("ping")
    """

    __test__ = False

    __slots__ = ("app", "scheme", "server")

    def __init__(
        self,
        app: RoutingPipeline,
        *,
        scheme: str = "http",
        server: tuple[str, int] = ("testserver", 80),
    ) -> None:
        self.app = app
        self.scheme = scheme
        self.server = server

    async def __aenter__(self) -> TestClient:
        await self.app.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.app.shutdown()

    async def get(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        scheme: str | None = None,
    ) -> Response:
        """Send a GET request."""
        return await self.request("GET", path, headers=headers, scheme=scheme)

    async def head(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> Response:
        """Send a HEAD request."""
        return await self.request("HEAD", path, headers=headers)

    async def post(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: dict[str, object] | None = None,
    ) -> Response:
        """Send a POST request."""
        extra_headers: dict[str, str] = {}
        request_body = body or b""

        if json is not None:
            request_body = json_module.dumps(json).encode("utf-8")
            extra_headers["content-type"] = "application/json"

        merged = {**extra_headers, **(headers or {})}
        return await self.request("POST", path, headers=merged, body=request_body)

    async def delete(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> Response:
        """Send a DELETE request."""
        return await self.request("DELETE", path, headers=headers)

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        scheme: str | None = None,
    ) -> Response:
        """Send an arbitrary request through the ASGI app."""
        path_part, query_string = _split_path(path)
        scope_path, raw_path = _target(path_part)

        scope: dict[str, Any] = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method.upper(),
            "scheme": scheme or self.scheme,
            "path": scope_path,
            "raw_path": raw_path,
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": _raw_headers(headers),
            "server": self.server,
            "client": ("127.0.0.1", 0),
        }

        request_body = body or b""
        body_sent = False

        async def receive() -> dict[str, Any]:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": request_body, "more_body": False}
            return {"type": "http.disconnect"}

        response_status = 200
        response_headers: list[tuple[bytes, bytes]] = []
        response_body_parts: list[bytes] = []

        async def send(message: dict[str, Any]) -> None:
            nonlocal response_status, response_headers
            if message["type"] == "http.response.start":
                response_status = message["status"]
                response_headers = list(message.get("headers", []))
            elif message["type"] == "http.response.body":
                response_body_parts.append(message.get("body", b""))

        await self.app(scope, receive, send)

        content_type = "text/html; charset=utf-8"
        extra_headers: list[tuple[str, str]] = []
        for name_b, value_b in response_headers:
            name_str = name_b.decode("latin-1")
            value_str = value_b.decode("latin-1")
            if name_str == "content-type":
                content_type = value_str
            else:
                extra_headers.append((name_str, value_str))

        return Response(
            body=b"".join(response_body_parts),
            status=response_status,
            content_type=content_type,
            headers=tuple(extra_headers),
        )

    def websocket(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        scheme: str | None = None,
        subprotocols: tuple[str, ...] = (),
    ) -> WebSocketSession:
        """Open a WebSocket session; use as ``async with``."""
        path_part, query_string = _split_path(path)
        scope_path, raw_path = _target(path_part)
        ws_scheme = scheme or ("wss" if self.scheme == "https" else "ws")
        scope: dict[str, Any] = {
            "type": "websocket",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "scheme": ws_scheme,
            "path": scope_path,
            "raw_path": raw_path,
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": _raw_headers(headers),
            "server": self.server,
            "client": ("127.0.0.1", 0),
            "subprotocols": list(subprotocols),
        }
        return WebSocketSession(self.app, scope)
