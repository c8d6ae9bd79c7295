"""WebSocket connections on the parallel WebSocket surface.

A ``WebSocket`` pairs the upgrade ``Request`` (headers, cookies, host, path)
with the ASGI channel used to talk to the client. Mounting a WebSocket
sub-app copies the request part only; every copy shares one channel, so
closing or destroying through any copy closes the one connection.

Usage in a WebSocket sub-app::

    async def echo(ws: WebSocket, next: WebSocketNext) -> None:
        if ws.request.path != "/echo":
            return await next(ws)
        await ws.accept()
        while True:
            await ws.send_text(await ws.receive_text())
"""

import json as json_module
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from doorway._internal.asgi import Receive, Send
from doorway.http.request import Request

logger = logging.getLogger("doorway.server")

# RFC 6455: internal error; the maximum close reason length is 123 bytes
INTERNAL_ERROR_CODE = 1011
_MAX_REASON_BYTES = 123


class WebSocketState(Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class WebSocketDisconnect(Exception):  # noqa: N818
    """Raised by ``receive*()`` when the client has gone away."""

    def __init__(self, code: int = 1000, reason: str = "") -> None:
        super().__init__(f"WebSocket disconnected ({code})")
        self.code = code
        self.reason = reason


@dataclass(slots=True)
class _Channel:
    """ASGI plumbing shared by every mounted copy of one connection."""

    receive: Receive
    send: Send
    on_message: Callable[[], None] | None = None
    state: WebSocketState = WebSocketState.CONNECTING
    connect_received: bool = False


@dataclass(frozen=True, slots=True)
class WebSocket:
    """A WebSocket connection as seen by a WebSocket sub-app."""

    request: Request
    _channel: _Channel = field(repr=False, compare=False)

    @classmethod
    def from_asgi(
        cls,
        request: Request,
        receive: Receive,
        send: Send,
        *,
        on_message: Callable[[], None] | None = None,
    ) -> "WebSocket":
        """Wrap an ASGI ``websocket`` connection.

        *on_message* runs for every inbound data message (the pipeline
        uses it to beat the heart).
        """
        return cls(request=request, _channel=_Channel(receive, send, on_message))

    @property
    def state(self) -> WebSocketState:
        return self._channel.state

    def mounted(self, prefix: str) -> "WebSocket":
        """Return a copy whose request is relative to *prefix*."""
        return replace(self, request=self.request.mounted(prefix))

    # -- Handshake --

    async def accept(
        self,
        subprotocol: str | None = None,
        headers: tuple[tuple[str, str], ...] = (),
    ) -> None:
        """Complete the upgrade handshake."""
        channel = self._channel
        if channel.state is not WebSocketState.CONNECTING:
            msg = f"Cannot accept a WebSocket in state {channel.state.value!r}"
            raise RuntimeError(msg)
        if not channel.connect_received:
            message = await channel.receive()
            channel.connect_received = True
            if message["type"] == "websocket.disconnect":
                channel.state = WebSocketState.CLOSED
                raise WebSocketDisconnect(message.get("code", 1000))
        await channel.send(
            {
                "type": "websocket.accept",
                "subprotocol": subprotocol,
                "headers": [
                    (name.lower().encode("latin-1"), value.encode("latin-1"))
                    for name, value in headers
                ],
            }
        )
        channel.state = WebSocketState.CONNECTED

    # -- Receiving --

    async def receive(self) -> str | bytes:
        """Wait for the next data message.

        Raises ``WebSocketDisconnect`` once the client has closed.
        """
        channel = self._channel
        while True:
            message = await channel.receive()
            kind = message["type"]
            if kind == "websocket.connect":
                channel.connect_received = True
                continue
            if kind == "websocket.disconnect":
                channel.state = WebSocketState.CLOSED
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason") or "")
            if channel.on_message is not None:
                channel.on_message()
            text = message.get("text")
            if text is not None:
                return text
            return message.get("bytes") or b""

    async def receive_text(self) -> str:
        data = await self.receive()
        return data if isinstance(data, str) else data.decode("utf-8")

    async def receive_json(self) -> Any:
        return json_module.loads(await self.receive_text())

    # -- Sending --

    async def send_text(self, data: str) -> None:
        await self._channel.send({"type": "websocket.send", "text": data})

    async def send_bytes(self, data: bytes) -> None:
        await self._channel.send({"type": "websocket.send", "bytes": data})

    async def send_json(self, data: Any) -> None:
        await self.send_text(json_module.dumps(data, default=str))

    # -- Closing --

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection (or reject the handshake). Idempotent."""
        channel = self._channel
        if channel.state is WebSocketState.CLOSED:
            return
        channel.state = WebSocketState.CLOSED
        await channel.send({"type": "websocket.close", "code": code, "reason": _truncate(reason)})

    async def destroy(self, exc: BaseException | None = None) -> None:
        """Forcibly tear the connection down with *exc* attached.

        Before the handshake completes, the upgrade is refused; afterwards
        the connection is closed with 1011 (internal error). A transport
        that is already gone is not an error here: the connection is
        marked closed either way.
        """
        channel = self._channel
        if channel.state is WebSocketState.CLOSED:
            return
        reason = str(exc) if exc is not None else ""
        try:
            await self.close(INTERNAL_ERROR_CODE, reason)
        except (OSError, RuntimeError) as send_exc:
            logger.debug("WebSocket transport already gone: %s", send_exc)
        channel.state = WebSocketState.CLOSED


def _truncate(reason: str) -> str:
    encoded = reason.encode("utf-8")
    if len(encoded) <= _MAX_REASON_BYTES:
        return reason
    return encoded[:_MAX_REASON_BYTES].decode("utf-8", errors="ignore")
