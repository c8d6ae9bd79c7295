"""Typed ASGI definitions.

Replaces the standard Scope = MutableMapping[str, Any] with typed
dataclasses for internal use. Sub-apps never see these.
"""

from collections.abc import Awaitable, Callable, MutableMapping
from dataclasses import dataclass
from typing import Any, TypeAlias

# Raw ASGI 3.0 types
Scope: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[MutableMapping[str, Any]]]
Send: TypeAlias = Callable[[MutableMapping[str, Any]], Awaitable[None]]

_ENCRYPTED_SCHEMES = frozenset({"https", "wss"})


@dataclass(frozen=True, slots=True)
class ConnectionScope:
    """Typed view of an ``http`` or ``websocket`` scope.

    Internal only -- sub-apps interact with Request and WebSocket, not this.
    """

    type: str
    scheme: str
    http_version: str
    method: str
    path: str
    raw_path: bytes
    query_string: bytes
    root_path: str
    headers: tuple[tuple[bytes, bytes], ...]
    server: tuple[str, int] | None
    client: tuple[str, int] | None

    @property
    def is_encrypted(self) -> bool:
        """True when the underlying connection is TLS-terminated."""
        return self.scheme in _ENCRYPTED_SCHEMES

    @classmethod
    def from_scope(cls, scope: Scope) -> "ConnectionScope":
        """Parse raw ASGI scope into typed object.

        WebSocket scopes carry no method; they are treated as ``GET``
        (the upgrade request's method).
        """
        server = scope.get("server")
        client = scope.get("client")
        default_scheme = "ws" if scope["type"] == "websocket" else "http"
        return cls(
            type=scope["type"],
            scheme=scope.get("scheme", default_scheme),
            http_version=scope.get("http_version", "1.1"),
            method=scope.get("method", "GET"),
            path=scope["path"],
            raw_path=scope.get("raw_path", b""),
            query_string=scope.get("query_string", b""),
            root_path=scope.get("root_path", ""),
            headers=tuple(scope.get("headers", ())),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
        )
