"""RouteEntry: one mounted sub-app in the precedence table."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Flag

from doorway.http.request import Request, strip_prefix
from doorway.middleware.protocol import SubApp, WebSocketSubApp

# Predicate a request must pass before the entry's handler sees it
type Gate = Callable[[Request], bool | Awaitable[bool]]

# Claims requests by host rather than by path
type HostMatcher = Callable[[Request], bool]


class Surface(Flag):
    """Which protocol surfaces an entry is mounted on."""

    HTTP = 1
    WS = 2
    BOTH = 3


@dataclass(frozen=True, slots=True)
class RouteEntry:
    """A sub-app mounted at *prefix*.

    An entry declared with both ``handler`` and ``ws_handler`` is mounted on
    both surfaces at the same prefix, so the WebSocket table mirrors the
    HTTP table by construction.

    Attributes:
        prefix: Mount path. ``/`` matches every request.
        handler: HTTP sub-app, or ``None`` for WebSocket-only entries.
        ws_handler: WebSocket sub-app, or ``None`` for HTTP-only entries.
        name: Label used in logs and introspection.
        gate: Predicate checked before the handler runs; failing raises
            ``Unauthorized``.
        host_match: When set, the entry only claims requests whose host
            satisfies it (domain-based routing).
    """

    prefix: str
    handler: SubApp | None = None
    ws_handler: WebSocketSubApp | None = None
    name: str = ""
    gate: Gate | None = None
    host_match: HostMatcher | None = None

    def __post_init__(self) -> None:
        if self.handler is None and self.ws_handler is None:
            msg = f"RouteEntry {self.name or self.prefix!r} needs a handler or ws_handler"
            raise ValueError(msg)
        if not self.prefix.startswith("/"):
            msg = f"RouteEntry prefix must start with '/', got {self.prefix!r}"
            raise ValueError(msg)

    @property
    def applies_to(self) -> Surface:
        if self.handler is not None and self.ws_handler is not None:
            return Surface.BOTH
        return Surface.HTTP if self.handler is not None else Surface.WS

    def matches(self, request: Request) -> bool:
        """True if this entry claims *request* by prefix (and host, if set)."""
        if strip_prefix(request.path, self.prefix) is None:
            return False
        return self.host_match is None or self.host_match(request)
