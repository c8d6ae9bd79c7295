"""Request-scoped context via ContextVar.

Provides:
- ``request_var``: The current ``Request`` for this task.
- ``g``: A mutable namespace scoped to the current request.

The pipeline's common interceptor fills ``g.config`` (the server
``ServerConfig``) and ``g.heart`` (the ``Heart`` activity monitor) before any
sub-app sees the request, so sub-apps can reach both without globals.
Both are reset after each request or WebSocket connection.
"""

from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from doorway.http.request import Request

if TYPE_CHECKING:
    from doorway.config import ServerConfig
    from doorway.heart import Heart

# -- Request context --

request_var: ContextVar[Request] = ContextVar("doorway_request")
"""The current request. Set by the ASGI handler before dispatch."""


def get_request() -> Request:
    """Return the current request.

    Raises ``LookupError`` if called outside a request context.
    """
    return request_var.get()


# -- Request-scoped namespace --


class _RequestGlobals:
    """A mutable namespace scoped to the current request.

    Stores arbitrary attributes via a per-request dict held in a ContextVar.

    Usage::

        from doorway.context import g

        # In a sub-app
        if g.heart.alive():
            ...
    """

    __slots__ = ("_store",)

    def __init__(self) -> None:
        object.__setattr__(self, "_store", ContextVar("doorway_g", default=None))

    def _get_dict(self) -> dict[str, Any]:
        store: ContextVar[dict[str, Any] | None] = object.__getattribute__(self, "_store")
        d = store.get()
        if d is None:
            d = {}
            store.set(d)
        return d

    def _reset(self) -> None:
        store: ContextVar[dict[str, Any] | None] = object.__getattribute__(self, "_store")
        store.set(None)

    def __getattr__(self, name: str) -> Any:
        d = self._get_dict()
        try:
            return d[name]
        except KeyError:
            msg = f"'g' has no attribute {name!r} in the current request scope"
            raise AttributeError(msg) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._get_dict()[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self._get_dict()

    def get(self, name: str, default: Any = None) -> Any:
        """Get an attribute with a default value."""
        return self._get_dict().get(name, default)

    def __repr__(self) -> str:
        return f"<g {self._get_dict()!r}>"


g = _RequestGlobals()
"""Request-scoped namespace. Stores arbitrary per-request data."""


def get_heart() -> "Heart":
    """Return the activity monitor attached to the current request."""
    return g.heart


def get_config() -> "ServerConfig":
    """Return the server configuration attached to the current request."""
    return g.config
