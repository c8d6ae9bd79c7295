"""Doorway: the front door of a remote development server.

Every HTTP request and WebSocket upgrade passes through one ordered
pipeline: TLS enforcement, activity tracking, a precedence-ordered mount
table of sub-applications (proxies, editor, static assets, plugins), and a
terminal error handler per protocol surface.

Basic usage::

    from doorway import Collaborators, RoutingPipeline, ServerConfig

    config = ServerConfig(auth="none")
    pipeline = RoutingPipeline(config, Collaborators(static=serve_assets))

Serve it with ``doorway serve`` or any ASGI server.
"""

__version__ = "0.1.0"
__all__ = [
    "AuthType",
    "Collaborators",
    "ConfigurationError",
    "DoorwayError",
    "HTTPError",
    "Heart",
    "NotFound",
    "PluginRegistry",
    "Redirect",
    "Request",
    "Response",
    "RouteEntry",
    "RoutingPipeline",
    "ServerConfig",
    "SubRouter",
    "Unauthorized",
    "WebSocket",
    "g",
    "get_request",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import doorway`` fast while providing a clean top-level API.
    """
    if name in ("RoutingPipeline", "Collaborators"):
        from doorway import pipeline as _pipeline

        return getattr(_pipeline, name)

    if name in ("ServerConfig", "AuthType"):
        from doorway import config as _config

        return getattr(_config, name)

    if name == "Request":
        from doorway.http.request import Request

        return Request

    if name in ("Response", "Redirect"):
        from doorway.http import response as _resp

        return getattr(_resp, name)

    if name == "WebSocket":
        from doorway.websocket import WebSocket

        return WebSocket

    if name == "Heart":
        from doorway.heart import Heart

        return Heart

    if name == "PluginRegistry":
        from doorway.plugins import PluginRegistry

        return PluginRegistry

    if name == "RouteEntry":
        from doorway.routing.entry import RouteEntry

        return RouteEntry

    if name == "SubRouter":
        from doorway.routing.router import SubRouter

        return SubRouter

    if name in ("g", "get_request"):
        from doorway import context as _ctx

        return getattr(_ctx, name)

    if name in ("DoorwayError", "ConfigurationError", "HTTPError", "NotFound", "Unauthorized"):
        from doorway import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
