"""Trie-based route matching and the mountable ``SubRouter``.

``Router`` is the compiled lookup structure. ``SubRouter`` wraps two of
them (HTTP and WebSocket) behind the sub-app protocols, so built-in routes
(health, applications API) and plugin routers mount on the pipeline the
same way external collaborators do.
"""

import inspect
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from doorway._internal.invoke import invoke
from doorway.errors import ConfigurationError, MethodNotAllowed, NotFound
from doorway.http.request import Request
from doorway.http.response import Response
from doorway.middleware.protocol import Next, WebSocketNext
from doorway.routing.params import CONVERTERS
from doorway.routing.route import PathSegment, Route, RouteMatch
from doorway.server.negotiation import negotiate
from doorway.websocket import WebSocket

# Pseudo-method under which WebSocket routes are stored
WEBSOCKET = "WEBSOCKET"

_FLASK_PARAM_RE = re.compile(r"<[^>]+>")


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route path string into segments.

    Examples::

        "/status"          -> [PathSegment("status")]
        "/ports/{port}"    -> [PathSegment("ports"), PathSegment("{port}", is_param=True, ...)]
        "/ports/{port:int}" -> [..., PathSegment("{port:int}", is_param=True, param_type="int")]
        "/files/{rest:path}" -> [..., PathSegment("{rest:path}", is_param=True, param_type="path")]
    """
    if _FLASK_PARAM_RE.search(path):
        msg = (
            f"Route path {path!r} uses <param> syntax. "
            "Path parameters are written as {param} or {param:int}."
        )
        raise ConfigurationError(msg)

    segments: list[PathSegment] = []
    for part in path.strip("/").split("/"):
        if not part:
            continue
        if part.startswith("{") and part.endswith("}"):
            inner = part[1:-1]
            if ":" in inner:
                param_name, param_type = inner.split(":", 1)
            else:
                param_name = inner
                param_type = "str"
            if param_type not in CONVERTERS:
                msg = f"Unknown path converter {param_type!r} in {path!r}"
                raise ConfigurationError(msg)
            segments.append(
                PathSegment(
                    value=part,
                    is_param=True,
                    param_name=param_name,
                    param_type=param_type,
                )
            )
        else:
            segments.append(PathSegment(value=part))
    return segments


class _TrieNode:
    """A node in the route trie. Mutable during compilation only."""

    __slots__ = ("catch_all", "children", "param_child", "routes_by_method")

    def __init__(self) -> None:
        self.children: dict[str, _TrieNode] = {}
        self.param_child: _ParamEdge | None = None
        self.catch_all: _CatchAllEdge | None = None
        self.routes_by_method: dict[str, Route] = {}


@dataclass(slots=True)
class _ParamEdge:
    """A parameter edge in the trie."""

    param_name: str
    regex: re.Pattern[str]
    node: _TrieNode


@dataclass(slots=True)
class _CatchAllEdge:
    """A catch-all (path) edge: consumes the remaining path."""

    param_name: str
    routes_by_method: dict[str, Route]


class Router:
    """Compiled router with trie-based path matching.

    Usage::

        router = Router()
        router.add(Route("/status", handler, frozenset({"GET"})))
        router.add(Route("/ports/{port:int}", handler, frozenset({"GET"})))
        router.compile()
        match = router.match("GET", "/ports/8080")
    """

    __slots__ = ("_compiled", "_root")

    def __init__(self) -> None:
        self._root = _TrieNode()
        self._compiled = False

    def add(self, route: Route) -> None:
        """Add a route to the router. Must be called before compile()."""
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        node = self._root
        for seg in parse_path(route.path):
            if seg.is_param and seg.param_type == "path":
                if node.catch_all is None:
                    node.catch_all = _CatchAllEdge(seg.param_name or "path", {})
                for method in route.methods:
                    node.catch_all.routes_by_method[method] = route
                return

            if seg.is_param:
                if node.param_child is None:
                    pattern, _ = CONVERTERS[seg.param_type]
                    node.param_child = _ParamEdge(
                        param_name=seg.param_name or "",
                        regex=re.compile(f"^{pattern}$"),
                        node=_TrieNode(),
                    )
                node = node.param_child.node
            else:
                node = node.children.setdefault(seg.value, _TrieNode())

        for method in route.methods:
            node.routes_by_method[method] = route

    def compile(self) -> None:
        """Freeze the router. No more routes can be added."""
        self._compiled = True

    def match(self, method: str, path: str) -> RouteMatch:
        """Match a request path and method against compiled routes.

        ``HEAD`` falls back to a ``GET`` route.
        Raises ``NotFound`` if no route matches the path.
        Raises ``MethodNotAllowed`` if the path matches but the method doesn't.
        """
        parts = [p for p in path.strip("/").split("/") if p]
        result = self._match_node(self._root, parts, 0, {})
        if result is None:
            raise NotFound(f"No route matches {method} {path!r}")

        routes, params = result
        route = routes.get(method)
        if route is None and method == "HEAD":
            route = routes.get("GET")
        if route is not None:
            return RouteMatch(route=route, path_params=params)
        raise MethodNotAllowed(frozenset(routes))

    def _match_node(
        self,
        node: _TrieNode,
        parts: list[str],
        index: int,
        params: dict[str, str],
    ) -> tuple[dict[str, Route], dict[str, str]] | None:
        """Recursively match path parts; static beats param beats catch-all."""
        if index == len(parts):
            if node.routes_by_method:
                return node.routes_by_method, params
            return None

        part = parts[index]

        if part in node.children:
            result = self._match_node(node.children[part], parts, index + 1, params)
            if result is not None:
                return result

        if node.param_child is not None:
            edge = node.param_child
            if edge.regex.match(part):
                new_params = {**params, edge.param_name: part}
                result = self._match_node(edge.node, parts, index + 1, new_params)
                if result is not None:
                    return result

        if node.catch_all is not None:
            remaining = "/".join(parts[index:])
            new_params = {**params, node.catch_all.param_name: remaining}
            return node.catch_all.routes_by_method, new_params

        return None


def _build_handler_kwargs(
    handler: Callable[..., Any],
    subject: Request | WebSocket,
    path_params: dict[str, str],
) -> dict[str, Any]:
    """Inspect handler signature and build kwargs.

    Resolution order:
    1. ``request`` / ``ws`` parameter (by name or annotation)
    2. Path parameters (by name, converted to the annotated type if possible)
    """
    sig = inspect.signature(handler, eval_str=True)
    kwargs: dict[str, Any] = {}

    for name, param in sig.parameters.items():
        if name in ("request", "ws") or param.annotation in (Request, WebSocket):
            kwargs[name] = subject
        elif name in path_params:
            value = path_params[name]
            if param.annotation is not inspect.Parameter.empty:
                try:
                    kwargs[name] = param.annotation(value)
                except (ValueError, TypeError):
                    kwargs[name] = value
            else:
                kwargs[name] = value

    return kwargs


class SubRouter:
    """A router that mounts on the pipeline as an HTTP and a WebSocket sub-app.

    Requests it has no route for fall through to the next pipeline entry,
    as do requests whose method it doesn't serve.

    Usage::

        router = SubRouter()

        @router.get("/")
        def status(request):
            return {"status": "alive"}

        @router.websocket("/")
        async def live(ws):
            await ws.accept()

        RouteEntry("/healthz", router, router.ws)
    """

    __slots__ = ("_frozen", "_http", "_pending", "_ws", "name")

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._pending: list[Route] = []
        self._http: Router | None = None
        self._ws: Router | None = None
        self._frozen = False

    # -- Registration --

    def route(
        self,
        path: str,
        *,
        methods: list[str] | None = None,
        name: str | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register an HTTP route handler via decorator. Defaults to GET."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            verbs = frozenset(m.upper() for m in (methods or ["GET"]))
            self._pending.append(Route(path, func, verbs, name))
            return func

        return decorator

    def get(self, path: str, *, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        return self.route(path, methods=["GET"], name=name)

    def post(self, path: str, *, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        return self.route(path, methods=["POST"], name=name)

    def websocket(self, path: str, *, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a WebSocket route handler via decorator."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            self._pending.append(Route(path, func, frozenset({WEBSOCKET}), name))
            return func

        return decorator

    @property
    def routes(self) -> tuple[Route, ...]:
        return tuple(self._pending)

    @property
    def has_websocket_routes(self) -> bool:
        return any(WEBSOCKET in r.methods for r in self._pending)

    # -- Sub-app interface --

    async def __call__(self, request: Request, next: Next) -> Response:
        """HTTP sub-app: answer a matching route or pass the request on."""
        self._ensure_frozen()
        assert self._http is not None
        try:
            match = self._http.match(request.method, request.path)
        except (NotFound, MethodNotAllowed):
            return await next(request)

        bound = request.with_path_params(match.path_params)
        kwargs = _build_handler_kwargs(match.route.handler, bound, match.path_params)
        return negotiate(await invoke(match.route.handler, **kwargs))

    async def ws(self, ws: WebSocket, next: WebSocketNext) -> None:
        """WebSocket sub-app: run a matching handler or pass the socket on."""
        self._ensure_frozen()
        assert self._ws is not None
        try:
            match = self._ws.match(WEBSOCKET, ws.request.path)
        except (NotFound, MethodNotAllowed):
            await next(ws)
            return

        kwargs = _build_handler_kwargs(match.route.handler, ws, match.path_params)
        await invoke(match.route.handler, **kwargs)

    # -- Internal --

    def _ensure_frozen(self) -> None:
        if self._frozen:
            return
        http, ws = Router(), Router()
        for route in self._pending:
            (ws if WEBSOCKET in route.methods else http).add(route)
        http.compile()
        ws.compile()
        self._http, self._ws = http, ws
        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = "Cannot add routes to a SubRouter that has started serving requests."
            raise RuntimeError(msg)
