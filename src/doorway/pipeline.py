"""RoutingPipeline: the front door every HTTP request and WebSocket passes through.

A connection is prepared once (heartbeat, request context), runs through the
interceptors (TLS gate, ``/robots.txt``), then walks the route table in
precedence order until a sub-app answers. Whatever nobody answers ends at
the catch-all; whatever fails ends at the terminal handler of its surface.

The pipeline is built in two phases. Construction only records
collaborators. ``start()`` loads plugins and compiles the route table; it
runs at ASGI lifespan startup (or on the first connection when the server
does not speak lifespan) and the table is immutable afterwards.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from kida import Environment

from doorway._internal.asgi import Receive, Scope, Send
from doorway.config import AuthType, ServerConfig
from doorway.context import g
from doorway.errors import NotFound
from doorway.heart import ConnectionCounter, Heart
from doorway.http.request import Request
from doorway.http.response import Response
from doorway.middleware.protocol import Next, SubApp, WebSocketSubApp
from doorway.middleware.robots import RobotsTxt
from doorway.middleware.static import ServeDirectory
from doorway.middleware.tls import EnforceTLS
from doorway.plugins import PluginRegistry
from doorway.routes.health import health_router
from doorway.routing.entry import Gate, HostMatcher, RouteEntry, Surface
from doorway.routing.table import RouteTable
from doorway.server.errors import TemplateVars
from doorway.server.handler import handle_request, handle_websocket
from doorway.templating import create_environment
from doorway.websocket import WebSocket

logger = logging.getLogger("doorway.pipeline")

# RFC 6455: policy violation
_POLICY_VIOLATION = 1008


@dataclass(frozen=True, slots=True)
class Collaborators:
    """The sub-apps the pipeline mounts. Every one is optional.

    An absent collaborator is simply not mounted; the rest keep their
    relative order. ``health`` falls back to the built-in health router.

    Attributes:
        domain_proxy: Claims requests addressed to a proxied domain.
        domain_proxy_match: Host predicate for the domain proxy entry.
        editor: The editor, mounted at ``/`` and ``/vscode``.
        manifest: The web app manifest.
        login: Mounted at ``/login`` under password authentication only.
        path_proxy: Port proxy mounted at ``/proxy``.
        static: Static assets mounted at ``/``.
        update: Update check mounted at ``/update``.
        authenticate: Gate for authenticated entries (``/local``).
        template_vars: Extra variables for server-rendered pages.
    """

    domain_proxy: SubApp | None = None
    domain_proxy_ws: WebSocketSubApp | None = None
    domain_proxy_match: HostMatcher | None = None
    editor: SubApp | None = None
    editor_ws: WebSocketSubApp | None = None
    manifest: SubApp | None = None
    health: SubApp | None = None
    login: SubApp | None = None
    path_proxy: SubApp | None = None
    path_proxy_ws: WebSocketSubApp | None = None
    static: SubApp | None = None
    update: SubApp | None = None
    authenticate: Gate | None = None
    template_vars: TemplateVars | None = None


async def _not_found(request: Request) -> Response:
    raise NotFound("Not Found")


async def _ws_not_found(ws: WebSocket) -> None:
    raise NotFound("Not Found")


def _deny(request: Request) -> bool:
    return False


def _local_gate(config: ServerConfig, collaborators: Collaborators) -> Gate | None:
    """The gate in front of ``/local``.

    Open without authentication; under password authentication, the
    supplied gate, or one that refuses everyone when none was supplied.
    """
    if config.auth == AuthType.NONE:
        return None
    return collaborators.authenticate or _deny


def build_route_table(
    config: ServerConfig,
    collaborators: Collaborators,
    plugins: PluginRegistry,
    *,
    kida_env: Environment | None = None,
) -> RouteTable:
    """Assemble the mount table, most specific entry first.

    1. domain proxy (host-matched), 2. editor at ``/`` and ``/vscode``,
    3. manifest, 4. ``/healthz``, 5. ``/login`` (password auth only),
    6. ``/proxy``, 7. static, 8. ``/local`` (when configured),
    9. ``/update``, 10. plugins and ``/api/applications``.
    """
    c = collaborators
    entries: list[RouteEntry] = []

    def mount(
        prefix: str,
        handler: SubApp | None,
        ws_handler: WebSocketSubApp | None = None,
        **kwargs: Any,
    ) -> None:
        if handler is None and ws_handler is None:
            return
        entries.append(RouteEntry(prefix, handler, ws_handler, **kwargs))

    mount("/", c.domain_proxy, c.domain_proxy_ws, name="domain-proxy", host_match=c.domain_proxy_match)
    mount("/", c.editor, c.editor_ws, name="editor")
    mount("/vscode", c.editor, c.editor_ws, name="editor")
    mount("/", c.manifest, name="manifest")
    mount("/healthz", c.health or health_router(), name="health")
    if config.auth == AuthType.PASSWORD:
        mount("/login", c.login, name="login")
    mount("/proxy", c.path_proxy, c.path_proxy_ws, name="path-proxy")
    mount("/", c.static, name="static")
    if config.local_directory is not None:
        mount(
            "/local",
            ServeDirectory(config.local_directory, env=kida_env),
            name="local",
            gate=_local_gate(config, c),
        )
    mount("/update", c.update, name="update")
    entries.extend(plugins.route_entries())

    return RouteTable(entries, http_fallback=_not_found, ws_fallback=_ws_not_found)


def _compose(interceptors: Sequence[SubApp], endpoint: Next) -> Next:
    """Wrap *endpoint* so *interceptors* run first, in order."""
    handler = endpoint
    for interceptor in reversed(interceptors):
        outer = handler

        async def step(request: Request, _icpt: SubApp = interceptor, _next: Next = outer) -> Response:
            return await _icpt(request, _next)

        handler = step
    return handler


class RoutingPipeline:
    """The ASGI application: interceptors, route table and terminal handlers.

    Usage::

        pipeline = await RoutingPipeline.create(config, Collaborators(editor=editor))
        # or let lifespan startup build it:
        pipeline = RoutingPipeline(config, collaborators)

    Thread safety:
        Serving never mutates the pipeline. The one-time build in
        ``start()`` is guarded by a lock with a double check, so
        concurrent first connections build it exactly once.
    """

    __slots__ = (
        "_collaborators",
        "_config",
        "_counter",
        "_heart",
        "_http_chain",
        "_interceptors",
        "_kida_env",
        "_plugins",
        "_start_lock",
        "_started",
        "_table",
    )

    def __init__(
        self,
        config: ServerConfig | None = None,
        collaborators: Collaborators | None = None,
        *,
        heart: Heart | None = None,
        plugins: PluginRegistry | None = None,
        kida_env: Environment | None = None,
    ) -> None:
        self._config = config or ServerConfig()
        self._collaborators = collaborators or Collaborators()
        self._counter = ConnectionCounter()
        self._heart = heart or Heart(
            self._config.heartbeat_path,
            self._counter.count,
            interval=self._config.heartbeat_interval,
        )
        self._plugins = plugins or PluginRegistry.from_config(self._config)
        self._kida_env = kida_env or create_environment(self._config)
        self._interceptors: tuple[SubApp, ...] = (
            EnforceTLS(enabled=self._config.tls_enabled),
            RobotsTxt(),
        )
        self._table: RouteTable | None = None
        self._http_chain: Next | None = None
        self._start_lock = asyncio.Lock()
        self._started = False

    @classmethod
    async def create(
        cls,
        config: ServerConfig | None = None,
        collaborators: Collaborators | None = None,
        **kwargs: Any,
    ) -> "RoutingPipeline":
        """Build a pipeline and load its plugins before returning it."""
        pipeline = cls(config, collaborators, **kwargs)
        await pipeline.start()
        return pipeline

    # -- Introspection --

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def heart(self) -> Heart:
        return self._heart

    @property
    def plugins(self) -> PluginRegistry:
        return self._plugins

    @property
    def connections(self) -> ConnectionCounter:
        return self._counter

    @property
    def table(self) -> RouteTable:
        if self._table is None:
            msg = "RoutingPipeline has not been started; call start() first"
            raise RuntimeError(msg)
        return self._table

    def describe(self, surface: Surface = Surface.HTTP) -> list[tuple[str, str]]:
        """``(prefix, name)`` pairs in precedence order."""
        return self.table.describe(surface)

    # -- Lifecycle --

    async def start(self) -> None:
        """Load plugins and compile the route table. Idempotent."""
        if self._started:
            return
        async with self._start_lock:
            if self._started:
                return
            await self._plugins.load()
            table = build_route_table(
                self._config,
                self._collaborators,
                self._plugins,
                kida_env=self._kida_env,
            )
            self._http_chain = _compose(self._interceptors, table.dispatch)
            self._table = table
            self._started = True
            logger.info(
                "Pipeline ready: %d HTTP and %d WebSocket entries",
                len(table.entries_for(Surface.HTTP)),
                len(table.entries_for(Surface.WS)),
            )

    async def shutdown(self) -> None:
        """Stop the heart and deinit plugins."""
        self._heart.dispose()
        await self._plugins.dispose()

    # -- Per-connection --

    def _prepare(self, request: Request) -> None:
        self._heart.beat()
        g.config = self._config
        g.heart = self._heart

    async def _dispatch_websocket(self, ws: WebSocket) -> None:
        # A handshake cannot be redirected; refuse it instead
        if self._config.tls_enabled and not ws.request.is_encrypted:
            logger.debug("Refusing unencrypted WebSocket %s", ws.request.original_path)
            await ws.close(_POLICY_VIOLATION, "TLS required")
            return
        await self.table.dispatch_websocket(ws)

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point for ``lifespan``, ``http`` and ``websocket`` scopes."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        await self.start()
        assert self._http_chain is not None

        with self._counter.track():
            if scope["type"] == "http":
                await handle_request(
                    scope,
                    receive,
                    send,
                    dispatch=self._http_chain,
                    prepare=self._prepare,
                    kida_env=self._kida_env,
                    template_vars=self._collaborators.template_vars,
                )
            elif scope["type"] == "websocket":
                await handle_websocket(
                    scope,
                    receive,
                    send,
                    dispatch=self._dispatch_websocket,
                    prepare=self._prepare,
                    on_message=self._heart.beat,
                )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    await self.start()
                except Exception as exc:
                    logger.exception("Pipeline failed to start")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return
