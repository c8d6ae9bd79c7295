"""Immutable HTTP request.

Frozen metadata with async body access. Mounting a sub-app never mutates a
request: ``mounted()`` returns a copy whose ``path`` is relative to the
mount prefix, while ``original_path`` (decoded) and ``raw_path`` (as
sent) keep what the client actually asked for.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import quote

from doorway._internal.asgi import ConnectionScope, Receive
from doorway.http.cookies import parse_cookies
from doorway.http.headers import Headers, best_match
from doorway.http.query import QueryParams

# Characters left as-is when re-encoding a decoded path (RFC 3986 pchar and "/")
URL_SAFE = "/:@!$&'()*+,;=-._~"


def strip_prefix(path: str, prefix: str) -> str | None:
    """Return *path* relative to a mount *prefix*, or ``None`` if it doesn't match.

    ``/`` matches everything. Other prefixes match the exact path or a
    path continuing with ``/``: ``/proxy`` matches ``/proxy`` and
    ``/proxy/8080`` but not ``/proxyfoo``.
    """
    normalized = "/" + prefix.strip("/")
    if normalized == "/":
        return path or "/"
    if path == normalized:
        return "/"
    if path.startswith(normalized + "/"):
        return path[len(normalized) :]
    return None


def _raw_target(scope: ConnectionScope) -> str:
    """The request path as it appeared on the wire.

    ASGI servers percent-decode ``path``; ``raw_path`` keeps the original
    bytes. Servers that omit ``raw_path`` get ``path`` re-encoded.
    """
    if scope.raw_path:
        return scope.raw_path.decode("latin-1")
    return quote(scope.path, safe=URL_SAFE)


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    Body is accessed asynchronously via ``.body()``, ``.json()``, ``.text()``.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    http_version: str
    scheme: str
    server: tuple[str, int] | None
    client: tuple[str, int] | None
    cookies: Mapping[str, str]
    original_path: str
    raw_path: str
    base_path: str = ""
    path_params: dict[str, str] = field(default_factory=dict)

    # Private: ASGI receive callable for body streaming
    _receive: Receive | None = field(default=None, repr=False, compare=False)

    # Private: mutable cache for the body, shared by mounted copies
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Computed properties --

    @property
    def host(self) -> str:
        """The ``Host`` header, falling back to the listener address."""
        host = self.headers.get("host")
        if host:
            return host
        if self.server is not None:
            name, port = self.server
            return f"{name}:{port}"
        return ""

    @property
    def hostname(self) -> str:
        """``host`` without the port (IPv6 brackets are kept)."""
        host = self.host
        if host.startswith("["):
            return host.partition("]")[0] + "]"
        return host.rsplit(":", 1)[0] if ":" in host else host

    @property
    def is_encrypted(self) -> bool:
        """True when the connection arrived over TLS."""
        return self.scheme in ("https", "wss")

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    @property
    def url(self) -> str:
        """Original request URL as the client sent it, percent-encoding intact.

        Unaffected by mounting, like Express's ``originalUrl``. Safe to put
        in a header: it only ever holds the ASCII request target.
        """
        qs = self.query.raw
        if qs:
            return f"{self.raw_path}?{qs.decode('latin-1')}"
        return self.raw_path

    def accepts(self, *offers: str) -> str | None:
        """Return the offered media type the client prefers, or ``None``.

        A request without an ``Accept`` header accepts the first offer.
        """
        return best_match(self.headers.get("accept"), offers)

    def mounted(self, prefix: str) -> Request:
        """Return a copy of this request as seen by a sub-app mounted at *prefix*.

        Raises ``ValueError`` if the path is outside *prefix*.
        """
        relative = strip_prefix(self.path, prefix)
        if relative is None:
            msg = f"{self.path!r} is not under mount prefix {prefix!r}"
            raise ValueError(msg)
        stripped = prefix.strip("/")
        consumed = f"/{stripped}" if stripped else ""
        return replace(self, path=relative, base_path=self.base_path + consumed)

    def with_path_params(self, params: dict[str, str]) -> Request:
        """Return a copy carrying the matched route's path parameters."""
        return replace(self, path_params=params)

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body.

        Result is cached: the ASGI receive is consumed once, then
        the same bytes are returned on subsequent calls.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        if self._receive is None:
            return
        while True:
            message = await self._receive()
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        """Parse the body as JSON."""
        import json as json_module

        raw = await self.body()
        return json_module.loads(raw)

    async def text(self) -> str:
        """Read the body as text (UTF-8)."""
        raw = await self.body()
        return raw.decode("utf-8")

    # -- Factory --

    @classmethod
    def from_scope(cls, scope: ConnectionScope, receive: Receive | None = None) -> Request:
        """Create a Request from a typed ASGI scope and receive callable."""
        headers = Headers(scope.headers)
        return cls(
            method=scope.method,
            path=scope.path,
            headers=headers,
            query=QueryParams(scope.query_string),
            http_version=scope.http_version,
            scheme=scope.scheme,
            server=scope.server,
            client=scope.client,
            cookies=parse_cookies(headers.get("cookie", "")),
            original_path=scope.path,
            raw_path=_raw_target(scope),
            _receive=receive,
        )
