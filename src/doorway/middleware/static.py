"""Local directory serving, mounted behind the authentication gate.

Serves files from a directory relative to the mount point. Directories are
answered with their index file when one exists and with a rendered listing
otherwise. Paths that resolve outside the directory are refused.

Falls through to the next entry for paths that do not exist.
"""

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import anyio
from kida import Environment

from doorway.http.request import Request
from doorway.http.response import Redirect, Response
from doorway.middleware.protocol import Next

LISTING_TEMPLATE = "directory/index.html"


def _with_slash(request: Request) -> str:
    """The URL *request* was sent to, with a trailing slash on the path."""
    qs = request.query.raw
    location = request.raw_path + "/"
    return f"{location}?{qs.decode('latin-1')}" if qs else location


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    """One row of a directory listing."""

    name: str
    href: str
    is_dir: bool
    size: int


class ServeDirectory:
    """Sub-app that serves a local directory.

    Security: resolves symlinks and verifies the final path is within the
    configured directory to prevent path traversal.

    Usage::

        RouteEntry("/local", ServeDirectory(config.local_directory, env=env),
                   gate=authenticate)
    """

    __slots__ = ("_cache_control", "_directory", "_env", "_index")

    def __init__(
        self,
        directory: str | Path,
        *,
        env: Environment | None = None,
        index: str = "index.html",
        cache_control: str = "no-cache",
    ) -> None:
        self._directory = Path(directory).resolve()
        self._env = env
        self._index = index
        self._cache_control = cache_control

    @property
    def directory(self) -> Path:
        return self._directory

    async def __call__(self, request: Request, next: Next) -> Response:
        """Serve a file or listing, or fall through."""
        if request.method not in ("GET", "HEAD"):
            return await next(request)

        relative = request.path.lstrip("/")
        target = anyio.Path(self._directory)
        if relative:
            target = await (target / relative).resolve()
        if not target.is_relative_to(self._directory):
            return Response(body="Forbidden", status=403, content_type="text/plain; charset=utf-8")

        if await target.is_dir():
            # Relative links in a listing need the trailing slash
            if not request.raw_path.endswith("/"):
                return Redirect(_with_slash(request), status=301).to_response()
            index_path = target / self._index
            if await index_path.is_file():
                return await self._serve_file(index_path)
            if self._env is None:
                return await next(request)
            return await self._listing(target, request)

        if not await target.is_file():
            return await next(request)
        return await self._serve_file(target)

    # -- Helpers --

    async def _serve_file(self, file_path: anyio.Path) -> Response:
        content_type, _ = mimetypes.guess_type(file_path.name)
        body = await file_path.read_bytes()
        return Response(
            body=body,
            content_type=content_type or "application/octet-stream",
        ).with_header("Cache-Control", self._cache_control)

    async def _listing(self, directory: anyio.Path, request: Request) -> Response:
        assert self._env is not None
        entries: list[DirectoryEntry] = []
        async for child in directory.iterdir():
            is_dir = await child.is_dir()
            try:
                size = 0 if is_dir else (await child.stat()).st_size
            except OSError:
                # Dangling symlink or an entry removed mid-listing
                size = 0
            entries.append(
                DirectoryEntry(
                    name=child.name,
                    href=quote(child.name, safe="") + ("/" if is_dir else ""),
                    is_dir=is_dir,
                    size=size,
                )
            )
        entries.sort(key=lambda e: (not e.is_dir, e.name.lower()))

        html = self._env.get_template(LISTING_TEMPLATE).render(
            {
                "PATH": request.base_path + request.path,
                "ENTRIES": entries,
                "HAS_PARENT": request.path not in ("", "/"),
            }
        )
        return Response(body=html).with_header("Cache-Control", self._cache_control)
