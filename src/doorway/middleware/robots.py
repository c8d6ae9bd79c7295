"""Serves `/robots.txt`, a fixed-path static file answered before any router."""

import mimetypes
from pathlib import Path

import anyio

from doorway.http.request import Request
from doorway.http.response import Response
from doorway.middleware.protocol import Next

ROBOTS_PATH = "/robots.txt"
DEFAULT_ROBOTS_FILE = Path(__file__).resolve().parent.parent / "assets" / "robots.txt"


class RobotsTxt:
    """Serves the robots file for the exact original path ``/robots.txt``.

    The file is read asynchronously on every request; a missing file
    surfaces as ``FileNotFoundError`` and therefore as a 404.
    """

    __slots__ = ("_file",)

    def __init__(self, file: str | Path = DEFAULT_ROBOTS_FILE) -> None:
        self._file = Path(file)

    async def __call__(self, request: Request, next: Next) -> Response:
        if request.original_path != ROBOTS_PATH:
            return await next(request)

        content_type, _ = mimetypes.guess_type(self._file.name)
        body = await anyio.Path(self._file).read_bytes()
        return Response(body=body, content_type=content_type or "text/plain")
