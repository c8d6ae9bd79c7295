"""Doorway exception hierarchy and the error envelope.

Shared across the route table, sub-routers, the pipeline and the terminal
handlers so every module raises and catches the same types.

Failures reach the terminal handlers in many shapes: doorway's own
``HTTPError``, ``OSError`` from file access, or foreign exceptions that carry
duck-typed ``status`` / ``status_code`` / ``code`` / ``details`` attributes.
``envelope_from_exception`` reconciles all of them into one ``ErrorEnvelope``.
"""

import errno
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

DEFAULT_ERROR_MESSAGE = "An unknown server error occurred"

# Filesystem failure codes that mean "nothing to serve here".
NOT_FOUND_CODES: frozenset[str] = frozenset({"ENOENT", "EISDIR"})


class DoorwayError(Exception):
    """Base for all doorway-specific errors."""


class ConfigurationError(DoorwayError):
    """Raised when server configuration is invalid.

    Typically raised while the pipeline builds its route tables.
    """


class PluginError(DoorwayError):
    """Raised when a plugin cannot be loaded or fails validation."""


@dataclass(frozen=True, slots=True)
class HTTPError(DoorwayError):
    """An error that maps directly to an HTTP status code.

    Raised by gates, sub-routers, or the catch-all. The terminal handler
    turns it into a negotiated JSON or HTML response.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()
    details: Mapping[str, Any] | None = field(default=None, compare=False)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: nothing in the pipeline claimed the request."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class Unauthorized(HTTPError):  # noqa: N818
    """401: an authentication gate rejected the request."""

    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(status=401, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818
    """405: route exists but not for this HTTP method.

    Includes an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorKind(StrEnum):
    """Coarse classification of a failure at the terminal boundary."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    HTTP = "http"
    SERVER_ERROR = "server_error"


@dataclass(frozen=True, slots=True)
class ErrorEnvelope:
    """Normalized failure consumed once by a terminal handler.

    Attributes:
        kind: Classification derived from the resolved status.
        status: HTTP status code to respond with.
        message: Human-readable message (``error`` in JSON bodies).
        details: Extra structured fields merged into JSON bodies.
        code: Machine code carried by the failure (e.g. ``"ENOENT"``).
        headers: Response headers the failure asked for (e.g. ``Allow``).
    """

    kind: ErrorKind
    status: int
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)
    code: str | None = None
    headers: tuple[tuple[str, str], ...] = ()

    def to_json(self) -> dict[str, Any]:
        """Body for JSON error responses: ``{"error": message, **details}``."""
        return {"error": self.message, **self.details}


def _error_code(exc: BaseException) -> str | None:
    """Return the machine code of a failure, if it carries one.

    Honors a string ``code`` attribute first, then maps ``OSError.errno``
    to its symbolic name (``2`` → ``"ENOENT"``).
    """
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return code
    if isinstance(exc, OSError) and exc.errno is not None:
        return errno.errorcode.get(exc.errno)
    return None


def _resolve_status(exc: BaseException, code: str | None) -> int:
    if isinstance(exc, (FileNotFoundError, IsADirectoryError)) or code in NOT_FOUND_CODES:
        return 404
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and 100 <= value <= 599:
            return value
    return 500


def _kind_for(status: int) -> ErrorKind:
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status == 401:
        return ErrorKind.UNAUTHORIZED
    if status >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.HTTP


def envelope_from_exception(exc: BaseException) -> ErrorEnvelope:
    """Convert any failure into an ``ErrorEnvelope``.

    Status resolution order:

    1. filesystem "entry not found" / "is a directory" → 404
    2. an explicit ``status`` attribute
    3. a legacy ``status_code`` attribute
    4. 500
    """
    code = _error_code(exc)
    status = _resolve_status(exc, code)

    if isinstance(exc, HTTPError):
        message = exc.detail
        headers = exc.headers
    else:
        message = str(exc)
        headers = ()

    details = getattr(exc, "details", None)
    return ErrorEnvelope(
        kind=_kind_for(status),
        status=status,
        message=message or DEFAULT_ERROR_MESSAGE,
        details=dict(details) if isinstance(details, Mapping) else {},
        code=code,
        headers=headers,
    )
