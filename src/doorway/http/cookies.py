"""Cookie parsing and SetCookie serialization.

Requests on both the HTTP and the WebSocket surface get their ``Cookie``
header parsed once, so authentication gates can read session keys.
Sub-apps such as the login router attach ``SetCookie`` to responses.
"""

from dataclasses import dataclass
from urllib.parse import unquote


def parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header value into a name-value dict.

    Values are percent-decoded. The first occurrence of a name wins.
    Returns an empty dict for empty or missing headers.
    """
    if not header:
        return {}
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        key, sep, value = pair.strip().partition("=")
        if not sep or not key.strip():
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies.setdefault(key.strip(), unquote(value))
    return cookies


@dataclass(frozen=True, slots=True)
class SetCookie:
    """A ``Set-Cookie`` directive attached to a Response."""

    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    def to_header_value(self) -> str:
        """Serialize to a ``Set-Cookie`` header value string."""
        parts = [f"{self.name}={self.value}"]
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite}")
        return "; ".join(parts)
