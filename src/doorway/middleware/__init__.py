"""Sub-apps and interceptors: Protocol-based, no inheritance required.

A sub-app is any callable matching one of:
    async def app(request: Request, next: Next) -> Response
    async def ws_app(ws: WebSocket, next: WebSocketNext) -> None

Built-in:
    EnforceTLS -- Redirect plain-HTTP requests to HTTPS when TLS is configured
    RobotsTxt -- Serve /robots.txt before any router
    ServeDirectory -- Serve a local directory (files, index, listing)
"""

from doorway.middleware.protocol import Next, SubApp, WebSocketNext, WebSocketSubApp
from doorway.middleware.robots import RobotsTxt
from doorway.middleware.static import ServeDirectory
from doorway.middleware.tls import EnforceTLS

__all__ = [
    "EnforceTLS",
    "Next",
    "RobotsTxt",
    "ServeDirectory",
    "SubApp",
    "WebSocketNext",
    "WebSocketSubApp",
]
