"""WsErrorTeardown: the terminal handler of the WebSocket surface.

A WebSocket has no channel for a negotiated error body, so the only
contract is that a failed connection is destroyed, never left open and never
dropped silently.
"""

import logging
import traceback

from doorway.websocket import WebSocket

logger = logging.getLogger("doorway.server")


async def teardown_websocket(exc: BaseException, ws: WebSocket) -> None:
    """Log *exc* with its stack, then destroy the connection with it attached."""
    stack = "".join(traceback.format_exception(exc)).rstrip()
    logger.error("%s %s", exc, stack)
    await ws.destroy(exc)
