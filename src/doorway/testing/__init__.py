"""Test utilities for doorway pipelines.

Provides an in-process ASGI test client with a WebSocket session helper::

    from doorway.testing import TestClient
"""

from doorway.testing.client import TestClient, WebSocketSession

__all__ = [
    "TestClient",
    "WebSocketSession",
]
