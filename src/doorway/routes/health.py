"""``/healthz``: liveness as seen by the activity monitor."""

from typing import Any

from doorway.context import get_heart
from doorway.routing.router import SubRouter


def health_router() -> SubRouter:
    """A sub-router answering ``GET /`` with the heart's state.

    ``status`` is ``"alive"`` while the last beat is within one interval
    and ``"expired"`` afterwards; ``lastHeartbeat`` is in milliseconds.
    """
    router = SubRouter("health")

    @router.get("/")
    def status() -> dict[str, Any]:
        heart = get_heart()
        return {
            "status": "alive" if heart.alive() else "expired",
            "lastHeartbeat": int(heart.last_heartbeat * 1000),
        }

    return router
