"""``/api/applications``: the applications contributed by loaded plugins."""

from typing import TYPE_CHECKING, Any

from doorway.routing.router import SubRouter

if TYPE_CHECKING:
    from doorway.plugins import PluginRegistry


def applications_router(registry: "PluginRegistry") -> SubRouter:
    """A sub-router answering ``GET /`` with the JSON application list.

    Any other path falls through, so per-plugin routers mounted under the
    same namespace stay reachable.
    """
    router = SubRouter("applications")

    @router.get("/")
    async def list_applications() -> list[dict[str, Any]]:
        return await registry.applications()

    return router
