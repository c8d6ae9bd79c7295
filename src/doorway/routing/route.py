"""Route and RouteMatch frozen dataclasses for sub-router tables."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:  ``/status``   (is_param=False)
    Param:   ``/{port}``   (is_param=True, param_name="port")
    Typed:   ``/{port:int}`` (is_param=True, param_name="port", param_type="int")
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    param_type: str = "str"


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route inside a ``SubRouter``.

    WebSocket routes carry the pseudo-method ``WEBSOCKET``.
    """

    path: str
    handler: Callable[..., Any]
    methods: frozenset[str]
    name: str | None = None


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match."""

    route: Route
    path_params: dict[str, str]
