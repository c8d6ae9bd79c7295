"""Invoke helpers: call sync or async callables uniformly.

Gates, connection probes, and plugin lifecycle hooks can be ``def`` or
``async def``. Any code that calls one of them goes through ``invoke`` so
the sync/async check lives in exactly one place.
"""

import inspect
from typing import Any


async def invoke(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *func* and await the result if it is awaitable.

    Works with both sync and async callables::

        def is_authenticated(request):
            return request.cookies.get("key") == expected

        async def live_connections():
            return await transport.count()

        allowed = await invoke(is_authenticated, request)
        count = await invoke(live_connections)
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
