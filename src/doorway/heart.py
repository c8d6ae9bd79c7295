"""Activity monitor: the heartbeat behind idle shutdown.

Every handled request and every inbound WebSocket message calls
``Heart.beat()``. The heart records the time and, at most once per
interval, touches a heartbeat file so an external idle-shutdown policy (or a
restarted process) can see recent activity from the file's mtime. While live
connections remain open the heart keeps itself alive by re-beating every
interval.

The heart only supplies the signal; it never shuts anything down.

Thread safety:
    ``beat()`` runs on the event loop thread and only does a timestamp write
    plus task scheduling, so no locks are needed.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path

import anyio

from doorway._internal.invoke import invoke

logger = logging.getLogger("doorway.heart")

# Returns the number of live connections; may be sync or async
type ConnectionProbe = Callable[[], int | Awaitable[int]]


class ConnectionCounter:
    """Counts connections currently open on the listener.

    The ASGI adapter wraps every ``http`` and ``websocket`` scope in
    ``track()``; ``count()`` is the default probe for ``Heart.is_active``.
    """

    __slots__ = ("_open",)

    def __init__(self) -> None:
        self._open = 0

    def count(self) -> int:
        return self._open

    @contextlib.contextmanager
    def track(self) -> Iterator[None]:
        self._open += 1
        try:
            yield
        finally:
            self._open -= 1


class Heart:
    """Records activity and answers whether the server is active.

    Usage::

        counter = ConnectionCounter()
        heart = Heart(config.heartbeat_path, counter.count)

        heart.beat()                 # on every request / message
        if await heart.is_active():  # polled by the idle policy
            ...
    """

    __slots__ = ("_clock", "_interval", "_path", "_probe", "_tasks", "_timer", "last_heartbeat")

    def __init__(
        self,
        heartbeat_path: str | Path,
        is_active: ConnectionProbe,
        *,
        interval: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(heartbeat_path)
        self._probe = is_active
        self._interval = interval
        self._clock = clock
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self.last_heartbeat: float = 0.0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def interval(self) -> float:
        return self._interval

    def alive(self) -> bool:
        """True if the last beat happened less than one interval ago."""
        return self._clock() - self.last_heartbeat < self._interval

    def beat(self) -> None:
        """Record activity now. Cheap, synchronous, never suspends.

        Repeated beats within one interval only cost a clock read. The
        first beat of an interval schedules the heartbeat file write and
        re-arms the keep-alive timer.
        """
        if self.alive():
            return
        self._record()

    async def is_active(self) -> bool:
        """True if the connection probe reports at least one live connection.

        Probe failures propagate to the caller; an unreachable transport
        is not the same as an idle one.
        """
        count = await invoke(self._probe)
        logger.debug("%d active connection%s", count, "" if count == 1 else "s")
        return count > 0

    def dispose(self) -> None:
        """Stop the keep-alive timer and cancel pending heartbeat writes."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    # -- Internal --

    def _record(self) -> None:
        logger.debug("heartbeat")
        self.last_heartbeat = self._clock()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (startup code, CLI): persist inline, no timer.
            self._touch_sync()
            return

        self._spawn(self._touch())
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._interval, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn(self._keep_alive())

    async def _keep_alive(self) -> None:
        try:
            active = await self.is_active()
        except Exception as exc:
            logger.warning("Heartbeat activity check failed: %s", exc)
            return
        # Bypasses the beat() throttle; alive() may not have lapsed yet
        if active:
            self._record()

    async def _touch(self) -> None:
        path = anyio.Path(self._path)
        try:
            await path.parent.mkdir(parents=True, exist_ok=True)
            await path.touch()
        except OSError as exc:
            logger.warning("Could not write heartbeat file %s: %s", self._path, exc)

    def _touch_sync(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.touch()
        except OSError as exc:
            logger.warning("Could not write heartbeat file %s: %s", self._path, exc)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
