"""Tests for doorway.heart: the activity monitor."""

import asyncio
import logging

import pytest

from doorway.heart import ConnectionCounter, Heart


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


async def _eventually(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestConnectionCounter:
    def test_track(self) -> None:
        counter = ConnectionCounter()
        assert counter.count() == 0
        with counter.track():
            assert counter.count() == 1
            with counter.track():
                assert counter.count() == 2
        assert counter.count() == 0

    def test_track_releases_on_error(self) -> None:
        counter = ConnectionCounter()
        with pytest.raises(RuntimeError), counter.track():
            raise RuntimeError("boom")
        assert counter.count() == 0


class TestBeatWithoutLoop:
    def test_first_beat_records_and_touches(self, tmp_path) -> None:
        path = tmp_path / "data" / "heartbeat"
        clock = FakeClock()
        heart = Heart(path, lambda: 0, interval=60, clock=clock)

        assert not heart.alive()
        heart.beat()

        assert heart.last_heartbeat == 1_000.0
        assert heart.alive()
        assert path.exists()

    def test_beats_within_interval_are_throttled(self, tmp_path) -> None:
        path = tmp_path / "heartbeat"
        clock = FakeClock()
        heart = Heart(path, lambda: 0, interval=60, clock=clock)

        heart.beat()
        path.unlink()
        clock.now += 30
        heart.beat()

        assert heart.last_heartbeat == 1_000.0
        assert not path.exists()

    def test_beat_after_interval_records_again(self, tmp_path) -> None:
        clock = FakeClock()
        heart = Heart(tmp_path / "heartbeat", lambda: 0, interval=60, clock=clock)

        heart.beat()
        clock.now += 61
        assert not heart.alive()
        heart.beat()
        assert heart.last_heartbeat == 1_061.0

    def test_unwritable_heartbeat_is_logged(self, tmp_path, caplog) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        heart = Heart(blocker / "heartbeat", lambda: 0, clock=FakeClock())

        with caplog.at_level(logging.WARNING, logger="doorway.heart"):
            heart.beat()

        assert heart.alive()
        assert "Could not write heartbeat file" in caplog.text


class TestBeatOnLoop:
    async def test_touch_runs_in_background(self, tmp_path) -> None:
        path = tmp_path / "heartbeat"
        heart = Heart(path, lambda: 0, interval=60)
        try:
            heart.beat()
            await _eventually(path.exists)
        finally:
            heart.dispose()

    async def test_timer_rebeats_while_active(self, tmp_path) -> None:
        calls: list[int] = []

        def probe() -> int:
            calls.append(1)
            return 1

        heart = Heart(tmp_path / "heartbeat", probe, interval=0.05)
        try:
            heart.beat()
            first = heart.last_heartbeat
            await _eventually(lambda: heart.last_heartbeat > first)
            assert calls
        finally:
            heart.dispose()

    async def test_timer_stops_when_idle(self, tmp_path) -> None:
        calls: list[int] = []

        async def probe() -> int:
            calls.append(1)
            return 0

        heart = Heart(tmp_path / "heartbeat", probe, interval=0.05)
        try:
            heart.beat()
            first = heart.last_heartbeat
            await _eventually(lambda: len(calls) == 1)
            await asyncio.sleep(0.15)
            assert heart.last_heartbeat == first
            assert len(calls) == 1
        finally:
            heart.dispose()

    async def test_timer_probe_failure_is_a_warning(self, tmp_path, caplog) -> None:
        def probe() -> int:
            raise OSError("transport unavailable")

        heart = Heart(tmp_path / "heartbeat", probe, interval=0.05)
        try:
            with caplog.at_level(logging.WARNING, logger="doorway.heart"):
                heart.beat()
                await _eventually(lambda: "transport unavailable" in caplog.text)
            assert "Heartbeat activity check failed" in caplog.text
        finally:
            heart.dispose()

    async def test_dispose_cancels_timer(self, tmp_path) -> None:
        calls: list[int] = []

        def probe() -> int:
            calls.append(1)
            return 1

        heart = Heart(tmp_path / "heartbeat", probe, interval=0.05)
        heart.beat()
        heart.dispose()
        await asyncio.sleep(0.15)
        assert calls == []


class TestIsActive:
    async def test_sync_probe(self, tmp_path) -> None:
        assert await Heart(tmp_path / "h", lambda: 2).is_active()
        assert not await Heart(tmp_path / "h", lambda: 0).is_active()

    async def test_async_probe(self, tmp_path) -> None:
        async def probe() -> int:
            return 1

        assert await Heart(tmp_path / "h", probe).is_active()

    async def test_probe_errors_propagate(self, tmp_path) -> None:
        def probe() -> int:
            raise OSError("socket gone")

        with pytest.raises(OSError, match="socket gone"):
            await Heart(tmp_path / "h", probe).is_active()

    async def test_connection_counter_as_probe(self, tmp_path) -> None:
        counter = ConnectionCounter()
        heart = Heart(tmp_path / "h", counter.count)
        assert not await heart.is_active()
        with counter.track():
            assert await heart.is_active()
