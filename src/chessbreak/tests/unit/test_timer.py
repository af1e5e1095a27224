import asyncio

from chessbreak.logic.timer import LockoutTimer


async def _noop() -> None:
    pass


class TestLockoutTimer:
    async def test_callback_fires_after_delay(self):
        timer = LockoutTimer()
        fired = asyncio.Event()

        async def on_expire():
            fired.set()

        timer.start(20, on_expire)
        assert timer.running
        await asyncio.wait_for(fired.wait(), timeout=1.0)
        assert not timer.running

    async def test_cancel_prevents_callback(self):
        timer = LockoutTimer()
        called = False

        async def on_expire():
            nonlocal called
            called = True

        timer.start(20, on_expire)
        assert timer.cancel() is True

        await asyncio.sleep(0.05)
        assert called is False
        assert timer.remaining_seconds == 0.0

    async def test_cancel_when_idle_returns_false(self):
        assert LockoutTimer().cancel() is False

    async def test_restart_replaces_pending_schedule(self):
        timer = LockoutTimer()
        calls = []

        async def first():
            calls.append("first")

        async def second():
            calls.append("second")

        timer.start(1000, first)
        timer.start(10, second)
        await asyncio.sleep(0.05)

        assert calls == ["second"]

    async def test_remaining_seconds_tracks_deadline(self):
        timer = LockoutTimer()
        timer.start(10_000, _noop)

        assert 9.0 < timer.remaining_seconds <= 10.0
        timer.cancel()

    async def test_callback_may_cancel_its_own_timer(self):
        timer = LockoutTimer()
        done = asyncio.Event()

        async def on_expire():
            assert timer.cancel() is False
            await asyncio.sleep(0)
            done.set()

        timer.start(0, on_expire)
        await asyncio.wait_for(done.wait(), timeout=1.0)

    async def test_callback_error_is_logged_not_raised(self):
        timer = LockoutTimer()

        async def on_expire():
            raise ConnectionError("page gone")

        timer.start(0, on_expire)
        await asyncio.sleep(0.02)

        assert not timer.running
