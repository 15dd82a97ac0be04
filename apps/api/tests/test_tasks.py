"""Tests for the background task runner."""

import asyncio
import logging

import pytest

from api.tasks import BackgroundTaskRunner


@pytest.fixture
def runner():
    return BackgroundTaskRunner()


class TestSubmit:
    """Tests for immediate background work."""

    @pytest.mark.asyncio
    async def test_runs_coroutine(self, runner):
        """Submitted work runs and drain waits for it."""
        done = []

        async def job():
            await asyncio.sleep(0)
            done.append(True)

        runner.submit(job(), key="a")
        assert await runner.drain(timeout=1)
        assert done == [True]
        assert runner.running_count == 0
        assert not runner.is_running("a")

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, runner, caplog):
        """Exceptions in background work are logged."""

        async def job():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="lead-delivery-tasks"):
            runner.submit(job(), key="bad")
            assert await runner.drain(timeout=1)

        assert "boom" in caplog.text
        assert not runner.is_running("bad")

    @pytest.mark.asyncio
    async def test_same_key_runs_once(self, runner):
        """A second submission for a running key is dropped."""
        release = asyncio.Event()
        runs = []

        async def job(n):
            runs.append(n)
            await release.wait()

        assert runner.submit(job(1), key="k") is not None
        await asyncio.sleep(0)
        assert runner.submit(job(2), key="k") is None

        release.set()
        await runner.drain(timeout=1)
        assert runs == [1]

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self, runner):
        """Work under different keys does not coordinate."""
        runs = []

        async def job(n):
            runs.append(n)

        runner.submit(job(1), key="a")
        runner.submit(job(2), key="b")
        await runner.drain(timeout=1)
        assert sorted(runs) == [1, 2]

    @pytest.mark.asyncio
    async def test_submit_replaces_pending_timer(self, runner):
        """Running a key immediately cancels its pending timer."""
        runs = []

        async def job(n):
            runs.append(n)

        runner.schedule(60, lambda: job("timer"), key="k")
        assert runner.has_timer("k")

        runner.submit(job("now"), key="k")
        assert not runner.has_timer("k")

        await runner.drain(timeout=1, include_timers=True)
        assert runs == ["now"]


class TestSchedule:
    """Tests for delayed work."""

    @pytest.mark.asyncio
    async def test_runs_after_delay(self, runner):
        """Scheduled work runs once the delay passes."""
        runs = []

        async def job():
            runs.append(True)

        runner.schedule(0.01, job, key="k")
        assert runner.scheduled_count == 1

        assert await runner.drain(timeout=1, include_timers=True)
        assert runs == [True]
        assert runner.scheduled_count == 0

    @pytest.mark.asyncio
    async def test_reschedule_replaces_timer(self, runner):
        """Only one timer exists per key."""
        runs = []

        async def job(n):
            runs.append(n)

        runner.schedule(0.01, lambda: job(1), key="k")
        runner.schedule(0.01, lambda: job(2), key="k")
        assert runner.scheduled_count == 1

        await runner.drain(timeout=1, include_timers=True)
        assert runs == [2]

    @pytest.mark.asyncio
    async def test_drain_ignores_timers_by_default(self, runner):
        """Plain drain only waits for running work."""

        async def job():
            pass

        runner.schedule(60, job, key="k")
        assert await runner.drain(timeout=0.5)
        assert runner.has_timer("k")
        await runner.shutdown()


class TestShutdown:
    """Tests for lifecycle handling."""

    @pytest.mark.asyncio
    async def test_cancels_timers(self, runner):
        """Shutdown drops pending timers without running them."""
        runs = []

        async def job():
            runs.append(True)

        runner.schedule(60, job, key="k")
        await runner.shutdown(timeout=1)

        assert runner.scheduled_count == 0
        assert runs == []

    @pytest.mark.asyncio
    async def test_rejects_new_work(self, runner):
        """Nothing is accepted after shutdown."""
        await runner.shutdown(timeout=1)

        async def job():
            pass

        assert runner.submit(job(), key="k") is None
        runner.schedule(0, job, key="k")
        assert runner.scheduled_count == 0

    @pytest.mark.asyncio
    async def test_cancels_work_past_grace_period(self, runner):
        """Work still running after the grace period is cancelled."""
        cancelled = []

        async def job():
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        runner.submit(job(), key="slow")
        await asyncio.sleep(0)
        await runner.shutdown(timeout=0.05)

        assert cancelled == [True]
        assert runner.running_count == 0

    @pytest.mark.asyncio
    async def test_drain_timeout(self, runner):
        """Drain reports False when work outlives the timeout."""
        release = asyncio.Event()

        async def job():
            await release.wait()

        runner.submit(job(), key="k")
        assert not await runner.drain(timeout=0.05)

        release.set()
        assert await runner.drain(timeout=1)
