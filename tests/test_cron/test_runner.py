"""Tests for JobRunner: trigger matching, once-per-minute dispatch, retry and stop."""

from __future__ import annotations

import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from stepcast.cron.runner import JobRunner
from stepcast.models import Job, RunnerState, SendResult

UTC_ZONE = ZoneInfo("UTC")


class Recorder:
    """Dispatch callback that advances the job the way the engine does."""

    def __init__(self) -> None:
        self.dispatched: list[int] = []
        self.minutes: list[datetime] = []

    async def __call__(self, job: Job, minute: datetime) -> None:
        self.dispatched.append(job.current_number)
        self.minutes.append(minute)
        job.current_number += job.step


def _runner(job, notifier, clock, callback, tz=UTC_ZONE, **kwargs) -> JobRunner:
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("post_dispatch_pause", 0.01)
    return JobRunner(job, notifier, "@numbers", tz, callback, clock=clock, **kwargs)


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture()
def job() -> Job:
    return Job(id=1, hour=14, minute=30, step=5, current_number=100)


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


# ── Single evaluation step ─────────────────────────────────────────────────


class TestTick:
    @pytest.mark.asyncio
    async def test_sends_current_number_in_trigger_minute(self, job, notifier, clock, recorder) -> None:
        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, recorder)

        assert await runner.tick() is True
        assert notifier.calls == [("@numbers", "100")]
        assert job.current_number == 105
        assert runner.state is RunnerState.FIRED
        assert runner.last_fired_minute is not None
        assert runner.last_fired_minute.hour == 14
        assert runner.last_fired_minute.second == 0
        assert recorder.minutes == [runner.last_fired_minute]

    @pytest.mark.asyncio
    async def test_outside_trigger_minute_does_nothing(self, job, notifier, clock, recorder) -> None:
        clock.set(14, 29, 59)
        runner = _runner(job, notifier, clock, recorder)

        assert await runner.tick() is False
        clock.set(14, 31, 0)
        assert await runner.tick() is False
        assert notifier.calls == []
        assert runner.state is RunnerState.IDLE

    @pytest.mark.asyncio
    async def test_once_per_minute(self, job, notifier, clock, recorder) -> None:
        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, recorder)

        await runner.tick()
        for second in (5, 20, 59):
            clock.set(14, 30, second)
            assert await runner.tick() is False

        assert notifier.texts == ["100"]
        assert job.current_number == 105

    @pytest.mark.asyncio
    async def test_failure_retries_within_minute(self, job, notifier, clock, recorder) -> None:
        notifier.outcomes = [SendResult.failure("timeout"), SendResult.failure("timeout")]
        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, recorder)

        assert await runner.tick() is False
        assert job.current_number == 100
        assert runner.last_fired_minute is None

        clock.set(14, 30, 1)
        assert await runner.tick() is False
        clock.set(14, 30, 2)
        assert await runner.tick() is True

        assert notifier.texts == ["100", "100", "100"]
        assert job.current_number == 105
        assert recorder.dispatched == [100]

    @pytest.mark.asyncio
    async def test_notifier_exception_counts_as_failure(self, job, notifier, clock, recorder) -> None:
        notifier.outcomes = [RuntimeError("boom")]
        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, recorder)

        assert await runner.tick() is False
        assert job.current_number == 100

        clock.set(14, 30, 1)
        assert await runner.tick() is True
        assert job.current_number == 105

    @pytest.mark.asyncio
    async def test_no_retry_after_minute_ends(self, job, notifier, clock, recorder) -> None:
        notifier.always_fail = True
        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, recorder)
        await runner.tick()

        notifier.always_fail = False
        clock.set(14, 31, 0)
        assert await runner.tick() is False
        assert len(notifier.calls) == 1
        assert job.current_number == 100

    @pytest.mark.asyncio
    async def test_fires_again_next_day(self, job, notifier, clock, recorder) -> None:
        clock.set(14, 30, 0, day=1)
        runner = _runner(job, notifier, clock, recorder)
        await runner.tick()

        clock.set(14, 30, 0, day=2)
        assert await runner.tick() is True
        assert notifier.texts == ["100", "105"]
        assert job.current_number == 110

    @pytest.mark.asyncio
    async def test_evaluates_in_local_timezone(self, job, notifier, clock, recorder) -> None:
        # 11:00 UTC is 14:30 in Tehran (UTC+03:30)
        runner = _runner(job, notifier, clock, recorder, tz=ZoneInfo("Asia/Tehran"))

        clock.set(14, 30, 0)
        assert await runner.tick() is False

        clock.set(11, 0, 10)
        assert await runner.tick() is True
        assert notifier.texts == ["100"]

    @pytest.mark.asyncio
    async def test_zero_step_sends_same_number(self, notifier, clock, recorder) -> None:
        job = Job(id=2, hour=8, minute=0, step=0, current_number=42)
        runner = _runner(job, notifier, clock, recorder)

        clock.set(8, 0, 0, day=1)
        await runner.tick()
        clock.set(8, 0, 0, day=2)
        await runner.tick()

        assert notifier.texts == ["42", "42"]
        assert job.current_number == 42

    @pytest.mark.asyncio
    async def test_negative_step_counts_down(self, notifier, clock, recorder) -> None:
        job = Job(id=3, hour=0, minute=0, step=-3, current_number=1)
        runner = _runner(job, notifier, clock, recorder)

        clock.set(0, 0, 0, day=1)
        await runner.tick()
        clock.set(0, 0, 0, day=2)
        await runner.tick()

        assert notifier.texts == ["1", "-2"]
        assert job.current_number == -5

    @pytest.mark.asyncio
    async def test_cancelled_runner_does_not_send(self, job, notifier, clock, recorder) -> None:
        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, recorder)
        runner.cancel()

        assert runner.cancelled
        assert await runner.tick() is False
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_seeded_minute_is_not_served_again(self, job, notifier, clock, recorder) -> None:
        clock.set(14, 30, 0)
        served = clock().replace(second=0)
        runner = _runner(job, notifier, clock, recorder, last_fired_minute=served)

        clock.set(14, 30, 10)
        assert await runner.tick() is False
        assert notifier.calls == []
        assert job.current_number == 100


# ── Polling loop ───────────────────────────────────────────────────────────


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_loop_dispatches_once_and_stops(self, job, notifier, clock, recorder) -> None:
        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, recorder)
        task = runner.start()
        assert runner.start() is task

        await _wait_for(lambda: notifier.calls)
        # several more polls inside the same minute
        await asyncio.sleep(0.05)
        runner.cancel()
        await asyncio.wait_for(task, 1.0)

        assert notifier.texts == ["100"]
        assert job.current_number == 105
        assert runner.state is RunnerState.STOPPED
        assert task.get_name() == "stepcast-job-1"

    @pytest.mark.asyncio
    async def test_loop_retries_until_success(self, job, notifier, clock, recorder) -> None:
        notifier.outcomes = [SendResult.failure("x")] * 3
        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, recorder)
        task = runner.start()

        await _wait_for(lambda: recorder.dispatched)
        runner.cancel()
        await asyncio.wait_for(task, 1.0)

        assert notifier.texts == ["100"] * 4
        assert job.current_number == 105

    @pytest.mark.asyncio
    async def test_cancel_interrupts_long_sleep(self, job, notifier, clock, recorder) -> None:
        runner = _runner(job, notifier, clock, recorder, poll_interval=60.0)
        task = runner.start()
        await asyncio.sleep(0.02)

        runner.cancel()
        await asyncio.wait_for(task, 1.0)
        assert runner.state is RunnerState.STOPPED

    @pytest.mark.asyncio
    async def test_callback_error_does_not_kill_loop(self, job, notifier, clock) -> None:
        calls: list[int] = []

        async def failing(job: Job, minute: datetime) -> None:
            calls.append(job.current_number)
            raise RuntimeError("disk gone")

        clock.set(14, 30, 0)
        runner = _runner(job, notifier, clock, failing)
        task = runner.start()

        await _wait_for(lambda: len(calls) >= 2)
        assert not task.done()
        runner.cancel()
        await asyncio.wait_for(task, 1.0)
        assert runner.state is RunnerState.STOPPED
