"""Job runner: the per-job polling loop.

Every poll interval the runner converts the current time into the local
timezone and, when the job's trigger minute is reached and has not been
served yet, sends ``current_number`` through the notifier. A successful
send is reported back to the engine (which advances and persists the job
under its lock) and marks the minute as fired. A failed send leaves
everything untouched, so the next tick retries until the minute is over.

There is no catch-up: a trigger minute the process did not observe is
skipped.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Coroutine
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from stepcast.channels.base import Notifier
from stepcast.models import Job, RunnerState, SendResult, utc_now
from stepcast.utils.logging import bind_context, get_logger

log = get_logger(__name__)

# Called after a successful send with the served local minute; must
# advance and persist the job.
DispatchCallback = Callable[[Job, datetime], Coroutine[Any, Any, None]]
Clock = Callable[[], datetime]


class JobRunner:
    """Polls the clock for one job and dispatches once per trigger minute.

    The runner keeps a reference to the engine's canonical Job record and
    never a copy. ``last_fired_minute`` is seeded by the engine, which
    keeps it across runner replacement but not across process restarts.

    Attributes:
        job: The job this runner serves.
        last_fired_minute: Local minute (seconds zeroed) of the last
            successful dispatch, or None.
        state: Current RunnerState.
    """

    def __init__(
        self,
        job: Job,
        notifier: Notifier,
        destination: str,
        tz: ZoneInfo,
        on_dispatched: DispatchCallback,
        *,
        poll_interval: float = 1.0,
        post_dispatch_pause: float = 5.0,
        clock: Clock = utc_now,
        last_fired_minute: datetime | None = None,
    ) -> None:
        self.job = job
        self.last_fired_minute = last_fired_minute
        self.state = RunnerState.IDLE
        self._notifier = notifier
        self._destination = destination
        self._tz = tz
        self._on_dispatched = on_dispatched
        self._poll_interval = poll_interval
        self._post_dispatch_pause = post_dispatch_pause
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def job_id(self) -> int:
        return self.job.id

    @property
    def cancelled(self) -> bool:
        """True once cancellation was signalled."""
        return self._stop_event.is_set()

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def start(self) -> asyncio.Task[None]:
        """Spawns the polling loop as a task on the running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"stepcast-job-{self.job.id}")
        return self._task

    def cancel(self) -> None:
        """Signals the loop to stop. Does not wait and does not abort a send in flight."""
        self._stop_event.set()

    async def run(self) -> None:
        """The polling loop. Returns once cancellation is observed."""
        bind_context(job_id=self.job.id)
        log.info(
            "job_runner_started",
            at=self.job.trigger_label,
            current=self.job.current_number,
            step=self.job.step,
        )

        while not self.cancelled:
            pause = self._poll_interval
            try:
                if await self.tick():
                    pause = self._post_dispatch_pause
            except Exception:
                log.exception("job_loop_error")
                pause = self._post_dispatch_pause

            if await self._sleep(pause):
                break
            if self.state is RunnerState.FIRED:
                self.state = RunnerState.IDLE

        self.state = RunnerState.STOPPED
        log.info("job_runner_stopped")

    async def tick(self) -> bool:
        """Evaluates the trigger once.

        Returns:
            True if a dispatch succeeded on this tick.
        """
        if self.cancelled:
            return False

        now_local = self._clock().astimezone(self._tz)
        if not self.job.matches(now_local):
            self.state = RunnerState.IDLE
            return False

        minute_key = now_local.replace(second=0, microsecond=0)
        if minute_key == self.last_fired_minute:
            return False

        self.state = RunnerState.MATCHED
        number = self.job.current_number
        result = await self._send(str(number))
        if not result.ok:
            log.warning("job_send_failed", number=number, error=result.error)
            return False

        await self._on_dispatched(self.job, minute_key)
        self.last_fired_minute = minute_key
        self.state = RunnerState.FIRED
        log.info(
            "job_sent",
            number=number,
            next=self.job.current_number,
            at=minute_key.strftime("%Y-%m-%d %H:%M"),
        )
        return True

    async def _send(self, text: str) -> SendResult:
        try:
            return await self._notifier.send(self._destination, text)
        except Exception as exc:
            return SendResult.failure(f"{type(exc).__name__}: {exc}")

    async def _sleep(self, seconds: float) -> bool:
        """Sleeps up to ``seconds``; returns True if cancelled meanwhile."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        return self.cancelled
