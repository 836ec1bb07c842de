"""Dispatch engine: owner of the job store and supervisor of job runners.

The engine is the only component that mutates the schedule. Every
mutation and the persistence that follows it happen under one asyncio
lock, so a snapshot on disk always reflects a fully applied change. The
notifier call of a runner happens outside that lock; a slow send never
blocks add/remove or other runners.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from stepcast.cron.jobs import JobStore
from stepcast.cron.runner import Clock, JobRunner
from stepcast.models import Job, ScheduleState, SendResult, utc_now
from stepcast.utils.logging import get_logger

if TYPE_CHECKING:
    from stepcast.channels.base import Notifier
    from stepcast.config import StepcastConfig

log = get_logger(__name__)


class DispatchEngine:
    """Creates, lists and removes jobs and runs one JobRunner per job.

    Attributes:
        job_store: Persistence backend for the schedule.
    """

    def __init__(
        self,
        config: StepcastConfig,
        notifier: Notifier,
        *,
        job_store: JobStore | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialises the engine.

        Args:
            config: Validated configuration; destination, timezone, state
                file and timings are read once here.
            notifier: Outbound delivery capability.
            job_store: Override for the store (defaults to config.state_file).
            clock: Returns the current aware UTC time. Injected by tests.
        """
        self.job_store = job_store or JobStore(config.state_file)
        self._notifier = notifier
        self._destination = config.telegram.channel_id
        self._tz = config.tz
        self._poll_interval = config.scheduler.poll_interval_seconds
        self._post_dispatch_pause = config.scheduler.post_dispatch_pause_seconds
        self._clock = clock

        self._lock = asyncio.Lock()
        self._state = ScheduleState()
        # Runtime-only side tables, keyed by job id.
        self._runners: dict[int, JobRunner] = {}
        self._last_fired: dict[int, datetime] = {}

    # === Lifecycle ===

    def load_from_disk(self) -> None:
        """Replaces the in-memory schedule with the persisted one (if readable)."""
        self._state = self.job_store.load(self._state)

    def start_all(self) -> None:
        """Starts a runner for every known job. Requires a running event loop."""
        for job in self._state.jobs:
            self._start_job(job)
        log.info("dispatch_engine_started", jobs=len(self._runners), notifier=self._notifier.name)

    def stop_all(self) -> None:
        """Signals every runner to stop and returns immediately.

        Runner tasks are not awaited; a send or save already in flight
        may complete after this returns.
        """
        for runner in self._runners.values():
            runner.cancel()
        count = len(self._runners)
        self._runners.clear()
        log.info("dispatch_engine_stopped", runners=count)

    # === Public API ===

    @property
    def next_id(self) -> int:
        return self._state.next_id

    @property
    def running_ids(self) -> list[int]:
        """Ids of jobs with a registered runner."""
        return sorted(self._runners)

    def list_jobs(self) -> list[Job]:
        """Snapshot of all jobs in insertion order. Callers must not mutate it."""
        return list(self._state.jobs)

    def get_runner(self, job_id: int) -> JobRunner | None:
        return self._runners.get(job_id)

    async def add_job(self, hour: int, minute: int, step: int, current_number: int) -> Job:
        """Creates, persists and starts a new job.

        Returns:
            The job with its assigned id.

        Raises:
            pydantic.ValidationError: hour/minute out of range. No id is consumed.
        """
        async with self._lock:
            job = Job(
                id=self._state.next_id,
                hour=hour,
                minute=minute,
                step=step,
                current_number=current_number,
            )
            self._state.next_id += 1
            self._state.jobs.append(job)
            await self._save()

        self._start_job(job)
        log.info("job_added", job_id=job.id, at=job.trigger_label, step=job.step)
        return job

    async def remove_job(self, job_id: int) -> bool:
        """Removes a job and stops its runner.

        Returns:
            False (and nothing touched, nothing written) if the id is unknown.
        """
        async with self._lock:
            job = self._state.find(job_id)
            if job is None:
                return False
            self._state.jobs.remove(job)
            self._last_fired.pop(job_id, None)
            await self._save()

        runner = self._runners.pop(job_id, None)
        if runner is not None:
            runner.cancel()
        log.info("job_removed", job_id=job_id)
        return True

    async def send_now(self, text: str) -> SendResult:
        """Sends ``text`` once, immediately. No retry, no state change.

        Raises:
            ValueError: If ``text`` is blank.
        """
        if not text.strip():
            raise ValueError("Message text must not be empty")
        try:
            result = await self._notifier.send(self._destination, text)
        except Exception as exc:
            result = SendResult.failure(f"{type(exc).__name__}: {exc}")
        if result.ok:
            log.info("immediate_send_ok", length=len(text))
        else:
            log.warning("immediate_send_failed", notifier=self._notifier.name, error=result.error)
        return result

    def get_next_run_times(self, now: datetime | None = None) -> dict[int, datetime]:
        """Next local start of each job's trigger minute strictly after ``now``.

        Args:
            now: Reference time (aware). Defaults to the engine clock.

        Returns:
            Dict: job id → local datetime of the next trigger minute.
        """
        local_now = (now or self._clock()).astimezone(self._tz)
        result: dict[int, datetime] = {}
        for job in self._state.jobs:
            candidate = local_now.replace(hour=job.hour, minute=job.minute, second=0, microsecond=0)
            if candidate <= local_now:
                candidate += timedelta(days=1)
            result[job.id] = candidate
        return result

    # === Internals ===

    async def _record_dispatch(self, job: Job, minute: datetime) -> None:
        """Success callback of a runner: advance the counter, mark the minute and persist."""
        async with self._lock:
            job.current_number += job.step
            if self._state.find(job.id) is job:
                self._last_fired[job.id] = minute
                await self._save()
            else:
                log.debug("dispatch_for_removed_job", job_id=job.id)

    async def _save(self) -> None:
        """Writes the aggregate off the event loop. Caller holds the lock."""
        await asyncio.to_thread(self.job_store.save, self._state)

    def _start_job(self, job: Job) -> JobRunner:
        existing = self._runners.get(job.id)
        if existing is not None:
            existing.cancel()

        runner = JobRunner(
            job,
            self._notifier,
            self._destination,
            self._tz,
            self._record_dispatch,
            poll_interval=self._poll_interval,
            post_dispatch_pause=self._post_dispatch_pause,
            clock=self._clock,
            last_fired_minute=self._last_fired.get(job.id),
        )
        self._runners[job.id] = runner
        runner.start()
        return runner
