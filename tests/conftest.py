"""
Stepcast · Shared test fixtures.

All tests use a temporary home directory instead of ~/.stepcast/, a fake
notifier that records every send, and a manually advanced clock.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from stepcast.channels.base import Notifier
from stepcast.config import SchedulerConfig, StepcastConfig, TelegramConfig
from stepcast.models import SendResult

if TYPE_CHECKING:
    from pathlib import Path


class FakeNotifier(Notifier):
    """Records sends; returns queued outcomes, then success."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.outcomes: list[SendResult | Exception] = []
        self.always_fail = False

    @property
    def name(self) -> str:
        return "fake"

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.calls]

    async def send(self, destination: str, text: str) -> SendResult:
        self.calls.append((destination, text))
        if self.always_fail:
            return SendResult.failure("down")
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return SendResult.success()


class FakeClock:
    """Callable clock returning a settable aware UTC time."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int, second: int = 0, day: int = 1) -> None:
        self.now = datetime(2025, 3, day, hour, minute, second, tzinfo=UTC)

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def tmp_stepcast_home(tmp_path: Path) -> Path:
    """Temporary Stepcast home directory."""
    return tmp_path / ".stepcast"


@pytest.fixture
def config(tmp_stepcast_home: Path) -> StepcastConfig:
    """Config with credentials, UTC timezone and fast polling."""
    return StepcastConfig(
        stepcast_home=tmp_stepcast_home,
        telegram=TelegramConfig(bot_token="123:abc", channel_id="@numbers"),
        scheduler=SchedulerConfig(
            timezone="UTC",
            poll_interval_seconds=0.01,
            post_dispatch_pause_seconds=0.02,
        ),
    )


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def clock() -> FakeClock:
    """Starts at 2025-03-01 03:00 UTC, outside every test trigger minute."""
    return FakeClock(datetime(2025, 3, 1, 3, 0, tzinfo=UTC))
