"""CLI menu: interactive terminal front end for the dispatch engine.

Features:
  - Send a text immediately
  - Add, list and remove scheduled numbers
  - Coloured output (via Rich)
  - Graceful exit (menu option, Ctrl+C, end of input)

Input is read in a worker thread so that the job runners keep ticking
while the operator is typing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

if TYPE_CHECKING:
    from datetime import datetime

    from stepcast.cron.engine import DispatchEngine
    from stepcast.models import Job

COLOR_OK = "green"
COLOR_WARN = "yellow"
COLOR_ERROR = "bold red"
COLOR_INFO = "dim"

MAIN_MENU = (
    "1) Send text immediately\n"
    "2) Manage scheduled numbers\n"
    "3) Exit"
)

SCHEDULE_MENU = (
    "1) Add new schedule\n"
    "2) List schedules\n"
    "3) Remove a schedule\n"
    "4) Back to main menu"
)

ADD_PROMPTS: list[tuple[str, int | None, int | None]] = [
    ("Enter initial number: ", None, None),
    ("Hour of day to send (0-23): ", 0, 23),
    ("Minute to send (0-59): ", 0, 59),
    ("Increment step (added after each send): ", None, None),
]


def format_job(job: Job, next_run: datetime | None = None) -> str:
    """One-line job summary as shown in the schedule list."""
    line = f"[{job.id}] at {job.trigger_label} | current={job.current_number} | step={job.step:+d}"
    if next_run is not None:
        line += f" | next={next_run:%Y-%m-%d %H:%M}"
    return line


class MenuCli:
    """Numbered-menu REPL on top of a DispatchEngine."""

    def __init__(
        self,
        engine: DispatchEngine,
        *,
        console: Console | None = None,
        reader: Callable[[str], str] = input,
        version: str = "",
    ) -> None:
        self._engine = engine
        self._console = console or Console()
        self._reader = reader
        self._version = version

    async def run(self) -> None:
        """Runs the main menu until the operator exits. Stops all runners on exit."""
        title = f"Stepcast v{self._version}" if self._version else "Stepcast"
        while True:
            self._console.print()
            self._console.print(Panel(MAIN_MENU, title=title, border_style="cyan", expand=False))
            choice = await self._read_input("Your choice: ")

            if choice is None or choice.strip() == "3":
                self._console.print(f"[{COLOR_INFO}]Exiting...[/{COLOR_INFO}]")
                break
            choice = choice.strip()
            if choice == "1":
                await self.immediate_send()
            elif choice == "2":
                if not await self.manage_schedules():
                    self._console.print(f"[{COLOR_INFO}]Exiting...[/{COLOR_INFO}]")
                    break
            else:
                self._console.print(f"[{COLOR_WARN}]Invalid option.[/{COLOR_WARN}]")

        self._engine.stop_all()

    async def immediate_send(self) -> None:
        """Prompts for a text and sends it once."""
        text = await self._read_input("Enter message text (empty = back): ")
        if text is None or not text.strip():
            self._console.print(f"[{COLOR_INFO}]Cancelled.[/{COLOR_INFO}]")
            return

        result = await self._engine.send_now(text)
        if result.ok:
            self._console.print(f"[{COLOR_OK}]✅ Message sent.[/{COLOR_OK}]")
        else:
            self._console.print(f"[{COLOR_ERROR}]❌ Send error: {escape(result.error)}[/{COLOR_ERROR}]")

    async def manage_schedules(self) -> bool:
        """Schedule sub-menu.

        Returns:
            True to return to the main menu, False if input ended.
        """
        while True:
            self._console.print()
            self._console.print(
                Panel(SCHEDULE_MENU, title="Manage Scheduled Numbers", border_style="cyan", expand=False)
            )
            choice = await self._read_input("Your choice: ")
            if choice is None:
                return False

            choice = choice.strip()
            if choice == "1":
                if not await self._add_schedule():
                    return False
            elif choice == "2":
                self._list_schedules()
            elif choice == "3":
                if not await self._remove_schedule():
                    return False
            elif choice == "4":
                return True
            else:
                self._console.print(f"[{COLOR_WARN}]Invalid option.[/{COLOR_WARN}]")

    async def _add_schedule(self) -> bool:
        values: list[int] = []
        for prompt, min_value, max_value in ADD_PROMPTS:
            value = await self.read_int(prompt, min_value, max_value)
            if value is None:
                return False
            values.append(value)
        current, hour, minute, step = values

        try:
            job = await self._engine.add_job(hour, minute, step, current)
        except ValidationError as exc:
            self._console.print(f"[{COLOR_ERROR}]Invalid schedule: {escape(str(exc))}[/{COLOR_ERROR}]")
            return True
        self._console.print(
            f"[{COLOR_OK}]✅ Schedule {escape(f'[{job.id}]')} added and started in background.[/{COLOR_OK}]"
        )
        return True

    def _list_schedules(self) -> None:
        jobs = self._engine.list_jobs()
        if not jobs:
            self._console.print(f"[{COLOR_INFO}](no schedules)[/{COLOR_INFO}]")
            return
        next_runs = self._engine.get_next_run_times()
        self._console.print("-- Schedules --")
        for job in jobs:
            self._console.print(format_job(job, next_runs.get(job.id)), markup=False, highlight=False)

    async def _remove_schedule(self) -> bool:
        raw = await self._read_input("Enter schedule Id to remove: ")
        if raw is None:
            return False
        try:
            job_id = int(raw.strip())
        except ValueError:
            self._console.print(f"[{COLOR_WARN}]Invalid Id.[/{COLOR_WARN}]")
            return True

        if await self._engine.remove_job(job_id):
            self._console.print(f"[{COLOR_OK}]✅ Removed.[/{COLOR_OK}]")
        else:
            self._console.print(f"[{COLOR_WARN}]⚠️ Not found.[/{COLOR_WARN}]")
        return True

    async def read_int(self, prompt: str, min_value: int | None = None, max_value: int | None = None) -> int | None:
        """Prompts until an integer within [min_value, max_value] is entered.

        Returns:
            The integer, or None if input ended.
        """
        while True:
            raw = await self._read_input(prompt)
            if raw is None:
                return None
            try:
                value = int(raw.strip())
            except ValueError:
                self._console.print(f"[{COLOR_WARN}]Invalid input. Enter an integer.[/{COLOR_WARN}]")
                continue
            if min_value is not None and value < min_value:
                self._console.print(f"[{COLOR_WARN}]Must be >= {min_value}.[/{COLOR_WARN}]")
                continue
            if max_value is not None and value > max_value:
                self._console.print(f"[{COLOR_WARN}]Must be <= {max_value}.[/{COLOR_WARN}]")
                continue
            return value

    async def _read_input(self, prompt: str) -> str | None:
        """Reads one line without blocking the event loop. None on EOF/Ctrl+C."""
        try:
            return await asyncio.to_thread(self._reader, prompt)
        except (EOFError, KeyboardInterrupt):
            return None
