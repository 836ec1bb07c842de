"""Job store: durable round-trip of the schedule aggregate.

The whole aggregate ({jobs, next id}) is written on every save; there is
no incremental update. A failed load or save is logged and never raised,
the in-memory state stays authoritative.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import ValidationError

from stepcast.core.errors import PersistenceError
from stepcast.models import ScheduleState

logger = logging.getLogger(__name__)


class JobStore:
    """Reads and writes the ScheduleState JSON blob.

    Attributes:
        path: Path of the state file.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self, current: ScheduleState | None = None) -> ScheduleState:
        """Loads the aggregate from disk.

        Args:
            current: State to keep if the file is missing or unusable.
                None means a fresh empty state.

        Returns:
            The loaded state, or ``current`` on any failure.
        """
        fallback = current if current is not None else ScheduleState()
        if not self.path.exists():
            logger.info("No state file at %s, starting empty", self.path)
            return fallback

        try:
            state = self._read()
        except PersistenceError as exc:
            logger.warning("Failed to load %s: %s", self.path, exc)
            return fallback

        logger.info("Loaded %d job(s) from %s (next id %d)", len(state.jobs), self.path, state.next_id)
        return state

    def save(self, state: ScheduleState) -> bool:
        """Overwrites the state file with the full aggregate.

        Writes to a temporary sibling first and renames it into place.

        Returns:
            True on success, False if the write failed.
        """
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(state.to_json(), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.warning("Failed to write %s: %s", self.path, exc)
            return False
        return True

    def _read(self) -> ScheduleState:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"unreadable: {exc}", error_code="STATE_UNREADABLE") from exc

        if not raw.strip():
            raise PersistenceError("file is empty", error_code="STATE_EMPTY")

        try:
            return ScheduleState.model_validate_json(raw)
        except ValidationError as exc:
            raise PersistenceError(
                f"invalid content: {exc.error_count()} error(s)",
                error_code="STATE_INVALID",
                details={"errors": exc.errors(include_url=False)},
            ) from exc
