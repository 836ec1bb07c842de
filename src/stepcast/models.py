"""
Stepcast · Central data models.

Design principles:
  - Persisted records are pure data (no runtime handles)
  - Field aliases match the on-disk JSON format exactly
  - Strict validation (no out-of-range trigger time can be constructed)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

# ============================================================================
# Helpers
# ============================================================================


def utc_now() -> datetime:
    """Current time in UTC. Default clock for the whole system."""
    return datetime.now(UTC)


# ============================================================================
# Enums
# ============================================================================


class RunnerState(StrEnum):
    """Lifecycle of a single job runner within one trigger minute."""

    IDLE = "idle"
    MATCHED = "matched"
    FIRED = "fired"
    STOPPED = "stopped"


# ============================================================================
# Jobs & store aggregate
# ============================================================================


class Job(BaseModel):
    """A daily numeric dispatch definition.

    ``id``, ``hour``, ``minute`` and ``step`` never change after creation.
    ``current_number`` is the next value to send and is advanced only by a
    successful dispatch.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: int = Field(alias="Id", ge=1, frozen=True)
    hour: int = Field(alias="Hour", ge=0, le=23, frozen=True)
    minute: int = Field(alias="Minute", ge=0, le=59, frozen=True)
    step: int = Field(alias="Step", frozen=True)
    current_number: int = Field(alias="CurrentNumber")

    @property
    def trigger_label(self) -> str:
        """Trigger time as ``HH:MM``."""
        return f"{self.hour:02d}:{self.minute:02d}"

    def matches(self, local_now: datetime) -> bool:
        """True if ``local_now`` falls inside this job's trigger minute."""
        return local_now.hour == self.hour and local_now.minute == self.minute


class ScheduleState(BaseModel):
    """The persisted aggregate: all jobs plus the next-id counter."""

    model_config = ConfigDict(populate_by_name=True)

    jobs: list[Job] = Field(default_factory=list, alias="Jobs")
    next_id: int = Field(default=1, alias="NextId", ge=1)

    @model_validator(mode="after")
    def _check_ids(self) -> ScheduleState:
        ids = [job.id for job in self.jobs]
        if len(ids) != len(set(ids)):
            msg = f"Duplicate job ids in store: {sorted(ids)}"
            raise ValueError(msg)
        if ids and self.next_id <= max(ids):
            logger.warning(
                "NextId %d not above highest job id %d, repairing", self.next_id, max(ids)
            )
            self.next_id = max(ids) + 1
        return self

    def find(self, job_id: int) -> Job | None:
        """Returns the job with ``job_id`` or None."""
        for job in self.jobs:
            if job.id == job_id:
                return job
        return None

    def to_json(self) -> str:
        """Serialises the aggregate in the on-disk format."""
        return self.model_dump_json(by_alias=True, indent=2)


# ============================================================================
# Notifier
# ============================================================================


class SendResult(BaseModel, frozen=True):
    """Outcome of a single notifier send."""

    ok: bool
    error: str = ""

    @classmethod
    def success(cls) -> SendResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> SendResult:
        return cls(ok=False, error=reason)
