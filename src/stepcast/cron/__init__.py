"""Stepcast cron module -- daily numeric dispatch jobs."""

from stepcast.cron.engine import DispatchEngine
from stepcast.cron.jobs import JobStore
from stepcast.cron.runner import JobRunner

__all__ = ["DispatchEngine", "JobRunner", "JobStore"]
