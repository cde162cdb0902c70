"""Indexing pipeline: collator registrations, the index builder and its scheduler."""

from search_backend.indexing.index_builder import IndexBuilder
from search_backend.indexing.registration import DEFAULT_REFRESH_INTERVAL_SECONDS, CollatorRegistration
from search_backend.indexing.scheduler import ScheduledCollator, Scheduler, SchedulerState, SchedulerTask


__all__ = [
    "DEFAULT_REFRESH_INTERVAL_SECONDS",
    "CollatorRegistration",
    "IndexBuilder",
    "ScheduledCollator",
    "Scheduler",
    "SchedulerState",
    "SchedulerTask",
]
