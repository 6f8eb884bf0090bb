"""
Dashboard refresh engine.

Pulls records from the ledger, classifies them into canonical supply-chain
stages, aggregates KPIs and keeps a Snapshot fresh under timer, change-event
and manual triggers.

Usage:
    from dashboard import RefreshScheduler, AsyncioIntervalTimer, LocalChangeEventSource

    scheduler = RefreshScheduler(
        ledger,
        timer=AsyncioIntervalTimer(15.0),
        change_source=LocalChangeEventSource(),
    )
    await scheduler.start()
    snapshot = scheduler.snapshot
"""

from dashboard.aggregator import Aggregate, aggregate, build_histogram, recent_records
from dashboard.fetcher import FetchFailure, RecordFetcher
from dashboard.scheduler import OverlapPolicy, RefreshScheduler, SchedulerState
from dashboard.snapshot import Snapshot
from dashboard.stages import CanonicalStage, classify
from dashboard.triggers import (
    AsyncioIntervalTimer,
    ChangeEventSource,
    IntervalTimer,
    LocalChangeEventSource,
    TriggerReason,
)

__all__ = [
    "Aggregate",
    "aggregate",
    "build_histogram",
    "recent_records",
    "FetchFailure",
    "RecordFetcher",
    "OverlapPolicy",
    "RefreshScheduler",
    "SchedulerState",
    "Snapshot",
    "CanonicalStage",
    "classify",
    "AsyncioIntervalTimer",
    "ChangeEventSource",
    "IntervalTimer",
    "LocalChangeEventSource",
    "TriggerReason",
]
