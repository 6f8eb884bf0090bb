"""
Refresh Scheduler — keeps the dashboard snapshot fresh.

Triggers:
  1. initial:         once, when the scheduler starts
  2. timer:           every refresh interval (15s by default)
  3. account/network: wallet provider change events
  4. manual:          explicit refresh requests (API, CLI)

Only one fetch cycle is ever in flight. A trigger that arrives while a
cycle is running is either dropped or queued to run once afterwards,
depending on the overlap policy. Cycles are numbered and a result is
published only if it is newer than what is already published and the
scheduler has not been closed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

import structlog

from dashboard.aggregator import DEFAULT_RECENT_LIMIT, aggregate
from dashboard.fetcher import FetchFailure, RecordFetcher
from dashboard.snapshot import Snapshot
from dashboard.triggers import ChangeEventSource, IntervalTimer, TriggerReason
from ledger.base import LedgerClient, LedgerError

logger = structlog.get_logger()

ERROR_PREFIX = "Unable to load live KPI data from ledger"

SnapshotListener = Callable[[Snapshot], None]


class SchedulerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class OverlapPolicy(str, Enum):
    """What to do with a trigger that arrives mid-cycle."""

    DROP = "drop"  # ignore it; the in-flight cycle is fresh enough
    COALESCE = "coalesce"  # run exactly one more cycle when the current one ends


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshScheduler:
    """Owns the Snapshot and the Idle/Fetching refresh lifecycle."""

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        timer: IntervalTimer,
        change_source: ChangeEventSource,
        fetcher: RecordFetcher | None = None,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        overlap_policy: OverlapPolicy | str = OverlapPolicy.DROP,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ledger = ledger
        self.timer = timer
        self.change_source = change_source
        self.fetcher = fetcher or RecordFetcher(ledger)
        self.recent_limit = recent_limit
        self.overlap_policy = OverlapPolicy(overlap_policy)
        self.clock = clock
        self.logger = logger.bind(component="scheduler")

        self._snapshot = Snapshot.empty()
        self._state = SchedulerState.IDLE
        self._current: asyncio.Task | None = None
        self._pending: TriggerReason | None = None
        self._sequence = 0
        self._published_cycle = 0
        self._started = False
        self._disposed = False
        self._listeners: list[SnapshotListener] = []
        self.dropped_triggers = 0

    @classmethod
    def from_settings(
        cls,
        settings,
        ledger: LedgerClient,
        *,
        timer: IntervalTimer,
        change_source: ChangeEventSource,
    ) -> "RefreshScheduler":
        fetcher = RecordFetcher(
            ledger,
            query_timeout_seconds=settings.query_timeout_seconds,
            max_concurrency=settings.max_concurrency,
            include_details=settings.fetch_details,
        )
        return cls(
            ledger,
            timer=timer,
            change_source=change_source,
            fetcher=fetcher,
            recent_limit=settings.recent_items_limit,
            overlap_policy=settings.overlap_policy,
        )

    # ── Read side ────────────────────────────────────────────────────

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def disposed(self) -> bool:
        return self._disposed

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> asyncio.Task | None:
        """Connect, subscribe to change events, start the timer, run the initial cycle."""
        if self._disposed:
            raise RuntimeError("scheduler has been closed")
        if self._started:
            return self._current
        self._started = True

        try:
            await self.ledger.connect()
        except LedgerError as exc:
            # The initial cycle surfaces the user-facing error.
            self.logger.warning("scheduler.connect_failed", error=str(exc))

        if self._disposed:
            return None

        self.change_source.subscribe(self._on_change)
        self.timer.start(self._on_tick)
        self.logger.info("scheduler.started", overlap_policy=self.overlap_policy.value)
        return self.trigger(TriggerReason.INITIAL)

    def close(self) -> None:
        """Stop the timer and change feed. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        self._pending = None
        self.timer.cancel()
        self.change_source.unsubscribe(self._on_change)
        self.logger.info("scheduler.closed", in_flight=self._current is not None)

    async def aclose(self) -> None:
        """Close, then let any in-flight cycle finish (its result is discarded)."""
        self.close()
        await self.wait_idle()

    # ── Triggers ─────────────────────────────────────────────────────

    def trigger(self, reason: TriggerReason = TriggerReason.MANUAL) -> asyncio.Task | None:
        """
        Request a fetch cycle.

        Returns the task running the new cycle, or None when the trigger was
        dropped, queued behind the in-flight cycle, or the scheduler is closed.
        """
        reason = TriggerReason(reason)
        if self._disposed:
            self.logger.debug("scheduler.trigger_ignored_disposed", reason=reason.value)
            return None

        if self._current is not None:
            if self.overlap_policy is OverlapPolicy.COALESCE:
                if self._pending is None:
                    self._pending = reason
                self.logger.debug("scheduler.trigger_queued", reason=reason.value, queued=self._pending.value)
            else:
                self.dropped_triggers += 1
                self.logger.debug("scheduler.trigger_dropped", reason=reason.value)
            return None

        self._sequence += 1
        self._state = SchedulerState.FETCHING
        task = asyncio.get_running_loop().create_task(self._run_cycle(self._sequence, reason))
        self._current = task
        task.add_done_callback(self._on_cycle_done)
        # _current must be set before listeners run.
        self._publish(self._snapshot.loading())
        return task

    async def refresh(self, reason: TriggerReason = TriggerReason.MANUAL) -> Snapshot:
        """Trigger a cycle (or join the in-flight one) and return the resulting snapshot."""
        self.trigger(reason)
        await self.wait_idle()
        return self._snapshot

    async def wait_idle(self) -> None:
        """Wait until no cycle is in flight, including a queued follow-up."""
        while self._current is not None:
            await asyncio.wait({self._current})

    def _on_cycle_done(self, task: asyncio.Task) -> None:
        # Covers a cycle cancelled before its first step, where no finally runs.
        if self._current is task:
            self._current = None
            self._state = SchedulerState.IDLE

    def _on_tick(self) -> None:
        self.trigger(TriggerReason.TIMER)

    def _on_change(self, reason: TriggerReason) -> None:
        self.trigger(reason)

    # ── Cycle ────────────────────────────────────────────────────────

    async def _run_cycle(self, cycle: int, reason: TriggerReason) -> None:
        log = self.logger.bind(cycle=cycle, reason=reason.value)
        started = self.clock()
        try:
            count = await self.fetcher.fetch_count()
            participants = await self.fetcher.fetch_participants()
            records = await self.fetcher.fetch_all(count)
            result = aggregate(records, self.recent_limit, participants)
        except FetchFailure as exc:
            log.warning("scheduler.cycle_failed", kind=exc.kind, record_id=exc.record_id, error=str(exc))
            self._finish(cycle, failure=f"{ERROR_PREFIX}: {exc}")
        except Exception as exc:  # noqa: BLE001
            log.error("scheduler.cycle_crashed", error=str(exc), exc_info=True)
            self._finish(cycle, failure=f"{ERROR_PREFIX}: {exc}")
        else:
            snapshot = Snapshot.from_aggregate(
                records,
                result,
                participants=participants,
                updated_at=self.clock(),
                cycle=cycle,
            )
            if self._finish(cycle, snapshot=snapshot):
                log.info(
                    "scheduler.cycle_complete",
                    total_count=result.total_count,
                    in_progress=result.derived_metrics["in_progress"],
                    duration_ms=round((self.clock() - started).total_seconds() * 1000, 1),
                )
        finally:
            self._current = None
            self._state = SchedulerState.IDLE
            pending, self._pending = self._pending, None
            if pending is not None and not self._disposed:
                self.trigger(pending)

    def _finish(self, cycle: int, *, snapshot: Snapshot | None = None, failure: str | None = None) -> bool:
        if self._disposed:
            self.logger.info("scheduler.result_discarded", cycle=cycle, reason="disposed")
            return False
        if cycle <= self._published_cycle:
            self.logger.info("scheduler.result_discarded", cycle=cycle, reason="stale")
            return False

        if snapshot is None:
            self._publish(self._snapshot.failed(failure or ERROR_PREFIX))
            return True
        self._published_cycle = cycle
        self._publish(snapshot)
        return True

    def _publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self.logger.error("scheduler.listener_failed", exc_info=True)
