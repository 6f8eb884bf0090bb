"""
Test Configuration — Fixtures for the in-memory ledger, hand-driven
timers, schedulers and the API test client.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from dashboard.fetcher import RecordFetcher
from dashboard.scheduler import RefreshScheduler
from dashboard.triggers import LocalChangeEventSource
from ledger.memory import InMemoryLedger


class ManualTimer:
    """IntervalTimer that only ticks when the test says so."""

    def __init__(self):
        self.callback = None
        self.cancelled = False
        self.cancel_calls = 0

    def start(self, callback):
        self.callback = callback

    def cancel(self):
        self.cancelled = True
        self.cancel_calls += 1

    def fire(self):
        assert self.callback is not None, "timer was never started"
        self.callback()


class GatedLedger(InMemoryLedger):
    """In-memory ledger whose count query blocks until the gate opens."""

    def __init__(self, config=None):
        super().__init__(config)
        self.gate = asyncio.Event()
        self.count_started = asyncio.Event()

    async def get_count(self) -> int:
        count = await super().get_count()
        self.count_started.set()
        await self.gate.wait()
        return count


class StepClock:
    """Deterministic clock: each call advances by one second."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def seeded_ledger():
    """Three batches: ordered, manufacturing (by label only), sold."""
    ledger = InMemoryLedger()
    ledger.append("Paracetamol", 0, timestamps={"orderedAt": 1_700_000_000})
    ledger.append("Amoxicillin", None, stage_label="Manufacturing batch", timestamps={"orderedAt": 1_700_000_100})
    ledger.append("Ibuprofen", 5, timestamps={"orderedAt": 1_700_000_200, "soldAt": 1_700_090_000})
    ledger.set_participants(rms=2, man=1, dis=1, ret=1)
    return ledger


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def change_source():
    return LocalChangeEventSource()


@pytest.fixture
def make_scheduler(timer, change_source):
    created = []

    def _make(ledger, **kwargs):
        kwargs.setdefault("clock", StepClock())
        kwargs.setdefault("fetcher", RecordFetcher(ledger, query_timeout_seconds=1.0))
        scheduler = RefreshScheduler(ledger, timer=timer, change_source=change_source, **kwargs)
        created.append(scheduler)
        return scheduler

    yield _make

    for scheduler in created:
        scheduler.close()


@pytest.fixture
async def client(seeded_ledger, timer, change_source):
    """Async API client wired to a scheduler over the seeded ledger."""
    from api.main import app

    scheduler = RefreshScheduler(
        seeded_ledger,
        timer=timer,
        change_source=change_source,
        clock=StepClock(),
    )
    await scheduler.start()
    await scheduler.wait_idle()
    app.state.scheduler = scheduler
    app.state.change_source = change_source

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await scheduler.aclose()
    app.state.scheduler = None
    app.state.change_source = None


@pytest.fixture
def gated_ledger():
    return GatedLedger()
