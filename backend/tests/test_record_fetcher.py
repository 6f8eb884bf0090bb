"""
Tests for the all-or-nothing record fetcher.
"""

import asyncio
from dataclasses import replace

import pytest

from dashboard.fetcher import FetchFailure, RecordFetcher
from ledger.base import ConnectivityFailure, DecodeFailure, RecordNotFound
from ledger.memory import InMemoryLedger


class ReversedLatencyLedger(InMemoryLedger):
    """Later ids answer first, so arrival order is the reverse of id order."""

    def __init__(self, config=None):
        super().__init__(config)
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_record(self, record_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.001 * (len(self._records) - record_id + 1))
            return await super().get_record(record_id)
        finally:
            self.in_flight -= 1


class CrashingLedger(InMemoryLedger):
    """Record 1 hits a client bug; the rest answer slowly."""

    async def get_record(self, record_id):
        if record_id == 1:
            raise RuntimeError("client bug")
        await asyncio.sleep(0.05)
        return await super().get_record(record_id)


class MislabelledLedger(InMemoryLedger):
    async def get_record(self, record_id):
        record = await super().get_record(record_id)
        return replace(record, id=record_id + 100)


@pytest.mark.asyncio
async def test_zero_count_issues_no_calls(ledger):
    fetcher = RecordFetcher(ledger)

    assert await fetcher.fetch_all(0) == []
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_negative_count_rejected(ledger):
    with pytest.raises(ValueError):
        await RecordFetcher(ledger).fetch_all(-1)


@pytest.mark.asyncio
async def test_fetch_all_merges_stage_label_and_timestamps(seeded_ledger):
    records = await RecordFetcher(seeded_ledger).fetch_all(3)

    assert [record.id for record in records] == [1, 2, 3]
    assert records[0].stage_label == "Medicine Ordered"
    assert records[1].stage is None
    assert records[1].stage_label == "Manufacturing batch"
    assert records[2].timestamps["soldAt"] == 1_700_090_000
    called = {method for method, _ in seeded_ledger.calls}
    assert called == {"get_record", "get_stage", "get_timestamps"}


@pytest.mark.asyncio
async def test_results_keyed_by_id_not_arrival_order():
    ledger = ReversedLatencyLedger()
    for index in range(8):
        ledger.append(f"Batch {index + 1}", index % 6)

    records = await RecordFetcher(ledger, include_details=False).fetch_all(8)

    assert [record.id for record in records] == list(range(1, 9))
    assert ledger.max_in_flight > 1


@pytest.mark.asyncio
async def test_max_concurrency_bounds_in_flight_queries():
    ledger = ReversedLatencyLedger()
    for index in range(10):
        ledger.append(f"Batch {index + 1}", 0)

    await RecordFetcher(ledger, max_concurrency=3, include_details=False).fetch_all(10)

    assert ledger.max_in_flight <= 3


@pytest.mark.asyncio
async def test_details_can_be_skipped(seeded_ledger):
    records = await RecordFetcher(seeded_ledger, include_details=False).fetch_all(3)

    assert len(records) == 3
    assert {method for method, _ in seeded_ledger.calls} == {"get_record"}


@pytest.mark.asyncio
async def test_single_missing_record_fails_whole_batch(seeded_ledger):
    seeded_ledger.fail_on("get_record", RecordNotFound(2), record_id=2)

    with pytest.raises(FetchFailure) as excinfo:
        await RecordFetcher(seeded_ledger).fetch_all(3)

    assert excinfo.value.record_id == 2
    assert excinfo.value.kind == "not_found"
    assert isinstance(excinfo.value.cause, RecordNotFound)


@pytest.mark.asyncio
async def test_count_past_stored_range_is_not_found(seeded_ledger):
    with pytest.raises(FetchFailure) as excinfo:
        await RecordFetcher(seeded_ledger).fetch_all(4)

    assert excinfo.value.record_id == 4
    assert excinfo.value.kind == "not_found"


@pytest.mark.asyncio
async def test_stage_query_failure_fails_batch(seeded_ledger):
    seeded_ledger.fail_on("get_stage", ConnectivityFailure("gateway down"), record_id=3)

    with pytest.raises(FetchFailure) as excinfo:
        await RecordFetcher(seeded_ledger).fetch_all(3)

    assert excinfo.value.record_id == 3
    assert excinfo.value.kind == "connectivity"


@pytest.mark.asyncio
async def test_per_query_timeout_is_connectivity_failure():
    ledger = InMemoryLedger({"latency_seconds": 0.2})
    ledger.append("Slow batch", 1)

    with pytest.raises(FetchFailure) as excinfo:
        await RecordFetcher(ledger, query_timeout_seconds=0.01).fetch_all(1)

    assert excinfo.value.kind == "connectivity"
    assert "timed out" in str(excinfo.value)


@pytest.mark.asyncio
async def test_mismatched_record_id_is_decode_failure():
    ledger = MislabelledLedger()
    ledger.append("Batch", 0)

    with pytest.raises(FetchFailure) as excinfo:
        await RecordFetcher(ledger).fetch_all(1)

    assert isinstance(excinfo.value.cause, DecodeFailure)


@pytest.mark.asyncio
async def test_fetch_count_wraps_ledger_errors(ledger):
    ledger.fail_on("get_count", ConnectivityFailure("unreachable"))

    with pytest.raises(FetchFailure) as excinfo:
        await RecordFetcher(ledger).fetch_count()

    assert excinfo.value.record_id is None
    assert "record count" in str(excinfo.value)


def test_max_concurrency_must_be_positive(ledger):
    with pytest.raises(ValueError):
        RecordFetcher(ledger, max_concurrency=0)


@pytest.mark.asyncio
async def test_unexpected_error_cancels_sibling_queries():
    ledger = CrashingLedger()
    for index in range(4):
        ledger.append(f"Batch {index + 1}", 0)

    with pytest.raises(RuntimeError, match="client bug"):
        await RecordFetcher(ledger).fetch_all(4)

    calls_at_abort = list(ledger.calls)
    await asyncio.sleep(0.15)

    assert ledger.calls == calls_at_abort
    assert ledger.calls == []
