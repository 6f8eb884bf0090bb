"""
Record fetcher — pulls every record 1..N from the ledger in one batch.

The batch is all-or-nothing: if any id fails (unreachable ledger, missing
id, undecodable payload, per-query timeout) the whole batch fails with
FetchFailure and the caller keeps whatever it was showing before.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Awaitable, TypeVar

import structlog

from ledger.base import (
    ConnectivityFailure,
    DecodeFailure,
    LedgerClient,
    LedgerError,
    ParticipantCounts,
    Record,
)

logger = structlog.get_logger()

T = TypeVar("T")


class FetchFailure(Exception):
    """A fetch cycle was aborted because one record could not be loaded."""

    def __init__(self, record_id: int | None, cause: LedgerError, target: str | None = None):
        self.record_id = record_id
        self.cause = cause
        where = target or (f"record {record_id}" if record_id is not None else "ledger totals")
        super().__init__(f"Failed to load {where}: {cause}")

    @property
    def kind(self) -> str:
        return self.cause.kind


class RecordFetcher:
    """Loads ledger records concurrently and assembles them by id."""

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        query_timeout_seconds: float | None = 10.0,
        max_concurrency: int = 16,
        include_details: bool = True,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.ledger = ledger
        self.query_timeout_seconds = query_timeout_seconds
        self.max_concurrency = max_concurrency
        self.include_details = include_details
        self.logger = logger.bind(component="fetcher")

    async def fetch_count(self) -> int:
        """Ask the ledger how many records exist."""
        try:
            count = await self._bounded(self.ledger.get_count(), "get_count")
        except LedgerError as exc:
            raise FetchFailure(None, exc, target="record count") from exc
        if count < 0:
            raise FetchFailure(None, DecodeFailure(f"Negative record count: {count}"), target="record count")
        return count

    async def fetch_participants(self) -> ParticipantCounts:
        try:
            return await self._bounded(self.ledger.get_participant_counts(), "get_participant_counts")
        except LedgerError as exc:
            raise FetchFailure(None, exc, target="participant counts") from exc

    async def fetch_all(self, count: int) -> list[Record]:
        """Return records 1..count ordered by id, or raise FetchFailure."""
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        if count == 0:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [asyncio.ensure_future(self._fetch_one(index + 1, semaphore)) for index in range(count)]
        try:
            records = await asyncio.gather(*tasks)
        except BaseException as exc:
            if isinstance(exc, FetchFailure):
                self.logger.warning(
                    "fetcher.batch_failed",
                    count=count,
                    record_id=exc.record_id,
                    kind=exc.kind,
                    error=str(exc.cause),
                )
            else:
                self.logger.error("fetcher.batch_aborted", count=count, error=repr(exc))
            # No query from an aborted batch may outlive it.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        by_id = {record.id: record for record in records}
        return [by_id[record_id] for record_id in range(1, count + 1)]

    async def _fetch_one(self, record_id: int, semaphore: asyncio.Semaphore) -> Record:
        async with semaphore:
            try:
                record = await self._bounded(self.ledger.get_record(record_id), "get_record")
                if record.id != record_id:
                    raise DecodeFailure(f"Ledger returned record {record.id} when asked for {record_id}")
                if not self.include_details:
                    return record

                stage_label = await self._bounded(self.ledger.get_stage(record_id), "get_stage")
                timestamps = await self._bounded(self.ledger.get_timestamps(record_id), "get_timestamps")
            except LedgerError as exc:
                raise FetchFailure(record_id, exc) from exc

        return replace(record, stage_label=stage_label, timestamps=timestamps)

    async def _bounded(self, call: Awaitable[T], operation: str) -> T:
        if self.query_timeout_seconds is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.query_timeout_seconds)
        except asyncio.TimeoutError:
            raise ConnectivityFailure(
                f"Ledger {operation} timed out after {self.query_timeout_seconds:g}s"
            ) from None
