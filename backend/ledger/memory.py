"""
In-memory ledger.

Append-only stand-in for the supply-chain contract. Serves demos and
tests; supports failure injection so the refresh engine's error paths
can be exercised without a network.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

from ledger.base import (
    LedgerBackend,
    LedgerClient,
    LedgerError,
    ParticipantCounts,
    Record,
    RecordNotFound,
    register_ledger,
)

STAGE_LABELS = (
    "Medicine Ordered",
    "Raw Material Supply Stage",
    "Manufacturing Stage",
    "Distribution Stage",
    "Retail Stage",
    "Medicine Sold",
)

TIMESTAMP_EVENTS = ("orderedAt", "rmsAt", "manufacturedAt", "distributedAt", "retailAt", "soldAt")


@register_ledger
class InMemoryLedger(LedgerClient):
    """
    In-process ledger.

    Config (all optional):
        {
            "latency_seconds": 0.0,     # simulated per-call delay
            "participants": {"rms": 1, "man": 1, "dis": 1, "ret": 1},
        }
    """

    @property
    def backend(self) -> LedgerBackend:
        return LedgerBackend.MEMORY

    def __init__(self, config: dict[str, Any] | None = None):
        super().__init__(config)
        self.latency_seconds = float(self.config.get("latency_seconds", 0.0))
        self._participants = ParticipantCounts(**self.config.get("participants", {}))
        self._records: list[Record] = []
        self._failures: dict[tuple[str, int | None], LedgerError] = {}
        self.calls: list[tuple[str, int | None]] = []
        self.connected = False

    # ── Seeding ──────────────────────────────────────────────────────

    def append(
        self,
        name: str,
        stage: int | str | None = 0,
        *,
        description: str = "",
        stage_label: str | None = None,
        timestamps: dict[str, int | None] | None = None,
    ) -> Record:
        """Append a record; ids are assigned sequentially from 1."""
        record_id = len(self._records) + 1
        if stage_label is None and isinstance(stage, int) and 0 <= stage < len(STAGE_LABELS):
            stage_label = STAGE_LABELS[stage]
        record = Record(
            id=record_id,
            name=name,
            description=description,
            stage=stage,
            stage_label=stage_label,
            timestamps=timestamps or {event: None for event in TIMESTAMP_EVENTS},
        )
        self._records.append(record)
        return record

    def set_stage(self, record_id: int, stage: int | str | None, stage_label: str | None = None) -> None:
        """Advance a record in place, as a supply-chain transaction would."""
        index = record_id - 1
        if not 0 <= index < len(self._records):
            raise RecordNotFound(record_id)
        self._records[index] = replace(self._records[index], stage=stage, stage_label=stage_label)

    def set_participants(self, **counts: int) -> None:
        self._participants = replace(self._participants, **counts)

    def fail_on(self, method: str, error: LedgerError, record_id: int | None = None) -> None:
        """Make `method` raise `error` (for one id, or every call when record_id is None)."""
        self._failures[(method, record_id)] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    # ── LedgerClient ─────────────────────────────────────────────────

    async def connect(self) -> None:
        await self._call("connect")
        self.connected = True

    async def get_count(self) -> int:
        await self._call("get_count")
        return len(self._records)

    async def get_record(self, record_id: int) -> Record:
        await self._call("get_record", record_id)
        return self._lookup(record_id)

    async def get_stage(self, record_id: int) -> str:
        await self._call("get_stage", record_id)
        record = self._lookup(record_id)
        if record.stage_label is not None:
            return record.stage_label
        return "" if record.stage is None else str(record.stage)

    async def get_timestamps(self, record_id: int) -> dict[str, int | None]:
        await self._call("get_timestamps", record_id)
        return dict(self._lookup(record_id).timestamps)

    async def get_participant_counts(self) -> ParticipantCounts:
        await self._call("get_participant_counts")
        return self._participants

    # ── Internals ────────────────────────────────────────────────────

    def _lookup(self, record_id: int) -> Record:
        if not 1 <= record_id <= len(self._records):
            raise RecordNotFound(record_id)
        return self._records[record_id - 1]

    async def _call(self, method: str, record_id: int | None = None) -> None:
        self.calls.append((method, record_id))
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)
        error = self._failures.get((method, record_id)) or self._failures.get((method, None))
        if error is not None:
            raise error
