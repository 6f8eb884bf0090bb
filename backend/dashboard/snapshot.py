"""
Published dashboard state.

A Snapshot is immutable. The scheduler replaces it wholesale after a
successful cycle and only ever swaps the loading/error flags otherwise,
so readers never see old and new record data mixed together.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping

from dashboard.aggregator import Aggregate, Histogram, empty_histogram
from dashboard.stages import STAGE_ORDER
from ledger.base import ParticipantCounts, Record


@dataclass(frozen=True)
class Snapshot:
    records: Mapping[int, Record] = field(default_factory=dict)
    histogram: Histogram = field(default_factory=empty_histogram)
    total_count: int = 0
    derived_metrics: Mapping[str, int] = field(
        default_factory=lambda: {"in_progress": 0, "sold": 0, "participants": 0}
    )
    recent: tuple[Record, ...] = ()
    participants: ParticipantCounts = field(default_factory=ParticipantCounts)
    last_updated_at: datetime | None = None
    is_loading: bool = True
    last_error: str | None = None
    cycle: int = 0

    @classmethod
    def empty(cls) -> "Snapshot":
        """All-zero snapshot shown before the first cycle completes."""
        return cls()

    @classmethod
    def from_aggregate(
        cls,
        records: list[Record],
        result: Aggregate,
        *,
        participants: ParticipantCounts,
        updated_at: datetime,
        cycle: int,
    ) -> "Snapshot":
        return cls(
            records={record.id: record for record in records},
            histogram=dict(result.histogram),
            total_count=result.total_count,
            derived_metrics=dict(result.derived_metrics),
            recent=result.recent,
            participants=participants,
            last_updated_at=updated_at,
            is_loading=False,
            last_error=None,
            cycle=cycle,
        )

    @property
    def in_progress(self) -> int:
        return self.derived_metrics.get("in_progress", 0)

    def loading(self) -> "Snapshot":
        """Same data, marked as refreshing, previous error cleared."""
        return replace(self, is_loading=True, last_error=None)

    def failed(self, message: str) -> "Snapshot":
        """Same data, with the failure surfaced."""
        return replace(self, is_loading=False, last_error=message)

    def to_dict(self) -> dict[str, Any]:
        """Presentation payload; camelCase keys for the dashboard client."""
        return {
            "records": [self.records[record_id].to_dict() for record_id in sorted(self.records)],
            "histogram": {stage.value: self.histogram.get(stage, 0) for stage in STAGE_ORDER},
            "totalCount": self.total_count,
            "derivedMetrics": dict(self.derived_metrics),
            "recent": [record.to_dict() for record in self.recent],
            "participants": self.participants.to_dict(),
            "lastUpdatedAt": self.last_updated_at.isoformat() if self.last_updated_at else None,
            "isLoading": self.is_loading,
            "lastError": self.last_error,
        }
