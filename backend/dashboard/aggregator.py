"""
Aggregation of fetched records into dashboard KPIs.

Pure functions: no I/O, deterministic for a given input.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from dashboard.stages import STAGE_ORDER, CanonicalStage, classify
from ledger.base import ParticipantCounts, Record

DEFAULT_RECENT_LIMIT = 10

Histogram = dict[CanonicalStage, int]


@dataclass(frozen=True)
class Aggregate:
    """Result of aggregating one fetch cycle."""

    histogram: Histogram
    total_count: int
    derived_metrics: dict[str, int]
    recent: tuple[Record, ...] = field(default_factory=tuple)


def empty_histogram() -> Histogram:
    return {stage: 0 for stage in STAGE_ORDER}


def build_histogram(records: Iterable[Record]) -> Histogram:
    """Count records per canonical stage; every stage is present."""
    histogram = empty_histogram()
    for record in records:
        histogram[classify(record.stage_marker)] += 1
    return histogram


def in_progress_count(histogram: Histogram, total_count: int) -> int:
    """Records not yet sold, never below zero."""
    return max(0, total_count - histogram.get(CanonicalStage.SOLD, 0))


def derive_metrics(
    histogram: Histogram,
    total_count: int,
    participants: ParticipantCounts | None = None,
) -> dict[str, int]:
    return {
        "in_progress": in_progress_count(histogram, total_count),
        "sold": histogram.get(CanonicalStage.SOLD, 0),
        "participants": participants.total if participants is not None else 0,
    }


def recent_records(records: Sequence[Record], limit: int = DEFAULT_RECENT_LIMIT) -> tuple[Record, ...]:
    """Most recent `limit` records by id, newest first."""
    if limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")
    if limit == 0:
        return ()
    ordered = sorted(records, key=lambda record: record.id)
    return tuple(reversed(ordered[-limit:]))


def aggregate(
    records: Sequence[Record],
    recent_limit: int = DEFAULT_RECENT_LIMIT,
    participants: ParticipantCounts | None = None,
) -> Aggregate:
    """Turn one cycle's records into histogram, totals and the recent-items view."""
    histogram = build_histogram(records)
    total_count = len(records)
    return Aggregate(
        histogram=histogram,
        total_count=total_count,
        derived_metrics=derive_metrics(histogram, total_count, participants),
        recent=recent_records(records, recent_limit),
    )
