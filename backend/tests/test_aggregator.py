"""
Tests for KPI aggregation: histogram, derived metrics and recent items.
"""

import pytest

from dashboard.aggregator import (
    aggregate,
    build_histogram,
    derive_metrics,
    empty_histogram,
    in_progress_count,
    recent_records,
)
from dashboard.stages import CanonicalStage
from ledger.base import ParticipantCounts, Record


def _records(*markers) -> list[Record]:
    return [Record(id=index + 1, name=f"Batch {index + 1}", stage=marker) for index, marker in enumerate(markers)]


def test_mixed_markers_scenario():
    result = aggregate(_records(0, "Manufacturing batch", 5))

    assert result.histogram == {
        CanonicalStage.ORDERED: 1,
        CanonicalStage.RAW_MATERIAL_SUPPLY: 0,
        CanonicalStage.MANUFACTURE: 1,
        CanonicalStage.DISTRIBUTION: 0,
        CanonicalStage.RETAIL: 0,
        CanonicalStage.SOLD: 1,
    }
    assert result.total_count == 3
    assert result.derived_metrics["in_progress"] == 2
    assert result.derived_metrics["sold"] == 1


def test_empty_input_is_all_zero():
    result = aggregate([])

    assert result.histogram == empty_histogram()
    assert result.total_count == 0
    assert result.derived_metrics == {"in_progress": 0, "sold": 0, "participants": 0}
    assert result.recent == ()


@pytest.mark.parametrize("count", [1, 2, 7, 25])
def test_all_sold_records_fill_only_the_sold_bucket(count):
    histogram = build_histogram(_records(*([5] * count)))

    assert histogram[CanonicalStage.SOLD] == count
    assert sum(v for stage, v in histogram.items() if stage is not CanonicalStage.SOLD) == 0


def test_histogram_sum_matches_record_count():
    records = _records(0, 1, 2, 3, 4, 5, "sold", "retail", "???", None, 9)
    result = aggregate(records)

    assert sum(result.histogram.values()) == result.total_count == len(records)


def test_label_used_when_numeric_stage_missing():
    record = Record(id=1, name="Batch", stage=None, stage_label="Retail Stage")
    assert build_histogram([record])[CanonicalStage.RETAIL] == 1


def test_numeric_stage_takes_precedence_over_label():
    record = Record(id=1, name="Batch", stage=2, stage_label="Medicine Sold")
    assert build_histogram([record])[CanonicalStage.MANUFACTURE] == 1


def test_in_progress_never_negative():
    histogram = empty_histogram()
    histogram[CanonicalStage.SOLD] = 10

    assert in_progress_count(histogram, 3) == 0
    assert derive_metrics(histogram, 3)["in_progress"] == 0


def test_participants_feed_derived_metrics():
    result = aggregate(_records(0), participants=ParticipantCounts(rms=2, man=1, dis=1, ret=3))
    assert result.derived_metrics["participants"] == 7


class TestRecentRecords:
    def test_newest_first_limited(self):
        recent = recent_records(_records(*range(6)), limit=3)
        assert [record.id for record in recent] == [6, 5, 4]

    def test_default_limit_is_ten(self):
        records = [Record(id=i, name=f"B{i}") for i in range(1, 16)]
        recent = aggregate(records).recent
        assert [record.id for record in recent] == list(range(15, 5, -1))

    def test_fewer_records_than_limit(self):
        assert [r.id for r in recent_records(_records(0, 1), limit=10)] == [2, 1]

    def test_input_order_does_not_matter(self):
        shuffled = [Record(id=3, name="c"), Record(id=1, name="a"), Record(id=2, name="b")]
        assert [r.id for r in recent_records(shuffled, limit=2)] == [3, 2]

    def test_zero_limit(self):
        assert recent_records(_records(0, 1), limit=0) == ()

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            recent_records(_records(0), limit=-1)
