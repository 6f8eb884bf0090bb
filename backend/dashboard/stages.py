"""
Stage classification.

Maps whatever the ledger reports as a record's stage (a numeric code from
MedicineStock or a free-text label from showStage) onto the six canonical
supply-chain stages. Classification never fails: anything unrecognised is
counted as Ordered, which is how the dashboards have always bucketed it.
"""

from enum import Enum
from typing import Any


class CanonicalStage(str, Enum):
    """Supply-chain progression, in order. SOLD is terminal."""

    ORDERED = "Ordered"
    RAW_MATERIAL_SUPPLY = "RawMaterialSupply"
    MANUFACTURE = "Manufacture"
    DISTRIBUTION = "Distribution"
    RETAIL = "Retail"
    SOLD = "Sold"

    @property
    def label(self) -> str:
        return STAGE_DISPLAY_LABELS[self]

    @property
    def index(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER: tuple[CanonicalStage, ...] = tuple(CanonicalStage)

STAGE_DISPLAY_LABELS = {
    CanonicalStage.ORDERED: "Ordered",
    CanonicalStage.RAW_MATERIAL_SUPPLY: "Raw Material",
    CanonicalStage.MANUFACTURE: "Manufacturing",
    CanonicalStage.DISTRIBUTION: "Distribution",
    CanonicalStage.RETAIL: "Retail",
    CanonicalStage.SOLD: "Sold",
}

# First match wins; "order" is tested before anything else.
KEYWORD_PRIORITY: tuple[tuple[str, CanonicalStage], ...] = (
    ("order", CanonicalStage.ORDERED),
    ("raw", CanonicalStage.RAW_MATERIAL_SUPPLY),
    ("manufactur", CanonicalStage.MANUFACTURE),
    ("distribut", CanonicalStage.DISTRIBUTION),
    ("retail", CanonicalStage.RETAIL),
    ("sold", CanonicalStage.SOLD),
)

DEFAULT_STAGE = CanonicalStage.ORDERED


def classify(marker: Any) -> CanonicalStage:
    """Return the canonical stage for a raw stage marker."""
    if isinstance(marker, bool):
        return DEFAULT_STAGE
    if isinstance(marker, int):
        return _from_index(marker)
    if not isinstance(marker, str):
        return DEFAULT_STAGE

    text = marker.strip()
    if text.isdecimal():
        return _from_index(int(text))

    lowered = text.lower()
    for keyword, stage in KEYWORD_PRIORITY:
        if keyword in lowered:
            return stage
    return DEFAULT_STAGE


def _from_index(code: int) -> CanonicalStage:
    if 0 <= code < len(STAGE_ORDER):
        return STAGE_ORDER[code]
    return DEFAULT_STAGE
