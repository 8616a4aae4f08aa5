from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


class DeliverableId(str, Enum):
    PREFLIGHT = "PREFLIGHT"
    WR1 = "WR1"
    WR2 = "WR2"
    WR3 = "WR3"
    WR4 = "WR4"
    WR5 = "WR5"
    WR6 = "WR6"
    WR7 = "WR7"
    WR8 = "WR8"
    WR9 = "WR9"

    def __str__(self) -> str:
        return self.value


class BlockPhase(str, Enum):
    BEGINNING = "beginning"
    MIDDLE = "middle"
    END = "end"


class ProjectStatus(str, Enum):
    PREFLIGHT_BLOCKED = "preflight_blocked"
    GENERATING = "generating"
    REVIEW = "review"
    READY = "ready"
    FAILED = "failed"


class CTAMode(str, Enum):
    BOOK_CALL = "book_call"
    BUY_NOW = "buy_now"
    HYBRID = "hybrid"


class AudienceTemperature(str, Enum):
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"


class RiskFlag(str, Enum):
    OFFER_MISSING = "offer_missing"
    ICP_MISSING = "icp_missing"
    PROOF_MISSING = "proof_missing"
    CTA_UNCLEAR = "cta_unclear"
    MECHANISM_UNCLEAR = "mechanism_unclear"


CONTENT_DELIVERABLES: Tuple[DeliverableId, ...] = (
    DeliverableId.WR1,
    DeliverableId.WR2,
    DeliverableId.WR3,
    DeliverableId.WR4,
    DeliverableId.WR5,
    DeliverableId.WR6,
    DeliverableId.WR7,
    DeliverableId.WR8,
)

PHASE_RANGES: Dict[BlockPhase, Tuple[int, int]] = {
    BlockPhase.BEGINNING: (1, 7),
    BlockPhase.MIDDLE: (8, 14),
    BlockPhase.END: (15, 21),
}


def phase_for_block_number(number: int) -> BlockPhase | None:
    for phase, (low, high) in PHASE_RANGES.items():
        if low <= number <= high:
            return phase
    return None
