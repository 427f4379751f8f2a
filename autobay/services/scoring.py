"""
Recommendation scoring - a 0-100 suitability score for one candidate slot,
plus advisory reason strings for the booking UI.

Scoring (all terms additive, then clamped to [0, 100]):
- Base: 100
- Preferred time within 30 min: +20, within 60 min: +10
- +5 per eligible technician available and free at this exact slot
- Extra factors (optional callables) add their own adjustment
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from autobay.schemas.appointment import TimeSlot
from autobay.utils.timeofday import minutes_between

logger = logging.getLogger(__name__)

BASE_SCORE = 100
MIN_SCORE = 0
MAX_SCORE = 100
OPTIMAL_THRESHOLD = 90

PROXIMITY_CLOSE_MINUTES = 30
PROXIMITY_CLOSE_BONUS = 20
PROXIMITY_NEAR_MINUTES = 60
PROXIMITY_NEAR_BONUS = 10
PER_TECHNICIAN_BONUS = 5

OPTIMAL_REASON = "This is an optimal time slot choice"


@dataclass
class ScoringContext:
    preferred_time: Optional[str] = None
    available_technicians: Sequence[str] = ()
    technician: Optional[str] = None
    technician_name: Optional[str] = None


@dataclass
class ScoredSlot:
    score: int
    reasons: list[str] = field(default_factory=list)


# (slot, context) -> (adjustment, optional reason)
ScoringFactor = Callable[[TimeSlot, ScoringContext], tuple[int, Optional[str]]]


def preferred_time_bonus(slot_start: str, preferred_time: Optional[str]) -> int:
    if not preferred_time:
        return 0
    diff = minutes_between(slot_start, preferred_time)
    if diff <= PROXIMITY_CLOSE_MINUTES:
        return PROXIMITY_CLOSE_BONUS
    if diff <= PROXIMITY_NEAR_MINUTES:
        return PROXIMITY_NEAR_BONUS
    return 0


def clamp(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, score))


class RecommendationScorer:
    def __init__(self, extra_factors: Sequence[ScoringFactor] = ()):
        self.extra_factors = list(extra_factors)

    def score(self, slot: TimeSlot, context: ScoringContext) -> ScoredSlot:
        total = BASE_SCORE
        total += preferred_time_bonus(slot.start_time, context.preferred_time)
        total += PER_TECHNICIAN_BONUS * len(context.available_technicians)

        extra_reasons: list[str] = []
        for factor in self.extra_factors:
            adjustment, reason = factor(slot, context)
            total += adjustment
            if reason:
                extra_reasons.append(reason)

        final = clamp(total)
        reasons: list[str] = []
        if final >= OPTIMAL_THRESHOLD:
            reasons.append(OPTIMAL_REASON)
        if context.technician:
            name = context.technician_name or context.technician
            reasons.append(f"Technician {name} is available for this time slot")
        reasons.extend(extra_reasons)

        logger.debug("Scored %s: raw=%d final=%d", slot.label(), total, final)
        return ScoredSlot(score=final, reasons=reasons)
