# backend/modules/shift_pool/services/priority_scorer.py

"""
Deterministic claim ranking.

score() is pure. Ties between equal scores are broken by submission order
in rank_claims, never inside the score itself.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import math

from modules.core.models import WorkerProfile, WorkerTier
from modules.scheduling.models import Shift
from ..config.shift_pool_config import shift_pool_config
from ..models.shift_pool_models import ShiftClaim

OWN_EMPLOYEE_POINTS = 1000
PRIMARY_TIER_POINTS = 100
REPUTATION_POINTS_PER_STAR = 100
RELIABILITY_BONUS_POINTS = 50
NO_SHOW_PENALTY = 25
MAX_REPUTATION = 5.0


@dataclass(frozen=True)
class ClaimPriorityFactors:
    is_own_employee: bool = False
    is_primary_tier: bool = False
    reputation_score: float = 0.0
    reliability_bonus: bool = False
    no_show_count: int = 0
    claim_time_bonus: int = 0


def score(factors: ClaimPriorityFactors) -> int:
    total = 0.0
    if factors.is_own_employee:
        total += OWN_EMPLOYEE_POINTS
    if factors.is_primary_tier:
        total += PRIMARY_TIER_POINTS
    reputation = min(max(factors.reputation_score, 0.0), MAX_REPUTATION)
    total += REPUTATION_POINTS_PER_STAR * reputation
    if factors.reliability_bonus:
        total += RELIABILITY_BONUS_POINTS
    total -= NO_SHOW_PENALTY * max(factors.no_show_count, 0)
    total += min(max(factors.claim_time_bonus, 0), shift_pool_config.MAX_CLAIM_TIME_BONUS)

    # absorb float noise from the reputation term before flooring
    return max(0, math.floor(round(total, 6)))


def claim_time_bonus(shift: Shift, claimed_at: datetime) -> int:
    """
    One point for every minute of the first hour after the shift opened that
    was still left when the claim came in
    """
    opened_at = shift.published_at or shift.created_at
    if opened_at is None:
        return 0
    minutes_open = math.floor((claimed_at - opened_at).total_seconds() / 60)
    return max(0, shift_pool_config.MAX_CLAIM_TIME_BONUS - max(minutes_open, 0))


def factors_for(
    shift: Shift,
    worker: WorkerProfile,
    claimed_at: Optional[datetime] = None,
) -> ClaimPriorityFactors:
    return ClaimPriorityFactors(
        is_own_employee=worker.restaurant_id == shift.restaurant_id,
        is_primary_tier=worker.tier == WorkerTier.PRIMARY,
        reputation_score=worker.reputation_score or 0.0,
        reliability_bonus=(worker.reliability_score or 0.0) > shift_pool_config.RELIABILITY_BONUS_THRESHOLD,
        no_show_count=worker.no_show_count or 0,
        claim_time_bonus=claim_time_bonus(shift, claimed_at) if claimed_at else 0,
    )


def rank_claims(claims: List[ShiftClaim]) -> List[ShiftClaim]:
    """Highest score first, then earliest claim, then lowest id"""
    return sorted(claims, key=lambda c: (-(c.priority_score or 0), c.claimed_at, c.id or 0))
