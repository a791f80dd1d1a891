from .claim_resolution_service import ClaimResolutionEngine, emit, shift_payload
from .geo_feasibility import CommuteResult, can_commute, distance, estimate_commute, nearby_restaurants
from .priority_scorer import ClaimPriorityFactors, factors_for, rank_claims, score
from .shift_swap_service import ShiftSwapService

__all__ = [
    "ClaimResolutionEngine",
    "emit",
    "shift_payload",
    "CommuteResult",
    "can_commute",
    "distance",
    "estimate_commute",
    "nearby_restaurants",
    "ClaimPriorityFactors",
    "factors_for",
    "rank_claims",
    "score",
    "ShiftSwapService",
]
