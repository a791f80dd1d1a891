"""Configuration for the shift pool workflow"""
from dataclasses import dataclass

from core.config import settings


@dataclass(frozen=True)
class CommuteConfig:
    """Commute estimation parameters"""

    base_minutes: float = 15.0
    speed_mph: float = 25.0
    traffic_factor: float = 1.3
    min_buffer_minutes: int = 10

    @classmethod
    def from_settings(cls) -> "CommuteConfig":
        return cls(
            base_minutes=settings.commute_base_minutes,
            speed_mph=settings.commute_speed_mph,
            traffic_factor=settings.commute_traffic_factor,
            min_buffer_minutes=settings.commute_min_buffer_minutes,
        )


@dataclass
class ShiftPoolConfig:
    """Configuration for claim, offer and swap behavior"""

    # Response deadlines
    CLAIM_EXPIRY_HOURS: int = 24
    OFFER_EXPIRY_HOURS: int = 4
    SWAP_EXPIRY_HOURS: int = 48

    # Scoring
    RELIABILITY_BONUS_THRESHOLD: float = 4.5
    MAX_CLAIM_TIME_BONUS: int = 60

    # Cross-restaurant claims
    NETWORK_SEARCH_RADIUS_MILES: float = 25.0

    SHIFT_FILLED_REASON: str = "Shift filled"
    WITHDRAWN_REASON: str = "Withdrawn"
    RELEASED_REASON: str = "Released"

    @classmethod
    def from_settings(cls) -> "ShiftPoolConfig":
        return cls(
            CLAIM_EXPIRY_HOURS=settings.claim_expiry_hours,
            OFFER_EXPIRY_HOURS=settings.offer_expiry_hours,
            SWAP_EXPIRY_HOURS=settings.swap_expiry_hours,
        )


# Default configuration instance
shift_pool_config = ShiftPoolConfig.from_settings()
