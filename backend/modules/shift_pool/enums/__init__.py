from .shift_pool_enums import ClaimStatus, SwapStatus

__all__ = ["ClaimStatus", "SwapStatus"]
