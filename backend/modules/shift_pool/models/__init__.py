from .shift_pool_models import ShiftClaim, ShiftSwap

__all__ = ["ShiftClaim", "ShiftSwap"]
