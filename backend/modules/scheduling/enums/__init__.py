from .scheduling_enums import (
    ShiftStatus, ShiftType, ASSIGNED_STATUSES, CLAIMABLE_STATUSES, TERMINAL_STATUSES
)

__all__ = [
    "ShiftStatus",
    "ShiftType",
    "ASSIGNED_STATUSES",
    "CLAIMABLE_STATUSES",
    "TERMINAL_STATUSES",
]
