from .shift_pool_exceptions import (
    ShiftNotClaimable,
    OutOfRange,
    AlreadyResolved,
    ClaimNotFound,
    SwapNotFound,
    WorkerNotFound,
    DuplicateClaim,
    NotQualified,
    InvalidSwapRequest,
    UnauthorizedSwap,
)

__all__ = [
    "ShiftNotClaimable",
    "OutOfRange",
    "AlreadyResolved",
    "ClaimNotFound",
    "SwapNotFound",
    "WorkerNotFound",
    "DuplicateClaim",
    "NotQualified",
    "InvalidSwapRequest",
    "UnauthorizedSwap",
]
