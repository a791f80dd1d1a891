"""Exceptions for claim, offer and swap operations"""

from core.exceptions import DomainError


class ShiftNotClaimable(DomainError):
    """Raised when a shift is not open to the claiming worker"""

    error_code = "SHIFT_NOT_CLAIMABLE"

    def __init__(self, shift_id: int, reason: str):
        self.shift_id = shift_id
        super().__init__(message=f"Shift {shift_id} cannot be claimed: {reason}", status_code=409)


class OutOfRange(DomainError):
    """Raised when a worker cannot commute between adjacent shifts in time"""

    error_code = "OUT_OF_RANGE"

    def __init__(self, message: str):
        super().__init__(message=message, status_code=422)


class AlreadyResolved(DomainError):
    """Raised when a claim is no longer pending"""

    error_code = "ALREADY_RESOLVED"

    def __init__(self, claim_id: int, status):
        self.claim_id = claim_id
        self.status = status
        super().__init__(
            message=f"Claim {claim_id} is already {getattr(status, 'value', status)}",
            status_code=409,
        )


class ClaimNotFound(DomainError):
    error_code = "CLAIM_NOT_FOUND"

    def __init__(self, claim_id: int):
        super().__init__(message=f"Claim with ID {claim_id} not found", status_code=404)


class SwapNotFound(DomainError):
    error_code = "SWAP_NOT_FOUND"

    def __init__(self, swap_id: int):
        super().__init__(message=f"Swap request with ID {swap_id} not found", status_code=404)


class WorkerNotFound(DomainError):
    error_code = "WORKER_NOT_FOUND"

    def __init__(self, worker_id: int):
        super().__init__(message=f"Worker with ID {worker_id} not found", status_code=404)


class DuplicateClaim(DomainError):
    """Raised when a worker claims the same shift twice"""

    error_code = "DUPLICATE_CLAIM"

    def __init__(self, shift_id: int, worker_id: int):
        super().__init__(
            message=f"Worker {worker_id} already has a claim on shift {shift_id}",
            status_code=409,
        )


class NotQualified(DomainError):
    """Raised when a worker does not meet a shift's requirements"""

    error_code = "NOT_QUALIFIED"

    def __init__(self, reason: str):
        super().__init__(message=f"Worker not qualified: {reason}", status_code=403)


class InvalidSwapRequest(DomainError):
    """Raised when swap request validation fails"""

    error_code = "INVALID_SWAP_REQUEST"

    def __init__(self, reason: str):
        super().__init__(message=f"Invalid swap request: {reason}", status_code=400)


class UnauthorizedSwap(DomainError):
    """Raised when a worker acts on a swap that is not theirs"""

    error_code = "UNAUTHORIZED_SWAP"

    def __init__(self, message: str = "You can only swap your own shifts"):
        super().__init__(message=message, status_code=403)
