"""Exceptions raised by shift lifecycle operations"""

from typing import Optional

from core.exceptions import DomainError


class InvalidTransition(DomainError):
    """Raised when a shift status change is not allowed"""

    error_code = "INVALID_TRANSITION"

    def __init__(self, from_status, to_status, detail: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        self.detail = detail
        message = f"Cannot transition shift from {_name(from_status)} to {_name(to_status)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message=message, status_code=409)


class ShiftNotFound(DomainError):
    """Raised when a requested shift is not found"""

    error_code = "SHIFT_NOT_FOUND"

    def __init__(self, shift_id: int):
        self.shift_id = shift_id
        super().__init__(message=f"Shift with ID {shift_id} not found", status_code=404)


def _name(status) -> str:
    return getattr(status, "value", str(status))
