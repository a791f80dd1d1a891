from .scheduling_exceptions import InvalidTransition, ShiftNotFound

__all__ = ["InvalidTransition", "ShiftNotFound"]
