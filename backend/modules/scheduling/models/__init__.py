from .scheduling_models import Shift, ShiftStatusHistory

__all__ = ["Shift", "ShiftStatusHistory"]
