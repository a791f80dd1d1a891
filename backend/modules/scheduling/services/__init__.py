from .shift_state_machine import (
    ShiftStateMachine, TransitionContext, TRANSITIONS, can_transition, allowed_transitions
)

__all__ = [
    "ShiftStateMachine",
    "TransitionContext",
    "TRANSITIONS",
    "can_transition",
    "allowed_transitions",
]
