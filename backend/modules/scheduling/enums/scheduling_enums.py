from enum import Enum


class ShiftStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED_UNASSIGNED = "PUBLISHED_UNASSIGNED"
    PUBLISHED_OFFERED = "PUBLISHED_OFFERED"
    PUBLISHED_CLAIMED = "PUBLISHED_CLAIMED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class ShiftType(str, Enum):
    DINE_IN = "DINE_IN"
    DELIVERY_ONLY = "DELIVERY_ONLY"
    HYBRID = "HYBRID"


# Statuses in which a shift carries an assigned worker
ASSIGNED_STATUSES = frozenset({
    ShiftStatus.PUBLISHED_CLAIMED,
    ShiftStatus.CONFIRMED,
    ShiftStatus.IN_PROGRESS,
    ShiftStatus.COMPLETED,
    ShiftStatus.NO_SHOW,
})

# Statuses a worker may claim from
CLAIMABLE_STATUSES = frozenset({
    ShiftStatus.PUBLISHED_UNASSIGNED,
    ShiftStatus.PUBLISHED_OFFERED,
})

TERMINAL_STATUSES = frozenset({
    ShiftStatus.COMPLETED,
    ShiftStatus.CANCELLED,
    ShiftStatus.NO_SHOW,
})
