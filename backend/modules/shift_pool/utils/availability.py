from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from modules.scheduling.enums import ShiftStatus
from modules.scheduling.models import Shift

# Statuses that block the worker for the shift's time span
BUSY_STATUSES = (ShiftStatus.PUBLISHED_CLAIMED, ShiftStatus.CONFIRMED, ShiftStatus.IN_PROGRESS)


def find_overlapping_shift(
    db: Session,
    worker_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_shift_ids: Iterable[int] = (),
) -> Optional[Shift]:
    """First shift assigned to the worker that overlaps [start_time, end_time)"""
    query = db.query(Shift).filter(
        Shift.assigned_worker_id == worker_id,
        Shift.status.in_(BUSY_STATUSES),
        Shift.start_time < end_time,
        Shift.end_time > start_time,
    )
    excluded = list(exclude_shift_ids)
    if excluded:
        query = query.filter(Shift.id.notin_(excluded))
    return query.order_by(Shift.start_time).first()


def adjacent_shifts(db: Session, worker_id: int, start_time: datetime, end_time: datetime):
    """The worker's assigned shifts just before and just after a time span"""
    assigned = db.query(Shift).filter(
        Shift.assigned_worker_id == worker_id,
        Shift.status.in_(BUSY_STATUSES),
    )
    previous_shift = assigned.filter(Shift.end_time <= start_time).order_by(Shift.end_time.desc()).first()
    next_shift = assigned.filter(Shift.start_time >= end_time).order_by(Shift.start_time.asc()).first()
    return previous_shift, next_shift
