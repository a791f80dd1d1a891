# backend/modules/scheduling/services/shift_state_machine.py

"""
Shift lifecycle.

Every status change goes through ShiftStateMachine.transition, which checks
the transition table and the business rules, keeps the assigned worker in
step with the status and appends a history row. Releasing an assigned shift
back to the pool also retires the claim that won it. It never commits and never
notifies; callers own the unit of work.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional
import logging

from sqlalchemy.orm import Session

from core.clock import Clock, utc_now
from core.database_retry import unit_of_work
from ..enums.scheduling_enums import ShiftStatus
from ..exceptions.scheduling_exceptions import InvalidTransition, ShiftNotFound
from ..models.scheduling_models import Shift, ShiftStatusHistory

logger = logging.getLogger(__name__)


TRANSITIONS: Dict[ShiftStatus, FrozenSet[ShiftStatus]] = {
    ShiftStatus.DRAFT: frozenset({
        ShiftStatus.PUBLISHED_UNASSIGNED,
        ShiftStatus.CANCELLED,
    }),
    ShiftStatus.PUBLISHED_UNASSIGNED: frozenset({
        ShiftStatus.PUBLISHED_OFFERED,
        ShiftStatus.PUBLISHED_CLAIMED,
        ShiftStatus.CANCELLED,
    }),
    ShiftStatus.PUBLISHED_OFFERED: frozenset({
        ShiftStatus.PUBLISHED_CLAIMED,
        ShiftStatus.PUBLISHED_UNASSIGNED,
        ShiftStatus.CANCELLED,
    }),
    ShiftStatus.PUBLISHED_CLAIMED: frozenset({
        ShiftStatus.CONFIRMED,
        ShiftStatus.PUBLISHED_UNASSIGNED,
        ShiftStatus.CANCELLED,
    }),
    ShiftStatus.CONFIRMED: frozenset({
        ShiftStatus.IN_PROGRESS,
        ShiftStatus.PUBLISHED_UNASSIGNED,
        ShiftStatus.CANCELLED,
        ShiftStatus.NO_SHOW,
    }),
    ShiftStatus.IN_PROGRESS: frozenset({
        ShiftStatus.COMPLETED,
        ShiftStatus.NO_SHOW,
    }),
    ShiftStatus.COMPLETED: frozenset(),
    ShiftStatus.CANCELLED: frozenset(),
    ShiftStatus.NO_SHOW: frozenset(),
}

# A shift can be started this long before its scheduled start
EARLY_START_WINDOW = timedelta(hours=2)

_REQUIRES_ASSIGNED_WORKER = frozenset({
    ShiftStatus.CONFIRMED,
    ShiftStatus.IN_PROGRESS,
    ShiftStatus.NO_SHOW,
})

_CLEARS_ASSIGNMENT = frozenset({
    ShiftStatus.PUBLISHED_UNASSIGNED,
    ShiftStatus.CANCELLED,
})

# Work has not started, so the worker can still change
REASSIGNABLE_STATUSES = frozenset({
    ShiftStatus.PUBLISHED_CLAIMED,
    ShiftStatus.CONFIRMED,
})


def can_transition(from_status: ShiftStatus, to_status: ShiftStatus) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def allowed_transitions(from_status: ShiftStatus) -> FrozenSet[ShiftStatus]:
    return TRANSITIONS.get(from_status, frozenset())


@dataclass
class TransitionContext:
    """Who asked for a transition and why"""
    actor: str = "SYSTEM"
    reason: Optional[str] = None
    worker_id: Optional[int] = None
    now: Optional[datetime] = None


class ShiftStateMachine:
    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or utc_now

    def transition(
        self,
        shift: Shift,
        to_status: ShiftStatus,
        context: Optional[TransitionContext] = None,
    ) -> ShiftStatusHistory:
        """
        Move a shift to a new status and record the change.

        Raises InvalidTransition without touching the shift when the move is
        not in the transition table or breaks a business rule.
        """
        context = context or TransitionContext()
        now = context.now or self.clock()
        from_status = shift.status

        if not can_transition(from_status, to_status):
            raise InvalidTransition(from_status, to_status)

        self._check_business_rules(shift, to_status, context, now)

        if to_status == ShiftStatus.PUBLISHED_UNASSIGNED and from_status in REASSIGNABLE_STATUSES:
            self._retire_approved_claim(shift, now)

        shift.status = to_status
        if to_status == ShiftStatus.PUBLISHED_CLAIMED:
            shift.assigned_worker_id = context.worker_id
            shift.offered_to = []
            shift.offer_expires_at = None
        elif to_status in _CLEARS_ASSIGNMENT:
            shift.assigned_worker_id = None
            shift.offered_to = []
            shift.offer_expires_at = None

        if to_status == ShiftStatus.PUBLISHED_UNASSIGNED and shift.published_at is None:
            shift.published_at = now

        entry = ShiftStatusHistory(
            shift_id=shift.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=context.actor,
            reason=context.reason,
            created_at=now,
        )
        self.db.add(entry)

        logger.info(
            f"Shift {shift.id} {from_status.value} -> {to_status.value} by {context.actor}"
        )
        return entry

    def _check_business_rules(
        self,
        shift: Shift,
        to_status: ShiftStatus,
        context: TransitionContext,
        now: datetime,
    ):
        from_status = shift.status

        if to_status == ShiftStatus.PUBLISHED_UNASSIGNED and from_status == ShiftStatus.DRAFT:
            if shift.start_time <= now:
                raise InvalidTransition(from_status, to_status, "cannot publish a shift in the past")

        if to_status == ShiftStatus.PUBLISHED_CLAIMED and context.worker_id is None:
            raise InvalidTransition(from_status, to_status, "a worker is required to claim a shift")

        if to_status in _REQUIRES_ASSIGNED_WORKER and shift.assigned_worker_id is None:
            raise InvalidTransition(from_status, to_status, "shift has no assigned worker")

        if to_status == ShiftStatus.IN_PROGRESS:
            if now < shift.start_time - EARLY_START_WINDOW:
                raise InvalidTransition(from_status, to_status, "shift cannot start yet")
            if now > shift.end_time:
                raise InvalidTransition(from_status, to_status, "shift has already ended")

    def _retire_approved_claim(self, shift: Shift, now: datetime):
        """The claim that won a shift stops holding it once the shift is back in the pool"""
        from modules.shift_pool.config import shift_pool_config
        from modules.shift_pool.enums import ClaimStatus
        from modules.shift_pool.models import ShiftClaim

        retired = (
            self.db.query(ShiftClaim)
            .filter(ShiftClaim.shift_id == shift.id, ShiftClaim.status == ClaimStatus.APPROVED)
            .update(
                {
                    "status": ClaimStatus.EXPIRED,
                    "resolved_at": now,
                    "rejection_reason": shift_pool_config.RELEASED_REASON,
                },
                synchronize_session="fetch",
            )
        )
        if retired:
            logger.info(f"Approved claim on shift {shift.id} retired on release")

    def reassign(
        self,
        shift: Shift,
        worker_id: int,
        context: Optional[TransitionContext] = None,
    ) -> ShiftStatusHistory:
        """
        Hand an assigned shift to another worker without changing its status.

        Recorded in the history as a same-status entry.
        """
        context = context or TransitionContext()
        now = context.now or self.clock()
        if shift.assigned_worker_id is None or shift.status not in REASSIGNABLE_STATUSES:
            raise InvalidTransition(
                shift.status, shift.status, "only an assigned shift that has not started can be reassigned"
            )

        previous_worker_id = shift.assigned_worker_id
        shift.assigned_worker_id = worker_id
        entry = ShiftStatusHistory(
            shift_id=shift.id,
            from_status=shift.status,
            to_status=shift.status,
            changed_by=context.actor,
            reason=context.reason or f"Reassigned from worker {previous_worker_id} to {worker_id}",
            created_at=now,
        )
        self.db.add(entry)

        logger.info(f"Shift {shift.id} reassigned from worker {previous_worker_id} to {worker_id}")
        return entry

    # Convenience operations. Each one loads the shift, applies a single
    # transition and commits.

    def get_shift(self, shift_id: int, lock: bool = False) -> Shift:
        query = self.db.query(Shift).filter(Shift.id == shift_id)
        if lock:
            query = query.with_for_update().populate_existing()
        shift = query.first()
        if not shift:
            raise ShiftNotFound(shift_id)
        return shift

    def _apply(self, shift_id: int, to_status: ShiftStatus, context: TransitionContext) -> Shift:
        with unit_of_work(self.db):
            shift = self.get_shift(shift_id, lock=True)
            self.transition(shift, to_status, context)
        return shift

    def publish(self, shift_id: int, actor: str = "SYSTEM") -> Shift:
        return self._apply(shift_id, ShiftStatus.PUBLISHED_UNASSIGNED, TransitionContext(actor=actor))

    def offer(
        self,
        shift_id: int,
        worker_ids: List[int],
        expires_at: datetime,
        actor: str = "SYSTEM",
    ) -> Shift:
        """Reserve a published shift for a set of workers until expires_at"""
        if not worker_ids:
            raise InvalidTransition(
                ShiftStatus.PUBLISHED_UNASSIGNED,
                ShiftStatus.PUBLISHED_OFFERED,
                "an offer needs at least one worker",
            )
        with unit_of_work(self.db):
            shift = self.get_shift(shift_id, lock=True)
            self.transition(
                shift,
                ShiftStatus.PUBLISHED_OFFERED,
                TransitionContext(actor=actor, reason=f"Offered to {len(worker_ids)} worker(s)"),
            )
            shift.offered_to = list(dict.fromkeys(worker_ids))
            shift.offer_expires_at = expires_at
        return shift

    def assign(self, shift_id: int, worker_id: int, actor: str = "SYSTEM") -> Shift:
        return self._apply(
            shift_id,
            ShiftStatus.PUBLISHED_CLAIMED,
            TransitionContext(actor=actor, worker_id=worker_id),
        )

    def confirm(self, shift_id: int, actor: str = "SYSTEM") -> Shift:
        return self._apply(shift_id, ShiftStatus.CONFIRMED, TransitionContext(actor=actor))

    def release_to_pool(self, shift_id: int, actor: str = "SYSTEM", reason: Optional[str] = None) -> Shift:
        return self._apply(
            shift_id,
            ShiftStatus.PUBLISHED_UNASSIGNED,
            TransitionContext(actor=actor, reason=reason or "Released to pool"),
        )

    def start(self, shift_id: int, actor: str = "SYSTEM") -> Shift:
        return self._apply(shift_id, ShiftStatus.IN_PROGRESS, TransitionContext(actor=actor))

    def complete(self, shift_id: int, actor: str = "SYSTEM") -> Shift:
        return self._apply(shift_id, ShiftStatus.COMPLETED, TransitionContext(actor=actor))

    def mark_no_show(self, shift_id: int, actor: str = "SYSTEM") -> Shift:
        """Record a no-show and count it against the assigned worker"""
        with unit_of_work(self.db):
            shift = self.get_shift(shift_id, lock=True)
            self.transition(shift, ShiftStatus.NO_SHOW, TransitionContext(actor=actor, reason="No show"))
            worker = shift.assigned_worker
            if worker is not None:
                worker.no_show_count = (worker.no_show_count or 0) + 1
        return shift

    def cancel(self, shift_id: int, actor: str = "SYSTEM", reason: Optional[str] = None) -> Shift:
        return self._apply(shift_id, ShiftStatus.CANCELLED, TransitionContext(actor=actor, reason=reason))

    def get_history(self, shift_id: int) -> List[ShiftStatusHistory]:
        return (
            self.db.query(ShiftStatusHistory)
            .filter(ShiftStatusHistory.shift_id == shift_id)
            .order_by(ShiftStatusHistory.id)
            .all()
        )
