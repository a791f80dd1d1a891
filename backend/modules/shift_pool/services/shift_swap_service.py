# backend/modules/shift_pool/services/shift_swap_service.py

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.clock import Clock, utc_now
from core.database_retry import unit_of_work
from modules.core.models import WorkerProfile
from modules.notifications.enums import NotificationType
from modules.notifications.services.notification_pipeline import NotificationIntent
from modules.scheduling.enums import ShiftStatus
from modules.scheduling.models import Shift
from modules.scheduling.services.shift_state_machine import (
    REASSIGNABLE_STATUSES,
    ShiftStateMachine,
    TransitionContext,
)
from ..config.shift_pool_config import ShiftPoolConfig, shift_pool_config
from ..enums.shift_pool_enums import SwapStatus
from ..exceptions.shift_pool_exceptions import (
    InvalidSwapRequest,
    NotQualified,
    SwapNotFound,
    UnauthorizedSwap,
    WorkerNotFound,
)
from ..models.shift_pool_models import ShiftSwap
from ..utils.availability import find_overlapping_shift
from .claim_resolution_service import Notifier, emit, shift_payload

logger = logging.getLogger(__name__)


def swap_payload(swap: ShiftSwap, shift: Shift) -> Dict[str, Any]:
    payload = shift_payload(shift)
    payload.pop("shiftId")
    payload["swapId"] = swap.id
    return payload


class ShiftSwapService:
    """
    Worker initiated shift trades and give-aways.

    A swap with a target shift trades the two assignments; without one the
    source shift is handed to the target worker. Nothing is reassigned until
    the target worker has accepted and, when the swap needs it, a manager
    has approved.
    """

    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        config: Optional[ShiftPoolConfig] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock or utc_now
        self.config = config or shift_pool_config
        self.state_machine = ShiftStateMachine(db, clock=self.clock)

    def create_swap(
        self,
        source_shift_id: int,
        source_worker_id: int,
        target_worker_id: Optional[int] = None,
        target_shift_id: Optional[int] = None,
        message: Optional[str] = None,
        expires_in_hours: Optional[int] = None,
    ) -> ShiftSwap:
        now = self.clock()

        with unit_of_work(self.db):
            source_shift = self.state_machine.get_shift(source_shift_id)
            if source_shift.assigned_worker_id != source_worker_id:
                raise UnauthorizedSwap()
            if source_shift.status not in REASSIGNABLE_STATUSES:
                raise InvalidSwapRequest(f"shift {source_shift_id} is {source_shift.status.value}")
            if source_shift.start_time <= now:
                raise InvalidSwapRequest("shift has already started")

            source_worker = self._get_worker(source_worker_id)

            target_shift = None
            if target_shift_id is not None:
                target_shift = self._validate_target_shift(source_shift, target_shift_id, target_worker_id, now)
                target_worker_id = target_shift.assigned_worker_id

            if target_worker_id is None:
                raise InvalidSwapRequest("a target worker or target shift is required")
            if target_worker_id == source_worker_id:
                raise InvalidSwapRequest("cannot swap a shift with yourself")

            target_worker = self._get_worker(target_worker_id)
            self._check_can_work(target_worker, source_shift, exclude=target_shift)
            if target_shift is not None:
                self._check_can_work(source_worker, target_shift, exclude=source_shift)

            pending = (
                self.db.query(ShiftSwap)
                .filter(ShiftSwap.source_shift_id == source_shift.id, ShiftSwap.status == SwapStatus.PENDING)
                .first()
            )
            if pending:
                raise InvalidSwapRequest(f"swap {pending.id} is already pending for this shift")

            restaurant = source_shift.restaurant
            cross_restaurant = target_worker.restaurant_id != source_shift.restaurant_id or (
                target_shift is not None and target_shift.restaurant_id != source_shift.restaurant_id
            )
            if cross_restaurant:
                self._check_same_network(source_shift, target_worker, target_shift)

            requires_approval = (
                cross_restaurant
                or not restaurant.allow_cross_restaurant_swaps
                or (source_worker.reliability_score or 0) < restaurant.auto_approve_threshold
            )

            deadline = now + timedelta(hours=expires_in_hours or self.config.SWAP_EXPIRY_HOURS)
            starts = [source_shift.start_time] + ([target_shift.start_time] if target_shift else [])
            swap = ShiftSwap(
                source_shift_id=source_shift.id,
                source_worker_id=source_worker.id,
                target_shift_id=target_shift.id if target_shift else None,
                target_worker_id=target_worker.id,
                status=SwapStatus.PENDING,
                requires_approval=requires_approval,
                message=message,
                created_at=now,
                expires_at=min([deadline, *starts]),
            )
            self.db.add(swap)
            self.db.flush()

            payload = swap_payload(swap, source_shift)
            payload["workerName"] = source_worker.user.name
            intents = [
                NotificationIntent(
                    user_id=target_worker.user_id, type=NotificationType.SWAP_REQUEST, payload=payload
                )
            ]

        logger.info(
            f"Swap {swap.id} requested by worker {source_worker_id} for shift {source_shift_id} "
            f"(requires approval: {requires_approval})"
        )
        emit(self.notifier, intents)
        return swap

    def _get_worker(self, worker_id: int) -> WorkerProfile:
        worker = self.db.get(WorkerProfile, worker_id)
        if worker is None:
            raise WorkerNotFound(worker_id)
        return worker

    def _validate_target_shift(
        self,
        source_shift: Shift,
        target_shift_id: int,
        target_worker_id: Optional[int],
        now: datetime,
    ) -> Shift:
        if target_shift_id == source_shift.id:
            raise InvalidSwapRequest("cannot swap a shift for itself")
        target_shift = self.state_machine.get_shift(target_shift_id)
        if target_shift.status not in REASSIGNABLE_STATUSES or target_shift.assigned_worker_id is None:
            raise InvalidSwapRequest(f"target shift {target_shift_id} is not assigned")
        if target_worker_id is not None and target_shift.assigned_worker_id != target_worker_id:
            raise InvalidSwapRequest(f"target shift {target_shift_id} is not assigned to worker {target_worker_id}")
        if target_shift.start_time <= now:
            raise InvalidSwapRequest("target shift has already started")
        return target_shift

    def _check_can_work(self, worker: WorkerProfile, shift: Shift, exclude: Optional[Shift] = None):
        """The worker must be qualified for the shift and free for its time span"""
        if not worker.is_qualified_for(shift.position):
            raise NotQualified(f"worker {worker.id} is not qualified for {shift.position}")

        excluded = [shift.id] + ([exclude.id] if exclude is not None else [])
        overlapping = find_overlapping_shift(
            self.db, worker.id, shift.start_time, shift.end_time, exclude_shift_ids=excluded
        )
        if overlapping:
            raise InvalidSwapRequest(f"worker {worker.id} is not available, overlaps shift {overlapping.id}")

    def _check_same_network(self, source_shift: Shift, target_worker: WorkerProfile, target_shift: Optional[Shift]):
        network_id = source_shift.restaurant.network_id
        others = [target_worker.restaurant] + ([target_shift.restaurant] if target_shift else [])
        if network_id is None or any(r.network_id != network_id for r in others):
            raise InvalidSwapRequest("restaurants are not in the same network")

    def _get_swap(self, swap_id: int) -> ShiftSwap:
        swap = self.db.get(ShiftSwap, swap_id)
        if swap is None:
            raise SwapNotFound(swap_id)
        return swap

    def _update_pending(self, swap: ShiftSwap, values: Dict[str, Any]):
        """Conditional update: only a still pending swap changes"""
        updated = (
            self.db.query(ShiftSwap)
            .filter(ShiftSwap.id == swap.id, ShiftSwap.status == SwapStatus.PENDING)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            raise InvalidSwapRequest(f"swap {swap.id} is no longer pending")
        self.db.expire(swap)

    def _require_pending(self, swap: ShiftSwap, now: datetime):
        if swap.status != SwapStatus.PENDING:
            raise InvalidSwapRequest(f"swap {swap.id} is already {swap.status.value}")
        if swap.expires_at <= now:
            raise InvalidSwapRequest(f"swap {swap.id} has expired")

    def respond_to_swap(
        self,
        swap_id: int,
        worker_id: int,
        accept: bool,
        reason: Optional[str] = None,
    ) -> ShiftSwap:
        """Target worker accepts or declines a swap request"""
        now = self.clock()
        with unit_of_work(self.db):
            swap = self._get_swap(swap_id)
            if swap.target_worker_id != worker_id:
                raise UnauthorizedSwap("Only the requested worker can respond to this swap")
            self._require_pending(swap, now)

            payload = swap_payload(swap, swap.source_shift)
            payload["workerName"] = swap.target_worker.user.name
            requester = swap.source_worker.user_id

            if not accept:
                self._update_pending(
                    swap,
                    {"status": SwapStatus.REJECTED, "resolved_at": now, "rejection_reason": reason or "Declined"},
                )
                intents = [NotificationIntent(requester, NotificationType.SWAP_REJECTED, payload)]
            else:
                self._update_pending(swap, {"target_accepted": True})
                intents = [NotificationIntent(requester, NotificationType.SWAP_ACCEPTED, payload)]
                if swap.can_execute:
                    intents.extend(self._execute_swap(swap, f"WORKER:{worker_id}", now))
                else:
                    intents.extend(self._approval_request(swap))

        logger.info(f"Swap {swap_id} {'accepted' if accept else 'declined'} by worker {worker_id}")
        emit(self.notifier, intents)
        return swap

    def _approval_request(self, swap: ShiftSwap) -> List[NotificationIntent]:
        manager_user_id = swap.source_shift.restaurant.manager_user_id
        if not manager_user_id:
            logger.warning(f"Swap {swap.id} needs approval but restaurant has no manager")
            return []
        payload = swap_payload(swap, swap.source_shift)
        payload.update({"worker1": swap.source_worker.user.name, "worker2": swap.target_worker.user.name})
        return [NotificationIntent(manager_user_id, NotificationType.SWAP_PENDING_APPROVAL, payload)]

    def approve_swap(self, swap_id: int, approver_id: int) -> ShiftSwap:
        """
        Record manager approval.

        The swap runs right away when the target worker has already
        accepted; otherwise it runs on their acceptance.
        """
        now = self.clock()
        with unit_of_work(self.db):
            swap = self._get_swap(swap_id)
            if swap.status != SwapStatus.PENDING:
                raise InvalidSwapRequest("Can only approve pending swap requests")
            self._require_pending(swap, now)

            self._update_pending(swap, {"manager_approved": True, "approved_by_id": approver_id})
            intents = [
                NotificationIntent(
                    swap.source_worker.user_id,
                    NotificationType.SWAP_APPROVED,
                    swap_payload(swap, swap.source_shift),
                )
            ]
            if swap.target_accepted:
                intents.extend(self._execute_swap(swap, f"USER:{approver_id}", now))

        logger.info(f"Swap {swap_id} approved by user {approver_id}")
        emit(self.notifier, intents)
        return swap

    def reject_swap(self, swap_id: int, approver_id: int, reason: Optional[str] = None) -> ShiftSwap:
        now = self.clock()
        with unit_of_work(self.db):
            swap = self._get_swap(swap_id)
            if swap.status != SwapStatus.PENDING:
                raise InvalidSwapRequest("Can only reject pending swap requests")

            self._update_pending(
                swap,
                {
                    "status": SwapStatus.REJECTED,
                    "manager_approved": False,
                    "approved_by_id": approver_id,
                    "rejection_reason": reason or "Rejected by manager",
                    "resolved_at": now,
                },
            )
            payload = swap_payload(swap, swap.source_shift)
            intents = [
                NotificationIntent(
                    swap.source_worker.user_id,
                    NotificationType.SWAP_REJECTED,
                    {**payload, "workerName": "Your manager"},
                ),
                NotificationIntent(swap.target_worker.user_id, NotificationType.SWAP_CANCELLED, payload),
            ]

        logger.info(f"Swap {swap_id} rejected by user {approver_id}: {reason}")
        emit(self.notifier, intents)
        return swap

    def cancel_swap(self, swap_id: int, worker_id: int) -> ShiftSwap:
        now = self.clock()
        with unit_of_work(self.db):
            swap = self._get_swap(swap_id)
            if swap.source_worker_id != worker_id:
                raise UnauthorizedSwap("Only the requester can cancel a swap request")
            if swap.status != SwapStatus.PENDING:
                raise InvalidSwapRequest("Can only cancel pending swap requests")

            self._update_pending(
                swap, {"status": SwapStatus.CANCELLED, "resolved_at": now, "rejection_reason": "Cancelled"}
            )
            intents = [
                NotificationIntent(
                    swap.target_worker.user_id,
                    NotificationType.SWAP_CANCELLED,
                    swap_payload(swap, swap.source_shift),
                )
            ]

        logger.info(f"Swap {swap_id} cancelled by worker {worker_id}")
        emit(self.notifier, intents)
        return swap

    def _execute_swap(self, swap: ShiftSwap, actor: str, now: datetime) -> List[NotificationIntent]:
        """
        Reassign the shifts and resolve the swap as ACCEPTED.

        Runs inside the caller's unit of work with both shift rows locked.
        """
        if not swap.can_execute:
            raise InvalidSwapRequest("manager approval is required before this swap can run")
        if not swap.target_accepted:
            raise InvalidSwapRequest("the target worker has not accepted this swap")

        shift_ids = sorted(i for i in (swap.source_shift_id, swap.target_shift_id) if i is not None)
        locked = {shift_id: self.state_machine.get_shift(shift_id, lock=True) for shift_id in shift_ids}
        source_shift = locked[swap.source_shift_id]
        target_shift = locked.get(swap.target_shift_id) if swap.is_trade else None

        if source_shift.assigned_worker_id != swap.source_worker_id:
            raise InvalidSwapRequest(f"shift {source_shift.id} is no longer assigned to the requester")
        if target_shift is not None and target_shift.assigned_worker_id != swap.target_worker_id:
            raise InvalidSwapRequest(f"shift {target_shift.id} is no longer assigned to the target worker")

        # Availability may have changed since the request was made
        self._check_can_work(swap.target_worker, source_shift, exclude=target_shift)
        if target_shift is not None:
            self._check_can_work(swap.source_worker, target_shift, exclude=source_shift)

        context = TransitionContext(actor=actor, reason=f"Swap {swap.id}", now=now)
        self.state_machine.reassign(source_shift, swap.target_worker_id, context)
        if target_shift is not None:
            self.state_machine.reassign(target_shift, swap.source_worker_id, context)

        self._update_pending(swap, {"status": SwapStatus.ACCEPTED, "resolved_at": now})
        self.db.flush()

        logger.info(f"Swap {swap.id} executed: shift {source_shift.id} now with worker {swap.target_worker_id}")
        payload = swap_payload(swap, source_shift)
        return [
            NotificationIntent(swap.source_worker.user_id, NotificationType.SWAP_COMPLETED, payload),
            NotificationIntent(swap.target_worker.user_id, NotificationType.SWAP_COMPLETED, payload),
        ]

    def drop_to_pool(self, shift_id: int, worker_id: int, reason: Optional[str] = None) -> Shift:
        """Assigned worker gives up a shift; it goes back to the open pool"""
        now = self.clock()
        with unit_of_work(self.db):
            shift = self.state_machine.get_shift(shift_id, lock=True)
            if shift.assigned_worker_id != worker_id:
                raise UnauthorizedSwap("You can only release your own shifts")
            if shift.start_time <= now:
                raise InvalidSwapRequest("shift has already started")

            self.state_machine.transition(
                shift,
                ShiftStatus.PUBLISHED_UNASSIGNED,
                TransitionContext(actor=f"WORKER:{worker_id}", reason=reason or "Released to pool", now=now),
            )
            cancelled = (
                self.db.query(ShiftSwap)
                .filter(
                    or_(ShiftSwap.source_shift_id == shift.id, ShiftSwap.target_shift_id == shift.id),
                    ShiftSwap.status == SwapStatus.PENDING,
                )
                .update(
                    {
                        "status": SwapStatus.CANCELLED,
                        "resolved_at": now,
                        "rejection_reason": "Shift released to pool",
                    },
                    synchronize_session=False,
                )
            )

            intents = []
            manager_user_id = shift.restaurant.manager_user_id
            if manager_user_id:
                intents.append(
                    NotificationIntent(manager_user_id, NotificationType.COVERAGE_GAP_ALERT, shift_payload(shift))
                )

        logger.info(f"Worker {worker_id} released shift {shift_id} to the pool ({cancelled} swap(s) cancelled)")
        emit(self.notifier, intents)
        return shift

    def expire_stale(self, now: Optional[datetime] = None) -> int:
        """Expire pending swaps past their deadline; safe to run repeatedly"""
        now = now or self.clock()
        intents: List[NotificationIntent] = []
        expired = 0

        with unit_of_work(self.db):
            overdue = (
                self.db.query(ShiftSwap)
                .filter(ShiftSwap.status == SwapStatus.PENDING, ShiftSwap.expires_at <= now)
                .all()
            )
            for swap in overdue:
                updated = (
                    self.db.query(ShiftSwap)
                    .filter(ShiftSwap.id == swap.id, ShiftSwap.status == SwapStatus.PENDING)
                    .update(
                        {"status": SwapStatus.EXPIRED, "resolved_at": now, "rejection_reason": "Expired"},
                        synchronize_session=False,
                    )
                )
                if not updated:
                    continue
                expired += 1
                intents.append(
                    NotificationIntent(
                        swap.source_worker.user_id,
                        NotificationType.SWAP_EXPIRED,
                        swap_payload(swap, swap.source_shift),
                    )
                )
                self.db.expire(swap)

        if expired:
            logger.info(f"Expired {expired} swap request(s)")
        emit(self.notifier, intents)
        return expired

    def get_pending_swaps_for_approval(self, restaurant_id: int) -> List[ShiftSwap]:
        """Accepted swaps waiting on a manager decision"""
        return (
            self.db.query(ShiftSwap)
            .join(Shift, ShiftSwap.source_shift_id == Shift.id)
            .filter(
                Shift.restaurant_id == restaurant_id,
                ShiftSwap.status == SwapStatus.PENDING,
                ShiftSwap.requires_approval == True,
                ShiftSwap.target_accepted == True,
                ShiftSwap.manager_approved.is_(None),
            )
            .order_by(ShiftSwap.created_at)
            .all()
        )

    def get_swaps_for_worker(self, worker_id: int, include_resolved: bool = False) -> List[ShiftSwap]:
        query = self.db.query(ShiftSwap).filter(
            or_(ShiftSwap.source_worker_id == worker_id, ShiftSwap.target_worker_id == worker_id)
        )
        if not include_resolved:
            query = query.filter(ShiftSwap.status == SwapStatus.PENDING)
        return query.order_by(ShiftSwap.created_at.desc()).all()
