# backend/modules/shift_pool/services/claim_resolution_service.py

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.clock import Clock, utc_now
from core.database_retry import unit_of_work
from core.exceptions import DomainError
from modules.core.models import WorkerProfile
from modules.notifications.enums import NotificationType
from modules.notifications.services.notification_pipeline import NotificationIntent
from modules.scheduling.enums import ShiftStatus, CLAIMABLE_STATUSES
from modules.scheduling.models import Shift
from modules.scheduling.services.shift_state_machine import ShiftStateMachine, TransitionContext
from ..config.shift_pool_config import CommuteConfig, ShiftPoolConfig, shift_pool_config
from ..enums.shift_pool_enums import ClaimStatus
from ..exceptions.shift_pool_exceptions import (
    AlreadyResolved,
    ClaimNotFound,
    DuplicateClaim,
    NotQualified,
    OutOfRange,
    ShiftNotClaimable,
    WorkerNotFound,
)
from ..models.shift_pool_models import ShiftClaim
from ..utils.availability import adjacent_shifts, find_overlapping_shift
from .geo_feasibility import can_commute, distance, nearby_restaurants
from .priority_scorer import ClaimPriorityFactors, factors_for, rank_claims, score

logger = logging.getLogger(__name__)

Notifier = Callable[[NotificationIntent], Any]


def shift_payload(shift: Shift) -> Dict[str, Any]:
    """Template fields shared by shift related notifications"""
    return {
        "shiftId": shift.id,
        "position": shift.position,
        "date": shift.start_time.strftime("%Y-%m-%d"),
        "time": shift.start_time.strftime("%H:%M"),
        "restaurant": shift.restaurant.name if shift.restaurant else "",
    }


def emit(notifier: Optional[Notifier], intents: List[NotificationIntent]):
    """
    Hand intents to the notifier after the state change has committed.

    Failures are logged and dropped; they never reach the caller.
    """
    if notifier is None:
        if intents:
            logger.debug(f"No notifier configured, dropping {len(intents)} intent(s)")
        return
    for intent in intents:
        try:
            notifier(intent)
        except Exception as e:
            logger.error(
                f"Notification {intent.type.value} for user {intent.user_id} failed: {e}",
                exc_info=True,
            )


class ClaimResolutionEngine:
    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        config: Optional[ShiftPoolConfig] = None,
        commute_config: Optional[CommuteConfig] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock or utc_now
        self.config = config or shift_pool_config
        self.commute_config = commute_config or CommuteConfig.from_settings()
        self.state_machine = ShiftStateMachine(db, clock=self.clock)

    # Claims

    def submit_claim(
        self,
        shift_id: int,
        worker_id: int,
        factors: Optional[ClaimPriorityFactors] = None,
        notes: Optional[str] = None,
    ) -> ShiftClaim:
        """
        Validate and record a worker's claim on an open shift.

        Claims from the shift's own restaurant are approved straight away
        when the shift allows auto approval and the worker's reputation
        meets the restaurant threshold. Recording and approving happen in
        one unit of work, so a failed approval leaves no claim behind.

        A worker whose earlier claim on the shift expired, was withdrawn or
        was retired on release gets that claim reopened.
        """
        now = self.clock()
        intents: List[NotificationIntent] = []

        try:
            with unit_of_work(self.db):
                shift = self.state_machine.get_shift(shift_id)
                worker = self.db.get(WorkerProfile, worker_id)
                if worker is None:
                    raise WorkerNotFound(worker_id)

                previous = self._validate_claim(shift, worker, now)

                factors = factors or factors_for(shift, worker, claimed_at=now)
                claim = previous or ShiftClaim(shift_id=shift.id, worker_id=worker.id)
                claim.priority_score = score(factors)
                claim.status = ClaimStatus.PENDING
                claim.notes = notes
                claim.claimed_at = now
                claim.expires_at = min(now + timedelta(hours=self.config.CLAIM_EXPIRY_HOURS), shift.start_time)
                claim.resolved_at = None
                claim.resolved_by_id = None
                claim.rejection_reason = None
                self.db.add(claim)
                self.db.flush()
                claim_id, priority_score = claim.id, claim.priority_score

                restaurant = shift.restaurant
                auto_approve = (
                    shift.auto_approve
                    and worker.restaurant_id == shift.restaurant_id
                    and (worker.reputation_score or 0) >= restaurant.auto_approve_threshold
                )
                if auto_approve:
                    logger.info(f"Auto-approving claim {claim_id}")
                    intents = self._approve(claim, None, now)
                elif restaurant.manager_user_id:
                    payload = shift_payload(shift)
                    payload.update({"claimId": claim_id, "workerName": worker.user.name})
                    intents.append(
                        NotificationIntent(
                            user_id=restaurant.manager_user_id,
                            type=NotificationType.CLAIM_PENDING_APPROVAL,
                            payload=payload,
                        )
                    )
        except IntegrityError as e:
            raise DuplicateClaim(shift_id, worker_id) from e

        logger.info(f"Worker {worker_id} claimed shift {shift_id} (claim {claim_id}, score {priority_score})")
        emit(self.notifier, intents)
        return claim

    def _validate_claim(self, shift: Shift, worker: WorkerProfile, now: datetime) -> Optional[ShiftClaim]:
        """Raise if the worker may not claim the shift; return an earlier claim that can be reopened"""
        if shift.status not in CLAIMABLE_STATUSES:
            raise ShiftNotClaimable(shift.id, f"status is {shift.status.value}")

        if shift.status == ShiftStatus.PUBLISHED_OFFERED and worker.id not in (shift.offered_to or []):
            raise ShiftNotClaimable(shift.id, "shift is offered to other workers")

        if shift.start_time <= now:
            raise ShiftNotClaimable(shift.id, "shift has already started")

        if not worker.is_qualified_for(shift.position):
            raise NotQualified(f"not qualified for {shift.position}")

        if shift.min_reputation_score is not None and (worker.reputation_score or 0) < shift.min_reputation_score:
            raise NotQualified(
                f"reputation {worker.reputation_score} is below the required {shift.min_reputation_score}"
            )

        existing = (
            self.db.query(ShiftClaim)
            .filter(ShiftClaim.shift_id == shift.id, ShiftClaim.worker_id == worker.id)
            .populate_existing()
            .first()
        )
        if existing is not None and existing.status != ClaimStatus.EXPIRED:
            raise DuplicateClaim(shift.id, worker.id)

        overlapping = find_overlapping_shift(self.db, worker.id, shift.start_time, shift.end_time)
        if overlapping:
            raise ShiftNotClaimable(shift.id, f"overlaps assigned shift {overlapping.id}")

        if worker.restaurant_id != shift.restaurant_id:
            self._check_cross_restaurant(shift, worker)

        return existing

    def _check_cross_restaurant(self, shift: Shift, worker: WorkerProfile):
        """A worker from another restaurant must be in the same network and able to get there"""
        home = worker.restaurant
        if home.network_id is None or home.network_id != shift.restaurant.network_id:
            raise ShiftNotClaimable(shift.id, "restaurants are not in the same network")

        previous_shift, next_shift = adjacent_shifts(self.db, worker.id, shift.start_time, shift.end_time)

        if previous_shift is not None:
            self._require_commute(previous_shift, shift, previous_shift.end_time, shift.start_time)
        if next_shift is not None:
            self._require_commute(shift, next_shift, shift.end_time, next_shift.start_time)

    def _require_commute(self, first: Shift, second: Shift, first_end: datetime, second_start: datetime):
        miles = distance(
            first.restaurant.latitude,
            first.restaurant.longitude,
            second.restaurant.latitude,
            second.restaurant.longitude,
        )
        result = can_commute(first_end, second_start, miles, self.commute_config)
        if not result.feasible:
            raise OutOfRange(
                f"Cannot travel {miles:.1f} miles between shift {first.id} and shift {second.id}: "
                f"{result.available_minutes} minutes available, about {result.estimated_minutes} needed"
            )

    def resolve_claim(
        self,
        claim_id: int,
        approved: bool,
        reason: Optional[str] = None,
        resolver_id: Optional[int] = None,
    ) -> ShiftClaim:
        """
        Approve or reject a pending claim.

        Approval runs as one unit of work under the shift row lock: the
        claim is approved, its pending siblings are rejected and the shift
        is assigned. Losing a race surfaces as AlreadyResolved, or as
        TransientStoreFailure when the shift version moved underneath us.
        """
        now = self.clock()
        with unit_of_work(self.db):
            claim = self.db.get(ShiftClaim, claim_id)
            if claim is None:
                raise ClaimNotFound(claim_id)
            if claim.status != ClaimStatus.PENDING:
                raise AlreadyResolved(claim_id, claim.status)

            if approved:
                intents = self._approve(claim, resolver_id, now)
            else:
                intents = self._reject(claim, reason or "Not approved", resolver_id, now)

        emit(self.notifier, intents)
        return claim

    def _mark_resolved(self, claim_id: int, status: ClaimStatus, now: datetime,
                       resolver_id: Optional[int] = None, reason: Optional[str] = None):
        """Conditional update: only a still pending claim changes"""
        updated = (
            self.db.query(ShiftClaim)
            .filter(ShiftClaim.id == claim_id, ShiftClaim.status == ClaimStatus.PENDING)
            .update(
                {
                    "status": status,
                    "resolved_at": now,
                    "resolved_by_id": resolver_id,
                    "rejection_reason": reason,
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            raise AlreadyResolved(claim_id, "resolved")

    def _approve(self, claim: ShiftClaim, resolver_id: Optional[int], now: datetime) -> List[NotificationIntent]:
        shift = (
            self.db.query(Shift)
            .filter(Shift.id == claim.shift_id)
            .with_for_update()
            .populate_existing()
            .one()
        )

        self._mark_resolved(claim.id, ClaimStatus.APPROVED, now, resolver_id)

        if shift.status not in CLAIMABLE_STATUSES:
            raise ShiftNotClaimable(shift.id, f"status is {shift.status.value}")

        siblings = (
            self.db.query(ShiftClaim)
            .filter(
                ShiftClaim.shift_id == shift.id,
                ShiftClaim.status == ClaimStatus.PENDING,
                ShiftClaim.id != claim.id,
            )
            .all()
        )
        if siblings:
            (
                self.db.query(ShiftClaim)
                .filter(
                    ShiftClaim.id.in_([s.id for s in siblings]),
                    ShiftClaim.status == ClaimStatus.PENDING,
                )
                .update(
                    {
                        "status": ClaimStatus.REJECTED,
                        "resolved_at": now,
                        "resolved_by_id": resolver_id,
                        "rejection_reason": self.config.SHIFT_FILLED_REASON,
                    },
                    synchronize_session=False,
                )
            )

        was_offered = shift.status == ShiftStatus.PUBLISHED_OFFERED
        actor = f"USER:{resolver_id}" if resolver_id else "SYSTEM"
        self.state_machine.transition(
            shift,
            ShiftStatus.PUBLISHED_CLAIMED,
            TransitionContext(actor=actor, reason=f"Claim {claim.id} approved", worker_id=claim.worker_id, now=now),
        )
        if shift.auto_approve:
            self.state_machine.transition(
                shift,
                ShiftStatus.CONFIRMED,
                TransitionContext(actor=actor, reason="Auto-confirmed", now=now),
            )
        # Version check happens here; a concurrent change raises StaleDataError
        self.db.flush()

        # Bulk updates bypass the identity map
        for loaded in [claim, *siblings]:
            self.db.expire(loaded)

        payload = shift_payload(shift)
        intents = [
            NotificationIntent(
                user_id=claim.worker.user_id,
                type=NotificationType.CLAIM_APPROVED,
                payload={**payload, "claimId": claim.id},
            )
        ]
        for sibling in siblings:
            intents.append(
                NotificationIntent(
                    user_id=sibling.worker.user_id,
                    type=NotificationType.CLAIM_REJECTED,
                    payload={**payload, "claimId": sibling.id, "reason": self.config.SHIFT_FILLED_REASON},
                )
            )
        if was_offered and shift.created_by_id:
            intents.append(
                NotificationIntent(
                    user_id=shift.created_by_id,
                    type=NotificationType.OFFER_ACCEPTED,
                    payload={**payload, "workerName": claim.worker.user.name},
                )
            )

        logger.info(
            f"Claim {claim.id} approved for shift {shift.id}; {len(siblings)} sibling claim(s) rejected"
        )
        return intents

    def _reject(self, claim: ShiftClaim, reason: str, resolver_id: Optional[int],
                now: datetime) -> List[NotificationIntent]:
        self._mark_resolved(claim.id, ClaimStatus.REJECTED, now, resolver_id, reason)
        self.db.expire(claim)

        logger.info(f"Claim {claim.id} rejected: {reason}")
        return [
            NotificationIntent(
                user_id=claim.worker.user_id,
                type=NotificationType.CLAIM_REJECTED,
                payload={**shift_payload(claim.shift), "claimId": claim.id, "reason": reason},
            )
        ]

    def withdraw_claim(self, claim_id: int, worker_id: int) -> ShiftClaim:
        """Let a worker take back their own pending claim"""
        now = self.clock()
        with unit_of_work(self.db):
            claim = self.db.get(ShiftClaim, claim_id)
            if claim is None or claim.worker_id != worker_id:
                raise ClaimNotFound(claim_id)
            if claim.status != ClaimStatus.PENDING:
                raise AlreadyResolved(claim_id, claim.status)
            self._mark_resolved(claim_id, ClaimStatus.EXPIRED, now, reason=self.config.WITHDRAWN_REASON)
            self.db.expire(claim)

        logger.info(f"Claim {claim_id} withdrawn by worker {worker_id}")
        return claim

    def get_claims_for_shift(self, shift_id: int) -> List[ShiftClaim]:
        claims = self.db.query(ShiftClaim).filter(ShiftClaim.shift_id == shift_id).all()
        return rank_claims(claims)

    def get_pending_claims_for_restaurant(self, restaurant_id: int) -> List[ShiftClaim]:
        claims = (
            self.db.query(ShiftClaim)
            .join(Shift, ShiftClaim.shift_id == Shift.id)
            .filter(Shift.restaurant_id == restaurant_id, ShiftClaim.status == ClaimStatus.PENDING)
            .all()
        )
        by_shift: Dict[int, List[ShiftClaim]] = {}
        for claim in claims:
            by_shift.setdefault(claim.shift_id, []).append(claim)

        ordered = []
        for shift_claims in sorted(by_shift.values(), key=lambda cs: (cs[0].shift.start_time, cs[0].shift_id)):
            ordered.extend(rank_claims(shift_claims))
        return ordered

    def get_network_shifts(
        self, worker_id: int, radius_miles: Optional[float] = None
    ) -> List[Tuple[Shift, float]]:
        """
        Open shifts at other restaurants of the worker's network within
        radius_miles of their home restaurant, soonest first, paired with
        the distance in miles. Only shifts the worker is qualified for are
        listed.
        """
        worker = self.db.get(WorkerProfile, worker_id)
        if worker is None:
            raise WorkerNotFound(worker_id)
        home = worker.restaurant
        if home.network_id is None:
            return []

        radius = radius_miles if radius_miles is not None else self.config.NETWORK_SEARCH_RADIUS_MILES
        reachable = {
            restaurant.id: miles
            for restaurant, miles in nearby_restaurants(
                self.db, home.latitude, home.longitude, radius, network_id=home.network_id
            )
            if restaurant.id != home.id
        }
        if not reachable:
            return []

        shifts = (
            self.db.query(Shift)
            .filter(
                Shift.restaurant_id.in_(list(reachable)),
                Shift.status == ShiftStatus.PUBLISHED_UNASSIGNED,
                Shift.start_time > self.clock(),
            )
            .order_by(Shift.start_time, Shift.id)
            .all()
        )
        return [
            (shift, reachable[shift.restaurant_id])
            for shift in shifts
            if worker.is_qualified_for(shift.position)
            and (shift.min_reputation_score is None or (worker.reputation_score or 0) >= shift.min_reputation_score)
        ]

    # Offers

    def offer_shift(
        self,
        shift_id: int,
        worker_ids: List[int],
        actor_id: Optional[int] = None,
        expires_in_hours: Optional[int] = None,
    ) -> Shift:
        """Reserve a published shift for specific workers until the offer lapses"""
        now = self.clock()
        hours = expires_in_hours or self.config.OFFER_EXPIRY_HOURS
        shift = self.state_machine.get_shift(shift_id)
        expires_at = min(now + timedelta(hours=hours), shift.start_time)

        workers = self.db.query(WorkerProfile).filter(WorkerProfile.id.in_(worker_ids)).all()
        found = {w.id for w in workers}
        missing = [w for w in worker_ids if w not in found]
        if missing:
            raise WorkerNotFound(missing[0])

        actor = f"USER:{actor_id}" if actor_id else "SYSTEM"
        shift = self.state_machine.offer(shift_id, worker_ids, expires_at, actor=actor)

        payload = shift_payload(shift)
        emit(
            self.notifier,
            [
                NotificationIntent(user_id=w.user_id, type=NotificationType.SHIFT_OFFER_RECEIVED, payload=payload)
                for w in workers
            ],
        )
        return shift

    def decline_offer(self, shift_id: int, worker_id: int) -> Shift:
        with unit_of_work(self.db):
            shift = self.state_machine.get_shift(shift_id, lock=True)
            offered = list(shift.offered_to or [])
            if shift.status != ShiftStatus.PUBLISHED_OFFERED or worker_id not in offered:
                raise ShiftNotClaimable(shift_id, "no open offer for this worker")

            remaining = [w for w in offered if w != worker_id]
            if remaining:
                shift.offered_to = remaining
            else:
                self.state_machine.transition(
                    shift,
                    ShiftStatus.PUBLISHED_UNASSIGNED,
                    TransitionContext(actor=f"WORKER:{worker_id}", reason="All offers declined"),
                )

        logger.info(f"Worker {worker_id} declined offer for shift {shift_id}")
        return shift

    # Expiry sweep

    def expire_stale(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Expire overdue pending claims and lapsed offers.

        Every change is a conditional per-row update, so overlapping or
        repeated sweeps are harmless.
        """
        now = now or self.clock()

        with unit_of_work(self.db):
            claims_expired = (
                self.db.query(ShiftClaim)
                .filter(ShiftClaim.status == ClaimStatus.PENDING, ShiftClaim.expires_at <= now)
                .update(
                    {"status": ClaimStatus.EXPIRED, "resolved_at": now, "rejection_reason": "Claim expired"},
                    synchronize_session=False,
                )
            )
        lapsed_ids = [
            row.id
            for row in self.db.query(Shift.id).filter(
                Shift.status == ShiftStatus.PUBLISHED_OFFERED,
                Shift.offer_expires_at <= now,
            )
        ]

        offers_expired = 0
        intents: List[NotificationIntent] = []
        for shift_id in lapsed_ids:
            try:
                with unit_of_work(self.db):
                    shift = self.state_machine.get_shift(shift_id, lock=True)
                    if shift.status != ShiftStatus.PUBLISHED_OFFERED or shift.offer_expires_at > now:
                        continue
                    self.state_machine.transition(
                        shift,
                        ShiftStatus.PUBLISHED_UNASSIGNED,
                        TransitionContext(reason="Offer expired", now=now),
                    )
                    if shift.created_by_id:
                        intents.append(
                            NotificationIntent(
                                user_id=shift.created_by_id,
                                type=NotificationType.OFFER_EXPIRED,
                                payload=shift_payload(shift),
                            )
                        )
                offers_expired += 1
            except DomainError as e:
                logger.warning(f"Skipping offer expiry for shift {shift_id}: {e.message}")

        if claims_expired or offers_expired:
            logger.info(f"Expiry sweep: {claims_expired} claim(s), {offers_expired} offer(s) expired")
        emit(self.notifier, intents)
        return {"claims_expired": claims_expired, "offers_expired": offers_expired}
