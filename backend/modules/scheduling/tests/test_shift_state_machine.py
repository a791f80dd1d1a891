# backend/modules/scheduling/tests/test_shift_state_machine.py

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from tests.factories import ShiftFactory, WorkerProfileFactory
from modules.scheduling.enums import ShiftStatus, TERMINAL_STATUSES
from modules.scheduling.exceptions import InvalidTransition, ShiftNotFound
from modules.scheduling.services.shift_state_machine import (
    TRANSITIONS,
    ShiftStateMachine,
    TransitionContext,
    allowed_transitions,
    can_transition,
)


@pytest.mark.unit
class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(ShiftStatus)

    def test_terminal_statuses_have_no_way_out(self):
        for status in TERMINAL_STATUSES:
            assert allowed_transitions(status) == frozenset()

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (ShiftStatus.DRAFT, ShiftStatus.PUBLISHED_UNASSIGNED),
            (ShiftStatus.PUBLISHED_UNASSIGNED, ShiftStatus.PUBLISHED_OFFERED),
            (ShiftStatus.PUBLISHED_OFFERED, ShiftStatus.PUBLISHED_UNASSIGNED),
            (ShiftStatus.PUBLISHED_CLAIMED, ShiftStatus.CONFIRMED),
            (ShiftStatus.CONFIRMED, ShiftStatus.NO_SHOW),
            (ShiftStatus.IN_PROGRESS, ShiftStatus.COMPLETED),
        ],
    )
    def test_allowed(self, from_status, to_status):
        assert can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (ShiftStatus.DRAFT, ShiftStatus.PUBLISHED_CLAIMED),
            (ShiftStatus.DRAFT, ShiftStatus.IN_PROGRESS),
            (ShiftStatus.PUBLISHED_UNASSIGNED, ShiftStatus.CONFIRMED),
            (ShiftStatus.IN_PROGRESS, ShiftStatus.CANCELLED),
            (ShiftStatus.COMPLETED, ShiftStatus.PUBLISHED_UNASSIGNED),
            (ShiftStatus.CANCELLED, ShiftStatus.DRAFT),
        ],
    )
    def test_rejected(self, from_status, to_status):
        assert not can_transition(from_status, to_status)


@pytest.mark.integration
class TestShiftStateMachine:
    @pytest.fixture
    def machine(self, db: Session, clock):
        return ShiftStateMachine(db, clock=clock)

    def test_publish_sets_published_at_and_records_history(self, machine, clock):
        shift = ShiftFactory(status=ShiftStatus.DRAFT)

        machine.publish(shift.id, actor="USER:7")

        assert shift.status == ShiftStatus.PUBLISHED_UNASSIGNED
        assert shift.published_at == clock()
        history = machine.get_history(shift.id)
        assert len(history) == 1
        assert history[0].from_status == ShiftStatus.DRAFT
        assert history[0].to_status == ShiftStatus.PUBLISHED_UNASSIGNED
        assert history[0].changed_by == "USER:7"

    def test_cannot_publish_a_past_shift(self, machine, clock):
        shift = ShiftFactory(
            status=ShiftStatus.DRAFT,
            start_time=clock() - timedelta(hours=1),
            end_time=clock() + timedelta(hours=5),
        )

        with pytest.raises(InvalidTransition) as exc_info:
            machine.publish(shift.id)

        assert "past" in exc_info.value.message
        assert shift.status == ShiftStatus.DRAFT
        assert machine.get_history(shift.id) == []

    def test_illegal_transition_leaves_shift_untouched(self, machine, db):
        shift = ShiftFactory(status=ShiftStatus.DRAFT)

        with pytest.raises(InvalidTransition) as exc_info:
            machine.start(shift.id)

        assert exc_info.value.from_status == ShiftStatus.DRAFT
        assert exc_info.value.to_status == ShiftStatus.IN_PROGRESS
        assert exc_info.value.status_code == 409
        db.refresh(shift)
        assert shift.status == ShiftStatus.DRAFT
        assert machine.get_history(shift.id) == []

    def test_assign_then_release_clears_worker(self, machine):
        shift = ShiftFactory()
        worker = WorkerProfileFactory(restaurant=shift.restaurant)

        machine.assign(shift.id, worker.id)
        assert shift.status == ShiftStatus.PUBLISHED_CLAIMED
        assert shift.assigned_worker_id == worker.id

        machine.release_to_pool(shift.id, reason="Worker sick")
        assert shift.status == ShiftStatus.PUBLISHED_UNASSIGNED
        assert shift.assigned_worker_id is None
        assert machine.get_history(shift.id)[-1].reason == "Worker sick"

    def test_claimed_status_requires_a_worker(self, machine, db):
        shift = ShiftFactory()

        with pytest.raises(InvalidTransition):
            machine.transition(shift, ShiftStatus.PUBLISHED_CLAIMED, TransitionContext())
        db.rollback()

    def test_confirm_requires_an_assigned_worker(self, machine):
        shift = ShiftFactory(status=ShiftStatus.PUBLISHED_CLAIMED)

        with pytest.raises(InvalidTransition) as exc_info:
            machine.confirm(shift.id)

        assert "no assigned worker" in exc_info.value.message

    def test_offer_records_workers_and_deadline(self, machine, clock):
        shift = ShiftFactory()
        workers = WorkerProfileFactory.create_batch(2, restaurant=shift.restaurant)
        deadline = clock() + timedelta(hours=4)

        machine.offer(shift.id, [w.id for w in workers], deadline)

        assert shift.status == ShiftStatus.PUBLISHED_OFFERED
        assert shift.offered_to == [w.id for w in workers]
        assert shift.offer_expires_at == deadline

    def test_offer_needs_at_least_one_worker(self, machine, clock):
        shift = ShiftFactory()

        with pytest.raises(InvalidTransition):
            machine.offer(shift.id, [], clock() + timedelta(hours=4))

    def test_start_window(self, machine, clock):
        worker = WorkerProfileFactory()
        shift = ShiftFactory(
            restaurant=worker.restaurant, status=ShiftStatus.CONFIRMED, assigned_worker=worker
        )

        clock.set(shift.start_time - timedelta(hours=3))
        with pytest.raises(InvalidTransition):
            machine.start(shift.id)

        clock.set(shift.start_time - timedelta(hours=1))
        machine.start(shift.id)
        assert shift.status == ShiftStatus.IN_PROGRESS

        machine.complete(shift.id)
        assert shift.status == ShiftStatus.COMPLETED
        assert shift.assigned_worker_id == worker.id

    def test_no_show_counts_against_worker(self, machine, db):
        worker = WorkerProfileFactory(no_show_count=1)
        shift = ShiftFactory(
            restaurant=worker.restaurant, status=ShiftStatus.CONFIRMED, assigned_worker=worker
        )

        machine.mark_no_show(shift.id)

        db.refresh(worker)
        assert shift.status == ShiftStatus.NO_SHOW
        assert worker.no_show_count == 2

    def test_cancel_clears_assignment(self, machine):
        worker = WorkerProfileFactory()
        shift = ShiftFactory(
            restaurant=worker.restaurant, status=ShiftStatus.CONFIRMED, assigned_worker=worker
        )

        machine.cancel(shift.id, reason="Private event cancelled")

        assert shift.status == ShiftStatus.CANCELLED
        assert shift.assigned_worker_id is None
        with pytest.raises(InvalidTransition):
            machine.publish(shift.id)

    def test_reassign_keeps_status_and_logs_history(self, machine, db):
        first, second = WorkerProfileFactory.create_batch(2)
        shift = ShiftFactory(
            restaurant=first.restaurant, status=ShiftStatus.CONFIRMED, assigned_worker=first
        )

        machine.reassign(shift, second.id, TransitionContext(actor="WORKER:1"))
        db.commit()

        assert shift.status == ShiftStatus.CONFIRMED
        assert shift.assigned_worker_id == second.id
        entry = machine.get_history(shift.id)[-1]
        assert entry.from_status == entry.to_status == ShiftStatus.CONFIRMED
        assert entry.changed_by == "WORKER:1"

    def test_reassign_refuses_a_started_shift(self, machine, db):
        first, second = WorkerProfileFactory.create_batch(2)
        shift = ShiftFactory(
            restaurant=first.restaurant, status=ShiftStatus.IN_PROGRESS, assigned_worker=first
        )

        with pytest.raises(InvalidTransition):
            machine.reassign(shift, second.id)
        assert shift.assigned_worker_id == first.id

    def test_unknown_shift(self, machine):
        with pytest.raises(ShiftNotFound) as exc_info:
            machine.get_shift(9999)
        assert exc_info.value.status_code == 404
