# backend/modules/notifications/tests/test_notification_pipeline.py

from datetime import datetime

import pytest

from tests.factories import NotificationPreferenceFactory, UserFactory
from modules.notifications.enums import (
    DeliveryOutcome,
    DeliveryStatus,
    NotificationChannel,
    NotificationType,
    NotificationUrgency,
)
from modules.notifications.exceptions import ChannelDeliveryFailure
from modules.notifications.models import Notification
from modules.notifications.services import ChannelRegistry, ChannelResult, NotificationIntent, NotificationPipeline
from modules.notifications.services.channel_senders import skipped
from modules.notifications.services.notification_pipeline import is_quiet_hours, render, summarize_outcome

PUSH = NotificationChannel.PUSH
SMS = NotificationChannel.SMS
EMAIL = NotificationChannel.EMAIL


def claim_approved(user_id, shift_id=1):
    return NotificationIntent(
        user_id,
        NotificationType.CLAIM_APPROVED,
        {"shiftId": shift_id, "position": "server", "date": "2025-06-03", "time": "12:00"},
    )


@pytest.mark.unit
class TestHelpers:
    def test_render_fills_placeholders(self):
        assert render("{{position}} on {{date}}", {"position": "host", "date": "2025-06-03"}) == "host on 2025-06-03"

    def test_render_blanks_missing_fields(self):
        assert render("Hi {{name}}, shift at {{time}}", {"time": 9}) == "Hi , shift at 9"

    @pytest.mark.parametrize(
        "current,start,end,expected",
        [
            ("23:30", "23:00", "07:00", True),
            ("03:00", "23:00", "07:00", True),
            ("07:00", "23:00", "07:00", False),
            ("12:00", "23:00", "07:00", False),
            ("12:00", "11:00", "13:00", True),
            ("13:00", "11:00", "13:00", False),
            ("10:59", "11:00", "13:00", False),
        ],
    )
    def test_quiet_hours_ranges(self, current, start, end, expected):
        assert is_quiet_hours(current, start, end) is expected

    def test_skipped_channels_do_not_count(self):
        results = [
            ChannelResult(PUSH, DeliveryStatus.SENT),
            skipped(SMS, "no phone number"),
        ]
        assert summarize_outcome(results) == DeliveryOutcome.DELIVERED
        assert summarize_outcome([skipped(SMS, "no phone number")]) == DeliveryOutcome.DELIVERED
        assert summarize_outcome([ChannelResult(PUSH, DeliveryStatus.FAILED)]) == DeliveryOutcome.FAILED

    def test_intent_takes_urgency_from_type(self):
        intent = NotificationIntent(1, "SWAP_EXPIRED", {"swapId": 4})
        assert intent.type == NotificationType.SWAP_EXPIRED
        assert intent.urgency == NotificationUrgency.LOW
        assert intent.entity_key == "4"
        assert NotificationIntent(1, NotificationType.SWAP_EXPIRED).entity_key == "general"


@pytest.mark.integration
class TestSend:
    def test_delivers_on_default_channels(self, pipeline, channel_senders, db):
        user = UserFactory()

        report = pipeline.send(claim_approved(user.id))

        assert report.outcome == DeliveryOutcome.DELIVERED
        channel_senders[PUSH].deliver.assert_called_once()
        _, title, body, payload = channel_senders[PUSH].deliver.call_args[0]
        assert title == "Shift Confirmed"
        assert body == "Your claim for server on 2025-06-03 has been approved"
        assert payload["shiftId"] == 1
        channel_senders[SMS].deliver.assert_not_called()

        notification = db.get(Notification, report.notification_id)
        assert notification.outcome == DeliveryOutcome.DELIVERED
        assert [d.channel for d in notification.deliveries] == [PUSH]
        assert notification.deliveries[0].sent_at is not None

    def test_unknown_user(self, pipeline, channel_senders):
        report = pipeline.send(claim_approved(4040))

        assert report.outcome == DeliveryOutcome.SUPPRESSED
        channel_senders[PUSH].deliver.assert_not_called()

    def test_disabled_type(self, pipeline, channel_senders):
        prefs = NotificationPreferenceFactory(type_preferences={"CLAIM_APPROVED": {"enabled": False}})

        report = pipeline.send(claim_approved(prefs.user_id))

        assert report.outcome == DeliveryOutcome.SUPPRESSED
        assert report.reason == "type disabled"
        channel_senders[PUSH].deliver.assert_not_called()

    def test_channel_override_per_type(self, pipeline, channel_senders):
        prefs = NotificationPreferenceFactory(type_preferences={"CLAIM_APPROVED": {"channels": ["EMAIL", "SMS"]}})

        report = pipeline.send(claim_approved(prefs.user_id))

        assert [r.channel for r in report.channel_results] == [EMAIL, SMS]
        channel_senders[PUSH].deliver.assert_not_called()

    def test_partial_delivery(self, pipeline, channel_senders, db):
        user = UserFactory()
        channel_senders[SMS].deliver.side_effect = ChannelDeliveryFailure(SMS, "carrier rejected")
        intent = NotificationIntent(
            user.id, NotificationType.NO_SHOW_ALERT, {"shiftId": 3, "workerName": "Sam", "position": "host"}
        )

        report = pipeline.send(intent)

        assert report.outcome == DeliveryOutcome.PARTIALLY_DELIVERED
        deliveries = db.get(Notification, report.notification_id).deliveries
        assert [(d.channel, d.status) for d in deliveries] == [
            (PUSH, DeliveryStatus.SENT),
            (SMS, DeliveryStatus.FAILED),
        ]
        assert deliveries[1].error == "carrier rejected"

    def test_unexpected_sender_error_is_contained(self, pipeline, channel_senders):
        user = UserFactory()
        channel_senders[PUSH].deliver.side_effect = RuntimeError("socket closed")

        report = pipeline.send(claim_approved(user.id))

        assert report.outcome == DeliveryOutcome.FAILED
        assert report.channel_results[0].error == "socket closed"

    def test_channel_missing_from_registry_is_skipped(self, db, notification_cache, channel_senders, clock, test_settings):
        user = UserFactory()
        registry = ChannelRegistry({SMS: channel_senders[SMS]})
        pipeline = NotificationPipeline(db, notification_cache, registry, clock=clock, settings=test_settings)

        report = pipeline.send(claim_approved(user.id))

        assert report.channel_results[0].status == DeliveryStatus.SKIPPED
        assert report.outcome == DeliveryOutcome.DELIVERED


@pytest.mark.integration
class TestQuietHours:
    @pytest.fixture
    def quiet_user(self):
        # BASE_TIME is 12:00 UTC
        prefs = NotificationPreferenceFactory(
            quiet_hours_enabled=True, quiet_hours_start="11:00", quiet_hours_end="13:00"
        )
        return prefs.user

    def test_low_urgency_is_batched(self, pipeline, quiet_user, notification_cache, channel_senders):
        report = pipeline.send(NotificationIntent(quiet_user.id, NotificationType.SWAP_EXPIRED, {"swapId": 9}))

        assert report.outcome == DeliveryOutcome.QUEUED_FOR_BATCH
        [item] = notification_cache.peek_batch(quiet_user.id)
        assert item["type"] == "SWAP_EXPIRED"
        assert item["payload"] == {"swapId": 9}
        channel_senders[PUSH].deliver.assert_not_called()

    def test_low_urgency_dropped_when_batching_is_off(self, pipeline, notification_cache):
        prefs = NotificationPreferenceFactory(
            quiet_hours_enabled=True, quiet_hours_start="11:00", quiet_hours_end="13:00", batch_low_urgency=False
        )

        report = pipeline.send(NotificationIntent(prefs.user_id, NotificationType.SWAP_EXPIRED, {"swapId": 9}))

        assert report.outcome == DeliveryOutcome.SUPPRESSED
        assert notification_cache.peek_batch(prefs.user_id) == []

    def test_normal_urgency_is_suppressed(self, pipeline, quiet_user):
        intent = NotificationIntent(quiet_user.id, NotificationType.CLAIM_REJECTED, {"shiftId": 2})

        report = pipeline.send(intent)

        assert report.outcome == DeliveryOutcome.SUPPRESSED
        assert report.reason == "quiet hours"

    @pytest.mark.parametrize("notification_type", [NotificationType.CLAIM_APPROVED, NotificationType.NO_SHOW_ALERT])
    def test_high_and_critical_break_through(self, pipeline, quiet_user, notification_type):
        report = pipeline.send(NotificationIntent(quiet_user.id, notification_type, {"shiftId": 5}))

        assert report.outcome == DeliveryOutcome.DELIVERED

    def test_explicit_urgency_overrides_type_default(self, pipeline, quiet_user):
        intent = NotificationIntent(
            quiet_user.id, NotificationType.CLAIM_REJECTED, {"shiftId": 2}, urgency=NotificationUrgency.CRITICAL
        )

        assert pipeline.send(intent).outcome == DeliveryOutcome.DELIVERED

    def test_overnight_window_in_user_timezone(self, pipeline, clock):
        user = UserFactory(timezone="America/New_York")
        NotificationPreferenceFactory(user=user, quiet_hours_enabled=True)

        # 04:00 UTC is midnight in New York during daylight saving time
        clock.set(datetime(2025, 6, 3, 4, 0))
        intent = NotificationIntent(user.id, NotificationType.CLAIM_REJECTED, {"shiftId": 1})
        assert pipeline.send(intent).outcome == DeliveryOutcome.SUPPRESSED

        clock.set(datetime(2025, 6, 3, 12, 0))
        assert pipeline.send(intent).outcome == DeliveryOutcome.DELIVERED


@pytest.mark.integration
class TestRateLimitAndDedup:
    def test_hourly_limit(self, pipeline):
        prefs = NotificationPreferenceFactory(max_per_hour=2)

        outcomes = [pipeline.send(claim_approved(prefs.user_id, shift_id=i)).outcome for i in range(3)]

        assert outcomes[:2] == [DeliveryOutcome.DELIVERED, DeliveryOutcome.DELIVERED]
        assert outcomes[2] == DeliveryOutcome.SUPPRESSED

    def test_zero_limit_is_unlimited(self, pipeline):
        prefs = NotificationPreferenceFactory(max_per_hour=0)

        outcomes = {pipeline.send(claim_approved(prefs.user_id, shift_id=i)).outcome for i in range(25)}

        assert outcomes == {DeliveryOutcome.DELIVERED}

    def test_users_without_preferences_use_default_limit(self, pipeline, test_settings):
        user = UserFactory()

        outcomes = [
            pipeline.send(claim_approved(user.id, shift_id=i)).outcome
            for i in range(test_settings.notification_max_per_hour + 1)
        ]

        assert outcomes[-1] == DeliveryOutcome.SUPPRESSED
        assert outcomes.count(DeliveryOutcome.DELIVERED) == test_settings.notification_max_per_hour

    def test_duplicate_within_ttl(self, pipeline, notification_cache, redis_client, channel_senders):
        user = UserFactory()

        assert pipeline.send(claim_approved(user.id)).outcome == DeliveryOutcome.DELIVERED
        report = pipeline.send(claim_approved(user.id))
        assert report.outcome == DeliveryOutcome.SUPPRESSED
        assert report.reason == "duplicate"
        assert channel_senders[PUSH].deliver.call_count == 1

        key = notification_cache.dedup_key(user.id, "CLAIM_APPROVED", "1")
        assert 0 < redis_client.ttl(key) <= 300

        # Marker lapsed
        redis_client.delete(key)
        assert pipeline.send(claim_approved(user.id)).outcome == DeliveryOutcome.DELIVERED

    def test_second_send_while_first_is_in_flight(self, pipeline, channel_senders):
        user = UserFactory()
        overlapping = []

        def deliver(recipient, title, body, payload):
            # The same event arrives again before the first delivery returns
            overlapping.append(pipeline.send(claim_approved(recipient.id)))
            return ChannelResult(channel=PUSH, status=DeliveryStatus.SENT)

        channel_senders[PUSH].deliver.side_effect = deliver

        assert pipeline.send(claim_approved(user.id)).outcome == DeliveryOutcome.DELIVERED
        [second] = overlapping
        assert second.outcome == DeliveryOutcome.SUPPRESSED
        assert second.reason == "duplicate"
        assert channel_senders[PUSH].deliver.call_count == 1

    def test_same_type_for_another_shift_is_not_a_duplicate(self, pipeline):
        user = UserFactory()

        pipeline.send(claim_approved(user.id, shift_id=1))

        assert pipeline.send(claim_approved(user.id, shift_id=2)).outcome == DeliveryOutcome.DELIVERED

    def test_failed_delivery_can_be_retried(self, pipeline, channel_senders):
        user = UserFactory()
        channel_senders[PUSH].deliver.side_effect = ChannelDeliveryFailure(PUSH, "NotRegistered")

        assert pipeline.send(claim_approved(user.id)).outcome == DeliveryOutcome.FAILED

        channel_senders[PUSH].deliver.side_effect = None
        assert pipeline.send(claim_approved(user.id)).outcome == DeliveryOutcome.DELIVERED


@pytest.mark.integration
class TestDigests:
    @pytest.fixture
    def queued_user(self, pipeline):
        prefs = NotificationPreferenceFactory(
            quiet_hours_enabled=True, quiet_hours_start="11:00", quiet_hours_end="13:00"
        )
        pipeline.send(NotificationIntent(prefs.user_id, NotificationType.SWAP_EXPIRED, {"swapId": 1}))
        pipeline.send(NotificationIntent(prefs.user_id, NotificationType.SWAP_CANCELLED, {"swapId": 2}))
        pipeline.send(NotificationIntent(prefs.user_id, NotificationType.SWAP_EXPIRED, {"swapId": 3}))
        return prefs.user

    def test_nothing_flushed_during_quiet_hours(self, pipeline, queued_user, notification_cache):
        assert pipeline.flush_batches(queued_user.id) is None
        assert len(notification_cache.peek_batch(queued_user.id)) == 3

    def test_digest_after_quiet_hours(self, pipeline, queued_user, notification_cache, channel_senders, clock, db):
        clock.set(datetime(2025, 6, 2, 13, 30))

        report = pipeline.flush_batches(queued_user.id)

        assert report.outcome == DeliveryOutcome.DELIVERED
        notification = db.get(Notification, report.notification_id)
        assert notification.type == NotificationType.BATCH_DIGEST
        assert notification.body == "You have 3 new updates: 1 Swap Cancelled, 2 Swap Request Expired"
        assert len(notification.data["items"]) == 3
        assert notification_cache.peek_batch(queued_user.id) == []
        assert notification_cache.pending_batch_users() == []

    def test_flush_all(self, pipeline, queued_user, clock):
        other = NotificationPreferenceFactory(
            quiet_hours_enabled=True, quiet_hours_start="11:00", quiet_hours_end="13:00"
        )
        pipeline.send(NotificationIntent(other.user_id, NotificationType.OFFER_EXPIRED, {"shiftId": 8}))
        clock.set(datetime(2025, 6, 2, 14, 0))

        assert pipeline.flush_all_batches() == 2
        assert pipeline.flush_all_batches() == 0


@pytest.mark.integration
class TestInbox:
    def test_read_tracking(self, pipeline, clock):
        user = UserFactory()
        first = pipeline.send(claim_approved(user.id, shift_id=1))
        clock.advance(minutes=5)
        second = pipeline.send(claim_approved(user.id, shift_id=2))

        inbox = pipeline.get_notifications(user.id)
        assert [n.id for n in inbox] == [second.notification_id, first.notification_id]
        assert pipeline.get_unread_count(user.id) == 2

        assert pipeline.mark_as_read(first.notification_id, user.id) == 1
        assert [n.id for n in pipeline.get_notifications(user.id, unread_only=True)] == [second.notification_id]

        assert pipeline.mark_all_as_read(user.id) == 1
        assert pipeline.get_unread_count(user.id) == 0

    def test_cannot_mark_someone_elses_notification(self, pipeline):
        owner, other = UserFactory(), UserFactory()
        report = pipeline.send(claim_approved(owner.id))

        assert pipeline.mark_as_read(report.notification_id, other.id) == 0
        assert pipeline.get_unread_count(owner.id) == 1
