# backend/modules/notifications/services/notification_pipeline.py

"""
Decides whether, when and on which channels a notification goes out.

Checks run in a fixed order and the first one that applies wins:
type preference, quiet hours (batch or drop), hourly rate limit, dedup.
Anything left is rendered, stored and sent on each channel independently.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from core.clock import Clock, local_time_hhmm, utc_now
from core.config import Settings, get_settings
from core.database_retry import unit_of_work
from modules.core.models import User
from ..config.notification_config import get_type_config
from ..enums.notification_enums import (
    DeliveryOutcome,
    DeliveryStatus,
    NotificationChannel,
    NotificationType,
    NotificationUrgency,
)
from ..exceptions.notification_exceptions import ChannelDeliveryFailure
from ..models.notification_models import Notification, NotificationDelivery, NotificationPreference
from .channel_senders import ChannelRegistry, ChannelResult, skipped
from .notification_cache import NotificationCache

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

# Payload fields that identify the entity a notification is about, in order
ENTITY_KEY_FIELDS = ("shiftId", "swapId", "claimId")

QUIET_HOURS_EXEMPT = frozenset({NotificationUrgency.CRITICAL, NotificationUrgency.HIGH})


@dataclass
class NotificationIntent:
    user_id: int
    type: NotificationType
    payload: Dict[str, Any] = field(default_factory=dict)
    urgency: Optional[NotificationUrgency] = None

    def __post_init__(self):
        self.type = NotificationType(self.type)
        if self.urgency is None:
            self.urgency = get_type_config(self.type).urgency
        else:
            self.urgency = NotificationUrgency(self.urgency)

    @property
    def entity_key(self) -> str:
        for name in ENTITY_KEY_FIELDS:
            value = self.payload.get(name)
            if value not in (None, ""):
                return str(value)
        return "general"


@dataclass
class DeliveryReport:
    outcome: DeliveryOutcome
    reason: Optional[str] = None
    notification_id: Optional[int] = None
    channel_results: List[ChannelResult] = field(default_factory=list)


def render(template: str, payload: Dict[str, Any]) -> str:
    """Substitute {{field}} placeholders; missing fields become empty strings"""

    def substitute(match):
        value = payload.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER.sub(substitute, template)


def is_quiet_hours(current_hhmm: str, start: str, end: str) -> bool:
    """Zero padded HH:MM strings compare correctly as text"""
    if start < end:
        return start <= current_hhmm < end
    # Overnight range, e.g. 23:00 - 07:00
    return current_hhmm >= start or current_hhmm < end


def summarize_outcome(results: Sequence[ChannelResult]) -> DeliveryOutcome:
    attempted = [r for r in results if r.attempted]
    succeeded = [r for r in attempted if r.succeeded]
    if attempted and not succeeded:
        return DeliveryOutcome.FAILED
    if len(succeeded) < len(attempted):
        return DeliveryOutcome.PARTIALLY_DELIVERED
    return DeliveryOutcome.DELIVERED


class NotificationPipeline:
    def __init__(
        self,
        db: Session,
        cache: NotificationCache,
        channels: ChannelRegistry,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.cache = cache
        self.channels = channels
        self.clock = clock or utc_now
        self.settings = settings or get_settings()

    def __call__(self, intent: NotificationIntent) -> DeliveryReport:
        return self.send(intent)

    def send(self, intent: NotificationIntent) -> DeliveryReport:
        user = self.db.get(User, intent.user_id)
        if user is None:
            logger.warning(f"User not found: {intent.user_id}")
            return DeliveryReport(DeliveryOutcome.SUPPRESSED, reason="user not found")

        prefs = user.notification_preference
        notification_type = intent.type.value

        if prefs is not None and not prefs.is_type_enabled(intent.type):
            logger.debug(f"Notification disabled for type: {notification_type}")
            return DeliveryReport(DeliveryOutcome.SUPPRESSED, reason="type disabled")

        if intent.urgency not in QUIET_HOURS_EXEMPT and self._in_quiet_hours(user, prefs):
            if intent.urgency == NotificationUrgency.LOW and prefs.batch_low_urgency:
                self.cache.append_batch(
                    user.id,
                    {
                        "type": notification_type,
                        "payload": intent.payload,
                        "queued_at": self.clock().isoformat(),
                    },
                    ttl_seconds=self.settings.notification_batch_ttl_seconds,
                )
                logger.debug(f"Queued {notification_type} for user {user.id} until quiet hours end")
                return DeliveryReport(DeliveryOutcome.QUEUED_FOR_BATCH, reason="quiet hours")
            logger.debug(f"Skipping notification during quiet hours: {notification_type}")
            return DeliveryReport(DeliveryOutcome.SUPPRESSED, reason="quiet hours")

        limit = prefs.max_per_hour if prefs is not None else self.settings.notification_max_per_hour
        if not self.cache.check_rate_limit(
            user.id, limit, window_seconds=self.settings.notification_rate_window_seconds
        ):
            return DeliveryReport(DeliveryOutcome.SUPPRESSED, reason="rate limited")

        if not self.cache.mark_sent(
            user.id,
            notification_type,
            intent.entity_key,
            ttl_seconds=self.settings.notification_dedup_ttl_seconds,
        ):
            logger.debug(f"Duplicate notification prevented: {notification_type}/{intent.entity_key}")
            return DeliveryReport(DeliveryOutcome.SUPPRESSED, reason="duplicate")

        try:
            report = self._deliver(user, prefs, intent)
        except Exception:
            self.cache.clear_sent(user.id, notification_type, intent.entity_key)
            raise

        # Nothing went out, so a later send may try again
        if not any(result.succeeded for result in report.channel_results):
            self.cache.clear_sent(user.id, notification_type, intent.entity_key)
        return report

    def _in_quiet_hours(self, user: User, prefs: Optional[NotificationPreference]) -> bool:
        if prefs is None or not prefs.quiet_hours_enabled:
            return False
        timezone_name = user.timezone or self.settings.default_timezone
        current = local_time_hhmm(self.clock(), timezone_name)
        return is_quiet_hours(current, prefs.quiet_hours_start, prefs.quiet_hours_end)

    def _channels_for(
        self, prefs: Optional[NotificationPreference], notification_type: NotificationType
    ) -> List[NotificationChannel]:
        override = prefs.type_preference(notification_type).get("channels") if prefs is not None else None
        channels = override or get_type_config(notification_type).channels
        return [NotificationChannel(c) for c in channels]

    def _deliver(
        self,
        user: User,
        prefs: Optional[NotificationPreference],
        intent: NotificationIntent,
    ) -> DeliveryReport:
        config = get_type_config(intent.type)
        title = render(config.title_template, intent.payload)
        body = render(config.body_template, intent.payload)

        with unit_of_work(self.db):
            notification = Notification(
                user_id=user.id,
                type=intent.type,
                urgency=intent.urgency,
                title=title,
                body=body,
                data=dict(intent.payload),
                created_at=self.clock(),
            )
            self.db.add(notification)
            self.db.flush()

            results = [
                self._deliver_on(channel, user, title, body, intent.payload)
                for channel in self._channels_for(prefs, intent.type)
            ]
            for result in results:
                self.db.add(
                    NotificationDelivery(
                        notification_id=notification.id,
                        channel=result.channel,
                        status=result.status,
                        error=result.error,
                        sent_at=self.clock() if result.succeeded else None,
                    )
                )

            outcome = summarize_outcome(results)
            notification.outcome = outcome
            notification_id = notification.id

        logger.info(
            f"Notification {notification_id} ({intent.type.value}) to user {user.id}: {outcome.value}"
        )
        return DeliveryReport(outcome, notification_id=notification_id, channel_results=results)

    def _deliver_on(
        self,
        channel: NotificationChannel,
        user: User,
        title: str,
        body: str,
        payload: Dict[str, Any],
    ) -> ChannelResult:
        sender = self.channels.get(channel)
        if sender is None:
            return skipped(channel, "channel not enabled")
        try:
            return sender.deliver(user, title, body, payload)
        except ChannelDeliveryFailure as e:
            logger.error(f"Failed to deliver notification on {channel.value}: {e.reason}")
            return ChannelResult(channel=channel, status=DeliveryStatus.FAILED, error=e.reason)
        except Exception as e:
            logger.error(f"Unexpected {channel.value} sender error: {e}", exc_info=True)
            return ChannelResult(channel=channel, status=DeliveryStatus.FAILED, error=str(e))

    # Batched notifications

    def flush_batches(self, user_id: int) -> Optional[DeliveryReport]:
        """
        Deliver everything queued for a user as a single digest.

        Does nothing while the user is still in quiet hours.
        """
        user = self.db.get(User, user_id)
        if user is None:
            self.cache.pop_batch(user_id)
            return None

        prefs = user.notification_preference
        if self._in_quiet_hours(user, prefs):
            return None

        items = self.cache.pop_batch(user_id)
        if not items:
            return None

        counts = Counter(item.get("type") for item in items)
        summary = ", ".join(
            f"{count} {get_type_config(notification_type).title_template}"
            for notification_type, count in sorted(counts.items())
        )
        digest = NotificationIntent(
            user_id=user_id,
            type=NotificationType.BATCH_DIGEST,
            payload={"count": len(items), "summary": summary, "items": items},
        )
        logger.info(f"Flushing {len(items)} batched notification(s) for user {user_id}")
        return self._deliver(user, prefs, digest)

    def flush_all_batches(self) -> int:
        """Flush every user with a pending batch; returns digests sent"""
        flushed = 0
        for user_id in self.cache.pending_batch_users():
            try:
                if self.flush_batches(user_id) is not None:
                    flushed += 1
            except Exception as e:
                logger.error(f"Error flushing batch for user {user_id}: {e}", exc_info=True)
        return flushed

    # Inbox

    def get_notifications(self, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read == False)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def mark_as_read(self, notification_id: int, user_id: int) -> int:
        with unit_of_work(self.db):
            updated = (
                self.db.query(Notification)
                .filter(Notification.id == notification_id, Notification.user_id == user_id)
                .update({"read": True, "read_at": self.clock()}, synchronize_session=False)
            )
        return updated

    def mark_all_as_read(self, user_id: int) -> int:
        with unit_of_work(self.db):
            updated = (
                self.db.query(Notification)
                .filter(Notification.user_id == user_id, Notification.read == False)
                .update({"read": True, "read_at": self.clock()}, synchronize_session=False)
            )
        return updated

    def get_unread_count(self, user_id: int) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read == False)
            .count()
        )
