"""Urgency, default channels and message templates per notification type"""
from dataclasses import dataclass
from typing import Dict, Tuple

from ..enums.notification_enums import NotificationChannel, NotificationType, NotificationUrgency

PUSH = (NotificationChannel.PUSH,)
PUSH_AND_SMS = (NotificationChannel.PUSH, NotificationChannel.SMS)


@dataclass(frozen=True)
class NotificationTypeConfig:
    urgency: NotificationUrgency
    channels: Tuple[NotificationChannel, ...]
    title_template: str
    body_template: str


NOTIFICATION_CONFIG: Dict[NotificationType, NotificationTypeConfig] = {
    NotificationType.SHIFT_ASSIGNED: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Shift Assigned",
        "You have been assigned a {{position}} shift on {{date}} at {{time}}",
    ),
    NotificationType.SHIFT_REMINDER: NotificationTypeConfig(
        NotificationUrgency.HIGH, PUSH,
        "Shift Reminder",
        "Your {{position}} shift starts tomorrow at {{time}}",
    ),
    NotificationType.SHIFT_STARTING_SOON: NotificationTypeConfig(
        NotificationUrgency.CRITICAL, PUSH_AND_SMS,
        "Shift Starting Soon",
        "Your shift at {{restaurant}} starts in {{minutesUntil}} minutes",
    ),
    NotificationType.SHIFT_OFFER_RECEIVED: NotificationTypeConfig(
        NotificationUrgency.HIGH, PUSH,
        "Shift Offer",
        "{{restaurant}} is offering you a {{position}} shift on {{date}}",
    ),
    NotificationType.SHIFT_AVAILABLE: NotificationTypeConfig(
        NotificationUrgency.LOW, PUSH,
        "Shift Available",
        "{{count}} new {{position}} shifts available at {{restaurant}}",
    ),
    NotificationType.CLAIM_APPROVED: NotificationTypeConfig(
        NotificationUrgency.HIGH, PUSH,
        "Shift Confirmed",
        "Your claim for {{position}} on {{date}} has been approved",
    ),
    NotificationType.CLAIM_REJECTED: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Claim Not Approved",
        "Your shift claim was not approved: {{reason}}",
    ),
    NotificationType.CLAIM_PENDING_APPROVAL: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Claim Needs Approval",
        "{{workerName}} wants to claim the {{position}} shift on {{date}}",
    ),
    NotificationType.SWAP_PENDING_APPROVAL: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Swap Needs Approval",
        "A shift swap between {{worker1}} and {{worker2}} needs your approval",
    ),
    NotificationType.COVERAGE_GAP_ALERT: NotificationTypeConfig(
        NotificationUrgency.HIGH, PUSH,
        "Coverage Gap",
        "{{position}} shift on {{date}} needs coverage",
    ),
    NotificationType.NO_SHOW_ALERT: NotificationTypeConfig(
        NotificationUrgency.CRITICAL, PUSH_AND_SMS,
        "No-Show Alert",
        "{{workerName}} has not checked in for their {{position}} shift",
    ),
    NotificationType.SWAP_REQUEST: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Swap Request",
        "{{workerName}} has requested to swap shifts with you",
    ),
    NotificationType.SWAP_ACCEPTED: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Swap Accepted",
        "{{workerName}} has accepted your shift swap request",
    ),
    NotificationType.SWAP_REJECTED: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Swap Rejected",
        "{{workerName}} has declined your shift swap request",
    ),
    NotificationType.SWAP_APPROVED: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Swap Approved",
        "Your shift swap has been approved",
    ),
    NotificationType.SWAP_COMPLETED: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "Swap Completed",
        "Your shift swap has been completed successfully",
    ),
    NotificationType.SWAP_CANCELLED: NotificationTypeConfig(
        NotificationUrgency.LOW, PUSH,
        "Swap Cancelled",
        "The shift swap request has been cancelled",
    ),
    NotificationType.SWAP_EXPIRED: NotificationTypeConfig(
        NotificationUrgency.LOW, PUSH,
        "Swap Request Expired",
        "Your shift swap request has expired",
    ),
    NotificationType.OFFER_ACCEPTED: NotificationTypeConfig(
        NotificationUrgency.HIGH, PUSH,
        "Offer Accepted",
        "{{workerName}} has accepted your shift offer for {{position}} on {{date}}",
    ),
    NotificationType.OFFER_EXPIRED: NotificationTypeConfig(
        NotificationUrgency.LOW, PUSH,
        "Offer Expired",
        "Your shift offer for {{position}} on {{date}} has expired",
    ),
    NotificationType.BATCH_DIGEST: NotificationTypeConfig(
        NotificationUrgency.NORMAL, PUSH,
        "While you were away",
        "You have {{count}} new updates: {{summary}}",
    ),
}


def get_type_config(notification_type: NotificationType) -> NotificationTypeConfig:
    return NOTIFICATION_CONFIG[NotificationType(notification_type)]
