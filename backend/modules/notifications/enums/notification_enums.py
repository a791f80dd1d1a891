from enum import Enum


class NotificationUrgency(str, Enum):
    CRITICAL = "CRITICAL"  # overrides quiet hours
    HIGH = "HIGH"  # overrides quiet hours
    NORMAL = "NORMAL"
    LOW = "LOW"  # can be batched


class NotificationChannel(str, Enum):
    PUSH = "PUSH"
    SMS = "SMS"
    EMAIL = "EMAIL"


class NotificationType(str, Enum):
    # Worker notifications
    SHIFT_ASSIGNED = "SHIFT_ASSIGNED"
    SHIFT_REMINDER = "SHIFT_REMINDER"
    SHIFT_STARTING_SOON = "SHIFT_STARTING_SOON"
    SHIFT_OFFER_RECEIVED = "SHIFT_OFFER_RECEIVED"
    SHIFT_AVAILABLE = "SHIFT_AVAILABLE"
    CLAIM_APPROVED = "CLAIM_APPROVED"
    CLAIM_REJECTED = "CLAIM_REJECTED"

    # Manager notifications
    CLAIM_PENDING_APPROVAL = "CLAIM_PENDING_APPROVAL"
    SWAP_PENDING_APPROVAL = "SWAP_PENDING_APPROVAL"
    COVERAGE_GAP_ALERT = "COVERAGE_GAP_ALERT"
    NO_SHOW_ALERT = "NO_SHOW_ALERT"

    # Shift pool notifications
    SWAP_REQUEST = "SWAP_REQUEST"
    SWAP_ACCEPTED = "SWAP_ACCEPTED"
    SWAP_REJECTED = "SWAP_REJECTED"
    SWAP_APPROVED = "SWAP_APPROVED"
    SWAP_COMPLETED = "SWAP_COMPLETED"
    SWAP_CANCELLED = "SWAP_CANCELLED"
    SWAP_EXPIRED = "SWAP_EXPIRED"
    OFFER_ACCEPTED = "OFFER_ACCEPTED"
    OFFER_EXPIRED = "OFFER_EXPIRED"

    # Queued low urgency notifications delivered together after quiet hours
    BATCH_DIGEST = "BATCH_DIGEST"


class DeliveryOutcome(str, Enum):
    SUPPRESSED = "SUPPRESSED"
    QUEUED_FOR_BATCH = "QUEUED_FOR_BATCH"
    DELIVERED = "DELIVERED"
    PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED"
    FAILED = "FAILED"


class DeliveryStatus(str, Enum):
    SENT = "SENT"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
