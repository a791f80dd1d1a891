from .notification_enums import (
    NotificationUrgency,
    NotificationChannel,
    NotificationType,
    DeliveryOutcome,
    DeliveryStatus,
)

__all__ = [
    "NotificationUrgency",
    "NotificationChannel",
    "NotificationType",
    "DeliveryOutcome",
    "DeliveryStatus",
]
