from .notification_models import NotificationPreference, Notification, NotificationDelivery

__all__ = ["NotificationPreference", "Notification", "NotificationDelivery"]
