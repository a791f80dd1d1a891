from .notification_config import NOTIFICATION_CONFIG, NotificationTypeConfig, get_type_config

__all__ = ["NOTIFICATION_CONFIG", "NotificationTypeConfig", "get_type_config"]
