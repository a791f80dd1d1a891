from .channel_senders import ChannelRegistry, ChannelResult, PushSender, SmsSender, EmailSender
from .notification_cache import NotificationCache
from .notification_pipeline import NotificationPipeline, NotificationIntent, DeliveryReport

__all__ = [
    "ChannelRegistry",
    "ChannelResult",
    "PushSender",
    "SmsSender",
    "EmailSender",
    "NotificationCache",
    "NotificationPipeline",
    "NotificationIntent",
    "DeliveryReport",
]
