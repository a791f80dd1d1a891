from .notification_exceptions import ChannelDeliveryFailure

__all__ = ["ChannelDeliveryFailure"]
