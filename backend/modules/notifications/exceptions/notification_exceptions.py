"""Exceptions raised by channel senders"""


class ChannelDeliveryFailure(Exception):
    """
    A single channel could not deliver a notification.

    Recorded against that channel only; it never fails the notification as
    a whole or the operation that triggered it.
    """

    def __init__(self, channel, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"{getattr(channel, 'value', channel)} delivery failed: {reason}")
