# backend/modules/notifications/services/channel_senders.py

"""
Push, SMS and email senders.

Each sender exposes deliver(user, title, body, payload) -> ChannelResult.
A user without a target for the channel, or a sender without credentials,
yields a SKIPPED result; real delivery errors raise ChannelDeliveryFailure.
Senders are built once at startup, handed to the pipeline through a
ChannelRegistry and released with ChannelRegistry.close().
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail, To
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from core.config import Settings, get_settings
from modules.core.models import User
from ..enums.notification_enums import DeliveryStatus, NotificationChannel
from ..exceptions.notification_exceptions import ChannelDeliveryFailure

logger = logging.getLogger(__name__)


@dataclass
class ChannelResult:
    channel: NotificationChannel
    status: DeliveryStatus
    error: Optional[str] = None
    provider_message_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == DeliveryStatus.SENT

    @property
    def attempted(self) -> bool:
        return self.status != DeliveryStatus.SKIPPED


def skipped(channel: NotificationChannel, reason: str) -> ChannelResult:
    return ChannelResult(channel=channel, status=DeliveryStatus.SKIPPED, error=reason)


class PushSender:
    """Firebase Cloud Messaging over HTTP, one request per device token"""

    channel = NotificationChannel.PUSH
    fcm_url = "https://fcm.googleapis.com/fcm/send"
    # FCM error codes for tokens that will never work again
    STALE_TOKEN_ERRORS = frozenset({"NotRegistered", "InvalidRegistration"})

    def __init__(
        self,
        server_key: Optional[str],
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.server_key = server_key
        self.client = client or httpx.Client(timeout=timeout)

    def deliver(self, user: User, title: str, body: str, payload: Dict[str, Any]) -> ChannelResult:
        if not self.server_key:
            logger.warning("FCM server key not configured, skipping push")
            return skipped(self.channel, "push not configured")

        tokens: List[str] = list(user.fcm_tokens or [])
        if not tokens:
            logger.debug(f"No FCM tokens for user {user.id}")
            return skipped(self.channel, "no push token")

        sent = 0
        stale: List[str] = []
        errors: List[str] = []
        for token in tokens:
            error = self._send(token, title, body, payload)
            if error is None:
                sent += 1
            else:
                errors.append(error)
                if error in self.STALE_TOKEN_ERRORS:
                    stale.append(token)

        if stale:
            # Reassign, in-place changes to a JSON column are not tracked
            user.fcm_tokens = [t for t in tokens if t not in stale]
            logger.info(f"Removed {len(stale)} stale FCM token(s) for user {user.id}")

        logger.debug(f"Push sent to user {user.id}: {sent}/{len(tokens)} token(s)")
        if sent == 0:
            raise ChannelDeliveryFailure(self.channel, "; ".join(sorted(set(errors))))
        return ChannelResult(channel=self.channel, status=DeliveryStatus.SENT)

    def _send(self, token: str, title: str, body: str, payload: Dict[str, Any]) -> Optional[str]:
        """Send to one token; returns None on success or the FCM error code"""
        headers = {
            "Authorization": f"key={self.server_key}",
            "Content-Type": "application/json",
        }
        message = {
            "to": token,
            "notification": {"title": title, "body": body, "sound": "default"},
            # FCM data values must be strings
            "data": {key: str(value) for key, value in (payload or {}).items()},
        }

        try:
            response = self.client.post(self.fcm_url, headers=headers, json=message)
        except httpx.HTTPError as e:
            logger.error(f"FCM send error: {e}")
            return f"transport error: {e}"

        if response.status_code != 200:
            logger.error(f"FCM HTTP error: {response.status_code}")
            return f"HTTP {response.status_code}"

        result = response.json()
        if result.get("success") == 1:
            return None
        error = (result.get("results") or [{}])[0].get("error", "unknown error")
        logger.error(f"FCM error for token {token[:10]}...: {error}")
        return error

    def close(self):
        self.client.close()


class SmsSender:
    channel = NotificationChannel.SMS

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        client: Optional[Client] = None,
    ):
        self.from_number = from_number
        if client is not None:
            self.client = client
        elif account_sid and auth_token:
            self.client = Client(account_sid, auth_token)
            logger.info("Twilio client initialized successfully")
        else:
            logger.warning("Twilio credentials not configured")
            self.client = None

    def deliver(self, user: User, title: str, body: str, payload: Dict[str, Any]) -> ChannelResult:
        if self.client is None or not self.from_number:
            return skipped(self.channel, "sms not configured")
        if not user.phone:
            logger.debug(f"No phone number for user {user.id}")
            return skipped(self.channel, "no phone number")

        try:
            message = self.client.messages.create(body=body, to=user.phone, from_=self.from_number)
        except TwilioRestException as e:
            logger.error(f"Twilio error sending SMS to user {user.id}: {e}")
            raise ChannelDeliveryFailure(self.channel, e.msg or str(e)) from e

        logger.info(f"SMS sent to user {user.id}, SID: {message.sid}")
        return ChannelResult(channel=self.channel, status=DeliveryStatus.SENT, provider_message_id=message.sid)

    def close(self):
        pass


class EmailSender:
    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str,
        from_name: Optional[str] = None,
        client: Optional[SendGridAPIClient] = None,
    ):
        self.from_email = from_email
        self.from_name = from_name
        if client is not None:
            self.sg = client
        else:
            self.sg = SendGridAPIClient(api_key=api_key) if api_key else None

    def deliver(self, user: User, title: str, body: str, payload: Dict[str, Any]) -> ChannelResult:
        if self.sg is None:
            return skipped(self.channel, "email not configured")
        if not user.email:
            logger.debug(f"No email address for user {user.id}")
            return skipped(self.channel, "no email address")

        message = Mail(
            from_email=Email(self.from_email, self.from_name),
            to_emails=To(user.email, user.name),
            subject=title,
            plain_text_content=body,
        )

        try:
            response = self.sg.send(message)
        except HTTPError as e:
            logger.error(f"SendGrid error sending email to user {user.id}: {e}")
            raise ChannelDeliveryFailure(self.channel, str(e)) from e

        if response.status_code >= 400:
            raise ChannelDeliveryFailure(self.channel, f"HTTP {response.status_code}")

        message_id = response.headers.get("X-Message-Id") if response.headers else None
        logger.info(f"Email sent to user {user.id}")
        return ChannelResult(channel=self.channel, status=DeliveryStatus.SENT, provider_message_id=message_id)

    def close(self):
        pass


class ChannelRegistry:
    """The senders available to the pipeline, keyed by channel"""

    def __init__(self, senders: Optional[Dict[NotificationChannel, Any]] = None):
        self.senders = dict(senders or {})

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ChannelRegistry":
        settings = settings or get_settings()
        available = {
            NotificationChannel.PUSH: lambda: PushSender(
                settings.fcm_server_key, timeout=settings.fcm_timeout_seconds
            ),
            NotificationChannel.SMS: lambda: SmsSender(
                settings.twilio_account_sid, settings.twilio_auth_token, settings.twilio_from_number
            ),
            NotificationChannel.EMAIL: lambda: EmailSender(
                settings.sendgrid_api_key, settings.sendgrid_from_email, settings.sendgrid_from_name
            ),
        }
        senders = {}
        for name in settings.enabled_channels:
            channel = NotificationChannel(name)
            senders[channel] = available[channel]()
        return cls(senders)

    def get(self, channel: NotificationChannel):
        return self.senders.get(NotificationChannel(channel))

    def close(self):
        for sender in self.senders.values():
            try:
                sender.close()
            except Exception as e:
                logger.warning(f"Error closing {type(sender).__name__}: {e}")
        self.senders.clear()
