from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Boolean, JSON, Text
from sqlalchemy.orm import relationship

from core.database import Base
from core.clock import utc_now
from core.mixins import TimestampMixin
from ..enums.notification_enums import (
    NotificationType, NotificationUrgency, NotificationChannel, DeliveryOutcome, DeliveryStatus
)


class NotificationPreference(Base, TimestampMixin):
    """Per-user delivery preferences"""
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    quiet_hours_enabled = Column(Boolean, nullable=False, default=False)
    quiet_hours_start = Column(String(5), nullable=False, default="23:00")  # HH:MM
    quiet_hours_end = Column(String(5), nullable=False, default="07:00")  # HH:MM
    batch_low_urgency = Column(Boolean, nullable=False, default=True)

    # 0 means unlimited
    max_per_hour = Column(Integer, nullable=False, default=20)

    # {"CLAIM_APPROVED": {"enabled": true, "channels": ["PUSH", "SMS"]}}
    type_preferences = Column(JSON, nullable=False, default=dict)

    user = relationship("User", back_populates="notification_preference")

    def type_preference(self, notification_type: NotificationType) -> dict:
        return (self.type_preferences or {}).get(NotificationType(notification_type).value) or {}

    def is_type_enabled(self, notification_type: NotificationType) -> bool:
        return self.type_preference(notification_type).get("enabled", True) is not False


class Notification(Base):
    """A rendered notification shown in the user's inbox"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(NotificationType), nullable=False)
    urgency = Column(Enum(NotificationUrgency), nullable=False)

    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)

    outcome = Column(Enum(DeliveryOutcome), nullable=True)
    read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    deliveries = relationship(
        "NotificationDelivery", back_populates="notification", order_by="NotificationDelivery.id"
    )

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"


class NotificationDelivery(Base):
    """Result of one channel attempt"""
    __tablename__ = "notification_deliveries"

    id = Column(Integer, primary_key=True, index=True)
    notification_id = Column(Integer, ForeignKey("notifications.id"), nullable=False, index=True)
    channel = Column(Enum(NotificationChannel), nullable=False)
    status = Column(Enum(DeliveryStatus), nullable=False)
    error = Column(Text)
    sent_at = Column(DateTime)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    notification = relationship("Notification", back_populates="deliveries")
