# backend/modules/core/models/core_models.py
"""
Core models shared by the scheduling, shift pool and notification modules.
A restaurant is the tenant boundary; restaurants that join a network can
see and fill each other's published shifts.
"""

from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
from enum import Enum

from core.database import Base
from core.mixins import TimestampMixin


class WorkerTier(str, Enum):
    """Employment tier of a worker at their home restaurant"""
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"


class RestaurantNetwork(Base, TimestampMixin):
    """A group of restaurants sharing shift visibility"""
    __tablename__ = "restaurant_networks"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)

    restaurants = relationship("Restaurant", back_populates="network")


class Restaurant(Base, TimestampMixin):
    """
    Single restaurant location; the root entity for tenant data isolation.
    """
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    timezone = Column(String(50), nullable=False, default="America/New_York")

    # Geo position, used for cross-restaurant commute checks
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    network_id = Column(Integer, ForeignKey("restaurant_networks.id"), nullable=True)
    manager_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Claim and swap policy
    auto_approve_threshold = Column(Float, nullable=False, default=4.0)
    allow_cross_restaurant_swaps = Column(Boolean, nullable=False, default=False)

    network = relationship("RestaurantNetwork", back_populates="restaurants")
    manager = relationship("User", foreign_keys=[manager_user_id])

    def __repr__(self):
        return f"<Restaurant(id={self.id}, name='{self.name}')>"


class User(Base, TimestampMixin):
    """Notification recipient: contact points and timezone"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255))
    phone = Column(String(20))
    timezone = Column(String(50), nullable=False, default="UTC")
    fcm_tokens = Column(JSON, nullable=False, default=list)

    notification_preference = relationship(
        "NotificationPreference", back_populates="user", uselist=False
    )


class WorkerProfile(Base, TimestampMixin):
    """A user's employment at one home restaurant"""
    __tablename__ = "worker_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)

    tier = Column(SQLEnum(WorkerTier), nullable=False, default=WorkerTier.SECONDARY)
    positions = Column(JSON, nullable=False, default=list)

    # 0-5 scales
    reputation_score = Column(Float, nullable=False, default=3.0)
    reliability_score = Column(Float, nullable=False, default=3.0)
    no_show_count = Column(Integer, nullable=False, default=0)

    user = relationship("User")
    restaurant = relationship("Restaurant")

    def is_qualified_for(self, position: str) -> bool:
        return position in (self.positions or [])

    def __repr__(self):
        return f"<WorkerProfile(id={self.id}, restaurant_id={self.restaurant_id})>"
