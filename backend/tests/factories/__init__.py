# backend/tests/factories/__init__.py

"""
Shared test factories for the shift pool backend.
"""

from .base import BASE_TIME, BaseFactory, Session
from .core import RestaurantFactory, RestaurantNetworkFactory, UserFactory, WorkerProfileFactory
from .scheduling import ShiftFactory
from .shift_pool import ShiftClaimFactory
from .notifications import NotificationPreferenceFactory

__all__ = [
    "BASE_TIME",
    "BaseFactory",
    "Session",
    "UserFactory",
    "RestaurantNetworkFactory",
    "RestaurantFactory",
    "WorkerProfileFactory",
    "ShiftFactory",
    "ShiftClaimFactory",
    "NotificationPreferenceFactory",
]
